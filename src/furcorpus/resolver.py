"""
Boundary resolution over the catalog's identifier space.

Identifiers grow with posting time, but deleted or unpublished submissions
leave gaps, so a plain binary search can land on ids that say nothing about
time. The resolver narrows a bracket with a gap-tolerant binary search and
then walks the bracket one id at a time looking for the exact target minute.
"""

import logging

from .errors import FetchFailure
from .models import BoundaryResult, IdentifierRange, period_bounds, to_minute

logger = logging.getLogger(__name__)


class RangeResolver:
    """Locates the identifiers that bound a reporting period."""

    def __init__(self, client):
        self.client = client
        self.latest_id = None
        self.stats = {"probes": 0, "gaps": 0}

    def gap_rate(self):
        if not self.stats["probes"]:
            return 0.0
        return self.stats["gaps"] / self.stats["probes"]

    def find_upper_bound(self):
        """Fetch the newest identifier from the catalog front page."""
        result = self.client.fetch_latest_id()
        if not result.is_found:
            raise FetchFailure("Unable to fetch the newest submission id")
        self.latest_id = result.payload
        return self.latest_id

    def _timestamp_at(self, identifier):
        """Return the entry's timestamp, or None for a gap."""
        self.stats["probes"] += 1
        result = self.client.fetch_timestamp(identifier)
        if result.is_transient:
            raise FetchFailure("Fetch kept failing during boundary resolution", identifier)
        if result.is_not_found:
            self.stats["gaps"] += 1
            return None
        return to_minute(result.payload)

    def _bracket(self, target, upper_bound):
        """Binary search down to a ``(low, high, mid, hit)`` bracket around ``target``."""
        low, high = 1, upper_bound
        mid = (high - low) // 2 + low
        after_gap = False
        hit = False

        while mid != low and mid != high:
            logger.debug("Mid: %s, Min: %s, Max: %s", mid, low, high)
            timestamp = self._timestamp_at(mid)

            if timestamp is None:
                # A gap near the top is more likely a short run of deletions than
                # the end of valid data: probe just below the ceiling once, then
                # step down one id at a time.
                if not after_gap:
                    mid = high - 1
                    after_gap = True
                else:
                    mid -= 1
                continue
            after_gap = False

            logger.debug("Id: %s, Parsed date: %s, Target date: %s", mid, timestamp.isoformat(), target.isoformat())
            if timestamp > target:
                high = mid
            elif timestamp < target:
                low = mid
            else:
                hit = True
                break
            mid = (high - low) // 2 + low

        return low, high, mid, hit

    def resolve_boundary(self, target, upper_bound=None, first=True):
        """
        Return the identifier whose timestamp equals ``target`` (minute resolution).

        With ``first`` the bracket is walked upward and the lowest matching id
        wins (start of a period); otherwise it is walked downward and the
        highest matching id wins (end of a period). When no id in the bracket
        matches exactly, the last binary-search midpoint is returned with
        ``exact=False``.
        """
        target = to_minute(target)
        if upper_bound is None:
            upper_bound = self.latest_id if self.latest_id is not None else self.find_upper_bound()
        if upper_bound < 1:
            raise ValueError(f"upper_bound must be positive, got {upper_bound}")

        logger.debug("Beginning binary search for %s below id %s", target.isoformat(), upper_bound)
        low, high, mid, hit = self._bracket(target, upper_bound)
        if hit:
            logger.debug("Exact hit at id %s", mid)

        logger.debug("Beginning range walk - min: %s, max: %s", low, high)
        walk = range(low, high + 1) if first else range(high, low - 1, -1)
        for identifier in walk:
            timestamp = self._timestamp_at(identifier)
            if timestamp is None:
                continue
            if timestamp == target:
                return BoundaryResult(identifier, True)

        logger.warning(
            "[!] Reached end of search for %s without an exact match; using id %s (check the target timestamp)",
            target.isoformat(),
            mid,
        )
        return BoundaryResult(mid, False)

    def resolve_period(self, period_key):
        """Resolve the first and last identifiers of a calendar-year period."""
        start, end = period_bounds(period_key)
        logger.info("[*] Looking up latest submission...")
        upper_bound = self.find_upper_bound()
        logger.info("[*] Latest submission id: %s", upper_bound)

        logger.info("[*] Looking up first submission of %s... (this'll take a while)", period_key)
        first = self.resolve_boundary(start, upper_bound, first=True)
        logger.info("[+] First submission found: %s", first.identifier)

        logger.info("[*] Looking up last submission of %s... (this'll take a while)", period_key)
        last = self.resolve_boundary(end, upper_bound, first=False)
        logger.info("[+] Last submission found: %s", last.identifier)
        logger.info(
            "[*] Boundary search: %s probes, %s gaps (%.2f%% gap rate)",
            self.stats["probes"],
            self.stats["gaps"],
            100 * self.gap_rate(),
        )

        return IdentifierRange(
            period_key=period_key,
            first_id=first.identifier,
            last_id=last.identifier,
            first_exact=first.exact,
            last_exact=last.exact,
        )
