import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass

import requests

from . import config
from .cache_sqlite import FOUND, SQLitePageCache
from .errors import StructuralMismatch
from .models import FetchResult
from .parsing import as_document, extract_timestamp, has_submission, parse_latest_id, parse_submission_page

logger = logging.getLogger(__name__)


class RateGate:
    """Single-slot gate with a minimum spacing between request starts.

    The slot is held for the whole request, so no two fetches are ever in
    flight at once, whichever thread issues them.
    """

    def __init__(self, min_interval=config.MIN_REQUEST_INTERVAL, clock=time.monotonic, sleep=time.sleep):
        self.min_interval = max(0.0, min_interval or 0.0)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_start = None

    @contextmanager
    def slot(self):
        with self._lock:
            if self._last_start is not None and self.min_interval > 0:
                wait = self._last_start + self.min_interval - self._clock()
                if wait > 0:
                    self._sleep(wait)
            self._last_start = self._clock()
            yield


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry schedule for one fetch, plus the cooldown taken after giving up."""

    max_attempts: int = config.FETCH_MAX_ATTEMPTS
    base_delay: float = config.FETCH_BACKOFF_BASE
    max_delay: float = config.FETCH_BACKOFF_MAX
    cooldown: float = config.TRANSIENT_COOLDOWN_SECONDS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def immediate(cls, max_attempts=1):
        return cls(max_attempts=max_attempts, base_delay=0, max_delay=0, cooldown=0)

    def delay(self, attempt):
        return min(self.max_delay, self.base_delay * (2**attempt))


def build_session(a_token=config.FA_A_TOKEN, b_token=config.FA_B_TOKEN):
    """Return a requests session carrying the identity headers and auth cookies."""
    session = requests.Session()
    session.headers.update(config.HEADERS)
    for name, value in (("a", a_token), ("b", b_token)):
        if value:
            session.cookies.set(name, value, domain=config.COOKIE_DOMAIN, path="/")
    return session


class CatalogClient:
    """Fetch-by-identifier client shared by the range resolver and the sampler."""

    def __init__(
        self,
        session=None,
        gate=None,
        policy=None,
        page_cache=None,
        base_url=config.BASE_URL,
        timeout=config.REQUEST_TIMEOUT,
        sleep=time.sleep,
    ):
        self.session = session if session is not None else build_session()
        self.gate = gate if gate is not None else RateGate()
        self.policy = policy if policy is not None else BackoffPolicy()
        self.page_cache = page_cache
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._sleep = sleep
        self.stats = {
            "cache_hits": 0,
            "negative_hits": 0,
            "network_calls": 0,
            "network_errors": 0,
            "transients": 0,
            "http_status_counts": {200: 0, 404: 0, 429: 0, "other": 0},
        }

    @classmethod
    def from_config(cls, enable_cache=config.ENABLE_PAGE_CACHE, min_interval=config.MIN_REQUEST_INTERVAL):
        page_cache = None
        if enable_cache:
            page_cache = SQLitePageCache(config.PAGE_CACHE_DB, negative_ttl=config.PAGE_CACHE_NEGATIVE_TTL_SECONDS)
        return cls(gate=RateGate(min_interval), page_cache=page_cache)

    def _record_status(self, status_code):
        if status_code in self.stats["http_status_counts"]:
            self.stats["http_status_counts"][status_code] += 1
        else:
            self.stats["http_status_counts"]["other"] += 1

    def _get(self, path):
        """GET a catalog path with retries; returns ``(status, text)`` or None after giving up."""
        url = f"{self.base_url}{path}"
        for attempt in range(self.policy.max_attempts):
            last_attempt = attempt == self.policy.max_attempts - 1
            with self.gate.slot():
                try:
                    response = self.session.get(url, timeout=self.timeout)
                except requests.RequestException as exc:
                    response = None
                    self.stats["network_errors"] += 1
                    logger.debug("GET %s failed: %s", url, exc)
            if response is None:
                if not last_attempt:
                    self._sleep(self.policy.delay(attempt))
                continue
            self.stats["network_calls"] += 1
            status = response.status_code
            self._record_status(status)
            if status in config.RETRY_STATUS_CODES:
                if not last_attempt:
                    self._sleep(self.policy.delay(attempt))
                continue
            return status, response.text
        return None

    def _give_up(self, what):
        self.stats["transients"] += 1
        logger.error(
            "[!] Request for %s failed - rate limit might be reached! Sleeping for %s seconds...",
            what,
            self.policy.cooldown,
        )
        self._sleep(self.policy.cooldown)
        return FetchResult.transient()

    def fetch_page(self, identifier):
        """Fetch the view page of ``identifier``; a found payload is the parsed document."""
        if self.page_cache is not None:
            cached = self.page_cache.get(identifier)
            if cached is not None:
                status, html = cached
                if status == FOUND:
                    self.stats["cache_hits"] += 1
                    return FetchResult.found(as_document(html))
                self.stats["negative_hits"] += 1
                return FetchResult.not_found()

        outcome = self._get(config.VIEW_PATH.format(id=identifier))
        if outcome is None:
            return self._give_up(f"id {identifier}")
        status, html = outcome
        if status == 404:
            self._cache_missing(identifier)
            return FetchResult.not_found()
        if status != 200:
            logger.warning("[!] Id %s: unexpected HTTP %s", identifier, status)
            return self._give_up(f"id {identifier}")

        document = as_document(html)
        if not has_submission(document):
            self._cache_missing(identifier)
            return FetchResult.not_found()
        if self.page_cache is not None:
            self.page_cache.put_found(identifier, html)
        return FetchResult.found(document)

    def _cache_missing(self, identifier):
        if self.page_cache is not None:
            self.page_cache.put_missing(identifier)

    def fetch_timestamp(self, identifier):
        result = self.fetch_page(identifier)
        if not result.is_found:
            return result
        return FetchResult.found(extract_timestamp(result.payload, identifier))

    def fetch_entry(self, identifier):
        result = self.fetch_page(identifier)
        if not result.is_found:
            return result
        entry = parse_submission_page(result.payload, identifier)
        if entry is None:
            return FetchResult.not_found()
        return FetchResult.found(entry)

    def fetch_latest_id(self):
        """Read the newest submission id off the front page."""
        outcome = self._get(config.FRONT_PAGE_PATH)
        if outcome is None:
            return self._give_up("the front page")
        status, html = outcome
        if status != 200:
            raise StructuralMismatch(f"Front page returned HTTP {status}")
        return FetchResult.found(parse_latest_id(html))

    def close(self):
        if self.page_cache is not None:
            self.page_cache.close()
        self.session.close()
