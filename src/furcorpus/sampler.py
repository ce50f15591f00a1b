import logging
import secrets
import sys

from tqdm import tqdm

logger = logging.getLogger(__name__)


class CorpusSampler:
    """Draws random identifiers from a range until enough entries are persisted.

    Draws are not tracked in memory: an id already in the store is simply
    skipped, which keeps a run resumable from whatever the store holds.
    """

    def __init__(self, client, store, rng=None, draw_log=None):
        self.client = client
        self.store = store
        # OS entropy, so draws never correlate with earlier runs
        self.rng = rng if rng is not None else secrets.SystemRandom()
        self.draw_log = draw_log
        self.stats = {"draws": 0, "duplicates": 0, "gaps": 0, "transients": 0, "persisted": 0}

    def _log_draw(self, period_key, identifier, outcome):
        if self.draw_log is not None:
            self.draw_log.record(period_key, identifier, outcome)

    def sample_to_target(self, id_range, target_fraction, current_count, persist=None):
        """Persist new entries from ``id_range`` until the period holds its target count.

        Returns the count reached. A gap, an already stored id or a transient
        fetch failure just costs a draw; structural errors propagate.
        """
        if not 0 < target_fraction < 1:
            raise ValueError(f"target_fraction must be in (0, 1), got {target_fraction}")
        if persist is None:
            persist = self.store.insert

        target = id_range.target_count(target_fraction)
        count = current_count
        logger.info("[*] Current entries: %s - Target: %s", count, target)
        if count >= target:
            return count

        progress = tqdm(
            total=target,
            initial=count,
            desc=f"Sampling {id_range.period_key}",
            unit="entry",
            disable=not sys.stderr.isatty(),
        )
        try:
            while count < target:
                candidate = self.rng.randint(id_range.first_id, id_range.last_id)
                self.stats["draws"] += 1
                if self.store.exists_by_id(candidate):
                    self.stats["duplicates"] += 1
                    self._log_draw(id_range.period_key, candidate, "duplicate")
                    continue

                result = self.client.fetch_entry(candidate)
                if result.is_transient:
                    self.stats["transients"] += 1
                    self._log_draw(id_range.period_key, candidate, "transient")
                    continue
                if result.is_not_found:
                    self.stats["gaps"] += 1
                    self._log_draw(id_range.period_key, candidate, "gap")
                    continue

                entry = result.payload
                if not persist(entry):
                    self.stats["duplicates"] += 1
                    self._log_draw(id_range.period_key, candidate, "duplicate")
                    continue
                count += 1
                self.stats["persisted"] += 1
                self._log_draw(id_range.period_key, candidate, "persisted")
                progress.update(1)
                logger.info(
                    "[+] Downloaded metadata (%s/%s): id=%s date=%s",
                    count,
                    target,
                    entry.id,
                    entry.timestamp.isoformat(),
                )
        finally:
            progress.close()
        return count
