#!/usr/bin/env python3
"""
collector.py - OpenFur corpus collector

Builds a random sample of one year's submissions:
  1. Load the year's identifier range from the store, or resolve it against
     the catalog (binary search over ids) and store it.
  2. Draw random ids inside the range and persist every new submission until
     the store holds SAMPLING_FRACTION * range width entries for the year.

Re-running continues where the last run stopped; progress lives in the store.
"""

import argparse
import json
import logging
import sys
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from furcorpus import __version__, config
from furcorpus.client import CatalogClient
from furcorpus.errors import CorpusError
from furcorpus.resolver import RangeResolver
from furcorpus.sampler import CorpusSampler
from furcorpus.store import SQLiteCorpusStore

logger = logging.getLogger(__name__)


class DrawLog:
    """JSONL trail of sampler draws, one line per drawn id.

    Each line carries the run, the period, the draw's sequence number within
    the run, the id and its outcome (persisted, duplicate, gap, transient).
    Lines are buffered and appended every ``flush_every`` draws.
    """

    def __init__(self, path, run_id=config.RUN_ID, flush_every=config.STATS_FLUSH_EVERY):
        self.path = Path(path)
        self.run_id = run_id
        self.flush_every = max(1, flush_every)
        self.outcomes = Counter()
        self._pending = []

    @property
    def draws(self):
        return sum(self.outcomes.values())

    def record(self, period_key, identifier, outcome):
        self.outcomes[outcome] += 1
        self._pending.append(
            {
                "run_id": self.run_id,
                "period": period_key,
                "draw": self.draws,
                "id": identifier,
                "outcome": outcome,
            }
        )
        if len(self._pending) >= self.flush_every:
            self.flush()

    def flush(self):
        if not self._pending:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            for line in self._pending:
                fh.write(json.dumps(line, ensure_ascii=True) + "\n")
        self._pending.clear()

    def yield_rate(self):
        """Share of draws that ended in a persisted entry."""
        if not self.draws:
            return 0.0
        return self.outcomes["persisted"] / self.draws


def load_or_resolve_range(store, resolver, period_key):
    """Return the stored range for the period, resolving and storing it on first use."""
    id_range = store.get_range(period_key)
    if id_range is not None:
        logger.info("[*] Using stored range for %s: %s-%s", period_key, id_range.first_id, id_range.last_id)
        return id_range

    logger.info("[*] No range information in database (first run?)")
    id_range = resolver.resolve_period(period_key)
    if not id_range.exact:
        logger.warning(
            "[!] Range for %s is approximate (first exact=%s, last exact=%s)",
            period_key,
            id_range.first_exact,
            id_range.last_exact,
        )
    store.put_range(id_range)
    return id_range


def format_client_stats(stats):
    """One-line summary of the fetch client's counters."""
    status_counts = stats.get("http_status_counts", {})
    return (
        f"cache hits {stats.get('cache_hits', 0)}, "
        f"negative hits {stats.get('negative_hits', 0)}, "
        f"network calls {stats.get('network_calls', 0)}, "
        f"network errors {stats.get('network_errors', 0)}, "
        f"gave up {stats.get('transients', 0)}, "
        f"HTTP 200={status_counts.get(200, 0)} "
        f"404={status_counts.get(404, 0)} "
        f"429={status_counts.get(429, 0)} "
        f"other={status_counts.get('other', 0)}"
    )


def run_collection(store, client, period_key, fraction=config.SAMPLING_FRACTION, rng=None, draw_log=None):
    """Resolve the period's range if needed and sample it up to target; returns the count reached."""
    id_range = load_or_resolve_range(store, RangeResolver(client), period_key)
    current = store.count_in_period(period_key)
    sampler = CorpusSampler(client, store, rng=rng, draw_log=draw_log)
    try:
        count = sampler.sample_to_target(id_range, fraction, current)
    finally:
        if draw_log is not None:
            draw_log.flush()
    logger.info(
        "[*] Draws: %s, duplicates: %s, gaps: %s, transient failures: %s",
        sampler.stats["draws"],
        sampler.stats["duplicates"],
        sampler.stats["gaps"],
        sampler.stats["transients"],
    )
    if draw_log is not None:
        logger.info("[*] Draw yield this run: %.2f%%", 100 * draw_log.yield_rate())
    logger.info("[*] Fetch stats: %s", format_client_stats(client.stats))
    return count


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Collect a random sample of one year's catalog submissions.")
    parser.add_argument(
        "--year",
        type=int,
        default=datetime.now(UTC).year - 1,
        help="Calendar year to sample (defaults to the previous year).",
    )
    parser.add_argument(
        "--fraction",
        type=float,
        default=config.SAMPLING_FRACTION,
        help="Share of the year's identifier range width to collect.",
    )
    parser.add_argument("--db", type=Path, default=config.CORPUS_DB, help="Path to the corpus SQLite database.")
    parser.add_argument(
        "--no-page-cache",
        action="store_true",
        help="Do not cache fetched view pages on disk.",
    )
    parser.add_argument(
        "--min-interval",
        type=float,
        default=config.MIN_REQUEST_INTERVAL,
        help="Minimum seconds between the start of consecutive requests.",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help=f"Write per-draw diagnostics to {config.STATS_FILE}.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("OpenFur Data Collector v%s", __version__)
    if not config.FA_A_TOKEN or not config.FA_B_TOKEN:
        logger.warning("[!] FA token(s) missing! Adult content will not be collected")

    store = SQLiteCorpusStore(args.db)
    client = CatalogClient.from_config(enable_cache=not args.no_page_cache, min_interval=args.min_interval)
    draw_log = DrawLog(config.STATS_FILE) if args.stats else None
    logger.info("[*] Downloading data for year: %s", args.year)
    try:
        count = run_collection(store, client, args.year, fraction=args.fraction, draw_log=draw_log)
    except (CorpusError, ValueError) as exc:
        logger.error("[!] Collection aborted: %s", exc)
        return 1
    finally:
        client.close()
        store.close()
    logger.info("[+] Download complete :) %s entries stored for %s", count, args.year)
    return 0


if __name__ == "__main__":
    sys.exit(main())
