#!/usr/bin/env python3
"""
reporter.py - OpenFur corpus report

Reads:
  - the corpus database filled by collector.py (one year of sampled entries)
  - lists/nsfw.json   {"tags": [...], "themes": [...]}
  - lists/types.json  {"<type>": {"tags": [...], "themes": [...]}, ...}

Writes:
  - report.json: per rating bucket totals, NSFW totals, top tags and themes,
    and NSFW content type totals over all entries.
"""

import argparse
import json
import logging
import re
import sys
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from furcorpus import __version__, config
from furcorpus.models import CatalogEntry
from furcorpus.store import SQLiteCorpusStore

logger = logging.getLogger(__name__)

TOKEN_SPLIT_RE = re.compile(r"[^\w]+")


def tokenize(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [token for token in TOKEN_SPLIT_RE.split(text.lower()) if token]


def load_list(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def normalized_terms(entry: CatalogEntry) -> set:
    """Lower-cased tags plus the word tokens of title and description."""
    terms = {tag.lower() for tag in entry.tags}
    terms.update(tokenize(entry.title))
    terms.update(tokenize(entry.description))
    return terms


def normalized_theme(entry: CatalogEntry) -> Optional[str]:
    return entry.theme.lower() if entry.theme else None


def possibly_nsfw(entry: CatalogEntry, nsfw_list: Dict[str, Any]) -> bool:
    if entry.rating == "adult":
        return True
    terms = normalized_terms(entry)
    if any(tag.lower() in terms for tag in nsfw_list.get("tags", [])):
        return True
    theme = normalized_theme(entry)
    return theme is not None and theme in {t.lower() for t in nsfw_list.get("themes", [])}


def nsfw_types(entry: CatalogEntry, types_list: Dict[str, Any]) -> List[str]:
    """Content types an entry matches, by tag/token first and theme second."""
    terms = normalized_terms(entry)
    theme = normalized_theme(entry)
    matched = []
    for type_name, keywords in types_list.items():
        if any(tag.lower() in terms for tag in keywords.get("tags", [])):
            matched.append(type_name)
        elif theme is not None and theme in {t.lower() for t in keywords.get("themes", [])}:
            matched.append(type_name)
    return matched


def rank(counter: Counter, key: str, min_count: int, top_n: Optional[int]) -> List[Dict[str, Any]]:
    """Counts above ``min_count``, highest first, ties in first-seen order."""
    ranked = [{"total": total, key: name} for name, total in counter.items() if total > min_count]
    ranked.sort(key=lambda item: item["total"], reverse=True)
    return ranked if top_n is None else ranked[:top_n]


def build_report(
    entries: Iterable[CatalogEntry],
    nsfw_list: Dict[str, Any],
    types_list: Dict[str, Any],
    min_count: int = config.REPORT_MIN_COUNT,
    top_n: int = config.REPORT_TOP_N,
) -> Dict[str, Any]:
    report = {rating: {"total": 0, "nsfwTotal": 0} for rating in config.REPORT_RATINGS}
    tag_totals = {rating: Counter() for rating in config.REPORT_RATINGS}
    theme_totals = {rating: Counter() for rating in config.REPORT_RATINGS}
    type_totals: Counter = Counter()

    for entry in entries:
        buckets = ["all"]
        if entry.rating in report and entry.rating != "all":
            buckets.append(entry.rating)
        nsfw = possibly_nsfw(entry, nsfw_list)
        theme = normalized_theme(entry)
        for bucket in buckets:
            report[bucket]["total"] += 1
            if nsfw:
                report[bucket]["nsfwTotal"] += 1
            tag_totals[bucket].update(tag.lower() for tag in entry.tags)
            if theme:
                theme_totals[bucket][theme] += 1
        if nsfw:
            type_totals.update(nsfw_types(entry, types_list))

    for rating in config.REPORT_RATINGS:
        report[rating]["topTags"] = rank(tag_totals[rating], "tag", min_count, top_n)
        report[rating]["topThemes"] = rank(theme_totals[rating], "theme", min_count, top_n)
    report["all"]["nsfwTypes"] = rank(type_totals, "nsfwType", 0, None)
    return report


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Aggregate a collected year into report.json.")
    parser.add_argument("--year", type=int, default=datetime.now(UTC).year - 1, help="Calendar year to report on.")
    parser.add_argument("--db", type=Path, default=config.CORPUS_DB, help="Path to the corpus SQLite database.")
    parser.add_argument("--nsfw-list", type=Path, default=config.NSFW_LIST_FILE)
    parser.add_argument("--types-list", type=Path, default=config.TYPES_LIST_FILE)
    parser.add_argument("--out", type=Path, default=config.REPORT_FILE, help="Report output path.")
    parser.add_argument("--min-count", type=int, default=config.REPORT_MIN_COUNT)
    parser.add_argument("--top", type=int, default=config.REPORT_TOP_N)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("OpenFur Data Analyzer v%s", __version__)
    logger.info("[*] Analyzing dataset for year: %s", args.year)

    store = SQLiteCorpusStore(args.db)
    try:
        if store.get_range(args.year) is None:
            logger.error("[!] No range information in database. This should be set by the collector tool")
            return 1
        total = store.count_in_period(args.year)
        logger.info("[*] Total number of entries to process: %s", total)
        report = build_report(
            store.iter_period(args.year),
            load_list(args.nsfw_list),
            load_list(args.types_list),
            min_count=args.min_count,
            top_n=args.top,
        )
    finally:
        store.close()

    args.out.parent.mkdir(parents=True, exist_ok=True)
    with open(args.out, "w", encoding="utf-8") as out:
        json.dump(report, out, indent=2)
    logger.info("[+] Report written to %s", args.out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
