"""
Pure parsers for catalog pages.

Every function accepts either raw HTML or an already parsed BeautifulSoup
document, so the fetch client can parse a page once and hand the document
around. Nothing here touches the network.
"""

import logging
import re
from datetime import datetime, timezone

from bs4 import BeautifulSoup

from .errors import StructuralMismatch
from .models import CatalogEntry

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"([A-Z][a-z]*) (\d{1,2})(st|nd|rd|th), (\d{4}) (\d{1,2}):(\d{1,2}) (AM|PM)")
FRONT_PAGE_ID_RE = re.compile(r"^sid-(\d+)$")

MONTHS = {
    "Jan": 1,
    "Feb": 2,
    "Mar": 3,
    "Apr": 4,
    "May": 5,
    "Jun": 6,
    "Jul": 7,
    "Aug": 8,
    "Sep": 9,
    "Oct": 10,
    "Nov": 11,
    "Dec": 12,
}

SUBMISSION_SELECTOR = "#page-submission"
DATE_SELECTOR = ".stats-container .popup_date"
STATS_SELECTOR = ".stats-container"
FRONT_PAGE_SELECTOR = "#gallery-frontpage-submissions figure"
TITLE_SELECTOR = ".classic-submission-title.information h2"
AUTHOR_SELECTOR = ".classic-submission-title.information a"
DESCRIPTION_SELECTOR = "table.maintable table.maintable tr:nth-child(2) td"
TAG_SELECTOR = "#keywords a"

# Media markers present on a view page, keyed by marker name
MEDIA_MARKERS = {
    "text": "#text-container",
    "audio": ".audio-player-container",
    "image": "img#submissionImg",
    "flash": "#flash_embed",
}

# Checked in order; the first rule whose markers are all present wins.
# Text and audio submissions also carry a thumbnail image, so they come first.
KIND_RULES = (
    ("text", frozenset({"text", "image"})),
    ("audio", frozenset({"audio", "image"})),
    ("flash", frozenset({"flash"})),
    ("image", frozenset({"image"})),
)

RATING_RULES = (
    ("general", 'img[src="/themes/classic/img/labels/general.gif"]'),
    ("mature", 'img[src="/themes/classic/img/labels/mature.gif"]'),
    ("adult", 'img[src="/themes/classic/img/labels/adult.gif"]'),
)

STATS_FIELDS = {
    "Category": "category",
    "Theme": "theme",
    "Species": "species",
    "Gender": "gender",
}


def as_document(raw):
    if isinstance(raw, BeautifulSoup):
        return raw
    return BeautifulSoup(raw or "", "html.parser")


def _select_text(doc, selector):
    return "".join(node.get_text() for node in doc.select(selector))


def parse_timestamp(raw):
    """Parse ``"Jan 1st, 2019 12:05 AM"`` into a UTC datetime, or None."""
    if not raw:
        return None
    match = DATE_RE.search(raw)
    if not match:
        return None
    month = MONTHS.get(match.group(1))
    if month is None:
        return None
    hour = int(match.group(5)) % 12
    if match.group(7) == "PM":
        hour += 12
    try:
        return datetime(
            int(match.group(4)),
            month,
            int(match.group(2)),
            hour,
            int(match.group(6)),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def has_submission(raw):
    """Return True if the view page holds a submission (False for gaps)."""
    return as_document(raw).select_one(SUBMISSION_SELECTOR) is not None


def extract_timestamp(raw, identifier=None):
    doc = as_document(raw)
    node = doc.select_one(DATE_SELECTOR)
    raw_date = node.get("title") if node is not None else None
    if not raw_date:
        raise StructuralMismatch("Unknown view page format", identifier)
    timestamp = parse_timestamp(raw_date)
    if timestamp is None:
        raise StructuralMismatch(f"Unknown date format: {raw_date!r}", identifier)
    return timestamp


def parse_latest_id(raw):
    """Return the newest submission id linked from the front page."""
    node = as_document(raw).select_one(FRONT_PAGE_SELECTOR)
    html_id = node.get("id") if node is not None else None
    match = FRONT_PAGE_ID_RE.match(html_id or "")
    if not match:
        raise StructuralMismatch("Unknown front page format")
    return int(match.group(1))


def detect_markers(raw):
    doc = as_document(raw)
    return frozenset(name for name, selector in MEDIA_MARKERS.items() if doc.select_one(selector) is not None)


def classify_kind(markers):
    for kind, required in KIND_RULES:
        if required <= markers:
            return kind
    return None


def classify_rating(raw):
    doc = as_document(raw)
    for rating, selector in RATING_RULES:
        if len(doc.select(selector)) == 1:
            return rating
    return None


def parse_stats(text):
    """Pick the known ``Key: value`` lines out of the stats container text."""
    stats = {}
    for line in (text or "").split("\n"):
        key, sep, value = line.strip().partition(": ")
        if not sep:
            continue
        field_name = STATS_FIELDS.get(key)
        if field_name:
            stats[field_name] = value.strip() or None
    return stats


def parse_submission_page(raw, identifier):
    """Build a CatalogEntry from a view page; None when the id has no submission."""
    doc = as_document(raw)
    if not has_submission(doc):
        return None

    timestamp = extract_timestamp(doc, identifier)

    kind = classify_kind(detect_markers(doc))
    if kind is None:
        logger.warning("[!] Id %s: no type rule matches (UI update?)", identifier)
    rating = classify_rating(doc)
    if rating is None:
        logger.warning("[!] Id %s: no rating rule matches (UI update?)", identifier)

    title = _select_text(doc, TITLE_SELECTOR).strip()
    author = _select_text(doc, AUTHOR_SELECTOR).strip()
    description = _select_text(doc, DESCRIPTION_SELECTOR).strip()
    tags = tuple(node.get_text().strip() for node in doc.select(TAG_SELECTOR))
    stats = parse_stats(_select_text(doc, STATS_SELECTOR))

    for label, value in (("Title", title), ("Author", author), ("Description", description)):
        if not value:
            logger.warning("[!] Id %s: %s not found (UI update?)", identifier, label)

    return CatalogEntry(
        id=identifier,
        timestamp=timestamp,
        title=title or None,
        author=author or None,
        description=description or None,
        kind=kind,
        rating=rating,
        tags=tuple(tag for tag in tags if tag),
        **stats,
    )
