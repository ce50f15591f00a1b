import os
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# HTTP identity and catalog endpoints
BASE_URL = "https://www.furaffinity.net"
FRONT_PAGE_PATH = "/"
VIEW_PATH = "/view/{id}/"
HEADERS = {"User-Agent": "OpenFurCorpus/1.0 (yearly statistics sampler)"}

# Session cookies; adult-rated submissions are hidden from anonymous sessions
FA_A_TOKEN = os.getenv("FA_A_TOKEN")
FA_B_TOKEN = os.getenv("FA_B_TOKEN")
COOKIE_DOMAIN = ".furaffinity.net"

# Fetch tuning knobs
REQUEST_TIMEOUT = 30  # Seconds per HTTP request
MIN_REQUEST_INTERVAL = 0.1  # Seconds between the start of consecutive requests
FETCH_MAX_ATTEMPTS = 3
FETCH_BACKOFF_BASE = 0.5
FETCH_BACKOFF_MAX = 60
TRANSIENT_COOLDOWN_SECONDS = 10  # Sleep after a fetch gives up, likely rate limited
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Page cache (view pages only, never the front page)
DATA_DIR = Path(os.getenv("CORPUS_DATA_DIR", "data"))
CACHE_DIR = DATA_DIR / "cache"
ENABLE_PAGE_CACHE = True
PAGE_CACHE_DB = CACHE_DIR / "view_pages.sqlite"
PAGE_CACHE_NEGATIVE_TTL_SECONDS = 3600

# Corpus store
CORPUS_DB = Path(os.getenv("CORPUS_DB", str(DATA_DIR / "corpus.sqlite")))

# Sampling
SAMPLING_FRACTION = 0.1  # Share of the identifier range width to collect per period

# Reporting
REPORT_RATINGS = ("all", "general", "mature", "adult")
REPORT_MIN_COUNT = 5  # Only counts strictly above this are ranked
REPORT_TOP_N = 200
LISTS_DIR = Path(__file__).resolve().parent / "lists"
NSFW_LIST_FILE = LISTS_DIR / "nsfw.json"
TYPES_LIST_FILE = LISTS_DIR / "types.json"
REPORT_FILE = Path("report.json")

# Run logging and telemetry
RUN_ID = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
LOG_DIR = Path("logs")
STATS_FILE = LOG_DIR / f"collector_stats_{RUN_ID}.jsonl"
STATS_FLUSH_EVERY = 500
