import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import zstandard as zstd

from .models import parse_timestamp_iso

FOUND = 1
MISSING = 0


def _utc_now_iso():
    return datetime.now(timezone.utc).isoformat()


class SQLitePageCache:
    """SQLite-backed cache of view pages keyed by submission id.

    Found pages are stored zstd-compressed and never expire. Gaps are stored
    as negative rows and honoured only for ``negative_ttl`` seconds, since an
    id can be missing because of a hiccup rather than a deletion.
    """

    def __init__(self, db_path, negative_ttl=3600):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.negative_ttl = negative_ttl
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False

    def _get_conn(self):
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA busy_timeout=5000")
            self._local.conn = conn
        if not self._initialized:
            with self._init_lock:
                if not self._initialized:
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS pages (
                            id INTEGER PRIMARY KEY,
                            status INTEGER,
                            payload BLOB,
                            ts TEXT
                        )
                        """
                    )
                    conn.commit()
                    self._initialized = True
        return conn

    def _negative_valid(self, ts):
        if not ts or self.negative_ttl <= 0:
            return False
        try:
            cached_dt = parse_timestamp_iso(ts)
        except ValueError:
            return False
        return datetime.now(timezone.utc) - cached_dt <= timedelta(seconds=self.negative_ttl)

    def get(self, identifier):
        """Return ``(FOUND, html)``, ``(MISSING, None)`` or None on a miss."""
        conn = self._get_conn()
        row = conn.execute("SELECT status, payload, ts FROM pages WHERE id = ?", (identifier,)).fetchone()
        if row is None:
            return None
        status, payload, ts = row
        if status == FOUND and payload:
            try:
                html = zstd.ZstdDecompressor().decompress(payload).decode("utf-8")
            except zstd.ZstdError:
                self.delete(identifier)
                return None
            return FOUND, html
        if status == MISSING and self._negative_valid(ts):
            return MISSING, None
        self.delete(identifier)
        return None

    def put_found(self, identifier, html):
        payload = zstd.ZstdCompressor().compress(html.encode("utf-8"))
        self._put(identifier, FOUND, payload)

    def put_missing(self, identifier):
        self._put(identifier, MISSING, None)

    def _put(self, identifier, status, payload):
        conn = self._get_conn()
        conn.execute("BEGIN")
        conn.execute(
            """
            INSERT INTO pages (id, status, payload, ts)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status=excluded.status,
                payload=excluded.payload,
                ts=excluded.ts
            """,
            (identifier, status, payload, _utc_now_iso()),
        )
        conn.commit()

    def delete(self, identifier):
        conn = self._get_conn()
        conn.execute("BEGIN")
        conn.execute("DELETE FROM pages WHERE id = ?", (identifier,))
        conn.commit()

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            del self._local.conn
