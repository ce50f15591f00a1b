import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from .models import CatalogEntry, IdentifierRange, format_timestamp, period_bounds


def _utc_now_iso():
    return datetime.now(timezone.utc).isoformat()


class SQLiteCorpusStore:
    """SQLite-backed corpus of sampled entries plus the resolved range of each period."""

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
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
                        CREATE TABLE IF NOT EXISTS entries (
                            id INTEGER PRIMARY KEY,
                            ts TEXT NOT NULL,
                            payload TEXT NOT NULL,
                            collected_at TEXT
                        )
                        """
                    )
                    conn.execute("CREATE INDEX IF NOT EXISTS entries_ts ON entries (ts)")
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS ranges (
                            period_key INTEGER PRIMARY KEY,
                            first_id INTEGER NOT NULL,
                            last_id INTEGER NOT NULL,
                            first_exact INTEGER NOT NULL,
                            last_exact INTEGER NOT NULL,
                            resolved_at TEXT
                        )
                        """
                    )
                    conn.commit()
                    self._initialized = True
        return conn

    def exists_by_id(self, identifier):
        conn = self._get_conn()
        row = conn.execute("SELECT 1 FROM entries WHERE id = ?", (identifier,)).fetchone()
        return row is not None

    def insert(self, entry):
        """Persist an entry; returns False if the id is already stored."""
        conn = self._get_conn()
        record = entry.to_record()
        conn.execute("BEGIN")
        cursor = conn.execute(
            "INSERT OR IGNORE INTO entries (id, ts, payload, collected_at) VALUES (?, ?, ?, ?)",
            (entry.id, record["timestamp"], json.dumps(record, ensure_ascii=True), _utc_now_iso()),
        )
        conn.commit()
        return cursor.rowcount == 1

    def count_in_period(self, period_key):
        start, end = period_bounds(period_key)
        conn = self._get_conn()
        row = conn.execute(
            "SELECT COUNT(*) FROM entries WHERE ts >= ? AND ts <= ?",
            (format_timestamp(start), format_timestamp(end)),
        ).fetchone()
        return row[0]

    def iter_period(self, period_key):
        """Yield the period's entries ordered by id."""
        start, end = period_bounds(period_key)
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT payload FROM entries WHERE ts >= ? AND ts <= ? ORDER BY id",
            (format_timestamp(start), format_timestamp(end)),
        )
        for (payload,) in cursor:
            yield CatalogEntry.from_record(json.loads(payload))

    def get_range(self, period_key):
        conn = self._get_conn()
        row = conn.execute(
            "SELECT first_id, last_id, first_exact, last_exact FROM ranges WHERE period_key = ?",
            (period_key,),
        ).fetchone()
        if row is None:
            return None
        first_id, last_id, first_exact, last_exact = row
        return IdentifierRange(period_key, first_id, last_id, bool(first_exact), bool(last_exact))

    def put_range(self, id_range):
        """Store a period's range once; an existing range is never overwritten."""
        conn = self._get_conn()
        conn.execute("BEGIN")
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO ranges (period_key, first_id, last_id, first_exact, last_exact, resolved_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                id_range.period_key,
                id_range.first_id,
                id_range.last_id,
                int(id_range.first_exact),
                int(id_range.last_exact),
                _utc_now_iso(),
            ),
        )
        conn.commit()
        return cursor.rowcount == 1

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            del self._local.conn
