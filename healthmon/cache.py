"""SQLite-backed key/value cache for plugins.

Plugins reach it through ``ctx.cache``. Values are stored as JSON with an
optional expiry; expired keys read as missing and are purged by
``cleanup_expired()``. Also hosts the throttle and snapshot helpers built on
top of it.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_MISSING = object()


class Cache:
    """Tiny persistent cache shared by the plugins of one engine."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        # Plain plugin functions run in a thread pool
        self._lock = threading.Lock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                created TEXT NOT NULL,
                expires TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache (expires);
        """)
        conn.commit()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if missing or expired."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT value, expires FROM cache WHERE key = ?", (key,),
            ).fetchone()
        if row is None or _expired(row["expires"]):
            return default
        return json.loads(row["value"])

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: str, value: Any, expires: datetime | timedelta | None = None) -> Any:
        """Store ``value`` (JSON-serialisable); ``expires`` is absolute or relative."""
        now = datetime.now(timezone.utc)
        if isinstance(expires, timedelta):
            expires = now + expires
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR REPLACE INTO cache (key, value, created, expires) VALUES (?, ?, ?, ?)",
                (key, json.dumps(value), now.isoformat(), expires.isoformat() if expires else None),
            )
            conn.commit()
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute("DELETE FROM cache WHERE key = ?", (key,))
            conn.commit()

    def cleanup_expired(self) -> int:
        """Remove expired entries, returning how many were dropped."""
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                "DELETE FROM cache WHERE expires IS NOT NULL AND expires < ?", (now,),
            )
            conn.commit()
        if cursor.rowcount:
            logger.debug("Cache cleanup removed %d entries", cursor.rowcount)
        return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None


def _expired(expires: str | None) -> bool:
    if not expires:
        return False
    return datetime.fromisoformat(expires) <= datetime.now(timezone.utc)


# ── Throttles ────────────────────────────────────────────────────────────────


def is_throttled(cache: Cache, key: str) -> datetime | None:
    """Return the expiry of an active throttle named ``key``, else None."""
    record = cache.get(f"throttle-{key}")
    if not record:
        return None
    return datetime.fromisoformat(record["expires"])


def create_throttle(cache: Cache, key: str, seconds: float = 0) -> datetime:
    """Start a throttle that stays active for ``seconds``."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(seconds=seconds)
    cache.set(f"throttle-{key}", {
        "pid": os.getpid(),
        "key": key,
        "created": now.isoformat(),
        "seconds": seconds,
        "expires": expires.isoformat(),
    }, expires=expires)
    return expires


# ── Snapshots ────────────────────────────────────────────────────────────────


def snapshot_since_last(cache: Cache, key: str, value: float) -> float | None:
    """Record ``value`` and return the change since the previous sample.

    Useful for counters that only expose running totals. Returns None on the
    first sample.
    """
    cache_key = f"{key}-snapshot"
    previous = cache.get(cache_key)
    cache.set(cache_key, {
        "type": "data-snapshot",
        "date": datetime.now(timezone.utc).isoformat(),
        "value": value,
    })
    if previous is None:
        return None
    return value - previous["value"]
