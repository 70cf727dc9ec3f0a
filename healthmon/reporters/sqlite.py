"""Persist every response to SQLite and track status-change incidents.

An incident opens when a check leaves PASS and closes when it returns to
PASS. The reporter produces no printable output.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ..core.response import Response
from ..core.status import Status

logger = logging.getLogger(__name__)


class ResultStore:
    """SQLite-backed storage for check results + incidents."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
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
            CREATE TABLE IF NOT EXISTS results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                server_id TEXT NOT NULL,
                response_id TEXT NOT NULL,
                status TEXT NOT NULL,
                message TEXT,
                metrics TEXT,
                timestamp TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_results_response
                ON results (server_id, response_id, timestamp DESC);

            CREATE TABLE IF NOT EXISTS incidents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                server_id TEXT NOT NULL,
                response_id TEXT NOT NULL,
                started_at TEXT NOT NULL,
                ended_at TEXT,
                from_status TEXT NOT NULL,
                to_status TEXT NOT NULL,
                message TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_incidents_response
                ON incidents (server_id, started_at DESC);
        """)
        conn.commit()

    def store(self, server_id: str, response: Response) -> None:
        """Insert a response and open/close incidents on PASS transitions."""
        timestamp = response.date.isoformat()
        metrics = [m.model_dump(by_alias=True, exclude_none=True) for m in response.metrics]

        with self._lock:
            conn = self._get_conn()
            prev_row = conn.execute(
                "SELECT status FROM results "
                "WHERE server_id = ? AND response_id = ? "
                "ORDER BY id DESC LIMIT 1",
                (server_id, response.id),
            ).fetchone()
            prev_status = prev_row["status"] if prev_row else None

            conn.execute(
                "INSERT INTO results (server_id, response_id, status, message, metrics, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (server_id, response.id, response.status.value, response.message,
                 json.dumps(metrics) if metrics else None, timestamp),
            )

            if prev_status and prev_status != response.status.value:
                if prev_status == Status.PASS.value:
                    conn.execute(
                        "INSERT INTO incidents (server_id, response_id, started_at, from_status, to_status, message) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        (server_id, response.id, timestamp, prev_status,
                         response.status.value, response.message),
                    )
                elif response.status == Status.PASS:
                    conn.execute(
                        "UPDATE incidents SET ended_at = ? "
                        "WHERE server_id = ? AND response_id = ? AND ended_at IS NULL",
                        (timestamp, server_id, response.id),
                    )
            conn.commit()

    def get_latest(self, server_id: str, response_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM results WHERE server_id = ? AND response_id = ? "
                "ORDER BY id DESC LIMIT 1",
                (server_id, response_id),
            ).fetchone()
        return dict(row) if row else None

    def get_incidents(self, server_id: str, open_only: bool = False, limit: int = 50) -> list[dict[str, Any]]:
        query = "SELECT * FROM incidents WHERE server_id = ?"
        if open_only:
            query += " AND ended_at IS NULL"
        query += " ORDER BY id DESC LIMIT ?"
        with self._lock:
            rows = self._get_conn().execute(query, (server_id, limit)).fetchall()
        return [dict(r) for r in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None


def config(ctx):
    return ctx.Schema({
        "path": {"type": str, "default": "data/results.db", "help": "SQLite database file"},
    })


def init(ctx):
    ctx.state["store"] = ResultStore(ctx.options["path"])
    logger.debug("Storing results in %s", ctx.options["path"])


def run(ctx):
    store: ResultStore = ctx.state["store"]
    for response in ctx.responses:
        store.store(ctx.engine.server_id, response)


def shutdown(ctx):
    store = ctx.state.pop("store", None)
    if store is not None:
        store.close()
