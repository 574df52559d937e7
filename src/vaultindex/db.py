"""SQLite persistence layer: connection management, schema, meta helpers."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

T = TypeVar("T")

# Bump on breaking schema changes
SCHEMA_VERSION = "1"

_SCHEMA_SQL = """\
-- Serialized index plus the manifest it was built from (single row)
CREATE TABLE IF NOT EXISTS index_snapshot (
    id       INTEGER PRIMARY KEY CHECK(id = 1),
    date     TEXT NOT NULL,
    manifest TEXT NOT NULL DEFAULT '[]',
    data     BLOB NOT NULL
);

-- Recent queries, newest last
CREATE TABLE IF NOT EXISTS search_history (
    position INTEGER PRIMARY KEY AUTOINCREMENT,
    query    TEXT NOT NULL
);

-- Store metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the store database with proper PRAGMAs.

    Sets WAL journal mode (persistent per-file).  The connection may be
    used from worker threads; callers serialize access themselves.

    Returns a connection with ``sqlite3.Row`` row factory.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables if they don't exist.

    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn.executescript(_SCHEMA_SQL)
    set_meta(conn, "schema_version", SCHEMA_VERSION)


def get_meta(conn: sqlite3.Connection, key: str) -> str | None:
    """Value of *key* in the ``meta`` table (``schema_version``, ``last_snapshot_at``)."""
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
    return None if row is None else str(row[0])


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Insert or update a key in the ``meta`` table."""
    conn.execute(
        "INSERT INTO meta (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )
    conn.commit()


class AsyncConnection:
    """Runs blocking calls on one connection in a worker thread, one at a time."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._lock = asyncio.Lock()

    async def run(self, func: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(func, self.conn, *args)

    def close(self) -> None:
        self.conn.close()
