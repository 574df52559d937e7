"""Search history: the ten most recent distinct queries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import sqlite3

    from vaultindex.db import AsyncConnection

logger = logging.getLogger(__name__)

MAX_HISTORY = 10


def _read_queries(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT query FROM search_history ORDER BY position").fetchall()
    return [r["query"] for r in rows]


def _rewrite(conn: sqlite3.Connection, oldest_first: list[str]) -> None:
    with conn:
        conn.execute("DELETE FROM search_history")
        conn.executemany(
            "INSERT INTO search_history (query) VALUES (?)",
            [(q,) for q in oldest_first],
        )


class SearchHistoryStore:
    """Bounded, deduplicated, most-recent-first query history.

    Rows are stored oldest first; the whole list is rewritten on every
    record so order and cap change together.
    """

    def __init__(self, db: AsyncConnection, *, limit: int = MAX_HISTORY) -> None:
        self._db = db
        self._limit = limit
        self.pending_empty_query = False

    async def record(self, query: str) -> None:
        if not query:
            self.pending_empty_query = True
            return
        self.pending_empty_query = False

        def _update(conn: sqlite3.Connection) -> None:
            newest_first = [q for q in reversed(_read_queries(conn)) if q != query]
            newest_first.insert(0, query)
            _rewrite(conn, list(reversed(newest_first[: self._limit])))

        await self._db.run(_update)
        logger.debug("Recorded query %r", query)

    async def history(self) -> list[str]:
        """Past queries, newest first; ``""`` leads if the last query was empty."""
        queries = list(reversed(await self._db.run(_read_queries)))
        if self.pending_empty_query:
            queries.insert(0, "")
        return queries

    async def clear(self) -> None:
        self.pending_empty_query = False
        await self._db.run(_rewrite, [])
