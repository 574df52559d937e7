"""Tests for vaultindex.history: bounded, deduplicated search history."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from vaultindex.history import MAX_HISTORY, SearchHistoryStore

if TYPE_CHECKING:
    from vaultindex.db import AsyncConnection


class TestSearchHistoryStore:
    @pytest.mark.asyncio()
    async def test_cap_dedupe_and_order(self, db: AsyncConnection) -> None:
        store = SearchHistoryStore(db)
        for query in ["a", "b", "a", "c", "d", "e", "f", "g", "h", "i", "j"]:
            await store.record(query)

        history = await store.history()

        assert len(history) == MAX_HISTORY
        assert history == ["j", "i", "h", "g", "f", "e", "d", "c", "a", "b"]
        assert history.count("a") == 1

    @pytest.mark.asyncio()
    async def test_oldest_evicted(self, db: AsyncConnection) -> None:
        store = SearchHistoryStore(db)
        for i in range(12):
            await store.record(f"q{i}")
        history = await store.history()
        assert history[0] == "q11"
        assert history[-1] == "q2"

    @pytest.mark.asyncio()
    async def test_repeat_moves_to_front(self, db: AsyncConnection) -> None:
        store = SearchHistoryStore(db)
        for query in ["x", "y", "z", "x"]:
            await store.record(query)
        assert await store.history() == ["x", "z", "y"]

    @pytest.mark.asyncio()
    async def test_empty_query_flag(self, db: AsyncConnection) -> None:
        store = SearchHistoryStore(db)
        await store.record("first")
        await store.record("")

        assert await store.history() == ["", "first"]
        rows = db.conn.execute("SELECT count(*) FROM search_history").fetchone()[0]
        assert rows == 1

        await store.record("second")
        assert await store.history() == ["second", "first"]

    @pytest.mark.asyncio()
    async def test_persisted_across_instances(self, db: AsyncConnection) -> None:
        await SearchHistoryStore(db).record("kept")
        assert await SearchHistoryStore(db).history() == ["kept"]

    @pytest.mark.asyncio()
    async def test_clear(self, db: AsyncConnection) -> None:
        store = SearchHistoryStore(db)
        await store.record("a")
        await store.record("")
        await store.clear()
        assert await store.history() == []
