"""VaultIndex: the per-vault context that owns every indexing component.

One instance is created per running vault and passed wherever indexing
work happens; there is no module-level state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vaultindex.config import load_config
from vaultindex.db import AsyncConnection, create_schema, get_meta, open_db
from vaultindex.engine import FtsIndexEngine
from vaultindex.errors import SnapshotCorrupt
from vaultindex.extractor import ABSENT, DocumentExtractor
from vaultindex.history import SearchHistoryStore
from vaultindex.live_cache import LiveCache
from vaultindex.metadata import MarkdownMetadataProvider
from vaultindex.snapshot import (
    CACHE_INVALID_NOTICE,
    SnapshotStore,
    build_manifest,
    diff_manifest,
    is_unchanged,
)
from vaultindex.sync import ChangeSynchronizer, PathState
from vaultindex.vault import Vault

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from vaultindex.config import VaultConfig
    from vaultindex.documents import IndexedDocument, SearchResult
    from vaultindex.engine import IndexEngine
    from vaultindex.extractor import TextExtractorCapability
    from vaultindex.snapshot import Snapshot
    from vaultindex.sync import VaultEvent

logger = logging.getLogger(__name__)


@dataclass
class StartupResult:
    """Summary of how the index was brought up."""

    mode: str = "full"  # "snapshot" | "incremental" | "full"
    documents_indexed: int = 0
    documents_removed: int = 0
    failed: list[str] = field(default_factory=list)
    elapsed: float = 0.0


class VaultIndex:
    """Owns the live cache, index engine, snapshot and history stores."""

    def __init__(
        self,
        config: VaultConfig,
        *,
        text_extractor: TextExtractorCapability = ABSENT,
        engine: IndexEngine | None = None,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config
        self.vault = Vault(config)
        self.extractor = DocumentExtractor(
            self.vault, MarkdownMetadataProvider(self.vault), text_extractor
        )
        self.cache = LiveCache(self.extractor)
        self.engine: IndexEngine = engine or FtsIndexEngine(
            excerpt_tokens=config.excerpt_tokens
        )
        self._notify = notify
        conn = open_db(config.resolved_db_path)
        create_schema(conn)
        self._db = AsyncConnection(conn)
        self.snapshots = SnapshotStore(self._db, notify=notify)
        self.history = SearchHistoryStore(self._db)
        self.synchronizer = ChangeSynchronizer(
            self.vault, self.extractor, self.cache, self.engine
        )
        self.loaded = asyncio.Event()
        self._pending: list[VaultEvent] = []
        self.ready = asyncio.Event()

    @classmethod
    def open(cls, vault_root: Path, **kwargs: object) -> VaultIndex:
        """Load ``config.yml`` for *vault_root* and build a context."""
        return cls(load_config(vault_root), **kwargs)  # type: ignore[arg-type]

    async def close(self) -> None:
        close = getattr(self.engine, "close", None)
        if callable(close):
            close()
        self._db.close()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self, *, full: bool = False) -> StartupResult:
        """Restore the snapshot when it is still valid, otherwise (re)index.

        Fast path: the stored manifest checksum equals the live one and the
        restored index is trusted as is.  Otherwise only paths whose mtime
        differs are re-extracted; with no usable snapshot every file is.
        """
        started = time.perf_counter()
        live = await asyncio.to_thread(self.vault.mtimes)
        snapshot = None if full else await self.snapshots.load()
        if snapshot is not None and not self._restore(snapshot):
            snapshot = None

        if snapshot is None:
            self.engine.build([])
            self.cache.clear()
            self.synchronizer.indexed.clear()
            await self._mark_loaded()
            result = StartupResult(mode="full")
            await self._sweep(sorted(live), result)
        elif is_unchanged(snapshot.manifest, live):
            self.synchronizer.indexed.update(snapshot.mtimes())
            await self._mark_loaded()
            result = StartupResult(mode="snapshot")
            logger.info("Index snapshot from %s is up to date", snapshot.date)
        else:
            self.synchronizer.indexed.update(snapshot.mtimes())
            await self._mark_loaded()
            delta = diff_manifest(snapshot.manifest, live)
            result = StartupResult(mode="incremental")
            for path in delta.removed:
                await self.synchronizer.remove_path(path)
            result.documents_removed = len(delta.removed)
            await self._sweep(delta.added + delta.modified, result)

        result.elapsed = time.perf_counter() - started
        self.ready.set()
        logger.info(
            "Startup (%s): %d indexed, %d removed, %d failed in %.2fs",
            result.mode,
            result.documents_indexed,
            result.documents_removed,
            len(result.failed),
            result.elapsed,
        )
        return result

    def _restore(self, snapshot: Snapshot) -> bool:
        try:
            self.engine.deserialize(snapshot.data)
        except SnapshotCorrupt as exc:
            logger.error("Stored index is corrupt, rebuilding: %s", exc)
            if self._notify is not None:
                self._notify(CACHE_INVALID_NOTICE)
            return False
        return True

    async def _sweep(self, paths: Iterable[str], result: StartupResult) -> None:
        """Index *paths* in batches, yielding to queued events in between."""
        ordered = list(paths)
        size = self.config.batch_size
        for i in range(0, len(ordered), size):
            batch = ordered[i : i + size]
            states = await asyncio.gather(
                *(self.synchronizer.index_path(p) for p in batch)
            )
            for path, state in zip(batch, states):
                if state is PathState.LIVE:
                    result.documents_indexed += 1
                else:
                    result.failed.append(path)
            logger.debug("Indexed %d/%d", min(i + size, len(ordered)), len(ordered))
            await asyncio.sleep(0)

    async def _mark_loaded(self) -> None:
        """The engine has its base state: replay events buffered until now."""
        self.loaded.set()
        pending, self._pending = self._pending, []
        for event in pending:
            await self.synchronizer.dispatch(event)

    # ------------------------------------------------------------------
    # Live operation
    # ------------------------------------------------------------------

    async def handle(self, event: VaultEvent) -> PathState | None:
        """Apply *event*, or buffer it while the base index is being loaded."""
        if not self.loaded.is_set():
            self._pending.append(event)
            return None
        return await self.synchronizer.dispatch(event)

    async def search(self, query: str, *, limit: int | None = None) -> list[SearchResult]:
        """Ranked results for *query*; the query is recorded in history."""
        await self.history.record(query)
        return self.engine.search(query, limit=limit or self.config.search_limit)

    async def document(self, path: str) -> IndexedDocument | None:
        return await self.cache.get(path)

    async def meta(self, key: str) -> str | None:
        return await self._db.run(get_meta, key)

    async def save(self) -> Snapshot:
        """Persist the current index and its manifest."""
        manifest = build_manifest(self.synchronizer.indexed)
        return await self.snapshots.save(manifest, self.engine.serialize())
