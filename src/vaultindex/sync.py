"""Change synchronizer: apply vault events to the live cache and index engine.

Each path is ``absent``, ``live`` or ``ghost``.  Work on one path is
serialized with a per-path lock; different paths proceed concurrently.
An update is always remove-then-reinsert, and a failed reinsert restores
the previous document.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential

from vaultindex.documents import make_ghost, path_basename, remove_diacritics
from vaultindex.errors import DOCUMENT_ERRORS

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from vaultindex.documents import IndexedDocument
    from vaultindex.engine import IndexEngine
    from vaultindex.extractor import DocumentExtractor
    from vaultindex.live_cache import LiveCache
    from vaultindex.vault import Vault

logger = logging.getLogger(__name__)

REINSERT_ATTEMPTS = 3


class PathState(str, Enum):
    ABSENT = "absent"
    LIVE = "live"
    GHOST = "ghost"


class EventKind(str, Enum):
    CREATE = "create"
    DELETE = "delete"
    MODIFY = "modify"
    RENAME = "rename"


@dataclass(frozen=True)
class VaultEvent:
    """A file lifecycle notification; ``old_path`` is set for renames only."""

    kind: EventKind
    path: str
    old_path: str | None = None


class PathLocks:
    """Lazily created ``asyncio.Lock`` per path, dropped once unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, *paths: str) -> AsyncIterator[None]:
        # Sorted acquisition keeps two-path holds (renames) deadlock free.
        ordered = sorted(set(paths))
        for path in ordered:
            self._holders[path] = self._holders.get(path, 0) + 1
            self._locks.setdefault(path, asyncio.Lock())
        acquired: list[asyncio.Lock] = []
        try:
            for path in ordered:
                lock = self._locks[path]
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for path in ordered:
                self._holders[path] -= 1
                if self._holders[path] == 0:
                    del self._holders[path]
                    del self._locks[path]


class ChangeSynchronizer:
    """Drives :class:`LiveCache` and :class:`IndexEngine` from vault events."""

    def __init__(
        self,
        vault: Vault,
        extractor: DocumentExtractor,
        cache: LiveCache,
        engine: IndexEngine,
    ) -> None:
        self._vault = vault
        self._config = vault.config
        self._extractor = extractor
        self._cache = cache
        self._engine = engine
        self.locks = PathLocks()
        # Manifest of indexed real documents: path -> mtime.
        self.indexed: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def dispatch(self, event: VaultEvent) -> PathState:
        if event.kind is EventKind.CREATE:
            return await self.create(event.path)
        if event.kind is EventKind.DELETE:
            return await self.delete(event.path)
        if event.kind is EventKind.MODIFY:
            return await self.modify(event.path)
        if event.old_path is None:
            msg = f"rename event for {event.path} has no old path"
            raise ValueError(msg)
        return await self.rename(event.old_path, event.path)

    async def create(self, path: str) -> PathState:
        """``absent|ghost -> live``."""
        async with self.locks.hold(path):
            return await self._index(path)

    async def modify(self, path: str) -> PathState:
        """``live -> live``, replacing the whole document."""
        async with self.locks.hold(path):
            return await self._index(path)

    async def delete(self, path: str) -> PathState:
        """``live -> ghost``: the basename stays searchable as a placeholder."""
        async with self.locks.hold(path):
            self._drop(path)
            ghost = make_ghost(path_basename(path))
            existing = self._engine.get(ghost.id)
            if existing is not None and not existing.ghost:
                # A real document whose path equals this basename keeps its row.
                logger.debug("Deleted %s, ghost %r shadowed by a document", path, ghost.id)
                return self.state(path)
            self._engine.add(ghost)
            logger.debug("Deleted %s, ghost %r added", path, ghost.basename)
            return PathState.GHOST

    async def rename(self, old_path: str, new_path: str) -> PathState:
        """Move an entry; only text documents (notes, canvases) are tracked."""
        if not self._config.is_text_document(new_path):
            if self._config.is_text_document(old_path):
                async with self.locks.hold(old_path):
                    self._drop(old_path)
            logger.debug("Ignoring rename to non-text document %s", new_path)
            return self.state(new_path)
        async with self.locks.hold(old_path, new_path):
            self._drop(old_path)
            return await self._index(new_path)

    async def index_path(self, path: str) -> PathState:
        """Extract and insert *path*; used by the startup sweep.

        Holds the same lock as event handlers.
        """
        async with self.locks.hold(path):
            return await self._index(path)

    async def remove_path(self, path: str) -> None:
        """Drop *path* without leaving a ghost (stale manifest entries)."""
        async with self.locks.hold(path):
            self._drop(path)

    def state(self, path: str) -> PathState:
        doc = self._cache.peek(path) or self._engine.get(path)
        if doc is not None and not doc.ghost:
            return PathState.LIVE
        ghost = self._engine.get(remove_diacritics(path_basename(path)))
        if ghost is not None and ghost.ghost:
            return PathState.GHOST
        return PathState.ABSENT

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _index(self, path: str) -> PathState:
        try:
            doc = await self._extractor.extract(path)
        except DOCUMENT_ERRORS as exc:
            logger.warning("Could not index %s: %s", path, exc)
            self._drop(path)
            return PathState.ABSENT
        await self._replace(doc)
        return self.state(path)

    def _is_current(self, doc: IndexedDocument) -> bool:
        """Whether the file on disk is still the version *doc* was read from."""
        try:
            return self._vault.mtime(doc.path) == doc.mtime
        except OSError:
            return False

    async def _replace(self, doc: IndexedDocument) -> bool:
        """Remove-then-reinsert *doc* unless the file changed since extraction."""
        if not self._is_current(doc):
            logger.debug("Discarding superseded extraction of %s", doc.path)
            return False

        previous = self._cache.peek(doc.path) or self._engine.get(doc.path)
        self._engine.remove_by_id(doc.path)
        try:
            await self._reinsert(doc)
        except Exception:
            logger.exception("Reinsert of %s failed, restoring previous entry", doc.path)
            if previous is not None:
                self._engine.add(previous)
            return False

        self._cache.put(doc.path, doc)
        self.indexed[doc.path] = doc.mtime
        ghost = self._engine.get(doc.basename)
        if ghost is not None and ghost.ghost:
            self._engine.remove_by_id(doc.basename)
            logger.debug("Ghost %r replaced by %s", doc.basename, doc.path)
        return True

    @retry(
        stop=stop_after_attempt(REINSERT_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=0.5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _reinsert(self, doc: IndexedDocument) -> None:
        self._engine.add(doc)

    def _drop(self, path: str) -> None:
        self._cache.remove(path)
        self.indexed.pop(path, None)
        doc = self._engine.get(path)
        if doc is not None and not doc.ghost:
            self._engine.remove_by_id(path)
