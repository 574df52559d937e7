"""Live cache: the in-memory ``path -> IndexedDocument`` view of the vault."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vaultindex.errors import DOCUMENT_ERRORS

if TYPE_CHECKING:
    from collections.abc import Iterator

    from vaultindex.documents import IndexedDocument
    from vaultindex.extractor import DocumentExtractor

logger = logging.getLogger(__name__)


class LiveCache:
    """Current truth for every indexed path.

    Not locked internally; callers serialize work per path.
    """

    def __init__(self, extractor: DocumentExtractor) -> None:
        self._extractor = extractor
        self._documents: dict[str, IndexedDocument] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def put(self, path: str, doc: IndexedDocument) -> None:
        self._documents[path] = doc

    def remove(self, path: str) -> IndexedDocument | None:
        """Drop *path* and return what was cached, if anything."""
        return self._documents.pop(path, None)

    def peek(self, path: str) -> IndexedDocument | None:
        """Cached entry without lazy fill."""
        return self._documents.get(path)

    async def get(self, path: str) -> IndexedDocument | None:
        """Cached entry, extracting *path* (and only *path*) on a miss."""
        doc = self._documents.get(path)
        if doc is not None:
            return doc
        return await self.add_to_live_cache(path)

    async def add_to_live_cache(self, path: str) -> IndexedDocument | None:
        """Extract *path* and store it.

        Extraction failures are logged and leave *path* absent.
        """
        try:
            doc = await self._extractor.extract(path)
        except DOCUMENT_ERRORS as exc:
            logger.warning("Error while adding %s to live cache: %s", path, exc)
            return None
        self._documents[path] = doc
        return doc

    def paths(self) -> list[str]:
        return sorted(self._documents)

    def documents(self) -> Iterator[IndexedDocument]:
        return iter(list(self._documents.values()))

    def clear(self) -> None:
        self._documents.clear()
