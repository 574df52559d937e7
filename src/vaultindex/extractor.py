"""Document extractor: turn a vault path into a normalized IndexedDocument.

Supported inputs are plain text notes, JSON canvases, and images/PDFs.
Binary formats go through an optional text-extraction capability when one
is registered, and through the built-in pdfminer / tesseract readers
otherwise.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol, Union

from vaultindex.config import CANVAS_EXTENSION, IMAGE_EXTENSIONS, PDF_EXTENSION
from vaultindex.documents import IndexedDocument, path_basename, remove_diacritics
from vaultindex.errors import ExtractionFailed, MalformedCanvas, UnsupportedFormat

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from vaultindex.metadata import FileMetadata, MetadataProvider, Span
    from vaultindex.vault import Vault

logger = logging.getLogger(__name__)

CANVAS_SEPARATOR = "\r\n"


class TextExtractor(Protocol):
    """External capability that pulls text out of binary files."""

    def can_handle(self, path: str) -> bool: ...

    async def extract_text(self, path: str) -> str: ...


@dataclass(frozen=True)
class Present:
    """A registered binary text extractor."""

    extractor: TextExtractor


@dataclass(frozen=True)
class Absent:
    """No binary text extractor registered; built-in readers are used."""


TextExtractorCapability = Union[Present, Absent]

ABSENT = Absent()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def canvas_text(canvas: Any) -> str:
    """Concatenate text nodes, file nodes and edge labels of a canvas."""
    if not isinstance(canvas, dict):
        msg = "canvas root is not an object"
        raise ValueError(msg)
    nodes = canvas.get("nodes") or []
    edges = canvas.get("edges") or []
    if not isinstance(nodes, list) or not isinstance(edges, list):
        msg = "canvas nodes and edges must be arrays"
        raise ValueError(msg)
    if not all(isinstance(item, dict) for item in (*nodes, *edges)):
        msg = "canvas nodes and edges must be objects"
        raise ValueError(msg)
    texts: list[str] = []
    for node in nodes:
        if node.get("type") == "text" and node.get("text"):
            texts.append(str(node["text"]))
        elif node.get("type") == "file" and node.get("file"):
            texts.append(str(node["file"]))
    for edge in edges:
        if edge.get("label"):
            texts.append(str(edge["label"]))
    return CANVAS_SEPARATOR.join(texts)


def strip_spans(content: str, spans: Iterable[Span]) -> str:
    """Remove every ``[start, end)`` span from *content*.

    Overlapping spans are merged, then cut from the highest offset down so
    earlier offsets stay valid while the string shrinks.
    """
    ordered = sorted(
        ((max(0, s.start), min(len(content), s.end)) for s in spans if s.end > s.start),
    )
    merged: list[tuple[int, int]] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    for start, end in reversed(merged):
        content = content[:start] + content[end:]
    return content


def _read_pdf_text(abspath: Path) -> str:
    from pdfminer.high_level import extract_text

    return str(extract_text(str(abspath)))


def _read_image_text(abspath: Path) -> str:
    import pytesseract
    from PIL import Image

    with Image.open(abspath) as img:
        return str(pytesseract.image_to_string(img))


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class DocumentExtractor:
    """Reads one vault file and maps it to an :class:`IndexedDocument`."""

    def __init__(
        self,
        vault: Vault,
        metadata: MetadataProvider,
        text_extractor: TextExtractorCapability = ABSENT,
    ) -> None:
        self._vault = vault
        self._metadata = metadata
        self._text_extractor = text_extractor

    async def extract(self, path: str) -> IndexedDocument:
        """Extract *path*.

        Raises :class:`UnsupportedFormat`, :class:`MalformedCanvas` or
        :class:`ExtractionFailed`.
        """
        try:
            mtime = self._vault.mtime(path)
        except OSError as exc:
            raise ExtractionFailed(path, str(exc)) from exc

        content = await self._read_content(path)
        if content is None:
            logger.warning("No content extracted for %s", path)
            content = ""

        metadata = await self._metadata.get(path)
        if metadata is not None and metadata.is_excalidraw:
            content = strip_spans(content, metadata.comments)

        return _build_document(path, remove_diacritics(content), mtime, metadata)

    async def _read_content(self, path: str) -> str | None:
        suffix = PurePosixPath(path).suffix.lower()
        try:
            if suffix in self._vault.config.text_extensions:
                return await self._vault.read_text(path)
            if suffix == CANVAS_EXTENSION:
                return await self._read_canvas(path)
        except OSError as exc:
            raise ExtractionFailed(path, str(exc)) from exc
        return await self._read_binary(path, suffix)

    async def _read_canvas(self, path: str) -> str:
        try:
            canvas = await self._vault.read_json(path)
            return canvas_text(canvas)
        except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as exc:
            raise MalformedCanvas(path, str(exc)) from exc

    async def _read_binary(self, path: str, suffix: str) -> str | None:
        capability = self._text_extractor
        if isinstance(capability, Present):
            if not capability.extractor.can_handle(path):
                raise UnsupportedFormat(path)
            try:
                return await capability.extractor.extract_text(path)
            except Exception as exc:
                raise ExtractionFailed(path, str(exc)) from exc

        if suffix == PDF_EXTENSION:
            reader = _read_pdf_text
        elif suffix in IMAGE_EXTENSIONS:
            reader = _read_image_text
        else:
            raise UnsupportedFormat(path)
        try:
            return await asyncio.to_thread(reader, self._vault.abspath(path))
        except Exception as exc:
            raise ExtractionFailed(path, str(exc)) from exc


def _build_document(
    path: str,
    content: str,
    mtime: float,
    metadata: FileMetadata | None,
) -> IndexedDocument:
    if metadata is None:
        return IndexedDocument(
            path=path,
            basename=remove_diacritics(path_basename(path)),
            content=content,
            mtime=mtime,
        )
    return IndexedDocument(
        path=path,
        basename=remove_diacritics(path_basename(path)),
        content=content,
        mtime=mtime,
        tags=frozenset(metadata.tags),
        aliases=" ".join(metadata.aliases),
        headings1=" ".join(metadata.headings_at(1)),
        headings2=" ".join(metadata.headings_at(2)),
        headings3=" ".join(metadata.headings_at(3)),
    )
