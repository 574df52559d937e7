"""Document records shared by the extractor, live cache, engine and snapshot."""

from __future__ import annotations

import hashlib
import json
import unicodedata
from dataclasses import asdict, dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable


@dataclass(frozen=True)
class IndexedDocument:
    """A normalized, searchable view of one vault file.

    Instances are never patched; an update replaces the whole record.
    """

    path: str
    basename: str
    content: str
    mtime: float
    tags: frozenset[str] = field(default_factory=frozenset)
    aliases: str = ""
    headings1: str = ""
    headings2: str = ""
    headings3: str = ""
    ghost: bool = False

    @property
    def id(self) -> str:
        """Engine key: the path for real documents, the basename for ghosts."""
        return self.basename if self.ghost else self.path

    def to_dict(self) -> dict[str, Any]:
        """Plain-JSON representation with tags sorted for determinism."""
        data = asdict(self)
        data["tags"] = sorted(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexedDocument:
        return cls(
            path=str(data["path"]),
            basename=str(data["basename"]),
            content=str(data.get("content", "")),
            mtime=float(data.get("mtime", 0.0)),
            tags=frozenset(data.get("tags") or ()),
            aliases=str(data.get("aliases", "")),
            headings1=str(data.get("headings1", "")),
            headings2=str(data.get("headings2", "")),
            headings3=str(data.get("headings3", "")),
            ghost=bool(data.get("ghost", False)),
        )


@dataclass(frozen=True)
class DocumentRef:
    """A ``(path, mtime)`` manifest entry."""

    path: str
    mtime: float


@dataclass(frozen=True)
class SearchResult:
    """One ranked hit returned by the index engine."""

    path: str
    basename: str
    score: float
    excerpt: str
    ghost: bool = False


def remove_diacritics(text: str) -> str:
    """Strip combining marks so that ``café`` and ``cafe`` index identically."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped)


def path_basename(path: str) -> str:
    """File name without directory or extension."""
    return PurePosixPath(path).stem


def make_ghost(basename: str) -> IndexedDocument:
    """Placeholder for a missing target so references to it stay searchable."""
    name = remove_diacritics(basename)
    return IndexedDocument(path=name, basename=name, content="", mtime=0.0, ghost=True)


def _md5(payload: object) -> str:
    encoded = json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")
    return hashlib.md5(encoded).hexdigest()  # noqa: S324


def documents_checksum(documents: Iterable[IndexedDocument]) -> str:
    """Deterministic hash over all significant fields, ordered by path."""
    ordered = sorted(documents, key=lambda d: d.path)
    return _md5([d.to_dict() for d in ordered])


def manifest_checksum(refs: Iterable[DocumentRef]) -> str:
    """Deterministic hash over ``(path, mtime)`` pairs, ordered by path."""
    ordered = sorted(refs, key=lambda r: r.path)
    return _md5([[r.path, r.mtime] for r in ordered])
