"""Metadata provider: frontmatter, tags, aliases, headings and comment spans.

Markdown notes are parsed on demand; other file types have no metadata.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from vaultindex.vault import Vault

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_FENCE_RE = re.compile(r"^(```|~~~).*?^\1[ \t]*$", re.MULTILINE | re.DOTALL)
_COMMENT_RE = re.compile(r"%%.*?%%", re.DOTALL)
_INLINE_TAG_RE = re.compile(r"(?<![\w#&])#([\w/-]*[A-Za-z_/-][\w/-]*)")

_MARKDOWN_SUFFIXES = frozenset({".md"})


@dataclass(frozen=True)
class Span:
    """Half-open character range ``[start, end)`` within a file's text."""

    start: int
    end: int


@dataclass
class FileMetadata:
    """Parsed metadata for a single note."""

    frontmatter: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)
    headings: list[tuple[int, str]] = field(default_factory=list)
    comments: list[Span] = field(default_factory=list)

    def headings_at(self, level: int) -> list[str]:
        return [text for lvl, text in self.headings if lvl == level]

    @property
    def is_excalidraw(self) -> bool:
        return bool(self.frontmatter.get("excalidraw-plugin"))


class MetadataProvider(Protocol):
    """Anything that can describe a vault file by path."""

    async def get(self, path: str) -> FileMetadata | None: ...


def _as_list(value: Any) -> list[str]:
    """Frontmatter lists may be YAML lists or comma/space separated strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [v for v in re.split(r"[,\s]+", value) if v]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v)]
    return [str(value)]


def _parse_frontmatter(text: str) -> dict[str, Any]:
    import yaml

    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        logger.debug("Invalid frontmatter, ignoring")
        return {}
    return data if isinstance(data, dict) else {}


def _blank_out(text: str, pattern: re.Pattern[str]) -> str:
    """Replace matches with spaces so offsets of the remaining text are kept."""
    return pattern.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


def parse_metadata(text: str) -> FileMetadata:
    """Extract metadata from raw Markdown *text*."""
    frontmatter = _parse_frontmatter(text)

    fm_match = _FRONTMATTER_RE.match(text)
    body_start = fm_match.end() if fm_match else 0

    comments = [Span(m.start(), m.end()) for m in _COMMENT_RE.finditer(text, body_start)]

    # Headings and inline tags are not read from code blocks or comments.
    scan = _blank_out(_blank_out(text[body_start:], _FENCE_RE), _COMMENT_RE)
    headings = [(len(m.group(1)), m.group(2)) for m in _HEADING_RE.finditer(scan)]

    tags: list[str] = []
    for raw in _as_list(frontmatter.get("tags")) + _as_list(frontmatter.get("tag")):
        tag = raw if raw.startswith("#") else f"#{raw}"
        if tag not in tags:
            tags.append(tag)
    for m in _INLINE_TAG_RE.finditer(scan):
        tag = f"#{m.group(1)}"
        if tag not in tags:
            tags.append(tag)

    aliases = _aliases_from(frontmatter)
    return FileMetadata(
        frontmatter=frontmatter,
        tags=tags,
        aliases=aliases,
        headings=headings,
        comments=comments,
    )


def _aliases_from(frontmatter: dict[str, Any]) -> list[str]:
    # Aliases may contain spaces; a plain string splits on commas only.
    value = frontmatter.get("aliases", frontmatter.get("alias"))
    if isinstance(value, str):
        return [a.strip() for a in value.split(",") if a.strip()]
    return _as_list(value)


class MarkdownMetadataProvider:
    """Reads and parses Markdown notes from a :class:`Vault`."""

    def __init__(self, vault: Vault) -> None:
        self._vault = vault

    async def get(self, path: str) -> FileMetadata | None:
        if PurePosixPath(path).suffix.lower() not in _MARKDOWN_SUFFIXES:
            return None
        try:
            text = await self._vault.read_text(path)
        except OSError as exc:
            logger.debug("No metadata for %s: %s", path, exc)
            return None
        return parse_metadata(text)
