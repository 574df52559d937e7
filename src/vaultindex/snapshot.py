"""Snapshot store: persist and validate the serialized index.

A snapshot is one row holding the serialized index plus the manifest of
``(path, mtime)`` pairs it was built from.  On startup the manifest is
checked against the vault in two tiers: a global checksum first, then a
per-path diff only when the checksum differs.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from vaultindex.db import set_meta
from vaultindex.documents import DocumentRef, manifest_checksum
from vaultindex.errors import SnapshotCorrupt

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from vaultindex.db import AsyncConnection

logger = logging.getLogger(__name__)

CACHE_INVALID_NOTICE = (
    "Index cache missing or invalid. Some slowdowns may occur while the vault is re-indexed."
)


@dataclass(frozen=True)
class Snapshot:
    """The persisted index and the file set it describes."""

    date: str
    manifest: list[DocumentRef]
    data: bytes

    def mtimes(self) -> dict[str, float]:
        return {ref.path: ref.mtime for ref in self.manifest}


@dataclass(frozen=True)
class ManifestDelta:
    """Per-path differences between a stored manifest and the live vault."""

    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Return True if any path needs re-extraction or removal."""
        return bool(self.added or self.modified or self.removed)


def build_manifest(indexed: Mapping[str, float]) -> list[DocumentRef]:
    """Manifest entries for ``path -> mtime``, sorted by path."""
    return [DocumentRef(path=p, mtime=m) for p, m in sorted(indexed.items())]


def is_unchanged(stored: Iterable[DocumentRef], live: Mapping[str, float]) -> bool:
    """Cheap global check: do both file sets hash to the same checksum?"""
    return manifest_checksum(stored) == manifest_checksum(build_manifest(live))


def diff_manifest(stored: Iterable[DocumentRef], live: Mapping[str, float]) -> ManifestDelta:
    """Paths to extract (added, modified) and to remove (removed)."""
    stored_map = {ref.path: ref.mtime for ref in stored}
    added = sorted(p for p in live if p not in stored_map)
    modified = sorted(p for p, m in live.items() if p in stored_map and stored_map[p] != m)
    removed = sorted(p for p in stored_map if p not in live)
    return ManifestDelta(added=added, modified=modified, removed=removed)


def _encode_manifest(manifest: Iterable[DocumentRef]) -> str:
    return json.dumps(
        [{"path": ref.path, "mtime": ref.mtime} for ref in manifest],
        ensure_ascii=False,
    )


def _decode_row(row: sqlite3.Row) -> Snapshot:
    try:
        raw: Any = json.loads(row["manifest"])
        manifest = [DocumentRef(path=str(e["path"]), mtime=float(e["mtime"])) for e in raw]
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        msg = f"snapshot manifest is unreadable: {exc}"
        raise SnapshotCorrupt(msg) from exc
    data = row["data"]
    if not isinstance(data, bytes) or not data:
        msg = "snapshot data is empty or not binary"
        raise SnapshotCorrupt(msg)
    return Snapshot(date=str(row["date"]), manifest=manifest, data=data)


def _read_row(conn: sqlite3.Connection) -> sqlite3.Row | None:
    return conn.execute(
        "SELECT date, manifest, data FROM index_snapshot WHERE id = 1"
    ).fetchone()


def _write_row(conn: sqlite3.Connection, date: str, manifest_json: str, data: bytes) -> None:
    # Clear-then-write in one transaction: readers see the old row or the new one.
    with conn:
        conn.execute("DELETE FROM index_snapshot")
        conn.execute(
            "INSERT INTO index_snapshot (id, date, manifest, data) VALUES (1, ?, ?, ?)",
            (date, manifest_json, data),
        )
    set_meta(conn, "last_snapshot_at", date)


class SnapshotStore:
    """Reads and writes the single ``index_snapshot`` row."""

    def __init__(
        self,
        db: AsyncConnection,
        *,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        self._db = db
        self._notify = notify
        self._warned = False

    async def load(self) -> Snapshot | None:
        """Return the stored snapshot, or ``None`` when missing or corrupt.

        Never raises; the caller falls back to a full rebuild on ``None``.
        """
        try:
            row = await self._db.run(_read_row)
            if row is None:
                self._warn_invalid("no snapshot stored")
                return None
            return _decode_row(row)
        except (sqlite3.DatabaseError, SnapshotCorrupt) as exc:
            logger.error("Error while loading index snapshot: %s", exc)
            self._warn_invalid(str(exc))
            return None

    async def save(self, manifest: Iterable[DocumentRef], data: bytes) -> Snapshot:
        """Replace the stored snapshot with a freshly dated one."""
        refs = list(manifest)
        date = datetime.now(tz=timezone.utc).isoformat()
        await self._db.run(_write_row, date, _encode_manifest(refs), data)
        logger.info("Index snapshot written (%d documents)", len(refs))
        return Snapshot(date=date, manifest=refs, data=data)

    async def clear(self) -> None:
        def _clear(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute("DELETE FROM index_snapshot")

        await self._db.run(_clear)

    def _warn_invalid(self, reason: str) -> None:
        logger.info("Snapshot unavailable: %s", reason)
        if self._warned:
            return
        self._warned = True
        if self._notify is not None:
            self._notify(CACHE_INVALID_NOTICE)
