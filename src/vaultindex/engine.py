"""Index engine: the searchable inverted structure behind the live cache.

:class:`IndexEngine` is the contract the synchronizer relies on.
:class:`FtsIndexEngine` implements it with an in-memory SQLite FTS5 table
whose whole database is the serialized blob stored in snapshots.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Protocol

from vaultindex.documents import IndexedDocument, SearchResult
from vaultindex.errors import SnapshotCorrupt

if TYPE_CHECKING:
    from collections.abc import Iterable

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS doc_keys (
    rowid INTEGER PRIMARY KEY,
    id    TEXT NOT NULL UNIQUE
);

CREATE VIRTUAL TABLE IF NOT EXISTS documents USING fts5(
    id UNINDEXED,
    path UNINDEXED,
    ghost UNINDEXED,
    mtime UNINDEXED,
    basename,
    aliases,
    headings1,
    headings2,
    headings3,
    tags,
    content,
    tokenize = 'unicode61 remove_diacritics 2'
);
"""

# bm25 weights, one per column in declaration order.
_BM25_WEIGHTS = (0.0, 0.0, 0.0, 0.0, 3.0, 3.0, 1.5, 1.3, 1.1, 1.2, 1.0)
_CONTENT_COLUMN = 10


class IndexEngine(Protocol):
    """Operations the synchronizer needs from a full-text index."""

    def build(self, docs: Iterable[IndexedDocument]) -> int: ...

    def add(self, doc: IndexedDocument) -> None: ...

    def remove_by_id(self, doc_id: str) -> bool: ...

    def has(self, doc_id: str) -> bool: ...

    def get(self, doc_id: str) -> IndexedDocument | None: ...

    def count(self) -> int: ...

    def ids(self) -> list[str]: ...

    def search(self, query: str, *, limit: int = 10) -> list[SearchResult]: ...

    def serialize(self) -> bytes: ...

    def deserialize(self, blob: bytes) -> None: ...


def _escape_fts5_query(query: str) -> str:
    """Quote each token; the last one also matches as a prefix.

    Quoting makes FTS5 operators (``*``, ``-``, ``:``) literal.
    """
    words = [w.replace('"', '""') for w in query.strip().split()]
    if not words:
        return ""
    quoted = [f'"{w}"' for w in words]
    quoted[-1] = f"{quoted[-1]}*"
    return " ".join(quoted)


def _open_memory_db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    return conn


class FtsIndexEngine:
    """SQLite FTS5 implementation of :class:`IndexEngine`."""

    def __init__(self, *, excerpt_tokens: int = 24) -> None:
        self._excerpt_tokens = excerpt_tokens
        self._conn = _open_memory_db()
        self._conn.executescript(_SCHEMA_SQL)

    def close(self) -> None:
        self._conn.close()

    def build(self, docs: Iterable[IndexedDocument]) -> int:
        """Replace the whole index with *docs*.  Returns the row count."""
        self._conn.execute("DELETE FROM documents")
        self._conn.execute("DELETE FROM doc_keys")
        count = 0
        for doc in docs:
            self._insert(doc)
            count += 1
        self._conn.commit()
        return count

    def add(self, doc: IndexedDocument) -> None:
        """Insert *doc*, replacing any row that already has its id."""
        self._delete(doc.id)
        self._insert(doc)
        self._conn.commit()

    def remove_by_id(self, doc_id: str) -> bool:
        removed = self._delete(doc_id)
        self._conn.commit()
        return removed

    def has(self, doc_id: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM doc_keys WHERE id = ?", (doc_id,)).fetchone()
        return row is not None

    def get(self, doc_id: str) -> IndexedDocument | None:
        """Rebuild the stored document for *doc_id*, if indexed."""
        row = self._conn.execute(
            "SELECT d.* FROM documents d JOIN doc_keys k ON d.rowid = k.rowid WHERE k.id = ?",
            (doc_id,),
        ).fetchone()
        if row is None:
            return None
        return IndexedDocument(
            path=row["path"],
            basename=row["basename"],
            content=row["content"],
            mtime=float(row["mtime"]),
            tags=frozenset(row["tags"].split()),
            aliases=row["aliases"],
            headings1=row["headings1"],
            headings2=row["headings2"],
            headings3=row["headings3"],
            ghost=bool(row["ghost"]),
        )

    def count(self) -> int:
        return int(self._conn.execute("SELECT count(*) FROM doc_keys").fetchone()[0])

    def ids(self) -> list[str]:
        rows = self._conn.execute("SELECT id FROM doc_keys ORDER BY id").fetchall()
        return [r["id"] for r in rows]

    def search(self, query: str, *, limit: int = 10) -> list[SearchResult]:
        """Ranked matches for *query*, best first."""
        safe_query = _escape_fts5_query(query)
        if not safe_query:
            return []
        weights = ", ".join(str(w) for w in _BM25_WEIGHTS)
        rows = self._conn.execute(
            "SELECT path, basename, ghost, "
            f"snippet(documents, {_CONTENT_COLUMN}, '<b>', '</b>', '...', ?) AS excerpt, "
            f"bm25(documents, {weights}) AS rank "
            "FROM documents "
            "WHERE documents MATCH ? "
            "ORDER BY rank "
            "LIMIT ?",
            (self._excerpt_tokens, safe_query, limit),
        ).fetchall()
        return [
            SearchResult(
                path=r["path"],
                basename=r["basename"],
                score=-float(r["rank"]),
                excerpt=r["excerpt"] or "",
                ghost=bool(r["ghost"]),
            )
            for r in rows
        ]

    def serialize(self) -> bytes:
        return bytes(self._conn.serialize())

    def deserialize(self, blob: bytes) -> None:
        """Replace the index with a serialized one.

        Raises :class:`SnapshotCorrupt` if *blob* is not a valid index; the
        current index is untouched in that case.
        """
        conn = _open_memory_db()
        try:
            conn.deserialize(blob)
            conn.execute("SELECT count(*) FROM doc_keys").fetchone()
            conn.execute("SELECT count(*) FROM documents").fetchone()
        except (sqlite3.DatabaseError, TypeError, ValueError, OverflowError) as exc:
            conn.close()
            msg = f"serialized index is unreadable: {exc}"
            raise SnapshotCorrupt(msg) from exc
        self._conn.close()
        self._conn = conn

    def _insert(self, doc: IndexedDocument) -> None:
        cursor = self._conn.execute("INSERT INTO doc_keys (id) VALUES (?)", (doc.id,))
        self._conn.execute(
            "INSERT INTO documents (rowid, id, path, ghost, mtime, basename, aliases, "
            "headings1, headings2, headings3, tags, content) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                cursor.lastrowid,
                doc.id,
                doc.path,
                int(doc.ghost),
                doc.mtime,
                doc.basename,
                doc.aliases,
                doc.headings1,
                doc.headings2,
                doc.headings3,
                " ".join(sorted(doc.tags)),
                doc.content,
            ),
        )

    def _delete(self, doc_id: str) -> bool:
        row = self._conn.execute("SELECT rowid FROM doc_keys WHERE id = ?", (doc_id,)).fetchone()
        if row is None:
            return False
        self._conn.execute("DELETE FROM documents WHERE rowid = ?", (row[0],))
        self._conn.execute("DELETE FROM doc_keys WHERE rowid = ?", (row[0],))
        return True
