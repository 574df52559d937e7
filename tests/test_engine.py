"""Tests for vaultindex.engine: FTS5 index engine."""

from __future__ import annotations

import pytest

from vaultindex.documents import IndexedDocument, make_ghost
from vaultindex.engine import FtsIndexEngine, _escape_fts5_query
from vaultindex.errors import SnapshotCorrupt


def _doc(path: str, content: str = "", **kwargs: object) -> IndexedDocument:
    basename = path.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    return IndexedDocument(path=path, basename=basename, content=content, mtime=1.0, **kwargs)  # type: ignore[arg-type]


class TestEscapeQuery:
    def test_quotes_and_prefix(self) -> None:
        assert _escape_fts5_query("foo bar") == '"foo" "bar"*'

    def test_operators_are_literal(self) -> None:
        assert _escape_fts5_query('a "b" -c') == '"a" """b""" "-c"*'

    def test_blank(self) -> None:
        assert _escape_fts5_query("   ") == ""


class TestFtsIndexEngine:
    def test_add_and_search(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("notes/garden.md", "tomatoes and basil grow well"))
        engine.add(_doc("notes/kitchen.md", "boil pasta"))

        results = engine.search("basil")

        assert [r.path for r in results] == ["notes/garden.md"]
        assert "<b>basil</b>" in results[0].excerpt
        assert results[0].score > 0

    def test_prefix_match_on_last_token(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("a.md", "photosynthesis"))
        assert [r.path for r in engine.search("photo")] == ["a.md"]

    def test_diacritic_insensitive(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("a.md", "cafe"))
        assert len(engine.search("café")) == 1

    def test_basename_outranks_content(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("other.md", "mentions zebra once"))
        engine.add(_doc("zebra.md", "striped animal"))
        assert engine.search("zebra")[0].path == "zebra.md"

    def test_add_replaces_same_id(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("a.md", "old words"))
        engine.add(_doc("a.md", "new words"))
        assert engine.count() == 1
        assert engine.search("old") == []
        assert len(engine.search("new")) == 1

    def test_remove_by_id(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("a.md", "text"))
        assert engine.remove_by_id("a.md") is True
        assert engine.remove_by_id("a.md") is False
        assert not engine.has("a.md")
        assert engine.search("text") == []

    def test_ghost_keyed_by_basename(self, engine: FtsIndexEngine) -> None:
        engine.add(make_ghost("Missing Note"))
        assert engine.has("Missing Note")
        results = engine.search("missing")
        assert results[0].ghost is True

    def test_get_rebuilds_document(self, engine: FtsIndexEngine) -> None:
        doc = _doc("a.md", "body", tags=frozenset({"#x", "#y"}), aliases="Alpha", headings1="H")
        engine.add(doc)
        assert engine.get("a.md") == doc
        assert engine.get("b.md") is None

    def test_build_replaces_everything(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("old.md"))
        assert engine.build([_doc("a.md"), _doc("b.md")]) == 2
        assert engine.ids() == ["a.md", "b.md"]

    def test_blank_query(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("a.md", "text"))
        assert engine.search("  ") == []

    def test_limit(self, engine: FtsIndexEngine) -> None:
        engine.build([_doc(f"n{i}.md", "common") for i in range(5)])
        assert len(engine.search("common", limit=3)) == 3


class TestSerialization:
    def test_round_trip(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("a.md", "alpha"))
        engine.add(make_ghost("gone"))
        blob = engine.serialize()

        restored = FtsIndexEngine()
        try:
            restored.deserialize(blob)
            assert restored.ids() == engine.ids()
            assert [r.path for r in restored.search("alpha")] == ["a.md"]
            restored.add(_doc("b.md", "beta"))
            assert restored.count() == 3
        finally:
            restored.close()

    def test_corrupt_blob_keeps_current_index(self, engine: FtsIndexEngine) -> None:
        engine.add(_doc("a.md", "alpha"))
        with pytest.raises(SnapshotCorrupt):
            engine.deserialize(b"definitely not sqlite" * 10)
        assert engine.ids() == ["a.md"]
