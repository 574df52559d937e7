"""Tests for the vaultindex CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from click.testing import CliRunner

from vaultindex import __version__
from vaultindex.cli import main
from vaultindex.config import CONFIG_DIR, CONFIG_FILE
from vaultindex.db import SCHEMA_VERSION

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def _index(vault: Path, *extra: str) -> str:
    result = CliRunner().invoke(main, ["index", "--vault", str(vault), *extra])
    assert result.exit_code == 0, result.output
    return result.output


class TestVersion:
    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestIndexCommand:
    def test_first_run_is_full(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("a.md", "apples")
        write_file("b.md", "bananas")

        output = _index(tmp_vault)

        assert "Mode:    full" in output
        assert "Indexed: 2" in output

    def test_second_run_uses_snapshot(
        self, tmp_vault: Path, write_file: Callable[..., Path]
    ) -> None:
        write_file("a.md", "apples")
        _index(tmp_vault)
        output = _index(tmp_vault)
        assert "Mode:    snapshot" in output
        assert "Indexed: 0" in output

    def test_full_flag(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("a.md", "apples")
        _index(tmp_vault)
        assert "Mode:    full" in _index(tmp_vault, "--full")

    def test_reports_failures(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("bad.canvas", "{oops")
        output = _index(tmp_vault)
        assert "not indexed: bad.canvas" in output

    def test_config_error(self, tmp_vault: Path) -> None:
        (tmp_vault / CONFIG_DIR / CONFIG_FILE).write_text("batch_size: -1\n", encoding="utf-8")
        result = CliRunner().invoke(main, ["index", "--vault", str(tmp_vault)])
        assert result.exit_code == 1
        assert "batch_size" in result.output


class TestSearchCommand:
    def test_json_results(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("fruit/apple.md", "crisp apples in autumn")
        write_file("veg.md", "carrots")
        _index(tmp_vault)

        result = CliRunner().invoke(
            main, ["search", "apples", "--json", "--vault", str(tmp_vault)]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [r["path"] for r in data] == ["fruit/apple.md"]
        assert "<b>apples</b>" in data[0]["excerpt"]
        assert data[0]["ghost"] is False

    def test_text_output(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("a.md", "apples")
        _index(tmp_vault)
        result = CliRunner().invoke(main, ["search", "apples", "--vault", str(tmp_vault)])
        assert result.exit_code == 0, result.output
        assert "a.md" in result.output

    def test_no_results(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("a.md", "apples")
        _index(tmp_vault)
        result = CliRunner().invoke(main, ["search", "zucchini", "--vault", str(tmp_vault)])
        assert result.exit_code == 0
        assert "No results found." in result.output


class TestHistoryCommand:
    def test_lists_recent_queries(
        self, tmp_vault: Path, write_file: Callable[..., Path]
    ) -> None:
        write_file("a.md", "apples")
        _index(tmp_vault)
        runner = CliRunner()
        for query in ["apples", "pears", "apples"]:
            runner.invoke(main, ["search", query, "--vault", str(tmp_vault)])

        result = runner.invoke(main, ["history", "--json", "--vault", str(tmp_vault)])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == ["apples", "pears"]

    def test_clear(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("a.md", "apples")
        _index(tmp_vault)
        runner = CliRunner()
        runner.invoke(main, ["search", "apples", "--vault", str(tmp_vault)])

        result = runner.invoke(main, ["history", "--clear", "--vault", str(tmp_vault)])

        assert result.exit_code == 0
        assert "No searches recorded." in result.output


class TestStatusCommand:
    def test_without_snapshot(self, tmp_vault: Path) -> None:
        result = CliRunner().invoke(main, ["status", "--vault", str(tmp_vault)])
        assert result.exit_code == 0
        assert "No snapshot stored" in result.output

    def test_json(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("a.md", "apples")
        write_file("b.md", "bananas")
        _index(tmp_vault)

        result = CliRunner().invoke(main, ["status", "--json", "--vault", str(tmp_vault)])

        assert result.exit_code == 0, result.output
        info = json.loads(result.output)
        assert info["documents"] == 2
        assert info["bytes"] > 0
        assert info["snapshot"]
        assert info["last_snapshot_at"] == info["snapshot"]
        assert info["schema_version"] == SCHEMA_VERSION

    def test_text_reports_schema(self, tmp_vault: Path, write_file: Callable[..., Path]) -> None:
        write_file("a.md", "apples")
        _index(tmp_vault)

        result = CliRunner().invoke(main, ["status", "--vault", str(tmp_vault)])

        assert result.exit_code == 0, result.output
        assert "Documents: 1" in result.output
        assert f"Schema:    v{SCHEMA_VERSION}" in result.output

    def test_global_flags_accepted(self, tmp_vault: Path) -> None:
        result = CliRunner().invoke(main, ["-v", "status", "--vault", str(tmp_vault)])
        assert result.exit_code == 0, result.output
        assert "No snapshot stored" in result.output
