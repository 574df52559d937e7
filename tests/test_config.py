"""Tests for vaultindex.config: loading `.vaultindex/config.yml`."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from vaultindex.config import CONFIG_DIR, CONFIG_FILE, VaultConfig, load_config
from vaultindex.errors import ConfigError


def _write_config(vault: Path, data: object) -> None:
    (vault / CONFIG_DIR / CONFIG_FILE).write_text(yaml.dump(data), encoding="utf-8")


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_vault: Path) -> None:
        config = load_config(tmp_vault)
        assert config.root == tmp_vault
        assert config.batch_size == 50
        assert config.search_limit == 10
        assert config.text_extensions == (".md", ".txt")
        assert config.resolved_db_path == tmp_vault / CONFIG_DIR / "index.db"

    def test_reads_values(self, tmp_vault: Path) -> None:
        _write_config(
            tmp_vault,
            {
                "batch_size": 5,
                "debounce_ms": 100,
                "text_extensions": ["MD", ".org"],
                "ignore_dirs": ["archive"],
                "db_path": "cache/search.db",
            },
        )
        config = load_config(tmp_vault)
        assert config.batch_size == 5
        assert config.debounce_ms == 100
        assert config.text_extensions == (".md", ".org")
        assert config.ignore_dirs == ("archive", CONFIG_DIR)
        assert config.resolved_db_path == tmp_vault / "cache" / "search.db"

    def test_empty_file_gives_defaults(self, tmp_vault: Path) -> None:
        (tmp_vault / CONFIG_DIR / CONFIG_FILE).write_text("", encoding="utf-8")
        assert load_config(tmp_vault).batch_size == 50

    def test_unknown_key(self, tmp_vault: Path) -> None:
        _write_config(tmp_vault, {"colour": "blue"})
        with pytest.raises(ConfigError, match="colour"):
            load_config(tmp_vault)

    def test_invalid_yaml(self, tmp_vault: Path) -> None:
        (tmp_vault / CONFIG_DIR / CONFIG_FILE).write_text("batch_size: [1, 2", encoding="utf-8")
        with pytest.raises(ConfigError, match="cannot parse"):
            load_config(tmp_vault)

    def test_not_a_mapping(self, tmp_vault: Path) -> None:
        _write_config(tmp_vault, ["a", "b"])
        with pytest.raises(ConfigError, match="mapping"):
            load_config(tmp_vault)

    @pytest.mark.parametrize("value", [0, -3, "ten", True])
    def test_bad_integer(self, tmp_vault: Path, value: object) -> None:
        _write_config(tmp_vault, {"search_limit": value})
        with pytest.raises(ConfigError, match="search_limit"):
            load_config(tmp_vault)

    def test_bad_list(self, tmp_vault: Path) -> None:
        _write_config(tmp_vault, {"ignore_dirs": "archive"})
        with pytest.raises(ConfigError, match="ignore_dirs"):
            load_config(tmp_vault)


class TestDocumentTypes:
    def test_text_documents(self, tmp_vault: Path) -> None:
        config = VaultConfig(root=tmp_vault)
        assert config.is_text_document("a/b.md")
        assert config.is_text_document("board.canvas")
        assert not config.is_text_document("scan.pdf")

    def test_indexable(self, tmp_vault: Path) -> None:
        config = VaultConfig(root=tmp_vault)
        assert config.is_indexable("scan.PDF")
        assert config.is_indexable("photo.jpeg")
        assert not config.is_indexable("archive.zip")
