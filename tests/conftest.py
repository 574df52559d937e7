"""Shared test fixtures for vaultindex."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from vaultindex.config import CONFIG_DIR, VaultConfig
from vaultindex.db import AsyncConnection, create_schema, open_db
from vaultindex.engine import FtsIndexEngine
from vaultindex.extractor import DocumentExtractor
from vaultindex.metadata import MarkdownMetadataProvider
from vaultindex.vault import Vault

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


@pytest.fixture()
def tmp_vault(tmp_path: Path) -> Path:
    """Create an empty vault with its `.vaultindex/` directory."""
    vault = tmp_path / "vault"
    (vault / CONFIG_DIR).mkdir(parents=True)
    return vault


@pytest.fixture()
def write_file(tmp_vault: Path) -> Callable[..., Path]:
    """Write a vault file, optionally pinning its mtime."""

    def _write(rel: str, content: str | bytes, mtime: float | None = None) -> Path:
        path = tmp_vault / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _write


@pytest.fixture()
def config(tmp_vault: Path) -> VaultConfig:
    return VaultConfig(root=tmp_vault)


@pytest.fixture()
def vault(config: VaultConfig) -> Vault:
    return Vault(config)


@pytest.fixture()
def extractor(vault: Vault) -> DocumentExtractor:
    return DocumentExtractor(vault, MarkdownMetadataProvider(vault))


@pytest.fixture()
def engine() -> Iterator[FtsIndexEngine]:
    eng = FtsIndexEngine()
    yield eng
    eng.close()


@pytest.fixture()
def db(config: VaultConfig) -> Iterator[AsyncConnection]:
    conn = open_db(config.resolved_db_path)
    create_schema(conn)
    yield AsyncConnection(conn)
    conn.close()
