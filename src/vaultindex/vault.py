"""Filesystem access to the vault: listing, reading and stat calls.

All paths handed around the package are vault-relative POSIX strings.
Blocking calls are wrapped with :func:`asyncio.to_thread` so that the
event loop is free while files are read.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vaultindex.config import VaultConfig


class Vault:
    """The managed document tree rooted at ``config.root``."""

    def __init__(self, config: VaultConfig) -> None:
        self.config = config
        self.root = config.root.resolve()

    def abspath(self, path: str) -> Path:
        return self.root / PurePosixPath(path)

    def relpath(self, path: str | Path) -> str | None:
        """Vault-relative POSIX path, or ``None`` if *path* is outside the vault."""
        try:
            rel = Path(path).resolve().relative_to(self.root)
        except ValueError:
            return None
        return rel.as_posix()

    def is_ignored(self, path: str) -> bool:
        """Hidden dirs, configured ignore dirs, and editor temp files."""
        parts = PurePosixPath(path).parts
        for part in parts[:-1]:
            if part.startswith(".") or part in self.config.ignore_dirs:
                return True
        name = parts[-1] if parts else ""
        return name.startswith("~") or name.endswith(".tmp")

    def list_files(self) -> list[str]:
        """All indexable files, sorted for deterministic sweeps."""
        result: list[str] = []
        for file_path in self.root.rglob("*"):
            if not file_path.is_file():
                continue
            rel = file_path.relative_to(self.root).as_posix()
            if self.is_ignored(rel) or not self.config.is_indexable(rel):
                continue
            result.append(rel)
        return sorted(result)

    def exists(self, path: str) -> bool:
        return self.abspath(path).is_file()

    def mtime(self, path: str) -> float:
        return self.abspath(path).stat().st_mtime

    def mtimes(self) -> dict[str, float]:
        """Current ``path -> mtime`` for every indexable file."""
        result: dict[str, float] = {}
        for path in self.list_files():
            try:
                result[path] = self.mtime(path)
            except OSError:
                continue  # removed between listing and stat
        return result

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(
            self.abspath(path).read_text, encoding="utf-8", errors="replace"
        )

    async def read_json(self, path: str) -> Any:
        """Read and decode a JSON file.  Raises :class:`json.JSONDecodeError`."""
        raw = await self.read_text(path)
        return await asyncio.to_thread(json.loads, raw)
