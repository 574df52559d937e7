"""Vault configuration loaded from ``.vaultindex/config.yml``."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from vaultindex.errors import ConfigError

CONFIG_DIR = ".vaultindex"
CONFIG_FILE = "config.yml"

DEFAULT_TEXT_EXTENSIONS = (".md", ".txt")
CANVAS_EXTENSION = ".canvas"
PDF_EXTENSION = ".pdf"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff")


@dataclass
class VaultConfig:
    """Settings for one vault.  Every key is optional in ``config.yml``."""

    root: Path
    db_path: Path = field(default=Path(CONFIG_DIR) / "index.db")
    text_extensions: tuple[str, ...] = DEFAULT_TEXT_EXTENSIONS
    ignore_dirs: tuple[str, ...] = (CONFIG_DIR,)
    batch_size: int = 50
    debounce_ms: int = 500
    search_limit: int = 10
    excerpt_tokens: int = 24
    snapshot_interval: int = 60

    @property
    def resolved_db_path(self) -> Path:
        if self.db_path.is_absolute():
            return self.db_path
        return self.root / self.db_path

    def is_text_document(self, path: str) -> bool:
        """Plain text or canvas: the types whose renames are tracked."""
        suffix = Path(path).suffix.lower()
        return suffix in self.text_extensions or suffix == CANVAS_EXTENSION

    def is_indexable(self, path: str) -> bool:
        suffix = Path(path).suffix.lower()
        return (
            self.is_text_document(path)
            or suffix == PDF_EXTENSION
            or suffix in IMAGE_EXTENSIONS
        )


_INT_KEYS = (
    "batch_size",
    "debounce_ms",
    "search_limit",
    "excerpt_tokens",
    "snapshot_interval",
)
_LIST_KEYS = ("text_extensions", "ignore_dirs")


def _coerce(key: str, value: Any) -> Any:
    if key in _INT_KEYS:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            msg = f"config key '{key}' must be a positive integer, got {value!r}"
            raise ConfigError(msg)
        return value
    if key in _LIST_KEYS:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            msg = f"config key '{key}' must be a list of strings"
            raise ConfigError(msg)
        if key == "text_extensions":
            return tuple(v.lower() if v.startswith(".") else f".{v.lower()}" for v in value)
        return tuple(value)
    if key == "db_path":
        if not isinstance(value, str) or not value:
            msg = "config key 'db_path' must be a non-empty string"
            raise ConfigError(msg)
        return Path(value)
    msg = f"unknown config key '{key}'"
    raise ConfigError(msg)


def load_config(vault_root: Path) -> VaultConfig:
    """Read ``<vault>/.vaultindex/config.yml``, falling back to defaults.

    Raises :class:`ConfigError` on unreadable YAML or ill-typed values.
    """
    import yaml

    config = VaultConfig(root=vault_root)
    config_path = vault_root / CONFIG_DIR / CONFIG_FILE
    if not config_path.exists():
        return config

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        msg = f"cannot parse {config_path}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(raw, dict):
        msg = f"{config_path} must contain a mapping"
        raise ConfigError(msg)

    known = {f.name for f in fields(VaultConfig)} - {"root"}
    for key, value in raw.items():
        if key not in known:
            msg = f"unknown config key '{key}'"
            raise ConfigError(msg)
        setattr(config, key, _coerce(key, value))

    if CONFIG_DIR not in config.ignore_dirs:
        config.ignore_dirs = (*config.ignore_dirs, CONFIG_DIR)
    return config
