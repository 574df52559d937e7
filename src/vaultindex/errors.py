"""Exception hierarchy for extraction, persistence and configuration."""

from __future__ import annotations


class VaultIndexError(Exception):
    """Base class for all vaultindex errors."""


class UnsupportedFormat(VaultIndexError):
    """Path matches no extractable document type."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Unsupported file format: {path}")


class MalformedContent(VaultIndexError):
    """A structured document could not be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed content in {path}: {reason}")


class MalformedCanvas(MalformedContent):
    """Canvas JSON could not be decoded."""


class ExtractionFailed(VaultIndexError):
    """Generic I/O or extraction failure for a single document."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Extraction failed for {path}: {reason}")


class SnapshotCorrupt(VaultIndexError):
    """The persisted index snapshot is unreadable."""


class ConfigError(VaultIndexError):
    """Invalid ``config.yml`` contents."""


# Errors that are contained at the per-document boundary.
DOCUMENT_ERRORS = (UnsupportedFormat, MalformedContent, ExtractionFailed)
