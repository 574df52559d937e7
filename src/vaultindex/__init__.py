"""vaultindex: incremental full-text index for a vault of documents."""

__version__ = "0.4.0"
