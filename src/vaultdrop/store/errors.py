"""Record store error hierarchy.

These errors are small and dependency-free so every backend can raise them
without leaking file handles or engine-specific exception types.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base error for record store operations."""

    def __init__(self, message: str, key: str | None = None) -> None:
        self.message = message
        self.key = key
        super().__init__(message)

    def __str__(self) -> str:
        if self.key:
            return f"{self.message} (key={self.key})"
        return self.message


class StoreCorruptedError(StoreError):
    """The backing document exists but cannot be decoded."""


class StoreWriteError(StoreError):
    """Persisting a transaction to the backing medium failed."""
