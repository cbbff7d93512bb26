"""Record store collaborators (injected key/value persistence)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .errors import StoreCorruptedError, StoreError, StoreWriteError
from .inmemory import InMemoryRecordStore
from .json_file import JsonFileRecordStore
from .protocols import RecordStore

if TYPE_CHECKING:
    from ..settings import VaultdropSettings


def build_store(settings: VaultdropSettings) -> RecordStore:
    """Construct the store backend named by ``settings.store_backend``."""
    if settings.store_backend == "json":
        return JsonFileRecordStore(settings.store_path)
    if settings.store_backend == "memory":
        return InMemoryRecordStore()
    raise ValueError(f"Unknown store backend: {settings.store_backend!r}")


__all__ = [
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "RecordStore",
    "StoreCorruptedError",
    "StoreError",
    "StoreWriteError",
    "build_store",
]
