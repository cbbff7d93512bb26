"""JSON-file record store.

Keeps every key in a single JSON document so a transaction touching several
keys (a record update plus its audit event) reaches disk in one
``os.replace``. Suitable for a single process; there is no cross-process
locking.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Sequence

from .errors import StoreCorruptedError, StoreWriteError
from .protocols import Mutation, T


class JsonFileRecordStore:
    """RecordStore persisted to one JSON document on disk.

    One lock guards the whole document, so writes for different share tokens
    still serialize here. Each write runs in a worker thread, leaving the event
    loop free for reads and other requests while the fsync is in flight. A
    started write always finishes and updates the cache, even if its caller is
    cancelled.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._cache: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._cache is not None:
            return self._cache
        if not self._path.exists():
            self._cache = {}
            return self._cache
        try:
            raw = self._path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreCorruptedError(f"Unreadable store document {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreCorruptedError(
                f"Store document {self._path} must hold a JSON object, got {type(data).__name__}"
            )
        self._cache = data
        return self._cache

    def _persist(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except (OSError, TypeError, ValueError) as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StoreWriteError(f"Failed to write store document {self._path}: {exc}") from exc

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            return copy.deepcopy(self._load().get(key))

    async def set(self, key: str, value: Any) -> None:
        await asyncio.shield(self._set(key, value))

    async def _set(self, key: str, value: Any) -> None:
        async with self._lock:
            updated = dict(self._load())
            updated[key] = copy.deepcopy(value)
            await asyncio.to_thread(self._persist, updated)
            self._cache = updated

    async def transact(self, keys: Sequence[str], mutate: Mutation[T]) -> T:
        return await asyncio.shield(self._transact(keys, mutate))

    async def _transact(self, keys: Sequence[str], mutate: Mutation[T]) -> T:
        async with self._lock:
            current = self._load()
            view = {key: copy.deepcopy(current.get(key)) for key in keys}
            result = mutate(view)
            updated = {**current, **view}
            await asyncio.to_thread(self._persist, updated)
            # Cache only moves forward once the document is on disk.
            self._cache = updated
            return result
