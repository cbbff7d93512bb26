"""In-memory record store for local development and tests.

Values are deep-copied on the way in and out so callers never hold a
reference into stored state. Nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Sequence

from .protocols import Mutation, T


class InMemoryRecordStore:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)

    async def transact(self, keys: Sequence[str], mutate: Mutation[T]) -> T:
        async with self._lock:
            view = {key: copy.deepcopy(self._data.get(key)) for key in keys}
            result = mutate(view)
            # No await between the mutation and the write-back.
            for key, value in view.items():
                self._data[key] = value
            return result

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of everything stored (for testing assertions)."""
        return copy.deepcopy(self._data)
