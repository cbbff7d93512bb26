"""Record store protocol for dependency injection.

The download core never talks to a storage engine directly. It depends on
this small key/value contract: plain reads and writes plus one atomic
multi-key read-modify-write. ``InMemoryRecordStore`` (tests, local) and
``JsonFileRecordStore`` (single-node persistence) both satisfy it.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, Sequence, TypeVar, runtime_checkable

T = TypeVar("T")

Mutation = Callable[[dict[str, Any]], T]


@runtime_checkable
class RecordStore(Protocol):
    """Key/value store over JSON-serializable values."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def transact(self, keys: Sequence[str], mutate: Mutation[T]) -> T:
        """Atomically apply ``mutate`` to a private view of ``keys``.

        ``mutate`` receives a dict holding deep copies of the current values
        (missing keys map to ``None``) and may rebind or edit them in place.
        If it returns normally every key in the view is written back in one
        step and its return value is passed through. If it raises, nothing
        is written.
        """
        ...
