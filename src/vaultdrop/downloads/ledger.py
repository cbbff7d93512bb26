"""Usage ledger: the single writer of ``used_downloads``.

``commit`` is the atomic unit of an authorized download. Holding the lock
for the token, and inside one store transaction over the files and
activities keys, it:

  1. re-reads the latest stored record,
  2. re-evaluates the policy against it,
  3. on allow, writes ``used_downloads + 1``,
  4. appends the matching activity event (success or late denial).

Either everything in steps 3-4 lands or nothing does. A request that was
allowed against an older snapshot can still be denied here (typically the
last quota slot went to a concurrent request); it is never allowed against
stale data.

Locks are keyed by token, so attempts on different tokens never wait on
each other's lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..observability.logging import get_logger, redact_token
from ..observability.metrics import DOWNLOAD_COMMIT_SECONDS
from ..store import RecordStore
from .audit import AuditLogger
from .errors import DenialReason, MalformedRecordError
from .model import ActivityEvent, EventType, FileRecord
from .policy import Decision, evaluate
from .resolver import locate

logger = get_logger(__name__)


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key, dropped once unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(frozen=True, slots=True)
class CommitResult:
    """What the atomic unit decided and wrote."""

    decision: Decision
    record: FileRecord | None
    event: ActivityEvent

    @property
    def allowed(self) -> bool:
        return self.decision.allowed


class UsageLedger:
    """Serialize check-and-increment per token against a record store."""

    def __init__(
        self,
        store: RecordStore,
        audit: AuditLogger,
        *,
        files_key: str = 'files',
    ) -> None:
        self._store = store
        self._audit = audit
        self._files_key = files_key
        self._locks = KeyedLocks()

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    def _apply(self, view: dict[str, Any], token: str, now: datetime) -> CommitResult:
        entries = view.get(self._files_key)
        if entries is not None and not isinstance(entries, list):
            raise MalformedRecordError(
                f'{self._files_key!r} must hold a list, got {type(entries).__name__}',
            )

        located = locate(entries, token)
        if located is None:
            decision = Decision.deny(DenialReason.NOT_FOUND)
            event = self._audit.stage(
                view, EventType.for_denial(DenialReason.NOT_FOUND), token, at=now,
            )
            return CommitResult(decision=decision, record=None, event=event)

        index, latest = located
        decision = evaluate(latest, now)
        if not decision.allowed:
            event = self._audit.stage(
                view,
                EventType.for_denial(decision.reason),
                token,
                latest.id,
                at=now,
            )
            return CommitResult(decision=decision, record=latest, event=event)

        updated = latest.with_download_recorded()
        # Only the counter changes; every other stored field keeps its raw form.
        entries[index] = {**entries[index], 'usedDownloads': updated.used_downloads}
        event = self._audit.stage(
            view, EventType.DOWNLOAD_SUCCESS, token, updated.id, at=now,
        )
        return CommitResult(decision=decision, record=updated, event=event)

    async def commit(self, token: str, now: datetime) -> CommitResult:
        """Run the atomic re-check, increment and audit append for ``token``."""
        with DOWNLOAD_COMMIT_SECONDS.time():
            async with self._locks.hold(token):
                result = await self._store.transact(
                    [self._files_key, self._audit.key],
                    lambda view: self._apply(view, token, now),
                )

        if result.allowed:
            logger.info(
                'download_committed',
                token=redact_token(token),
                file_id=result.record.id,
                used_downloads=result.record.used_downloads,
                max_downloads=result.record.max_downloads,
            )
        else:
            logger.info(
                'download_denied_at_commit',
                token=redact_token(token),
                reason=result.decision.reason.value,
            )
        return result
