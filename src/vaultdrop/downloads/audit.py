"""Download activity log and token redaction.

Every resolution attempt appends exactly one ``ActivityEvent`` to the
``activities`` collection, success or denial. The log is append-only and
ordered by insertion; event timestamps never go backwards in log order.

Two ways in:
  - ``AuditLogger.stage`` appends into an open store transaction, so the
    usage ledger commits the success event together with the increment.
  - ``AuditLogger.record`` appends as its own transaction (denials decided
    before the ledger is reached). Store failures there are logged and
    swallowed; they must never replace the authorization result.

The audit log keeps the full token. Application logs only ever see
``redact_token`` output.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable

from ..observability.logging import get_logger, redact_token
from ..observability.metrics import AUDIT_APPEND_FAILURES_TOTAL
from ..store import RecordStore
from .errors import MalformedRecordError
from .model import ActivityEvent, EventType, parse_timestamp

logger = get_logger(__name__)


def _last_timestamp(entries: list[Any]) -> datetime | None:
    if not entries or not isinstance(entries[-1], dict):
        return None
    try:
        return parse_timestamp(entries[-1].get('timestamp'))
    except ValueError:
        return None


def append_event(entries: list[Any], event: ActivityEvent) -> ActivityEvent:
    """Append ``event`` to a raw activity list, keeping timestamps ordered."""
    last = _last_timestamp(entries)
    if last is not None and event.timestamp < last:
        event = replace(event, timestamp=last)
    entries.append(event.to_dict())
    return event


class AuditLogger:
    """Append-only writer and reader for the activity log."""

    def __init__(
        self,
        store: RecordStore,
        *,
        activities_key: str = 'activities',
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._key = activities_key
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return self._key

    def stage(
        self,
        view: dict[str, Any],
        event_type: EventType,
        token: str,
        file_id: str | None = None,
        detail: str | None = None,
        *,
        at: datetime | None = None,
    ) -> ActivityEvent:
        """Append an event into an open ``RecordStore.transact`` view."""
        entries = view.get(self._key)
        if entries is None:
            entries = view[self._key] = []
        elif not isinstance(entries, list):
            raise MalformedRecordError(
                f'{self._key!r} must hold a list, got {type(entries).__name__}',
            )
        event = ActivityEvent(
            event_type=event_type,
            token=token,
            file_id=file_id,
            detail=detail,
            timestamp=at or self._clock(),
        )
        return append_event(entries, event)

    async def record(
        self,
        event_type: EventType,
        token: str,
        file_id: str | None = None,
        detail: str | None = None,
    ) -> ActivityEvent | None:
        """Append one event in its own transaction.

        Returns the stored event, or None if the store refused the write.
        """
        at = self._clock()
        try:
            return await self._store.transact(
                [self._key],
                lambda view: self.stage(
                    view, event_type, token, file_id, detail, at=at,
                ),
            )
        except Exception:
            AUDIT_APPEND_FAILURES_TOTAL.inc()
            logger.exception(
                'audit_append_failed',
                event_type=event_type.value,
                token=redact_token(token),
                file_id=file_id,
            )
            return None

    async def list_events(
        self,
        *,
        token: str | None = None,
        file_id: str | None = None,
        limit: int | None = None,
    ) -> list[ActivityEvent]:
        """Read the log in insertion order, optionally filtered.

        ``limit`` keeps the most recent matching events.
        """
        entries = await self._store.get(self._key) or []
        if not isinstance(entries, list):
            raise MalformedRecordError(
                f'{self._key!r} must hold a list, got {type(entries).__name__}',
            )
        events: list[ActivityEvent] = []
        for index, raw in enumerate(entries):
            try:
                event = ActivityEvent.from_dict(raw)
            except MalformedRecordError as exc:
                logger.warning('activity_quarantined', index=index, detail=exc.detail)
                continue
            if token is not None and event.token != token:
                continue
            if file_id is not None and event.file_id != file_id:
                continue
            events.append(event)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events
