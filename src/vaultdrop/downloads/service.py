"""Download service: the authorization-and-accounting path.

    token -> resolve -> policy pre-check
        deny  -> one audit event, raise the denial
        allow -> ledger.commit (re-check + increment + success event)
              -> assemble payload

The pre-check runs without any lock so denials never wait behind
downloads of the same token. Only the ledger mutates state.

A payload that fails to decode after the commit still counts as a used
download: the increment and success event stay in place and the caller
gets ``ContentDecodeError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, NoReturn

from ..observability.logging import get_logger, redact_token
from ..observability.metrics import (
    CONTENT_DECODE_FAILURES_TOTAL,
    DOWNLOAD_ATTEMPTS_TOTAL,
)
from ..store import RecordStore
from .audit import AuditLogger
from .content import DownloadPayload, ResponseAssembler
from .errors import ContentDecodeError, DenialReason, denial_for
from .ledger import UsageLedger
from .model import ActivityEvent, EventType, FileRecord
from .policy import Decision, evaluate, remaining_downloads
from .resolver import TokenResolver

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class LinkStatus:
    """Read-only view of whether a link would currently be honored."""

    record: FileRecord
    decision: Decision
    remaining_downloads: int | None
    checked_at: datetime

    @property
    def downloadable(self) -> bool:
        return self.decision.allowed


class DownloadService:
    """Wire resolver, policy, ledger, audit log and assembler together."""

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Callable[[], datetime] | None = None,
        files_key: str = 'files',
        activities_key: str = 'activities',
    ) -> None:
        self._clock = clock or _utcnow
        self.resolver = TokenResolver(store, files_key=files_key)
        self.audit = AuditLogger(store, activities_key=activities_key, clock=self._clock)
        self.ledger = UsageLedger(store, self.audit, files_key=files_key)
        self.assembler = ResponseAssembler()

    async def _deny(
        self, token: str, reason: DenialReason, file_id: str | None,
    ) -> NoReturn:
        event_type = EventType.for_denial(reason)
        await self.audit.record(event_type, token, file_id)
        DOWNLOAD_ATTEMPTS_TOTAL.labels(outcome=event_type.value).inc()
        logger.info(
            'download_denied',
            token=redact_token(token),
            file_id=file_id,
            reason=reason.value,
        )
        raise denial_for(reason, file_id)

    async def download(self, token: str) -> DownloadPayload:
        """Authorize, account for and assemble one download.

        Raises:
            LinkNotFound, LinkRevoked, LinkExpired, DownloadLimitReached:
                The attempt was denied (an audit event was appended).
            ContentDecodeError: Authorized and counted, but the stored
                content is malformed.
            MalformedRecordError: The stored record for this token is invalid.
        """
        record = await self.resolver.find(token)
        if record is None:
            await self._deny(token, DenialReason.NOT_FOUND, None)

        decision = evaluate(record, self._clock())
        if not decision.allowed:
            await self._deny(token, decision.reason, record.id)

        result = await self.ledger.commit(token, self._clock())
        DOWNLOAD_ATTEMPTS_TOTAL.labels(outcome=result.event.event_type.value).inc()
        if not result.allowed:
            file_id = result.record.id if result.record else None
            raise denial_for(result.decision.reason, file_id)

        committed = result.record
        try:
            payload = self.assembler.build(committed)
        except ContentDecodeError as exc:
            CONTENT_DECODE_FAILURES_TOTAL.inc()
            logger.error(
                'download_content_corrupt',
                token=redact_token(token),
                file_id=committed.id,
                detail=exc.detail,
            )
            raise

        logger.info(
            'download_allowed',
            token=redact_token(token),
            file_id=committed.id,
            bytes=len(payload.payload),
        )
        return payload

    async def inspect(self, token: str) -> LinkStatus:
        """Evaluate the link without recording anything.

        Raises:
            LinkNotFound: No record carries the token.
        """
        record = await self.resolver.resolve(token)
        now = self._clock()
        return LinkStatus(
            record=record,
            decision=evaluate(record, now),
            remaining_downloads=remaining_downloads(record),
            checked_at=now,
        )

    async def activity(self, token: str, *, limit: int | None = None) -> list[ActivityEvent]:
        """Audit events recorded for ``token``, oldest first."""
        return await self.audit.list_events(token=token, limit=limit)
