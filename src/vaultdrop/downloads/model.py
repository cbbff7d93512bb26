"""Typed file records and activity events with load-boundary validation.

Stored state is plain JSON (camelCase keys). Everything the download path
reads goes through ``FileRecord.from_dict`` / ``ActivityEvent.from_dict``
first, so undefined or ill-typed fields never reach a policy decision.

Invariants:
  - ``access_token`` is unique across all records, revoked ones included.
  - ``used_downloads`` only ever grows, one step per allowed download.
  - Expiry is derived from ``expiry_timestamp``; it is never a status.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from .errors import DenialReason, MalformedRecordError


class FileStatus(str, Enum):
    ACTIVE = 'active'
    REVOKED = 'revoked'


class EventType(str, Enum):
    """Audit event types, one per resolution outcome."""

    DOWNLOAD_SUCCESS = 'download_success'
    DOWNLOAD_DENIED_REVOKED = 'download_denied_revoked'
    DOWNLOAD_DENIED_EXPIRED = 'download_denied_expired'
    DOWNLOAD_DENIED_QUOTA = 'download_denied_quota'
    DOWNLOAD_DENIED_NOTFOUND = 'download_denied_notfound'

    @classmethod
    def for_denial(cls, reason: DenialReason) -> EventType:
        return _DENIAL_EVENTS[reason]


_DENIAL_EVENTS = {
    DenialReason.NOT_FOUND: EventType.DOWNLOAD_DENIED_NOTFOUND,
    DenialReason.REVOKED: EventType.DOWNLOAD_DENIED_REVOKED,
    DenialReason.EXPIRED: EventType.DOWNLOAD_DENIED_EXPIRED,
    DenialReason.QUOTA_EXCEEDED: EventType.DOWNLOAD_DENIED_QUOTA,
}


# ── Field parsing ─────────────────────────────────────────────────────


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``; naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        text = value[:-1] + '+00:00' if value.endswith(('Z', 'z')) else value
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f'expected ISO 8601 timestamp, got {value!r}')
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def _pick(raw: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in raw:
            return raw[name]
    return None


def _str_field(raw: Mapping[str, Any], *names: str, required: bool = True) -> str:
    value = _pick(raw, *names)
    if value is None and not required:
        return ''
    if not isinstance(value, str) or (required and not value):
        raise ValueError(f'{names[0]} must be a non-empty string')
    return value


def _count_field(raw: Mapping[str, Any], name: str, default: int | None = None) -> int:
    value = raw.get(name, default)
    # bool is an int subclass; true/false are not counts.
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f'{name} must be a non-negative integer, got {value!r}')
    return value


# ── Domain model ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class FileRecord:
    """One uploaded artifact and its share-link state.

    Attributes:
        id: Opaque unique identifier.
        name: Original file name, used in the download disposition.
        size: Size in bytes as reported at upload.
        mime_type: Content type served with the payload.
        access_token: Bearer token of the share link.
        expiry_timestamp: Instant after which the link is not honored.
        max_downloads: Allowed successful downloads; 0 means unlimited.
        used_downloads: Successful downloads so far.
        status: active or revoked.
        content_ref: Reference to the stored bytes (a ``data:`` URL).
        uploaded_by / uploaded_by_name / visibility / uploaded_at:
            Descriptive only; never evaluated by the policy.
    """

    id: str
    name: str
    size: int
    mime_type: str
    access_token: str
    expiry_timestamp: datetime
    max_downloads: int = 0
    used_downloads: int = 0
    status: FileStatus = FileStatus.ACTIVE
    content_ref: str = ''
    uploaded_by: str = ''
    uploaded_by_name: str = ''
    visibility: str = 'private'
    uploaded_at: datetime | None = None

    @property
    def is_revoked(self) -> bool:
        return self.status is FileStatus.REVOKED

    @property
    def is_unlimited(self) -> bool:
        return self.max_downloads == 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expiry_timestamp

    def with_download_recorded(self) -> FileRecord:
        """Copy of this record with one more used download."""
        return replace(self, used_downloads=self.used_downloads + 1)

    @classmethod
    def from_dict(cls, raw: Any) -> FileRecord:
        """Validate a stored JSON entry.

        Raises:
            MalformedRecordError: A field is missing, ill-typed or out of range.
        """
        if not isinstance(raw, Mapping):
            raise MalformedRecordError(f'expected an object, got {type(raw).__name__}')
        entry_id = raw.get('id') if isinstance(raw.get('id'), str) else None
        try:
            status_raw = raw.get('status', FileStatus.ACTIVE.value)
            try:
                status = FileStatus(status_raw)
            except ValueError:
                raise ValueError(f'unknown status {status_raw!r}') from None
            uploaded_at_raw = raw.get('uploadedAt')
            return cls(
                id=_str_field(raw, 'id'),
                name=_str_field(raw, 'name'),
                size=_count_field(raw, 'size', default=0),
                mime_type=_str_field(raw, 'mimeType', 'type', required=False),
                access_token=_str_field(raw, 'accessToken'),
                expiry_timestamp=parse_timestamp(raw.get('expiryTimestamp')),
                max_downloads=_count_field(raw, 'maxDownloads', default=0),
                used_downloads=_count_field(raw, 'usedDownloads', default=0),
                status=status,
                content_ref=_str_field(raw, 'contentRef', 'fileData', required=False),
                uploaded_by=_str_field(raw, 'uploadedBy', required=False),
                uploaded_by_name=_str_field(raw, 'uploadedByName', required=False),
                visibility=_str_field(raw, 'visibility', required=False) or 'private',
                uploaded_at=parse_timestamp(uploaded_at_raw) if uploaded_at_raw else None,
            )
        except ValueError as exc:
            raise MalformedRecordError(str(exc), entry_id=entry_id) from exc

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the stored JSON shape."""
        data: dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'size': self.size,
            'mimeType': self.mime_type,
            'accessToken': self.access_token,
            'expiryTimestamp': format_timestamp(self.expiry_timestamp),
            'maxDownloads': self.max_downloads,
            'usedDownloads': self.used_downloads,
            'status': self.status.value,
            'contentRef': self.content_ref,
            'uploadedBy': self.uploaded_by,
            'uploadedByName': self.uploaded_by_name,
            'visibility': self.visibility,
        }
        if self.uploaded_at is not None:
            data['uploadedAt'] = format_timestamp(self.uploaded_at)
        return data


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """Immutable record of one resolution attempt.

    Attributes:
        event_type: Outcome of the attempt.
        token: Token as presented (full value; this is the audit log).
        file_id: Resolved record ID, or None when the token is unknown.
        detail: Optional free-form context.
        timestamp: When the attempt was decided.
        id: Unique event ID.
    """

    event_type: EventType
    token: str
    file_id: str | None = None
    detail: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    id: str = field(default_factory=lambda: f'act_{uuid.uuid4().hex}')

    @classmethod
    def from_dict(cls, raw: Any) -> ActivityEvent:
        if not isinstance(raw, Mapping):
            raise MalformedRecordError(f'expected an object, got {type(raw).__name__}')
        try:
            file_id = raw.get('fileId')
            if file_id is not None and not isinstance(file_id, str):
                raise ValueError('fileId must be a string or null')
            detail = raw.get('detail')
            return cls(
                id=_str_field(raw, 'id'),
                event_type=EventType(raw.get('eventType')),
                token=_str_field(raw, 'token', required=False),
                file_id=file_id,
                detail=detail if isinstance(detail, str) else None,
                timestamp=parse_timestamp(raw.get('timestamp')),
            )
        except ValueError as exc:
            raise MalformedRecordError(str(exc), entry_id=raw.get('id')) from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'timestamp': format_timestamp(self.timestamp),
            'fileId': self.file_id,
            'token': self.token,
            'eventType': self.event_type.value,
            'detail': self.detail,
        }
