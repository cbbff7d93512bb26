"""Download error taxonomy.

Two domains, kept apart on purpose by the callers that map them:

  - Authorization: ``DownloadDenied`` and one subclass per reason. These
    are terminal and deterministic; retrying the same token yields the same
    answer until the stored record changes. Each carries a fixed message
    that existing clients match on.
  - Integrity: ``ContentDecodeError`` and ``MalformedRecordError``. Stored
    data is broken; these are never reported as a denial.
"""

from __future__ import annotations

from enum import Enum


class DenialReason(str, Enum):
    """Why a download attempt was refused."""

    NOT_FOUND = 'not_found'
    REVOKED = 'revoked'
    EXPIRED = 'expired'
    QUOTA_EXCEEDED = 'quota_exceeded'

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    DenialReason.NOT_FOUND: 'File not found',
    DenialReason.REVOKED: 'This link has been revoked',
    DenialReason.EXPIRED: 'This link has expired',
    DenialReason.QUOTA_EXCEEDED: 'Download limit reached',
}


class VaultdropError(Exception):
    """Base class for every error raised by the download core."""


# ── Authorization domain ─────────────────────────────────────────────


class DownloadDenied(VaultdropError):
    """A download attempt was refused by policy."""

    reason: DenialReason

    def __init__(self, file_id: str | None = None) -> None:
        self.file_id = file_id
        super().__init__(self.reason.message)

    @property
    def message(self) -> str:
        return self.reason.message


class LinkNotFound(DownloadDenied):
    """No record anywhere carries the presented token."""

    reason = DenialReason.NOT_FOUND


class LinkRevoked(DownloadDenied):
    """The record exists but its link was revoked."""

    reason = DenialReason.REVOKED


class LinkExpired(DownloadDenied):
    """The record exists but is past its expiry timestamp."""

    reason = DenialReason.EXPIRED


class DownloadLimitReached(DownloadDenied):
    """The record's download quota is used up."""

    reason = DenialReason.QUOTA_EXCEEDED


_DENIALS: dict[DenialReason, type[DownloadDenied]] = {
    DenialReason.NOT_FOUND: LinkNotFound,
    DenialReason.REVOKED: LinkRevoked,
    DenialReason.EXPIRED: LinkExpired,
    DenialReason.QUOTA_EXCEEDED: DownloadLimitReached,
}


def denial_for(reason: DenialReason, file_id: str | None = None) -> DownloadDenied:
    """Build the exception matching a denial reason."""
    return _DENIALS[reason](file_id)


# ── Integrity domain ─────────────────────────────────────────────────


class ContentDecodeError(VaultdropError):
    """Stored content reference could not be decoded into bytes."""

    def __init__(self, detail: str, file_id: str | None = None) -> None:
        self.detail = detail
        self.file_id = file_id
        super().__init__(f'Stored content is malformed: {detail}')


class MalformedRecordError(VaultdropError):
    """A stored entry failed validation at the load boundary."""

    def __init__(self, detail: str, entry_id: str | None = None) -> None:
        self.detail = detail
        self.entry_id = entry_id
        label = f' {entry_id}' if entry_id else ''
        super().__init__(f'Malformed stored entry{label}: {detail}')
