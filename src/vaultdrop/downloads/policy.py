"""Download policy gate.

``evaluate`` is a pure function of a record and the current time. Checks
run in a fixed order and stop at the first failure, so a record failing
several conditions always reports the same reason:

  1. revoked                                  -> REVOKED
  2. now > expiry_timestamp                   -> EXPIRED
  3. max_downloads != 0 and used >= max       -> QUOTA_EXCEEDED
  4. otherwise                                -> allow

``max_downloads == 0`` skips the quota check no matter how large
``used_downloads`` grows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .errors import DenialReason
from .model import FileRecord


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of a policy evaluation."""

    allowed: bool
    reason: DenialReason | None = None

    @classmethod
    def deny(cls, reason: DenialReason) -> Decision:
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(allowed=True)


def evaluate(record: FileRecord, now: datetime) -> Decision:
    """Decide whether ``record`` may be downloaded at ``now``."""
    if now.tzinfo is None:
        raise ValueError('now must be timezone-aware')

    if record.is_revoked:
        return Decision.deny(DenialReason.REVOKED)

    if now > record.expiry_timestamp:
        return Decision.deny(DenialReason.EXPIRED)

    if record.max_downloads != 0 and record.used_downloads >= record.max_downloads:
        return Decision.deny(DenialReason.QUOTA_EXCEEDED)

    return ALLOW


def remaining_downloads(record: FileRecord) -> int | None:
    """Downloads left before the quota is hit, or None when unlimited."""
    if record.is_unlimited:
        return None
    return max(record.max_downloads - record.used_downloads, 0)
