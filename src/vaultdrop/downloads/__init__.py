"""Share-link download authorization and accounting."""

from .audit import AuditLogger, redact_token
from .content import DownloadPayload, ResponseAssembler, content_disposition, decode_content_ref
from .errors import (
    ContentDecodeError,
    DenialReason,
    DownloadDenied,
    DownloadLimitReached,
    LinkExpired,
    LinkNotFound,
    LinkRevoked,
    MalformedRecordError,
    VaultdropError,
)
from .ledger import CommitResult, KeyedLocks, UsageLedger
from .model import ActivityEvent, EventType, FileRecord, FileStatus
from .policy import ALLOW, Decision, evaluate, remaining_downloads
from .resolver import TokenResolver, locate
from .routes import create_download_router
from .service import DownloadService, LinkStatus

__all__ = [
    'ALLOW',
    'ActivityEvent',
    'AuditLogger',
    'CommitResult',
    'ContentDecodeError',
    'Decision',
    'DenialReason',
    'DownloadDenied',
    'DownloadLimitReached',
    'DownloadPayload',
    'DownloadService',
    'EventType',
    'FileRecord',
    'FileStatus',
    'KeyedLocks',
    'LinkExpired',
    'LinkNotFound',
    'LinkRevoked',
    'LinkStatus',
    'MalformedRecordError',
    'ResponseAssembler',
    'TokenResolver',
    'UsageLedger',
    'VaultdropError',
    'content_disposition',
    'create_download_router',
    'decode_content_ref',
    'evaluate',
    'locate',
    'redact_token',
    'remaining_downloads',
]
