"""Share-link download endpoints.

  GET /api/v1/links/{token}/download   -> file bytes (counts a download)
  GET /api/v1/links/{token}            -> link status (read-only)
  GET /api/v1/links/{token}/activity   -> audit events for the token

Denials map to fixed status codes and messages:
  - 404 not_found       "File not found"
  - 410 revoked         "This link has been revoked"
  - 410 expired         "This link has expired"
  - 403 quota_exceeded  "Download limit reached"

Integrity faults (undecodable content, invalid stored record) are 500s with
their own error codes and are never reported as a denial.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .errors import (
    ContentDecodeError,
    DenialReason,
    DownloadDenied,
    LinkNotFound,
    MalformedRecordError,
)
from .service import DownloadService

DENIAL_STATUS: dict[DenialReason, int] = {
    DenialReason.NOT_FOUND: 404,
    DenialReason.REVOKED: 410,
    DenialReason.EXPIRED: 410,
    DenialReason.QUOTA_EXCEEDED: 403,
}


# ── Response schemas ─────────────────────────────────────────────────


class LinkStatusResponse(BaseModel):
    """Read-only status of a share link."""

    file_id: str
    name: str
    size: int
    mime_type: str
    expires_at: datetime
    max_downloads: int
    used_downloads: int
    remaining_downloads: int | None
    downloadable: bool
    reason: str | None = None
    message: str | None = None


class ActivityEventResponse(BaseModel):
    id: str
    timestamp: datetime
    file_id: str | None
    event_type: str
    detail: str | None = None


class ActivityListResponse(BaseModel):
    events: list[ActivityEventResponse]


# ── Error mapping ────────────────────────────────────────────────────


def denial_response(exc: DownloadDenied) -> JSONResponse:
    return JSONResponse(
        status_code=DENIAL_STATUS[exc.reason],
        content={'error': exc.reason.value, 'detail': exc.message},
    )


def integrity_response(exc: ContentDecodeError | MalformedRecordError) -> JSONResponse:
    code = 'content_decode_error' if isinstance(exc, ContentDecodeError) else 'record_malformed'
    return JSONResponse(
        status_code=500,
        content={'error': code, 'detail': 'Stored file data is corrupted.'},
    )


# ── Route factory ────────────────────────────────────────────────────


def create_download_router(service: DownloadService) -> APIRouter:
    """Create the share-link download router.

    Args:
        service: Download service bound to the application's record store.

    Returns:
        FastAPI router with download, status and activity endpoints.
    """
    router = APIRouter(tags=['downloads'])

    @router.get('/api/v1/links/{token}/download')
    async def download(token: str):
        """Download the shared file, consuming one use of the link."""
        try:
            result = await service.download(token)
        except DownloadDenied as exc:
            return denial_response(exc)
        except (ContentDecodeError, MalformedRecordError) as exc:
            return integrity_response(exc)

        # Headers passed as-is; media_type would append a charset to text/*.
        return Response(content=result.payload, headers=result.headers())

    @router.get('/api/v1/links/{token}', response_model=LinkStatusResponse)
    async def link_status(token: str):
        """Report whether the link would be honored right now."""
        try:
            status = await service.inspect(token)
        except LinkNotFound as exc:
            return denial_response(exc)
        except MalformedRecordError as exc:
            return integrity_response(exc)

        record = status.record
        reason = status.decision.reason
        return LinkStatusResponse(
            file_id=record.id,
            name=record.name,
            size=record.size,
            mime_type=record.mime_type,
            expires_at=record.expiry_timestamp,
            max_downloads=record.max_downloads,
            used_downloads=record.used_downloads,
            remaining_downloads=status.remaining_downloads,
            downloadable=status.downloadable,
            reason=reason.value if reason else None,
            message=reason.message if reason else None,
        )

    @router.get('/api/v1/links/{token}/activity', response_model=ActivityListResponse)
    async def link_activity(token: str, limit: int | None = None):
        """Audit events for the token, oldest first."""
        try:
            events = await service.activity(token, limit=limit)
        except MalformedRecordError as exc:
            return integrity_response(exc)
        return ActivityListResponse(
            events=[
                ActivityEventResponse(
                    id=e.id,
                    timestamp=e.timestamp,
                    file_id=e.file_id,
                    event_type=e.event_type.value,
                    detail=e.detail,
                )
                for e in events
            ],
        )

    return router
