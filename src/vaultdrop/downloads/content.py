"""Response assembly: stored content reference to bytes plus headers.

Content is stored as a ``data:`` URL (``data:[<mediatype>][;base64],<data>``)
and decoded only here, after the download has been authorized. A reference
that cannot be decoded is an integrity fault (``ContentDecodeError``), not
a policy denial.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from urllib.parse import quote, unquote_to_bytes

from .errors import ContentDecodeError
from .model import FileRecord

DEFAULT_CONTENT_TYPE = 'application/octet-stream'


def decode_content_ref(content_ref: str) -> bytes:
    """Decode a ``data:`` URL into raw bytes.

    Raises:
        ContentDecodeError: Missing scheme or comma, or invalid base64.
    """
    if not content_ref:
        raise ContentDecodeError('content reference is empty')
    if content_ref[:5].lower() != 'data:':
        raise ContentDecodeError('content reference is not a data: URL')

    header, sep, data = content_ref[5:].partition(',')
    if not sep:
        raise ContentDecodeError('data: URL has no payload separator')

    params = [p.strip().lower() for p in header.split(';')]
    if 'base64' in params[1:]:
        try:
            return base64.b64decode(data.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ContentDecodeError(f'invalid base64 payload: {exc}') from exc
    return unquote_to_bytes(data)


def content_disposition(filename: str) -> str:
    """Build an ``attachment`` disposition carrying ``filename``.

    Non-ASCII names get an RFC 5987 ``filename*`` parameter next to an
    ASCII fallback.
    """
    ascii_name = filename.encode('ascii', 'replace').decode('ascii')
    fallback = ascii_name.replace('\\', '\\\\').replace('"', '\\"')
    fallback = fallback.replace('\r', ' ').replace('\n', ' ')
    value = f'attachment; filename="{fallback}"'
    if ascii_name != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


@dataclass(frozen=True, slots=True)
class DownloadPayload:
    """Decoded bytes and delivery metadata for an authorized download."""

    payload: bytes
    content_type: str
    content_disposition: str
    file_id: str
    filename: str

    def headers(self) -> dict[str, str]:
        return {
            'content-type': self.content_type,
            'content-disposition': self.content_disposition,
        }


class ResponseAssembler:
    """Turn an authorized record into a deliverable payload."""

    def build(self, record: FileRecord) -> DownloadPayload:
        """Decode the record's content and attach delivery headers.

        Raises:
            ContentDecodeError: The stored content reference is malformed.
        """
        try:
            payload = decode_content_ref(record.content_ref)
        except ContentDecodeError as exc:
            raise ContentDecodeError(exc.detail, file_id=record.id) from exc
        return DownloadPayload(
            payload=payload,
            content_type=record.mime_type or DEFAULT_CONTENT_TYPE,
            content_disposition=content_disposition(record.name),
            file_id=record.id,
            filename=record.name,
        )
