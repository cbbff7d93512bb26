"""Token resolution over the stored file records.

Lookup covers every record regardless of status: a revoked link must be
found so it can be denied as revoked instead of looking unknown. Resolution
has no side effects.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ..observability.logging import get_logger, redact_token
from ..store import RecordStore
from .errors import LinkNotFound, MalformedRecordError
from .model import FileRecord

logger = get_logger(__name__)


def locate(entries: Sequence[Any] | None, token: str) -> tuple[int, FileRecord] | None:
    """Find the entry carrying ``token`` in a raw record collection.

    Entries that fail validation are skipped (quarantined) unless they carry
    the requested token, in which case the integrity fault is raised rather
    than hidden behind a not-found answer.

    Returns:
        ``(index, record)`` or None when no entry carries the token.

    Raises:
        MalformedRecordError: The matching entry is invalid, or more than one
            entry carries the token.
    """
    if not entries:
        return None

    found: tuple[int, FileRecord] | None = None
    for index, raw in enumerate(entries):
        carries_token = isinstance(raw, Mapping) and raw.get('accessToken') == token
        if not carries_token:
            continue
        record = FileRecord.from_dict(raw)
        if found is not None:
            raise MalformedRecordError(
                f'access token shared by {found[1].id} and {record.id}',
                entry_id=record.id,
            )
        found = (index, record)
    return found


class TokenResolver:
    """Resolve share tokens against the ``files`` collection of a store."""

    def __init__(self, store: RecordStore, *, files_key: str = 'files') -> None:
        self._store = store
        self._files_key = files_key

    async def find(self, token: str) -> FileRecord | None:
        """Return the record carrying ``token``, or None."""
        entries = await self._store.get(self._files_key)
        if entries is not None and not isinstance(entries, list):
            raise MalformedRecordError(
                f'{self._files_key!r} must hold a list, got {type(entries).__name__}',
            )
        located = locate(entries, token)
        if located is None:
            logger.debug('token_unresolved', token=redact_token(token))
            return None
        return located[1]

    async def resolve(self, token: str) -> FileRecord:
        """Return the record carrying ``token``.

        Raises:
            LinkNotFound: No record anywhere carries the token.
            MalformedRecordError: The matching stored entry is invalid.
        """
        record = await self.find(token)
        if record is None:
            raise LinkNotFound()
        return record

    async def scan_malformed(self) -> list[str]:
        """Describe every stored entry that fails validation.

        Lookup never reads these entries unless their token is requested;
        this is for operators checking the store's health.
        """
        entries = await self._store.get(self._files_key) or []
        if not isinstance(entries, list):
            return [f'{self._files_key!r} must hold a list, got {type(entries).__name__}']
        problems: list[str] = []
        for index, raw in enumerate(entries):
            try:
                FileRecord.from_dict(raw)
            except MalformedRecordError as exc:
                logger.warning('record_quarantined', index=index, detail=exc.detail)
                problems.append(f'[{index}] {exc}')
        return problems
