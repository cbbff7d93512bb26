"""End-to-end tests for the download service over an in-memory store.

Validates:
  - Valid token: payload, headers, +1 usage, one success event.
  - Each denial raises its exception with the fixed message, leaves usage
    unchanged, and appends exactly one matching event.
  - Unlimited links keep counting past any number.
  - inspect() and activity() never mutate state.
  - Decode failure after authorization stays counted.
  - A malformed matching record is an integrity fault, not a denial.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from vaultdrop.downloads.errors import (
    ContentDecodeError,
    DenialReason,
    DownloadDenied,
    DownloadLimitReached,
    LinkExpired,
    LinkNotFound,
    LinkRevoked,
    MalformedRecordError,
)
from vaultdrop.downloads.service import DownloadService
from vaultdrop.store import InMemoryRecordStore


class AuditOutageStore(InMemoryRecordStore):
    """Activity-log-only transactions fail with an unexpected error."""

    async def transact(self, keys, mutate):
        if list(keys) == ['activities']:
            raise RuntimeError('activity backend unavailable')
        return await super().transact(keys, mutate)


def _events(store) -> list[dict]:
    return store.snapshot().get('activities') or []


def _used(store, index=0) -> int:
    return store.snapshot()['files'][index]['usedDownloads']


# =====================================================================
# Allowed downloads
# =====================================================================


class TestDownloadAllowed:

    @pytest.mark.asyncio
    async def test_valid_token_returns_payload(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=5, used_downloads=0))
        service = DownloadService(store, clock=clock)

        result = await service.download('valid-token-123')

        assert result.payload == b'Hello World'
        assert result.content_type == 'application/pdf'
        assert result.content_disposition == 'attachment; filename="test.pdf"'
        assert _used(store) == 1
        events = _events(store)
        assert len(events) == 1
        assert events[0]['eventType'] == 'download_success'
        assert events[0]['fileId'] == 'test-file-1'
        assert events[0]['token'] == 'valid-token-123'

    @pytest.mark.asyncio
    async def test_unlimited_link_keeps_counting(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=0, used_downloads=999))
        service = DownloadService(store, clock=clock)

        await service.download('valid-token-123')

        assert _used(store) == 1000
        assert _events(store)[0]['eventType'] == 'download_success'

    @pytest.mark.asyncio
    async def test_last_quota_slot_then_limit(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=2, used_downloads=1))
        service = DownloadService(store, clock=clock)

        await service.download('valid-token-123')
        with pytest.raises(DownloadLimitReached):
            await service.download('valid-token-123')

        assert _used(store) == 2
        assert [e['eventType'] for e in _events(store)] == [
            'download_success',
            'download_denied_quota',
        ]

    @pytest.mark.asyncio
    async def test_expiry_boundary_is_inclusive(self, make_store, make_entry, clock, now):
        store = make_store(make_entry(expiry=now))
        service = DownloadService(store, clock=clock)
        result = await service.download('valid-token-123')
        assert result.payload == b'Hello World'

    @pytest.mark.asyncio
    async def test_custom_store_keys(self, make_entry, clock):
        store = InMemoryRecordStore({'vaultdrop_files': [make_entry()]})
        service = DownloadService(
            store,
            clock=clock,
            files_key='vaultdrop_files',
            activities_key='vaultdrop_activities',
        )
        await service.download('valid-token-123')
        snapshot = store.snapshot()
        assert snapshot['vaultdrop_files'][0]['usedDownloads'] == 1
        assert len(snapshot['vaultdrop_activities']) == 1


# =====================================================================
# Denials
# =====================================================================


class TestDownloadDenied:

    @pytest.mark.asyncio
    async def test_unknown_token(self, make_store, make_entry, clock):
        store = make_store(make_entry())
        service = DownloadService(store, clock=clock)

        with pytest.raises(LinkNotFound) as excinfo:
            await service.download('no-such-token')

        assert str(excinfo.value) == 'File not found'
        assert excinfo.value.file_id is None
        events = _events(store)
        assert len(events) == 1
        assert events[0]['eventType'] == 'download_denied_notfound'
        assert events[0]['fileId'] is None
        assert _used(store) == 0

    @pytest.mark.asyncio
    async def test_revoked(self, make_store, make_entry, clock):
        store = make_store(make_entry(status='revoked'))
        service = DownloadService(store, clock=clock)

        with pytest.raises(LinkRevoked) as excinfo:
            await service.download('valid-token-123')

        assert str(excinfo.value) == 'This link has been revoked'
        assert excinfo.value.file_id == 'test-file-1'
        assert [e['eventType'] for e in _events(store)] == ['download_denied_revoked']
        assert _used(store) == 0

    @pytest.mark.asyncio
    async def test_expired(self, make_store, make_entry, clock, now):
        store = make_store(make_entry(expiry=now - timedelta(hours=1)))
        service = DownloadService(store, clock=clock)

        with pytest.raises(LinkExpired) as excinfo:
            await service.download('valid-token-123')

        assert str(excinfo.value) == 'This link has expired'
        assert [e['eventType'] for e in _events(store)] == ['download_denied_expired']
        assert _used(store) == 0

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=5, used_downloads=5))
        service = DownloadService(store, clock=clock)

        with pytest.raises(DownloadLimitReached) as excinfo:
            await service.download('valid-token-123')

        assert str(excinfo.value) == 'Download limit reached'
        assert [e['eventType'] for e in _events(store)] == ['download_denied_quota']
        assert _used(store) == 5

    @pytest.mark.asyncio
    async def test_revoked_wins_over_expired_and_quota(self, make_store, make_entry, clock, now):
        store = make_store(make_entry(
            status='revoked',
            expiry=now - timedelta(days=1),
            max_downloads=1,
            used_downloads=1,
        ))
        service = DownloadService(store, clock=clock)
        with pytest.raises(LinkRevoked):
            await service.download('valid-token-123')

    @pytest.mark.asyncio
    async def test_expired_wins_over_quota(self, make_store, make_entry, clock, now):
        store = make_store(make_entry(
            expiry=now - timedelta(seconds=1),
            max_downloads=1,
            used_downloads=1,
        ))
        service = DownloadService(store, clock=clock)
        with pytest.raises(LinkExpired):
            await service.download('valid-token-123')

    @pytest.mark.asyncio
    async def test_link_expires_between_attempts(self, make_store, make_entry, clock, now):
        store = make_store(make_entry(expiry=now + timedelta(minutes=5), max_downloads=0))
        service = DownloadService(store, clock=clock)

        await service.download('valid-token-123')
        clock.advance(minutes=6)
        with pytest.raises(LinkExpired):
            await service.download('valid-token-123')
        assert _used(store) == 1

    @pytest.mark.asyncio
    async def test_denial_is_deterministic(self, make_store, make_entry, clock):
        store = make_store(make_entry(status='revoked'))
        service = DownloadService(store, clock=clock)
        for _ in range(3):
            with pytest.raises(LinkRevoked):
                await service.download('valid-token-123')
        assert len(_events(store)) == 3

    @pytest.mark.asyncio
    async def test_denial_survives_activity_log_outage(self, make_entry, clock):
        store = AuditOutageStore({'files': [make_entry(status='revoked')]})
        service = DownloadService(store, clock=clock)

        with pytest.raises(LinkRevoked) as excinfo:
            await service.download('valid-token-123')

        assert str(excinfo.value) == 'This link has been revoked'
        assert _events(store) == []
        assert _used(store) == 0

    @pytest.mark.asyncio
    async def test_all_denials_share_a_base(self, make_store, clock):
        service = DownloadService(make_store(), clock=clock)
        with pytest.raises(DownloadDenied) as excinfo:
            await service.download('missing')
        assert excinfo.value.reason is DenialReason.NOT_FOUND


# =====================================================================
# Concurrency through the full path
# =====================================================================


class TestConcurrentDownloads:

    @pytest.mark.asyncio
    async def test_unlimited_link_counts_every_download(self, make_store, make_entry, clock):
        n = 20
        store = make_store(make_entry(max_downloads=0))
        service = DownloadService(store, clock=clock)

        results = await asyncio.gather(
            *(service.download('valid-token-123') for _ in range(n))
        )

        assert len(results) == n
        assert _used(store) == n
        assert [e['eventType'] for e in _events(store)] == ['download_success'] * n

    @pytest.mark.asyncio
    async def test_exactly_quota_downloads_succeed(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=4, used_downloads=0))
        service = DownloadService(store, clock=clock)

        results = await asyncio.gather(
            *(service.download('valid-token-123') for _ in range(10)),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        denied = [r for r in results if isinstance(r, Exception)]
        assert len(succeeded) == 4
        assert all(isinstance(r, DownloadLimitReached) for r in denied)
        assert _used(store) == 4
        types = [e['eventType'] for e in _events(store)]
        assert types.count('download_success') == 4
        assert types.count('download_denied_quota') == 6


# =====================================================================
# Integrity faults
# =====================================================================


class TestIntegrityFaults:

    @pytest.mark.asyncio
    async def test_decode_failure_still_counted(self, make_store, make_entry, clock):
        store = make_store(make_entry(content_ref='data:text/plain;base64,%%%'))
        service = DownloadService(store, clock=clock)

        with pytest.raises(ContentDecodeError) as excinfo:
            await service.download('valid-token-123')

        assert not isinstance(excinfo.value, DownloadDenied)
        assert excinfo.value.file_id == 'test-file-1'
        assert _used(store) == 1
        assert [e['eventType'] for e in _events(store)] == ['download_success']

    @pytest.mark.asyncio
    async def test_malformed_matching_record(self, make_store, make_entry, clock):
        entry = make_entry()
        entry['expiryTimestamp'] = 'not-a-date'
        store = make_store(entry)
        service = DownloadService(store, clock=clock)

        with pytest.raises(MalformedRecordError):
            await service.download('valid-token-123')
        assert _events(store) == []

    @pytest.mark.asyncio
    async def test_malformed_neighbour_is_ignored(self, make_store, make_entry, clock):
        broken = make_entry(file_id='broken', token='other-token')
        broken['maxDownloads'] = -3
        store = make_store(broken, make_entry())
        service = DownloadService(store, clock=clock)

        result = await service.download('valid-token-123')
        assert result.payload == b'Hello World'
        assert _used(store, 1) == 1


# =====================================================================
# Read-only operations
# =====================================================================


class TestInspectAndActivity:

    @pytest.mark.asyncio
    async def test_inspect_has_no_side_effects(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=5, used_downloads=2))
        service = DownloadService(store, clock=clock)
        before = store.snapshot()

        status = await service.inspect('valid-token-123')

        assert status.downloadable
        assert status.remaining_downloads == 3
        assert status.checked_at == clock.now
        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_inspect_reports_denial_reason(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=1, used_downloads=1))
        status = await DownloadService(store, clock=clock).inspect('valid-token-123')
        assert not status.downloadable
        assert status.decision.reason is DenialReason.QUOTA_EXCEEDED
        assert status.remaining_downloads == 0

    @pytest.mark.asyncio
    async def test_inspect_unlimited(self, make_store, make_entry, clock):
        store = make_store(make_entry(max_downloads=0))
        status = await DownloadService(store, clock=clock).inspect('valid-token-123')
        assert status.remaining_downloads is None

    @pytest.mark.asyncio
    async def test_inspect_unknown_token(self, make_store, clock):
        store = make_store()
        service = DownloadService(store, clock=clock)
        with pytest.raises(LinkNotFound):
            await service.inspect('missing')
        assert _events(store) == []

    @pytest.mark.asyncio
    async def test_activity_lists_token_events(self, make_store, make_entry, clock):
        store = make_store(
            make_entry(file_id='a', token='tok-a'),
            make_entry(file_id='b', token='tok-b', status='revoked'),
        )
        service = DownloadService(store, clock=clock)
        await service.download('tok-a')
        with pytest.raises(LinkRevoked):
            await service.download('tok-b')

        events = await service.activity('tok-a')
        assert [e.file_id for e in events] == ['a']
        assert len(await service.activity('tok-b', limit=5)) == 1
