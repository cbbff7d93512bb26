"""Pytest configuration for vaultdrop tests."""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from vaultdrop.store import InMemoryRecordStore

HELLO_DATA_URL = 'data:text/plain;base64,SGVsbG8gV29ybGQ='  # "Hello World"


class FrozenClock:
    """Callable clock pinned to an instant; tests move it explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_file_entry(
    *,
    file_id: str = 'test-file-1',
    name: str = 'test.pdf',
    token: str = 'valid-token-123',
    mime_type: str = 'application/pdf',
    expiry: datetime | None = None,
    max_downloads: int = 5,
    used_downloads: int = 0,
    status: str = 'active',
    content_ref: str = HELLO_DATA_URL,
    now: datetime | None = None,
) -> dict:
    """Raw stored file entry, shaped like the persisted JSON."""
    now = now or datetime.now(timezone.utc)
    expiry = expiry or now + timedelta(hours=24)
    return {
        'id': file_id,
        'name': name,
        'size': 1024,
        'mimeType': mime_type,
        'uploadedAt': now.isoformat(),
        'accessToken': token,
        'expiryTimestamp': expiry.isoformat(),
        'maxDownloads': max_downloads,
        'usedDownloads': used_downloads,
        'status': status,
        'visibility': 'private',
        'uploadedBy': 'user-1',
        'uploadedByName': 'Test User',
        'contentRef': content_ref,
    }


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now) -> FrozenClock:
    return FrozenClock(now)


@pytest.fixture
def make_store(now):
    """Factory: in-memory store seeded with the given raw file entries."""

    def _make(*entries: dict) -> InMemoryRecordStore:
        return InMemoryRecordStore({'files': list(entries), 'activities': []})

    return _make


@pytest.fixture
def make_entry(now):
    """Factory for raw stored file entries (see ``make_file_entry``)."""

    def _make(**kwargs) -> dict:
        kwargs.setdefault('now', now)
        return make_file_entry(**kwargs)

    return _make
