"""Shared test fixtures for typingstats tests."""

from datetime import datetime

import pytest

from typingstats.core.kv_backend import MemoryCloud, MemoryKeyValueBackend
from typingstats.core.local_store import LocalStore
from typingstats.core.remote_store import RemoteSyncStore


class FakeClock:
    """Callable clock whose time can be moved by tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    """Clock fixed at 2024-01-03 12:00 local time."""
    return FakeClock(datetime(2024, 1, 3, 12, 0))


@pytest.fixture
def local_store(tmp_path):
    """Local store in a temporary directory."""
    return LocalStore(tmp_path / "data")


@pytest.fixture
def cloud():
    """Shared in-memory key space standing in for the cloud."""
    return MemoryCloud()


@pytest.fixture
def remote_store(cloud):
    """Remote store attached to the shared cloud."""
    backend = MemoryKeyValueBackend(cloud)
    yield RemoteSyncStore(backend)
    backend.close()
