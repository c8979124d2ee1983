"""Shared fixtures for the sync core tests."""

import pytest

from homestead_sync.core.sync import (
    ChangeInterceptor,
    ConflictResolver,
    InMemoryRemoteReplica,
    RecordLocks,
    RetryPolicy,
    SyncCycleEngine,
    SyncMetadata,
)
from homestead_sync.database import InMemoryRecordStore


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1) -> int:
        self.now += ms
        return self.now


class Device:
    """One client: its own store, outbox and engine, sharing a remote."""

    def __init__(self, remote, clock, retry_policy=None, network_timeout=1.0):
        self.store = InMemoryRecordStore()
        self.locks = RecordLocks()
        self.interceptor = ChangeInterceptor(self.store, self.locks, clock)
        self.metadata = SyncMetadata(self.store)
        self.resolver = ConflictResolver(
            self.store, self.interceptor, self.metadata, self.locks, clock
        )
        self.engine = SyncCycleEngine(
            self.store,
            remote,
            self.interceptor,
            self.resolver,
            self.metadata,
            locks=self.locks,
            retry_policy=retry_policy or RetryPolicy(),
            network_timeout=network_timeout,
            clock=clock,
        )


@pytest.fixture
def clock():
    """Deterministic millisecond clock."""
    return FakeClock()


@pytest.fixture
def remote():
    """Shared in-memory remote replica."""
    return InMemoryRemoteReplica()


@pytest.fixture
def device(remote, clock):
    """A single device wired to the shared remote."""
    return Device(remote, clock)


@pytest.fixture
def make_device(remote, clock):
    """Factory for additional devices sharing the remote and clock."""

    def _make(**kwargs):
        return Device(remote, clock, **kwargs)

    return _make
