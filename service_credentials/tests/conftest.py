"""
Shared fixtures for credentials service tests.
"""

import pytest

from service_credentials.app.store.memory import InMemorySharedStore
from service_credentials.app.cache.credential_cache import CredentialCache, CredentialKey
from service_credentials.app.locking.distributed_lock import DistributedLock


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingObserver:
    """Observer that remembers every event it receives."""

    def __init__(self):
        self.events = []

    def on_change(self, event):
        self.events.append(event)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemorySharedStore(clock=clock)


@pytest.fixture
def cache(store):
    return CredentialCache(store, default_ttl=7100, stale_ttl=7200)


@pytest.fixture
def lock(store):
    return DistributedLock(store, lease_ms=10_000, poll_interval=0.01)


@pytest.fixture
def token_key():
    return CredentialKey("cred", "app1", "token")


@pytest.fixture
def recording_observer():
    return RecordingObserver()
