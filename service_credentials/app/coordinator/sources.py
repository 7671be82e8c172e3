"""
Credential source strategies.

A source decides where credentials live and how concurrent refreshes
are serialized. Callers pick one at construction time:

- ``LocalOnlySource`` keeps credentials inside the current process.
  Concurrent callers wait for the in-flight refresh.
- ``SharedViaLockSource`` keeps credentials in the shared store and
  serializes refreshes through the distributed lock, so every process
  sees the same value. Callers that lose the lock race get the last
  known value instead of waiting.
"""

from abc import ABC, abstractmethod
from typing import Optional

from shared.metrics import MetricsCollector
from ..cache.credential_cache import CredentialCache, CredentialKey, DEFAULT_CACHE_TTL, DEFAULT_STALE_TTL
from ..events.notifier import ChangeNotifier
from ..locking.distributed_lock import DistributedLock, DEFAULT_LEASE_MS, DEFAULT_POLL_INTERVAL
from ..store.base import SharedStore
from ..store.memory import InMemorySharedStore
from .refresh import RefreshCoordinator, RefreshFn


DEFAULT_NAMESPACE = "cred"


class CredentialSource(ABC):
    """Per-owner access to cached credentials.

    Subclasses decide where values live (``_create_store``) and how long
    a caller waits for a refresh running elsewhere
    (``_default_acquire_timeout``).
    """

    def __init__(
        self,
        owner_id: str,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        stale_ttl: int = DEFAULT_STALE_TTL,
        lease_ms: int = DEFAULT_LEASE_MS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        acquire_timeout: Optional[float] = None,
        renew_lease: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.owner_id = owner_id
        self.namespace = namespace
        self.store = self._create_store()
        if acquire_timeout is None:
            acquire_timeout = self._default_acquire_timeout(lease_ms)
        self.coordinator = RefreshCoordinator(
            CredentialCache(self.store, default_ttl=cache_ttl, stale_ttl=stale_ttl),
            DistributedLock(self.store, lease_ms=lease_ms, poll_interval=poll_interval),
            acquire_timeout=acquire_timeout,
            renew_lease=renew_lease,
            metrics=metrics,
        )

    @abstractmethod
    def _create_store(self) -> SharedStore:
        """Return the store holding this owner's credentials and lock."""

    @abstractmethod
    def _default_acquire_timeout(self, lease_ms: int) -> float:
        """Seconds to wait for the refresh lock when none is configured."""

    @property
    def notifier(self) -> ChangeNotifier:
        return self.coordinator.notifier

    def key_for(self, field: str) -> CredentialKey:
        return CredentialKey(self.namespace, self.owner_id, field)

    async def get(self, field: str, refresh_fn: RefreshFn) -> str:
        return await self.coordinator.get_or_refresh(self.key_for(field), refresh_fn)

    async def refresh(self, field: str, refresh_fn: RefreshFn, current: Optional[str] = None) -> str:
        return await self.coordinator.force_refresh(self.key_for(field), refresh_fn, current)


class LocalOnlySource(CredentialSource):
    """Process-local credentials; waits up to one lease for an in-flight refresh."""

    def _create_store(self) -> SharedStore:
        return InMemorySharedStore()

    def _default_acquire_timeout(self, lease_ms: int) -> float:
        return lease_ms / 1000.0


class SharedViaLockSource(CredentialSource):
    """Credentials shared by every process through ``store``; never waits."""

    def __init__(self, owner_id: str, store: SharedStore, **kwargs):
        self._shared_store = store
        super().__init__(owner_id, **kwargs)

    def _create_store(self) -> SharedStore:
        return self._shared_store

    def _default_acquire_timeout(self, lease_ms: int) -> float:
        return 0.0
