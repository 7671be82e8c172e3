"""
Cache-aside refresh coordination across processes.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from shared.logging import get_logger, mask_secret
from shared.errors import (
    CredentialNotAvailableError,
    LockContendedError,
    RefreshFailedError,
)
from shared.metrics import MetricsCollector
from ..cache.credential_cache import CredentialCache, CredentialKey
from ..events.notifier import ChangeEvent, ChangeKind, ChangeNotifier
from ..locking.distributed_lock import DistributedLock, LockHandle


RefreshFn = Callable[[], Awaitable[str]]


class RefreshCoordinator:
    """Collapses concurrent cache misses into a single issuer refresh.

    Flow per call: read the cache; on a miss take the owner's lock,
    read again, and only if still missing call ``refresh_fn``, store the
    result, publish a change event and release the lock. A caller that
    cannot take the lock gets the last-known-good value or
    ``CredentialNotAvailableError``.
    """

    def __init__(
        self,
        cache: CredentialCache,
        lock: DistributedLock,
        notifier: Optional[ChangeNotifier] = None,
        *,
        acquire_timeout: float = 0.0,
        renew_lease: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.cache = cache
        self.lock = lock
        self.notifier = notifier or ChangeNotifier(metrics=metrics)
        self.acquire_timeout = acquire_timeout
        self.renew_lease = renew_lease
        self.metrics = metrics
        self.logger = get_logger("credentials.coordinator")

    async def get_or_refresh(self, key: CredentialKey, refresh_fn: RefreshFn) -> str:
        """Return the cached credential for ``key``, refreshing it on a miss."""
        value = await self.cache.read(key)
        if value is not None:
            self._record_lookup("hit")
            return value

        self._record_lookup("miss")
        try:
            handle = await self._acquire(key)
        except LockContendedError as e:
            return await self._contended(key, e)

        try:
            value = await self.cache.read(key)
            if value is not None:
                self.logger.debug("Credential populated by another holder", key=key.cache_key)
                return value

            return await self._refresh_and_store(key, handle, refresh_fn)
        finally:
            await self.lock.release(handle)

    async def force_refresh(
        self,
        key: CredentialKey,
        refresh_fn: RefreshFn,
        current: Optional[str] = None,
    ) -> str:
        """Replace ``current`` (a value the issuer rejected) with a fresh one.

        If the cached value already differs from ``current`` once the lock
        is held, another process refreshed it first and that value is
        returned instead.
        """
        try:
            handle = await self._acquire(key)
        except LockContendedError as e:
            raise CredentialNotAvailableError(key.cache_key, details={"reason": e.code}) from e

        try:
            value = await self.cache.read(key)
            if value is not None and current is not None and value != current:
                return value

            return await self._refresh_and_store(key, handle, refresh_fn)
        finally:
            await self.lock.release(handle)

    async def _acquire(self, key: CredentialKey) -> LockHandle:
        handle = await self.lock.acquire(key.lock_key, timeout=self.acquire_timeout)
        if handle is None:
            if self.metrics:
                self.metrics.record_lock_attempt("contended")
            raise LockContendedError(key.lock_key, details={"timeout": self.acquire_timeout})
        if self.metrics:
            self.metrics.record_lock_attempt("acquired")
        return handle

    async def _contended(self, key: CredentialKey, error: LockContendedError) -> str:
        value = await self.cache.read_stale(key)
        if value is not None:
            self._record_lookup("stale")
            self.logger.info("Refresh in progress elsewhere, serving last known value", key=key.cache_key, code=error.code)
            return value

        self._record_lookup("unavailable")
        self.logger.info("Refresh in progress elsewhere, nothing cached", key=key.cache_key, code=error.code)
        raise CredentialNotAvailableError(key.cache_key, details={"lock_key": key.lock_key}) from error

    async def _refresh_and_store(self, key: CredentialKey, handle: LockHandle, refresh_fn: RefreshFn) -> str:
        value = await self._invoke_refresh(key, handle, refresh_fn)

        await self.cache.write(key, value)
        self.logger.info("Credential refreshed", key=key.cache_key, value=mask_secret(value))

        event = ChangeEvent(
            owner_id=key.owner_id,
            kind=ChangeKind.CREDENTIAL_REFRESHED,
            key=key.cache_key,
            new_value=value,
        )
        await self.notifier.publish(event)
        return value

    async def _invoke_refresh(self, key: CredentialKey, handle: LockHandle, refresh_fn: RefreshFn) -> str:
        keepalive = None
        if self.renew_lease:
            keepalive = asyncio.create_task(self._keep_lease(handle))

        start = time.time()
        try:
            value = await refresh_fn()
        except RefreshFailedError as e:
            self._record_refresh("failed", start)
            self.logger.error("Credential refresh failed", key=key.cache_key, code=e.code, error=e.message)
            raise
        except Exception as e:
            self._record_refresh("failed", start)
            self.logger.error("Credential refresh failed", key=key.cache_key, error=str(e))
            raise RefreshFailedError(
                f"Refresh of {key.cache_key} failed: {e}",
                details={"key": key.cache_key, "error": str(e)}
            ) from e
        finally:
            if keepalive is not None:
                keepalive.cancel()
                await asyncio.gather(keepalive, return_exceptions=True)

        if not isinstance(value, str) or not value.strip():
            self._record_refresh("invalid", start)
            raise RefreshFailedError(
                f"Refresh of {key.cache_key} returned an empty credential",
                details={"key": key.cache_key}
            )

        self._record_refresh("success", start)
        return value

    async def _keep_lease(self, handle: LockHandle) -> None:
        interval = handle.lease_ms / 3000.0
        while True:
            await asyncio.sleep(interval)
            try:
                renewed = await self.lock.extend(handle)
            except Exception as e:
                self.logger.warning("Lease renewal failed", key=handle.key, error=str(e))
                continue
            if renewed is None:
                self.logger.warning("Lost refresh lock while refreshing", key=handle.key)
                return
            handle = renewed

    def _record_lookup(self, result: str):
        if self.metrics:
            self.metrics.record_lookup(result)

    def _record_refresh(self, status: str, start: float):
        if self.metrics:
            self.metrics.record_refresh(status, time.time() - start)
