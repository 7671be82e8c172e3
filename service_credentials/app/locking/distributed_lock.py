"""
Lease-based mutual exclusion on top of the shared store.
"""

import asyncio
import uuid
from dataclasses import dataclass, replace
from typing import Optional

from shared.logging import get_logger
from shared.errors import StoreUnavailableError
from ..store.base import SharedStore


DEFAULT_LEASE_MS = 10 * 1000
DEFAULT_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class LockHandle:
    """Proof of ownership for one successful acquisition."""
    key: str
    token: str
    lease_ms: int
    lease_expiry: float

    def is_expired(self, now: float) -> bool:
        return now >= self.lease_expiry


class DistributedLock:
    """Lease lock whose release is fenced by a per-acquisition token.

    ``acquire`` never raises on contention: it returns ``None`` when the
    lock could not be taken within ``timeout`` seconds. The default
    timeout of zero makes a single attempt.
    """

    def __init__(
        self,
        store: SharedStore,
        lease_ms: int = DEFAULT_LEASE_MS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        if lease_ms <= 0:
            raise ValueError("lease_ms must be positive")
        self.store = store
        self.lease_ms = lease_ms
        self.poll_interval = poll_interval
        self.logger = get_logger("credentials.lock")

    async def acquire(
        self,
        key: str,
        lease_ms: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[LockHandle]:
        """Try to take ``key`` for ``lease_ms``, polling up to ``timeout`` seconds."""
        lease_ms = lease_ms or self.lease_ms
        timeout = timeout or 0.0
        token = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            while True:
                started = self.store.now()
                if await self.store.acquire_if_absent(key, token, lease_ms):
                    self.logger.debug("Lock acquired", key=key, lease_ms=lease_ms)
                    return LockHandle(
                        key=key,
                        token=token,
                        lease_ms=lease_ms,
                        lease_expiry=started + lease_ms / 1000.0,
                    )

                remaining = deadline - loop.time()
                if remaining <= 0:
                    self.logger.debug("Lock contended", key=key, timeout=timeout)
                    return None

                await asyncio.sleep(min(self.poll_interval, remaining))

        except asyncio.CancelledError:
            # The SET may have landed before the cancellation reached us.
            await self._release_quietly(key, token)
            raise

    async def release(self, handle: LockHandle) -> bool:
        """Release ``handle`` if it still owns the lock.

        Returns False for a handle that already expired, was released, or
        lost its lease to another holder. Store failures are logged and
        swallowed: the lease expires on its own.
        """
        released = await self._release_quietly(handle.key, handle.token)
        if released:
            self.logger.debug("Lock released", key=handle.key)
        return released

    async def extend(self, handle: LockHandle, lease_ms: Optional[int] = None) -> Optional[LockHandle]:
        """Push the lease deadline forward; None when ownership was lost."""
        lease_ms = lease_ms or handle.lease_ms
        started = self.store.now()
        if not await self.store.extend_if_matches(handle.key, handle.token, lease_ms):
            return None
        return replace(handle, lease_ms=lease_ms, lease_expiry=started + lease_ms / 1000.0)

    async def _release_quietly(self, key: str, token: str) -> bool:
        try:
            return await self.store.release_if_matches(key, token)
        except StoreUnavailableError as e:
            self.logger.warning("Lock release failed, lease will expire", key=key, error=e.message)
            return False
