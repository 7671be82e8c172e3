"""
Shared store contract used by the credential cache and the refresh lock.
"""

import time
from abc import ABC, abstractmethod
from typing import Optional


class SharedStore(ABC):
    """Atomic key/value primitives shared by every process.

    Implementations must make each operation atomic with respect to
    concurrent callers in other processes and raise
    ``StoreUnavailableError`` when the backend cannot be reached.
    """

    async def start(self) -> None:
        """Open backend resources."""

    async def stop(self) -> None:
        """Release backend resources."""

    async def health_check(self) -> bool:
        return True

    def now(self) -> float:
        """Wall-clock seconds used for lease bookkeeping."""
        return time.time()

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None when absent."""

    @abstractmethod
    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        """Overwrite ``key`` with ``value`` expiring after ``ttl_seconds``."""

    @abstractmethod
    async def acquire_if_absent(self, key: str, token: str, lease_ms: int) -> bool:
        """Store ``token`` under ``key`` only if the key is absent."""

    @abstractmethod
    async def release_if_matches(self, key: str, token: str) -> bool:
        """Delete ``key`` only if it currently holds ``token``."""

    @abstractmethod
    async def extend_if_matches(self, key: str, token: str, lease_ms: int) -> bool:
        """Reset the expiry of ``key`` only if it currently holds ``token``."""
