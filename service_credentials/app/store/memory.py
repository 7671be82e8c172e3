"""
In-process shared store for single-node deployments and tests.
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from .base import SharedStore


class InMemorySharedStore(SharedStore):
    """Dictionary-backed store with per-key expiry.

    A ``threading.Lock`` makes every operation atomic across threads and
    event loops of the same process. ``clock`` returns wall-clock seconds
    and can be replaced to drive expiry deterministically.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}  # value, expires_at
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def _live_value(self, key: str) -> Optional[str]:
        # caller holds self._lock
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live_value(key)

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    async def acquire_if_absent(self, key: str, token: str, lease_ms: int) -> bool:
        with self._lock:
            if self._live_value(key) is not None:
                return False
            self._data[key] = (token, self._clock() + lease_ms / 1000.0)
            return True

    async def release_if_matches(self, key: str, token: str) -> bool:
        with self._lock:
            if self._live_value(key) != token:
                return False
            del self._data[key]
            return True

    async def extend_if_matches(self, key: str, token: str, lease_ms: int) -> bool:
        with self._lock:
            if self._live_value(key) != token:
                return False
            self._data[key] = (token, self._clock() + lease_ms / 1000.0)
            return True

    def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime of ``key`` in seconds, None when absent."""
        with self._lock:
            if self._live_value(key) is None:
                return None
            expires_at = self._data[key][1]
            return None if expires_at is None else expires_at - self._clock()
