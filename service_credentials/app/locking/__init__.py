"""
Distributed lock package.

Provides the lease lock that serializes credential refreshes per owner.
"""

from .distributed_lock import DistributedLock, LockHandle, DEFAULT_LEASE_MS

__all__ = ["DistributedLock", "LockHandle", "DEFAULT_LEASE_MS"]
