"""
Shared store package.

``SharedStore`` is the contract the lock and the credential cache are
written against. ``RedisSharedStore`` is the production backend;
``InMemorySharedStore`` serves single-process deployments and tests.
"""

from .base import SharedStore
from .memory import InMemorySharedStore
from .redis_store import RedisSharedStore

__all__ = ["SharedStore", "InMemorySharedStore", "RedisSharedStore"]
