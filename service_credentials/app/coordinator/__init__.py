"""
Refresh coordination package.

``RefreshCoordinator`` runs the cache-aside-with-lock protocol;
``CredentialSource`` variants wire it to a local or a shared store.
"""

from .refresh import RefreshCoordinator, RefreshFn
from .sources import CredentialSource, LocalOnlySource, SharedViaLockSource

__all__ = [
    "RefreshCoordinator",
    "RefreshFn",
    "CredentialSource",
    "LocalOnlySource",
    "SharedViaLockSource",
]
