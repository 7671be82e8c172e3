"""
Namespaced credential storage in the shared store.
"""

from dataclasses import dataclass
from typing import Optional

from shared.logging import get_logger, mask_secret
from shared.errors import ValidationError
from ..store.base import SharedStore


LOCK_SUFFIX = "sync"
STALE_SUFFIX = "stale"

# Issuer tokens live 7200s; expiring ours earlier forces a proactive refresh.
DEFAULT_CACHE_TTL = 7100
DEFAULT_STALE_TTL = 7200


@dataclass(frozen=True)
class CredentialKey:
    """Identifies one credential of one owner across all processes."""
    namespace: str
    owner_id: str
    field: str

    def __post_init__(self):
        for name in ("namespace", "owner_id", "field"):
            part = getattr(self, name)
            if not isinstance(part, str) or not part:
                raise ValidationError(f"Credential key {name} must be a non-empty string")
            if ":" in part:
                raise ValidationError(
                    f"Credential key {name} must not contain ':'",
                    details={name: part}
                )
        if self.field == LOCK_SUFFIX:
            raise ValidationError(
                f"Field name '{LOCK_SUFFIX}' is reserved for the refresh lock",
                details={"field": self.field}
            )

    @property
    def cache_key(self) -> str:
        return f"{self.namespace}:{self.owner_id}:{self.field}"

    @property
    def lock_key(self) -> str:
        """One lock per owner guards every field of that owner."""
        return f"{self.namespace}:{self.owner_id}:{LOCK_SUFFIX}"

    @property
    def stale_key(self) -> str:
        return f"{self.cache_key}:{STALE_SUFFIX}"

    def __str__(self) -> str:
        return self.cache_key


class CredentialCache:
    """Reads and writes credential values with a TTL.

    Each write also refreshes a last-known-good copy that outlives the
    primary entry; it is what callers get while another process holds
    the refresh lock.
    """

    def __init__(
        self,
        store: SharedStore,
        default_ttl: int = DEFAULT_CACHE_TTL,
        stale_ttl: int = DEFAULT_STALE_TTL,
    ):
        if default_ttl <= 0 or stale_ttl <= 0:
            raise ValueError("TTLs must be positive")
        self.store = store
        self.default_ttl = default_ttl
        self.stale_ttl = max(stale_ttl, default_ttl)
        self.logger = get_logger("credentials.cache")

    async def read(self, key: CredentialKey) -> Optional[str]:
        """Return the live credential, None on a miss."""
        value = await self.store.get(key.cache_key)
        return value or None

    async def read_stale(self, key: CredentialKey) -> Optional[str]:
        """Return the live credential or, failing that, the last-known-good copy."""
        value = await self.store.get(key.cache_key)
        if value:
            return value
        value = await self.store.get(key.stale_key)
        return value or None

    async def write(self, key: CredentialKey, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Overwrite the credential. Callers must hold the owner's lock."""
        if not isinstance(value, str) or not value:
            raise ValidationError("Refusing to cache an empty credential", details={"key": key.cache_key})

        ttl = ttl_seconds or self.default_ttl
        # The primary entry is the commit point; a failed write leaves nothing new live.
        await self.store.set_with_expiry(key.stale_key, value, max(ttl, self.stale_ttl))
        await self.store.set_with_expiry(key.cache_key, value, ttl)

        self.logger.debug("Cached credential", key=key.cache_key, ttl=ttl, value=mask_secret(value))
