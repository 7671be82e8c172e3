"""
Redis-backed shared store.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import StoreUnavailableError
from .base import SharedStore


# Compare-and-delete: only the holder of the token may remove the lock.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisSharedStore(SharedStore):
    """Shared store on top of a pooled ``redis.asyncio`` client.

    Every command checks a connection out of the client's pool and hands
    it back as soon as the reply arrives, so nothing is held while the
    caller talks to the credential issuer.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Optional[redis.Redis] = None,
        max_connections: int = 20,
        socket_timeout: float = 5.0,
    ):
        if redis_url is None and client is None:
            raise ValueError("Either redis_url or client is required")
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout
        self.logger = get_logger("credentials.store.redis")
        self.redis: Optional[redis.Redis] = client
        self._owns_client = client is None

    async def start(self):
        """Open the connection pool."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self.max_connections,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                health_check_interval=30
            )

        try:
            await self.redis.ping()
        except RedisError as e:
            self.logger.error("Failed to start Redis store", error=str(e))
            raise StoreUnavailableError("Redis unavailable", details={"error": str(e)}) from e

        self.logger.info("Redis store started")

    async def stop(self):
        """Close the connection pool if this store created it."""
        if self.redis is not None and self._owns_client:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis store stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise StoreUnavailableError("Redis store not started")
        return self.redis

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._client().get(key)
        except RedisError as e:
            raise StoreUnavailableError("Redis GET failed", details={"key": key, "error": str(e)}) from e

        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client().setex(key, ttl_seconds, value)
        except RedisError as e:
            raise StoreUnavailableError("Redis SETEX failed", details={"key": key, "error": str(e)}) from e

    async def acquire_if_absent(self, key: str, token: str, lease_ms: int) -> bool:
        try:
            result = await self._client().set(key, token, nx=True, px=lease_ms)
        except RedisError as e:
            raise StoreUnavailableError("Redis SET NX failed", details={"key": key, "error": str(e)}) from e
        return bool(result)

    async def release_if_matches(self, key: str, token: str) -> bool:
        try:
            result = await self._client().eval(RELEASE_SCRIPT, 1, key, token)
        except RedisError as e:
            raise StoreUnavailableError("Redis lock release failed", details={"key": key, "error": str(e)}) from e
        return int(result or 0) == 1

    async def extend_if_matches(self, key: str, token: str, lease_ms: int) -> bool:
        try:
            result = await self._client().eval(EXTEND_SCRIPT, 1, key, token, lease_ms)
        except RedisError as e:
            raise StoreUnavailableError("Redis lock extend failed", details={"key": key, "error": str(e)}) from e
        return int(result or 0) == 1

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._client().ping()
            return True
        except (RedisError, StoreUnavailableError):
            return False
