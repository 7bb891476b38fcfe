import json
import logging
import time
from typing import Any, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# CACHE MODULE
# Purpose: keep finished analyses around for a while (keyed by plain strings).
# Values must be JSON-serializable. Last write wins, no locking.
# -----------------------------------------------------------------------------


class Cache(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...


class MemoryCache:
    """Process-local cache, used when no Redis URL is configured and in tests."""

    def __init__(self):
        self._entries: Dict[str, Tuple[float, str]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, serialized = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None

        # Stored as JSON so callers never share a mutable object
        return json.loads(serialized)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        serialized = json.dumps(value, default=str)
        now = time.monotonic()
        self._evict_expired(now)
        self._entries[key] = (now + ttl_seconds, serialized)

    def _evict_expired(self, now: float) -> None:
        # Keys that are never read again would otherwise stay forever
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    async def clear(self) -> None:
        self._entries.clear()


class RedisCache:
    """Redis-backed cache (SETEX + JSON)."""

    def __init__(self, client: redis.Redis, prefix: str = "erp_insights:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[Any]:
        data = await self.client.get(self.prefix + key)
        if data is None:
            return None

        try:
            return json.loads(data)
        except ValueError:
            logger.warning(f"Dropping unreadable cache entry {key}")
            await self.client.delete(self.prefix + key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        serialized = json.dumps(value, default=str)
        await self.client.setex(self.prefix + key, ttl_seconds, serialized)

    async def close(self) -> None:
        await self.client.aclose()


def build_cache(redis_url: Optional[str]) -> Cache:
    """Redis when a URL is configured, otherwise an in-memory cache."""
    if redis_url:
        logger.info("Using Redis cache")
        return RedisCache.from_url(redis_url)

    logger.info("REDIS_URL not set, using in-memory cache")
    return MemoryCache()
