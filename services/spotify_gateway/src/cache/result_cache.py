"""
Expiring result cache for upstream reads and derived lookups.

Values are opaque strings; callers serialize before writing. Every write
carries a bounded TTL and reads never return expired entries.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from services.spotify_gateway.src.config import CacheConfig
from services.spotify_gateway.src.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def build_cache_key(*components: Any) -> str:
    """Build a deterministic cache key from its components.

    ``None`` components are rendered as ``any`` so optional filters keep a
    stable slot in the key.
    """
    return ":".join("any" if component is None else str(component) for component in components)


class ResultCache(ABC):
    """Key-value cache with per-entry expiry."""

    def __init__(self, key_prefix: str = "", default_ttl: int = 3600) -> None:
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def _ttl(self, ttl: int | None) -> int:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("Cache entries require a positive TTL")
        return ttl

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get a cached value, or None on a miss."""

    @abstractmethod
    async def get_many(self, keys: Sequence[str]) -> list[str | None]:
        """Get several cached values, preserving order."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store a value that expires after ``ttl`` seconds."""

    async def get_json(self, key: str) -> Any | None:
        cached = await self.get(key)
        return json.loads(cached) if cached is not None else None

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self.set_with_ttl(key, json.dumps(value, separators=(",", ":")), ttl)

    async def close(self) -> None:
        """Release backend resources."""


class RedisResultCache(ResultCache):
    """Result cache backed by Redis, shared across service instances."""

    def __init__(self, client: redis.Redis, key_prefix: str = "", default_ttl: int = 3600) -> None:
        """Initialize the cache.

        Args:
            client: Redis client created with ``decode_responses=True``
            key_prefix: Namespace prepended to every key
            default_ttl: TTL used when a write does not specify one
        """
        super().__init__(key_prefix, default_ttl)
        self.client = client

    async def get(self, key: str) -> str | None:
        full_key = self._full_key(key)
        try:
            value = await self.client.get(full_key)
        except RedisError as e:
            logger.error(f"Cache read failed for key {full_key}: {e}")
            raise PersistenceError(f"Cache read failed for key {full_key}", "get") from e

        if value is not None:
            logger.debug(f"Cache hit for key: {full_key}")
        return value  # type: ignore[no-any-return]

    async def get_many(self, keys: Sequence[str]) -> list[str | None]:
        if not keys:
            return []
        try:
            return list(await self.client.mget([self._full_key(key) for key in keys]))
        except RedisError as e:
            logger.error(f"Cache multi-read failed: {e}")
            raise PersistenceError("Cache multi-read failed", "get_many") from e

    async def set_with_ttl(self, key: str, value: str, ttl: int | None = None) -> None:
        full_key = self._full_key(key)
        ttl = self._ttl(ttl)
        try:
            await self.client.setex(full_key, ttl, value)
        except RedisError as e:
            logger.error(f"Cache write failed for key {full_key}: {e}")
            raise PersistenceError(f"Cache write failed for key {full_key}", "set") from e
        logger.debug(f"Cached key {full_key} with TTL {ttl}s")

    async def close(self) -> None:
        await self.client.aclose()


class MemoryResultCache(ResultCache):
    """In-process expiring cache, used when Redis is disabled and in tests.

    Expired entries are dropped when read, and every write at least
    ``sweep_interval`` seconds after the last sweep clears the rest.
    """

    def __init__(self, key_prefix: str = "", default_ttl: int = 3600, sweep_interval: float = 60.0) -> None:
        super().__init__(key_prefix, default_ttl)
        self._entries: dict[str, tuple[str, float]] = {}  # key -> (value, expiry_time)
        self._time = time
        self.sweep_interval = sweep_interval
        self._next_sweep = 0.0

    async def get(self, key: str) -> str | None:
        full_key = self._full_key(key)
        entry = self._entries.get(full_key)
        if entry is None:
            return None

        value, expiry_time = entry
        if self._time.monotonic() >= expiry_time:
            del self._entries[full_key]
            return None
        return value

    async def get_many(self, keys: Sequence[str]) -> list[str | None]:
        return [await self.get(key) for key in keys]

    async def set_with_ttl(self, key: str, value: str, ttl: int | None = None) -> None:
        now = self._time.monotonic()
        expiry_time = now + self._ttl(ttl)
        if now >= self._next_sweep:
            await self.clear_expired()
            self._next_sweep = now + self.sweep_interval
        self._entries[self._full_key(key)] = (value, expiry_time)

    async def clear_expired(self) -> int:
        """Clear expired entries from the cache.

        Returns:
            Number of entries cleared
        """
        now = self._time.monotonic()
        expired_keys = [key for key, (_, expiry_time) in self._entries.items() if now >= expiry_time]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.debug(f"Cleared {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._entries)


def create_result_cache(config: CacheConfig) -> ResultCache:
    """Create the result cache selected by configuration."""
    if not config.enabled:
        logger.info("Redis cache disabled, using in-memory result cache")
        return MemoryResultCache(config.key_prefix, config.default_ttl)

    client = redis.Redis(
        host=config.redis_host,
        port=config.redis_port,
        db=config.redis_db,
        password=config.redis_password,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    logger.info(f"Redis result cache initialized at {config.redis_host}:{config.redis_port}")
    return RedisResultCache(client, config.key_prefix, config.default_ttl)
