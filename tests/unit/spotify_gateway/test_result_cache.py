"""Unit tests for the result cache."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from services.spotify_gateway.src.cache.result_cache import (
    MemoryResultCache,
    RedisResultCache,
    build_cache_key,
    create_result_cache,
)
from services.spotify_gateway.src.config import CacheConfig
from services.spotify_gateway.src.exceptions import PersistenceError


class FakeClock:
    def __init__(self) -> None:
        self.now = 500.0

    def monotonic(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    cache = MemoryResultCache(key_prefix="test", default_ttl=60)
    cache._time = clock
    return cache


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.mget = AsyncMock(return_value=[])
    client.setex = AsyncMock()
    client.aclose = AsyncMock()
    return client


class TestBuildCacheKey:
    """Test cache key construction."""

    def test_joins_components(self):
        assert build_cache_key("tracks", "user-1", "liked_tracks", 50, 0, "rock") == (
            "tracks:user-1:liked_tracks:50:0:rock"
        )

    def test_none_rendered_as_any(self):
        """Test an absent optional filter keeps a stable slot."""
        assert build_cache_key("tracks", "user-1", None) == "tracks:user-1:any"


class TestMemoryResultCache:
    """Test the in-process cache."""

    @pytest.mark.asyncio
    async def test_value_returned_unchanged_before_ttl(self, memory_cache, clock):
        """Test a read before expiry returns exactly what was stored."""
        payload = '{"items":[{"id":"t1","name":"Caf\\u00e9"}]}'
        await memory_cache.set_with_ttl("key", payload, ttl=10)

        clock.now += 9.9

        assert await memory_cache.get("key") == payload

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, memory_cache, clock):
        """Test a read at or after expiry is a miss and evicts the entry."""
        await memory_cache.set_with_ttl("key", "value", ttl=10)

        clock.now += 10

        assert await memory_cache.get("key") is None
        assert len(memory_cache) == 0

    @pytest.mark.asyncio
    async def test_default_ttl_applied(self, memory_cache, clock):
        """Test writes without a TTL use the default."""
        await memory_cache.set_with_ttl("key", "value")

        clock.now += 59
        assert await memory_cache.get("key") == "value"
        clock.now += 1
        assert await memory_cache.get("key") is None

    @pytest.mark.asyncio
    async def test_rejects_non_positive_ttl(self, memory_cache):
        """Test every entry must expire."""
        with pytest.raises(ValueError):
            await memory_cache.set_with_ttl("key", "value", ttl=0)

    @pytest.mark.asyncio
    async def test_get_many_preserves_order(self, memory_cache):
        await memory_cache.set_with_ttl("a", "1")
        await memory_cache.set_with_ttl("c", "3")

        assert await memory_cache.get_many(["a", "b", "c"]) == ["1", None, "3"]

    @pytest.mark.asyncio
    async def test_json_helpers(self, memory_cache):
        await memory_cache.set_json("tracks", [{"id": "t1"}])

        assert await memory_cache.get_json("tracks") == [{"id": "t1"}]
        assert await memory_cache.get_json("missing") is None

    @pytest.mark.asyncio
    async def test_expired_entries_cleared_on_write(self, memory_cache, clock):
        """Test entries that are never read again do not outlive their TTL."""
        for i in range(1000):
            await memory_cache.set_with_ttl(f"key-{i}", "value", ttl=1)

        clock.now = 10000
        await memory_cache.set_with_ttl("fresh", "value")

        assert len(memory_cache) == 1
        assert await memory_cache.get("fresh") == "value"

    @pytest.mark.asyncio
    async def test_writes_within_sweep_interval_do_not_sweep(self, memory_cache, clock):
        await memory_cache.set_with_ttl("short", "value", ttl=1)

        clock.now += 30
        await memory_cache.set_with_ttl("other", "value")

        assert len(memory_cache) == 2

    @pytest.mark.asyncio
    async def test_clear_expired(self, memory_cache, clock):
        await memory_cache.set_with_ttl("short", "value", ttl=5)
        await memory_cache.set_with_ttl("long", "value", ttl=50)

        clock.now += 5

        assert await memory_cache.clear_expired() == 1
        assert len(memory_cache) == 1
        assert await memory_cache.get("long") == "value"



class TestRedisResultCache:
    """Test the Redis-backed cache."""

    @pytest.mark.asyncio
    async def test_set_uses_setex_with_prefix(self, redis_client):
        cache = RedisResultCache(redis_client, key_prefix="spotify_gateway", default_ttl=3600)

        await cache.set_with_ttl("artist:a1:genres", '["rock"]', ttl=120)

        redis_client.setex.assert_awaited_once_with("spotify_gateway:artist:a1:genres", 120, '["rock"]')

    @pytest.mark.asyncio
    async def test_get_returns_stored_value(self, redis_client):
        redis_client.get.return_value = '["rock"]'
        cache = RedisResultCache(redis_client, key_prefix="spotify_gateway")

        assert await cache.get("artist:a1:genres") == '["rock"]'
        redis_client.get.assert_awaited_once_with("spotify_gateway:artist:a1:genres")

    @pytest.mark.asyncio
    async def test_get_many_uses_mget(self, redis_client):
        redis_client.mget.return_value = ["1", None]
        cache = RedisResultCache(redis_client)

        assert await cache.get_many(["a", "b"]) == ["1", None]
        redis_client.mget.assert_awaited_once_with(["a", "b"])

    @pytest.mark.asyncio
    async def test_get_many_empty_skips_round_trip(self, redis_client):
        cache = RedisResultCache(redis_client)

        assert await cache.get_many([]) == []
        redis_client.mget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backend_failure_raises_persistence_error(self, redis_client):
        """Test Redis errors surface as persistence errors."""
        redis_client.get.side_effect = RedisConnectionError("connection refused")
        redis_client.setex.side_effect = RedisConnectionError("connection refused")
        cache = RedisResultCache(redis_client)

        with pytest.raises(PersistenceError) as exc_info:
            await cache.get("key")
        assert exc_info.value.operation == "get"

        with pytest.raises(PersistenceError):
            await cache.set_with_ttl("key", "value")

    @pytest.mark.asyncio
    async def test_close_closes_client(self, redis_client):
        await RedisResultCache(redis_client).close()

        redis_client.aclose.assert_awaited_once()


class TestCreateResultCache:
    """Test cache selection from configuration."""

    def test_disabled_uses_memory_cache(self):
        cache = create_result_cache(CacheConfig(enabled=False, key_prefix="p", default_ttl=30))

        assert isinstance(cache, MemoryResultCache)
        assert cache.key_prefix == "p"
        assert cache.default_ttl == 30

    def test_enabled_uses_redis(self):
        cache = create_result_cache(CacheConfig(enabled=True))

        assert isinstance(cache, RedisResultCache)
