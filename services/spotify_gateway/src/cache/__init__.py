"""Result caching for the Spotify gateway."""

from .result_cache import MemoryResultCache, RedisResultCache, ResultCache, build_cache_key, create_result_cache

__all__ = ["MemoryResultCache", "RedisResultCache", "ResultCache", "build_cache_key", "create_result_cache"]
