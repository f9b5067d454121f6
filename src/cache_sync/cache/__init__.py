"""Cache store connection and cache record writer."""

from cache_sync.cache.store import CacheStore, RedisCacheStore, map_redis_error
from cache_sync.cache.writer import CacheWriter

__all__ = ["CacheStore", "RedisCacheStore", "CacheWriter", "map_redis_error"]
