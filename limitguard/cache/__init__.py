"""
Redis cache utilities.
"""

from limitguard.cache.config import RedisCacheSettings, get_redis_cache_settings
from limitguard.cache.redis_client import RedisClient

__all__ = [
    "RedisClient",
    "RedisCacheSettings",
    "get_redis_cache_settings",
]
