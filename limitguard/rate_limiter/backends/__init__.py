"""
Rate limit storage backends.
"""

from limitguard.rate_limiter.backends.base import StorageBackend
from limitguard.rate_limiter.backends.cache import RedisStorageBackend
from limitguard.rate_limiter.backends.database import DatabaseStorageBackend
from limitguard.rate_limiter.backends.file import FileStorageBackend
from limitguard.rate_limiter.backends.memory import MemoryStorageBackend, MemoryStore

__all__ = [
    "StorageBackend",
    "RedisStorageBackend",
    "DatabaseStorageBackend",
    "MemoryStorageBackend",
    "MemoryStore",
    "FileStorageBackend",
]
