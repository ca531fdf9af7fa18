"""
Rate limiter assembly.

Builds backends from settings and wires them into a FailoverRateLimiter.
Callers own the returned limiter and should close() it on shutdown.
"""

import time
from collections.abc import Callable

from limitguard.cache.config import RedisCacheSettings, get_redis_cache_settings
from limitguard.cache.redis_client import RedisClient
from limitguard.config.logging import get_logger
from limitguard.database.config import DatabaseSettings, get_database_settings
from limitguard.database.connection import DatabaseConfig, DatabaseConnection
from limitguard.rate_limiter.backends.base import StorageBackend
from limitguard.rate_limiter.backends.cache import RedisStorageBackend
from limitguard.rate_limiter.backends.database import DatabaseStorageBackend
from limitguard.rate_limiter.backends.file import FileStorageBackend
from limitguard.rate_limiter.backends.memory import MemoryStorageBackend, MemoryStore
from limitguard.rate_limiter.config import RateLimiterSettings, get_rate_limiter_settings
from limitguard.rate_limiter.limiter import FailoverRateLimiter

logger = get_logger(__name__)


def build_database_connection(settings: DatabaseSettings) -> DatabaseConnection | None:
    """
    Create a connection manager from database settings.

    Args:
        settings: Database settings

    Returns:
        DatabaseConnection, or None if no URL is configured
    """
    if not settings.is_configured:
        return None
    return DatabaseConnection(
        DatabaseConfig(
            url=settings.database_url,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            pool_recycle=settings.pool_recycle,
            connect_timeout=settings.connect_timeout,
            echo=settings.echo,
        )
    )


def build_rate_limiter(
    settings: RateLimiterSettings | None = None,
    redis_settings: RedisCacheSettings | None = None,
    database_settings: DatabaseSettings | None = None,
    memory_store: MemoryStore | None = None,
    clock: Callable[[], float] = time.time,
) -> FailoverRateLimiter:
    """
    Build a rate limiter with every enabled backend.

    Nothing connects here; backends are probed when the limiter selects its
    active storage.

    Args:
        settings: Rate limiter settings
        redis_settings: Redis connection settings
        database_settings: Database connection settings
        memory_store: Timestamp table for the memory backend (fresh if omitted)
        clock: Time source shared by all backends

    Returns:
        Configured FailoverRateLimiter
    """
    settings = settings or get_rate_limiter_settings()
    backends: list[StorageBackend] = []

    if settings.enable_redis:
        redis_settings = redis_settings or get_redis_cache_settings()
        client = RedisClient(
            url=redis_settings.get_effective_url(),
            max_connections=redis_settings.max_connections,
            socket_timeout=redis_settings.socket_timeout,
            socket_connect_timeout=redis_settings.socket_connect_timeout,
        )
        backends.append(
            RedisStorageBackend(client, key_prefix=redis_settings.key_prefix, clock=clock)
        )

    if settings.enable_database:
        database_settings = database_settings or get_database_settings()
        backends.append(
            DatabaseStorageBackend(
                build_database_connection(database_settings),
                bucket_seconds=settings.database_bucket_seconds,
                retention_seconds=settings.retention_seconds,
                clock=clock,
            )
        )

    backends.append(
        MemoryStorageBackend(
            store=memory_store,
            sweep_interval=settings.memory_sweep_interval,
            retention_seconds=settings.retention_seconds,
            clock=clock,
        )
    )
    backends.append(
        FileStorageBackend(
            settings.file_path,
            lock_timeout=settings.file_lock_timeout,
            retention_seconds=settings.retention_seconds,
            clock=clock,
        )
    )

    logger.info(
        "rate_limiter_backends_built",
        backends=[backend.name for backend in backends],
        priority=settings.storage_priority,
    )
    return FailoverRateLimiter(backends, settings=settings, clock=clock)
