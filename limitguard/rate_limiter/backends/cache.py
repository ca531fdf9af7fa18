"""
Redis rate limit storage.

One sorted set per key, scored by observation time. Members carry a random
suffix so observations in the same instant stay distinct. Each command
pipeline is atomic on the server, but reading the count and adding a member
are two round trips, so a burst of concurrent callers can overshoot the
limit by a few requests.
"""

import time
import uuid
from collections.abc import Callable

from limitguard.cache.redis_client import RedisClient
from limitguard.exceptions import CacheError
from limitguard.rate_limiter.backends.base import (
    DEFAULT_WINDOW_SECONDS,
    PROBE_KEY_PREFIX,
    StorageBackend,
)
from limitguard.rate_limiter.config import STORAGE_REDIS


class RedisStorageBackend(StorageBackend):
    """Precise sliding window on Redis sorted sets."""

    name = STORAGE_REDIS

    def __init__(
        self,
        client: RedisClient,
        key_prefix: str = "rate_limit:",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize Redis backend.

        Args:
            client: Redis client; connected lazily on the first availability probe
            key_prefix: Namespace prepended to every key
            clock: Time source returning UNIX time in seconds
        """
        super().__init__(clock)
        self.client = client
        self.key_prefix = key_prefix

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _ensure_connected(self) -> None:
        if not self.client.is_connected:
            self.client.connect()

    def is_available(self) -> bool:
        try:
            self._ensure_connected()
            return self.client.ping()
        except CacheError:
            return False

    def round_trip(self) -> None:
        scratch = self._full_key(f"{PROBE_KEY_PREFIX}{uuid.uuid4().hex}")
        now = self.now()
        self._ensure_connected()
        self.client.zset_add(scratch, f"{now:.6f}_check", now, ttl=DEFAULT_WINDOW_SECONDS)
        count = self.client.zset_trim_and_count(scratch, now - DEFAULT_WINDOW_SECONDS)
        self.client.delete(scratch)
        if count != 1:
            raise CacheError(f"Redis round trip read back {count} entries, expected 1")

    def get_current_count(self, key: str, window_seconds: int) -> int:
        return self.client.zset_trim_and_count(self._full_key(key), self.now() - window_seconds)

    def increment_count(self, key: str, window_seconds: int) -> bool:
        now = self.now()
        member = f"{now:.6f}_{uuid.uuid4().hex}"
        return self.client.zset_add(self._full_key(key), member, now, ttl=window_seconds)

    def reset(self, key: str) -> bool:
        self.client.delete(self._full_key(key))
        return True

    def get_ttl(self, key: str, window_seconds: int | None = None) -> int | None:
        window = window_seconds or DEFAULT_WINDOW_SECONDS
        oldest = self.client.zset_oldest_score(self._full_key(key), self.now() - window)
        if oldest is None:
            return None
        return self._ttl_from_oldest(oldest, window)

    def close(self) -> None:
        if self.client.is_connected:
            self.client.disconnect()
