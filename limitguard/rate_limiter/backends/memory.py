"""
Process-local rate limit storage.

Fastest backend, but state is lost on restart and only visible inside one
process.
"""

import threading
import time
from collections.abc import Callable
from typing import Any

from limitguard.config.logging import get_logger
from limitguard.exceptions import StorageConnectionError
from limitguard.rate_limiter.backends.base import (
    DEFAULT_WINDOW_SECONDS,
    PROBE_KEY_PREFIX,
    StorageBackend,
)
from limitguard.rate_limiter.config import STORAGE_MEMORY

logger = get_logger(__name__)


class MemoryStore:
    """
    Table of observation timestamps keyed by rate limit key.

    Owned by the application's startup path and handed to the memory
    backend, so its lifetime is explicit.
    """

    def __init__(self) -> None:
        self.entries: dict[str, list[int]] = {}
        self.last_sweep: float = 0.0
        self.lock = threading.RLock()

    def clear(self) -> None:
        """Drop every key."""
        with self.lock:
            self.entries.clear()
            self.last_sweep = 0.0

    def stats(self) -> dict[str, int]:
        """
        Summarize the table size.

        Returns:
            Number of keys and total stored timestamps
        """
        with self.lock:
            return {
                "total_keys": len(self.entries),
                "total_timestamps": sum(len(timestamps) for timestamps in self.entries.values()),
            }


class MemoryStorageBackend(StorageBackend):
    """
    Sliding window over in-process timestamp lists.

    A single re-entrant lock on the store covers the check-then-increment
    sequence, which keeps threaded hosts exact.
    """

    name = STORAGE_MEMORY

    def __init__(
        self,
        store: MemoryStore | None = None,
        sweep_interval: int = 60,
        retention_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize memory backend.

        Args:
            store: Shared timestamp table (a fresh one if omitted)
            sweep_interval: Minimum seconds between global sweeps
            retention_seconds: Sweep drops timestamps older than this many seconds
            clock: Time source returning UNIX time in seconds
        """
        super().__init__(clock)
        self.store = store if store is not None else MemoryStore()
        self.sweep_interval = sweep_interval
        self.retention_seconds = retention_seconds

    def _sweep(self, force: bool = False) -> int:
        """Purge old timestamps across all keys, at most once per interval."""
        now = self.now()
        with self.store.lock:
            if not force and now - self.store.last_sweep < self.sweep_interval:
                return 0

            cutoff = int(now) - self.retention_seconds
            removed = 0
            for key in list(self.store.entries):
                timestamps = self.store.entries[key]
                kept = [ts for ts in timestamps if ts > cutoff]
                removed += len(timestamps) - len(kept)
                if kept:
                    self.store.entries[key] = kept
                else:
                    del self.store.entries[key]

            self.store.last_sweep = now

        if removed:
            logger.debug("memory_sweep_completed", removed=removed)
        return removed

    def _trim(self, key: str, window_seconds: int) -> list[int]:
        """Drop timestamps outside the window for one key and return the rest."""
        cutoff = int(self.now()) - window_seconds
        kept = [ts for ts in self.store.entries.get(key, []) if ts > cutoff]
        if kept:
            self.store.entries[key] = kept
        else:
            self.store.entries.pop(key, None)
        return kept

    def is_available(self) -> bool:
        return True

    def round_trip(self) -> None:
        scratch = f"{PROBE_KEY_PREFIX}{id(self)}:{time.monotonic_ns()}"
        written = [int(self.now())]
        with self.store.lock:
            self.store.entries[scratch] = list(written)
            read_back = self.store.entries.get(scratch)
            self.store.entries.pop(scratch, None)
        if read_back != written:
            raise StorageConnectionError("Memory store lost a round-trip write", storage=self.name)

    def get_current_count(self, key: str, window_seconds: int) -> int:
        self._sweep()
        with self.store.lock:
            return len(self._trim(key, window_seconds))

    def increment_count(self, key: str, window_seconds: int) -> bool:
        self._sweep()
        with self.store.lock:
            self.store.entries.setdefault(key, []).append(int(self.now()))
            self._trim(key, window_seconds)
        return True

    def is_limited(self, key: str, max_requests: int, window_seconds: int) -> bool:
        with self.store.lock:
            return super().is_limited(key, max_requests, window_seconds)

    def reset(self, key: str) -> bool:
        with self.store.lock:
            self.store.entries.pop(key, None)
        return True

    def get_ttl(self, key: str, window_seconds: int | None = None) -> int | None:
        window = window_seconds or DEFAULT_WINDOW_SECONDS
        with self.store.lock:
            cutoff = int(self.now()) - window
            live = [ts for ts in self.store.entries.get(key, []) if ts > cutoff]
        if not live:
            return None
        return self._ttl_from_oldest(min(live), window)

    def cleanup(self) -> int:
        return self._sweep(force=True)

    def get_stats(self) -> dict[str, Any]:
        """Key and timestamp totals of the underlying store."""
        return self.store.stats()

    def clear(self) -> None:
        """Wipe the underlying store."""
        self.store.clear()
        logger.info("memory_storage_cleared")
