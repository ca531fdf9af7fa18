"""
File-based rate limit storage.

Stores ``{key: [timestamp, ...]}`` as JSON in a single file shared by every
process pointed at the same path. Reads take a shared flock; every
read-modify-write cycle holds an exclusive flock from load to store, so
check-then-increment is serialized across processes. Slowest backend, kept
as the last resort.
"""

import fcntl
import json
import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from limitguard.config.logging import get_logger, hash_key
from limitguard.exceptions import CorruptStateError, StorageConnectionError
from limitguard.rate_limiter.backends.base import (
    DEFAULT_WINDOW_SECONDS,
    PROBE_KEY_PREFIX,
    StorageBackend,
)
from limitguard.rate_limiter.config import STORAGE_FILE

logger = get_logger(__name__)

_LOCK_POLL_INTERVAL = 0.01

RateData = dict[str, list[int]]


class FileStorageBackend(StorageBackend):
    """Sliding window persisted in a locked JSON file."""

    name = STORAGE_FILE

    def __init__(
        self,
        path: str | Path,
        lock_timeout: float = 5.0,
        retention_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize file backend.

        Args:
            path: Location of the JSON state file
            lock_timeout: Maximum seconds to wait for the file lock
            retention_seconds: cleanup() drops timestamps older than this
            clock: Time source returning UNIX time in seconds
        """
        super().__init__(clock)
        self.path = Path(path)
        self.lock_timeout = lock_timeout
        self.retention_seconds = retention_seconds

    def _acquire(self, handle: IO[str], exclusive: bool) -> None:
        """Take the flock, polling until lock_timeout expires."""
        mode = (fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH) | fcntl.LOCK_NB
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(handle.fileno(), mode)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise StorageConnectionError(
                        f"Timed out waiting for lock on {self.path}",
                        storage=self.name,
                        details={"path": str(self.path)},
                    ) from None
                time.sleep(_LOCK_POLL_INTERVAL)

    @contextmanager
    def _locked(self, exclusive: bool) -> Iterator[IO[str]]:
        """
        Open the state file and hold a lock on it for the block.

        Args:
            exclusive: Take an exclusive lock instead of a shared one

        Yields:
            Open text handle positioned anywhere

        Raises:
            StorageConnectionError: If the file cannot be opened or locked
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            logger.error("file_storage_open_failed", path=str(self.path), error=str(e))
            raise StorageConnectionError(
                f"Cannot open rate limit file {self.path}: {e}",
                storage=self.name,
                details={"path": str(self.path)},
            ) from e

        with os.fdopen(fd, "r+", encoding="utf-8") as handle:
            self._acquire(handle, exclusive)
            try:
                yield handle
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _load(self, handle: IO[str]) -> RateData:
        """
        Read and validate the whole mapping.

        Raises:
            CorruptStateError: If the content is not a key -> timestamp list mapping
            StorageConnectionError: If the read fails
        """
        try:
            handle.seek(0)
            raw = handle.read()
        except OSError as e:
            raise StorageConnectionError(
                f"Cannot read rate limit file {self.path}: {e}", storage=self.name
            ) from e

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("file_storage_corrupt", path=str(self.path), error=str(e))
            raise CorruptStateError(
                f"Rate limit file {self.path} is not valid JSON: {e}", storage=self.name
            ) from e

        if not isinstance(data, dict):
            raise CorruptStateError(
                f"Rate limit file {self.path} must hold a JSON object", storage=self.name
            )

        rate_data: RateData = {}
        for key, timestamps in data.items():
            if not isinstance(timestamps, list) or not all(
                isinstance(ts, int | float) and not isinstance(ts, bool) for ts in timestamps
            ):
                raise CorruptStateError(
                    f"Rate limit file {self.path} has invalid timestamps",
                    storage=self.name,
                    details={"key_hash": hash_key(key)},
                )
            rate_data[key] = [int(ts) for ts in timestamps]
        return rate_data

    def _store(self, handle: IO[str], data: RateData) -> None:
        """Replace the file content with ``data``, dropping empty keys."""
        payload = {key: timestamps for key, timestamps in data.items() if timestamps}
        try:
            handle.seek(0)
            handle.truncate()
            json.dump(payload, handle, separators=(",", ":"))
            handle.flush()
            os.fsync(handle.fileno())
        except OSError as e:
            logger.error("file_storage_write_failed", path=str(self.path), error=str(e))
            raise StorageConnectionError(
                f"Cannot write rate limit file {self.path}: {e}", storage=self.name
            ) from e

    def _live(self, timestamps: list[int], window_seconds: int) -> list[int]:
        cutoff = int(self.now()) - window_seconds
        return [ts for ts in timestamps if ts > cutoff]

    def is_available(self) -> bool:
        # Last resort: always offered, failures surface per call
        return True

    def round_trip(self) -> None:
        scratch = f"{PROBE_KEY_PREFIX}{os.getpid()}:{time.monotonic_ns()}"
        self.increment_count(scratch, DEFAULT_WINDOW_SECONDS)
        count = self.get_current_count(scratch, DEFAULT_WINDOW_SECONDS)
        self.reset(scratch)
        if count != 1:
            raise StorageConnectionError(
                f"Rate limit file {self.path} read back {count} round-trip entries, expected 1",
                storage=self.name,
                details={"path": str(self.path)},
            )

    def get_current_count(self, key: str, window_seconds: int) -> int:
        with self._locked(exclusive=False) as handle:
            data = self._load(handle)
        return len(self._live(data.get(key, []), window_seconds))

    def increment_count(self, key: str, window_seconds: int) -> bool:
        with self._locked(exclusive=True) as handle:
            data = self._load(handle)
            timestamps = data.get(key, [])
            timestamps.append(int(self.now()))
            data[key] = self._live(timestamps, window_seconds)
            self._store(handle, data)
        return True

    def is_limited(self, key: str, max_requests: int, window_seconds: int) -> bool:
        with self._locked(exclusive=True) as handle:
            data = self._load(handle)
            live = self._live(data.get(key, []), window_seconds)
            if len(live) >= max_requests:
                return True
            live.append(int(self.now()))
            data[key] = live
            self._store(handle, data)
        return False

    def reset(self, key: str) -> bool:
        with self._locked(exclusive=True) as handle:
            data = self._load(handle)
            if key in data:
                del data[key]
                self._store(handle, data)
        return True

    def get_ttl(self, key: str, window_seconds: int | None = None) -> int | None:
        window = window_seconds or DEFAULT_WINDOW_SECONDS
        with self._locked(exclusive=False) as handle:
            data = self._load(handle)
        live = self._live(data.get(key, []), window)
        if not live:
            return None
        return self._ttl_from_oldest(min(live), window)

    def cleanup(self) -> int:
        """
        Drop timestamps older than the retention period and empty keys.

        A corrupt file is replaced with an empty mapping.

        Returns:
            Number of timestamps removed
        """
        with self._locked(exclusive=True) as handle:
            try:
                data = self._load(handle)
            except CorruptStateError:
                logger.warning("file_storage_corrupt_reset", path=str(self.path))
                self._store(handle, {})
                return 0

            removed = 0
            for key, timestamps in data.items():
                kept = self._live(timestamps, self.retention_seconds)
                removed += len(timestamps) - len(kept)
                data[key] = kept
            self._store(handle, data)
        return removed
