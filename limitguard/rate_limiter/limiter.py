"""
Failover rate limiter.

Routes every call to the active storage backend and walks the configured
priority list when that backend fails. This is the single place where
storage errors are caught: no public method raises because a storage medium
is down. When every backend fails, requests are allowed (fail-open) and the
outage is logged at critical level.
"""

import threading
import time
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import Any, TypeVar

from limitguard.config.logging import get_logger, hash_key
from limitguard.exceptions import LimitGuardError, StorageExhaustedError
from limitguard.rate_limiter.backends.base import PROBE_KEY_PREFIX, StorageBackend
from limitguard.rate_limiter.backends.memory import MemoryStorageBackend
from limitguard.rate_limiter.config import (
    STORAGE_FILE,
    STORAGE_MEMORY,
    RateLimiterSettings,
    get_rate_limiter_settings,
    normalize_storage_priority,
)
from limitguard.rate_limiter.models import RateLimitInfo

logger = get_logger(__name__)

T = TypeVar("T")

NO_STORAGE = "none"

_CONFIGURABLE_OPTIONS = frozenset({"max_requests", "time_window_seconds", "storage_priority"})


def _require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return value


class FailoverRateLimiter:
    """
    Sliding-window rate limiter with automatic storage failover.

    Backends are tried in ``storage_priority`` order. At construction the
    first one whose availability probe passes becomes active; if none pass,
    the file backend is used. A failing ``is_limited`` call is retried on the
    backends after the active one, and the first that answers becomes the new
    active backend. The switch is sticky: earlier backends are not re-probed
    until ``reprobe()`` or ``configure(storage_priority=...)`` is called.
    """

    def __init__(
        self,
        backends: Sequence[StorageBackend],
        settings: RateLimiterSettings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize failover rate limiter.

        Args:
            backends: Constructed storage backends, one per name
            settings: Rate limiter configuration
            clock: Time source used for fallback info snapshots

        Raises:
            ValueError: If two backends share a name
        """
        self.settings = settings or get_rate_limiter_settings()
        self._clock = clock

        self._backends: dict[str, StorageBackend] = {}
        for backend in backends:
            if backend.name in self._backends:
                raise ValueError(f"Duplicate storage backend: {backend.name}")
            self._backends[backend.name] = backend

        self.max_requests = self.settings.max_requests
        self.time_window_seconds = self.settings.time_window_seconds
        self.storage_priority = list(self.settings.storage_priority)

        self._active: str | None = None
        self._lock = threading.RLock()

        self._select_active_storage()

    @property
    def backends(self) -> Mapping[str, StorageBackend]:
        """Read-only view of the constructed backends by name."""
        return MappingProxyType(self._backends)

    # Selection

    def _ordered(self) -> list[StorageBackend]:
        """Constructed backends in priority order."""
        return [self._backends[name] for name in self.storage_priority if name in self._backends]

    def _after(self, name: str | None) -> list[StorageBackend]:
        """Backends strictly after ``name`` in priority order."""
        ordered = self._ordered()
        names = [backend.name for backend in ordered]
        if name not in names:
            return ordered
        return ordered[names.index(name) + 1 :]

    def _except(self, name: str | None) -> list[StorageBackend]:
        """Backends in priority order, skipping ``name``."""
        return [backend for backend in self._ordered() if backend.name != name]

    def _probe(self, backend: StorageBackend) -> bool:
        try:
            return backend.is_available()
        except Exception:
            logger.error("rate_limiter_probe_failed", storage=backend.name, exc_info=True)
            return False

    def _select_active_storage(self) -> None:
        """Make the first available backend in priority order active."""
        with self._lock:
            for backend in self._ordered():
                if self._probe(backend):
                    self._active = backend.name
                    logger.info("rate_limiter_storage_selected", storage=backend.name)
                    return

            self._active = STORAGE_FILE if STORAGE_FILE in self._backends else None
            logger.warning(
                "rate_limiter_no_storage_available",
                storage=self._active or NO_STORAGE,
                priority=self.storage_priority,
            )

    def _active_backend(self) -> StorageBackend | None:
        active = self._active
        return self._backends.get(active) if active else None

    def _switch_to(self, name: str, reason: str) -> None:
        with self._lock:
            previous = self._active
            if previous == name:
                return
            self._active = name
        logger.warning(
            "rate_limiter_switched",
            previous=previous or NO_STORAGE,
            storage=name,
            reason=reason,
        )

    def _log_failure(self, backend: StorageBackend, operation: str, error: Exception) -> None:
        if isinstance(error, LimitGuardError):
            logger.warning(
                "rate_limiter_storage_failed",
                storage=backend.name,
                operation=operation,
                error=str(error),
                error_code=error.error_code,
            )
        else:
            logger.error(
                "rate_limiter_storage_crashed",
                storage=backend.name,
                operation=operation,
                error=str(error),
                exc_info=error,
            )

    def _resolve_window(
        self, max_requests: int | None, time_window_seconds: int | None
    ) -> tuple[int, int]:
        if max_requests is None:
            max_requests = self.max_requests
        if time_window_seconds is None:
            time_window_seconds = self.time_window_seconds
        return (
            _require_positive_int("max_requests", max_requests),
            _require_positive_int("time_window_seconds", time_window_seconds),
        )

    # Limiting

    def is_limited(
        self,
        key: str,
        max_requests: int | None = None,
        time_window_seconds: int | None = None,
    ) -> bool:
        """
        Check a key against the limit, recording the request when allowed.

        Args:
            key: Rate limit key (e.g., "ip:1.2.3.4:/login")
            max_requests: Limit for this call (defaults to configured value)
            time_window_seconds: Window for this call (defaults to configured value)

        Returns:
            True if the key is over the limit, False if the request may
            proceed. Returns False when every storage backend fails.

        Raises:
            ValueError: If max_requests or time_window_seconds is not positive
        """
        max_requests, window = self._resolve_window(max_requests, time_window_seconds)

        active = self._active_backend()
        if active is not None:
            try:
                return active.is_limited(key, max_requests, window)
            except Exception as e:
                self._log_failure(active, "is_limited", e)

        try:
            return self._fallback_is_limited(key, max_requests, window, failed=active)
        except StorageExhaustedError as e:
            logger.critical(
                "rate_limiter_all_storages_failed",
                key_hash=hash_key(key),
                attempted=e.details["attempted"],
                action="allowing request",
            )
            return False

    def _fallback_is_limited(
        self,
        key: str,
        max_requests: int,
        window: int,
        failed: StorageBackend | None,
    ) -> bool:
        """
        Retry the check on backends after the failed one.

        Raises:
            StorageExhaustedError: If none of them answer
        """
        attempted = [failed.name] if failed is not None else []
        for backend in self._after(failed.name if failed is not None else None):
            if not self._probe(backend):
                logger.debug("rate_limiter_fallback_skipped", storage=backend.name)
                continue

            attempted.append(backend.name)
            try:
                result = backend.is_limited(key, max_requests, window)
            except Exception as e:
                self._log_failure(backend, "is_limited", e)
                continue

            self._switch_to(backend.name, reason="failover")
            return result

        raise StorageExhaustedError("is_limited", attempted)

    def _call_with_fallback(
        self,
        operation: str,
        call: Callable[[StorageBackend], T],
        default: T,
    ) -> T:
        """
        Run a non-limiting operation on the active backend, then the others.

        Does not change the active backend.
        """
        active = self._active_backend()
        if active is not None:
            try:
                return call(active)
            except Exception as e:
                self._log_failure(active, operation, e)

        for backend in self._except(active.name if active is not None else None):
            if not self._probe(backend):
                continue
            try:
                return call(backend)
            except Exception as e:
                self._log_failure(backend, operation, e)

        logger.error("rate_limiter_operation_unserved", operation=operation)
        return default

    # Introspection

    def get_info(self, key: str, time_window_seconds: int | None = None) -> RateLimitInfo:
        """
        Describe a key's usage, for response headers.

        Args:
            key: Rate limit key
            time_window_seconds: Window to report on (defaults to configured value)

        Returns:
            RateLimitInfo from the first backend that answers, or an empty
            snapshot with storage "none" if none do
        """
        max_requests, window = self._resolve_window(None, time_window_seconds)
        default = RateLimitInfo(
            count=0,
            remaining=max_requests,
            reset_time=int(self._clock()) + window,
            storage=NO_STORAGE,
            ttl=window,
        )
        return self._call_with_fallback(
            "get_info",
            lambda backend: backend.get_info(key, window, max_requests),
            default,
        )

    def get_current_count(self, key: str, time_window_seconds: int | None = None) -> int:
        """Observations recorded for a key inside the window (0 if no backend answers)."""
        _, window = self._resolve_window(None, time_window_seconds)
        return self._call_with_fallback(
            "get_current_count",
            lambda backend: backend.get_current_count(key, window),
            0,
        )

    def get_ttl(self, key: str, time_window_seconds: int | None = None) -> int | None:
        """Seconds until the key's oldest observation leaves the window, or None."""
        _, window = self._resolve_window(None, time_window_seconds)
        return self._call_with_fallback(
            "get_ttl",
            lambda backend: backend.get_ttl(key, window),
            None,
        )

    def reset(self, key: str) -> bool:
        """
        Clear a key's observations.

        Args:
            key: Rate limit key

        Returns:
            True if a backend cleared the key, False if none could
        """
        return self._call_with_fallback("reset", lambda backend: backend.reset(key), False)

    # Configuration

    def configure(self, **options: Any) -> None:
        """
        Update limiter defaults.

        Args:
            **options: max_requests, time_window_seconds, storage_priority

        Raises:
            ValueError: On unknown options or invalid values
        """
        unknown = set(options) - _CONFIGURABLE_OPTIONS
        if unknown:
            raise ValueError(f"Unknown rate limiter option(s): {', '.join(sorted(unknown))}")

        with self._lock:
            if "max_requests" in options:
                self.max_requests = _require_positive_int("max_requests", options["max_requests"])
            if "time_window_seconds" in options:
                self.time_window_seconds = _require_positive_int(
                    "time_window_seconds", options["time_window_seconds"]
                )
            if "storage_priority" in options:
                self.storage_priority = normalize_storage_priority(list(options["storage_priority"]))
                self._select_active_storage()

        logger.info(
            "rate_limiter_configured",
            max_requests=self.max_requests,
            time_window_seconds=self.time_window_seconds,
            storage_priority=self.storage_priority,
        )

    # Operator surface

    def get_active_storage(self) -> str:
        """Name of the active backend, or "none"."""
        return self._active or NO_STORAGE

    def _all_backends(self) -> Iterable[StorageBackend]:
        """Prioritized backends first, then any constructed but unprioritized ones."""
        ordered = self._ordered()
        return ordered + [backend for backend in self._backends.values() if backend not in ordered]

    def get_available_storages(self) -> dict[str, bool]:
        """Availability probe result per backend."""
        return {backend.name: self._probe(backend) for backend in self._all_backends()}

    def _run_test(self, backend: StorageBackend) -> bool:
        try:
            return backend.test()
        except Exception:
            logger.error("rate_limiter_test_crashed", storage=backend.name, exc_info=True)
            return False

    def get_storage_status(self) -> dict[str, dict[str, bool]]:
        """Availability, active flag and round-trip test result per backend."""
        return {
            backend.name: {
                "available": self._probe(backend),
                "active": backend.name == self._active,
                "working": self._run_test(backend),
            }
            for backend in self._all_backends()
        }

    def test_all_storages(self) -> dict[str, dict[str, Any]]:
        """
        Run availability and round-trip tests on every backend.

        Returns:
            Per backend: probe result, round-trip result, and the round-trip
            error message (None when it passed)
        """
        results: dict[str, dict[str, Any]] = {}
        for backend in self._all_backends():
            available = self._probe(backend)
            try:
                backend.round_trip()
            except Exception as e:
                self._log_failure(backend, "round_trip", e)
                results[backend.name] = {"available": available, "test": False, "error": str(e)}
            else:
                results[backend.name] = {"available": available, "test": True, "error": None}
        return results

    def force_fallback(self) -> str | None:
        """
        Switch to the next backend after the active one that passes a synthetic check.

        Returns:
            The new active backend name, or None if no later backend works
        """
        with self._lock:
            current = self._active
            for backend in self._after(current):
                if not self._probe(backend):
                    continue

                probe_key = f"{PROBE_KEY_PREFIX}{uuid.uuid4().hex}"
                try:
                    backend.is_limited(probe_key, 1, 60)
                    backend.reset(probe_key)
                except Exception as e:
                    self._log_failure(backend, "force_fallback", e)
                    continue

                self._switch_to(backend.name, reason="forced")
                return backend.name

        logger.error("rate_limiter_forced_fallback_failed", storage=current or NO_STORAGE)
        return None

    def reprobe(self) -> str:
        """
        Re-run startup selection from the top of the priority list.

        Returns:
            Name of the active backend afterwards
        """
        previous = self._active
        self._select_active_storage()
        if self._active != previous:
            logger.info(
                "rate_limiter_recovered",
                previous=previous or NO_STORAGE,
                storage=self.get_active_storage(),
            )
        return self.get_active_storage()

    # Housekeeping

    def cleanup(self) -> dict[str, int]:
        """
        Run housekeeping on every backend.

        Returns:
            Entries removed per backend that completed its cleanup
        """
        removed: dict[str, int] = {}
        for backend in self._all_backends():
            if not self._probe(backend):
                continue
            try:
                removed[backend.name] = backend.cleanup()
            except Exception as e:
                self._log_failure(backend, "cleanup", e)
        logger.info("rate_limiter_cleanup_completed", removed=removed)
        return removed

    def _memory_backend(self) -> MemoryStorageBackend | None:
        backend = self._backends.get(STORAGE_MEMORY)
        return backend if isinstance(backend, MemoryStorageBackend) else None

    def get_memory_stats(self) -> dict[str, Any] | None:
        """Key and timestamp totals of the memory backend, if there is one."""
        backend = self._memory_backend()
        return backend.get_stats() if backend is not None else None

    def clear_memory(self) -> bool:
        """Wipe the memory backend. Returns False if there is none."""
        backend = self._memory_backend()
        if backend is None:
            return False
        backend.clear()
        return True

    def close(self) -> None:
        """Release every backend's connections."""
        for backend in self._backends.values():
            try:
                backend.close()
            except Exception as e:
                self._log_failure(backend, "close", e)
