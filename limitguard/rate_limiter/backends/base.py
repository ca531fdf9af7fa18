"""
Storage backend contract for rate limiting.

Every backend implements the same sliding-window semantics over its own
medium. Backends raise StorageError subclasses when the medium fails and
never try to recover on their own; recovery belongs to the coordinator.
"""

import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from limitguard.config.logging import get_logger
from limitguard.exceptions import LimitGuardError
from limitguard.rate_limiter.models import RateLimitInfo

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 60
PROBE_KEY_PREFIX = "__limitguard_probe__:"


class StorageBackend(ABC):
    """Base class for rate limit storage backends."""

    name: str = "abstract"

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize storage backend.

        Args:
            clock: Time source returning UNIX time in seconds
        """
        self._clock = clock

    def now(self) -> float:
        """Current UNIX time according to the backend's clock."""
        return self._clock()

    def _ttl_from_oldest(self, oldest: float, window_seconds: int) -> int:
        """Seconds until an observation recorded at ``oldest`` leaves the window."""
        return max(0, math.ceil(oldest + window_seconds - self.now()))

    @abstractmethod
    def is_available(self) -> bool:
        """
        Cheap configuration and reachability probe.

        Returns:
            True if the backend can be used; never raises
        """

    @abstractmethod
    def round_trip(self) -> None:
        """
        Write, read back and delete a throwaway key.

        Raises:
            LimitGuardError: If any step fails or the read-back is wrong
        """

    def test(self) -> bool:
        """
        Active read/write round trip against the medium.

        Returns:
            True if the round trip succeeded; never raises
        """
        try:
            self.round_trip()
        except LimitGuardError as e:
            logger.warning(
                "storage_test_failed",
                storage=self.name,
                error=str(e),
                error_code=e.error_code,
            )
            return False
        except Exception:
            logger.error("storage_test_crashed", storage=self.name, exc_info=True)
            return False
        return True

    @abstractmethod
    def get_current_count(self, key: str, window_seconds: int) -> int:
        """
        Count observations for a key inside the window.

        Args:
            key: Rate limit key
            window_seconds: Window length in seconds

        Returns:
            Number of observations newer than now - window_seconds

        Raises:
            StorageError: If the medium fails
        """

    @abstractmethod
    def increment_count(self, key: str, window_seconds: int) -> bool:
        """
        Record one observation for a key at the current time.

        Args:
            key: Rate limit key
            window_seconds: Window length in seconds, used to trim stale entries

        Returns:
            True once the observation is stored

        Raises:
            StorageError: If the medium fails
        """

    @abstractmethod
    def reset(self, key: str) -> bool:
        """
        Drop every observation for a key.

        Args:
            key: Rate limit key

        Returns:
            True once the key is cleared

        Raises:
            StorageError: If the medium fails
        """

    @abstractmethod
    def get_ttl(self, key: str, window_seconds: int | None = None) -> int | None:
        """
        Seconds until the oldest live observation leaves the window.

        Args:
            key: Rate limit key
            window_seconds: Window length in seconds (defaults to 60)

        Returns:
            Seconds remaining, or None if the key has no live observations

        Raises:
            StorageError: If the medium fails
        """

    def is_limited(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """
        Check a key against the limit and record the request if it is allowed.

        Backends whose medium can hold a lock across both steps override this.

        Args:
            key: Rate limit key
            max_requests: Maximum observations allowed inside the window
            window_seconds: Window length in seconds

        Returns:
            True if the key is limited (nothing recorded), False if the
            request was allowed and recorded

        Raises:
            StorageError: If the medium fails
        """
        if self.get_current_count(key, window_seconds) >= max_requests:
            return True
        self.increment_count(key, window_seconds)
        return False

    def get_info(self, key: str, window_seconds: int, max_requests: int) -> RateLimitInfo:
        """
        Describe a key's usage within the window.

        Args:
            key: Rate limit key
            window_seconds: Window length in seconds
            max_requests: Limit used to compute the remaining budget

        Returns:
            RateLimitInfo snapshot

        Raises:
            StorageError: If the medium fails
        """
        count = self.get_current_count(key, window_seconds)
        ttl = self.get_ttl(key, window_seconds)
        if ttl is None:
            ttl = window_seconds
        return RateLimitInfo(
            count=count,
            remaining=max(0, max_requests - count),
            reset_time=int(self.now()) + ttl,
            storage=self.name,
            ttl=ttl,
        )

    def cleanup(self) -> int:
        """
        Run backend housekeeping.

        Returns:
            Number of stale entries removed
        """
        return 0

    def close(self) -> None:
        """Release connections held by the backend."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name={self.name!r})>"
