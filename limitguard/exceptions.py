"""
Custom exceptions for LimitGuard.
"""


class LimitGuardError(Exception):
    """Base exception for all LimitGuard errors."""

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        """
        Initialize exception.

        Args:
            message: Error message
            error_code: Optional error code
            details: Optional error details
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


# Configuration Errors


class ConfigurationError(LimitGuardError):
    """Configuration errors."""

    def __init__(self, message: str, key: str | None = None):
        """
        Initialize exception.

        Args:
            message: Error message
            key: Configuration key
        """
        details = {"key": key} if key else {}
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details)


# Storage Errors


class StorageError(LimitGuardError):
    """Base class for failures of a rate limit storage medium."""

    def __init__(
        self,
        message: str,
        storage: str,
        error_code: str = "STORAGE_ERROR",
        details: dict | None = None,
    ):
        """
        Initialize exception.

        Args:
            message: Error message
            storage: Name of the failing storage backend
            error_code: Error code
            details: Optional error details
        """
        self.storage = storage
        super().__init__(message, error_code=error_code, details={"storage": storage, **(details or {})})


class StorageConnectionError(StorageError):
    """Storage medium unreachable or failing at call time."""

    def __init__(self, message: str, storage: str, details: dict | None = None):
        """Initialize exception."""
        super().__init__(message, storage, error_code="STORAGE_CONNECTION_ERROR", details=details)


class CorruptStateError(StorageError):
    """Persisted rate limit state is unreadable or malformed."""

    def __init__(self, message: str, storage: str, details: dict | None = None):
        """Initialize exception."""
        super().__init__(message, storage, error_code="CORRUPT_STATE", details=details)


class CacheError(StorageConnectionError):
    """Cache-related errors."""

    def __init__(self, message: str, details: dict | None = None):
        """Initialize exception."""
        super().__init__(message, storage="redis", details=details)


class CacheConnectionError(CacheError):
    """Cache connection errors."""

    def __init__(self, message: str = "Failed to connect to cache"):
        """Initialize exception."""
        super().__init__(message)
        self.error_code = "CACHE_CONNECTION_ERROR"


class DatabaseError(StorageConnectionError):
    """Database-related errors."""

    def __init__(self, message: str, details: dict | None = None):
        """Initialize exception."""
        super().__init__(message, storage="database", details=details)


# Coordinator Errors


class StorageExhaustedError(LimitGuardError):
    """Every configured storage backend failed for a single call."""

    def __init__(self, operation: str, attempted: list[str]):
        """
        Initialize exception.

        Args:
            operation: Name of the operation that could not be served
            attempted: Backend names tried, in order
        """
        message = f"All rate limit storages failed for {operation}"
        super().__init__(
            message,
            error_code="STORAGE_EXHAUSTED",
            details={"operation": operation, "attempted": attempted},
        )
