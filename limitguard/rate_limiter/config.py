"""
Configuration settings for rate limiter.

Defines default limits, storage priority, and per-backend tuning.
"""

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STORAGE_REDIS = "redis"
STORAGE_DATABASE = "database"
STORAGE_MEMORY = "memory"
STORAGE_FILE = "file"

KNOWN_STORAGES = (STORAGE_REDIS, STORAGE_DATABASE, STORAGE_MEMORY, STORAGE_FILE)
DEFAULT_STORAGE_PRIORITY = list(KNOWN_STORAGES)

STORAGE_ALIASES = {
    "cache": STORAGE_REDIS,
    "db": STORAGE_DATABASE,
}


def normalize_storage_priority(value: list[str]) -> list[str]:
    """
    Validate and normalize an ordered list of storage names.

    Args:
        value: Storage names, most preferred first

    Returns:
        Canonical storage names

    Raises:
        ValueError: If the list is empty, has unknown names or duplicates
    """
    if not value:
        raise ValueError("storage_priority must name at least one storage")

    names = [STORAGE_ALIASES.get(name.strip().lower(), name.strip().lower()) for name in value]
    unknown = [name for name in names if name not in KNOWN_STORAGES]
    if unknown:
        raise ValueError(
            f"Unknown storage(s) {', '.join(unknown)}. Must be one of: {', '.join(KNOWN_STORAGES)}"
        )
    if len(set(names)) != len(names):
        raise ValueError("storage_priority must not contain duplicates")
    return names


class RateLimiterSettings(BaseSettings):
    """Settings for rate limiting."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RATE_LIMITER_",
        case_sensitive=False,
        extra="ignore",
    )

    # Default limits
    max_requests: int = Field(
        default=100,
        ge=1,
        description="Default requests allowed per window",
    )

    time_window_seconds: int = Field(
        default=60,
        ge=1,
        description="Default sliding window length in seconds",
    )

    storage_priority: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STORAGE_PRIORITY),
        description="Storage backends in order of preference",
    )

    # Backend toggles
    enable_redis: bool = Field(
        default=True,
        description="Construct the Redis backend",
    )

    enable_database: bool = Field(
        default=True,
        description="Construct the database backend",
    )

    # File backend settings
    file_path: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "limitguard_rate_limit.json",
        description="JSON file used by the file backend",
    )

    file_lock_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Maximum seconds to wait for the file lock",
    )

    # Memory backend settings
    memory_sweep_interval: int = Field(
        default=60,
        ge=1,
        description="Minimum seconds between memory sweeps",
    )

    # Housekeeping
    retention_seconds: int = Field(
        default=3600,
        ge=1,
        description="Observations older than this are dropped by sweeps and cleanup()",
    )

    # Database backend settings
    database_bucket_seconds: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Maximum width of the time buckets aggregated by the database backend",
    )

    @field_validator("storage_priority")
    @classmethod
    def validate_storage_priority(cls, v: list[str]) -> list[str]:
        """Validate storage names and resolve aliases."""
        return normalize_storage_priority(v)


@lru_cache
def get_rate_limiter_settings() -> RateLimiterSettings:
    """
    Get cached rate limiter settings instance.

    Returns:
        RateLimiterSettings: Cached settings instance
    """
    return RateLimiterSettings()
