"""
Configuration settings for the Redis rate limit store.

Defines connection settings and key layout.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


class RedisCacheSettings(BaseSettings):
    """Settings for the Redis cache."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="REDIS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Connection settings
    redis_url: str = Field(
        default=DEFAULT_REDIS_URL,
        description="Redis connection URL",
    )

    redis_host: str = Field(
        default="localhost",
        description="Redis host",
    )

    redis_port: int = Field(
        default=6379,
        ge=1,
        le=65535,
        description="Redis port",
    )

    redis_db: int = Field(
        default=0,
        ge=0,
        le=15,
        description="Redis database number",
    )

    redis_password: str | None = Field(
        default=None,
        description="Redis password",
    )

    # Connection pool settings
    max_connections: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of connections in pool",
    )

    # Short timeouts so an unreachable server fails over quickly
    socket_timeout: float = Field(
        default=1.0,
        ge=0.05,
        description="Socket timeout in seconds",
    )

    socket_connect_timeout: float = Field(
        default=1.0,
        ge=0.05,
        description="Socket connect timeout in seconds",
    )

    # Key layout
    key_prefix: str = Field(
        default="rate_limit:",
        description="Prefix prepended to every rate limit key",
    )

    @property
    def connection_url(self) -> str:
        """
        Build Redis connection URL from components.

        Returns:
            Redis connection URL
        """
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    def get_effective_url(self) -> str:
        """
        Get the effective Redis URL (prefer redis_url if set, otherwise build from components).

        Returns:
            Redis connection URL
        """
        if self.redis_url and self.redis_url != DEFAULT_REDIS_URL:
            return self.redis_url
        return self.connection_url


@lru_cache
def get_redis_cache_settings() -> RedisCacheSettings:
    """
    Get cached Redis cache settings instance.

    Returns:
        RedisCacheSettings: Cached settings instance
    """
    return RedisCacheSettings()
