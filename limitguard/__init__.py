"""
LimitGuard: sliding-window rate limiting with automatic storage failover.
"""

from limitguard.rate_limiter import (
    FailoverRateLimiter,
    RateLimiterSettings,
    RateLimitInfo,
    build_rate_limiter,
)

__version__ = "0.1.0"

__all__ = [
    "FailoverRateLimiter",
    "RateLimitInfo",
    "RateLimiterSettings",
    "build_rate_limiter",
]
