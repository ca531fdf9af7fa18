"""
Rate limiting with storage failover.
"""

from limitguard.rate_limiter.config import RateLimiterSettings, get_rate_limiter_settings
from limitguard.rate_limiter.factory import build_rate_limiter
from limitguard.rate_limiter.limiter import FailoverRateLimiter
from limitguard.rate_limiter.models import RateLimitInfo

__all__ = [
    "FailoverRateLimiter",
    "RateLimitInfo",
    "RateLimiterSettings",
    "build_rate_limiter",
    "get_rate_limiter_settings",
]
