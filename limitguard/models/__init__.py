"""
Database models.
"""

from limitguard.models.rate_limit import RateLimitBucket

__all__ = ["RateLimitBucket"]
