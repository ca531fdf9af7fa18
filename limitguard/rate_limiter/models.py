"""
Rate limit introspection models.
"""

from pydantic import BaseModel, ConfigDict, Field


class RateLimitInfo(BaseModel):
    """Snapshot of a key's usage within a window."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(..., ge=0, description="Observations inside the window")
    remaining: int = Field(..., ge=0, description="Requests left before the key is limited")
    reset_time: int = Field(..., description="UNIX epoch seconds when the oldest observation expires")
    storage: str = Field(..., description="Name of the backend that produced this snapshot")
    ttl: int = Field(..., ge=0, description="Seconds until the oldest observation leaves the window")

    def as_headers(self, limit: int) -> dict[str, str]:
        """
        Render the snapshot as rate limit response headers.

        Args:
            limit: Maximum requests per window the key is checked against

        Returns:
            Header name to value mapping
        """
        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }
        if self.remaining == 0:
            headers["Retry-After"] = str(self.ttl)
        return headers
