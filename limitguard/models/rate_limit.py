"""
Rate limit database models.
"""

from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from limitguard.database.base import Base


class RateLimitBucket(Base):
    """Number of observations for one key inside one fixed-width time bucket."""

    __tablename__ = "rate_limits"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Throttled subject
    key: Mapped[str] = mapped_column(String(255), nullable=False)

    # Bucket start, UNIX epoch seconds
    bucket_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Observations recorded in the bucket
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Indexes
    __table_args__ = (
        Index("idx_rate_limits_key_bucket", "key", "bucket_timestamp", unique=True),
        Index("idx_rate_limits_bucket", "bucket_timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<RateLimitBucket(key={self.key!r}, bucket_timestamp={self.bucket_timestamp}, "
            f"count={self.count})>"
        )
