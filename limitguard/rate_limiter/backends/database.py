"""
Relational database rate limit storage.

Observations are aggregated into fixed-width time buckets, one row per
(key, bucket). Counting sums the live buckets; recording upserts the
current bucket with the dialect's native insert-or-increment so concurrent
writers never lose updates. The count and the write are separate
statements, so two callers racing on the last slot can both get through.
A bucket leaves the window as a whole, so an observation can expire up to
one bucket width (a tenth of the window at most) early.
"""

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import delete, func, insert, select, text, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from limitguard.config.logging import get_logger
from limitguard.database.base import Base
from limitguard.database.connection import DatabaseConnection
from limitguard.exceptions import ConfigurationError, DatabaseError
from limitguard.models.rate_limit import RateLimitBucket
from limitguard.rate_limiter.backends.base import DEFAULT_WINDOW_SECONDS, StorageBackend
from limitguard.rate_limiter.config import STORAGE_DATABASE

logger = get_logger(__name__)

_table = RateLimitBucket.__table__

# Buckets expire whole; each is at most 1/BUCKETS_PER_WINDOW of the window wide
BUCKETS_PER_WINDOW = 10


class DatabaseStorageBackend(StorageBackend):
    """Bucketed sliding window stored in the ``rate_limits`` table."""

    name = STORAGE_DATABASE

    def __init__(
        self,
        connection: DatabaseConnection | None,
        bucket_seconds: int = 60,
        retention_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize database backend.

        Args:
            connection: Database connection manager, None when not configured
            bucket_seconds: Maximum bucket width; short windows use narrower buckets
            retention_seconds: cleanup() deletes buckets older than this
            clock: Time source returning UNIX time in seconds
        """
        super().__init__(clock)
        self.connection = connection
        self.bucket_seconds = bucket_seconds
        self.retention_seconds = retention_seconds
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def _require_connection(self) -> DatabaseConnection:
        if self.connection is None:
            raise ConfigurationError("Database backend has no connection URL", key="DATABASE_URL")
        return self.connection

    def _ensure_schema(self, connection: DatabaseConnection) -> None:
        """Create the rate limit table and its indexes on first use."""
        if self._schema_ready:
            return
        with self._schema_lock:
            if not self._schema_ready:
                Base.metadata.create_all(connection.get_engine(), tables=[_table])
                self._schema_ready = True
                logger.info("rate_limit_schema_ready", table=_table.name)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        """
        Open a committed session, translating driver failures.

        Raises:
            ConfigurationError: If no connection is configured
            DatabaseError: If the database fails
        """
        connection = self._require_connection()
        try:
            self._ensure_schema(connection)
            with connection.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("database_rate_limit_failed", operation=operation, error=str(e))
            raise DatabaseError(f"Database {operation} failed: {e}") from e

    def _bucket_width(self, window_seconds: int) -> int:
        """Bucket width for a window: at most a tenth of it, never below one second."""
        return max(1, min(self.bucket_seconds, window_seconds // BUCKETS_PER_WINDOW))

    def _upsert(self, session: Session, key: str, bucket: int) -> None:
        """Increment the bucket row, inserting it with count 1 if absent."""
        values = {"key": key, "bucket_timestamp": bucket, "count": 1}
        increment = {"count": _table.c["count"] + 1}
        dialect = session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = dialect_insert(_table).values(**values)
            session.execute(
                stmt.on_conflict_do_update(
                    index_elements=[_table.c["key"], _table.c["bucket_timestamp"]],
                    set_=increment,
                )
            )
        elif dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(_table).values(**values)
            session.execute(stmt.on_duplicate_key_update(**increment))
        else:
            result = session.execute(
                update(_table)
                .where(_table.c["key"] == key, _table.c["bucket_timestamp"] == bucket)
                .values(**increment)
            )
            if result.rowcount == 0:
                session.execute(insert(_table).values(**values))

    def is_available(self) -> bool:
        if self.connection is None:
            return False
        return self.test()

    def round_trip(self) -> None:
        with self._session("round_trip") as session:
            session.execute(text("SELECT 1"))

    def get_current_count(self, key: str, window_seconds: int) -> int:
        cutoff = int(self.now()) - window_seconds
        with self._session("get_current_count") as session:
            session.execute(
                delete(RateLimitBucket).where(
                    RateLimitBucket.key == key,
                    RateLimitBucket.bucket_timestamp <= cutoff,
                )
            )
            total = session.scalar(
                select(func.coalesce(func.sum(RateLimitBucket.count), 0)).where(
                    RateLimitBucket.key == key,
                    RateLimitBucket.bucket_timestamp > cutoff,
                )
            )
        return int(total or 0)

    def increment_count(self, key: str, window_seconds: int) -> bool:
        now = int(self.now())
        width = self._bucket_width(window_seconds)
        bucket = now - now % width
        with self._session("increment_count") as session:
            self._upsert(session, key, bucket)
        return True

    def reset(self, key: str) -> bool:
        with self._session("reset") as session:
            session.execute(delete(RateLimitBucket).where(RateLimitBucket.key == key))
        return True

    def get_ttl(self, key: str, window_seconds: int | None = None) -> int | None:
        window = window_seconds or DEFAULT_WINDOW_SECONDS
        cutoff = int(self.now()) - window
        with self._session("get_ttl") as session:
            oldest = session.scalar(
                select(func.min(RateLimitBucket.bucket_timestamp)).where(
                    RateLimitBucket.key == key,
                    RateLimitBucket.bucket_timestamp > cutoff,
                )
            )
        if oldest is None:
            return None
        return self._ttl_from_oldest(oldest, window)

    def cleanup(self) -> int:
        """
        Delete buckets older than the retention period for every key.

        Returns:
            Number of rows deleted
        """
        cutoff = int(self.now()) - self.retention_seconds
        with self._session("cleanup") as session:
            result = session.execute(
                delete(RateLimitBucket).where(RateLimitBucket.bucket_timestamp <= cutoff)
            )
        return int(result.rowcount or 0)

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self._schema_ready = False
