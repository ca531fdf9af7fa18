"""
Unit tests for the bucketed database backend.

Runs against in-memory SQLite through the real connection manager.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from limitguard.database.connection import DatabaseConfig, DatabaseConnection
from limitguard.exceptions import ConfigurationError, DatabaseError
from limitguard.models.rate_limit import RateLimitBucket
from limitguard.rate_limiter.backends.database import DatabaseStorageBackend


@pytest.fixture
def clock(clock):
    """Move the shared clock to 20 seconds into a minute bucket."""
    clock.now = 1_000_020.0
    return clock


@pytest.fixture
def connection():
    """Create in-memory SQLite connection."""
    conn = DatabaseConnection(DatabaseConfig(url="sqlite://"))
    yield conn
    conn.close()


@pytest.fixture
def backend(connection, clock):
    """Create database backend with buckets of at most one minute."""
    return DatabaseStorageBackend(connection, bucket_seconds=60, retention_seconds=3600, clock=clock)


def bucket_rows(connection):
    """Read all bucket rows ordered by key and bucket."""
    with connection.get_session() as session:
        rows = session.execute(
            select(
                RateLimitBucket.key, RateLimitBucket.bucket_timestamp, RateLimitBucket.count
            ).order_by(RateLimitBucket.key, RateLimitBucket.bucket_timestamp)
        ).all()
    return [tuple(row) for row in rows]


class TestDatabaseBackendAvailability:
    """Tests for configuration and probing."""

    def test_unconfigured_backend_is_unavailable(self, clock):
        """Test a backend without a connection reports unavailable."""
        backend = DatabaseStorageBackend(None, clock=clock)

        assert backend.is_available() is False
        assert backend.test() is False

    def test_unconfigured_backend_raises_on_use(self, clock):
        """Test operations on an unconfigured backend fail with a configuration error."""
        backend = DatabaseStorageBackend(None, clock=clock)

        with pytest.raises(ConfigurationError):
            backend.get_current_count("ip:A", 60)

    def test_available_creates_schema(self, backend, connection):
        """Test the probe succeeds and the table exists afterwards."""
        assert backend.is_available() is True
        assert backend.test() is True
        assert bucket_rows(connection) == []

    def test_driver_error_becomes_database_error(self, backend, connection):
        """Test SQLAlchemy failures are translated."""
        backend.is_available()
        session = MagicMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        session_cm = MagicMock()
        session_cm.__enter__.return_value = session
        session_cm.__exit__.return_value = False
        connection.get_session = MagicMock(return_value=session_cm)

        with pytest.raises(DatabaseError) as exc_info:
            backend.reset("ip:A")

        assert exc_info.value.storage == "database"
        assert backend.test() is False


class TestDatabaseBackendLimiting:
    """Tests for bucketed counting."""

    def test_allows_up_to_limit(self, backend):
        """Test requests are allowed until the limit is reached."""
        results = [backend.is_limited("ip:A", 3, 60) for _ in range(4)]

        assert results == [False, False, False, True]
        assert backend.get_current_count("ip:A", 60) == 3

    def test_same_bucket_is_upserted(self, backend, connection, clock):
        """Test observations in one bucket share a row."""
        backend.increment_count("ip:A", 60)
        clock.advance(3)
        backend.increment_count("ip:A", 60)

        assert bucket_rows(connection) == [("ip:A", 1_000_020, 2)]

    def test_new_bucket_gets_new_row(self, backend, connection, clock):
        """Test crossing a bucket boundary starts a new row."""
        backend.increment_count("ip:A", 60)
        clock.advance(6)
        backend.increment_count("ip:A", 60)

        assert bucket_rows(connection) == [("ip:A", 1_000_020, 1), ("ip:A", 1_000_026, 1)]

    def test_bucket_width_is_a_tenth_of_the_window(self, backend, connection, clock):
        """Test bucket width scales with the window and is capped by bucket_seconds."""
        clock.now = 1_000_027.0
        backend.increment_count("ip:long", 6000)
        backend.increment_count("ip:mid", 600)
        backend.increment_count("ip:short", 10)

        assert bucket_rows(connection) == [
            ("ip:long", 1_000_020, 1),
            ("ip:mid", 1_000_020, 1),
            ("ip:short", 1_000_027, 1),
        ]

    def test_window_slides_across_bucket_boundary(self, backend, clock):
        """Test a burst just before a bucket boundary still counts one second later."""
        clock.now = 1_000_019.0
        first = [backend.is_limited("ip:A", 5, 60) for _ in range(5)]
        clock.advance(1)
        second = [backend.is_limited("ip:A", 5, 60) for _ in range(5)]

        assert first == [False] * 5
        assert second == [True] * 5
        assert backend.get_current_count("ip:A", 60) == 5

    def test_expired_buckets_are_purged_on_read(self, backend, connection, clock):
        """Test reading a key deletes its buckets that left the window."""
        for _ in range(5):
            backend.is_limited("ip:A", 5, 60)
        backend.is_limited("ip:B", 5, 60)

        clock.advance(61)

        assert backend.get_current_count("ip:A", 60) == 0
        assert bucket_rows(connection) == [("ip:B", 1_000_020, 1)]
        assert backend.is_limited("ip:A", 3, 60) is False

    def test_reset(self, backend, connection):
        """Test reset deletes every bucket for the key."""
        backend.is_limited("ip:A", 3, 60)
        backend.is_limited("ip:B", 3, 60)

        assert backend.reset("ip:A") is True
        assert [row[0] for row in bucket_rows(connection)] == ["ip:B"]

    def test_ttl(self, backend, clock):
        """Test TTL is measured from the oldest live bucket."""
        assert backend.get_ttl("ip:A", 60) is None

        backend.increment_count("ip:A", 60)
        clock.advance(15)

        assert backend.get_ttl("ip:A", 60) == 45

    def test_get_info(self, backend):
        """Test info snapshot comes from the database backend."""
        backend.is_limited("ip:A", 5, 60)
        backend.is_limited("ip:A", 5, 60)

        info = backend.get_info("ip:A", 60, 5)

        assert info.count == 2
        assert info.remaining == 3
        assert info.storage == "database"


class TestDatabaseBackendHousekeeping:
    """Tests for cleanup and shutdown."""

    def test_cleanup_deletes_past_retention(self, connection, clock):
        """Test cleanup removes buckets older than retention for every key."""
        backend = DatabaseStorageBackend(connection, bucket_seconds=60, retention_seconds=120, clock=clock)
        backend.increment_count("ip:A", 600)
        backend.increment_count("ip:B", 600)
        clock.advance(120)
        backend.increment_count("ip:B", 600)

        assert backend.cleanup() == 2
        assert bucket_rows(connection) == [("ip:B", 1_000_140, 1)]

    def test_close_disposes_connection(self, backend, connection):
        """Test close releases the engine."""
        backend.is_available()

        backend.close()

        assert connection._engine is None
        assert backend._schema_ready is False
