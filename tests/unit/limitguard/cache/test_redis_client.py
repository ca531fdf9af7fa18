"""
Unit tests for Redis client.
"""

from unittest.mock import MagicMock, patch

import pytest

from limitguard.cache.redis_client import RedisClient
from limitguard.exceptions import CacheConnectionError, CacheError


@pytest.fixture
def redis_url():
    """Test Redis URL."""
    return "redis://localhost:6379/0"


@pytest.fixture
def redis_client(redis_url):
    """Create Redis client."""
    return RedisClient(url=redis_url)


@pytest.fixture
def connected_client(redis_client):
    """Create client with a mocked connection."""
    redis_client._client = MagicMock()
    return redis_client


class TestRedisClientInitialization:
    """Tests for Redis client initialization."""

    def test_initialization(self, redis_client, redis_url):
        """Test client initialization with default settings."""
        assert redis_client.url == redis_url
        assert redis_client.max_connections == 50
        assert redis_client.decode_responses is True
        assert redis_client.socket_timeout == 1.0
        assert redis_client.socket_connect_timeout == 1.0
        assert redis_client._pool is None
        assert redis_client._client is None
        assert redis_client.is_connected is False


class TestRedisClientConnection:
    """Tests for Redis client connection management."""

    def test_connect_success(self, redis_client):
        """Test successful connection."""
        with (
            patch("limitguard.cache.redis_client.ConnectionPool") as mock_pool_class,
            patch("limitguard.cache.redis_client.Redis") as mock_redis_class,
        ):
            mock_pool = MagicMock()
            mock_pool_class.from_url.return_value = mock_pool
            mock_client = MagicMock()
            mock_redis_class.return_value = mock_client

            redis_client.connect()

            mock_pool_class.from_url.assert_called_once_with(
                redis_client.url,
                max_connections=50,
                decode_responses=True,
                socket_timeout=1.0,
                socket_connect_timeout=1.0,
            )
            mock_client.ping.assert_called_once()
            assert redis_client.is_connected is True

    def test_connect_failure(self, redis_client):
        """Test connection failure releases the pool."""
        with (
            patch("limitguard.cache.redis_client.ConnectionPool") as mock_pool_class,
            patch("limitguard.cache.redis_client.Redis") as mock_redis_class,
        ):
            mock_pool = MagicMock()
            mock_pool_class.from_url.return_value = mock_pool
            mock_redis_class.return_value.ping.side_effect = ConnectionError("refused")

            with pytest.raises(CacheConnectionError):
                redis_client.connect()

            mock_pool.disconnect.assert_called_once()
            assert redis_client._pool is None
            assert redis_client.is_connected is False

    def test_disconnect(self, connected_client):
        """Test disconnect closes client and pool."""
        client = connected_client._client
        pool = MagicMock()
        connected_client._pool = pool

        connected_client.disconnect()

        client.close.assert_called_once()
        pool.disconnect.assert_called_once()
        assert connected_client.is_connected is False

    def test_get_client_not_connected(self, redis_client):
        """Test getting client before connect raises."""
        with pytest.raises(CacheError, match="not connected"):
            redis_client.get_client()

    def test_ping_failure(self, connected_client):
        """Test ping errors are wrapped."""
        connected_client._client.ping.side_effect = TimeoutError("slow")

        with pytest.raises(CacheError, match="ping failed"):
            connected_client.ping()


class TestRedisClientSortedSets:
    """Tests for sorted-set helpers."""

    def test_trim_and_count(self, connected_client):
        """Test trimming and counting run in one pipeline."""
        pipe = connected_client._client.pipeline.return_value
        pipe.execute.return_value = [2, 5]

        assert connected_client.zset_trim_and_count("k", 100.0) == 5
        pipe.zremrangebyscore.assert_called_once_with("k", "-inf", 100.0)
        pipe.zcard.assert_called_once_with("k")

    def test_add_sets_expiry(self, connected_client):
        """Test add refreshes the key expiry."""
        pipe = connected_client._client.pipeline.return_value

        assert connected_client.zset_add("k", "m", 10.0, ttl=60) is True
        pipe.zadd.assert_called_once_with("k", {"m": 10.0})
        pipe.expire.assert_called_once_with("k", 60)
        pipe.execute.assert_called_once()

    def test_oldest_score(self, connected_client):
        """Test oldest score uses an exclusive lower bound."""
        connected_client._client.zrangebyscore.return_value = [("m", 42.5)]

        assert connected_client.zset_oldest_score("k", 10.0) == 42.5
        connected_client._client.zrangebyscore.assert_called_once_with(
            "k", "(10.0", "+inf", start=0, num=1, withscores=True
        )

    def test_oldest_score_empty(self, connected_client):
        """Test oldest score of an empty set is None."""
        connected_client._client.zrangebyscore.return_value = []

        assert connected_client.zset_oldest_score("k", 10.0) is None

    def test_pipeline_error_wrapped(self, connected_client):
        """Test driver errors become cache errors."""
        connected_client._client.pipeline.return_value.execute.side_effect = OSError("reset")

        with pytest.raises(CacheError):
            connected_client.zset_trim_and_count("k", 1.0)

    def test_operations_require_connection(self, redis_client):
        """Test helpers raise when not connected."""
        with pytest.raises(CacheError):
            redis_client.delete("k")
