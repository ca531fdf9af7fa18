"""
Redis client with connection pooling and sorted-set helpers.
"""

from redis import ConnectionPool, Redis

from limitguard.config.logging import get_logger, hash_key
from limitguard.exceptions import CacheConnectionError, CacheError

logger = get_logger(__name__)


class RedisClient:
    """Synchronous Redis client with a connection pool."""

    def __init__(
        self,
        url: str,
        max_connections: int = 50,
        decode_responses: bool = True,
        socket_timeout: float = 1.0,
        socket_connect_timeout: float = 1.0,
    ):
        """
        Initialize Redis client.

        Args:
            url: Redis connection URL
            max_connections: Maximum number of connections
            decode_responses: Decode responses to strings
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Socket connect timeout in seconds
        """
        self.url = url
        self.max_connections = max_connections
        self.decode_responses = decode_responses
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = socket_connect_timeout

        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    @property
    def is_connected(self) -> bool:
        """Whether connect() has succeeded and disconnect() has not been called."""
        return self._client is not None

    def connect(self) -> None:
        """
        Connect to Redis server.

        Raises:
            CacheConnectionError: If connection fails
        """
        try:
            self._pool = ConnectionPool.from_url(
                self.url,
                max_connections=self.max_connections,
                decode_responses=self.decode_responses,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_connect_timeout,
            )

            client = Redis(connection_pool=self._pool)
            client.ping()
            self._client = client

            logger.info("redis_connected", url=self.url)

        except Exception as e:
            if self._pool is not None:
                self._pool.disconnect()
                self._pool = None
            logger.error("redis_connection_failed", error=str(e), url=self.url)
            raise CacheConnectionError(f"Failed to connect to Redis: {e}") from e

    def disconnect(self) -> None:
        """Disconnect from Redis server."""
        if self._client:
            self._client.close()
            self._client = None

        if self._pool:
            self._pool.disconnect()
            self._pool = None

        logger.info("redis_disconnected")

    def get_client(self) -> Redis:
        """
        Get Redis client.

        Returns:
            Redis client instance

        Raises:
            CacheError: If not connected
        """
        if not self._client:
            raise CacheError("Redis client not connected. Call connect() first.")
        return self._client

    def ping(self) -> bool:
        """
        Ping Redis server.

        Returns:
            True if ping successful

        Raises:
            CacheError: If ping fails
        """
        try:
            client = self.get_client()
            return bool(client.ping())
        except CacheError:
            raise
        except Exception as e:
            logger.error("redis_ping_failed", error=str(e))
            raise CacheError(f"Redis ping failed: {e}") from e

    def delete(self, key: str) -> int:
        """
        Delete a key.

        Args:
            key: Cache key

        Returns:
            Number of keys deleted

        Raises:
            CacheError: If operation fails
        """
        try:
            client = self.get_client()
            return int(client.delete(key))
        except CacheError:
            raise
        except Exception as e:
            logger.error("redis_delete_failed", key_hash=hash_key(key), error=str(e))
            raise CacheError(f"Redis delete failed: {e}") from e

    def zset_trim_and_count(self, key: str, max_score: float) -> int:
        """
        Drop members scored at or below max_score and count the rest.

        Both commands go out in one round trip.

        Args:
            key: Sorted set key
            max_score: Inclusive upper bound of scores to remove

        Returns:
            Cardinality after trimming

        Raises:
            CacheError: If operation fails
        """
        try:
            pipe = self.get_client().pipeline(transaction=True)
            pipe.zremrangebyscore(key, "-inf", max_score)
            pipe.zcard(key)
            _, count = pipe.execute()
            return int(count)
        except CacheError:
            raise
        except Exception as e:
            logger.error("redis_zset_count_failed", key_hash=hash_key(key), error=str(e))
            raise CacheError(f"Redis sorted set count failed: {e}") from e

    def zset_add(self, key: str, member: str, score: float, ttl: int) -> bool:
        """
        Add a scored member and refresh the key expiry.

        Args:
            key: Sorted set key
            member: Unique member value
            score: Member score
            ttl: Expiry of the whole key in seconds

        Returns:
            True if successful

        Raises:
            CacheError: If operation fails
        """
        try:
            pipe = self.get_client().pipeline(transaction=True)
            pipe.zadd(key, {member: score})
            pipe.expire(key, ttl)
            pipe.execute()
            return True
        except CacheError:
            raise
        except Exception as e:
            logger.error("redis_zset_add_failed", key_hash=hash_key(key), error=str(e))
            raise CacheError(f"Redis sorted set add failed: {e}") from e

    def zset_oldest_score(self, key: str, min_score: float) -> float | None:
        """
        Get the lowest score strictly above min_score.

        Args:
            key: Sorted set key
            min_score: Exclusive lower bound

        Returns:
            Lowest matching score or None if the set has none

        Raises:
            CacheError: If operation fails
        """
        try:
            client = self.get_client()
            members = client.zrangebyscore(key, f"({min_score}", "+inf", start=0, num=1, withscores=True)
        except CacheError:
            raise
        except Exception as e:
            logger.error("redis_zset_range_failed", key_hash=hash_key(key), error=str(e))
            raise CacheError(f"Redis sorted set range failed: {e}") from e

        if not members:
            return None
        _, score = members[0]
        return float(score)
