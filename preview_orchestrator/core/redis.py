"""
Redis Connection Manager
Provides the Redis connection pool used by the JobQueue and the RQ workers.
"""

import logging
from typing import Optional
from redis import Redis, ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Manages a pooled Redis connection for one Redis URL.

    Features:
    - Connection pooling for efficient resource usage
    - Health checks
    - Explicit close() for process shutdown
    """

    def __init__(self, url: str, max_connections: int = 10):
        self.url = url
        self.max_connections = max_connections
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    def _create_pool(self) -> ConnectionPool:
        """Create Redis connection pool."""
        return ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            decode_responses=False  # RQ needs bytes
        )

    def get_connection(self) -> Redis:
        """
        Get a Redis connection from the pool.

        Returns:
            Redis client instance
        """
        if self._pool is None:
            self._pool = self._create_pool()
            logger.info(f"Created Redis connection pool for {mask_url(self.url)}")

        if self._client is None:
            self._client = Redis(connection_pool=self._pool)

        return self._client

    def health_check(self) -> dict:
        """
        Check Redis connection health.

        Returns:
            dict with status and info
        """
        try:
            client = self.get_connection()
            ping_result = client.ping()
            info = client.info("server")

            return {
                "status": "healthy" if ping_result else "unhealthy",
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "url": mask_url(self.url)
            }
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Redis health check failed: {e}")
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
                "url": mask_url(self.url)
            }

    def close(self):
        """Close all connections in the pool."""
        if self._pool:
            self._pool.disconnect()
            self._pool = None
            self._client = None
            logger.info("Redis connection pool closed")


def mask_url(url: str) -> str:
    """Mask password in Redis URL for logging."""
    if "@" in url:
        # redis://:password@host:port -> redis://***@host:port
        parts = url.split("@")
        return f"redis://***@{parts[-1]}"
    return url


__all__ = [
    "RedisManager",
    "mask_url",
]
