"""
Redis Connection Factory

Connection pool management for the cache store.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from ...core.config import Settings, get_settings
from ...domain.cache.exceptions import CacheConnectionException

logger = logging.getLogger(__name__)


class RedisConnectionFactory:
    """
    Factory for pooled Redis clients.

    The pool is created lazily on first use; ``close`` disconnects it.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._pool: Optional[ConnectionPool] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the connection pool (idempotent)."""
        if self._pool is not None:
            return

        async with self._lock:
            if self._pool is not None:
                return

            try:
                self._pool = ConnectionPool.from_url(
                    self.settings.REDIS_URL,
                    max_connections=self.settings.REDIS_MAX_CONNECTIONS,
                    socket_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                    socket_connect_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                    decode_responses=True,
                )
                logger.info(
                    "Redis connection pool created",
                    extra={"max_connections": self.settings.REDIS_MAX_CONNECTIONS},
                )
            except (RedisError, ValueError) as e:
                logger.error(f"Failed to create Redis connection pool: {e}")
                raise CacheConnectionException(
                    message=f"Redis pool creation failed: {e}", original_error=e
                )

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[Redis]:
        """
        Yield a Redis client bound to the shared pool.

        Raises:
            CacheConnectionException: If the pool cannot be created
        """
        await self.initialize()
        client = Redis(connection_pool=self._pool)
        try:
            yield client
        finally:
            await client.aclose()

    async def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report pool status."""
        try:
            async with self.get_connection() as client:
                await client.ping()
            return {"status": "healthy", "url": self._redacted_url()}
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return {"status": "unhealthy", "url": self._redacted_url(), "error": str(e)}

    def _redacted_url(self) -> str:
        url = self.settings.REDIS_URL
        if "@" in url:
            scheme, _, rest = url.partition("://")
            return f"{scheme}://***@{rest.split('@', 1)[1]}"
        return url

    async def close(self) -> None:
        """Disconnect the pool."""
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
            logger.info("Redis connection pool closed")
