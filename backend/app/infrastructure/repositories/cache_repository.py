"""
Redis Cache Repository Implementation

Redis-backed CacheStore. Keys are laid out as ``{prefix}:{region}:{key}``
so a whole region can be found with one SCAN pattern and removed with UNLINK.
"""

import json
import logging
import re
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple, TypeVar

from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
    RedisError,
)
from opentelemetry import trace

from ...core.config import Settings, get_settings
from ...domain.cache.exceptions import (
    CacheConnectionException,
    CacheOperationTimeoutException,
    CacheRegionNotFoundException,
    CacheSerializationException,
    CacheStoreException,
)
from ...domain.cache.repository_interfaces import CacheStore
from ...domain.cache.value_objects import CacheKey, TEXT_ENTRIES_REGION
from ..redis.circuit_breaker import CacheCircuitBreaker, CircuitBreakerConfig
from ..redis.connection_factory import RedisConnectionFactory

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")

SCAN_BATCH_SIZE = 200


def _glob_escape(value: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class RedisCacheStore(CacheStore):
    """Redis implementation of the region-scoped cache store."""

    def __init__(
        self,
        connection_factory: Optional[RedisConnectionFactory] = None,
        regions: Iterable[str] = (TEXT_ENTRIES_REGION,),
        settings: Optional[Settings] = None,
        circuit_breaker: Optional[CacheCircuitBreaker] = None,
    ):
        self.settings = settings or get_settings()
        self.connection_factory = connection_factory or RedisConnectionFactory(
            self.settings
        )
        self.regions = list(regions)
        self.prefix = self.settings.CACHE_KEY_PREFIX
        self.ttl_seconds = self.settings.cache_ttl_seconds
        self.circuit_breaker = circuit_breaker or CacheCircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=self.settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=self.settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
                failure_exceptions=(
                    RedisConnectionError,
                    RedisTimeoutError,
                    ConnectionRefusedError,
                    OSError,
                ),
            )
        )

    @property
    def store_type(self) -> str:
        return "Redis"

    def _region_prefix(self, region: str) -> str:
        return f"{self.prefix}:{region}:"

    def _full_key(self, region: str, key: CacheKey) -> str:
        return self._region_prefix(region) + key.value

    def _check_region(self, region: str) -> None:
        if region not in self.regions:
            raise CacheRegionNotFoundException(region)

    async def _execute(
        self, operation: str, target: str, func: Callable[..., Awaitable[T]]
    ) -> T:
        """Run a Redis call through the circuit breaker, translating errors."""
        with tracer.start_as_current_span(f"cache_store.{operation}") as span:
            span.set_attribute("cache.key", target)
            try:
                return await self.circuit_breaker.call(func)
            except CacheStoreException as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, e.message))
                raise
            except RedisTimeoutError as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise CacheOperationTimeoutException(operation, target) from e
            except (RedisConnectionError, OSError) as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise CacheConnectionException(
                    message=f"Redis unavailable during {operation}", original_error=e
                ) from e
            except RedisError as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise CacheStoreException(
                    f"Redis {operation} failed: {e}",
                    details={"operation": operation, "key": target},
                ) from e

    async def get(self, region: str, key: CacheKey) -> Optional[Any]:
        """Get a decoded value from Redis."""
        self._check_region(region)
        full_key = self._full_key(region, key)

        async def _get():
            async with self.connection_factory.get_connection() as client:
                return await client.get(full_key)

        raw = await self._execute("get", full_key, _get)
        if raw is None:
            return None

        try:
            return json.loads(raw)
        except ValueError as e:
            raise CacheSerializationException(full_key, e) from e

    async def put(self, region: str, key: CacheKey, value: Any) -> None:
        """Encode and store a value, applying the configured TTL if any."""
        self._check_region(region)
        if value is None:
            return
        full_key = self._full_key(region, key)

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise CacheSerializationException(full_key, e) from e

        async def _put():
            async with self.connection_factory.get_connection() as client:
                await client.set(full_key, payload, ex=self.ttl_seconds)

        await self._execute("put", full_key, _put)
        logger.debug(f"Stored cache entry {full_key}", extra={"bytes": len(payload)})

    async def evict(self, region: str, key: CacheKey) -> bool:
        """Delete a single key."""
        self._check_region(region)
        full_key = self._full_key(region, key)

        async def _evict():
            async with self.connection_factory.get_connection() as client:
                return await client.unlink(full_key)

        removed = await self._execute("evict", full_key, _evict)
        return removed > 0

    async def _scan_region(self, client, region: str) -> List[str]:
        pattern = _glob_escape(self._region_prefix(region)) + "*"
        keys: List[str] = []
        async for key in client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE):
            keys.append(key)
        return keys

    async def evict_all(self, region: str, keep_prefixes: Tuple[str, ...] = ()) -> int:
        """Delete the keys of a region using cursor-based SCAN and UNLINK."""
        self._check_region(region)
        region_prefix = self._region_prefix(region)
        pattern = region_prefix + "*"

        async def _evict_all():
            async with self.connection_factory.get_connection() as client:
                keys = [
                    key
                    for key in await self._scan_region(client, region)
                    if not key[len(region_prefix) :].startswith(keep_prefixes)
                ]
                if not keys:
                    return 0
                return await client.unlink(*keys)

        count = await self._execute("evict_all", pattern, _evict_all)
        logger.info(
            f"Evicted {count} cache entries from region {region}",
            extra={"region": region, "count": count},
        )
        return count

    async def list_regions(self) -> List[str]:
        return list(self.regions)

    async def region_size(self, region: str) -> int:
        """Count keys in a region (SCAN based, so an estimate under writes)."""
        self._check_region(region)
        pattern = self._region_prefix(region) + "*"

        async def _size():
            async with self.connection_factory.get_connection() as client:
                return len(await self._scan_region(client, region))

        return await self._execute("region_size", pattern, _size)

    async def close(self) -> None:
        await self.connection_factory.close()
