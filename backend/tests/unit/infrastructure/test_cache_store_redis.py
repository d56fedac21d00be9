"""
Unit tests for the Redis cache store and its circuit breaker.

Redis itself is replaced by a small in-process fake so that key layout,
SCAN based region eviction and error translation can be checked offline.
"""

import asyncio
import fnmatch
import pytest
from contextlib import asynccontextmanager
from unittest.mock import patch

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.core.config import Settings
from app.domain.cache.exceptions import (
    CacheCircuitOpenException,
    CacheConnectionException,
    CacheOperationTimeoutException,
    CacheRegionNotFoundException,
    CacheSerializationException,
)
from app.domain.cache.value_objects import CacheKey, CacheStrategy, TEXT_ENTRIES_REGION
from app.infrastructure.redis.circuit_breaker import (
    CacheCircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from app.infrastructure.repositories.cache_repository import RedisCacheStore


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache store."""

    def __init__(self):
        self.data = {}
        self.expirations = {}
        self.fail_with = None

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.expirations[key] = ex

    async def unlink(self, *keys):
        self._check()
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def scan_iter(self, match=None, count=None):
        self._check()
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key


class FakeConnectionFactory:
    def __init__(self, client):
        self.client = client
        self.closed = False

    @asynccontextmanager
    async def get_connection(self):
        yield self.client

    async def close(self):
        self.closed = True


@pytest.fixture
def redis_settings():
    return Settings(
        ENVIRONMENT="test",
        CACHE_KEY_PREFIX="portal",
        CACHE_DEFAULT_TTL_SECONDS=600,
        CIRCUIT_BREAKER_FAILURE_THRESHOLD=2,
        CIRCUIT_BREAKER_RECOVERY_TIMEOUT=30.0,
    )


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_store(fake_redis, redis_settings):
    return RedisCacheStore(
        FakeConnectionFactory(fake_redis),
        regions=(TEXT_ENTRIES_REGION, "documents"),
        settings=redis_settings,
    )


class TestRedisCacheStore:
    """Test RedisCacheStore against the fake client."""

    @pytest.mark.asyncio
    async def test_put_uses_region_key_layout_and_ttl(self, redis_store, fake_redis):
        await redis_store.put(TEXT_ENTRIES_REGION, CacheKey.entry(7), {"id": 7})

        assert fake_redis.data == {"portal:textEntries:single-entry-7": '{"id": 7}'}
        assert fake_redis.expirations["portal:textEntries:single-entry-7"] == 600

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, redis_store):
        key = CacheKey.search("enrolment")
        await redis_store.put(TEXT_ENTRIES_REGION, key, [1, 2])

        assert await redis_store.get(TEXT_ENTRIES_REGION, key) == [1, 2]
        assert await redis_store.get(TEXT_ENTRIES_REGION, CacheKey.total_count()) is None

    @pytest.mark.asyncio
    async def test_none_is_never_stored(self, redis_store, fake_redis):
        await redis_store.put(TEXT_ENTRIES_REGION, CacheKey.entry(1), None)
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_corrupt_value_raises_serialization_error(
        self, redis_store, fake_redis
    ):
        fake_redis.data["portal:textEntries:total-count"] = "{not json"

        with pytest.raises(CacheSerializationException):
            await redis_store.get(TEXT_ENTRIES_REGION, CacheKey.total_count())

    @pytest.mark.asyncio
    async def test_evict_single_key(self, redis_store):
        await redis_store.put(TEXT_ENTRIES_REGION, CacheKey.entry(7), 7)

        assert await redis_store.evict(TEXT_ENTRIES_REGION, CacheKey.entry(7)) is True
        assert await redis_store.evict(TEXT_ENTRIES_REGION, CacheKey.entry(7)) is False

    @pytest.mark.asyncio
    async def test_evict_all_is_scoped_to_region(self, redis_store, fake_redis):
        await redis_store.put(TEXT_ENTRIES_REGION, CacheKey.all_entries(), [1])
        await redis_store.put(TEXT_ENTRIES_REGION, CacheKey.total_count(), 1)
        await redis_store.put("documents", CacheKey.total_count(), 3)
        fake_redis.data["unrelated"] = "1"

        removed = await redis_store.evict_all(TEXT_ENTRIES_REGION)

        assert removed == 2
        assert sorted(fake_redis.data) == ["portal:documents:total-count", "unrelated"]

    @pytest.mark.asyncio
    async def test_evict_all_keeps_prefixed_keys(self, redis_store, fake_redis):
        await redis_store.put(TEXT_ENTRIES_REGION, CacheKey.entry(8), 8)
        await redis_store.put(
            TEXT_ENTRIES_REGION, CacheKey.entry(8, CacheStrategy.AUTO), 8
        )
        await redis_store.put(TEXT_ENTRIES_REGION, CacheKey.all_entries(), [8])

        removed = await redis_store.evict_all(
            TEXT_ENTRIES_REGION, keep_prefixes=CacheKey.ENTITY_PREFIXES
        )

        assert removed == 1
        assert await redis_store.region_size(TEXT_ENTRIES_REGION) == 2

    @pytest.mark.asyncio
    async def test_unknown_region(self, redis_store):
        with pytest.raises(CacheRegionNotFoundException) as exc_info:
            await redis_store.evict_all("admissions")

        assert exc_info.value.region == "admissions"
        assert await redis_store.has_region("documents") is True
        assert await redis_store.has_region("admissions") is False

    @pytest.mark.asyncio
    async def test_timeout_translated(self, redis_store, fake_redis):
        fake_redis.fail_with = RedisTimeoutError("slow")

        with pytest.raises(CacheOperationTimeoutException):
            await redis_store.get(TEXT_ENTRIES_REGION, CacheKey.total_count())

    @pytest.mark.asyncio
    async def test_connection_errors_open_the_circuit(self, redis_store, fake_redis):
        fake_redis.fail_with = RedisConnectionError("refused")

        for _ in range(2):
            with pytest.raises(CacheConnectionException):
                await redis_store.get(TEXT_ENTRIES_REGION, CacheKey.total_count())

        assert redis_store.circuit_breaker.state == CircuitState.OPEN
        with pytest.raises(CacheCircuitOpenException):
            await redis_store.get(TEXT_ENTRIES_REGION, CacheKey.total_count())

    def test_store_type(self, redis_store):
        assert redis_store.store_type == "Redis"

    @pytest.mark.asyncio
    async def test_close_closes_factory(self, redis_store):
        await redis_store.close()
        assert redis_store.connection_factory.closed is True


class TestCacheCircuitBreaker:
    """Test CacheCircuitBreaker state transitions."""

    @pytest.fixture
    def breaker(self):
        return CacheCircuitBreaker(
            CircuitBreakerConfig(failure_threshold=2, recovery_timeout=10.0)
        )

    @staticmethod
    async def failing():
        raise ConnectionError("down")

    @staticmethod
    async def succeeding():
        return "ok"

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(self.failing)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CacheCircuitOpenException):
            await breaker.call(self.succeeding)
        assert breaker.get_status()["rejected_calls"] == 1

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        with pytest.raises(ConnectionError):
            await breaker.call(self.failing)

        assert await breaker.call(self.succeeding) == "ok"
        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trial_closes_circuit(self, breaker):
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(self.failing)

        with patch(
            "app.infrastructure.redis.circuit_breaker.time.monotonic",
            return_value=breaker.opened_at + 11.0,
        ):
            assert await breaker.call(self.succeeding) == "ok"

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_only_one_half_open_trial_at_a_time(self, breaker):
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(self.failing)

        release = asyncio.Event()

        async def slow_trial():
            await release.wait()
            return "trial"

        with patch(
            "app.infrastructure.redis.circuit_breaker.time.monotonic",
            return_value=breaker.opened_at + 11.0,
        ):
            trial = asyncio.create_task(breaker.call(slow_trial))
            await asyncio.sleep(0)

            assert breaker.state == CircuitState.HALF_OPEN
            assert breaker.trial_in_flight is True
            with pytest.raises(CacheCircuitOpenException):
                await breaker.call(self.succeeding)

            release.set()
            assert await trial == "trial"

        assert breaker.state == CircuitState.CLOSED
        assert breaker.trial_in_flight is False
        assert await breaker.call(self.succeeding) == "ok"

    @pytest.mark.asyncio
    async def test_failed_trial_reopens(self, breaker):
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(self.failing)

        with patch(
            "app.infrastructure.redis.circuit_breaker.time.monotonic",
            return_value=breaker.opened_at + 11.0,
        ):
            with pytest.raises(ConnectionError):
                await breaker.call(self.failing)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_non_failure_exceptions_do_not_count(self, breaker):
        async def bad_value():
            raise ValueError("not a store failure")

        for _ in range(3):
            with pytest.raises(ValueError):
                await breaker.call(bad_value)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_reset(self, breaker):
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(self.failing)

        await breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.opened_at is None
