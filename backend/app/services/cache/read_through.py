"""
Read-Through Cache

Wraps a CacheStore region with read-through lookups and best-effort write
path helpers. Store failures never reach callers of read operations: they
are logged, counted and answered by calling the loader directly.
"""

from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

import structlog
from opentelemetry import trace
from prometheus_client import CollectorRegistry, Counter
from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from ...domain.cache.exceptions import CacheStoreException
from ...domain.cache.repository_interfaces import CacheStore
from ...domain.cache.value_objects import (
    CacheKey,
    CacheOutcome,
    CacheStrategy,
    TEXT_ENTRIES_REGION,
)

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

Loader = Callable[[], Awaitable[T]]


@dataclass
class CacheStatistics:
    """Lookup counters for one strategy."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    bypasses: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses + self.errors + self.bypasses

    @property
    def hit_rate(self) -> float:
        cached = self.hits + self.misses
        if cached == 0:
            return 0.0
        return self.hits / cached

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = round(self.hit_rate, 4)
        return data


@dataclass
class WriteStatistics:
    """Write path counters shared by both strategies."""

    puts: int = 0
    evictions: int = 0
    region_clears: int = 0
    failures: int = 0


class ReadThroughCache:
    """
    Read-through accessor over a single cache region.

    ``get_or_load`` is the explicit get, load, put sequence. ``lookup`` and
    ``put`` are the same steps exposed separately for the declarative
    helper, which adds skip conditions around them.
    """

    def __init__(
        self,
        store: CacheStore,
        region: str = TEXT_ENTRIES_REGION,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.cache_store = store
        self.region = region
        self.stats: Dict[CacheStrategy, CacheStatistics] = {
            strategy: CacheStatistics() for strategy in CacheStrategy
        }
        self.write_stats = WriteStatistics()

        self.registry = registry or CollectorRegistry()
        self._lookups = Counter(
            "text_entry_cache_lookups",
            "Read-through lookups by strategy and outcome",
            ["strategy", "outcome"],
            registry=self.registry,
        )
        self._writes = Counter(
            "text_entry_cache_writes",
            "Write path cache operations by kind and result",
            ["kind", "result"],
            registry=self.registry,
        )

    def record_outcome(self, strategy: CacheStrategy, outcome: CacheOutcome) -> None:
        stats = self.stats[strategy]
        if outcome is CacheOutcome.HIT:
            stats.hits += 1
        elif outcome is CacheOutcome.MISS:
            stats.misses += 1
        elif outcome is CacheOutcome.BYPASS:
            stats.bypasses += 1
        else:
            stats.errors += 1
        self._lookups.labels(strategy=strategy.value, outcome=outcome.value).inc()

    def statistics(self, strategy: CacheStrategy) -> CacheStatistics:
        return self.stats[strategy]

    async def lookup(
        self, key: CacheKey, adapter: TypeAdapter
    ) -> Tuple[CacheOutcome, Any]:
        """
        Fetch and decode one key.

        Returns:
            (HIT, value), (MISS, None) or (ERROR, None) when the store failed
            or held a value that no longer decodes
        """
        try:
            cached = await self.cache_store.get(self.region, key)
        except CacheStoreException as e:
            logger.warning(
                "Cache read failed, falling back to loader",
                cache_key=key.value,
                region=self.region,
                error=e.message,
                error_code=e.error_code,
            )
            return CacheOutcome.ERROR, None

        if cached is None:
            return CacheOutcome.MISS, None

        try:
            return CacheOutcome.HIT, adapter.validate_python(cached)
        except ValidationError as e:
            logger.warning(
                "Cached value could not be decoded, falling back to loader",
                cache_key=key.value,
                region=self.region,
                error=str(e),
            )
            return CacheOutcome.ERROR, None

    async def put(self, key: CacheKey, value: Any, adapter: TypeAdapter) -> bool:
        """Encode and put a value. Returns False if the store refused it."""
        try:
            payload = adapter.dump_python(value, mode="json")
            await self.cache_store.put(self.region, key, payload)
        except (CacheStoreException, PydanticSerializationError) as e:
            self.write_stats.failures += 1
            self._writes.labels(kind="put", result="failed").inc()
            logger.warning(
                "Cache put failed",
                cache_key=key.value,
                region=self.region,
                error=getattr(e, "message", str(e)),
            )
            return False

        self.write_stats.puts += 1
        self._writes.labels(kind="put", result="ok").inc()
        return True

    async def get_or_load(
        self,
        key: CacheKey,
        loader: Loader,
        adapter: TypeAdapter,
        strategy: CacheStrategy = CacheStrategy.MANUAL,
    ) -> Any:
        """
        Return the cached value for key, or load, store and return it.

        Errors raised by the loader (e.g. not found) propagate and nothing is
        cached for them.
        """
        with tracer.start_as_current_span("read_through.get_or_load") as span:
            span.set_attribute("cache.key", key.value)
            span.set_attribute("cache.strategy", strategy.value)

            outcome, value = await self.lookup(key, adapter)
            self.record_outcome(strategy, outcome)
            span.set_attribute("cache.outcome", outcome.value)

            if outcome is CacheOutcome.HIT:
                logger.debug(
                    "Cache hit",
                    cache_outcome=outcome.value,
                    cache_key=key.value,
                    region=self.region,
                    strategy=strategy.value,
                )
                return value

            if outcome is CacheOutcome.ERROR:
                return await loader()

            logger.info(
                "Cache miss, loading from database",
                cache_outcome=outcome.value,
                cache_key=key.value,
                region=self.region,
                strategy=strategy.value,
            )
            value = await loader()
            await self.put(key, value, adapter)
            return value

    async def load_uncached(self, loader: Loader, strategy: CacheStrategy) -> Any:
        """Call the loader without touching the store, counting a bypass."""
        self.record_outcome(strategy, CacheOutcome.BYPASS)
        return await loader()

    # Write path

    async def write_through(
        self, key: CacheKey, value: Any, adapter: TypeAdapter
    ) -> bool:
        """Pre-populate a key after a successful write."""
        return await self.put(key, value, adapter)

    async def evict(self, key: CacheKey) -> bool:
        """Best-effort removal of one key."""
        try:
            await self.cache_store.evict(self.region, key)
        except CacheStoreException as e:
            self.write_stats.failures += 1
            self._writes.labels(kind="evict", result="failed").inc()
            logger.error(
                "Cache eviction failed", cache_key=key.value, error=e.message
            )
            return False

        self.write_stats.evictions += 1
        self._writes.labels(kind="evict", result="ok").inc()
        return True

    async def evict_region(self, keep_prefixes: Tuple[str, ...] = ()) -> bool:
        """Best-effort removal of the region keys not matching keep_prefixes."""
        try:
            count = await self.cache_store.evict_all(self.region, keep_prefixes)
        except CacheStoreException as e:
            self.write_stats.failures += 1
            self._writes.labels(kind="evict_all", result="failed").inc()
            logger.error(
                "Cache region eviction failed", region=self.region, error=e.message
            )
            return False

        self.write_stats.region_clears += 1
        self._writes.labels(kind="evict_all", result="ok").inc()
        logger.info("Cache region evicted", region=self.region, removed=count)
        return True

    async def clear(self, region: Optional[str] = None) -> int:
        """
        Remove every key of a region on behalf of an administrator.

        Unlike ``evict_region`` failures propagate so the caller can report
        them.

        Raises:
            CacheRegionNotFoundException: If region is not managed by the store
            CacheStoreException: If the store fails
        """
        region = region or self.region
        try:
            count = await self.cache_store.evict_all(region)
        except CacheStoreException:
            self.write_stats.failures += 1
            self._writes.labels(kind="clear", result="failed").inc()
            raise

        self.write_stats.region_clears += 1
        self._writes.labels(kind="clear", result="ok").inc()
        return count
