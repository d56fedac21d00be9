"""
Declarative Cacheable Queries

A query describes its caching once (key, skip condition, store condition)
and ``cacheable`` runs any loader under that description. The same
lookup/put primitives back the manual path, so both strategies observe the
same store semantics.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog
from opentelemetry import trace
from pydantic import TypeAdapter

from ...domain.cache.value_objects import CacheKey, CacheOutcome, CacheStrategy
from .read_through import Loader, ReadThroughCache

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)


def has_text(value: Any) -> bool:
    return value is not None and bool(str(value).strip())


def is_positive_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def is_null_or_empty(result: Any) -> bool:
    """Results that are not worth storing."""
    if result is None:
        return True
    try:
        return len(result) == 0
    except TypeError:
        return False


@dataclass(frozen=True)
class CacheableQuery:
    """
    Cache description for one query.

    Attributes:
        name: Query name used in logs and spans
        key_builder: Builds the AUTO key from the query arguments
        adapter: Encodes and decodes the query result
        condition: When it returns False the store is bypassed entirely
        unless: When it returns True for a loaded result nothing is stored
    """

    name: str
    key_builder: Callable[..., CacheKey]
    adapter: TypeAdapter
    condition: Optional[Callable[..., bool]] = None
    unless: Optional[Callable[[Any], bool]] = None

    def applies(self, *args: Any) -> bool:
        return self.condition is None or bool(self.condition(*args))

    def should_skip(self, result: Any) -> bool:
        return self.unless is not None and bool(self.unless(result))


async def cacheable(
    cache: ReadThroughCache, query: CacheableQuery, loader: Loader, *args: Any
) -> Any:
    """
    Run loader under the caching rules of query.

    Lookup and store failures are handled by the read-through primitives and
    never raised here; loader errors propagate unchanged.
    """
    strategy = CacheStrategy.AUTO

    if not query.applies(*args):
        logger.debug("Cache condition not met, bypassing", query=query.name)
        return await cache.load_uncached(loader, strategy)

    key = query.key_builder(*args)

    with tracer.start_as_current_span(f"cacheable.{query.name}") as span:
        span.set_attribute("cache.key", key.value)

        outcome, value = await cache.lookup(key, query.adapter)
        cache.record_outcome(strategy, outcome)
        span.set_attribute("cache.outcome", outcome.value)

        if outcome is CacheOutcome.HIT:
            logger.debug(
                "Cache hit",
                cache_outcome=outcome.value,
                cache_key=key.value,
                region=cache.region,
                strategy=strategy.value,
            )
            return value

        value = await loader()
        if outcome is CacheOutcome.ERROR:
            return value

        if query.should_skip(value):
            logger.debug(
                "Result not stored",
                cache_outcome=outcome.value,
                cache_key=key.value,
                query=query.name,
            )
            return value

        logger.info(
            "Cache miss, result stored",
            cache_outcome=outcome.value,
            cache_key=key.value,
            region=cache.region,
            strategy=strategy.value,
        )
        await cache.put(key, value, query.adapter)
        return value
