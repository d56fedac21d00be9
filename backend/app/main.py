"""
School Portal Backend - Text Entry Service Bootstrap

Wires settings, logging, the database, the Redis cache store and the text
entry service together. HTTP routing lives outside this package; a web
layer enters ``lifespan()`` and calls the service it yields.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import structlog

from .core.config import Settings, get_settings
from .core.database import DatabaseManager
from .core.logging import configure_logging
from .domain.cache.value_objects import TEXT_ENTRIES_REGION
from .infrastructure.redis.connection_factory import RedisConnectionFactory
from .infrastructure.repositories.cache_repository import RedisCacheStore
from .services.cache.read_through import ReadThroughCache
from .services.cache.strategy import CacheStrategyState
from .services.text_entries.service import TextEntryService

logger = structlog.get_logger()


class Application:
    """Owns the long-lived resources behind the text entry service."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.database = DatabaseManager(self.settings)
        self.connection_factory = RedisConnectionFactory(self.settings)
        self.cache_store = RedisCacheStore(
            self.connection_factory,
            regions=(TEXT_ENTRIES_REGION,),
            settings=self.settings,
        )
        self.cache = ReadThroughCache(self.cache_store, TEXT_ENTRIES_REGION)
        self.text_entries = TextEntryService(
            self.database,
            self.cache,
            CacheStrategyState(self.settings.CACHE_USE_AUTO),
            self.settings,
        )

    async def startup(self) -> None:
        configure_logging()
        logger.info(
            "Starting school portal backend",
            environment=self.settings.ENVIRONMENT,
            use_auto_cache=self.settings.CACHE_USE_AUTO,
        )
        await self.database.initialize()
        if not self.settings.is_production:
            await self.database.create_schema()
        await self.text_entries.initialize()

    async def health_check(self) -> Dict[str, Any]:
        """Report database and Redis connectivity."""
        database = await self.database.health_check()
        redis = await self.connection_factory.health_check()
        healthy = all(check["status"] == "healthy" for check in (database, redis))
        return {
            "status": "healthy" if healthy else "degraded",
            "database": database,
            "redis": redis,
            "cache_strategy": self.text_entries.strategy.value,
        }

    async def shutdown(self) -> None:
        try:
            await self.cache_store.close()
        finally:
            await self.database.close()
        logger.info("Application shutdown completed")

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator[TextEntryService]:
        """Start resources, yield the service, always release resources."""
        await self.startup()
        try:
            yield self.text_entries
        finally:
            await self.shutdown()
