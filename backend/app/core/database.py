"""
School Portal Database Configuration

Async database connection management with:
- Engine creation with retry and exponential backoff
- Transactional session scope (commit on success, rollback on error)
- Schema creation helper for development and tests
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Any, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
import structlog

from .config import Settings, get_settings
from ..models import Base

logger = structlog.get_logger()


class DatabaseManager:
    """
    Owns the async engine and session factory.

    Sessions handed out by ``session()`` are transactional: the caller's
    block runs inside one transaction that is committed when the block exits
    normally and rolled back when it raises.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    def _engine_kwargs(self) -> Dict[str, Any]:
        url = self.settings.DATABASE_URL
        kwargs: Dict[str, Any] = {"echo": self.settings.DATABASE_ECHO}
        if url.startswith("postgresql"):
            kwargs.update(
                pool_size=self.settings.DATABASE_POOL_SIZE,
                max_overflow=self.settings.DATABASE_MAX_OVERFLOW,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        return kwargs

    async def _create_engine_with_retry(self) -> AsyncEngine:
        """Create the engine and prove connectivity, retrying on failure."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.DATABASE_CONNECT_RETRIES),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type((OSError, ConnectionError)),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                "Database connection retry",
                attempt=retry_state.attempt_number,
                wait_time=retry_state.next_action.sleep,
            ),
        ):
            with attempt:
                start_time = time.time()
                engine = create_async_engine(
                    self.settings.DATABASE_URL, **self._engine_kwargs()
                )
                try:
                    async with engine.connect() as conn:
                        await conn.execute(text("SELECT 1"))
                except Exception:
                    await engine.dispose()
                    raise

                logger.info(
                    "Database engine created",
                    duration_seconds=time.time() - start_time,
                )
                return engine

    async def initialize(self) -> None:
        """Initialize engine and session factory (idempotent)."""
        if self.engine is not None:
            return

        try:
            self.engine = await self._create_engine_with_retry()
            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
            logger.info("Database initialized")

        except Exception as e:
            logger.error("Database initialization failed", error=str(e), exc_info=True)
            raise

    async def create_schema(self) -> None:
        """Create all tables known to the model metadata."""
        if self.engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Transactional session scope.

        Yields:
            AsyncSession committed on normal exit, rolled back on error
        """
        if not self.session_factory:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(
                    "Database transaction failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

    async def health_check(self) -> Dict[str, Any]:
        """Check database connectivity."""
        start_time = time.time()
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return {
                "status": "healthy",
                "duration_seconds": time.time() - start_time,
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "duration_seconds": time.time() - start_time,
                "error": str(e),
            }

    async def close(self) -> None:
        """Close database connections and cleanup resources."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None

            logger.info("Database connections closed")


# Global database manager instance
database_manager = DatabaseManager()
