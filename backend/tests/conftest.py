"""
Main pytest configuration for all backend tests.

Fixtures for the text entry service: an SQLite database seeded with users and
entries, in-memory cache store doubles and call counters for loaders.
"""

import os
from datetime import datetime

import pytest
import pytest_asyncio

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CACHE_USE_AUTO"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_JSON"] = "false"

from app.core.config import Settings
from app.core.database import DatabaseManager
from app.core.logging import configure_logging
from app.models import ADMIN_ROLE, Role, TextEntry, User
from app.services.cache.read_through import ReadThroughCache
from app.services.cache.strategy import CacheStrategyState
from app.services.text_entries.service import TextEntryService
from tests.fixtures.cache_doubles import (
    ADMIN_EMAIL,
    OTHER_EMAIL,
    OWNER_EMAIL,
    OWNER_NAME,
    OTHER_NAME,
    CallCounter,
    FailingCacheStore,
    InMemoryCacheStore,
)

configure_logging(level="DEBUG", json_logs=False)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'portal.db'}",
        CACHE_USE_AUTO=False,
        PAGE_SIZE_MAX=50,
    )


@pytest_asyncio.fixture
async def database(test_settings):
    """Initialized database with schema, roles, users and eight entries."""
    manager = DatabaseManager(test_settings)
    await manager.initialize()
    await manager.create_schema()

    async with manager.session() as session:
        admin_role = Role(name=ADMIN_ROLE)
        user_role = Role(name="USER")
        session.add_all([admin_role, user_role])
        await session.flush()

        admin = User(email=ADMIN_EMAIL, full_name="Ada Admin", role_id=admin_role.id)
        owner = User(email=OWNER_EMAIL, full_name=OWNER_NAME, role_id=user_role.id)
        other = User(email=OTHER_EMAIL, full_name=OTHER_NAME, role_id=user_role.id)
        session.add_all([admin, owner, other])
        await session.flush()

        for entry_id in range(1, 9):
            author = owner if entry_id % 2 else other
            session.add(
                TextEntry(
                    id=entry_id,
                    message=f"Admission note {entry_id} about enrolment",
                    owner=author.full_name,
                    user_id=author.id,
                    created_at=datetime(2024, 1, entry_id, 9, 0, 0),
                    updated_at=datetime(2024, 1, entry_id, 9, 0, 0),
                )
            )

    yield manager
    await manager.close()


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def failing_store() -> FailingCacheStore:
    return FailingCacheStore()


@pytest.fixture
def cache(cache_store) -> ReadThroughCache:
    return ReadThroughCache(cache_store)


@pytest.fixture
def strategy_state() -> CacheStrategyState:
    return CacheStrategyState(use_auto=False)


@pytest.fixture
def service(database, cache, strategy_state, test_settings) -> TextEntryService:
    return TextEntryService(database, cache, strategy_state, test_settings)


@pytest.fixture
def entry_loads(service) -> CallCounter:
    """Counts database loads behind find_by_id."""
    return CallCounter(service, "_load_entry")
