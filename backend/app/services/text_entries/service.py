"""
Text Entry Service

Text entry CRUD with a hybrid cache in front of every read. Each logical
query has a manual implementation (explicit get, load, put) and a
declarative one (a CacheableQuery run by ``cacheable``); the strategy state
picks between them on every call. Every write evicts the derived results
(lists, searches, counts) of the cache region after the transaction commits;
single-entity keys of other entries survive.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from opentelemetry import trace
from prometheus_client import Counter

from ...core.config import Settings, get_settings
from ...core.database import DatabaseManager
from ...domain.cache.exceptions import CacheStoreException
from ...domain.cache.value_objects import CacheKey, CacheStrategy
from ...domain.text_entries.exceptions import (
    AccessDeniedException,
    TextEntryNotFoundException,
    UserNotFoundException,
    ValidationException,
)
from ...domain.text_entries.schemas import (
    COUNT_ADAPTER,
    ENTRY_ADAPTER,
    ENTRY_LIST_ADAPTER,
    PageResponse,
    TextEntryRequest,
    TextEntryResponse,
)
from ...models import TextEntry, User
from ...repositories import TextEntryRepository, UserRepository
from ..cache.declarative import (
    CacheableQuery,
    cacheable,
    has_text,
    is_null_or_empty,
    is_positive_id,
)
from ..cache.read_through import ReadThroughCache
from ..cache.strategy import CacheStrategyState

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

AUTO = CacheStrategy.AUTO
MANUAL = CacheStrategy.MANUAL


# Declarative descriptions of the cached queries
ENTRY_BY_ID = CacheableQuery(
    name="find_by_id",
    key_builder=lambda entry_id: CacheKey.entry(entry_id, AUTO),
    adapter=ENTRY_ADAPTER,
    condition=is_positive_id,
    unless=lambda result: result is None,
)
ALL_ENTRIES = CacheableQuery(
    name="find_all",
    key_builder=lambda: CacheKey.all_entries(AUTO),
    adapter=ENTRY_LIST_ADAPTER,
    unless=is_null_or_empty,
)
SEARCH_ENTRIES = CacheableQuery(
    name="search",
    key_builder=lambda term: CacheKey.search(term, AUTO),
    adapter=ENTRY_LIST_ADAPTER,
    condition=has_text,
    unless=is_null_or_empty,
)
ENTRIES_BY_OWNER = CacheableQuery(
    name="find_by_owner",
    key_builder=lambda owner: CacheKey.owner(owner, AUTO),
    adapter=ENTRY_LIST_ADAPTER,
    condition=has_text,
    unless=is_null_or_empty,
)
ENTRIES_BY_DATE_RANGE = CacheableQuery(
    name="find_by_date_range",
    key_builder=lambda start, end: CacheKey.date_range(start, end, AUTO),
    adapter=ENTRY_LIST_ADAPTER,
    condition=lambda start, end: start is not None and end is not None,
    unless=is_null_or_empty,
)
ENTRIES_BY_USER = CacheableQuery(
    name="find_by_user",
    key_builder=lambda email: CacheKey.user(email, AUTO),
    adapter=ENTRY_LIST_ADAPTER,
    condition=has_text,
    unless=is_null_or_empty,
)
TOTAL_COUNT = CacheableQuery(
    name="count_total",
    key_builder=lambda: CacheKey.total_count(AUTO),
    adapter=COUNT_ADAPTER,
)
COUNT_BY_OWNER = CacheableQuery(
    name="count_by_owner",
    key_builder=lambda owner: CacheKey.count_owner(owner, AUTO),
    adapter=COUNT_ADAPTER,
    condition=has_text,
)


def to_response(entry: TextEntry) -> TextEntryResponse:
    """Project an entry (user loaded) into its cacheable response."""
    return TextEntryResponse.model_validate(entry)


def _require_id(entry_id: Any) -> int:
    if not is_positive_id(entry_id):
        raise ValidationException(
            f"Entry id must be a positive integer, got {entry_id!r}", field="id"
        )
    return entry_id


def _require_text(value: Any, field: str) -> str:
    if not has_text(value):
        raise ValidationException(f"{field} is required", field=field)
    return value


class TextEntryService:
    """
    Text entry operations with hybrid read-through caching.

    Reads dispatch on the strategy state at call time. Cache store failures
    never fail a read: the accessor logs them and loads from the database.
    Writes commit first, then evict derived results and write the new value
    through. Cache failures after commit are logged only.
    """

    def __init__(
        self,
        database: DatabaseManager,
        cache: ReadThroughCache,
        strategy_state: Optional[CacheStrategyState] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database
        self.cache = cache
        self.strategy_state = strategy_state or CacheStrategyState(
            self.settings.CACHE_USE_AUTO
        )
        self._toggles = Counter(
            "text_entry_cache_strategy_toggles",
            "Cache strategy switches by target strategy",
            ["strategy"],
            registry=cache.registry,
        )

    @property
    def strategy(self) -> CacheStrategy:
        return self.strategy_state.strategy

    async def initialize(self) -> None:
        """Log the active strategy and the regions the store offers."""
        logger.info(
            "TextEntryService initialized",
            strategy=self.strategy.label,
            store_type=self.cache.cache_store.store_type,
        )
        try:
            regions = await self.cache.cache_store.list_regions()
            logger.info("Available caches", cache_names=regions)
        except CacheStoreException as e:
            logger.warning("Cache store initialization warning", error=e.message)

    # Helpers

    async def _get_user(self, session, email: str) -> User:
        _require_text(email, "email")
        user = await UserRepository(session).get_by_email(email)
        if user is None:
            raise UserNotFoundException(email)
        return user

    async def _get_entry(self, session, entry_id: int) -> TextEntry:
        entry = await TextEntryRepository(session).find_by_id_with_user(entry_id)
        if entry is None:
            raise TextEntryNotFoundException(entry_id)
        return entry

    async def _require_admin(self, actor_email: str, action: str) -> User:
        async with self.database.session() as session:
            actor = await self._get_user(session, actor_email)
        if not actor.is_admin:
            logger.warning(
                "Administrative operation denied", actor=actor_email, action=action
            )
            raise AccessDeniedException(
                f"Access denied: {action} requires the ADMIN role", action=action
            )
        return actor

    def _validate_message(self, request: Optional[TextEntryRequest]) -> str:
        if request is None:
            raise ValidationException("Text entry request cannot be null")
        message = (request.message or "").strip()
        if not message:
            raise ValidationException("Message is required", field="message")
        max_length = self.settings.TEXT_ENTRY_MAX_LENGTH
        if len(message) > max_length:
            raise ValidationException(
                f"Message exceeds maximum length of {max_length} characters",
                field="message",
            )
        return message

    def _validate_page(self, page: int, size: int) -> None:
        if page is None or page < 0:
            raise ValidationException("Page index must not be negative", field="page")
        if size is None or size < 1 or size > self.settings.PAGE_SIZE_MAX:
            raise ValidationException(
                f"Page size must be between 1 and {self.settings.PAGE_SIZE_MAX}",
                field="size",
            )

    # Write path

    async def _evict_derived(self) -> bool:
        """Evict every list, search and count result of the region."""
        return await self.cache.evict_region(keep_prefixes=CacheKey.ENTITY_PREFIXES)

    async def _after_write(self, response: TextEntryResponse, operation: str) -> None:
        """Evict derived results and write the entity through under both keys."""
        await self._evict_derived()
        for strategy in CacheStrategy:
            await self.cache.write_through(
                CacheKey.entry(response.id, strategy), response, ENTRY_ADAPTER
            )
        logger.info(
            "Cache invalidated after write",
            operation=operation,
            entry_id=response.id,
            region=self.cache.region,
        )

    async def create(
        self, request: TextEntryRequest, actor_email: str
    ) -> TextEntryResponse:
        """
        Create an entry owned by the acting user.

        Raises:
            ValidationException: If the message is missing or too long
            UserNotFoundException: If the acting user does not exist
        """
        with tracer.start_as_current_span("text_entry_service.create"):
            message = self._validate_message(request)
            logger.info("Creating text entry", actor=actor_email)

            async with self.database.session() as session:
                user = await self._get_user(session, actor_email)
                repository = TextEntryRepository(session)
                entry = await repository.save(
                    TextEntry(message=message, owner=user.full_name, user_id=user.id)
                )
                response = to_response(await self._get_entry(session, entry.id))

            await self._after_write(response, "create")
            logger.info("Text entry created", entry_id=response.id, actor=actor_email)
            return response

    async def update(
        self, entry_id: int, request: TextEntryRequest, actor_email: str
    ) -> TextEntryResponse:
        """
        Replace the message of an entry.

        Raises:
            TextEntryNotFoundException: If the entry does not exist
            AccessDeniedException: If the actor is neither owner nor admin
        """
        with tracer.start_as_current_span("text_entry_service.update"):
            _require_id(entry_id)
            message = self._validate_message(request)
            logger.info("Updating text entry", entry_id=entry_id, actor=actor_email)

            async with self.database.session() as session:
                entry = await self._get_entry(session, entry_id)
                actor = await self._get_user(session, actor_email)
                self._check_owner_or_admin(entry, actor, "update")

                entry.message = message
                await TextEntryRepository(session).save(entry)
                response = to_response(await self._get_entry(session, entry_id))

            await self._after_write(response, "update")
            logger.info("Text entry updated", entry_id=entry_id)
            return response

    async def delete(self, entry_id: int, actor_email: str) -> None:
        """
        Delete an entry and evict its keys and the region.

        Raises:
            TextEntryNotFoundException: If the entry does not exist
            AccessDeniedException: If the actor is neither owner nor admin
        """
        with tracer.start_as_current_span("text_entry_service.delete"):
            _require_id(entry_id)
            logger.info("Deleting text entry", entry_id=entry_id, actor=actor_email)

            async with self.database.session() as session:
                entry = await self._get_entry(session, entry_id)
                actor = await self._get_user(session, actor_email)
                self._check_owner_or_admin(entry, actor, "delete")
                await TextEntryRepository(session).delete_by_id(entry_id)

            for strategy in CacheStrategy:
                await self.cache.evict(CacheKey.entry(entry_id, strategy))
            await self._evict_derived()
            logger.info("Text entry deleted", entry_id=entry_id)

    @staticmethod
    def _check_owner_or_admin(entry: TextEntry, actor: User, action: str) -> None:
        if entry.user_id != actor.id and not actor.is_admin:
            logger.warning(
                "Text entry access denied",
                entry_id=entry.id,
                actor_id=actor.id,
                action=action,
            )
            raise AccessDeniedException(
                f"Access denied: You can only {action} your own text entries",
                action=action,
            )

    # Loaders

    async def _load_entry(self, entry_id: int) -> TextEntryResponse:
        async with self.database.session() as session:
            return to_response(await self._get_entry(session, entry_id))

    async def _load_list(self, query, *args) -> List[TextEntryResponse]:
        async with self.database.session() as session:
            entries = await query(TextEntryRepository(session), *args)
            return [to_response(entry) for entry in entries]

    async def _load_all(self) -> List[TextEntryResponse]:
        return await self._load_list(TextEntryRepository.find_all_with_user)

    async def _load_search(self, term: str) -> List[TextEntryResponse]:
        return await self._load_list(TextEntryRepository.find_by_message_containing, term)

    async def _load_owner(self, owner: str) -> List[TextEntryResponse]:
        return await self._load_list(TextEntryRepository.find_by_owner, owner)

    async def _load_date_range(
        self, start: datetime, end: datetime
    ) -> List[TextEntryResponse]:
        return await self._load_list(
            TextEntryRepository.find_by_created_at_between, start, end
        )

    async def _load_user_entries(self, email: str) -> List[TextEntryResponse]:
        async with self.database.session() as session:
            user = await self._get_user(session, email)
            entries = await TextEntryRepository(session).find_by_user(user)
            return [to_response(entry) for entry in entries]

    async def _load_total_count(self) -> int:
        async with self.database.session() as session:
            return await TextEntryRepository(session).count()

    async def _load_owner_count(self, owner: str) -> int:
        async with self.database.session() as session:
            return await TextEntryRepository(session).count_by_owner_ignore_case(owner)

    # Reads: dispatch

    async def find_by_id(self, entry_id: int) -> TextEntryResponse:
        """
        Get one entry.

        Raises:
            ValidationException: If entry_id is not a positive integer
            TextEntryNotFoundException: If the entry does not exist
        """
        _require_id(entry_id)
        if self.strategy_state.use_auto:
            return await self.find_by_id_auto(entry_id)
        return await self.find_by_id_manual(entry_id)

    async def find_all(self) -> List[TextEntryResponse]:
        if self.strategy_state.use_auto:
            return await self.find_all_auto()
        return await self.find_all_manual()

    async def search(self, term: str) -> List[TextEntryResponse]:
        """Entries whose message contains term, ignoring case."""
        _require_text(term, "search term")
        if self.strategy_state.use_auto:
            return await self.search_auto(term)
        return await self.search_manual(term)

    async def find_by_owner(self, owner: str) -> List[TextEntryResponse]:
        _require_text(owner, "owner")
        if self.strategy_state.use_auto:
            return await self.find_by_owner_auto(owner)
        return await self.find_by_owner_manual(owner)

    async def find_by_date_range(
        self, start: datetime, end: datetime
    ) -> List[TextEntryResponse]:
        """Entries created between start and end inclusive."""
        if start is None or end is None:
            raise ValidationException("Start and end dates are required")
        if start > end:
            raise ValidationException("Start date must not be after end date")
        if self.strategy_state.use_auto:
            return await self.find_by_date_range_auto(start, end)
        return await self.find_by_date_range_manual(start, end)

    async def find_by_user(self, email: str) -> List[TextEntryResponse]:
        """
        Entries of the user with email, newest first.

        Raises:
            UserNotFoundException: If no user has this email
        """
        _require_text(email, "email")
        if self.strategy_state.use_auto:
            return await self.find_by_user_auto(email)
        return await self.find_by_user_manual(email)

    async def count_total(self) -> int:
        if self.strategy_state.use_auto:
            return await self.count_total_auto()
        return await self.count_total_manual()

    async def count_by_owner(self, owner: str) -> int:
        """Number of entries whose owner equals owner, ignoring case."""
        _require_text(owner, "owner")
        if self.strategy_state.use_auto:
            return await self.count_by_owner_auto(owner)
        return await self.count_by_owner_manual(owner)

    # Reads: manual strategy

    async def find_by_id_manual(self, entry_id: int) -> TextEntryResponse:
        return await self.cache.get_or_load(
            CacheKey.entry(entry_id, MANUAL),
            lambda: self._load_entry(entry_id),
            ENTRY_ADAPTER,
        )

    async def find_all_manual(self) -> List[TextEntryResponse]:
        return await self.cache.get_or_load(
            CacheKey.all_entries(MANUAL), self._load_all, ENTRY_LIST_ADAPTER
        )

    async def search_manual(self, term: str) -> List[TextEntryResponse]:
        return await self.cache.get_or_load(
            CacheKey.search(term, MANUAL),
            lambda: self._load_search(term),
            ENTRY_LIST_ADAPTER,
        )

    async def find_by_owner_manual(self, owner: str) -> List[TextEntryResponse]:
        return await self.cache.get_or_load(
            CacheKey.owner(owner, MANUAL),
            lambda: self._load_owner(owner),
            ENTRY_LIST_ADAPTER,
        )

    async def find_by_date_range_manual(
        self, start: datetime, end: datetime
    ) -> List[TextEntryResponse]:
        return await self.cache.get_or_load(
            CacheKey.date_range(start, end, MANUAL),
            lambda: self._load_date_range(start, end),
            ENTRY_LIST_ADAPTER,
        )

    async def find_by_user_manual(self, email: str) -> List[TextEntryResponse]:
        return await self.cache.get_or_load(
            CacheKey.user(email, MANUAL),
            lambda: self._load_user_entries(email),
            ENTRY_LIST_ADAPTER,
        )

    async def count_total_manual(self) -> int:
        return await self.cache.get_or_load(
            CacheKey.total_count(MANUAL), self._load_total_count, COUNT_ADAPTER
        )

    async def count_by_owner_manual(self, owner: str) -> int:
        return await self.cache.get_or_load(
            CacheKey.count_owner(owner, MANUAL),
            lambda: self._load_owner_count(owner),
            COUNT_ADAPTER,
        )

    # Reads: declarative strategy

    async def find_by_id_auto(self, entry_id: int) -> TextEntryResponse:
        return await cacheable(
            self.cache, ENTRY_BY_ID, lambda: self._load_entry(entry_id), entry_id
        )

    async def find_all_auto(self) -> List[TextEntryResponse]:
        return await cacheable(self.cache, ALL_ENTRIES, self._load_all)

    async def search_auto(self, term: str) -> List[TextEntryResponse]:
        return await cacheable(
            self.cache, SEARCH_ENTRIES, lambda: self._load_search(term), term
        )

    async def find_by_owner_auto(self, owner: str) -> List[TextEntryResponse]:
        return await cacheable(
            self.cache, ENTRIES_BY_OWNER, lambda: self._load_owner(owner), owner
        )

    async def find_by_date_range_auto(
        self, start: datetime, end: datetime
    ) -> List[TextEntryResponse]:
        return await cacheable(
            self.cache,
            ENTRIES_BY_DATE_RANGE,
            lambda: self._load_date_range(start, end),
            start,
            end,
        )

    async def find_by_user_auto(self, email: str) -> List[TextEntryResponse]:
        return await cacheable(
            self.cache, ENTRIES_BY_USER, lambda: self._load_user_entries(email), email
        )

    async def count_total_auto(self) -> int:
        return await cacheable(self.cache, TOTAL_COUNT, self._load_total_count)

    async def count_by_owner_auto(self, owner: str) -> int:
        return await cacheable(
            self.cache, COUNT_BY_OWNER, lambda: self._load_owner_count(owner), owner
        )

    # Pagination over cached lists

    async def find_all_paginated(
        self, page: int = 0, size: int = 20
    ) -> PageResponse[TextEntryResponse]:
        self._validate_page(page, size)
        return PageResponse[TextEntryResponse].from_list(
            await self.find_all(), page, size
        )

    async def search_paginated(
        self, term: str, page: int = 0, size: int = 20
    ) -> PageResponse[TextEntryResponse]:
        self._validate_page(page, size)
        return PageResponse[TextEntryResponse].from_list(
            await self.search(term), page, size
        )

    async def find_by_owner_paginated(
        self, owner: str, page: int = 0, size: int = 20
    ) -> PageResponse[TextEntryResponse]:
        self._validate_page(page, size)
        return PageResponse[TextEntryResponse].from_list(
            await self.find_by_owner(owner), page, size
        )

    async def find_by_date_range_paginated(
        self, start: datetime, end: datetime, page: int = 0, size: int = 20
    ) -> PageResponse[TextEntryResponse]:
        self._validate_page(page, size)
        return PageResponse[TextEntryResponse].from_list(
            await self.find_by_date_range(start, end), page, size
        )

    async def find_by_user_paginated(
        self, email: str, page: int = 0, size: int = 20
    ) -> PageResponse[TextEntryResponse]:
        self._validate_page(page, size)
        return PageResponse[TextEntryResponse].from_list(
            await self.find_by_user(email), page, size
        )

    # Administration

    async def stats(self, actor_email: str) -> Dict[str, Any]:
        """Cache statistics for administrators."""
        await self._require_admin(actor_email, "cache statistics")
        return await self._statistics()

    async def _statistics(self) -> Dict[str, Any]:
        store = self.cache.cache_store
        stats: Dict[str, Any] = {
            "cache_implementation": self.strategy.label,
            "active_strategy": self.strategy.value,
            "configured_strategy": self.strategy_state.configured.value,
            "use_auto_cache": self.strategy_state.use_auto,
            "cache_type": store.store_type,
            "lookups": {
                strategy.value: self.cache.statistics(strategy).to_dict()
                for strategy in CacheStrategy
            },
            "writes": {
                "puts": self.cache.write_stats.puts,
                "evictions": self.cache.write_stats.evictions,
                "region_clears": self.cache.write_stats.region_clears,
                "failures": self.cache.write_stats.failures,
            },
        }
        try:
            names = await store.list_regions()
            stats["cache_names"] = names
            stats["total_caches"] = len(names)
            stats["estimated_keys"] = await store.region_size(self.cache.region)
            stats["success"] = True
            stats["summary"] = (
                f"{stats['total_caches']} cache(s), "
                f"{stats['estimated_keys']} key(s), using {self.strategy.label}"
            )
        except CacheStoreException as e:
            logger.error("Failed to get cache statistics", error=e.message)
            stats["success"] = False
            stats["error"] = e.message
            stats["error_code"] = e.error_code
            stats["summary"] = f"Cache statistics unavailable: {e.message}"
        return stats

    async def clear_all_caches(self) -> int:
        """Remove every key of every region. Store failures propagate."""
        removed = 0
        for region in await self.cache.cache_store.list_regions():
            removed += await self.cache.clear(region)
        logger.warning("Cleared all text entry caches", removed=removed)
        return removed

    async def clear_cache_by_name(self, cache_name: str) -> int:
        """
        Remove every key of one named region.

        Raises:
            CacheRegionNotFoundException: If no region has that name
            CacheStoreException: If the store fails
        """
        try:
            removed = await self.cache.clear(cache_name)
        except CacheStoreException as e:
            logger.error(
                "Failed to clear cache",
                cache_name=cache_name,
                error=e.message,
                error_code=e.error_code,
            )
            raise
        logger.info("Cleared cache", cache_name=cache_name, removed=removed)
        return removed

    async def warm_up(self) -> bool:
        """Reload the main list and total count. Failures are logged only."""
        try:
            logger.info("Starting cache warm-up")
            entries = await self.find_all()
            total = await self.count_total()
            logger.info("Cache warm-up completed", entries=len(entries), total=total)
            return True
        except Exception as e:
            logger.error("Cache warm-up failed", error=str(e), exc_info=True)
            return False

    async def perform_cache_operation(
        self,
        actor_email: str,
        clear_all: bool = False,
        cache_name: Optional[str] = None,
        warm_up: bool = False,
    ) -> Dict[str, Any]:
        """
        Clear one region or all of them, optionally warming up afterwards.

        Store failures and unknown regions come back as a failed result;
        only a missing ADMIN role raises.
        """
        await self._require_admin(actor_email, "cache operation")
        result: Dict[str, Any] = {}

        with tracer.start_as_current_span("text_entry_service.cache_operation") as span:
            try:
                if clear_all:
                    await self.clear_all_caches()
                    result["operation"] = "cleared_all_caches"
                else:
                    name = _require_text(cache_name, "cache name")
                    await self.clear_cache_by_name(name)
                    result["operation"] = "cleared_cache"
                    result["cache_name"] = name

                if warm_up:
                    warmed = await self.warm_up()
                    result["warm_up"] = "completed" if warmed else "failed"

                statistics = await self._statistics()
                result["statistics"] = statistics
                result["summary"] = (
                    f"{result['operation']} using {statistics['cache_implementation']}"
                )
                result["success"] = True
            except (CacheStoreException, ValidationException) as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, e.message))
                logger.error(
                    "Cache operation failed", error=e.message, error_code=e.error_code
                )
                result["success"] = False
                result["error"] = e.message
                result["error_code"] = e.error_code
                result["summary"] = f"Cache operation failed: {e.message}"

        return result

    async def clear(
        self,
        actor_email: str,
        region_name: Optional[str] = None,
        clear_all: bool = False,
        warm_up: bool = False,
    ) -> Dict[str, Any]:
        return await self.perform_cache_operation(
            actor_email, clear_all=clear_all, cache_name=region_name, warm_up=warm_up
        )

    async def toggle_strategy(self, actor_email: str, use_auto: bool) -> Dict[str, Any]:
        """Switch the cache strategy. The region is not cleared."""
        await self._require_admin(actor_email, "toggle cache strategy")
        previous = self.strategy_state.set(use_auto)
        current = self.strategy
        self._toggles.labels(strategy=current.value).inc()
        logger.info(
            "Cache implementation toggled",
            previous=previous.value,
            current=current.value,
        )
        return {
            "previous_implementation": previous.value,
            "current_implementation": current.value,
            "description": current.description,
            "summary": f"Switched from {previous.label} to {current.label}",
            "success": True,
        }
