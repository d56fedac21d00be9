"""
Cache Value Objects

Immutable value objects for the text entry cache: keys, strategies and
lookup outcomes.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Union

TEXT_ENTRIES_REGION = "textEntries"

MAX_KEY_LENGTH = 512

# Marks keys whose parameters were replaced by a digest
HASHED_MARKER = "sha256"


class CacheStrategy(str, Enum):
    """How read-through entries are populated."""

    MANUAL = "MANUAL"
    AUTO = "AUTO"

    @property
    def description(self) -> str:
        if self is CacheStrategy.AUTO:
            return "Using declarative cacheable queries with automatic cache management"
        return "Using manual cache management with explicit control"

    @property
    def label(self) -> str:
        if self is CacheStrategy.AUTO:
            return "AUTO (declarative)"
        return "MANUAL"


class CacheOutcome(str, Enum):
    """Observable result of a read-through lookup."""

    HIT = "hit"
    MISS = "miss"
    BYPASS = "bypass"
    ERROR = "error"


class KeyTag(str, Enum):
    """Operation tags used as the leading part of every key."""

    ENTRY = "entry"
    ALL = "all"
    SEARCH = "search"
    OWNER = "owner"
    DATE_RANGE = "daterange"
    USER = "user"
    TOTAL_COUNT = "total-count"
    COUNT_OWNER = "count-owner"


def _require_text(name: str, value: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{name} is required to build a cache key")
    return str(value)


def _require_id(value: int) -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("entry id must be an integer")
    if value <= 0:
        raise ValueError("entry id must be positive")
    return value


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    Keys are human-readable: an optional strategy prefix, the operation tag,
    then the parameters in a fixed order joined by ``-``. Parameters are
    validated before the key is built so blank or missing values never reach
    the store.
    """

    value: str

    # Strategy prefix for declarative keys; manual keys carry none
    AUTO_PREFIX = "auto-"

    # Leading text of single-entity keys under either strategy
    ENTITY_PREFIXES = ("single-entry-", "auto-entry-")

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value:
            raise ValueError("Cache key cannot be empty")

        if len(self.value) > MAX_KEY_LENGTH:
            raise ValueError(f"Cache key too long (max {MAX_KEY_LENGTH} characters)")

    @classmethod
    def build(
        cls,
        tag: KeyTag,
        *parts: Union[str, int],
        strategy: CacheStrategy = CacheStrategy.MANUAL,
    ) -> "CacheKey":
        """
        Join tag and parts; declarative keys get the ``auto-`` prefix.

        Parameters that would push the key past MAX_KEY_LENGTH are replaced
        by their SHA-256 digest so any valid argument still has a key.
        """
        prefix = cls.AUTO_PREFIX if strategy is CacheStrategy.AUTO else ""
        segments = [tag.value, *(str(part) for part in parts)]
        value = prefix + "-".join(segments)
        if len(value) > MAX_KEY_LENGTH:
            joined = "-".join(segments[1:])
            digest = hashlib.sha256(joined.encode("utf-8")).hexdigest()
            value = f"{prefix}{tag.value}-{HASHED_MARKER}-{digest}"
        return cls(value)

    @classmethod
    def entry(
        cls, entry_id: int, strategy: CacheStrategy = CacheStrategy.MANUAL
    ) -> "CacheKey":
        """Single-entity key: ``single-entry-7`` / ``auto-entry-7``."""
        entry_id = _require_id(entry_id)
        if strategy is CacheStrategy.MANUAL:
            return cls(f"single-{KeyTag.ENTRY.value}-{entry_id}")
        return cls.build(KeyTag.ENTRY, entry_id, strategy=strategy)

    @classmethod
    def all_entries(
        cls, strategy: CacheStrategy = CacheStrategy.MANUAL
    ) -> "CacheKey":
        return cls.build(KeyTag.ALL, "entries", strategy=strategy)

    @classmethod
    def search(
        cls, term: str, strategy: CacheStrategy = CacheStrategy.MANUAL
    ) -> "CacheKey":
        return cls.build(
            KeyTag.SEARCH, _require_text("search term", term), strategy=strategy
        )

    @classmethod
    def owner(
        cls, owner: str, strategy: CacheStrategy = CacheStrategy.MANUAL
    ) -> "CacheKey":
        return cls.build(KeyTag.OWNER, _require_text("owner", owner), strategy=strategy)

    @classmethod
    def date_range(
        cls,
        start: datetime,
        end: datetime,
        strategy: CacheStrategy = CacheStrategy.MANUAL,
    ) -> "CacheKey":
        """Date range key with ISO timestamps, start first."""
        if start is None or end is None:
            raise ValueError("start and end dates are required to build a cache key")
        return cls.build(
            KeyTag.DATE_RANGE, start.isoformat(), end.isoformat(), strategy=strategy
        )

    @classmethod
    def user(
        cls, email: str, strategy: CacheStrategy = CacheStrategy.MANUAL
    ) -> "CacheKey":
        return cls.build(KeyTag.USER, _require_text("user email", email), strategy=strategy)

    @classmethod
    def total_count(
        cls, strategy: CacheStrategy = CacheStrategy.MANUAL
    ) -> "CacheKey":
        return cls.build(KeyTag.TOTAL_COUNT, strategy=strategy)

    @classmethod
    def count_owner(
        cls, owner: str, strategy: CacheStrategy = CacheStrategy.MANUAL
    ) -> "CacheKey":
        return cls.build(
            KeyTag.COUNT_OWNER, _require_text("owner", owner), strategy=strategy
        )

    def __str__(self) -> str:
        return self.value
