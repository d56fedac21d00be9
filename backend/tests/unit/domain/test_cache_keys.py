"""
Unit tests for cache value objects.

Key building must be deterministic, human readable and reject missing
parameters before a key exists.
"""

import hashlib
import pytest
from datetime import datetime

from app.domain.cache.value_objects import (
    CacheKey,
    CacheOutcome,
    CacheStrategy,
    KeyTag,
    MAX_KEY_LENGTH,
)


class TestCacheKey:
    """Test CacheKey value object."""

    def test_manual_entry_key(self):
        key = CacheKey.entry(7)
        assert key.value == "single-entry-7"
        assert str(key) == "single-entry-7"

    def test_auto_entry_key(self):
        assert CacheKey.entry(7, CacheStrategy.AUTO).value == "auto-entry-7"

    def test_keys_are_deterministic(self):
        """Same query, same strategy, same key."""
        assert CacheKey.search("enrolment") == CacheKey.search("enrolment")
        assert CacheKey.owner("Olivia", CacheStrategy.AUTO) == CacheKey.owner(
            "Olivia", CacheStrategy.AUTO
        )

    def test_list_and_count_keys(self):
        assert CacheKey.all_entries().value == "all-entries"
        assert CacheKey.search("term").value == "search-term"
        assert CacheKey.owner("Olivia Owner").value == "owner-Olivia Owner"
        assert CacheKey.user("a@b.test").value == "user-a@b.test"
        assert CacheKey.total_count().value == "total-count"
        assert CacheKey.count_owner("olivia").value == "count-owner-olivia"

    def test_auto_prefix_applies_to_every_tag(self):
        key = CacheKey.count_owner("olivia", CacheStrategy.AUTO)
        assert key.value == "auto-count-owner-olivia"

    def test_date_range_key_orders_start_first(self):
        start = datetime(2024, 1, 1, 0, 0)
        end = datetime(2024, 1, 31, 23, 59)
        key = CacheKey.date_range(start, end)
        assert key.value == "daterange-2024-01-01T00:00:00-2024-01-31T23:59:00"

    def test_strategies_use_distinct_keys(self):
        assert CacheKey.entry(5) != CacheKey.entry(5, CacheStrategy.AUTO)
        assert CacheKey.total_count() != CacheKey.total_count(CacheStrategy.AUTO)

    def test_entity_prefixes_match_entry_keys_only(self):
        prefixes = CacheKey.ENTITY_PREFIXES
        assert CacheKey.entry(1).value.startswith(prefixes)
        assert CacheKey.entry(1, CacheStrategy.AUTO).value.startswith(prefixes)
        for key in (
            CacheKey.all_entries(CacheStrategy.AUTO),
            CacheKey.search("entry"),
            CacheKey.total_count(CacheStrategy.AUTO),
            CacheKey.user("x@y.test", CacheStrategy.AUTO),
        ):
            assert not key.value.startswith(prefixes)

    @pytest.mark.parametrize("term", [None, "", "   "])
    def test_blank_parameters_rejected(self, term):
        with pytest.raises(ValueError, match="required"):
            CacheKey.search(term)

    @pytest.mark.parametrize("entry_id", [None, 0, -3, "7", True])
    def test_invalid_entry_id_rejected(self, entry_id):
        with pytest.raises(ValueError):
            CacheKey.entry(entry_id)

    def test_missing_date_rejected(self):
        with pytest.raises(ValueError, match="required"):
            CacheKey.date_range(datetime(2024, 1, 1), None)

    def test_invalid_key_empty(self):
        with pytest.raises(ValueError, match="Cache key cannot be empty"):
            CacheKey("")

    def test_invalid_key_too_long(self):
        with pytest.raises(ValueError, match="Cache key too long"):
            CacheKey("a" * (MAX_KEY_LENGTH + 1))

    @pytest.mark.parametrize("strategy", list(CacheStrategy))
    def test_long_parameters_are_digested(self, strategy):
        term = "x" * 600

        key = CacheKey.search(term, strategy)

        assert len(key.value) <= MAX_KEY_LENGTH
        assert key.value.endswith(hashlib.sha256(term.encode("utf-8")).hexdigest())
        assert key == CacheKey.search(term, strategy)
        assert key != CacheKey.search("x" * 601, strategy)
        assert key != CacheKey.owner(term, strategy)

    def test_build_joins_parts(self):
        key = CacheKey.build(KeyTag.OWNER, "a", 1, strategy=CacheStrategy.AUTO)
        assert key.value == "auto-owner-a-1"


class TestCacheStrategy:
    """Test CacheStrategy enum."""

    def test_labels(self):
        assert CacheStrategy.MANUAL.label == "MANUAL"
        assert CacheStrategy.AUTO.label == "AUTO (declarative)"

    def test_descriptions_differ(self):
        assert "manual" in CacheStrategy.MANUAL.description
        assert "declarative" in CacheStrategy.AUTO.description

    def test_outcome_values(self):
        assert [o.value for o in CacheOutcome] == ["hit", "miss", "bypass", "error"]
