"""
Unit tests for text entry schemas and exceptions.
"""

import pytest
from datetime import datetime

from app.domain.text_entries.exceptions import (
    TextEntryNotFoundException,
    ValidationException,
)
from app.domain.text_entries.schemas import (
    ENTRY_ADAPTER,
    ENTRY_LIST_ADAPTER,
    PageResponse,
    TextEntryResponse,
    UserBasic,
)


def make_response(entry_id: int) -> TextEntryResponse:
    return TextEntryResponse(
        id=entry_id,
        message=f"note {entry_id}",
        owner="Olivia Owner",
        user=UserBasic(id=2, full_name="Olivia Owner"),
        created_at=datetime(2024, 1, 1, 9, 0),
        updated_at=datetime(2024, 1, 2, 9, 0),
    )


class TestPageResponse:
    """Test page slicing over a full result list."""

    def test_first_page(self):
        page = PageResponse[int].from_list(list(range(25)), page=0, size=10)

        assert page.content == list(range(10))
        assert page.total_elements == 25
        assert page.total_pages == 3
        assert page.first is True
        assert page.last is False
        assert page.number_of_elements == 10

    def test_last_partial_page(self):
        page = PageResponse[int].from_list(list(range(25)), page=2, size=10)

        assert page.content == [20, 21, 22, 23, 24]
        assert page.last is True
        assert page.empty is False

    def test_page_past_the_end_is_empty(self):
        page = PageResponse[int].from_list([1, 2, 3], page=5, size=10)

        assert page.content == []
        assert page.empty is True
        assert page.number_of_elements == 0
        assert page.total_pages == 1

    def test_empty_list(self):
        page = PageResponse[int].from_list([], page=0, size=10)

        assert page.total_pages == 0
        assert page.first is True
        assert page.last is True
        assert page.empty is True


class TestResponseEncoding:
    """Responses must survive the JSON form the cache stores."""

    def test_entry_json_form(self):
        payload = ENTRY_ADAPTER.dump_python(make_response(3), mode="json")

        assert payload["id"] == 3
        assert payload["user"] == {"id": 2, "full_name": "Olivia Owner"}
        assert payload["created_at"] == "2024-01-01T09:00:00"
        assert ENTRY_ADAPTER.validate_python(payload) == make_response(3)

    def test_list_json_form(self):
        entries = [make_response(1), make_response(2)]
        payload = ENTRY_LIST_ADAPTER.dump_python(entries, mode="json")

        assert ENTRY_LIST_ADAPTER.validate_python(payload) == entries


class TestExceptions:
    """Test text entry exception shapes."""

    def test_not_found_message(self):
        error = TextEntryNotFoundException(999)

        assert error.message == "TextEntry not found with id: 999"
        assert error.error_code == "TEXT_ENTRY_NOT_FOUND"
        assert error.details == {"entry_id": 999}

    def test_validation_is_value_error(self):
        with pytest.raises(ValueError):
            raise ValidationException("Message is required", field="message")
