"""
Text Entry Schemas

Read-only response projections stored in the cache, plus the request and
page shapes used by the service.
"""

import math
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

T = TypeVar("T")


class TextEntryRequest(BaseModel):
    """Schema for creating or updating an entry."""

    message: Optional[str] = Field(None, description="Entry text")


class UserBasic(BaseModel):
    """Minimal user projection embedded in entry responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str


class TextEntryResponse(BaseModel):
    """Schema for reading entries. This is what the cache holds."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    message: str
    owner: str
    user: Optional[UserBasic] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PageResponse(BaseModel, Generic[T]):
    """One page of a result list with navigation metadata."""

    content: List[T]
    page_number: int
    page_size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool
    empty: bool
    number_of_elements: int

    @classmethod
    def from_list(cls, items: List[T], page: int, size: int) -> "PageResponse[T]":
        """Slice a full result list into the requested page."""
        total = len(items)
        total_pages = math.ceil(total / size) if size else 0
        start = page * size
        content = items[start : start + size]
        return cls(
            content=content,
            page_number=page,
            page_size=size,
            total_elements=total,
            total_pages=total_pages,
            first=page == 0,
            last=page >= total_pages - 1,
            empty=not content,
            number_of_elements=len(content),
        )


# Adapters used to encode and decode cached values
ENTRY_ADAPTER = TypeAdapter(TextEntryResponse)
ENTRY_LIST_ADAPTER = TypeAdapter(List[TextEntryResponse])
COUNT_ADAPTER = TypeAdapter(int)
