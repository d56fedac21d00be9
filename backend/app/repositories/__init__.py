"""
Repository Pattern Implementation

All data access for the text entry service goes through these repositories.
"""

from .base import BaseRepository
from .text_entry import TextEntryRepository
from .user import UserRepository

__all__ = [
    "BaseRepository",
    "TextEntryRepository",
    "UserRepository",
]
