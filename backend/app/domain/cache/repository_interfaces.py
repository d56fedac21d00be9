"""
Cache Repository Interfaces

Abstract contract for the key-value store behind the text entry cache.
Implementations raise CacheStoreException subclasses on any failure.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from .value_objects import CacheKey


class CacheStore(ABC):
    """
    Region-scoped key-value store.

    Values are JSON-compatible structures (dicts, lists, numbers, strings).
    ``get`` returns None for an absent key; None is never stored.
    """

    @abstractmethod
    async def get(self, region: str, key: CacheKey) -> Optional[Any]:
        """Return the stored value or None when absent."""
        pass

    @abstractmethod
    async def put(self, region: str, key: CacheKey, value: Any) -> None:
        """Store a value under key in region."""
        pass

    @abstractmethod
    async def evict(self, region: str, key: CacheKey) -> bool:
        """Remove one key. Returns True if something was removed."""
        pass

    @abstractmethod
    async def evict_all(self, region: str, keep_prefixes: Tuple[str, ...] = ()) -> int:
        """
        Remove every key in region except those starting with one of
        keep_prefixes. Returns the number of keys removed.
        """
        pass

    @abstractmethod
    async def list_regions(self) -> List[str]:
        """Names of the regions this store manages."""
        pass

    @abstractmethod
    async def region_size(self, region: str) -> int:
        """Estimated number of keys currently held in region."""
        pass

    async def has_region(self, region: str) -> bool:
        return region in await self.list_regions()

    @property
    def store_type(self) -> str:
        return type(self).__name__
