"""
Base Repository for In-Memory Stores

Provides common CRUD operations for keyed pydantic records. The async
interface mirrors a database-backed repository so services do not change
if the store is later moved out of process.
"""

import logging
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Base repository keyed by a string identifier.

    Records are stored as given and returned as deep copies, so callers can
    never mutate stored state in place.

    Example:
        class ScanRepository(BaseRepository[ScanResult]):
            def __init__(self):
                super().__init__(ScanResult)
    """

    def __init__(self, model: Type[T], key: str = "id"):
        """
        Initialize repository for a pydantic model.

        Args:
            model: Record class
            key: Attribute holding the record identifier
        """
        self.model = model
        self.key = key
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")
        self._items: Dict[str, T] = {}

    def _key_of(self, item: T) -> str:
        return getattr(item, self.key)

    async def save(self, item: T) -> T:
        """
        Insert or replace a record.

        Returns:
            The stored record
        """
        key = self._key_of(item)
        self._items[key] = item
        self.logger.debug(f"Saved {self.model.__name__} {key}")
        return item.model_copy(deep=True)

    async def get(self, key: str) -> Optional[T]:
        item = self._items.get(key)
        return item.model_copy(deep=True) if item is not None else None

    async def delete(self, key: str) -> bool:
        """Remove a record. Returns False if it did not exist."""
        removed = self._items.pop(key, None) is not None
        if removed:
            self.logger.debug(f"Deleted {self.model.__name__} {key}")
        return removed

    async def find(
        self,
        predicate: Optional[Callable[[T], bool]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[T]:
        """
        Records matching a predicate, in insertion order.

        Args:
            predicate: Filter; all records when None
            skip: Number of matches to skip
            limit: Maximum number of records returned
        """
        matches = [item for item in self._items.values() if predicate is None or predicate(item)]
        end = skip + limit if limit is not None else None
        return [item.model_copy(deep=True) for item in matches[skip:end]]

    async def count(self, predicate: Optional[Callable[[T], bool]] = None) -> int:
        return sum(1 for item in self._items.values() if predicate is None or predicate(item))
