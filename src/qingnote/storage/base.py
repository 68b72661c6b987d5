"""Base class for table access objects."""
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Dao(ABC, Generic[T]):
    """Primary-key CRUD over one table.

    ``insert`` replaces an existing row with the same key; ``update`` and
    ``delete`` match by key only and report whether a row was affected.
    """

    @abstractmethod
    def insert(self, item: T) -> int:
        """Insert or replace, returning the row id."""

    @abstractmethod
    def update(self, item: T) -> bool:
        """Overwrite the row with the item's key."""

    @abstractmethod
    def delete(self, item: T) -> bool:
        """Delete the row with the item's key."""

    @abstractmethod
    def get_by_id(self, id: int) -> Optional[T]:
        """Fetch one row by key."""
