"""Persistence collaborator for seeded fixtures."""

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

CITY = "city"
USER = "user"
REVIEW = "review"

# Creation order respects foreign keys; deletion runs in reverse
ENTITY_TYPES = (USER, CITY, REVIEW)


class EntityStore(ABC):
    """Minimal CRUD surface the seeder needs from a database."""

    @abstractmethod
    async def create(self, entity_type: str, record: dict[str, Any]) -> dict[str, Any]:
        """Persist a record and return it as stored."""

    @abstractmethod
    async def count(self, entity_type: str) -> int:
        """Number of stored records of a type."""

    @abstractmethod
    async def find_many(self, entity_type: str, limit: Optional[int] = None) -> list[dict[str, Any]]:
        """Records of a type in creation order."""

    @abstractmethod
    async def delete_all(self, entity_type: str) -> int:
        """Delete every record of a type. Returns how many were removed."""

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass


class InMemoryEntityStore(EntityStore):
    """Dict-backed store. Each instance is its own partition."""

    def __init__(self, partition: str = "default"):
        self.partition = partition
        self._tables: dict[str, list[dict[str, Any]]] = {}

    async def create(self, entity_type: str, record: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(record)
        self._tables.setdefault(entity_type, []).append(stored)
        return copy.deepcopy(stored)

    async def count(self, entity_type: str) -> int:
        return len(self._tables.get(entity_type, []))

    async def find_many(self, entity_type: str, limit: Optional[int] = None) -> list[dict[str, Any]]:
        records = self._tables.get(entity_type, [])
        if limit is not None:
            records = records[:limit]
        return copy.deepcopy(records)

    async def delete_all(self, entity_type: str) -> int:
        removed = len(self._tables.get(entity_type, []))
        self._tables[entity_type] = []
        return removed
