"""
Storage interface consumed by ingestion and aggregation agents
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

ON_CONFLICT_UPDATE = "update"
ON_CONFLICT_IGNORE = "ignore"


@dataclass
class UpsertResult:
    """Outcome of one upsert batch"""
    inserted: int = 0
    updated: int = 0
    ignored: int = 0

    @property
    def written(self) -> int:
        return self.inserted + self.updated


class TrafficRepository(ABC):
    """
    Upsert-capable tabular store keyed by composite natural keys

    Every method raises StorageError when the underlying store fails.
    """

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        records: List[Dict],
        key_fields: Sequence[str],
        on_conflict: str = ON_CONFLICT_UPDATE,
    ) -> UpsertResult:
        """
        Insert-or-update each record by its natural key

        Args:
            collection: Target collection/table
            records: Records to write
            key_fields: Conflict target (natural key field list)
            on_conflict: "update" overwrites non-key fields, "ignore" keeps the existing row

        Returns:
            Counts of inserted/updated/ignored rows
        """

    @abstractmethod
    async def insert(self, collection: str, records: List[Dict]) -> int:
        """Append records to an append-only collection, returning the count inserted"""

    @abstractmethod
    async def find_range(
        self,
        collection: str,
        field: str,
        start: Optional[Any] = None,
        end: Optional[Any] = None,
        end_inclusive: bool = False,
        filters: Optional[Dict] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict]:
        """
        Query rows with ``start <= field < end`` (``<=`` when end_inclusive)

        Results are sorted by ``field``; ``filters`` adds equality conditions.
        """

    @abstractmethod
    async def delete_before(self, collection: str, field: str, cutoff: datetime) -> int:
        """Delete rows with ``field < cutoff``, returning the count deleted"""

    @abstractmethod
    async def count(self, collection: str, filters: Optional[Dict] = None) -> int:
        """Count rows matching equality filters"""

    @abstractmethod
    async def refresh_hourly_patterns(self, tz_name: str) -> int:
        """Recompute the hourly patterns view from stored hourly stats"""
