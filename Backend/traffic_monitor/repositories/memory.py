"""
In-memory repository with the same upsert/query contract as the MongoDB store
Used by tests and by STORAGE_BACKEND=memory for local runs without MongoDB
"""
import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import HOURLY_STATS, HOURLY_PATTERNS
from traffic_monitor.repositories.base import (
    TrafficRepository,
    UpsertResult,
    ON_CONFLICT_UPDATE,
    ON_CONFLICT_IGNORE,
)
from traffic_monitor.repositories.keys import build_key, build_keys, validate_key_fields
from traffic_monitor.services.hourly_patterns import compute_hourly_patterns

logger = logging.getLogger(__name__)


class InMemoryTrafficRepository(TrafficRepository):
    """Dict-of-lists store; each instance is an isolated database"""

    def __init__(self):
        self._collections: Dict[str, List[Dict]] = {}
        self._failing: Set[str] = set()

    def fail_writes(self, collection: str, enabled: bool = True):
        """Make every write to ``collection`` raise StorageError"""
        if enabled:
            self._failing.add(collection)
        else:
            self._failing.discard(collection)

    def rows(self, collection: str) -> List[Dict]:
        """Snapshot of the stored rows (deep copy)"""
        return copy.deepcopy(self._collections.get(collection, []))

    def _check_writable(self, collection: str):
        if collection in self._failing:
            raise StorageError(f"write to {collection} rejected")

    async def upsert(
        self,
        collection: str,
        records: List[Dict],
        key_fields: Sequence[str],
        on_conflict: str = ON_CONFLICT_UPDATE,
    ) -> UpsertResult:
        if on_conflict not in (ON_CONFLICT_UPDATE, ON_CONFLICT_IGNORE):
            raise StorageError(f"Unknown on_conflict policy {on_conflict!r}")
        fields = validate_key_fields(key_fields)
        self._check_writable(collection)
        keys = build_keys(records, fields)

        # Work on a copy and swap at the end: all-or-nothing per batch
        rows = list(self._collections.get(collection, []))
        index = {}
        for position, row in enumerate(rows):
            try:
                index[build_key(row, fields)] = position
            except StorageError:
                continue

        result = UpsertResult()
        for key, record in zip(keys, records):
            position = index.get(key)
            if position is None:
                index[key] = len(rows)
                rows.append(copy.deepcopy(record))
                result.inserted += 1
            elif on_conflict == ON_CONFLICT_IGNORE:
                result.ignored += 1
            else:
                rows[position] = {**rows[position], **copy.deepcopy(record)}
                result.updated += 1

        self._collections[collection] = rows
        return result

    async def insert(self, collection: str, records: List[Dict]) -> int:
        self._check_writable(collection)
        self._collections.setdefault(collection, []).extend(copy.deepcopy(records))
        return len(records)

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
        matches = []
        for row in self._collections.get(collection, []):
            value = row.get(field)
            if value is None:
                continue
            if start is not None and value < start:
                continue
            if end is not None and (value > end if end_inclusive else value >= end):
                continue
            if filters and any(row.get(name) != expected for name, expected in filters.items()):
                continue
            matches.append(row)

        matches.sort(key=lambda row: row[field], reverse=descending)
        if limit is not None:
            matches = matches[:limit]
        return copy.deepcopy(matches)

    async def delete_before(self, collection: str, field: str, cutoff: datetime) -> int:
        self._check_writable(collection)
        rows = self._collections.get(collection, [])
        kept = [row for row in rows if row.get(field) is None or row[field] >= cutoff]
        self._collections[collection] = kept
        return len(rows) - len(kept)

    async def count(self, collection: str, filters: Optional[Dict] = None) -> int:
        rows = self._collections.get(collection, [])
        if not filters:
            return len(rows)
        return sum(1 for row in rows if all(row.get(k) == v for k, v in filters.items()))

    async def refresh_hourly_patterns(self, tz_name: str) -> int:
        self._check_writable(HOURLY_PATTERNS)
        patterns = compute_hourly_patterns(self._collections.get(HOURLY_STATS, []), tz_name)
        self._collections[HOURLY_PATTERNS] = patterns
        logger.info(f"Refreshed {len(patterns)} hourly patterns (in-memory)")
        return len(patterns)
