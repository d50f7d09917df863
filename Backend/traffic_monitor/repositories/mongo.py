"""
MongoDB repository backed by motor
Idempotence relies on the unique compound indexes created in database.create_indexes
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from pymongo import UpdateOne, ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import HOURLY_STATS, HOURLY_PATTERNS
from traffic_monitor.repositories.base import (
    TrafficRepository,
    UpsertResult,
    ON_CONFLICT_UPDATE,
    ON_CONFLICT_IGNORE,
)
from traffic_monitor.repositories.keys import split_record, validate_key_fields

logger = logging.getLogger(__name__)


def build_upsert_operations(
    records: List[Dict],
    key_fields: Sequence[str],
    on_conflict: str = ON_CONFLICT_UPDATE,
) -> List[UpdateOne]:
    """
    Translate records into bulk UpdateOne(upsert=True) operations

    Raises:
        StorageError: on an unknown policy or a record missing a key field
    """
    if on_conflict not in (ON_CONFLICT_UPDATE, ON_CONFLICT_IGNORE):
        raise StorageError(f"Unknown on_conflict policy {on_conflict!r}")
    fields = validate_key_fields(key_fields)

    operations = []
    for record in records:
        key_part, rest = split_record(record, fields)
        if on_conflict == ON_CONFLICT_UPDATE and rest:
            update = {"$set": rest}
        else:
            update = {"$setOnInsert": rest or key_part}
        operations.append(UpdateOne(key_part, update, upsert=True))
    return operations


class MongoTrafficRepository(TrafficRepository):
    """TrafficRepository over a motor AsyncIOMotorDatabase"""

    def __init__(self, database):
        self.db = database

    async def upsert(
        self,
        collection: str,
        records: List[Dict],
        key_fields: Sequence[str],
        on_conflict: str = ON_CONFLICT_UPDATE,
    ) -> UpsertResult:
        operations = build_upsert_operations(records, key_fields, on_conflict)
        if not operations:
            return UpsertResult()

        # The batch is all or nothing; transactions need a replica set or mongos
        try:
            async with await self.db.client.start_session() as session:
                async with session.start_transaction():
                    result = await self.db[collection].bulk_write(operations, ordered=True, session=session)
        except PyMongoError as e:
            logger.error(f"Upsert into {collection} failed: {e}")
            raise StorageError(str(e)) from e

        if on_conflict == ON_CONFLICT_IGNORE:
            return UpsertResult(inserted=result.upserted_count, ignored=result.matched_count)
        return UpsertResult(inserted=result.upserted_count, updated=result.matched_count)

    async def insert(self, collection: str, records: List[Dict]) -> int:
        if not records:
            return 0
        # insert_many mutates its documents (adds _id)
        documents = [dict(record) for record in records]
        try:
            result = await self.db[collection].insert_many(documents)
        except PyMongoError as e:
            logger.error(f"Insert into {collection} failed: {e}")
            raise StorageError(str(e)) from e
        return len(result.inserted_ids)

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
        query: Dict[str, Any] = dict(filters or {})
        bounds = {}
        if start is not None:
            bounds["$gte"] = start
        if end is not None:
            bounds["$lte" if end_inclusive else "$lt"] = end
        query[field] = bounds if bounds else {"$ne": None}

        try:
            cursor = self.db[collection].find(query, {"_id": 0}).sort(
                field, DESCENDING if descending else ASCENDING
            )
            if limit is not None:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=limit)
        except PyMongoError as e:
            logger.error(f"Query on {collection} failed: {e}")
            raise StorageError(str(e)) from e

    async def delete_before(self, collection: str, field: str, cutoff: datetime) -> int:
        try:
            result = await self.db[collection].delete_many({field: {"$lt": cutoff}})
        except PyMongoError as e:
            logger.error(f"Delete on {collection} failed: {e}")
            raise StorageError(str(e)) from e
        return result.deleted_count

    async def count(self, collection: str, filters: Optional[Dict] = None) -> int:
        try:
            return await self.db[collection].count_documents(filters or {})
        except PyMongoError as e:
            raise StorageError(str(e)) from e

    async def refresh_hourly_patterns(self, tz_name: str) -> int:
        pipeline = [
            {
                "$group": {
                    "_id": {
                        "camera_id": "$camera_id",
                        "hour_of_day": {"$hour": {"date": "$hour", "timezone": tz_name}},
                        "vehicle_type": "$vehicle_type",
                        "direction": "$direction",
                    },
                    "total_count": {"$sum": "$count"},
                    "sample_hours": {"$sum": 1},
                }
            },
            {
                "$project": {
                    "_id": 0,
                    "camera_id": "$_id.camera_id",
                    "hour_of_day": "$_id.hour_of_day",
                    "vehicle_type": "$_id.vehicle_type",
                    "direction": "$_id.direction",
                    "avg_count": {"$divide": ["$total_count", "$sample_hours"]},
                    "total_count": 1,
                    "sample_hours": 1,
                    "refreshed_at": "$$NOW",
                }
            },
            {"$out": HOURLY_PATTERNS},
        ]
        try:
            await self.db[HOURLY_STATS].aggregate(pipeline).to_list(length=None)
            refreshed = await self.db[HOURLY_PATTERNS].count_documents({})
        except PyMongoError as e:
            raise StorageError(str(e)) from e
        logger.info(f"Refreshed {refreshed} hourly patterns")
        return refreshed
