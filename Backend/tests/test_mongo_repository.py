"""Tests for the motor-backed repository.

A small fake of the motor database/collection/session surface stands in
for a server. Writes made inside a transaction are staged per session and
only become visible when the transaction exits cleanly.

Tests cover:
- Upsert result mapping and idempotence across repeated batches
- All-or-nothing batches when a write fails part way through
- PyMongoError wrapping as StorageError
- Range query building and the hourly patterns pipeline
"""

import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import AutoReconnect, BulkWriteError

from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import (
    CAMERA_METADATA,
    CAMERA_METADATA_KEY,
    DAILY_SUMMARY,
    HOURLY_PATTERNS,
    HOURLY_STAT_KEY,
    HOURLY_STATS,
)
from traffic_monitor.repositories.base import ON_CONFLICT_IGNORE
from traffic_monitor.repositories.mongo import MongoTrafficRepository

HOUR = datetime(2025, 1, 14, 8, tzinfo=timezone.utc)


def hourly(count: int = 10, camera_id: str = "cam_01", hour: datetime = HOUR) -> dict:
    return {
        "hour": hour,
        "camera_id": camera_id,
        "vehicle_type": "car",
        "direction": "in",
        "count": count,
        "avg_confidence": 0.9,
    }


class FakeTransaction:
    def __init__(self, session: "FakeSession") -> None:
        self.session = session

    async def __aenter__(self) -> "FakeTransaction":
        self.session.in_transaction = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.session.in_transaction = False
        if exc_type is None:
            for collection, documents in self.session.staged.items():
                collection.documents = documents
            self.session.committed = True
        else:
            self.session.aborted = True
        self.session.staged = {}
        return False


class FakeSession:
    def __init__(self) -> None:
        self.staged: Dict["FakeCollection", List[Dict]] = {}
        self.in_transaction = False
        self.committed = False
        self.aborted = False

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    def start_transaction(self) -> FakeTransaction:
        return FakeTransaction(self)


class FakeClient:
    def __init__(self) -> None:
        self.sessions: List[FakeSession] = []

    async def start_session(self) -> FakeSession:
        session = FakeSession()
        self.sessions.append(session)
        return session


class FakeCursor:
    def __init__(self, documents: List[Dict]) -> None:
        self.documents = documents
        self.sort_spec = None
        self.limit_value = None

    def sort(self, field: str, direction: int) -> "FakeCursor":
        self.sort_spec = (field, direction)
        return self

    def limit(self, value: int) -> "FakeCursor":
        self.limit_value = value
        return self

    async def to_list(self, length: Optional[int] = None) -> List[Dict]:
        return list(self.documents)


class FakeCollection:
    """Applies UpdateOne(upsert=True) operations the way the server would."""

    def __init__(self) -> None:
        self.documents: List[Dict] = []
        self.fail_on_camera: Optional[str] = None
        self.error: Optional[Exception] = None
        self.queries: List[tuple] = []
        self.cursor = FakeCursor([])
        self.pipelines: List[List[Dict]] = []
        self.count_documents = AsyncMock(return_value=0)
        self.delete_many = AsyncMock(return_value=SimpleNamespace(deleted_count=0))
        self.insert_many = AsyncMock(return_value=SimpleNamespace(inserted_ids=[]))

    async def bulk_write(self, operations, ordered: bool = True, session: Optional[FakeSession] = None):
        if self.error is not None:
            raise self.error
        if session is not None and session.in_transaction:
            working = session.staged.setdefault(self, copy.deepcopy(self.documents))
        else:
            working = self.documents

        upserted = matched = 0
        for index, operation in enumerate(operations):
            key, update = operation._filter, operation._doc
            if key.get("camera_id") == self.fail_on_camera:
                raise BulkWriteError({"writeErrors": [{"index": index, "errmsg": "rejected"}], "nUpserted": upserted})
            existing = next((d for d in working if all(d.get(k) == v for k, v in key.items())), None)
            if existing is None:
                working.append({**key, **update.get("$set", {}), **update.get("$setOnInsert", {})})
                upserted += 1
            else:
                existing.update(update.get("$set", {}))
                matched += 1
        return SimpleNamespace(upserted_count=upserted, matched_count=matched)

    def find(self, query: Dict, projection: Dict) -> FakeCursor:
        if self.error is not None:
            raise self.error
        self.queries.append((query, projection))
        return self.cursor

    def aggregate(self, pipeline: List[Dict]) -> FakeCursor:
        self.pipelines.append(pipeline)
        return FakeCursor([])


class FakeDatabase:
    def __init__(self) -> None:
        self.client = FakeClient()
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def mongo_repository(database) -> MongoTrafficRepository:
    return MongoTrafficRepository(database)


class TestMongoUpsert:
    """Batch upserts through a session transaction."""

    async def test_insert_then_update(self, mongo_repository, database) -> None:
        first = await mongo_repository.upsert(HOURLY_STATS, [hourly(10), hourly(5, camera_id="cam_02")], HOURLY_STAT_KEY)
        second = await mongo_repository.upsert(HOURLY_STATS, [hourly(12), hourly(5, camera_id="cam_02")], HOURLY_STAT_KEY)

        assert (first.inserted, first.updated) == (2, 0)
        assert (second.inserted, second.updated) == (0, 2)
        documents = database[HOURLY_STATS].documents
        assert len(documents) == 2
        assert documents[0]["count"] == 12

    async def test_each_batch_runs_in_a_committed_transaction(self, mongo_repository, database) -> None:
        await mongo_repository.upsert(HOURLY_STATS, [hourly()], HOURLY_STAT_KEY)

        [session] = database.client.sessions
        assert session.committed is True
        assert session.aborted is False

    async def test_ignore_policy_counts_matches_as_ignored(self, mongo_repository, database) -> None:
        camera = {"camera_id": "cam_01", "camera_name": "North"}
        await mongo_repository.upsert(CAMERA_METADATA, [camera], CAMERA_METADATA_KEY, ON_CONFLICT_IGNORE)

        result = await mongo_repository.upsert(
            CAMERA_METADATA, [{**camera, "camera_name": "Renamed"}], CAMERA_METADATA_KEY, ON_CONFLICT_IGNORE
        )

        assert (result.inserted, result.updated, result.ignored) == (0, 0, 1)
        assert database[CAMERA_METADATA].documents[0]["camera_name"] == "North"

    async def test_failure_mid_batch_leaves_nothing_behind(self, mongo_repository, database) -> None:
        """A write error on the second record also discards the first."""
        collection = database[HOURLY_STATS]
        collection.fail_on_camera = "cam_02"
        batch = [hourly(camera_id="cam_01"), hourly(camera_id="cam_02"), hourly(camera_id="cam_03")]

        with pytest.raises(StorageError):
            await mongo_repository.upsert(HOURLY_STATS, batch, HOURLY_STAT_KEY)

        assert collection.documents == []
        [session] = database.client.sessions
        assert session.aborted is True

    async def test_failure_keeps_previous_rows_unchanged(self, mongo_repository, database) -> None:
        await mongo_repository.upsert(HOURLY_STATS, [hourly(10)], HOURLY_STAT_KEY)
        database[HOURLY_STATS].fail_on_camera = "cam_02"

        with pytest.raises(StorageError):
            await mongo_repository.upsert(HOURLY_STATS, [hourly(99), hourly(camera_id="cam_02")], HOURLY_STAT_KEY)

        [row] = database[HOURLY_STATS].documents
        assert row["count"] == 10

    async def test_driver_error_wrapped(self, mongo_repository, database) -> None:
        database[HOURLY_STATS].error = AutoReconnect("connection reset")

        with pytest.raises(StorageError, match="connection reset"):
            await mongo_repository.upsert(HOURLY_STATS, [hourly()], HOURLY_STAT_KEY)

    async def test_empty_batch_skips_the_server(self, mongo_repository, database) -> None:
        result = await mongo_repository.upsert(HOURLY_STATS, [], HOURLY_STAT_KEY)

        assert (result.inserted, result.updated) == (0, 0)
        assert database.client.sessions == []


class TestMongoQueries:
    """Query building and the other driver calls."""

    async def test_open_range_requires_field(self, mongo_repository, database) -> None:
        await mongo_repository.find_range(HOURLY_STATS, "hour")

        collection = database[HOURLY_STATS]
        assert collection.queries == [({"hour": {"$ne": None}}, {"_id": 0})]
        assert collection.cursor.sort_spec == ("hour", ASCENDING)
        assert collection.cursor.limit_value is None

    async def test_bounded_range_with_filters(self, mongo_repository, database) -> None:
        collection = database[HOURLY_STATS]
        collection.cursor = FakeCursor([hourly()])
        end = HOUR + timedelta(days=1)

        rows = await mongo_repository.find_range(
            HOURLY_STATS, "hour", start=HOUR, end=end, filters={"camera_id": "cam_01"}, descending=True, limit=5
        )

        assert rows == [hourly()]
        [(query, _)] = collection.queries
        assert query == {"camera_id": "cam_01", "hour": {"$gte": HOUR, "$lt": end}}
        assert collection.cursor.sort_spec == ("hour", DESCENDING)
        assert collection.cursor.limit_value == 5

    async def test_inclusive_end(self, mongo_repository, database) -> None:
        await mongo_repository.find_range(DAILY_SUMMARY, "date", end="2025-01-14", end_inclusive=True)

        [(query, _)] = database[DAILY_SUMMARY].queries
        assert query == {"date": {"$lte": "2025-01-14"}}

    async def test_query_error_wrapped(self, mongo_repository, database) -> None:
        database[HOURLY_STATS].error = AutoReconnect("primary stepped down")

        with pytest.raises(StorageError):
            await mongo_repository.find_range(HOURLY_STATS, "hour")

    async def test_delete_and_count(self, mongo_repository, database) -> None:
        collection = database[HOURLY_STATS]
        collection.delete_many.return_value = SimpleNamespace(deleted_count=4)
        collection.count_documents.return_value = 7
        cutoff = HOUR

        assert await mongo_repository.delete_before(HOURLY_STATS, "hour", cutoff) == 4
        assert await mongo_repository.count(HOURLY_STATS) == 7
        collection.delete_many.assert_awaited_once_with({"hour": {"$lt": cutoff}})

    async def test_insert_copies_documents(self, mongo_repository, database) -> None:
        collection = database["anomalies"]
        collection.insert_many.return_value = SimpleNamespace(inserted_ids=[1, 2])
        records = [{"camera_id": "cam_01"}, {"camera_id": "cam_02"}]

        assert await mongo_repository.insert("anomalies", records) == 2
        [sent] = collection.insert_many.await_args.args
        assert sent == records
        assert sent[0] is not records[0]

    async def test_refresh_hourly_patterns_pipeline(self, mongo_repository, database) -> None:
        database[HOURLY_PATTERNS].count_documents.return_value = 3

        refreshed = await mongo_repository.refresh_hourly_patterns("America/Mexico_City")

        assert refreshed == 3
        [pipeline] = database[HOURLY_STATS].pipelines
        group = pipeline[0]["$group"]
        assert group["_id"]["hour_of_day"] == {"$hour": {"date": "$hour", "timezone": "America/Mexico_City"}}
        assert group["total_count"] == {"$sum": "$count"}
        assert pipeline[1]["$project"]["avg_count"] == {"$divide": ["$total_count", "$sample_hours"]}
        assert pipeline[-1] == {"$out": HOURLY_PATTERNS}

    async def test_refresh_error_wrapped(self, mongo_repository, database) -> None:
        database[HOURLY_PATTERNS].count_documents.side_effect = AutoReconnect("lost")

        with pytest.raises(StorageError):
            await mongo_repository.refresh_hourly_patterns("UTC")
