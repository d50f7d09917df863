"""
MongoDB database connection and utilities
"""
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from typing import Optional
from traffic_monitor.config import settings
from traffic_monitor.models.mongodb_models import (
    HOURLY_STATS,
    LIVE_SNAPSHOTS,
    DAILY_SUMMARY,
    ANOMALIES,
    FETCH_LOG,
    CAMERA_METADATA,
    HOURLY_STAT_KEY,
    LIVE_SNAPSHOT_KEY,
    DAILY_SUMMARY_KEY,
    CAMERA_METADATA_KEY,
)
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.repositories.memory import InMemoryTrafficRepository
from traffic_monitor.repositories.mongo import MongoTrafficRepository
import logging

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager"""

    client: Optional[AsyncIOMotorClient] = None
    database = None
    memory_repository: Optional[InMemoryTrafficRepository] = None


# Global database instance
db = Database()


async def connect_to_mongo():
    """Connect to MongoDB (optional - API will still start if connection fails)"""
    if settings.storage_backend == "memory":
        logger.info("STORAGE_BACKEND=memory, skipping MongoDB connection")
        return

    try:
        db.client = AsyncIOMotorClient(
            settings.mongodb_uri,
            serverSelectionTimeoutMS=10000,
            tz_aware=True,  # timestamps come back as aware UTC datetimes
        )
        db.database = db.client[settings.mongodb_db_name]

        # Test connection
        await db.client.admin.command('ping')
        logger.info(f"Connected to MongoDB: {settings.mongodb_db_name}")

        await create_indexes()

    except Exception as e:
        error_msg = str(e)
        if "authentication" in error_msg.lower():
            logger.warning("MongoDB authentication failed. Check username/password in connection string.")
        else:
            logger.warning(f"Failed to connect to MongoDB: {e}")
            logger.warning("API will continue without database. Cron endpoints will report storage errors.")
        # Don't raise - allow API to start without MongoDB
        db.client = None
        db.database = None


async def close_mongo_connection():
    """Close MongoDB connection"""
    if db.client:
        db.client.close()
        db.client = None
        db.database = None
        logger.info("MongoDB connection closed")


async def create_indexes():
    """Create natural-key unique indexes and query indexes"""
    if db.database is None:
        logger.warning("Database not connected, skipping index creation")
        return

    try:
        # Natural keys: uniqueness is what makes repeated upserts idempotent
        await db.database[HOURLY_STATS].create_index(
            [(name, ASCENDING) for name in HOURLY_STAT_KEY], unique=True
        )
        await db.database[LIVE_SNAPSHOTS].create_index(
            [(name, ASCENDING) for name in LIVE_SNAPSHOT_KEY], unique=True
        )
        await db.database[DAILY_SUMMARY].create_index(
            [(name, ASCENDING) for name in DAILY_SUMMARY_KEY], unique=True
        )
        await db.database[CAMERA_METADATA].create_index(
            [(name, ASCENDING) for name in CAMERA_METADATA_KEY], unique=True
        )

        await db.database[HOURLY_STATS].create_index([("hour", DESCENDING)])
        await db.database[ANOMALIES].create_index([("camera_id", ASCENDING), ("detected_at", DESCENDING)])
        await db.database[FETCH_LOG].create_index([("fetch_time", DESCENDING)])
        await db.database[FETCH_LOG].create_index([("endpoint", ASCENDING), ("fetch_time", DESCENDING)])

        logger.info("Database indexes created successfully")

    except Exception as e:
        logger.warning(f"Failed to create some indexes: {e}")


def get_repository() -> Optional[TrafficRepository]:
    """
    Repository for the configured storage backend

    Returns None when MongoDB is configured but not connected.
    """
    if settings.storage_backend == "memory":
        if db.memory_repository is None:
            db.memory_repository = InMemoryTrafficRepository()
        return db.memory_repository
    if db.database is None:
        return None
    return MongoTrafficRepository(db.database)
