"""
API routes for stored traffic history
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from traffic_monitor.api.deps import repository_dependency
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import HOURLY_STATS, DAILY_SUMMARY, HOURLY_PATTERNS
from traffic_monitor.models.schemas import (
    HourlyHistoryResponse,
    HourlyGroup,
    HourlyStatEntry,
    DailySummaryResponse,
    DailySummary,
    HourlyPatternsResponse,
    HourlyPattern,
)
from traffic_monitor.repositories.base import TrafficRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/history", tags=["history"])


def parse_bound(value: Optional[str], name: str) -> Optional[datetime]:
    """Parse an ISO date/datetime query bound; naive values are UTC"""
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid '{name}' timestamp: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def storage_error_response(error: StorageError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": "Database query error", "details": str(error)})


@router.get("/hourly", response_model=HourlyHistoryResponse)
async def get_hourly_history(
    start: Optional[str] = Query(None, description="e.g. 2025-01-01 or 2025-01-01T00:00:00Z"),
    end: Optional[str] = Query(None, description="inclusive upper bound"),
    repository: TrafficRepository = Depends(repository_dependency),
):
    """
    Hourly stats ordered by hour and grouped per hour

    Args:
        start: Optional lower bound (inclusive)
        end: Optional upper bound (inclusive)

    Returns:
        Hour groups with the per camera/type/direction counts of each hour
    """
    start_dt = parse_bound(start, "start")
    end_dt = parse_bound(end, "end")

    try:
        rows = await repository.find_range(HOURLY_STATS, "hour", start=start_dt, end=end_dt, end_inclusive=True)
    except StorageError as e:
        logger.error(f"Error querying hourly history: {e}")
        return storage_error_response(e)

    groups = {}
    for row in rows:
        group = groups.setdefault(row["hour"], HourlyGroup(hour=row["hour"], data=[]))
        group.data.append(HourlyStatEntry(
            camera_id=row["camera_id"],
            vehicle_type=row["vehicle_type"],
            direction=row["direction"],
            count=row.get("count", 0),
            avg_confidence=row.get("avg_confidence"),
        ))

    return HourlyHistoryResponse(
        period=f"{start} to {end}" if start and end else "all available data",
        count=len(groups),
        data=list(groups.values()),
    )


@router.get("/daily", response_model=DailySummaryResponse)
async def get_daily_summaries(
    start: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    camera_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    repository: TrafficRepository = Depends(repository_dependency),
):
    """Daily summaries, newest date first"""
    # Dates are stored as YYYY-MM-DD strings, which sort chronologically
    start_date = parse_bound(start, "start").date().isoformat() if start else None
    end_date = parse_bound(end, "end").date().isoformat() if end else None

    try:
        rows = await repository.find_range(
            DAILY_SUMMARY, "date",
            start=start_date, end=end_date, end_inclusive=True,
            filters={"camera_id": camera_id} if camera_id else None,
            descending=True, limit=limit,
        )
    except StorageError as e:
        logger.error(f"Error querying daily summaries: {e}")
        return storage_error_response(e)

    summaries = [DailySummary(**row) for row in rows]
    return DailySummaryResponse(summaries=summaries, count=len(summaries), timestamp=datetime.now(timezone.utc))


@router.get("/patterns", response_model=HourlyPatternsResponse)
async def get_hourly_patterns(
    camera_id: Optional[str] = None,
    repository: TrafficRepository = Depends(repository_dependency),
):
    """Average hour-of-day profile refreshed after each daily aggregation"""
    try:
        rows = await repository.find_range(
            HOURLY_PATTERNS, "hour_of_day",
            filters={"camera_id": camera_id} if camera_id else None,
        )
    except StorageError as e:
        logger.error(f"Error querying hourly patterns: {e}")
        return storage_error_response(e)

    patterns = [HourlyPattern(**row) for row in rows]
    return HourlyPatternsResponse(patterns=patterns, count=len(patterns), timestamp=datetime.now(timezone.utc))
