"""
Administrative data retention endpoint
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from fastapi import APIRouter, Depends, Query
from traffic_monitor.api.deps import repository_dependency, clock_dependency
from traffic_monitor.api.routes.history import parse_bound, storage_error_response
from traffic_monitor.config import settings
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import HOURLY_STATS
from traffic_monitor.models.schemas import CleanupResponse
from traffic_monitor.repositories.base import TrafficRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_hourly_stats(
    before: Optional[str] = Query(None, description="Delete hourly stats with hour < before"),
    repository: TrafficRepository = Depends(repository_dependency),
    clock: Callable[[], datetime] = Depends(clock_dependency),
):
    """
    Delete hourly stats older than a cutoff

    Args:
        before: ISO cutoff; default is now minus RETENTION_DAYS

    Returns:
        Deleted and remaining record counts
    """
    cutoff = parse_bound(before, "before") or clock() - timedelta(days=settings.retention_days)
    logger.info(f"Starting hourly stats cleanup before {cutoff.isoformat()}")

    try:
        deleted = await repository.delete_before(HOURLY_STATS, "hour", cutoff)
        remaining = await repository.count(HOURLY_STATS)
    except StorageError as e:
        logger.error(f"Error during cleanup: {e}")
        return storage_error_response(e)

    logger.info(f"Cleanup completed: {deleted} deleted, {remaining} remaining")
    return CleanupResponse(
        success=True,
        message=f"Successfully deleted {deleted} old records",
        cutoff=cutoff,
        deleted_records=deleted,
        remaining_records=remaining,
    )
