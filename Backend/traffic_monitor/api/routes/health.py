"""
Health check and fetch audit endpoints
"""
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, Query
from traffic_monitor.api.deps import repository_dependency
from traffic_monitor.api.routes.history import storage_error_response
from traffic_monitor.config import settings
from traffic_monitor.database import get_repository
from traffic_monitor.errors import StorageError
from traffic_monitor.models.schemas import FetchLogResponse, FetchLogEntry
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.services.audit_log import FetchAuditLog
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "traffic_monitor",
        "storage_backend": settings.storage_backend,
        "storage_connected": get_repository() is not None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/fetch-log", response_model=FetchLogResponse)
async def get_fetch_log(
    limit: int = Query(50, ge=1, le=500),
    endpoint: Optional[str] = None,
    repository: TrafficRepository = Depends(repository_dependency),
):
    """
    Latest ingestion/aggregation audit entries

    Args:
        limit: Maximum number of entries
        endpoint: Optional endpoint filter, e.g. /api/v1/live/counts
    """
    try:
        rows = await FetchAuditLog(repository).recent(limit=limit, endpoint=endpoint)
    except StorageError as e:
        logger.error(f"Error querying fetch log: {e}")
        return storage_error_response(e)

    entries = [FetchLogEntry(**row) for row in rows]
    return FetchLogResponse(entries=entries, count=len(entries), timestamp=datetime.now(timezone.utc))
