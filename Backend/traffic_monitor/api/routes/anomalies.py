"""
API routes for detected anomalies
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, Query
from traffic_monitor.api.deps import repository_dependency
from traffic_monitor.api.routes.history import parse_bound, storage_error_response
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import ANOMALIES
from traffic_monitor.models.schemas import AnomaliesResponse, Anomaly
from traffic_monitor.repositories.base import TrafficRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/anomalies", tags=["anomalies"])


@router.get("", response_model=AnomaliesResponse)
async def get_anomalies(
    camera_id: Optional[str] = None,
    since: Optional[str] = Query(None, description="Only anomalies detected at or after this time"),
    limit: int = Query(50, ge=1, le=500),
    repository: TrafficRepository = Depends(repository_dependency),
):
    """Most recent anomalies first"""
    try:
        rows = await repository.find_range(
            ANOMALIES, "detected_at",
            start=parse_bound(since, "since"),
            filters={"camera_id": camera_id} if camera_id else None,
            descending=True, limit=limit,
        )
    except StorageError as e:
        logger.error(f"Error querying anomalies: {e}")
        return storage_error_response(e)

    anomalies = [Anomaly(**row) for row in rows]
    return AnomaliesResponse(anomalies=anomalies, count=len(anomalies), timestamp=datetime.now(timezone.utc))
