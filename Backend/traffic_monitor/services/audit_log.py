"""
Fetch audit log: one append-only entry per ingestion/aggregation invocation
"""
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import FETCH_LOG
from traffic_monitor.repositories.base import TrafficRepository

logger = logging.getLogger(__name__)


class InvocationTimer:
    """Wall-clock elapsed time since the invocation started"""

    def __init__(self):
        self._started = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._started) * 1000)


class FetchAuditLog:
    """Writes FetchLogEntry documents"""

    def __init__(self, repository: TrafficRepository):
        self.repository = repository

    async def record(
        self,
        endpoint: str,
        status: str,
        fetch_time: datetime,
        timer: InvocationTimer,
        records_fetched: int = 0,
        records_inserted: int = 0,
        records_updated: int = 0,
        records_failed: int = 0,
        error_message: Optional[str] = None,
        error_details: Optional[Dict] = None,
    ) -> Dict:
        """
        Append one audit entry

        A failing audit write is logged and does not replace the job's own outcome.

        Returns:
            The entry that was (or would have been) written
        """
        entry = {
            "fetch_time": fetch_time,
            "endpoint": endpoint,
            "status": status,
            "records_fetched": records_fetched,
            "records_inserted": records_inserted,
            "records_updated": records_updated,
            "records_failed": records_failed,
            "response_time_ms": timer.elapsed_ms(),
            "error_message": error_message,
            "error_details": error_details,
        }
        try:
            await self.repository.insert(FETCH_LOG, [entry])
        except StorageError as e:
            logger.error(f"Failed to write fetch log entry for {endpoint}: {e}")
        return entry

    async def success(self, endpoint: str, fetch_time: datetime, timer: InvocationTimer, **counts) -> Dict:
        return await self.record(endpoint, "success", fetch_time, timer, **counts)

    async def error(
        self,
        endpoint: str,
        fetch_time: datetime,
        timer: InvocationTimer,
        error_message: str,
        error_details: Optional[Dict] = None,
        **counts,
    ) -> Dict:
        return await self.record(
            endpoint,
            "error",
            fetch_time,
            timer,
            error_message=error_message,
            error_details=error_details,
            **counts,
        )

    async def recent(self, limit: int = 50, endpoint: Optional[str] = None) -> List[Dict]:
        """Latest entries first"""
        return await self.repository.find_range(
            FETCH_LOG,
            "fetch_time",
            filters={"endpoint": endpoint} if endpoint else None,
            descending=True,
            limit=limit,
        )
