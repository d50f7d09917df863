"""
Hourly Ingestion Agent
Pulls pre-aggregated hourly statistics and upserts them by
(hour, camera_id, vehicle_type, direction)
"""
import logging
from datetime import date, datetime
from typing import Callable, Optional
from traffic_monitor.config import settings
from traffic_monitor.clients.traffic_mx import TrafficMXClient, normalize_hourly_stats
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import HOURLY_STATS, HOURLY_STAT_KEY
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.repositories.keys import dedupe_by_key
from traffic_monitor.result import Err, capture
from traffic_monitor.services.audit_log import FetchAuditLog, InvocationTimer
from traffic_monitor.agents.common import JobOutcome, utc_now

logger = logging.getLogger(__name__)


class HourlyIngestionAgent:
    """Agent responsible for hourly statistics ingestion"""

    def __init__(
        self,
        repository: TrafficRepository,
        client: Optional[TrafficMXClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.client = client or TrafficMXClient()
        self.clock = clock
        self.audit = FetchAuditLog(repository)
        self.endpoint = settings.hourly_stats_path

    async def run(self, target_date: Optional[date] = None, now: Optional[datetime] = None) -> JobOutcome:
        """
        Fetch and upsert hourly statistics

        Args:
            target_date: Optional backfill day; default is the upstream's rolling window
            now: Invocation time (defaults to the agent's clock)

        Returns:
            JobOutcome; exactly one fetch log entry is written either way
        """
        timer = InvocationTimer()
        fetch_time = now or self.clock()

        try:
            return await self._ingest(fetch_time, timer, target_date)
        except Exception as e:
            logger.error(f"Error in hourly ingestion: {e}", exc_info=True)
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(e),
                error_details={"error": repr(e)},
            )
            return JobOutcome.failed("Internal server error", str(e))

    async def _ingest(self, fetch_time: datetime, timer: InvocationTimer, target_date: Optional[date]) -> JobOutcome:
        fetched = await self.client.fetch_hourly_stats(target_date)
        if isinstance(fetched, Err):
            upstream_error = fetched.error
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(upstream_error),
                error_details=upstream_error.to_details(),
            )
            return JobOutcome.failed(
                "Upstream API error", str(upstream_error), upstream_status=upstream_error.status_code
            )

        items = fetched.value
        batch = normalize_hourly_stats(items)

        if not batch.records:
            await self.audit.success(
                self.endpoint, fetch_time, timer,
                records_fetched=len(items),
                records_failed=batch.rejected,
            )
            return JobOutcome.completed({
                "message": "No data available from API",
                "inserted": 0,
                "records_fetched": len(items),
                "records_rejected": batch.rejected,
                "timestamp": fetch_time.isoformat(),
                "response_time_ms": timer.elapsed_ms(),
            })

        records = dedupe_by_key(batch.records, HOURLY_STAT_KEY)
        stored = await capture(
            lambda: self.repository.upsert(HOURLY_STATS, records, HOURLY_STAT_KEY),
            StorageError,
        )
        if isinstance(stored, Err):
            logger.error(f"Storage error writing hourly stats: {stored.error}")
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(stored.error),
                error_details={"error": str(stored.error)},
                records_fetched=len(items),
                records_failed=len(records) + batch.rejected,
            )
            return JobOutcome.failed("Database error", str(stored.error))

        written = stored.value
        await self.audit.success(
            self.endpoint, fetch_time, timer,
            records_fetched=len(items),
            records_inserted=written.inserted,
            records_updated=written.updated,
            records_failed=batch.rejected,
        )

        logger.info(f"Hourly ingestion complete: {written.inserted} inserted, {written.updated} updated")
        body = {
            "message": "Data fetched and stored successfully",
            "records_fetched": len(items),
            "inserted": written.inserted,
            "updated": written.updated,
            "records_rejected": batch.rejected,
            "timestamp": fetch_time.isoformat(),
            "response_time_ms": timer.elapsed_ms(),
        }
        if target_date is not None:
            body["date"] = target_date.isoformat()
        return JobOutcome.completed(body)
