"""
Daily Aggregation Agent
Reads one day of stored hourly stats and writes per-camera daily summaries
"""
import logging
from datetime import date, datetime
from typing import Callable, Optional
from dateutil import tz
from traffic_monitor.config import settings
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import HOURLY_STATS, DAILY_SUMMARY, DAILY_SUMMARY_KEY
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.result import Err, capture
from traffic_monitor.services.audit_log import FetchAuditLog, InvocationTimer
from traffic_monitor.services.daily_aggregation import aggregate_daily, day_window, default_target_date
from traffic_monitor.services.side_effects import best_effort
from traffic_monitor.agents.common import JobOutcome, utc_now

logger = logging.getLogger(__name__)

AGGREGATE_DAILY_ENDPOINT = "/api/cron/aggregate-daily"


class DailyAggregationAgent:
    """Agent responsible for hourly-to-daily aggregation"""

    def __init__(
        self,
        repository: TrafficRepository,
        clock: Callable[[], datetime] = utc_now,
        tz_name: Optional[str] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.tz_name = tz_name or settings.local_timezone
        self.zone = tz.gettz(self.tz_name) or tz.UTC
        self.audit = FetchAuditLog(repository)
        self.endpoint = AGGREGATE_DAILY_ENDPOINT

    async def run(self, target_date: Optional[date] = None, now: Optional[datetime] = None) -> JobOutcome:
        """
        Aggregate one day (default: the local day before `now`)

        Args:
            target_date: Day to aggregate
            now: Invocation time (defaults to the agent's clock)

        Returns:
            JobOutcome; exactly one fetch log entry is written either way
        """
        timer = InvocationTimer()
        fetch_time = now or self.clock()
        target = target_date or default_target_date(fetch_time, self.zone)

        try:
            return await self._aggregate(fetch_time, timer, target)
        except Exception as e:
            logger.error(f"Error in daily aggregation: {e}", exc_info=True)
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(e),
                error_details={"error": repr(e)},
            )
            return JobOutcome.failed("Internal server error", str(e))

    async def _aggregate(self, fetch_time: datetime, timer: InvocationTimer, target: date) -> JobOutcome:
        date_str = target.isoformat()
        start, end = day_window(target, self.zone)

        queried = await capture(
            lambda: self.repository.find_range(HOURLY_STATS, "hour", start=start, end=end),
            StorageError,
        )
        if isinstance(queried, Err):
            logger.error(f"Storage error reading hourly stats for {date_str}: {queried.error}")
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(queried.error),
                error_details={"error": str(queried.error), "date": date_str},
            )
            return JobOutcome.failed("Database error", str(queried.error))

        hourly_rows = queried.value
        if not hourly_rows:
            await self.audit.success(self.endpoint, fetch_time, timer)
            logger.info(f"No hourly data for {date_str}, skipping aggregation")
            return JobOutcome.completed({
                "message": f"No hourly data available for {date_str}",
                "date": date_str,
                "summaries_created": 0,
                "response_time_ms": timer.elapsed_ms(),
            })

        summaries = aggregate_daily(hourly_rows, target, self.zone)

        stored = await capture(
            lambda: self.repository.upsert(DAILY_SUMMARY, summaries, DAILY_SUMMARY_KEY),
            StorageError,
        )
        if isinstance(stored, Err):
            logger.error(f"Storage error writing daily summaries for {date_str}: {stored.error}")
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(stored.error),
                error_details={"error": str(stored.error), "date": date_str},
                records_fetched=len(hourly_rows),
                records_failed=len(summaries),
            )
            return JobOutcome.failed("Database error", str(stored.error))

        written = stored.value
        await self.audit.success(
            self.endpoint, fetch_time, timer,
            records_fetched=len(hourly_rows),
            records_inserted=written.inserted,
            records_updated=written.updated,
        )

        refreshed = await best_effort(
            "hourly patterns refresh",
            lambda: self.repository.refresh_hourly_patterns(self.tz_name),
        )

        logger.info(f"Daily aggregation for {date_str}: {len(summaries)} summaries from {len(hourly_rows)} hourly rows")
        return JobOutcome.completed({
            "message": "Daily summaries created successfully",
            "date": date_str,
            "summaries_created": len(summaries),
            "hourly_records_processed": len(hourly_rows),
            "patterns_refreshed": refreshed.ok,
            "response_time_ms": timer.elapsed_ms(),
        })
