"""
Unified Scheduler Gate
Single 5-minute tick that decides which jobs run:
- live ingestion: every tick
- hourly ingestion: first window after the hour rolls over
- daily aggregation: first window after the configured hour (default 01:00)
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from dateutil import tz

from traffic_monitor.config import settings
from traffic_monitor.clients.traffic_mx import TrafficMXClient
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.agents.common import JobOutcome, utc_now
from traffic_monitor.agents.live_ingestion import LiveIngestionAgent
from traffic_monitor.agents.hourly_ingestion import HourlyIngestionAgent
from traffic_monitor.agents.daily_aggregation import DailyAggregationAgent

logger = logging.getLogger(__name__)

GATE_JOB_ID = "unified_scheduler_tick"


def should_run_hourly(local_now: datetime, window_minutes: int) -> bool:
    return local_now.minute < window_minutes


def should_run_daily(local_now: datetime, window_minutes: int, daily_hour: int) -> bool:
    return local_now.hour == daily_hour and local_now.minute < window_minutes


class SchedulerGate:
    """
    Stateless gate: every decision is computed from the wall clock of the tick

    Responsibilities:
    1. Always run live ingestion
    2. Run hourly ingestion inside the hourly window
    3. Run daily aggregation inside the daily window
    4. Report skipped branches explicitly so results always have three parts
    """

    def __init__(
        self,
        repository: TrafficRepository,
        client: Optional[TrafficMXClient] = None,
        clock: Callable[[], datetime] = utc_now,
        tz_name: Optional[str] = None,
        window_minutes: Optional[int] = None,
        daily_hour: Optional[int] = None,
    ):
        self.repository = repository
        self.client = client or TrafficMXClient()
        self.clock = clock
        self.tz_name = tz_name or settings.local_timezone
        self.zone = tz.gettz(self.tz_name) or tz.UTC
        self.window_minutes = window_minutes if window_minutes is not None else settings.hourly_window_minutes
        self.daily_hour = daily_hour if daily_hour is not None else settings.daily_aggregation_hour

        self.live_agent = LiveIngestionAgent(repository, self.client, clock)
        self.hourly_agent = HourlyIngestionAgent(repository, self.client, clock)
        self.daily_agent = DailyAggregationAgent(repository, clock, self.tz_name)

    async def run_tick(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one scheduler tick

        Args:
            now: Tick time (defaults to the gate's clock); gating and every
                agent invocation share it

        Returns:
            {success, results: {live, hourly, daily}, executedAt[, error]}
        """
        tick_time = now or self.clock()
        local_now = tick_time.astimezone(self.zone)
        results: Dict[str, Any] = {"live": None, "hourly": None, "daily": None}
        response: Dict[str, Any] = {
            "success": True,
            "results": results,
            "executedAt": tick_time.isoformat(),
        }

        try:
            logger.info("Running live ingestion...")
            results["live"] = self._branch_body(await self.live_agent.run(now=tick_time))

            if should_run_hourly(local_now, self.window_minutes):
                logger.info("Running hourly ingestion...")
                results["hourly"] = self._branch_body(await self.hourly_agent.run(now=tick_time))
            else:
                results["hourly"] = {"skipped": True, "reason": "Not on the hour"}
                logger.info("Hourly ingestion skipped: not on the hour")

            if should_run_daily(local_now, self.window_minutes, self.daily_hour):
                logger.info("Running daily aggregation...")
                results["daily"] = self._branch_body(await self.daily_agent.run(now=tick_time))
            else:
                results["daily"] = {"skipped": True, "reason": f"Not {self.daily_hour}:00 window"}
                logger.info("Daily aggregation skipped: outside daily window")

        except Exception as e:
            logger.error(f"Error in scheduler tick: {e}", exc_info=True)
            response["success"] = False
            response["error"] = str(e)

        return response

    @staticmethod
    def _branch_body(outcome: JobOutcome) -> Dict[str, Any]:
        return {**outcome.body, "status_code": outcome.status_code}

    async def scheduled_tick(self):
        """Entry point for the APScheduler job"""
        response = await self.run_tick()
        if not response["success"]:
            logger.warning(f"Scheduler tick finished with error: {response.get('error')}")

    def setup_scheduled_cycles(self, scheduler: AsyncIOScheduler):
        """Register the tick on a cron trigger aligned to the tick interval"""
        scheduler.add_job(
            self.scheduled_tick,
            trigger=CronTrigger(minute=f"*/{settings.scheduler_tick_minutes}", timezone=self.tz_name),
            id=GATE_JOB_ID,
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
        )
        logger.info(f"Scheduled unified tick every {settings.scheduler_tick_minutes} minutes ({self.tz_name})")

    def get_status(self, scheduler: Optional[AsyncIOScheduler] = None) -> Dict[str, Any]:
        """Gate configuration and next run time"""
        next_run = None
        if scheduler is not None:
            job = scheduler.get_job(GATE_JOB_ID)
            # Jobs added before scheduler.start() have no next_run_time yet
            run_time = getattr(job, "next_run_time", None)
            if run_time is not None:
                next_run = run_time.isoformat()
        return {
            "gate": "unified scheduler",
            "timezone": self.tz_name,
            "hourly_window_minutes": self.window_minutes,
            "daily_aggregation_hour": self.daily_hour,
            "next_run": next_run,
            "timestamp": self.clock().isoformat(),
        }
