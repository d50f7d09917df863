"""
Cron-triggered job endpoints
"""
import logging
from datetime import date, datetime
from typing import Callable, Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from traffic_monitor.api.deps import repository_dependency, client_dependency, clock_dependency
from traffic_monitor.clients.traffic_mx import TrafficMXClient
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.agents.common import JobOutcome
from traffic_monitor.agents.live_ingestion import LiveIngestionAgent
from traffic_monitor.agents.hourly_ingestion import HourlyIngestionAgent
from traffic_monitor.agents.daily_aggregation import DailyAggregationAgent
from traffic_monitor.orchestrator.scheduler_gate import SchedulerGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def _render(outcome: JobOutcome) -> JSONResponse:
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("/fetch-live")
async def fetch_live(
    repository: TrafficRepository = Depends(repository_dependency),
    client: TrafficMXClient = Depends(client_dependency),
    clock: Callable[[], datetime] = Depends(clock_dependency),
):
    """Fetch live counts, upsert snapshots and detect anomalies"""
    agent = LiveIngestionAgent(repository, client, clock)
    return _render(await agent.run())


@router.get("/fetch-data")
async def fetch_data(
    target_date: Optional[date] = Query(None, alias="date", description="Backfill day (YYYY-MM-DD)"),
    repository: TrafficRepository = Depends(repository_dependency),
    client: TrafficMXClient = Depends(client_dependency),
    clock: Callable[[], datetime] = Depends(clock_dependency),
):
    """Fetch hourly statistics and upsert them"""
    agent = HourlyIngestionAgent(repository, client, clock)
    return _render(await agent.run(target_date))


@router.get("/aggregate-daily")
async def aggregate_daily(
    target_date: Optional[date] = Query(None, alias="date", description="Day to aggregate (default: yesterday)"),
    repository: TrafficRepository = Depends(repository_dependency),
    clock: Callable[[], datetime] = Depends(clock_dependency),
):
    """Aggregate one day of hourly stats into daily summaries"""
    agent = DailyAggregationAgent(repository, clock)
    return _render(await agent.run(target_date))


@router.get("/run-all")
async def run_all(
    repository: TrafficRepository = Depends(repository_dependency),
    client: TrafficMXClient = Depends(client_dependency),
    clock: Callable[[], datetime] = Depends(clock_dependency),
):
    """
    Unified tick: live every call, hourly and daily only inside their windows

    Returns:
        {success, results: {live, hourly, daily}, executedAt}
    """
    gate = SchedulerGate(repository, client, clock)
    response = await gate.run_tick()
    return JSONResponse(status_code=200 if response["success"] else 500, content=response)
