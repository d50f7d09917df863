#!/usr/bin/env python3
"""
Backfill hourly stats and daily summaries for a range of days
Usage: python scripts/backfill_daily.py 2025-01-01 [2025-01-07] [--skip-fetch]
"""
import asyncio
import sys
import os
from datetime import timedelta
from dateutil import parser as date_parser

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from traffic_monitor.database import connect_to_mongo, close_mongo_connection, get_repository
from traffic_monitor.agents.hourly_ingestion import HourlyIngestionAgent
from traffic_monitor.agents.daily_aggregation import DailyAggregationAgent
from traffic_monitor.config import settings
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def backfill(start, end, skip_fetch: bool = False) -> int:
    """Fetch (optional) and aggregate every day in [start, end]"""
    failures = 0
    try:
        await connect_to_mongo()
        repository = get_repository()
        if repository is None:
            print("❌ Storage not available, check MONGODB_URI")
            return 1

        hourly_agent = HourlyIngestionAgent(repository)
        daily_agent = DailyAggregationAgent(repository)

        day = start
        while day <= end:
            print(f"--- {day.isoformat()} ---")
            if not skip_fetch:
                fetched = await hourly_agent.run(day)
                print(f"  fetch:     {fetched.status_code} {fetched.body.get('message') or fetched.body.get('error')}")
                failures += 0 if fetched.success else 1

            aggregated = await daily_agent.run(day)
            print(f"  aggregate: {aggregated.status_code} {aggregated.body.get('message') or aggregated.body.get('error')}")
            failures += 0 if aggregated.success else 1
            day += timedelta(days=1)

    except Exception as e:
        logger.error(f"Backfill error: {e}", exc_info=True)
        return 1

    finally:
        await close_mongo_connection()

    print(f"\nBackfill finished with {failures} failed step(s)")
    return 0 if failures == 0 else 1


if __name__ == "__main__":
    args = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    if not args:
        print(__doc__)
        sys.exit(2)
    start_day = date_parser.isoparse(args[0]).date()
    end_day = date_parser.isoparse(args[1]).date() if len(args) > 1 else start_day
    sys.exit(asyncio.run(backfill(start_day, end_day, skip_fetch="--skip-fetch" in sys.argv)))
