#!/usr/bin/env python3
"""
Run one unified scheduler tick from the command line
Useful for checking the upstream API and the storage wiring without the web server
"""
import asyncio
import json
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from traffic_monitor.database import connect_to_mongo, close_mongo_connection, get_repository
from traffic_monitor.orchestrator import SchedulerGate
from traffic_monitor.config import settings
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_tick() -> int:
    """Run a single tick and print the combined result"""
    print("=" * 80)
    print("UNIFIED SCHEDULER TICK")
    print("=" * 80)
    print(f"Storage backend: {settings.storage_backend}")
    print(f"Timezone:        {settings.local_timezone}\n")

    try:
        await connect_to_mongo()
        repository = get_repository()
        if repository is None:
            print("❌ Storage not available, check MONGODB_URI or use STORAGE_BACKEND=memory")
            return 1

        gate = SchedulerGate(repository)
        response = await gate.run_tick()

        print(json.dumps(response, indent=2, default=str))
        print()
        for branch, body in response["results"].items():
            if body is None:
                status = "not reached"
            elif body.get("skipped"):
                status = f"skipped ({body.get('reason')})"
            else:
                status = f"status {body.get('status_code')}: {body.get('message') or body.get('error')}"
            print(f"  {branch:<7} {status}")

        return 0 if response["success"] else 1

    except Exception as e:
        logger.error(f"Tick error: {e}", exc_info=True)
        print(f"\n❌ Error during tick: {e}\n")
        return 1

    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    sys.exit(asyncio.run(run_tick()))
