"""
FastAPI main application
"""
import logging
from typing import Optional
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from traffic_monitor.database import connect_to_mongo, close_mongo_connection, get_repository
from traffic_monitor.config import settings
from traffic_monitor.orchestrator import SchedulerGate
from traffic_monitor.api.routes import cron, history, anomalies, health, admin

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler instance
scheduler = AsyncIOScheduler()

# Scheduler gate instance (initialized in lifespan)
scheduler_gate: Optional[SchedulerGate] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global scheduler_gate

    # Startup
    logger.info("Starting Traffic Monitor...")

    await connect_to_mongo()

    repository = get_repository()
    if settings.scheduler_enabled and repository is not None:
        scheduler_gate = SchedulerGate(repository)
        scheduler_gate.setup_scheduled_cycles(scheduler)
        scheduler.start()
        logger.info("Scheduler gate started")
    else:
        logger.warning("Scheduler gate disabled (SCHEDULER_ENABLED=false or storage unavailable)")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if scheduler.running:
        scheduler.shutdown()
    await close_mongo_connection()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Traffic Monitor API",
    description="Traffic counting ingestion, anomaly detection and daily aggregation",
    version="1.0.0",
    lifespan=lifespan
)

# Origins are configured via CORS_ORIGINS environment variable (comma-separated)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

# Include routers
app.include_router(cron.router)
app.include_router(history.router)
app.include_router(anomalies.router)
app.include_router(health.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Traffic Monitor",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "fetch_live": "/api/cron/fetch-live",
            "fetch_data": "/api/cron/fetch-data",
            "aggregate_daily": "/api/cron/aggregate-daily",
            "run_all": "/api/cron/run-all",
            "hourly": "/api/history/hourly",
            "daily": "/api/history/daily",
            "patterns": "/api/history/patterns",
            "anomalies": "/api/anomalies",
            "health": "/api/health",
            "fetch_log": "/api/health/fetch-log",
            "cleanup": "/api/admin/cleanup",
            "orchestrator": "/api/orchestrator/status"
        }
    }


@app.get("/api/orchestrator/status")
async def orchestrator_status():
    """Get scheduler gate status"""
    if scheduler_gate is None:
        return {
            "status": "not_initialized",
            "error": "Scheduler gate not initialized"
        }
    return scheduler_gate.get_status(scheduler)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "traffic_monitor.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
