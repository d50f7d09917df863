"""
FastAPI dependencies shared by the route modules
"""
from datetime import datetime
from typing import Callable
from fastapi import HTTPException
from traffic_monitor.clients.traffic_mx import TrafficMXClient
from traffic_monitor.database import get_repository
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.agents.common import utc_now


def repository_dependency() -> TrafficRepository:
    """Configured repository, or 503 when the store is not connected"""
    repository = get_repository()
    if repository is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return repository


def client_dependency() -> TrafficMXClient:
    return TrafficMXClient()


def clock_dependency() -> Callable[[], datetime]:
    return utc_now
