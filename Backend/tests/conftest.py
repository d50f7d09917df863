"""Shared fixtures for traffic_monitor tests.

Every test gets an isolated in-memory repository, a frozen clock and a
factory for upstream clients backed by httpx.MockTransport.
"""

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest

# Keep the settings object away from a real MongoDB and the developer's .env
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOCAL_TIMEZONE", "UTC")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

backend_root = Path(__file__).parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from traffic_monitor.clients.traffic_mx import TrafficMXClient  # noqa: E402
from traffic_monitor.repositories.memory import InMemoryTrafficRepository  # noqa: E402

BASE_URL = "https://upstream.test"
LIVE_PATH = "/api/v1/live/counts"
HOURLY_PATH = "/api/v1/statistics/hourly"

FIXED_NOW = datetime(2025, 1, 15, 10, 3, tzinfo=timezone.utc)


class UpstreamStub:
    """Routes MockTransport requests by path and records what was asked for."""

    def __init__(self) -> None:
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def json(self, path: str, payload: Any, status_code: int = 200) -> None:
        self.routes[path] = lambda request: httpx.Response(status_code, json=payload)

    def raw(self, path: str, content: bytes, status_code: int = 200) -> None:
        self.routes[path] = lambda request: httpx.Response(status_code, content=content)

    def fail(self, path: str, exc: Exception) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc

        self.routes[path] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, content=json.dumps({"error": "not found"}).encode())
        return route(request)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def repository() -> InMemoryTrafficRepository:
    return InMemoryTrafficRepository()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def client(upstream: UpstreamStub) -> TrafficMXClient:
    return TrafficMXClient(base_url=BASE_URL, transport=httpx.MockTransport(upstream.handle))


def live_item(camera_id: str, timestamp: str = "2025-01-15T10:00:00Z", **counts: int) -> Dict[str, Any]:
    """Upstream live count item; unspecified counts are zero."""
    base = {"car_in": 0, "car_out": 0, "bus_in": 0, "bus_out": 0, "truck_in": 0, "truck_out": 0}
    base.update(counts)
    return {
        "camera_id": camera_id,
        "camera_name": f"Camera {camera_id}",
        "timestamp": timestamp,
        "counts": base,
        "total_in": base["car_in"] + base["bus_in"] + base["truck_in"],
        "total_out": base["car_out"] + base["bus_out"] + base["truck_out"],
    }


def hourly_item(
    camera_id: str,
    hour: str,
    vehicle_type: str = "car",
    direction: str = "in",
    count: int = 10,
    avg_confidence: float = 0.9,
) -> Dict[str, Any]:
    return {
        "camera_id": camera_id,
        "hour": hour,
        "vehicle_type": vehicle_type,
        "direction": direction,
        "count": count,
        "avg_confidence": avg_confidence,
    }
