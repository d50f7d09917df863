"""
trafic.mx camera API client
Fetches live 5-minute counts and hourly statistics and normalizes them
into LiveSnapshot / HourlyStat documents
"""
import httpx
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, date, timezone
from typing import Any, List, Dict, Optional
from dateutil import parser as date_parser
from traffic_monitor.config import settings
from traffic_monitor.errors import UpstreamError
from traffic_monitor.models.mongodb_models import VEHICLE_TYPES, DIRECTIONS
from traffic_monitor.result import Ok, Err, Result

logger = logging.getLogger(__name__)


@dataclass
class NormalizedBatch:
    """Normalized records plus the count of upstream items that were rejected"""
    records: List[Dict] = field(default_factory=list)
    rejected: int = 0


class TrafficMXClient:
    """Client for the trafic.mx vehicle counting API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base = (base_url or settings.traffic_api_base_url).rstrip("/")
        self.live_counts_url = base + settings.live_counts_path
        self.hourly_stats_url = base + settings.hourly_stats_path
        self.timeout = timeout if timeout is not None else settings.upstream_timeout_seconds
        self.transport = transport

    async def fetch_live_counts(self) -> Result[List[Dict], UpstreamError]:
        """
        Fetch the latest live count per camera

        Returns:
            Ok(list of raw live count items) or Err(UpstreamError)
        """
        result = await self._get_json(self.live_counts_url)
        if isinstance(result, Err):
            return result
        return _unwrap_or_error(result.value, self.live_counts_url)

    async def fetch_hourly_stats(self, target_date: Optional[date] = None) -> Result[List[Dict], UpstreamError]:
        """
        Fetch hourly statistics (last 24 hours, or a single day for backfill)

        Args:
            target_date: Optional day to request instead of the default window

        Returns:
            Ok(list of raw hourly statistic items) or Err(UpstreamError)
        """
        params = None
        if target_date is not None:
            params = {
                "start_date": target_date.isoformat(),
                "end_date": target_date.isoformat(),
            }
        result = await self._get_json(self.hourly_stats_url, params=params)
        if isinstance(result, Err):
            return result
        return _unwrap_or_error(result.value, self.hourly_stats_url)

    async def _get_json(self, url: str, params: Optional[Dict] = None) -> Result[Any, UpstreamError]:
        """Low-level GET returning the decoded JSON body"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(
                    url,
                    params=params,
                    headers={
                        "Accept": "application/json",
                        "User-Agent": settings.upstream_user_agent,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Network error contacting {url}: {e}")
            return Err(UpstreamError(f"Network error: {e}"))

        if not response.is_success:
            logger.error(f"Upstream API returned {response.status_code} for {url}")
            return Err(UpstreamError(f"API error: {response.status_code}", status_code=response.status_code))

        try:
            return Ok(response.json())
        except ValueError as e:
            logger.error(f"Upstream API returned invalid JSON for {url}: {e}")
            return Err(UpstreamError(f"Invalid JSON from upstream: {e}", status_code=response.status_code))


def unwrap_payload(payload: Any) -> Result[List[Dict], str]:
    """
    Resolve both upstream response shapes into a list of items

    A bare array is returned as-is; an object carrying a ``data`` array is
    unwrapped; an empty/null body is an empty list.
    """
    if payload is None:
        return Ok([])
    if isinstance(payload, list):
        return Ok(payload)
    if isinstance(payload, dict):
        data = payload.get("data")
        if data is None:
            return Ok([])
        if isinstance(data, list):
            return Ok(data)
        return Err(f"'data' is {type(data).__name__}, expected list")
    return Err(f"unexpected payload type {type(payload).__name__}")


def _unwrap_or_error(payload: Any, url: str) -> Result[List[Dict], UpstreamError]:
    result = unwrap_payload(payload)
    if isinstance(result, Err):
        logger.error(f"Unexpected payload shape from {url}: {result.error}")
        return Err(UpstreamError(f"Unexpected payload shape: {result.error}"))
    return result


def parse_timestamp(value: Any) -> datetime:
    """Parse an upstream timestamp into an aware UTC datetime"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        parsed = date_parser.isoparse(value)
    else:
        raise ValueError(f"invalid timestamp {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def truncate_to_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def _count(value: Any) -> int:
    """Missing counts default to 0; negatives, fractions and non-finite numbers are invalid"""
    if value is None:
        return 0
    if isinstance(value, float) and not (math.isfinite(value) and value.is_integer()):
        raise ValueError(f"count {value!r} is not a whole number")
    count = int(value)
    if count < 0:
        raise ValueError(f"negative count {value!r}")
    return count


def _confidence(value: Any) -> float:
    if value is None:
        return 0.0
    confidence = float(value)
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"confidence {value!r} outside [0, 1]")
    return confidence


def normalize_live_counts(items: List[Dict], fetch_time: datetime) -> NormalizedBatch:
    """
    Convert raw live count items into LiveSnapshot documents

    Totals are derived from the per-vehicle counts; upstream totals are only
    compared for logging.

    Args:
        items: Raw items from the live counts endpoint
        fetch_time: Used as snapshot_time when an item carries no timestamp

    Returns:
        NormalizedBatch of snapshots (with camera_name kept for metadata refresh)
    """
    batch = NormalizedBatch()

    for item in items:
        try:
            camera_id = item.get("camera_id")
            if not camera_id:
                raise ValueError("missing camera_id")

            counts = item.get("counts") or {}
            snapshot = {
                "snapshot_time": parse_timestamp(item["timestamp"]) if item.get("timestamp") else fetch_time,
                "camera_id": str(camera_id),
                "car_in": _count(counts.get("car_in")),
                "car_out": _count(counts.get("car_out")),
                "bus_in": _count(counts.get("bus_in")),
                "bus_out": _count(counts.get("bus_out")),
                "truck_in": _count(counts.get("truck_in")),
                "truck_out": _count(counts.get("truck_out")),
            }
            snapshot["total_in"] = snapshot["car_in"] + snapshot["bus_in"] + snapshot["truck_in"]
            snapshot["total_out"] = snapshot["car_out"] + snapshot["bus_out"] + snapshot["truck_out"]

            for direction in DIRECTIONS:
                reported = item.get(f"total_{direction}")
                if reported is not None and reported != snapshot[f"total_{direction}"]:
                    logger.warning(
                        f"Camera {camera_id} reported total_{direction}={reported}, "
                        f"derived {snapshot[f'total_{direction}']}; using derived value"
                    )

            batch.records.append({**snapshot, "camera_name": item.get("camera_name")})

        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Error parsing live count item: {e}, skipping item")
            batch.rejected += 1

    return batch


def normalize_hourly_stats(items: List[Dict]) -> NormalizedBatch:
    """
    Convert raw hourly statistic items into HourlyStat documents

    Args:
        items: Raw items from the hourly statistics endpoint

    Returns:
        NormalizedBatch of hourly stats
    """
    batch = NormalizedBatch()

    for item in items:
        try:
            camera_id = item.get("camera_id")
            if not camera_id:
                raise ValueError("missing camera_id")
            vehicle_type = item.get("vehicle_type")
            if vehicle_type not in VEHICLE_TYPES:
                raise ValueError(f"unknown vehicle_type {vehicle_type!r}")
            direction = item.get("direction")
            if direction not in DIRECTIONS:
                raise ValueError(f"unknown direction {direction!r}")

            batch.records.append({
                "hour": truncate_to_hour(parse_timestamp(item.get("hour"))),
                "camera_id": str(camera_id),
                "vehicle_type": vehicle_type,
                "direction": direction,
                "count": _count(item.get("count")),
                "avg_confidence": _confidence(item.get("avg_confidence")),
            })

        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Error parsing hourly statistic: {e}, skipping item")
            batch.rejected += 1

    return batch
