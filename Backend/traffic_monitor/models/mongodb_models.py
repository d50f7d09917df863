"""
MongoDB document models (for reference and type hints)
These represent the structure of documents stored in MongoDB collections
"""
from typing import Optional
from datetime import datetime
from typing_extensions import TypedDict


# Collection names
HOURLY_STATS = "traffic_hourly_stats"
LIVE_SNAPSHOTS = "traffic_live_snapshots"
DAILY_SUMMARY = "traffic_daily_summary"
ANOMALIES = "traffic_anomalies"
FETCH_LOG = "api_fetch_log"
CAMERA_METADATA = "camera_metadata"
HOURLY_PATTERNS = "hourly_patterns"

# Natural (conflict-target) keys for upserted collections
HOURLY_STAT_KEY = ("hour", "camera_id", "vehicle_type", "direction")
LIVE_SNAPSHOT_KEY = ("snapshot_time", "camera_id")
DAILY_SUMMARY_KEY = ("date", "camera_id")
CAMERA_METADATA_KEY = ("camera_id",)
HOURLY_PATTERN_KEY = ("camera_id", "hour_of_day", "vehicle_type", "direction")

VEHICLE_TYPES = ("car", "bus", "truck")
DIRECTIONS = ("in", "out")


class HourlyStat(TypedDict, total=False):
    """One (hour, camera, vehicle type, direction) count"""
    hour: datetime  # truncated to the hour, UTC
    camera_id: str
    vehicle_type: str  # "car" | "bus" | "truck"
    direction: str  # "in" | "out"
    count: int
    avg_confidence: float  # 0-1


class LiveSnapshot(TypedDict, total=False):
    """Point-in-time 5-minute window counts per camera"""
    snapshot_time: datetime
    camera_id: str
    car_in: int
    car_out: int
    bus_in: int
    bus_out: int
    truck_in: int
    truck_out: int
    total_in: int  # car_in + bus_in + truck_in
    total_out: int  # car_out + bus_out + truck_out


class DailySummary(TypedDict, total=False):
    """Per camera-day compression of hourly stats"""
    date: str  # YYYY-MM-DD
    camera_id: str
    car_in_total: int
    car_out_total: int
    bus_in_total: int
    bus_out_total: int
    truck_in_total: int
    truck_out_total: int
    total_in: int
    total_out: int
    peak_hour_in: int  # 0-23
    peak_hour_out: int  # 0-23
    peak_hour_value: int
    avg_confidence: Optional[float]
    hours_with_data: int
    data_completeness: float  # 0-100


class Anomaly(TypedDict, total=False):
    """Threshold crossing detected on a live snapshot (append-only)"""
    detected_at: datetime
    camera_id: str
    anomaly_type: str  # "congestion" | "unusual_pattern" | "high_traffic"
    severity: str  # "medium" | "high"
    reference_period: datetime
    metric_name: str  # "net_flow" | "total_vehicles"
    metric_value: float
    threshold_value: float
    deviation_percentage: float
    metadata: Optional[dict]


class FetchLogEntry(TypedDict, total=False):
    """Audit trail row, one per ingestion/aggregation invocation"""
    fetch_time: datetime
    endpoint: str
    status: str  # "success" | "error"
    records_fetched: int
    records_inserted: int
    records_updated: int
    records_failed: int
    response_time_ms: int
    error_message: Optional[str]
    error_details: Optional[dict]


class CameraMetadata(TypedDict, total=False):
    """Latest known name/activity per camera"""
    camera_id: str
    camera_name: Optional[str]
    is_active: bool
    updated_at: datetime


class HourlyPattern(TypedDict, total=False):
    """Average count per camera, hour-of-day, vehicle type and direction"""
    camera_id: str
    hour_of_day: int
    vehicle_type: str
    direction: str
    avg_count: float
    total_count: int
    sample_hours: int
    refreshed_at: datetime

