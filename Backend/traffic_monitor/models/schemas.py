"""
Pydantic schemas for API response validation
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class HourlyStatEntry(BaseModel):
    """One hourly count inside an hour group"""
    camera_id: str
    vehicle_type: str
    direction: str
    count: int = Field(ge=0)
    avg_confidence: Optional[float] = Field(default=None, ge=0, le=1)


class HourlyGroup(BaseModel):
    """All hourly counts recorded for one hour"""
    hour: datetime
    data: List[HourlyStatEntry]


class HourlyHistoryResponse(BaseModel):
    """Response for hourly history query"""
    period: str
    count: int
    data: List[HourlyGroup]


class DailySummary(BaseModel):
    """Daily per-camera summary"""
    date: str
    camera_id: str
    car_in_total: int
    car_out_total: int
    bus_in_total: int
    bus_out_total: int
    truck_in_total: int
    truck_out_total: int
    total_in: int
    total_out: int
    peak_hour_in: int = Field(ge=0, le=23)
    peak_hour_out: int = Field(ge=0, le=23)
    peak_hour_value: int
    avg_confidence: Optional[float] = None
    hours_with_data: int
    data_completeness: float = Field(ge=0, le=100)


class DailySummaryResponse(BaseModel):
    """Response for daily summaries query"""
    summaries: List[DailySummary]
    count: int
    timestamp: datetime


class HourlyPattern(BaseModel):
    """Average hour-of-day profile for one camera/vehicle type/direction"""
    camera_id: str
    hour_of_day: int = Field(ge=0, le=23)
    vehicle_type: str
    direction: str
    avg_count: float
    total_count: int
    sample_hours: int
    refreshed_at: Optional[datetime] = None


class HourlyPatternsResponse(BaseModel):
    """Response for hourly patterns query"""
    patterns: List[HourlyPattern]
    count: int
    timestamp: datetime


class Anomaly(BaseModel):
    """Detected traffic anomaly"""
    detected_at: datetime
    camera_id: str
    anomaly_type: str  # "congestion" | "unusual_pattern" | "high_traffic"
    severity: str  # "medium" | "high"
    reference_period: Optional[datetime] = None
    metric_name: str
    metric_value: float
    threshold_value: float
    deviation_percentage: float
    metadata: Optional[Dict[str, Any]] = None


class AnomaliesResponse(BaseModel):
    """Response for anomalies query"""
    anomalies: List[Anomaly]
    count: int
    timestamp: datetime


class FetchLogEntry(BaseModel):
    """Audit entry for one ingestion/aggregation invocation"""
    fetch_time: datetime
    endpoint: str
    status: str  # "success" | "error"
    records_fetched: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_failed: int = 0
    response_time_ms: int = 0
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None


class FetchLogResponse(BaseModel):
    """Response for fetch log query"""
    entries: List[FetchLogEntry]
    count: int
    timestamp: datetime


class CleanupResponse(BaseModel):
    """Response for retention cleanup"""
    success: bool
    message: str
    cutoff: datetime
    deleted_records: int
    remaining_records: int
