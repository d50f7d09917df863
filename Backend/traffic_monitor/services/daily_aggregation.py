"""
Hourly-to-daily aggregation math

Compresses one day of HourlyStat rows per camera into a DailySummary:
per vehicle type/direction totals, peak hours, confidence and completeness.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from traffic_monitor.models.mongodb_models import VEHICLE_TYPES, DIRECTIONS

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24


def default_target_date(now: datetime, zone) -> date:
    """Yesterday, as seen on the local wall clock"""
    return (now.astimezone(zone) - timedelta(days=1)).date()


def day_window(target_date: date, zone) -> Tuple[datetime, datetime]:
    """
    UTC bounds of ``[local midnight of date, local midnight of date+1)``

    Both ends are built from calendar dates, so DST days yield 23/25 hour windows.
    """
    start = datetime.combine(target_date, time(0), tzinfo=zone)
    end = datetime.combine(target_date + timedelta(days=1), time(0), tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def peak_hour(totals_by_hour: Dict[int, int]) -> Tuple[int, int]:
    """
    Hour-of-day with the largest accumulated count

    Ties resolve to the earliest hour-of-day. An empty mapping yields (0, 0).
    """
    if not totals_by_hour:
        return 0, 0
    hour = max(sorted(totals_by_hour), key=lambda h: totals_by_hour[h])
    return hour, totals_by_hour[hour]


def summarize_camera(camera_id: str, records: List[Dict], date_str: str, zone) -> Dict:
    """
    Build the DailySummary document for one camera

    Args:
        camera_id: Camera the records belong to
        records: That camera's HourlyStat rows for the day
        date_str: Summary date (YYYY-MM-DD)
        zone: tzinfo the hour-of-day is read in

    Returns:
        DailySummary document
    """
    totals = {f"{vehicle}_{direction}": 0 for vehicle in VEHICLE_TYPES for direction in DIRECTIONS}
    by_hour: Dict[str, Dict[int, int]] = {direction: {} for direction in DIRECTIONS}
    confidences: List[float] = []
    calendar_hours = set()

    for record in records:
        key = f"{record['vehicle_type']}_{record['direction']}"
        if key not in totals:
            logger.warning(f"Ignoring hourly stat with unknown type/direction {key} for {camera_id}")
            continue

        count = record.get("count") or 0
        totals[key] += count

        hour = _as_utc(record["hour"])
        hour_of_day = hour.astimezone(zone).hour
        direction_totals = by_hour[record["direction"]]
        direction_totals[hour_of_day] = direction_totals.get(hour_of_day, 0) + count

        if record.get("avg_confidence") is not None:
            confidences.append(record["avg_confidence"])

        # Distinct calendar hours, not hour-of-day, so a wide window cannot inflate completeness
        calendar_hours.add(hour.replace(minute=0, second=0, microsecond=0))

    total_in = totals["car_in"] + totals["bus_in"] + totals["truck_in"]
    total_out = totals["car_out"] + totals["bus_out"] + totals["truck_out"]

    peak_in_hour, peak_in_count = peak_hour(by_hour["in"])
    peak_out_hour, peak_out_count = peak_hour(by_hour["out"])

    avg_confidence: Optional[float] = None
    if confidences:
        avg_confidence = sum(confidences) / len(confidences)

    hours_with_data = len(calendar_hours)
    data_completeness = min(hours_with_data / HOURS_PER_DAY * 100, 100.0)

    return {
        "date": date_str,
        "camera_id": camera_id,
        "car_in_total": totals["car_in"],
        "car_out_total": totals["car_out"],
        "bus_in_total": totals["bus_in"],
        "bus_out_total": totals["bus_out"],
        "truck_in_total": totals["truck_in"],
        "truck_out_total": totals["truck_out"],
        "total_in": total_in,
        "total_out": total_out,
        "peak_hour_in": peak_in_hour,
        "peak_hour_out": peak_out_hour,
        "peak_hour_value": max(peak_in_count, peak_out_count),
        "avg_confidence": avg_confidence,
        "hours_with_data": hours_with_data,
        "data_completeness": data_completeness,
    }


def group_by_camera(records: Iterable[Dict]) -> Dict[str, List[Dict]]:
    """Insertion-ordered grouping by camera_id"""
    groups: Dict[str, List[Dict]] = {}
    for record in records:
        groups.setdefault(record["camera_id"], []).append(record)
    return groups


def aggregate_daily(records: Iterable[Dict], target_date: date, zone) -> List[Dict]:
    """DailySummary documents for every camera present in ``records``"""
    date_str = target_date.isoformat()
    return [
        summarize_camera(camera_id, camera_records, date_str, zone)
        for camera_id, camera_records in group_by_camera(records).items()
    ]
