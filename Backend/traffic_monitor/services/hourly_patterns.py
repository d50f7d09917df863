"""
Hour-of-day traffic profile computed from stored hourly stats
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List
from dateutil import tz


def compute_hourly_patterns(rows: Iterable[Dict], tz_name: str = "UTC") -> List[Dict]:
    """
    Average count per (camera, local hour-of-day, vehicle type, direction)

    Args:
        rows: HourlyStat documents
        tz_name: Timezone the hour-of-day is read in

    Returns:
        HourlyPattern documents sorted by camera, hour, vehicle type, direction
    """
    zone = tz.gettz(tz_name) or tz.UTC
    totals: Dict[tuple, List[int]] = defaultdict(lambda: [0, 0])

    for row in rows:
        hour = row["hour"]
        if hour.tzinfo is None:
            hour = hour.replace(tzinfo=timezone.utc)
        key = (row["camera_id"], hour.astimezone(zone).hour, row["vehicle_type"], row["direction"])
        totals[key][0] += row.get("count", 0)
        totals[key][1] += 1

    refreshed_at = datetime.now(timezone.utc)
    return [
        {
            "camera_id": camera_id,
            "hour_of_day": hour_of_day,
            "vehicle_type": vehicle_type,
            "direction": direction,
            "avg_count": total / samples,
            "total_count": total,
            "sample_hours": samples,
            "refreshed_at": refreshed_at,
        }
        for (camera_id, hour_of_day, vehicle_type, direction), (total, samples) in sorted(totals.items())
    ]
