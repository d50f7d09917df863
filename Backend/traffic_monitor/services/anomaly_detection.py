"""
Threshold-based anomaly detection for live snapshots

Two independent checks run per snapshot:
- net flow (total_in - total_out) beyond NET_FLOW_THRESHOLD -> congestion / unusual_pattern
- total volume (total_in + total_out) beyond TOTAL_TRAFFIC_THRESHOLD -> high_traffic

Comparisons are strict: a value equal to a threshold does not trigger.
"""
import logging
from typing import Dict, Iterable, List

logger = logging.getLogger(__name__)

NET_FLOW_THRESHOLD = 30
NET_FLOW_HIGH_SEVERITY = 50
TOTAL_TRAFFIC_THRESHOLD = 100
TOTAL_TRAFFIC_HIGH_SEVERITY = 150


def classify_severity(value: float, high_threshold: float) -> str:
    return "high" if value > high_threshold else "medium"


def deviation_percentage(value: float, threshold: float) -> float:
    """Percentage by which value exceeds threshold"""
    return (value - threshold) / threshold * 100


def check_net_flow(snapshot: Dict) -> List[Dict]:
    net_flow = snapshot["total_in"] - snapshot["total_out"]
    magnitude = abs(net_flow)
    if not magnitude > NET_FLOW_THRESHOLD:
        return []

    return [{
        "detected_at": snapshot["snapshot_time"],
        "camera_id": snapshot["camera_id"],
        "anomaly_type": "congestion" if net_flow > 0 else "unusual_pattern",
        "severity": classify_severity(magnitude, NET_FLOW_HIGH_SEVERITY),
        "reference_period": snapshot["snapshot_time"],
        "metric_name": "net_flow",
        "metric_value": net_flow,
        "threshold_value": NET_FLOW_THRESHOLD,
        "deviation_percentage": deviation_percentage(magnitude, NET_FLOW_THRESHOLD),
        "metadata": {
            "total_in": snapshot["total_in"],
            "total_out": snapshot["total_out"],
            "car_in": snapshot.get("car_in", 0),
            "car_out": snapshot.get("car_out", 0),
        },
    }]


def check_total_traffic(snapshot: Dict) -> List[Dict]:
    total = snapshot["total_in"] + snapshot["total_out"]
    if not total > TOTAL_TRAFFIC_THRESHOLD:
        return []

    return [{
        "detected_at": snapshot["snapshot_time"],
        "camera_id": snapshot["camera_id"],
        "anomaly_type": "high_traffic",
        "severity": classify_severity(total, TOTAL_TRAFFIC_HIGH_SEVERITY),
        "reference_period": snapshot["snapshot_time"],
        "metric_name": "total_vehicles",
        "metric_value": total,
        "threshold_value": TOTAL_TRAFFIC_THRESHOLD,
        "deviation_percentage": deviation_percentage(total, TOTAL_TRAFFIC_THRESHOLD),
        "metadata": None,
    }]


def detect_anomalies(snapshot: Dict) -> List[Dict]:
    """
    Evaluate one LiveSnapshot against both thresholds

    Args:
        snapshot: LiveSnapshot document (needs total_in, total_out, snapshot_time, camera_id)

    Returns:
        Zero, one or two Anomaly documents
    """
    return check_net_flow(snapshot) + check_total_traffic(snapshot)


def detect_batch(snapshots: Iterable[Dict]) -> List[Dict]:
    """Anomalies for every snapshot of an ingestion batch, in snapshot order"""
    anomalies = []
    for snapshot in snapshots:
        anomalies.extend(detect_anomalies(snapshot))
    if anomalies:
        logger.info(f"Detected {len(anomalies)} anomalies")
    return anomalies
