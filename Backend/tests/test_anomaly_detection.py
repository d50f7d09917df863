"""Unit tests for threshold-based anomaly detection.

Tests cover:
- Net flow check (congestion / unusual_pattern) and its severity cut-off
- Total traffic check (high_traffic) and its severity cut-off
- Strict threshold comparisons
- Batch evaluation order
"""

from datetime import datetime, timezone

import pytest

from traffic_monitor.services.anomaly_detection import (
    NET_FLOW_THRESHOLD,
    TOTAL_TRAFFIC_THRESHOLD,
    classify_severity,
    detect_anomalies,
    detect_batch,
    deviation_percentage,
)

SNAPSHOT_TIME = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


def snapshot(total_in: int, total_out: int, camera_id: str = "cam_01", **extra) -> dict:
    return {
        "snapshot_time": SNAPSHOT_TIME,
        "camera_id": camera_id,
        "total_in": total_in,
        "total_out": total_out,
        **extra,
    }


class TestNetFlow:
    """Net flow anomalies."""

    def test_positive_net_flow_is_congestion(self) -> None:
        """50 in / 10 out is one medium congestion anomaly at 33.33% deviation."""
        anomalies = detect_anomalies(snapshot(50, 10, car_in=50, car_out=10))

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly["anomaly_type"] == "congestion"
        assert anomaly["severity"] == "medium"
        assert anomaly["metric_name"] == "net_flow"
        assert anomaly["metric_value"] == 40
        assert anomaly["threshold_value"] == NET_FLOW_THRESHOLD
        assert anomaly["deviation_percentage"] == pytest.approx(33.33, abs=0.01)
        assert anomaly["metadata"] == {"total_in": 50, "total_out": 10, "car_in": 50, "car_out": 10}
        assert anomaly["detected_at"] == SNAPSHOT_TIME
        assert anomaly["reference_period"] == SNAPSHOT_TIME

    def test_negative_net_flow_is_unusual_pattern(self) -> None:
        """More vehicles leaving than entering is an unusual pattern."""
        anomalies = detect_anomalies(snapshot(5, 45))

        assert [a["anomaly_type"] for a in anomalies] == ["unusual_pattern"]
        assert anomalies[0]["metric_value"] == -40
        assert anomalies[0]["deviation_percentage"] == pytest.approx(33.33, abs=0.01)

    def test_net_flow_equal_to_threshold_does_not_trigger(self) -> None:
        """abs(net_flow) must be strictly greater than 30."""
        assert detect_anomalies(snapshot(30, 0)) == []

    def test_net_flow_just_over_threshold_triggers(self) -> None:
        """31 is the first triggering net flow."""
        assert len(detect_anomalies(snapshot(31, 0))) == 1

    def test_net_flow_severity_boundary(self) -> None:
        """50 stays medium, 51 is high."""
        assert detect_anomalies(snapshot(50, 0))[0]["severity"] == "medium"
        assert detect_anomalies(snapshot(51, 0))[0]["severity"] == "high"


class TestTotalTraffic:
    """High traffic anomalies."""

    def test_total_equal_to_threshold_does_not_trigger(self) -> None:
        """A total of exactly 100 is not high traffic."""
        assert detect_anomalies(snapshot(50, 50)) == []

    def test_total_over_threshold_is_high_traffic(self) -> None:
        """110 vehicles is medium high_traffic at 10% deviation, without metadata."""
        anomalies = detect_anomalies(snapshot(55, 55))

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly["anomaly_type"] == "high_traffic"
        assert anomaly["severity"] == "medium"
        assert anomaly["metric_name"] == "total_vehicles"
        assert anomaly["metric_value"] == 110
        assert anomaly["threshold_value"] == TOTAL_TRAFFIC_THRESHOLD
        assert anomaly["deviation_percentage"] == pytest.approx(10.0)
        assert anomaly["metadata"] is None

    def test_total_severity_boundary(self) -> None:
        """150 stays medium, 151 is high."""
        assert detect_anomalies(snapshot(75, 75))[0]["severity"] == "medium"
        assert detect_anomalies(snapshot(76, 75))[0]["severity"] == "high"


class TestCombinedChecks:
    """Both checks run independently on the same snapshot."""

    def test_quiet_snapshot_has_no_anomalies(self) -> None:
        """15 in / 15 out trips neither check."""
        assert detect_anomalies(snapshot(15, 15)) == []

    def test_small_totals_have_no_anomalies(self) -> None:
        """20 in / 10 out: net flow 10, total 30."""
        assert detect_anomalies(snapshot(20, 10)) == []

    def test_snapshot_can_emit_both_anomalies(self) -> None:
        """80 in / 30 out crosses both thresholds."""
        anomalies = detect_anomalies(snapshot(80, 30))

        assert [a["anomaly_type"] for a in anomalies] == ["congestion", "high_traffic"]
        high_traffic = anomalies[1]
        assert high_traffic["severity"] == "medium"
        assert high_traffic["deviation_percentage"] == pytest.approx(10.0)

    def test_both_high_severity(self) -> None:
        """Large inbound surge: both anomalies high severity."""
        anomalies = detect_anomalies(snapshot(180, 10))

        assert {a["severity"] for a in anomalies} == {"high"}


class TestHelpers:
    """Severity and deviation helpers."""

    def test_classify_severity(self) -> None:
        assert classify_severity(50, 50) == "medium"
        assert classify_severity(50.5, 50) == "high"

    def test_deviation_percentage(self) -> None:
        assert deviation_percentage(130, 100) == pytest.approx(30.0)
        assert deviation_percentage(45, 30) == pytest.approx(50.0)


class TestDetectBatch:
    """Batch detection keeps snapshot order."""

    def test_batch_order(self) -> None:
        anomalies = detect_batch([
            snapshot(15, 15, camera_id="quiet"),
            snapshot(5, 45, camera_id="b"),
            snapshot(80, 30, camera_id="a"),
        ])

        assert [(a["camera_id"], a["anomaly_type"]) for a in anomalies] == [
            ("b", "unusual_pattern"),
            ("a", "congestion"),
            ("a", "high_traffic"),
        ]

    def test_empty_batch(self) -> None:
        assert detect_batch([]) == []
