"""
Live Ingestion Agent
Pulls the latest 5-minute counts per camera, stores them as live snapshots
and flags anomalies on the fresh snapshots
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional
from traffic_monitor.config import settings
from traffic_monitor.clients.traffic_mx import TrafficMXClient, normalize_live_counts
from traffic_monitor.errors import StorageError
from traffic_monitor.models.mongodb_models import (
    LIVE_SNAPSHOTS,
    ANOMALIES,
    CAMERA_METADATA,
    LIVE_SNAPSHOT_KEY,
    CAMERA_METADATA_KEY,
)
from traffic_monitor.repositories.base import TrafficRepository
from traffic_monitor.repositories.keys import dedupe_by_key
from traffic_monitor.result import Err, capture
from traffic_monitor.services.anomaly_detection import detect_batch
from traffic_monitor.services.audit_log import FetchAuditLog, InvocationTimer
from traffic_monitor.services.side_effects import best_effort
from traffic_monitor.agents.common import JobOutcome, utc_now

logger = logging.getLogger(__name__)


class LiveIngestionAgent:
    """Agent responsible for live snapshot ingestion and anomaly detection"""

    def __init__(
        self,
        repository: TrafficRepository,
        client: Optional[TrafficMXClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.client = client or TrafficMXClient()
        self.clock = clock
        self.audit = FetchAuditLog(repository)
        self.endpoint = settings.live_counts_path

    async def run(self, now: Optional[datetime] = None) -> JobOutcome:
        """
        Fetch, upsert and evaluate one batch of live counts

        Args:
            now: Invocation time (defaults to the agent's clock)

        Returns:
            JobOutcome; exactly one fetch log entry is written either way
        """
        timer = InvocationTimer()
        fetch_time = now or self.clock()

        try:
            return await self._ingest(fetch_time, timer)
        except Exception as e:
            logger.error(f"Error in live ingestion: {e}", exc_info=True)
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(e),
                error_details={"error": repr(e)},
            )
            return JobOutcome.failed("Internal server error", str(e))

    async def _ingest(self, fetch_time: datetime, timer: InvocationTimer) -> JobOutcome:
        fetched = await self.client.fetch_live_counts()
        if isinstance(fetched, Err):
            upstream_error = fetched.error
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(upstream_error),
                error_details=upstream_error.to_details(),
            )
            return JobOutcome.failed(
                "Upstream API error", str(upstream_error), upstream_status=upstream_error.status_code
            )

        items = fetched.value
        batch = normalize_live_counts(items, fetch_time)

        if not batch.records:
            await self.audit.success(
                self.endpoint, fetch_time, timer,
                records_fetched=len(items),
                records_failed=batch.rejected,
            )
            return JobOutcome.completed({
                "message": "No live data available from API",
                "inserted": 0,
                "records_fetched": len(items),
                "records_rejected": batch.rejected,
                "timestamp": fetch_time.isoformat(),
                "response_time_ms": timer.elapsed_ms(),
            })

        cameras = self._camera_updates(batch.records, fetch_time)
        await best_effort(
            "camera metadata refresh",
            lambda: self.repository.upsert(CAMERA_METADATA, cameras, CAMERA_METADATA_KEY),
        )

        snapshots = dedupe_by_key(
            [{k: v for k, v in record.items() if k != "camera_name"} for record in batch.records],
            LIVE_SNAPSHOT_KEY,
        )
        stored = await capture(
            lambda: self.repository.upsert(LIVE_SNAPSHOTS, snapshots, LIVE_SNAPSHOT_KEY),
            StorageError,
        )
        if isinstance(stored, Err):
            logger.error(f"Storage error writing live snapshots: {stored.error}")
            await self.audit.error(
                self.endpoint, fetch_time, timer,
                error_message=str(stored.error),
                error_details={"error": str(stored.error)},
                records_fetched=len(items),
                records_failed=len(snapshots) + batch.rejected,
            )
            return JobOutcome.failed("Database error", str(stored.error))

        written = stored.value
        await self.audit.success(
            self.endpoint, fetch_time, timer,
            records_fetched=len(items),
            records_inserted=written.inserted,
            records_updated=written.updated,
            records_failed=batch.rejected,
        )

        # Detection runs after the snapshot commit and never rolls it back
        anomalies = detect_batch(snapshots)
        if anomalies:
            await best_effort("anomaly insert", lambda: self.repository.insert(ANOMALIES, anomalies))

        logger.info(
            f"Live ingestion complete: {len(snapshots)} snapshots, "
            f"{len(anomalies)} anomalies, {batch.rejected} rejected"
        )
        return JobOutcome.completed({
            "message": "Live data fetched and stored successfully",
            "records_fetched": len(items),
            "snapshots_inserted": written.inserted,
            "snapshots_updated": written.updated,
            "records_rejected": batch.rejected,
            "cameras_updated": len(cameras),
            "anomalies_detected": len(anomalies),
            "timestamp": fetch_time.isoformat(),
            "response_time_ms": timer.elapsed_ms(),
        })

    def _camera_updates(self, records: List[Dict], fetch_time: datetime) -> List[Dict]:
        """One metadata row per camera, latest name wins"""
        cameras: Dict[str, Dict] = {}
        for record in records:
            cameras[record["camera_id"]] = {
                "camera_id": record["camera_id"],
                "camera_name": record.get("camera_name"),
                "is_active": True,
                "updated_at": fetch_time,
            }
        return list(cameras.values())
