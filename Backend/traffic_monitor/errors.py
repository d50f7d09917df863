"""
Error taxonomy for ingestion and aggregation jobs
"""
from typing import Optional


class TrafficMonitorError(Exception):
    """Base class for errors raised by the traffic monitor core"""


class UpstreamError(TrafficMonitorError):
    """Non-OK HTTP status or network failure contacting the camera API"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def to_details(self) -> dict:
        return {"error": str(self), "status_code": self.status_code}


class StorageError(TrafficMonitorError):
    """Any failure from the persistence layer (query, upsert, insert)"""


class RefreshWarning(TrafficMonitorError):
    """Failure of a best-effort side effect; logged, never escalated"""

    def __init__(self, effect: str, cause: BaseException):
        super().__init__(f"{effect} failed: {cause}")
        self.effect = effect
        self.cause = cause
