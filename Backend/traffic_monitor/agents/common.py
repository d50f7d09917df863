"""
Shared pieces of the ingestion/aggregation agents
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobOutcome:
    """Final word of one job invocation, rendered by the HTTP layer"""
    success: bool
    status_code: int = 200
    body: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def completed(cls, body: Dict[str, Any]) -> "JobOutcome":
        return cls(success=True, status_code=200, body=body)

    @classmethod
    def failed(
        cls,
        error: str,
        details: str,
        status_code: int = 500,
        upstream_status: Optional[int] = None,
    ) -> "JobOutcome":
        body: Dict[str, Any] = {"error": error, "details": details}
        if upstream_status is not None:
            body["upstream_status"] = upstream_status
        return cls(success=False, status_code=status_code, body=body)
