"""
Scheduler gate deciding which ingestion/aggregation jobs run on a tick
"""

from traffic_monitor.orchestrator.scheduler_gate import SchedulerGate

__all__ = ["SchedulerGate"]
