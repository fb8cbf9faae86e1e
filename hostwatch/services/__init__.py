"""
Core services for the application.

This package contains the main service implementations: threshold
evaluation, deduplication, alert history, telemetry collection and the
per-session monitoring pipeline.
"""

from .alert_monitor import AlertMonitor, CycleResult, SessionState
from .alert_query import AlertQueryService, HistoryView
from .deduplicator import dedup_key, reconcile
from .evaluator import ThresholdEvaluator, evaluate
from .history_store import MAX_HISTORY, HistoryStore, JsonFileHistoryBackend
from .probe_parser import parse_security_probe
from .telemetry_collector import (
    Result,
    TelemetryCollector,
    TelemetryCollectorConfig,
    TelemetrySource,
)

__all__ = [
    "AlertMonitor",
    "AlertQueryService",
    "CycleResult",
    "HistoryStore",
    "HistoryView",
    "JsonFileHistoryBackend",
    "MAX_HISTORY",
    "Result",
    "SessionState",
    "TelemetryCollector",
    "TelemetryCollectorConfig",
    "TelemetrySource",
    "ThresholdEvaluator",
    "dedup_key",
    "evaluate",
    "parse_security_probe",
    "reconcile",
]
