"""Failure diagnostics for workflow executions."""

from .engine import (
    DiagnosticsEngine,
    analyze_snapshot,
    classify_incident,
    primary_incident,
    serialize_exception,
)
from .models import (
    ActivityExecutionEntry,
    DiagnosticAnalysis,
    DiagnosticIncident,
    DiagnosticSnapshot,
)
from .store import (
    IncidentRecord,
    InMemoryInstanceStore,
    RedisInstanceStore,
    WorkflowInstance,
    WorkflowInstanceStore,
)

__all__ = [
    "DiagnosticsEngine",
    "analyze_snapshot",
    "classify_incident",
    "primary_incident",
    "serialize_exception",
    "ActivityExecutionEntry",
    "DiagnosticAnalysis",
    "DiagnosticIncident",
    "DiagnosticSnapshot",
    "IncidentRecord",
    "InMemoryInstanceStore",
    "RedisInstanceStore",
    "WorkflowInstance",
    "WorkflowInstanceStore",
]
