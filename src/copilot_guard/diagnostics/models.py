"""Diagnostic snapshot and analysis models."""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class DiagnosticIncident:
    """One recorded error within a workflow execution."""

    activity_id: str
    activity_type: str
    message: str
    timestamp: datetime
    exception: Optional[str] = None  # Serialized exception detail

    def to_dict(self) -> dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "activityType": self.activity_type,
            "message": self.message,
            "exception": self.exception,
            "timestamp": _iso(self.timestamp),
        }


@dataclass(frozen=True)
class ActivityExecutionEntry:
    """A single activity execution in the workflow timeline."""

    activity_id: str
    activity_type: str
    status: str  # "Completed", "Faulted", "Cancelled"
    activity_name: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "activityType": self.activity_type,
            "activityName": self.activity_name,
            "status": self.status,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
        }


@dataclass(frozen=True)
class DiagnosticSnapshot:
    """
    Point-in-time capture of a failed workflow execution.

    Invariants:
    - incidents keep the store's order; analysis selects the earliest by timestamp
    - failure_timestamp is the capture time, not the original failure instant
    - never mutated after construction (use with_analysis() for a copy);
      variables and properties are deep-copied into read-only mappings
    """

    instance_id: str
    definition_id: str
    definition_version: int
    status: str
    failure_timestamp: datetime
    incidents: tuple[DiagnosticIncident, ...] = ()
    execution_history: tuple[ActivityExecutionEntry, ...] = ()
    variables: Mapping[str, Any] = field(default_factory=dict)
    properties: Mapping[str, Any] = field(default_factory=dict)
    root_cause_analysis: Optional[str] = None
    suggested_actions: tuple[str, ...] = ()

    def __post_init__(self):
        # Detach from the store's state and freeze the top-level maps
        for name in ("variables", "properties"):
            value = copy.deepcopy(dict(getattr(self, name)))
            object.__setattr__(self, name, MappingProxyType(value))
        object.__setattr__(self, "incidents", tuple(self.incidents))
        object.__setattr__(self, "execution_history", tuple(self.execution_history))

    def with_analysis(self, analysis: "DiagnosticAnalysis") -> "DiagnosticSnapshot":
        """Return a copy carrying the analysis root cause and suggested actions."""
        return replace(
            self,
            root_cause_analysis=analysis.root_cause,
            suggested_actions=tuple(analysis.suggested_actions),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "instanceId": self.instance_id,
            "definitionId": self.definition_id,
            "definitionVersion": self.definition_version,
            "status": self.status,
            "failureTimestamp": _iso(self.failure_timestamp),
            "incidents": [incident.to_dict() for incident in self.incidents],
            "executionHistory": [entry.to_dict() for entry in self.execution_history],
            "variables": _jsonable(self.variables),
            "properties": _jsonable(self.properties),
            "rootCauseAnalysis": self.root_cause_analysis,
            "suggestedActions": list(self.suggested_actions),
        }


@dataclass(frozen=True)
class DiagnosticAnalysis:
    """Heuristic root-cause classification of a snapshot."""

    instance_id: str
    root_cause: str
    suggested_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "instanceId": self.instance_id,
            "rootCause": self.root_cause,
            "suggestedActions": list(self.suggested_actions),
        }
