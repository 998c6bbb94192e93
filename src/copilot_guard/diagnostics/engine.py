"""Diagnostics engine: snapshot capture and heuristic failure analysis.

Capture reads a workflow instance from the execution store and assembles an
immutable DiagnosticSnapshot. Analysis is a pure function of a snapshot that
classifies the earliest incident by substring patterns in its exception
detail, in fixed priority order:

    timeout > connection/network > null > generic
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from loguru import logger

from ..audit import AuditLogger
from ..config import Config
from ..errors import InstanceNotFoundError, SnapshotCaptureError
from .models import DiagnosticAnalysis, DiagnosticIncident, DiagnosticSnapshot
from .store import WorkflowInstance, WorkflowInstanceStore, to_utc

NO_INCIDENTS_ROOT_CAUSE = "No incidents found. The workflow may have been cancelled or stopped."
NO_INCIDENTS_ACTION = "Review workflow execution logs to understand why the workflow stopped"
CHAT_FOLLOWUP_ACTION = "Use the assistant chat to get detailed analysis and recommendations"

# (category, substrings, root cause template, category actions)
FAILURE_PATTERNS: tuple[tuple[str, tuple[str, ...], str, tuple[str, ...]], ...] = (
    (
        "timeout",
        ("timeout",),
        "Timeout error in activity '{activity_type}' (ID: {activity_id})",
        (
            "Increase timeout settings for the activity",
            "Check if the target service is responding",
        ),
    ),
    (
        "network",
        ("connection", "network"),
        "Network/connection error in activity '{activity_type}' (ID: {activity_id})",
        (
            "Verify network connectivity to the target service",
            "Check connection string or endpoint configuration",
        ),
    ),
    (
        "null_reference",
        ("null",),
        "Null reference error in activity '{activity_type}' (ID: {activity_id})",
        (
            "Ensure all required variables are initialized before this activity",
            "Add null checks or default values",
        ),
    ),
)

GENERIC_ROOT_CAUSE = "Error in activity '{activity_type}' (ID: {activity_id}): {message}"


def serialize_exception(exception: Any) -> Optional[str]:
    """Serialize raw exception state to a string for diagnostics."""
    if exception is None:
        return None
    if isinstance(exception, str):
        return exception
    try:
        return json.dumps(exception, indent=2, default=str)
    except (TypeError, ValueError):
        return str(exception)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def primary_incident(snapshot: DiagnosticSnapshot) -> Optional[DiagnosticIncident]:
    """Earliest incident by timestamp (naive taken as UTC); ties keep store order."""
    if not snapshot.incidents:
        return None
    return min(snapshot.incidents, key=lambda incident: to_utc(incident.timestamp))


def classify_incident(incident: DiagnosticIncident) -> Optional[str]:
    """Return the failure category of an incident, or None for generic errors."""
    detail = (incident.exception or "").lower()
    for category, needles, _, _ in FAILURE_PATTERNS:
        if any(needle in detail for needle in needles):
            return category
    return None


def analyze_snapshot(snapshot: DiagnosticSnapshot) -> DiagnosticAnalysis:
    """
    Classify a snapshot and suggest remediation.

    Pure and deterministic: no I/O, no dependence on wall-clock time.
    """
    incident = primary_incident(snapshot)
    if incident is None:
        return DiagnosticAnalysis(
            instance_id=snapshot.instance_id,
            root_cause=NO_INCIDENTS_ROOT_CAUSE,
            suggested_actions=[NO_INCIDENTS_ACTION],
        )

    fields = {
        "activity_type": incident.activity_type,
        "activity_id": incident.activity_id,
        "message": incident.message,
    }
    actions = [
        "Review the configuration of activity '{activity_type}' (ID: {activity_id})".format(
            **fields
        ),
        "Check if all required inputs and variables are properly set",
    ]

    category = classify_incident(incident)
    root_cause = GENERIC_ROOT_CAUSE.format(**fields)
    for name, _, template, category_actions in FAILURE_PATTERNS:
        if name == category:
            root_cause = template.format(**fields)
            actions.extend(category_actions)
            break

    actions.append(CHAT_FOLLOWUP_ACTION)

    return DiagnosticAnalysis(
        instance_id=snapshot.instance_id,
        root_cause=root_cause,
        suggested_actions=actions,
    )


class DiagnosticsEngine:
    """
    Builds diagnostic snapshots of workflow executions and analyzes them.

    Stateless per call; the store is the only I/O collaborator.
    """

    def __init__(
        self,
        store: WorkflowInstanceStore,
        audit: Optional[AuditLogger] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._audit = audit
        self._timeout = timeout_seconds or Config.SNAPSHOT_TIMEOUT_SECONDS
        self._clock = clock

    async def capture_snapshot(self, instance_id: str) -> DiagnosticSnapshot:
        """
        Capture a snapshot of a workflow instance.

        Raises:
            InstanceNotFoundError: If the instance does not exist
            SnapshotCaptureError: If the store read times out
            asyncio.CancelledError: If the caller cancels; no snapshot is produced
        """
        try:
            instance = await asyncio.wait_for(self._store.find(instance_id), self._timeout)
        except asyncio.TimeoutError as e:
            logger.error(
                f"Snapshot capture for '{instance_id}' timed out after {self._timeout}s"
            )
            self._record_failure(instance_id, "store read timed out")
            raise SnapshotCaptureError(instance_id, "store read timed out", e) from e
        except asyncio.CancelledError:
            logger.info(f"Snapshot capture for '{instance_id}' cancelled")
            raise
        except Exception as e:
            logger.error(f"Snapshot capture for '{instance_id}' failed: {e}")
            self._record_failure(instance_id, type(e).__name__)
            raise

        if instance is None:
            logger.warning(f"Workflow instance '{instance_id}' not found")
            self._record_failure(instance_id, "not found")
            raise InstanceNotFoundError(instance_id)

        snapshot = self._build_snapshot(instance)
        logger.info(
            f"Captured diagnostic snapshot for '{instance_id}' "
            f"(status={snapshot.status}, incidents={len(snapshot.incidents)})"
        )
        if self._audit is not None:
            self._audit.log_snapshot(
                instance_id, captured=True, incident_count=len(snapshot.incidents)
            )
        return snapshot

    def _build_snapshot(self, instance: WorkflowInstance) -> DiagnosticSnapshot:
        incidents = tuple(
            DiagnosticIncident(
                activity_id=incident.activity_id,
                activity_type=incident.activity_type,
                message=incident.message,
                exception=serialize_exception(incident.exception),
                timestamp=to_utc(incident.timestamp),
            )
            for incident in instance.incidents
        )
        return DiagnosticSnapshot(
            instance_id=instance.id,
            definition_id=instance.definition_id,
            definition_version=instance.version,
            status=instance.status,
            # Capture time: the store does not always retain the failure instant
            failure_timestamp=self._clock(),
            incidents=incidents,
            execution_history=tuple(instance.execution_history),
            variables=dict(instance.variables),
            properties={
                "correlationId": instance.correlation_id,
                "createdAt": instance.created_at,
                "updatedAt": instance.updated_at,
                "finishedAt": instance.finished_at,
            },
        )

    def analyze(self, snapshot: DiagnosticSnapshot) -> DiagnosticAnalysis:
        """Heuristic root-cause analysis (pure, see analyze_snapshot)."""
        return analyze_snapshot(snapshot)

    def _record_failure(self, instance_id: str, error: str) -> None:
        if self._audit is not None:
            self._audit.log_snapshot(instance_id, captured=False, error=error)
