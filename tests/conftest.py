"""Pytest fixtures and test utilities for the guardrail test suite."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from copilot_guard.audit import AuditLogger
from copilot_guard.definitions import InMemoryDefinitionStore, WorkflowDefinition
from copilot_guard.diagnostics import (
    DiagnosticsEngine,
    IncidentRecord,
    InMemoryInstanceStore,
    WorkflowInstance,
)
from copilot_guard.governance import AuthorizationGate, StoreTenancySource
from copilot_guard.pipeline import GuardedToolPipeline
from copilot_guard.safety import (
    SafetyGate,
    SafetyRule,
    SafetyVerdict,
    default_rules,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# RULE INSTRUMENTATION
# ============================================================================


class CountingRule(SafetyRule):
    """Rule returning fixed verdicts and counting invocations."""

    def __init__(
        self,
        name: str,
        input_verdict: Optional[SafetyVerdict] = None,
        output_verdict: Optional[SafetyVerdict] = None,
    ):
        self.name = name
        self.input_verdict = input_verdict or SafetyVerdict.valid()
        self.output_verdict = output_verdict or SafetyVerdict.valid()
        self.input_calls = 0
        self.output_calls = 0
        self.seen_outputs: list[Any] = []
        self.seen_parameters: list[dict[str, Any]] = []

    def validate_input(self, context):
        self.input_calls += 1
        self.seen_parameters.append(dict(context.input_parameters))
        return self.input_verdict

    def validate_output(self, context, result):
        self.output_calls += 1
        self.seen_outputs.append(result.output)
        return self.output_verdict


class ExplodingRule(SafetyRule):
    """Rule whose every evaluation raises."""

    name = "Exploding"

    def validate_input(self, context):
        raise RuntimeError("connection string Server=db;Password=hunter2")

    def validate_output(self, context, result):
        raise RuntimeError("boom")


# ============================================================================
# WORKFLOW INSTANCE FIXTURES
# ============================================================================


def make_instance(
    instance_id: str = "wf-1",
    tenant_id: Optional[str] = "tenant-a",
    incidents: Optional[list[IncidentRecord]] = None,
    **overrides,
) -> WorkflowInstance:
    """Build a faulted workflow instance with sensible defaults."""
    values = dict(
        id=instance_id,
        definition_id="order-processing",
        version=3,
        status="Faulted",
        tenant_id=tenant_id,
        sub_status="Faulted",
        correlation_id="corr-42",
        created_at=BASE_TIME,
        updated_at=BASE_TIME + timedelta(minutes=5),
        finished_at=BASE_TIME + timedelta(minutes=5),
        incidents=incidents if incidents is not None else [],
        variables={"orderId": 1001, "customerEmail": "jane@example.com"},
    )
    values.update(overrides)
    return WorkflowInstance(**values)


def make_incident(
    exception: Any,
    offset_seconds: int = 0,
    activity_id: str = "act-1",
    activity_type: str = "HttpRequest",
    message: str = "Activity faulted",
) -> IncidentRecord:
    return IncidentRecord(
        activity_id=activity_id,
        activity_type=activity_type,
        message=message,
        timestamp=BASE_TIME + timedelta(seconds=offset_seconds),
        exception=exception,
    )


def make_definition(
    definition_id: str = "order-processing",
    version: int = 1,
    tenant_id: Optional[str] = "tenant-a",
    is_published: bool = True,
    **overrides,
) -> WorkflowDefinition:
    """Build a stored definition version with sensible defaults."""
    values = dict(
        id=f"{definition_id}-v{version}",
        definition_id=definition_id,
        version=version,
        name="Order Processing",
        description="Handles incoming orders",
        is_published=is_published,
        is_latest=True,
        created_at=BASE_TIME,
        materializer="Json",
        string_data='{"root": {"type": "Elsa.Flowchart"}}',
        tenant_id=tenant_id,
    )
    values.update(overrides)
    return WorkflowDefinition(**values)


@pytest.fixture
def instance_store():
    """In-memory store seeded with a faulted instance per tenant."""
    return InMemoryInstanceStore(
        [
            make_instance(
                "wf-1",
                "tenant-a",
                incidents=[make_incident({"type": "TimeoutException", "message": "Request timeout"})],
            ),
            make_instance("wf-2", "tenant-b"),
        ]
    )


# ============================================================================
# COMPONENT FIXTURES
# ============================================================================


@pytest.fixture
def audit_logger(tmp_path):
    """Audit logger writing to a temporary file."""
    return AuditLogger(str(tmp_path / "audit.jsonl"))


@pytest.fixture
def definition_store():
    """In-memory definition store with one published definition per tenant."""
    return InMemoryDefinitionStore(
        [
            make_definition("order-processing", 1),
            make_definition("order-processing", 2),
            make_definition("order-processing", 3, is_published=False),
            make_definition("payroll", 1, tenant_id="tenant-b"),
        ]
    )


@pytest.fixture
def authorization_gate(instance_store, definition_store, audit_logger):
    return AuthorizationGate(
        tenancy=StoreTenancySource(instance_store, definition_store), audit=audit_logger
    )


@pytest.fixture
def safety_gate(audit_logger):
    return SafetyGate(default_rules(), audit=audit_logger)


@pytest.fixture
def diagnostics_engine(instance_store, audit_logger):
    return DiagnosticsEngine(instance_store, audit=audit_logger, timeout_seconds=1.0)


@pytest.fixture
def pipeline(authorization_gate, safety_gate):
    return GuardedToolPipeline(authorization_gate, safety_gate)
