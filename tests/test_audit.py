"""Tests for the guardrail audit trail."""

import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from copilot_guard import audit as audit_module
from copilot_guard.audit import MAX_CONTENT_LENGTH, AuditEvent, AuditLogger, get_audit_logger
from copilot_guard.governance import AuthorizationContext, AuthorizationGate
from copilot_guard.safety import (
    SafetyGate,
    ToolExecutionContext,
    ToolExecutionResult,
    default_rules,
)


def _records(logger):
    return [json.loads(line) for line in logger.log_path.read_text().splitlines()]


def test_audit_record_shape(audit_logger):
    audit_logger.log_safety_verdict(
        AuditEvent.OUTPUT_REJECTED,
        tool_name="get_workflow_instance_errors",
        tenant_id="tenant-a",
        user_id="u1",
        rule_name="PII Scrubbing",
        message="blocked",
    )

    record = _records(audit_logger)[0]
    assert record["event"] == "output_rejected"
    assert record["tenant_id"] == "tenant-a"
    assert record["user_id"] == "u1"
    assert record["rule_name"] == "PII Scrubbing"
    assert datetime.fromisoformat(record["timestamp"]).tzinfo is not None


def test_long_content_truncated(audit_logger):
    audit_logger.log(AuditEvent.SNAPSHOT_FAILED, details={"error": "x" * 5000})

    error = _records(audit_logger)[0]["details"]["error"]
    assert error.startswith("x" * MAX_CONTENT_LENGTH)
    assert error.endswith("[truncated, 5000 total chars]")


def test_snapshot_events(audit_logger):
    audit_logger.log_snapshot("wf-1", captured=True, incident_count=2)
    audit_logger.log_snapshot("wf-2", captured=False, error="not found")

    first, second = _records(audit_logger)
    assert first["event"] == "snapshot_captured"
    assert first["incident_count"] == 2
    assert second["event"] == "snapshot_failed"
    assert second["instance_id"] == "wf-2"
    assert second["error"] == "not found"


def test_audit_log_rotation_and_cleanup(tmp_path, monkeypatch):
    """Ensure audit logs rotate by size and cleanup respects retention days."""
    log_file = tmp_path / "audit.jsonl"
    rotation_bytes = 50
    retention_days = 1

    monkeypatch.setattr(audit_module, "AUDIT_ROTATION_BYTES", rotation_bytes)
    monkeypatch.setattr(audit_module, "AUDIT_RETENTION_DAYS", retention_days)

    logger = AuditLogger(str(log_file))

    # Seed log file with data to trigger rotation on next write.
    log_file.write_text("x" * (rotation_bytes + 1))
    logger.log_authorization("tenant-a", "u1", "ai:read", authorized=True)

    rotated_files = list(tmp_path.glob("audit.jsonl.*"))
    assert rotated_files, "Expected rotated audit log file to be created."
    assert log_file.exists(), "Expected new audit log file after rotation."

    old_file = tmp_path / "audit.jsonl.20000101000000"
    old_file.write_text("old log")
    old_timestamp = (datetime.now(timezone.utc) - timedelta(days=retention_days + 1)).timestamp()
    os.utime(old_file, (old_timestamp, old_timestamp))

    logger._cleanup_old_logs()
    assert not old_file.exists(), "Expected old audit log file to be cleaned up."


def test_get_audit_logger_respects_config(tmp_path, monkeypatch):
    monkeypatch.setattr(audit_module.Config, "AUDIT_LOG_PATH", str(tmp_path / "a.jsonl"))

    monkeypatch.setattr(audit_module.Config, "AUDIT_ENABLED", False)
    assert get_audit_logger() is None

    monkeypatch.setattr(audit_module.Config, "AUDIT_ENABLED", True)
    assert get_audit_logger().log_path == tmp_path / "a.jsonl"


def test_unwritable_audit_path_does_not_break_decisions(tmp_path):
    """Audit write failures are logged; gates still return their decision."""
    log_dir = tmp_path / "audit.jsonl"
    log_dir.mkdir()
    logger = AuditLogger(str(log_dir))

    gate = AuthorizationGate(audit=logger)
    decision = gate.authorize(
        AuthorizationContext(tenant_id="", user_id="u1", required_scope="ai:read")
    )
    assert decision.denial_reason == "No tenant context provided"

    context = ToolExecutionContext("get_workflow_instance_state", {}, "tenant-a", "u1")
    verdict = SafetyGate(default_rules(), audit=logger).validate_output(
        context, ToolExecutionResult(output="mail jane@example.com")
    )
    assert verdict.sanitized_data == "mail [EMAIL-REDACTED]"


@pytest.mark.asyncio
async def test_unwritable_audit_path_does_not_break_ownership(tmp_path):
    log_dir = tmp_path / "audit.jsonl"
    log_dir.mkdir()
    gate = AuthorizationGate(audit=AuditLogger(str(log_dir)))

    assert await gate.validate_tenant_ownership("tenant-a", "wf-1", "WorkflowInstance") is False
