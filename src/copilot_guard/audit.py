"""Structured JSON audit trail for guardrail decisions."""

import json
import os
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .config import Config

# Constants
AUDIT_RETENTION_DAYS = int(os.getenv("AUDIT_RETENTION_DAYS", "30"))
AUDIT_ROTATION_BYTES = int(os.getenv("AUDIT_ROTATION_BYTES", str(10 * 1024 * 1024)))
MAX_CONTENT_LENGTH = 1000  # Truncate large content to prevent log bloat


class AuditEvent(str, Enum):
    """Audit event types for guardrail decisions."""

    AUTHORIZATION_GRANTED = "authorization_granted"
    AUTHORIZATION_DENIED = "authorization_denied"
    OWNERSHIP_DENIED = "ownership_denied"
    INPUT_REJECTED = "input_rejected"
    OUTPUT_REJECTED = "output_rejected"
    OUTPUT_SANITIZED = "output_sanitized"
    SNAPSHOT_CAPTURED = "snapshot_captured"
    SNAPSHOT_FAILED = "snapshot_failed"


class AuditLogger:
    """
    Structured JSON audit logger for guardrail decisions.

    Features:
    - JSON Lines format (one JSON object per line)
    - ISO 8601 UTC timestamps
    - Automatic content truncation
    - Size-based rotation with timestamped backups
    - Retention cleanup based on AUDIT_RETENTION_DAYS
    """

    def __init__(self, log_path: Optional[str] = None):
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file (defaults to Config.AUDIT_LOG_PATH)
        """
        self.log_path = Path(log_path or Config.AUDIT_LOG_PATH)
        self.retention_days = AUDIT_RETENTION_DAYS
        self.rotation_bytes = AUDIT_ROTATION_BYTES
        self._last_cleanup: Optional[datetime] = None
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._cleanup_old_logs()

    def _rotate_if_needed(self) -> None:
        """Rotate the audit log if it exceeds the configured size."""
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size < self.rotation_bytes:
            return

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        rotated_path = self.log_path.with_name(f"{self.log_path.name}.{timestamp}")
        counter = 1
        while rotated_path.exists():
            rotated_path = self.log_path.with_name(
                f"{self.log_path.name}.{timestamp}.{counter}"
            )
            counter += 1
        self.log_path.replace(rotated_path)

    def _cleanup_old_logs(self) -> None:
        """Remove audit log files older than the retention window."""
        if self.retention_days <= 0:
            return
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        for path in self.log_path.parent.glob(f"{self.log_path.name}*"):
            if not path.is_file():
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
            if modified < cutoff:
                path.unlink()
        self._last_cleanup = datetime.now(timezone.utc)

    def _maybe_cleanup(self) -> None:
        """Run cleanup once per day to enforce retention."""
        if self.retention_days <= 0:
            return
        now = datetime.now(timezone.utc)
        if self._last_cleanup is None or now - self._last_cleanup >= timedelta(days=1):
            self._cleanup_old_logs()

    @staticmethod
    def _truncate_content(value: Any, max_length: int = MAX_CONTENT_LENGTH) -> Any:
        """Truncate large string values, recursing into dicts and lists."""
        if isinstance(value, str) and len(value) > max_length:
            return value[:max_length] + f"... [truncated, {len(value)} total chars]"
        elif isinstance(value, dict):
            return {k: AuditLogger._truncate_content(v, max_length) for k, v in value.items()}
        elif isinstance(value, list):
            return [AuditLogger._truncate_content(item, max_length) for item in value]
        return value

    def log(
        self,
        event: AuditEvent,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        **kwargs,
    ):
        """
        Write structured audit log entry in JSON Lines format.

        Args:
            event: Audit event type
            tenant_id: Tenant identifier for correlation
            user_id: User identifier for correlation
            **kwargs: Additional fields to include in the audit record
        """
        audit_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event.value,
            "tenant_id": tenant_id,
            "user_id": user_id,
            **self._truncate_content(kwargs),
        }

        json_line = json.dumps(audit_record, ensure_ascii=False, default=str)

        # Audit failures must never turn a decision into an exception
        try:
            self._maybe_cleanup()
            self._rotate_if_needed()
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json_line + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit record '{event.value}' to {self.log_path}: {e}")

    def log_authorization(
        self,
        tenant_id: Optional[str],
        user_id: Optional[str],
        scope: Optional[str],
        authorized: bool,
        reason: Optional[str] = None,
    ):
        """Log an authorization decision (granted or denied)."""
        event = (
            AuditEvent.AUTHORIZATION_GRANTED if authorized else AuditEvent.AUTHORIZATION_DENIED
        )
        log_data: dict[str, Any] = {"scope": scope}
        if reason is not None:
            log_data["reason"] = reason
        self.log(event, tenant_id=tenant_id, user_id=user_id, **log_data)

    def log_ownership_denied(
        self,
        tenant_id: Optional[str],
        resource_id: Optional[str],
        resource_type: Optional[str],
    ):
        """Log a failed tenant ownership check."""
        self.log(
            AuditEvent.OWNERSHIP_DENIED,
            tenant_id=tenant_id,
            resource_id=resource_id,
            resource_type=resource_type,
        )

    def log_safety_verdict(
        self,
        event: AuditEvent,
        tool_name: str,
        tenant_id: Optional[str],
        user_id: Optional[str],
        rule_name: Optional[str] = None,
        message: Optional[str] = None,
    ):
        """Log a safety gate rejection or sanitization."""
        self.log(
            event,
            tenant_id=tenant_id,
            user_id=user_id,
            tool_name=tool_name,
            rule_name=rule_name,
            message=message,
        )

    def log_snapshot(
        self,
        instance_id: str,
        captured: bool,
        incident_count: Optional[int] = None,
        error: Optional[str] = None,
    ):
        """Log a diagnostic snapshot capture attempt."""
        if captured:
            self.log(
                AuditEvent.SNAPSHOT_CAPTURED,
                instance_id=instance_id,
                incident_count=incident_count,
            )
        else:
            self.log(AuditEvent.SNAPSHOT_FAILED, instance_id=instance_id, error=error)


def get_audit_logger() -> Optional[AuditLogger]:
    """Build the configured audit logger, or None when auditing is disabled."""
    if not Config.AUDIT_ENABLED:
        return None
    return AuditLogger(Config.AUDIT_LOG_PATH)
