"""Exception types raised by the guardrail pipeline.

Denials (authorization, safety rules) are never raised; they are returned as
PermissionDecision / SafetyVerdict values. Exceptions here cover the
exceptional paths only.
"""

from typing import Optional


class GuardrailError(Exception):
    """Base class for guardrail pipeline errors."""


class InstanceNotFoundError(GuardrailError, LookupError):
    """Raised when a workflow instance does not exist in the execution store."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance '{instance_id}' not found")


class SnapshotCaptureError(GuardrailError):
    """Raised when a diagnostic snapshot cannot be assembled."""

    def __init__(self, instance_id: str, reason: str, cause: Optional[Exception] = None):
        self.instance_id = instance_id
        self.reason = reason
        self.cause = cause
        super().__init__(f"Failed to capture snapshot for '{instance_id}': {reason}")


class ProviderNotFoundError(GuardrailError, LookupError):
    """Raised when a named AI provider is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"AI provider '{name}' is not registered")
