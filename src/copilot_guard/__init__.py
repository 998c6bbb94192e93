"""Copilot Guardrails - authorization, safety gates and diagnostics for AI tool calls."""

__version__ = "0.1.0"

from .governance import AuthorizationContext, AuthorizationGate, PermissionDecision
from .pipeline import GuardedToolOutcome, GuardedToolPipeline, PipelineStage
from .safety import SafetyGate, SafetyVerdict, ToolExecutionContext, ToolExecutionResult

__all__ = [
    "AuthorizationContext",
    "AuthorizationGate",
    "PermissionDecision",
    "GuardedToolOutcome",
    "GuardedToolPipeline",
    "PipelineStage",
    "SafetyGate",
    "SafetyVerdict",
    "ToolExecutionContext",
    "ToolExecutionResult",
    "__version__",
]
