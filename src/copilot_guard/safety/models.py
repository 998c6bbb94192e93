"""Safety gate models for tool input/output screening."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class RuleDirection(str, Enum):
    """Which side of a tool call a validation pass screens."""

    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class ToolExecutionContext:
    """
    One tool invocation being screened.

    Input parameter values may be None.
    """

    tool_name: str
    input_parameters: dict[str, Any] = field(default_factory=dict)
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None

    def with_parameters(self, parameters: dict[str, Any]) -> "ToolExecutionContext":
        """Return a copy carrying replacement input parameters."""
        return replace(self, input_parameters=dict(parameters))


@dataclass(frozen=True)
class ToolExecutionResult:
    """Raw result of a tool call, produced by the tool executor."""

    output: Any = None
    is_successful: bool = True
    error_message: Optional[str] = None

    def with_output(self, output: Any) -> "ToolExecutionResult":
        """Return a copy carrying a replacement output."""
        return replace(self, output=output)


@dataclass(frozen=True)
class SafetyVerdict:
    """
    Outcome of one validation pass.

    sanitized_data, when not None, is a replacement value for the
    screened input parameters or output.
    """

    is_valid: bool
    message: Optional[str] = None
    sanitized_data: Any = None

    @classmethod
    def valid(cls, sanitized_data: Any = None) -> "SafetyVerdict":
        return cls(is_valid=True, sanitized_data=sanitized_data)

    @classmethod
    def invalid(cls, message: str) -> "SafetyVerdict":
        if not message:
            raise ValueError("Rejection message must not be empty")
        return cls(is_valid=False, message=message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_valid": self.is_valid,
            "message": self.message,
            "sanitized_data": self.sanitized_data,
        }
