"""Authorization request and decision models."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class AuthorizationContext:
    """
    One authorization request for an AI-driven operation.

    Attributes:
        tenant_id: Tenant the operation is scoped to
        user_id: User on whose behalf the orchestrator acts
        required_scope: Permission scope the operation needs (e.g. "ai:read")
        additional_context: Operation-specific data for entitlement checks
    """

    tenant_id: Optional[str]
    user_id: Optional[str]
    required_scope: Optional[str]
    additional_context: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze the mapping so the context stays immutable after creation
        object.__setattr__(
            self, "additional_context", MappingProxyType(dict(self.additional_context))
        )


@dataclass(frozen=True)
class PermissionDecision:
    """
    Outcome of an authorization check.

    Denials always carry a non-empty reason suitable for returning
    to the requesting principal.
    """

    is_authorized: bool
    denial_reason: Optional[str] = None

    @classmethod
    def authorized(cls) -> "PermissionDecision":
        return cls(is_authorized=True)

    @classmethod
    def denied(cls, reason: str) -> "PermissionDecision":
        if not reason:
            raise ValueError("Denial reason must not be empty")
        return cls(is_authorized=False, denial_reason=reason)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_authorized": self.is_authorized,
            "denial_reason": self.denial_reason,
        }
