"""Fixed permission scopes for AI-driven operations."""

from enum import Enum
from typing import Optional


class PermissionScope(str, Enum):
    """Closed set of scopes gating classes of AI operations."""

    READ = "ai:read"  # gather workflow/instance state
    PROPOSE = "ai:propose"  # submit change proposals for approval
    DIAGNOSE = "ai:diagnose"  # failure explanations and diagnostics
    ADMIN = "ai:admin"  # provider and tool configuration


ALL_SCOPES: frozenset[str] = frozenset(scope.value for scope in PermissionScope)


def is_valid_scope(scope: Optional[str]) -> bool:
    """Return True if scope is exactly one of the fixed scope identifiers."""
    return scope in ALL_SCOPES
