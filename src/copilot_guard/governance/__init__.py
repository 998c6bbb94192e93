"""Authorization gate and permission model for AI-driven operations."""

from .authorization import (
    AuthorizationGate,
    EntitlementSource,
    StoreTenancySource,
    TenancySource,
)
from .permission import AuthorizationContext, PermissionDecision
from .scopes import ALL_SCOPES, PermissionScope, is_valid_scope

__all__ = [
    "AuthorizationGate",
    "EntitlementSource",
    "TenancySource",
    "StoreTenancySource",
    "AuthorizationContext",
    "PermissionDecision",
    "PermissionScope",
    "ALL_SCOPES",
    "is_valid_scope",
]
