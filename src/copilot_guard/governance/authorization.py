"""Authorization gate for AI-driven operations.

The gate is structural: it guarantees that only well-formed, tenant- and
user-scoped requests with a known permission scope reach the entitlement
system. Role/claim lookup and resource tenancy are delegated to pluggable
sources.
"""

from typing import TYPE_CHECKING, Optional, Protocol

from loguru import logger

from ..audit import AuditLogger
from .permission import AuthorizationContext, PermissionDecision
from .scopes import is_valid_scope

if TYPE_CHECKING:
    from ..definitions import WorkflowDefinitionStore
    from ..diagnostics.store import WorkflowInstanceStore


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class EntitlementSource(Protocol):
    """Role/claim lookup consulted after the structural checks pass."""

    def check(self, context: AuthorizationContext) -> Optional[str]:
        """Return a denial reason, or None if the principal holds the scope."""


class TenancySource(Protocol):
    """Resource-tenancy lookup backing tenant ownership validation."""

    async def is_owned_by(self, tenant_id: str, resource_id: str, resource_type: str) -> bool:
        """Return True if the resource belongs to the tenant."""


class AuthorizationGate:
    """
    Enforces tenancy boundaries and validates AI permission scopes.

    Checks run in a fixed order and the first failure short-circuits:
    tenant, user, scope presence, scope membership, then entitlements.

    Subclasses may override _check_entitlements() instead of supplying
    an EntitlementSource.
    """

    def __init__(
        self,
        entitlements: Optional[EntitlementSource] = None,
        tenancy: Optional[TenancySource] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._entitlements = entitlements
        self._tenancy = tenancy
        self._audit = audit

    def authorize(self, context: AuthorizationContext) -> PermissionDecision:
        """
        Decide whether the context may perform an AI-driven operation.

        Args:
            context: Authorization request

        Returns:
            PermissionDecision (never raises for malformed requests)
        """
        decision = self._check_structure(context)
        if decision.is_authorized:
            decision = self._check_entitlements(context)

        if decision.is_authorized:
            logger.info(
                f"AI authorization check passed for user '{context.user_id}' "
                f"in tenant '{context.tenant_id}' with scope '{context.required_scope}'"
            )
        else:
            logger.warning(f"AI authorization denied: {decision.denial_reason}")

        if self._audit is not None:
            self._audit.log_authorization(
                tenant_id=context.tenant_id,
                user_id=context.user_id,
                scope=context.required_scope,
                authorized=decision.is_authorized,
                reason=decision.denial_reason,
            )
        return decision

    @staticmethod
    def _check_structure(context: AuthorizationContext) -> PermissionDecision:
        if _is_blank(context.tenant_id):
            return PermissionDecision.denied("No tenant context provided")
        if _is_blank(context.user_id):
            return PermissionDecision.denied("No user context provided")
        if _is_blank(context.required_scope):
            return PermissionDecision.denied("No permission scope specified")
        if not is_valid_scope(context.required_scope):
            return PermissionDecision.denied(
                f"Invalid permission scope: {context.required_scope}"
            )
        return PermissionDecision.authorized()

    def _check_entitlements(self, context: AuthorizationContext) -> PermissionDecision:
        """Delegate to the entitlement source; allow when none is configured."""
        if self._entitlements is None:
            return PermissionDecision.authorized()

        try:
            reason = self._entitlements.check(context)
        except Exception as e:
            # Fail closed: entitlement errors never grant access
            logger.error(f"Entitlement check failed for user '{context.user_id}': {e}")
            return PermissionDecision.denied("Permission could not be verified")

        if reason:
            return PermissionDecision.denied(reason)
        return PermissionDecision.authorized()

    async def validate_tenant_ownership(
        self,
        tenant_id: Optional[str],
        resource_id: Optional[str],
        resource_type: Optional[str],
    ) -> bool:
        """
        Validate that a resource belongs to the tenant.

        Must be called by any tool that reads tenant-scoped resources
        before returning data.

        Returns:
            True only if the tenancy source confirms ownership
        """
        if _is_blank(tenant_id):
            logger.warning("Tenant ownership validation failed: No tenant ID provided")
            return self._ownership_denied(tenant_id, resource_id, resource_type)

        if _is_blank(resource_id):
            logger.warning("Tenant ownership validation failed: No resource ID provided")
            return self._ownership_denied(tenant_id, resource_id, resource_type)

        if self._tenancy is None:
            logger.warning(
                f"Tenant ownership validation failed: no tenancy source configured "
                f"for resource '{resource_id}'"
            )
            return self._ownership_denied(tenant_id, resource_id, resource_type)

        try:
            owned = await self._tenancy.is_owned_by(tenant_id, resource_id, resource_type or "")
        except Exception as e:
            logger.error(f"Tenancy lookup failed for resource '{resource_id}': {e}")
            return self._ownership_denied(tenant_id, resource_id, resource_type)

        if not owned:
            logger.warning(
                f"Resource '{resource_id}' of type '{resource_type}' "
                f"does not belong to tenant '{tenant_id}'"
            )
            return self._ownership_denied(tenant_id, resource_id, resource_type)

        logger.info(
            f"Tenant ownership validated for resource '{resource_id}' "
            f"of type '{resource_type}' in tenant '{tenant_id}'"
        )
        return True

    def _ownership_denied(
        self,
        tenant_id: Optional[str],
        resource_id: Optional[str],
        resource_type: Optional[str],
    ) -> bool:
        if self._audit is not None:
            self._audit.log_ownership_denied(tenant_id, resource_id, resource_type)
        return False


class StoreTenancySource:
    """
    Tenancy source backed by the instance and definition stores.

    Workflow instances (the default type) resolve through the instance store;
    workflow definitions resolve through the published definition, when a
    definition store is configured.
    """

    RESOURCE_TYPE = "WorkflowInstance"
    DEFINITION_RESOURCE_TYPE = "WorkflowDefinition"

    def __init__(
        self,
        store: "WorkflowInstanceStore",
        definitions: Optional["WorkflowDefinitionStore"] = None,
    ):
        self._store = store
        self._definitions = definitions

    async def is_owned_by(self, tenant_id: str, resource_id: str, resource_type: str) -> bool:
        if resource_type == self.DEFINITION_RESOURCE_TYPE and self._definitions is not None:
            resource = await self._definitions.find_published(resource_id)
        elif not resource_type or resource_type == self.RESOURCE_TYPE:
            resource = await self._store.find(resource_id)
        else:
            logger.debug(f"StoreTenancySource cannot resolve resource type '{resource_type}'")
            return False
        if resource is None:
            return False
        return resource.tenant_id == tenant_id
