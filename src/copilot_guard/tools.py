"""Workflow diagnostics tools exposed to the AI orchestrator.

Every tool runs behind the GuardedToolPipeline: the caller must hold the
tool's scope and the instance or definition it reads must belong to the
caller's tenant. The activity catalog is global and only needs the scope. Tool
output is JSON text so that output safety rules (PII scrubbing) apply
to the whole payload.
"""

import json
from typing import Any, Optional

from loguru import logger

from .definitions import ActivityRegistry, InMemoryDefinitionStore, WorkflowDefinitionStore
from .diagnostics import DiagnosticsEngine, WorkflowInstanceStore
from .errors import InstanceNotFoundError, SnapshotCaptureError
from .governance import PermissionScope, StoreTenancySource
from .pipeline import GuardedToolPipeline


def _to_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _not_found(instance_id: str) -> dict[str, Any]:
    return {"error": "Workflow instance not found", "workflowInstanceId": instance_id}


class WorkflowDiagnosticsTools:
    """Guarded read/diagnose tools over workflow instances, definitions and activities."""

    RESOURCE_TYPE = StoreTenancySource.RESOURCE_TYPE
    DEFINITION_RESOURCE_TYPE = StoreTenancySource.DEFINITION_RESOURCE_TYPE

    def __init__(
        self,
        store: WorkflowInstanceStore,
        engine: DiagnosticsEngine,
        pipeline: GuardedToolPipeline,
        definitions: Optional[WorkflowDefinitionStore] = None,
        activities: Optional[ActivityRegistry] = None,
    ):
        self._store = store
        self._engine = engine
        self._pipeline = pipeline
        self._definitions = definitions if definitions is not None else InMemoryDefinitionStore()
        self._activities = activities if activities is not None else ActivityRegistry()

    async def _guarded(
        self,
        tool_name: str,
        scope: PermissionScope,
        arguments: dict[str, Any],
        tenant_id: Optional[str],
        user_id: Optional[str],
        executor,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        echo: Optional[dict[str, Any]] = None,
    ) -> str:
        outcome = await self._pipeline.run(
            tool_name=tool_name,
            arguments=arguments,
            tenant_id=tenant_id,
            user_id=user_id,
            scope=scope.value,
            executor=executor,
            resource_id=resource_id,
            resource_type=resource_type,
        )
        if not outcome.allowed:
            logger.info(f"Tool '{tool_name}' stopped at {outcome.stage.value}: {outcome.reason}")
            return _to_json({"error": outcome.reason, "stage": outcome.stage.value, **(echo or {})})
        return outcome.output

    async def _guarded_instance(
        self,
        tool_name: str,
        scope: PermissionScope,
        instance_id: str,
        tenant_id: Optional[str],
        user_id: Optional[str],
        executor,
    ) -> str:
        return await self._guarded(
            tool_name,
            scope,
            {"workflow_instance_id": instance_id},
            tenant_id,
            user_id,
            executor,
            resource_id=instance_id,
            resource_type=self.RESOURCE_TYPE,
            echo={"workflowInstanceId": instance_id},
        )

    async def get_workflow_instance_state(
        self, instance_id: str, tenant_id: Optional[str], user_id: Optional[str]
    ) -> str:
        """Inspect a running or failed workflow instance's current state."""

        async def execute(params: dict[str, Any]) -> str:
            instance = await self._store.find(params["workflow_instance_id"])
            if instance is None:
                return _to_json(_not_found(params["workflow_instance_id"]))
            return _to_json(
                {
                    "id": instance.id,
                    "definitionId": instance.definition_id,
                    "definitionVersionId": instance.definition_version_id,
                    "status": instance.status,
                    "subStatus": instance.sub_status,
                    "correlationId": instance.correlation_id,
                    "createdAt": _iso(instance.created_at),
                    "updatedAt": _iso(instance.updated_at),
                    "finishedAt": _iso(instance.finished_at),
                    "faultedAt": _iso(instance.faulted_at),
                    "workflowState": {
                        "bookmarks": instance.bookmark_count,
                        "incidents": len(instance.incidents),
                        "variables": len(instance.variables),
                    },
                }
            )

        return await self._guarded_instance(
            "get_workflow_instance_state",
            PermissionScope.READ,
            instance_id,
            tenant_id,
            user_id,
            execute,
        )

    async def get_workflow_instance_errors(
        self, instance_id: str, tenant_id: Optional[str], user_id: Optional[str]
    ) -> str:
        """Get error details for a failed workflow instance."""

        async def execute(params: dict[str, Any]) -> str:
            try:
                snapshot = await self._engine.capture_snapshot(params["workflow_instance_id"])
            except InstanceNotFoundError:
                return _to_json(_not_found(params["workflow_instance_id"]))
            incidents = [incident.to_dict() for incident in snapshot.incidents]
            return _to_json(
                {
                    "instanceId": snapshot.instance_id,
                    "status": snapshot.status,
                    "incidents": incidents,
                    "totalErrors": len(incidents),
                }
            )

        return await self._guarded_instance(
            "get_workflow_instance_errors",
            PermissionScope.DIAGNOSE,
            instance_id,
            tenant_id,
            user_id,
            execute,
        )

    async def get_workflow_diagnostics_snapshot(
        self, instance_id: str, tenant_id: Optional[str], user_id: Optional[str]
    ) -> str:
        """Capture a diagnostic snapshot with a preliminary root-cause analysis."""

        async def execute(params: dict[str, Any]) -> str:
            target = params["workflow_instance_id"]
            try:
                snapshot = await self._engine.capture_snapshot(target)
            except InstanceNotFoundError:
                return _to_json(_not_found(target))
            except SnapshotCaptureError:
                return _to_json(
                    {
                        "error": "Failed to capture diagnostic snapshot",
                        "workflowInstanceId": target,
                    }
                )
            analysis = self._engine.analyze(snapshot)
            snapshot_data = snapshot.to_dict()
            snapshot_data.pop("rootCauseAnalysis", None)
            snapshot_data.pop("suggestedActions", None)
            return _to_json(
                {
                    "snapshot": snapshot_data,
                    "preliminaryAnalysis": {
                        "rootCause": analysis.root_cause,
                        "suggestedActions": analysis.suggested_actions,
                    },
                }
            )

        return await self._guarded_instance(
            "get_workflow_diagnostics_snapshot",
            PermissionScope.DIAGNOSE,
            instance_id,
            tenant_id,
            user_id,
            execute,
        )

    async def get_workflow_definition(
        self, definition_id: str, tenant_id: Optional[str], user_id: Optional[str]
    ) -> str:
        """Get the published version of a workflow definition."""

        async def execute(params: dict[str, Any]) -> str:
            definition = await self._definitions.find_published(params["workflow_definition_id"])
            if definition is None:
                return _to_json(
                    {
                        "error": "Workflow definition not found",
                        "workflowDefinitionId": params["workflow_definition_id"],
                    }
                )
            return _to_json(definition.to_response())

        return await self._guarded(
            "get_workflow_definition",
            PermissionScope.READ,
            {"workflow_definition_id": definition_id},
            tenant_id,
            user_id,
            execute,
            resource_id=definition_id,
            resource_type=self.DEFINITION_RESOURCE_TYPE,
            echo={"workflowDefinitionId": definition_id},
        )

    async def get_activity_catalog(
        self, category: Optional[str], tenant_id: Optional[str], user_id: Optional[str]
    ) -> str:
        """List available activity types, optionally filtered by category."""

        async def execute(params: dict[str, Any]) -> str:
            activities = [a.to_dict() for a in self._activities.list(params.get("category"))]
            return _to_json({"activities": activities, "count": len(activities)})

        return await self._guarded(
            "get_activity_catalog",
            PermissionScope.READ,
            {"category": category},
            tenant_id,
            user_id,
            execute,
        )
