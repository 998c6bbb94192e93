"""FastMCP server exposing the guarded workflow diagnostics tools."""

import asyncio
import sys
from typing import Optional, Tuple

from fastmcp import FastMCP
from loguru import logger

from .audit import get_audit_logger
from .config import Config
from .definitions import ActivityRegistry, RedisDefinitionStore, WorkflowDefinitionStore
from .diagnostics import DiagnosticsEngine, RedisInstanceStore, WorkflowInstanceStore
from .governance import AuthorizationGate, StoreTenancySource
from .pipeline import GuardedToolPipeline
from .redis_client import check_redis_health, close_redis_client
from .safety import SafetyGate, SafetyRuleRegistry
from .tools import WorkflowDiagnosticsTools

SERVER_NAME = "CopilotGuardrails"

guard_server = FastMCP(SERVER_NAME)

_tools: Optional[WorkflowDiagnosticsTools] = None


def build_tools(
    store: Optional[WorkflowInstanceStore] = None,
    definitions: Optional[WorkflowDefinitionStore] = None,
    activities: Optional[ActivityRegistry] = None,
) -> WorkflowDiagnosticsTools:
    """
    Compose the guardrail components from configuration.

    Args:
        store: Workflow instance store (defaults to the Redis-backed store)
        definitions: Workflow definition store (defaults to the Redis-backed store)
        activities: Activity catalog (defaults to config/activity_catalog.yaml)
    """
    store = store or RedisInstanceStore()
    definitions = definitions or RedisDefinitionStore()
    if activities is None:
        activities = ActivityRegistry.from_yaml(Config.ACTIVITY_CATALOG_YAML_PATH)
    audit = get_audit_logger()
    authorization = AuthorizationGate(
        tenancy=StoreTenancySource(store, definitions), audit=audit
    )
    safety_gate = SafetyGate(
        SafetyRuleRegistry.from_yaml(Config.SAFETY_RULES_YAML_PATH), audit=audit
    )
    engine = DiagnosticsEngine(store, audit=audit)
    pipeline = GuardedToolPipeline(authorization, safety_gate)
    return WorkflowDiagnosticsTools(store, engine, pipeline, definitions, activities)


def get_tools() -> WorkflowDiagnosticsTools:
    global _tools
    if _tools is None:
        _tools = build_tools()
    return _tools


def set_tools(tools: Optional[WorkflowDiagnosticsTools]) -> None:
    """Replace the tool set (None resets to lazy construction)."""
    global _tools
    _tools = tools


async def probe_store() -> Tuple[bool, str]:
    """Ping the instance store once, releasing the client before the server loop starts."""
    try:
        return await check_redis_health()
    finally:
        await close_redis_client()


@guard_server.tool()
async def get_workflow_instance_state(
    workflow_instance_id: str, tenant_id: str, user_id: str
) -> str:
    """
    Inspect a running or failed workflow instance's current state.

    Args:
        workflow_instance_id: The workflow instance ID to inspect
        tenant_id: Tenant of the requesting user
        user_id: Requesting user
    """
    return await get_tools().get_workflow_instance_state(
        workflow_instance_id, tenant_id, user_id
    )


@guard_server.tool()
async def get_workflow_instance_errors(
    workflow_instance_id: str, tenant_id: str, user_id: str
) -> str:
    """
    Get error details for a failed workflow instance.

    Args:
        workflow_instance_id: The workflow instance ID to get errors for
        tenant_id: Tenant of the requesting user
        user_id: Requesting user
    """
    return await get_tools().get_workflow_instance_errors(
        workflow_instance_id, tenant_id, user_id
    )


@guard_server.tool()
async def get_workflow_diagnostics_snapshot(
    workflow_instance_id: str, tenant_id: str, user_id: str
) -> str:
    """
    Get a diagnostic snapshot and preliminary analysis for a failed workflow instance.

    Args:
        workflow_instance_id: The workflow instance ID to diagnose
        tenant_id: Tenant of the requesting user
        user_id: Requesting user
    """
    return await get_tools().get_workflow_diagnostics_snapshot(
        workflow_instance_id, tenant_id, user_id
    )


@guard_server.tool()
async def get_workflow_definition(
    workflow_definition_id: str, tenant_id: str, user_id: str
) -> str:
    """
    Get the published version of a workflow definition.

    Args:
        workflow_definition_id: The workflow definition ID to look up
        tenant_id: Tenant of the requesting user
        user_id: Requesting user
    """
    return await get_tools().get_workflow_definition(workflow_definition_id, tenant_id, user_id)


@guard_server.tool()
async def get_activity_catalog(
    tenant_id: str, user_id: str, category: Optional[str] = None
) -> str:
    """
    List the activity types available to workflow authors.

    Args:
        tenant_id: Tenant of the requesting user
        user_id: Requesting user
        category: Only list activities in this category (case-insensitive)
    """
    return await get_tools().get_activity_catalog(category, tenant_id, user_id)


def main():
    """
    Main entry point for the guardrail tool server.

    Configures loguru logging, validates configuration and serves
    over HTTP/SSE.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>",
        level="INFO",
    )
    logger.add(
        "copilot_guard.log",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        level="DEBUG",
    )

    try:
        Config.validate()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    healthy, message = asyncio.run(probe_store())
    if healthy:
        logger.info(message)
    else:
        logger.warning(f"Instance store unavailable at startup: {message}")

    logger.info(f"Starting {SERVER_NAME} on {Config.HOST}:{Config.PORT}...")

    try:
        guard_server.run(transport="sse", host=Config.HOST, port=Config.PORT)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
