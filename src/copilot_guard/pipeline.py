"""Guarded tool execution: authorization, ownership and safety gates around a tool call."""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from .audit import AuditLogger
from .governance import AuthorizationContext, AuthorizationGate
from .safety import SafetyGate, ToolExecutionContext, ToolExecutionResult

ToolExecutor = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]

EXECUTION_FAILED_MESSAGE = "Tool execution failed"
ARGUMENT_SUMMARY_LENGTH = 200


class PipelineStage(str, Enum):
    """Stage at which a guarded tool call stopped (or COMPLETED)."""

    AUTHORIZATION = "authorization"
    OWNERSHIP = "ownership"
    INPUT = "input"
    EXECUTION = "execution"
    OUTPUT = "output"
    COMPLETED = "completed"


@dataclass(frozen=True)
class GuardedToolOutcome:
    """Result of a guarded tool call."""

    allowed: bool
    stage: PipelineStage
    reason: Optional[str] = None
    output: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "stage": self.stage.value,
            "reason": self.reason,
            "output": self.output,
        }


class GuardedToolPipeline:
    """
    Runs a tool call through the guardrail stages.

    Order: authorize -> tenant ownership (when a resource is named)
    -> validate input -> execute -> validate output.
    Each stage short-circuits on denial; reasons never include
    exception detail.
    """

    def __init__(self, authorization: AuthorizationGate, safety_gate: SafetyGate):
        self._authorization = authorization
        self._safety_gate = safety_gate

    async def run(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        tenant_id: Optional[str],
        user_id: Optional[str],
        scope: str,
        executor: ToolExecutor,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        additional_context: Optional[dict[str, Any]] = None,
    ) -> GuardedToolOutcome:
        """
        Execute a tool behind the guardrails.

        Args:
            tool_name: Name of the tool
            arguments: Tool input parameters
            tenant_id: Tenant the call is scoped to
            user_id: User on whose behalf the call is made
            scope: Permission scope the tool requires
            executor: Callable receiving the (possibly sanitized) parameters;
                may be async and may return a ToolExecutionResult
            resource_id: Tenant-scoped resource the tool reads, if any
            resource_type: Type of that resource

        Returns:
            GuardedToolOutcome
        """
        logger.debug(
            f"Guarded call to '{tool_name}' for user '{user_id}' in tenant '{tenant_id}': "
            f"{AuditLogger._truncate_content(repr(arguments), ARGUMENT_SUMMARY_LENGTH)}"
        )
        decision = self._authorization.authorize(
            AuthorizationContext(
                tenant_id=tenant_id,
                user_id=user_id,
                required_scope=scope,
                additional_context={"tool_name": tool_name, **(additional_context or {})},
            )
        )
        if not decision.is_authorized:
            return GuardedToolOutcome(
                allowed=False, stage=PipelineStage.AUTHORIZATION, reason=decision.denial_reason
            )

        if resource_id is not None:
            owned = await self._authorization.validate_tenant_ownership(
                tenant_id, resource_id, resource_type
            )
            if not owned:
                return GuardedToolOutcome(
                    allowed=False,
                    stage=PipelineStage.OWNERSHIP,
                    reason=f"{resource_type or 'Resource'} '{resource_id}' is not accessible",
                )

        context = ToolExecutionContext(
            tool_name=tool_name,
            input_parameters=dict(arguments),
            tenant_id=tenant_id,
            user_id=user_id,
        )
        verdict = self._safety_gate.validate_input(context)
        if not verdict.is_valid:
            return GuardedToolOutcome(
                allowed=False, stage=PipelineStage.INPUT, reason=verdict.message
            )
        if verdict.sanitized_data is not None:
            context = context.with_parameters(verdict.sanitized_data)

        result = await self._execute(context, executor)
        if not result.is_successful:
            return GuardedToolOutcome(
                allowed=False,
                stage=PipelineStage.EXECUTION,
                reason=result.error_message or EXECUTION_FAILED_MESSAGE,
            )

        verdict = self._safety_gate.validate_output(context, result)
        if not verdict.is_valid:
            return GuardedToolOutcome(
                allowed=False, stage=PipelineStage.OUTPUT, reason=verdict.message
            )

        return GuardedToolOutcome(
            allowed=True, stage=PipelineStage.COMPLETED, output=verdict.sanitized_data
        )

    @staticmethod
    async def _execute(
        context: ToolExecutionContext, executor: ToolExecutor
    ) -> ToolExecutionResult:
        try:
            output = executor(dict(context.input_parameters))
            if inspect.isawaitable(output):
                output = await output
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Tool '{context.tool_name}' raised during execution: {e!r}")
            return ToolExecutionResult(
                output=None, is_successful=False, error_message=EXECUTION_FAILED_MESSAGE
            )

        if isinstance(output, ToolExecutionResult):
            return output
        return ToolExecutionResult(output=output, is_successful=True)
