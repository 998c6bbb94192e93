"""Safety gate: ordered rule chain over tool inputs and outputs."""

from typing import Any, Optional, Sequence, Union

from loguru import logger

from ..audit import AuditEvent, AuditLogger
from .models import RuleDirection, SafetyVerdict, ToolExecutionContext, ToolExecutionResult
from .registry import SafetyRuleRegistry
from .rules import SafetyRule

RULE_FAILURE_MESSAGE = "Safety rule '{}' failed to evaluate"


class SafetyGate:
    """
    Applies a chain of safety rules to tool inputs and outputs.

    Chain semantics (both directions):
    - Rules run in registration order
    - The first invalid verdict stops the chain and is returned as-is
    - A rule's replacement data is forwarded to the next rule, so
      sanitization composes across rules
    - A rule that raises is treated as an invalid verdict (fail-closed)
    """

    def __init__(
        self,
        rules: Union[SafetyRuleRegistry, Sequence[SafetyRule]],
        audit: Optional[AuditLogger] = None,
    ):
        self._rules = rules
        self._audit = audit

    def _chain(self) -> list[SafetyRule]:
        if isinstance(self._rules, SafetyRuleRegistry):
            return self._rules.list()
        return list(self._rules)

    def validate_input(self, context: ToolExecutionContext) -> SafetyVerdict:
        """
        Validate input parameters before tool execution.

        Returns:
            The first rejecting rule's verdict, or a valid verdict carrying
            the final (possibly sanitized) input parameters
        """
        logger.info(f"Validating input for tool '{context.tool_name}'")

        current = context

        for rule in self._chain():
            verdict = self._evaluate(rule, RuleDirection.INPUT, current)
            if not verdict.is_valid:
                logger.warning(
                    f"Input validation failed for tool '{context.tool_name}' "
                    f"by rule '{rule.name}': {verdict.message}"
                )
                self._record(AuditEvent.INPUT_REJECTED, context, rule.name, verdict.message)
                return verdict

            if verdict.sanitized_data is not None:
                if not isinstance(verdict.sanitized_data, dict):
                    logger.error(
                        f"Rule '{rule.name}' returned non-mapping input replacement "
                        f"for tool '{context.tool_name}'"
                    )
                    rejection = SafetyVerdict.invalid(RULE_FAILURE_MESSAGE.format(rule.name))
                    self._record(
                        AuditEvent.INPUT_REJECTED, context, rule.name, rejection.message
                    )
                    return rejection
                current = current.with_parameters(verdict.sanitized_data)
                logger.info(
                    f"Input sanitized for tool '{context.tool_name}' by rule '{rule.name}'"
                )

        logger.info(f"Input validation passed for tool '{context.tool_name}'")
        return SafetyVerdict.valid(dict(current.input_parameters))

    def validate_output(
        self,
        context: ToolExecutionContext,
        result: ToolExecutionResult,
    ) -> SafetyVerdict:
        """
        Validate or scrub tool output before it is returned to the orchestrator.

        Returns:
            The first rejecting rule's verdict, or a valid verdict carrying
            the final (possibly sanitized) output
        """
        logger.info(f"Validating output for tool '{context.tool_name}'")

        current = result
        sanitized_by: list[str] = []

        for rule in self._chain():
            verdict = self._evaluate(rule, RuleDirection.OUTPUT, context, current)
            if not verdict.is_valid:
                logger.warning(
                    f"Output validation failed for tool '{context.tool_name}' "
                    f"by rule '{rule.name}': {verdict.message}"
                )
                self._record(AuditEvent.OUTPUT_REJECTED, context, rule.name, verdict.message)
                return verdict

            if verdict.sanitized_data is not None and verdict.sanitized_data is not current.output:
                current = current.with_output(verdict.sanitized_data)
                sanitized_by.append(rule.name)
                logger.info(
                    f"Output scrubbed for tool '{context.tool_name}' by rule '{rule.name}'"
                )

        if sanitized_by:
            self._record(
                AuditEvent.OUTPUT_SANITIZED, context, ", ".join(sanitized_by), None
            )

        logger.info(f"Output validation passed for tool '{context.tool_name}'")
        return SafetyVerdict.valid(current.output)

    @staticmethod
    def _evaluate(rule: SafetyRule, direction: RuleDirection, *args: Any) -> SafetyVerdict:
        method = f"validate_{direction.value}"
        try:
            verdict = getattr(rule, method)(*args)
        except Exception as e:
            logger.error(f"Safety rule '{rule.name}' raised during {method}: {e!r}")
            return SafetyVerdict.invalid(RULE_FAILURE_MESSAGE.format(rule.name))

        if not isinstance(verdict, SafetyVerdict):
            logger.error(
                f"Safety rule '{rule.name}' returned {type(verdict).__name__} from {method}"
            )
            return SafetyVerdict.invalid(RULE_FAILURE_MESSAGE.format(rule.name))
        return verdict

    def _record(
        self,
        event: AuditEvent,
        context: ToolExecutionContext,
        rule_name: str,
        message: Optional[str],
    ) -> None:
        if self._audit is None:
            return
        self._audit.log_safety_verdict(
            event,
            tool_name=context.tool_name,
            tenant_id=context.tenant_id,
            user_id=context.user_id,
            rule_name=rule_name,
            message=message,
        )
