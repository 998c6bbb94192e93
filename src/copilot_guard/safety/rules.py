"""Built-in safety rules for the safety gate chain."""

import re

from loguru import logger

from .models import SafetyVerdict, ToolExecutionContext, ToolExecutionResult


class SafetyRule:
    """
    Base class for a pluggable validation/sanitization unit.

    Rules override only the direction they check; the other direction
    defaults to "valid, no change". Rules must be stateless across calls
    unless they explicitly add state.
    """

    name: str = "Unnamed Rule"

    def validate_input(self, context: ToolExecutionContext) -> SafetyVerdict:
        return SafetyVerdict.valid()

    def validate_output(
        self,
        context: ToolExecutionContext,
        result: ToolExecutionResult,
    ) -> SafetyVerdict:
        return SafetyVerdict.valid()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class StructuralValidationRule(SafetyRule):
    """
    Validates structural integrity of a tool invocation.

    Rejects invocations without a tool name, tenant or user. Null input
    parameters are noted in the log but never block.
    """

    name = "Structural Validation"

    def validate_input(self, context: ToolExecutionContext) -> SafetyVerdict:
        if not context.tool_name or not context.tool_name.strip():
            logger.warning("Structural validation failed: Tool name is empty")
            return SafetyVerdict.invalid("Tool name cannot be empty")

        if not context.tenant_id or not context.tenant_id.strip():
            logger.warning(
                f"Structural validation failed: Tenant ID is missing for tool '{context.tool_name}'"
            )
            return SafetyVerdict.invalid("Tenant context is required")

        if not context.user_id or not context.user_id.strip():
            logger.warning(
                f"Structural validation failed: User ID is missing for tool '{context.tool_name}'"
            )
            return SafetyVerdict.invalid("User context is required")

        null_parameters = [
            key for key, value in context.input_parameters.items() if value is None
        ]
        if null_parameters:
            logger.info(
                f"Tool '{context.tool_name}' has null input parameters: "
                f"{', '.join(null_parameters)}"
            )

        logger.debug(f"Structural validation passed for tool '{context.tool_name}'")
        return SafetyVerdict.valid()


# Simple patterns for common PII types. These will miss many valid formats
# and false-positive on unrelated digit sequences; a production deployment
# should delegate to a dedicated PII detection service.
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_PATTERN = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")
SSN_PATTERN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")

EMAIL_PLACEHOLDER = "[EMAIL-REDACTED]"
PHONE_PLACEHOLDER = "[PHONE-REDACTED]"
SSN_PLACEHOLDER = "[SSN-REDACTED]"


def scrub_pii(text: str) -> str:
    """Replace email, phone and SSN-like tokens, in that order."""
    text = EMAIL_PATTERN.sub(EMAIL_PLACEHOLDER, text)
    text = PHONE_PATTERN.sub(PHONE_PLACEHOLDER, text)
    text = SSN_PATTERN.sub(SSN_PLACEHOLDER, text)
    return text


class PiiScrubbingRule(SafetyRule):
    """Scrubs PII-like tokens from string tool outputs. Non-strings pass through."""

    name = "PII Scrubbing"

    def validate_output(
        self,
        context: ToolExecutionContext,
        result: ToolExecutionResult,
    ) -> SafetyVerdict:
        if not isinstance(result.output, str):
            return SafetyVerdict.valid()

        scrubbed = scrub_pii(result.output)
        if scrubbed == result.output:
            return SafetyVerdict.valid()

        logger.info(f"PII detected and scrubbed from output of tool '{context.tool_name}'")
        return SafetyVerdict.valid(scrubbed)


# Catalog of built-in rules, keyed by the name used in safety_rules.yaml
BUILTIN_RULES: dict[str, type[SafetyRule]] = {
    "structural_validation": StructuralValidationRule,
    "pii_scrubbing": PiiScrubbingRule,
}


def default_rules() -> list[SafetyRule]:
    """Default chain: structural validation, then PII scrubbing."""
    return [StructuralValidationRule(), PiiScrubbingRule()]
