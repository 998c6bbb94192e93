"""Safety gate for AI tool execution.

Screens tool inputs before execution and tool outputs before they are
returned to the orchestrator, using an ordered chain of safety rules.

Usage:
    gate = SafetyGate(SafetyRuleRegistry.from_yaml(Config.SAFETY_RULES_YAML_PATH))

    verdict = gate.validate_input(context)
    if not verdict.is_valid:
        return verdict.message

    result = execute(context)
    verdict = gate.validate_output(context, result)
"""

from .gate import SafetyGate
from .models import RuleDirection, SafetyVerdict, ToolExecutionContext, ToolExecutionResult
from .registry import SafetyRuleRegistry
from .rules import (
    BUILTIN_RULES,
    PiiScrubbingRule,
    SafetyRule,
    StructuralValidationRule,
    default_rules,
    scrub_pii,
)

__all__ = [
    # Gate
    "SafetyGate",
    "SafetyRuleRegistry",
    # Models
    "RuleDirection",
    "SafetyVerdict",
    "ToolExecutionContext",
    "ToolExecutionResult",
    # Rules
    "SafetyRule",
    "StructuralValidationRule",
    "PiiScrubbingRule",
    "BUILTIN_RULES",
    "default_rules",
    "scrub_pii",
]
