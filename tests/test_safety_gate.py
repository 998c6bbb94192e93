"""Tests for the safety gate rule chain."""

import json

import pytest

from conftest import CountingRule, ExplodingRule
from copilot_guard.safety import (
    SafetyGate,
    SafetyRuleRegistry,
    SafetyVerdict,
    ToolExecutionContext,
    ToolExecutionResult,
)
from copilot_guard.safety.gate import RULE_FAILURE_MESSAGE


@pytest.fixture
def context():
    return ToolExecutionContext(
        tool_name="get_workflow_instance_state",
        input_parameters={"workflowInstanceId": "wf-1"},
        tenant_id="tenant-a",
        user_id="u1",
    )


class TestShortCircuit:
    """The first rejecting rule stops the chain."""

    @pytest.mark.parametrize("rejecting_index", [0, 1, 2, 3])
    def test_input_chain_stops_at_first_rejection(self, context, rejecting_index):
        rejection = SafetyVerdict.invalid(f"rule {rejecting_index} says no")
        rules = [
            CountingRule(f"r{i}", input_verdict=rejection if i == rejecting_index else None)
            for i in range(4)
        ]

        verdict = SafetyGate(rules).validate_input(context)

        assert verdict == rejection
        assert [r.input_calls for r in rules] == [
            1 if i <= rejecting_index else 0 for i in range(4)
        ]

    @pytest.mark.parametrize("rejecting_index", [0, 2])
    def test_output_chain_stops_at_first_rejection(self, context, rejecting_index):
        rejection = SafetyVerdict.invalid("blocked output")
        rules = [
            CountingRule(f"r{i}", output_verdict=rejection if i == rejecting_index else None)
            for i in range(3)
        ]

        verdict = SafetyGate(rules).validate_output(context, ToolExecutionResult(output="x"))

        assert verdict == rejection
        assert sum(r.output_calls for r in rules) == rejecting_index + 1

    def test_all_valid_runs_every_rule(self, context):
        rules = [CountingRule(f"r{i}") for i in range(3)]
        gate = SafetyGate(rules)

        assert gate.validate_input(context) == SafetyVerdict.valid({"workflowInstanceId": "wf-1"})
        assert gate.validate_output(context, ToolExecutionResult(output="x")) == SafetyVerdict.valid("x")
        assert [r.input_calls for r in rules] == [1, 1, 1]
        assert [r.output_calls for r in rules] == [1, 1, 1]

    def test_unchanged_input_returned_when_nothing_replaced(self, context):
        verdict = SafetyGate([CountingRule("noop")]).validate_input(context)

        assert verdict.sanitized_data == {"workflowInstanceId": "wf-1"}
        assert verdict.sanitized_data is not context.input_parameters

    def test_empty_chain_accepts_everything(self, context):
        gate = SafetyGate([])
        assert gate.validate_input(context).is_valid is True
        assert gate.validate_output(context, ToolExecutionResult(output=5)).sanitized_data == 5


class TestSanitizationComposes:
    """Replacement data is forwarded along the chain."""

    def test_next_rule_sees_sanitized_output(self, context):
        first = CountingRule("first", output_verdict=SafetyVerdict.valid("scrubbed"))
        second = CountingRule("second")

        verdict = SafetyGate([first, second]).validate_output(
            context, ToolExecutionResult(output="raw")
        )

        assert first.seen_outputs == ["raw"]
        assert second.seen_outputs == ["scrubbed"]
        assert verdict == SafetyVerdict.valid("scrubbed")

    def test_later_replacement_wins(self, context):
        rules = [
            CountingRule("a", output_verdict=SafetyVerdict.valid("one")),
            CountingRule("b", output_verdict=SafetyVerdict.valid("two")),
        ]
        verdict = SafetyGate(rules).validate_output(context, ToolExecutionResult(output="raw"))
        assert verdict.sanitized_data == "two"

    def test_input_replacement_forwarded(self, context):
        replaced = {"workflowInstanceId": "wf-1", "trimmed": True}
        first = CountingRule("first", input_verdict=SafetyVerdict.valid(replaced))
        second = CountingRule("second")

        verdict = SafetyGate([first, second]).validate_input(context)

        assert second.seen_parameters == [replaced]
        assert verdict == SafetyVerdict.valid(replaced)

    def test_non_mapping_input_replacement_rejected(self, context):
        bad = CountingRule("Bad", input_verdict=SafetyVerdict.valid("not a dict"))
        after = CountingRule("after")

        verdict = SafetyGate([bad, after]).validate_input(context)

        assert verdict == SafetyVerdict.invalid(RULE_FAILURE_MESSAGE.format("Bad"))
        assert after.input_calls == 0

    def test_default_chain_scrubs_output(self, safety_gate, context):
        verdict = safety_gate.validate_output(
            context, ToolExecutionResult(output="Contact me at jane@example.com or 555-123-4567")
        )
        assert verdict == SafetyVerdict.valid("Contact me at [EMAIL-REDACTED] or [PHONE-REDACTED]")


class TestRuleFailures:
    """Rules that raise or misbehave fail closed."""

    def test_raising_input_rule_rejects_generically(self, context):
        after = CountingRule("after")
        verdict = SafetyGate([ExplodingRule(), after]).validate_input(context)

        assert verdict.is_valid is False
        assert verdict.message == "Safety rule 'Exploding' failed to evaluate"
        assert "hunter2" not in verdict.message
        assert after.input_calls == 0

    def test_raising_output_rule_rejects(self, context):
        verdict = SafetyGate([ExplodingRule()]).validate_output(
            context, ToolExecutionResult(output="x")
        )
        assert verdict == SafetyVerdict.invalid("Safety rule 'Exploding' failed to evaluate")

    def test_non_verdict_return_rejects(self, context):
        class Sloppy(CountingRule):
            def validate_input(self, context):
                return True

        verdict = SafetyGate([Sloppy("Sloppy")]).validate_input(context)
        assert verdict.message == "Safety rule 'Sloppy' failed to evaluate"


class TestRegistryBackedGate:
    """Gate reads the registry on every pass."""

    def test_rule_registered_later_is_used(self, context):
        registry = SafetyRuleRegistry()
        gate = SafetyGate(registry)
        assert gate.validate_input(context).is_valid is True

        registry.register(CountingRule("blocker", input_verdict=SafetyVerdict.invalid("no")))
        assert gate.validate_input(context).message == "no"

    def test_unregistered_rule_is_skipped(self, context):
        blocker = CountingRule("blocker", input_verdict=SafetyVerdict.invalid("no"))
        registry = SafetyRuleRegistry([blocker])
        gate = SafetyGate(registry)

        registry.unregister("BLOCKER")
        assert gate.validate_input(context).is_valid is True
        assert blocker.input_calls == 0


def test_verdicts_are_audited(context, audit_logger):
    gate = SafetyGate(
        [
            CountingRule("scrub", output_verdict=SafetyVerdict.valid("clean")),
        ],
        audit=audit_logger,
    )
    gate.validate_output(context, ToolExecutionResult(output="dirty"))
    SafetyGate([ExplodingRule()], audit=audit_logger).validate_input(context)

    records = [json.loads(line) for line in audit_logger.log_path.read_text().splitlines()]
    assert [r["event"] for r in records] == ["output_sanitized", "input_rejected"]
    assert records[0]["rule_name"] == "scrub"
    assert records[1]["rule_name"] == "Exploding"
    assert records[1]["tool_name"] == "get_workflow_instance_state"
