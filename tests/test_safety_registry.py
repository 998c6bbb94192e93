"""Tests for SafetyRuleRegistry and YAML chain loading."""

from pathlib import Path

import pytest
import yaml

from conftest import CountingRule
from copilot_guard.safety import (
    PiiScrubbingRule,
    SafetyRule,
    SafetyRuleRegistry,
    StructuralValidationRule,
)

SHIPPED_CONFIG = Path(__file__).resolve().parent.parent / "config" / "safety_rules.yaml"


def _write(tmp_path, text):
    path = tmp_path / "safety_rules.yaml"
    path.write_text(text)
    return str(path)


class TestRegistration:
    """Tests for register/unregister semantics."""

    def test_registration_order_is_chain_order(self):
        registry = SafetyRuleRegistry([CountingRule("a"), CountingRule("b"), CountingRule("c")])
        assert [r.name for r in registry.list()] == ["a", "b", "c"]

    def test_same_name_replaces_in_place(self):
        registry = SafetyRuleRegistry([CountingRule("a"), CountingRule("b"), CountingRule("c")])
        replacement = CountingRule("B")

        registry.register(replacement)

        assert len(registry) == 3
        assert registry.list()[1] is replacement

    def test_lookup_is_case_insensitive(self):
        rule = CountingRule("PII Scrubbing")
        registry = SafetyRuleRegistry([rule])
        assert registry.get("pii scrubbing") is rule

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_nameless_rule_rejected(self, name):
        rule = SafetyRule()
        rule.name = name
        with pytest.raises(ValueError):
            SafetyRuleRegistry().register(rule)

    def test_unregister(self):
        registry = SafetyRuleRegistry([CountingRule("a")])
        assert registry.unregister("A") is True
        assert registry.unregister("a") is False
        assert len(registry) == 0

    def test_list_is_a_snapshot(self):
        registry = SafetyRuleRegistry([CountingRule("a")])
        snapshot = registry.list()
        registry.register(CountingRule("b"))
        assert len(snapshot) == 1


class TestFromYaml:
    """Tests for building the chain from configuration."""

    def test_shipped_config(self):
        registry = SafetyRuleRegistry.from_yaml(str(SHIPPED_CONFIG))
        rules = registry.list()
        assert isinstance(rules[0], StructuralValidationRule)
        assert isinstance(rules[1], PiiScrubbingRule)

    def test_missing_file_uses_default_chain(self, tmp_path):
        registry = SafetyRuleRegistry.from_yaml(str(tmp_path / "absent.yaml"))
        assert [r.name for r in registry.list()] == ["Structural Validation", "PII Scrubbing"]

    def test_empty_file_uses_default_chain(self, tmp_path):
        assert len(SafetyRuleRegistry.from_yaml(_write(tmp_path, ""))) == 2

    def test_order_follows_file(self, tmp_path):
        path = _write(tmp_path, "rules:\n  - pii_scrubbing\n  - name: structural_validation\n")
        names = [r.name for r in SafetyRuleRegistry.from_yaml(path).list()]
        assert names == ["PII Scrubbing", "Structural Validation"]

    def test_disabled_rule_skipped(self, tmp_path):
        path = _write(
            tmp_path,
            "rules:\n"
            "  - name: structural_validation\n"
            "  - name: pii_scrubbing\n"
            "    enabled: false\n",
        )
        assert [r.name for r in SafetyRuleRegistry.from_yaml(path).list()] == [
            "Structural Validation"
        ]

    def test_unknown_rule_rejected(self, tmp_path):
        path = _write(tmp_path, "rules:\n  - name: profanity_filter\n")
        with pytest.raises(ValueError, match="Unknown safety rule 'profanity_filter'"):
            SafetyRuleRegistry.from_yaml(path)

    @pytest.mark.parametrize("text", ["- pii_scrubbing\n", "rules: pii_scrubbing\n", "rules:\n  - 42\n"])
    def test_invalid_structure_rejected(self, tmp_path, text):
        with pytest.raises(ValueError):
            SafetyRuleRegistry.from_yaml(_write(tmp_path, text))

    def test_malformed_yaml_raises(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            SafetyRuleRegistry.from_yaml(_write(tmp_path, "rules: [unclosed\n"))
