"""Concurrency-safe registry of safety rules, keyed by rule name."""

from pathlib import Path
from threading import Lock
from typing import Iterable, Optional

import yaml
from loguru import logger

from .rules import BUILTIN_RULES, SafetyRule, default_rules


class SafetyRuleRegistry:
    """
    Ordered, thread-safe registry of safety rules.

    Features:
    - Registration order is chain order
    - Case-insensitive unique names; re-registering replaces in place
    - Chain built from YAML (config/safety_rules.yaml)

    Readers take a snapshot via list(), so a validation pass never observes
    a chain that is modified mid-iteration.
    """

    def __init__(self, rules: Optional[Iterable[SafetyRule]] = None):
        self._lock = Lock()
        self._rules: dict[str, SafetyRule] = {}
        for rule in rules or []:
            self.register(rule)

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().lower()

    def register(self, rule: SafetyRule) -> None:
        """
        Add a rule to the end of the chain, or replace a rule with the same name.

        Raises:
            ValueError: If the rule has no name
        """
        name = getattr(rule, "name", None)
        if not name or not str(name).strip():
            raise ValueError("Safety rule must have a non-empty name")

        with self._lock:
            key = self._key(name)
            replaced = key in self._rules
            self._rules[key] = rule

        if replaced:
            logger.info(f"Replaced safety rule '{name}'")
        else:
            logger.debug(f"Registered safety rule '{name}'")

    def unregister(self, name: str) -> bool:
        """Remove a rule by name. Returns True if a rule was removed."""
        with self._lock:
            return self._rules.pop(self._key(name), None) is not None

    def get(self, name: str) -> Optional[SafetyRule]:
        with self._lock:
            return self._rules.get(self._key(name))

    def list(self) -> list[SafetyRule]:
        """Snapshot of the chain in registration order."""
        with self._lock:
            return list(self._rules.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "SafetyRuleRegistry":
        """
        Build a registry from a YAML chain definition.

        Expected structure:
            rules:
              - name: structural_validation
              - name: pii_scrubbing
                enabled: false

        A missing file yields the default chain.

        Raises:
            ValueError: If the YAML structure is invalid or names an unknown rule
            yaml.YAMLError: If YAML is malformed
        """
        yaml_file = Path(yaml_path)
        if not yaml_file.exists():
            logger.debug(f"Safety rule config not found at {yaml_path}, using default chain")
            return cls(default_rules())

        with open(yaml_file) as f:
            data = yaml.safe_load(f)

        if not data:
            logger.debug("Safety rule config is empty, using default chain")
            return cls(default_rules())

        if not isinstance(data, dict):
            raise ValueError(f"Invalid YAML structure: expected dict, got {type(data).__name__}")

        entries = data.get("rules", [])
        if not isinstance(entries, list):
            raise ValueError("'rules' must be a list")

        registry = cls()
        for entry in entries:
            if isinstance(entry, str):
                entry = {"name": entry}
            if not isinstance(entry, dict) or "name" not in entry:
                raise ValueError(f"Invalid safety rule entry: {entry!r}")

            rule_key = str(entry["name"]).strip().lower()
            rule_cls = BUILTIN_RULES.get(rule_key)
            if rule_cls is None:
                raise ValueError(
                    f"Unknown safety rule '{entry['name']}' "
                    f"(known: {', '.join(sorted(BUILTIN_RULES))})"
                )

            if not entry.get("enabled", True):
                logger.info(f"Safety rule '{rule_key}' disabled via config")
                continue

            registry.register(rule_cls())

        logger.info(f"Loaded {len(registry)} safety rules from {yaml_path}")
        return registry
