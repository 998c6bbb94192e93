"""Centralized configuration for the guardrail pipeline."""

import os
from pathlib import Path

# Default: config/ relative to project root
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """
    Guardrail configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Values can be overridden via environment variables.
    """

    @staticmethod
    def _parse_port(port_str: str) -> int:
        """Parse and validate port number from string."""
        try:
            port = int(port_str)
            if not (1 <= port <= 65535):
                raise ValueError(f"Port must be 1-65535, got {port}")
            return port
        except ValueError as e:
            raise ValueError(f"Invalid PORT environment variable: {e}")

    # ========================================================================
    # Tool Server Configuration
    # ========================================================================
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = _parse_port.__func__(os.getenv("PORT", "8002"))

    # ========================================================================
    # Audit Trail
    # ========================================================================
    AUDIT_ENABLED: bool = _parse_bool(os.getenv("AUDIT_ENABLED", "true"))
    AUDIT_LOG_PATH: str = os.getenv("AUDIT_LOG_PATH", "./audit.jsonl")

    # ========================================================================
    # Safety Gate
    # ========================================================================
    SAFETY_RULES_YAML_PATH: str = os.getenv(
        "SAFETY_RULES_YAML_PATH", str(_CONFIG_DIR / "safety_rules.yaml")
    )

    # ========================================================================
    # Workflow Definitions and Activity Catalog
    # ========================================================================
    DEFINITION_KEY_PREFIX: str = os.getenv("DEFINITION_KEY_PREFIX", "workflow:definition:")
    ACTIVITY_CATALOG_YAML_PATH: str = os.getenv(
        "ACTIVITY_CATALOG_YAML_PATH", str(_CONFIG_DIR / "activity_catalog.yaml")
    )

    # ========================================================================
    # Diagnostics
    # ========================================================================
    SNAPSHOT_TIMEOUT_SECONDS: float = float(os.getenv("SNAPSHOT_TIMEOUT_SECONDS", "10"))

    # ========================================================================
    # Redis Configuration (workflow instance store)
    # ========================================================================
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    REDIS_MAX_CONNECTIONS: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "50"))
    REDIS_SOCKET_CONNECT_TIMEOUT: float = float(
        os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "2")
    )
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))
    INSTANCE_KEY_PREFIX: str = os.getenv("INSTANCE_KEY_PREFIX", "workflow:instance:")

    # ========================================================================
    # AI Providers
    # ========================================================================
    DEFAULT_AI_PROVIDER: str = os.getenv("DEFAULT_AI_PROVIDER", "")

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        errors = []

        if cls.SNAPSHOT_TIMEOUT_SECONDS <= 0:
            errors.append(
                f"SNAPSHOT_TIMEOUT_SECONDS must be > 0, got {cls.SNAPSHOT_TIMEOUT_SECONDS}"
            )

        if cls.AUDIT_ENABLED and not cls.AUDIT_LOG_PATH:
            errors.append("AUDIT_LOG_PATH must be set when AUDIT_ENABLED is true")

        if not cls.INSTANCE_KEY_PREFIX:
            errors.append("INSTANCE_KEY_PREFIX must not be empty")

        if cls.REDIS_MAX_CONNECTIONS <= 0:
            errors.append(
                f"REDIS_MAX_CONNECTIONS must be > 0, got {cls.REDIS_MAX_CONNECTIONS}"
            )
        if cls.REDIS_SOCKET_CONNECT_TIMEOUT <= 0:
            errors.append(
                "REDIS_SOCKET_CONNECT_TIMEOUT must be > 0, "
                f"got {cls.REDIS_SOCKET_CONNECT_TIMEOUT}"
            )
        if cls.REDIS_SOCKET_TIMEOUT <= 0:
            errors.append(
                f"REDIS_SOCKET_TIMEOUT must be > 0, got {cls.REDIS_SOCKET_TIMEOUT}"
            )

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True
