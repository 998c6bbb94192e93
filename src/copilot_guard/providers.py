"""AI provider registry and factory."""

from threading import Lock
from typing import Any, Optional, Protocol

from loguru import logger

from .config import Config
from .errors import ProviderNotFoundError


class AiProvider(Protocol):
    """A chat-completion backend the orchestrator can talk to."""

    name: str
    display_name: str

    def create_client(self) -> Any:
        """Create a client for this provider."""


class AiProviderRegistry:
    """
    Thread-safe registry of AI providers keyed by case-insensitive name.

    Registering a provider under an existing name replaces it.
    """

    def __init__(self):
        self._lock = Lock()
        self._providers: dict[str, AiProvider] = {}

    def register(self, provider: AiProvider) -> None:
        if not getattr(provider, "name", None):
            raise ValueError("AI provider must have a non-empty name")
        with self._lock:
            self._providers[provider.name.lower()] = provider
        logger.info(f"Registered AI provider '{provider.name}'")

    def get(self, name: str) -> Optional[AiProvider]:
        if not name:
            return None
        with self._lock:
            return self._providers.get(name.lower())

    def list(self) -> list[AiProvider]:
        with self._lock:
            return list(self._providers.values())


class AiProviderFactory:
    """Resolves providers by name, with a configured default."""

    def __init__(self, registry: AiProviderRegistry, default_provider: Optional[str] = None):
        self._registry = registry
        self._default_provider = (
            default_provider if default_provider is not None else Config.DEFAULT_AI_PROVIDER
        )

    def get_default(self) -> Optional[AiProvider]:
        """Default provider, or None when no default is configured or registered."""
        if not self._default_provider or not self._default_provider.strip():
            return None
        return self._registry.get(self._default_provider)

    def get(self, name: str) -> Optional[AiProvider]:
        return self._registry.get(name)

    def require(self, name: str) -> AiProvider:
        """
        Resolve a provider by name.

        Raises:
            ProviderNotFoundError: If no provider is registered under name
        """
        provider = self._registry.get(name)
        if provider is None:
            raise ProviderNotFoundError(name)
        return provider
