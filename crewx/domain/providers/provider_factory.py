from pathlib import Path
from typing import Any

from crewx.domain.models.timeout_config import TimeoutConfig

from .ai_provider import AIProvider


class ProviderFactory:
    """Factory for built-in provider instances (Factory pattern).

    Configured plugin and remote providers are built by
    DynamicProviderFactory instead.
    """

    _registry: dict[str, type[AIProvider]] = {}

    @classmethod
    def register(cls, key: str, provider_class: type[AIProvider]) -> None:
        """
        Register a provider implementation.

        Args:
            key: Provider identity (e.g., "cli/claude", "mock/default")
            provider_class: The provider class to register
        """
        cls._registry[key] = provider_class

    @classmethod
    def create(
        cls,
        provider_key: str,
        *,
        timeouts: TimeoutConfig | None = None,
        logs_dir: Path | None = None,
    ) -> AIProvider:
        """
        Create a provider instance.

        Raises:
            KeyError: If provider_key is not registered
        """
        if provider_key not in cls._registry:
            available = ", ".join(cls._registry.keys())
            raise KeyError(
                f"Provider: '{provider_key}' not found. "
                f"Available providers: {available}"
            )

        provider_class = cls._registry[provider_key]
        return provider_class(timeouts=timeouts, logs_dir=logs_dir)  # type: ignore[call-arg]

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._registry.keys())

    @classmethod
    def get_all_metadata(cls) -> list[dict[str, Any]]:
        return [
            provider_class.get_metadata()
            for provider_class in cls._registry.values()
        ]

    @classmethod
    def get_metadata(cls, provider_key: str) -> dict[str, Any] | None:
        """
        Get metadata for a specific provider.

        Returns:
            Metadata dict if found, None otherwise
        """
        if provider_key not in cls._registry:
            return None
        return cls._registry[provider_key].get_metadata()
