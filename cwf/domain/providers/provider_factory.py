from typing import Any

from .generation_provider import GenerationProvider


class ProviderFactory:
    """Factory for creating generation provider instances (Factory pattern)."""

    _registry: dict[str, type[GenerationProvider]] = {}

    @classmethod
    def register(cls, key: str, provider_class: type[GenerationProvider]) -> None:
        """
        Register a provider implementation.

        Args:
            key: Provider identifier (e.g., "scripted")
            provider_class: The provider class to register
        """
        cls._registry[key] = provider_class

    @classmethod
    def create(
        cls, provider_key: str, config: dict[str, Any] | None = None
    ) -> GenerationProvider:
        """
        Create a provider instance.

        Args:
            provider_key: Registered provider identifier
            config: Keyword arguments for the provider constructor

        Returns:
            Instantiated GenerationProvider

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
        return provider_class(**(config or {}))

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
        """Return metadata for one provider, or None if it is not registered."""
        if provider_key not in cls._registry:
            return None
        return cls._registry[provider_key].get_metadata()
