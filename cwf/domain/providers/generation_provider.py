from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any


class GenerationProvider(ABC):
    """Abstract interface for text generation backends (Strategy pattern)."""

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return provider metadata for discovery commands.

        Returns:
            dict with keys: name, description, requires_config, config_keys,
                           supports_streaming
        """
        return {
            "name": "unknown",
            "description": "No description available",
            "requires_config": False,
            "config_keys": [],
            "supports_streaming": False,
        }

    @abstractmethod
    def validate(self) -> None:
        """Verify provider is usable before the first turn runs.

        Raises:
            ProviderError: If provider is misconfigured or unreachable
        """
        ...

    @abstractmethod
    def complete(self, prompt: str, prior_turns: list[dict[str, Any]]) -> str:
        """Generate a completion for the given prompt.

        Args:
            prompt: Fully assembled prompt text
            prior_turns: Recent (already redacted) thread messages, oldest first

        Returns:
            The completion text

        Raises:
            ProviderError: If the call fails (network, timeout, 5xx, etc.)
        """
        ...

    def complete_stream(
        self, prompt: str, prior_turns: list[dict[str, Any]]
    ) -> Iterator[str]:
        """Yield completion chunks. Defaults to one chunk from `complete`.

        Raises:
            ProviderError: If the call fails before or during the stream
        """
        yield self.complete(prompt, prior_turns)
