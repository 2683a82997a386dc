"""Fake generation provider returning queued responses.

Used to drive dialog, generation, review and title steps without a model.
"""

import json
from collections.abc import Iterator
from typing import Any

from cwf.domain.errors import ProviderError
from cwf.domain.providers.generation_provider import GenerationProvider


class FakeGenerationProvider(GenerationProvider):
    """Configurable fake for testing.

    Responses are consumed in order; once the queue is empty `default` is
    returned. Tracks every prompt for assertions.

    Usage:
        provider = FakeGenerationProvider([dialog(True, companyName="Acme")])

        # Fail the next two calls, then answer
        provider = FakeGenerationProvider(["ok"], failures=2)
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        *,
        failures: int = 0,
        default: str = "",
        stream_fail_after: int | None = None,
    ):
        self.responses = list(responses or [])
        self.failures = failures
        self.default = default
        self.stream_fail_after = stream_fail_after
        self.prompts: list[str] = []
        self.prior_turns: list[list[dict[str, Any]]] = []

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": "fake",
            "description": "Fake provider for testing",
            "requires_config": False,
            "config_keys": [],
            "supports_streaming": True,
        }

    def validate(self) -> None:
        pass  # Always valid

    def queue(self, *responses: str) -> None:
        self.responses.extend(responses)

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def complete(self, prompt: str, prior_turns: list[dict[str, Any]]) -> str:
        self.prompts.append(prompt)
        self.prior_turns.append(prior_turns)
        if self.failures > 0:
            self.failures -= 1
            raise ProviderError("fake adapter unavailable")
        if self.responses:
            return self.responses.pop(0)
        return self.default

    def complete_stream(
        self, prompt: str, prior_turns: list[dict[str, Any]]
    ) -> Iterator[str]:
        text = self.complete(prompt, prior_turns)
        words = text.split(" ")
        for i, word in enumerate(words):
            if self.stream_fail_after is not None and i >= self.stream_fail_after:
                self.stream_fail_after = None
                raise ProviderError("fake stream dropped")
            yield word if i == len(words) - 1 else word + " "


def dialog(is_complete: bool, next_question: str | None = None, **collected: Any) -> str:
    """A dialog completion in the JSON shape dialog steps expect."""
    return json.dumps(
        {
            "isComplete": is_complete,
            "nextQuestion": next_question,
            "collectedInformation": collected,
        }
    )


def selection(workflow: str) -> str:
    return dialog(True, selectedWorkflow=workflow)


def review(decision: str, *changes: str, next_question: str | None = None) -> str:
    return json.dumps(
        {
            "isComplete": decision == "approved",
            "nextQuestion": next_question,
            "collectedInformation": {
                "reviewDecision": decision,
                "requestedChanges": list(changes),
            },
        }
    )


def asset(text: str) -> str:
    return json.dumps({"asset": text})
