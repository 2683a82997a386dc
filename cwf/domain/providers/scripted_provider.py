import itertools
import logging
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from cwf.domain.errors import ProviderError

from .generation_provider import GenerationProvider

logger = logging.getLogger(__name__)


class ScriptedProvider(GenerationProvider):
    """Offline provider that replays a fixed list of responses, cycling.

    Responses come from the `responses` argument or from a YAML file holding
    either a list of strings or a mapping with a `responses` list.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        script_file: str | Path | None = None,
    ):
        self._responses = list(responses or [])
        if script_file is not None:
            self._responses.extend(_load_script(Path(script_file)))
        self._cycle = itertools.cycle(self._responses) if self._responses else None
        self.calls: int = 0

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": "scripted",
            "description": "Replays responses from a YAML script (offline runs)",
            "requires_config": True,
            "config_keys": ["responses", "script_file"],
            "supports_streaming": True,
        }

    def validate(self) -> None:
        if not self._responses:
            raise ProviderError(
                "Scripted provider has no responses. "
                "Set provider_config.responses or provider_config.script_file."
            )

    def complete(self, prompt: str, prior_turns: list[dict[str, Any]]) -> str:
        if self._cycle is None:
            raise ProviderError("Scripted provider has no responses")
        self.calls += 1
        response = next(self._cycle)
        logger.debug(f"Scripted response #{self.calls} ({len(response)} chars)")
        return response

    def complete_stream(
        self, prompt: str, prior_turns: list[dict[str, Any]]
    ) -> Iterator[str]:
        # Word-sized chunks, whitespace kept with the preceding word
        text = self.complete(prompt, prior_turns)
        for chunk in re.findall(r"\S+\s*|\s+", text):
            yield chunk


def _load_script(path: Path) -> list[str]:
    if not path.is_file():
        raise ProviderError(f"Script file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ProviderError(f"Invalid YAML in script file {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("responses")
    if not isinstance(data, list) or not all(isinstance(r, str) for r in data):
        raise ProviderError(
            f"Script file {path} must contain a list of strings "
            "or a mapping with a 'responses' list"
        )
    return data
