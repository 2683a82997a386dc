"""Cross-workflow transition detection.

Detection is table driven: each strategy holds a table of regexes and maps
the captured asset phrase to a workflow type through `ASSET_ALIASES`.
Strategies are pluggable via the `TransitionStrategy` protocol.

Key rules:
- The generated response is checked before the user's input
- A target equal to the current workflow type never fires
- Detection only names a target; the lifecycle manager applies the
  security policy and performs the switch
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from cwf.domain.templates.builtin import (
    BLOG_ARTICLE,
    FAQ,
    MEDIA_PITCH,
    PRESS_RELEASE,
    SOCIAL_POST,
)

logger = logging.getLogger(__name__)


class DetectionSource(str, Enum):
    RESPONSE = "response"      # Generated text announced a new workflow
    USER_INPUT = "user_input"  # User asked for a different asset type


@dataclass(frozen=True, slots=True)
class TransitionDetection:
    """A detected switch to another workflow type.

    Attributes:
        target: Workflow type to switch to (template name)
        source: Which text matched
        matched_text: The matched phrase, for logs and events
    """

    target: str
    source: DetectionSource
    matched_text: str


# Asset phrase (lowercase) -> workflow type
ASSET_ALIASES: dict[str, str] = {
    "social post": SOCIAL_POST,
    "social media post": SOCIAL_POST,
    "blog": BLOG_ARTICLE,
    "blog post": BLOG_ARTICLE,
    "blog article": BLOG_ARTICLE,
    "press release": PRESS_RELEASE,
    "media pitch": MEDIA_PITCH,
    "faq": FAQ,
}

_ASSET_PHRASE = r"(social(?: media)? post|blog(?: article| post)?|press release|media pitch|faq)"


def resolve_alias(phrase: str) -> str | None:
    """Map an asset phrase or workflow name to a workflow type."""
    key = re.sub(r"\s+", " ", phrase.strip().lower())
    key = re.sub(r"^(?:new|another)\s+", "", key)
    if key in ASSET_ALIASES:
        return ASSET_ALIASES[key]
    for workflow_type in set(ASSET_ALIASES.values()):
        if workflow_type.lower() == key:
            return workflow_type
    return None


class TransitionStrategy(Protocol):
    """Finds a target workflow type in one turn's text."""

    source: DetectionSource

    def find(self, response_text: str, user_input: str) -> tuple[str, str] | None:
        """Return (workflow_type, matched_text) or None."""
        ...


class RegexTableStrategy:
    """Matches a table of patterns against one of the turn's texts.

    Each pattern's first group captures the asset phrase.
    """

    def __init__(self, source: DetectionSource, patterns: list[re.Pattern[str]]):
        self.source = source
        self._patterns = patterns

    def find(self, response_text: str, user_input: str) -> tuple[str, str] | None:
        text = response_text if self.source == DetectionSource.RESPONSE else user_input
        if not text:
            return None
        for pattern in self._patterns:
            for match in pattern.finditer(text):
                target = resolve_alias(match.group(1))
                if target is not None:
                    return target, match.group(0)
        return None


RESPONSE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"I can help with that! Let me start an? (.*?) workflow", re.IGNORECASE),
    re.compile(r"let me start an? (.*?) workflow for you", re.IGNORECASE),
    re.compile(r"I'll create an? (.*?) workflow", re.IGNORECASE),
    re.compile(
        r"switch to.*?(Social Post|Blog Article|Press Release|Media Pitch|FAQ) workflow",
        re.IGNORECASE,
    ),
]

USER_INPUT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(
        r"\b(?:now|ok|okay|also|do|create|generate|make|write)\s+(?:me\s+)?(?:an?\s+)?"
        + _ASSET_PHRASE + r"\b",
        re.IGNORECASE,
    ),
    re.compile(_ASSET_PHRASE + r"\s+(?:with|using)\s+the\s+same\b", re.IGNORECASE),
]


class TransitionDetector:
    """Runs strategies in order; the first cross-type match wins."""

    def __init__(self, strategies: list[TransitionStrategy] | None = None):
        self.strategies: list[TransitionStrategy] = strategies or [
            RegexTableStrategy(DetectionSource.RESPONSE, RESPONSE_PATTERNS),
            RegexTableStrategy(DetectionSource.USER_INPUT, USER_INPUT_PATTERNS),
        ]

    def detect(
        self, response_text: str, user_input: str, current_workflow_type: str
    ) -> TransitionDetection | None:
        current = current_workflow_type.strip().lower()
        for strategy in self.strategies:
            found = strategy.find(response_text, user_input)
            if found is None:
                continue
            target, matched = found
            if target.lower() == current:
                logger.debug(f"Ignoring self-transition to '{target}'")
                continue
            logger.info(
                f"Detected transition {current_workflow_type} -> {target} "
                f"(source={strategy.source.value})"
            )
            return TransitionDetection(target, strategy.source, matched)
        return None
