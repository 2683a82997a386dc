"""Prompt builder for constructing step prompts from sections.

Implements the Builder pattern. Context sections are rendered only from a
`FilteredContext`, never from raw retrieval output. Collected information,
drafts and task text are redacted as they are set.
"""
import json
from typing import Any, Self

from cwf.domain.models.context import FilteredContext
from cwf.domain.security import map_strings, redact


class PromptBuilder:
    """Builds prompt text from ordered Markdown sections."""

    def __init__(self) -> None:
        self._role: str | None = None
        self._goal: str | None = None
        self._context: FilteredContext | None = None
        self._collected: dict[str, Any] = {}
        self._artifact: str | None = None
        self._task: str | None = None
        self._constraints: str | None = None
        self._output_format: str | None = None

    def with_role(self, role: str | None) -> Self:
        self._role = role
        return self

    def with_goal(self, goal: str | None) -> Self:
        self._goal = goal
        return self

    def with_context(self, context: FilteredContext | None) -> Self:
        """Set the filtered context (profile, snippets, user input)."""
        self._context = context
        return self

    def with_collected_information(self, collected: dict[str, Any]) -> Self:
        self._collected = map_strings(dict(collected), redact) if collected else {}
        return self

    def with_artifact(self, artifact: str | None) -> Self:
        """Set the current generated asset (review and revision prompts)."""
        self._artifact = redact(artifact) if artifact else artifact
        return self

    def with_task(self, task: str | None) -> Self:
        # Revision tasks quote the user's feedback
        self._task = redact(task) if task else task
        return self

    def with_constraints(self, constraints: str | None) -> Self:
        self._constraints = constraints
        return self

    def with_output_format(self, output_format: str | None) -> Self:
        self._output_format = output_format
        return self

    def build(self) -> str:
        sections = []

        # Canonical order
        if self._role:
            sections.append(f"## Role\n\n{self._role}")
        if self._goal:
            sections.append(f"## Goal\n\n{self._goal}")

        if self._context is not None:
            sections.extend(self._render_context(self._context))

        if self._collected:
            rendered = json.dumps(self._collected, indent=2, ensure_ascii=False, sort_keys=True)
            sections.append(f"## Collected Information\n\n```json\n{rendered}\n```")

        if self._artifact:
            sections.append(f"## Current Draft\n\n{self._artifact}")

        if self._task:
            sections.append(f"## Task\n\n{self._task}")
        if self._constraints:
            sections.append(f"## Constraints\n\n{self._constraints}")
        if self._output_format:
            sections.append(f"## Output Format\n\n{self._output_format}")

        return "\n\n".join(sections)

    @staticmethod
    def _render_context(context: FilteredContext) -> list[str]:
        sections = []
        if context.profile:
            lines = [f"- {key}: {value}" for key, value in sorted(context.profile.items())]
            sections.append("## User Profile\n\n" + "\n".join(lines))
        if context.snippets:
            lines = [f"- ({s.source}) {s.content}" for s in context.snippets]
            sections.append("## Relevant Knowledge\n\n" + "\n".join(lines))
        if context.user_input:
            sections.append(f"## User Message\n\n{context.user_input}")
        return sections
