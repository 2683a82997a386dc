"""Typed step payloads.

Each step carries exactly one payload variant, selected by `kind`. The
variant is the step's schema for collected information, generated artifacts
and flags, so readers never inspect an untyped metadata bag.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class DialogMode(str, Enum):
    """What a dialog step is collecting."""

    COLLECT = "collect"  # Gather information for a later generation step
    SELECT = "select"    # Pick the workflow to run next (idle workflow)
    REVIEW = "review"    # Approve or request revisions of a generated asset


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    UNCLEAR = "unclear"


class _PayloadBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    goal: str = ""
    # Lifecycle Manager runs the step without waiting for user input
    auto_execute: bool = False


class DialogPayload(_PayloadBase):
    kind: Literal["dialog"] = "dialog"

    mode: DialogMode = DialogMode.COLLECT
    instructions: str = ""
    options: list[str] = Field(default_factory=list)
    collected_information: dict[str, Any] = Field(default_factory=dict)

    # Review mode
    review_decision: ReviewDecision | None = None
    requested_changes: list[str] = Field(default_factory=list)
    revision_count: int = 0

    # Set when a previous workflow seeded collected_information
    context_carried_over: bool = False


class GenerationPayload(_PayloadBase):
    kind: Literal["generation"] = "generation"

    instructions: str = ""
    generated_asset: str | None = None
    # Previous versions, oldest first; the current one is generated_asset
    asset_history: list[str] = Field(default_factory=list)


class TitlePayload(_PayloadBase):
    kind: Literal["title"] = "title"

    title_format: str = "{workflow} - {date}"
    title: str | None = None


StepPayload = Annotated[
    Union[DialogPayload, GenerationPayload, TitlePayload],
    Field(discriminator="kind"),
]
