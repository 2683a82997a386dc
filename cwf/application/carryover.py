"""Context carried from a finished workflow into the one that replaces it."""

from typing import Any

from cwf.domain.models.step_payloads import DialogMode, DialogPayload, GenerationPayload
from cwf.domain.models.workflow import Workflow

_COMPANY_FIELDS = {
    "name": ("companyName", "company_name", "company"),
    "description": ("companyDescription", "company_description"),
    "industry": ("industry",),
}

_PASSTHROUGH_FIELDS = {
    "announcement": ("announcement", "coreMessage", "topic"),
    "target_audience": ("targetAudience", "target_audience", "audience"),
    "tone": ("tone", "brandVoice"),
}


def extract_carryover(workflow: Workflow) -> dict[str, Any]:
    """Collect company profile, key facts and the latest artifact.

    Only non-empty values are returned.
    """
    collected: dict[str, Any] = {}
    latest_asset: str | None = None
    for step in workflow.ordered_steps():
        payload = step.payload
        if isinstance(payload, DialogPayload) and payload.mode == DialogMode.COLLECT:
            collected.update(payload.collected_information)
        elif isinstance(payload, GenerationPayload) and payload.generated_asset:
            latest_asset = payload.generated_asset

    carryover: dict[str, Any] = {}

    company = collected.get("companyInfo")
    company = dict(company) if isinstance(company, dict) else {}
    for field, keys in _COMPANY_FIELDS.items():
        if not company.get(field):
            value = _first(collected, keys)
            if value:
                company[field] = value
    company = {k: v for k, v in company.items() if k in _COMPANY_FIELDS and v}
    if company:
        carryover["company_info"] = company

    for field, keys in _PASSTHROUGH_FIELDS.items():
        value = _first(collected, keys)
        if value:
            carryover[field] = value

    if latest_asset:
        carryover["previous_content"] = latest_asset
    return carryover


def seed_information(
    carryover: dict[str, Any], target_type: str, source_type: str
) -> dict[str, Any]:
    """Shape carryover as the target's initial collected information."""
    seeded: dict[str, Any] = {"assetType": target_type}
    if carryover.get("company_info"):
        seeded["companyInfo"] = carryover["company_info"]
    if carryover.get("previous_content"):
        seeded["previousContent"] = carryover["previous_content"]
    if carryover.get("announcement"):
        seeded["announcement"] = carryover["announcement"]
    if carryover.get("target_audience"):
        seeded["targetAudience"] = carryover["target_audience"]
    if carryover.get("tone"):
        seeded["tone"] = carryover["tone"]
    seeded["carryoverFromWorkflow"] = source_type
    seeded["carryoverNote"] = f"Using information from previous {source_type} workflow"
    return seeded


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None
