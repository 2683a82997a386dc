"""Parsing of structured completions.

Dialog steps expect a JSON object of the form::

    {"isComplete": bool, "nextQuestion": str | null,
     "collectedInformation": {...}}

Review dialogs carry `reviewDecision` and `requestedChanges` inside
`collectedInformation` (top-level keys are accepted too). Generation steps
may answer `{"asset": "..."}` or plain text.
"""

import json
import logging
import re
from typing import Any

from cwf.domain.models.step_payloads import ReviewDecision
from cwf.domain.models.turn import DialogResult

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in `text`, or None."""
    candidates = [m.group(1) for m in _FENCE_RE.finditer(text)]
    candidates.append(text)

    decoder = json.JSONDecoder()
    for candidate in candidates:
        start = candidate.find("{")
        while start != -1:
            try:
                value, _ = decoder.raw_decode(candidate, start)
            except json.JSONDecodeError:
                start = candidate.find("{", start + 1)
                continue
            if isinstance(value, dict):
                return value
            start = candidate.find("{", start + 1)
    return None


def parse_dialog_result(text: str) -> DialogResult:
    """Parse a dialog completion. Unparseable output yields `valid=False`."""
    data = extract_json_object(text)
    if data is None or not isinstance(data.get("isComplete", False), bool):
        logger.debug(f"Dialog completion did not parse ({len(text)} chars)")
        return DialogResult(valid=False)

    collected = data.get("collectedInformation") or {}
    if not isinstance(collected, dict):
        return DialogResult(valid=False)

    next_question = data.get("nextQuestion")
    if next_question is not None and not isinstance(next_question, str):
        next_question = str(next_question)

    raw_decision = collected.get("reviewDecision", data.get("reviewDecision"))
    decision = None
    if raw_decision is not None:
        try:
            decision = ReviewDecision(str(raw_decision).strip().lower())
        except ValueError:
            decision = ReviewDecision.UNCLEAR

    changes = collected.get("requestedChanges", data.get("requestedChanges")) or []
    if isinstance(changes, str):
        changes = [changes]

    return DialogResult(
        is_complete=data.get("isComplete", False),
        next_question=next_question,
        collected_information=collected,
        review_decision=decision,
        requested_changes=[str(c) for c in changes],
    )


def parse_generated_asset(text: str) -> str:
    """Return the `asset` field of a JSON answer, or the stripped raw text."""
    data = extract_json_object(text)
    if data is not None and isinstance(data.get("asset"), str):
        return data["asset"].strip()
    return text.strip()
