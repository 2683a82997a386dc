"""Tests for dialog and generation completion parsing."""

import pytest

from cwf.application.dialog_parser import (
    extract_json_object,
    parse_dialog_result,
    parse_generated_asset,
)
from cwf.domain.models.step_payloads import ReviewDecision
from tests.fakes.fake_generation_provider import dialog, review


class TestExtractJsonObject:
    def test_plain_object(self) -> None:
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_object_with_prose(self) -> None:
        text = 'Sure, here you go:\n```json\n{"isComplete": true}\n```\nThanks!'

        assert extract_json_object(text) == {"isComplete": True}

    def test_skips_braces_that_are_not_json(self) -> None:
        assert extract_json_object('set {x} then {"ok": true}') == {"ok": True}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]"])
    def test_no_object(self, text: str) -> None:
        assert extract_json_object(text) is None


class TestParseDialogResult:
    def test_incomplete_dialog(self) -> None:
        result = parse_dialog_result(dialog(False, "What is the headline?", companyName="Acme"))

        assert result.valid is True
        assert result.is_complete is False
        assert result.next_question == "What is the headline?"
        assert result.collected_information == {"companyName": "Acme"}

    def test_unparseable_output_is_invalid(self) -> None:
        assert parse_dialog_result("I am not sure what you mean").valid is False

    def test_non_boolean_is_complete_is_invalid(self) -> None:
        assert parse_dialog_result('{"isComplete": "yes"}').valid is False

    def test_non_dict_collected_information_is_invalid(self) -> None:
        assert parse_dialog_result('{"isComplete": true, "collectedInformation": [1]}').valid is False

    def test_review_decision_and_changes(self) -> None:
        result = parse_dialog_result(review("revision_requested", "Shorter headline"))

        assert result.review_decision == ReviewDecision.REVISION_REQUESTED
        assert result.requested_changes == ["Shorter headline"]

    def test_unknown_review_decision_is_unclear(self) -> None:
        result = parse_dialog_result(
            '{"isComplete": false, "collectedInformation": {"reviewDecision": "maybe"}}'
        )

        assert result.review_decision == ReviewDecision.UNCLEAR

    def test_top_level_review_fields_and_string_changes(self) -> None:
        result = parse_dialog_result(
            '{"isComplete": false, "reviewDecision": "Approved", "requestedChanges": "none"}'
        )

        assert result.review_decision == ReviewDecision.APPROVED
        assert result.requested_changes == ["none"]


class TestParseGeneratedAsset:
    def test_asset_field(self) -> None:
        assert parse_generated_asset('{"asset": "  Headline\\n\\nBody  "}') == "Headline\n\nBody"

    def test_plain_text(self) -> None:
        assert parse_generated_asset("  Just the release.  ") == "Just the release."
