import pytest

from furniture_finder.analysis import (
    CLASSIFICATION_PROMPT,
    DESCRIPTION_SYSTEM_PROMPT,
    analyze_furniture_image,
    build_description_prompt,
    parse_classification,
    parse_classification_strict,
)
from furniture_finder.errors import MalformedAnalysisError

from conftest import FURNITURE_REPLY, PNG_BYTES, FakeProvider


def test_parse_furniture_reply_extracts_lowercased_fields():
    result = parse_classification(FURNITURE_REPLY)

    assert result is not None
    assert result.is_furniture is True
    assert result.category == "seating"
    assert result.type == "bench"
    assert result.description == "Solid oak bench with a natural finish."


def test_parse_is_case_insensitive_and_first_match_wins():
    reply = "FURNITURE\ncategory:   Tables  \nTYPE: Coffee Table\ntype: desk\nDescription: Low walnut table"
    result = parse_classification(reply)

    assert result.category == "tables"
    assert result.type == "coffee table"


def test_description_spans_following_lines():
    reply = "FURNITURE\nType: sofa\nDescription: Three-seat sofa.\nGrey linen upholstery.\n"
    result = parse_classification(reply)

    assert result.description == "Three-seat sofa.\nGrey linen upholstery."
    assert result.category is None


def test_parse_tolerates_markdown_emphasis():
    reply = "**FURNITURE**\n**Category:** Storage\n**Type:** Cabinet\n**Description:** Tall pine cabinet"
    result = parse_classification(reply)

    assert result.category == "storage"
    assert result.type == "cabinet"


def test_parse_not_furniture_keeps_reason():
    result = parse_classification("NOT_FURNITURE: The image shows a golden retriever.")

    assert result.is_furniture is False
    assert result.rejection_reason == "The image shows a golden retriever."


def test_parse_rejects_reply_without_marker():
    refusal = "I'm sorry, I can't identify anything in this image."

    result = parse_classification(refusal)

    assert result.is_furniture is False
    assert result.rejection_reason == refusal
    assert parse_classification_strict(refusal).is_furniture is False


def test_parse_accepts_spaced_not_furniture_marker():
    result = parse_classification("NOT FURNITURE: this is a cat")

    assert result.is_furniture is False
    assert result.rejection_reason == "this is a cat"


def test_parse_returns_none_when_furniture_has_no_fields():
    assert parse_classification("FURNITURE\nit is a chair") is None
    with pytest.raises(MalformedAnalysisError):
        parse_classification_strict("FURNITURE\nit is a chair")


def test_empty_reply_is_a_rejection():
    result = parse_classification("   ")

    assert result.is_furniture is False
    assert result.rejection_reason


def test_description_prompt_appends_user_text():
    assert "Additional user requirements" not in build_description_prompt(None)
    assert build_description_prompt("  dark wood  ").endswith('Additional user requirements: "dark wood".')


def test_non_furniture_skips_description_stage():
    provider = FakeProvider(["NOT_FURNITURE: a cat"])

    outcome = analyze_furniture_image(provider, PNG_BYTES, user_text="cheap")

    assert outcome.analysis.is_furniture is False
    assert outcome.analysis.rejection_reason == "a cat"
    assert outcome.vision_description is None
    assert len(provider.vision_calls) == 1


def test_user_text_only_reaches_description_stage():
    provider = FakeProvider([FURNITURE_REPLY, "A long oak bench, 120cm wide."])

    outcome = analyze_furniture_image(provider, PNG_BYTES, user_text="under $300")

    (first_prompt, first_system), (second_prompt, second_system) = provider.vision_calls
    assert first_prompt == CLASSIFICATION_PROMPT
    assert first_system is None
    assert "under $300" in second_prompt
    assert second_system == DESCRIPTION_SYSTEM_PROMPT
    assert outcome.vision_description == "A long oak bench, 120cm wide."
    assert outcome.analysis.type == "bench"


def test_malformed_reply_degrades_instead_of_failing():
    provider = FakeProvider(["FURNITURE\nSure! It's some kind of seat.", "A wooden seat."])

    outcome = analyze_furniture_image(provider, PNG_BYTES)

    assert outcome.analysis.is_furniture is True
    assert outcome.analysis.malformed is True
    assert outcome.analysis.category is None
    assert outcome.analysis.type is None
    assert outcome.analysis.description == "FURNITURE\nSure! It's some kind of seat."
    assert outcome.vision_description == "A wooden seat."


@pytest.mark.parametrize(
    "reply",
    ["I'm sorry, I can't identify anything in this image.", "NOT FURNITURE: this is a cat"],
)
def test_replies_without_furniture_marker_skip_description_stage(reply):
    provider = FakeProvider([reply, "should never be requested"])

    outcome = analyze_furniture_image(provider, PNG_BYTES)

    assert outcome.analysis.is_furniture is False
    assert outcome.analysis.malformed is False
    assert outcome.vision_description is None
    assert len(provider.vision_calls) == 1
