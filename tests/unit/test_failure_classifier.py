"""Unit tests for failure stage classification."""

import pytest

from app.core.exceptions import (
    ContentQualityError,
    NoAuthorAvailableError,
    StageFailure,
    VerificationError,
)
from app.services.failure_classifier import classify_failure, classify_message


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Incomplete SEO data generated", "SEO_GENERATION"),
        ("seo provider timeout", "SEO_GENERATION"),
        ("Image 3 generation failed after 3 attempts", "IMAGE_GENERATION"),
        ("image upload rejected", "IMAGE_GENERATION"),
        ("Recipe publish failed", "RECIPE_GENERATION"),
        ("recipe document invalid", "RECIPE_GENERATION"),
        ("Google API quota exceeded", "GOOGLE_INDEXING"),
        ("index request rejected", "GOOGLE_INDEXING"),
        ("Pinterest webhook returned 500", "PINTEREST_INTEGRATION"),
        ("connection reset by peer", "UNKNOWN"),
        ("", "UNKNOWN"),
    ],
)
def test_classify_message(message: str, expected: str) -> None:
    assert classify_message(message) == expected


def test_first_matching_rule_wins() -> None:
    assert classify_message("SEO image mismatch") == "SEO_GENERATION"
    assert classify_message("image for recipe missing") == "IMAGE_GENERATION"


def test_typed_stage_beats_message_keywords() -> None:
    error = StageFailure("RECIPE_GENERATION", "image roles missing from document")

    assert classify_failure(error) == "RECIPE_GENERATION"


def test_content_quality_error_is_recipe_stage() -> None:
    assert classify_failure(ContentQualityError(['Field "faq" must have at least 3 items'])) == (
        "RECIPE_GENERATION"
    )


def test_untyped_errors_fall_back_to_message() -> None:
    assert classify_failure(RuntimeError("Image store unavailable")) == "IMAGE_GENERATION"
    assert classify_failure(VerificationError("/uploads/a.webp", "file is empty")) == "UNKNOWN"
    assert classify_failure("Pinterest down") == "PINTEREST_INTEGRATION"


def test_missing_author_is_unknown_stage() -> None:
    assert classify_failure(NoAuthorAvailableError()) == "UNKNOWN"
