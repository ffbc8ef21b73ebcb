"""Minimum-richness checks for generated recipe documents."""

from __future__ import annotations

from typing import Any

from app.core.exceptions import ContentQualityError

REQUIRED_FIELDS: tuple[str, ...] = ("id", "title", "slug", "category", "ingredients", "instructions")

MIN_STRING_LENGTHS: dict[str, int] = {
    "intro": 50,
    "story": 100,
    "testimonial": 30,
}

MIN_LIST_LENGTHS: dict[str, int] = {
    "ingredient_guide": 2,
    "complete_process": 1,
    "must_know_tips": 2,
    "professional_secrets": 2,
    "notes": 2,
    "tools": 2,
    "ingredients": 1,
    "instructions": 3,
    "why_you_love": 3,
    "faq": 3,
}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _count_entries(document: dict[str, Any], field: str) -> int:
    value = document.get(field)
    # Some writers nest list sections as {"title": ..., "items": [...]}.
    if isinstance(value, dict):
        return len(_as_list(value.get("items")))
    return len(_as_list(value))


def validate_recipe_richness(document: dict[str, Any]) -> dict[str, Any]:
    """Evaluate required fields and minimum depth of a recipe document."""
    checks: list[dict[str, Any]] = []
    errors: list[str] = []

    missing = [field for field in REQUIRED_FIELDS if not document.get(field)]
    checks.append({
        "name": "required_fields",
        "passed": not missing,
        "details": {"missing": missing},
    })
    errors.extend(f'Missing required field: "{field}"' for field in missing)

    for field, minimum in MIN_STRING_LENGTHS.items():
        value = document.get(field)
        length = len(value) if isinstance(value, str) else 0
        passed = length >= minimum
        checks.append({
            "name": f"{field}_length",
            "passed": passed,
            "details": {"length": length, "minimum": minimum},
        })
        if not passed:
            errors.append(f'Field "{field}" must be a string with at least {minimum} characters')

    for field, minimum in MIN_LIST_LENGTHS.items():
        count = _count_entries(document, field)
        passed = count >= minimum
        checks.append({
            "name": f"{field}_count",
            "passed": passed,
            "details": {"count": count, "minimum": minimum},
        })
        if not passed:
            errors.append(f'Field "{field}" must have at least {minimum} items')

    return {
        "passed": not errors,
        "errors": errors,
        "checks": checks,
    }


def ensure_recipe_richness(document: dict[str, Any]) -> None:
    """Raise ContentQualityError when the document is too thin to publish."""
    report = validate_recipe_richness(document)
    if not report["passed"]:
        raise ContentQualityError(report["errors"])
