"""Map pipeline errors onto the failure stage recorded on a work item."""

from __future__ import annotations

from app.core.exceptions import FailureStage, RecipePipelineError

# Ordered; the first rule with a matching needle wins.
_MESSAGE_RULES: tuple[tuple[tuple[str, ...], FailureStage], ...] = (
    (("SEO", "seo"), "SEO_GENERATION"),
    (("image", "Image"), "IMAGE_GENERATION"),
    (("recipe", "Recipe"), "RECIPE_GENERATION"),
    (("Google", "index"), "GOOGLE_INDEXING"),
    (("Pinterest",), "PINTEREST_INTEGRATION"),
)


def classify_message(message: str) -> FailureStage:
    for needles, stage in _MESSAGE_RULES:
        if any(needle in message for needle in needles):
            return stage
    return "UNKNOWN"


def classify_failure(error: BaseException | str) -> FailureStage:
    """Return the failure stage for an error.

    Errors that carry a stage tag are trusted as-is. Anything else falls back
    to matching keywords in the message.
    """
    if isinstance(error, RecipePipelineError) and error.stage is not None:
        return error.stage
    return classify_message(str(error))
