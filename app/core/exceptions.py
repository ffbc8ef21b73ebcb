"""Custom exception classes for the recipe pipeline."""

from typing import Any, Literal

FailureStage = Literal[
    "SEO_GENERATION",
    "IMAGE_GENERATION",
    "RECIPE_GENERATION",
    "GOOGLE_INDEXING",
    "PINTEREST_INTEGRATION",
    "UNKNOWN",
]


class RecipePipelineError(Exception):
    """Base exception for all application errors."""

    stage: FailureStage | None = None

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Checkpoint / precondition errors
class NotRetriableError(RecipePipelineError):
    """Checkpoint state forbids resuming this work item."""

    def __init__(self, item_id: str) -> None:
        super().__init__(
            f"Work item {item_id} cannot be retried. Please contact support.",
            {"item_id": item_id},
        )


class PreconditionFailedError(RecipePipelineError):
    """A pipeline precondition does not hold."""

    pass


class WorkItemNotFoundError(PreconditionFailedError):
    """Work item not found."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Work item not found: {item_id}", {"item_id": item_id})


class ContentAlreadyGeneratedError(PreconditionFailedError):
    """Work item already produced its final content."""

    def __init__(self, item_id: str, content_id: str) -> None:
        super().__init__(
            f"Content already generated for work item {item_id}: {content_id}",
            {"item_id": item_id, "content_id": content_id},
        )


class NoAuthorAvailableError(PreconditionFailedError):
    """No author record exists to attribute the content to."""

    def __init__(self) -> None:
        super().__init__("No authors available in database")


# Stage errors
class StageFailure(RecipePipelineError):
    """A pipeline stage failed; carries its own stage tag."""

    def __init__(
        self,
        stage: FailureStage,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(message, {"stage": stage})


class ContentQualityError(StageFailure):
    """Generated document failed the minimum-richness gate."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(
            "RECIPE_GENERATION",
            "Recipe content is incomplete or lacks depth. Errors: " + "; ".join(self.errors),
        )


class VerificationError(RecipePipelineError):
    """Artifact was written but is unreadable or empty on durable storage."""

    def __init__(self, location: str, reason: str) -> None:
        self.location = location
        super().__init__(
            f"Verification failed for {location}: {reason}",
            {"location": location},
        )


# External API errors
class ExternalAPIError(RecipePipelineError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str) -> None:
        self.api_name = api_name
        super().__init__(f"{api_name} API error: {message}")


class APIKeyMissingError(ExternalAPIError):
    """API key not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "API key not configured")


class ImageStoreConfigError(RecipePipelineError):
    """Raised when required image storage settings are missing."""

    pass
