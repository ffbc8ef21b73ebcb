"""Pinterest pin image: the lead's source image re-edited for a 2:3 pin.

The edit is a best-effort extra for the distribution stage. Any failure
raises, and the orchestrator then skips the webhook for that run.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from io import BytesIO
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from app.config import Settings, settings
from app.core.exceptions import ExternalAPIError, VerificationError
from app.integrations.content_image_store import ImageStore, build_image_store
from app.integrations.gemini_images import GeminiImageProvider, fetch_reference_image
from app.models.work_item import WorkItem
from app.services.distribution_webhook import absolute_url

logger = logging.getLogger(__name__)

# stored after the four recipe image slots
PIN_IMAGE_SLOT = 5

ReferenceFetcher = Callable[..., Awaitable[bytes | None]]


class ImageEditor(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        slot: int,
        reference_image: bytes | None = None,
    ) -> bytes: ...


def render_edit_prompt(template: str, *, recipe_title: str) -> str:
    return template.replace("{spyPinImage}", "the provided image").replace("{recipeTitle}", recipe_title)


def fit_pin_image(payload: bytes, *, width: int, height: int) -> bytes:
    """Center-crop and scale to the pin size; returns PNG bytes."""
    try:
        with Image.open(BytesIO(payload)) as image:
            fitted = ImageOps.fit(
                image.convert("RGB"),
                (width, height),
                method=Image.Resampling.LANCZOS,
                centering=(0.5, 0.5),
            )
            buffer = BytesIO()
            fitted.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise VerificationError("pinterest image", f"edited payload is not a readable image ({exc})") from exc
    return buffer.getvalue()


class PinterestImageEditor:
    """Edits the source image through the Gemini image model and stores the pin."""

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        provider: ImageEditor | None = None,
        image_store: ImageStore | None = None,
        reference_fetcher: ReferenceFetcher = fetch_reference_image,
    ) -> None:
        self.settings = app_settings or settings
        self.provider = provider or GeminiImageProvider(self.settings)
        self.image_store = image_store or build_image_store(self.settings)
        self.reference_fetcher = reference_fetcher

    def source_url_for(self, item: WorkItem) -> str | None:
        if item.source_image_url:
            return item.source_image_url
        if item.generated_image_1_url:
            return absolute_url(self.settings.site_url, item.generated_image_1_url)
        return None

    async def edit(self, item: WorkItem, *, recipe_title: str) -> str:
        """Return the public URL of the stored pin image."""
        source_url = self.source_url_for(item)
        if source_url is None:
            raise ExternalAPIError("Pinterest Image", "work item has no image to edit")

        source = await self.reference_fetcher(
            source_url,
            timeout=self.settings.reference_image_timeout_seconds,
        )
        if not source:
            raise ExternalAPIError("Pinterest Image", f"source image could not be downloaded: {source_url}")

        prompt = render_edit_prompt(self.settings.distribution_image_edit_prompt, recipe_title=recipe_title)
        edited = await self.provider.generate(prompt, slot=PIN_IMAGE_SLOT, reference_image=source)
        fitted = fit_pin_image(
            edited,
            width=self.settings.distribution_image_width,
            height=self.settings.distribution_image_height,
        )
        stored = await self.image_store.save(item_id=item.id, slot=PIN_IMAGE_SLOT, payload=fitted)

        logger.info(
            "Pinterest image edited",
            extra={"item_id": item.id, "source_url": source_url, "url": stored.url},
        )
        return stored.url
