"""Image stage: four verified images per work item, synchronous or via callback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx

from app.config import Settings, settings
from app.core.exceptions import StageFailure, VerificationError
from app.integrations.content_image_store import ImageStore, StoredImage
from app.integrations.gemini_images import fetch_reference_image
from app.models.work_item import IMAGE_SLOTS, WorkItem, checkpoint_rank, image_url_column
from app.repositories.work_item_repository import WorkItemStore
from app.services.checkpoint_manager import CheckpointManager

logger = logging.getLogger(__name__)

SLOT_SUBJECTS: dict[int, str] = {
    1: "hero",
    2: "ingredients",
    3: "cooking",
    4: "presentation",
}

SLOT_COMPOSITIONS: dict[int, str] = {
    1: (
        "Close-up 45-degree angle of the FINISHED dish, fully prepared and plated. "
        "No raw ingredients, no cooking process."
    ),
    2: (
        "Overhead flat lay from directly above showing ONLY the raw ingredients "
        "separated in bowls and containers. No finished dish visible."
    ),
    3: (
        "Side or 3/4 view of the cooking process in action: mixing, baking or "
        "preparation in progress with steam or motion. No finished dish."
    ),
    4: (
        "Front view or side profile of the finished dish in a styled presentation "
        "with decorative props. Different angle from the hero shot, more elegant styling."
    ),
}

Sleep = Callable[[float], Awaitable[None]]


class SyncImageProvider(Protocol):
    kind: str

    async def generate(
        self,
        prompt: str,
        *,
        slot: int,
        reference_image: bytes | None = None,
    ) -> bytes: ...


class AsyncImageProvider(Protocol):
    kind: str

    def build_prompt(
        self,
        *,
        recipe_name: str,
        seo_keyword: str,
        seo_title: str,
        seo_description: str | None,
    ) -> str: ...

    async def submit(self, prompt: str, *, reference_image_url: str | None = None) -> str: ...


@dataclass(slots=True)
class ImageStageOutcome:
    """Result of the image stage for one run."""

    urls: list[str] = field(default_factory=list)
    prompts: dict[str, str] = field(default_factory=dict)
    pending: bool = False
    task_id: str | None = None
    reused_slots: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class ImageCompletionResult:
    accepted: bool
    item_id: str | None = None
    error: str | None = None


def image_retry_delay_seconds(
    attempt: int,
    *,
    base_delay_seconds: float = 5.0,
    max_delay_seconds: float = 30.0,
) -> float:
    """Delay after failed attempt ``attempt`` (1-indexed): 5s, 10s, 20s, capped."""
    normalized_attempt = max(1, int(attempt))
    return min(base_delay_seconds * (2 ** (normalized_attempt - 1)), max_delay_seconds)


def watermark_domain(site_url: str) -> str:
    host = urlparse(site_url).netloc or site_url
    return host.removeprefix("www.")


def build_slot_prompt(item: WorkItem, slot: int, *, site_url: str) -> str:
    """Prompt for one image slot, with a composition distinct from the others."""
    dish = item.seo_title or item.source_title
    keyword = item.seo_keyword or item.source_title
    return (
        f"Professional food photography of {dish} ({keyword}) on a kitchen counter, "
        "natural light, no people, no hands visible, human-free. "
        f"COMPOSITION REQUIREMENT: {SLOT_COMPOSITIONS[slot]} "
        f"This is IMAGE {slot} of 4 and must be visually distinct from the other three. "
        f'Add a subtle watermark "www.{watermark_domain(site_url)}" centered at the bottom '
        "on a semi-transparent dark band so it stays readable on light food."
    )


def images_complete_fields(urls: Sequence[str], prompts: dict[str, Any]) -> dict[str, Any]:
    """Fields written together with the IMAGES_COMPLETE checkpoint."""
    if len(urls) != len(IMAGE_SLOTS) or not all(urls):
        raise StageFailure("IMAGE_GENERATION", "Exactly four verified image URLs are required")
    fields: dict[str, Any] = {
        image_url_column(slot): url for slot, url in zip(IMAGE_SLOTS, urls)
    }
    fields.update(
        {
            "generated_image_prompts": prompts,
            "image_progress": {str(slot): url for slot, url in zip(IMAGE_SLOTS, urls)},
            "image_generated_at": datetime.now(timezone.utc),
            "status": "READY_FOR_GENERATION",
        }
    )
    return fields


async def retry_with_backoff(
    *,
    attempts: int,
    delay_for_attempt: Callable[[int], float],
    coro_factory: Callable[[], Awaitable[Any]],
    sleep: Sleep = asyncio.sleep,
    log_context: dict[str, Any] | None = None,
) -> Any:
    """Retry helper for async generation flows."""
    last_error: Exception | None = None
    for attempt in range(1, max(1, attempts) + 1):
        try:
            return await coro_factory()
        except Exception as exc:
            last_error = exc
            logger.warning(
                "Image attempt failed",
                extra={**(log_context or {}), "attempt": attempt, "max_attempts": attempts, "error": str(exc)},
            )
            if attempt >= attempts:
                break
            await sleep(delay_for_attempt(attempt))
    assert last_error is not None
    raise last_error


class ImageGenerationStage:
    """Produces the four images for a work item through the configured provider."""

    def __init__(
        self,
        *,
        store: WorkItemStore,
        checkpoints: CheckpointManager,
        image_store: ImageStore,
        provider: SyncImageProvider | AsyncImageProvider,
        app_settings: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
        reference_fetcher: Callable[[str | None], Awaitable[bytes | None]] | None = None,
    ) -> None:
        self.store = store
        self.checkpoints = checkpoints
        self.image_store = image_store
        self.provider = provider
        self.settings = app_settings or settings
        self._sleep = sleep
        self._reference_fetcher = reference_fetcher

    @property
    def is_async(self) -> bool:
        return getattr(self.provider, "kind", "sync") == "async"

    async def run(self, item: WorkItem) -> ImageStageOutcome:
        if self.is_async:
            return await self._submit_async(item)
        return await self._generate_sync(item)

    async def _submit_async(self, item: WorkItem) -> ImageStageOutcome:
        provider: AsyncImageProvider = self.provider  # type: ignore[assignment]
        prompt = provider.build_prompt(
            recipe_name=item.seo_title or item.source_title,
            seo_keyword=item.seo_keyword or "",
            seo_title=item.seo_title or item.source_title,
            seo_description=item.seo_description,
        )
        try:
            task_id = await provider.submit(prompt, reference_image_url=item.source_image_url)
        except Exception as exc:
            raise StageFailure(
                "IMAGE_GENERATION",
                f"Failed to start async image generation: {exc}",
                cause=exc,
            ) from exc

        await self.store.update(
            item.id,
            {
                "image_task_id": task_id,
                "generated_image_prompts": {"task": prompt},
                "status": "GENERATING",
            },
        )
        logger.info(
            "Async image task submitted, awaiting callback",
            extra={"item_id": item.id, "task_id": task_id},
        )
        return ImageStageOutcome(prompts={"task": prompt}, pending=True, task_id=task_id)

    async def _generate_sync(self, item: WorkItem) -> ImageStageOutcome:
        provider: SyncImageProvider = self.provider  # type: ignore[assignment]
        progress: dict[str, str] = dict(item.image_progress or {})
        prompts: dict[str, str] = {}
        urls: list[str] = []
        reused: list[int] = []
        reference: bytes | None = None
        reference_loaded = False

        for slot in IMAGE_SLOTS:
            prompt = build_slot_prompt(item, slot, site_url=self.settings.site_url)
            prompts[SLOT_SUBJECTS[slot]] = prompt

            previous_url = progress.get(str(slot))
            if previous_url:
                try:
                    stored = await self.image_store.verify(previous_url)
                except VerificationError as exc:
                    logger.warning(
                        "Previously generated image failed re-verification, regenerating",
                        extra={"item_id": item.id, "slot": slot, "error": str(exc)},
                    )
                else:
                    urls.append(stored.url)
                    reused.append(slot)
                    continue

            if not reference_loaded:
                reference = await self._load_reference(item.source_image_url)
                reference_loaded = True

            async def _attempt(slot: int = slot, prompt: str = prompt) -> StoredImage:
                payload = await provider.generate(prompt, slot=slot, reference_image=reference)
                return await self.image_store.save(item_id=item.id, slot=slot, payload=payload)

            attempts = self.settings.image_retry_attempts
            try:
                stored = await retry_with_backoff(
                    attempts=attempts,
                    delay_for_attempt=lambda attempt: image_retry_delay_seconds(
                        attempt,
                        base_delay_seconds=self.settings.image_retry_base_delay_seconds,
                        max_delay_seconds=self.settings.image_retry_max_delay_seconds,
                    ),
                    coro_factory=_attempt,
                    sleep=self._sleep,
                    log_context={"item_id": item.id, "slot": slot},
                )
            except Exception as exc:
                raise StageFailure(
                    "IMAGE_GENERATION",
                    f"Image {slot} generation failed after {attempts} attempts: {exc}",
                    cause=exc,
                ) from exc

            urls.append(stored.url)
            progress[str(slot)] = stored.url
            await self.store.update(item.id, {"image_progress": dict(progress)})
            logger.info(
                "Image verified",
                extra={"item_id": item.id, "slot": slot, "url": stored.url, "byte_size": stored.byte_size},
            )

        saved = await self.checkpoints.save_checkpoint(
            item.id,
            "IMAGES_COMPLETE",
            images_complete_fields(urls, prompts),
        )
        if not saved:
            raise StageFailure("IMAGE_GENERATION", "Image checkpoint could not be saved")
        return ImageStageOutcome(urls=urls, prompts=prompts, reused_slots=reused)

    async def _load_reference(self, url: str | None) -> bytes | None:
        if self._reference_fetcher is not None:
            return await self._reference_fetcher(url)
        return await fetch_reference_image(
            url,
            timeout=self.settings.reference_image_timeout_seconds,
        )


class ImageCompletionHandler:
    """Finishes an async image task once the provider calls back with URLs."""

    def __init__(
        self,
        *,
        store: WorkItemStore,
        checkpoints: CheckpointManager,
        image_store: ImageStore,
        app_settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.store = store
        self.checkpoints = checkpoints
        self.image_store = image_store
        self.settings = app_settings or settings
        self._http_client = http_client

    async def complete(self, task_id: str, image_urls: Sequence[str]) -> ImageCompletionResult:
        item = await self.store.find_by_image_task_id(task_id)
        if item is None:
            logger.warning(
                "Image callback for unknown task; asking provider to redeliver",
                extra={"task_id": task_id},
            )
            return ImageCompletionResult(accepted=False, error="unknown_task")
        if item.has_images or checkpoint_rank(item.checkpoint) >= checkpoint_rank("IMAGES_COMPLETE"):
            logger.warning(
                "Image callback for item that already has images ignored",
                extra={"task_id": task_id, "item_id": item.id},
            )
            return ImageCompletionResult(accepted=False, item_id=item.id, error="already_complete")

        try:
            if len(image_urls) < len(IMAGE_SLOTS):
                raise StageFailure(
                    "IMAGE_GENERATION",
                    f"Image callback delivered {len(image_urls)} images, expected {len(IMAGE_SLOTS)}",
                )
            urls: list[str] = []
            for slot, source_url in zip(IMAGE_SLOTS, image_urls):
                payload = await self._download(source_url)
                stored = await self.image_store.save(item_id=item.id, slot=slot, payload=payload)
                urls.append(stored.url)

            prompts = dict(item.generated_image_prompts or {})
            saved = await self.checkpoints.save_checkpoint(
                item.id,
                "IMAGES_COMPLETE",
                images_complete_fields(urls, prompts),
            )
            if not saved:
                raise StageFailure("IMAGE_GENERATION", "Image checkpoint could not be saved")
        except Exception as exc:
            message = f"Image callback processing failed: {exc}"
            await self.checkpoints.mark_failed(item.id, "IMAGE_GENERATION", message)
            return ImageCompletionResult(accepted=False, item_id=item.id, error=message)

        logger.info(
            "Async images verified and checkpointed",
            extra={"task_id": task_id, "item_id": item.id},
        )
        return ImageCompletionResult(accepted=True, item_id=item.id)

    async def _download(self, url: str) -> bytes:
        own_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(
            timeout=self.settings.image_generation_timeout_seconds,
            follow_redirects=True,
        )
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as exc:
            raise VerificationError(url, f"download failed ({exc})") from exc
        finally:
            if own_client:
                await client.aclose()
