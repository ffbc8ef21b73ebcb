"""Recipe pipeline orchestrator: one work item from lead to published recipe.

Stages run in a fixed order and each expensive stage is skipped when its
checkpoint is already recorded, so re-running a failed item only pays for
the work that is still missing. ``execute_pipeline`` never raises: every
outcome comes back as a ``PipelineResult``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from app.config import Settings, settings
from app.core.exceptions import (
    ContentAlreadyGeneratedError,
    NotRetriableError,
    PreconditionFailedError,
    RecipePipelineError,
    StageFailure,
    WorkItemNotFoundError,
)
from app.integrations.content_image_store import build_image_store
from app.integrations.gemini_images import GeminiImageProvider
from app.integrations.google_indexing import GoogleIndexingClient, IndexingResult
from app.integrations.midjourney import MidjourneyImageProvider
from app.models.work_item import WorkItem, checkpoint_rank
from app.repositories.recipe_repository import CatalogStore, RecipeRepository
from app.repositories.work_item_repository import WorkItemRepository, WorkItemStore
from app.services.category_matching import CategoryMatch, CategoryMatcher
from app.services.checkpoint_manager import CheckpointManager, checkpoint_state_for, resume_decision_for
from app.services.distribution_webhook import (
    DistributionResult,
    absolute_url,
    build_distribution_payload,
    send_distribution_webhook,
)
from app.services.failure_classifier import classify_failure
from app.services.image_generation import ImageGenerationStage
from app.services.pinterest_image import PinterestImageEditor
from app.services.recipe_generation import PublishedRecipe, RecipeGenerationService, RecipeGenerator
from app.services.seo_extraction import SeoExtractionService, SeoExtractor, seo_checkpoint_fields

logger = logging.getLogger(__name__)

TOTAL_STEPS = 7


@dataclass(frozen=True)
class PipelineProgress:
    step: int
    total: int
    message: str


ProgressCallback = Callable[[PipelineProgress], Awaitable[None]]
DistributionSender = Callable[..., Awaitable[DistributionResult]]


class PinImageEditor(Protocol):
    async def edit(self, item: WorkItem, *, recipe_title: str) -> str: ...


@dataclass(slots=True)
class PipelineResult:
    """Outcome of one orchestrator run."""

    success: bool
    content_id: str | None = None
    url: str | None = None
    error: str | None = None
    stage: str | None = None
    logs: list[str] = field(default_factory=list)
    images_pending: bool = False


def awaiting_async_images(item: WorkItem) -> bool:
    """An async image task was submitted and its callback has not landed yet."""
    return item.status == "GENERATING" and bool(item.image_task_id) and not item.has_images


class _RunLog:
    """Collects timestamped run lines and mirrors them to the module logger."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        self.lines: list[str] = []

    def __call__(self, message: str, *, level: int = logging.INFO, **extra: Any) -> None:
        self.lines.append(f"[{datetime.now(timezone.utc).isoformat()}] {message}")
        logger.log(level, message, extra={"item_id": self.item_id, **extra})


class PipelineOrchestrator:
    """Runs the seven pipeline stages for one work item."""

    def __init__(
        self,
        *,
        store: WorkItemStore,
        catalog: CatalogStore,
        checkpoints: CheckpointManager,
        seo: SeoExtractor,
        images: ImageGenerationStage,
        matcher: CategoryMatcher,
        content: RecipeGenerator,
        indexer: GoogleIndexingClient | None = None,
        distribution_webhook_url: str | None = None,
        distribution_sender: DistributionSender = send_distribution_webhook,
        pin_images: PinImageEditor | None = None,
        app_settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.checkpoints = checkpoints
        self.seo = seo
        self.images = images
        self.matcher = matcher
        self.content = content
        self.indexer = indexer
        self.distribution_webhook_url = distribution_webhook_url
        self.distribution_sender = distribution_sender
        self.pin_images = pin_images
        self.settings = app_settings or settings

    @classmethod
    def from_settings(
        cls,
        app_settings: Settings | None = None,
        *,
        store: WorkItemStore | None = None,
        catalog: CatalogStore | None = None,
    ) -> PipelineOrchestrator:
        """Wire the production collaborators for the configured providers."""
        resolved = app_settings or settings
        work_items = store or WorkItemRepository()
        recipes = catalog or RecipeRepository()
        checkpoints = CheckpointManager(work_items)

        provider: GeminiImageProvider | MidjourneyImageProvider
        if resolved.image_provider == "midjourney":
            provider = MidjourneyImageProvider(resolved)
        else:
            provider = GeminiImageProvider(resolved)

        image_store = build_image_store(resolved)
        pin_images: PinterestImageEditor | None = None
        if resolved.distribution_configured and resolved.gemini_api_key:
            pin_images = PinterestImageEditor(resolved, image_store=image_store)

        indexer: GoogleIndexingClient | None = None
        if resolved.indexing_configured:
            try:
                indexer = GoogleIndexingClient(resolved)
            except RecipePipelineError as exc:
                logger.warning("Indexing disabled: credentials unusable", extra={"error": exc.message})

        return cls(
            store=work_items,
            catalog=recipes,
            checkpoints=checkpoints,
            seo=SeoExtractionService(),
            images=ImageGenerationStage(
                store=work_items,
                checkpoints=checkpoints,
                image_store=image_store,
                provider=provider,
                app_settings=resolved,
            ),
            matcher=CategoryMatcher(recipes, min_confidence=resolved.category_match_min_confidence),
            content=RecipeGenerationService(recipes),
            indexer=indexer,
            distribution_webhook_url=(
                resolved.distribution_webhook_url if resolved.distribution_configured else None
            ),
            pin_images=pin_images,
            app_settings=resolved,
        )

    async def execute_pipeline(
        self,
        item_id: str,
        *,
        author_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        log = _RunLog(item_id)
        log(f"Starting recipe pipeline for work item {item_id}")

        # Step 1: fetch and decide where to resume
        await self._report(on_progress, 1, "Fetching work item...")
        try:
            item = await self.store.get(item_id)
            if item is None:
                raise WorkItemNotFoundError(item_id)
            if item.generated_content_id:
                raise ContentAlreadyGeneratedError(item_id, item.generated_content_id)
            if awaiting_async_images(item):
                log("Async image task still outstanding; waiting for callback", task_id=item.image_task_id)
                return PipelineResult(success=True, images_pending=True, logs=log.lines)
            decision = await self.checkpoints.determine_resume_step(item_id)
        except (PreconditionFailedError, NotRetriableError) as exc:
            log(f"Pipeline not started: {exc.message}", level=logging.WARNING)
            return PipelineResult(
                success=False,
                error=exc.message,
                stage=classify_failure(exc),
                logs=log.lines,
            )
        except Exception as exc:
            return await self._fail(item_id, exc, log)

        log(f"Work item loaded: {item.source_title}")
        log(f"Resume point {decision.resume_step}: {decision.message}")

        try:
            await self.store.update(item_id, {"status": "GENERATING"})

            # Step 2: SEO
            await self._report(on_progress, 2, "Generating SEO metadata...")
            if checkpoint_rank(decision.resume_step) >= checkpoint_rank("SEO_COMPLETE"):
                log("SEO metadata already present, skipping")
            else:
                metadata = await self.seo.extract(item)
                fields = seo_checkpoint_fields(metadata)
                if checkpoint_rank(item.checkpoint) > checkpoint_rank("SEO_COMPLETE"):
                    # stored checkpoint is ahead of its artifacts; refill SEO under it
                    log(
                        f"Checkpoint {item.checkpoint} recorded without SEO metadata; restoring it",
                        level=logging.WARNING,
                    )
                    saved = await self.checkpoints.restore_artifacts(item_id, "SEO_COMPLETE", fields)
                else:
                    saved = await self.checkpoints.save_checkpoint(item_id, "SEO_COMPLETE", fields)
                if not saved:
                    raise StageFailure("SEO_GENERATION", "SEO checkpoint could not be saved")
                log(f"SEO complete: {metadata.seo_keyword}")
                item = await self._reload(item_id)
                decision = resume_decision_for(item_id, checkpoint_state_for(item))

            # Step 3: images
            await self._report(on_progress, 3, "Generating images...")
            if checkpoint_rank(decision.resume_step) >= checkpoint_rank("IMAGES_COMPLETE"):
                log("Images already exist, skipping image generation")
            else:
                outcome = await self.images.run(item)
                if outcome.pending:
                    log("Image task submitted; pipeline continues when images arrive", task_id=outcome.task_id)
                    return PipelineResult(success=True, images_pending=True, logs=log.lines)
                if outcome.reused_slots:
                    log(f"Reused verified images for slots {outcome.reused_slots}")
                log("Images complete and checkpointed")
                item = await self._reload(item_id)

            # Step 4: category and author
            await self._report(on_progress, 4, "Matching category and author...")
            category = await self._match_category(item, log)
            author = await self.matcher.select_author(author_id=author_id, category=category)
            log(f"Author selected: {author.name}", author_id=author.id)

            # Step 5: generate and publish
            await self._report(on_progress, 5, "Generating recipe content...")
            published = await self.content.generate_and_publish(item, author=author, category=category)
            if not await self.checkpoints.save_checkpoint(
                item_id,
                "RECIPE_COMPLETE",
                {
                    "generated_content_id": published.content_id,
                    "content_generated_at": datetime.now(timezone.utc),
                    "published_url": published.url,
                    "status": "COMPLETED",
                },
            ):
                raise StageFailure("RECIPE_GENERATION", "Recipe checkpoint could not be saved")
            log(f"Recipe published: {published.url}", content_id=published.content_id)
        except Exception as exc:
            return await self._fail(item_id, exc, log)

        # Step 6: indexing (non-fatal)
        await self._report(on_progress, 6, "Submitting to search indexing...")
        await self._submit_indexing(item_id, published, log)

        # Step 7: distribution (non-fatal)
        await self._report(on_progress, 7, "Sending to distribution...")
        await self._distribute(item_id, item, published, category, log)

        log("Pipeline completed successfully")
        return PipelineResult(
            success=True,
            content_id=published.content_id,
            url=published.url,
            logs=log.lines,
        )

    async def _reload(self, item_id: str) -> WorkItem:
        item = await self.store.get(item_id)
        if item is None:
            raise WorkItemNotFoundError(item_id)
        return item

    async def _match_category(self, item: WorkItem, log: _RunLog) -> CategoryMatch | None:
        try:
            match = await self.matcher.find_best_category(
                title=item.seo_title or item.source_title,
                description=item.seo_description,
                keyword=item.seo_keyword,
                category_hint=item.seo_category,
            )
        except Exception as exc:
            log(f"Category matching failed, continuing without category: {exc}", level=logging.WARNING)
            return None
        if match is None:
            log("No category match found")
        else:
            log(f"Category matched: {match.category_name} ({match.confidence:.0f}% confidence)")
        return match

    async def _submit_indexing(self, item_id: str, published: PublishedRecipe, log: _RunLog) -> None:
        if self.indexer is None:
            log("Search indexing disabled or not configured, skipping")
            return
        full_url = absolute_url(self.settings.site_url, published.url)
        try:
            result: IndexingResult = await self.indexer.request_indexing(full_url)
            if not result.success:
                log(f"Google indexing failed (non-fatal): {result.error}", level=logging.WARNING)
                return
            await self.checkpoints.save_checkpoint(item_id, "GOOGLE_INDEXED")
            log(f"Google indexing submitted: {result.message}")
        except Exception as exc:
            log(f"Google indexing error (non-fatal): {exc}", level=logging.WARNING)

    async def _distribute(
        self,
        item_id: str,
        item: WorkItem,
        published: PublishedRecipe,
        category: CategoryMatch | None,
        log: _RunLog,
    ) -> None:
        if not self.distribution_webhook_url:
            log("Pinterest distribution disabled or not configured, skipping")
            return
        try:
            board_id = None
            if category is not None:
                board_id = await self.catalog.get_active_board_id(category.category_id)
            if board_id is None:
                board_id = self.settings.distribution_default_board_id
                log("No board mapping for category, using default board")

            pin_image = item.generated_image_1_url or ""
            if self.pin_images is not None:
                log("Editing image for Pinterest...")
                try:
                    pin_image = await self.pin_images.edit(item, recipe_title=published.title)
                except Exception as exc:
                    log(
                        f"Pinterest image edit failed, skipping webhook (non-fatal): {exc}",
                        level=logging.WARNING,
                    )
                    return
                log(f"Image edited: {pin_image}")

            payload = build_distribution_payload(
                recipe_id=published.content_id,
                title=published.title,
                description=published.description or item.seo_description or "",
                image_url=pin_image,
                post_url=published.url,
                site_url=self.settings.site_url,
                board_id=board_id,
                category=category.category_name if category else None,
                tags=[item.seo_keyword or "", category.category_name if category else ""],
                alt_text=published.title,
            )
            result = await self.distribution_sender(
                self.distribution_webhook_url,
                payload,
                timeout_seconds=self.settings.distribution_timeout_seconds,
            )
            if not result.success:
                log(f"Pinterest webhook failed (non-fatal): {result.error}", level=logging.WARNING)
                return
            await self.checkpoints.save_checkpoint(item_id, "PINTEREST_SENT")
            log("Pinterest webhook sent")
        except Exception as exc:
            log(f"Pinterest integration error (non-fatal): {exc}", level=logging.WARNING)

    async def _fail(self, item_id: str, exc: Exception, log: _RunLog) -> PipelineResult:
        stage = classify_failure(exc)
        message = exc.message if isinstance(exc, RecipePipelineError) else (str(exc) or type(exc).__name__)
        log(f"Pipeline failed at {stage}: {message}", level=logging.ERROR)
        try:
            await self.checkpoints.mark_failed(item_id, stage, message)
        except Exception as mark_exc:
            logger.error(
                "Could not record pipeline failure",
                extra={"item_id": item_id, "stage": stage, "error": str(mark_exc)},
            )
        return PipelineResult(success=False, error=message, stage=stage, logs=log.lines)

    @staticmethod
    async def _report(on_progress: ProgressCallback | None, step: int, message: str) -> None:
        if on_progress is None:
            return
        try:
            await on_progress(PipelineProgress(step=step, total=TOTAL_STEPS, message=message))
        except Exception as exc:
            logger.warning(
                "Progress callback failed",
                extra={"step": step, "error": str(exc)},
            )
