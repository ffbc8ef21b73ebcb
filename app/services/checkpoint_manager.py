"""Checkpoint bookkeeping for work items.

The checkpoint manager is the single source of truth for which expensive
artifacts a work item already has. Every method maps onto exactly one store
call, so a crash between two calls never leaves a half-applied checkpoint.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from app.core.exceptions import NotRetriableError
from app.models.work_item import (
    CHECKPOINT_ORDER,
    Checkpoint,
    WorkItem,
    checkpoint_rank,
    checkpoints_at_or_below,
)
from app.repositories.work_item_repository import WorkItemStore

logger = logging.getLogger(__name__)

_CLEARED_FAILURE_MARKERS: dict[str, Any] = {
    "failed_step": None,
    "failed_at": None,
    "generation_error": None,
}


@dataclass(frozen=True)
class CheckpointState:
    """Artifact-derived view of a work item's progress."""

    last_step: str | None
    can_resume: bool
    has_images: bool
    has_seo: bool
    has_recipe: bool


@dataclass(frozen=True)
class ResumeDecision:
    resume_step: Checkpoint
    message: str


@dataclass(frozen=True)
class RetriableEntry:
    """Failed work item that an operator may retry."""

    item_id: str
    title: str
    status: str
    checkpoint: str
    failed_step: str | None
    failed_at: datetime | None
    generation_attempts: int
    generation_error: str | None
    has_images: bool
    has_seo: bool
    seo_keyword: str | None
    created_at: datetime | None


def checkpoint_state_for(item: WorkItem | None) -> CheckpointState:
    """Derive checkpoint flags from artifact presence."""
    if item is None:
        return CheckpointState(
            last_step=None,
            can_resume=False,
            has_images=False,
            has_seo=False,
            has_recipe=False,
        )
    return CheckpointState(
        last_step=item.checkpoint,
        can_resume=bool(item.can_retry),
        has_images=item.has_images,
        has_seo=item.has_seo,
        has_recipe=item.has_content,
    )


def resume_decision_for(item_id: str, state: CheckpointState) -> ResumeDecision:
    if not state.can_resume:
        raise NotRetriableError(item_id)
    if state.has_recipe:
        return ResumeDecision(
            "RECIPE_COMPLETE",
            "Recipe already complete. Will proceed to optional steps (indexing/distribution).",
        )
    if state.has_images and state.has_seo:
        return ResumeDecision(
            "IMAGES_COMPLETE",
            "Images exist. Resuming from recipe generation (no image costs).",
        )
    if state.has_seo:
        return ResumeDecision("SEO_COMPLETE", "SEO exists. Resuming from image generation.")
    return ResumeDecision("INIT", "Starting from beginning (no checkpoints found).")


class CheckpointManager:
    """Reads and writes pipeline checkpoints through a work item store."""

    def __init__(self, store: WorkItemStore) -> None:
        self.store = store

    async def save_checkpoint(
        self,
        item_id: str,
        checkpoint: Checkpoint,
        extra_fields: Mapping[str, Any] | None = None,
    ) -> bool:
        """Advance the checkpoint and persist artifacts in one write.

        Call only once the artifacts in ``extra_fields`` are verified. Returns
        False, writing nothing, if the stored checkpoint is already beyond
        ``checkpoint``.
        """
        values: dict[str, Any] = {
            **dict(extra_fields or {}),
            **_CLEARED_FAILURE_MARKERS,
            "checkpoint": checkpoint,
        }
        saved = await self.store.update(
            item_id,
            values,
            only_if_checkpoint_in=checkpoints_at_or_below(checkpoint),
        )
        if not saved:
            logger.warning(
                "Checkpoint not saved; item missing or already past this checkpoint",
                extra={"item_id": item_id, "checkpoint": checkpoint},
            )
            return False

        logger.info(
            "Checkpoint saved",
            extra={
                "item_id": item_id,
                "checkpoint": checkpoint,
                "fields": sorted(k for k in values if k not in _CLEARED_FAILURE_MARKERS),
            },
        )
        return True

    async def restore_artifacts(
        self,
        item_id: str,
        checkpoint: Checkpoint,
        extra_fields: Mapping[str, Any],
    ) -> bool:
        """Write a stage's artifacts under a stored checkpoint that is already past it.

        The checkpoint column is not touched. Returns False, writing nothing,
        unless the stored checkpoint ranks above ``checkpoint``.
        """
        ahead = tuple(c for c in CHECKPOINT_ORDER if checkpoint_rank(c) > checkpoint_rank(checkpoint))
        values: dict[str, Any] = {**dict(extra_fields), **_CLEARED_FAILURE_MARKERS}
        restored = await self.store.update(item_id, values, only_if_checkpoint_in=ahead)
        if not restored:
            logger.warning(
                "Artifacts not restored; stored checkpoint is not ahead of this stage",
                extra={"item_id": item_id, "checkpoint": checkpoint},
            )
            return False

        logger.warning(
            "Restored missing artifacts without moving the checkpoint",
            extra={"item_id": item_id, "checkpoint": checkpoint, "fields": sorted(extra_fields)},
        )
        return True

    async def mark_failed(self, item_id: str, step_tag: str, error_message: str) -> None:
        """Record a failed stage; the checkpoint itself is left untouched."""
        logger.error(
            "Pipeline stage failed",
            extra={"item_id": item_id, "failed_step": step_tag, "error": error_message},
        )
        await self.store.update(
            item_id,
            {
                "status": "FAILED",
                "failed_step": step_tag,
                "generation_error": error_message,
                "failed_at": datetime.now(timezone.utc),
                "can_retry": True,
            },
            increment_attempts=True,
        )

    async def get_last_checkpoint(self, item_id: str) -> CheckpointState:
        item = await self.store.get(item_id)
        return checkpoint_state_for(item)

    async def determine_resume_step(self, item_id: str) -> ResumeDecision:
        """First matching rule wins; raises NotRetriableError when retry is blocked."""
        state = await self.get_last_checkpoint(item_id)
        return resume_decision_for(item_id, state)

    async def reset_for_retry(self, item_id: str) -> bool:
        """Put a failed item back in the queue, keeping its checkpoint and artifacts.

        Only FAILED items are reset. Returns False, writing nothing, for any
        other status, so an item that is mid-run or waiting on an image
        callback is never queued a second time.
        """
        reset = await self.store.update(
            item_id,
            {"status": "PENDING", **_CLEARED_FAILURE_MARKERS},
            only_if_status_in=("FAILED",),
        )
        if not reset:
            logger.warning("Work item not reset; it is missing or not FAILED", extra={"item_id": item_id})
            return False

        logger.info("Work item reset for retry", extra={"item_id": item_id})
        return True

    async def get_retriable_entries(self) -> list[RetriableEntry]:
        items = await self.store.list_retriable()
        return [
            RetriableEntry(
                item_id=item.id,
                title=item.source_title,
                status=item.status,
                checkpoint=item.checkpoint,
                failed_step=item.failed_step,
                failed_at=item.failed_at,
                generation_attempts=item.generation_attempts,
                generation_error=item.generation_error,
                has_images=item.has_images,
                has_seo=item.has_seo,
                seo_keyword=item.seo_keyword,
                created_at=item.created_at,
            )
            for item in items
        ]

    async def get_resume_summary(self, item_id: str) -> str:
        """Operator-readable description of what a retry will skip."""
        state = await self.get_last_checkpoint(item_id)
        decision = resume_decision_for(item_id, state)

        parts: list[str] = []
        if state.has_seo:
            parts.append("SEO complete")
        if state.has_images:
            parts.append("Images generated (no re-generation needed)")
        if state.has_recipe:
            parts.append("Recipe complete")

        if not parts:
            return "Will start from beginning"
        return f"{' -> '.join(parts)}\nNext: {decision.message}"
