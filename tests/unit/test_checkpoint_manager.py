"""Unit tests for checkpoint bookkeeping and resume decisions."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.core.exceptions import NotRetriableError
from app.models.work_item import CHECKPOINT_ORDER, checkpoint_rank, checkpoints_at_or_below
from app.services.checkpoint_manager import CheckpointManager, checkpoint_state_for
from tests.fakes import FakeWorkItemStore, image_fields, make_work_item, seo_fields


def test_checkpoint_rank_follows_pipeline_order() -> None:
    ranks = [checkpoint_rank(checkpoint) for checkpoint in CHECKPOINT_ORDER]

    assert ranks == sorted(ranks)
    assert checkpoint_rank("unknown") == 0
    assert checkpoints_at_or_below("IMAGES_COMPLETE") == ("INIT", "SEO_COMPLETE", "IMAGES_COMPLETE")


def test_checkpoint_state_for_missing_item_cannot_resume() -> None:
    state = checkpoint_state_for(None)

    assert state.last_step is None
    assert state.can_resume is False
    assert not (state.has_images or state.has_seo or state.has_recipe)


@pytest.mark.asyncio
async def test_save_checkpoint_writes_fields_and_clears_failure_markers() -> None:
    store = FakeWorkItemStore([
        make_work_item(
            failed_step="SEO_GENERATION",
            failed_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
            generation_error="timeout",
        )
    ])
    manager = CheckpointManager(store)

    saved = await manager.save_checkpoint("item-1", "SEO_COMPLETE", seo_fields())

    item = store.items["item-1"]
    assert saved is True
    assert item.checkpoint == "SEO_COMPLETE"
    assert item.seo_keyword == "garlic chicken pasta"
    assert item.failed_step is None
    assert item.failed_at is None
    assert item.generation_error is None


@pytest.mark.asyncio
async def test_save_checkpoint_refuses_regression() -> None:
    store = FakeWorkItemStore([
        make_work_item(checkpoint="RECIPE_COMPLETE", generated_content_id="recipe-9")
    ])
    manager = CheckpointManager(store)

    saved = await manager.save_checkpoint("item-1", "SEO_COMPLETE", {"seo_keyword": "other"})

    item = store.items["item-1"]
    assert saved is False
    assert item.checkpoint == "RECIPE_COMPLETE"
    assert item.seo_keyword is None
    assert store.updates == []


@pytest.mark.asyncio
async def test_save_checkpoint_allows_rewriting_same_checkpoint() -> None:
    store = FakeWorkItemStore([make_work_item(checkpoint="GOOGLE_INDEXED")])
    manager = CheckpointManager(store)

    assert await manager.save_checkpoint("item-1", "GOOGLE_INDEXED") is True


@pytest.mark.asyncio
async def test_mark_failed_increments_attempts_and_keeps_checkpoint() -> None:
    store = FakeWorkItemStore([
        make_work_item(checkpoint="SEO_COMPLETE", generation_attempts=1, **seo_fields())
    ])
    manager = CheckpointManager(store)

    await manager.mark_failed("item-1", "IMAGE_GENERATION", "Image 3 generation failed")

    item = store.items["item-1"]
    assert item.status == "FAILED"
    assert item.failed_step == "IMAGE_GENERATION"
    assert item.generation_error == "Image 3 generation failed"
    assert item.failed_at is not None
    assert item.generation_attempts == 2
    assert item.can_retry is True
    assert item.checkpoint == "SEO_COMPLETE"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "expected_step", "message_start"),
    [
        ({}, "INIT", "Starting from beginning"),
        (seo_fields(), "SEO_COMPLETE", "SEO exists"),
        ({**seo_fields(), **image_fields()}, "IMAGES_COMPLETE", "Images exist"),
        (
            {**seo_fields(), **image_fields(), "generated_content_id": "recipe-1"},
            "RECIPE_COMPLETE",
            "Recipe already complete",
        ),
    ],
)
async def test_determine_resume_step_uses_artifacts(
    overrides: dict,
    expected_step: str,
    message_start: str,
) -> None:
    store = FakeWorkItemStore([make_work_item(**overrides)])
    manager = CheckpointManager(store)

    decision = await manager.determine_resume_step("item-1")

    assert decision.resume_step == expected_step
    assert decision.message.startswith(message_start)


@pytest.mark.asyncio
async def test_images_without_seo_start_from_beginning() -> None:
    store = FakeWorkItemStore([make_work_item(**image_fields())])
    manager = CheckpointManager(store)

    decision = await manager.determine_resume_step("item-1")

    assert decision.resume_step == "INIT"


@pytest.mark.asyncio
async def test_determine_resume_step_rejects_non_retriable_items() -> None:
    store = FakeWorkItemStore([make_work_item(can_retry=False)])
    manager = CheckpointManager(store)

    with pytest.raises(NotRetriableError, match="cannot be retried"):
        await manager.determine_resume_step("item-1")


@pytest.mark.asyncio
async def test_determine_resume_step_rejects_missing_items() -> None:
    manager = CheckpointManager(FakeWorkItemStore())

    with pytest.raises(NotRetriableError):
        await manager.determine_resume_step("missing")


@pytest.mark.asyncio
async def test_reset_for_retry_preserves_artifacts() -> None:
    store = FakeWorkItemStore([
        make_work_item(
            status="FAILED",
            checkpoint="IMAGES_COMPLETE",
            failed_step="RECIPE_GENERATION",
            generation_error="Recipe content is incomplete",
            generation_attempts=2,
            **seo_fields(),
            **image_fields(),
        )
    ])
    manager = CheckpointManager(store)

    await manager.reset_for_retry("item-1")

    item = store.items["item-1"]
    assert item.status == "PENDING"
    assert item.failed_step is None
    assert item.generation_error is None
    assert item.checkpoint == "IMAGES_COMPLETE"
    assert item.has_images and item.has_seo
    assert item.generation_attempts == 2


@pytest.mark.asyncio
async def test_restore_artifacts_keeps_checkpoint_that_is_ahead() -> None:
    store = FakeWorkItemStore([
        make_work_item(checkpoint="IMAGES_COMPLETE", **image_fields()),
        make_work_item("item-2", checkpoint="INIT"),
    ])
    manager = CheckpointManager(store)

    restored = await manager.restore_artifacts("item-1", "SEO_COMPLETE", seo_fields())
    not_ahead = await manager.restore_artifacts("item-2", "SEO_COMPLETE", seo_fields())

    item = store.items["item-1"]
    assert restored is True
    assert item.checkpoint == "IMAGES_COMPLETE"
    assert item.has_seo and item.has_images
    assert store.checkpoint_history == {}
    assert not_ahead is False
    assert store.items["item-2"].seo_keyword is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "overrides"),
    [
        ("GENERATING", {"checkpoint": "SEO_COMPLETE", "image_task_id": "task-1", **seo_fields()}),
        (
            "COMPLETED",
            {
                "checkpoint": "RECIPE_COMPLETE",
                "generated_content_id": "recipe-1",
                **seo_fields(),
                **image_fields(),
            },
        ),
    ],
)
async def test_reset_for_retry_leaves_non_failed_items_alone(status: str, overrides: dict) -> None:
    store = FakeWorkItemStore([make_work_item(status=status, **overrides)])
    manager = CheckpointManager(store)

    reset = await manager.reset_for_retry("item-1")

    assert reset is False
    assert store.items["item-1"].status == status
    assert store.updates == []


@pytest.mark.asyncio
async def test_get_retriable_entries_lists_failed_items_newest_first() -> None:
    store = FakeWorkItemStore([
        make_work_item(
            "old",
            status="FAILED",
            failed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            failed_step="SEO_GENERATION",
        ),
        make_work_item(
            "new",
            status="FAILED",
            failed_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
            failed_step="IMAGE_GENERATION",
            **seo_fields(),
        ),
        make_work_item("blocked", status="FAILED", can_retry=False),
        make_work_item("pending", status="PENDING"),
    ])
    manager = CheckpointManager(store)

    entries = await manager.get_retriable_entries()

    assert [entry.item_id for entry in entries] == ["new", "old"]
    assert entries[0].has_seo is True
    assert entries[0].seo_keyword == "garlic chicken pasta"
    assert entries[0].failed_step == "IMAGE_GENERATION"


@pytest.mark.asyncio
async def test_get_resume_summary_lists_completed_work() -> None:
    store = FakeWorkItemStore([
        make_work_item("fresh"),
        make_work_item("partial", **seo_fields(), **image_fields("partial")),
    ])
    manager = CheckpointManager(store)

    assert await manager.get_resume_summary("fresh") == "Will start from beginning"
    assert await manager.get_resume_summary("partial") == (
        "SEO complete -> Images generated (no re-generation needed)\n"
        "Next: Images exist. Resuming from recipe generation (no image costs)."
    )
