"""Unit tests for the image stage and async image completion."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from app.core.exceptions import StageFailure
from app.models.work_item import WorkItem
from app.services.checkpoint_manager import CheckpointManager
from app.services.image_generation import (
    ImageCompletionHandler,
    ImageGenerationStage,
    build_slot_prompt,
    image_retry_delay_seconds,
    images_complete_fields,
)
from tests.fakes import (
    FakeAsyncProvider,
    FakeImageStore,
    FakeSyncProvider,
    FakeWorkItemStore,
    make_work_item,
    pipeline_settings,
    seo_fields,
)


def _stage(
    store: FakeWorkItemStore,
    image_store: FakeImageStore,
    provider: FakeSyncProvider | FakeAsyncProvider,
    sleep: AsyncMock,
) -> ImageGenerationStage:
    return ImageGenerationStage(
        store=store,
        checkpoints=CheckpointManager(store),
        image_store=image_store,
        provider=provider,
        app_settings=pipeline_settings(),
        sleep=sleep,
        reference_fetcher=AsyncMock(return_value=None),
    )


def test_image_retry_delay_doubles_and_caps() -> None:
    assert [image_retry_delay_seconds(attempt) for attempt in (1, 2, 3, 4, 5)] == [
        5.0,
        10.0,
        20.0,
        30.0,
        30.0,
    ]


def test_slot_prompts_are_distinct_and_watermarked() -> None:
    item = make_work_item(**seo_fields())

    prompts = [build_slot_prompt(item, slot, site_url="https://www.example-recipes.com") for slot in (1, 2, 3, 4)]

    assert len(set(prompts)) == 4
    assert all('"www.example-recipes.com"' in prompt for prompt in prompts)
    assert "raw ingredients" in prompts[1]
    assert "IMAGE 3 of 4" in prompts[2]


def test_images_complete_fields_require_four_urls() -> None:
    with pytest.raises(StageFailure, match="four verified image URLs"):
        images_complete_fields(["/a.webp", "/b.webp", "/c.webp"], {})


@pytest.mark.asyncio
async def test_sync_stage_saves_all_images_with_checkpoint() -> None:
    store = FakeWorkItemStore([make_work_item(checkpoint="SEO_COMPLETE", **seo_fields())])
    image_store = FakeImageStore()
    provider = FakeSyncProvider()
    sleep = AsyncMock()

    outcome = await _stage(store, image_store, provider, sleep).run(store.items["item-1"])

    item = store.items["item-1"]
    assert outcome.pending is False
    assert provider.calls == [1, 2, 3, 4]
    assert item.checkpoint == "IMAGES_COMPLETE"
    assert item.status == "READY_FOR_GENERATION"
    assert item.image_urls == outcome.urls
    assert set(item.generated_image_prompts) == {"hero", "ingredients", "cooking", "presentation"}
    assert item.image_generated_at is not None
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_zero_byte_image_fails_after_three_attempts_without_checkpoint() -> None:
    store = FakeWorkItemStore([make_work_item(checkpoint="SEO_COMPLETE", **seo_fields())])
    image_store = FakeImageStore()
    provider = FakeSyncProvider(payloads={3: b""})
    sleep = AsyncMock()

    with pytest.raises(StageFailure) as exc_info:
        await _stage(store, image_store, provider, sleep).run(store.items["item-1"])

    item = store.items["item-1"]
    assert exc_info.value.stage == "IMAGE_GENERATION"
    assert "Image 3 generation failed after 3 attempts" in exc_info.value.message
    assert provider.calls.count(3) == 3
    assert 4 not in provider.calls
    assert [call.args[0] for call in sleep.await_args_list] == [5.0, 10.0]
    assert item.checkpoint == "SEO_COMPLETE"
    assert item.image_urls == [None, None, None, None]
    assert set(item.image_progress) == {"1", "2"}


@pytest.mark.asyncio
async def test_sync_stage_reuses_verified_partial_progress() -> None:
    image_store = FakeImageStore()
    image_store.saved = {
        "/uploads/generated/item-1-1.webp": b"one",
        "/uploads/generated/item-1-2.webp": b"two",
    }
    store = FakeWorkItemStore([
        make_work_item(
            checkpoint="SEO_COMPLETE",
            image_progress={
                "1": "/uploads/generated/item-1-1.webp",
                "2": "/uploads/generated/item-1-2.webp",
            },
            **seo_fields(),
        )
    ])
    provider = FakeSyncProvider()

    outcome = await _stage(store, image_store, provider, AsyncMock()).run(store.items["item-1"])

    assert provider.calls == [3, 4]
    assert outcome.reused_slots == [1, 2]
    assert store.items["item-1"].checkpoint == "IMAGES_COMPLETE"


@pytest.mark.asyncio
async def test_sync_stage_regenerates_progress_that_fails_verification() -> None:
    store = FakeWorkItemStore([
        make_work_item(
            checkpoint="SEO_COMPLETE",
            image_progress={"1": "/uploads/generated/gone.webp"},
            **seo_fields(),
        )
    ])
    provider = FakeSyncProvider()

    outcome = await _stage(store, FakeImageStore(), provider, AsyncMock()).run(store.items["item-1"])

    assert provider.calls == [1, 2, 3, 4]
    assert outcome.reused_slots == []


@pytest.mark.asyncio
async def test_async_stage_submits_task_and_reports_pending() -> None:
    store = FakeWorkItemStore([make_work_item(checkpoint="SEO_COMPLETE", **seo_fields())])
    provider = FakeAsyncProvider(task_id="task-abc")

    outcome = await _stage(store, FakeImageStore(), provider, AsyncMock()).run(store.items["item-1"])

    item = store.items["item-1"]
    assert outcome.pending is True
    assert outcome.task_id == "task-abc"
    assert item.image_task_id == "task-abc"
    assert item.status == "GENERATING"
    assert item.checkpoint == "SEO_COMPLETE"
    assert item.has_images is False


def _download_client(status_code: int = 200) -> httpx.AsyncClient:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=f"png:{request.url.path}".encode())

    return httpx.AsyncClient(transport=httpx.MockTransport(_handler))


def _pending_item() -> WorkItem:
    return make_work_item(
        checkpoint="SEO_COMPLETE",
        status="GENERATING",
        image_task_id="task-123",
        generated_image_prompts={"task": "prompt"},
        **seo_fields(),
    )


@pytest.mark.asyncio
async def test_completion_handler_checkpoints_callback_images() -> None:
    store = FakeWorkItemStore([_pending_item()])
    image_store = FakeImageStore()
    async with _download_client() as client:
        handler = ImageCompletionHandler(
            store=store,
            checkpoints=CheckpointManager(store),
            image_store=image_store,
            app_settings=pipeline_settings(),
            http_client=client,
        )
        result = await handler.complete(
            "task-123",
            [f"https://cdn.example.com/{n}.png" for n in range(1, 5)],
        )

    item = store.items["item-1"]
    assert result.accepted is True
    assert result.item_id == "item-1"
    assert item.checkpoint == "IMAGES_COMPLETE"
    assert item.status == "READY_FOR_GENERATION"
    assert item.has_images is True
    assert item.generated_image_prompts == {"task": "prompt"}
    assert image_store.save_calls == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_completion_handler_ignores_unknown_task() -> None:
    store = FakeWorkItemStore([_pending_item()])
    handler = ImageCompletionHandler(
        store=store,
        checkpoints=CheckpointManager(store),
        image_store=FakeImageStore(),
        app_settings=pipeline_settings(),
    )

    result = await handler.complete("other-task", ["u1", "u2", "u3", "u4"])

    assert result.accepted is False
    assert result.error == "unknown_task"
    assert store.updates == []


@pytest.mark.asyncio
async def test_completion_handler_ignores_duplicate_callback() -> None:
    store = FakeWorkItemStore([
        make_work_item(
            checkpoint="IMAGES_COMPLETE",
            image_task_id="task-123",
            **{f"generated_image_{slot}_url": f"/u/{slot}.webp" for slot in (1, 2, 3, 4)},
        )
    ])
    handler = ImageCompletionHandler(
        store=store,
        checkpoints=CheckpointManager(store),
        image_store=FakeImageStore(),
        app_settings=pipeline_settings(),
    )

    result = await handler.complete("task-123", ["u1", "u2", "u3", "u4"])

    assert result.accepted is False
    assert result.error == "already_complete"


@pytest.mark.asyncio
async def test_completion_handler_marks_failed_when_download_fails() -> None:
    store = FakeWorkItemStore([_pending_item()])
    async with _download_client(status_code=404) as client:
        handler = ImageCompletionHandler(
            store=store,
            checkpoints=CheckpointManager(store),
            image_store=FakeImageStore(),
            app_settings=pipeline_settings(),
            http_client=client,
        )
        result = await handler.complete(
            "task-123",
            [f"https://cdn.example.com/{n}.png" for n in range(1, 5)],
        )

    item = store.items["item-1"]
    assert result.accepted is False
    assert item.status == "FAILED"
    assert item.failed_step == "IMAGE_GENERATION"
    assert item.checkpoint == "SEO_COMPLETE"
    assert item.has_images is False
