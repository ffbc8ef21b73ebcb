"""Unit tests for the Pinterest pin image editor."""

from __future__ import annotations

from io import BytesIO
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from app.core.exceptions import ExternalAPIError, VerificationError
from app.services.pinterest_image import (
    PIN_IMAGE_SLOT,
    PinterestImageEditor,
    fit_pin_image,
    render_edit_prompt,
)
from tests.fakes import FakeImageStore, image_fields, make_work_item, pipeline_settings


def _png(width: int, height: int) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color=(200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


def _editor(
    *,
    edited: bytes | None = None,
    source: bytes | None = b"source-jpeg",
    image_store: FakeImageStore | None = None,
) -> tuple[PinterestImageEditor, SimpleNamespace, AsyncMock]:
    payload = edited if edited is not None else _png(900, 1600)
    provider = SimpleNamespace(generate=AsyncMock(return_value=payload))
    fetcher = AsyncMock(return_value=source)
    editor = PinterestImageEditor(
        pipeline_settings(),  # type: ignore[arg-type]
        provider=provider,
        image_store=image_store or FakeImageStore(),
        reference_fetcher=fetcher,
    )
    return editor, provider, fetcher


def test_render_edit_prompt_fills_placeholders() -> None:
    prompt = render_edit_prompt(
        "Restyle {spyPinImage} as a pin for {recipeTitle}. {recipeTitle} text overlay.",
        recipe_title="Lemon Bars",
    )

    assert prompt == "Restyle the provided image as a pin for Lemon Bars. Lemon Bars text overlay."


def test_fit_pin_image_crops_to_pin_size() -> None:
    fitted = fit_pin_image(_png(1600, 900), width=1000, height=1500)

    with Image.open(BytesIO(fitted)) as image:
        assert image.size == (1000, 1500)


def test_fit_pin_image_rejects_unreadable_payload() -> None:
    with pytest.raises(VerificationError):
        fit_pin_image(b"not an image", width=1000, height=1500)


@pytest.mark.asyncio
async def test_edit_uses_source_image_and_stores_pin() -> None:
    image_store = FakeImageStore()
    editor, provider, fetcher = _editor(image_store=image_store)
    item = make_work_item(source_image_url="https://pins.example.com/source.jpg", **image_fields())

    url = await editor.edit(item, recipe_title="Creamy Garlic Chicken Pasta")

    assert url == f"/uploads/generated/item-1-{PIN_IMAGE_SLOT}.webp"
    assert fetcher.await_args.args == ("https://pins.example.com/source.jpg",)
    assert fetcher.await_args.kwargs == {"timeout": 10.0}
    prompt = provider.generate.await_args.args[0]
    assert prompt == "Enhance this image for Pinterest: Creamy Garlic Chicken Pasta"
    assert provider.generate.await_args.kwargs["reference_image"] == b"source-jpeg"
    with Image.open(BytesIO(image_store.saved[url])) as stored:
        assert stored.size == (1000, 1500)


@pytest.mark.asyncio
async def test_edit_falls_back_to_absolute_hero_image() -> None:
    editor, _provider, fetcher = _editor()
    item = make_work_item(**image_fields())

    await editor.edit(item, recipe_title="Creamy Garlic Chicken Pasta")

    assert fetcher.await_args.args == ("https://www.example-recipes.com/uploads/generated/item-1-1.webp",)


@pytest.mark.asyncio
async def test_edit_raises_when_source_cannot_be_downloaded() -> None:
    image_store = FakeImageStore()
    editor, provider, _fetcher = _editor(source=None, image_store=image_store)
    item = make_work_item(source_image_url="https://pins.example.com/gone.jpg")

    with pytest.raises(ExternalAPIError, match="could not be downloaded"):
        await editor.edit(item, recipe_title="Creamy Garlic Chicken Pasta")

    provider.generate.assert_not_awaited()
    assert image_store.saved == {}


@pytest.mark.asyncio
async def test_edit_raises_without_any_image() -> None:
    editor, _provider, fetcher = _editor()

    with pytest.raises(ExternalAPIError, match="no image to edit"):
        await editor.edit(make_work_item(), recipe_title="Creamy Garlic Chicken Pasta")

    fetcher.assert_not_awaited()
