"""Unit tests for distribution webhook payloads and delivery."""

from __future__ import annotations

import json

import httpx
import pytest

from app.services.distribution_webhook import (
    absolute_url,
    build_distribution_payload,
    send_distribution_webhook,
    trim_description,
)


def test_absolute_url_resolves_site_relative_paths() -> None:
    assert absolute_url("https://example.com/", "/recipes/a") == "https://example.com/recipes/a"
    assert absolute_url("https://example.com", "https://cdn.example.com/a.webp") == (
        "https://cdn.example.com/a.webp"
    )


def test_trim_description_caps_at_limit() -> None:
    trimmed = trim_description("x" * 600)

    assert len(trimmed) == 500
    assert trimmed.endswith("...")
    assert trim_description("short") == "short"


def test_build_distribution_payload_shape() -> None:
    payload = build_distribution_payload(
        recipe_id="recipe-1",
        title="Creamy Garlic Chicken Pasta",
        description="Dinner in 30 minutes.",
        image_url="/uploads/generated-recipes/a.webp",
        post_url="/recipes/creamy-garlic-chicken-pasta",
        site_url="https://example.com",
        board_id="board-pasta",
        category="Pasta",
        tags=["garlic chicken pasta", "", "Pasta"],
    )

    assert payload == {
        "recipeId": "recipe-1",
        "title": "Creamy Garlic Chicken Pasta",
        "description": "Dinner in 30 minutes.",
        "imageUrl": "https://example.com/uploads/generated-recipes/a.webp",
        "postLink": "https://example.com/recipes/creamy-garlic-chicken-pasta",
        "boardId": "board-pasta",
        "tags": ["garlic chicken pasta", "Pasta"],
        "altText": "Creamy Garlic Chicken Pasta",
        "category": "Pasta",
    }


def test_payload_omits_category_when_unknown() -> None:
    payload = build_distribution_payload(
        recipe_id="r",
        title="t",
        description="d",
        image_url="/i.webp",
        post_url="/recipes/t",
        site_url="https://example.com",
        board_id="default-board-id",
    )

    assert "category" not in payload
    assert payload["tags"] == []


@pytest.mark.asyncio
async def test_send_distribution_webhook_posts_json() -> None:
    seen: list[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"accepted": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        result = await send_distribution_webhook(
            "https://hook.example.com/pins",
            {"recipeId": "recipe-1"},
            http_client=client,
        )

    assert result.success is True
    assert result.http_status == 200
    assert seen == [{"recipeId": "recipe-1"}]


@pytest.mark.asyncio
async def test_send_distribution_webhook_reports_http_errors() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))

    async with httpx.AsyncClient(transport=transport) as client:
        result = await send_distribution_webhook("https://hook.example.com", {}, http_client=client)

    assert result.success is False
    assert result.http_status == 502
    assert result.error == "webhook_http_502: bad gateway"


@pytest.mark.asyncio
async def test_send_distribution_webhook_never_raises_on_transport_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        result = await send_distribution_webhook("https://hook.example.com", {}, http_client=client)

    assert result.success is False
    assert result.http_status is None
    assert "connection refused" in (result.error or "")
