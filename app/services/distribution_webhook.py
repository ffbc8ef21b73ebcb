"""Pinterest distribution webhook payloads and delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

PINTEREST_DESCRIPTION_LIMIT = 500


@dataclass(frozen=True)
class DistributionResult:
    success: bool
    http_status: int | None = None
    error: str | None = None


def absolute_url(site_url: str, path_or_url: str) -> str:
    """Resolve site-relative paths against the public site URL."""
    if path_or_url.startswith(("http://", "https://")):
        return path_or_url
    return f"{site_url.rstrip('/')}/{path_or_url.lstrip('/')}"


def trim_description(description: str, limit: int = PINTEREST_DESCRIPTION_LIMIT) -> str:
    if len(description) <= limit:
        return description
    return description[: limit - 3] + "..."


def build_distribution_payload(
    *,
    recipe_id: str,
    title: str,
    description: str,
    image_url: str,
    post_url: str,
    site_url: str,
    board_id: str,
    category: str | None = None,
    tags: list[str] | None = None,
    alt_text: str | None = None,
) -> dict[str, Any]:
    """Build the JSON body the distribution automation expects."""
    payload: dict[str, Any] = {
        "recipeId": recipe_id,
        "title": title,
        "description": trim_description(description),
        "imageUrl": absolute_url(site_url, image_url),
        "postLink": absolute_url(site_url, post_url),
        "boardId": board_id,
        "tags": [tag for tag in (tags or []) if tag],
        "altText": alt_text or title,
    }
    if category:
        payload["category"] = category
    return payload


async def send_distribution_webhook(
    webhook_url: str,
    payload: dict[str, Any],
    *,
    timeout_seconds: float = 30.0,
    http_client: httpx.AsyncClient | None = None,
) -> DistributionResult:
    """POST one payload; never raises."""
    logger.info(
        "Sending distribution webhook",
        extra={"recipe_id": payload.get("recipeId"), "board_id": payload.get("boardId")},
    )
    own_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)
    try:
        response = await client.post(webhook_url, json=payload)
    except httpx.HTTPError as exc:
        return DistributionResult(success=False, error=str(exc) or type(exc).__name__)
    finally:
        if own_client:
            await client.aclose()

    if 200 <= response.status_code < 300:
        return DistributionResult(success=True, http_status=response.status_code)
    return DistributionResult(
        success=False,
        http_status=response.status_code,
        error=f"webhook_http_{response.status_code}: {response.text[:400]}",
    )
