"""Gemini image model client: one prompt in, one image payload out."""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from app.config import Settings, settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError

logger = logging.getLogger(__name__)


def extract_inline_image(response_body: dict[str, Any]) -> bytes:
    """Return decoded bytes of the first inline image part, or raise."""
    candidates = response_body.get("candidates") or []
    parts: list[Any] = []
    if candidates and isinstance(candidates[0], dict):
        parts = (candidates[0].get("content") or {}).get("parts") or []

    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            return base64.b64decode(inline["data"])

    finish_reason = None
    if candidates and isinstance(candidates[0], dict):
        finish_reason = candidates[0].get("finishReason")
    raise ExternalAPIError(
        "Gemini Image",
        f"No image data received (finish reason {finish_reason or 'unknown'})",
    )


class GeminiImageProvider:
    """Synchronous image provider backed by the Gemini generateContent API."""

    kind = "sync"

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = app_settings or settings
        if not self.settings.gemini_api_key:
            raise APIKeyMissingError("Gemini Image")
        self._http_client = http_client

    async def generate(
        self,
        prompt: str,
        *,
        slot: int,
        reference_image: bytes | None = None,
    ) -> bytes:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if reference_image:
            parts.append({
                "inline_data": {
                    "mime_type": "image/jpeg",
                    "data": base64.b64encode(reference_image).decode("ascii"),
                }
            })
        body = {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["Image"],
                "imageConfig": {"aspectRatio": "9:16"},
            },
        }
        endpoint = (
            f"{self.settings.gemini_api_base_url.rstrip('/')}/models/"
            f"{self.settings.gemini_image_model}:generateContent"
        )

        logger.info(
            "Gemini image request",
            extra={"slot": slot, "model": self.settings.gemini_image_model, "prompt_length": len(prompt)},
        )
        own_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(
            timeout=self.settings.image_generation_timeout_seconds,
        )
        try:
            response = await client.post(
                endpoint,
                json=body,
                headers={"x-goog-api-key": str(self.settings.gemini_api_key)},
            )
        except httpx.TimeoutException as exc:
            raise ExternalAPIError(
                "Gemini Image",
                f"image {slot} timed out after {self.settings.image_generation_timeout_seconds:.0f}s",
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalAPIError("Gemini Image", str(exc)) from exc
        finally:
            if own_client:
                await client.aclose()

        if response.status_code >= 400:
            raise ExternalAPIError(
                "Gemini Image",
                f"HTTP {response.status_code}: {response.text[:400]}",
            )
        return extract_inline_image(response.json())


async def fetch_reference_image(url: str | None, *, timeout: float) -> bytes | None:
    """Download the lead's source image; any failure just means no reference."""
    if not url:
        return None
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content or None
    except httpx.HTTPError as exc:
        logger.warning(
            "Reference image download failed, generating without it",
            extra={"url": url, "error": str(exc)},
        )
        return None
