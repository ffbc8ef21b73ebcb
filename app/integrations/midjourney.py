"""Midjourney (GoAPI) client: submits one imagine task and returns its id.

The four images arrive later through the image webhook, so this provider
never returns image bytes.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.config import Settings, settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError

logger = logging.getLogger(__name__)


def render_prompt_template(
    template: str,
    *,
    recipe_name: str,
    seo_keyword: str,
    seo_title: str,
    seo_description: str | None,
) -> str:
    """Substitute the supported placeholders; unknown braces are left alone."""
    return (
        template.replace("{recipeName}", recipe_name)
        .replace("{seoKeyword}", seo_keyword)
        .replace("{seoTitle}", seo_title)
        .replace("{seoDescription}", seo_description or "")
    )


class MidjourneyImageProvider:
    """Asynchronous image provider: returns a task id, images come via callback."""

    kind = "async"

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = app_settings or settings
        if not self.settings.midjourney_api_key:
            raise APIKeyMissingError("Midjourney")
        self._http_client = http_client

    def build_prompt(
        self,
        *,
        recipe_name: str,
        seo_keyword: str,
        seo_title: str,
        seo_description: str | None,
    ) -> str:
        return render_prompt_template(
            self.settings.midjourney_prompt_template,
            recipe_name=recipe_name,
            seo_keyword=seo_keyword,
            seo_title=seo_title,
            seo_description=seo_description,
        )

    async def submit(self, prompt: str, *, reference_image_url: str | None = None) -> str:
        """Start one imagine task (four images) and return its task id."""
        full_prompt = f"{reference_image_url} {prompt}" if reference_image_url else prompt
        body: dict[str, Any] = {
            "model": "midjourney",
            "task_type": "imagine",
            "input": {
                "prompt": full_prompt,
                "aspect_ratio": "2:3",
                "process_mode": self.settings.midjourney_process_mode,
            },
        }
        if self.settings.midjourney_webhook_url:
            body["config"] = {
                "webhook_config": {
                    "endpoint": self.settings.midjourney_webhook_url,
                    "secret": self.settings.midjourney_webhook_secret or "",
                }
            }

        own_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(
            timeout=self.settings.midjourney_submit_timeout_seconds,
        )
        try:
            response = await client.post(
                self.settings.midjourney_api_url,
                json=body,
                headers={"x-api-key": str(self.settings.midjourney_api_key)},
            )
        except httpx.HTTPError as exc:
            raise ExternalAPIError("Midjourney", str(exc)) from exc
        finally:
            if own_client:
                await client.aclose()

        if response.status_code >= 400:
            raise ExternalAPIError(
                "Midjourney",
                f"HTTP {response.status_code}: {response.text[:400]}",
            )
        payload = response.json()
        data = payload.get("data") if isinstance(payload, dict) else None
        task_id = (data or {}).get("task_id") if isinstance(data, dict) else None
        if not task_id:
            raise ExternalAPIError("Midjourney", "Response did not include a task id")

        logger.info("Midjourney task submitted", extra={"task_id": task_id})
        return str(task_id)
