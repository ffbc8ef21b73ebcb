"""Reusable API dependencies shared across v1 routes."""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from app.config import settings
from app.integrations.content_image_store import build_image_store
from app.repositories.execution_log_repository import ExecutionLogRepository
from app.repositories.work_item_repository import WorkItemRepository
from app.services.checkpoint_manager import CheckpointManager
from app.services.image_generation import ImageCompletionHandler
from app.services.pipeline_jobs import ScheduledPipelineJobRunner

logger = logging.getLogger(__name__)

admin_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_admin_api_key(
    api_key: Annotated[str | None, Security(admin_api_key_header)],
) -> None:
    """Validate the operator API key."""
    allowed_keys = settings.get_admin_api_keys()
    if not allowed_keys:
        logger.error("Admin API key check failed: no keys configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API keys are not configured",
        )

    candidate = (api_key or "").strip()
    if candidate and any(hmac.compare_digest(candidate, key) for key in allowed_keys):
        return

    logger.warning("Admin API key check failed: invalid key")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
    )


async def require_image_webhook_secret(
    x_webhook_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Validate the shared secret sent by the async image provider."""
    expected = settings.midjourney_webhook_secret
    if not expected:
        logger.error("Image webhook rejected: secret not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Image webhook secret is not configured",
        )
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        logger.warning("Image webhook rejected: invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


def get_checkpoint_manager() -> CheckpointManager:
    return CheckpointManager(WorkItemRepository())


def get_job_runner() -> ScheduledPipelineJobRunner:
    return ScheduledPipelineJobRunner.from_settings()


def get_execution_log_repository() -> ExecutionLogRepository:
    return ExecutionLogRepository()


def get_image_completion_handler() -> ImageCompletionHandler:
    store = WorkItemRepository()
    return ImageCompletionHandler(
        store=store,
        checkpoints=CheckpointManager(store),
        image_store=build_image_store(settings),
    )


AdminKey = Annotated[None, Depends(require_admin_api_key)]
ImageWebhookSecret = Annotated[None, Depends(require_image_webhook_secret)]
Checkpoints = Annotated[CheckpointManager, Depends(get_checkpoint_manager)]
JobRunner = Annotated[ScheduledPipelineJobRunner, Depends(get_job_runner)]
ExecutionLogs = Annotated[ExecutionLogRepository, Depends(get_execution_log_repository)]
ImageCompletion = Annotated[ImageCompletionHandler, Depends(get_image_completion_handler)]

__all__ = [
    "AdminKey",
    "Checkpoints",
    "ExecutionLogs",
    "ImageCompletion",
    "ImageWebhookSecret",
    "JobRunner",
    "get_checkpoint_manager",
    "get_execution_log_repository",
    "get_image_completion_handler",
    "get_job_runner",
    "require_admin_api_key",
    "require_image_webhook_secret",
]
