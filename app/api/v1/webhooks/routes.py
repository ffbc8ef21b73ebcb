"""Inbound provider webhooks."""

import logging

from fastapi import APIRouter, HTTPException, status

from app.api.v1.dependencies import ImageCompletion, ImageWebhookSecret
from app.api.v1.pipeline.constants import UNKNOWN_IMAGE_TASK_DETAIL, UNKNOWN_IMAGE_TASK_RETRY_AFTER_SECONDS
from app.schemas.pipeline import ImageCallbackRequest, ImageCallbackResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/images",
    response_model=ImageCallbackResponse,
    summary="Async image provider callback",
    description=(
        "Receive the finished image URLs for a submitted task. Images are copied to "
        "durable storage and verified before the work item advances."
    ),
)
async def image_callback(
    payload: ImageCallbackRequest,
    _secret: ImageWebhookSecret,
    handler: ImageCompletion,
) -> ImageCallbackResponse:
    result = await handler.complete(payload.task_id, payload.image_urls)
    if result.error == "unknown_task":
        # the task id may not be committed yet; ask the provider to redeliver
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=UNKNOWN_IMAGE_TASK_DETAIL,
            headers={"Retry-After": str(UNKNOWN_IMAGE_TASK_RETRY_AFTER_SECONDS)},
        )

    logger.info(
        "Image callback handled",
        extra={"task_id": payload.task_id, "item_id": result.item_id, "accepted": result.accepted},
    )
    return ImageCallbackResponse(
        accepted=result.accepted,
        item_id=result.item_id,
        error=result.error,
    )
