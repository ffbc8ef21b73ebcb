"""Pipeline operator endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from app.api.v1.dependencies import AdminKey, Checkpoints, ExecutionLogs, JobRunner
from app.api.v1.pipeline.constants import (
    DEFAULT_LOG_LIMIT,
    MAX_LOG_LIMIT,
    WORK_ITEM_NOT_FAILED_DETAIL,
    WORK_ITEM_NOT_FOUND_DETAIL,
    WORK_ITEM_NOT_RETRIABLE_DETAIL,
)
from app.core.exceptions import NotRetriableError
from app.models.execution_log import ExecutionLog
from app.schemas.pipeline import (
    ExecutionLogResponse,
    ExecutionStatusFilter,
    PipelineRetryRequest,
    PipelineRetryResponse,
    PipelineRunRequest,
    PipelineRunResponse,
    RetriableEntryResponse,
    RetriableListResponse,
)
from app.services.pipeline_jobs import PipelineJob

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/run",
    response_model=PipelineRunResponse,
    summary="Run pipeline for one work item",
    description=(
        "Run the recipe pipeline synchronously for the given work item, or for the "
        "next eligible item when no id is supplied."
    ),
)
async def run_pipeline(
    request: PipelineRunRequest,
    _admin: AdminKey,
    runner: JobRunner,
) -> PipelineRunResponse:
    result = await runner.run(
        PipelineJob(
            author_id=request.author_id,
            triggered_by="manual",
            item_id=request.item_id,
        )
    )
    if request.item_id and not result.recipes:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=WORK_ITEM_NOT_FOUND_DETAIL)

    return PipelineRunResponse(
        success=result.failed == 0,
        processed=result.processed,
        failed=result.failed,
        pending=result.pending,
        recipes=result.recipes,
    )


@router.get(
    "/retry",
    response_model=RetriableListResponse,
    summary="List retriable work items",
    description="Failed work items that may be retried, newest failure first.",
)
async def list_retriable(
    _admin: AdminKey,
    checkpoints: Checkpoints,
) -> RetriableListResponse:
    entries = await checkpoints.get_retriable_entries()
    items: list[RetriableEntryResponse] = []
    for entry in entries:
        response = RetriableEntryResponse.model_validate(entry)
        response.resume_summary = await checkpoints.get_resume_summary(entry.item_id)
        items.append(response)
    return RetriableListResponse(items=items, total=len(items))


@router.post(
    "/retry",
    response_model=PipelineRetryResponse,
    summary="Retry a failed work item",
    description=(
        "Reset a failed work item and re-run it from its last checkpoint. "
        "Paid-for SEO and image artifacts are reused."
    ),
)
async def retry_pipeline(
    request: PipelineRetryRequest,
    _admin: AdminKey,
    checkpoints: Checkpoints,
    runner: JobRunner,
) -> PipelineRetryResponse:
    state = await checkpoints.get_last_checkpoint(request.item_id)
    if state.last_step is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=WORK_ITEM_NOT_FOUND_DETAIL)

    try:
        decision = await checkpoints.determine_resume_step(request.item_id)
        summary = await checkpoints.get_resume_summary(request.item_id)
    except NotRetriableError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=WORK_ITEM_NOT_RETRIABLE_DETAIL,
        )

    logger.info(
        "Retrying work item",
        extra={"item_id": request.item_id, "resume_step": decision.resume_step},
    )
    if not await checkpoints.reset_for_retry(request.item_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=WORK_ITEM_NOT_FAILED_DETAIL,
        )

    result = await runner.run(
        PipelineJob(
            author_id=request.author_id,
            triggered_by="retry",
            item_id=request.item_id,
        )
    )
    outcome = result.recipes[0] if result.recipes else {}

    return PipelineRetryResponse(
        item_id=request.item_id,
        resume_step=decision.resume_step,
        resume_message=decision.message,
        summary=summary,
        success=result.failed == 0 and bool(outcome),
        content_id=outcome.get("content_id"),
        url=outcome.get("url"),
        error=outcome.get("error"),
        pending=bool(outcome.get("pending")),
    )


@router.get(
    "/logs",
    response_model=list[ExecutionLogResponse],
    summary="List execution logs",
    description="Most recent pipeline execution logs, optionally filtered by status.",
)
async def list_execution_logs(
    _admin: AdminKey,
    logs: ExecutionLogs,
    limit: int = Query(DEFAULT_LOG_LIMIT, ge=1, le=MAX_LOG_LIMIT),
    status_filter: ExecutionStatusFilter | None = Query(None, alias="status"),
) -> list[ExecutionLog]:
    return await logs.list_recent(limit=limit, status=status_filter)
