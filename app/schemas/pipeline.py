"""Pipeline API schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ExecutionStatusFilter = Literal["RUNNING", "SUCCESS", "FAILED"]


class PipelineRunRequest(BaseModel):
    """Run one work item now, or the next eligible one when no id is given."""

    item_id: str | None = Field(
        default=None,
        description="Work item to run. Omit to pick the next eligible item.",
    )
    author_id: str | None = Field(default=None, description="Pin the recipe author.")


class PipelineRunResponse(BaseModel):
    """Outcome of a synchronous pipeline run."""

    success: bool
    processed: int = 0
    failed: int = 0
    pending: int = 0
    recipes: list[dict[str, Any]] = Field(default_factory=list)


class PipelineRetryRequest(BaseModel):
    item_id: str = Field(min_length=1)
    author_id: str | None = None


class PipelineRetryResponse(BaseModel):
    """Result of retrying a failed work item from its last checkpoint."""

    item_id: str
    resume_step: str
    resume_message: str
    summary: str
    success: bool
    content_id: str | None = None
    url: str | None = None
    error: str | None = None
    pending: bool = False


class RetriableEntryResponse(BaseModel):
    """Failed work item eligible for retry, with its checkpoint summary."""

    model_config = {"from_attributes": True}

    item_id: str
    title: str
    status: str
    checkpoint: str
    failed_step: str | None = None
    failed_at: datetime | None = None
    generation_attempts: int = 0
    generation_error: str | None = None
    has_images: bool = False
    has_seo: bool = False
    seo_keyword: str | None = None
    created_at: datetime | None = None
    resume_summary: str | None = None


class RetriableListResponse(BaseModel):
    items: list[RetriableEntryResponse]
    total: int


class ExecutionLogResponse(BaseModel):
    """Operator view of one execution log."""

    model_config = {"from_attributes": True}

    id: str
    schedule_id: str | None = None
    work_item_id: str | None = None
    item_title: str | None = None
    author_id: str | None = None
    triggered_by: str
    status: str
    stage: str | None = None
    progress: int = 0
    logs: list[dict[str, Any]] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None
    content_id: str | None = None
    content_url: str | None = None
    error: str | None = None
    error_stage: str | None = None


class ImageCallbackRequest(BaseModel):
    """Async image provider callback body."""

    task_id: str = Field(min_length=1)
    image_urls: list[str] = Field(min_length=4)


class ImageCallbackResponse(BaseModel):
    accepted: bool
    item_id: str | None = None
    error: str | None = None
