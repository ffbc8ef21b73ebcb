"""Work item model: one scraped lead progressing toward a published recipe."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDMixin

WorkItemStatus = Literal[
    "PENDING",
    "SEO_PROCESSED",
    "SEO_COMPLETED",
    "READY_FOR_GENERATION",
    "GENERATING",
    "COMPLETED",
    "FAILED",
]

Checkpoint = Literal[
    "INIT",
    "SEO_COMPLETE",
    "IMAGES_COMPLETE",
    "RECIPE_COMPLETE",
    "GOOGLE_INDEXED",
    "PINTEREST_SENT",
]

CHECKPOINT_ORDER: tuple[Checkpoint, ...] = (
    "INIT",
    "SEO_COMPLETE",
    "IMAGES_COMPLETE",
    "RECIPE_COMPLETE",
    "GOOGLE_INDEXED",
    "PINTEREST_SENT",
)

# SEO_COMPLETED is the legacy spelling some ingesters still write.
ELIGIBLE_STATUSES: tuple[WorkItemStatus, ...] = (
    "PENDING",
    "SEO_PROCESSED",
    "SEO_COMPLETED",
    "READY_FOR_GENERATION",
)

IMAGE_SLOTS: tuple[int, ...] = (1, 2, 3, 4)


def checkpoint_rank(checkpoint: str | None) -> int:
    """Position of a checkpoint in the pipeline order; unknown/None ranks as INIT."""
    if checkpoint in CHECKPOINT_ORDER:
        return CHECKPOINT_ORDER.index(checkpoint)  # type: ignore[arg-type]
    return 0


def checkpoints_at_or_below(checkpoint: Checkpoint) -> tuple[Checkpoint, ...]:
    """Checkpoints that may legally advance to ``checkpoint``."""
    return CHECKPOINT_ORDER[: checkpoint_rank(checkpoint) + 1]


def image_url_column(slot: int) -> str:
    """Column name holding the verified URL of one image slot."""
    if slot not in IMAGE_SLOTS:
        raise ValueError(f"Invalid image slot: {slot}")
    return f"generated_image_{slot}_url"


class WorkItem(Base, UUIDMixin, TimestampMixin):
    """Scraped lead plus every artifact the pipeline has paid for."""

    __tablename__ = "work_items"

    # Source lead
    source_title: Mapped[str] = mapped_column(String(500), nullable=False)
    source_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)

    # State machine
    status: Mapped[str] = mapped_column(String(32), default="PENDING", nullable=False, index=True)
    checkpoint: Mapped[str] = mapped_column(String(32), default="INIT", nullable=False)

    # Retry metadata
    failed_step: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    generation_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    can_retry: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # SEO artifacts
    seo_keyword: Mapped[str | None] = mapped_column(String(255), nullable=True)
    seo_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    seo_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    seo_category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    seo_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Image artifacts
    generated_image_1_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_image_2_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_image_3_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_image_4_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_image_prompts: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    image_progress: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    image_task_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    image_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Content artifacts
    generated_content_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    content_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def image_urls(self) -> list[str | None]:
        return [getattr(self, image_url_column(slot)) for slot in IMAGE_SLOTS]

    @property
    def has_images(self) -> bool:
        return all(self.image_urls)

    @property
    def has_seo(self) -> bool:
        return bool(self.seo_keyword and self.seo_title and self.seo_description)

    @property
    def has_content(self) -> bool:
        return bool(self.generated_content_id)

    def __repr__(self) -> str:
        return f"<WorkItem {self.id} ({self.status}/{self.checkpoint})>"
