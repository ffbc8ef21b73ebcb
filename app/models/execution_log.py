"""Execution log and automation schedule models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, StringUUID, TimestampMixin, UUIDMixin

ExecutionStatus = Literal["RUNNING", "SUCCESS", "FAILED"]
TriggerSource = Literal["schedule", "manual", "retry"]


class AutomationSchedule(Base, UUIDMixin, TimestampMixin):
    """Cron-driven automation entry. The cron itself is evaluated externally."""

    __tablename__ = "automation_schedules"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cron_expression: Mapped[str] = mapped_column(String(100), nullable=False)
    author_id: Mapped[str | None] = mapped_column(StringUUID(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    run_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<AutomationSchedule {self.id} {self.cron_expression!r}>"


class ExecutionLog(Base, UUIDMixin, TimestampMixin):
    """One pipeline run over one work item, as seen by operators."""

    __tablename__ = "pipeline_execution_logs"

    schedule_id: Mapped[str | None] = mapped_column(
        StringUUID(),
        ForeignKey("automation_schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    work_item_id: Mapped[str | None] = mapped_column(StringUUID(), nullable=True, index=True)
    item_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    author_id: Mapped[str | None] = mapped_column(StringUUID(), nullable=True)
    triggered_by: Mapped[str] = mapped_column(String(20), default="schedule", nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="RUNNING", nullable=False, index=True)
    stage: Mapped[str | None] = mapped_column(String(255), nullable=True)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    logs: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)

    # Timing
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Outcome
    content_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_stage: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<ExecutionLog {self.id} ({self.status})>"
