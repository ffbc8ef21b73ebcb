"""Repository for execution logs and automation schedules."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import Text, cast, literal, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session_context
from app.core.db_retry import run_with_transient_db_retry
from app.core.ids import generate_cuid
from app.models.execution_log import AutomationSchedule, ExecutionLog

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class ExecutionLogStore(Protocol):
    """Persistence contract used by the scheduled job runner."""

    async def create(
        self,
        *,
        work_item_id: str,
        item_title: str | None,
        schedule_id: str | None,
        author_id: str | None,
        triggered_by: str,
    ) -> str: ...

    async def append_progress(
        self,
        log_id: str,
        entry: Mapping[str, Any],
        *,
        stage: str | None = None,
        progress: int | None = None,
    ) -> bool: ...

    async def finalize(
        self,
        log_id: str,
        *,
        status: str,
        stage: str | None,
        duration_ms: int,
        content_id: str | None = None,
        content_url: str | None = None,
        error: str | None = None,
        error_stage: str | None = None,
        extra_logs: Sequence[Mapping[str, Any]] = (),
    ) -> bool: ...

    async def touch_schedule(self, schedule_id: str) -> bool: ...


def _jsonb_array(entries: Sequence[Mapping[str, Any]]):
    return cast(literal(json.dumps(list(entries), default=str), Text), JSONB)


class ExecutionLogRepository:
    """Short-lived-session access to pipeline_execution_logs and schedules.

    Log appends use ``logs || <jsonb array>`` so concurrent writers never lose
    entries, and every mutation is guarded by ``status = 'RUNNING'`` so a
    finalised log stays as it was written.
    """

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        *,
        work_item_id: str,
        item_title: str | None,
        schedule_id: str | None,
        author_id: str | None,
        triggered_by: str,
    ) -> str:
        log_id = generate_cuid()

        async def _create_once() -> str:
            async with self._session_factory() as session:
                if await session.get(ExecutionLog, log_id) is not None:
                    return log_id

                log = ExecutionLog(
                    id=log_id,
                    schedule_id=schedule_id,
                    work_item_id=work_item_id,
                    item_title=item_title,
                    author_id=author_id,
                    triggered_by=triggered_by,
                    status="RUNNING",
                    stage="Starting",
                    progress=0,
                    logs=[],
                    started_at=datetime.now(timezone.utc),
                )
                session.add(log)
                await session.flush()
                return log.id

        return await run_with_transient_db_retry(
            _create_once,
            operation_name="execution_log_create",
            log_context={"work_item_id": work_item_id},
        )

    async def append_progress(
        self,
        log_id: str,
        entry: Mapping[str, Any],
        *,
        stage: str | None = None,
        progress: int | None = None,
    ) -> bool:
        values: dict[str, Any] = {
            "logs": ExecutionLog.logs.op("||", return_type=JSONB)(_jsonb_array([entry])),
        }
        if stage is not None:
            values["stage"] = stage
        if progress is not None:
            values["progress"] = progress

        # a replayed append would duplicate the entry
        return await self._update_running(log_id, values, operation_name="execution_log_append", attempts=1)

    async def finalize(
        self,
        log_id: str,
        *,
        status: str,
        stage: str | None,
        duration_ms: int,
        content_id: str | None = None,
        content_url: str | None = None,
        error: str | None = None,
        error_stage: str | None = None,
        extra_logs: Sequence[Mapping[str, Any]] = (),
    ) -> bool:
        values: dict[str, Any] = {
            "status": status,
            "stage": stage,
            "completed_at": datetime.now(timezone.utc),
            "duration_ms": duration_ms,
            "content_id": content_id,
            "content_url": content_url,
            "error": error,
            "error_stage": error_stage,
        }
        if status == "SUCCESS":
            values["progress"] = 100
        if extra_logs:
            values["logs"] = ExecutionLog.logs.op("||", return_type=JSONB)(
                _jsonb_array(extra_logs)
            )

        return await self._update_running(log_id, values, operation_name="execution_log_finalize")

    async def touch_schedule(self, schedule_id: str) -> bool:
        """Stamp last_run and bump run_count; False when the schedule is gone."""
        stmt = (
            update(AutomationSchedule)
            .where(AutomationSchedule.id == schedule_id)
            .values(
                last_run=datetime.now(timezone.utc),
                run_count=AutomationSchedule.run_count + 1,
            )
            .execution_options(synchronize_session=False)
        )

        async def _touch_once() -> bool:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return bool(result.rowcount)

        return await run_with_transient_db_retry(
            _touch_once,
            operation_name="schedule_touch",
            attempts=1,
            log_context={"schedule_id": schedule_id},
        )

    async def list_recent(
        self,
        *,
        limit: int = 50,
        status: str | None = None,
    ) -> list[ExecutionLog]:
        stmt = select(ExecutionLog).order_by(ExecutionLog.started_at.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(ExecutionLog.status == status)

        async def _list_once() -> list[ExecutionLog]:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

        return await run_with_transient_db_retry(_list_once, operation_name="execution_log_list")

    async def _update_running(
        self,
        log_id: str,
        values: Mapping[str, Any],
        *,
        operation_name: str,
        attempts: int = 3,
    ) -> bool:
        stmt = (
            update(ExecutionLog)
            .where(ExecutionLog.id == log_id, ExecutionLog.status == "RUNNING")
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async def _update_once() -> bool:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return bool(result.rowcount)

        updated = await run_with_transient_db_retry(
            _update_once,
            operation_name=operation_name,
            attempts=attempts,
            log_context={"log_id": log_id},
        )
        if not updated:
            logger.warning(
                "Execution log is not running; update skipped",
                extra={"log_id": log_id, "operation": operation_name},
            )
        return updated
