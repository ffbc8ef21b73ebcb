"""Repository for WorkItem reads and single-statement writes."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session_context
from app.core.db_retry import run_with_transient_db_retry
from app.models.work_item import ELIGIBLE_STATUSES, WorkItem

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class WorkItemStore(Protocol):
    """Persistence contract used by the checkpoint manager and orchestrator."""

    async def get(self, item_id: str) -> WorkItem | None: ...

    async def update(
        self,
        item_id: str,
        values: Mapping[str, Any],
        *,
        increment_attempts: bool = False,
        only_if_checkpoint_in: tuple[str, ...] | None = None,
        only_if_status_in: tuple[str, ...] | None = None,
    ) -> bool: ...

    async def find_next_eligible(self) -> WorkItem | None: ...

    async def list_retriable(self) -> list[WorkItem]: ...

    async def find_by_image_task_id(self, task_id: str) -> WorkItem | None: ...


class WorkItemRepository:
    """Handles WorkItem persistence via short-lived sessions."""

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self._session_factory = session_factory

    async def get(self, item_id: str) -> WorkItem | None:
        async def _get_once() -> WorkItem | None:
            async with self._session_factory() as session:
                return await session.get(WorkItem, str(item_id))

        return await run_with_transient_db_retry(
            _get_once,
            operation_name="work_item_get",
            log_context={"item_id": item_id},
        )

    async def update(
        self,
        item_id: str,
        values: Mapping[str, Any],
        *,
        increment_attempts: bool = False,
        only_if_checkpoint_in: tuple[str, ...] | None = None,
        only_if_status_in: tuple[str, ...] | None = None,
    ) -> bool:
        """Apply one keyed UPDATE; returns False when no row matched.

        ``only_if_checkpoint_in`` turns the write into a compare-and-set on the
        stored checkpoint, which is how checkpoint regressions are refused.
        ``only_if_status_in`` does the same for the stored status.

        An ``increment_attempts`` write is not replayed after a dropped
        connection, since the first attempt may already have committed.
        """
        assignments = dict(values)
        if increment_attempts:
            assignments["generation_attempts"] = WorkItem.generation_attempts + 1
        if not assignments:
            return True

        stmt = update(WorkItem).where(WorkItem.id == str(item_id)).values(**assignments)
        if only_if_checkpoint_in is not None:
            stmt = stmt.where(WorkItem.checkpoint.in_(only_if_checkpoint_in))
        if only_if_status_in is not None:
            stmt = stmt.where(WorkItem.status.in_(only_if_status_in))
        stmt = stmt.execution_options(synchronize_session=False)

        async def _update_once() -> bool:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return bool(result.rowcount)

        return await run_with_transient_db_retry(
            _update_once,
            operation_name="work_item_update",
            attempts=1 if increment_attempts else 3,
            log_context={"item_id": item_id, "fields": sorted(assignments)},
        )

    async def find_next_eligible(self) -> WorkItem | None:
        """Highest-priority, oldest eligible item that has no content yet."""
        stmt = (
            select(WorkItem)
            .where(
                WorkItem.status.in_(ELIGIBLE_STATUSES),
                WorkItem.generated_content_id.is_(None),
            )
            .order_by(WorkItem.priority.desc(), WorkItem.created_at.asc())
            .limit(1)
        )

        async def _find_once() -> WorkItem | None:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()

        return await run_with_transient_db_retry(
            _find_once,
            operation_name="work_item_find_next_eligible",
        )

    async def list_retriable(self) -> list[WorkItem]:
        stmt = (
            select(WorkItem)
            .where(WorkItem.status == "FAILED", WorkItem.can_retry.is_(True))
            .order_by(WorkItem.failed_at.desc().nulls_last())
        )

        async def _list_once() -> list[WorkItem]:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

        return await run_with_transient_db_retry(
            _list_once,
            operation_name="work_item_list_retriable",
        )

    async def find_by_image_task_id(self, task_id: str) -> WorkItem | None:
        stmt = select(WorkItem).where(WorkItem.image_task_id == task_id).limit(1)

        async def _find_once() -> WorkItem | None:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()

        return await run_with_transient_db_retry(
            _find_once,
            operation_name="work_item_find_by_image_task",
            log_context={"task_id": task_id},
        )
