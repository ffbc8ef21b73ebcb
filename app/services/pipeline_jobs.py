"""Scheduled pipeline jobs: Redis queue, rate limiter, runner and worker loop."""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

from app.config import Settings, settings
from app.core.redis import RedisQueueClient
from app.models.work_item import WorkItem
from app.repositories.execution_log_repository import ExecutionLogRepository, ExecutionLogStore
from app.repositories.work_item_repository import WorkItemRepository, WorkItemStore
from app.services.pipeline_orchestrator import (
    PipelineOrchestrator,
    PipelineProgress,
    PipelineResult,
    ProgressCallback,
)

logger = logging.getLogger(__name__)

PIPELINE_WORKER_CONCURRENCY = 1
PENDING_IMAGES_STAGE = "Awaiting image callback"

TriggeredBy = Literal["schedule", "manual", "retry"]


@dataclass(slots=True)
class PipelineJob:
    """Queued pipeline job payload."""

    schedule_id: str | None = None
    author_id: str | None = None
    triggered_by: TriggeredBy = "schedule"
    item_id: str | None = None
    enqueued_at: str | None = None


@dataclass(slots=True)
class PipelineJobResult:
    success: bool = True
    processed: int = 0
    failed: int = 0
    pending: int = 0
    recipes: list[dict[str, Any]] = field(default_factory=list)


class PipelineRunner(Protocol):
    async def execute_pipeline(
        self,
        item_id: str,
        *,
        author_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult: ...


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def progress_percent(progress: PipelineProgress) -> int:
    if progress.total <= 0:
        return 0
    return min(100, math.floor(progress.step / progress.total * 100))


def log_entry_from_line(line: str, *, appended_at: str) -> dict[str, Any]:
    """Turn an orchestrator ``[timestamp] message`` line into a log entry.

    ``timestamp`` is the append time so the execution log stays time-ordered;
    the time the orchestrator wrote the line is kept as ``logged_at``.
    """
    if line.startswith("[") and "] " in line:
        logged_at, message = line[1:].split("] ", 1)
        return {"timestamp": appended_at, "logged_at": logged_at, "message": message}
    return {"timestamp": appended_at, "message": line}


class PipelineJobQueue:
    """Redis list queue of scheduled pipeline jobs."""

    def __init__(self, redis: RedisQueueClient, *, queue_key: str) -> None:
        self.redis = redis
        self.queue_key = queue_key

    @classmethod
    def from_settings(
        cls,
        redis: RedisQueueClient,
        app_settings: Settings | None = None,
    ) -> PipelineJobQueue:
        resolved = app_settings or settings
        return cls(redis, queue_key=resolved.pipeline_queue_key)

    async def enqueue(self, job: PipelineJob) -> int:
        if job.enqueued_at is None:
            job.enqueued_at = _utc_now_iso()
        depth = await self.redis.rpush(self.queue_key, self._serialize(job))
        logger.info(
            "Pipeline job enqueued",
            extra={
                "queue": self.queue_key,
                "schedule_id": job.schedule_id,
                "item_id": job.item_id,
                "queue_depth": depth,
            },
        )
        return depth

    async def pop_next(self, *, timeout_seconds: int) -> PipelineJob | None:
        raw = await self.redis.blpop(self.queue_key, timeout=timeout_seconds)
        if raw is None:
            return None
        _key, payload = raw
        return self._deserialize(payload)

    async def size(self) -> int:
        return await self.redis.llen(self.queue_key)

    @staticmethod
    def _serialize(job: PipelineJob) -> str:
        return json.dumps(asdict(job))

    def _deserialize(self, payload: str) -> PipelineJob | None:
        try:
            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("payload is not an object")
            triggered_by = data.get("triggered_by") or "schedule"
            if triggered_by not in ("schedule", "manual", "retry"):
                raise ValueError(f"unknown trigger {triggered_by!r}")
            return PipelineJob(
                schedule_id=data.get("schedule_id"),
                author_id=data.get("author_id"),
                triggered_by=triggered_by,
                item_id=data.get("item_id"),
                enqueued_at=data.get("enqueued_at"),
            )
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Dropping malformed pipeline job payload",
                extra={"queue": self.queue_key, "payload": payload[:200], "error": str(exc)},
            )
            return None


class PipelineRateLimiter:
    """Sliding-window limiter kept in a Redis sorted set.

    Each admitted job adds one member scored with its start time; members
    older than the window are pruned before counting.
    """

    def __init__(
        self,
        redis: RedisQueueClient,
        *,
        key: str,
        max_jobs: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_jobs < 1:
            raise ValueError("max_jobs must be at least 1")
        self.redis = redis
        self.key = key
        self.max_jobs = max_jobs
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        redis: RedisQueueClient,
        app_settings: Settings | None = None,
    ) -> PipelineRateLimiter:
        resolved = app_settings or settings
        return cls(
            redis,
            key=resolved.pipeline_rate_limit_key,
            max_jobs=resolved.pipeline_rate_limit_max_jobs,
            window_seconds=resolved.pipeline_rate_limit_window_seconds,
        )

    async def try_acquire(self) -> float:
        """Admit one job now, or return how many seconds to wait first."""
        now = self._clock()
        await self.redis.zremrangebyscore(self.key, 0, now - self.window_seconds)
        count = await self.redis.zcard(self.key)
        if count < self.max_jobs:
            await self.redis.zadd(self.key, f"{now:.6f}:{uuid.uuid4().hex[:8]}", now)
            await self.redis.expire(self.key, math.ceil(self.window_seconds) + 1)
            return 0.0

        oldest = await self.redis.oldest_score(self.key)
        if oldest is None:
            return 0.0
        return max(oldest + self.window_seconds - now, 0.05)

    async def acquire(self) -> None:
        while True:
            wait_seconds = await self.try_acquire()
            if wait_seconds <= 0:
                return
            logger.info(
                "Pipeline rate limit reached, waiting",
                extra={"key": self.key, "wait_seconds": round(wait_seconds, 2)},
            )
            await self._sleep(wait_seconds)


class ScheduledPipelineJobRunner:
    """Runs the orchestrator for exactly one work item per job."""

    def __init__(
        self,
        *,
        store: WorkItemStore,
        logs: ExecutionLogStore,
        orchestrator: PipelineRunner,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.logs = logs
        self.orchestrator = orchestrator
        self._clock = clock

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> ScheduledPipelineJobRunner:
        store = WorkItemRepository()
        return cls(
            store=store,
            logs=ExecutionLogRepository(),
            orchestrator=PipelineOrchestrator.from_settings(app_settings, store=store),
        )

    async def run(self, job: PipelineJob) -> PipelineJobResult:
        result = PipelineJobResult()
        logger.info(
            "Starting pipeline job",
            extra={"schedule_id": job.schedule_id, "triggered_by": job.triggered_by},
        )

        if job.schedule_id:
            await self._touch_schedule(job.schedule_id)

        item = await self._select_item(job)
        if item is None:
            logger.info("No eligible work items for pipeline job", extra={"schedule_id": job.schedule_id})
            return result

        started = self._clock()
        log_id: str | None = None
        try:
            log_id = await self.logs.create(
                work_item_id=item.id,
                item_title=item.source_title,
                schedule_id=job.schedule_id,
                author_id=job.author_id,
                triggered_by=job.triggered_by,
            )
            outcome = await self.orchestrator.execute_pipeline(
                item.id,
                author_id=job.author_id,
                on_progress=self._progress_writer(log_id),
            )
            await self._finalize(log_id, item, outcome, started, result)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.exception("Pipeline job failed unexpectedly", extra={"item_id": item.id})
            result.failed += 1
            result.recipes.append({"item_id": item.id, "error": message})
            if log_id is not None:
                await self._finalize_crashed(log_id, message, started)

        logger.info(
            "Pipeline job completed",
            extra={
                "schedule_id": job.schedule_id,
                "processed": result.processed,
                "failed": result.failed,
                "pending": result.pending,
            },
        )
        return result

    async def _touch_schedule(self, schedule_id: str) -> None:
        try:
            touched = await self.logs.touch_schedule(schedule_id)
        except Exception as exc:
            logger.warning(
                "Could not update schedule run stats",
                extra={"schedule_id": schedule_id, "error": str(exc)},
            )
            return
        if not touched:
            logger.warning(
                "Schedule no longer exists; running job without schedule update",
                extra={"schedule_id": schedule_id},
            )

    async def _select_item(self, job: PipelineJob) -> WorkItem | None:
        if job.item_id:
            item = await self.store.get(job.item_id)
            if item is None:
                logger.warning("Requested work item not found", extra={"item_id": job.item_id})
            return item
        return await self.store.find_next_eligible()

    def _progress_writer(self, log_id: str) -> ProgressCallback:
        async def _on_progress(progress: PipelineProgress) -> None:
            logger.debug(
                "Pipeline step",
                extra={"log_id": log_id, "step": progress.step, "total": progress.total},
            )
            await self.logs.append_progress(
                log_id,
                {
                    "timestamp": _utc_now_iso(),
                    "step": progress.step,
                    "total": progress.total,
                    "message": progress.message,
                },
                stage=progress.message,
                progress=progress_percent(progress),
            )

        return _on_progress

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))

    async def _finalize(
        self,
        log_id: str,
        item: WorkItem,
        outcome: PipelineResult,
        started: float,
        result: PipelineJobResult,
    ) -> None:
        appended_at = _utc_now_iso()
        extra_logs = [log_entry_from_line(line, appended_at=appended_at) for line in outcome.logs]
        duration_ms = self._elapsed_ms(started)

        if outcome.success and outcome.images_pending:
            result.pending += 1
            result.recipes.append({"item_id": item.id, "pending": True})
            await self.logs.finalize(
                log_id,
                status="SUCCESS",
                stage=PENDING_IMAGES_STAGE,
                duration_ms=duration_ms,
                extra_logs=extra_logs,
            )
            logger.info("Pipeline paused for image callback", extra={"item_id": item.id})
            return

        if outcome.success:
            result.processed += 1
            result.recipes.append(
                {"item_id": item.id, "content_id": outcome.content_id, "url": outcome.url}
            )
            await self.logs.finalize(
                log_id,
                status="SUCCESS",
                stage="Completed",
                duration_ms=duration_ms,
                content_id=outcome.content_id,
                content_url=outcome.url,
                extra_logs=extra_logs,
            )
            logger.info("Recipe created", extra={"item_id": item.id, "url": outcome.url})
            return

        result.failed += 1
        result.recipes.append({"item_id": item.id, "error": outcome.error})
        await self.logs.finalize(
            log_id,
            status="FAILED",
            stage=outcome.stage,
            duration_ms=duration_ms,
            error=outcome.error,
            error_stage=outcome.stage,
            extra_logs=extra_logs,
        )
        logger.error(
            "Failed to create recipe",
            extra={"item_id": item.id, "stage": outcome.stage, "error": outcome.error},
        )

    async def _finalize_crashed(self, log_id: str, message: str, started: float) -> None:
        try:
            await self.logs.finalize(
                log_id,
                status="FAILED",
                stage="UNKNOWN",
                duration_ms=self._elapsed_ms(started),
                error=message,
                error_stage="UNKNOWN",
                extra_logs=[{"timestamp": _utc_now_iso(), "message": f"Error: {message}"}],
            )
        except Exception as exc:
            logger.error(
                "Could not finalize execution log",
                extra={"log_id": log_id, "error": str(exc)},
            )


class PipelineJobWorker:
    """Single consumer loop: rate limit, pop one job, run it."""

    def __init__(
        self,
        *,
        queue: PipelineJobQueue,
        limiter: PipelineRateLimiter,
        runner: ScheduledPipelineJobRunner,
        poll_timeout_seconds: int = 5,
    ) -> None:
        self.queue = queue
        self.limiter = limiter
        self.runner = runner
        self.poll_timeout_seconds = poll_timeout_seconds
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = False

    async def start(self) -> None:
        if self._tasks:
            return
        self._stopping = False
        for worker_index in range(PIPELINE_WORKER_CONCURRENCY):
            self._tasks.append(asyncio.create_task(self._worker_loop(worker_index)))
        logger.info(
            "Pipeline job worker started",
            extra={"queue": self.queue.queue_key, "concurrency": PIPELINE_WORKER_CONCURRENCY},
        )

    async def stop(self) -> None:
        self._stopping = True
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Pipeline job worker stopped")

    async def process_one(self) -> PipelineJobResult | None:
        """Wait for one job and run it; None when the poll timed out."""
        job = await self.queue.pop_next(timeout_seconds=self.poll_timeout_seconds)
        if job is None:
            return None
        await self.limiter.acquire()
        return await self.runner.run(job)

    async def _worker_loop(self, worker_index: int) -> None:
        while not self._stopping:
            try:
                await self.process_one()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Pipeline job worker iteration failed",
                    extra={"worker_index": worker_index},
                )
                await asyncio.sleep(1)
