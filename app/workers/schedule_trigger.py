"""Enqueue one scheduled pipeline job; invoked by the external cron."""

from __future__ import annotations

import argparse
import asyncio
import logging

from app.config import settings
from app.core.logging import setup_logging
from app.core.redis import RedisQueueClient, create_redis_client
from app.services.pipeline_jobs import PipelineJob, PipelineJobQueue

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--schedule-id", required=True, help="Automation schedule id.")
    parser.add_argument("--author-id", default=None, help="Pin the recipe author.")
    parser.add_argument(
        "--redis-url",
        default=settings.redis_url,
        help="Redis connection URL for the job queue.",
    )
    return parser.parse_args(argv)


async def enqueue_scheduled_job(
    *,
    redis_url: str,
    schedule_id: str,
    author_id: str | None,
) -> int:
    """Push one job onto the pipeline queue and return the queue depth."""
    setup_logging()
    redis = RedisQueueClient(create_redis_client(redis_url))
    try:
        queue = PipelineJobQueue.from_settings(redis)
        return await queue.enqueue(
            PipelineJob(schedule_id=schedule_id, author_id=author_id, triggered_by="schedule")
        )
    finally:
        await redis.aclose()


def main(argv: list[str] | None = None) -> int:
    """Run the trigger."""
    args = parse_args(argv)
    depth = asyncio.run(
        enqueue_scheduled_job(
            redis_url=args.redis_url,
            schedule_id=args.schedule_id,
            author_id=args.author_id,
        )
    )
    logger.info("Scheduled pipeline job queued", extra={"queue_depth": depth})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
