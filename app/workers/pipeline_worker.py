"""Recipe pipeline queue worker process entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import suppress

from app.config import settings
from app.core.database import close_db
from app.core.logging import setup_logging
from app.core.redis import RedisQueueClient, create_redis_client
from app.services.pipeline_jobs import (
    PipelineJobQueue,
    PipelineJobWorker,
    PipelineRateLimiter,
    ScheduledPipelineJobRunner,
)

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--poll-timeout",
        type=int,
        default=settings.pipeline_poll_timeout_seconds,
        help="Redis blocking-pop timeout (seconds).",
    )
    parser.add_argument(
        "--redis-url",
        default=settings.redis_url,
        help="Redis connection URL for the job queue and rate limiter.",
    )
    return parser.parse_args(argv)


async def run_worker(*, redis_url: str, poll_timeout: int) -> None:
    """Start the consumer and block until a shutdown signal arrives."""
    setup_logging()

    redis = RedisQueueClient(create_redis_client(redis_url))
    worker = PipelineJobWorker(
        queue=PipelineJobQueue.from_settings(redis),
        limiter=PipelineRateLimiter.from_settings(redis),
        runner=ScheduledPipelineJobRunner.from_settings(),
        poll_timeout_seconds=poll_timeout,
    )
    await worker.start()
    logger.info("Pipeline worker process started", extra={"queue": worker.queue.queue_key})

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_stop() -> None:
        if not stop_event.is_set():
            logger.info("Shutdown signal received")
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_stop)

    try:
        await stop_event.wait()
    finally:
        logger.info("Stopping pipeline worker process")
        await worker.stop()
        await redis.aclose()
        await close_db()


def main() -> int:
    """Run the worker process."""
    args = parse_args()
    try:
        asyncio.run(run_worker(redis_url=args.redis_url, poll_timeout=args.poll_timeout))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
