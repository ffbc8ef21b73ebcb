"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import api_router
from app.config import settings
from app.core.database import close_db, init_db
from app.core.logging import setup_logging
from app.core.redis import RedisQueueClient, create_redis_client
from app.services.pipeline_jobs import PipelineJobQueue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()

    logger.info(
        "Starting recipe pipeline API",
        extra={
            "environment": settings.environment,
            "version": settings.app_version,
            "image_provider": settings.image_provider,
            "model_standard": settings.get_model("standard"),
            "model_fast": settings.get_model("fast"),
        },
    )

    if settings.environment == "development":
        await init_db()
        logger.info("Development database initialized")

    redis = RedisQueueClient(create_redis_client(settings.redis_url))
    app.state.pipeline_queue = PipelineJobQueue.from_settings(redis)

    yield

    logger.info("Shutting down recipe pipeline API")
    await redis.aclose()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Resumable lead-to-recipe pipeline: SEO, images, recipe content, "
            "indexing and distribution with checkpointed retries."
        ),
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get(
        "/health",
        summary="Health check",
        description="Return service health status and backend version information.",
    )
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    @app.get(
        "/health/queue",
        summary="Queue health check",
        description="Return the scheduled pipeline queue length.",
    )
    async def queue_health_check(request: Request) -> dict[str, Any]:
        """Queue health endpoint."""
        queue: PipelineJobQueue = request.app.state.pipeline_queue
        queued = await queue.size()
        return {
            "status": "healthy",
            "version": settings.app_version,
            "queue": {"key": queue.queue_key, "queued": queued},
        }

    return app


app = create_app()
