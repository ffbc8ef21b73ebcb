"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1.pipeline.routes import router as pipeline_router
from app.api.v1.webhooks.routes import router as webhooks_router

api_router = APIRouter()

api_router.include_router(pipeline_router, prefix="/pipeline", tags=["Pipeline"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
