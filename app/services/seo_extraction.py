"""SEO stage executor."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from app.agents.seo_extractor import SeoExtractorAgent, SeoExtractorInput, SeoMetadata
from app.core.exceptions import StageFailure
from app.models.work_item import WorkItem

logger = logging.getLogger(__name__)


class SeoExtractor(Protocol):
    async def extract(self, item: WorkItem) -> SeoMetadata: ...


def seo_checkpoint_fields(metadata: SeoMetadata) -> dict[str, Any]:
    """Fields written together with the SEO_COMPLETE checkpoint."""
    return {
        "seo_keyword": metadata.seo_keyword.strip(),
        "seo_title": metadata.seo_title.strip(),
        "seo_description": metadata.seo_description.strip(),
        "seo_category": (metadata.seo_category or "").strip() or None,
        "seo_processed_at": datetime.now(timezone.utc),
        "status": "SEO_PROCESSED",
    }


class SeoExtractionService:
    """Runs the SEO agent for a work item and rejects incomplete answers."""

    def __init__(self, agent: SeoExtractorAgent | None = None) -> None:
        self._agent = agent

    @property
    def agent(self) -> SeoExtractorAgent:
        if self._agent is None:
            self._agent = SeoExtractorAgent()
        return self._agent

    async def extract(self, item: WorkItem) -> SeoMetadata:
        try:
            metadata = await self.agent.run(
                SeoExtractorInput(
                    source_title=item.source_title,
                    source_description=item.source_description,
                    category_hint=item.seo_category,
                )
            )
        except StageFailure:
            raise
        except Exception as exc:
            raise StageFailure("SEO_GENERATION", f"SEO generation failed: {exc}", cause=exc) from exc

        if not metadata.is_complete():
            raise StageFailure("SEO_GENERATION", "Incomplete SEO data generated")

        logger.info(
            "SEO data generated",
            extra={
                "item_id": item.id,
                "keyword": metadata.seo_keyword,
                "title_length": len(metadata.seo_title),
                "description_length": len(metadata.seo_description),
            },
        )
        return metadata
