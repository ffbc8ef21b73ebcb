"""SEO extractor agent: keyword, title, meta description and category for a lead."""

import logging

from pydantic import BaseModel, Field

from app.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)


class SeoExtractorInput(BaseModel):
    """Input for the SEO extractor agent."""

    source_title: str
    source_description: str | None = None
    category_hint: str | None = None


class SeoMetadata(BaseModel):
    """Search metadata for one recipe lead."""

    seo_keyword: str = Field(description="Main target keyword, 2-4 words, highly searchable")
    seo_title: str = Field(description="Optimized title, 50-60 characters, includes the keyword")
    seo_description: str = Field(
        description="Meta description, 150-160 characters, includes keyword and a call to action",
    )
    seo_category: str | None = Field(
        default=None,
        description="Recipe category this dish belongs to, e.g. Desserts or Pasta",
    )

    def is_complete(self) -> bool:
        return bool(
            self.seo_keyword.strip()
            and self.seo_title.strip()
            and self.seo_description.strip()
        )


class SeoExtractorAgent(BaseAgent[SeoExtractorInput, SeoMetadata]):
    """Turns a scraped pin into search metadata for the recipe article."""

    model_tier = "fast"
    temperature = 0.7
    failure_stage = "SEO_GENERATION"

    @property
    def system_prompt(self) -> str:
        return """You are an expert SEO specialist for a recipe food blog.
Given a scraped recipe idea, produce search metadata for the article we will write.

Produce:
1. **SEO Keyword**: the main target keyword (2-4 words, highly searchable)
2. **SEO Title**: 50-60 characters, includes the keyword naturally, compelling
3. **SEO Description**: 150-160 characters, includes the keyword, ends with a call to action
4. **SEO Category**: the recipe category the dish belongs to

Guidelines:
- Keep the essence of the original recipe
- Optimize for Google search, not for clickbait
- Never invent ingredients the source does not suggest
"""

    @property
    def output_type(self) -> type[SeoMetadata]:
        return SeoMetadata

    def _build_prompt(self, input_data: SeoExtractorInput) -> str:
        lines = [f"**Original Title:** {input_data.source_title}"]
        if input_data.source_description:
            lines.append(f"**Description:** {input_data.source_description}")
        if input_data.category_hint:
            lines.append(f"**Category hint:** {input_data.category_hint}")
        lines.append("")
        lines.append("Generate the SEO metadata for this recipe.")
        return "\n".join(lines)
