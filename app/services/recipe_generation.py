"""Content stage executor: write the recipe, gate its depth, publish it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from app.agents.recipe_writer import RecipeWriterAgent, RecipeWriterInput
from app.core.exceptions import StageFailure
from app.core.ids import generate_cuid, slugify
from app.models.recipe import Author
from app.models.work_item import WorkItem
from app.repositories.recipe_repository import CatalogStore
from app.services.category_matching import CategoryMatch
from app.services.content_quality import ensure_recipe_richness

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_NAME = "Main Dish"
IMAGE_ROLES: tuple[str, ...] = (
    "feature_image",
    "preparation_image",
    "cooking_image",
    "final_presentation_image",
)


@dataclass(frozen=True)
class PublishedRecipe:
    content_id: str
    slug: str
    url: str
    title: str
    description: str


class RecipeGenerator(Protocol):
    async def generate_and_publish(
        self,
        item: WorkItem,
        *,
        author: Author,
        category: CategoryMatch | None,
    ) -> PublishedRecipe: ...


def recipe_url(slug: str) -> str:
    return f"/recipes/{slug}"


class RecipeGenerationService:
    """Generates the article with the writer agent and publishes it to the catalog."""

    def __init__(self, catalog: CatalogStore, writer: RecipeWriterAgent | None = None) -> None:
        self.catalog = catalog
        self._writer = writer

    @property
    def writer(self) -> RecipeWriterAgent:
        if self._writer is None:
            self._writer = RecipeWriterAgent()
        return self._writer

    async def generate_and_publish(
        self,
        item: WorkItem,
        *,
        author: Author,
        category: CategoryMatch | None,
    ) -> PublishedRecipe:
        recipe_id = generate_cuid()
        category_name = (
            category.category_name if category else (item.seo_category or DEFAULT_CATEGORY_NAME)
        )
        image_urls = [url for url in item.image_urls if url]

        try:
            output = await self.writer.run(
                RecipeWriterInput(
                    recipe_id=recipe_id,
                    title=item.seo_title or item.source_title,
                    description=item.source_description,
                    seo_keyword=item.seo_keyword or "",
                    seo_title=item.seo_title or item.source_title,
                    seo_description=item.seo_description or "",
                    category=category_name,
                    author_name=author.name,
                    author_bio=author.bio,
                    image_urls=image_urls,
                )
            )
        except StageFailure:
            raise
        except Exception as exc:
            raise StageFailure(
                "RECIPE_GENERATION",
                f"Recipe generation failed: {exc}",
                cause=exc,
            ) from exc

        document = self._finalize_document(
            output.model_dump(),
            recipe_id=recipe_id,
            item=item,
            author=author,
            category_name=category_name,
            image_urls=image_urls,
        )
        ensure_recipe_richness(document)

        try:
            recipe = await self.catalog.publish_recipe(
                recipe_id=recipe_id,
                work_item_id=item.id,
                slug=document["slug"],
                title=document["title"],
                description=document.get("description") or item.seo_description,
                category_id=category.category_id if category else None,
                category_name=category_name,
                author_id=author.id,
                document=document,
                images=image_urls,
            )
        except Exception as exc:
            raise StageFailure(
                "RECIPE_GENERATION",
                f"Recipe publish failed: {exc}",
                cause=exc,
            ) from exc

        published = PublishedRecipe(
            content_id=recipe.id,
            slug=recipe.slug,
            url=recipe_url(recipe.slug),
            title=recipe.title,
            description=recipe.description or "",
        )
        logger.info(
            "Recipe published",
            extra={"item_id": item.id, "content_id": published.content_id, "url": published.url},
        )
        return published

    @staticmethod
    def _finalize_document(
        document: dict[str, Any],
        *,
        recipe_id: str,
        item: WorkItem,
        author: Author,
        category_name: str,
        image_urls: list[str],
    ) -> dict[str, Any]:
        """Pin identity, category, author and image fields the model must not invent."""
        title = (document.get("title") or "").strip() or item.seo_title or item.source_title
        slug = slugify(document.get("slug") or "") or slugify(title) or recipe_id
        finalized = {
            **document,
            "id": recipe_id,
            "title": title,
            "slug": slug,
            "category": category_name,
            "author": {"id": author.id, "name": author.name, "bio": author.bio},
        }
        for role, url in zip(IMAGE_ROLES, image_urls):
            finalized[role] = url
        if image_urls:
            finalized["hero_image"] = image_urls[0]
            finalized["image_alt"] = document.get("image_alt") or title
        return finalized
