"""Repository for catalog lookups and recipe publication."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session_context
from app.core.db_retry import run_with_transient_db_retry
from app.models.recipe import Author, Category, DistributionBoard, Recipe

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class CatalogStore(Protocol):
    async def list_authors(self) -> list[Author]: ...

    async def get_author(self, author_id: str) -> Author | None: ...

    async def list_categories(self) -> list[Category]: ...

    async def get_active_board_id(self, category_id: str) -> str | None: ...

    async def publish_recipe(
        self,
        *,
        recipe_id: str,
        work_item_id: str,
        slug: str,
        title: str,
        description: str | None,
        category_id: str | None,
        category_name: str | None,
        author_id: str | None,
        document: Mapping[str, Any],
        images: list[str],
    ) -> Recipe: ...


class RecipeRepository:
    """Handles catalog reads and recipe inserts via short-lived sessions."""

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self._session_factory = session_factory

    async def list_authors(self) -> list[Author]:
        async def _list_once() -> list[Author]:
            async with self._session_factory() as session:
                result = await session.execute(select(Author).order_by(Author.created_at.asc()))
                return list(result.scalars().all())

        return await run_with_transient_db_retry(_list_once, operation_name="author_list")

    async def get_author(self, author_id: str) -> Author | None:
        async def _get_once() -> Author | None:
            async with self._session_factory() as session:
                return await session.get(Author, author_id)

        return await run_with_transient_db_retry(
            _get_once,
            operation_name="author_get",
            log_context={"author_id": author_id},
        )

    async def list_categories(self) -> list[Category]:
        async def _list_once() -> list[Category]:
            async with self._session_factory() as session:
                result = await session.execute(select(Category).order_by(Category.name.asc()))
                return list(result.scalars().all())

        return await run_with_transient_db_retry(_list_once, operation_name="category_list")

    async def get_active_board_id(self, category_id: str) -> str | None:
        stmt = (
            select(DistributionBoard.board_id)
            .where(
                DistributionBoard.category_id == category_id,
                DistributionBoard.is_active.is_(True),
            )
            .order_by(DistributionBoard.created_at.asc())
            .limit(1)
        )

        async def _get_once() -> str | None:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()

        return await run_with_transient_db_retry(
            _get_once,
            operation_name="distribution_board_get",
            log_context={"category_id": category_id},
        )

    async def publish_recipe(
        self,
        *,
        recipe_id: str,
        work_item_id: str,
        slug: str,
        title: str,
        description: str | None,
        category_id: str | None,
        category_name: str | None,
        author_id: str | None,
        document: Mapping[str, Any],
        images: list[str],
    ) -> Recipe:
        """Insert the published recipe, suffixing the slug if it is taken.

        A replay after a dropped connection returns the row an earlier attempt
        already committed under ``recipe_id``.
        """

        async def _publish_once() -> Recipe:
            async with self._session_factory() as session:
                existing = await session.get(Recipe, recipe_id)
                if existing is not None:
                    return existing

                final_slug = slug
                taken = await session.execute(select(Recipe.id).where(Recipe.slug == final_slug))
                if taken.first() is not None:
                    final_slug = f"{slug}-{secrets.token_hex(3)}"
                    logger.info(
                        "Recipe slug already taken, using suffixed slug",
                        extra={"slug": slug, "final_slug": final_slug},
                    )

                recipe = Recipe(
                    id=recipe_id,
                    work_item_id=work_item_id,
                    slug=final_slug,
                    title=title,
                    description=description,
                    category_id=category_id,
                    category_name=category_name,
                    author_id=author_id,
                    document={**dict(document), "slug": final_slug},
                    images=images,
                    published_at=datetime.now(timezone.utc),
                )
                session.add(recipe)
                await session.flush()
                return recipe

        return await run_with_transient_db_retry(
            _publish_once,
            operation_name="recipe_publish",
            log_context={"work_item_id": work_item_id},
        )
