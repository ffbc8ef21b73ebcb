"""Category and author matching for generated recipes."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from app.core.exceptions import NoAuthorAvailableError
from app.models.recipe import Author, Category
from app.repositories.recipe_repository import CatalogStore

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset({
    "a", "an", "and", "best", "easy", "for", "homemade", "how", "in", "of",
    "on", "quick", "recipe", "recipes", "simple", "the", "to", "with",
})


@dataclass(frozen=True)
class CategoryMatch:
    category_id: str
    category_name: str
    category_slug: str
    confidence: float


def tokenize(*values: str | None) -> set[str]:
    tokens: set[str] = set()
    for value in values:
        if not value:
            continue
        for token in _TOKEN_RE.findall(value.lower()):
            if token in _STOPWORDS or len(token) < 3:
                continue
            tokens.add(token)
            # Plural-insensitive: "cookies" and "cookie" should meet.
            if token.endswith("s") and len(token) > 3:
                tokens.add(token[:-1])
    return tokens


def _category_terms(category: Category) -> set[str]:
    keywords = [str(k) for k in (category.keywords or []) if k]
    return tokenize(category.name, category.slug.replace("-", " "), *keywords)


def score_category(
    category: Category,
    *,
    text_tokens: set[str],
    hinted_category: str | None,
) -> float:
    """Confidence 0-100 that ``category`` fits the recipe."""
    if hinted_category:
        hint = hinted_category.strip().lower()
        if hint in (category.name.lower(), category.slug.lower()):
            return 100.0

    terms = _category_terms(category)
    if not terms:
        return 0.0
    overlap = terms & text_tokens
    if not overlap:
        return 0.0
    # Any hit earns a base score; coverage of the category's vocabulary adds the rest.
    return round(min(100.0, 40.0 + 60.0 * len(overlap) / len(terms)), 1)


def author_specializes_in(author: Author, match: CategoryMatch) -> bool:
    specializations: list[Any] = list(author.specializations or [])
    wanted = {
        match.category_id.lower(),
        match.category_name.lower(),
        match.category_slug.lower(),
    }
    return any(str(value).strip().lower() in wanted for value in specializations)


class CategoryMatcher:
    """Picks the best category (optional) and the author (required) for an item."""

    def __init__(self, catalog: CatalogStore, *, min_confidence: float = 30.0) -> None:
        self.catalog = catalog
        self.min_confidence = min_confidence

    async def find_best_category(
        self,
        *,
        title: str,
        description: str | None,
        keyword: str | None,
        category_hint: str | None,
    ) -> CategoryMatch | None:
        categories = await self.catalog.list_categories()
        if not categories:
            return None

        text_tokens = tokenize(title, description, keyword, category_hint)
        best: CategoryMatch | None = None
        for category in categories:
            confidence = score_category(
                category,
                text_tokens=text_tokens,
                hinted_category=category_hint,
            )
            if best is None or confidence > best.confidence:
                best = CategoryMatch(
                    category_id=category.id,
                    category_name=category.name,
                    category_slug=category.slug,
                    confidence=confidence,
                )

        if best is None or best.confidence < self.min_confidence:
            logger.info(
                "No category reached the confidence threshold",
                extra={"title": title, "min_confidence": self.min_confidence},
            )
            return None
        return best

    async def select_author(
        self,
        *,
        author_id: str | None,
        category: CategoryMatch | None,
    ) -> Author:
        """Explicit author, else a category specialist, else the first author.

        Raises NoAuthorAvailableError when there is no author at all.
        """
        if author_id:
            explicit = await self.catalog.get_author(author_id)
            if explicit is not None:
                return explicit
            logger.warning("Requested author not found, auto-selecting", extra={"author_id": author_id})

        authors = await self.catalog.list_authors()
        if not authors:
            raise NoAuthorAvailableError()

        if category is not None:
            for author in authors:
                if author_specializes_in(author, category):
                    return author
            logger.info(
                "No author specializes in matched category, using fallback",
                extra={"category": category.category_slug, "author_id": authors[0].id},
            )
        return authors[0]
