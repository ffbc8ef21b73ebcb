"""Catalog models: authors, categories, distribution boards and published recipes."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, StringUUID, TimestampMixin, UUIDMixin


class Author(Base, UUIDMixin, TimestampMixin):
    """Recipe author with the categories they specialise in."""

    __tablename__ = "authors"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    specializations: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"<Author {self.name}>"


class Category(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    keywords: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"<Category {self.slug}>"


class DistributionBoard(Base, UUIDMixin, TimestampMixin):
    """Maps a category to the Pinterest board its recipes are pinned to."""

    __tablename__ = "distribution_boards"

    category_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    board_id: Mapped[str] = mapped_column(String(255), nullable=False)
    board_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Recipe(Base, UUIDMixin, TimestampMixin):
    """Published recipe article generated from a work item."""

    __tablename__ = "recipes"

    work_item_id: Mapped[str | None] = mapped_column(StringUUID(), nullable=True, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[str | None] = mapped_column(
        StringUUID(),
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    category_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    author_id: Mapped[str | None] = mapped_column(
        StringUUID(),
        ForeignKey("authors.id", ondelete="SET NULL"),
        nullable=True,
    )
    document: Mapped[dict] = mapped_column(JSONB, nullable=False)
    images: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Recipe {self.slug}>"
