"""create work item, catalog and execution log tables

Revision ID: 3f7a2c9e1b40
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op
from app.models.base import StringUUID

# revision identifiers, used by Alembic.
revision: str = "3f7a2c9e1b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", StringUUID(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "work_items",
        sa.Column("source_title", sa.String(length=500), nullable=False),
        sa.Column("source_description", sa.Text(), nullable=True),
        sa.Column("source_image_url", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(length=32), server_default="PENDING", nullable=False),
        sa.Column("checkpoint", sa.String(length=32), server_default="INIT", nullable=False),
        sa.Column("failed_step", sa.String(length=64), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("generation_error", sa.Text(), nullable=True),
        sa.Column("generation_attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("can_retry", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("seo_keyword", sa.String(length=255), nullable=True),
        sa.Column("seo_title", sa.String(length=500), nullable=True),
        sa.Column("seo_description", sa.Text(), nullable=True),
        sa.Column("seo_category", sa.String(length=255), nullable=True),
        sa.Column("seo_processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("generated_image_1_url", sa.Text(), nullable=True),
        sa.Column("generated_image_2_url", sa.Text(), nullable=True),
        sa.Column("generated_image_3_url", sa.Text(), nullable=True),
        sa.Column("generated_image_4_url", sa.Text(), nullable=True),
        sa.Column("generated_image_prompts", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("image_progress", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("image_task_id", sa.String(length=255), nullable=True),
        sa.Column("image_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("generated_content_id", sa.String(length=64), nullable=True),
        sa.Column("content_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_url", sa.Text(), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_work_items_priority"), "work_items", ["priority"], unique=False)
    op.create_index(op.f("ix_work_items_status"), "work_items", ["status"], unique=False)
    op.create_index(op.f("ix_work_items_image_task_id"), "work_items", ["image_task_id"], unique=False)
    op.create_index(
        op.f("ix_work_items_generated_content_id"),
        "work_items",
        ["generated_content_id"],
        unique=False,
    )

    op.create_table(
        "authors",
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("specializations", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "categories",
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("keywords", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "distribution_boards",
        sa.Column("category_id", StringUUID(), nullable=False),
        sa.Column("board_id", sa.String(length=255), nullable=False),
        sa.Column("board_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_distribution_boards_category_id"),
        "distribution_boards",
        ["category_id"],
        unique=False,
    )

    op.create_table(
        "recipes",
        sa.Column("work_item_id", StringUUID(), nullable=True),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category_id", StringUUID(), nullable=True),
        sa.Column("category_name", sa.String(length=255), nullable=True),
        sa.Column("author_id", StringUUID(), nullable=True),
        sa.Column("document", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("images", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(["author_id"], ["authors.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index(op.f("ix_recipes_work_item_id"), "recipes", ["work_item_id"], unique=False)

    op.create_table(
        "automation_schedules",
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("cron_expression", sa.String(length=100), nullable=False),
        sa.Column("author_id", StringUUID(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("last_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("run_count", sa.Integer(), server_default="0", nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "pipeline_execution_logs",
        sa.Column("schedule_id", StringUUID(), nullable=True),
        sa.Column("work_item_id", StringUUID(), nullable=True),
        sa.Column("item_title", sa.String(length=500), nullable=True),
        sa.Column("author_id", StringUUID(), nullable=True),
        sa.Column("triggered_by", sa.String(length=20), server_default="schedule", nullable=False),
        sa.Column("status", sa.String(length=20), server_default="RUNNING", nullable=False),
        sa.Column("stage", sa.String(length=255), nullable=True),
        sa.Column("progress", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "logs",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("content_id", sa.String(length=64), nullable=True),
        sa.Column("content_url", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("error_stage", sa.String(length=64), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(["schedule_id"], ["automation_schedules.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_pipeline_execution_logs_schedule_id"),
        "pipeline_execution_logs",
        ["schedule_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_pipeline_execution_logs_work_item_id"),
        "pipeline_execution_logs",
        ["work_item_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_pipeline_execution_logs_status"),
        "pipeline_execution_logs",
        ["status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_pipeline_execution_logs_status"), table_name="pipeline_execution_logs")
    op.drop_index(op.f("ix_pipeline_execution_logs_work_item_id"), table_name="pipeline_execution_logs")
    op.drop_index(op.f("ix_pipeline_execution_logs_schedule_id"), table_name="pipeline_execution_logs")
    op.drop_table("pipeline_execution_logs")
    op.drop_table("automation_schedules")
    op.drop_index(op.f("ix_recipes_work_item_id"), table_name="recipes")
    op.drop_table("recipes")
    op.drop_index(op.f("ix_distribution_boards_category_id"), table_name="distribution_boards")
    op.drop_table("distribution_boards")
    op.drop_table("categories")
    op.drop_table("authors")
    op.drop_index(op.f("ix_work_items_generated_content_id"), table_name="work_items")
    op.drop_index(op.f("ix_work_items_image_task_id"), table_name="work_items")
    op.drop_index(op.f("ix_work_items_status"), table_name="work_items")
    op.drop_index(op.f("ix_work_items_priority"), table_name="work_items")
    op.drop_table("work_items")
