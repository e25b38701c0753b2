"""Create content synchronization tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # Live admin-edited content
    op.create_table(
        "content_items",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("content_id", sa.String(100), nullable=False),
        sa.Column("data", JSON, nullable=False),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "content_type", "content_id", name="uq_content_items_entity"
        ),
    )

    # Sync queue
    op.create_table(
        "content_sync_queue",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("content_id", sa.String(100), nullable=False),
        sa.Column("operation", sa.String(6), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column("payload", JSON, nullable=False),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer, nullable=False, server_default="3"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_content_sync_queue_entity",
        "content_sync_queue",
        ["content_type", "content_id"],
    )
    # Composite index for dispatch ordering
    op.create_index(
        "ix_content_sync_queue_dispatch",
        "content_sync_queue",
        ["status", "priority", "created_at"],
    )
    op.create_index(
        "ix_content_sync_queue_scheduled_for",
        "content_sync_queue",
        ["scheduled_for"],
    )

    # Sync logs
    op.create_table(
        "content_sync_logs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "content_sync_queue_id",
            sa.Uuid,
            sa.ForeignKey("content_sync_queue.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("content_id", sa.String(100), nullable=False),
        sa.Column("operation", sa.String(20), nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("duration_ms", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "details",
            JSON,
            nullable=True,
            comment="Diagnostic context: attempt number, cache key, version number",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_content_sync_logs_created_at", "content_sync_logs", ["created_at"]
    )
    op.create_index(
        "ix_content_sync_logs_queue_id", "content_sync_logs", ["content_sync_queue_id"]
    )

    # Content cache
    op.create_table(
        "content_cache",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("cache_key", sa.String(255), nullable=False, unique=True),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("content_id", sa.String(100), nullable=False),
        sa.Column("cache_data", JSON, nullable=False),
        sa.Column("hit_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_content_cache_entity", "content_cache", ["content_type", "content_id"]
    )
    op.create_index("ix_content_cache_expires_at", "content_cache", ["expires_at"])

    # Content versions
    op.create_table(
        "content_versions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("content_id", sa.String(100), nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column("content_data", JSON, nullable=False),
        sa.Column("change_summary", sa.Text, nullable=True),
        sa.Column("change_type", sa.String(7), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "content_type",
            "content_id",
            "version_number",
            name="uq_content_versions_number",
        ),
    )
    op.create_index(
        "ix_content_versions_entity",
        "content_versions",
        ["content_type", "content_id"],
    )

    # Sync settings
    op.create_table(
        "sync_settings",
        sa.Column("setting_key", sa.String(100), primary_key=True),
        sa.Column("setting_value", JSON, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("sync_settings")
    op.drop_index("ix_content_versions_entity", table_name="content_versions")
    op.drop_table("content_versions")
    op.drop_index("ix_content_cache_expires_at", table_name="content_cache")
    op.drop_index("ix_content_cache_entity", table_name="content_cache")
    op.drop_table("content_cache")
    op.drop_index("ix_content_sync_logs_queue_id", table_name="content_sync_logs")
    op.drop_index("ix_content_sync_logs_created_at", table_name="content_sync_logs")
    op.drop_table("content_sync_logs")
    op.drop_index("ix_content_sync_queue_scheduled_for", table_name="content_sync_queue")
    op.drop_index("ix_content_sync_queue_dispatch", table_name="content_sync_queue")
    op.drop_index("ix_content_sync_queue_entity", table_name="content_sync_queue")
    op.drop_table("content_sync_queue")
    op.drop_table("content_items")
