"""Live content and content version models."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped, mapped_column

from contentsync.database import Base, JSONType, UTCDateTime
from contentsync.models.sync import utcnow


class ChangeType(str, Enum):
    """Kind of change captured by a content version."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    PUBLISH = "publish"


class ContentItem(Base):
    """Admin-edited live content, one row per (content_type, content_id)."""

    __tablename__ = "content_items"

    __table_args__ = (
        UniqueConstraint("content_type", "content_id", name="uq_content_items_entity"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<ContentItem {self.content_type}/{self.content_id}>"


class ContentVersion(Base):
    """Immutable snapshot of a content item.

    version_number is gapless and strictly increasing per
    (content_type, content_id); the unique constraint rejects a
    concurrent writer that computed the same number.
    """

    __tablename__ = "content_versions"

    __table_args__ = (
        UniqueConstraint(
            "content_type",
            "content_id",
            "version_number",
            name="uq_content_versions_number",
        ),
        Index("ix_content_versions_entity", "content_type", "content_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(String(100), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    content_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    change_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    change_type: Mapped[ChangeType] = mapped_column(
        SAEnum(
            ChangeType,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<ContentVersion {self.content_type}/{self.content_id} "
            f"v{self.version_number}>"
        )
