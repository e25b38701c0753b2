"""Content cache model."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Index, Integer, String
from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped, mapped_column

from contentsync.database import Base, JSONType, UTCDateTime
from contentsync.models.sync import utcnow


class ContentCache(Base):
    """Denormalized read snapshot of a content item with an expiry time."""

    __tablename__ = "content_cache"

    __table_args__ = (
        Index("ix_content_cache_entity", "content_type", "content_id"),
        Index("ix_content_cache_expires_at", "expires_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    cache_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(String(100), nullable=False)
    cache_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def is_expired(self, now: datetime) -> bool:
        """Whether the entry must no longer be served."""
        return self.expires_at <= now

    def __repr__(self) -> str:
        return f"<ContentCache {self.cache_key}>"
