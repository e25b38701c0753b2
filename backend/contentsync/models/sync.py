"""Content synchronization queue, log and settings models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped, mapped_column

from contentsync.database import Base, JSONType, UTCDateTime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class SyncQueueStatus(str, Enum):
    """Status of a sync queue item."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY = "retry"


class SyncQueueOperation(str, Enum):
    """Type of sync operation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Statuses that still own the next state of their entity
ACTIVE_STATUSES = (
    SyncQueueStatus.PENDING,
    SyncQueueStatus.PROCESSING,
    SyncQueueStatus.RETRY,
)

# Statuses eligible for dispatch once scheduled_for has passed
DISPATCHABLE_STATUSES = (SyncQueueStatus.PENDING, SyncQueueStatus.RETRY)

# Statuses removed by the retention purge
TERMINAL_STATUSES = (SyncQueueStatus.COMPLETED, SyncQueueStatus.FAILED)


class SyncQueueItem(Base):
    """Pending or historical synchronization operation for one content item.

    Dispatch order is priority descending, then created_at ascending.
    """

    __tablename__ = "content_sync_queue"

    __table_args__ = (
        Index("ix_content_sync_queue_entity", "content_type", "content_id"),
        Index(
            "ix_content_sync_queue_dispatch",
            "status",
            "priority",
            "created_at",
        ),
        Index("ix_content_sync_queue_scheduled_for", "scheduled_for"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(String(100), nullable=False)
    operation: Mapped[SyncQueueOperation] = mapped_column(
        SAEnum(
            SyncQueueOperation,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    status: Mapped[SyncQueueStatus] = mapped_column(
        SAEnum(
            SyncQueueStatus,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=SyncQueueStatus.PENDING,
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    scheduled_for: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def is_cache_refresh(self) -> bool:
        """Whether this item only rebuilds the cache entry."""
        return bool((self.payload or {}).get("refresh_cache"))

    def __repr__(self) -> str:
        return (
            f"<SyncQueueItem {self.content_type}/{self.content_id} "
            f"{self.operation.value} {self.status.value} p={self.priority}>"
        )


class SyncLog(Base):
    """Append-only outcome record for one processing attempt."""

    __tablename__ = "content_sync_logs"

    __table_args__ = (
        Index("ix_content_sync_logs_created_at", "created_at"),
        Index("ix_content_sync_logs_queue_id", "content_sync_queue_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    # No cascade: logs outlive purged queue rows
    content_sync_queue_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("content_sync_queue.id", ondelete="SET NULL"),
        nullable=True,
    )
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(String(100), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Diagnostic context: attempt number, cache key, version number",
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        outcome = "ok" if self.success else "failed"
        return f"<SyncLog {self.content_type}/{self.content_id} {outcome}>"


class SyncSetting(Base):
    """Key-value tuning setting for the synchronization pipeline."""

    __tablename__ = "sync_settings"

    setting_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    setting_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<SyncSetting {self.setting_key}>"
