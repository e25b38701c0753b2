"""SQLAlchemy models."""

from contentsync.models.cache import ContentCache
from contentsync.models.content import ChangeType, ContentItem, ContentVersion
from contentsync.models.sync import (
    ACTIVE_STATUSES,
    DISPATCHABLE_STATUSES,
    TERMINAL_STATUSES,
    SyncLog,
    SyncQueueItem,
    SyncQueueOperation,
    SyncQueueStatus,
    SyncSetting,
)

__all__ = [
    "ACTIVE_STATUSES",
    "DISPATCHABLE_STATUSES",
    "TERMINAL_STATUSES",
    "ChangeType",
    "ContentCache",
    "ContentItem",
    "ContentVersion",
    "SyncLog",
    "SyncQueueItem",
    "SyncQueueOperation",
    "SyncQueueStatus",
    "SyncSetting",
]
