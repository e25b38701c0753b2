"""Business logic services."""

from .cache_service import ContentCacheService
from .content_service import ContentStore
from .status_monitor import Notification, NotificationLevel, SyncStatusMonitor
from .sync_log_service import SyncLogService
from .sync_processor import SyncProcessor
from .sync_queue_service import SyncQueueService, calculate_backoff
from .synchronization_service import SynchronizationService
from .validation import register_validator, validate_content_for_sync
from .version_service import ContentVersionService

__all__ = [
    "ContentCacheService",
    "ContentStore",
    "ContentVersionService",
    "Notification",
    "NotificationLevel",
    "SyncLogService",
    "SyncProcessor",
    "SyncQueueService",
    "SyncStatusMonitor",
    "SynchronizationService",
    "calculate_backoff",
    "register_validator",
    "validate_content_for_sync",
]
