"""Periodically refreshed synchronization status with guarded actions.

SyncStatusMonitor keeps dashboard state (queue status, cache stats,
performance metrics and recent activity) fresh on an interval and wraps
the façade's operator actions. Actions report their outcome as
notifications, re-fetch status when they finish, and leave the prior
state untouched when they fail.
"""

import asyncio
import contextlib
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from contentsync.config import get_settings
from contentsync.core.logging import get_logger
from contentsync.models.sync import SyncQueueOperation, utcnow
from contentsync.schemas.sync import (
    CacheStats,
    PerformanceMetrics,
    SyncActivity,
    SyncStatus,
)
from contentsync.services.synchronization_service import SynchronizationService

logger = get_logger(__name__)

METRICS_DAYS = 7
MAX_NOTIFICATIONS = 50


class NotificationLevel(str, Enum):
    """Severity of an operator notification."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """Outcome of an operator action."""

    message: str
    level: NotificationLevel = NotificationLevel.SUCCESS
    created_at: datetime = field(default_factory=utcnow)


class SyncStatusMonitor:
    """Polling view over the synchronization service."""

    def __init__(
        self,
        service: SynchronizationService,
        interval_seconds: float | None = None,
        on_notify: Callable[[Notification], None] | None = None,
    ):
        self.service = service
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else get_settings().status_refresh_interval_seconds
        )
        self.on_notify = on_notify

        self.sync_status: list[SyncStatus] = []
        self.cache_stats: CacheStats | None = None
        self.performance_metrics: list[PerformanceMetrics] = []
        self.recent_activity: list[SyncActivity] = []
        self.loading = False
        self.notifications: deque[Notification] = deque(maxlen=MAX_NOTIFICATIONS)

        self._processing = False
        self._task: asyncio.Task | None = None

    @property
    def processing(self) -> bool:
        """Whether an operator action is running."""
        return self._processing

    @property
    def running(self) -> bool:
        """Whether the refresh loop is active."""
        return self._task is not None and not self._task.done()

    def notify(self, message: str, level: NotificationLevel = NotificationLevel.SUCCESS) -> None:
        notification = Notification(message=message, level=level)
        self.notifications.append(notification)
        if self.on_notify:
            self.on_notify(notification)

    # Refresh loop

    async def start(self) -> None:
        """Start refreshing on the interval. Calling twice is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info("sync_status_monitor_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the refresh loop and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sync_status_monitor_stopped")

    async def _refresh_loop(self) -> None:
        # Each tick finishes before the next sleep starts, so ticks never overlap
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval_seconds)

    async def refresh(self) -> bool:
        """Fetch overview and metrics. Prior state is kept on failure.

        Returns:
            True if the overview was refreshed
        """
        self.loading = True
        try:
            overview = await self.service.get_sync_overview()
        except Exception as e:
            logger.error("sync_status_refresh_failed", error=str(e))
            self.notify("Failed to load synchronization data", NotificationLevel.ERROR)
            return False
        else:
            self.sync_status = overview.queue_status
            self.cache_stats = overview.cache_stats
            self.recent_activity = overview.recent_activity
        finally:
            self.loading = False

        try:
            self.performance_metrics = await self.service.get_performance_metrics(
                METRICS_DAYS
            )
        except Exception as e:
            # Metrics are secondary; the overview already refreshed
            logger.error("sync_metrics_refresh_failed", error=str(e))

        return True

    # Actions

    async def _guarded(
        self,
        action: str,
        operation: Callable[[], Awaitable[Any]],
        describe: Callable[[Any], tuple[str, NotificationLevel]],
        failure_message: str,
    ) -> bool:
        """Run an action under the processing flag.

        Returns:
            True if the action completed successfully
        """
        if self._processing:
            logger.warning("sync_action_rejected_busy", action=action)
            self.notify(
                "Another synchronization action is already running",
                NotificationLevel.WARNING,
            )
            return False

        self._processing = True
        try:
            result = await operation()
        except Exception as e:
            logger.error("sync_action_failed", action=action, error=str(e))
            self.notify(failure_message, NotificationLevel.ERROR)
            return False
        finally:
            self._processing = False

        message, level = describe(result)
        self.notify(message, level)
        if level is NotificationLevel.ERROR:
            return False

        await self.refresh()
        return True

    async def process_sync_queue(self) -> bool:
        def describe(result: Any) -> tuple[str, NotificationLevel]:
            message = (
                f"Processed {result.total_processed} items "
                f"({result.total_success} successful, {result.total_failures} failed)"
            )
            level = (
                NotificationLevel.WARNING
                if result.total_failures > 0
                else NotificationLevel.SUCCESS
            )
            return message, level

        return await self._guarded(
            "process_sync_queue",
            self.service.process_sync_queue,
            describe,
            "Failed to process synchronization queue",
        )

    async def cleanup_cache(self) -> bool:
        return await self._guarded(
            "cleanup_cache",
            self.service.cleanup_expired_cache,
            lambda count: (
                f"Cleaned up {count} expired cache entries",
                NotificationLevel.SUCCESS,
            ),
            "Failed to cleanup cache",
        )

    async def retry_failed_items(self, content_type: str | None = None) -> bool:
        return await self._guarded(
            "retry_failed_items",
            lambda: self.service.retry_failed_sync_items(content_type),
            lambda count: (
                f"Retried {count} failed synchronization items",
                NotificationLevel.SUCCESS,
            ),
            "Failed to retry synchronization items",
        )

    async def refresh_cache(self, content_type: str, content_id: str) -> bool:
        return await self._guarded(
            "refresh_cache",
            lambda: self.service.refresh_content_cache(content_type, content_id),
            lambda _: ("Content cache refresh queued", NotificationLevel.SUCCESS),
            "Failed to refresh content cache",
        )

    async def rollback_content(
        self,
        content_type: str,
        content_id: str,
        version: int,
        rollback_by: str | None = None,
    ) -> bool:
        """Roll back content. A missing version is reported as a failure."""
        return await self._guarded(
            "rollback_content",
            lambda: self.service.rollback_content(
                content_type, content_id, version, rollback_by
            ),
            lambda restored: (
                ("Content rolled back successfully", NotificationLevel.SUCCESS)
                if restored
                else ("Failed to rollback content", NotificationLevel.ERROR)
            ),
            "Failed to rollback content",
        )

    async def queue_content_sync(
        self,
        content_type: str,
        content_id: str,
        operation: SyncQueueOperation | str,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        def describe(_: UUID) -> tuple[str, NotificationLevel]:
            return "Content queued for synchronization", NotificationLevel.SUCCESS

        return await self._guarded(
            "queue_content_sync",
            lambda: self.service.queue_content_sync(
                content_type, content_id, operation, payload
            ),
            describe,
            "Failed to queue content for synchronization",
        )

    # Read-through helpers

    async def get_sync_logs(self, **filters: Any) -> list:
        """Sync logs, or an empty list with an error notification."""
        try:
            return await self.service.get_sync_logs(**filters)
        except Exception as e:
            logger.error("sync_logs_load_failed", error=str(e))
            self.notify("Failed to load synchronization logs", NotificationLevel.ERROR)
            return []

    async def export_sync_data(self, start: datetime, end: datetime) -> list:
        """Exported logs, or an empty list with an error notification."""
        try:
            return await self.service.export_sync_logs(start, end)
        except Exception as e:
            logger.error("sync_export_failed", error=str(e))
            self.notify("Failed to export synchronization data", NotificationLevel.ERROR)
            return []
