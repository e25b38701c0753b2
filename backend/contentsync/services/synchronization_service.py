"""Synchronization service.

Single entry point for the API, the cron jobs and the status monitor.
Constructed once at startup with a session factory and the processor,
then injected wherever it is needed. Every method opens its own
transaction and never swallows errors: failures are logged and
re-raised to the caller.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentsync.config import get_settings
from contentsync.core.exceptions import (
    ContentNotFoundError,
    ContentSyncError,
    StoreUnavailableError,
)
from contentsync.core.logging import get_logger
from contentsync.models.content import ContentVersion
from contentsync.models.sync import (
    SyncLog,
    SyncQueueItem,
    SyncQueueOperation,
    SyncQueueStatus,
    SyncSetting,
)
from contentsync.schemas.sync import (
    CacheStats,
    HealthRow,
    PerformanceMetrics,
    SyncActivity,
    SyncAnalyticsSummary,
    SyncOverview,
    SyncRunResult,
    SyncStatus,
    ValidationResult,
)
from contentsync.services import health_service, sync_settings_service
from contentsync.services.cache_service import ContentCacheService
from contentsync.services.content_service import ContentStore
from contentsync.services.sync_log_service import SyncLogService, summarize_metrics
from contentsync.services.sync_processor import SyncProcessor
from contentsync.services.sync_queue_service import (
    DEFAULT_PRIORITY,
    HIGH_PRIORITY,
    SyncQueueService,
)
from contentsync.services.validation import validate_content_for_sync
from contentsync.services.version_service import ContentVersionService

logger = get_logger(__name__)

OVERVIEW_ACTIVITY_LIMIT = 10


class SynchronizationService:
    """Façade over the queue, cache, version and log stores."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        processor: SyncProcessor,
    ):
        self.session_maker = session_maker
        self.processor = processor

    @asynccontextmanager
    async def _transaction(self, event: str) -> AsyncIterator[AsyncSession]:
        """Session that commits on success and logs then re-raises on error.

        Lost connections and an unreachable or locked database surface as
        StoreUnavailableError.
        """
        try:
            async with self.session_maker() as db:
                try:
                    yield db
                    await db.commit()
                except ContentSyncError as e:
                    await db.rollback()
                    logger.warning(event, error=str(e))
                    raise
                except Exception:
                    await db.rollback()
                    raise
        except ContentSyncError:
            raise
        except (OperationalError, InterfaceError) as e:
            logger.exception(event, error=str(e))
            raise StoreUnavailableError(f"Content store unavailable: {e.orig}") from e
        except Exception as e:
            logger.exception(event, error=str(e))
            raise

    # Queue status and processing

    async def get_sync_queue_status(self) -> list[SyncStatus]:
        """Queue counts per content type."""
        async with self._transaction("sync_queue_status_error") as db:
            return await SyncQueueService(db).get_queue_status()

    async def process_sync_queue(self) -> SyncRunResult:
        """Drain the queue once.

        Raises:
            SyncInProgressError: If a drain is already running
        """
        try:
            return await self.processor.process_once()
        except ContentSyncError as e:
            logger.warning("sync_queue_process_rejected", error=str(e))
            raise
        except Exception as e:
            logger.exception("sync_queue_process_error", error=str(e))
            raise

    async def queue_content_sync(
        self,
        content_type: str,
        content_id: str,
        operation: SyncQueueOperation | str,
        payload: dict[str, Any] | None = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> UUID:
        """Queue a content operation for the processor."""
        async with self._transaction("sync_queue_content_error") as db:
            return await SyncQueueService(db).enqueue(
                content_type, content_id, operation, payload, priority
            )

    async def trigger_content_sync(
        self,
        content_type: str,
        content_id: str,
        operation: SyncQueueOperation | str = SyncQueueOperation.UPDATE,
    ) -> UUID:
        """Re-queue the current live state of an item at high priority.

        Raises:
            ContentNotFoundError: If the item has no live content
        """
        async with self._transaction("sync_trigger_content_error") as db:
            live = await ContentStore(db).get(content_type, content_id)
            if live is None:
                raise ContentNotFoundError(content_type, content_id)

            return await SyncQueueService(db).enqueue(
                content_type,
                content_id,
                operation,
                dict(live.data),
                HIGH_PRIORITY,
            )

    async def get_sync_queue_items(
        self,
        status: SyncQueueStatus | None = None,
        content_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[SyncQueueItem], int]:
        """Queue items in dispatch order with the total count."""
        async with self._transaction("sync_queue_items_error") as db:
            return await SyncQueueService(db).list_items(
                status=status, content_type=content_type, limit=limit, offset=offset
            )

    async def get_failed_sync_items(self, limit: int = 50) -> list[SyncQueueItem]:
        """Terminally failed items, newest first."""
        async with self._transaction("sync_failed_items_error") as db:
            return await SyncQueueService(db).get_failed_items(limit)

    async def retry_sync_item(self, item_id: UUID) -> SyncQueueItem | None:
        """Reset one queue item to pending."""
        async with self._transaction("sync_retry_item_error") as db:
            return await SyncQueueService(db).retry_item(item_id)

    async def retry_failed_sync_items(self, content_type: str | None = None) -> int:
        """Reset every failed item, optionally of one content type."""
        async with self._transaction("sync_retry_failed_error") as db:
            return await SyncQueueService(db).bulk_requeue_failed(content_type)

    async def clear_sync_queue(self, status: SyncQueueStatus | None = None) -> int:
        """Purge queue history.

        Without a status, removes completed and failed items older than
        the retention window. With a status, removes all items in it.
        """
        async with self._transaction("sync_clear_queue_error") as db:
            return await SyncQueueService(db).purge_old(
                older_than_hours=get_settings().queue_retention_hours,
                status=status,
            )

    # Cache

    async def get_cache_statistics(self) -> CacheStats:
        async with self._transaction("sync_cache_stats_error") as db:
            return await ContentCacheService(db).stats()

    async def cleanup_expired_cache(self) -> int:
        """Remove expired cache entries and return how many were removed."""
        async with self._transaction("sync_cache_cleanup_error") as db:
            return await ContentCacheService(db).cleanup_expired()

    async def update_content_cache(
        self,
        content_type: str,
        content_id: str,
        cache_data: dict[str, Any],
        cache_key: str | None = None,
        expires_in_hours: float = 24,
    ) -> None:
        async with self._transaction("sync_cache_update_error") as db:
            await ContentCacheService(db).upsert(
                content_type, content_id, cache_data, cache_key, expires_in_hours
            )

    async def refresh_content_cache(self, content_type: str, content_id: str) -> UUID:
        """Invalidate an item's cache and queue a high-priority rebuild.

        The invalidation and the refresh item commit together, so no
        stale entry is served once the refresh is visible in the queue.
        Refreshing an item with nothing cached is not an error.
        """
        async with self._transaction("sync_cache_refresh_error") as db:
            await ContentCacheService(db).invalidate(content_type, content_id)
            return await SyncQueueService(db).enqueue(
                content_type,
                content_id,
                SyncQueueOperation.UPDATE,
                {"refresh_cache": True},
                HIGH_PRIORITY,
            )

    # Versions

    async def get_content_versions(
        self,
        content_type: str,
        content_id: str,
        limit: int = 10,
    ) -> list[ContentVersion]:
        async with self._transaction("sync_content_versions_error") as db:
            return await ContentVersionService(db).list_versions(
                content_type, content_id, limit
            )

    async def rollback_content(
        self,
        content_type: str,
        content_id: str,
        target_version: int,
        rollback_by: str | None = None,
    ) -> bool:
        """Restore an item to a previous version and refresh its cache.

        Returns:
            True on success, False if the target version does not exist
        """
        async with self._transaction("sync_rollback_error") as db:
            restored = await ContentVersionService(db).rollback(
                content_type, content_id, target_version, rollback_by
            )
            if not restored:
                return False

            live = await ContentStore(db).get(content_type, content_id)
            if live is not None:
                await ContentCacheService(db).upsert(content_type, content_id, live.data)
            return True

    # Validation

    async def validate_content(
        self,
        content_type: str,
        content_data: dict[str, Any],
    ) -> ValidationResult:
        return validate_content_for_sync(content_type, content_data)

    # Logs, metrics and health

    async def get_recent_sync_activity(self, limit: int = 20) -> list[SyncActivity]:
        async with self._transaction("sync_recent_activity_error") as db:
            return await SyncLogService(db).get_recent_activity(limit)

    async def get_performance_metrics(self, days: int = 7) -> list[PerformanceMetrics]:
        async with self._transaction("sync_performance_metrics_error") as db:
            return await SyncLogService(db).get_performance_metrics(days)

    async def get_sync_analytics_summary(self, days: int = 30) -> SyncAnalyticsSummary:
        metrics = await self.get_performance_metrics(days)
        return summarize_metrics(metrics)

    async def check_sync_health(self) -> list[HealthRow]:
        async with self._transaction("sync_health_check_error") as db:
            return await health_service.check_sync_health(db)

    async def get_sync_logs(
        self,
        content_type: str | None = None,
        success: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SyncLog]:
        async with self._transaction("sync_logs_error") as db:
            return await SyncLogService(db).get_logs(
                content_type=content_type, success=success, limit=limit, offset=offset
            )

    async def export_sync_logs(
        self,
        start: datetime,
        end: datetime,
        content_type: str | None = None,
    ) -> list[SyncLog]:
        async with self._transaction("sync_logs_export_error") as db:
            return await SyncLogService(db).export_logs(start, end, content_type)

    async def get_sync_overview(self) -> SyncOverview:
        """Dashboard data fetched concurrently."""
        try:
            queue_status, cache_stats, recent_activity, health_status = (
                await asyncio.gather(
                    self.get_sync_queue_status(),
                    self.get_cache_statistics(),
                    self.get_recent_sync_activity(OVERVIEW_ACTIVITY_LIMIT),
                    self.check_sync_health(),
                )
            )
        except Exception as e:
            logger.exception("sync_overview_error", error=str(e))
            raise

        return SyncOverview(
            queue_status=queue_status,
            cache_stats=cache_stats,
            recent_activity=recent_activity,
            health_status=health_status,
        )

    # Settings

    async def get_sync_settings(self) -> list[SyncSetting]:
        async with self._transaction("sync_settings_error") as db:
            return await sync_settings_service.get_settings(db)

    async def update_sync_setting(
        self,
        key: str,
        value: Any,
        description: str | None = None,
    ) -> SyncSetting:
        async with self._transaction("sync_setting_update_error") as db:
            return await sync_settings_service.update_setting(db, key, value, description)
