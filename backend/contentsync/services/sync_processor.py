"""Sync queue processor.

Drains the sync queue in dispatch order and applies each operation to
the live content store, the version history and the content cache.
Every item runs in its own short transaction so one failure never
rolls back the rest of the batch.
"""

import time
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentsync.config import get_settings
from contentsync.core.exceptions import (
    ContentNotFoundError,
    ContentValidationError,
    SyncInProgressError,
)
from contentsync.core.logging import (
    generate_sync_run_id,
    get_logger,
    sync_run_id_ctx,
)
from contentsync.models.content import ChangeType
from contentsync.models.sync import SyncQueueItem, SyncQueueOperation
from contentsync.schemas.sync import SyncQueueProcessResult, SyncRunResult
from contentsync.services import sync_settings_service
from contentsync.services.cache_service import ContentCacheService
from contentsync.services.content_service import ContentStore
from contentsync.services.sync_log_service import SyncLogService
from contentsync.services.sync_queue_service import SyncQueueService
from contentsync.services.validation import validate_content_for_sync
from contentsync.services.version_service import ContentVersionService

logger = get_logger(__name__)

# Payload keys that describe the change rather than the content
RESERVED_PAYLOAD_KEYS = frozenset({"refresh_cache", "change_summary", "created_by"})

# Failures that will fail the same way on every attempt
NON_RETRYABLE_ERRORS = (ContentValidationError, ContentNotFoundError)


def content_from_payload(payload: dict[str, Any] | None) -> dict[str, Any]:
    """Strip change metadata from a queue payload."""
    return {
        key: value
        for key, value in (payload or {}).items()
        if key not in RESERVED_PAYLOAD_KEYS
    }


class SyncProcessor:
    """Single logical worker over the sync queue.

    process_once() is guarded by an in-process flag: a second call while
    a drain is running raises SyncInProgressError. Separate processes are
    kept apart by the queue's atomic claim.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        """Whether a drain is currently running."""
        return self._in_progress

    async def process_once(self, batch_size: int | None = None) -> SyncRunResult:
        """Drain up to batch_size due items from the queue.

        Args:
            batch_size: Maximum items to process, defaults to the
                batch_size sync setting or SYNC_BATCH_SIZE

        Returns:
            Aggregate processed/success/failure counts

        Raises:
            SyncInProgressError: If a drain is already running
        """
        if self._in_progress:
            logger.warning("sync_processing_already_in_progress")
            raise SyncInProgressError()

        self._in_progress = True
        run_token = sync_run_id_ctx.set(generate_sync_run_id())
        try:
            return await self._drain(batch_size)
        finally:
            sync_run_id_ctx.reset(run_token)
            self._in_progress = False

    async def _drain(self, batch_size: int | None) -> SyncRunResult:
        settings = get_settings()
        result = SyncRunResult()

        async with self.session_maker() as db:
            recovered = await SyncQueueService(db).recover_stale_processing(
                settings.sync_stale_processing_minutes
            )
            if batch_size is None:
                batch_size = int(
                    await sync_settings_service.get_value(
                        db, "batch_size", settings.sync_batch_size
                    )
                )
            await db.commit()

        if recovered:
            logger.info("sync_stale_items_recovered", count=recovered)

        logger.info("sync_processing_started", batch_size=batch_size)

        while result.total_processed < batch_size:
            async with self.session_maker() as db:
                item = await SyncQueueService(db).dequeue_next()
                await db.commit()

            if item is None:
                break

            result.total_processed += 1
            if await self._process_item(item):
                result.total_success += 1
            else:
                result.total_failures += 1

        logger.info(
            "sync_processing_completed",
            total_processed=result.total_processed,
            total_success=result.total_success,
            total_failures=result.total_failures,
        )
        return result

    async def _process_item(self, item: SyncQueueItem) -> bool:
        """Apply one claimed item and record its outcome.

        Returns:
            True if the item completed
        """
        started = time.perf_counter()

        try:
            async with self.session_maker() as db:
                details = await self._apply(db, item)
                await SyncQueueService(db).mark_completed(item.id)
                await SyncLogService(db).record(
                    item,
                    success=True,
                    duration_ms=_elapsed_ms(started),
                    details=details,
                )
                await db.commit()
            return True

        except Exception as e:
            error_str = str(e) or e.__class__.__name__
            retryable = not isinstance(e, NON_RETRYABLE_ERRORS)

            if retryable:
                logger.exception(
                    "sync_item_processing_error",
                    queue_id=str(item.id),
                    content_type=item.content_type,
                    content_id=item.content_id,
                    error=error_str,
                )
            else:
                logger.warning(
                    "sync_item_rejected",
                    queue_id=str(item.id),
                    content_type=item.content_type,
                    content_id=item.content_id,
                    error=error_str,
                )

            # Record the failure with a fresh session; the failed one is rolled back
            try:
                async with self.session_maker() as error_db:
                    requeued = await SyncQueueService(error_db).mark_failed(
                        item.id, error_str, retryable=retryable
                    )
                    await SyncLogService(error_db).record(
                        item,
                        success=False,
                        duration_ms=_elapsed_ms(started),
                        error_message=error_str,
                        details={
                            "attempt": item.retry_count + 1,
                            "requeued": requeued,
                            "error_type": e.__class__.__name__,
                        },
                    )
                    await error_db.commit()
            except Exception as inner_e:
                # The stale sweep returns the item to retry later
                logger.exception(
                    "sync_item_failed_to_mark_error",
                    queue_id=str(item.id),
                    inner_error=str(inner_e),
                )
            return False

    async def _apply(self, db: AsyncSession, item: SyncQueueItem) -> dict[str, Any]:
        """Apply the item's operation inside the given session.

        Returns:
            Diagnostic details for the success log
        """
        store = ContentStore(db)
        cache = ContentCacheService(db)
        versions = ContentVersionService(db)
        details: dict[str, Any] = {"attempt": item.retry_count + 1}

        if item.is_cache_refresh:
            live = await store.get(item.content_type, item.content_id)
            if live is None:
                # Nothing live to serve; make sure nothing stale is served either
                await cache.invalidate(item.content_type, item.content_id)
                details["cache"] = "invalidated"
            else:
                entry = await cache.upsert(item.content_type, item.content_id, live.data)
                details["cache"] = "refreshed"
                details["cache_key"] = entry.cache_key
            return details

        payload = item.payload or {}
        change_summary = payload.get("change_summary")
        created_by = payload.get("created_by")

        if item.operation == SyncQueueOperation.DELETE:
            live = await store.delete(item.content_type, item.content_id)
            details["version_number"] = await versions.record_version(
                item.content_type,
                item.content_id,
                live.data,
                ChangeType.DELETE,
                change_summary=change_summary,
                created_by=created_by,
            )
            await cache.invalidate(item.content_type, item.content_id)
            details["cache"] = "invalidated"
            return details

        data = content_from_payload(payload)
        validation = validate_content_for_sync(item.content_type, data)
        if not validation.is_valid:
            raise ContentValidationError(item.content_type, validation.errors)
        if validation.warnings:
            details["warnings"] = validation.warnings

        if item.operation == SyncQueueOperation.CREATE:
            live = await store.create(item.content_type, item.content_id, data)
            change_type = ChangeType.CREATE
        else:
            live = await store.update(item.content_type, item.content_id, data)
            change_type = ChangeType.UPDATE

        details["version_number"] = await versions.record_version(
            item.content_type,
            item.content_id,
            live.data,
            change_type,
            change_summary=change_summary,
            created_by=created_by,
        )

        entry = await cache.upsert(item.content_type, item.content_id, live.data)
        details["cache"] = "refreshed"
        details["cache_key"] = entry.cache_key
        return details

    async def run_scheduled(self) -> SyncQueueProcessResult:
        """Run one drain for the cron endpoint.

        Never raises; failures are reported in the result status.
        """
        timestamp = datetime.now(UTC).isoformat()

        try:
            run = await self.process_once()
        except SyncInProgressError as e:
            return SyncQueueProcessResult(
                status="skipped", errors=[str(e)], timestamp=timestamp
            )
        except Exception as e:
            logger.exception("sync_queue_processing_error", error=str(e))
            return SyncQueueProcessResult(
                status="error",
                errors=[f"Queue processing error: {str(e)}"],
                timestamp=timestamp,
            )

        if run.total_failures == 0:
            status = "success"
        elif run.total_success > 0:
            status = "partial"
        else:
            status = "error"

        return SyncQueueProcessResult(
            **run.model_dump(),
            status=status,
            timestamp=timestamp,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
