"""Sync queue service.

Durable priority queue of content operations. Items are dispatched
highest priority first, FIFO within a priority, and are retried with
exponential backoff until their retry ceiling is reached.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from contentsync.config import get_settings
from contentsync.database import as_utc
from contentsync.core.exceptions import QueueStateError
from contentsync.core.logging import get_logger
from contentsync.models.sync import (
    ACTIVE_STATUSES,
    DISPATCHABLE_STATUSES,
    TERMINAL_STATUSES,
    SyncQueueItem,
    SyncQueueOperation,
    SyncQueueStatus,
)
from contentsync.schemas.sync import SyncStatus

logger = get_logger(__name__)

DEFAULT_PRIORITY = 5
# Manual triggers and cache refreshes jump ahead of routine edits
HIGH_PRIORITY = 8

# How many candidates dequeue_next inspects before giving up on a pass
DEQUEUE_SCAN_LIMIT = 25

# Only these can be reset by hand; anything else may be held by a worker
RESETTABLE_STATUSES = (SyncQueueStatus.FAILED, SyncQueueStatus.RETRY)


def calculate_backoff(retry_count: int) -> timedelta:
    """Delay before the next attempt after ``retry_count`` failures.

    Doubles from the configured base per failure and is capped at the
    configured maximum: 1m, 2m, 4m, ... 60m with default settings.

    Args:
        retry_count: Number of failed attempts so far (1-indexed)

    Returns:
        timedelta to add to now for scheduled_for
    """
    settings = get_settings()
    exponent = max(retry_count - 1, 0)
    # Cap the exponent so huge retry counts never overflow
    delay = settings.sync_backoff_base_seconds * (2 ** min(exponent, 20))
    return timedelta(seconds=min(delay, settings.sync_backoff_max_seconds))


def calculate_next_retry(retry_count: int) -> datetime:
    """Calculate next retry time based on retry count."""
    return datetime.now(UTC) + calculate_backoff(retry_count)


class SyncQueueService:
    """Service for managing sync queue operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def enqueue(
        self,
        content_type: str,
        content_id: str,
        operation: SyncQueueOperation | str,
        payload: dict[str, Any] | None = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> UUID:
        """Add a content operation to the queue.

        Args:
            content_type: Category of content ('content', 'page', 'event', ...)
            content_id: Identifier of the content item
            operation: create, update or delete
            payload: JSON data describing the change
            priority: Higher priority items are processed first

        Returns:
            ID of the created queue item

        Raises:
            ValueError: If operation or priority is invalid
        """
        try:
            operation = SyncQueueOperation(operation)
        except ValueError:
            raise ValueError(
                f"Invalid operation: {operation}. Must be 'create', 'update' or 'delete'"
            ) from None

        if not isinstance(priority, int) or isinstance(priority, bool):
            raise ValueError(f"Priority must be an integer, got {priority!r}")

        now = datetime.now(UTC)
        queue_item = SyncQueueItem(
            content_type=content_type,
            content_id=content_id,
            operation=operation,
            payload=payload or {},
            priority=priority,
            status=SyncQueueStatus.PENDING,
            retry_count=0,
            max_retries=get_settings().sync_max_retries,
            created_at=now,
            scheduled_for=now,
        )
        self.db.add(queue_item)
        await self.db.flush()

        logger.info(
            "sync_queue_item_created",
            queue_id=str(queue_item.id),
            content_type=content_type,
            content_id=content_id,
            operation=operation.value,
            priority=priority,
        )

        return queue_item.id

    async def get_item(self, item_id: UUID) -> SyncQueueItem | None:
        """Get a single queue item by ID."""
        result = await self.db.execute(
            select(SyncQueueItem).where(SyncQueueItem.id == item_id)
        )
        return result.scalar_one_or_none()

    async def dequeue_next(self) -> SyncQueueItem | None:
        """Claim the next dispatchable item.

        Picks the oldest item among the highest priority pending/retry
        items whose scheduled_for has passed. Items whose entity has an
        older active queue entry are skipped so operations on one
        entity apply in creation order. The claim is a compare-and-set
        status update, so two workers never claim the same item.

        Returns:
            The claimed item, already in processing status, or None
        """
        now = datetime.now(UTC)
        earlier = aliased(SyncQueueItem)
        blocked_by_earlier = (
            select(earlier.id)
            .where(
                and_(
                    earlier.content_type == SyncQueueItem.content_type,
                    earlier.content_id == SyncQueueItem.content_id,
                    earlier.status.in_(ACTIVE_STATUSES),
                    earlier.created_at < SyncQueueItem.created_at,
                )
            )
            .exists()
        )

        query = (
            select(SyncQueueItem)
            .where(
                and_(
                    SyncQueueItem.status.in_(DISPATCHABLE_STATUSES),
                    SyncQueueItem.scheduled_for <= now,
                    ~blocked_by_earlier,
                )
            )
            .order_by(
                SyncQueueItem.priority.desc(),  # Higher priority first
                SyncQueueItem.created_at.asc(),  # FIFO within same priority
            )
            .limit(DEQUEUE_SCAN_LIMIT)
        )
        if self.db.bind.dialect.name == "postgresql":
            query = query.with_for_update(skip_locked=True, of=SyncQueueItem)

        result = await self.db.execute(query)
        candidates = list(result.scalars().all())

        for candidate in candidates:
            if await self.claim(candidate.id, candidate.status):
                await self.db.refresh(candidate)
                logger.debug(
                    "sync_queue_item_claimed",
                    queue_id=str(candidate.id),
                    priority=candidate.priority,
                )
                return candidate

        return None

    async def claim(self, item_id: UUID, expected_status: SyncQueueStatus) -> bool:
        """Move an item to processing if it is still in ``expected_status``.

        Returns:
            True if this caller won the claim
        """
        now = datetime.now(UTC)
        result = await self.db.execute(
            update(SyncQueueItem)
            .where(
                and_(
                    SyncQueueItem.id == item_id,
                    SyncQueueItem.status == expected_status,
                )
            )
            .values(status=SyncQueueStatus.PROCESSING, processed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount == 1

    async def mark_processing(self, item_id: UUID) -> SyncQueueItem | None:
        """Mark a queue item as processing."""
        item = await self.get_item(item_id)
        if not item:
            return None
        item.status = SyncQueueStatus.PROCESSING
        item.processed_at = datetime.now(UTC)
        await self.db.flush()
        return item

    async def mark_completed(self, item_id: UUID) -> SyncQueueItem | None:
        """Mark a queue item as completed."""
        item = await self.get_item(item_id)
        if not item:
            return None

        item.status = SyncQueueStatus.COMPLETED
        item.completed_at = datetime.now(UTC)
        item.error_message = None
        await self.db.flush()

        logger.info(
            "sync_queue_item_completed",
            queue_id=str(item.id),
            content_type=item.content_type,
            content_id=item.content_id,
            retry_count=item.retry_count,
        )
        return item

    async def mark_failed(
        self,
        item_id: UUID,
        error_message: str,
        retryable: bool = True,
    ) -> bool:
        """Record a failed attempt.

        Increments retry_count. Below the retry ceiling the item moves to
        retry with a backoff scheduled_for; at the ceiling, or when the
        error is not retryable, it becomes terminally failed.

        Args:
            item_id: The queue item to update
            error_message: Error from the failed attempt
            retryable: False for errors that will never succeed on retry

        Returns:
            True if requeued for retry, False if marked as permanently failed
        """
        item = await self.get_item(item_id)
        if not item:
            return False

        item.retry_count += 1
        item.error_message = error_message[:1000] if error_message else None

        if not retryable or item.retry_count >= item.max_retries:
            item.status = SyncQueueStatus.FAILED
            item.completed_at = datetime.now(UTC)

            logger.warning(
                "sync_queue_item_failed",
                queue_id=str(item.id),
                content_type=item.content_type,
                content_id=item.content_id,
                retry_count=item.retry_count,
                retryable=retryable,
                error=error_message[:100] if error_message else None,
            )
            await self.db.flush()
            return False

        item.status = SyncQueueStatus.RETRY
        item.scheduled_for = calculate_next_retry(item.retry_count)

        logger.info(
            "sync_queue_item_requeued",
            queue_id=str(item.id),
            content_type=item.content_type,
            content_id=item.content_id,
            retry_count=item.retry_count,
            scheduled_for=item.scheduled_for.isoformat(),
        )
        await self.db.flush()
        return True

    async def list_items(
        self,
        status: SyncQueueStatus | None = None,
        content_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[SyncQueueItem], int]:
        """Get queue items with filtering and pagination.

        Args:
            status: Filter by status
            content_type: Filter by content type
            limit: Maximum number of items to return
            offset: Number of items to skip

        Returns:
            Tuple of (list of queue items in dispatch order, total count)
        """
        filters = []
        if status:
            filters.append(SyncQueueItem.status == status)
        if content_type:
            filters.append(SyncQueueItem.content_type == content_type)

        base_query = select(SyncQueueItem)
        count_query = select(func.count(SyncQueueItem.id))

        if filters:
            base_query = base_query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total = await self.db.scalar(count_query) or 0

        result = await self.db.execute(
            base_query.order_by(
                SyncQueueItem.priority.desc(),
                SyncQueueItem.created_at.asc(),
            )
            .offset(offset)
            .limit(limit)
        )
        items = list(result.scalars().all())

        return items, total

    async def get_failed_items(self, limit: int = 50) -> list[SyncQueueItem]:
        """Get items that have failed permanently, newest first."""
        result = await self.db.execute(
            select(SyncQueueItem)
            .where(SyncQueueItem.status == SyncQueueStatus.FAILED)
            .order_by(SyncQueueItem.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def retry_item(self, item_id: UUID) -> SyncQueueItem | None:
        """Manually reset one failed or retrying queue item to pending.

        The reset is a compare-and-set on the status, so an item a worker
        claimed in the meantime is left alone.

        Returns:
            Updated queue item or None if not found

        Raises:
            QueueStateError: If the item is neither failed nor retrying
        """
        item = await self.get_item(item_id)
        if not item:
            return None

        result = await self.db.execute(
            update(SyncQueueItem)
            .where(
                and_(
                    SyncQueueItem.id == item_id,
                    SyncQueueItem.status.in_(RESETTABLE_STATUSES),
                )
            )
            .values(
                status=SyncQueueStatus.PENDING,
                retry_count=0,
                error_message=None,
                completed_at=None,
                scheduled_for=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(item)
            raise QueueStateError(
                f"Queue item {item_id} is {item.status.value} and cannot be retried"
            )

        await self.db.refresh(item)
        logger.info("sync_queue_item_manual_retry", queue_id=str(item.id))
        return item

    async def bulk_requeue_failed(self, content_type: str | None = None) -> int:
        """Reset failed items back to pending.

        Args:
            content_type: Only requeue items of this content type

        Returns:
            Number of items requeued
        """
        filters = [SyncQueueItem.status == SyncQueueStatus.FAILED]
        if content_type:
            filters.append(SyncQueueItem.content_type == content_type)

        result = await self.db.execute(
            update(SyncQueueItem)
            .where(and_(*filters))
            .values(
                status=SyncQueueStatus.PENDING,
                retry_count=0,
                error_message=None,
                completed_at=None,
                scheduled_for=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        count = result.rowcount or 0
        logger.info(
            "sync_queue_failed_items_requeued",
            content_type=content_type,
            count=count,
        )
        return count

    async def purge_old(
        self,
        older_than_hours: float = 24,
        status: SyncQueueStatus | None = None,
    ) -> int:
        """Delete historical queue rows.

        Without a status, removes completed and failed rows created more
        than ``older_than_hours`` ago. With an explicit status, removes
        every row in that status.

        Returns:
            Number of rows deleted

        Raises:
            QueueStateError: If asked to purge processing items
        """
        if status == SyncQueueStatus.PROCESSING:
            raise QueueStateError("Processing items cannot be purged")
        if status:
            condition = SyncQueueItem.status == status
        else:
            cutoff = datetime.now(UTC) - timedelta(hours=older_than_hours)
            condition = and_(
                SyncQueueItem.status.in_(TERMINAL_STATUSES),
                SyncQueueItem.created_at < cutoff,
            )

        result = await self.db.execute(
            delete(SyncQueueItem)
            .where(condition)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        count = result.rowcount or 0
        logger.info(
            "sync_queue_purged",
            status=status.value if status else None,
            older_than_hours=None if status else older_than_hours,
            count=count,
        )
        return count

    async def recover_stale_processing(self, older_than_minutes: float) -> int:
        """Return items stuck in processing to the retry state.

        An item is stuck when it has been processing for longer than
        ``older_than_minutes``, which means its worker died mid-operation.

        Returns:
            Number of items recovered
        """
        threshold = datetime.now(UTC) - timedelta(minutes=older_than_minutes)

        result = await self.db.execute(
            select(SyncQueueItem).where(
                and_(
                    SyncQueueItem.status == SyncQueueStatus.PROCESSING,
                    SyncQueueItem.processed_at < threshold,
                )
            )
        )
        stale_items = list(result.scalars().all())

        for item in stale_items:
            item.status = SyncQueueStatus.RETRY
            item.scheduled_for = datetime.now(UTC)
            item.error_message = (
                f"Recovered from stuck processing state after {older_than_minutes} minutes"
            )
            logger.warning(
                "sync_queue_item_stale_recovered",
                queue_id=str(item.id),
                processed_at=item.processed_at.isoformat() if item.processed_at else None,
            )

        if stale_items:
            await self.db.flush()

        return len(stale_items)

    async def count_stale_processing(self, older_than_minutes: float) -> int:
        """Count items processing for longer than the threshold."""
        threshold = datetime.now(UTC) - timedelta(minutes=older_than_minutes)
        return (
            await self.db.scalar(
                select(func.count(SyncQueueItem.id)).where(
                    and_(
                        SyncQueueItem.status == SyncQueueStatus.PROCESSING,
                        SyncQueueItem.processed_at < threshold,
                    )
                )
            )
            or 0
        )

    async def count_due(self) -> int:
        """Count dispatchable items whose scheduled time has passed."""
        return (
            await self.db.scalar(
                select(func.count(SyncQueueItem.id)).where(
                    and_(
                        SyncQueueItem.status.in_(DISPATCHABLE_STATUSES),
                        SyncQueueItem.scheduled_for <= datetime.now(UTC),
                    )
                )
            )
            or 0
        )

    async def get_queue_status(self) -> list[SyncStatus]:
        """Get queue counts per content type.

        Returns:
            One SyncStatus per content type, sorted by content type
        """
        result = await self.db.execute(
            select(
                SyncQueueItem.content_type,
                SyncQueueItem.status,
                func.count(SyncQueueItem.id).label("count"),
                func.max(SyncQueueItem.created_at).label("last_created"),
                func.max(SyncQueueItem.completed_at).label("last_completed"),
            ).group_by(SyncQueueItem.content_type, SyncQueueItem.status)
        )

        by_type: dict[str, SyncStatus] = {}
        for row in result.all():
            entry = by_type.setdefault(
                row.content_type, SyncStatus(content_type=row.content_type)
            )
            status = SyncQueueStatus(row.status)
            field_name = f"{status.value}_count"
            setattr(entry, field_name, getattr(entry, field_name) + row.count)

            for value in (row.last_created, row.last_completed):
                value = as_utc(value)
                if value and (entry.last_activity is None or value > entry.last_activity):
                    entry.last_activity = value

        return [by_type[key] for key in sorted(by_type)]
