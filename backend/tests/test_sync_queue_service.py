"""Tests for the sync queue service."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import update

from contentsync.config import get_settings
from contentsync.core.exceptions import QueueStateError
from contentsync.models.sync import SyncQueueItem, SyncQueueOperation, SyncQueueStatus
from contentsync.services.sync_queue_service import (
    SyncQueueService,
    calculate_backoff,
    calculate_next_retry,
)


async def drain_ids(session_maker) -> list[str]:
    """Dequeue until empty, one session per claim."""
    claimed = []
    while True:
        async with session_maker() as session:
            item = await SyncQueueService(session).dequeue_next()
            await session.commit()
        if item is None:
            return claimed
        claimed.append(item.content_id)


class TestCalculateBackoff:
    """Tests for backoff calculation."""

    def test_doubles_per_retry(self):
        """Delay doubles from the base for each failure."""
        assert calculate_backoff(1) == timedelta(seconds=60)
        assert calculate_backoff(2) == timedelta(seconds=120)
        assert calculate_backoff(3) == timedelta(seconds=240)

    def test_capped_at_maximum(self):
        """Delay never exceeds the configured maximum."""
        assert calculate_backoff(10) == timedelta(seconds=3600)
        assert calculate_backoff(1000) == timedelta(seconds=3600)

    def test_zero_retries_uses_base(self):
        """A retry count of zero behaves like the first retry."""
        assert calculate_backoff(0) == timedelta(seconds=60)

    def test_next_retry_is_in_future(self):
        """calculate_next_retry returns now plus the backoff."""
        before = datetime.now(UTC)
        next_retry = calculate_next_retry(2)
        assert before + timedelta(seconds=119) < next_retry
        assert next_retry <= datetime.now(UTC) + timedelta(seconds=120)


class TestEnqueue:
    """Tests for SyncQueueService.enqueue."""

    @pytest.mark.asyncio
    async def test_enqueue_creates_pending_item(self, db):
        """Enqueued items start pending with zero retries."""
        service = SyncQueueService(db)

        item_id = await service.enqueue(
            "content", "abc123", "update", {"title": "New"}, priority=5
        )
        await db.commit()

        item = await service.get_item(item_id)
        assert item.status == SyncQueueStatus.PENDING
        assert item.operation == SyncQueueOperation.UPDATE
        assert item.payload == {"title": "New"}
        assert item.retry_count == 0
        assert item.max_retries == get_settings().sync_max_retries
        assert item.scheduled_for == item.created_at

    @pytest.mark.asyncio
    async def test_enqueue_returns_unique_ids(self, db):
        """Each enqueue returns a new id."""
        service = SyncQueueService(db)

        first = await service.enqueue("content", "a", "create", {"title": "A"})
        second = await service.enqueue("content", "a", "update", {"title": "B"})

        assert first != second

    @pytest.mark.asyncio
    async def test_enqueue_rejects_unknown_operation(self, db):
        """Operations outside create/update/delete are rejected."""
        service = SyncQueueService(db)

        with pytest.raises(ValueError, match="Invalid operation"):
            await service.enqueue("content", "abc123", "upsert", {})

    @pytest.mark.asyncio
    async def test_enqueue_rejects_non_integer_priority(self, db):
        """Priority must be an integer."""
        service = SyncQueueService(db)

        with pytest.raises(ValueError, match="Priority must be an integer"):
            await service.enqueue("content", "abc123", "update", {}, priority="high")


class TestDequeueOrdering:
    """Tests for dispatch order."""

    @pytest.mark.asyncio
    async def test_higher_priority_dequeued_first(self, db, session_maker):
        """All high priority items come out before any lower priority item."""
        service = SyncQueueService(db)
        await service.enqueue("content", "low-1", "update", {}, priority=1)
        await service.enqueue("content", "high-1", "update", {}, priority=8)
        await service.enqueue("content", "mid-1", "update", {}, priority=5)
        await service.enqueue("content", "high-2", "update", {}, priority=8)
        await service.enqueue("content", "low-2", "update", {}, priority=1)
        await db.commit()

        order = await drain_ids(session_maker)

        assert order == ["high-1", "high-2", "mid-1", "low-1", "low-2"]

    @pytest.mark.asyncio
    async def test_fifo_within_priority(self, db, session_maker):
        """Equal priority items come out in creation order."""
        service = SyncQueueService(db)
        for index in range(5):
            await service.enqueue("page", f"page-{index}", "update", {}, priority=5)
        await db.commit()

        order = await drain_ids(session_maker)

        assert order == [f"page-{index}" for index in range(5)]

    @pytest.mark.asyncio
    async def test_dequeue_marks_item_processing(self, db):
        """The returned item is already claimed."""
        service = SyncQueueService(db)
        await service.enqueue("content", "abc123", "update", {})
        await db.commit()

        item = await service.dequeue_next()

        assert item.status == SyncQueueStatus.PROCESSING
        assert item.processed_at is not None

    @pytest.mark.asyncio
    async def test_dequeue_empty_queue_returns_none(self, db):
        """An empty queue yields nothing."""
        assert await SyncQueueService(db).dequeue_next() is None

    @pytest.mark.asyncio
    async def test_future_scheduled_items_are_not_due(self, db):
        """Items scheduled in the future are skipped."""
        service = SyncQueueService(db)
        item_id = await service.enqueue("content", "later", "update", {})
        await db.execute(
            update(SyncQueueItem)
            .where(SyncQueueItem.id == item_id)
            .values(scheduled_for=datetime.now(UTC) + timedelta(minutes=5))
        )
        await db.commit()

        assert await service.dequeue_next() is None

    @pytest.mark.asyncio
    async def test_later_item_for_same_entity_waits(self, db, session_maker):
        """A later item is held back while an earlier one for the entity is active."""
        service = SyncQueueService(db)
        await service.enqueue("content", "abc123", "create", {"title": "A"}, priority=1)
        await service.enqueue("content", "abc123", "update", {"title": "B"}, priority=8)
        await db.commit()

        async with session_maker() as session:
            first = await SyncQueueService(session).dequeue_next()
            await session.commit()
        async with session_maker() as session:
            blocked = await SyncQueueService(session).dequeue_next()
            await session.commit()

        assert first.operation == SyncQueueOperation.CREATE
        assert blocked is None

        async with session_maker() as session:
            await SyncQueueService(session).mark_completed(first.id)
            await session.commit()
        async with session_maker() as session:
            second = await SyncQueueService(session).dequeue_next()
            await session.commit()

        assert second.operation == SyncQueueOperation.UPDATE


class TestNoDoubleDispatch:
    """Tests for atomic claims."""

    @pytest.mark.asyncio
    async def test_separate_workers_never_share_items(self, db, session_maker):
        """Interleaved workers each get distinct items."""
        service = SyncQueueService(db)
        for index in range(6):
            await service.enqueue("content", f"item-{index}", "update", {})
        await db.commit()

        seen = []
        async with session_maker() as worker_a, session_maker() as worker_b:
            for _ in range(3):
                for worker in (worker_a, worker_b):
                    item = await SyncQueueService(worker).dequeue_next()
                    await worker.commit()
                    seen.append(item.id)

        assert len(seen) == 6
        assert len(set(seen)) == 6

    @pytest.mark.asyncio
    async def test_claim_is_compare_and_set(self, db, session_maker):
        """Only the first claim on a pending item succeeds."""
        service = SyncQueueService(db)
        item_id = await service.enqueue("content", "abc123", "update", {})
        await db.commit()

        async with session_maker() as worker_a:
            won_a = await SyncQueueService(worker_a).claim(item_id, SyncQueueStatus.PENDING)
            await worker_a.commit()
        async with session_maker() as worker_b:
            won_b = await SyncQueueService(worker_b).claim(item_id, SyncQueueStatus.PENDING)
            await worker_b.commit()

        assert won_a is True
        assert won_b is False

    @pytest.mark.asyncio
    async def test_processing_items_are_not_returned(self, db):
        """A claimed item is never dequeued again."""
        service = SyncQueueService(db)
        await service.enqueue("content", "abc123", "update", {})
        await db.commit()

        first = await service.dequeue_next()
        await db.commit()

        assert first is not None
        assert await service.dequeue_next() is None

    @pytest.mark.asyncio
    async def test_manual_retry_cannot_release_claimed_item(self, db, session_maker):
        """An admin retry of a processing item never hands it to a second worker."""
        item_id = await SyncQueueService(db).enqueue("content", "abc123", "update", {})
        await db.commit()

        async with session_maker() as worker_a:
            claimed = await SyncQueueService(worker_a).dequeue_next()
            await worker_a.commit()
        async with session_maker() as admin:
            with pytest.raises(QueueStateError):
                await SyncQueueService(admin).retry_item(item_id)
            await admin.rollback()
        async with session_maker() as worker_b:
            second = await SyncQueueService(worker_b).dequeue_next()
            await worker_b.commit()

        assert claimed.id == item_id
        assert second is None
        db.expire_all()
        item = await SyncQueueService(db).get_item(item_id)
        assert item.status == SyncQueueStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_completed_item_cannot_be_retried(self, db):
        service = SyncQueueService(db)
        item_id = await service.enqueue("content", "abc123", "update", {})
        await service.mark_completed(item_id)

        with pytest.raises(QueueStateError, match="completed"):
            await service.retry_item(item_id)

    @pytest.mark.asyncio
    async def test_processing_items_cannot_be_purged(self, db):
        service = SyncQueueService(db)
        await service.enqueue("content", "abc123", "update", {})
        await service.dequeue_next()

        with pytest.raises(QueueStateError):
            await service.purge_old(status=SyncQueueStatus.PROCESSING)

        _, total = await service.list_items(status=SyncQueueStatus.PROCESSING)
        assert total == 1


class TestMarkFailed:
    """Tests for failure handling and the retry ceiling."""

    @pytest.mark.asyncio
    async def test_failure_below_ceiling_schedules_retry(self, db):
        """First failure moves the item to retry with a backoff."""
        service = SyncQueueService(db)
        item_id = await service.enqueue("content", "abc123", "update", {})
        await service.dequeue_next()

        before = datetime.now(UTC)
        requeued = await service.mark_failed(item_id, "connection reset")

        item = await service.get_item(item_id)
        assert requeued is True
        assert item.status == SyncQueueStatus.RETRY
        assert item.retry_count == 1
        assert item.error_message == "connection reset"
        assert item.scheduled_for >= before + timedelta(seconds=59)

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_terminal(self, db):
        """Non-retryable errors skip the retry state."""
        service = SyncQueueService(db)
        item_id = await service.enqueue("content", "abc123", "update", {})

        requeued = await service.mark_failed(item_id, "invalid payload", retryable=False)

        item = await service.get_item(item_id)
        assert requeued is False
        assert item.status == SyncQueueStatus.FAILED
        assert item.completed_at is not None

    @pytest.mark.asyncio
    async def test_retry_ceiling_then_bulk_requeue(self, db, monkeypatch):
        """After N failures the item is failed until bulk requeued."""
        monkeypatch.setattr(get_settings(), "sync_backoff_base_seconds", 0)
        service = SyncQueueService(db)
        item_id = await service.enqueue("content", "abc123", "update", {})
        await db.commit()

        ceiling = get_settings().sync_max_retries
        for attempt in range(ceiling):
            item = await service.dequeue_next()
            assert item is not None, f"attempt {attempt + 1} should be dispatchable"
            await service.mark_failed(item.id, "timeout")
            await db.commit()

        item = await service.get_item(item_id)
        assert item.status == SyncQueueStatus.FAILED
        assert item.retry_count == ceiling
        assert await service.dequeue_next() is None

        assert await service.bulk_requeue_failed() == 1
        await db.commit()

        db.expire_all()
        item = await service.get_item(item_id)
        assert item.status == SyncQueueStatus.PENDING
        assert item.retry_count == 0
        assert item.error_message is None

        again = await service.dequeue_next()
        assert again.id == item_id

    @pytest.mark.asyncio
    async def test_mark_failed_missing_item(self, db):
        """Unknown ids are reported as not requeued."""
        assert await SyncQueueService(db).mark_failed(uuid4(), "boom") is False


class TestManualRecovery:
    """Tests for manual retries, purging and stale recovery."""

    @pytest.mark.asyncio
    async def test_bulk_requeue_scoped_to_content_type(self, db):
        """Only failed items of the given type are requeued."""
        service = SyncQueueService(db)
        page_id = await service.enqueue("page", "home", "update", {})
        event_id = await service.enqueue("event", "gala", "update", {})
        for item_id in (page_id, event_id):
            await service.mark_failed(item_id, "bad", retryable=False)
        await db.commit()

        assert await service.bulk_requeue_failed("page") == 1
        await db.commit()
        db.expire_all()

        assert (await service.get_item(page_id)).status == SyncQueueStatus.PENDING
        assert (await service.get_item(event_id)).status == SyncQueueStatus.FAILED

    @pytest.mark.asyncio
    async def test_retry_item_resets_state(self, db):
        """retry_item resets one item to pending."""
        service = SyncQueueService(db)
        item_id = await service.enqueue("content", "abc123", "update", {})
        await service.mark_failed(item_id, "bad", retryable=False)

        item = await service.retry_item(item_id)

        assert item.status == SyncQueueStatus.PENDING
        assert item.retry_count == 0
        assert item.completed_at is None

    @pytest.mark.asyncio
    async def test_purge_old_removes_only_old_history(self, db):
        """Completed/failed rows older than the cutoff are removed."""
        service = SyncQueueService(db)
        old_done = await service.enqueue("content", "old", "update", {})
        new_done = await service.enqueue("content", "new", "update", {})
        pending = await service.enqueue("content", "pending", "update", {})
        await service.mark_completed(old_done)
        await service.mark_completed(new_done)
        await db.execute(
            update(SyncQueueItem)
            .where(SyncQueueItem.id.in_([old_done, pending]))
            .values(created_at=datetime.now(UTC) - timedelta(hours=48))
        )
        await db.commit()

        removed = await service.purge_old(older_than_hours=24)
        await db.commit()

        assert removed == 1
        assert await service.get_item(old_done) is None
        assert await service.get_item(new_done) is not None
        assert await service.get_item(pending) is not None

    @pytest.mark.asyncio
    async def test_purge_with_status_ignores_age(self, db):
        """An explicit status removes every row in that status."""
        service = SyncQueueService(db)
        await service.enqueue("content", "a", "update", {})
        await service.enqueue("content", "b", "update", {})
        await db.commit()

        removed = await service.purge_old(status=SyncQueueStatus.PENDING)

        assert removed == 2

    @pytest.mark.asyncio
    async def test_recover_stale_processing(self, db):
        """Items processing past the threshold go back to retry."""
        service = SyncQueueService(db)
        stale_id = await service.enqueue("content", "stale", "update", {})
        fresh_id = await service.enqueue("content", "fresh", "update", {})
        await service.mark_processing(stale_id)
        await service.mark_processing(fresh_id)
        await db.execute(
            update(SyncQueueItem)
            .where(SyncQueueItem.id == stale_id)
            .values(processed_at=datetime.now(UTC) - timedelta(minutes=45))
        )
        await db.commit()
        db.expire_all()

        assert await service.count_stale_processing(30) == 1
        recovered = await service.recover_stale_processing(30)
        await db.commit()

        assert recovered == 1
        assert (await service.get_item(stale_id)).status == SyncQueueStatus.RETRY
        assert (await service.get_item(fresh_id)).status == SyncQueueStatus.PROCESSING


class TestQueueReads:
    """Tests for listing and status aggregation."""

    @pytest.mark.asyncio
    async def test_list_items_filters_and_paginates(self, db):
        """list_items applies filters and returns the total."""
        service = SyncQueueService(db)
        for index in range(3):
            await service.enqueue("page", f"p{index}", "update", {}, priority=index)
        await service.enqueue("event", "e1", "update", {})
        await db.commit()

        items, total = await service.list_items(content_type="page", limit=2)

        assert total == 3
        assert [item.content_id for item in items] == ["p2", "p1"]

    @pytest.mark.asyncio
    async def test_get_queue_status_counts_per_type(self, db):
        """Status counts are grouped by content type."""
        service = SyncQueueService(db)
        done = await service.enqueue("page", "home", "update", {})
        await service.enqueue("page", "about", "update", {})
        failed = await service.enqueue("event", "gala", "update", {})
        await service.mark_completed(done)
        await service.mark_failed(failed, "bad", retryable=False)
        await db.commit()

        statuses = {s.content_type: s for s in await service.get_queue_status()}

        assert statuses["page"].pending_count == 1
        assert statuses["page"].completed_count == 1
        assert statuses["event"].failed_count == 1
        assert statuses["page"].last_activity is not None
        assert statuses["page"].last_activity.tzinfo is not None
