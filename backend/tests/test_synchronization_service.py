"""Tests for the synchronization service façade."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from contentsync.core.exceptions import (
    ContentNotFoundError,
    QueueStateError,
    StoreUnavailableError,
    SyncInProgressError,
)
from contentsync.models.sync import SyncQueueOperation, SyncQueueStatus
from contentsync.schemas.sync import PerformanceMetrics
from contentsync.services.cache_service import ContentCacheService
from contentsync.services.content_service import ContentStore
from contentsync.services.sync_log_service import summarize_metrics
from contentsync.services.sync_processor import SyncProcessor
from contentsync.services.sync_queue_service import HIGH_PRIORITY
from contentsync.services.synchronization_service import SynchronizationService


@pytest.fixture
def service(session_maker):
    return SynchronizationService(session_maker, SyncProcessor(session_maker))


async def seed_content(session_maker, content_type, content_id, data):
    async with session_maker() as session:
        await ContentStore(session).create(content_type, content_id, data)
        await session.commit()


class TestQueueOperations:
    """Tests for queueing and draining through the façade."""

    @pytest.mark.asyncio
    async def test_queue_then_process(self, service):
        """Queued work is applied by process_sync_queue."""
        await service.queue_content_sync("content", "abc123", "update", {"title": "New"})

        result = await service.process_sync_queue()

        assert (result.total_processed, result.total_success) == (1, 1)
        statuses = await service.get_sync_queue_status()
        assert statuses[0].content_type == "content"
        assert statuses[0].completed_count == 1

    @pytest.mark.asyncio
    async def test_invalid_operation_is_rejected(self, service):
        """Unknown operations raise and nothing is queued."""
        with pytest.raises(ValueError):
            await service.queue_content_sync("content", "abc123", "merge", {})

        _, total = await service.get_sync_queue_items()
        assert total == 0

    @pytest.mark.asyncio
    async def test_process_in_progress_propagates(self, service):
        """A concurrent drain surfaces SyncInProgressError."""
        service.processor._in_progress = True

        with pytest.raises(SyncInProgressError):
            await service.process_sync_queue()

    @pytest.mark.asyncio
    async def test_trigger_queues_live_state_at_high_priority(self, service, session_maker):
        """Triggering re-queues the live data ahead of routine work."""
        await seed_content(session_maker, "page", "home", {"title": "Home"})

        item_id = await service.trigger_content_sync("page", "home")

        items, _ = await service.get_sync_queue_items()
        item = next(i for i in items if i.id == item_id)
        assert item.priority == HIGH_PRIORITY
        assert item.operation == SyncQueueOperation.UPDATE
        assert item.payload == {"title": "Home"}

    @pytest.mark.asyncio
    async def test_trigger_unknown_content_raises(self, service):
        """Triggering content that does not exist raises ContentNotFoundError."""
        with pytest.raises(ContentNotFoundError):
            await service.trigger_content_sync("page", "missing")

        _, total = await service.get_sync_queue_items()
        assert total == 0

    @pytest.mark.asyncio
    async def test_retry_failed_and_single_retry(self, service):
        """Failed items can be retried in bulk or one at a time."""
        await service.queue_content_sync("page", "a", "update", {"title": ""})
        await service.queue_content_sync("page", "b", "update", {"title": ""})
        await service.process_sync_queue()

        failed = await service.get_failed_sync_items()
        assert len(failed) == 2

        retried = await service.retry_sync_item(failed[0].id)
        assert retried.status == SyncQueueStatus.PENDING
        assert await service.retry_failed_sync_items("page") == 1
        assert await service.get_failed_sync_items() == []

    @pytest.mark.asyncio
    async def test_retry_unknown_item(self, service):
        assert await service.retry_sync_item(uuid4()) is None

    @pytest.mark.asyncio
    async def test_retry_pending_item_is_rejected(self, service):
        """Only failed or retrying items can be reset by hand."""
        item_id = await service.queue_content_sync("page", "a", "update", {"title": "A"})

        with pytest.raises(QueueStateError, match="pending"):
            await service.retry_sync_item(item_id)

    @pytest.mark.asyncio
    async def test_clear_processing_items_is_rejected(self, service):
        with pytest.raises(QueueStateError):
            await service.clear_sync_queue(SyncQueueStatus.PROCESSING)

    @pytest.mark.asyncio
    async def test_clear_queue_by_status(self, service):
        """Clearing with a status removes every item in it."""
        await service.queue_content_sync("page", "a", "update", {"title": "A"})
        await service.queue_content_sync("page", "b", "update", {"title": "B"})

        assert await service.clear_sync_queue(SyncQueueStatus.PENDING) == 2
        assert await service.clear_sync_queue() == 0


class TestCacheOperations:
    """Tests for cache maintenance through the façade."""

    @pytest.mark.asyncio
    async def test_refresh_without_cache_entry_queues_rebuild(self, service):
        """Refreshing an uncached item still queues a refresh."""
        item_id = await service.refresh_content_cache("page", "home")

        items, total = await service.get_sync_queue_items()
        assert total == 1
        assert items[0].id == item_id
        assert items[0].payload == {"refresh_cache": True}
        assert items[0].priority == HIGH_PRIORITY

    @pytest.mark.asyncio
    async def test_refresh_drops_existing_entry_immediately(self, service, session_maker):
        """The stale entry is gone before the refresh is processed."""
        await service.update_content_cache("page", "home", {"title": "Stale"})

        await service.refresh_content_cache("page", "home")

        async with session_maker() as session:
            assert await ContentCacheService(session).get("page", "home") is None

    @pytest.mark.asyncio
    async def test_update_and_stats(self, service):
        """Direct cache writes show up in statistics."""
        await service.update_content_cache("page", "home", {"title": "Home"}, expires_in_hours=1)

        stats = await service.get_cache_statistics()

        assert stats.total_entries == 1
        assert stats.active_entries == 1
        assert await service.cleanup_expired_cache() == 0


class TestVersionOperations:
    """Tests for history and rollback through the façade."""

    @pytest.mark.asyncio
    async def test_rollback_restores_content_and_cache(self, service, session_maker):
        """Rollback restores live data and refreshes the cache entry."""
        await service.queue_content_sync("page", "home", "create", {"title": "V1"})
        await service.process_sync_queue()
        await service.queue_content_sync("page", "home", "update", {"title": "V2"})
        await service.process_sync_queue()

        assert await service.rollback_content("page", "home", 1, "editor") is True

        async with session_maker() as session:
            assert (await ContentStore(session).get("page", "home")).data == {"title": "V1"}
            assert await ContentCacheService(session).get("page", "home") == {"title": "V1"}

        versions = await service.get_content_versions("page", "home")
        assert [v.version_number for v in versions] == [4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_rollback_to_missing_version(self, service):
        """An unknown target version returns False."""
        await service.queue_content_sync("page", "home", "create", {"title": "V1"})
        await service.process_sync_queue()

        assert await service.rollback_content("page", "home", 7) is False
        assert len(await service.get_content_versions("page", "home")) == 1

    @pytest.mark.asyncio
    async def test_validate_content(self, service):
        """Validation runs without touching the queue."""
        result = await service.validate_content("page", {"title": "Home", "slug": "Bad Slug"})

        assert result.is_valid is False


class TestReporting:
    """Tests for logs, analytics, health and overview."""

    @pytest.mark.asyncio
    async def test_logs_and_export(self, service):
        """Processing outcomes are queryable and exportable."""
        await service.queue_content_sync("event", "gala", "create", {"title": "Gala"})
        await service.queue_content_sync("event", "bad", "create", {"title": ""})
        await service.process_sync_queue()

        failures = await service.get_sync_logs(success=False)
        assert [log.content_id for log in failures] == ["bad"]

        now = datetime.now(UTC)
        exported = await service.export_sync_logs(now - timedelta(hours=1), now + timedelta(minutes=1))
        assert len(exported) == 2
        assert await service.export_sync_logs(now - timedelta(days=2), now - timedelta(days=1)) == []

    @pytest.mark.asyncio
    async def test_performance_metrics_and_summary(self, service):
        """Metrics aggregate attempts per day and content type."""
        await service.queue_content_sync("event", "a", "create", {"title": "A"})
        await service.queue_content_sync("event", "b", "create", {"title": ""})
        await service.process_sync_queue()

        metrics = await service.get_performance_metrics()
        assert len(metrics) == 1
        assert metrics[0].content_type == "event"
        assert metrics[0].total_ops == 2
        assert metrics[0].success_rate == 50.0

        summary = await service.get_sync_analytics_summary()
        assert summary.total_operations == 2
        assert summary.success_rate == 50.0
        assert summary.top_failing_content_types[0].failure_rate == 50.0

    @pytest.mark.asyncio
    async def test_health_reports_failed_items(self, service):
        """Failed items degrade the health report."""
        await service.queue_content_sync("event", "bad", "create", {"title": ""})
        await service.process_sync_queue()

        rows = {row.check_name: row for row in await service.check_sync_health()}

        assert rows["failed_items"].status == "warning"
        assert rows["success_rate_24h"].status == "critical"
        assert rows["stale_processing"].status == "healthy"

    @pytest.mark.asyncio
    async def test_overview_combines_dashboard_data(self, service):
        """The overview carries queue, cache, activity and health."""
        await service.queue_content_sync("page", "home", "create", {"title": "Home"})

        overview = await service.get_sync_overview()

        assert overview.queue_status[0].pending_count == 1
        assert overview.cache_stats.total_entries == 0
        assert overview.recent_activity[0].content_id == "home"
        assert len(overview.health_status) == 5

    @pytest.mark.asyncio
    async def test_errors_are_logged_and_reraised(self, service):
        """Store errors propagate to the caller."""
        with (
            patch(
                "contentsync.services.synchronization_service.SyncQueueService.get_queue_status",
                new=AsyncMock(side_effect=RuntimeError("db down")),
            ),
            pytest.raises(RuntimeError, match="db down"),
        ):
            await service.get_sync_queue_status()

    @pytest.mark.asyncio
    async def test_store_outage_is_reported_as_unavailable(self, service):
        """Database connection failures surface as StoreUnavailableError."""
        outage = OperationalError("SELECT 1", {}, Exception("database is locked"))
        with (
            patch(
                "contentsync.services.synchronization_service.SyncQueueService.get_queue_status",
                new=AsyncMock(side_effect=outage),
            ),
            pytest.raises(StoreUnavailableError, match="database is locked") as exc_info,
        ):
            await service.get_sync_queue_status()

        assert exc_info.value.__cause__ is outage


class TestSettings:
    """Tests for sync settings."""

    @pytest.mark.asyncio
    async def test_update_and_list_settings(self, service):
        """Updated settings are listed by key."""
        await service.update_sync_setting("batch_size", 25, "Items per drain")
        await service.update_sync_setting("auto_sync", True)

        settings = await service.get_sync_settings()

        assert [s.setting_key for s in settings] == ["auto_sync", "batch_size"]
        assert settings[1].setting_value == 25
        assert settings[1].description == "Items per drain"


class TestSummarizeMetrics:
    """Tests for analytics roll-up."""

    def test_empty_metrics(self):
        summary = summarize_metrics([])

        assert summary.total_operations == 0
        assert summary.success_rate == 0.0
        assert summary.average_processing_time == 0.0
        assert summary.top_failing_content_types == []

    def test_worst_content_types_first(self):
        """Content types are ranked by failure rate."""
        metrics = [
            PerformanceMetrics(
                date="2026-10-17", content_type="page", total_ops=10,
                success_rate=100.0, avg_sync_time_ms=20.0,
            ),
            PerformanceMetrics(
                date="2026-10-17", content_type="event", total_ops=4,
                success_rate=50.0, avg_sync_time_ms=40.0,
            ),
        ]

        summary = summarize_metrics(metrics)

        assert summary.total_operations == 14
        assert summary.success_rate == round(12 / 14 * 100, 2)
        assert summary.average_processing_time == 30.0
        assert [f.content_type for f in summary.top_failing_content_types] == [
            "event",
            "page",
        ]
