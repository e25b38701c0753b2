"""Sync log service for outcome records, activity feeds and metrics."""

import statistics
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from contentsync.core.logging import get_logger
from contentsync.models.sync import SyncLog, SyncQueueItem
from contentsync.schemas.sync import (
    FailingContentType,
    PerformanceMetrics,
    SyncActivity,
    SyncAnalyticsSummary,
)

logger = get_logger(__name__)

TOP_FAILING_LIMIT = 5


class SyncLogService:
    """Service for append-only sync logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        queue_item: SyncQueueItem,
        success: bool,
        duration_ms: int,
        error_message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> SyncLog:
        """Append the outcome of one processing attempt.

        Identity fields are copied from the queue item so the log
        survives purging of the queue row.
        """
        entry = SyncLog(
            content_sync_queue_id=queue_item.id,
            content_type=queue_item.content_type,
            content_id=queue_item.content_id,
            operation=queue_item.operation.value,
            priority=queue_item.priority,
            success=success,
            duration_ms=max(int(duration_ms), 0),
            error_message=error_message[:1000] if error_message else None,
            details=details or {},
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_logs(
        self,
        content_type: str | None = None,
        success: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SyncLog]:
        """Get logs newest first with optional filters."""
        query = select(SyncLog)
        if content_type:
            query = query.where(SyncLog.content_type == content_type)
        if success is not None:
            query = query.where(SyncLog.success.is_(success))

        result = await self.db.execute(
            query.order_by(SyncLog.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def export_logs(
        self,
        start: datetime,
        end: datetime,
        content_type: str | None = None,
    ) -> list[SyncLog]:
        """Get every log created between start and end inclusive."""
        query = select(SyncLog).where(
            and_(SyncLog.created_at >= start, SyncLog.created_at <= end)
        )
        if content_type:
            query = query.where(SyncLog.content_type == content_type)

        result = await self.db.execute(query.order_by(SyncLog.created_at.desc()))
        logs = list(result.scalars().all())

        logger.info(
            "sync_logs_exported",
            start=start.isoformat(),
            end=end.isoformat(),
            content_type=content_type,
            count=len(logs),
        )
        return logs

    async def get_recent_activity(self, limit: int = 20) -> list[SyncActivity]:
        """Most recently touched queue items."""
        result = await self.db.execute(
            select(SyncQueueItem)
            .order_by(SyncQueueItem.created_at.desc())
            .limit(limit)
        )

        activity = []
        for item in result.scalars().all():
            updated_at = item.completed_at or item.processed_at or item.created_at
            activity.append(
                SyncActivity(
                    id=item.id,
                    content_type=item.content_type,
                    content_id=item.content_id,
                    operation=item.operation.value,
                    status=item.status.value,
                    priority=item.priority,
                    error_message=item.error_message,
                    created_at=item.created_at,
                    updated_at=updated_at,
                )
            )
        return activity

    async def get_performance_metrics(self, days: int = 7) -> list[PerformanceMetrics]:
        """Daily success rate and latency per content type.

        Args:
            days: Size of the window ending now

        Returns:
            One row per (date, content_type), newest date first
        """
        since = datetime.now(UTC) - timedelta(days=days)
        result = await self.db.execute(
            select(
                SyncLog.created_at,
                SyncLog.content_type,
                SyncLog.success,
                SyncLog.duration_ms,
            ).where(SyncLog.created_at >= since)
        )

        buckets: dict[tuple[str, str], list[tuple[bool, int]]] = defaultdict(list)
        for created_at, content_type, success, duration_ms in result.all():
            day = created_at.date().isoformat()
            buckets[(day, content_type)].append((success, duration_ms))

        metrics = []
        for (day, content_type), outcomes in buckets.items():
            total = len(outcomes)
            successes = sum(1 for ok, _ in outcomes if ok)
            metrics.append(
                PerformanceMetrics(
                    date=day,
                    content_type=content_type,
                    total_ops=total,
                    success_rate=round(successes / total * 100, 2),
                    avg_sync_time_ms=round(
                        statistics.mean(duration for _, duration in outcomes), 2
                    ),
                )
            )

        metrics.sort(key=lambda m: (m.date, m.content_type))
        metrics.sort(key=lambda m: m.date, reverse=True)
        return metrics


def summarize_metrics(metrics: list[PerformanceMetrics]) -> SyncAnalyticsSummary:
    """Roll daily metrics up into totals and the worst content types."""
    total_operations = sum(m.total_ops for m in metrics)
    total_success = sum(m.total_ops * m.success_rate / 100 for m in metrics)
    success_rate = (
        round(total_success / total_operations * 100, 2) if total_operations else 0.0
    )
    average_processing_time = (
        round(statistics.mean(m.avg_sync_time_ms for m in metrics), 2)
        if metrics
        else 0.0
    )

    by_type: dict[str, list[float]] = defaultdict(lambda: [0, 0.0])
    for m in metrics:
        by_type[m.content_type][0] += m.total_ops
        by_type[m.content_type][1] += m.total_ops * m.success_rate / 100

    failing = []
    for content_type, (ops, successes) in by_type.items():
        rate = round(successes / ops * 100, 2) if ops else 0.0
        failing.append(
            FailingContentType(
                content_type=content_type,
                total_ops=int(ops),
                success_rate=rate,
                failure_rate=round(100 - rate, 2),
            )
        )
    failing.sort(key=lambda f: f.failure_rate, reverse=True)

    return SyncAnalyticsSummary(
        total_operations=total_operations,
        success_rate=success_rate,
        average_processing_time=average_processing_time,
        top_failing_content_types=failing[:TOP_FAILING_LIMIT],
        daily_trends=metrics,
    )
