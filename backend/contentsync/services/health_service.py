"""Health checks for the synchronization pipeline."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contentsync.config import get_settings
from contentsync.core.logging import get_logger
from contentsync.models.sync import SyncLog, SyncQueueItem, SyncQueueStatus
from contentsync.schemas.sync import HealthRow
from contentsync.services.cache_service import ContentCacheService
from contentsync.services.sync_queue_service import SyncQueueService

logger = get_logger(__name__)

# Success rate thresholds over the last 24 hours, in percent
SUCCESS_RATE_WARNING = 95.0
SUCCESS_RATE_CRITICAL = 80.0

# Expired cache entries worth a cleanup run
EXPIRED_CACHE_WARNING = 100


def _row(check_name: str, status: str, message: str, value: float | None) -> HealthRow:
    return HealthRow(check_name=check_name, status=status, message=message, value=value)


async def check_sync_health(db: AsyncSession) -> list[HealthRow]:
    """Run every pipeline health check.

    Checks:
        - failed_items: terminally failed queue items awaiting manual retry
        - stale_processing: items stuck in processing past the reclaim window
        - queue_backlog: dispatchable items that are already due
        - expired_cache: expired entries not yet cleaned up
        - success_rate_24h: share of successful attempts in the last day

    Returns:
        One HealthRow per check
    """
    settings = get_settings()
    queue = SyncQueueService(db)
    cache = ContentCacheService(db)
    rows: list[HealthRow] = []

    failed = (
        await db.scalar(
            select(func.count(SyncQueueItem.id)).where(
                SyncQueueItem.status == SyncQueueStatus.FAILED
            )
        )
        or 0
    )
    if failed == 0:
        rows.append(_row("failed_items", "healthy", "No failed items", failed))
    else:
        rows.append(
            _row("failed_items", "warning", f"{failed} items need manual retry", failed)
        )

    stale = await queue.count_stale_processing(settings.sync_stale_processing_minutes)
    if stale == 0:
        rows.append(_row("stale_processing", "healthy", "No stuck items", stale))
    else:
        rows.append(
            _row(
                "stale_processing",
                "critical",
                f"{stale} items processing for over "
                f"{settings.sync_stale_processing_minutes} minutes",
                stale,
            )
        )

    backlog = await queue.count_due()
    threshold = settings.health_backlog_threshold
    if backlog <= threshold:
        rows.append(_row("queue_backlog", "healthy", f"{backlog} items due", backlog))
    elif backlog <= threshold * 5:
        rows.append(
            _row("queue_backlog", "warning", f"{backlog} items due, above {threshold}", backlog)
        )
    else:
        rows.append(
            _row("queue_backlog", "critical", f"{backlog} items due, above {threshold * 5}", backlog)
        )

    expired = await cache.count_expired()
    if expired < EXPIRED_CACHE_WARNING:
        rows.append(_row("expired_cache", "healthy", f"{expired} expired entries", expired))
    else:
        rows.append(
            _row("expired_cache", "warning", f"{expired} expired entries awaiting cleanup", expired)
        )

    since = datetime.now(UTC) - timedelta(hours=24)
    result = await db.execute(
        select(SyncLog.success, func.count(SyncLog.id))
        .where(SyncLog.created_at >= since)
        .group_by(SyncLog.success)
    )
    counts = {bool(success): count for success, count in result.all()}
    total = sum(counts.values())
    if total == 0:
        rows.append(_row("success_rate_24h", "healthy", "No sync activity in the last 24 hours", None))
    else:
        rate = round(counts.get(True, 0) / total * 100, 2)
        if rate >= SUCCESS_RATE_WARNING:
            status = "healthy"
        elif rate >= SUCCESS_RATE_CRITICAL:
            status = "warning"
        else:
            status = "critical"
        rows.append(
            _row("success_rate_24h", status, f"{rate}% of {total} attempts succeeded", rate)
        )

    unhealthy = [r.check_name for r in rows if r.status != "healthy"]
    if unhealthy:
        logger.warning("sync_health_degraded", checks=unhealthy)

    return rows
