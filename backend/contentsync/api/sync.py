"""Admin endpoints for the content synchronization pipeline.

Protected by the ADMIN_API_TOKEN bearer token.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status

from contentsync.api.deps import AdminToken, StatusMonitor, SyncService
from contentsync.core.logging import get_logger
from contentsync.core.rate_limit import admin_limit, limiter
from contentsync.models.sync import SyncQueueStatus
from contentsync.schemas.base import CountResponse, MessageResponse
from contentsync.schemas.sync import (
    CacheRefreshRequest,
    CacheStats,
    CacheUpdateRequest,
    ContentVersionResponse,
    HealthRow,
    MonitorSnapshot,
    NotificationResponse,
    PerformanceMetrics,
    QueueContentSyncRequest,
    QueuedResponse,
    RollbackRequest,
    RollbackResponse,
    SyncActivity,
    SyncAnalyticsSummary,
    SyncLogResponse,
    SyncOverview,
    SyncQueueItemResponse,
    SyncQueueListResponse,
    SyncRunResult,
    SyncSettingResponse,
    SyncSettingUpdate,
    SyncStatus,
    TriggerContentSyncRequest,
    ValidateContentRequest,
    ValidationResult,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[AdminToken])


def _parse_status(queue_status: str | None) -> SyncQueueStatus | None:
    if not queue_status:
        return None
    try:
        return SyncQueueStatus(queue_status)
    except ValueError:
        allowed = ", ".join(f"'{s.value}'" for s in SyncQueueStatus)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {queue_status}. Must be one of {allowed}",
        ) from None


# Queue


@router.get("/status", response_model=list[SyncStatus])
@limiter.limit(admin_limit)
async def get_sync_queue_status(request: Request, service: SyncService) -> Any:
    """Queue counts per content type."""
    return await service.get_sync_queue_status()


@router.get("/overview", response_model=SyncOverview)
@limiter.limit(admin_limit)
async def get_sync_overview(request: Request, service: SyncService) -> Any:
    """Queue status, cache stats, recent activity and health in one call."""
    return await service.get_sync_overview()


@router.get("/queue", response_model=SyncQueueListResponse)
@limiter.limit(admin_limit)
async def list_sync_queue(
    request: Request,
    service: SyncService,
    queue_status: str | None = Query(
        None,
        alias="status",
        description="Filter by status: pending, processing, completed, failed, retry",
    ),
    content_type: str | None = Query(None, description="Filter by content type"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> SyncQueueListResponse:
    """List queue items in dispatch order."""
    items, total = await service.get_sync_queue_items(
        status=_parse_status(queue_status),
        content_type=content_type,
        limit=limit,
        offset=offset,
    )

    return SyncQueueListResponse(
        items=[SyncQueueItemResponse.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
        has_more=(offset + limit) < total,
    )


@router.get("/queue/failed", response_model=list[SyncQueueItemResponse])
@limiter.limit(admin_limit)
async def list_failed_sync_items(
    request: Request,
    service: SyncService,
    limit: int = Query(50, ge=1, le=500),
) -> Any:
    """Terminally failed items awaiting manual retry."""
    return await service.get_failed_sync_items(limit)


@router.post(
    "/queue",
    response_model=QueuedResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(admin_limit)
async def queue_content_sync(
    request: Request,
    data: QueueContentSyncRequest,
    service: SyncService,
) -> QueuedResponse:
    """Queue a content operation."""
    queue_id = await service.queue_content_sync(
        data.content_type,
        data.content_id,
        data.operation,
        data.payload,
        data.priority,
    )
    return QueuedResponse(id=queue_id, message="Content queued for synchronization")


@router.post("/queue/{queue_id}/retry", response_model=SyncQueueItemResponse)
@limiter.limit(admin_limit)
async def retry_sync_item(
    request: Request,
    queue_id: UUID,
    service: SyncService,
) -> Any:
    """Reset one failed or retrying queue item to pending.

    Items a worker may hold answer 409.
    """
    item = await service.retry_sync_item(queue_id)
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Queue item not found",
        )

    logger.info("sync_queue_item_retry_requested", queue_id=str(queue_id))
    return item


@router.post("/queue/retry-failed", response_model=CountResponse)
@limiter.limit(admin_limit)
async def retry_failed_sync_items(
    request: Request,
    service: SyncService,
    content_type: str | None = Query(None, description="Only retry this content type"),
) -> CountResponse:
    """Reset every failed item back to pending."""
    count = await service.retry_failed_sync_items(content_type)
    return CountResponse(
        count=count, message=f"Retried {count} failed synchronization items"
    )


@router.delete("/queue", response_model=CountResponse)
@limiter.limit(admin_limit)
async def clear_sync_queue(
    request: Request,
    service: SyncService,
    queue_status: str | None = Query(
        None,
        alias="status",
        description="Delete every item in this status instead of old history",
    ),
) -> CountResponse:
    """Purge queue history."""
    count = await service.clear_sync_queue(_parse_status(queue_status))
    return CountResponse(count=count, message=f"Removed {count} queue items")


@router.post("/queue/process", response_model=SyncRunResult)
@limiter.limit(admin_limit)
async def process_sync_queue(request: Request, service: SyncService) -> Any:
    """Drain the queue now. Returns 409 while a drain is running."""
    return await service.process_sync_queue()


@router.post(
    "/trigger",
    response_model=QueuedResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(admin_limit)
async def trigger_content_sync(
    request: Request,
    data: TriggerContentSyncRequest,
    service: SyncService,
) -> QueuedResponse:
    """Re-queue the live state of an item at high priority."""
    queue_id = await service.trigger_content_sync(
        data.content_type, data.content_id, data.operation
    )
    return QueuedResponse(id=queue_id, message="Content synchronization triggered")


# Cache


@router.get("/cache/stats", response_model=CacheStats)
@limiter.limit(admin_limit)
async def get_cache_statistics(request: Request, service: SyncService) -> Any:
    return await service.get_cache_statistics()


@router.post("/cache/cleanup", response_model=CountResponse)
@limiter.limit(admin_limit)
async def cleanup_expired_cache(request: Request, service: SyncService) -> CountResponse:
    """Remove expired cache entries."""
    count = await service.cleanup_expired_cache()
    return CountResponse(count=count, message=f"Cleaned up {count} expired cache entries")


@router.put("/cache", response_model=MessageResponse)
@limiter.limit(admin_limit)
async def update_content_cache(
    request: Request,
    data: CacheUpdateRequest,
    service: SyncService,
) -> MessageResponse:
    """Write a cache entry directly."""
    await service.update_content_cache(
        data.content_type,
        data.content_id,
        data.cache_data,
        data.cache_key,
        data.expires_in_hours,
    )
    return MessageResponse(message="Content cache updated")


@router.post(
    "/cache/refresh",
    response_model=QueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(admin_limit)
async def refresh_content_cache(
    request: Request,
    data: CacheRefreshRequest,
    service: SyncService,
) -> QueuedResponse:
    """Invalidate an item's cache and queue a rebuild."""
    queue_id = await service.refresh_content_cache(data.content_type, data.content_id)
    return QueuedResponse(id=queue_id, message="Content cache refresh queued")


# Versions


@router.get(
    "/versions/{content_type}/{content_id}",
    response_model=list[ContentVersionResponse],
)
@limiter.limit(admin_limit)
async def get_content_versions(
    request: Request,
    content_type: str,
    content_id: str,
    service: SyncService,
    limit: int = Query(10, ge=1, le=100),
) -> Any:
    """Version history, newest first."""
    return await service.get_content_versions(content_type, content_id, limit)


@router.post("/rollback", response_model=RollbackResponse)
@limiter.limit(admin_limit)
async def rollback_content(
    request: Request,
    data: RollbackRequest,
    service: SyncService,
) -> RollbackResponse:
    """Restore an item to a previous version."""
    restored = await service.rollback_content(
        data.content_type,
        data.content_id,
        data.target_version,
        data.rollback_by,
    )
    if not restored:
        return RollbackResponse(
            success=False,
            message=f"Version {data.target_version} not found",
        )
    return RollbackResponse(success=True, message="Content rolled back successfully")


@router.post("/validate", response_model=ValidationResult)
@limiter.limit(admin_limit)
async def validate_content(
    request: Request,
    data: ValidateContentRequest,
    service: SyncService,
) -> ValidationResult:
    """Check a payload against its content-type rules without queueing it."""
    return await service.validate_content(data.content_type, data.content_data)


# Logs, metrics and health


@router.get("/logs", response_model=list[SyncLogResponse])
@limiter.limit(admin_limit)
async def get_sync_logs(
    request: Request,
    service: SyncService,
    content_type: str | None = Query(None),
    success: bool | None = Query(None),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> Any:
    return await service.get_sync_logs(
        content_type=content_type, success=success, limit=limit, offset=offset
    )


@router.get("/logs/export", response_model=list[SyncLogResponse])
@limiter.limit(admin_limit)
async def export_sync_logs(
    request: Request,
    service: SyncService,
    start: datetime = Query(..., description="ISO 8601 start of the range"),
    end: datetime = Query(..., description="ISO 8601 end of the range"),
    content_type: str | None = Query(None),
) -> Any:
    """Every log in a date range, for offline analysis."""
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must not be before start",
        )
    return await service.export_sync_logs(start, end, content_type)


@router.get("/metrics", response_model=list[PerformanceMetrics])
@limiter.limit(admin_limit)
async def get_performance_metrics(
    request: Request,
    service: SyncService,
    days: int = Query(7, ge=1, le=365),
) -> Any:
    """Daily success rate and latency per content type."""
    return await service.get_performance_metrics(days)


@router.get("/analytics", response_model=SyncAnalyticsSummary)
@limiter.limit(admin_limit)
async def get_sync_analytics_summary(
    request: Request,
    service: SyncService,
    days: int = Query(30, ge=1, le=365),
) -> Any:
    return await service.get_sync_analytics_summary(days)


@router.get("/health", response_model=list[HealthRow])
@limiter.limit(admin_limit)
async def check_sync_health(request: Request, service: SyncService) -> Any:
    return await service.check_sync_health()


@router.get("/activity", response_model=list[SyncActivity])
@limiter.limit(admin_limit)
async def get_recent_sync_activity(
    request: Request,
    service: SyncService,
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    return await service.get_recent_sync_activity(limit)


@router.get("/monitor", response_model=MonitorSnapshot)
@limiter.limit(admin_limit)
async def get_monitor_snapshot(request: Request, monitor: StatusMonitor) -> MonitorSnapshot:
    """State last fetched by the background status monitor."""
    return MonitorSnapshot(
        running=monitor.running,
        loading=monitor.loading,
        processing=monitor.processing,
        sync_status=monitor.sync_status,
        cache_stats=monitor.cache_stats,
        performance_metrics=monitor.performance_metrics,
        recent_activity=monitor.recent_activity,
        notifications=[
            NotificationResponse(
                message=n.message, level=n.level.value, created_at=n.created_at
            )
            for n in monitor.notifications
        ],
    )


# Settings


@router.get("/settings", response_model=list[SyncSettingResponse])
@limiter.limit(admin_limit)
async def get_sync_settings(request: Request, service: SyncService) -> Any:
    """Active sync settings ordered by key."""
    return await service.get_sync_settings()


@router.put("/settings/{setting_key}", response_model=SyncSettingResponse)
@limiter.limit(admin_limit)
async def update_sync_setting(
    request: Request,
    setting_key: str,
    data: SyncSettingUpdate,
    service: SyncService,
) -> Any:
    """Create or replace a sync setting."""
    return await service.update_sync_setting(
        setting_key, data.setting_value, data.description
    )
