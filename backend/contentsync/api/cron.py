"""Cron job endpoints for background processing.

Protected by CRON_SECRET bearer token authentication.
These endpoints should be called by an external scheduler.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request, status

from contentsync.api.deps import CronToken, SyncService
from contentsync.core.logging import get_logger
from contentsync.core.rate_limit import cron_limit, limiter
from contentsync.schemas.sync import CacheCleanupResult, SyncQueueProcessResult

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[CronToken])


@router.get("/sync-queue", response_model=SyncQueueProcessResult)
@limiter.limit(cron_limit)
async def process_sync_queue_endpoint(
    request: Request,
    service: SyncService,
) -> SyncQueueProcessResult:
    """Process due sync queue items.

    This endpoint should be called by an external cron job every minute.

    Processing flow:
    1. Return stuck processing items to retry
    2. Claim due items highest priority first, oldest first
    3. For each item:
       - Validate and apply the operation
       - Record a content version and refresh the cache
       - On success: mark as completed
       - On failure: increment retry_count and schedule a retry
       - If the retry ceiling is reached: mark as failed
    4. Return summary

    A run that finds another drain in progress reports status "skipped".
    """
    logger.info("cron_sync_queue_triggered")

    result = await service.processor.run_scheduled()

    logger.info(
        "cron_sync_queue_completed",
        status=result.status,
        total_processed=result.total_processed,
        total_success=result.total_success,
        total_failures=result.total_failures,
    )
    return result


@router.get("/cache-cleanup", response_model=CacheCleanupResult)
@limiter.limit(cron_limit)
async def cleanup_cache_endpoint(
    request: Request,
    service: SyncService,
) -> CacheCleanupResult:
    """Remove expired cache entries.

    This endpoint should be called by an external cron job hourly.
    """
    logger.info("cron_cache_cleanup_triggered")

    try:
        removed = await service.cleanup_expired_cache()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Cache cleanup failed: {str(e)}",
        ) from e

    return CacheCleanupResult(
        status="success",
        removed=removed,
        timestamp=datetime.now(UTC).isoformat(),
    )
