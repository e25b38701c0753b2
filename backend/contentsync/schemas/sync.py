"""Schemas for the content synchronization pipeline."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from contentsync.models.content import ChangeType
from contentsync.models.sync import SyncQueueOperation, SyncQueueStatus

# Sync queue schemas


class SyncQueueItemResponse(BaseModel):
    """Response with sync queue item details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content_type: str
    content_id: str
    operation: SyncQueueOperation
    status: SyncQueueStatus
    priority: int
    payload: dict[str, Any]
    retry_count: int
    max_retries: int
    error_message: str | None
    created_at: datetime
    scheduled_for: datetime
    processed_at: datetime | None
    completed_at: datetime | None


class SyncQueueListResponse(BaseModel):
    """Paginated list of sync queue items."""

    items: list[SyncQueueItemResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class QueueContentSyncRequest(BaseModel):
    """Request to queue a content operation."""

    content_type: str = Field(..., min_length=1, max_length=50)
    content_id: str = Field(..., min_length=1, max_length=100)
    operation: SyncQueueOperation
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(5, ge=0, le=10, description="Higher values run first")


class TriggerContentSyncRequest(BaseModel):
    """Request to re-sync the current state of live content."""

    content_type: str = Field(..., min_length=1, max_length=50)
    content_id: str = Field(..., min_length=1, max_length=100)
    operation: SyncQueueOperation = SyncQueueOperation.UPDATE


class QueuedResponse(BaseModel):
    """Identifier of a newly queued item."""

    id: UUID
    message: str


class SyncRunResult(BaseModel):
    """Aggregate counts from one queue drain."""

    total_processed: int = 0
    total_success: int = 0
    total_failures: int = 0


class SyncQueueProcessResult(SyncRunResult):
    """Result from the scheduled queue job."""

    status: str = Field(
        ..., description="Overall status: success, partial, error, skipped"
    )
    errors: list[str] = Field(default_factory=list)
    timestamp: str


class SyncStatus(BaseModel):
    """Queue counts for one content type."""

    content_type: str
    pending_count: int = 0
    processing_count: int = 0
    completed_count: int = 0
    failed_count: int = 0
    retry_count: int = 0
    last_activity: datetime | None = None


# Cache schemas


class CacheStats(BaseModel):
    """Aggregate view of the content cache."""

    total_entries: int
    active_entries: int
    expired_entries: int
    oldest_entry: datetime | None
    newest_entry: datetime | None


class CacheUpdateRequest(BaseModel):
    """Request to write a cache entry directly."""

    content_type: str = Field(..., min_length=1, max_length=50)
    content_id: str = Field(..., min_length=1, max_length=100)
    cache_data: dict[str, Any]
    cache_key: str | None = Field(None, max_length=255)
    expires_in_hours: float = Field(24, gt=0)


class CacheRefreshRequest(BaseModel):
    """Request to invalidate and rebuild one cache entry."""

    content_type: str = Field(..., min_length=1, max_length=50)
    content_id: str = Field(..., min_length=1, max_length=100)


class CacheCleanupResult(BaseModel):
    """Result from removing expired cache entries."""

    status: str
    removed: int
    timestamp: str


# Version schemas


class ContentVersionResponse(BaseModel):
    """Response with content version details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content_type: str
    content_id: str
    version_number: int
    content_data: dict[str, Any]
    change_summary: str | None
    change_type: ChangeType
    created_by: str | None
    created_at: datetime


class RollbackRequest(BaseModel):
    """Request to restore content to a previous version."""

    content_type: str = Field(..., min_length=1, max_length=50)
    content_id: str = Field(..., min_length=1, max_length=100)
    target_version: int = Field(..., ge=1)
    rollback_by: str | None = Field(None, max_length=255)


class RollbackResponse(BaseModel):
    """Outcome of a rollback request."""

    success: bool
    message: str


# Validation schemas


class ValidationResult(BaseModel):
    """Outcome of content-type validation for a payload."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ValidateContentRequest(BaseModel):
    """Request to validate a payload without queueing it."""

    content_type: str = Field(..., min_length=1, max_length=50)
    content_data: dict[str, Any]


# Log and metrics schemas


class SyncLogResponse(BaseModel):
    """Response with one sync log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content_sync_queue_id: UUID | None
    content_type: str
    content_id: str
    operation: str
    priority: int
    success: bool
    duration_ms: int
    error_message: str | None
    details: dict[str, Any] | None
    created_at: datetime


class SyncActivity(BaseModel):
    """Recent queue activity row for dashboards."""

    id: UUID
    content_type: str
    content_id: str
    operation: str
    status: str
    priority: int
    error_message: str | None
    created_at: datetime
    updated_at: datetime


class PerformanceMetrics(BaseModel):
    """Daily sync performance for one content type."""

    date: str
    content_type: str
    total_ops: int
    success_rate: float
    avg_sync_time_ms: float


class FailingContentType(BaseModel):
    """Failure profile of one content type."""

    content_type: str
    total_ops: int
    success_rate: float
    failure_rate: float


class SyncAnalyticsSummary(BaseModel):
    """Roll-up of performance metrics over a period."""

    total_operations: int
    success_rate: float
    average_processing_time: float
    top_failing_content_types: list[FailingContentType]
    daily_trends: list[PerformanceMetrics]


class HealthRow(BaseModel):
    """One health check result."""

    check_name: str
    status: Literal["healthy", "warning", "critical"]
    message: str
    value: float | None = None


class SyncOverview(BaseModel):
    """Dashboard overview fetched in one round."""

    queue_status: list[SyncStatus]
    cache_stats: CacheStats | None
    recent_activity: list[SyncActivity]
    health_status: list[HealthRow]


# Settings schemas


class SyncSettingResponse(BaseModel):
    """Response with one sync setting."""

    model_config = ConfigDict(from_attributes=True)

    setting_key: str
    setting_value: Any
    description: str | None
    is_active: bool
    updated_at: datetime


class SyncSettingUpdate(BaseModel):
    """Request to create or replace a sync setting."""

    setting_value: Any
    description: str | None = None


# Status monitor schemas


class NotificationResponse(BaseModel):
    """Operator notification raised by a monitor action."""

    model_config = ConfigDict(from_attributes=True)

    message: str
    level: str
    created_at: datetime


class MonitorSnapshot(BaseModel):
    """Last state fetched by the status monitor."""

    running: bool
    loading: bool
    processing: bool
    sync_status: list[SyncStatus]
    cache_stats: CacheStats | None
    performance_metrics: list[PerformanceMetrics]
    recent_activity: list[SyncActivity]
    notifications: list[NotificationResponse]
