"""Core application exception classes.

This module provides a centralized exception hierarchy for all
content synchronization errors. All custom exceptions inherit from
ContentSyncError, enabling:
- Consistent error handling across the service layer and API
- Easy categorization of errors by type
- Structured logging with exception context

Exception Hierarchy:
    ContentSyncError (base)
    +-- SyncInProgressError (a queue drain is already running)
    +-- ContentValidationError (payload rejected by content-type rules)
    +-- ContentNotFoundError (live content missing)
    +-- QueueStateError (queue item not in a state that allows the change)
    +-- StoreUnavailableError (transient database/storage failure)

A missing rollback target is not an exception: rollback returns False.
"""


class ContentSyncError(Exception):
    """Base exception for all content synchronization errors.

    Example:
        try:
            await service.process_sync_queue()
        except ContentSyncError as e:
            logger.error("sync_error", error=str(e), exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))
    """

    pass


class SyncInProgressError(ContentSyncError):
    """Raised when a queue drain is requested while one is running.

    The processor never interleaves two drain loops; the second caller
    gets this error immediately instead of waiting.
    """

    def __init__(self, message: str = "Synchronization already in progress"):
        super().__init__(message)


class ContentValidationError(ContentSyncError):
    """Raised when a payload fails its content-type validation rules.

    The processor treats this as a non-retryable failure of a single
    queue item, never of the whole batch.
    """

    def __init__(self, content_type: str, errors: list[str]):
        self.content_type = content_type
        self.errors = errors
        super().__init__(
            f"Validation failed for {content_type}: " + "; ".join(errors)
        )


class ContentNotFoundError(ContentSyncError):
    """Raised when live content required by an operation does not exist."""

    def __init__(self, content_type: str, content_id: str):
        self.content_type = content_type
        self.content_id = content_id
        super().__init__(f"Content not found: {content_type}/{content_id}")


class QueueStateError(ContentSyncError):
    """Raised when an admin change would disturb an in-flight queue item.

    Only failed or retrying items can be reset, and processing items are
    never purged, so a claimed item is never handed to a second worker.
    """

    pass


class StoreUnavailableError(ContentSyncError):
    """Exception for transient storage failures.

    Wraps connection drops, timeouts and lock contention so that callers
    can distinguish "infrastructure broke" from "did not apply".
    """

    pass
