"""API dependencies for route protection and service injection."""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from contentsync.config import get_settings
from contentsync.core.logging import get_logger
from contentsync.database import DbSession, get_db
from contentsync.services.status_monitor import SyncStatusMonitor
from contentsync.services.synchronization_service import SynchronizationService

logger = get_logger(__name__)
settings = get_settings()

# Re-export for convenience
__all__ = [
    "AdminToken",
    "CronToken",
    "DbSession",
    "StatusMonitor",
    "SyncService",
    "get_db",
    "verify_bearer_token",
]


def verify_bearer_token(authorization: str | None, expected: str) -> bool:
    """Check an Authorization header against a configured secret."""
    if not expected:
        return False

    if not authorization or not authorization.startswith("Bearer "):
        return False

    token = authorization[7:]  # Remove "Bearer " prefix
    return hmac.compare_digest(token.encode(), expected.encode())


async def require_admin_token(authorization: str | None = Header(None)) -> None:
    """Reject requests without the ADMIN_API_TOKEN bearer token."""
    if not settings.admin_api_token:
        logger.warning("admin_api_token_not_configured")

    if not verify_bearer_token(authorization, settings.admin_api_token):
        logger.warning("admin_request_unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_cron_secret(authorization: str | None = Header(None)) -> None:
    """Reject requests without the CRON_SECRET bearer token."""
    if not settings.cron_secret:
        logger.warning("cron_secret_not_configured")

    if not verify_bearer_token(authorization, settings.cron_secret):
        logger.warning("cron_request_unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing CRON_SECRET",
        )


def get_sync_service(request: Request) -> SynchronizationService:
    """The façade constructed at startup."""
    return request.app.state.sync_service


def get_status_monitor(request: Request) -> SyncStatusMonitor:
    """The status monitor constructed at startup."""
    return request.app.state.status_monitor


# Type aliases for dependency injection
AdminToken = Depends(require_admin_token)
CronToken = Depends(require_cron_secret)
SyncService = Annotated[SynchronizationService, Depends(get_sync_service)]
StatusMonitor = Annotated[SyncStatusMonitor, Depends(get_status_monitor)]
