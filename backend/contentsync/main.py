"""FastAPI application entry point."""

import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from contentsync.api import content, cron, sync
from contentsync.config import get_settings
from contentsync.core.exceptions import (
    ContentNotFoundError,
    ContentSyncError,
    ContentValidationError,
    QueueStateError,
    StoreUnavailableError,
    SyncInProgressError,
)
from contentsync.core.logging import (
    configure_logging,
    generate_request_id,
    get_logger,
    request_id_ctx,
)
from contentsync.core.rate_limit import limiter
from contentsync.database import async_session_maker, create_tables
from contentsync.services.status_monitor import SyncStatusMonitor
from contentsync.services.sync_processor import SyncProcessor
from contentsync.services.synchronization_service import SynchronizationService

settings = get_settings()

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
    )

    if settings.is_sqlite:
        # SQLite databases are created directly; PostgreSQL uses Alembic
        await create_tables()
        logger.info("sqlite_tables_created")

    processor = SyncProcessor(async_session_maker)
    sync_service = SynchronizationService(async_session_maker, processor)
    status_monitor = SyncStatusMonitor(sync_service)

    app.state.sync_service = sync_service
    app.state.status_monitor = status_monitor

    if settings.status_monitor_enabled:
        await status_monitor.start()

    yield

    # Shutdown
    await status_monitor.stop()

    logger.info("application_shutdown")


app = FastAPI(
    title="Content Sync API",
    description=(
        "Queue-driven content synchronization with priority scheduling, "
        "retry/backoff, cache invalidation, versioning and rollback."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    expose_headers=["X-Request-ID"],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Domain errors that callers can act on
ERROR_STATUS_CODES: dict[type[ContentSyncError], int] = {
    SyncInProgressError: status.HTTP_409_CONFLICT,
    QueueStateError: status.HTTP_409_CONFLICT,
    ContentNotFoundError: status.HTTP_404_NOT_FOUND,
    ContentValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(ContentSyncError)
async def content_sync_error_handler(
    request: Request, exc: ContentSyncError
) -> JSONResponse:
    """Map domain errors to HTTP responses."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    content: dict = {"error": exc.__class__.__name__, "message": str(exc)}
    if isinstance(exc, ContentValidationError):
        content["errors"] = exc.errors

    return JSONResponse(status_code=status_code, content=content)


# Upstream proxies may already assign an id; anything else is replaced
REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}$")


@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next):
    """Tag each request and its log entries with a correlation id."""
    request_id = request.headers.get("X-Request-ID", "")
    if not REQUEST_ID_PATTERN.match(request_id):
        request_id = generate_request_id()

    token = request_id_ctx.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(sync.router, prefix="/api/v1")
app.include_router(cron.router, prefix="/api/v1")
app.include_router(content.router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "Content Sync API",
        "version": "1.0.0",
        "docs": "/docs" if settings.debug else "disabled",
    }
