"""Structured logging configuration using structlog.

Two correlation ids are attached to every log entry when set:
request_id for API calls and sync_run_id for one queue drain, so all
item outcomes of a drain can be grouped together.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

import structlog

from contentsync.config import get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
sync_run_id_ctx: ContextVar[str | None] = ContextVar("sync_run_id", default=None)

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def add_correlation_ids(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Attach the request and sync run ids of the current context."""
    for key, ctx in (("request_id", request_id_ctx), ("sync_run_id", sync_run_id_ctx)):
        value = ctx.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


def configure_logging() -> None:
    """Configure structlog on top of the standard library logger."""
    settings = get_settings()
    log_level = getattr(logging, settings.log_level, logging.INFO)

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_correlation_ids,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.environment == "development":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    else:
        # One JSON object per line for log shippers
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically with __name__."""
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """Short correlation id for one API request."""
    return uuid4().hex[:8]


def generate_sync_run_id() -> str:
    """Correlation id for one queue drain."""
    return f"run-{uuid4().hex[:12]}"
