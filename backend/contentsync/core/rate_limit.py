"""Rate limiting configuration using slowapi."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from contentsync.config import get_settings

settings = get_settings()


def get_rate_limit_key(request: Request) -> str:
    """Get rate limit key - bearer token holder if present, IP otherwise.

    Admin and cron callers share an address behind a proxy, so the
    token prefix separates them.
    """
    authorization = request.headers.get("authorization", "")
    if authorization.startswith("Bearer ") and len(authorization) > 15:
        return f"token:{authorization[7:15]}"

    return get_remote_address(request)


# headers_enabled=False: slowapi cannot inject headers into endpoints that
# return Pydantic models directly.
limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    headers_enabled=False,
    enabled=settings.rate_limit_enabled,
)


def admin_limit() -> str:
    """Get admin endpoint rate limit."""
    return settings.rate_limit_admin


def cron_limit() -> str:
    """Get cron endpoint rate limit."""
    return settings.rate_limit_cron
