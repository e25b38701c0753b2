"""Public read endpoint for synchronized content.

Serves the cached snapshot while it is fresh and falls back to live
content otherwise. Expired cache entries are never served.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from contentsync.api.deps import DbSession
from contentsync.services.cache_service import ContentCacheService
from contentsync.services.content_service import ContentStore

router = APIRouter(prefix="/content", tags=["content"])


class ContentReadResponse(BaseModel):
    """Content snapshot with its source."""

    content_type: str
    content_id: str
    data: dict[str, Any]
    source: str


@router.get("/{content_type}/{content_id}", response_model=ContentReadResponse)
async def read_content(
    content_type: str,
    content_id: str,
    db: DbSession,
) -> ContentReadResponse:
    """Read content, preferring the cache."""
    cached = await ContentCacheService(db).get(content_type, content_id)
    if cached is not None:
        return ContentReadResponse(
            content_type=content_type,
            content_id=content_id,
            data=cached,
            source="cache",
        )

    live = await ContentStore(db).get(content_type, content_id)
    if live is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Content not found",
        )

    return ContentReadResponse(
        content_type=content_type,
        content_id=content_id,
        data=live.data,
        source="live",
    )
