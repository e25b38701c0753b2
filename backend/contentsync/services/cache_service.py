"""Content cache service.

Denormalized read snapshots of content with a TTL. Entries live in the
database so expired rows can be counted and swept; an entry past its
expires_at is never returned by get().
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import and_, case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contentsync.config import get_settings
from contentsync.database import as_utc
from contentsync.core.logging import get_logger
from contentsync.models.cache import ContentCache
from contentsync.schemas.sync import CacheStats

logger = get_logger(__name__)


def build_cache_key(content_type: str, content_id: str) -> str:
    """Default cache key for a content item."""
    return f"{content_type}:{content_id}"


class ContentCacheService:
    """Service for content cache entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert(
        self,
        content_type: str,
        content_id: str,
        cache_data: dict[str, Any],
        cache_key: str | None = None,
        expires_in_hours: float | None = None,
    ) -> ContentCache:
        """Write a cache entry, replacing any entry with the same key.

        Args:
            content_type: Category of content
            content_id: Identifier of the content item
            cache_data: Snapshot to serve
            cache_key: Explicit key, defaults to "{content_type}:{content_id}"
            expires_in_hours: TTL, defaults to the configured cache TTL

        Returns:
            The stored cache entry
        """
        if expires_in_hours is None:
            expires_in_hours = get_settings().cache_default_ttl_hours
        if expires_in_hours <= 0:
            raise ValueError("expires_in_hours must be positive")

        key = cache_key or build_cache_key(content_type, content_id)
        now = datetime.now(UTC)
        expires_at = now + timedelta(hours=expires_in_hours)

        result = await self.db.execute(
            select(ContentCache).where(ContentCache.cache_key == key)
        )
        entry = result.scalar_one_or_none()

        if entry:
            entry.content_type = content_type
            entry.content_id = content_id
            entry.cache_data = dict(cache_data)
            entry.updated_at = now
            entry.expires_at = expires_at
        else:
            entry = ContentCache(
                cache_key=key,
                content_type=content_type,
                content_id=content_id,
                cache_data=dict(cache_data),
                created_at=now,
                updated_at=now,
                expires_at=expires_at,
            )
            self.db.add(entry)

        await self.db.flush()

        logger.debug(
            "content_cache_upserted",
            cache_key=key,
            expires_at=expires_at.isoformat(),
        )
        return entry

    async def get(
        self,
        content_type: str,
        content_id: str,
        cache_key: str | None = None,
    ) -> dict[str, Any] | None:
        """Get fresh cached data and count the hit.

        Returns:
            The cached snapshot, or None if missing or expired
        """
        key = cache_key or build_cache_key(content_type, content_id)
        result = await self.db.execute(
            select(ContentCache).where(ContentCache.cache_key == key)
        )
        entry = result.scalar_one_or_none()

        if not entry or entry.is_expired(datetime.now(UTC)):
            return None

        entry.hit_count += 1
        await self.db.flush()
        return entry.cache_data

    async def invalidate(self, content_type: str, content_id: str) -> int:
        """Delete every cache entry for a content item.

        Returns:
            Number of entries removed, 0 when nothing was cached
        """
        result = await self.db.execute(
            delete(ContentCache)
            .where(
                and_(
                    ContentCache.content_type == content_type,
                    ContentCache.content_id == content_id,
                )
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        count = result.rowcount or 0
        logger.info(
            "content_cache_invalidated",
            content_type=content_type,
            content_id=content_id,
            count=count,
        )
        return count

    async def cleanup_expired(self) -> int:
        """Remove entries whose expires_at has passed.

        Returns:
            Number of entries removed
        """
        result = await self.db.execute(
            delete(ContentCache)
            .where(ContentCache.expires_at <= datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        count = result.rowcount or 0
        logger.info("content_cache_cleanup_completed", removed=count)
        return count

    async def count_expired(self) -> int:
        """Count entries past their expiry time."""
        return (
            await self.db.scalar(
                select(func.count(ContentCache.id)).where(
                    ContentCache.expires_at <= datetime.now(UTC)
                )
            )
            or 0
        )

    async def stats(self) -> CacheStats:
        """Aggregate view of cache entries.

        An entry counts as expired once now reaches its expires_at.
        """
        now = datetime.now(UTC)
        row = (
            await self.db.execute(
                select(
                    func.count(ContentCache.id).label("total"),
                    func.coalesce(
                        func.sum(case((ContentCache.expires_at > now, 1), else_=0)),
                        0,
                    ).label("active"),
                    func.min(ContentCache.created_at).label("oldest"),
                    func.max(ContentCache.created_at).label("newest"),
                )
            )
        ).one()

        total = row.total or 0
        active = int(row.active or 0)

        return CacheStats(
            total_entries=total,
            active_entries=active,
            expired_entries=total - active,
            oldest_entry=as_utc(row.oldest),
            newest_entry=as_utc(row.newest),
        )
