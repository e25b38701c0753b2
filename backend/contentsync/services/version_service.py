"""Content version service.

Append-only history of content snapshots with rollback. Version
numbers start at 1 and increase by one per (content_type, content_id).
A rollback never rewrites history: it records the state it replaces
and the state it restores as two new versions.
"""

from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contentsync.core.logging import get_logger
from contentsync.models.content import ChangeType, ContentVersion
from contentsync.services.content_service import ContentStore

logger = get_logger(__name__)

PRE_ROLLBACK_SUMMARY = "Pre-rollback snapshot before restoring version {target}"
ROLLBACK_SUMMARY = "Rolled back to version {target}"


class ContentVersionService:
    """Service for content version history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _next_version_number(self, content_type: str, content_id: str) -> int:
        current = await self.db.scalar(
            select(func.max(ContentVersion.version_number)).where(
                and_(
                    ContentVersion.content_type == content_type,
                    ContentVersion.content_id == content_id,
                )
            )
        )
        return (current or 0) + 1

    async def record_version(
        self,
        content_type: str,
        content_id: str,
        content_data: dict[str, Any],
        change_type: ChangeType | str,
        change_summary: str | None = None,
        created_by: str | None = None,
    ) -> int:
        """Append a snapshot to the item's history.

        The unique constraint on (content_type, content_id,
        version_number) rejects a concurrent writer that computed the
        same number; its transaction fails instead of creating a repeat.

        Returns:
            The new version number
        """
        version_number = await self._next_version_number(content_type, content_id)

        version = ContentVersion(
            content_type=content_type,
            content_id=content_id,
            version_number=version_number,
            content_data=dict(content_data),
            change_type=ChangeType(change_type),
            change_summary=change_summary,
            created_by=created_by,
        )
        self.db.add(version)
        await self.db.flush()

        logger.info(
            "content_version_recorded",
            content_type=content_type,
            content_id=content_id,
            version_number=version_number,
            change_type=version.change_type.value,
        )
        return version_number

    async def list_versions(
        self,
        content_type: str,
        content_id: str,
        limit: int = 10,
    ) -> list[ContentVersion]:
        """Get an item's versions, newest first."""
        result = await self.db.execute(
            select(ContentVersion)
            .where(
                and_(
                    ContentVersion.content_type == content_type,
                    ContentVersion.content_id == content_id,
                )
            )
            .order_by(ContentVersion.version_number.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_version(
        self,
        content_type: str,
        content_id: str,
        version_number: int,
    ) -> ContentVersion | None:
        """Get one version of an item."""
        result = await self.db.execute(
            select(ContentVersion).where(
                and_(
                    ContentVersion.content_type == content_type,
                    ContentVersion.content_id == content_id,
                    ContentVersion.version_number == version_number,
                )
            )
        )
        return result.scalar_one_or_none()

    async def rollback(
        self,
        content_type: str,
        content_id: str,
        target_version: int,
        rollback_by: str | None = None,
    ) -> bool:
        """Restore live content to a previous version.

        Runs inside the caller's transaction. The target is resolved
        before anything is written, so a missing target leaves live
        content and history untouched. On success the pre-rollback state
        is appended, soft-deleted content included, followed by the
        restored state. Only content that never existed skips the first.

        Args:
            content_type: Category of content
            content_id: Identifier of the content item
            target_version: Version number to restore
            rollback_by: Who requested the rollback

        Returns:
            True if restored, False if the target version does not exist
        """
        store = ContentStore(self.db)
        live = await store.get(content_type, content_id, include_deleted=True)

        target = await self.get_version(content_type, content_id, target_version)
        if target is None:
            logger.warning(
                "content_rollback_target_not_found",
                content_type=content_type,
                content_id=content_id,
                target_version=target_version,
            )
            return False

        if live is not None:
            await self.record_version(
                content_type,
                content_id,
                live.data,
                ChangeType.DELETE if live.is_deleted else ChangeType.UPDATE,
                change_summary=PRE_ROLLBACK_SUMMARY.format(target=target_version),
                created_by=rollback_by,
            )

        restored_data = dict(target.content_data)
        await store.replace(content_type, content_id, restored_data)

        restored_version = await self.record_version(
            content_type,
            content_id,
            restored_data,
            ChangeType.UPDATE,
            change_summary=ROLLBACK_SUMMARY.format(target=target_version),
            created_by=rollback_by,
        )

        logger.info(
            "content_rolled_back",
            content_type=content_type,
            content_id=content_id,
            target_version=target_version,
            new_version=restored_version,
            rollback_by=rollback_by,
        )
        return True
