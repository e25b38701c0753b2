"""Live content store.

Admin-edited content items that the sync pipeline applies queued
operations to. Deletes are soft so history and rollback keep working.
"""

from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from contentsync.core.exceptions import ContentNotFoundError
from contentsync.core.logging import get_logger
from contentsync.models.content import ContentItem

logger = get_logger(__name__)


class ContentStore:
    """Read and write live content items."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(
        self,
        content_type: str,
        content_id: str,
        include_deleted: bool = False,
    ) -> ContentItem | None:
        """Get a content item by identity.

        Soft-deleted items are hidden unless include_deleted is set.
        """
        query = select(ContentItem).where(
            and_(
                ContentItem.content_type == content_type,
                ContentItem.content_id == content_id,
            )
        )
        if not include_deleted:
            query = query.where(ContentItem.is_deleted.is_(False))

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create(
        self,
        content_type: str,
        content_id: str,
        data: dict[str, Any],
    ) -> ContentItem:
        """Create a content item, reviving it if it was soft-deleted.

        Creating an item that already exists replaces its data.
        """
        item = await self.get(content_type, content_id, include_deleted=True)
        if item:
            item.data = dict(data)
            item.is_deleted = False
        else:
            item = ContentItem(
                content_type=content_type,
                content_id=content_id,
                data=dict(data),
            )
            self.db.add(item)

        await self.db.flush()
        logger.info(
            "content_item_created",
            content_type=content_type,
            content_id=content_id,
        )
        return item

    async def update(
        self,
        content_type: str,
        content_id: str,
        changes: dict[str, Any],
        create_missing: bool = True,
    ) -> ContentItem:
        """Merge changes into a content item's data.

        Args:
            content_type: Category of content
            content_id: Identifier of the content item
            changes: Keys to set on the item's data
            create_missing: Create the item when it does not exist yet

        Raises:
            ContentNotFoundError: If the item is missing and create_missing is False
        """
        item = await self.get(content_type, content_id)
        if not item:
            if not create_missing:
                raise ContentNotFoundError(content_type, content_id)
            return await self.create(content_type, content_id, changes)

        # Reassign so the JSON column registers the change
        item.data = {**(item.data or {}), **changes}
        await self.db.flush()

        logger.info(
            "content_item_updated",
            content_type=content_type,
            content_id=content_id,
            fields=sorted(changes.keys()),
        )
        return item

    async def replace(
        self,
        content_type: str,
        content_id: str,
        data: dict[str, Any],
    ) -> ContentItem:
        """Overwrite a content item's data entirely."""
        return await self.create(content_type, content_id, data)

    async def delete(self, content_type: str, content_id: str) -> ContentItem:
        """Soft delete a content item.

        Raises:
            ContentNotFoundError: If the item does not exist
        """
        item = await self.get(content_type, content_id)
        if not item:
            raise ContentNotFoundError(content_type, content_id)

        item.is_deleted = True
        await self.db.flush()

        logger.info(
            "content_item_deleted",
            content_type=content_type,
            content_id=content_id,
        )
        return item
