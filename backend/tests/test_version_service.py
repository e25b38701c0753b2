"""Tests for content version history and rollback."""

import pytest

from contentsync.models.content import ChangeType
from contentsync.services.content_service import ContentStore
from contentsync.services.version_service import ContentVersionService


class TestRecordVersion:
    """Tests for version numbering."""

    @pytest.mark.asyncio
    async def test_versions_are_gapless_per_item(self, db):
        """Numbers start at 1 and increase by one per item."""
        service = ContentVersionService(db)

        numbers = [
            await service.record_version("page", "home", {"title": f"v{n}"}, "update")
            for n in range(3)
        ]
        other = await service.record_version("page", "about", {"title": "About"}, "create")

        assert numbers == [1, 2, 3]
        assert other == 1

    @pytest.mark.asyncio
    async def test_list_versions_newest_first(self, db):
        """Versions are listed newest first and limited."""
        service = ContentVersionService(db)
        for n in range(5):
            await service.record_version("page", "home", {"n": n}, ChangeType.UPDATE)

        versions = await service.list_versions("page", "home", limit=3)

        assert [v.version_number for v in versions] == [5, 4, 3]

    @pytest.mark.asyncio
    async def test_get_version(self, db):
        """A single version is looked up by number."""
        service = ContentVersionService(db)
        await service.record_version(
            "page", "home", {"title": "Home"}, "create", change_summary="Initial"
        )

        version = await service.get_version("page", "home", 1)

        assert version.content_data == {"title": "Home"}
        assert version.change_type == ChangeType.CREATE
        assert version.change_summary == "Initial"
        assert await service.get_version("page", "home", 2) is None


class TestRollback:
    """Tests for rollback."""

    @pytest.mark.asyncio
    async def test_rollback_restores_and_appends_two_versions(self, db):
        """Rollback records the replaced state then the restored state."""
        store = ContentStore(db)
        service = ContentVersionService(db)
        await store.create("page", "home", {"title": "A"})
        await service.record_version("page", "home", {"title": "A"}, "create")
        await store.update("page", "home", {"title": "B"})
        await service.record_version("page", "home", {"title": "B"}, "update")

        restored = await service.rollback("page", "home", 1, rollback_by="editor@example.com")

        assert restored is True
        assert (await store.get("page", "home")).data == {"title": "A"}

        versions = await service.list_versions("page", "home")
        assert [v.version_number for v in versions] == [4, 3, 2, 1]
        assert versions[1].content_data == {"title": "B"}
        assert "Pre-rollback" in versions[1].change_summary
        assert versions[0].content_data == {"title": "A"}
        assert versions[0].change_summary == "Rolled back to version 1"
        assert versions[0].created_by == "editor@example.com"

    @pytest.mark.asyncio
    async def test_rollback_missing_target_changes_nothing(self, db):
        """A missing target returns False without writing anything."""
        store = ContentStore(db)
        service = ContentVersionService(db)
        await store.create("page", "home", {"title": "A"})
        await service.record_version("page", "home", {"title": "A"}, "create")

        restored = await service.rollback("page", "home", 99)

        assert restored is False
        assert (await store.get("page", "home")).data == {"title": "A"}
        assert len(await service.list_versions("page", "home")) == 1

    @pytest.mark.asyncio
    async def test_rollback_of_deleted_item_revives_it(self, db):
        """The deleted state is kept in history before the restore."""
        store = ContentStore(db)
        service = ContentVersionService(db)
        await store.create("page", "home", {"title": "A"})
        await service.record_version("page", "home", {"title": "A"}, "create")
        await store.delete("page", "home")

        assert await service.rollback("page", "home", 1) is True

        assert (await store.get("page", "home")).data == {"title": "A"}
        versions = await service.list_versions("page", "home")
        assert [v.version_number for v in versions] == [3, 2, 1]
        assert versions[1].change_type == ChangeType.DELETE
        assert versions[1].content_data == {"title": "A"}
        assert versions[0].content_data == {"title": "A"}
