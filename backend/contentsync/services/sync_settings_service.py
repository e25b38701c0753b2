"""Key-value settings for tuning the synchronization pipeline."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contentsync.core.logging import get_logger
from contentsync.models.sync import SyncSetting

logger = get_logger(__name__)


async def get_settings(db: AsyncSession, active_only: bool = True) -> list[SyncSetting]:
    """Get sync settings ordered by key."""
    query = select(SyncSetting)
    if active_only:
        query = query.where(SyncSetting.is_active.is_(True))
    result = await db.execute(query.order_by(SyncSetting.setting_key))
    return list(result.scalars().all())


async def get_value(db: AsyncSession, key: str, default: Any = None) -> Any:
    """Get an active setting's value, or default when unset."""
    result = await db.execute(
        select(SyncSetting).where(
            SyncSetting.setting_key == key,
            SyncSetting.is_active.is_(True),
        )
    )
    setting = result.scalar_one_or_none()
    if setting is None or setting.setting_value is None:
        return default
    return setting.setting_value


async def update_setting(
    db: AsyncSession,
    key: str,
    value: Any,
    description: str | None = None,
) -> SyncSetting:
    """Create or replace a setting; the setting becomes active."""
    setting = await db.get(SyncSetting, key)
    if setting is None:
        setting = SyncSetting(
            setting_key=key,
            setting_value=value,
            description=description,
            is_active=True,
        )
        db.add(setting)
    else:
        setting.setting_value = value
        setting.is_active = True
        setting.updated_at = datetime.now(UTC)
        if description is not None:
            setting.description = description

    await db.flush()
    logger.info("sync_setting_updated", setting_key=key)
    return setting
