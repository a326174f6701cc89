"""Settings service for database-first configuration."""

import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from dashpilot.models import Setting
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class SettingsService:
    """Manage runtime settings in database."""

    # Default settings with descriptions
    DEFAULTS: Dict[str, Dict[str, Any]] = {
        # Health checks
        "health_check_enabled": {
            "value": "true",
            "category": "scheduling",
            "description": "Enable scheduled site health checks",
        },
        "health_check_schedule": {
            "value": "*/5 * * * *",  # Every 5 minutes
            "category": "scheduling",
            "description": "Cron expression for site health checks",
        },
        "scheduler_lease_seconds": {
            "value": "300",
            "category": "scheduling",
            "description": "How long a scheduler instance owns the health-check run before another may take over",
        },
        # Monitoring
        "wordpress_timeout": {
            "value": "10",
            "category": "monitoring",
            "description": "Timeout in seconds for WordPress health endpoint requests",
        },
    }

    @staticmethod
    async def init_defaults(db: AsyncSession) -> None:
        """Initialize default settings if they don't exist."""
        for key, config in SettingsService.DEFAULTS.items():
            result = await db.execute(select(Setting).where(Setting.key == key))
            if not result.scalar_one_or_none():
                db.add(
                    Setting(
                        key=key,
                        value=config["value"],
                        category=config["category"],
                        description=config["description"],
                    )
                )

        await db.commit()

    @staticmethod
    async def get(db: AsyncSession, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get setting value by key.

        Args:
            db: Database session
            key: Setting key
            default: Default value if setting not found

        Returns:
            Setting value or default
        """
        result = await db.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()

        if not setting:
            return default

        return setting.value

    @staticmethod
    async def get_bool(db: AsyncSession, key: str, default: bool = False) -> bool:
        """Get setting as boolean."""
        value = await SettingsService.get(db, key)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    @staticmethod
    async def get_int(db: AsyncSession, key: str, default: int = 0) -> int:
        """Get setting as integer."""
        value = await SettingsService.get(db, key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    @classmethod
    async def set(cls, db: AsyncSession, key: str, value: str) -> Setting:
        """Set setting value, creating the row if needed.

        Args:
            db: Database session
            key: Setting key
            value: Setting value

        Returns:
            Updated Setting object
        """
        result = await db.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()

        if setting:
            setting.value = value
        else:
            config = cls.DEFAULTS.get(key, {})
            setting = Setting(
                key=key,
                value=value,
                category=config.get("category", "general"),
                description=config.get("description", ""),
            )
            db.add(setting)

        await db.commit()
        await db.refresh(setting)
        return setting
