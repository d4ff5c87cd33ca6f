"""
Settings store: operating hours, ad-hoc notifications, force status and
push notification settings.
"""

import logging
from datetime import datetime, time

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConfigurationUnavailable, StorageError
from app.models.notification_settings import DEFAULT_SETTINGS_ID, NotificationSettings
from app.models.shop import (
    OperatingHours,
    ShopNotification,
    ShopStatusSetting,
    StatusSettingKeys,
)

logger = logging.getLogger(__name__)

FORCE_STATUS_VALUES = ("auto", "open", "closed")


def validate_operating_hours(entries: list[dict]) -> str | None:
    """Return an error message for the first invalid entry, or None."""
    seen = set()
    for entry in entries:
        day = entry.get("day_of_week")
        if not isinstance(day, int) or isinstance(day, bool) or day < 0 or day > 6:
            return "Ngày trong tuần không hợp lệ"
        if day in seen:
            return "Ngày trong tuần bị trùng lặp"
        seen.add(day)

        if entry.get("is_open"):
            open_time, close_time = entry.get("open_time"), entry.get("close_time")
            if not open_time or not close_time:
                return "Giờ mở cửa và đóng cửa là bắt buộc khi mở cửa"
            if open_time >= close_time:
                return "Giờ đóng cửa phải sau giờ mở cửa"
    return None


async def seed_defaults(session: AsyncSession) -> None:
    """Make sure the seven weekday rows and the settings singleton exist."""
    result = await session.execute(select(OperatingHours.day_of_week))
    existing_days = set(result.scalars().all())
    for day in range(7):
        if day not in existing_days:
            session.add(OperatingHours(
                day_of_week=day,
                open_time=time(8, 0),
                close_time=time(22, 0),
                is_open=True,
            ))

    settings_row = await session.get(NotificationSettings, DEFAULT_SETTINGS_ID)
    if settings_row is None:
        session.add(NotificationSettings(id=DEFAULT_SETTINGS_ID))

    await session.flush()
    if len(existing_days) < 7:
        logger.info("Seeded %d operating hours rows", 7 - len(existing_days))


class SettingsStore:
    """Reads and writes the shop's persisted configuration.

    Reads used by status evaluation raise ``ConfigurationUnavailable`` so the
    caller can fail open; admin writes raise ``StorageError``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # -- reads used by the status evaluator --

    async def get_operating_hours(self) -> list[OperatingHours]:
        try:
            result = await self.db.execute(
                select(OperatingHours).order_by(OperatingHours.day_of_week)
            )
        except (SQLAlchemyError, OSError) as e:
            raise ConfigurationUnavailable(f"Could not load operating hours: {e}") from e
        return list(result.scalars().all())

    async def get_active_notification(self, now: datetime) -> ShopNotification | None:
        """The live notification that governs ``now``: newest created, then latest start."""
        try:
            result = await self.db.execute(
                select(ShopNotification)
                .where(
                    and_(
                        ShopNotification.is_active.is_(True),
                        ShopNotification.start_date <= now,
                        ShopNotification.end_date >= now,
                    )
                )
                .order_by(ShopNotification.created_at.desc(), ShopNotification.start_date.desc())
                .limit(1)
            )
        except (SQLAlchemyError, OSError) as e:
            raise ConfigurationUnavailable(f"Could not load shop notifications: {e}") from e
        return result.scalar_one_or_none()

    async def get_force_status(self) -> tuple[str, str]:
        """Return ``(force_status, force_message)``; ``auto`` when unset."""
        try:
            result = await self.db.execute(
                select(ShopStatusSetting).where(
                    ShopStatusSetting.setting_key.in_(
                        [StatusSettingKeys.FORCE_STATUS, StatusSettingKeys.FORCE_MESSAGE]
                    )
                )
            )
        except (SQLAlchemyError, OSError) as e:
            raise ConfigurationUnavailable(f"Could not load force status: {e}") from e

        values = {row.setting_key: row.setting_value for row in result.scalars().all()}
        status = values.get(StatusSettingKeys.FORCE_STATUS) or "auto"
        if status not in FORCE_STATUS_VALUES:
            logger.warning("Ignoring unknown force_status value %r", status)
            status = "auto"
        return status, values.get(StatusSettingKeys.FORCE_MESSAGE) or ""

    async def get_notification_settings(self) -> NotificationSettings:
        try:
            settings_row = await self.db.get(NotificationSettings, DEFAULT_SETTINGS_ID)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Could not load notification settings: {e}") from e
        if settings_row is None:
            # Not seeded yet - column defaults apply
            settings_row = NotificationSettings(
                id=DEFAULT_SETTINGS_ID,
                shop_status_notifications=True,
                order_status_notifications=True,
                special_announcements=True,
                marketing_notifications=False,
                auto_resubscribe=True,
                max_daily_notifications=10,
                quiet_hours_start=time(22, 0),
                quiet_hours_end=time(8, 0),
            )
        return settings_row

    # -- admin writes --

    async def update_operating_hours(self, entries: list[dict]) -> None:
        """Bulk update weekday rows. Entries must already be validated."""
        try:
            result = await self.db.execute(select(OperatingHours))
            rows = {row.day_of_week: row for row in result.scalars().all()}
            for entry in entries:
                row = rows.get(entry["day_of_week"])
                if row is None:
                    row = OperatingHours(day_of_week=entry["day_of_week"])
                    self.db.add(row)
                if entry.get("open_time"):
                    row.open_time = entry["open_time"]
                if entry.get("close_time"):
                    row.close_time = entry["close_time"]
                row.is_open = bool(entry.get("is_open"))
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not update operating hours: {e}") from e

    async def set_force_status(self, status: str, message: str | None) -> None:
        values = {
            StatusSettingKeys.FORCE_STATUS: status,
            StatusSettingKeys.FORCE_MESSAGE: message or "",
        }
        try:
            for key, value in values.items():
                row = await self.db.get(ShopStatusSetting, key)
                if row:
                    row.setting_value = value
                else:
                    self.db.add(ShopStatusSetting(setting_key=key, setting_value=value))
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not update force status: {e}") from e

    async def list_notifications(self) -> list[ShopNotification]:
        result = await self.db.execute(
            select(ShopNotification).order_by(ShopNotification.start_date.desc())
        )
        return list(result.scalars().all())

    async def create_notification(
        self,
        title: str,
        message: str,
        start_date: datetime,
        end_date: datetime,
        show_overlay: bool = False,
    ) -> ShopNotification:
        notification = ShopNotification(
            title=title,
            message=message,
            start_date=start_date,
            end_date=end_date,
            show_overlay=show_overlay,
            is_active=True,
        )
        self.db.add(notification)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not create notification: {e}") from e
        return notification

    async def get_notification(self, notification_id: str) -> ShopNotification | None:
        return await self.db.get(ShopNotification, notification_id)

    async def update_notification(self, notification_id: str, values: dict) -> ShopNotification | None:
        notification = await self.db.get(ShopNotification, notification_id)
        if notification is None:
            return None
        for key, value in values.items():
            setattr(notification, key, value)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not update notification: {e}") from e
        return notification

    async def delete_notification(self, notification_id: str) -> bool:
        notification = await self.db.get(ShopNotification, notification_id)
        if notification is None:
            return False
        await self.db.delete(notification)
        await self.db.flush()
        return True

    async def update_notification_settings(self, values: dict) -> NotificationSettings:
        settings_row = await self.db.get(NotificationSettings, DEFAULT_SETTINGS_ID)
        if settings_row is None:
            settings_row = NotificationSettings(id=DEFAULT_SETTINGS_ID)
            self.db.add(settings_row)
        for key, value in values.items():
            setattr(settings_row, key, value)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not update notification settings: {e}") from e
        return settings_row
