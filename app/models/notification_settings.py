"""
Global push notification settings (single row).
"""

from datetime import time

from sqlalchemy import String, Time
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base
from app.models.base import TimestampMixin

DEFAULT_SETTINGS_ID = "default-push-settings"


class NotificationSettings(Base, TimestampMixin):
    """Per-category toggles, daily cap and quiet hours.

    Read by the dispatcher before every send, written only by admins.
    """

    __tablename__ = "push_notification_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=DEFAULT_SETTINGS_ID)

    shop_status_notifications: Mapped[bool] = mapped_column(default=True, nullable=False)
    order_status_notifications: Mapped[bool] = mapped_column(default=True, nullable=False)
    special_announcements: Mapped[bool] = mapped_column(default=True, nullable=False)
    marketing_notifications: Mapped[bool] = mapped_column(default=False, nullable=False)
    auto_resubscribe: Mapped[bool] = mapped_column(default=True, nullable=False)

    max_daily_notifications: Mapped[int] = mapped_column(default=10, nullable=False)
    quiet_hours_start: Mapped[time | None] = mapped_column(Time, nullable=True, default=time(22, 0))
    quiet_hours_end: Mapped[time | None] = mapped_column(Time, nullable=True, default=time(8, 0))

    def to_dict(self) -> dict:
        return {
            "shop_status_notifications": self.shop_status_notifications,
            "order_status_notifications": self.order_status_notifications,
            "special_announcements": self.special_announcements,
            "marketing_notifications": self.marketing_notifications,
            "auto_resubscribe": self.auto_resubscribe,
            "max_daily_notifications": self.max_daily_notifications,
            "quiet_hours_start": self.quiet_hours_start.strftime("%H:%M") if self.quiet_hours_start else None,
            "quiet_hours_end": self.quiet_hours_end.strftime("%H:%M") if self.quiet_hours_end else None,
        }

    def __repr__(self) -> str:
        return f"<NotificationSettings {self.id}>"
