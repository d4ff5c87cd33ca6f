"""
Shop schedule models: weekly operating hours, ad-hoc notifications,
emergency force-status settings and reopen email signups.

All times here are shop-local wall-clock values; no timezone is stored.
"""

import uuid
from datetime import datetime, time, timezone

from sqlalchemy import CheckConstraint, DateTime, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base
from app.models.base import TimestampMixin


class OperatingHours(Base, TimestampMixin):
    """Opening hours for one weekday (0 = Sunday ... 6 = Saturday).

    Exactly seven rows exist; admins update them in bulk, nothing deletes them.
    """

    __tablename__ = "shop_operating_hours"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_operating_hours_day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    day_of_week: Mapped[int] = mapped_column(unique=True, nullable=False)
    open_time: Mapped[time] = mapped_column(Time, nullable=False, default=time(8, 0))
    close_time: Mapped[time] = mapped_column(Time, nullable=False, default=time(22, 0))
    is_open: Mapped[bool] = mapped_column(default=True, nullable=False)

    def to_dict(self) -> dict:
        return {
            "day_of_week": self.day_of_week,
            "open_time": self.open_time.strftime("%H:%M:%S"),
            "close_time": self.close_time.strftime("%H:%M:%S"),
            "is_open": self.is_open,
        }

    def __repr__(self) -> str:
        return f"<OperatingHours day={self.day_of_week} {self.open_time}-{self.close_time} open={self.is_open}>"


class ShopNotification(Base, TimestampMixin):
    """Time-boxed announcement that can force the closed overlay.

    Expires by itself once ``end_date`` passes; ``is_active`` ends it early.
    """

    __tablename__ = "shop_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    show_overlay: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "show_overlay": self.show_overlay,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<ShopNotification {self.id} {self.title!r}>"


class ShopStatusSetting(Base):
    """Key/value shop status settings (force status and its message)."""

    __tablename__ = "shop_status_settings"

    setting_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    setting_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<ShopStatusSetting {self.setting_key}={self.setting_value}>"


# Setting keys
class StatusSettingKeys:
    FORCE_STATUS = "force_status"  # 'auto', 'open' or 'closed'
    FORCE_MESSAGE = "force_message"


class ShopEmailSubscriber(Base, TimestampMixin):
    """Email address collected from the closed-shop overlay."""

    __tablename__ = "shop_email_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<ShopEmailSubscriber {self.email}>"
