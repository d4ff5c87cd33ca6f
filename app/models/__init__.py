# Models package
from app.db import Base
from app.models.user import User, UserRole
from app.models.shop import (
    OperatingHours,
    ShopNotification,
    ShopStatusSetting,
    StatusSettingKeys,
    ShopEmailSubscriber,
)
from app.models.push_subscription import PushSubscription
from app.models.notification_log import NotificationLog, NotificationStatus
from app.models.notification_settings import NotificationSettings, DEFAULT_SETTINGS_ID

__all__ = [
    "Base",
    "User",
    "UserRole",
    "OperatingHours",
    "ShopNotification",
    "ShopStatusSetting",
    "StatusSettingKeys",
    "ShopEmailSubscriber",
    "PushSubscription",
    "NotificationLog",
    "NotificationStatus",
    "NotificationSettings",
    "DEFAULT_SETTINGS_ID",
]
