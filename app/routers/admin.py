"""
Admin routes: operating hours, ad-hoc notifications, force status and
push notification management.
"""

import logging
from datetime import datetime, time
from zoneinfo import ZoneInfo

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import select

from app.deps import AdminUser, DBSession, PushTransport, StatusService
from app.models.shop import ShopEmailSubscriber
from app.services.push import NotificationCategory, PushNotificationService, summarize_stats
from app.services.push_registry import SubscriptionRegistry
from app.services.settings_store import FORCE_STATUS_VALUES, SettingsStore, validate_operating_hours
from app.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class OperatingHoursEntry(BaseModel):
    day_of_week: int
    open_time: time | None = None
    close_time: time | None = None
    is_open: bool = True


class OperatingHoursUpdate(BaseModel):
    operating_hours: list[OperatingHoursEntry]


class NotificationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    start_date: datetime
    end_date: datetime
    show_overlay: bool = False


class NotificationUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    message: str | None = Field(default=None, min_length=1)
    start_date: datetime | None = None
    end_date: datetime | None = None
    show_overlay: bool | None = None
    is_active: bool | None = None


class ForceStatusUpdate(BaseModel):
    status: str
    message: str | None = None


class BroadcastRequest(BaseModel):
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: NotificationCategory = NotificationCategory.SPECIAL_ANNOUNCEMENT
    url: str | None = None
    is_open: bool = True


class PushSettingsUpdate(BaseModel):
    shop_status_notifications: bool | None = None
    order_status_notifications: bool | None = None
    special_announcements: bool | None = None
    marketing_notifications: bool | None = None
    auto_resubscribe: bool | None = None
    max_daily_notifications: int | None = Field(default=None, ge=0)
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None


class CleanupRequest(BaseModel):
    days: int | None = Field(default=None, ge=1)


class OrderStatusRequest(BaseModel):
    user_id: str
    order_id: str
    status: str
    message: str | None = None


def _shop_local(moment: datetime) -> datetime:
    """Convert an aware datetime to naive shop-local time; naive passes through."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(settings.shop_timezone)).replace(tzinfo=None)


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


# -- operating hours --

@router.get("/shop/operating-hours")
async def get_operating_hours(admin: AdminUser, db: DBSession):
    hours = await SettingsStore(db).get_operating_hours()
    return JSONResponse({"success": True, "data": [h.to_dict() for h in hours]})


@router.put("/shop/operating-hours")
async def update_operating_hours(
    payload: OperatingHoursUpdate,
    admin: AdminUser,
    db: DBSession,
    status_service: StatusService,
):
    """Bulk update the weekly schedule and re-evaluate the status."""
    entries = [entry.model_dump() for entry in payload.operating_hours]
    error = validate_operating_hours(entries)
    if error:
        raise _bad_request(error)

    await SettingsStore(db).update_operating_hours(entries)
    await db.commit()
    logger.info("Operating hours updated by %s", admin.email)

    shop_status = await status_service.refresh()
    return JSONResponse({
        "success": True,
        "message": "Cập nhật giờ hoạt động thành công",
        "status": shop_status.to_dict(),
    })


# -- ad-hoc notifications --

@router.get("/shop/notifications")
async def list_notifications(admin: AdminUser, db: DBSession):
    notifications = await SettingsStore(db).list_notifications()
    return JSONResponse({"success": True, "data": [n.to_dict() for n in notifications]})


@router.post("/shop/notifications", status_code=status.HTTP_201_CREATED)
async def create_notification(
    payload: NotificationCreate,
    admin: AdminUser,
    db: DBSession,
    status_service: StatusService,
):
    start_date, end_date = _shop_local(payload.start_date), _shop_local(payload.end_date)
    if end_date <= start_date:
        raise _bad_request("Thời gian kết thúc phải sau thời gian bắt đầu")

    notification = await SettingsStore(db).create_notification(
        title=payload.title,
        message=payload.message,
        start_date=start_date,
        end_date=end_date,
        show_overlay=payload.show_overlay,
    )
    await db.commit()
    logger.info("Shop notification %s created by %s", notification.id, admin.email)

    await status_service.refresh()
    return JSONResponse(
        {"success": True, "data": notification.to_dict()},
        status_code=status.HTTP_201_CREATED,
    )


@router.put("/shop/notifications/{notification_id}")
async def update_notification(
    notification_id: str,
    payload: NotificationUpdate,
    admin: AdminUser,
    db: DBSession,
    status_service: StatusService,
):
    store = SettingsStore(db)
    existing = await store.get_notification(notification_id)
    if existing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")

    values = payload.model_dump(exclude_unset=True, exclude_none=True)
    for key in ("start_date", "end_date"):
        if key in values:
            values[key] = _shop_local(values[key])
    if values.get("end_date", existing.end_date) <= values.get("start_date", existing.start_date):
        raise _bad_request("Thời gian kết thúc phải sau thời gian bắt đầu")

    notification = await store.update_notification(notification_id, values)
    await db.commit()

    await status_service.refresh()
    return JSONResponse({"success": True, "data": notification.to_dict()})


@router.delete("/shop/notifications/{notification_id}")
async def delete_notification(
    notification_id: str,
    admin: AdminUser,
    db: DBSession,
    status_service: StatusService,
):
    if not await SettingsStore(db).delete_notification(notification_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    await db.commit()

    await status_service.refresh()
    return JSONResponse({"success": True})


# -- force status --

@router.get("/shop/force-status")
async def get_force_status(admin: AdminUser, db: DBSession):
    force_status, force_message = await SettingsStore(db).get_force_status()
    return JSONResponse({"success": True, "data": {"status": force_status, "message": force_message}})


@router.post("/shop/force-status")
async def set_force_status(
    payload: ForceStatusUpdate,
    admin: AdminUser,
    db: DBSession,
    status_service: StatusService,
):
    """Pin the shop open or closed, or hand control back with ``auto``."""
    if payload.status not in FORCE_STATUS_VALUES:
        raise _bad_request(f"Trạng thái không hợp lệ, phải là một trong: {', '.join(FORCE_STATUS_VALUES)}")

    await SettingsStore(db).set_force_status(payload.status, payload.message)
    await db.commit()
    logger.info("Force status set to %s by %s", payload.status, admin.email)

    shop_status = await status_service.refresh()
    return JSONResponse({"success": True, "status": shop_status.to_dict()})


@router.get("/shop/email-subscribers")
async def list_email_subscribers(admin: AdminUser, db: DBSession):
    result = await db.execute(
        select(ShopEmailSubscriber)
        .where(ShopEmailSubscriber.is_active.is_(True))
        .order_by(ShopEmailSubscriber.created_at.desc())
    )
    subscribers = result.scalars().all()
    return JSONResponse({
        "success": True,
        "data": [
            {
                "id": s.id,
                "email": s.email,
                "created_at": s.created_at.isoformat() if s.created_at else None,
            }
            for s in subscribers
        ],
    })


# -- push notifications --

@router.get("/push")
async def push_overview(admin: AdminUser, db: DBSession, transport: PushTransport):
    """Subscriptions, recent delivery stats and the current settings."""
    service = PushNotificationService(db, transport=transport)
    subscriptions = await SubscriptionRegistry(db).list_all()
    stats = await service.get_stats(settings.notification_stats_days)
    notification_settings = await SettingsStore(db).get_notification_settings()
    return JSONResponse({
        "success": True,
        "data": {
            "subscriptions": subscriptions,
            "stats": stats,
            "summary": summarize_stats(stats),
            "settings": notification_settings.to_dict(),
            "enabled": transport.enabled,
        },
    })


@router.post("/push/broadcast")
async def broadcast(
    payload: BroadcastRequest,
    admin: AdminUser,
    db: DBSession,
    transport: PushTransport,
):
    service = PushNotificationService(db, transport=transport)
    result = await service.broadcast(
        payload.title,
        payload.message,
        category=payload.type,
        url=payload.url,
        is_open=payload.is_open,
    )
    logger.info("Broadcast %r by %s: %s", payload.title, admin.email, result.to_dict())
    return JSONResponse({"success": True, "data": result.to_dict()})


@router.put("/push/settings")
async def update_push_settings(payload: PushSettingsUpdate, admin: AdminUser, db: DBSession):
    values = payload.model_dump(exclude_unset=True)
    updated = await SettingsStore(db).update_notification_settings(values)
    await db.commit()
    return JSONResponse({"success": True, "data": updated.to_dict()})


@router.delete("/push/subscriptions/{subscription_id}")
async def delete_subscription(subscription_id: str, admin: AdminUser, db: DBSession):
    if not await SubscriptionRegistry(db).remove_by_id(subscription_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return JSONResponse({"success": True})


@router.get("/push/stats")
async def push_stats(
    admin: AdminUser,
    db: DBSession,
    transport: PushTransport,
    days: int = Query(default=7, ge=1, le=365),
):
    stats = await PushNotificationService(db, transport=transport).get_stats(days)
    return JSONResponse({"success": True, "data": {"stats": stats, "summary": summarize_stats(stats)}})


@router.post("/push/cleanup")
async def cleanup_logs(
    admin: AdminUser,
    db: DBSession,
    transport: PushTransport,
    payload: CleanupRequest | None = None,
):
    days = payload.days if payload and payload.days else settings.notification_log_retention_days
    deleted = await PushNotificationService(db, transport=transport).cleanup_old_logs(days)
    logger.info("Deleted %d notification log rows older than %d days", deleted, days)
    return JSONResponse({"success": True, "data": {"deleted": deleted, "days": days}})


@router.post("/push/order-status")
async def order_status(
    payload: OrderStatusRequest,
    admin: AdminUser,
    db: DBSession,
    transport: PushTransport,
):
    """Push an order status change to the order owner's devices."""
    result = await PushNotificationService(db, transport=transport).order_status_notification(
        payload.user_id, payload.order_id, payload.status, payload.message,
    )
    return JSONResponse({"success": True, "data": result.to_dict()})
