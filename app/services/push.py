"""
Push notification service using web-push.

Fans a notification out to registered browsers in bounded batches,
classifies every delivery, prunes endpoints the push service reports as
gone and keeps a delivery log.
"""

import asyncio
import json
import logging
import time as time_module
import uuid
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pywebpush import WebPushException, webpush
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import EndpointGone, PushSendError, StorageError, TransientSendFailure
from app.models.notification_log import NotificationLog, NotificationStatus
from app.models.push_subscription import PushSubscription
from app.services.push_registry import SubscriptionRegistry
from app.services.settings_store import SettingsStore
from app.services.shop_status import shop_now
from app.settings import settings

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = (404, 410)


class NotificationCategory(str, Enum):
    SHOP_STATUS = "shop_status"
    ORDER_UPDATE = "order_update"
    SPECIAL_ANNOUNCEMENT = "special_announcement"
    MARKETING = "marketing"


ORDER_STATUS_TITLES = {
    "confirmed": "✅ Đơn hàng đã được xác nhận",
    "preparing": "👨‍🍳 Đang chuẩn bị đơn hàng",
    "ready": "🎉 Đơn hàng đã sẵn sàng",
    "delivered": "🚚 Đơn hàng đã được giao",
    "cancelled": "❌ Đơn hàng đã bị hủy",
}

ORDER_STATUS_MESSAGES = {
    "confirmed": "Đơn hàng của bạn đã được xác nhận",
    "processing": "Đơn hàng của bạn đang được chuẩn bị",
    "shipping": "Đơn hàng của bạn đã được giao cho đơn vị vận chuyển",
    "completed": "Đơn hàng của bạn đã hoàn thành",
    "cancelled": "Đơn hàng của bạn đã bị hủy",
}


@dataclass
class NotificationPayload:
    """What the service worker displays, minus the per-send tracking fields."""

    title: str
    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    tag: Optional[str] = None
    type: Optional[NotificationCategory] = None
    url: Optional[str] = None
    require_interaction: bool = False
    silent: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def with_tracking(self) -> dict[str, Any]:
        """Serializable message with a fresh id and send timestamp in ``data``."""
        return {
            "title": self.title,
            "body": self.body,
            "icon": self.icon or settings.push_icon,
            "badge": self.badge or settings.push_badge,
            "tag": self.tag,
            "type": self.type.value if self.type else None,
            "url": self.url or "/",
            "requireInteraction": self.require_interaction,
            "silent": self.silent,
            "data": {
                **self.data,
                "url": self.url or "/",
                "id": str(uuid.uuid4()),
                "timestamp": int(time_module.time() * 1000),
            },
        }


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0  # over the daily cap
    suppressed: Optional[str] = None  # why nothing was sent at all

    def to_dict(self) -> dict[str, Any]:
        data = {"sent": self.sent, "failed": self.failed, "skipped": self.skipped}
        if self.suppressed:
            data["suppressed"] = self.suppressed
        return data


@dataclass(frozen=True)
class PushTarget:
    """Plain copy of the fields needed to deliver to one subscription."""

    id: str
    endpoint: str
    p256dh: str
    auth: str

    @classmethod
    def from_subscription(cls, sub: PushSubscription) -> "PushTarget":
        return cls(id=sub.id, endpoint=sub.endpoint, p256dh=sub.p256dh_key, auth=sub.auth_key)

    @property
    def keys(self) -> dict[str, str]:
        return {"p256dh": self.p256dh, "auth": self.auth}


@dataclass
class DeliveryOutcome:
    target: PushTarget
    message: dict[str, Any]
    error: Optional[PushSendError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def gone(self) -> bool:
        return isinstance(self.error, EndpointGone)


class WebPushTransport:
    """Sends one encrypted message to one endpoint with VAPID credentials.

    ``pywebpush`` is blocking, so each call runs on the transport's own
    thread pool. The pool is as wide as a dispatch batch so a full batch is
    in flight at once and no send waits in a queue behind the others.
    """

    def __init__(
        self,
        vapid_private_key: str | None = None,
        vapid_public_key: str | None = None,
        contact_email: str | None = None,
        timeout: float | None = None,
        max_workers: int | None = None,
    ):
        self.vapid_private_key = vapid_private_key or settings.vapid_private_key
        self.vapid_public_key = vapid_public_key or settings.vapid_public_key
        self.vapid_claims = {
            "sub": f"mailto:{contact_email or settings.vapid_contact_email}"
        }
        self.timeout = timeout or settings.push_send_timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.push_batch_size,
            thread_name_prefix="webpush",
        )
        if self.enabled:
            logger.info("Push notifications enabled - VAPID keys configured")
        else:
            logger.warning("Push notifications disabled - VAPID keys not configured")

    @property
    def enabled(self) -> bool:
        return bool(self.vapid_private_key and self.vapid_public_key)

    def _send_blocking(self, endpoint: str, keys: dict[str, str], data: str) -> None:
        webpush(
            subscription_info={"endpoint": endpoint, "keys": keys},
            data=data,
            vapid_private_key=self.vapid_private_key,
            # pywebpush fills in aud/exp on the dict it is given
            vapid_claims=dict(self.vapid_claims),
            timeout=self.timeout,
        )

    async def send(self, endpoint: str, keys: dict[str, str], data: str) -> None:
        """Deliver ``data``; raises EndpointGone or TransientSendFailure."""
        if not self.enabled:
            raise TransientSendFailure("Push notifications not configured")
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(self._executor, self._send_blocking, endpoint, keys, data)
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            if status_code in GONE_STATUS_CODES:
                raise EndpointGone(str(e), status_code) from e
            raise TransientSendFailure(str(e), status_code) from e
        except Exception as e:
            # Malformed keys surface as crypto errors, network trouble as requests errors
            raise TransientSendFailure(f"{type(e).__name__}: {e}") from e

    def close(self) -> None:
        """Release the worker threads; in-flight sends are not waited for."""
        self._executor.shutdown(wait=False, cancel_futures=True)


def in_quiet_hours(moment: time, start: time | None, end: time | None) -> bool:
    """Whether ``moment`` falls in [start, end); the window may wrap midnight."""
    if start is None or end is None or start == end:
        return False
    if start < end:
        return start <= moment < end
    return moment >= start or moment < end


def build_shop_status_payload(is_open: bool, message: str, title: str | None = None) -> NotificationPayload:
    # One tag for every status change so the newest replaces the last in the shade
    return NotificationPayload(
        title=title or ("🎉 Cửa hàng đã mở!" if is_open else "🔒 Cửa hàng đã đóng"),
        body=message,
        tag="shop-status",
        type=NotificationCategory.SHOP_STATUS,
        url="/menu" if is_open else "/",
        data={"type": NotificationCategory.SHOP_STATUS.value, "isOpen": is_open, "message": message},
    )


def build_order_status_payload(order_id: str, status: str, message: str) -> NotificationPayload:
    return NotificationPayload(
        title=ORDER_STATUS_TITLES.get(status, "📋 Cập nhật đơn hàng"),
        body=message,
        tag=f"order-{order_id}",
        type=NotificationCategory.ORDER_UPDATE,
        url=f"/account/orders/{order_id}",
        data={
            "type": NotificationCategory.ORDER_UPDATE.value,
            "orderId": order_id,
            "status": status,
            "message": message,
        },
    )


def build_special_announcement_payload(title: str, message: str, url: str | None = None) -> NotificationPayload:
    return NotificationPayload(
        title=title,
        body=message,
        tag="special-announcement",
        type=NotificationCategory.SPECIAL_ANNOUNCEMENT,
        url=url or "/",
        require_interaction=True,
        data={
            "type": NotificationCategory.SPECIAL_ANNOUNCEMENT.value,
            "title": title,
            "message": message,
            "url": url,
        },
    )


def build_marketing_payload(title: str, message: str, url: str | None = None) -> NotificationPayload:
    return NotificationPayload(
        title=title,
        body=message,
        tag="marketing",
        type=NotificationCategory.MARKETING,
        url=url or "/",
        data={"type": NotificationCategory.MARKETING.value, "title": title, "message": message, "url": url},
    )


class PushNotificationService:
    """Dispatcher bound to one database session.

    The session is only used between batches: sends inside a batch run
    concurrently, then their outcomes are logged one after another.
    """

    def __init__(
        self,
        db: AsyncSession,
        transport: WebPushTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        send_timeout: float | None = None,
    ):
        self.db = db
        self.registry = SubscriptionRegistry(db)
        self.store = SettingsStore(db)
        self.transport = transport or WebPushTransport()
        self._clock = clock or shop_now
        self.batch_size = batch_size or settings.push_batch_size
        self.batch_delay = settings.push_batch_delay_seconds if batch_delay is None else batch_delay
        self.send_timeout = send_timeout or settings.push_send_timeout_seconds

    # -- single delivery --

    async def _deliver(self, target: PushTarget, payload: NotificationPayload) -> DeliveryOutcome:
        message = payload.with_tracking()
        try:
            await asyncio.wait_for(
                self.transport.send(target.endpoint, target.keys, json.dumps(message)),
                timeout=self.send_timeout,
            )
        except PushSendError as e:
            return DeliveryOutcome(target, message, e)
        except asyncio.TimeoutError:
            return DeliveryOutcome(
                target, message, TransientSendFailure(f"Push send timed out after {self.send_timeout}s")
            )
        return DeliveryOutcome(target, message)

    async def _record(self, outcomes: list[DeliveryOutcome]) -> None:
        """Log outcomes and prune gone endpoints.

        Log write failures are reported but never change the counts the
        caller already has.
        """
        try:
            for outcome in outcomes:
                self.db.add(NotificationLog(
                    subscription_id=outcome.target.id,
                    notification_id=outcome.message["data"]["id"],
                    title=outcome.message["title"],
                    body=outcome.message["body"],
                    data_payload=outcome.message["data"],
                    status=(NotificationStatus.SENT if outcome.ok else NotificationStatus.FAILED).value,
                    error_message=str(outcome.error) if outcome.error else None,
                ))
            await self.registry.touch([o.target.id for o in outcomes if o.ok])
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Could not write %d notification log rows", len(outcomes))

        for outcome in outcomes:
            if outcome.ok:
                continue
            if outcome.gone:
                logger.info(
                    "Subscription %s expired (status %s), removing from database",
                    outcome.target.id, outcome.error.status_code,
                )
                try:
                    await self.registry.remove(outcome.target.endpoint)
                except StorageError:
                    logger.exception("Could not remove expired subscription %s", outcome.target.id)
            else:
                logger.warning(
                    "Push notification failed for subscription %s: %s (status: %s)",
                    outcome.target.id, outcome.error, outcome.error.status_code or "N/A",
                )

    async def send_to_one(self, subscription: PushSubscription | PushTarget, payload: NotificationPayload) -> bool:
        """Send to a single subscription. Returns True when the push service accepted it."""
        target = subscription if isinstance(subscription, PushTarget) else PushTarget.from_subscription(subscription)
        outcome = await self._deliver(target, payload)
        await self._record([outcome])
        return outcome.ok

    # -- fan-out --

    async def _apply_daily_cap(self, targets: list[PushTarget]) -> tuple[list[PushTarget], int]:
        """Drop targets that already got ``max_daily_notifications`` today."""
        cfg = await self.store.get_notification_settings()
        cap = cfg.max_daily_notifications
        if not cap or cap <= 0 or not targets:
            return targets, 0

        local_midnight = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        since = local_midnight.replace(tzinfo=ZoneInfo(settings.shop_timezone)).astimezone(timezone.utc)
        try:
            result = await self.db.execute(
                select(NotificationLog.subscription_id, func.count(NotificationLog.id))
                .where(
                    NotificationLog.status == NotificationStatus.SENT.value,
                    NotificationLog.created_at >= since,
                )
                .group_by(NotificationLog.subscription_id)
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Could not count today's notifications: {e}") from e

        sent_today = dict(result.all())
        eligible = [t for t in targets if sent_today.get(t.id, 0) < cap]
        skipped = len(targets) - len(eligible)
        if skipped:
            logger.info("Skipping %d subscriptions over the daily cap of %d", skipped, cap)
        return eligible, skipped

    async def send_to_all(self, payload: NotificationPayload, user_id: str | None = None) -> DispatchResult:
        """Send to every active subscription (or one user's) in batches.

        Batches run strictly one after another with a short pause in between;
        a failure for one subscription never stops the rest.
        """
        result = DispatchResult()
        if not self.transport.enabled:
            logger.warning("VAPID keys not configured, skipping push notification %r", payload.title)
            result.suppressed = "not_configured"
            return result

        subscriptions = await self.registry.list_active(user_id)
        targets = [PushTarget.from_subscription(sub) for sub in subscriptions]
        targets, result.skipped = await self._apply_daily_cap(targets)

        if not targets:
            if user_id:
                logger.info("No push subscriptions found for user %s", user_id)
            return result

        logger.info("Sending push notification to %d subscriptions: %s", len(targets), payload.title)

        for start in range(0, len(targets), self.batch_size):
            batch = targets[start:start + self.batch_size]
            outcomes = await asyncio.gather(*(self._deliver(target, payload) for target in batch))
            await self._record(list(outcomes))

            for outcome in outcomes:
                if outcome.ok:
                    result.sent += 1
                else:
                    result.failed += 1

            if start + self.batch_size < len(targets):
                await asyncio.sleep(self.batch_delay)

        logger.info("Push fan-out finished: %d sent, %d failed", result.sent, result.failed)
        return result

    # -- category builders --

    async def _suppression_reason(self, category: NotificationCategory, respect_quiet_hours: bool) -> str | None:
        cfg = await self.store.get_notification_settings()
        enabled = {
            NotificationCategory.SHOP_STATUS: cfg.shop_status_notifications,
            NotificationCategory.ORDER_UPDATE: cfg.order_status_notifications,
            NotificationCategory.SPECIAL_ANNOUNCEMENT: cfg.special_announcements,
            NotificationCategory.MARKETING: cfg.marketing_notifications,
        }[category]
        if not enabled:
            return "disabled"
        # Order updates are transactional and ignore quiet hours
        if (
            respect_quiet_hours
            and category != NotificationCategory.ORDER_UPDATE
            and in_quiet_hours(self._clock().time(), cfg.quiet_hours_start, cfg.quiet_hours_end)
        ):
            return "quiet_hours"
        return None

    async def _dispatch(
        self,
        payload: NotificationPayload,
        user_id: str | None = None,
        respect_quiet_hours: bool = True,
    ) -> DispatchResult:
        reason = await self._suppression_reason(payload.type, respect_quiet_hours)
        if reason:
            logger.info("Not sending %s notification %r: %s", payload.type.value, payload.title, reason)
            return DispatchResult(suppressed=reason)
        return await self.send_to_all(payload, user_id)

    async def shop_status_notification(self, is_open: bool, message: str, title: str | None = None) -> DispatchResult:
        """Tell every subscriber the shop opened or closed."""
        return await self._dispatch(build_shop_status_payload(is_open, message, title))

    async def order_status_notification(self, user_id: str, order_id: str, status: str, message: str | None = None) -> DispatchResult:
        """Notify one customer's devices about an order status change."""
        message = message or ORDER_STATUS_MESSAGES.get(status, "Trạng thái đơn hàng đã được cập nhật")
        return await self._dispatch(build_order_status_payload(order_id, status, message), user_id=user_id)

    async def special_announcement(self, title: str, message: str, url: str | None = None) -> DispatchResult:
        return await self._dispatch(build_special_announcement_payload(title, message, url))

    async def broadcast(
        self,
        title: str,
        message: str,
        category: NotificationCategory = NotificationCategory.SPECIAL_ANNOUNCEMENT,
        url: str | None = None,
        is_open: bool = True,
    ) -> DispatchResult:
        """Admin-triggered send. Category toggles apply, quiet hours do not."""
        if category == NotificationCategory.SHOP_STATUS:
            payload = build_shop_status_payload(is_open, message, title)
        elif category == NotificationCategory.MARKETING:
            payload = build_marketing_payload(title, message, url)
        else:
            payload = build_special_announcement_payload(title, message, url)
        return await self._dispatch(payload, respect_quiet_hours=False)

    # -- delivery log --

    async def get_stats(self, days: int | None = None) -> list[dict]:
        """Per-day, per-status counts over the trailing window."""
        days = days or settings.notification_stats_days
        since = datetime.now(timezone.utc) - timedelta(days=days)
        day = func.date(NotificationLog.created_at)
        result = await self.db.execute(
            select(NotificationLog.status, func.count(NotificationLog.id), day)
            .where(NotificationLog.created_at >= since)
            .group_by(NotificationLog.status, day)
            .order_by(day.desc(), NotificationLog.status)
        )
        return [
            {"status": status, "count": count, "date": str(date)}
            for status, count, date in result.all()
        ]

    async def cleanup_old_logs(self, days: int | None = None) -> int:
        """Delete log rows older than ``days``; returns how many went."""
        days = days or settings.notification_log_retention_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        result = await self.db.execute(
            delete(NotificationLog).where(NotificationLog.created_at < cutoff)
        )
        await self.db.commit()
        return result.rowcount or 0


def summarize_stats(stats: list[dict]) -> dict[str, int]:
    """Collapse per-day stats into totals per status."""
    summary = {status.value: 0 for status in NotificationStatus}
    for row in stats:
        summary[row["status"]] = summary.get(row["status"], 0) + row["count"]
    return summary


async def record_interaction(
    session_factory: async_sessionmaker[AsyncSession],
    action: str,
    notification_id: str | None,
    timestamp: int | float | None = None,
) -> int:
    """Apply a client-reported click/close to the matching log rows.

    Runs detached from the request; failures are logged and swallowed so
    the client never sees them.
    """
    logger.info("Push notification %s: id=%s timestamp=%s", action, notification_id, timestamp)
    if not notification_id:
        return 0

    status = NotificationStatus.CLICKED if action == "click" else NotificationStatus.DELIVERED
    try:
        async with session_factory() as session:
            result = await session.execute(
                update(NotificationLog)
                .where(NotificationLog.notification_id == notification_id)
                .values(status=status.value)
            )
            await session.commit()
            return result.rowcount or 0
    except Exception:
        logger.exception("Error logging push notification interaction %s", notification_id)
        return 0


def make_status_change_notifier(
    session_factory: async_sessionmaker[AsyncSession],
    transport: WebPushTransport,
) -> Callable[[Any], Awaitable[DispatchResult]]:
    """Handler for ShopStatusService: push the new status to all subscribers."""

    async def notify(status) -> DispatchResult:
        async with session_factory() as session:
            service = PushNotificationService(session, transport=transport)
            result = await service.shop_status_notification(status.is_open, status.message, status.title)
        logger.info("Shop status push: %s", result.to_dict())
        return result

    return notify
