"""
Shop open/closed status: a pure evaluator plus a cached distribution service.

The evaluator combines the weekly operating hours, any live ad-hoc
notification and the admin force-status override into a ``ShopStatus``.
``ShopStatusService`` owns the cached value, refreshes it on a timer and on
demand, and decides whether a caller must see the blocking overlay.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import ConfigurationUnavailable
from app.services.settings_store import SettingsStore
from app.settings import settings

logger = logging.getLogger(__name__)

DAY_NAMES = ["Chủ nhật", "Thứ hai", "Thứ ba", "Thứ tư", "Thứ năm", "Thứ sáu", "Thứ bảy"]

MSG_OPEN = "Cửa hàng đang hoạt động"
MSG_CLOSED = "Cửa hàng hiện đang đóng cửa"
MSG_SPECIAL = "Cửa hàng tạm nghỉ"
MSG_NO_HOURS = "Không có thông tin giờ hoạt động cho ngày hôm nay"


class StatusKind(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    SPECIAL_NOTIFICATION = "special_notification"


@dataclass(frozen=True)
class ShopStatus:
    """Snapshot of the shop's status. Always rebuilt, never mutated."""

    is_open: bool
    status: StatusKind
    message: str
    current_time: datetime
    title: str | None = None
    next_open_time: datetime | None = None
    next_open_label: str | None = None
    operating_hours_today: dict | None = None
    force_status: bool = False
    announcement: dict | None = None

    def to_dict(self) -> dict[str, Any]:
        """Client-facing shape (camelCase keys)."""
        data: dict[str, Any] = {
            "isOpen": self.is_open,
            "status": self.status.value,
            "message": self.message,
            "currentTime": self.current_time.isoformat(),
        }
        if self.title:
            data["title"] = self.title
        if self.next_open_time:
            data["nextOpenTime"] = self.next_open_time.isoformat()
            data["nextOpenLabel"] = self.next_open_label
        if self.operating_hours_today:
            data["operatingHours"] = {"today": self.operating_hours_today}
        if self.force_status:
            data["forceStatus"] = True
        if self.announcement:
            data["announcement"] = self.announcement
        return data


def shop_now(tz_name: str | None = None) -> datetime:
    """Current shop-local wall-clock time, without tzinfo."""
    return datetime.now(ZoneInfo(tz_name or settings.shop_timezone)).replace(tzinfo=None)


def day_of_week(moment: datetime) -> int:
    """Weekday with Sunday = 0."""
    return (moment.weekday() + 1) % 7


def _hours_dict(entry) -> dict:
    return {
        "day_of_week": entry.day_of_week,
        "open_time": entry.open_time.strftime("%H:%M:%S"),
        "close_time": entry.close_time.strftime("%H:%M:%S"),
        "is_open": entry.is_open,
    }


def select_active_notification(notifications: Iterable, now: datetime):
    """Pick the notification that governs ``now``.

    Candidates must be active with ``start_date <= now <= end_date``. The most
    recently created wins; equal creation times fall back to the latest
    ``start_date``.
    """
    live = [n for n in notifications if n.is_active and n.start_date <= now <= n.end_date]
    if not live:
        return None
    return max(
        live,
        key=lambda n: (getattr(n, "created_at", None) or datetime.min, n.start_date),
    )


def compute_next_open(now: datetime, hours_by_day: dict[int, Any]) -> datetime | None:
    """When the shop next opens, or None if no weekday is open.

    Today counts only if it is an open day and its opening time is still
    ahead; otherwise the following days are searched, a full week at most.
    """
    today = day_of_week(now)
    entry = hours_by_day.get(today)
    if entry is not None and entry.is_open and now.time() < entry.open_time:
        return datetime.combine(now.date(), entry.open_time)

    for offset in range(1, 8):
        entry = hours_by_day.get((today + offset) % 7)
        if entry is not None and entry.is_open:
            return datetime.combine(now.date() + timedelta(days=offset), entry.open_time)
    return None


def _next_open_label(now: datetime, next_open: datetime) -> str:
    hhmm = next_open.strftime("%H:%M")
    if next_open.date() == now.date():
        return f"Hôm nay lúc {hhmm}"
    return f"{DAY_NAMES[day_of_week(next_open)]} lúc {hhmm}"


def evaluate_status(
    now: datetime,
    operating_hours: Iterable,
    notifications: Iterable = (),
    force_status: str = "auto",
    force_message: str = "",
) -> ShopStatus:
    """Combine force status, ad-hoc notifications and weekly hours.

    Pure: the same inputs always give the same ``ShopStatus``.
    """
    if force_status == "open":
        return ShopStatus(
            is_open=True,
            status=StatusKind.OPEN,
            message=force_message or MSG_OPEN,
            current_time=now,
            force_status=True,
        )
    if force_status == "closed":
        return ShopStatus(
            is_open=False,
            status=StatusKind.CLOSED,
            message=force_message or MSG_CLOSED,
            current_time=now,
            force_status=True,
        )

    announcement = None
    notification = select_active_notification(notifications, now)
    if notification is not None:
        if notification.show_overlay:
            return ShopStatus(
                is_open=False,
                status=StatusKind.SPECIAL_NOTIFICATION,
                message=notification.message or MSG_SPECIAL,
                title=notification.title,
                current_time=now,
            )
        announcement = {"title": notification.title, "message": notification.message}

    hours_by_day = {entry.day_of_week: entry for entry in operating_hours}
    today_entry = hours_by_day.get(day_of_week(now))
    if today_entry is None:
        return ShopStatus(
            is_open=False,
            status=StatusKind.CLOSED,
            message=MSG_NO_HOURS,
            current_time=now,
            announcement=announcement,
        )

    today_hours = _hours_dict(today_entry)
    current = now.time()
    if today_entry.is_open and today_entry.open_time <= current < today_entry.close_time:
        return ShopStatus(
            is_open=True,
            status=StatusKind.OPEN,
            message=f"{MSG_OPEN} (đóng cửa lúc {today_entry.close_time.strftime('%H:%M')})",
            current_time=now,
            operating_hours_today=today_hours,
            announcement=announcement,
        )

    if today_entry.is_open:
        message = MSG_CLOSED
    else:
        message = f"Cửa hàng nghỉ vào {DAY_NAMES[today_entry.day_of_week]}"

    next_open = compute_next_open(now, hours_by_day)
    return ShopStatus(
        is_open=False,
        status=StatusKind.CLOSED,
        message=message,
        current_time=now,
        next_open_time=next_open,
        next_open_label=_next_open_label(now, next_open) if next_open else None,
        operating_hours_today=today_hours,
        announcement=announcement,
    )


def fallback_open_status(now: datetime) -> ShopStatus:
    """Status reported when the settings store cannot be read."""
    return ShopStatus(is_open=True, status=StatusKind.OPEN, message=MSG_OPEN, current_time=now)


async def evaluate_from_store(store: SettingsStore, now: datetime) -> ShopStatus:
    """Load everything the evaluator needs and evaluate.

    Raises ConfigurationUnavailable when the store cannot be read.
    """
    force_status, force_message = await store.get_force_status()
    notification = await store.get_active_notification(now)
    operating_hours = await store.get_operating_hours()
    notifications = [notification] if notification is not None else []
    return evaluate_status(now, operating_hours, notifications, force_status, force_message)


def _matches_prefix(route: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    return route == prefix or route.startswith(prefix + "/")


def should_show_overlay(
    status: ShopStatus | None,
    route: str | None,
    is_admin: bool,
    exempt_prefixes: Iterable[str] | None = None,
) -> bool:
    """Whether the blocking overlay applies to this caller on this route.

    Never while open. While closed, admins and admin/auth routes are exempt.
    """
    if status is None or status.is_open:
        return False
    if is_admin:
        return False
    prefixes = settings.overlay_exempt_prefixes if exempt_prefixes is None else exempt_prefixes
    route = route or "/"
    return not any(_matches_prefix(route, prefix) for prefix in prefixes)


StatusChangeHandler = Callable[[ShopStatus], Awaitable[Any]]


class ShopStatusService:
    """Process-wide cached view of the shop status.

    Created once in the application lifespan and handed to routes through a
    dependency. ``refresh`` runs on a fixed cadence and on demand; concurrent
    refreshes may race and the last one to finish wins.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        refresh_seconds: int | None = None,
        exempt_prefixes: list[str] | None = None,
        on_change: StatusChangeHandler | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._session_factory = session_factory
        self.refresh_seconds = refresh_seconds or settings.status_refresh_seconds
        self.exempt_prefixes = (
            list(exempt_prefixes) if exempt_prefixes is not None else list(settings.overlay_exempt_prefixes)
        )
        self._on_change = on_change
        self._clock = clock or shop_now
        self._status: ShopStatus | None = None
        self._last_evaluated: ShopStatus | None = None
        self.last_refreshed_at: datetime | None = None
        self._task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def cached(self) -> ShopStatus | None:
        return self._status

    async def get_status(self) -> ShopStatus:
        """Cached status, evaluating on first use."""
        if self._status is None:
            return await self.refresh()
        return self._status

    async def refresh(self) -> ShopStatus:
        """Re-evaluate from the settings store and replace the cached value."""
        now = self._clock()
        evaluated = True
        try:
            async with self._session_factory() as session:
                status = await evaluate_from_store(SettingsStore(session), now)
        except ConfigurationUnavailable as e:
            logger.warning("Shop settings unavailable, treating shop as open: %s", e)
            status = fallback_open_status(now)
            evaluated = False

        self._status = status
        self.last_refreshed_at = now
        if not evaluated:
            return status

        # Flips are judged against the last evaluated status, never a fallback
        previous = self._last_evaluated
        self._last_evaluated = status
        if self._on_change is not None and previous is not None and previous.is_open != status.is_open:
            logger.info("Shop status changed: %s -> %s", previous.status.value, status.status.value)
            self._spawn(self._on_change(status))

        return status

    def should_show_overlay(self, status: ShopStatus | None, route: str | None, is_admin: bool) -> bool:
        return should_show_overlay(status, route, is_admin, self.exempt_prefixes)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        """Run a fire-and-forget task; failures are logged only."""
        task = asyncio.create_task(self._run_detached(coro))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    async def _run_detached(coro: Awaitable[Any]) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Status change handler failed")

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_seconds)
            try:
                await self.refresh()
            except Exception:
                logger.exception("Periodic shop status refresh failed")

    def start(self) -> None:
        """Start the periodic refresh task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._refresh_loop())
            logger.info("Shop status refresh every %d seconds", self.refresh_seconds)

    async def stop(self) -> None:
        """Stop the periodic refresh and any pending change handlers."""
        tasks = list(self._background)
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_for_background(self) -> None:
        """Wait for pending change handlers (used on shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
