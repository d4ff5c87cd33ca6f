"""Tests for shop status evaluation and the status service."""

from datetime import datetime, time, timedelta

import pytest
from sqlalchemy import delete

from app.exceptions import ConfigurationUnavailable
from app.models import OperatingHours, ShopNotification
from app.services.settings_store import SettingsStore
from app.services.shop_status import (
    MSG_CLOSED,
    MSG_NO_HOURS,
    MSG_OPEN,
    ShopStatusService,
    StatusKind,
    compute_next_open,
    day_of_week,
    evaluate_status,
    select_active_notification,
    should_show_overlay,
)

from conftest import FixedClock

MONDAY = datetime(2026, 10, 19)  # day_of_week == 1


def week(open_time=time(8, 0), close_time=time(22, 0), closed_days=()):
    return [
        OperatingHours(
            day_of_week=day,
            open_time=open_time,
            close_time=close_time,
            is_open=day not in closed_days,
        )
        for day in range(7)
    ]


def notification(start, end, show_overlay=True, created_at=None, title="Nghỉ lễ", is_active=True):
    n = ShopNotification(
        title=title,
        message="Cửa hàng tạm nghỉ hôm nay",
        start_date=start,
        end_date=end,
        show_overlay=show_overlay,
        is_active=is_active,
    )
    n.created_at = created_at
    return n


class TestDayOfWeek:

    def test_sunday_is_zero(self):
        assert day_of_week(datetime(2026, 10, 18)) == 0
        assert day_of_week(MONDAY) == 1
        assert day_of_week(datetime(2026, 10, 24)) == 6


class TestEvaluateStatus:

    def test_open_within_hours(self):
        status = evaluate_status(MONDAY.replace(hour=12), week())

        assert status.is_open is True
        assert status.status == StatusKind.OPEN
        assert status.message.startswith(MSG_OPEN)
        assert "22:00" in status.message
        assert status.next_open_time is None

    def test_open_time_is_inclusive_close_time_exclusive(self):
        assert evaluate_status(MONDAY.replace(hour=8), week()).is_open is True
        assert evaluate_status(MONDAY.replace(hour=22), week()).is_open is False

    def test_monday_night_opens_tuesday_morning(self):
        status = evaluate_status(MONDAY.replace(hour=23), week())

        assert status.is_open is False
        assert status.status == StatusKind.CLOSED
        assert status.message == MSG_CLOSED
        assert status.next_open_time == datetime(2026, 10, 20, 8, 0)
        assert status.next_open_label == "Thứ ba lúc 08:00"

    def test_before_opening_opens_today(self):
        status = evaluate_status(MONDAY.replace(hour=6, minute=30), week())

        assert status.is_open is False
        assert status.next_open_time == datetime(2026, 10, 19, 8, 0)
        assert status.next_open_label == "Hôm nay lúc 08:00"

    def test_closed_day(self):
        status = evaluate_status(MONDAY.replace(hour=12), week(closed_days={1}))

        assert status.is_open is False
        assert status.message == "Cửa hàng nghỉ vào Thứ hai"
        assert status.operating_hours_today["is_open"] is False

    def test_next_open_skips_closed_days(self):
        # Closed Tuesday and Wednesday, Monday evening -> Thursday
        status = evaluate_status(MONDAY.replace(hour=23), week(closed_days={2, 3}))

        assert status.next_open_time == datetime(2026, 10, 22, 8, 0)
        assert status.next_open_label == "Thứ năm lúc 08:00"

    def test_next_open_found_when_tomorrow_is_closed(self):
        # Only a single-day lookahead would miss this and report nothing
        status = evaluate_status(MONDAY.replace(hour=23), week(closed_days={2}))

        assert status.next_open_time is not None
        assert status.next_open_time.date() == datetime(2026, 10, 21).date()

    def test_no_open_day_has_no_next_open(self):
        status = evaluate_status(MONDAY.replace(hour=12), week(closed_days=set(range(7))))

        assert status.is_open is False
        assert status.next_open_time is None
        assert "nextOpenTime" not in status.to_dict()

    def test_missing_entry_for_today(self):
        hours = [h for h in week() if h.day_of_week != 1]
        status = evaluate_status(MONDAY.replace(hour=12), hours)

        assert status.is_open is False
        assert status.message == MSG_NO_HOURS

    def test_overlay_notification_overrides_open_hours(self):
        now = MONDAY.replace(hour=12)
        n = notification(MONDAY.replace(hour=9), MONDAY.replace(hour=17))

        status = evaluate_status(now, week(), [n])

        assert status.is_open is False
        assert status.status == StatusKind.SPECIAL_NOTIFICATION
        assert status.title == "Nghỉ lễ"
        assert status.message == "Cửa hàng tạm nghỉ hôm nay"

    def test_notification_outside_window_is_ignored(self):
        n = notification(MONDAY.replace(hour=9), MONDAY.replace(hour=11))

        status = evaluate_status(MONDAY.replace(hour=12), week(), [n])

        assert status.is_open is True

    def test_non_overlay_notification_becomes_announcement(self):
        n = notification(MONDAY.replace(hour=9), MONDAY.replace(hour=17), show_overlay=False)

        status = evaluate_status(MONDAY.replace(hour=12), week(), [n])

        assert status.is_open is True
        assert status.announcement == {"title": "Nghỉ lễ", "message": "Cửa hàng tạm nghỉ hôm nay"}
        assert status.to_dict()["announcement"]["title"] == "Nghỉ lễ"

    def test_force_closed_beats_everything(self):
        status = evaluate_status(MONDAY.replace(hour=12), week(), force_status="closed", force_message="Bảo trì")

        assert status.is_open is False
        assert status.status == StatusKind.CLOSED
        assert status.message == "Bảo trì"
        assert status.force_status is True

    def test_force_open_outside_hours(self):
        status = evaluate_status(MONDAY.replace(hour=23), week(), force_status="open")

        assert status.is_open is True
        assert status.message == MSG_OPEN
        assert status.to_dict()["forceStatus"] is True

    def test_deterministic(self):
        now = MONDAY.replace(hour=23)
        hours = week(closed_days={2})
        assert evaluate_status(now, hours) == evaluate_status(now, hours)

    def test_to_dict_uses_camel_case(self):
        data = evaluate_status(MONDAY.replace(hour=23), week()).to_dict()

        assert data["isOpen"] is False
        assert data["status"] == "closed"
        assert data["currentTime"] == "2026-10-19T23:00:00"
        assert data["nextOpenTime"] == "2026-10-20T08:00:00"
        assert data["operatingHours"]["today"]["open_time"] == "08:00:00"


class TestSelectActiveNotification:

    def test_newest_created_wins(self):
        now = MONDAY.replace(hour=12)
        older = notification(MONDAY.replace(hour=9), MONDAY.replace(hour=17), created_at=MONDAY, title="old")
        newer = notification(
            MONDAY.replace(hour=10), MONDAY.replace(hour=16),
            created_at=MONDAY + timedelta(minutes=5), title="new",
        )

        assert select_active_notification([older, newer], now).title == "new"
        assert select_active_notification([newer, older], now).title == "new"

    def test_inactive_is_skipped(self):
        now = MONDAY.replace(hour=12)
        n = notification(MONDAY.replace(hour=9), MONDAY.replace(hour=17), is_active=False)

        assert select_active_notification([n], now) is None


class TestComputeNextOpen:

    def test_today_after_close_moves_to_tomorrow(self):
        hours = {h.day_of_week: h for h in week()}
        assert compute_next_open(MONDAY.replace(hour=22, minute=30), hours) == datetime(2026, 10, 20, 8, 0)

    def test_wraps_across_the_week(self):
        # Only Sunday open; from Monday the next opening is six days out
        hours = {h.day_of_week: h for h in week(closed_days={1, 2, 3, 4, 5, 6})}
        assert compute_next_open(MONDAY.replace(hour=12), hours) == datetime(2026, 10, 25, 8, 0)


class TestShouldShowOverlay:

    @pytest.fixture
    def closed(self):
        return evaluate_status(MONDAY.replace(hour=23), week())

    @pytest.fixture
    def open_status(self):
        return evaluate_status(MONDAY.replace(hour=12), week())

    @pytest.mark.parametrize("route", ["/", "/menu", "/admin", "/auth/login"])
    @pytest.mark.parametrize("is_admin", [True, False])
    def test_never_while_open(self, open_status, route, is_admin):
        assert should_show_overlay(open_status, route, is_admin) is False

    def test_customer_on_shop_route(self, closed):
        assert should_show_overlay(closed, "/menu", False) is True
        assert should_show_overlay(closed, "/", False) is True

    def test_admin_is_exempt(self, closed):
        assert should_show_overlay(closed, "/menu", True) is False

    @pytest.mark.parametrize("route", ["/admin", "/admin/orders", "/auth/login", "/login", "/register"])
    def test_exempt_routes(self, closed, route):
        assert should_show_overlay(closed, route, False) is False

    def test_prefix_must_be_a_path_segment(self, closed):
        assert should_show_overlay(closed, "/administrator", False) is True

    def test_special_notification_blocks(self):
        n = notification(MONDAY.replace(hour=9), MONDAY.replace(hour=17))
        status = evaluate_status(MONDAY.replace(hour=12), week(), [n])

        assert should_show_overlay(status, "/menu", False) is True


class TestShopStatusService:

    async def test_evaluates_from_store(self, session_factory):
        service = ShopStatusService(session_factory, clock=FixedClock(MONDAY.replace(hour=12)))

        status = await service.get_status()

        assert status.is_open is True
        assert service.cached is status
        assert service.last_refreshed_at == MONDAY.replace(hour=12)

    async def test_get_status_uses_cache(self, session_factory, db_session):
        service = ShopStatusService(session_factory, clock=FixedClock(MONDAY.replace(hour=12)))
        first = await service.get_status()

        await SettingsStore(db_session).set_force_status("closed", "")
        await db_session.commit()

        assert await service.get_status() is first
        refreshed = await service.refresh()
        assert refreshed.is_open is False

    async def test_fails_open_when_store_unavailable(self, session_factory, monkeypatch):
        async def broken(self):
            raise ConfigurationUnavailable("database down")

        monkeypatch.setattr(SettingsStore, "get_force_status", broken)
        service = ShopStatusService(session_factory, clock=FixedClock(MONDAY.replace(hour=23)))

        status = await service.refresh()

        assert status.is_open is True
        assert status.status == StatusKind.OPEN

    async def test_missing_hours_rows(self, session_factory, db_session):
        await db_session.execute(delete(OperatingHours))
        await db_session.commit()
        service = ShopStatusService(session_factory, clock=FixedClock(MONDAY.replace(hour=12)))

        status = await service.refresh()

        assert status.is_open is False
        assert status.message == MSG_NO_HOURS

    async def test_change_handler_runs_on_flip(self, session_factory):
        clock = FixedClock(MONDAY.replace(hour=12))
        seen = []

        async def on_change(status):
            seen.append(status.is_open)

        service = ShopStatusService(session_factory, clock=clock, on_change=on_change)
        await service.refresh()
        await service.refresh()
        clock.now = MONDAY.replace(hour=23)
        await service.refresh()
        await service.wait_for_background()

        assert seen == [False]

    async def test_change_handler_failure_is_contained(self, session_factory):
        clock = FixedClock(MONDAY.replace(hour=12))

        async def on_change(status):
            raise RuntimeError("push service down")

        service = ShopStatusService(session_factory, clock=clock, on_change=on_change)
        await service.refresh()
        clock.now = MONDAY.replace(hour=23)

        status = await service.refresh()
        await service.wait_for_background()

        assert status.is_open is False

    async def test_no_change_handler_on_fallback(self, session_factory, monkeypatch):
        clock = FixedClock(MONDAY.replace(hour=23))
        seen = []

        async def on_change(status):
            seen.append(status)

        service = ShopStatusService(session_factory, clock=clock, on_change=on_change)
        await service.refresh()

        async def broken(self):
            raise ConfigurationUnavailable("database down")

        monkeypatch.setattr(SettingsStore, "get_force_status", broken)
        await service.refresh()
        await service.wait_for_background()

        assert seen == []

    async def test_fallback_does_not_trigger_flip_on_recovery(self, session_factory, monkeypatch):
        clock = FixedClock(MONDAY.replace(hour=23))
        seen = []

        async def on_change(status):
            seen.append(status.status.value)

        service = ShopStatusService(session_factory, clock=clock, on_change=on_change)
        assert (await service.refresh()).is_open is False

        async def broken(self):
            raise ConfigurationUnavailable("database down")

        monkeypatch.setattr(SettingsStore, "get_force_status", broken)
        assert (await service.refresh()).is_open is True
        monkeypatch.undo()

        assert (await service.refresh()).is_open is False
        await service.wait_for_background()

        assert seen == []

    async def test_store_picks_newest_live_notification(self, session_factory, db_session):
        store = SettingsStore(db_session)
        await store.create_notification(
            title="old", message="a", start_date=MONDAY.replace(hour=8), end_date=MONDAY.replace(hour=20),
        )
        await store.create_notification(
            title="new", message="b", start_date=MONDAY.replace(hour=10), end_date=MONDAY.replace(hour=20),
        )
        await store.create_notification(
            title="later", message="c", start_date=MONDAY.replace(hour=18), end_date=MONDAY.replace(hour=20),
        )
        await db_session.commit()

        active = await store.get_active_notification(MONDAY.replace(hour=12))

        assert active.title == "new"
        assert await store.get_active_notification(MONDAY.replace(hour=21)) is None

    async def test_start_and_stop(self, session_factory):
        service = ShopStatusService(session_factory, refresh_seconds=3600, clock=FixedClock())
        service.start()
        await service.stop()
        assert service._task is None
