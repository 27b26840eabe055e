"""Tests for the notification scheduler.

Uses the in-memory FakeRegistrar from conftest so no Home Assistant timers
are armed.
"""

# pylint: disable=redefined-outer-name

import asyncio
from datetime import timedelta

import pytest
from homeassistant.core import HomeAssistant, ServiceCall

from custom_components.pillaflow import const
from custom_components.pillaflow.coordinator import PillaflowDataCoordinator
from custom_components.pillaflow.engines.schedule_engine import (
    TRIGGER_ONCE,
    NotificationIntent,
    TriggerSpec,
)
from custom_components.pillaflow.managers.notification_manager import (
    HassTriggerRegistrar,
    async_send_notification,
    split_notify_service,
)
from custom_components.pillaflow.utils.dt_utils import dt_now_local

from tests.conftest import FakeRegistrar


@pytest.fixture
def scheduled_coordinator(
    coordinator: PillaflowDataCoordinator,
) -> PillaflowDataCoordinator:
    """Coordinator with one item in every notification category."""
    coordinator.habits = [
        {const.DATA_ID: "h1", const.DATA_TITLE: "Read", const.DATA_HABIT_REPEAT: "Daily"}
    ]
    coordinator.routines = [
        {
            const.DATA_ID: "r1",
            const.DATA_NAME: "Morning",
            const.DATA_HABIT_REPEAT: "Weekly",
            const.DATA_HABIT_DAYS: ["Mon", "Wed"],
        }
    ]
    coordinator.tasks = [
        {
            const.DATA_ID: "t1",
            const.DATA_TITLE: "Dentist",
            const.DATA_DATE: "2099-01-10",
            const.DATA_TIME: "14:00",
        }
    ]
    coordinator.reminders = [
        {
            const.DATA_ID: "m1",
            const.DATA_TITLE: "Call mom",
            const.DATA_DATE: "2099-01-11",
            const.DATA_TIME: "09:00",
        }
    ]
    return coordinator


def registered_tags(registrar: FakeRegistrar) -> list[str]:
    return sorted(intent.tag for intent in registrar.registered)


ALL_TAGS = [
    "habit:h1:daily",
    "reminder:m1:once",
    "routine:r1:weekly_mon",
    "routine:r1:weekly_wed",
    "task:t1:day_before",
    "task:t1:due",
]


class TestRescheduleCycle:
    """Cancel-all then register-all."""

    async def test_active_cycle_registers_every_category(
        self,
        scheduled_coordinator: PillaflowDataCoordinator,
        fake_registrar: FakeRegistrar,
    ) -> None:
        manager = scheduled_coordinator.notification_manager

        result = await manager.async_reschedule_all()

        assert result == {
            "state": const.SCHEDULER_STATE_ACTIVE,
            "registered": len(ALL_TAGS),
            "failed": 0,
        }
        assert registered_tags(fake_registrar) == ALL_TAGS
        assert manager.state == const.SCHEDULER_STATE_ACTIVE
        assert manager.last_result == result

    async def test_cycles_do_not_accumulate(
        self,
        scheduled_coordinator: PillaflowDataCoordinator,
        fake_registrar: FakeRegistrar,
    ) -> None:
        manager = scheduled_coordinator.notification_manager
        await manager.async_reschedule_all()
        await manager.async_reschedule_all()

        assert fake_registrar.cancel_calls == 2
        assert registered_tags(fake_registrar) == ALL_TAGS

    @pytest.mark.parametrize("reason", ["disabled", "no_user", "no_permission"])
    async def test_inactive_cycle_cancels_only(
        self,
        scheduled_coordinator: PillaflowDataCoordinator,
        fake_registrar: FakeRegistrar,
        reason: str,
    ) -> None:
        manager = scheduled_coordinator.notification_manager
        await manager.async_reschedule_all()
        assert fake_registrar.registered

        if reason == "disabled":
            scheduled_coordinator.settings = scheduled_coordinator.settings.with_changes(
                notifications_enabled=False
            )
        elif reason == "no_user":
            scheduled_coordinator.user_id = None
        else:
            fake_registrar.permission = False

        result = await manager.async_reschedule_all()

        assert result == {"state": const.SCHEDULER_STATE_INACTIVE, "registered": 0, "failed": 0}
        assert fake_registrar.registered == []
        assert manager.state == const.SCHEDULER_STATE_INACTIVE

    async def test_failed_registrations_are_counted(
        self,
        scheduled_coordinator: PillaflowDataCoordinator,
        fake_registrar: FakeRegistrar,
    ) -> None:
        fake_registrar.fail_tags = {"task:t1:due", "habit:h1:daily"}

        result = await scheduled_coordinator.notification_manager.async_reschedule_all()

        assert result["registered"] == len(ALL_TAGS) - 2
        assert result["failed"] == 2
        assert "task:t1:due" not in registered_tags(fake_registrar)

    @pytest.mark.parametrize(
        ("setting", "category"),
        [
            ("task_reminders_enabled", "task"),
            ("habit_reminders_enabled", "habit"),
            ("routine_reminders_enabled", "routine"),
            ("reminder_notifications_enabled", "reminder"),
        ],
    )
    async def test_category_toggles(
        self,
        scheduled_coordinator: PillaflowDataCoordinator,
        setting: str,
        category: str,
    ) -> None:
        scheduled_coordinator.settings = scheduled_coordinator.settings.with_changes(
            **{setting: False}
        )
        intents = scheduled_coordinator.notification_manager.build_intents(dt_now_local())

        categories = {intent.category for intent in intents}
        assert category not in categories
        assert len(categories) == 3


async def test_mid_cycle_requests_coalesce(
    scheduled_coordinator: PillaflowDataCoordinator,
) -> None:
    """Requests during a cycle fold into exactly one follow-up cycle."""
    gate = asyncio.Event()

    class GatedRegistrar(FakeRegistrar):
        async def async_cancel_all(self) -> int:
            count = await super().async_cancel_all()
            if self.cancel_calls == 1:
                await gate.wait()
            return count

    registrar = GatedRegistrar()
    manager = scheduled_coordinator.notification_manager
    manager.registrar = registrar
    previous = manager.last_result

    first = asyncio.ensure_future(manager.async_reschedule_all())
    while registrar.cancel_calls == 0:
        await asyncio.sleep(0)

    assert await manager.async_reschedule_all() == previous
    assert await manager.async_reschedule_all() == previous

    gate.set()
    result = await first

    assert registrar.cancel_calls == 2
    assert result["registered"] == len(ALL_TAGS)
    assert registered_tags(registrar) == ALL_TAGS


async def test_settings_change_triggers_reschedule(
    hass: HomeAssistant,
    scheduled_coordinator: PillaflowDataCoordinator,
    fake_registrar: FakeRegistrar,
) -> None:
    """Updating settings announces the change and rebuilds triggers."""
    await scheduled_coordinator.async_update_settings(habit_reminders_enabled=False)
    await hass.async_block_till_done()

    assert fake_registrar.cancel_calls >= 1
    assert "habit:h1:daily" not in registered_tags(fake_registrar)
    assert (
        await scheduled_coordinator.store.async_get(const.CACHE_KEY_SETTINGS)
    )["habit_reminders_enabled"] is False


class TestNotifyHelpers:
    """Notify service plumbing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("notify.mobile_app_phone", ("notify", "mobile_app_phone")),
            ("mobile_app_phone", ("notify", "mobile_app_phone")),
            ("persistent_notification.create", ("persistent_notification", "create")),
        ],
    )
    def test_split_notify_service(self, value, expected) -> None:
        assert split_notify_service(value) == expected

    async def test_send_notification_calls_service(self, hass: HomeAssistant) -> None:
        calls: list[ServiceCall] = []

        async def _record(call: ServiceCall) -> None:
            calls.append(call)

        hass.services.async_register("notify", "phone", _record)
        intent = NotificationIntent(
            title="Tomorrow: Dentist",
            body="Due soon",
            trigger=TriggerSpec(TRIGGER_ONCE, at=dt_now_local()),
            tag="task:t1:day_before",
            category="task",
            item_id="t1",
        )

        await async_send_notification(hass, "notify.phone", intent)

        assert len(calls) == 1
        assert calls[0].data[const.NOTIFY_TITLE] == "Tomorrow: Dentist"
        assert calls[0].data[const.NOTIFY_DATA][const.NOTIFY_TAG] == "task:t1:day_before"


class TestHassTriggerRegistrar:
    """Point-in-time listener registration."""

    async def test_permission_follows_notify_service(self, hass: HomeAssistant) -> None:
        registrar = HassTriggerRegistrar(hass, "notify.phone")
        assert not await registrar.async_request_permission()

        hass.services.async_register("notify", "phone", lambda call: None)
        assert await registrar.async_request_permission()

    async def test_register_and_cancel(self, hass: HomeAssistant) -> None:
        registrar = HassTriggerRegistrar(hass, "notify.phone")
        future = NotificationIntent(
            title="t",
            body="b",
            trigger=TriggerSpec(TRIGGER_ONCE, at=dt_now_local() + timedelta(days=1)),
            tag="reminder:m1:once",
            category="reminder",
            item_id="m1",
        )
        past = NotificationIntent(
            title="t",
            body="b",
            trigger=TriggerSpec(TRIGGER_ONCE, at=dt_now_local() - timedelta(days=1)),
            tag="reminder:m2:once",
            category="reminder",
            item_id="m2",
        )

        assert await registrar.async_register(future) == "reminder:m1:once"
        assert await registrar.async_register(past) is None
        assert registrar.armed_tags == ["reminder:m1:once"]

        assert await registrar.async_cancel_all() == 1
        assert registrar.armed_tags == []
