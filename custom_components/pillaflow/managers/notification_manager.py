"""Notification Manager - cancel-all / rebuild-all trigger scheduling.

The scheduler is a small state machine:

    {notifications enabled, permission granted, session} -> active | inactive

Every cycle starts by cancelling every trigger this instance registered.
An inactive cycle stops there; an active cycle recomputes the intents of each
enabled category through RecurrenceResolver and registers them one by one.
Nothing is patched incrementally.

Cycles are serialized: a request that arrives while one is running is folded
into exactly one follow-up cycle.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from homeassistant.core import callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.event import async_track_point_in_time

from .. import const
from ..engines.schedule_engine import NotificationIntent, RecurrenceResolver
from ..utils.dt_utils import dt_now_local
from .base_manager import BaseManager

if TYPE_CHECKING:
    from collections.abc import Callable

    from homeassistant.core import HomeAssistant

    from ..coordinator import PillaflowDataCoordinator
    from ..type_defs import RescheduleResult


# =============================================================================
# Module-level helper for testability
# =============================================================================


def split_notify_service(notify_service: str) -> tuple[str, str]:
    """Split "notify.mobile_app_x" into its domain and service parts.

    A bare service name is assumed to live in the notify domain.
    """
    if "." in notify_service:
        domain, service = notify_service.split(".", 1)
        return domain, service
    return const.NOTIFY_DOMAIN, notify_service


async def async_send_notification(
    hass: HomeAssistant,
    notify_service: str,
    intent: NotificationIntent,
) -> None:
    """Deliver one intent through a notify service call."""
    domain, service = split_notify_service(notify_service)
    payload: dict[str, Any] = {
        const.NOTIFY_TITLE: intent.title,
        const.NOTIFY_MESSAGE: intent.body,
        const.NOTIFY_DATA: {
            "category": intent.category,
            "id": intent.item_id,
            const.NOTIFY_TAG: intent.tag,
        },
    }
    const.LOGGER.debug(
        "async_send_notification: %s.%s - title='%s', tag='%s'",
        domain,
        service,
        intent.title,
        intent.tag,
    )
    await hass.services.async_call(domain, service, payload, blocking=True)


# =============================================================================
# Trigger registration
# =============================================================================


class TriggerRegistrar(Protocol):
    """Registration collaborator used by the scheduler."""

    async def async_request_permission(self) -> bool:
        """Return True when notifications may be registered."""

    async def async_register(self, intent: NotificationIntent) -> Any:
        """Register an intent and return a handle (None when nothing was armed)."""

    async def async_cancel_all(self) -> int:
        """Cancel everything this registrar armed; return how many."""


class HassTriggerRegistrar:
    """Arms Home Assistant point-in-time listeners for notification intents.

    Permission means "the configured notify service exists". Repeating
    triggers are re-armed for their next fire time after each delivery.
    """

    def __init__(self, hass: HomeAssistant, notify_service: str) -> None:
        """Initialize the registrar."""
        self.hass = hass
        self.notify_service = notify_service
        self._unsubs: dict[str, Callable[[], None]] = {}

    @property
    def armed_tags(self) -> list[str]:
        """Return the tags that currently have a pending trigger."""
        return list(self._unsubs)

    async def async_request_permission(self) -> bool:
        domain, service = split_notify_service(self.notify_service)
        if self.hass.services.has_service(domain, service):
            return True
        const.LOGGER.warning(
            "WARNING: Notification service '%s.%s' not available - "
            "notifications stay inactive",
            domain,
            service,
        )
        return False

    async def async_register(self, intent: NotificationIntent) -> str | None:
        return self._arm(intent, dt_now_local())

    def _arm(self, intent: NotificationIntent, now: datetime) -> str | None:
        fire_at = RecurrenceResolver.next_fire_time(intent.trigger, now)
        if fire_at is None:
            self._unsubs.pop(intent.tag, None)
            return None

        async def _async_fire(fired_at: datetime) -> None:
            self._unsubs.pop(intent.tag, None)
            if intent.trigger.repeats:
                self._arm(intent, fired_at)
            await self._async_deliver(intent)

        previous = self._unsubs.pop(intent.tag, None)
        if previous is not None:
            previous()
        self._unsubs[intent.tag] = async_track_point_in_time(
            self.hass, _async_fire, fire_at
        )
        const.LOGGER.debug("DEBUG: Armed '%s' for %s", intent.tag, fire_at)
        return intent.tag

    async def _async_deliver(self, intent: NotificationIntent) -> None:
        try:
            await async_send_notification(self.hass, self.notify_service, intent)
        except Exception as err:  # noqa: BLE001
            # Runs from a time listener; nothing upstream can handle it.
            const.LOGGER.error(
                "ERROR: Delivering notification '%s' failed: %s", intent.tag, err
            )

    async def async_cancel_all(self) -> int:
        count = len(self._unsubs)
        for unsub in self._unsubs.values():
            unsub()
        self._unsubs.clear()
        return count


# =============================================================================
# Scheduler
# =============================================================================


class NotificationManager(BaseManager):
    """Rebuilds every notification trigger whenever inputs change."""

    def __init__(
        self,
        hass: HomeAssistant,
        coordinator: PillaflowDataCoordinator,
        registrar: TriggerRegistrar | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            hass: Home Assistant instance
            coordinator: Parent coordinator (settings, session and item lists)
            registrar: Registration collaborator; defaults to point-in-time
                listeners on the configured notify service
        """
        super().__init__(hass, coordinator)
        self.registrar: TriggerRegistrar = registrar or HassTriggerRegistrar(
            hass, coordinator.notify_service
        )
        self.state = const.SCHEDULER_STATE_INACTIVE
        self._cycle_lock = asyncio.Lock()
        self._pending = False
        self._last_result: RescheduleResult = {
            "state": const.SCHEDULER_STATE_INACTIVE,
            "registered": 0,
            "failed": 0,
        }

    async def async_setup(self) -> None:
        """Reschedule whenever habits, routines or settings change."""
        self.listen(const.SIGNAL_SUFFIX_HABITS_CHANGED, self._on_inputs_changed)
        self.listen(const.SIGNAL_SUFFIX_ROUTINES_CHANGED, self._on_inputs_changed)
        self.listen(const.SIGNAL_SUFFIX_SETTINGS_CHANGED, self._on_inputs_changed)
        self.coordinator.config_entry.async_on_unload(self._cancel_on_unload)

    @callback
    def _on_inputs_changed(self, payload: dict[str, Any]) -> None:
        self.hass.async_create_task(self.async_reschedule_all())

    @callback
    def _cancel_on_unload(self) -> None:
        self.hass.async_create_task(self.registrar.async_cancel_all())

    @property
    def last_result(self) -> RescheduleResult:
        """Return the result of the most recent completed cycle."""
        return self._last_result

    async def async_reschedule_all(self) -> RescheduleResult:
        """Run a cancel-all / recompute / register cycle.

        When a cycle is already in flight the request is coalesced into one
        follow-up cycle and the last completed result is returned.
        """
        if self._cycle_lock.locked():
            self._pending = True
            const.LOGGER.debug("DEBUG: Reschedule requested mid-cycle, coalescing")
            return self._last_result

        async with self._cycle_lock:
            result = await self._async_run_cycle()
            while self._pending:
                self._pending = False
                result = await self._async_run_cycle()
            self._last_result = result
        return result

    def _inactive_reason(self) -> str | None:
        if not self.coordinator.settings.notifications_enabled:
            return "notifications disabled"
        if not self.coordinator.user_id:
            return "no session"
        return None

    async def _async_run_cycle(self) -> RescheduleResult:
        cancelled = await self.registrar.async_cancel_all()
        const.LOGGER.debug("DEBUG: Cancelled %s scheduled notifications", cancelled)

        reason = self._inactive_reason()
        if reason is None and not await self.registrar.async_request_permission():
            reason = "permission denied"
        if reason is not None:
            if self.state != const.SCHEDULER_STATE_INACTIVE:
                const.LOGGER.info("INFO: Notifications inactive (%s)", reason)
            self.state = const.SCHEDULER_STATE_INACTIVE
            return {"state": self.state, "registered": 0, "failed": 0}

        self.state = const.SCHEDULER_STATE_ACTIVE
        registered = 0
        failed = 0
        for intent in self.build_intents(dt_now_local()):
            try:
                handle = await self.registrar.async_register(intent)
            except (HomeAssistantError, ValueError, TypeError) as err:
                failed += 1
                const.LOGGER.warning(
                    "WARNING: Registering notification '%s' failed: %s",
                    intent.tag,
                    err,
                )
                continue
            if handle is not None:
                registered += 1

        const.LOGGER.debug(
            "DEBUG: Notification cycle done: %s registered, %s failed",
            registered,
            failed,
        )
        return {"state": self.state, "registered": registered, "failed": failed}

    def build_intents(self, now: datetime) -> list[NotificationIntent]:
        """Return the intents of every enabled category."""
        settings = self.coordinator.settings
        intents: list[NotificationIntent] = []
        if settings.task_reminders_enabled:
            intents.extend(
                RecurrenceResolver.task_intents(self.coordinator.tasks, now)
            )
        if settings.habit_reminders_enabled:
            intents.extend(RecurrenceResolver.habit_intents(self.coordinator.habits))
        if settings.routine_reminders_enabled:
            intents.extend(
                RecurrenceResolver.routine_intents(self.coordinator.routines)
            )
        if settings.reminder_notifications_enabled:
            intents.extend(
                RecurrenceResolver.reminder_intents(self.coordinator.reminders, now)
            )
        return intents
