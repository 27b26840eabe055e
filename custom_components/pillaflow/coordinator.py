# File: coordinator.py
"""Coordinator for the Pillaflow integration.

Loads the cached record sets at startup, pulls every remote collection on
each refresh (falling back per collection to the cached copy), rebuilds the
derived state and finally rebuilds all notification triggers.

The coordinator holds the shared record lists; managers mutate them and write
them through to the cache.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed
from homeassistant.util import dt as dt_util

from . import const
from .data_builders import (
    UserSettings,
    map_budget_assignments,
    map_budget_group_row,
    map_habit_row,
    map_reminder_row,
    map_routine_row,
    map_task_row,
    map_transaction_row,
)
from .engines.streak_engine import StreakEngine
from .engines.summary_engine import SummaryEngine
from .engines.task_engine import TaskEngine
from .managers import HabitManager, HealthManager, NotificationManager, RoutineManager
from .remote import PillaflowRemoteClient, PillaflowRemoteError
from .store import PillaflowStore
from .type_defs import (
    BudgetAssignments,
    BudgetGroupData,
    HabitData,
    HealthMap,
    ReminderData,
    RoutineData,
    TaskData,
    TransactionData,
)
from .utils.dt_utils import dt_day_key, dt_now_local, dt_today_key, set_default_timezone


class PillaflowDataCoordinator(DataUpdateCoordinator):
    """Coordinator for Pillaflow integration."""

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: ConfigEntry,
        store: PillaflowStore,
        remote: PillaflowRemoteClient | None = None,
    ) -> None:
        """Initialize the PillaflowDataCoordinator."""
        update_interval_minutes = config_entry.options.get(
            const.CONF_UPDATE_INTERVAL, const.DEFAULT_UPDATE_INTERVAL
        )

        super().__init__(
            hass,
            const.LOGGER,
            config_entry=config_entry,
            name=f"{const.DOMAIN}{const.COORDINATOR_SUFFIX}",
            update_interval=timedelta(minutes=update_interval_minutes),
        )
        self.store = store
        self.remote = remote

        self.user_id: str | None = config_entry.data.get(const.CONF_USER_ID) or None
        self.is_premium = bool(config_entry.data.get(const.CONF_IS_PREMIUM, False))
        self.notify_service: str = config_entry.data.get(
            const.CONF_NOTIFY_SERVICE, const.DEFAULT_NOTIFY_SERVICE
        )
        self.settings = UserSettings()

        self.habits: list[HabitData] = []
        self.tasks: list[TaskData] = []
        self.reminders: list[ReminderData] = []
        self.routines: list[RoutineData] = []
        self.transactions: list[TransactionData] = []
        self.budget_groups: list[BudgetGroupData] = []
        self.budget_assignments: BudgetAssignments = {}
        self.health_data: HealthMap = {}

        self.health_manager = HealthManager(hass, self)
        self.habit_manager = HabitManager(hass, self)
        self.routine_manager = RoutineManager(hass, self)
        self.notification_manager = NotificationManager(hass, self)

    # -------------------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------------------

    async def async_setup(self) -> None:
        """Load cached state and wire up the managers.

        Called once from async_setup_entry before the first refresh.
        """
        time_zone = dt_util.get_time_zone(self.hass.config.time_zone)
        if time_zone is not None:
            set_default_timezone(time_zone)
        await self.store.async_migrate_legacy_keys()

        store = self.store
        self.habits = await store.async_get(const.CACHE_KEY_HABITS, [])
        self.tasks = await store.async_get(const.CACHE_KEY_TASKS, [])
        self.reminders = await store.async_get(const.CACHE_KEY_REMINDERS, [])
        self.routines = await store.async_get(const.CACHE_KEY_ROUTINES, [])
        self.transactions = await store.async_get(const.CACHE_KEY_FINANCES, [])
        self.budget_groups = await store.async_get(const.CACHE_KEY_BUDGETS, [])
        self.budget_assignments = await store.async_get(
            const.CACHE_KEY_BUDGET_ASSIGNMENTS, {}
        )
        self.health_data = await store.async_get(const.CACHE_KEY_HEALTH, {})
        self.settings = UserSettings.from_dict(
            await store.async_get(const.CACHE_KEY_SETTINGS)
        )

        for manager in (
            self.health_manager,
            self.habit_manager,
            self.routine_manager,
            self.notification_manager,
        ):
            await manager.async_setup()

        const.LOGGER.debug(
            "DEBUG: Loaded cache: %s habits, %s tasks, %s routines, %s health days",
            len(self.habits),
            len(self.tasks),
            len(self.routines),
            len(self.health_data),
        )

    def require_session(self) -> None:
        """Raise unless a user session is configured."""
        if not self.user_id:
            raise ServiceValidationError(
                translation_domain=const.DOMAIN,
                translation_key=const.TRANS_KEY_ERROR_NOT_AUTHENTICATED,
            )

    # -------------------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------------------

    async def _async_update_data(self) -> dict[str, Any]:
        """Sync remote data, apply the inactivity rule, rebuild triggers."""
        try:
            await self._async_sync_remote()
            await self.habit_manager.async_evaluate_inactivity()
            await self.notification_manager.async_reschedule_all()
            return self.build_snapshot()
        except Exception as err:  # pylint: disable=broad-exception-caught
            raise UpdateFailed(f"Error updating Pillaflow data: {err}") from err

    async def _async_sync_remote(self) -> None:
        if self.remote is None or not self.user_id:
            return

        fetched = await self.remote.async_fetch_all(
            const.REMOTE_SESSION_COLLECTIONS, self.user_id
        )

        habit_rows = fetched.get(const.REMOTE_HABITS)
        if habit_rows is not None:
            self.habits = self._merge_habit_rows(
                habit_rows, fetched.get(const.REMOTE_HABIT_COMPLETIONS)
            )
            await self.store.async_set(const.CACHE_KEY_HABITS, self.habits)

        task_rows = fetched.get(const.REMOTE_TASKS)
        if task_rows is not None:
            self.tasks = [map_task_row(row) for row in task_rows]
            await self.store.async_set(const.CACHE_KEY_TASKS, self.tasks)

        reminder_rows = fetched.get(const.REMOTE_REMINDERS)
        if reminder_rows is not None:
            self.reminders = [map_reminder_row(row) for row in reminder_rows]
            await self.store.async_set(const.CACHE_KEY_REMINDERS, self.reminders)

        routine_rows = fetched.get(const.REMOTE_ROUTINES)
        if routine_rows is not None:
            self.routines = self._merge_routine_rows(
                routine_rows, fetched.get(const.REMOTE_ROUTINE_TASKS)
            )
            await self.store.async_set(const.CACHE_KEY_ROUTINES, self.routines)

        tx_rows = fetched.get(const.REMOTE_FINANCE_TRANSACTIONS)
        if tx_rows is not None:
            self.transactions = [map_transaction_row(row) for row in tx_rows]
            await self.store.async_set(const.CACHE_KEY_FINANCES, self.transactions)

        group_rows = fetched.get(const.REMOTE_BUDGET_GROUPS)
        if group_rows is not None:
            self.budget_groups = [map_budget_group_row(row) for row in group_rows]
            await self.store.async_set(const.CACHE_KEY_BUDGETS, self.budget_groups)

        assignment_rows = fetched.get(const.REMOTE_BUDGET_GROUP_TRANSACTIONS)
        if assignment_rows is not None:
            self.budget_assignments = map_budget_assignments(assignment_rows)
            await self.store.async_set(
                const.CACHE_KEY_BUDGET_ASSIGNMENTS, self.budget_assignments
            )

        settings_rows = fetched.get(const.REMOTE_USER_SETTINGS)
        if settings_rows:
            self.settings = UserSettings.from_dict(settings_rows[0])
            await self.store.async_set(
                const.CACHE_KEY_SETTINGS, self.settings.as_dict()
            )

        health_rows = fetched.get(const.REMOTE_HEALTH_DAILY)
        if health_rows is None:
            health_rows = [
                {
                    **day,
                    const.DATA_DATE: day_key,
                    const.DATA_ID: day.get(const.DATA_HEALTH_DAY_ID),
                }
                for day_key, day in self.health_data.items()
            ]
        await self.health_manager.async_build_health_map(
            health_rows, fetched.get(const.REMOTE_HEALTH_FOOD_ENTRIES)
        )

    def _merge_habit_rows(
        self,
        habit_rows: list[dict[str, Any]],
        completion_rows: list[dict[str, Any]] | None,
    ) -> list[HabitData]:
        """Map habit rows; keep cached completion logs when completions failed."""
        if completion_rows is not None:
            return [map_habit_row(row, completion_rows) for row in habit_rows]

        cached = {habit.get(const.DATA_ID): habit for habit in self.habits}
        habits: list[HabitData] = []
        for row in habit_rows:
            habit = map_habit_row(row)
            previous = cached.get(habit[const.DATA_ID])
            if previous:
                habit[const.DATA_HABIT_COMPLETED_DATES] = (
                    StreakEngine.normalize_completed_dates(
                        previous.get(const.DATA_HABIT_COMPLETED_DATES)
                    )
                )
            habits.append(habit)
        return habits

    def _merge_routine_rows(
        self,
        routine_rows: list[dict[str, Any]],
        task_rows: list[dict[str, Any]] | None,
    ) -> list[RoutineData]:
        """Map routine rows; keep cached task lists when tasks failed."""
        if task_rows is not None:
            return [map_routine_row(row, task_rows) for row in routine_rows]

        cached = {routine.get(const.DATA_ID): routine for routine in self.routines}
        routines: list[RoutineData] = []
        for row in routine_rows:
            previous = cached.get(row.get(const.DATA_ID)) or {}
            cached_tasks = [
                {**task, const.DATA_ROUTINE_ID: row.get(const.DATA_ID)}
                for task in previous.get(const.DATA_ROUTINE_TASKS, [])
            ]
            routines.append(map_routine_row(row, cached_tasks))
        return routines

    # -------------------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------------------

    async def async_update_settings(self, **changes: Any) -> UserSettings:
        """Replace the settings value and announce the change."""
        self.settings = self.settings.with_changes(**changes)
        await self.store.async_set(const.CACHE_KEY_SETTINGS, self.settings.as_dict())

        if self.remote is not None and self.user_id:
            try:
                await self.remote.async_update(
                    const.REMOTE_USER_SETTINGS,
                    {const.DATA_USER_ID: self.user_id},
                    dict(changes),
                )
            except PillaflowRemoteError as err:
                const.LOGGER.warning(
                    "WARNING: Saving settings remotely failed, kept locally: %s", err
                )

        self.notification_manager.emit(const.SIGNAL_SUFFIX_SETTINGS_CHANGED)
        self.async_update_listeners()
        return self.settings

    # -------------------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------------------

    def get_upcoming_tasks(self, today: date | str | None = None) -> list[TaskData]:
        """Return open tasks dated today or later, earliest first."""
        return TaskEngine.upcoming_tasks(self.tasks, today or dt_today_key())

    def get_finance_summary(
        self, day: date | datetime | str | None = None
    ) -> dict[str, Any]:
        """Return the day's totals plus every budget group's window spend."""
        day_key = dt_day_key(day) if day is not None else dt_today_key()
        if not day_key:
            raise ServiceValidationError(
                translation_domain=const.DOMAIN,
                translation_key=const.TRANS_KEY_ERROR_INVALID_DATE,
                translation_placeholders={"date": str(day)},
            )

        now = dt_now_local()
        budgets: list[dict[str, Any]] = []
        for group in self.budget_groups:
            spend = SummaryEngine.budget_spend_for_group(
                self.transactions, group, self.budget_assignments, now
            )
            if spend is None:
                continue
            budgets.append(
                {
                    const.DATA_ID: group[const.DATA_ID],
                    const.DATA_NAME: group[const.DATA_NAME],
                    const.DATA_BUDGET_LIMIT: group[const.DATA_BUDGET_LIMIT],
                    **spend,
                }
            )

        return {
            const.DATA_DATE: day_key,
            "summary": SummaryEngine.summary_for_day(self.transactions, day_key),
            "budgets": budgets,
        }

    def build_snapshot(self) -> dict[str, Any]:
        """Return the derived state exposed as coordinator data."""
        today = dt_today_key()
        return {
            "habits_completed_today": StreakEngine.completed_today_count(
                self.habits, today
            ),
            "best_streak": StreakEngine.best_streak(self.habits),
            "upcoming_tasks": len(TaskEngine.upcoming_tasks(self.tasks, today)),
            "today_tasks": len(TaskEngine.today_tasks(self.tasks, today)),
            "today_calories": (self.health_data.get(today) or {}).get(
                const.DATA_HEALTH_CALORIES, 0
            ),
            "finance_today": SummaryEngine.summary_for_day(self.transactions, today),
            "notifications": self.notification_manager.state,
        }
