"""Habit Manager - completion toggles, streak persistence and inactivity.

Wraps StreakEngine with the cache write-through, the remote completion log
and the streak freeze bookkeeping. Emits SIGNAL_SUFFIX_HABITS_CHANGED after
every mutation so the NotificationManager can rebuild its triggers.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from homeassistant.exceptions import ServiceValidationError

from .. import const
from ..data_builders import EntityValidationError, build_habit
from ..engines.streak_engine import StreakEngine
from ..remote import PillaflowRemoteError
from ..store import last_active_key, streak_frozen_key
from ..utils.dt_utils import dt_now_local, dt_parse_datetime, dt_today_key
from .base_manager import BaseManager

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..type_defs import HabitData, InactivityResult


class HabitManager(BaseManager):
    """Owns habit mutations and the streak freeze flag."""

    async def async_setup(self) -> None:
        """Nothing to subscribe to; habits change through services."""
        const.LOGGER.debug("DEBUG: HabitManager ready for entry %s", self.entry_id)

    def _find_habit(self, habit_id: str) -> tuple[int, HabitData]:
        for index, habit in enumerate(self.coordinator.habits):
            if habit.get(const.DATA_ID) == habit_id:
                return index, habit
        raise ServiceValidationError(
            translation_domain=const.DOMAIN,
            translation_key=const.TRANS_KEY_ERROR_HABIT_NOT_FOUND,
            translation_placeholders={"habit_id": str(habit_id)},
        )

    async def _async_persist(self) -> None:
        await self.coordinator.store.async_set(
            const.CACHE_KEY_HABITS, self.coordinator.habits
        )
        self.coordinator.async_update_listeners()
        self.emit(const.SIGNAL_SUFFIX_HABITS_CHANGED)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def best_streak(self) -> int:
        """Return the best current streak across all habits."""
        return StreakEngine.best_streak(self.coordinator.habits)

    def is_completed_today(self, habit_id: str) -> bool:
        """Return True when the habit is completed for today's day key."""
        _, habit = self._find_habit(habit_id)
        return StreakEngine.is_completed_today(habit, dt_today_key())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def async_add_habit(self, user_input: Mapping[str, Any]) -> HabitData:
        """Create a habit from service input and persist it.

        Raises:
            ServiceValidationError: No session or missing title.
        """
        self.coordinator.require_session()
        try:
            habit = build_habit(user_input)
        except EntityValidationError as err:
            raise ServiceValidationError(
                translation_domain=const.DOMAIN,
                translation_key=err.translation_key,
                translation_placeholders=err.placeholders,
            ) from err

        remote = self.coordinator.remote
        if remote is not None:
            row = {
                const.DATA_USER_ID: self.coordinator.user_id,
                const.DATA_TITLE: habit[const.DATA_TITLE],
                const.DATA_HABIT_CATEGORY: habit[const.DATA_HABIT_CATEGORY],
                const.DATA_HABIT_DESCRIPTION: habit[const.DATA_HABIT_DESCRIPTION],
                const.DATA_HABIT_REPEAT: habit[const.DATA_HABIT_REPEAT],
                const.DATA_HABIT_DAYS: habit[const.DATA_HABIT_DAYS],
                const.DATA_HABIT_STREAK: 0,
            }
            try:
                stored = await remote.async_insert(const.REMOTE_HABITS, row)
            except PillaflowRemoteError as err:
                const.LOGGER.warning(
                    "WARNING: Creating habit '%s' remotely failed, kept locally: %s",
                    habit[const.DATA_TITLE],
                    err,
                )
            else:
                if stored and stored.get(const.DATA_ID):
                    habit[const.DATA_ID] = str(stored[const.DATA_ID])
                    habit[const.DATA_CREATED_AT] = stored.get(const.DATA_CREATED_AT)

        self.coordinator.habits.append(habit)
        await self._async_persist()
        const.LOGGER.info("INFO: Added habit '%s'", habit[const.DATA_TITLE])
        return habit

    async def async_toggle_completion(self, habit_id: str) -> HabitData:
        """Toggle today's completion for a habit.

        The local toggle always applies; remote failures are logged and the
        next sync reconciles the completion log.

        Raises:
            ServiceValidationError: No session or unknown habit.
        """
        self.coordinator.require_session()
        index, habit = self._find_habit(habit_id)
        today_key = dt_today_key()

        was_completed = StreakEngine.is_completed_today(habit, today_key)
        updated = StreakEngine.toggle_completion(habit, today_key)
        self.coordinator.habits[index] = updated

        await self._async_push_toggle(habit_id, today_key, was_completed, updated)

        if not was_completed:
            await self.coordinator.store.async_remove(
                streak_frozen_key(self.coordinator.user_id)
            )
        await self._async_mark_active()
        await self._async_persist()

        const.LOGGER.debug(
            "DEBUG: Habit %s %s for %s, streak=%s",
            habit_id,
            "uncompleted" if was_completed else "completed",
            today_key,
            updated[const.DATA_HABIT_STREAK],
        )
        return updated

    async def _async_push_toggle(
        self,
        habit_id: str,
        day_key: str,
        was_completed: bool,
        habit: HabitData,
    ) -> None:
        remote = self.coordinator.remote
        if remote is None:
            return
        completion = {
            const.DATA_HABIT_ID: habit_id,
            const.DATA_USER_ID: self.coordinator.user_id,
            const.DATA_DATE: day_key,
        }
        try:
            if was_completed:
                await remote.async_delete(const.REMOTE_HABIT_COMPLETIONS, completion)
            else:
                await remote.async_insert(const.REMOTE_HABIT_COMPLETIONS, completion)
            await remote.async_update(
                const.REMOTE_HABITS,
                {
                    const.DATA_ID: habit_id,
                    const.DATA_USER_ID: self.coordinator.user_id,
                },
                {const.DATA_HABIT_STREAK: habit[const.DATA_HABIT_STREAK]},
            )
        except PillaflowRemoteError as err:
            const.LOGGER.warning(
                "WARNING: Syncing completion of habit %s failed, applied locally: %s",
                habit_id,
                err,
            )

    # -------------------------------------------------------------------------
    # Inactivity
    # -------------------------------------------------------------------------

    async def _async_mark_active(self, now: datetime | None = None) -> None:
        user_id = self.coordinator.user_id
        if not user_id:
            return
        await self.coordinator.store.async_set(
            last_active_key(user_id), (now or dt_now_local()).isoformat()
        )

    async def async_evaluate_inactivity(
        self, now: datetime | None = None
    ) -> InactivityResult | None:
        """Freeze or reset streaks after time away, then record activity.

        Returns None when there is no session.
        """
        user_id = self.coordinator.user_id
        if not user_id:
            return None

        now = now or dt_now_local()
        store = self.coordinator.store
        last_active = dt_parse_datetime(await store.async_get(last_active_key(user_id)))
        frozen = bool(await store.async_get(streak_frozen_key(user_id), False))
        habits = self.coordinator.habits

        result = StreakEngine.evaluate_inactivity(
            last_active,
            now,
            is_premium=self.coordinator.is_premium,
            has_any_streak=StreakEngine.best_streak(habits) > 0,
            frozen=frozen,
        )

        if result["frozen"] != frozen:
            if result["frozen"]:
                await store.async_set(streak_frozen_key(user_id), True)
                const.LOGGER.info("INFO: Streaks frozen after one day away")
            else:
                await store.async_remove(streak_frozen_key(user_id))

        if result["reset_streaks"]:
            const.LOGGER.info(
                "INFO: Resetting streaks after %s days away", result["day_gap"]
            )
            self.coordinator.habits[:] = StreakEngine.reset_streaks(habits)
            await self._async_reset_remote_streaks()
            await self._async_persist()

        await self._async_mark_active(now)
        return result

    async def _async_reset_remote_streaks(self) -> None:
        remote = self.coordinator.remote
        if remote is None:
            return
        try:
            await remote.async_update(
                const.REMOTE_HABITS,
                {const.DATA_USER_ID: self.coordinator.user_id},
                {const.DATA_HABIT_STREAK: 0},
            )
        except PillaflowRemoteError as err:
            const.LOGGER.warning("WARNING: Resetting remote streaks failed: %s", err)
