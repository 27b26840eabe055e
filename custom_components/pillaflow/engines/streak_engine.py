"""Streak Engine - Pure logic for habit completion toggles and streaks.

This engine provides stateless, pure Python functions for:
- Toggling today's completion with the yesterday-adjacency streak rule
- Completed-today queries and the best-streak aggregate
- Normalizing legacy "Mon Jan 01 2024" completion dates to day keys
- The inactivity freeze / reset decision

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
All functions are static methods that operate on passed-in data.
State management belongs in HabitManager.

Streak semantics:
- Completing today when yesterday is completed continues the streak (+1).
- Completing today otherwise restarts the streak at 1.
- Un-completing today decrements the stored counter by one (floored at 0).
  The counter is NOT re-derived from the remaining dates; `derive_streak`
  exists only to show where the two can diverge.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, cast

from .. import const
from ..utils.dt_utils import dt_day_diff, dt_day_key, dt_shift_day_key

if TYPE_CHECKING:
    from ..type_defs import HabitData, InactivityResult


class StreakEngine:
    """Stateless streak calculations for habits."""

    @staticmethod
    def normalize_completed_dates(values: Iterable[Any] | None) -> list[str]:
        """Return canonical day keys, de-duplicated in first-seen order.

        Legacy locale day strings are converted; unparseable values are dropped.

        Example:
            ["Mon Jan 01 2024", "2024-01-01"] → ["2024-01-01"]
        """
        normalized: list[str] = []
        for value in values or []:
            key = dt_day_key(value)
            if key and key not in normalized:
                normalized.append(key)
        return normalized

    @staticmethod
    def is_completed_today(
        habit: HabitData | dict[str, Any], today: str | date | datetime
    ) -> bool:
        """Return True when today's day key is in the habit's completion log."""
        today_key = dt_day_key(today)
        if not today_key:
            return False
        return today_key in StreakEngine.normalize_completed_dates(
            habit.get(const.DATA_HABIT_COMPLETED_DATES)
        )

    @staticmethod
    def toggle_completion(
        habit: HabitData | dict[str, Any], today: str | date | datetime
    ) -> HabitData:
        """Toggle today's completion and return the updated habit.

        Args:
            habit: Habit record (not mutated)
            today: Today's date as a day key, date, datetime or legacy string

        Returns:
            A new habit dict with canonical `completed_dates` and updated `streak`.

        Raises:
            ValueError: When `today` carries no usable date.
        """
        today_key = dt_day_key(today)
        if not today_key:
            raise ValueError(f"Unusable day for habit toggle: {today!r}")

        completed = StreakEngine.normalize_completed_dates(
            habit.get(const.DATA_HABIT_COMPLETED_DATES)
        )
        streak = max(int(habit.get(const.DATA_HABIT_STREAK) or 0), 0)

        if today_key in completed:
            completed = [key for key in completed if key != today_key]
            new_streak = max(streak - 1, 0)
        else:
            yesterday_key = dt_shift_day_key(today_key, -1)
            new_streak = streak + 1 if yesterday_key in completed else 1
            completed.append(today_key)

        updated = dict(habit)
        updated[const.DATA_HABIT_COMPLETED_DATES] = completed
        updated[const.DATA_HABIT_STREAK] = new_streak
        return cast("HabitData", updated)

    @staticmethod
    def best_streak(habits: Iterable[HabitData | dict[str, Any]]) -> int:
        """Return the running maximum streak over all habits (0 when empty)."""
        best = 0
        for habit in habits:
            best = max(best, int(habit.get(const.DATA_HABIT_STREAK) or 0))
        return best

    @staticmethod
    def completed_today_count(
        habits: Iterable[HabitData | dict[str, Any]], today: str | date | datetime
    ) -> str:
        """Return "done/total" for today's habit completions."""
        habit_list = list(habits)
        done = sum(
            1 for habit in habit_list if StreakEngine.is_completed_today(habit, today)
        )
        return f"{done}/{len(habit_list)}"

    @staticmethod
    def derive_streak(
        completed_dates: Iterable[Any] | None, today: str | date | datetime
    ) -> int:
        """Return the consecutive-day run ending today (or yesterday).

        This is the adjacency-derived value; the stored counter is what the
        toggle maintains and may differ after an un-complete.
        """
        keys = set(StreakEngine.normalize_completed_dates(completed_dates))
        cursor = dt_day_key(today)
        if not cursor:
            return 0
        if cursor not in keys:
            cursor = dt_shift_day_key(cursor, -1)
        run = 0
        while cursor in keys:
            run += 1
            cursor = dt_shift_day_key(cursor, -1)
        return run

    @staticmethod
    def evaluate_inactivity(
        last_active: datetime | date | None,
        now: datetime,
        *,
        is_premium: bool,
        has_any_streak: bool,
        frozen: bool,
    ) -> InactivityResult:
        """Decide whether streaks freeze or reset after time away.

        Premium users get a one-day freeze and lose streaks only after more
        than two days away; everyone else loses them after more than one.

        Args:
            last_active: Last recorded activity, or None on first run
            now: Current local time
            is_premium: Premium flag passed in by the caller
            has_any_streak: True when any habit has a positive streak
            frozen: Current freeze flag

        Returns:
            InactivityResult with the whole-day gap, the new freeze flag and
            whether all streaks must reset to 0.
        """
        if last_active is None:
            return {"day_gap": 0, "frozen": frozen, "reset_streaks": False}

        if not has_any_streak:
            return {"day_gap": 0, "frozen": False, "reset_streaks": False}

        day_gap = dt_day_diff(last_active, now)
        threshold = (
            const.STREAK_RESET_THRESHOLD_DAYS_PREMIUM
            if is_premium
            else const.STREAK_RESET_THRESHOLD_DAYS
        )

        new_frozen = frozen
        if is_premium and day_gap == 1:
            new_frozen = True
        elif not is_premium and frozen:
            new_frozen = False

        return {
            "day_gap": day_gap,
            "frozen": new_frozen,
            "reset_streaks": day_gap > threshold,
        }

    @staticmethod
    def reset_streaks(
        habits: Iterable[HabitData | dict[str, Any]],
    ) -> list[HabitData]:
        """Return copies of every habit with streak set to 0."""
        return [
            cast("HabitData", {**habit, const.DATA_HABIT_STREAK: 0}) for habit in habits
        ]
