"""Routine Engine - Pure logic for routine task ordering and cadence.

Every mutation returns tasks whose `position` values are exactly 0..n-1 in
list order. Reorders must be a permutation of the current task ids.

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
State management belongs in RoutineManager.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import json
from typing import TYPE_CHECKING, Any

from .. import const
from .schedule_engine import RecurrenceResolver

if TYPE_CHECKING:
    from ..type_defs import RoutineTaskData


_WEEKLY_NAMES = frozenset({"weekly", "week", "specific_weekdays", "specific weekdays"})
_MONTHLY_NAMES = frozenset(
    {"monthly", "month", "specific_month_days", "specific month days"}
)


class RoutineEngine:
    """Stateless routine task sequencing."""

    @staticmethod
    def sort_tasks(tasks: Iterable[Mapping[str, Any]]) -> list[RoutineTaskData]:
        """Return tasks ordered by stored position (missing positions last)."""
        def sort_key(pair: tuple[int, Mapping[str, Any]]) -> tuple[bool, int, int]:
            index, task = pair
            position = task.get(const.DATA_ROUTINE_TASK_POSITION)
            if isinstance(position, int) and not isinstance(position, bool):
                return (False, position, index)
            return (True, 0, index)

        ordered = sorted(enumerate(tasks), key=sort_key)
        return [dict(task) for _, task in ordered]  # type: ignore[misc]

    @staticmethod
    def resequence(tasks: Iterable[Mapping[str, Any]]) -> list[RoutineTaskData]:
        """Return copies of tasks with positions 0..n-1 in list order."""
        return [
            {**task, const.DATA_ROUTINE_TASK_POSITION: index}  # type: ignore[misc]
            for index, task in enumerate(tasks)
        ]

    @staticmethod
    def add_task(
        tasks: Sequence[Mapping[str, Any]], task: Mapping[str, Any]
    ) -> list[RoutineTaskData]:
        """Append a task at the end.

        Raises:
            ValueError: When the task has no name.
        """
        if not str(task.get(const.DATA_NAME) or "").strip():
            raise ValueError("Routine task requires a name")
        ordered = RoutineEngine.sort_tasks(tasks)
        return RoutineEngine.resequence([*ordered, task])

    @staticmethod
    def remove_task(
        tasks: Sequence[Mapping[str, Any]], task_id: str
    ) -> list[RoutineTaskData]:
        """Remove a task by id and close the gap it leaves."""
        ordered = RoutineEngine.sort_tasks(tasks)
        return RoutineEngine.resequence(
            [task for task in ordered if task.get(const.DATA_ID) != task_id]
        )

    @staticmethod
    def reorder_tasks(
        tasks: Sequence[Mapping[str, Any]], new_order: Sequence[str]
    ) -> list[RoutineTaskData]:
        """Reorder tasks to match new_order (a list of task ids).

        Raises:
            ValueError: When new_order is not a permutation of the task ids.
        """
        by_id = {task.get(const.DATA_ID): task for task in tasks}
        if len(new_order) != len(tasks) or set(new_order) != set(by_id):
            raise ValueError("Reorder must contain each routine task id exactly once")
        if len(set(new_order)) != len(new_order):
            raise ValueError("Reorder contains duplicate task ids")
        return RoutineEngine.resequence([by_id[task_id] for task_id in new_order])

    # -------------------------------------------------------------------------
    # Cadence normalization
    # -------------------------------------------------------------------------

    @staticmethod
    def normalize_repeat(value: Any) -> str:
        """Map loose cadence names onto Daily / Weekly / Monthly."""
        normalized = str(value or "").strip().lower()
        if normalized in _WEEKLY_NAMES:
            return const.REPEAT_WEEKLY
        if normalized in _MONTHLY_NAMES:
            return const.REPEAT_MONTHLY
        return const.REPEAT_DAILY

    @staticmethod
    def _to_list(value: Any) -> list[Any]:
        """Accept a list, a JSON array string or a comma-separated string."""
        if isinstance(value, list | tuple):
            return list(value)
        if not isinstance(value, str):
            return []
        text = value.strip()
        if not text:
            return []
        if text.startswith("[") and text.endswith("]"):
            try:
                parsed = json.loads(text)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return parsed
        return [item.strip() for item in text.split(",")]

    @staticmethod
    def normalize_schedule(source: Mapping[str, Any]) -> dict[str, Any]:
        """Return {"repeat", "days"} with days normalized for the cadence.

        Weekly days become ordered "Mon".."Sun" labels; monthly days become
        ascending day-of-month strings; daily routines carry no days.
        """
        repeat = RoutineEngine.normalize_repeat(
            source.get(const.DATA_HABIT_REPEAT, source.get("schedule_type"))
        )

        if repeat == const.REPEAT_WEEKLY:
            for candidate in (source.get(const.DATA_HABIT_DAYS), source.get("week_days")):
                ordinals = RecurrenceResolver.map_weekdays(
                    RoutineEngine._to_list(candidate)
                )
                if ordinals:
                    return {
                        "repeat": repeat,
                        "days": [
                            const.WEEKDAY_LABELS[ordinal] for ordinal in sorted(ordinals)
                        ],
                    }
            return {"repeat": repeat, "days": []}

        if repeat == const.REPEAT_MONTHLY:
            for candidate in (
                source.get(const.DATA_HABIT_DAYS),
                source.get("month_days"),
            ):
                month_days = RecurrenceResolver.map_month_days(
                    RoutineEngine._to_list(candidate)
                )
                if month_days:
                    return {"repeat": repeat, "days": [str(day) for day in month_days]}
            return {"repeat": repeat, "days": []}

        return {"repeat": const.REPEAT_DAILY, "days": []}
