"""Task Engine - Pure queries over dated tasks.

Provides upcoming/today task lists, duration normalization and timed-task
overlap detection.

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any

from .. import const
from ..utils.dt_utils import dt_day_key, get_default_timezone, parse_time_to_minutes
from ..utils.math_utils import clamp_int

if TYPE_CHECKING:
    from ..type_defs import TaskData, TaskRange


class TaskEngine:
    """Stateless task queries."""

    @staticmethod
    def upcoming_tasks(
        tasks: Iterable[TaskData | Mapping[str, Any]], today: str | date | datetime
    ) -> list[TaskData]:
        """Return open tasks dated today or later, earliest date first.

        Tasks without a usable date are excluded. The sort is stable, so tasks
        on the same day keep their input order.
        """
        today_key = dt_day_key(today)
        dated = [
            (key, task)
            for task in tasks
            if not task.get(const.DATA_TASK_COMPLETED)
            and (key := dt_day_key(task.get(const.DATA_DATE)))
            and key >= today_key
        ]
        dated.sort(key=lambda pair: pair[0])
        return [task for _, task in dated]  # type: ignore[misc]

    @staticmethod
    def today_tasks(
        tasks: Iterable[TaskData | Mapping[str, Any]], today: str | date | datetime
    ) -> list[TaskData]:
        """Return open tasks dated exactly today."""
        today_key = dt_day_key(today)
        return [
            task  # type: ignore[misc]
            for task in tasks
            if not task.get(const.DATA_TASK_COMPLETED)
            and dt_day_key(task.get(const.DATA_DATE)) == today_key
        ]

    @staticmethod
    def normalize_duration(
        value: Any, fallback: Any = const.DEFAULT_TASK_DURATION_MINUTES
    ) -> int:
        """Round and clamp a duration into 5 minutes .. 24 hours."""
        fallback_value = clamp_int(
            fallback,
            const.MIN_TASK_DURATION_MINUTES,
            const.MAX_TASK_DURATION_MINUTES,
            const.DEFAULT_TASK_DURATION_MINUTES,
        )
        return clamp_int(
            value,
            const.MIN_TASK_DURATION_MINUTES,
            const.MAX_TASK_DURATION_MINUTES,
            fallback_value,
        )

    @staticmethod
    def task_range(task: Mapping[str, Any]) -> TaskRange | None:
        """Return the start/end of a timed task, or None when untimed."""
        day_key = dt_day_key(task.get(const.DATA_DATE))
        start_minutes = parse_time_to_minutes(task.get(const.DATA_TIME))
        if not day_key or start_minutes is None:
            return None

        duration = TaskEngine.normalize_duration(
            task.get(const.DATA_TASK_DURATION_MINUTES)
        )
        start_at = datetime.combine(
            date.fromisoformat(day_key), time.min, tzinfo=get_default_timezone()
        ) + timedelta(minutes=start_minutes)
        return {
            "id": task.get(const.DATA_ID),
            "title": task.get(const.DATA_TITLE) or "",
            "date": day_key,
            "start_minutes": start_minutes,
            "end_minutes": start_minutes + duration,
            "duration_minutes": duration,
            "start_at": start_at,
            "end_at": start_at + timedelta(minutes=duration),
        }

    @staticmethod
    def ranges_overlap(task_a: Mapping[str, Any], task_b: Mapping[str, Any]) -> bool:
        """Return True when two timed tasks overlap (touching ends do not)."""
        range_a = TaskEngine.task_range(task_a)
        range_b = TaskEngine.task_range(task_b)
        if range_a is None or range_b is None:
            return False
        return (
            range_a["start_at"] < range_b["end_at"]
            and range_b["start_at"] < range_a["end_at"]
        )

    @staticmethod
    def find_overlapping(
        candidate: Mapping[str, Any],
        tasks: Iterable[Mapping[str, Any]],
        *,
        include_completed: bool = False,
    ) -> list[TaskData]:
        """Return tasks whose time range overlaps candidate (excluding itself)."""
        if TaskEngine.task_range(candidate) is None:
            return []
        candidate_id = candidate.get(const.DATA_ID)
        return [
            task  # type: ignore[misc]
            for task in tasks
            if (include_completed or not task.get(const.DATA_TASK_COMPLETED))
            and not (candidate_id and task.get(const.DATA_ID) == candidate_id)
            and TaskEngine.ranges_overlap(candidate, task)
        ]
