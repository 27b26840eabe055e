"""Schedule Engine for Pillaflow.

Turns declarative recurrence (habit and routine cadences, task due dates,
one-off reminders) into trigger specs and concrete fire times:
- `dateutil.rrule` for daily / weekly / monthly repetition
- `bymonthday=(day, -1)` with `bysetpos=1` so day 31 clamps to the last day
  of shorter months instead of skipping them

Nothing produced here is persisted. The NotificationManager recomputes every
intent on each scheduling cycle.

IMPORTANT: This module must NOT import from coordinator.py or any manager.
Only import from const.py, type_defs.py, utils and standard libraries.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, ClassVar

from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, rrule

from .. import const
from ..utils.dt_utils import (
    as_local,
    build_date_time,
    dt_format_friendly,
    dt_parse_datetime,
    get_default_timezone,
)

# Trigger kinds
TRIGGER_ONCE = "once"
TRIGGER_DAILY = "daily"
TRIGGER_WEEKLY = "weekly"
TRIGGER_MONTHLY = "monthly"

# Tag slots for task nudges
SLOT_DAY_BEFORE = "day_before"
SLOT_DUE = "due"
SLOT_ONCE = "once"

ALL_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass(frozen=True, slots=True)
class TriggerSpec:
    """When a notification fires.

    `once` triggers carry an absolute `at`; repeating triggers carry a
    local hour/minute plus a weekday (0 = Monday) or a day of month.
    """

    kind: str
    hour: int = 0
    minute: int = 0
    at: datetime | None = None
    weekday: int | None = None
    month_day: int | None = None

    @property
    def repeats(self) -> bool:
        """Return True for daily/weekly/monthly triggers."""
        return self.kind != TRIGGER_ONCE


@dataclass(frozen=True, slots=True)
class RecurrenceSpec:
    """Cadence + day selector + time-of-day."""

    repeat: str
    days: tuple[str, ...] = ()
    hour: int = 0
    minute: int = 0


@dataclass(frozen=True, slots=True)
class NotificationIntent:
    """A notification to register, derived fresh on every scheduling pass."""

    title: str
    body: str
    trigger: TriggerSpec
    tag: str
    category: str
    item_id: str


def build_tag(category: str, item_id: Any, slot: str) -> str:
    """Return the correlation tag for an intent, e.g. "task:42:due"."""
    return f"{category}:{item_id}:{slot}"


class RecurrenceResolver:
    """Resolve recurrence rules into trigger specs and fire times."""

    # Python weekday ordinal -> rrule weekday
    RRULE_WEEKDAYS: ClassVar[tuple[Any, ...]] = (MO, TU, WE, TH, FR, SA, SU)

    # -------------------------------------------------------------------------
    # Day selectors
    # -------------------------------------------------------------------------

    @staticmethod
    def map_weekday(code: Any) -> int | None:
        """Map a weekday code or alias to its ordinal (Monday == 0).

        Accepts three-letter codes in any case, the aliases in
        const.WEEKDAY_ALIASES and anything whose first three letters are a
        code. Returns None for unmappable values.
        """
        if not isinstance(code, str):
            return None
        normalized = code.strip().lower()
        if not normalized:
            return None
        normalized = const.WEEKDAY_ALIASES.get(normalized, normalized)
        if normalized in const.WEEKDAY_CODES:
            return const.WEEKDAY_CODES[normalized]
        return const.WEEKDAY_CODES.get(normalized[:3])

    @staticmethod
    def map_weekdays(days: Iterable[Any] | None) -> list[int]:
        """Return distinct mapped weekday ordinals in first-seen order."""
        ordinals: list[int] = []
        for day in days or []:
            ordinal = RecurrenceResolver.map_weekday(day)
            if ordinal is not None and ordinal not in ordinals:
                ordinals.append(ordinal)
        return ordinals

    @staticmethod
    def map_month_days(days: Iterable[Any] | None) -> list[int]:
        """Return distinct days of month (1..31) in ascending order."""
        selected: set[int] = set()
        for day in days or []:
            try:
                value = int(str(day).strip())
            except ValueError:
                continue
            if 1 <= value <= 31:
                selected.add(value)
        return sorted(selected)

    # -------------------------------------------------------------------------
    # Recurrence -> trigger specs
    # -------------------------------------------------------------------------

    @staticmethod
    def triggers_for_recurrence(spec: RecurrenceSpec) -> list[TriggerSpec]:
        """Expand a recurrence spec into repeating trigger specs.

        - Daily cadence, no day selection, or all seven weekdays: one daily trigger
        - Weekly subset: one weekly trigger per mappable weekday
        - Monthly: one monthly trigger per selected day of month
        """
        daily = [TriggerSpec(TRIGGER_DAILY, hour=spec.hour, minute=spec.minute)]
        if spec.repeat == const.REPEAT_DAILY or not spec.days:
            return daily

        if spec.repeat == const.REPEAT_MONTHLY:
            month_days = RecurrenceResolver.map_month_days(spec.days)
            return [
                TriggerSpec(
                    TRIGGER_MONTHLY,
                    hour=spec.hour,
                    minute=spec.minute,
                    month_day=month_day,
                )
                for month_day in month_days
            ]

        weekdays = RecurrenceResolver.map_weekdays(spec.days)
        if len(weekdays) == len(ALL_WEEKDAYS):
            return daily
        return [
            TriggerSpec(
                TRIGGER_WEEKLY, hour=spec.hour, minute=spec.minute, weekday=weekday
            )
            for weekday in weekdays
        ]

    # -------------------------------------------------------------------------
    # Trigger specs -> concrete instants
    # -------------------------------------------------------------------------

    @staticmethod
    def next_fire_time(trigger: TriggerSpec, now: datetime) -> datetime | None:
        """Return the next instant strictly after now, or None.

        Repeating triggers are evaluated on local wall-clock time, so a daily
        08:00 trigger stays at 08:00 across DST changes.
        """
        if trigger.kind == TRIGGER_ONCE:
            if trigger.at is None or trigger.at <= now:
                return None
            return trigger.at

        tz = get_default_timezone()
        local_now = as_local(now, tz).replace(tzinfo=None)
        dtstart = local_now.replace(
            hour=trigger.hour, minute=trigger.minute, second=0, microsecond=0
        ) - timedelta(days=1)

        if trigger.kind == TRIGGER_DAILY:
            rule = rrule(DAILY, dtstart=dtstart)
        elif trigger.kind == TRIGGER_WEEKLY and trigger.weekday is not None:
            rule = rrule(
                WEEKLY,
                dtstart=dtstart,
                byweekday=RecurrenceResolver.RRULE_WEEKDAYS[trigger.weekday],
            )
        elif trigger.kind == TRIGGER_MONTHLY and trigger.month_day is not None:
            rule = rrule(
                MONTHLY,
                dtstart=dtstart.replace(day=1),
                bymonthday=(trigger.month_day, -1),
                bysetpos=1,
            )
        else:
            return None

        candidate = rule.after(local_now, inc=False)
        if candidate is None:
            return None
        return candidate.replace(tzinfo=tz)

    @staticmethod
    def next_trigger(
        spec: RecurrenceSpec | TriggerSpec, now: datetime
    ) -> datetime | list[datetime] | None:
        """Return the next trigger instant(s) for a spec.

        A TriggerSpec or a recurrence that expands to a single trigger yields
        one instant (or None); a multi-trigger recurrence yields the sorted
        list of each trigger's next instant. Nothing at or before now is
        ever returned.
        """
        if isinstance(spec, TriggerSpec):
            return RecurrenceResolver.next_fire_time(spec, now)

        triggers = RecurrenceResolver.triggers_for_recurrence(spec)
        instants = sorted(
            instant
            for trigger in triggers
            if (instant := RecurrenceResolver.next_fire_time(trigger, now))
        )
        if len(triggers) == 1:
            return instants[0] if instants else None
        return instants

    # -------------------------------------------------------------------------
    # Intents per category
    # -------------------------------------------------------------------------

    @staticmethod
    def task_intents(
        tasks: Iterable[Mapping[str, Any]], now: datetime
    ) -> list[NotificationIntent]:
        """Build the day-before and near-due nudges for open dated tasks.

        For due instant D: D - 24h when still ahead, and D - 30m when still
        ahead (else D itself when still ahead). Past instants are dropped.
        """
        hour, minute = const.DEFAULT_EVENT_TIME
        intents: list[NotificationIntent] = []
        for task in tasks:
            if not task.get(const.DATA_DATE) or task.get(const.DATA_TASK_COMPLETED):
                continue
            due = build_date_time(
                task.get(const.DATA_DATE), task.get(const.DATA_TIME), hour, minute
            )
            if due is None:
                continue

            task_id = task.get(const.DATA_ID)
            title = task.get(const.DATA_TITLE) or ""
            friendly = dt_format_friendly(due)

            day_before = due - timedelta(hours=const.TASK_DAY_BEFORE_HOURS)
            if day_before > now:
                intents.append(
                    NotificationIntent(
                        title=const.NOTIFY_TASK_DAY_BEFORE_TITLE.format(title=title),
                        body=f"Due {friendly}",
                        trigger=TriggerSpec(TRIGGER_ONCE, at=day_before),
                        tag=build_tag(
                            const.NOTIFICATION_CATEGORY_TASK, task_id, SLOT_DAY_BEFORE
                        ),
                        category=const.NOTIFICATION_CATEGORY_TASK,
                        item_id=str(task_id),
                    )
                )

            near_due = due - timedelta(minutes=const.TASK_NEAR_DUE_MINUTES)
            fire_at = near_due if near_due > now else due
            if fire_at > now:
                intents.append(
                    NotificationIntent(
                        title=const.NOTIFY_TASK_UPCOMING_TITLE,
                        body=f"{title} - {friendly}",
                        trigger=TriggerSpec(TRIGGER_ONCE, at=fire_at),
                        tag=build_tag(
                            const.NOTIFICATION_CATEGORY_TASK, task_id, SLOT_DUE
                        ),
                        category=const.NOTIFICATION_CATEGORY_TASK,
                        item_id=str(task_id),
                    )
                )
        return intents

    @staticmethod
    def reminder_instant(reminder: Mapping[str, Any]) -> datetime | None:
        """Resolve a reminder's instant from `date`/`date_time` and `time`.

        A `date_time` carrying an offset is converted to local time before
        its calendar day and clock time are read.
        """
        hour, minute = const.DEFAULT_EVENT_TIME
        time_str = reminder.get(const.DATA_TIME)
        parsed = dt_parse_datetime(reminder.get(const.DATA_REMINDER_DATE_TIME))
        date_input = (
            reminder.get(const.DATA_DATE)
            or parsed
            or reminder.get(const.DATA_REMINDER_DATE_TIME)
        )
        if not time_str and parsed is not None:
            time_str = f"{parsed.hour:02d}:{parsed.minute:02d}"
        return build_date_time(date_input, time_str, hour, minute)

    @staticmethod
    def reminder_intents(
        reminders: Iterable[Mapping[str, Any]], now: datetime
    ) -> list[NotificationIntent]:
        """Build one-off intents for reminders that are still ahead."""
        intents: list[NotificationIntent] = []
        for reminder in reminders:
            instant = RecurrenceResolver.reminder_instant(reminder)
            if instant is None or instant <= now:
                continue
            reminder_id = reminder.get(const.DATA_ID)
            intents.append(
                NotificationIntent(
                    title=reminder.get(const.DATA_TITLE)
                    or const.NOTIFY_REMINDER_TITLE_FALLBACK,
                    body=dt_format_friendly(instant),
                    trigger=TriggerSpec(TRIGGER_ONCE, at=instant),
                    tag=build_tag(
                        const.NOTIFICATION_CATEGORY_REMINDER, reminder_id, SLOT_ONCE
                    ),
                    category=const.NOTIFICATION_CATEGORY_REMINDER,
                    item_id=str(reminder_id),
                )
            )
        return intents

    @staticmethod
    def _slot_for(trigger: TriggerSpec) -> str:
        if trigger.kind == TRIGGER_WEEKLY and trigger.weekday is not None:
            return f"{TRIGGER_WEEKLY}_{ALL_WEEKDAYS[trigger.weekday].lower()}"
        if trigger.kind == TRIGGER_MONTHLY:
            return f"{TRIGGER_MONTHLY}_{trigger.month_day}"
        return trigger.kind

    @staticmethod
    def _recurring_intents(
        items: Iterable[Mapping[str, Any]],
        *,
        category: str,
        reminder_time: tuple[int, int],
        title_key: str,
        title_fmt: str,
        title_fallback: str,
        body: str,
    ) -> list[NotificationIntent]:
        hour, minute = reminder_time
        intents: list[NotificationIntent] = []
        for item in items:
            item_id = item.get(const.DATA_ID)
            name = item.get(title_key)
            title = title_fmt.format(**{title_key: name}) if name else title_fallback
            spec = RecurrenceSpec(
                repeat=item.get(const.DATA_HABIT_REPEAT) or const.REPEAT_DAILY,
                days=tuple(item.get(const.DATA_HABIT_DAYS) or ()),
                hour=hour,
                minute=minute,
            )
            for trigger in RecurrenceResolver.triggers_for_recurrence(spec):
                intents.append(
                    NotificationIntent(
                        title=title,
                        body=body,
                        trigger=trigger,
                        tag=build_tag(
                            category, item_id, RecurrenceResolver._slot_for(trigger)
                        ),
                        category=category,
                        item_id=str(item_id),
                    )
                )
        return intents

    @staticmethod
    def habit_intents(
        habits: Iterable[Mapping[str, Any]],
    ) -> list[NotificationIntent]:
        """Build repeating 08:00 check-in intents for habits."""
        return RecurrenceResolver._recurring_intents(
            habits,
            category=const.NOTIFICATION_CATEGORY_HABIT,
            reminder_time=const.HABIT_REMINDER_TIME,
            title_key=const.DATA_TITLE,
            title_fmt=const.NOTIFY_HABIT_TITLE,
            title_fallback=const.NOTIFY_HABIT_TITLE_FALLBACK,
            body=const.NOTIFY_HABIT_BODY,
        )

    @staticmethod
    def routine_intents(
        routines: Iterable[Mapping[str, Any]],
    ) -> list[NotificationIntent]:
        """Build repeating 07:30 check-in intents for routines."""
        return RecurrenceResolver._recurring_intents(
            routines,
            category=const.NOTIFICATION_CATEGORY_ROUTINE,
            reminder_time=const.ROUTINE_REMINDER_TIME,
            title_key=const.DATA_NAME,
            title_fmt=const.NOTIFY_ROUTINE_TITLE,
            title_fallback=const.NOTIFY_ROUTINE_TITLE_FALLBACK,
            body=const.NOTIFY_ROUTINE_BODY,
        )
