"""Type definitions for Pillaflow data structures.

Records are plain JSON-compatible dicts so they can be cached and sent to the
remote backend unchanged. TypedDict is used where the keys are fixed;
dict[str, Any] where keys are runtime values (day keys, transaction ids).

IMPORTANT: This file must NOT import from coordinator.py or any manager.
Only typing machinery is imported here.

NOTE: TypedDict is STATIC ANALYSIS ONLY. Runtime coercion of loosely typed
remote rows happens in the engines (`.get()` defaults, math_utils.as_number).
"""

from typing import Any, Literal, NotRequired, TypedDict

# =============================================================================
# Type Aliases (for readability)
# =============================================================================

HabitId = str
RoutineId = str
DayKey = str  # Canonical day key "2024-01-02"
ISODatetime = str  # ISO 8601 datetime string "2024-01-02T08:00:00+00:00"
RepeatCadence = Literal["Daily", "Weekly", "Monthly"]
TransactionType = Literal["income", "expense"]
BudgetCadence = Literal["weekly", "monthly", "yearly"]


# =============================================================================
# Habits
# =============================================================================


class HabitData(TypedDict):
    """A recurring item whose completions build a streak."""

    id: HabitId
    title: str
    category: str
    description: NotRequired[str]
    repeat: RepeatCadence
    days: list[str]  # Weekday codes ("Mon") or day-of-month strings ("15")
    streak: int
    completed_dates: list[DayKey]
    created_at: NotRequired[ISODatetime | None]


# =============================================================================
# Health
# =============================================================================


class FoodEntryData(TypedDict, total=False):
    """A single food log line.

    Entries created locally may not have a server `id` yet; identity then
    falls back to `timestamp`, then to `name-calories-date`.
    """

    id: str | None
    name: str
    calories: float
    protein_grams: float | None
    carbs_grams: float | None
    fat_grams: float | None
    timestamp: ISODatetime | None
    date: DayKey
    health_day_id: str | None


class HealthDayData(TypedDict):
    """One calendar day of health logging."""

    mood: int | None
    water_intake: float
    sleep_time: str | None
    wake_time: str | None
    sleep_quality: str | None
    calories: float
    foods: list[FoodEntryData]
    health_day_id: str | None
    created_at: ISODatetime | None
    updated_at: ISODatetime | None


# Day key -> list of cached food entries
FoodLogs = dict[DayKey, list[FoodEntryData]]

# Day key -> merged health day
HealthMap = dict[DayKey, HealthDayData]


# =============================================================================
# Tasks and Reminders
# =============================================================================


class TaskData(TypedDict, total=False):
    """A dated task. The trigger instant is derived from date and time."""

    id: str
    title: str
    description: str
    date: str | None
    time: str | None
    completed: bool
    priority: str
    duration_minutes: int


class ReminderData(TypedDict, total=False):
    """A one-off reminder."""

    id: str
    title: str
    description: str
    date: str | None
    time: str | None
    date_time: ISODatetime | None


class TaskRange(TypedDict):
    """Concrete start/end of a timed task."""

    id: str | None
    title: str
    date: DayKey
    start_minutes: int
    end_minutes: int
    duration_minutes: int
    start_at: Any  # datetime
    end_at: Any  # datetime


# =============================================================================
# Routines
# =============================================================================


class RoutineTaskData(TypedDict):
    """A step of a routine; positions are contiguous 0..n-1."""

    id: str
    name: str
    position: int


class RoutineData(TypedDict):
    """An ordered checklist with its own cadence."""

    id: RoutineId
    name: str
    repeat: RepeatCadence
    days: list[str]
    tasks: list[RoutineTaskData]


# =============================================================================
# Finance
# =============================================================================


class TransactionData(TypedDict, total=False):
    """A ledger line; the sign is implied by `type`."""

    id: str
    type: TransactionType
    amount: float
    category: str
    currency: str
    date: str
    note: str
    created_at: ISODatetime | None


class BudgetGroupData(TypedDict):
    """A spending limit applied over a cadence window."""

    id: str
    name: str
    cadence: BudgetCadence
    limit: float


# Transaction id -> budget group ids
BudgetAssignments = dict[str, list[str]]


class DaySummary(TypedDict):
    """Finance totals for one day."""

    income: float
    expenses: float
    balance: float


class BudgetSpend(TypedDict):
    """Spend against a budget group inside its current window."""

    spent: float
    start: ISODatetime
    end: ISODatetime


# =============================================================================
# Streaks
# =============================================================================


class InactivityResult(TypedDict):
    """Outcome of the streak inactivity check."""

    day_gap: int
    frozen: bool
    reset_streaks: bool


# =============================================================================
# Scheduler
# =============================================================================


class RescheduleResult(TypedDict):
    """Summary of one cancel-all / recompute / register cycle."""

    state: str
    registered: int
    failed: int
