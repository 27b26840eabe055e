"""Record building and remote row mapping.

This module is the SINGLE SOURCE OF TRUTH for:
- Field defaults of locally created records
- Mapping remote rows onto cached record shapes
- The immutable UserSettings value

### Build Functions
`build_<entity>()` takes service input (DATA_* keys), validates required
fields, generates an id and applies defaults.

### Mapping Functions
`map_<entity>_row()` takes a backend row and returns the cached shape.
Loose remote values are coerced here so engines see consistent types.

Consumers:
- services.py (programmatic record creation)
- coordinator.py (session-start sync)
- managers (habit / routine mutations)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, cast
import uuid

from . import const
from .engines.routine_engine import RoutineEngine
from .engines.streak_engine import StreakEngine
from .engines.task_engine import TaskEngine
from .type_defs import (
    BudgetGroupData,
    HabitData,
    ReminderData,
    RoutineData,
    TaskData,
    TransactionData,
)
from .utils.dt_utils import dt_day_key
from .utils.math_utils import as_number

# ==============================================================================
# HELPER FUNCTIONS FOR FIELD NORMALIZATION
# ==============================================================================


def _normalize_list_field(value: Any) -> list[Any]:
    """Normalize a field that should be a list.

    Strings are wrapped rather than iterated, so "Mon" never becomes
    ['M', 'o', 'n'].
    """
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [value] if value else []
    return list(value) if value else []


# ==============================================================================
# EXCEPTIONS
# ==============================================================================


class EntityValidationError(Exception):
    """Validation error carrying the field and translation key.

    Services translate this into a ServiceValidationError.
    """

    def __init__(
        self,
        field: str,
        translation_key: str,
        placeholders: dict[str, str] | None = None,
    ) -> None:
        """Initialize EntityValidationError."""
        self.field = field
        self.translation_key = translation_key
        self.placeholders = placeholders or {}
        super().__init__(translation_key)


# ==============================================================================
# USER SETTINGS
# ==============================================================================


@dataclass(frozen=True, slots=True)
class UserSettings:
    """Notification and display preferences.

    Immutable: a change produces a new value via `with_changes`.
    """

    notifications_enabled: bool = True
    habit_reminders_enabled: bool = True
    task_reminders_enabled: bool = True
    routine_reminders_enabled: bool = True
    reminder_notifications_enabled: bool = True
    health_reminders_enabled: bool = True
    theme_name: str = const.DEFAULT_THEME_NAME
    default_currency: str = const.DEFAULT_CURRENCY
    language: str = const.DEFAULT_LANGUAGE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> UserSettings:
        """Build settings from a cached dict or remote row, ignoring unknown keys."""
        if not data:
            return cls()
        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "default_currency_code" in data and "default_currency" not in values:
            values["default_currency"] = data["default_currency_code"]
        return cls(**{key: value for key, value in values.items() if value is not None})

    def with_changes(self, **changes: Any) -> UserSettings:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible dict."""
        return asdict(self)


# ==============================================================================
# HABITS
# ==============================================================================


def build_habit(
    user_input: Mapping[str, Any], existing: HabitData | None = None
) -> HabitData:
    """Build habit data for create or update operations.

    Priority per field: user_input > existing > default.

    Raises:
        EntityValidationError: If the title is empty on create or explicitly
            blanked on update.
    """
    is_create = existing is None

    def get_field(data_key: str, default: Any) -> Any:
        if data_key in user_input:
            return user_input[data_key]
        if existing is not None:
            return existing.get(data_key, default)
        return default

    raw_title = get_field(const.DATA_TITLE, "")
    title = str(raw_title).strip() if raw_title else ""
    if (is_create or const.DATA_TITLE in user_input) and not title:
        raise EntityValidationError(
            field=const.DATA_TITLE,
            translation_key=const.TRANS_KEY_ERROR_HABIT_TITLE_REQUIRED,
        )

    schedule = RoutineEngine.normalize_schedule(
        {
            const.DATA_HABIT_REPEAT: get_field(
                const.DATA_HABIT_REPEAT, const.REPEAT_DAILY
            ),
            const.DATA_HABIT_DAYS: _normalize_list_field(
                get_field(const.DATA_HABIT_DAYS, [])
            ),
        }
    )

    habit_id = (existing or {}).get(const.DATA_ID) or str(uuid.uuid4())
    return {
        const.DATA_ID: habit_id,
        const.DATA_TITLE: title,
        const.DATA_HABIT_CATEGORY: get_field(
            const.DATA_HABIT_CATEGORY, const.DEFAULT_HABIT_CATEGORY
        )
        or const.DEFAULT_HABIT_CATEGORY,
        const.DATA_HABIT_DESCRIPTION: get_field(const.DATA_HABIT_DESCRIPTION, "")
        or "",
        const.DATA_HABIT_REPEAT: schedule["repeat"],
        const.DATA_HABIT_DAYS: schedule["days"],
        const.DATA_HABIT_STREAK: max(
            int(as_number(get_field(const.DATA_HABIT_STREAK, 0), 0) or 0), 0
        ),
        const.DATA_HABIT_COMPLETED_DATES: StreakEngine.normalize_completed_dates(
            get_field(const.DATA_HABIT_COMPLETED_DATES, [])
        ),
        const.DATA_CREATED_AT: get_field(const.DATA_CREATED_AT, None),
    }  # type: ignore[return-value]


def map_habit_row(
    row: Mapping[str, Any], completion_rows: Iterable[Mapping[str, Any]] = ()
) -> HabitData:
    """Map a `habits` row plus its `habit_completions` rows onto a habit."""
    habit_id = row.get(const.DATA_ID)
    completed = [
        completion.get(const.DATA_DATE)
        for completion in completion_rows
        if completion.get(const.DATA_HABIT_ID) == habit_id
    ]
    return {
        const.DATA_ID: habit_id,
        const.DATA_TITLE: row.get(const.DATA_TITLE) or "",
        const.DATA_HABIT_CATEGORY: row.get(const.DATA_HABIT_CATEGORY)
        or const.DEFAULT_HABIT_CATEGORY,
        const.DATA_HABIT_DESCRIPTION: row.get(const.DATA_HABIT_DESCRIPTION) or "",
        const.DATA_HABIT_REPEAT: row.get(const.DATA_HABIT_REPEAT) or const.REPEAT_DAILY,
        const.DATA_HABIT_DAYS: _normalize_list_field(row.get(const.DATA_HABIT_DAYS)),
        const.DATA_HABIT_STREAK: max(
            int(as_number(row.get(const.DATA_HABIT_STREAK), 0) or 0), 0
        ),
        const.DATA_HABIT_COMPLETED_DATES: StreakEngine.normalize_completed_dates(
            completed
        ),
        const.DATA_CREATED_AT: row.get(const.DATA_CREATED_AT),
    }  # type: ignore[return-value]


# ==============================================================================
# TASKS AND REMINDERS
# ==============================================================================


def map_task_row(row: Mapping[str, Any]) -> TaskData:
    """Map a `tasks` row onto a task."""
    return {
        const.DATA_ID: row.get(const.DATA_ID),
        const.DATA_TITLE: row.get(const.DATA_TITLE) or "",
        const.DATA_HABIT_DESCRIPTION: row.get(const.DATA_HABIT_DESCRIPTION) or "",
        const.DATA_DATE: row.get(const.DATA_DATE),
        const.DATA_TIME: row.get(const.DATA_TIME),
        const.DATA_TASK_COMPLETED: bool(row.get(const.DATA_TASK_COMPLETED)),
        const.DATA_TASK_PRIORITY: row.get(const.DATA_TASK_PRIORITY) or "medium",
        const.DATA_TASK_DURATION_MINUTES: TaskEngine.normalize_duration(
            row.get(const.DATA_TASK_DURATION_MINUTES)
        ),
    }  # type: ignore[return-value]


def map_reminder_row(row: Mapping[str, Any]) -> ReminderData:
    """Map a `reminders` row onto a reminder."""
    return {
        const.DATA_ID: row.get(const.DATA_ID),
        const.DATA_TITLE: row.get(const.DATA_TITLE) or "",
        const.DATA_REMINDER_DESCRIPTION: row.get(const.DATA_REMINDER_DESCRIPTION)
        or "",
        const.DATA_DATE: row.get(const.DATA_DATE),
        const.DATA_TIME: row.get(const.DATA_TIME),
        const.DATA_REMINDER_DATE_TIME: row.get(const.DATA_REMINDER_DATE_TIME),
    }  # type: ignore[return-value]


# ==============================================================================
# ROUTINES
# ==============================================================================


def map_routine_row(
    row: Mapping[str, Any], task_rows: Iterable[Mapping[str, Any]] = ()
) -> RoutineData:
    """Map a `routines` row plus its `routine_tasks` rows onto a routine.

    Tasks are ordered by stored position and resequenced to 0..n-1.
    """
    routine_id = row.get(const.DATA_ID)
    schedule = RoutineEngine.normalize_schedule(row)
    tasks = [
        {
            const.DATA_ID: task.get(const.DATA_ID),
            const.DATA_NAME: task.get(const.DATA_NAME) or "",
            const.DATA_ROUTINE_TASK_POSITION: task.get(
                const.DATA_ROUTINE_TASK_POSITION
            ),
        }
        for task in task_rows
        if task.get(const.DATA_ROUTINE_ID) == routine_id
    ]
    return {
        const.DATA_ID: routine_id,
        const.DATA_NAME: row.get(const.DATA_NAME) or "",
        const.DATA_HABIT_REPEAT: schedule["repeat"],
        const.DATA_HABIT_DAYS: schedule["days"],
        const.DATA_ROUTINE_TASKS: RoutineEngine.resequence(
            RoutineEngine.sort_tasks(tasks)
        ),
    }  # type: ignore[return-value]


# ==============================================================================
# FINANCE
# ==============================================================================


def map_transaction_row(row: Mapping[str, Any]) -> TransactionData:
    """Map a `finance_transactions` row; amounts become non-negative."""
    tx_type = row.get(const.DATA_TX_TYPE)
    if tx_type not in (const.TX_TYPE_INCOME, const.TX_TYPE_EXPENSE):
        tx_type = const.TX_TYPE_EXPENSE
    return {
        const.DATA_ID: row.get(const.DATA_ID),
        const.DATA_TX_TYPE: tx_type,
        const.DATA_TX_AMOUNT: abs(as_number(row.get(const.DATA_TX_AMOUNT), 0) or 0),
        const.DATA_TX_CATEGORY: row.get(const.DATA_TX_CATEGORY) or "",
        const.DATA_TX_CURRENCY: row.get(const.DATA_TX_CURRENCY)
        or const.DEFAULT_CURRENCY,
        const.DATA_DATE: dt_day_key(row.get(const.DATA_DATE))
        or row.get(const.DATA_DATE),
        const.DATA_TX_NOTE: row.get(const.DATA_TX_NOTE) or "",
        const.DATA_CREATED_AT: row.get(const.DATA_CREATED_AT),
    }  # type: ignore[return-value]


def map_budget_group_row(row: Mapping[str, Any]) -> BudgetGroupData:
    """Map a `budget_groups` row onto a budget group."""
    cadence = str(row.get(const.DATA_BUDGET_CADENCE) or "").lower()
    if cadence not in (
        const.BUDGET_CADENCE_WEEKLY,
        const.BUDGET_CADENCE_MONTHLY,
        const.BUDGET_CADENCE_YEARLY,
    ):
        cadence = const.BUDGET_CADENCE_MONTHLY
    return cast(
        "BudgetGroupData",
        {
            const.DATA_ID: row.get(const.DATA_ID),
            const.DATA_NAME: row.get(const.DATA_NAME) or "",
            const.DATA_BUDGET_CADENCE: cadence,
            const.DATA_BUDGET_LIMIT: as_number(row.get(const.DATA_BUDGET_LIMIT), 0),
        },
    )


def map_budget_assignments(rows: Iterable[Mapping[str, Any]]) -> dict[str, list[str]]:
    """Group `budget_group_transactions` rows into transaction id -> group ids."""
    assignments: dict[str, list[str]] = {}
    for row in rows:
        transaction_id = row.get(const.DATA_BUDGET_TRANSACTION_ID)
        group_id = row.get(const.DATA_BUDGET_GROUP_ID)
        if not transaction_id or not group_id:
            continue
        groups = assignments.setdefault(str(transaction_id), [])
        if group_id not in groups:
            groups.append(group_id)
    return assignments
