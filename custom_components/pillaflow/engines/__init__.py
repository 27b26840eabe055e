"""Engine modules for Pillaflow integration.

Contains stateless computation engines:
- reconcile_engine: Remote/cached health day merges
- streak_engine: Habit completion toggles and streaks
- summary_engine: Finance day summaries and budget windows
- schedule_engine: Recurrence resolution and notification intents
- routine_engine: Routine task ordering and cadence normalization
- task_engine: Upcoming tasks, durations and overlaps
"""

from .reconcile_engine import ReconcileEngine
from .routine_engine import RoutineEngine
from .schedule_engine import (
    NotificationIntent,
    RecurrenceResolver,
    RecurrenceSpec,
    TriggerSpec,
)
from .streak_engine import StreakEngine
from .summary_engine import SummaryEngine
from .task_engine import TaskEngine

__all__ = [
    "NotificationIntent",
    "ReconcileEngine",
    "RecurrenceResolver",
    "RecurrenceSpec",
    "RoutineEngine",
    "StreakEngine",
    "SummaryEngine",
    "TaskEngine",
    "TriggerSpec",
]
