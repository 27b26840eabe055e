"""Manager modules for Pillaflow integration.

Managers orchestrate workflows and coordinate between engines.
They are stateful, event-aware, and handle cross-cutting concerns.
"""

from .base_manager import BaseManager
from .habit_manager import HabitManager
from .health_manager import HealthManager
from .notification_manager import NotificationManager
from .routine_manager import RoutineManager

__all__ = [
    "BaseManager",
    "HabitManager",
    "HealthManager",
    "NotificationManager",
    "RoutineManager",
]
