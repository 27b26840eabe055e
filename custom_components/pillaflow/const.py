# File: const.py
"""Constants for the Pillaflow integration.

This file centralizes configuration keys, storage keys, defaults, service names,
field names and translation keys so every module references the same values.
"""

import logging

# ------------------------------------------------------------------------------------------------
# General / Integration Information
# ------------------------------------------------------------------------------------------------
PILLAFLOW_TITLE = "Pillaflow"

# Integration Domain
DOMAIN = "pillaflow"

# Logger
LOGGER = logging.getLogger(__package__)

# Coordinator
COORDINATOR = "coordinator"
COORDINATOR_SUFFIX = "_coordinator"

# Storage and Versioning
STORE = "store"
STORAGE_KEY = "pillaflow_data"
STORAGE_VERSION = 1

# Update Interval (minutes)
DEFAULT_UPDATE_INTERVAL = 15

# ------------------------------------------------------------------------------------------------
# Configuration Keys
# ------------------------------------------------------------------------------------------------
CONF_API_KEY = "api_key"
CONF_BACKEND_URL = "backend_url"
CONF_IS_PREMIUM = "is_premium"
CONF_NOTIFY_SERVICE = "notify_service"
CONF_UPDATE_INTERVAL = "update_interval"
CONF_USER_ID = "user_id"

DEFAULT_NOTIFY_SERVICE = "notify.notify"

# ------------------------------------------------------------------------------------------------
# Cache Keys (durable key/value namespace)
# ------------------------------------------------------------------------------------------------
CACHE_PREFIX = "@pillaflow"
CACHE_LEGACY_PREFIX = "@pillarup"
CACHE_MIGRATION_FLAG_KEY = "@pillaflow_storage_migration_v1"

CACHE_KEY_HABITS = "@pillaflow_habits"
CACHE_KEY_TASKS = "@pillaflow_tasks"
CACHE_KEY_HEALTH = "@pillaflow_health"
CACHE_KEY_HEALTH_FOOD_LOGS = "@pillaflow_health_food_logs"
CACHE_KEY_ROUTINES = "@pillaflow_routines"
CACHE_KEY_REMINDERS = "@pillaflow_reminders"
CACHE_KEY_FINANCES = "@pillaflow_finances"
CACHE_KEY_BUDGETS = "@pillaflow_budgets"
CACHE_KEY_BUDGET_ASSIGNMENTS = "@pillaflow_budget_assignments"
CACHE_KEY_SETTINGS = "@pillaflow_settings"
CACHE_KEY_LAST_ACTIVE_PREFIX = "@pillaflow_last_active_"
CACHE_KEY_STREAK_FROZEN_PREFIX = "@pillaflow_streak_frozen_"

# Storage document buckets
DATA_CACHE = "cache"
DATA_META = "meta"
DATA_META_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION_CURRENT = 1

# Legacy key migration batch size
CACHE_MIGRATION_BATCH_SIZE = 100

# ------------------------------------------------------------------------------------------------
# Remote Collections
# ------------------------------------------------------------------------------------------------
REMOTE_HABITS = "habits"
REMOTE_HABIT_COMPLETIONS = "habit_completions"
REMOTE_TASKS = "tasks"
REMOTE_HEALTH_DAILY = "health_daily"
REMOTE_HEALTH_FOOD_ENTRIES = "health_food_entries"
REMOTE_ROUTINES = "routines"
REMOTE_ROUTINE_TASKS = "routine_tasks"
REMOTE_REMINDERS = "reminders"
REMOTE_FINANCE_TRANSACTIONS = "finance_transactions"
REMOTE_BUDGET_GROUPS = "budget_groups"
REMOTE_BUDGET_GROUP_TRANSACTIONS = "budget_group_transactions"
REMOTE_USER_SETTINGS = "user_settings"

REMOTE_SESSION_COLLECTIONS = (
    REMOTE_HABITS,
    REMOTE_HABIT_COMPLETIONS,
    REMOTE_TASKS,
    REMOTE_HEALTH_DAILY,
    REMOTE_HEALTH_FOOD_ENTRIES,
    REMOTE_ROUTINES,
    REMOTE_ROUTINE_TASKS,
    REMOTE_REMINDERS,
    REMOTE_FINANCE_TRANSACTIONS,
    REMOTE_BUDGET_GROUPS,
    REMOTE_BUDGET_GROUP_TRANSACTIONS,
    REMOTE_USER_SETTINGS,
)

REMOTE_REST_PATH = "/rest/v1/{collection}"
REMOTE_FETCH_TIMEOUT = 15

# ------------------------------------------------------------------------------------------------
# Data Keys
# ------------------------------------------------------------------------------------------------
DATA_ID = "id"
DATA_USER_ID = "user_id"
DATA_DATE = "date"
DATA_TIME = "time"
DATA_TITLE = "title"
DATA_NAME = "name"
DATA_CREATED_AT = "created_at"

# Habits
DATA_HABIT_CATEGORY = "category"
DATA_HABIT_COMPLETED_DATES = "completed_dates"
DATA_HABIT_DAYS = "days"
DATA_HABIT_DESCRIPTION = "description"
DATA_HABIT_ID = "habit_id"
DATA_HABIT_REPEAT = "repeat"
DATA_HABIT_STREAK = "streak"

# Health
DATA_HEALTH_CALORIES = "calories"
DATA_HEALTH_DAY_ID = "health_day_id"
DATA_HEALTH_FOODS = "foods"
DATA_HEALTH_MOOD = "mood"
DATA_HEALTH_SLEEP_QUALITY = "sleep_quality"
DATA_HEALTH_SLEEP_TIME = "sleep_time"
DATA_HEALTH_UPDATED_AT = "updated_at"
DATA_HEALTH_WAKE_TIME = "wake_time"
DATA_HEALTH_WATER_INTAKE = "water_intake"

# Food entries
DATA_FOOD_CALORIES = "calories"
DATA_FOOD_CARBS_GRAMS = "carbs_grams"
DATA_FOOD_FAT_GRAMS = "fat_grams"
DATA_FOOD_PROTEIN_GRAMS = "protein_grams"
DATA_FOOD_TIMESTAMP = "timestamp"
FOOD_MACRO_FIELDS = (
    DATA_FOOD_PROTEIN_GRAMS,
    DATA_FOOD_CARBS_GRAMS,
    DATA_FOOD_FAT_GRAMS,
)

# Tasks and reminders
DATA_TASK_COMPLETED = "completed"
DATA_TASK_DURATION_MINUTES = "duration_minutes"
DATA_TASK_PRIORITY = "priority"
DATA_REMINDER_DATE_TIME = "date_time"
DATA_REMINDER_DESCRIPTION = "description"

# Routines
DATA_ROUTINE_ID = "routine_id"
DATA_ROUTINE_TASKS = "tasks"
DATA_ROUTINE_TASK_POSITION = "position"

# Finance
DATA_TX_AMOUNT = "amount"
DATA_TX_CATEGORY = "category"
DATA_TX_CURRENCY = "currency"
DATA_TX_NOTE = "note"
DATA_TX_TYPE = "type"
DATA_BUDGET_CADENCE = "cadence"
DATA_BUDGET_LIMIT = "limit"
DATA_BUDGET_GROUP_ID = "group_id"
DATA_BUDGET_TRANSACTION_ID = "transaction_id"

TX_TYPE_INCOME = "income"
TX_TYPE_EXPENSE = "expense"

BUDGET_CADENCE_WEEKLY = "weekly"
BUDGET_CADENCE_MONTHLY = "monthly"
BUDGET_CADENCE_YEARLY = "yearly"

# ------------------------------------------------------------------------------------------------
# Recurrence
# ------------------------------------------------------------------------------------------------
REPEAT_DAILY = "Daily"
REPEAT_WEEKLY = "Weekly"
REPEAT_MONTHLY = "Monthly"

# Python weekday ordinals (Monday == 0)
WEEKDAY_CODES = {
    "mon": 0,
    "tue": 1,
    "wed": 2,
    "thu": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}

WEEKDAY_ALIASES = {
    "monday": "mon",
    "tues": "tue",
    "tuesday": "tue",
    "weds": "wed",
    "wednesday": "wed",
    "thur": "thu",
    "thurs": "thu",
    "thursday": "thu",
    "friday": "fri",
    "saturday": "sat",
    "sunday": "sun",
}

WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

# Default trigger times (hour, minute)
DEFAULT_EVENT_TIME = (9, 0)
HABIT_REMINDER_TIME = (8, 0)
ROUTINE_REMINDER_TIME = (7, 30)

# Task nudges
TASK_DAY_BEFORE_HOURS = 24
TASK_NEAR_DUE_MINUTES = 30

# Task durations (minutes)
DEFAULT_TASK_DURATION_MINUTES = 30
MIN_TASK_DURATION_MINUTES = 5
MAX_TASK_DURATION_MINUTES = 24 * 60

# Streak freeze thresholds (whole days away)
STREAK_RESET_THRESHOLD_DAYS = 1
STREAK_RESET_THRESHOLD_DAYS_PREMIUM = 2

# ------------------------------------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------------------------------------
NOTIFY_DOMAIN = "notify"
NOTIFY_TITLE = "title"
NOTIFY_MESSAGE = "message"
NOTIFY_DATA = "data"
NOTIFY_TAG = "tag"

NOTIFICATION_CATEGORY_TASK = "task"
NOTIFICATION_CATEGORY_HABIT = "habit"
NOTIFICATION_CATEGORY_ROUTINE = "routine"
NOTIFICATION_CATEGORY_REMINDER = "reminder"

SCHEDULER_STATE_ACTIVE = "active"
SCHEDULER_STATE_INACTIVE = "inactive"

# User settings keys
SETTING_NOTIFICATIONS_ENABLED = "notifications_enabled"
SETTING_HABIT_REMINDERS_ENABLED = "habit_reminders_enabled"
SETTING_TASK_REMINDERS_ENABLED = "task_reminders_enabled"
SETTING_ROUTINE_REMINDERS_ENABLED = "routine_reminders_enabled"
SETTING_REMINDER_NOTIFICATIONS_ENABLED = "reminder_notifications_enabled"
SETTING_HEALTH_REMINDERS_ENABLED = "health_reminders_enabled"
SETTING_THEME_NAME = "theme_name"
SETTING_DEFAULT_CURRENCY = "default_currency"
SETTING_LANGUAGE = "language"

DEFAULT_THEME_NAME = "default"
DEFAULT_CURRENCY = "USD"
DEFAULT_LANGUAGE = "en"
DEFAULT_HABIT_CATEGORY = "Personal"

# ------------------------------------------------------------------------------------------------
# Dispatcher Signals
# ------------------------------------------------------------------------------------------------
SIGNAL_SUFFIX_HABITS_CHANGED = "habits_changed"
SIGNAL_SUFFIX_ROUTINES_CHANGED = "routines_changed"
SIGNAL_SUFFIX_HEALTH_CHANGED = "health_changed"
SIGNAL_SUFFIX_SETTINGS_CHANGED = "settings_changed"

# ------------------------------------------------------------------------------------------------
# Services
# ------------------------------------------------------------------------------------------------
SERVICE_ADD_FOOD_ENTRY = "add_food_entry"
SERVICE_ADD_HABIT = "add_habit"
SERVICE_ADD_ROUTINE_TASK = "add_routine_task"
SERVICE_GET_BEST_STREAK = "get_best_streak"
SERVICE_GET_FINANCE_SUMMARY = "get_finance_summary"
SERVICE_GET_UPCOMING_TASKS = "get_upcoming_tasks"
SERVICE_IS_HABIT_COMPLETED_TODAY = "is_habit_completed_today"
SERVICE_MERGE_DAY = "merge_day"
SERVICE_REMOVE_FOOD_ENTRY = "remove_food_entry"
SERVICE_REMOVE_ROUTINE_TASK = "remove_routine_task"
SERVICE_REORDER_ROUTINE_TASKS = "reorder_routine_tasks"
SERVICE_RESCHEDULE_NOTIFICATIONS = "reschedule_notifications"
SERVICE_TOGGLE_HABIT_COMPLETION = "toggle_habit_completion"
SERVICE_UPDATE_NOTIFICATION_SETTINGS = "update_notification_settings"

# Service fields
FIELD_CALORIES = "calories"
FIELD_CARBS_GRAMS = "carbs_grams"
FIELD_CATEGORY = "category"
FIELD_DATE = "date"
FIELD_DAYS = "days"
FIELD_DESCRIPTION = "description"
FIELD_FAT_GRAMS = "fat_grams"
FIELD_FOOD_ID = "food_id"
FIELD_HABIT_ID = "habit_id"
FIELD_NAME = "name"
FIELD_PROTEIN_GRAMS = "protein_grams"
FIELD_REPEAT = "repeat"
FIELD_ROUTINE_ID = "routine_id"
FIELD_TASK_ID = "task_id"
FIELD_TASK_IDS = "task_ids"
FIELD_TITLE = "title"

# ------------------------------------------------------------------------------------------------
# Translation Keys
# ------------------------------------------------------------------------------------------------
TRANS_KEY_ERROR_NOT_AUTHENTICATED = "not_authenticated"
TRANS_KEY_ERROR_HABIT_TITLE_REQUIRED = "habit_title_required"
TRANS_KEY_ERROR_HABIT_NOT_FOUND = "habit_not_found"
TRANS_KEY_ERROR_ROUTINE_NOT_FOUND = "routine_not_found"
TRANS_KEY_ERROR_ROUTINE_TASK_NAME_REQUIRED = "routine_task_name_required"
TRANS_KEY_ERROR_INVALID_REORDER = "invalid_reorder"
TRANS_KEY_ERROR_INVALID_DATE = "invalid_date"
TRANS_KEY_ERROR_FOOD_NAME_REQUIRED = "food_name_required"
TRANS_KEY_ERROR_NOT_LOADED = "not_loaded"
TRANS_KEY_ERROR_CANNOT_CONNECT = "cannot_connect"
TRANS_KEY_ERROR_SINGLE_INSTANCE = "single_instance_allowed"

# Notification text (English defaults, rendered in manager)
NOTIFY_TASK_DAY_BEFORE_TITLE = "Tomorrow: {title}"
NOTIFY_TASK_UPCOMING_TITLE = "Upcoming task"
NOTIFY_HABIT_TITLE = "Habit: {title}"
NOTIFY_HABIT_TITLE_FALLBACK = "Habit reminder"
NOTIFY_HABIT_BODY = "Time to check in on your habit progress for today."
NOTIFY_ROUTINE_TITLE = "Routine: {name}"
NOTIFY_ROUTINE_TITLE_FALLBACK = "Routine check-in"
NOTIFY_ROUTINE_BODY = "Review your routine tasks for today."
NOTIFY_REMINDER_TITLE_FALLBACK = "Reminder"
