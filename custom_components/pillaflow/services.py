# File: services.py
"""Defines custom services for the Pillaflow integration.

Query services (`get_*`, `is_habit_completed_today`) return a response;
mutation services change cached state and trigger notification rebuilds
through the managers' change signals.
"""

from __future__ import annotations

from typing import Any

import voluptuous as vol
from homeassistant.core import (
    HomeAssistant,
    ServiceCall,
    ServiceResponse,
    SupportsResponse,
)
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers import config_validation as cv

from . import const
from .coordinator import PillaflowDataCoordinator
from .engines.task_engine import TaskEngine

# --- Service Schemas ---
HABIT_ID_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_HABIT_ID): cv.string,
    }
)

ADD_HABIT_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_TITLE): cv.string,
        vol.Optional(const.FIELD_CATEGORY): cv.string,
        vol.Optional(const.FIELD_DESCRIPTION): cv.string,
        vol.Optional(const.FIELD_REPEAT): vol.In(
            [const.REPEAT_DAILY, const.REPEAT_WEEKLY, const.REPEAT_MONTHLY]
        ),
        vol.Optional(const.FIELD_DAYS): vol.All(cv.ensure_list, [cv.string]),
    }
)

DATE_SCHEMA = vol.Schema(
    {
        vol.Optional(const.FIELD_DATE): cv.string,
    }
)

MERGE_DAY_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_DATE): cv.string,
    }
)

ADD_FOOD_ENTRY_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_DATE): cv.string,
        vol.Required(const.FIELD_NAME): cv.string,
        vol.Optional(const.FIELD_CALORIES): vol.Coerce(float),
        vol.Optional(const.FIELD_PROTEIN_GRAMS): vol.Coerce(float),
        vol.Optional(const.FIELD_CARBS_GRAMS): vol.Coerce(float),
        vol.Optional(const.FIELD_FAT_GRAMS): vol.Coerce(float),
    }
)

REMOVE_FOOD_ENTRY_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_DATE): cv.string,
        vol.Required(const.FIELD_FOOD_ID): cv.string,
    }
)

ADD_ROUTINE_TASK_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_ROUTINE_ID): cv.string,
        vol.Required(const.FIELD_NAME): cv.string,
    }
)

REMOVE_ROUTINE_TASK_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_ROUTINE_ID): cv.string,
        vol.Required(const.FIELD_TASK_ID): cv.string,
    }
)

REORDER_ROUTINE_TASKS_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_ROUTINE_ID): cv.string,
        vol.Required(const.FIELD_TASK_IDS): vol.All(cv.ensure_list, [cv.string]),
    }
)

UPDATE_NOTIFICATION_SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Optional(const.SETTING_NOTIFICATIONS_ENABLED): cv.boolean,
        vol.Optional(const.SETTING_HABIT_REMINDERS_ENABLED): cv.boolean,
        vol.Optional(const.SETTING_TASK_REMINDERS_ENABLED): cv.boolean,
        vol.Optional(const.SETTING_ROUTINE_REMINDERS_ENABLED): cv.boolean,
        vol.Optional(const.SETTING_REMINDER_NOTIFICATIONS_ENABLED): cv.boolean,
        vol.Optional(const.SETTING_HEALTH_REMINDERS_ENABLED): cv.boolean,
    }
)

RESCHEDULE_NOTIFICATIONS_SCHEMA = vol.Schema({})

SERVICES = (
    const.SERVICE_ADD_FOOD_ENTRY,
    const.SERVICE_ADD_HABIT,
    const.SERVICE_ADD_ROUTINE_TASK,
    const.SERVICE_GET_BEST_STREAK,
    const.SERVICE_GET_FINANCE_SUMMARY,
    const.SERVICE_GET_UPCOMING_TASKS,
    const.SERVICE_IS_HABIT_COMPLETED_TODAY,
    const.SERVICE_MERGE_DAY,
    const.SERVICE_REMOVE_FOOD_ENTRY,
    const.SERVICE_REMOVE_ROUTINE_TASK,
    const.SERVICE_REORDER_ROUTINE_TASKS,
    const.SERVICE_RESCHEDULE_NOTIFICATIONS,
    const.SERVICE_TOGGLE_HABIT_COMPLETION,
    const.SERVICE_UPDATE_NOTIFICATION_SETTINGS,
)


def _get_coordinator(hass: HomeAssistant) -> PillaflowDataCoordinator:
    """Return the coordinator of the first loaded Pillaflow entry."""
    domain_entries = hass.data.get(const.DOMAIN)
    if not domain_entries:
        raise ServiceValidationError(
            translation_domain=const.DOMAIN,
            translation_key=const.TRANS_KEY_ERROR_NOT_LOADED,
        )
    entry_data = next(iter(domain_entries.values()))
    return entry_data[const.COORDINATOR]


def async_setup_services(hass: HomeAssistant) -> None:
    """Register the Pillaflow services."""

    # --- Queries ---

    async def handle_get_best_streak(_call: ServiceCall) -> ServiceResponse:
        """Return the best current streak across all habits."""
        coordinator = _get_coordinator(hass)
        return {"best_streak": coordinator.habit_manager.best_streak()}

    async def handle_is_habit_completed_today(call: ServiceCall) -> ServiceResponse:
        coordinator = _get_coordinator(hass)
        habit_id = call.data[const.FIELD_HABIT_ID]
        return {
            const.FIELD_HABIT_ID: habit_id,
            "completed": coordinator.habit_manager.is_completed_today(habit_id),
        }

    async def handle_get_upcoming_tasks(call: ServiceCall) -> ServiceResponse:
        coordinator = _get_coordinator(hass)
        tasks = coordinator.get_upcoming_tasks(call.data.get(const.FIELD_DATE))
        return {
            "tasks": [
                {
                    **task,
                    "overlaps": [
                        other.get(const.DATA_ID)
                        for other in TaskEngine.find_overlapping(task, tasks)
                    ],
                }
                for task in tasks
            ]
        }

    async def handle_get_finance_summary(call: ServiceCall) -> ServiceResponse:
        coordinator = _get_coordinator(hass)
        return coordinator.get_finance_summary(call.data.get(const.FIELD_DATE))

    # --- Habits ---

    async def handle_toggle_habit_completion(call: ServiceCall) -> None:
        """Toggle today's completion of a habit."""
        coordinator = _get_coordinator(hass)
        habit = await coordinator.habit_manager.async_toggle_completion(
            call.data[const.FIELD_HABIT_ID]
        )
        const.LOGGER.info(
            "INFO: Toggled habit '%s' (streak=%s)",
            habit[const.DATA_TITLE],
            habit[const.DATA_HABIT_STREAK],
        )

    async def handle_add_habit(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass)
        user_input: dict[str, Any] = {
            const.DATA_TITLE: call.data[const.FIELD_TITLE],
        }
        for field, data_key in (
            (const.FIELD_CATEGORY, const.DATA_HABIT_CATEGORY),
            (const.FIELD_DESCRIPTION, const.DATA_HABIT_DESCRIPTION),
            (const.FIELD_REPEAT, const.DATA_HABIT_REPEAT),
            (const.FIELD_DAYS, const.DATA_HABIT_DAYS),
        ):
            if field in call.data:
                user_input[data_key] = call.data[field]
        await coordinator.habit_manager.async_add_habit(user_input)

    # --- Health ---

    async def handle_merge_day(call: ServiceCall) -> None:
        """Re-merge one day's remote and cached food entries."""
        coordinator = _get_coordinator(hass)
        await coordinator.health_manager.async_merge_day(call.data[const.FIELD_DATE])

    async def handle_add_food_entry(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass)
        entry = {
            const.DATA_NAME: call.data[const.FIELD_NAME],
            const.DATA_FOOD_CALORIES: call.data.get(const.FIELD_CALORIES),
            const.DATA_FOOD_PROTEIN_GRAMS: call.data.get(const.FIELD_PROTEIN_GRAMS),
            const.DATA_FOOD_CARBS_GRAMS: call.data.get(const.FIELD_CARBS_GRAMS),
            const.DATA_FOOD_FAT_GRAMS: call.data.get(const.FIELD_FAT_GRAMS),
        }
        await coordinator.health_manager.async_add_food_entry(
            call.data[const.FIELD_DATE], entry
        )

    async def handle_remove_food_entry(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass)
        await coordinator.health_manager.async_remove_food_entry(
            call.data[const.FIELD_DATE], call.data[const.FIELD_FOOD_ID]
        )

    # --- Routines ---

    async def handle_add_routine_task(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass)
        await coordinator.routine_manager.async_add_task(
            call.data[const.FIELD_ROUTINE_ID], call.data[const.FIELD_NAME]
        )

    async def handle_remove_routine_task(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass)
        await coordinator.routine_manager.async_remove_task(
            call.data[const.FIELD_ROUTINE_ID], call.data[const.FIELD_TASK_ID]
        )

    async def handle_reorder_routine_tasks(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass)
        await coordinator.routine_manager.async_reorder_tasks(
            call.data[const.FIELD_ROUTINE_ID], call.data[const.FIELD_TASK_IDS]
        )

    # --- Notifications ---

    async def handle_update_notification_settings(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass)
        await coordinator.async_update_settings(**dict(call.data))

    async def handle_reschedule_notifications(_call: ServiceCall) -> ServiceResponse:
        """Run one scheduling cycle and report what was registered."""
        coordinator = _get_coordinator(hass)
        result = await coordinator.notification_manager.async_reschedule_all()
        return dict(result)

    # --- Register Services ---
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_GET_BEST_STREAK,
        handle_get_best_streak,
        schema=vol.Schema({}),
        supports_response=SupportsResponse.ONLY,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_IS_HABIT_COMPLETED_TODAY,
        handle_is_habit_completed_today,
        schema=HABIT_ID_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_GET_UPCOMING_TASKS,
        handle_get_upcoming_tasks,
        schema=DATE_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_GET_FINANCE_SUMMARY,
        handle_get_finance_summary,
        schema=DATE_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_TOGGLE_HABIT_COMPLETION,
        handle_toggle_habit_completion,
        schema=HABIT_ID_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_ADD_HABIT,
        handle_add_habit,
        schema=ADD_HABIT_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_MERGE_DAY,
        handle_merge_day,
        schema=MERGE_DAY_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_ADD_FOOD_ENTRY,
        handle_add_food_entry,
        schema=ADD_FOOD_ENTRY_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_REMOVE_FOOD_ENTRY,
        handle_remove_food_entry,
        schema=REMOVE_FOOD_ENTRY_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_ADD_ROUTINE_TASK,
        handle_add_routine_task,
        schema=ADD_ROUTINE_TASK_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_REMOVE_ROUTINE_TASK,
        handle_remove_routine_task,
        schema=REMOVE_ROUTINE_TASK_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_REORDER_ROUTINE_TASKS,
        handle_reorder_routine_tasks,
        schema=REORDER_ROUTINE_TASKS_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_UPDATE_NOTIFICATION_SETTINGS,
        handle_update_notification_settings,
        schema=UPDATE_NOTIFICATION_SETTINGS_SCHEMA,
    )
    hass.services.async_register(
        const.DOMAIN,
        const.SERVICE_RESCHEDULE_NOTIFICATIONS,
        handle_reschedule_notifications,
        schema=RESCHEDULE_NOTIFICATIONS_SCHEMA,
        supports_response=SupportsResponse.OPTIONAL,
    )

    const.LOGGER.info("INFO: Pillaflow services have been registered successfully")


async def async_unload_services(hass: HomeAssistant) -> None:
    """Unregister Pillaflow services when unloading the integration."""
    for service in SERVICES:
        if hass.services.has_service(const.DOMAIN, service):
            hass.services.async_remove(const.DOMAIN, service)

    const.LOGGER.info("INFO: Pillaflow services have been unregistered")
