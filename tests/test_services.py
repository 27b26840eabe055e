"""Service handler tests run through a fully set up config entry."""

# pylint: disable=redefined-outer-name
# pylint: disable=protected-access  # Calling _get_coordinator directly

from collections.abc import AsyncGenerator

import pytest
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ServiceValidationError
from pytest_homeassistant_custom_component.common import MockConfigEntry
import voluptuous as vol

from custom_components.pillaflow import const
from custom_components.pillaflow.coordinator import PillaflowDataCoordinator
from custom_components.pillaflow.services import SERVICES, _get_coordinator
from custom_components.pillaflow.utils.dt_utils import dt_today_key


@pytest.fixture
async def init_integration(
    hass: HomeAssistant, mock_config_entry: MockConfigEntry
) -> AsyncGenerator[PillaflowDataCoordinator]:
    """Set up the entry and yield its coordinator; unload afterwards."""
    mock_config_entry.add_to_hass(hass)
    assert await hass.config_entries.async_setup(mock_config_entry.entry_id)
    await hass.async_block_till_done()

    yield hass.data[const.DOMAIN][mock_config_entry.entry_id][const.COORDINATOR]

    await hass.config_entries.async_unload(mock_config_entry.entry_id)
    await hass.async_block_till_done()


async def call(hass: HomeAssistant, service: str, data: dict | None = None, **kwargs):
    return await hass.services.async_call(
        const.DOMAIN, service, data or {}, blocking=True, **kwargs
    )


async def test_all_services_registered(
    hass: HomeAssistant, init_integration: PillaflowDataCoordinator
) -> None:
    """Every service is available once the entry is loaded."""
    for service in SERVICES:
        assert hass.services.has_service(const.DOMAIN, service)


class TestHabitServices:
    """Habit queries and mutations."""

    async def test_add_toggle_and_query(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        await call(
            hass,
            const.SERVICE_ADD_HABIT,
            {
                const.FIELD_TITLE: "Meditate",
                const.FIELD_REPEAT: const.REPEAT_WEEKLY,
                const.FIELD_DAYS: ["Mon", "Thu"],
            },
        )
        habit = init_integration.habits[0]
        assert habit[const.DATA_HABIT_DAYS] == ["Mon", "Thu"]
        habit_id = habit[const.DATA_ID]

        await call(hass, const.SERVICE_TOGGLE_HABIT_COMPLETION, {const.FIELD_HABIT_ID: habit_id})

        response = await call(
            hass,
            const.SERVICE_IS_HABIT_COMPLETED_TODAY,
            {const.FIELD_HABIT_ID: habit_id},
            return_response=True,
        )
        assert response == {"habit_id": habit_id, "completed": True}

        response = await call(hass, const.SERVICE_GET_BEST_STREAK, return_response=True)
        assert response == {"best_streak": 1}

    async def test_unknown_habit_raises(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        with pytest.raises(ServiceValidationError):
            await call(
                hass,
                const.SERVICE_TOGGLE_HABIT_COMPLETION,
                {const.FIELD_HABIT_ID: "missing"},
            )

    async def test_add_habit_rejects_unknown_repeat(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        with pytest.raises(vol.Invalid):
            await call(
                hass,
                const.SERVICE_ADD_HABIT,
                {const.FIELD_TITLE: "x", const.FIELD_REPEAT: "Hourly"},
            )


class TestHealthServices:
    """Food entry services."""

    async def test_add_and_remove_food(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        await call(
            hass,
            const.SERVICE_ADD_FOOD_ENTRY,
            {const.FIELD_DATE: "2024-01-01", const.FIELD_NAME: "Soup", const.FIELD_CALORIES: 200},
        )
        day = init_integration.health_data["2024-01-01"]
        assert day[const.DATA_HEALTH_CALORIES] == 200
        food_id = day[const.DATA_HEALTH_FOODS][0][const.DATA_ID]

        await call(
            hass,
            const.SERVICE_REMOVE_FOOD_ENTRY,
            {const.FIELD_DATE: "2024-01-01", const.FIELD_FOOD_ID: food_id},
        )
        assert init_integration.health_data["2024-01-01"][const.DATA_HEALTH_CALORIES] == 0

    async def test_merge_day_invalid_date(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        with pytest.raises(ServiceValidationError):
            await call(hass, const.SERVICE_MERGE_DAY, {const.FIELD_DATE: "someday"})


class TestRoutineServices:
    """Routine task services."""

    async def test_add_and_reorder(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        init_integration.routines = [
            {const.DATA_ID: "r1", const.DATA_NAME: "Evening", const.DATA_ROUTINE_TASKS: []}
        ]
        for name in ("Brush", "Read"):
            await call(
                hass,
                const.SERVICE_ADD_ROUTINE_TASK,
                {const.FIELD_ROUTINE_ID: "r1", const.FIELD_NAME: name},
            )
        tasks = init_integration.routines[0][const.DATA_ROUTINE_TASKS]
        ids = [task[const.DATA_ID] for task in tasks]

        await call(
            hass,
            const.SERVICE_REORDER_ROUTINE_TASKS,
            {const.FIELD_ROUTINE_ID: "r1", const.FIELD_TASK_IDS: list(reversed(ids))},
        )
        names = [t[const.DATA_NAME] for t in init_integration.routines[0][const.DATA_ROUTINE_TASKS]]
        assert names == ["Read", "Brush"]

        with pytest.raises(ServiceValidationError):
            await call(
                hass,
                const.SERVICE_REORDER_ROUTINE_TASKS,
                {const.FIELD_ROUTINE_ID: "r1", const.FIELD_TASK_IDS: ids[:1]},
            )

        await call(
            hass,
            const.SERVICE_REMOVE_ROUTINE_TASK,
            {const.FIELD_ROUTINE_ID: "r1", const.FIELD_TASK_ID: ids[0]},
        )
        remaining = init_integration.routines[0][const.DATA_ROUTINE_TASKS]
        assert [t[const.DATA_NAME] for t in remaining] == ["Read"]
        assert remaining[0][const.DATA_ROUTINE_TASK_POSITION] == 0


class TestQueryServices:
    """Task and finance queries."""

    async def test_upcoming_tasks_report_overlaps(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        today = dt_today_key()
        init_integration.tasks = [
            {"id": "a", "title": "A", "date": today, "time": "09:00", "duration_minutes": 60},
            {"id": "b", "title": "B", "date": today, "time": "09:30", "duration_minutes": 30},
            {"id": "c", "title": "C", "date": today, "time": "11:00", "duration_minutes": 30},
        ]

        response = await call(hass, const.SERVICE_GET_UPCOMING_TASKS, return_response=True)

        overlaps = {task["id"]: task["overlaps"] for task in response["tasks"]}
        assert overlaps == {"a": ["b"], "b": ["a"], "c": []}

    async def test_finance_summary(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        init_integration.transactions = [
            {"id": "x1", "type": "income", "amount": 200, "date": "2024-01-01"},
            {"id": "x2", "type": "expense", "amount": 50, "date": "2024-01-01"},
        ]

        response = await call(
            hass,
            const.SERVICE_GET_FINANCE_SUMMARY,
            {const.FIELD_DATE: "2024-01-01"},
            return_response=True,
        )

        assert response["summary"] == {"income": 200, "expenses": 50, "balance": 150}
        assert response["budgets"] == []


class TestNotificationServices:
    """Settings and rescheduling."""

    async def test_update_settings_and_reschedule(
        self, hass: HomeAssistant, init_integration: PillaflowDataCoordinator
    ) -> None:
        await call(
            hass,
            const.SERVICE_UPDATE_NOTIFICATION_SETTINGS,
            {const.SETTING_TASK_REMINDERS_ENABLED: False},
        )
        await hass.async_block_till_done()
        assert init_integration.settings.task_reminders_enabled is False

        response = await call(
            hass, const.SERVICE_RESCHEDULE_NOTIFICATIONS, return_response=True
        )
        # No notify service is registered in the test instance
        assert response == {
            "state": const.SCHEDULER_STATE_INACTIVE,
            "registered": 0,
            "failed": 0,
        }

        assert await call(hass, const.SERVICE_RESCHEDULE_NOTIFICATIONS) is None


async def test_get_coordinator_requires_loaded_entry(hass: HomeAssistant) -> None:
    """Calling a handler with no loaded entry raises not_loaded."""
    with pytest.raises(ServiceValidationError) as err:
        _get_coordinator(hass)
    assert err.value.translation_key == const.TRANS_KEY_ERROR_NOT_LOADED
