"""Direct unit tests for PillaflowStore.

Covers loading, copy-on-read/write semantics, legacy key migration and
save error handling.
"""

# pylint: disable=protected-access  # Accessing _store, _data for testing
# pylint: disable=redefined-outer-name  # Pytest fixtures redefine names
# pylint: disable=unused-argument  # Test fixtures may be unused in simple tests

from unittest.mock import AsyncMock, patch

import pytest
from homeassistant.core import HomeAssistant

from custom_components.pillaflow import const
from custom_components.pillaflow.store import (
    PillaflowStore,
    food_logs_key,
    last_active_key,
    streak_frozen_key,
)


@pytest.fixture
def pillaflow_store(hass: HomeAssistant) -> PillaflowStore:
    """Return an uninitialized store instance."""
    return PillaflowStore(hass)


async def test_async_initialize_creates_default_structure(
    hass: HomeAssistant, pillaflow_store: PillaflowStore
) -> None:
    """Test that async_initialize creates default structure when no data exists."""
    with patch.object(pillaflow_store._store, "async_load", return_value=None):
        await pillaflow_store.async_initialize()

    assert pillaflow_store.keys() == []
    assert pillaflow_store._data[const.DATA_META] == {
        const.DATA_META_SCHEMA_VERSION: const.SCHEMA_VERSION_CURRENT
    }


async def test_async_initialize_loads_existing_data(
    hass: HomeAssistant, pillaflow_store: PillaflowStore
) -> None:
    """Test that async_initialize loads existing storage data."""
    existing = {
        const.DATA_META: {const.DATA_META_SCHEMA_VERSION: 1},
        const.DATA_CACHE: {const.CACHE_KEY_HABITS: [{"id": "h1"}]},
    }
    with patch.object(pillaflow_store._store, "async_load", return_value=existing):
        await pillaflow_store.async_initialize()

    assert await pillaflow_store.async_get(const.CACHE_KEY_HABITS) == [{"id": "h1"}]


async def test_get_set_remove_round_trip(
    hass: HomeAssistant, pillaflow_store: PillaflowStore
) -> None:
    """Values are copied in and out; removal of a missing key is a no-op."""
    with patch.object(pillaflow_store._store, "async_save", AsyncMock()) as save:
        value = {"foods": [1, 2]}
        await pillaflow_store.async_set("@pillaflow_x", value)
        value["foods"].append(3)

        stored = await pillaflow_store.async_get("@pillaflow_x")
        assert stored == {"foods": [1, 2]}
        stored["foods"].clear()
        assert await pillaflow_store.async_get("@pillaflow_x") == {"foods": [1, 2]}

        await pillaflow_store.async_remove("@pillaflow_x")
        await pillaflow_store.async_remove("@pillaflow_x")
        assert await pillaflow_store.async_get("@pillaflow_x", "gone") == "gone"
        assert save.await_count == 2


class TestLegacyMigration:
    """Moving @pillarup* keys onto @pillaflow* keys."""

    async def test_migrates_and_removes(
        self, hass: HomeAssistant, pillaflow_store: PillaflowStore
    ) -> None:
        pillaflow_store._data[const.DATA_CACHE] = {
            "@pillarup_habits": [{"id": "old"}],
            "@pillarup_tasks": [{"id": "t-old"}],
            "@pillaflow_tasks": [{"id": "t-new"}],
            "@pillarup_empty": None,
        }
        with patch.object(pillaflow_store._store, "async_save", AsyncMock()):
            result = await pillaflow_store.async_migrate_legacy_keys()

        assert result == {"migrated": 1, "removed": 3}
        assert await pillaflow_store.async_get(const.CACHE_KEY_HABITS) == [{"id": "old"}]
        assert await pillaflow_store.async_get(const.CACHE_KEY_TASKS) == [{"id": "t-new"}]
        assert not [key for key in pillaflow_store.keys() if key.startswith("@pillarup")]
        assert await pillaflow_store.async_get(const.CACHE_MIGRATION_FLAG_KEY) == "1"

    async def test_runs_once(
        self, hass: HomeAssistant, pillaflow_store: PillaflowStore
    ) -> None:
        pillaflow_store._data[const.DATA_CACHE] = {
            const.CACHE_MIGRATION_FLAG_KEY: "1",
            "@pillarup_habits": [{"id": "old"}],
        }
        with patch.object(pillaflow_store._store, "async_save", AsyncMock()) as save:
            result = await pillaflow_store.async_migrate_legacy_keys()

        assert result == {"migrated": 0, "removed": 0}
        assert "@pillarup_habits" in pillaflow_store.keys()
        save.assert_not_awaited()


async def test_save_errors_are_logged_not_raised(
    hass: HomeAssistant, pillaflow_store: PillaflowStore, caplog
) -> None:
    """A failing disk write keeps the in-memory value."""
    with patch.object(
        pillaflow_store._store, "async_save", AsyncMock(side_effect=OSError("disk full"))
    ):
        await pillaflow_store.async_set("@pillaflow_x", 1)

    assert await pillaflow_store.async_get("@pillaflow_x") == 1
    assert "file system error" in caplog.text


async def test_delete_storage_clears_cache(
    hass: HomeAssistant, pillaflow_store: PillaflowStore
) -> None:
    pillaflow_store._data[const.DATA_CACHE] = {"@pillaflow_x": 1}
    with patch.object(pillaflow_store._store, "async_remove", AsyncMock()) as remove:
        await pillaflow_store.async_delete_storage()

    remove.assert_awaited_once()
    assert pillaflow_store.keys() == []


def test_key_helpers() -> None:
    """Per-user keys are namespaced under the current prefix."""
    assert food_logs_key("u1") == "@pillaflow_health_food_logs_u1"
    assert food_logs_key(None) == "@pillaflow_health_food_logs_anon"
    assert last_active_key("u1") == "@pillaflow_last_active_u1"
    assert streak_frozen_key("u1") == "@pillaflow_streak_frozen_u1"
