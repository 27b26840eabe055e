"""Tests for HealthManager merges and food log mutations."""

# pylint: disable=redefined-outer-name

import asyncio
from unittest.mock import MagicMock

import pytest
from homeassistant.exceptions import ServiceValidationError

from custom_components.pillaflow import const
from custom_components.pillaflow.coordinator import PillaflowDataCoordinator
from custom_components.pillaflow.remote import PillaflowRemoteError
from custom_components.pillaflow.store import food_logs_key

DAY = "2024-01-01"


def food(entry_id, calories, name="Apple"):
    return {
        const.DATA_ID: entry_id,
        const.DATA_NAME: name,
        const.DATA_FOOD_CALORIES: calories,
        const.DATA_DATE: DAY,
    }


async def cached_logs(coordinator: PillaflowDataCoordinator) -> dict:
    return await coordinator.store.async_get(food_logs_key("user-1"), {})


class TestMergeDay:
    """Merging remote and cached entries for one day."""

    async def test_merge_writes_through(self, coordinator: PillaflowDataCoordinator) -> None:
        """Remote a:100 with cached {a, b:50} yields 150 kcal and updates the cache."""
        await coordinator.store.async_set(
            food_logs_key("user-1"), {DAY: [food("a", 100), food("b", 50, "Bread")]}
        )

        merged = await coordinator.health_manager.async_merge_day(DAY, [food("a", 100)])

        assert merged[const.DATA_HEALTH_CALORIES] == 150
        assert coordinator.health_data[DAY] == merged
        assert [f[const.DATA_ID] for f in (await cached_logs(coordinator))[DAY]] == [
            "a",
            "b",
        ]
        persisted = await coordinator.store.async_get(const.CACHE_KEY_HEALTH)
        assert persisted[DAY][const.DATA_HEALTH_CALORIES] == 150

    async def test_legacy_day_input_uses_canonical_key(
        self, coordinator: PillaflowDataCoordinator
    ) -> None:
        await coordinator.health_manager.async_merge_day("Mon Jan 01 2024", [food("a", 10)])
        assert DAY in coordinator.health_data
        assert "Mon Jan 01 2024" not in coordinator.health_data

    async def test_remote_fetch_failure_merges_cache_only(
        self, coordinator: PillaflowDataCoordinator, mock_remote: MagicMock
    ) -> None:
        coordinator.remote = mock_remote
        mock_remote.async_fetch.side_effect = PillaflowRemoteError("offline")
        await coordinator.store.async_set(food_logs_key("user-1"), {DAY: [food("b", 50)]})

        merged = await coordinator.health_manager.async_merge_day(DAY)

        assert merged[const.DATA_HEALTH_CALORIES] == 50
        mock_remote.async_fetch.assert_awaited_once()

    async def test_remote_rows_are_fetched_for_the_day(
        self, coordinator: PillaflowDataCoordinator, mock_remote: MagicMock
    ) -> None:
        coordinator.remote = mock_remote
        mock_remote.async_fetch.return_value = [
            {const.DATA_ID: "r1", const.DATA_NAME: "Soup", "calories": 200, "date": DAY}
        ]

        merged = await coordinator.health_manager.async_merge_day(DAY)

        assert merged[const.DATA_HEALTH_CALORIES] == 200
        kwargs = mock_remote.async_fetch.await_args.kwargs
        assert kwargs["filters"] == {const.DATA_DATE: DAY}

    async def test_invalid_date(self, coordinator: PillaflowDataCoordinator) -> None:
        with pytest.raises(ServiceValidationError) as err:
            await coordinator.health_manager.async_merge_day("whenever", [])
        assert err.value.translation_key == const.TRANS_KEY_ERROR_INVALID_DATE

    async def test_same_day_merges_are_serialized(
        self, coordinator: PillaflowDataCoordinator
    ) -> None:
        """Concurrent merges of one day both land; neither overwrites the other."""
        await asyncio.gather(
            coordinator.health_manager.async_merge_day(DAY, [food("a", 100)]),
            coordinator.health_manager.async_merge_day(DAY, [food("b", 50)]),
        )
        day = coordinator.health_data[DAY]
        assert sorted(f[const.DATA_ID] for f in day[const.DATA_HEALTH_FOODS]) == ["a", "b"]
        assert day[const.DATA_HEALTH_CALORIES] == 150


class TestFoodEntries:
    """Adding and removing food entries."""

    async def test_add_without_backend_gets_local_id(
        self, coordinator: PillaflowDataCoordinator
    ) -> None:
        day = await coordinator.health_manager.async_add_food_entry(
            DAY, {const.DATA_NAME: "Oats", const.DATA_FOOD_CALORIES: "150"}
        )
        foods = day[const.DATA_HEALTH_FOODS]
        assert len(foods) == 1
        assert foods[0][const.DATA_ID]
        assert day[const.DATA_HEALTH_CALORIES] == 150
        assert (await cached_logs(coordinator))[DAY][0][const.DATA_NAME] == "Oats"

    async def test_add_adopts_server_id_and_drops_empty_fields(
        self, coordinator: PillaflowDataCoordinator, mock_remote: MagicMock
    ) -> None:
        coordinator.remote = mock_remote
        mock_remote.async_insert.return_value = {const.DATA_ID: "srv-1"}

        day = await coordinator.health_manager.async_add_food_entry(
            DAY, {const.DATA_NAME: "Egg", const.DATA_FOOD_CALORIES: 70}
        )

        assert day[const.DATA_HEALTH_FOODS][0][const.DATA_ID] == "srv-1"
        collection, payload = mock_remote.async_insert.await_args.args
        assert collection == const.REMOTE_HEALTH_FOOD_ENTRIES
        assert payload[const.DATA_USER_ID] == "user-1"
        assert const.DATA_FOOD_PROTEIN_GRAMS not in payload

    async def test_add_keeps_entry_when_backend_fails(
        self, coordinator: PillaflowDataCoordinator, mock_remote: MagicMock
    ) -> None:
        coordinator.remote = mock_remote
        mock_remote.async_insert.side_effect = PillaflowRemoteError("offline")

        day = await coordinator.health_manager.async_add_food_entry(
            DAY, {const.DATA_NAME: "Egg", const.DATA_FOOD_CALORIES: 70}
        )
        assert day[const.DATA_HEALTH_CALORIES] == 70

    async def test_add_requires_name(self, coordinator: PillaflowDataCoordinator) -> None:
        with pytest.raises(ServiceValidationError) as err:
            await coordinator.health_manager.async_add_food_entry(DAY, {const.DATA_NAME: ""})
        assert err.value.translation_key == const.TRANS_KEY_ERROR_FOOD_NAME_REQUIRED

    async def test_add_requires_session(self, coordinator: PillaflowDataCoordinator) -> None:
        coordinator.user_id = None
        with pytest.raises(ServiceValidationError) as err:
            await coordinator.health_manager.async_add_food_entry(DAY, {const.DATA_NAME: "x"})
        assert err.value.translation_key == const.TRANS_KEY_ERROR_NOT_AUTHENTICATED

    async def test_remove_recomputes_calories(
        self, coordinator: PillaflowDataCoordinator, mock_remote: MagicMock
    ) -> None:
        await coordinator.health_manager.async_merge_day(
            DAY, [food("a", 100), food("b", 50)]
        )
        coordinator.remote = mock_remote
        mock_remote.async_delete.side_effect = PillaflowRemoteError("offline")

        day = await coordinator.health_manager.async_remove_food_entry(DAY, "a")

        assert day[const.DATA_HEALTH_CALORIES] == 50
        assert [f[const.DATA_ID] for f in (await cached_logs(coordinator))[DAY]] == ["b"]
        mock_remote.async_delete.assert_awaited_once_with(
            const.REMOTE_HEALTH_FOOD_ENTRIES,
            {const.DATA_ID: "a", const.DATA_USER_ID: "user-1"},
        )


async def test_build_health_map_skips_empty_logs(
    coordinator: PillaflowDataCoordinator,
) -> None:
    """Days with only a health row do not create empty food logs."""
    health_map = await coordinator.health_manager.async_build_health_map(
        [{const.DATA_ID: "h1", const.DATA_DATE: "2024-01-02", "calories": 90}],
        [{const.DATA_ID: "a", const.DATA_NAME: "Apple", "calories": 80, "date": DAY}],
    )

    assert set(health_map) == {DAY, "2024-01-02"}
    assert set(await cached_logs(coordinator)) == {DAY}
    assert coordinator.health_data == health_map


class BlockingCall:
    """Async side effect that parks until released."""

    def __init__(self, result):
        self.result = result
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, *args, **kwargs):
        self.entered.set()
        await self.release.wait()
        return self.result


class TestConcurrentSync:
    """A session rebuild interleaved with per-day mutations."""

    async def test_rebuild_during_add_keeps_both_entries(
        self, coordinator: PillaflowDataCoordinator, mock_remote: MagicMock
    ) -> None:
        """An entry synced from another device survives a pending local add."""
        coordinator.remote = mock_remote
        insert = BlockingCall({const.DATA_ID: "local-new"})
        mock_remote.async_insert.side_effect = insert

        adding = asyncio.create_task(
            coordinator.health_manager.async_add_food_entry(
                DAY, {const.DATA_NAME: "Egg", const.DATA_FOOD_CALORIES: 70}
            )
        )
        await insert.entered.wait()
        await coordinator.health_manager.async_build_health_map(
            None, [food("remote-1", 100, name="Soup")]
        )
        insert.release.set()
        day = await adding

        ids = sorted(f[const.DATA_ID] for f in day[const.DATA_HEALTH_FOODS])
        assert ids == ["local-new", "remote-1"]
        assert day[const.DATA_HEALTH_CALORIES] == 170
        assert coordinator.health_data[DAY] == day
        logged = sorted(f[const.DATA_ID] for f in (await cached_logs(coordinator))[DAY])
        assert logged == ["local-new", "remote-1"]

    async def test_rebuild_waits_for_day_being_merged(
        self, coordinator: PillaflowDataCoordinator, mock_remote: MagicMock
    ) -> None:
        coordinator.remote = mock_remote
        fetch = BlockingCall([food("late", 40)])
        mock_remote.async_fetch.side_effect = fetch

        merging = asyncio.create_task(coordinator.health_manager.async_merge_day(DAY))
        await fetch.entered.wait()
        rebuilding = asyncio.create_task(
            coordinator.health_manager.async_build_health_map(
                None, [food("sync-1", 60)]
            )
        )
        await asyncio.sleep(0)
        assert not rebuilding.done()

        fetch.release.set()
        await merging
        await rebuilding

        day = coordinator.health_data[DAY]
        assert sorted(f[const.DATA_ID] for f in day[const.DATA_HEALTH_FOODS]) == [
            "late",
            "sync-1",
        ]
        assert day[const.DATA_HEALTH_CALORIES] == 100

    async def test_rebuild_keeps_days_only_in_cached_logs(
        self, coordinator: PillaflowDataCoordinator
    ) -> None:
        """A day logged locally but absent from the sync survives the rebuild."""
        await coordinator.health_manager.async_add_food_entry(
            "2024-01-05", {const.DATA_NAME: "Tea", const.DATA_FOOD_CALORIES: 5}
        )

        await coordinator.health_manager.async_build_health_map([], [food("a", 80)])

        assert set(coordinator.health_data) == {DAY, "2024-01-05"}
        assert set(await cached_logs(coordinator)) == {DAY, "2024-01-05"}

    async def test_day_locks_are_released_after_use(
        self, coordinator: PillaflowDataCoordinator
    ) -> None:
        # pylint: disable=protected-access
        manager = coordinator.health_manager
        await asyncio.gather(
            manager.async_merge_day(DAY, [food("a", 100)]),
            manager.async_merge_day("2024-01-02", [food("b", 50)]),
            manager.async_add_food_entry(DAY, {const.DATA_NAME: "Egg"}),
        )
        await manager.async_build_health_map(None, None)

        assert len(manager._day_locks) == 0
