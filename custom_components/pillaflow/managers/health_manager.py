"""Health Manager - day merges and food log mutations.

Owns the write-through between the merged health map and the cached food
logs. Merges for the same day key are serialized with a per-day lock; merges
for different days run independently.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any
import uuid

from homeassistant.exceptions import ServiceValidationError

from .. import const
from ..engines.reconcile_engine import ReconcileEngine
from ..remote import PillaflowRemoteError
from ..store import food_logs_key
from ..utils.dt_utils import dt_day_key
from .base_manager import BaseManager, KeyedLock

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from ..coordinator import PillaflowDataCoordinator
    from ..type_defs import FoodEntryData, FoodLogs, HealthDayData, HealthMap


class HealthManager(BaseManager):
    """Reconciles remote and cached food entries per day."""

    def __init__(
        self, hass: HomeAssistant, coordinator: PillaflowDataCoordinator
    ) -> None:
        """Initialize the health manager."""
        super().__init__(hass, coordinator)
        self._day_locks = KeyedLock()

    async def async_setup(self) -> None:
        """No event subscriptions; merges are driven by sync and services."""
        const.LOGGER.debug("DEBUG: HealthManager ready for entry %s", self.entry_id)

    @staticmethod
    def _require_day_key(day: Any) -> str:
        day_key = dt_day_key(day)
        if not day_key:
            raise ServiceValidationError(
                translation_domain=const.DOMAIN,
                translation_key=const.TRANS_KEY_ERROR_INVALID_DATE,
                translation_placeholders={"date": str(day)},
            )
        return day_key

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    async def async_load_food_logs(self) -> FoodLogs:
        """Return the cached food logs for the current user."""
        logs = await self.coordinator.store.async_get(
            food_logs_key(self.coordinator.user_id), {}
        )
        return logs if isinstance(logs, dict) else {}

    async def _async_write_day(self, day_key: str, merged: HealthDayData) -> None:
        """Publish a merged day and write its food list through to the cache."""
        self.coordinator.health_data[day_key] = merged
        logs = await self.async_load_food_logs()
        logs[day_key] = list(merged[const.DATA_HEALTH_FOODS])
        await self.coordinator.store.async_set(
            food_logs_key(self.coordinator.user_id), logs
        )
        await self.coordinator.store.async_set(
            const.CACHE_KEY_HEALTH, self.coordinator.health_data
        )
        self.coordinator.async_update_listeners()
        self.emit(const.SIGNAL_SUFFIX_HEALTH_CHANGED, day=day_key)

    # -------------------------------------------------------------------------
    # Merges
    # -------------------------------------------------------------------------

    async def _async_fetch_remote_foods(self, day_key: str) -> list[FoodEntryData]:
        """Fetch one day's food rows; an unreachable backend yields []."""
        remote = self.coordinator.remote
        user_id = self.coordinator.user_id
        if remote is None or not user_id:
            return []
        try:
            rows = await remote.async_fetch(
                const.REMOTE_HEALTH_FOOD_ENTRIES,
                user_id,
                order="created_at.asc",
                filters={const.DATA_DATE: day_key},
            )
        except PillaflowRemoteError as err:
            const.LOGGER.warning(
                "WARNING: Food entry fetch for %s failed, merging cache only: %s",
                day_key,
                err,
            )
            return []
        return [ReconcileEngine.map_food_row(row) for row in rows]

    async def async_merge_day(
        self,
        day: Any,
        remote_entries: Iterable[FoodEntryData] | None = None,
    ) -> HealthDayData:
        """Merge remote and cached food entries for one day.

        When remote_entries is None the day is fetched from the backend first;
        a failed fetch merges the cached entries alone. The merged food list
        is written through to the cache under the same day key.
        """
        day_key = self._require_day_key(day)
        async with self._day_locks.hold(day_key):
            if remote_entries is None:
                remote_entries = await self._async_fetch_remote_foods(day_key)
            logs = await self.async_load_food_logs()
            merged = ReconcileEngine.merge_day(
                remote_entries,
                logs.get(day_key, []),
                self.coordinator.health_data.get(day_key),
            )
            await self._async_write_day(day_key, merged)

        const.LOGGER.debug(
            "DEBUG: Merged %s food entries for %s (calories=%s)",
            len(merged[const.DATA_HEALTH_FOODS]),
            day_key,
            merged[const.DATA_HEALTH_CALORIES],
        )
        return merged

    async def async_build_health_map(
        self,
        health_rows: Iterable[Mapping[str, Any]] | None,
        food_rows: Iterable[Mapping[str, Any]] | None,
    ) -> HealthMap:
        """Rebuild the whole health map at session start.

        Either row source may be None (fetch failed); the cached food logs
        still contribute. Every merged day's food list is written back.

        Each affected day is locked while it is rebuilt, so a food entry
        added or removed meanwhile is folded in rather than overwritten.
        """
        health_rows = list(health_rows) if health_rows is not None else None
        food_rows = list(food_rows) if food_rows is not None else None

        logs = await self.async_load_food_logs()
        day_keys = set(ReconcileEngine.build_health_map(health_rows, food_rows, logs))
        day_keys.update(self.coordinator.health_data)

        async with self._day_locks.hold_many(day_keys):
            # Re-read under the locks; no await until health_data is replaced
            logs = await self.async_load_food_logs()
            health_map = ReconcileEngine.build_health_map(health_rows, food_rows, logs)
            merged_logs: FoodLogs = {
                day_key: list(day[const.DATA_HEALTH_FOODS])
                for day_key, day in health_map.items()
                if day[const.DATA_HEALTH_FOODS]
            }
            # Days outside the locked set were written by a concurrent mutation
            for day_key, day in self.coordinator.health_data.items():
                if day_key not in day_keys:
                    health_map[day_key] = day
                    if day[const.DATA_HEALTH_FOODS]:
                        merged_logs[day_key] = list(day[const.DATA_HEALTH_FOODS])

            self.coordinator.health_data.clear()
            self.coordinator.health_data.update(health_map)
            await self.coordinator.store.async_set(
                food_logs_key(self.coordinator.user_id), merged_logs
            )
            await self.coordinator.store.async_set(
                const.CACHE_KEY_HEALTH, self.coordinator.health_data
            )

        const.LOGGER.debug(
            "DEBUG: Rebuilt health map with %s days", len(self.coordinator.health_data)
        )
        return self.coordinator.health_data

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def async_add_food_entry(
        self, day: Any, entry: Mapping[str, Any]
    ) -> HealthDayData:
        """Log a food entry for a day.

        The entry is inserted remotely when possible so it carries a server
        id; otherwise it keeps a locally generated id and is reconciled later.

        Raises:
            ServiceValidationError: No session, invalid date, or missing name.
        """
        self.coordinator.require_session()
        day_key = self._require_day_key(day)
        try:
            food = ReconcileEngine.normalize_food_entry(entry, day_key)
        except ValueError as err:
            raise ServiceValidationError(
                translation_domain=const.DOMAIN,
                translation_key=const.TRANS_KEY_ERROR_FOOD_NAME_REQUIRED,
            ) from err

        current = self.coordinator.health_data.get(day_key)
        if current and current.get(const.DATA_HEALTH_DAY_ID):
            food[const.DATA_HEALTH_DAY_ID] = current[const.DATA_HEALTH_DAY_ID]
        food[const.DATA_ID] = await self._async_insert_remote_food(food) or str(
            uuid.uuid4()
        )

        # The day may have been re-merged during the insert
        async with self._day_locks.hold(day_key):
            updated = ReconcileEngine.add_food_entry(
                self.coordinator.health_data.get(day_key), food
            )
            await self._async_write_day(day_key, updated)
        return updated

    async def _async_insert_remote_food(self, food: FoodEntryData) -> str | None:
        remote = self.coordinator.remote
        if remote is None:
            return None
        payload = {
            const.DATA_USER_ID: self.coordinator.user_id,
            const.DATA_HEALTH_DAY_ID: food.get(const.DATA_HEALTH_DAY_ID),
            const.DATA_DATE: food.get(const.DATA_DATE),
            const.DATA_NAME: food.get(const.DATA_NAME),
            const.DATA_FOOD_CALORIES: food.get(const.DATA_FOOD_CALORIES),
            const.DATA_FOOD_PROTEIN_GRAMS: food.get(const.DATA_FOOD_PROTEIN_GRAMS),
            const.DATA_FOOD_CARBS_GRAMS: food.get(const.DATA_FOOD_CARBS_GRAMS),
            const.DATA_FOOD_FAT_GRAMS: food.get(const.DATA_FOOD_FAT_GRAMS),
            const.DATA_CREATED_AT: food.get(const.DATA_FOOD_TIMESTAMP),
        }
        try:
            row = await remote.async_insert(
                const.REMOTE_HEALTH_FOOD_ENTRIES,
                {key: value for key, value in payload.items() if value is not None},
            )
        except PillaflowRemoteError as err:
            const.LOGGER.warning(
                "WARNING: Saving food entry remotely failed, kept locally: %s", err
            )
            return None
        return str(row[const.DATA_ID]) if row and row.get(const.DATA_ID) else None

    async def async_remove_food_entry(self, day: Any, food_id: str) -> HealthDayData:
        """Remove a food entry (matched by its identity) from a day."""
        self.coordinator.require_session()
        day_key = self._require_day_key(day)

        async with self._day_locks.hold(day_key):
            updated = ReconcileEngine.remove_food_entry(
                self.coordinator.health_data.get(day_key), food_id
            )
            await self._async_write_day(day_key, updated)

        remote = self.coordinator.remote
        if remote is not None:
            try:
                await remote.async_delete(
                    const.REMOTE_HEALTH_FOOD_ENTRIES,
                    {
                        const.DATA_ID: food_id,
                        const.DATA_USER_ID: self.coordinator.user_id,
                    },
                )
            except PillaflowRemoteError as err:
                const.LOGGER.warning(
                    "WARNING: Removing food entry %s remotely failed: %s", food_id, err
                )
        return updated
