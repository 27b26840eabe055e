# File: store.py
"""Handles the durable key/value cache for the Pillaflow integration.

Uses Home Assistant's Storage helper to keep cached records (habits, routines,
food logs, settings, ...) across restarts. Every value is a JSON-compatible
blob stored under a namespaced key such as `@pillaflow_habits`.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from homeassistant.helpers.storage import Store

from . import const

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant


def food_logs_key(user_id: str | None) -> str:
    """Return the cache key for a user's food logs."""
    return f"{const.CACHE_KEY_HEALTH_FOOD_LOGS}_{user_id or 'anon'}"


def last_active_key(user_id: str) -> str:
    """Return the cache key for a user's last-active timestamp."""
    return f"{const.CACHE_KEY_LAST_ACTIVE_PREFIX}{user_id}"


def streak_frozen_key(user_id: str) -> str:
    """Return the cache key for a user's streak freeze flag."""
    return f"{const.CACHE_KEY_STREAK_FROZEN_PREFIX}{user_id}"


class PillaflowStore:
    """Key/value cache on top of Home Assistant's Store API.

    Reads are served from memory; every write or removal is saved through
    to disk immediately.
    """

    def __init__(
        self, hass: HomeAssistant, storage_key: str = const.STORAGE_KEY
    ) -> None:
        """Initialize the store.

        Args:
            hass: Home Assistant core object.
            storage_key: Key to identify storage location (default: const.STORAGE_KEY).
        """
        self.hass = hass
        self._storage_key = storage_key
        self._store: Store = Store(hass, const.STORAGE_VERSION, storage_key)
        self._data: dict[str, Any] = self.get_default_structure()

    @staticmethod
    def get_default_structure() -> dict[str, Any]:
        """Return the empty storage document."""
        return {
            const.DATA_META: {
                const.DATA_META_SCHEMA_VERSION: const.SCHEMA_VERSION_CURRENT,
            },
            const.DATA_CACHE: {},
        }

    @property
    def _cache(self) -> dict[str, Any]:
        return self._data.setdefault(const.DATA_CACHE, {})

    async def async_initialize(self) -> None:
        """Load data from storage during startup.

        If no data exists, initializes with an empty structure.
        """
        const.LOGGER.debug("DEBUG: PillaflowStore: Loading data from storage")
        existing_data = await self._store.async_load()

        if existing_data is None:
            const.LOGGER.info("INFO: No existing storage found. Initializing new data")
            self._data = PillaflowStore.get_default_structure()
        else:
            self._data = existing_data
            self._data.setdefault(const.DATA_CACHE, {})
            const.LOGGER.debug(
                "DEBUG: Loaded existing cache from storage: %s keys",
                len(self._cache),
            )

    def get_storage_path(self) -> str:
        """Return the absolute path to the storage file."""
        return self._store.path

    def keys(self) -> list[str]:
        """Return all cache keys."""
        return list(self._cache)

    async def async_get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the value stored under key, or default."""
        if key not in self._cache:
            return default
        return copy.deepcopy(self._cache[key])

    async def async_set(self, key: str, value: Any) -> None:
        """Store value under key and save."""
        self._cache[key] = copy.deepcopy(value)
        await self.async_save()

    async def async_remove(self, key: str) -> None:
        """Remove key (no-op when absent) and save."""
        if key in self._cache:
            del self._cache[key]
            await self.async_save()

    async def async_migrate_legacy_keys(self) -> dict[str, int]:
        """Move legacy `@pillarup*` keys to their `@pillaflow*` names once.

        Runs only while the migration flag key is unset. A legacy value is
        copied only when the current key is absent; the legacy key is always
        removed. Sets the flag when done.

        Returns:
            {"migrated": <values copied>, "removed": <legacy keys removed>}
        """
        if self._cache.get(const.CACHE_MIGRATION_FLAG_KEY) == "1":
            return {"migrated": 0, "removed": 0}

        legacy_keys = [
            key for key in self._cache if key.startswith(const.CACHE_LEGACY_PREFIX)
        ]

        migrated = 0
        removed = 0
        for index in range(0, len(legacy_keys), const.CACHE_MIGRATION_BATCH_SIZE):
            for legacy_key in legacy_keys[
                index : index + const.CACHE_MIGRATION_BATCH_SIZE
            ]:
                current_key = (
                    f"{const.CACHE_PREFIX}{legacy_key[len(const.CACHE_LEGACY_PREFIX) :]}"
                )
                legacy_value = self._cache.pop(legacy_key)
                removed += 1
                if legacy_value is None:
                    continue
                if self._cache.get(current_key) is None:
                    self._cache[current_key] = legacy_value
                    migrated += 1

        self._cache[const.CACHE_MIGRATION_FLAG_KEY] = "1"
        await self.async_save()

        if removed:
            const.LOGGER.info(
                "INFO: Migrated %s legacy cache keys (%s removed)", migrated, removed
            )
        return {"migrated": migrated, "removed": removed}

    async def async_save(self) -> None:
        """Save the current data structure to storage asynchronously.

        Errors are logged but do not stop execution:
            OSError: File system issues prevent saving.
            TypeError: Data contains non-serializable types.
            ValueError: Data is invalid for JSON serialization.
        """
        try:
            await self._store.async_save(self._data)
            const.LOGGER.debug("DEBUG: Cache saved successfully to storage")
        except OSError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to file system error: %s. "
                "Check disk space and file permissions for %s",
                err,
                self._store.path,
            )
        except TypeError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to non-serializable data: %s",
                err,
            )
        except ValueError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to invalid data format: %s",
                err,
            )

    async def async_delete_storage(self) -> None:
        """Clear the cache and remove the storage file from disk."""
        const.LOGGER.warning("WARNING: Clearing all Pillaflow cached data")
        self._data = PillaflowStore.get_default_structure()

        try:
            await self._store.async_remove()
            const.LOGGER.info(
                "INFO: Storage file removed successfully: %s", self._store.path
            )
        except OSError as err:
            const.LOGGER.error(
                "ERROR: Failed to remove storage file %s: %s. Check file permissions",
                self._store.path,
                err,
            )
