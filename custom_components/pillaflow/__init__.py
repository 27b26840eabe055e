# File: __init__.py
"""Initialization file for the Pillaflow integration.

Handles setting up the integration, including loading the cache, creating the
remote client and coordinator, and registering services.
"""

from __future__ import annotations

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady

from . import const
from .coordinator import PillaflowDataCoordinator
from .remote import PillaflowRemoteClient
from .services import async_setup_services, async_unload_services
from .store import PillaflowStore


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up the integration from a config entry."""
    const.LOGGER.info("INFO: Starting setup for Pillaflow entry: %s", entry.entry_id)

    store = PillaflowStore(hass, const.STORAGE_KEY)
    await store.async_initialize()

    remote = None
    if entry.data.get(const.CONF_BACKEND_URL):
        remote = PillaflowRemoteClient(
            hass,
            entry.data[const.CONF_BACKEND_URL],
            entry.data.get(const.CONF_API_KEY, ""),
        )

    coordinator = PillaflowDataCoordinator(hass, entry, store, remote)
    await coordinator.async_setup()

    try:
        await coordinator.async_config_entry_first_refresh()
    except ConfigEntryNotReady as e:
        const.LOGGER.error("ERROR: Failed to refresh coordinator data: %s", e)
        raise

    hass.data.setdefault(const.DOMAIN, {})[entry.entry_id] = {
        const.COORDINATOR: coordinator,
        const.STORE: store,
    }

    async_setup_services(hass)

    entry.async_on_unload(entry.add_update_listener(async_reload_entry))

    const.LOGGER.info("INFO: Pillaflow setup complete for entry: %s", entry.entry_id)
    return True


async def async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the entry after its options change."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    const.LOGGER.info("INFO: Unloading Pillaflow entry: %s", entry.entry_id)

    hass.data[const.DOMAIN].pop(entry.entry_id, None)
    if not hass.data[const.DOMAIN]:
        await async_unload_services(hass)

    return True


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Handle removal of a config entry."""
    const.LOGGER.info("INFO: Removing Pillaflow entry: %s", entry.entry_id)

    store = PillaflowStore(hass, const.STORAGE_KEY)
    await store.async_delete_storage()

    const.LOGGER.info("INFO: Pillaflow entry data cleared: %s", entry.entry_id)
