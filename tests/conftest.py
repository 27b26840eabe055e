"""Shared fixtures for Pillaflow tests."""

from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.pillaflow import const
from custom_components.pillaflow.coordinator import PillaflowDataCoordinator
from custom_components.pillaflow.engines.schedule_engine import NotificationIntent
from custom_components.pillaflow.remote import PillaflowRemoteClient
from custom_components.pillaflow.store import PillaflowStore
from custom_components.pillaflow.utils import dt_utils

# pylint: disable=invalid-name
pytest_plugins = "pytest_homeassistant_custom_component"
# pylint: enable=invalid-name
# pylint: disable=redefined-outer-name


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations: Any) -> Any:
    """Enable custom integrations in tests."""
    # pylint: disable=unused-argument
    yield


@pytest.fixture(autouse=True)
def reset_default_timezone() -> Generator[None]:
    """Keep every test on UTC unless it sets its own zone."""
    dt_utils.set_default_timezone(ZoneInfo("UTC"))
    yield
    dt_utils.set_default_timezone(ZoneInfo("UTC"))


class FakeRegistrar:
    """In-memory trigger registrar that records what it was asked to arm."""

    def __init__(self) -> None:
        self.permission = True
        self.registered: list[NotificationIntent] = []
        self.cancel_calls = 0
        self.fail_tags: set[str] = set()

    async def async_request_permission(self) -> bool:
        return self.permission

    async def async_register(self, intent: NotificationIntent) -> str:
        if intent.tag in self.fail_tags:
            raise HomeAssistantError(f"cannot arm {intent.tag}")
        self.registered.append(intent)
        return intent.tag

    async def async_cancel_all(self) -> int:
        self.cancel_calls += 1
        count = len(self.registered)
        self.registered.clear()
        return count


@pytest.fixture
def fake_registrar() -> FakeRegistrar:
    """Return a registrar that never touches Home Assistant timers."""
    return FakeRegistrar()


@pytest.fixture
def mock_config_entry() -> MockConfigEntry:
    """Return a mock config entry with a signed-in user and no backend."""
    return MockConfigEntry(
        domain=const.DOMAIN,
        title=const.PILLAFLOW_TITLE,
        data={
            const.CONF_BACKEND_URL: "",
            const.CONF_API_KEY: "",
            const.CONF_USER_ID: "user-1",
            const.CONF_NOTIFY_SERVICE: const.DEFAULT_NOTIFY_SERVICE,
            const.CONF_IS_PREMIUM: False,
        },
        options={},
        entry_id="test_entry_id",
    )


@pytest.fixture
async def store(hass: HomeAssistant) -> PillaflowStore:
    """Return an initialized cache backed by the test storage mock."""
    pillaflow_store = PillaflowStore(hass)
    await pillaflow_store.async_initialize()
    return pillaflow_store


@pytest.fixture
def mock_remote() -> MagicMock:
    """Return a remote client whose calls all succeed with empty results."""
    remote = MagicMock(spec=PillaflowRemoteClient)
    remote.async_fetch.return_value = []
    remote.async_insert.return_value = None
    remote.async_update.return_value = []
    remote.async_delete.return_value = None
    remote.async_fetch_all.return_value = {}
    return remote


@pytest.fixture
async def coordinator(
    hass: HomeAssistant,
    mock_config_entry: MockConfigEntry,
    store: PillaflowStore,
    fake_registrar: FakeRegistrar,
) -> PillaflowDataCoordinator:
    """Return a set-up coordinator without a remote backend."""
    mock_config_entry.add_to_hass(hass)
    pillaflow_coordinator = PillaflowDataCoordinator(hass, mock_config_entry, store)
    pillaflow_coordinator.notification_manager.registrar = fake_registrar
    await pillaflow_coordinator.async_setup()
    # Day-key assertions stay on UTC regardless of the test instance's zone
    dt_utils.set_default_timezone(ZoneInfo("UTC"))
    return pillaflow_coordinator
