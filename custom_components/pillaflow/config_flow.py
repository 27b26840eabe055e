# File: config_flow.py
"""Config flow for the Pillaflow integration.

A single step collects the backend connection, the signed-in user id and
the notify service used for delivery. The options flow only carries the
refresh interval.
"""

from __future__ import annotations

from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.helpers import config_validation as cv

from . import const
from .remote import PillaflowRemoteClient, PillaflowRemoteError

# pylint: disable=abstract-method


def _user_schema(defaults: dict[str, Any]) -> vol.Schema:
    return vol.Schema(
        {
            vol.Optional(
                const.CONF_BACKEND_URL,
                default=defaults.get(const.CONF_BACKEND_URL, ""),
            ): cv.string,
            vol.Optional(
                const.CONF_API_KEY, default=defaults.get(const.CONF_API_KEY, "")
            ): cv.string,
            vol.Optional(
                const.CONF_USER_ID, default=defaults.get(const.CONF_USER_ID, "")
            ): cv.string,
            vol.Optional(
                const.CONF_NOTIFY_SERVICE,
                default=defaults.get(
                    const.CONF_NOTIFY_SERVICE, const.DEFAULT_NOTIFY_SERVICE
                ),
            ): cv.string,
            vol.Optional(
                const.CONF_IS_PREMIUM,
                default=defaults.get(const.CONF_IS_PREMIUM, False),
            ): cv.boolean,
        }
    )


class PillaflowConfigFlow(config_entries.ConfigFlow, domain=const.DOMAIN):
    """Config Flow for Pillaflow."""

    VERSION = 1

    async def async_step_user(self, user_input: dict[str, Any] | None = None):
        """Collect the backend connection and session."""
        if any(self._async_current_entries()):
            return self.async_abort(reason=const.TRANS_KEY_ERROR_SINGLE_INSTANCE)

        errors: dict[str, str] = {}
        if user_input is not None:
            backend_url = user_input.get(const.CONF_BACKEND_URL, "").strip()
            user_input[const.CONF_BACKEND_URL] = backend_url
            if backend_url and user_input.get(const.CONF_USER_ID):
                client = PillaflowRemoteClient(
                    self.hass, backend_url, user_input.get(const.CONF_API_KEY, "")
                )
                try:
                    await client.async_fetch(
                        const.REMOTE_USER_SETTINGS, user_input[const.CONF_USER_ID]
                    )
                except PillaflowRemoteError as err:
                    const.LOGGER.warning(
                        "WARNING: Backend validation failed for %s: %s",
                        backend_url,
                        err,
                    )
                    errors["base"] = const.TRANS_KEY_ERROR_CANNOT_CONNECT

            if not errors:
                return self.async_create_entry(
                    title=const.PILLAFLOW_TITLE, data=user_input
                )

        return self.async_show_form(
            step_id="user",
            data_schema=_user_schema(user_input or {}),
            errors=errors,
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        """Return the Options Flow."""
        return PillaflowOptionsFlowHandler()


class PillaflowOptionsFlowHandler(config_entries.OptionsFlow):
    """Options flow: refresh interval in minutes."""

    async def async_step_init(self, user_input: dict[str, Any] | None = None):
        """Show and save the refresh interval."""
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        current = self.config_entry.options.get(
            const.CONF_UPDATE_INTERVAL, const.DEFAULT_UPDATE_INTERVAL
        )
        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Required(const.CONF_UPDATE_INTERVAL, default=current): vol.All(
                        vol.Coerce(int), vol.Range(min=1, max=1440)
                    ),
                }
            ),
        )
