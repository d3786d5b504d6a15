"""
Configuration flow for Netatmo Energy integration.

This module collects the client credentials registered with Netatmo and
the URL the provider should redirect to. Authorization itself happens once
the entry is set up.
"""

import logging
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.helpers.network import NoURLAvailableError, get_url

from .const import (
    CONF_BASE_URL,
    CONF_CLIENT_ID,
    CONF_CLIENT_SECRET,
    CONF_EXPIRES,
    CONF_REFRESH_TOKEN,
    CONF_TOKEN,
    DOMAIN,
    ERROR_INVALID_BASE_URL,
    ERROR_INVALID_CREDENTIALS,
)

_LOGGER = logging.getLogger(__name__)


class NetatmoEnergyConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Netatmo Energy integration."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input containing client id, secret and base URL.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            client_id = user_input[CONF_CLIENT_ID].strip()
            client_secret = user_input[CONF_CLIENT_SECRET].strip()
            base_url = user_input[CONF_BASE_URL].strip().rstrip("/")

            if not client_id or not client_secret:
                _LOGGER.warning("Missing client credentials")
                errors["base"] = ERROR_INVALID_CREDENTIALS
            elif not base_url.startswith(("http://", "https://")):
                _LOGGER.warning("Invalid base URL: %s", base_url)
                errors["base"] = ERROR_INVALID_BASE_URL
            else:
                await self.async_set_unique_id(client_id)
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title="Netatmo Energy",
                    data={
                        CONF_CLIENT_ID: client_id,
                        CONF_CLIENT_SECRET: client_secret,
                        CONF_BASE_URL: base_url,
                        CONF_TOKEN: "",
                        CONF_EXPIRES: None,
                        CONF_REFRESH_TOKEN: "",
                    },
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_CLIENT_ID): str,
                    vol.Required(CONF_CLIENT_SECRET): str,
                    vol.Required(
                        CONF_BASE_URL, default=self._default_base_url()
                    ): str,
                }
            ),
            errors=errors,
        )

    def _default_base_url(self) -> str:
        """Return Home Assistant's own URL, preferring the external one."""
        try:
            return get_url(self.hass, prefer_external=True)
        except NoURLAvailableError:
            return ""
