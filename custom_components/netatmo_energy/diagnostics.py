"""Provides diagnostics for Netatmo Energy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from homeassistant.components.diagnostics import async_redact_data

from .const import CONF_CLIENT_SECRET, CONF_REFRESH_TOKEN, CONF_TOKEN, DOMAIN

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

TO_REDACT = {CONF_CLIENT_SECRET, CONF_TOKEN, CONF_REFRESH_TOKEN}


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, config_entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a Netatmo Energy config entry."""
    bridge = hass.data[DOMAIN][config_entry.entry_id]["bridge"]
    coordinator = bridge.coordinator

    return {
        "entry": async_redact_data(dict(config_entry.data), TO_REDACT),
        "authorized": bridge.token_store.is_authorized(),
        "auth_flow_state": bridge.oauth.state.value,
        "refresh_armed": bridge.scheduler.armed,
        "polling": coordinator.polling,
        "homes": coordinator.home_ids,
        "module_rooms": coordinator.module_rooms,
        "devices": {
            device.id: {name: prop.value for name, prop in device.properties.items()}
            for device in coordinator.devices.values()
        },
    }
