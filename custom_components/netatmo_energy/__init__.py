"""Netatmo Energy thermostats and radio valves."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homeassistant.const import Platform
from homeassistant.exceptions import ConfigEntryNotReady

from .api import create_session_client
from .bridge import NetatmoEnergyBridge
from .const import CONF_CLIENT_ID, CONF_CLIENT_SECRET, DOMAIN
from .view import NetatmoEnergyCallbackView

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.typing import ConfigType

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.CLIMATE, Platform.SENSOR]


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Register the OAuth callback endpoint."""
    hass.http.register_view(NetatmoEnergyCallbackView(hass))
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Netatmo Energy integration for entry %s", entry.entry_id)

    if CONF_CLIENT_ID not in entry.data or CONF_CLIENT_SECRET not in entry.data:
        _LOGGER.error("Missing client credentials for entry %s", entry.entry_id)
        return False

    session = create_session_client(hass)
    bridge = NetatmoEnergyBridge(hass, entry, session)
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "session": session,
        "bridge": bridge,
    }

    if not await bridge.async_start():
        await bridge.async_shutdown()
        hass.data[DOMAIN].pop(entry.entry_id)
        error_msg = "Netatmo is not reachable, retrying later"
        raise ConfigEntryNotReady(error_msg)

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info(
        "Successfully setup Netatmo Energy integration for entry %s", entry.entry_id
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Netatmo Energy integration for entry %s", entry.entry_id)

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        entry_data = hass.data[DOMAIN].pop(entry.entry_id)
        await entry_data["bridge"].async_shutdown()
        _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    else:
        _LOGGER.warning("Failed to unload some platforms for entry %s", entry.entry_id)

    return unload_ok
