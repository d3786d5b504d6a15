"""Coordinator keeping Netatmo Energy devices in sync with the cloud."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.event import async_track_time_interval

from . import api
from .const import (
    DOMAIN,
    HEATING_OFF,
    HEATING_ON,
    MODE_AUTO,
    MODE_OFF,
    POLL_INTERVAL,
    PROPERTY_HEATING,
    PROPERTY_MODE,
    PROPERTY_TARGET_TEMPERATURE,
    PROPERTY_TEMPERATURE,
    PROVIDER_OFF_MODES,
    SUPPORTED_MODULE_TYPES,
)
from .device import RoomDevice
from .util import battery_to_percent, signal_to_percent

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from homeassistant.core import HomeAssistant

    from .models import HomeStatus, Module

_LOGGER = logging.getLogger(__name__)


def signal_device_added(entry_id: str) -> str:
    """Return the dispatcher signal announcing new devices of an entry."""
    return f"{DOMAIN}_device_added_{entry_id}"


def signal_module_added(entry_id: str) -> str:
    """Return the dispatcher signal announcing modules of existing devices."""
    return f"{DOMAIN}_module_added_{entry_id}"


def device_key(home_id: str, room_id: str) -> str:
    """Return the lookup key of a room device."""
    return f"{home_id}-{room_id}"


def mode_from_setpoint(setpoint_mode: str | None) -> str:
    """Map a room's provider setpoint mode to the exposed mode."""
    return MODE_OFF if setpoint_mode in PROVIDER_OFF_MODES else MODE_AUTO


class NetatmoEnergyCoordinator:
    """Discover room devices and poll their state on a fixed interval.

    Devices are created once and never removed. A failing home is skipped
    for the current cycle without affecting the others.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        client: api.NetatmoEnergyClient,
        entry_id: str,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            hass: Home Assistant instance.
            client: Cloud client.
            entry_id: Config entry the devices belong to.
            on_unauthorized: Called after a poll cycle hit a missing or
                refused access token.

        """
        self.hass = hass
        self._client = client
        self._entry_id = entry_id
        self._on_unauthorized = on_unauthorized
        self.devices: dict[str, RoomDevice] = {}
        self.home_ids: list[str] = []
        self.module_rooms: dict[str, str] = {}
        self._unsub_poll: Callable[[], None] | None = None

    @property
    def polling(self) -> bool:
        """Return True if the poll interval is running."""
        return self._unsub_poll is not None

    async def async_discover(self) -> list[RoomDevice]:
        """Create devices for every room and attach supported modules.

        Returns:
            The devices created by this call.

        Raises:
            UnauthorizedError: If there is no valid access token.
            RemoteError: If the homes could not be listed.

        """
        homes = await self._client.async_get_homes()
        created: list[RoomDevice] = []
        attached: list[tuple[RoomDevice, Module]] = []

        for home in homes:
            if home.id not in self.home_ids:
                self.home_ids.append(home.id)

            for room in home.rooms:
                key = device_key(home.id, room.id)
                if key in self.devices:
                    continue
                device = RoomDevice(self, home.id, room.id, f"{home.name} - {room.name}")
                self.devices[key] = device
                created.append(device)

            for module in home.modules:
                if module.type not in SUPPORTED_MODULE_TYPES or module.room_id is None:
                    continue
                device = self.devices.get(device_key(home.id, module.room_id))
                if device is None:
                    _LOGGER.debug(
                        "Module %s belongs to unknown room %s",
                        module.id,
                        module.room_id,
                    )
                    continue
                if module.id not in device.modules and device not in created:
                    attached.append((device, module))
                device.add_module(module)
                self.module_rooms[module.id] = module.room_id

        for device in created:
            async_dispatcher_send(
                self.hass, signal_device_added(self._entry_id), device
            )
        for device, module in attached:
            async_dispatcher_send(
                self.hass, signal_module_added(self._entry_id), device, module
            )

        _LOGGER.info(
            "Discovered %d homes, %d new room devices", len(homes), len(created)
        )
        return created

    async def async_poll_once(self) -> None:
        """Fetch the status of every known home and apply the changes."""
        unauthorized = False
        for home_id in list(self.home_ids):
            try:
                status = await self._client.async_get_home_status(home_id)
                self._apply_status(home_id, status)
            except api.UnauthorizedError as err:
                _LOGGER.warning("Failed to update home %s: %s", home_id, err)
                unauthorized = True
            except (api.NetatmoEnergyError, KeyError, TypeError, ValueError) as err:
                _LOGGER.warning("Failed to update home %s: %s", home_id, err)

        if unauthorized and self._on_unauthorized is not None:
            self._on_unauthorized()

    def _apply_status(self, home_id: str, status: HomeStatus) -> None:
        for room in status.rooms:
            device = self.devices.get(device_key(home_id, room.id))
            if device is None:
                _LOGGER.debug("Status for unknown room %s in home %s", room.id, home_id)
                continue
            device.update_property(PROPERTY_TEMPERATURE, room.measured_temperature)
            device.update_property(
                PROPERTY_TARGET_TEMPERATURE, room.setpoint_temperature
            )
            device.update_property(
                PROPERTY_HEATING,
                HEATING_ON if (room.heating_power_request or 0) > 0 else HEATING_OFF,
            )
            device.update_property(PROPERTY_MODE, mode_from_setpoint(room.setpoint_mode))

        for module in status.modules:
            if module.type not in SUPPORTED_MODULE_TYPES:
                continue
            room_id = self.module_rooms.get(module.id)
            device = self.devices.get(device_key(home_id, room_id)) if room_id else None
            if device is None:
                _LOGGER.debug("Status for unmapped module %s", module.id)
                continue
            if module.battery_level is not None:
                device.update_property(
                    f"{module.id}-battery",
                    battery_to_percent(module.battery_level, module.type),
                )
            if module.rf_strength is not None:
                device.update_property(
                    f"{module.id}-signal", signal_to_percent(module.rf_strength)
                )

    def start_polling(self) -> None:
        """Start the poll interval unless it is already running."""
        if self._unsub_poll is not None:
            return
        _LOGGER.debug("Polling Netatmo every %s", POLL_INTERVAL)
        self._unsub_poll = async_track_time_interval(
            self.hass, self._async_handle_interval, POLL_INTERVAL
        )

    def stop_polling(self) -> None:
        """Stop the poll interval."""
        if self._unsub_poll is not None:
            self._unsub_poll()
            self._unsub_poll = None

    async def _async_handle_interval(self, _now: datetime) -> None:
        await self.async_poll_once()

    async def async_set_room_therm_point(
        self, home_id: str, room_id: str, temperature: float
    ) -> bool:
        """Send a new target temperature for a room."""
        _LOGGER.debug(
            "Setting room %s of home %s to %s", room_id, home_id, temperature
        )
        return await self._client.async_set_room_therm_point(
            home_id, room_id, temperature
        )

    async def async_set_therm_mode(self, home_id: str, mode: str) -> bool:
        """Switch the mode of a whole home.

        The mode applies to every room, so all room devices of the home are
        updated once the command is acknowledged.
        """
        _LOGGER.debug("Setting home %s to mode %s", home_id, mode)
        confirmed = await self._client.async_set_therm_mode(home_id, mode)
        if confirmed:
            for device in self.devices.values():
                if device.home_id == home_id:
                    device.update_property(PROPERTY_MODE, mode)
        return confirmed
