"""Climate entities for Netatmo Energy rooms.

Each room device is exposed as one climate entity. State comes from the
device's cached properties; commands are written through the device so the
cloud stays the source of truth.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from homeassistant.components.climate import (
    ClimateEntity,
    ClimateEntityFeature,
    HVACAction,
    HVACMode,
)
from homeassistant.const import ATTR_TEMPERATURE, UnitOfTemperature
from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect

from .api import NetatmoEnergyError, UnauthorizedError
from .const import (
    DOMAIN,
    HEATING_ON,
    MODE_AUTO,
    MODE_OFF,
    PROPERTY_HEATING,
    PROPERTY_MODE,
    PROPERTY_TARGET_TEMPERATURE,
    PROPERTY_TEMPERATURE,
)
from .coordinator import signal_device_added

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .device import RoomDevice, ThermostatProperty

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up climate entities for known and newly discovered rooms."""
    bridge = hass.data[DOMAIN][entry.entry_id]["bridge"]

    @callback
    def _async_add_device(device: RoomDevice) -> None:
        async_add_entities([NetatmoEnergyClimateEntity(device)])

    async_add_entities(
        [
            NetatmoEnergyClimateEntity(device)
            for device in bridge.coordinator.devices.values()
        ]
    )
    entry.async_on_unload(
        async_dispatcher_connect(
            hass, signal_device_added(entry.entry_id), _async_add_device
        )
    )


class NetatmoEnergyClimateEntity(ClimateEntity):
    """Climate entity for a room heated by Netatmo radio valves."""

    _attr_temperature_unit = UnitOfTemperature.CELSIUS
    _attr_target_temperature_step = 0.5
    _attr_has_entity_name = True
    _attr_name = None
    _attr_should_poll = False
    _attr_hvac_modes = [HVACMode.AUTO, HVACMode.OFF]
    _attr_supported_features = (
        ClimateEntityFeature.TARGET_TEMPERATURE
        | ClimateEntityFeature.TURN_OFF
        | ClimateEntityFeature.TURN_ON
    )
    _attr_min_temp = 7.0
    _attr_max_temp = 30.0

    def __init__(self, device: RoomDevice) -> None:
        """Initialize the entity.

        Args:
            device: Room device backing the entity.

        """
        self._device = device
        self._attr_unique_id = device.id
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, device.id)},
            name=device.title,
            manufacturer="Netatmo",
            model="Smart Radiator Valves",
        )

    @property
    def current_temperature(self) -> float | None:
        """Return the measured room temperature."""
        return self._device.get_value(PROPERTY_TEMPERATURE)

    @property
    def target_temperature(self) -> float | None:
        """Return the room's setpoint."""
        return self._device.get_value(PROPERTY_TARGET_TEMPERATURE)

    @property
    def hvac_mode(self) -> HVACMode:
        """Return off while the home is away, auto otherwise."""
        if self._device.get_value(PROPERTY_MODE) == MODE_OFF:
            return HVACMode.OFF
        return HVACMode.AUTO

    @property
    def hvac_action(self) -> HVACAction:
        """Return whether the room is currently requesting heat."""
        if self.hvac_mode == HVACMode.OFF:
            return HVACAction.OFF
        if self._device.get_value(PROPERTY_HEATING) == HEATING_ON:
            return HVACAction.HEATING
        return HVACAction.IDLE

    async def async_added_to_hass(self) -> None:
        """Subscribe to property changes of the device."""
        await super().async_added_to_hass()
        self.async_on_remove(
            self._device.register_listener(self._handle_property_change)
        )

    @callback
    def _handle_property_change(self, _prop: ThermostatProperty) -> None:
        self.async_write_ha_state()

    async def async_set_temperature(self, **kwargs: Any) -> None:  # noqa: ANN401
        """Set the target temperature."""
        temperature = kwargs.get(ATTR_TEMPERATURE)
        if temperature is None:
            return
        await self._async_write(PROPERTY_TARGET_TEMPERATURE, temperature)

    async def async_set_hvac_mode(self, hvac_mode: HVACMode) -> None:
        """Switch the home between schedule and away."""
        mode = MODE_OFF if hvac_mode == HVACMode.OFF else MODE_AUTO
        await self._async_write(PROPERTY_MODE, mode)

    async def async_turn_on(self) -> None:
        """Return the home to its schedule."""
        await self.async_set_hvac_mode(HVACMode.AUTO)

    async def async_turn_off(self) -> None:
        """Put the home in away mode."""
        await self.async_set_hvac_mode(HVACMode.OFF)

    async def _async_write(self, name: str, value: Any) -> None:  # noqa: ANN401
        try:
            confirmed = await self._device.async_set_property(name, value)
        except UnauthorizedError:
            _LOGGER.exception(
                "Authentication error for %s. Please re-authorize the integration.",
                self._device.title,
            )
            return
        except NetatmoEnergyError:
            _LOGGER.exception("API error while sending command to %s", self._device.title)
            return

        if not confirmed:
            _LOGGER.warning(
                "Netatmo did not acknowledge %s=%s for %s",
                name,
                value,
                self._device.title,
            )
