"""Battery and signal sensors for Netatmo radio valves."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.const import PERCENTAGE, EntityCategory
from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect

from .const import DOMAIN
from .coordinator import signal_device_added, signal_module_added

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .device import RoomDevice, ThermostatProperty
    from .models import Module

KIND_BATTERY = "battery"
KIND_SIGNAL = "signal"


def _sensors_for(device: RoomDevice) -> list[NetatmoModuleSensor]:
    return [
        sensor
        for module in device.modules.values()
        for sensor in _sensors_for_module(device, module)
    ]


def _sensors_for_module(device: RoomDevice, module: Module) -> list[NetatmoModuleSensor]:
    return [
        NetatmoModuleSensor(device, module, kind) for kind in (KIND_BATTERY, KIND_SIGNAL)
    ]


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up module sensors for known and newly discovered rooms."""
    bridge = hass.data[DOMAIN][entry.entry_id]["bridge"]

    @callback
    def _async_add_device(device: RoomDevice) -> None:
        async_add_entities(_sensors_for(device))

    @callback
    def _async_add_module(device: RoomDevice, module: Module) -> None:
        async_add_entities(_sensors_for_module(device, module))

    async_add_entities(
        [
            sensor
            for device in bridge.coordinator.devices.values()
            for sensor in _sensors_for(device)
        ]
    )
    entry.async_on_unload(
        async_dispatcher_connect(
            hass, signal_device_added(entry.entry_id), _async_add_device
        )
    )
    entry.async_on_unload(
        async_dispatcher_connect(
            hass, signal_module_added(entry.entry_id), _async_add_module
        )
    )


class NetatmoModuleSensor(SensorEntity):
    """Percentage reading of one module, attached to its room device."""

    _attr_has_entity_name = True
    _attr_should_poll = False
    _attr_native_unit_of_measurement = PERCENTAGE
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_entity_category = EntityCategory.DIAGNOSTIC

    def __init__(self, device: RoomDevice, module: Module, kind: str) -> None:
        """Initialize the sensor.

        Args:
            device: Room device the module is attached to.
            module: The module being measured.
            kind: Either ``battery`` or ``signal``.

        """
        self._device = device
        self._property_name = f"{module.id}-{kind}"
        self._attr_unique_id = f"{device.id}-{self._property_name}"
        self._attr_name = device.properties[self._property_name].title
        if kind == KIND_BATTERY:
            self._attr_device_class = SensorDeviceClass.BATTERY
        else:
            self._attr_icon = "mdi:wifi"
        self._attr_device_info = DeviceInfo(identifiers={(DOMAIN, device.id)})

    @property
    def native_value(self) -> int | None:
        """Return the last known percentage."""
        return self._device.get_value(self._property_name)

    async def async_added_to_hass(self) -> None:
        """Subscribe to property changes of the device."""
        await super().async_added_to_hass()
        self.async_on_remove(
            self._device.register_listener(self._handle_property_change)
        )

    @callback
    def _handle_property_change(self, prop: ThermostatProperty) -> None:
        if prop.name == self._property_name:
            self.async_write_ha_state()
