"""Room devices and their properties."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .const import (
    DEVICE_PREFIX,
    PROPERTY_HEATING,
    PROPERTY_MODE,
    PROPERTY_TARGET_TEMPERATURE,
    PROPERTY_TEMPERATURE,
)
from .models import Module, PropertyCapability

if TYPE_CHECKING:
    from collections.abc import Callable

    from .coordinator import NetatmoEnergyCoordinator

_LOGGER = logging.getLogger(__name__)


@dataclass
class ThermostatProperty:
    """Last known value of one device property.

    The capability decides what writing the property does.
    """

    name: str
    title: str
    capability: PropertyCapability = PropertyCapability.READ_ONLY
    value: Any = None
    unit: str | None = None

    @property
    def read_only(self) -> bool:
        """Return True if the property cannot be written."""
        return self.capability is PropertyCapability.READ_ONLY


class RoomDevice:
    """A room of a home, exposed as one thermostat device.

    Battery and signal properties of the room's radio valves are attached to
    the room, because the valves themselves are not exposed.
    """

    def __init__(
        self,
        coordinator: NetatmoEnergyCoordinator,
        home_id: str,
        room_id: str,
        title: str,
    ) -> None:
        """Initialize the device with its base properties."""
        self._coordinator = coordinator
        self.home_id = home_id
        self.room_id = room_id
        self.id = f"{DEVICE_PREFIX}{home_id}-{room_id}"
        self.title = title
        self.modules: dict[str, Module] = {}
        self.properties: dict[str, ThermostatProperty] = {}
        self._listeners: list[Callable[[ThermostatProperty], None]] = []

        for prop in (
            ThermostatProperty(
                PROPERTY_TEMPERATURE, "Current Temperature", unit="degree celsius"
            ),
            ThermostatProperty(
                PROPERTY_TARGET_TEMPERATURE,
                "Target Temperature",
                PropertyCapability.WRITABLE_TARGET_TEMP,
                unit="degree celsius",
            ),
            ThermostatProperty(PROPERTY_HEATING, "Heating"),
            ThermostatProperty(
                PROPERTY_MODE, "Mode", PropertyCapability.WRITABLE_MODE
            ),
        ):
            self.properties[prop.name] = prop

    def add_module(self, module: Module) -> None:
        """Attach battery and signal properties for a module."""
        self.modules[module.id] = module
        for prop in (
            ThermostatProperty(
                f"{module.id}-signal", f"{module.name} - Signal", unit="percent"
            ),
            ThermostatProperty(
                f"{module.id}-battery", f"{module.name} - Battery", unit="percent"
            ),
        ):
            self.properties.setdefault(prop.name, prop)

    def get_value(self, name: str) -> Any:  # noqa: ANN401
        """Return the cached value of a property."""
        return self.properties[name].value

    def register_listener(
        self,
        callback: Callable[[ThermostatProperty], None],
    ) -> Callable[[], None]:
        """Register a callback for property changes.

        Args:
            callback: Function to call with the property that changed.

        Returns:
            A function to unregister the callback.

        """
        self._listeners.append(callback)

        def unregister() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unregister

    def update_property(self, name: str, value: Any) -> bool:  # noqa: ANN401
        """Cache a new value and notify listeners if it changed.

        Returns:
            True if the value changed.

        """
        prop = self.properties.get(name)
        if prop is None:
            _LOGGER.debug("%s has no property %s", self.id, name)
            return False

        if prop.value == value:
            return False

        prop.value = value
        for callback in list(self._listeners):
            try:
                callback(prop)
            except Exception:
                _LOGGER.exception("Error in property listener of %s", self.id)
        return True

    async def async_set_property(self, name: str, value: Any) -> bool:  # noqa: ANN401
        """Write a property through the cloud.

        Returns:
            True if the command was acknowledged.

        Raises:
            ValueError: If the property is read-only.

        """
        prop = self.properties[name]
        if prop.capability is PropertyCapability.WRITABLE_TARGET_TEMP:
            confirmed = await self._coordinator.async_set_room_therm_point(
                self.home_id, self.room_id, value
            )
        elif prop.capability is PropertyCapability.WRITABLE_MODE:
            confirmed = await self._coordinator.async_set_therm_mode(
                self.home_id, value
            )
        else:
            error_msg = f"Property {name} of {self.id} is read-only"
            raise ValueError(error_msg)

        if confirmed:
            self.update_property(name, value)
        return confirmed
