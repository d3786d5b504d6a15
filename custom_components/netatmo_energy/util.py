"""Conversions from raw module telemetry to percentages."""

from __future__ import annotations

import math

from .const import BATTERY_LEVELS, BATTERY_STEPS, RF_GOOD_REFERENCE, RF_RANGE


def clamp(value: float, maximum: float = 100, minimum: float = 0) -> float:
    """Limit value to the closed range [minimum, maximum]."""
    return max(min(value, maximum), minimum)


def signal_to_percent(rf_strength: float) -> int:
    """Map a raw RF strength reading to 0-100 %.

    Lower readings mean a better signal. Readings can be reported as better
    than the documented good reference, so the result is clamped.
    """
    percent = ((RF_GOOD_REFERENCE - rf_strength) / RF_RANGE) * 90 + 10
    return int(clamp(percent))


def battery_to_percent(battery_level: float, module_type: str) -> int:
    """Interpolate a battery reading in millivolts to 0-100 %.

    Args:
        battery_level: Battery voltage in millivolts.
        module_type: Module type code, must be a key of BATTERY_LEVELS.

    Returns:
        Percentage floored to an integer.

    """
    levels = BATTERY_LEVELS[module_type]
    voltages = list(levels.values())

    if battery_level >= levels["full"]:
        return 100

    if battery_level >= levels["high"]:
        index = 3
    elif battery_level >= levels["medium"]:
        index = 2
    elif battery_level >= levels["low"]:
        index = 1
    else:
        return 0

    low_step, high_step = BATTERY_STEPS[index], BATTERY_STEPS[index + 1]
    low_voltage, high_voltage = voltages[index], voltages[index + 1]
    percent = low_step + (high_step - low_step) * (battery_level - low_voltage) / (
        high_voltage - low_voltage
    )
    return math.floor(percent)
