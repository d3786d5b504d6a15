"""Pytest configuration and fixtures for Netatmo Energy tests."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock, Mock

import pytest

from custom_components.netatmo_energy.const import (
    CONF_BASE_URL,
    CONF_CLIENT_ID,
    CONF_CLIENT_SECRET,
    CONF_EXPIRES,
    CONF_REFRESH_TOKEN,
    CONF_TOKEN,
)

ACCESS_TOKEN = "access_token_value"
REFRESH_TOKEN = "refresh_token_value"
CLIENT_ID = "client_id_value"
CLIENT_SECRET = "client_secret_value"
BASE_URL = "https://ha.example.com"


@pytest.fixture
def mock_hass() -> MagicMock:
    """Create a mock Home Assistant instance running tasks on the test loop."""
    hass = MagicMock()
    hass.data = {}
    hass.async_create_task = MagicMock(
        side_effect=lambda coro: asyncio.create_task(coro)
    )
    hass.config_entries.async_update_entry = Mock()
    return hass


@pytest.fixture
def config_entry_data() -> dict[str, Any]:
    """Config entry data with a valid access token and refresh token."""
    expires = datetime.now(UTC) + timedelta(hours=3)
    return {
        CONF_CLIENT_ID: CLIENT_ID,
        CONF_CLIENT_SECRET: CLIENT_SECRET,
        CONF_BASE_URL: BASE_URL,
        CONF_TOKEN: ACCESS_TOKEN,
        CONF_EXPIRES: int(expires.timestamp()),
        CONF_REFRESH_TOKEN: REFRESH_TOKEN,
    }


@pytest.fixture
def mock_config_entry(config_entry_data: dict[str, Any]) -> Mock:
    """Create a mock config entry for testing."""
    entry = Mock()
    entry.data = config_entry_data
    entry.entry_id = "test_entry_id"
    return entry


@pytest.fixture
def unauthorized_config_entry() -> Mock:
    """Create a mock config entry that never completed authorization."""
    entry = Mock()
    entry.data = {
        CONF_CLIENT_ID: CLIENT_ID,
        CONF_CLIENT_SECRET: CLIENT_SECRET,
        CONF_BASE_URL: BASE_URL,
        CONF_TOKEN: "",
        CONF_EXPIRES: None,
        CONF_REFRESH_TOKEN: "",
    }
    entry.entry_id = "test_entry_id"
    return entry


@pytest.fixture
def sample_token_response() -> dict[str, Any]:
    """Fixture providing a token endpoint response."""
    return {
        "access_token": "new_access_token",
        "refresh_token": "new_refresh_token",
        "expires_in": 10800,
        "expire_in": 10800,
        "scope": ["read_thermostat", "write_thermostat"],
    }


@pytest.fixture
def sample_homesdata_response() -> dict[str, Any]:
    """Fixture providing a homesdata response with one home and one valve."""
    return {
        "status": "ok",
        "body": {
            "homes": [
                {
                    "id": "home1",
                    "name": "Home",
                    "rooms": [
                        {
                            "id": "room1",
                            "name": "Living",
                            "type": "livingroom",
                            "module_ids": ["valve1"],
                        },
                    ],
                    "modules": [
                        {
                            "id": "relay1",
                            "type": "NAPlug",
                            "name": "Relay",
                        },
                        {
                            "id": "valve1",
                            "type": "NRV",
                            "name": "Valve",
                            "room_id": "room1",
                            "bridge": "relay1",
                        },
                    ],
                },
            ],
        },
    }


@pytest.fixture
def sample_homestatus_response() -> dict[str, Any]:
    """Fixture providing a homestatus response for home1."""
    return {
        "status": "ok",
        "body": {
            "home": {
                "id": "home1",
                "rooms": [
                    {
                        "id": "room1",
                        "reachable": True,
                        "therm_measured_temperature": 19.5,
                        "therm_setpoint_temperature": 21,
                        "therm_setpoint_mode": "schedule",
                        "heating_power_request": 40,
                    },
                ],
                "modules": [
                    {"id": "relay1", "type": "NAPlug", "rf_strength": 60},
                    {
                        "id": "valve1",
                        "type": "NRV",
                        "battery_level": 2550,
                        "rf_strength": 100,
                        "reachable": True,
                    },
                ],
            },
        },
    }
