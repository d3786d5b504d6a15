"""Constants for Netatmo Energy integration.

This module contains all the constants used throughout the integration,
including API endpoints, configuration keys, and mapping tables.
"""

from datetime import timedelta

DOMAIN = "netatmo_energy"

API_BASE_URL = "https://api.netatmo.com"
AUTHORIZE_URL = f"{API_BASE_URL}/oauth2/authorize"
TOKEN_URL = f"{API_BASE_URL}/oauth2/token"

HOMESDATA_PATH = "/api/homesdata"
HOMESTATUS_PATH = "/api/homestatus"
SETROOMTHERMPOINT_PATH = "/api/setroomthermpoint"
SETTHERMMODE_PATH = "/api/setthermmode"

SCOPES = ["read_thermostat", "write_thermostat"]

CALLBACK_PATH = f"/api/{DOMAIN}/callback"
CALLBACK_NAME = f"api:{DOMAIN}:callback"

CONF_CLIENT_ID = "client_id"
CONF_CLIENT_SECRET = "client_secret"  # noqa: S105
CONF_BASE_URL = "base_url"
CONF_TOKEN = "token"  # noqa: S105
CONF_EXPIRES = "expires"
CONF_REFRESH_TOKEN = "refresh_token"  # noqa: S105

POLL_INTERVAL = timedelta(minutes=5)

DEVICE_PREFIX = "thermostat-room-"
NOTIFICATION_ID = f"{DOMAIN}_pairing"
ERROR_NOTIFICATION_ID = f"{DOMAIN}_error"

# Only radio valves are exposed
SUPPORTED_MODULE_TYPES = ("NRV",)

# Millivolt breakpoints, kept sorted from empty to full
BATTERY_LEVELS = {
    "NRV": {
        "empty": 2200,
        "low": 2200,
        "medium": 2400,
        "high": 2700,
        "full": 3200,
    },
}
BATTERY_STEPS = [0, 20, 50, 80, 100]

# Netatmo documents the good to bad RF range as 30 units
RF_GOOD_REFERENCE = 90
RF_RANGE = 30

PROPERTY_TEMPERATURE = "temperature"
PROPERTY_TARGET_TEMPERATURE = "targetTemperature"
PROPERTY_HEATING = "heating"
PROPERTY_MODE = "mode"

HEATING_ON = "heating"
HEATING_OFF = "off"

MODE_AUTO = "auto"
MODE_OFF = "off"

PROVIDER_MODE_AWAY = "away"
PROVIDER_MODE_SCHEDULE = "schedule"
PROVIDER_MODE_MANUAL = "manual"
PROVIDER_OFF_MODES = ("away", "hg", "off")

ERROR_INVALID_CREDENTIALS = "invalid_credentials"
ERROR_INVALID_BASE_URL = "invalid_base_url"
