"""API client for the Netatmo Energy cloud.

This module provides the error taxonomy, the token endpoint calls used by
the authorization flow, response parsers, and the authenticated client
used to list homes, read their status and send thermostat commands.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

import httpx
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .const import (
    API_BASE_URL,
    AUTHORIZE_URL,
    HOMESDATA_PATH,
    HOMESTATUS_PATH,
    MODE_OFF,
    PROVIDER_MODE_AWAY,
    PROVIDER_MODE_MANUAL,
    PROVIDER_MODE_SCHEDULE,
    SETROOMTHERMPOINT_PATH,
    SETTHERMMODE_PATH,
    TOKEN_URL,
)
from .models import (
    Home,
    HomeStatus,
    Module,
    ModuleStatus,
    Room,
    RoomStatus,
    TokenState,
)

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .auth import TokenStore

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_FORBIDDEN = 403

# Every Netatmo call is a form POST
RETRY_METHODS = ["POST"]


class NetatmoEnergyError(Exception):
    """Base exception for Netatmo Energy errors."""


class AuthFlowError(NetatmoEnergyError):
    """Raised when an authorization attempt cannot complete."""


class UnauthorizedError(NetatmoEnergyError):
    """Raised when no usable access token is available."""


class RemoteError(NetatmoEnergyError):
    """Raised when the cloud answers with an unexpected status or body."""


class ConfigPersistError(NetatmoEnergyError):
    """Raised when tokens cannot be written to the config entry."""


def create_headers(access_token: str | None = None) -> dict[str, str]:
    """Create HTTP headers for Netatmo API requests.

    Args:
        access_token: Optional bearer token to include in headers.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "accept": "application/json",
        "content-type": "application/x-www-form-urlencoded;charset=UTF-8",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def is_success(status: int) -> bool:
    """Check if HTTP status code is the one success code the API uses."""
    return status == HTTP_OK


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code means the access token was refused.

    Only 403 invalidates the token; a 401 is handled like any other failure.
    """
    return status == HTTP_FORBIDDEN


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for the Netatmo API.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=10.0)
    retry = Retry(total=3, backoff_factor=0.5, allowed_methods=RETRY_METHODS)
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


def build_authorize_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
) -> str:
    """Build the URL the user has to open to grant access.

    Scopes are joined with ``+`` as the provider expects them in the query.
    """
    query = urlencode(
        {"client_id": client_id, "redirect_uri": redirect_uri},
        quote_via=quote,
    )
    return (
        f"{AUTHORIZE_URL}?{query}"
        f"&scope={'+'.join(scopes)}&state={quote(state, safe='')}"
    )


def extract_token_state(data: dict[str, Any], now: datetime) -> TokenState:
    """Extract a TokenState from a token endpoint response.

    Args:
        data: Token endpoint JSON body.
        now: Instant the response was received.

    Returns:
        TokenState with expiry computed from ``expires_in``.

    Raises:
        KeyError: If a token field is missing.
        ValueError: If the token does not expire in the future.

    """
    expires_in = int(data["expires_in"])
    if expires_in <= 0:
        error_msg = f"Token expires in {expires_in} seconds"
        raise ValueError(error_msg)
    return TokenState(
        access_token=data["access_token"],
        expires_at=now + timedelta(seconds=expires_in),
        refresh_token=data["refresh_token"],
    )


async def async_exchange_code(
    session: httpx.AsyncClient,
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    scopes: list[str],
) -> TokenState:
    """Exchange an authorization code for tokens.

    Raises:
        AuthFlowError: If the token endpoint rejects the code or answers
            with an unusable body.

    """
    payload = {
        "scope": " ".join(scopes),
        "code": code,
        "grant_type": "authorization_code",
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
    }

    _LOGGER.debug("Exchanging authorization code for tokens")
    try:
        response = await session.post(TOKEN_URL, data=payload, headers=create_headers())
    except httpx.RequestError as err:
        error_msg = f"Token request failed: {err}"
        raise AuthFlowError(error_msg) from err

    if not is_success(response.status_code):
        error_msg = (
            "Authentication flow failed while retrieving token: "
            f"{response.status_code}"
        )
        raise AuthFlowError(error_msg)

    try:
        return extract_token_state(response.json(), datetime.now(UTC))
    except (ValueError, KeyError, TypeError) as err:
        error_msg = f"Malformed token response: {err}"
        raise AuthFlowError(error_msg) from err


async def async_refresh_token(
    session: httpx.AsyncClient,
    client_id: str,
    client_secret: str,
    refresh_token: str,
) -> TokenState:
    """Mint a new access token from a refresh token.

    Raises:
        UnauthorizedError: If the token endpoint refuses the refresh token.
        RemoteError: If the request could not be completed.

    """
    payload = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": client_id,
        "client_secret": client_secret,
    }

    _LOGGER.debug("Refreshing access token")
    try:
        response = await session.post(TOKEN_URL, data=payload, headers=create_headers())
    except httpx.RequestError as err:
        error_msg = f"Token refresh request failed: {err}"
        raise RemoteError(error_msg) from err

    if not is_success(response.status_code):
        error_msg = f"Failed to refresh token: {response.status_code}"
        raise UnauthorizedError(error_msg)

    try:
        return extract_token_state(response.json(), datetime.now(UTC))
    except (ValueError, KeyError, TypeError) as err:
        error_msg = f"Malformed token response: {err}"
        raise RemoteError(error_msg) from err


def _float_or_none(value: Any) -> float | None:  # noqa: ANN401
    return float(value) if value is not None else None


def _body(data: dict[str, Any]) -> dict[str, Any]:
    body = data.get("body") or {}
    if not isinstance(body, dict):
        error_msg = f"Expected a body object, got {type(body).__name__}"
        raise TypeError(error_msg)
    return body


def extract_homes(body: dict[str, Any]) -> list[Home]:
    """Extract homes, rooms and modules from a homesdata body.

    Args:
        body: The ``body`` member of the homesdata response.

    Returns:
        List of Home objects in the order the API returned them.

    Raises:
        KeyError: If a home, room or module has no id.

    """
    homes_data = body.get("homes")
    if not isinstance(homes_data, list):
        return []

    return [
        Home(
            id=str(home["id"]),
            name=home.get("name", ""),
            rooms=[
                Room(id=str(room["id"]), name=room.get("name", ""))
                for room in home.get("rooms", [])
            ],
            modules=[
                Module(
                    id=str(module["id"]),
                    name=module.get("name", ""),
                    type=module.get("type", ""),
                    room_id=(
                        str(module["room_id"]) if module.get("room_id") else None
                    ),
                )
                for module in home.get("modules", [])
            ],
        )
        for home in homes_data
    ]


def extract_home_status(body: dict[str, Any]) -> HomeStatus:
    """Extract the live room and module state from a homestatus body.

    Args:
        body: The ``body`` member of the homestatus response.

    Returns:
        HomeStatus for the requested home.

    Raises:
        TypeError: If the body carries no home object.

    """
    home = body.get("home")
    if not isinstance(home, dict):
        error_msg = f"Expected a home object, got {type(home).__name__}"
        raise TypeError(error_msg)
    return HomeStatus(
        id=str(home.get("id", "")),
        rooms=[
            RoomStatus(
                id=str(room["id"]),
                measured_temperature=_float_or_none(
                    room.get("therm_measured_temperature")
                ),
                setpoint_temperature=_float_or_none(
                    room.get("therm_setpoint_temperature")
                ),
                heating_power_request=room.get("heating_power_request"),
                setpoint_mode=room.get("therm_setpoint_mode"),
            )
            for room in home.get("rooms", [])
        ],
        modules=[
            ModuleStatus(
                id=str(module["id"]),
                type=module.get("type", ""),
                battery_level=module.get("battery_level"),
                rf_strength=module.get("rf_strength"),
            )
            for module in home.get("modules", [])
        ],
    )


def provider_mode(mode: str) -> str:
    """Map an exposed thermostat mode to the provider's home mode."""
    return PROVIDER_MODE_AWAY if mode == MODE_OFF else PROVIDER_MODE_SCHEDULE


class NetatmoEnergyClient:
    """Authenticated client for the Netatmo Energy endpoints.

    The access token is read from the token store before every call, so a
    refresh happening between two calls is picked up transparently.
    """

    def __init__(self, session: httpx.AsyncClient, token_store: TokenStore) -> None:
        """Initialize the client.

        Args:
            session: HTTP client session.
            token_store: Store holding the current tokens.

        """
        self._session = session
        self._token_store = token_store

    async def _async_post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send one authenticated form POST and return the parsed JSON.

        Raises:
            UnauthorizedError: If no access token is stored, or the API
                refuses it. A refused token is cleared from the store.
            RemoteError: On any other failure.

        """
        access_token = self._token_store.get().access_token
        if not access_token:
            error_msg = "Unauthorized: no access token available"
            raise UnauthorizedError(error_msg)

        url = f"{API_BASE_URL}{path}"
        _LOGGER.debug("POST %s %s", path, payload)
        try:
            response = await self._session.post(
                url,
                data=payload,
                headers=create_headers(access_token),
            )
        except httpx.RequestError as err:
            error_msg = f"Connection error on {path}: {err}"
            raise RemoteError(error_msg) from err

        if is_auth_error(response.status_code):
            _LOGGER.warning(
                "Access token refused on %s (%d), clearing it",
                path,
                response.status_code,
            )
            self._token_store.set(access_token="")
            error_msg = f"Unauthorized: {response.status_code}"
            raise UnauthorizedError(error_msg)

        if not is_success(response.status_code):
            error_msg = f"Request to {path} failed: {response.status_code}"
            raise RemoteError(error_msg)

        try:
            data = response.json()
        except ValueError as err:
            error_msg = f"Invalid JSON from {path}: {err}"
            raise RemoteError(error_msg) from err

        if not isinstance(data, dict):
            error_msg = f"Unexpected response from {path}"
            raise RemoteError(error_msg)
        return data

    async def async_get_homes(self) -> list[Home]:
        """Fetch all homes with their rooms and modules."""
        data = await self._async_post(HOMESDATA_PATH, {})
        try:
            homes = extract_homes(_body(data))
        except (AttributeError, KeyError, TypeError, ValueError) as err:
            error_msg = f"Malformed homes list: {err}"
            raise RemoteError(error_msg) from err
        _LOGGER.debug("Retrieved %d homes from Netatmo API", len(homes))
        return homes

    async def async_get_home_status(self, home_id: str) -> HomeStatus:
        """Fetch the live status of one home."""
        data = await self._async_post(HOMESTATUS_PATH, {"home_id": home_id})
        try:
            return extract_home_status(_body(data))
        except (AttributeError, KeyError, TypeError, ValueError) as err:
            error_msg = f"Malformed status for home {home_id}: {err}"
            raise RemoteError(error_msg) from err

    async def async_set_room_therm_point(
        self, home_id: str, room_id: str, temperature: float
    ) -> bool:
        """Set a manual target temperature for a room.

        Returns:
            True if the API acknowledged the command.

        """
        payload = {
            "home_id": home_id,
            "room_id": room_id,
            "mode": PROVIDER_MODE_MANUAL,
            "temp": temperature,
        }
        data = await self._async_post(SETROOMTHERMPOINT_PATH, payload)
        return data.get("status") == "ok"

    async def async_set_therm_mode(self, home_id: str, mode: str) -> bool:
        """Switch a home between schedule and away.

        Args:
            home_id: Target home.
            mode: Exposed mode; ``off`` means away, anything else schedule.

        Returns:
            True if the API acknowledged the command.

        """
        payload = {"home_id": home_id, "mode": provider_mode(mode)}
        data = await self._async_post(SETTHERMMODE_PATH, payload)
        return data.get("status") == "ok"
