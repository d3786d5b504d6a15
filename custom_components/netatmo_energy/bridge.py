"""Bridge wiring authorization, token refresh and polling together."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from homeassistant.components import persistent_notification
from homeassistant.core import callback

from . import api
from .auth import OAuthSession, RefreshScheduler, TokenStore
from .const import (
    CALLBACK_PATH,
    CONF_BASE_URL,
    CONF_CLIENT_ID,
    CONF_CLIENT_SECRET,
    ERROR_NOTIFICATION_ID,
    NOTIFICATION_ID,
    SCOPES,
)
from .coordinator import NetatmoEnergyCoordinator
from .models import Credentials

if TYPE_CHECKING:
    from collections.abc import Mapping

    import httpx
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Netatmo Energy"


class NetatmoEnergyBridge:
    """Own the authorization state and the device coordinator of one entry.

    Credentials and the base URL are read once from the config entry; the
    tokens are kept current by the token store.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: ConfigEntry,
        session: httpx.AsyncClient,
    ) -> None:
        """Initialize the bridge and its collaborators."""
        self.hass = hass
        self.config_entry = config_entry
        self.credentials = Credentials(
            client_id=config_entry.data[CONF_CLIENT_ID],
            client_secret=config_entry.data[CONF_CLIENT_SECRET],
        )
        self._base_url = config_entry.data.get(CONF_BASE_URL, "").rstrip("/")

        self.token_store = TokenStore(hass, config_entry)
        self.client = api.NetatmoEnergyClient(session, self.token_store)
        self.scheduler = RefreshScheduler(
            hass,
            session,
            self.credentials,
            self.token_store,
            on_unauthorized=self._handle_refresh_rejected,
        )
        self.oauth = OAuthSession(
            session, self.credentials, self.token_store, self.scheduler
        )
        self.coordinator = NetatmoEnergyCoordinator(
            hass,
            self.client,
            config_entry.entry_id,
            on_unauthorized=self._handle_poll_unauthorized,
        )

    @property
    def redirect_uri(self) -> str:
        """Return the URL the provider redirects the user to."""
        return f"{self._base_url}{CALLBACK_PATH}"

    async def async_start(self) -> bool:
        """Resume from stored tokens, or ask the user to authorize.

        Returns:
            False if stored tokens could not be used for a transient reason
            and setup should be retried later.

        """
        if not self.token_store.is_authorized():
            self.async_authenticate()
            return True

        state = self.token_store.get()
        if (
            state.access_token
            and state.expires_at is not None
            and state.expires_at > datetime.now(UTC)
        ):
            self.scheduler.arm()
        else:
            await self.scheduler.async_refresh()

        if not self.token_store.is_authorized():
            # The refresh token was rejected and the pairing prompt is shown
            return True
        if not self.token_store.get().access_token:
            return False
        return await self.async_post_auth()

    @callback
    def async_authenticate(self) -> str | None:
        """Start an authorization and prompt the user with its URL.

        Returns:
            The authorization URL, or None if one is already pending.

        """
        if self.oauth.pending:
            _LOGGER.debug("Authorization already pending, not prompting again")
            return None

        url = self.oauth.begin(SCOPES, self.redirect_uri)
        persistent_notification.async_create(
            self.hass,
            "Please authorize the integration to access your Netatmo account: "
            f"[authorize]({url})",
            title=NOTIFICATION_TITLE,
            notification_id=NOTIFICATION_ID,
        )
        return url

    async def async_handle_callback(self, payload: Mapping[str, Any]) -> None:
        """Complete the pending authorization with the redirect's data.

        A failed authorization is reported and a fresh prompt replaces the
        old link, so the user can try again without reloading the entry.

        Raises:
            AuthFlowError: If the authorization could not be completed.

        """
        try:
            await self.oauth.async_resume(payload)
        except api.AuthFlowError as err:
            self._report_error(f"Netatmo authorization failed: {err}")
            self.async_authenticate()
            raise

        persistent_notification.async_dismiss(self.hass, NOTIFICATION_ID)
        await self.async_post_auth()

    async def async_post_auth(self) -> bool:
        """Discover devices, then poll once and keep polling.

        Returns:
            False if discovery failed.

        """
        try:
            await self.coordinator.async_discover()
        except api.NetatmoEnergyError as err:
            _LOGGER.error("Device creation failed: %s", err)
            self._report_error("Netatmo Energy devices could not be created.")
            return False

        self.coordinator.start_polling()
        await self.coordinator.async_poll_once()
        return True

    async def async_shutdown(self) -> None:
        """Cancel timers and drop a pending authorization."""
        self.scheduler.cancel()
        self.coordinator.stop_polling()
        self.oauth.abandon()
        persistent_notification.async_dismiss(self.hass, NOTIFICATION_ID)

    @callback
    def _handle_poll_unauthorized(self) -> None:
        if self.token_store.is_authorized():
            _LOGGER.info("Access token unavailable, requesting a new one")
            self.scheduler.arm()
            return
        self._handle_refresh_rejected()

    @callback
    def _handle_refresh_rejected(self) -> None:
        self.coordinator.stop_polling()
        self.async_authenticate()

    def _report_error(self, message: str) -> None:
        persistent_notification.async_create(
            self.hass,
            message,
            title=NOTIFICATION_TITLE,
            notification_id=ERROR_NOTIFICATION_ID,
        )
