"""Token lifecycle for Netatmo Energy integration.

The token store is the single owner of the OAuth tokens. The authorization
session fills it once the user has granted access, and the refresh
scheduler keeps it fresh from then on.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from homeassistant.helpers.event import async_call_later

from . import api
from .const import CONF_EXPIRES, CONF_REFRESH_TOKEN, CONF_TOKEN
from .models import AuthFlowState, Credentials, TokenState

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    import httpx
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)


class TokenStore:
    """Hold the current tokens and mirror every change to the config entry."""

    def __init__(self, hass: HomeAssistant, config_entry: ConfigEntry) -> None:
        """Initialize the store from the tokens saved in the config entry."""
        self._hass = hass
        self._config_entry = config_entry

        expires = config_entry.data.get(CONF_EXPIRES)
        self._state = TokenState(
            access_token=config_entry.data.get(CONF_TOKEN) or "",
            expires_at=datetime.fromtimestamp(expires, UTC) if expires else None,
            refresh_token=config_entry.data.get(CONF_REFRESH_TOKEN) or "",
        )

    def get(self) -> TokenState:
        """Return a snapshot of the current tokens."""
        return self._state

    def is_authorized(self) -> bool:
        """Return True if a refresh token is present.

        A missing access token alone is recoverable through a refresh.
        """
        return bool(self._state.refresh_token)

    def set(self, **changes: Any) -> None:  # noqa: ANN401
        """Merge changes into the current tokens and persist them.

        Raises:
            ValueError: If a new access token is written without a future
                expiry.

        """
        state = replace(self._state, **changes)
        if changes.get("access_token") and (
            state.expires_at is None or state.expires_at <= datetime.now(UTC)
        ):
            error_msg = "An access token requires an expiry in the future"
            raise ValueError(error_msg)

        self._state = state
        try:
            self._persist()
        except api.ConfigPersistError:
            _LOGGER.exception(
                "Saving tokens for entry %s failed, keeping them in memory only",
                self._config_entry.entry_id,
            )

    def _persist(self) -> None:
        """Write the tokens to the config entry, which saves it to disk."""
        data = {
            **self._config_entry.data,
            CONF_TOKEN: self._state.access_token,
            CONF_EXPIRES: (
                int(self._state.expires_at.timestamp())
                if self._state.expires_at
                else None
            ),
            CONF_REFRESH_TOKEN: self._state.refresh_token,
        }
        try:
            self._hass.config_entries.async_update_entry(self._config_entry, data=data)
        except Exception as err:
            error_msg = f"Could not update config entry: {err}"
            raise api.ConfigPersistError(error_msg) from err


class RefreshScheduler:
    """Single-shot timer renewing the access token when it expires.

    Every successful refresh arms the timer again for the new expiry. A
    refused refresh token is not retried: both tokens are cleared and the
    store reports that re-authorization is needed.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        session: httpx.AsyncClient,
        credentials: Credentials,
        token_store: TokenStore,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            hass: Home Assistant instance.
            session: HTTP client session.
            credentials: Client credentials for the token endpoint.
            token_store: Store to read and update.
            on_unauthorized: Called after the refresh token was refused.

        """
        self._hass = hass
        self._session = session
        self._credentials = credentials
        self._token_store = token_store
        self._on_unauthorized = on_unauthorized
        self._cancel_timer: Callable[[], None] | None = None
        self._refreshing = False

    @property
    def armed(self) -> bool:
        """Return True if a refresh timer is pending."""
        return self._cancel_timer is not None

    def arm(self) -> None:
        """Schedule the next refresh, replacing any pending one.

        Refreshes right away if there is no access token or it has expired.
        """
        self.cancel()

        state = self._token_store.get()
        delay = 0.0
        if state.expires_at is not None:
            delay = max((state.expires_at - datetime.now(UTC)).total_seconds(), 0.0)

        if delay > 0 and state.access_token:
            _LOGGER.debug("Access token refresh scheduled in %.0f seconds", delay)
            self._cancel_timer = async_call_later(
                self._hass, delay, self._async_handle_timer
            )
        else:
            _LOGGER.debug("Access token missing or expired, refreshing now")
            self._hass.async_create_task(self.async_refresh())

    def cancel(self) -> None:
        """Cancel the pending refresh timer, if any."""
        if self._cancel_timer is not None:
            self._cancel_timer()
            self._cancel_timer = None

    async def _async_handle_timer(self, _now: datetime) -> None:
        self._cancel_timer = None
        await self.async_refresh()

    async def async_refresh(self) -> None:
        """Renew the access token using the stored refresh token."""
        if self._refreshing:
            _LOGGER.debug("Token refresh already in progress")
            return

        refresh_token = self._token_store.get().refresh_token
        if not refresh_token:
            _LOGGER.error("Can not refresh token: no refresh token stored")
            return

        self._refreshing = True
        try:
            new_state = await api.async_refresh_token(
                self._session,
                self._credentials.client_id,
                self._credentials.client_secret,
                refresh_token,
            )
        except api.UnauthorizedError as err:
            _LOGGER.error("Refresh token rejected, re-authorization needed: %s", err)
            self._token_store.set(access_token="", refresh_token="")
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            return
        except api.RemoteError as err:
            _LOGGER.warning("Token refresh did not complete: %s", err)
            self._token_store.set(access_token="")
            return
        finally:
            self._refreshing = False

        self._token_store.set(
            access_token=new_state.access_token,
            expires_at=new_state.expires_at,
            refresh_token=new_state.refresh_token,
        )
        _LOGGER.info("Successfully refreshed access token")
        self.arm()


class OAuthSession:
    """Two-phase authorization code flow.

    ``begin`` returns the URL the user must open and leaves the session
    waiting for the provider's redirect. ``async_resume`` receives the
    redirect's parameters, exchanges the code and stores the tokens.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        credentials: Credentials,
        token_store: TokenStore,
        scheduler: RefreshScheduler,
        *,
        replace_pending: bool = False,
    ) -> None:
        """Initialize the authorization session.

        Args:
            session: HTTP client session.
            credentials: Client credentials registered with the provider.
            token_store: Store receiving the new tokens.
            scheduler: Scheduler armed after a successful exchange.
            replace_pending: Let a new ``begin`` discard a pending one
                instead of raising.

        """
        self._session = session
        self._credentials = credentials
        self._token_store = token_store
        self._scheduler = scheduler
        self._replace_pending = replace_pending
        self._state = AuthFlowState.IDLE
        self._nonce: str | None = None
        self._scopes: list[str] = []
        self._redirect_uri = ""

    @property
    def state(self) -> AuthFlowState:
        """Return the current flow state."""
        return self._state

    @property
    def pending(self) -> bool:
        """Return True while waiting for the redirect callback."""
        return self._state is AuthFlowState.AWAITING_CALLBACK

    def begin(self, scopes: list[str], redirect_uri: str) -> str:
        """Start an authorization and return the URL to present to the user.

        Raises:
            AuthFlowError: If another authorization is still pending and
                replacing it is not allowed.

        """
        if self.pending:
            if not self._replace_pending:
                error_msg = "An authorization is already waiting for its callback"
                raise api.AuthFlowError(error_msg)
            _LOGGER.warning("Discarding pending authorization for a new one")

        self._nonce = secrets.token_hex(16)
        self._scopes = list(scopes)
        self._redirect_uri = redirect_uri
        self._state = AuthFlowState.AWAITING_CALLBACK
        _LOGGER.info("Waiting for user to authorize on Netatmo")
        return api.build_authorize_url(
            self._credentials.client_id,
            redirect_uri,
            self._scopes,
            self._nonce,
        )

    async def async_resume(self, payload: Mapping[str, Any]) -> None:
        """Complete the authorization with the redirect's parameters.

        Raises:
            AuthFlowError: If nothing is pending, the state does not match,
                the provider denied access, or the token exchange failed.

        """
        if not self.pending:
            error_msg = "No authorization is waiting for a callback"
            raise api.AuthFlowError(error_msg)

        code = payload.get("code")
        if not payload.get("state") or payload.get("state") != self._nonce or not code:
            self._finish(AuthFlowState.FAILED)
            error_msg = (
                f"Authentication flow failed. Possible error: {payload.get('error')}"
            )
            raise api.AuthFlowError(error_msg)

        _LOGGER.info("Received auth callback")
        self._state = AuthFlowState.EXCHANGING
        try:
            tokens = await api.async_exchange_code(
                self._session,
                self._credentials.client_id,
                self._credentials.client_secret,
                code,
                self._redirect_uri,
                self._scopes,
            )
        except api.AuthFlowError:
            self._finish(AuthFlowState.FAILED)
            raise

        self._token_store.set(
            access_token=tokens.access_token,
            expires_at=tokens.expires_at,
            refresh_token=tokens.refresh_token,
        )
        self._finish(AuthFlowState.DONE)
        self._scheduler.arm()

    def abandon(self) -> None:
        """Drop a pending authorization."""
        if self.pending:
            _LOGGER.debug("Abandoning pending authorization")
            self._finish(AuthFlowState.IDLE)

    def _finish(self, state: AuthFlowState) -> None:
        self._state = state
        self._nonce = None
