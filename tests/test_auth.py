"""Tests for the token store, refresh scheduler and authorization session."""

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from pytest_httpx import HTTPXMock

from custom_components.netatmo_energy.api import AuthFlowError
from custom_components.netatmo_energy.auth import (
    OAuthSession,
    RefreshScheduler,
    TokenStore,
)
from custom_components.netatmo_energy.const import (
    CONF_EXPIRES,
    CONF_REFRESH_TOKEN,
    CONF_TOKEN,
    SCOPES,
    TOKEN_URL,
)
from custom_components.netatmo_energy.models import AuthFlowState, Credentials

from .conftest import ACCESS_TOKEN, CLIENT_ID, CLIENT_SECRET, REFRESH_TOKEN

REDIRECT_URI = "https://ha.example.com/api/netatmo_energy/callback"


@pytest.fixture
def credentials() -> Credentials:
    """Client credentials used by the tests."""
    return Credentials(client_id=CLIENT_ID, client_secret=CLIENT_SECRET)


@pytest.fixture
def token_store(mock_hass: MagicMock, mock_config_entry: Mock) -> TokenStore:
    """Create a token store holding a valid access token."""
    return TokenStore(mock_hass, mock_config_entry)


class TestTokenStore:
    """Tests for TokenStore."""

    def test_loads_tokens_from_entry(self, token_store: TokenStore) -> None:
        """Test that stored tokens are loaded with their expiry."""
        state = token_store.get()
        assert state.access_token == ACCESS_TOKEN
        assert state.refresh_token == REFRESH_TOKEN
        assert state.expires_at is not None
        assert state.expires_at > datetime.now(UTC)
        assert token_store.is_authorized() is True

    def test_empty_entry_is_not_authorized(
        self, mock_hass: MagicMock, unauthorized_config_entry: Mock
    ) -> None:
        """Test that an entry without a refresh token is unauthorized."""
        store = TokenStore(mock_hass, unauthorized_config_entry)
        assert store.is_authorized() is False
        assert store.get().expires_at is None

    def test_missing_access_token_alone_keeps_authorization(
        self, token_store: TokenStore
    ) -> None:
        """Test that clearing the access token keeps the store authorized."""
        token_store.set(access_token="")
        assert token_store.get().access_token == ""
        assert token_store.is_authorized() is True

    def test_set_persists_to_config_entry(
        self,
        token_store: TokenStore,
        mock_hass: MagicMock,
        mock_config_entry: Mock,
    ) -> None:
        """Test that every change is written back to the config entry."""
        expires = datetime.now(UTC) + timedelta(hours=1)
        token_store.set(access_token="a2", expires_at=expires, refresh_token="r2")

        mock_hass.config_entries.async_update_entry.assert_called_once()
        args, kwargs = mock_hass.config_entries.async_update_entry.call_args
        assert args[0] is mock_config_entry
        assert kwargs["data"][CONF_TOKEN] == "a2"
        assert kwargs["data"][CONF_REFRESH_TOKEN] == "r2"
        assert kwargs["data"][CONF_EXPIRES] == int(expires.timestamp())

    def test_set_rejects_access_token_without_future_expiry(
        self,
        mock_hass: MagicMock,
        unauthorized_config_entry: Mock,
    ) -> None:
        """Test that an access token cannot be stored without an expiry."""
        store = TokenStore(mock_hass, unauthorized_config_entry)
        with pytest.raises(ValueError, match="expiry"):
            store.set(access_token="a2")
        with pytest.raises(ValueError, match="expiry"):
            store.set(
                access_token="a2",
                expires_at=datetime.now(UTC) - timedelta(seconds=1),
            )
        assert store.get().access_token == ""
        mock_hass.config_entries.async_update_entry.assert_not_called()

    def test_persist_failure_is_logged_not_raised(
        self,
        token_store: TokenStore,
        mock_hass: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that a failing save keeps the new tokens in memory."""
        mock_hass.config_entries.async_update_entry.side_effect = RuntimeError("disk")
        token_store.set(refresh_token="r2")
        assert token_store.get().refresh_token == "r2"
        assert "Saving tokens" in caplog.text


class TestRefreshScheduler:
    """Tests for RefreshScheduler."""

    def test_arm_schedules_timer_for_expiry(
        self,
        mock_hass: MagicMock,
        credentials: Credentials,
        token_store: TokenStore,
    ) -> None:
        """Test that a valid token arms a timer instead of refreshing."""
        session = Mock()
        scheduler = RefreshScheduler(mock_hass, session, credentials, token_store)
        with patch(
            "custom_components.netatmo_energy.auth.async_call_later"
        ) as mock_call_later:
            scheduler.arm()

        mock_call_later.assert_called_once()
        delay = mock_call_later.call_args[0][1]
        assert 0 < delay <= timedelta(hours=3).total_seconds()
        assert scheduler.armed is True
        mock_hass.async_create_task.assert_not_called()

    def test_arm_cancels_previous_timer(
        self,
        mock_hass: MagicMock,
        credentials: Credentials,
        token_store: TokenStore,
    ) -> None:
        """Test that re-arming leaves a single pending timer."""
        scheduler = RefreshScheduler(mock_hass, Mock(), credentials, token_store)
        first_cancel = Mock()
        second_cancel = Mock()
        with patch(
            "custom_components.netatmo_energy.auth.async_call_later",
            side_effect=[first_cancel, second_cancel],
        ):
            scheduler.arm()
            scheduler.arm()

        first_cancel.assert_called_once()
        second_cancel.assert_not_called()

        scheduler.cancel()
        second_cancel.assert_called_once()
        assert scheduler.armed is False

    def test_arm_without_access_token_refreshes_now(
        self,
        mock_hass: MagicMock,
        credentials: Credentials,
        token_store: TokenStore,
    ) -> None:
        """Test that a missing access token triggers an immediate refresh."""
        token_store.set(access_token="")
        mock_hass.async_create_task = MagicMock()
        scheduler = RefreshScheduler(mock_hass, Mock(), credentials, token_store)
        with patch(
            "custom_components.netatmo_energy.auth.async_call_later"
        ) as mock_call_later:
            scheduler.arm()

        mock_call_later.assert_not_called()
        mock_hass.async_create_task.assert_called_once()
        mock_hass.async_create_task.call_args[0][0].close()

    @pytest.mark.asyncio
    async def test_async_refresh_success_updates_tokens_and_rearms(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        token_store: TokenStore,
        sample_token_response: dict[str, Any],
    ) -> None:
        """Test that a successful refresh stores the tokens and re-arms."""
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=sample_token_response)
        async with httpx.AsyncClient() as session:
            scheduler = RefreshScheduler(mock_hass, session, credentials, token_store)
            with patch(
                "custom_components.netatmo_energy.auth.async_call_later"
            ) as mock_call_later:
                await scheduler.async_refresh()

        state = token_store.get()
        assert state.access_token == "new_access_token"
        assert state.refresh_token == "new_refresh_token"
        assert token_store.is_authorized() is True
        mock_call_later.assert_called_once()
        assert scheduler.armed is True

    @pytest.mark.asyncio
    async def test_async_refresh_rejected_clears_tokens(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        token_store: TokenStore,
    ) -> None:
        """Test that a refused refresh token ends the authorization."""
        httpx_mock.add_response(url=TOKEN_URL, method="POST", status_code=400)
        on_unauthorized = Mock()
        async with httpx.AsyncClient() as session:
            scheduler = RefreshScheduler(
                mock_hass,
                session,
                credentials,
                token_store,
                on_unauthorized=on_unauthorized,
            )
            await scheduler.async_refresh()

        state = token_store.get()
        assert state.access_token == ""
        assert state.refresh_token == ""
        assert token_store.is_authorized() is False
        on_unauthorized.assert_called_once()
        assert scheduler.armed is False

    @pytest.mark.asyncio
    async def test_async_refresh_transport_error_keeps_refresh_token(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        token_store: TokenStore,
    ) -> None:
        """Test that a transport failure only clears the access token."""
        httpx_mock.add_exception(httpx.ConnectError("boom"), url=TOKEN_URL)
        on_unauthorized = Mock()
        async with httpx.AsyncClient() as session:
            scheduler = RefreshScheduler(
                mock_hass,
                session,
                credentials,
                token_store,
                on_unauthorized=on_unauthorized,
            )
            await scheduler.async_refresh()

        assert token_store.get().access_token == ""
        assert token_store.get().refresh_token == REFRESH_TOKEN
        on_unauthorized.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_refresh_expired_reply_keeps_refresh_token(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        token_store: TokenStore,
        sample_token_response: dict[str, Any],
    ) -> None:
        """Test that a reply with a zero lifetime is treated as a failed refresh."""
        sample_token_response["expires_in"] = 0
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=sample_token_response)
        on_unauthorized = Mock()
        async with httpx.AsyncClient() as session:
            scheduler = RefreshScheduler(
                mock_hass,
                session,
                credentials,
                token_store,
                on_unauthorized=on_unauthorized,
            )
            await scheduler.async_refresh()

        assert token_store.get().access_token == ""
        assert token_store.get().refresh_token == REFRESH_TOKEN
        on_unauthorized.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_refresh_without_refresh_token_does_nothing(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        unauthorized_config_entry: Mock,
    ) -> None:
        """Test that no request is sent without a refresh token."""
        store = TokenStore(mock_hass, unauthorized_config_entry)
        async with httpx.AsyncClient() as session:
            scheduler = RefreshScheduler(mock_hass, session, credentials, store)
            await scheduler.async_refresh()

        assert httpx_mock.get_requests() == []
        assert store.is_authorized() is False


@pytest.fixture
def oauth(
    mock_hass: MagicMock,
    credentials: Credentials,
    unauthorized_config_entry: Mock,
) -> OAuthSession:
    """Create an authorization session for an unauthorized entry."""
    store = TokenStore(mock_hass, unauthorized_config_entry)
    scheduler = Mock(spec=RefreshScheduler)
    return OAuthSession(Mock(), credentials, store, scheduler)


def state_param(url: str) -> str:
    """Return the state query parameter of an authorization URL."""
    return url.rsplit("state=", 1)[1]


class TestOAuthSession:
    """Tests for OAuthSession."""

    def test_begin_returns_url_and_waits(self, oauth: OAuthSession) -> None:
        """Test that begin returns an authorization URL with a state."""
        url = oauth.begin(SCOPES, REDIRECT_URI)
        assert url.startswith("https://api.netatmo.com/oauth2/authorize?")
        assert len(state_param(url)) == 32
        assert oauth.state is AuthFlowState.AWAITING_CALLBACK
        assert oauth.pending is True

    def test_begin_uses_fresh_state_each_time(
        self,
        mock_hass: MagicMock,
        credentials: Credentials,
        unauthorized_config_entry: Mock,
    ) -> None:
        """Test that a replaced authorization gets a new state value."""
        store = TokenStore(mock_hass, unauthorized_config_entry)
        session = OAuthSession(
            Mock(), credentials, store, Mock(), replace_pending=True
        )
        first = state_param(session.begin(SCOPES, REDIRECT_URI))
        second = state_param(session.begin(SCOPES, REDIRECT_URI))
        assert first != second
        assert session.pending is True

    def test_second_begin_raises_while_pending(self, oauth: OAuthSession) -> None:
        """Test that only one authorization can be pending."""
        oauth.begin(SCOPES, REDIRECT_URI)
        with pytest.raises(AuthFlowError, match="already waiting"):
            oauth.begin(SCOPES, REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_resume_without_pending_raises(self, oauth: OAuthSession) -> None:
        """Test that a callback without a pending authorization is refused."""
        with pytest.raises(AuthFlowError, match="No authorization"):
            await oauth.async_resume({"code": "c", "state": "s"})
        assert oauth.state is AuthFlowState.IDLE

    @pytest.mark.asyncio
    async def test_resume_with_mismatched_state_fails(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        unauthorized_config_entry: Mock,
    ) -> None:
        """Test that a foreign state value aborts without exchanging."""
        store = TokenStore(mock_hass, unauthorized_config_entry)
        async with httpx.AsyncClient() as session:
            oauth = OAuthSession(session, credentials, store, Mock())
            oauth.begin(SCOPES, REDIRECT_URI)
            with pytest.raises(AuthFlowError, match="Possible error: None"):
                await oauth.async_resume({"code": "c", "state": "forged"})

        assert oauth.state is AuthFlowState.FAILED
        assert oauth.pending is False
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_resume_with_provider_error_reports_it(
        self,
        oauth: OAuthSession,
    ) -> None:
        """Test that a denied authorization carries the provider's error."""
        url = oauth.begin(SCOPES, REDIRECT_URI)
        with pytest.raises(AuthFlowError, match="access_denied"):
            await oauth.async_resume(
                {"state": state_param(url), "error": "access_denied"}
            )
        assert oauth.state is AuthFlowState.FAILED

    @pytest.mark.asyncio
    async def test_resume_exchanges_code_and_arms_scheduler(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        unauthorized_config_entry: Mock,
        sample_token_response: dict[str, Any],
    ) -> None:
        """Test that a valid callback stores tokens and arms the refresh."""
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=sample_token_response)
        store = TokenStore(mock_hass, unauthorized_config_entry)
        scheduler = Mock(spec=RefreshScheduler)
        async with httpx.AsyncClient() as session:
            oauth = OAuthSession(session, credentials, store, scheduler)
            url = oauth.begin(SCOPES, REDIRECT_URI)
            await oauth.async_resume({"code": "code1", "state": state_param(url)})

        assert oauth.state is AuthFlowState.DONE
        assert store.get().access_token == "new_access_token"
        assert store.is_authorized() is True
        scheduler.arm.assert_called_once()

    @pytest.mark.asyncio
    async def test_resume_with_refused_code_fails(
        self,
        httpx_mock: HTTPXMock,
        mock_hass: MagicMock,
        credentials: Credentials,
        unauthorized_config_entry: Mock,
    ) -> None:
        """Test that a refused exchange leaves the store untouched."""
        httpx_mock.add_response(url=TOKEN_URL, method="POST", status_code=400)
        store = TokenStore(mock_hass, unauthorized_config_entry)
        scheduler = Mock(spec=RefreshScheduler)
        async with httpx.AsyncClient() as session:
            oauth = OAuthSession(session, credentials, store, scheduler)
            url = oauth.begin(SCOPES, REDIRECT_URI)
            with pytest.raises(AuthFlowError):
                await oauth.async_resume({"code": "code1", "state": state_param(url)})

        assert oauth.state is AuthFlowState.FAILED
        assert store.is_authorized() is False
        scheduler.arm.assert_not_called()

    def test_abandon_returns_to_idle(self, oauth: OAuthSession) -> None:
        """Test that abandoning a pending authorization resets the state."""
        oauth.begin(SCOPES, REDIRECT_URI)
        oauth.abandon()
        assert oauth.state is AuthFlowState.IDLE
        assert oauth.pending is False
