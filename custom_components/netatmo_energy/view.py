"""HTTP endpoint receiving the OAuth redirect callback."""

from __future__ import annotations

import html
import logging
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from aiohttp import web
from homeassistant.components.http import HomeAssistantView

from .api import AuthFlowError
from .const import CALLBACK_NAME, CALLBACK_PATH, DOMAIN

if TYPE_CHECKING:
    from collections.abc import Mapping

    from homeassistant.core import HomeAssistant

    from .bridge import NetatmoEnergyBridge

_LOGGER = logging.getLogger(__name__)

DONE_PAGE = (
    "<html><body><h1>Done! You may close this tab now.</h1></body></html>"
)


class NetatmoEnergyCallbackView(HomeAssistantView):
    """Deliver the provider's redirect parameters to the pending authorization.

    The provider cannot send Home Assistant credentials, so the view is
    unauthenticated; the state nonce binds the callback to the authorization
    that produced it.
    """

    url = CALLBACK_PATH
    name = CALLBACK_NAME
    requires_auth = False

    def __init__(self, hass: HomeAssistant) -> None:
        """Initialize the view."""
        self.hass = hass

    async def get(self, request: web.Request) -> web.Response:
        """Handle the browser being redirected here by the provider."""
        error = await self._async_deliver(dict(request.query))
        if error is not None:
            return web.Response(
                text=f"<html><body><h1>{html.escape(error)}</h1></body></html>",
                content_type="text/html",
                status=HTTPStatus.BAD_REQUEST,
            )
        return web.Response(text=DONE_PAGE, content_type="text/html")

    async def post(self, request: web.Request) -> web.Response:
        """Handle the redirect parameters forwarded as a JSON body."""
        try:
            payload = await request.json()
        except ValueError:
            return self.json_message("Invalid JSON", HTTPStatus.BAD_REQUEST)

        if not isinstance(payload, dict):
            return self.json_message("Invalid payload", HTTPStatus.BAD_REQUEST)

        error = await self._async_deliver(payload)
        if error is not None:
            return self.json_message(error, HTTPStatus.BAD_REQUEST)
        return self.json({})

    async def _async_deliver(self, payload: Mapping[str, Any]) -> str | None:
        """Pass the payload to the waiting bridge and return an error, if any."""
        bridge = self._pending_bridge()
        if bridge is None:
            _LOGGER.warning("Received auth callback but no authorization is pending")
            return "No authorization is pending"

        try:
            await bridge.async_handle_callback(payload)
        except AuthFlowError as err:
            _LOGGER.error("Authorization failed: %s", err)
            return str(err)
        return None

    def _pending_bridge(self) -> NetatmoEnergyBridge | None:
        for entry_data in self.hass.data.get(DOMAIN, {}).values():
            bridge = entry_data["bridge"]
            if bridge.oauth.pending:
                return bridge
        return None
