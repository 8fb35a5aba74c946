"""Justack client entry point.

Usage:
    async with JustackClient(api_key="sk_...") as client:
        session = await client.sessions.create(name="Deploy", recipients=["ops@example.com"])
        await session.log("Starting")
        answer = await session.ask("Ship it?", inputs=[{"type": "confirm", "name": "ok"}])
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import ClientOptions, WebSocketOptions
from .http import HTTPClient
from .resources import RecipientsResource, SessionsResource
from .transport.websocket import ChannelOpener

logger = logging.getLogger(__name__)


class JustackClient:
    """Client for the Justack API.

    Every argument falls back to the environment (JUSTACK_API_KEY,
    JUSTACK_API_URL, JUSTACK_TIMEOUT) and then to the built-in default.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        ws_options: WebSocketOptions | None = None,
        opener: ChannelOpener | None = None,
    ) -> None:
        self.options = ClientOptions.from_env(api_key=api_key, base_url=base_url, timeout=timeout)
        self._http = HTTPClient(self.options, http_client=http_client)
        self.sessions = SessionsResource(self.options, self._http, ws_options, opener)
        self.recipients = RecipientsResource(self._http)

    async def close(self) -> None:
        """Release the HTTP connection pool."""
        await self._http.close()
        logger.debug("Justack client closed")

    async def __aenter__(self) -> JustackClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"JustackClient(base_url={self.options.base_url!r})"
