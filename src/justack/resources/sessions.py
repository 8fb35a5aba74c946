"""Session management: create, resume, get, delete, list."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any

from ..config import ClientOptions, WebSocketOptions
from ..http import HTTPClient
from ..pagination import paginate
from ..transport.websocket import ChannelOpener
from ..types import Page, SessionData
from .session import Session

# A recipient is referenced by email / external id string or by a mapping
# with "email" and/or "external_id"
RecipientRef = str | Mapping[str, str]


class SessionsResource:
    """Session operations."""

    def __init__(
        self,
        options: ClientOptions,
        http: HTTPClient,
        ws_options: WebSocketOptions | None = None,
        opener: ChannelOpener | None = None,
    ) -> None:
        self._options = options
        self._http = http
        self._ws_options = ws_options
        self._opener = opener

    def _session(self, data: SessionData) -> Session:
        return Session(data, self._options, self._http, self._ws_options, self._opener)

    async def create(
        self,
        name: str,
        recipients: list[RecipientRef] | None = None,
        retention_months: int | None = None,
        notify: bool | None = None,
        callback_url: str | None = None,
    ) -> Session:
        """Create a session and return it ready for interaction.

        Args:
            name: Display name
            recipients: Emails, external ids, or {"email"/"external_id"} mappings
            retention_months: How long the server keeps the session (1-12)
            notify: Whether recipients are notified
            callback_url: Webhook URL
        """
        body: dict[str, Any] = {"name": name}
        if recipients is not None:
            body["recipients"] = [r if isinstance(r, str) else dict(r) for r in recipients]
        if retention_months is not None:
            body["retention_months"] = retention_months
        if notify is not None:
            body["notify"] = notify
        if callback_url is not None:
            body["callback_url"] = callback_url

        data = await self._http.request("POST", "/sessions", json=body)
        return self._session(SessionData.model_validate(data))

    async def resume(self, session_id: str) -> Session:
        """Return an interactive Session for an existing session id."""
        return self._session(await self.get(session_id))

    async def get(self, session_id: str) -> SessionData:
        """Get session data (no interaction methods)."""
        data = await self._http.request("GET", f"/sessions/{session_id}")
        return SessionData.model_validate(data)

    async def delete(self, session_id: str) -> None:
        await self._http.request("DELETE", f"/sessions/{session_id}")

    def list(self, limit: int | None = None) -> AsyncIterator[SessionData]:
        """Iterate over all sessions, fetching pages of `limit` as needed."""

        async def fetch_page(cursor: str | None) -> Page[SessionData]:
            body = await self._http.request(
                "GET", "/sessions", params={"limit": limit, "after": cursor}
            )
            return Page[SessionData].model_validate(body)

        return paginate(fetch_page)
