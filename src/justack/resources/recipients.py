"""Recipient management and invite links."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from ..http import HTTPClient
from ..pagination import paginate
from ..types import InviteResult, InviteUrlResult, Page, Recipient


class RecipientsResource:
    """Recipient operations."""

    def __init__(self, http: HTTPClient) -> None:
        self._http = http

    async def create(
        self,
        name: str,
        email: str | None = None,
        external_id: str | None = None,
    ) -> Recipient:
        """Create a recipient. At least one of email or external_id is required."""
        if not email and not external_id:
            raise ValueError("email or external_id is required")

        body: dict[str, Any] = {"name": name}
        if email:
            body["email"] = email
        if external_id:
            body["external_id"] = external_id

        data = await self._http.request("POST", "/recipients", json=body)
        return Recipient.model_validate(data)

    async def get(self, recipient_id: str) -> Recipient:
        data = await self._http.request("GET", f"/recipients/{recipient_id}")
        return Recipient.model_validate(data)

    async def delete(self, recipient_id: str) -> None:
        await self._http.request("DELETE", f"/recipients/{recipient_id}")

    def list(self, limit: int | None = None) -> AsyncIterator[Recipient]:
        """Iterate over all recipients."""

        async def fetch_page(cursor: str | None) -> Page[Recipient]:
            body = await self._http.request(
                "GET", "/recipients", params={"limit": limit, "after": cursor}
            )
            return Page[Recipient].model_validate(body)

        return paginate(fetch_page)

    async def send_invite(self, recipient_id: str) -> InviteResult:
        """Email the recipient a sign-in link."""
        data = await self._http.request("POST", f"/recipients/{recipient_id}/invite")
        return InviteResult.model_validate(data)

    async def get_invite_url(self, recipient_id: str) -> InviteUrlResult:
        """Get a sign-in link to deliver yourself."""
        data = await self._http.request("POST", f"/recipients/{recipient_id}/invite-url")
        return InviteUrlResult.model_validate(data)
