"""An active session: log progress and ask typed questions.

Usage:
    session = await client.sessions.create(name="Deploy Review", recipients=["user@example.com"])
    async with session:
        await session.log("Starting deployment...")
        answer = await session.ask(
            "Configure deployment",
            inputs=[
                {"type": "select", "name": "env", "options": ["staging", "production"]},
                {"type": "confirm", "name": "notify"},
            ],
        )
        # answer.env: str, answer.notify: bool
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import Any

from ..config import DEFAULT_ASK_TIMEOUT, ClientOptions, WebSocketOptions
from ..correlation import CorrelationEngine
from ..errors import ValidationError
from ..http import HTTPClient
from ..inputs import (
    ConfirmInput,
    SelectInput,
    TextInput,
    encode_inputs,
    parse_inputs,
    response_model,
)
from ..pagination import paginate
from ..protocol import SendPayload
from ..transport.websocket import ChannelOpener, WebSocketConnection, create_websocket_connection
from ..types import Message, MessageType, Page, Recipient, SessionData

logger = logging.getLogger(__name__)


class Session:
    """A session with its own WebSocket connection, opened on first use."""

    def __init__(
        self,
        data: SessionData,
        options: ClientOptions,
        http: HTTPClient,
        ws_options: WebSocketOptions | None = None,
        opener: ChannelOpener | None = None,
    ) -> None:
        self.data = data
        self._options = options
        self._http = http
        self._ws_options = ws_options or WebSocketOptions()
        self._opener = opener
        self._connection: WebSocketConnection | None = None
        self._engine = CorrelationEngine(ack_timeout=self._ws_options.ack_timeout)

    @property
    def id(self) -> str:
        return self.data.session_id

    @property
    def name(self) -> str:
        return self.data.name

    @property
    def recipients(self) -> list[Recipient]:
        return self.data.recipients

    @property
    def expires_at(self) -> str | None:
        return self.data.expires_at

    @property
    def connection(self) -> WebSocketConnection | None:
        """The current connection, if one has been opened."""
        return self._connection

    @property
    def engine(self) -> CorrelationEngine:
        return self._engine

    async def _ensure_connected(self) -> WebSocketConnection:
        if self._connection is None:
            self._connection = create_websocket_connection(
                self._options, self.id, self._ws_options, self._opener
            )
            self._engine.attach(self._connection)
        await self._connection.connect()
        return self._connection

    async def log(self, message: str, persist: bool = True) -> None:
        """Post a markdown notification and wait until the server acknowledges it."""
        connection = await self._ensure_connected()
        payload = SendPayload(type=MessageType.LOG, content=message, persist=persist)
        await self._engine.notify(connection, payload)

    async def ask(
        self,
        question: str,
        inputs: Iterable[TextInput | ConfirmInput | SelectInput | Mapping[str, Any]],
        timeout: float | None = None,
        persist: bool = True,
    ) -> Any:
        """Ask a question and wait for the human's answer.

        Args:
            question: Markdown question text
            inputs: Input descriptors; each name becomes a field of the answer
            timeout: Seconds to wait for the answer once the server has the
                question (default 5 minutes)
            persist: Whether the server keeps the message

        Returns:
            An answer model instance (see `justack.inputs.response_model`), or
            the raw response text if the answer does not fit the inputs

        Raises:
            ValidationError: No recipients, or malformed inputs
            RequestTimeoutError: No answer before the deadline
            SessionExpiredError: The server invalidated the session
            ConnectionClosedError: The session was closed while waiting
        """
        if not self.recipients:
            raise ValidationError(
                "Cannot ask without recipients. "
                "Add recipients when creating or resuming the session."
            )

        descriptors = parse_inputs(inputs)
        answer_model = response_model(descriptors)
        connection = await self._ensure_connected()

        payload = SendPayload(
            type=MessageType.ASK,
            content=question,
            inputs=encode_inputs(descriptors),
            persist=persist,
        )
        return await self._engine.ask(
            connection,
            payload,
            descriptors,
            answer_model,
            timeout=DEFAULT_ASK_TIMEOUT if timeout is None else timeout,
        )

    async def close(self) -> None:
        """Fail pending operations and close the WebSocket connection."""
        failed = self._engine.shutdown()
        if failed:
            logger.info(f"Closed session {self.id} with {failed} pending operations")

        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()

    def messages(self, limit: int | None = None) -> AsyncIterator[Message]:
        """Iterate over every message in the session.

        Args:
            limit: Messages per page (1-100)
        """

        async def fetch_page(cursor: str | None) -> Page[Message]:
            body = await self._http.request(
                "GET",
                f"/sessions/{self.id}/messages",
                params={"limit": limit, "after": cursor},
            )
            return Page[Message].model_validate(body)

        return paginate(fetch_page)

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, name={self.name!r})"
