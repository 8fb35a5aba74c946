"""WebSocket connection to a single Justack session.

One connection owns one channel at a time and drives it through:

    disconnected -> connecting -> connected -> disconnected | error
                                            -> closed (only via close())

`connect()` completes on the server's `connected` frame, not when the socket
opens: a socket can open and still fail the application handshake. Unexpected
closes are retried with exponential backoff and jitter until the attempt cap
is reached; `close()` stops all of that for good.

Inbound frames are decoded and re-emitted as events on a per-connection
EventEmitter:

    connected        ()
    message          (Message)
    message_updated  (Message)
    message_ack      (MessageAck)
    error            (ErrorData)
    disconnected     (code, reason)
    status_change    (ConnectionStatus)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Protocol

import pydantic
import websockets
from websockets.exceptions import ConnectionClosed

from ..config import SESSION_EXPIRED_CLOSE_CODE, ClientOptions, WebSocketOptions
from ..errors import ConnectionClosedError, NotConnectedError, ProtocolError
from ..events import EventEmitter, Listener
from ..protocol import (
    ClientFrame,
    ConnectedFrame,
    ErrorData,
    ErrorFrame,
    MessageAckFrame,
    MessageFrame,
    MessageUpdatedFrame,
    SendPayload,
    parse_server_frame,
)

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    CLOSED = "closed"


class ConnectionEvent(str, Enum):
    """Events emitted by a connection."""

    CONNECTED = "connected"
    MESSAGE = "message"
    MESSAGE_UPDATED = "message_updated"
    MESSAGE_ACK = "message_ack"
    ERROR = "error"
    DISCONNECTED = "disconnected"
    STATUS_CHANGE = "status_change"


class Channel(Protocol):
    """The duplex channel a connection drives (a websockets client connection)."""

    @property
    def close_code(self) -> int | None: ...

    @property
    def close_reason(self) -> str | None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


ChannelOpener = Callable[[str, dict[str, str]], Awaitable[Channel]]


def backoff_delay(
    attempt: int,
    base: float = 1.0,
    cap: float = 30.0,
    jitter: float = 1.0,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay before reconnect attempt number `attempt` (0-based).

    min(base * 2**attempt + jitter * rand(), cap)
    """
    return min(base * (2**attempt) + jitter * rand(), cap)


class WebSocketConnection:
    """A reconnecting WebSocket connection to a session endpoint.

    Usage:
        connection = WebSocketConnection(url, headers={"Authorization": "Bearer ..."})
        connection.on(ConnectionEvent.MESSAGE_ACK, on_ack)
        await connection.connect()
        await connection.send(SendPayload(type=MessageType.LOG, content="Hello"))
        await connection.close()
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        options: WebSocketOptions | None = None,
        opener: ChannelOpener | None = None,
    ) -> None:
        self.url = url
        self.options = options or WebSocketOptions()
        self._headers = dict(headers or {})
        self._opener = opener or self._open_websocket
        self._emitter = EventEmitter()

        self._status = ConnectionStatus.DISCONNECTED
        self._channel: Channel | None = None
        self._handshake: asyncio.Future[None] | None = None
        self._open_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None

        self._manual_close = False
        self._reconnect_attempts = 0
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    @property
    def status(self) -> ConnectionStatus:
        """Current connection status."""
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe to a connection event. Returns an unsubscribe function."""
        return self._emitter.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Unsubscribe from a connection event."""
        self._emitter.off(event, listener)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """Connect and wait for the server handshake.

        Concurrent callers share one attempt and one outcome.

        Raises:
            ConnectionClosedError: If close() was called
            ProtocolError: If the channel fails or closes before the handshake
        """
        if self._manual_close:
            raise ConnectionClosedError("Connection has been closed")
        if self._status == ConnectionStatus.CONNECTED:
            return

        if self._handshake is None:
            self._cancel_reconnect_timer()
            self._handshake = asyncio.get_running_loop().create_future()
            self._open_task = asyncio.create_task(self._open_channel())

        # Shielded so one cancelled caller does not cancel everyone's attempt
        await asyncio.shield(self._handshake)

    async def send(self, payload: SendPayload) -> None:
        """Wrap `payload` in the outbound envelope and transmit it.

        Raises:
            NotConnectedError: If the handshake has not completed
            ProtocolError: If the channel fails while sending
        """
        channel = self._channel
        if channel is None or self._status != ConnectionStatus.CONNECTED:
            raise NotConnectedError()

        frame = ClientFrame(data=payload)
        try:
            await channel.send(frame.to_json())
        except ConnectionClosed as e:
            raise ProtocolError(f"WebSocket closed while sending: {e}") from e

    async def close(self) -> None:
        """Close the connection and stop reconnecting for good.

        The reader is detached before the channel is closed, so no close or
        error handling runs for a deliberate shutdown.
        """
        self._manual_close = True
        self._cancel_reconnect_timer()

        current = asyncio.current_task()
        reconnect_task, self._reconnect_task = self._reconnect_task, None
        if reconnect_task is not None and reconnect_task is not current:
            reconnect_task.cancel()

        open_task, self._open_task = self._open_task, None
        reader_task, self._reader_task = self._reader_task, None
        channel, self._channel = self._channel, None

        for task in (open_task, reader_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if channel is not None:
            try:
                await channel.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing WebSocket: {e}")

        self._fail_handshake(ConnectionClosedError("Connection closed"))
        self._set_status(ConnectionStatus.CLOSED)
        logger.info(f"WebSocket connection to {self.url} closed")

    # =========================================================================
    # Channel handling
    # =========================================================================

    async def _open_websocket(self, url: str, headers: dict[str, str]) -> Channel:
        return await websockets.connect(
            url,
            additional_headers=headers,
            ping_interval=self.options.ping_interval,
            ping_timeout=self.options.ping_timeout,
        )

    async def _open_channel(self) -> None:
        """Open the channel and start the reader. Handshake completes later."""
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            channel = await self._opener(self.url, self._headers)
        except Exception as e:
            self._open_task = None
            logger.warning(f"WebSocket connection to {self.url} failed: {e}")
            self._set_status(ConnectionStatus.ERROR)
            self._emitter.emit(ConnectionEvent.ERROR, ErrorData(message=str(e)))
            self._set_status(ConnectionStatus.DISCONNECTED)
            self._emitter.emit(ConnectionEvent.DISCONNECTED, None, str(e))
            self._fail_handshake(ProtocolError(f"Failed to connect: {e}"))
            if self._should_reconnect(None):
                self._schedule_reconnect()
            return

        self._open_task = None
        self._channel = channel
        self._reader_task = asyncio.create_task(self._read_loop(channel))
        logger.debug(f"WebSocket opened to {self.url}, awaiting handshake")

    async def _read_loop(self, channel: Channel) -> None:
        """Read frames until the channel closes."""
        error: Exception | None = None
        try:
            async for raw in channel:
                self._handle_frame(raw)
        except ConnectionClosed:
            pass
        except Exception as e:
            error = e
            logger.error(f"WebSocket receive error: {e}")
            try:
                await channel.close()
            except Exception as close_error:
                logger.debug(f"Ignoring error while closing WebSocket: {close_error}")

        self._handle_channel_lost(channel, error)

    def _handle_frame(self, raw: str | bytes) -> None:
        """Decode one inbound frame and emit the matching event."""
        try:
            frame = parse_server_frame(raw)
        except pydantic.ValidationError as e:
            logger.debug(f"Dropping malformed frame: {e}")
            return

        if isinstance(frame, ConnectedFrame):
            self._reconnect_attempts = 0
            self._set_status(ConnectionStatus.CONNECTED)
            self._emitter.emit(ConnectionEvent.CONNECTED)
            handshake, self._handshake = self._handshake, None
            if handshake is not None and not handshake.done():
                handshake.set_result(None)
            logger.info(f"WebSocket connected to {self.url}")

        elif isinstance(frame, MessageFrame):
            self._emitter.emit(ConnectionEvent.MESSAGE, frame.data)

        elif isinstance(frame, MessageUpdatedFrame):
            self._emitter.emit(ConnectionEvent.MESSAGE_UPDATED, frame.data)

        elif isinstance(frame, MessageAckFrame):
            self._emitter.emit(ConnectionEvent.MESSAGE_ACK, frame.data)

        elif isinstance(frame, ErrorFrame):
            logger.warning(f"Server error: {frame.data.message} (code={frame.data.code})")
            self._emitter.emit(ConnectionEvent.ERROR, frame.data)

    def _handle_channel_lost(self, channel: Channel, error: Exception | None) -> None:
        """React to the channel closing without close() being called."""
        if channel is not self._channel:
            return

        self._channel = None
        self._reader_task = None
        code = channel.close_code
        reason = channel.close_reason or ""

        if error is not None:
            self._set_status(ConnectionStatus.ERROR)
            self._emitter.emit(ConnectionEvent.ERROR, ErrorData(message=str(error)))

        logger.info(f"WebSocket disconnected from {self.url} (code={code}, reason={reason!r})")
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._emitter.emit(ConnectionEvent.DISCONNECTED, code, reason)
        self._fail_handshake(ProtocolError(f"WebSocket closed during connection: {code} {reason}"))

        if self._should_reconnect(code):
            self._schedule_reconnect()

    def _fail_handshake(self, error: Exception) -> None:
        handshake, self._handshake = self._handshake, None
        if handshake is not None and not handshake.done():
            handshake.set_exception(error)

    def _set_status(self, status: ConnectionStatus) -> None:
        if self._status != status:
            self._status = status
            self._emitter.emit(ConnectionEvent.STATUS_CHANGE, status)

    # =========================================================================
    # Reconnection
    # =========================================================================

    def _should_reconnect(self, close_code: int | None) -> bool:
        if self._manual_close or not self.options.auto_reconnect:
            return False
        # The server invalidated the session; reconnecting cannot succeed
        return close_code != SESSION_EXPIRED_CLOSE_CODE

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            return
        if self._reconnect_attempts >= self.options.max_reconnect_attempts:
            logger.warning(
                f"Not reconnecting to {self.url}: "
                f"{self._reconnect_attempts} attempts already made"
            )
            return

        delay = backoff_delay(
            self._reconnect_attempts,
            base=self.options.reconnect_delay,
            cap=self.options.max_reconnect_delay,
            jitter=self.options.reconnect_jitter,
        )
        logger.info(
            f"Reconnecting to {self.url} in {delay:.2f}s "
            f"(attempt {self._reconnect_attempts + 1}/{self.options.max_reconnect_attempts})"
        )
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._start_reconnect)

    def _start_reconnect(self) -> None:
        self._reconnect_handle = None
        self._reconnect_attempts += 1
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self.connect()
        except (ProtocolError, ConnectionClosedError) as e:
            # A failed attempt schedules the next one itself
            logger.debug(f"Reconnect attempt {self._reconnect_attempts} failed: {e}")
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def __repr__(self) -> str:
        return f"WebSocketConnection(url={self.url!r}, status={self._status.value!r})"


def create_websocket_connection(
    options: ClientOptions,
    session_id: str,
    ws_options: WebSocketOptions | None = None,
    opener: ChannelOpener | None = None,
) -> WebSocketConnection:
    """Create the connection for a session, authenticated with the API key."""
    return WebSocketConnection(
        options.websocket_url(session_id),
        headers=options.auth_headers,
        options=ws_options,
        opener=opener,
    )
