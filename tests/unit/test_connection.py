"""Unit tests for the session WebSocket connection.

Tests the connection state machine including:
- Handshake on the server's `connected` frame
- Shared outcome for concurrent connect() calls
- Frame decoding and event emission
- Reconnection with backoff, and its suppression
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from conftest import FakeServer, settle
from websockets.exceptions import ConnectionClosed

from justack.config import ClientOptions, WebSocketOptions
from justack.errors import ConnectionClosedError, NotConnectedError, ProtocolError
from justack.protocol import ErrorData, MessageAck, SendPayload
from justack.transport.websocket import (
    ConnectionEvent,
    ConnectionStatus,
    WebSocketConnection,
    backoff_delay,
    create_websocket_connection,
)
from justack.types import Message, MessageType

URL = "wss://api.example.test/v1/sessions/sess_1/ws"


def make_connection(server: FakeServer, options: WebSocketOptions) -> WebSocketConnection:
    return WebSocketConnection(URL, headers={"Authorization": "Bearer k"}, options=options, opener=server)


# =============================================================================
# Backoff
# =============================================================================


class TestBackoffDelay:
    """Tests for the reconnect delay formula."""

    def test_doubles_per_attempt(self) -> None:
        """Deterministic part is base * 2**attempt."""
        delays = [backoff_delay(n, base=1.0, cap=30.0, jitter=0.0) for n in range(5)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_capped(self) -> None:
        """Delay never exceeds the cap, jitter included."""
        assert backoff_delay(10, base=1.0, cap=30.0, jitter=1.0, rand=lambda: 0.99) == 30.0

    def test_non_decreasing_and_bounded(self) -> None:
        """Attempts 0..4 are non-decreasing and within the cap."""
        delays = [backoff_delay(n, rand=lambda: 0.5) for n in range(5)]
        assert delays == sorted(delays)
        assert all(d <= 30.0 for d in delays)

    def test_jitter_added(self) -> None:
        """Jitter scales the random component."""
        assert backoff_delay(0, base=1.0, jitter=1.0, rand=lambda: 0.25) == 1.25


# =============================================================================
# Connect / handshake
# =============================================================================


class TestConnect:
    """Tests for connect() and the handshake."""

    @pytest.mark.asyncio
    async def test_connect_waits_for_handshake(self, ws_options: WebSocketOptions) -> None:
        """connect() does not complete when the socket opens, only on `connected`."""
        server = FakeServer(auto_handshake=False)
        connection = make_connection(server, ws_options)

        task = asyncio.create_task(connection.connect())
        await settle()
        assert not task.done()
        assert connection.status == ConnectionStatus.CONNECTING

        server.channel.handshake()
        await asyncio.wait_for(task, 1.0)
        assert connection.is_connected

        await connection.close()

    @pytest.mark.asyncio
    async def test_concurrent_connect_opens_one_channel(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """Two connect() calls before the handshake share one attempt."""
        connection = make_connection(server, ws_options)

        await asyncio.gather(connection.connect(), connection.connect())

        assert server.open_calls == 1
        assert connection.is_connected
        await connection.close()

    @pytest.mark.asyncio
    async def test_concurrent_connect_share_failure(self, ws_options: WebSocketOptions) -> None:
        """Concurrent callers all see the same failure."""
        server = FakeServer()
        server.fail_next = 1
        ws_options.auto_reconnect = False
        connection = make_connection(server, ws_options)

        results = await asyncio.gather(
            connection.connect(), connection.connect(), return_exceptions=True
        )

        assert server.open_calls == 1
        assert all(isinstance(r, ProtocolError) for r in results)
        assert connection.status == ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_when_connected_is_noop(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """connect() on a connected connection returns immediately."""
        connection = make_connection(server, ws_options)
        await connection.connect()
        await connection.connect()

        assert server.open_calls == 1
        await connection.close()

    @pytest.mark.asyncio
    async def test_closed_before_handshake_fails_connect(self, ws_options: WebSocketOptions) -> None:
        """Channel closing before `connected` fails connect() with ProtocolError."""
        server = FakeServer(auto_handshake=False)
        ws_options.auto_reconnect = False
        connection = make_connection(server, ws_options)

        task = asyncio.create_task(connection.connect())
        await settle()
        await server.channel.drop(1011, "internal error")

        with pytest.raises(ProtocolError):
            await asyncio.wait_for(task, 1.0)

    @pytest.mark.asyncio
    async def test_connect_after_close_raises(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """A closed connection cannot be reopened."""
        connection = make_connection(server, ws_options)
        await connection.connect()
        await connection.close()

        with pytest.raises(ConnectionClosedError):
            await connection.connect()

    @pytest.mark.asyncio
    async def test_opener_receives_url_and_headers(
        self, server: FakeServer, client_options: ClientOptions, ws_options: WebSocketOptions
    ) -> None:
        """Session connections use the ws URL and bearer header."""
        connection = create_websocket_connection(client_options, "sess_9", ws_options, server)
        await connection.connect()

        assert server.channel.url == "wss://api.example.test/v1/sessions/sess_9/ws"
        assert server.channel.headers["Authorization"] == "Bearer sk_test"
        await connection.close()

    @pytest.mark.asyncio
    async def test_status_changes_emitted(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """status_change fires for each transition."""
        connection = make_connection(server, ws_options)
        statuses: list[ConnectionStatus] = []
        connection.on(ConnectionEvent.STATUS_CHANGE, statuses.append)

        await connection.connect()
        await connection.close()

        assert statuses == [
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
            ConnectionStatus.CLOSED,
        ]


# =============================================================================
# Send
# =============================================================================


class TestSend:
    """Tests for send()."""

    @pytest.mark.asyncio
    async def test_send_without_connection_raises(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """send() before the handshake raises NotConnectedError."""
        connection = make_connection(server, ws_options)

        with pytest.raises(NotConnectedError):
            await connection.send(SendPayload(type=MessageType.LOG, content="hi"))

    @pytest.mark.asyncio
    async def test_send_wraps_payload(self, server: FakeServer, ws_options: WebSocketOptions) -> None:
        """Payload is wrapped in a `message` envelope as the agent."""
        connection = make_connection(server, ws_options)
        await connection.connect()

        await connection.send(SendPayload(type=MessageType.LOG, content="hi", persist=False))

        assert server.channel.sent_frames == [
            {
                "type": "message",
                "data": {"role": "agent", "type": "log", "content": "hi", "persist": False},
            }
        ]
        await connection.close()

    @pytest.mark.asyncio
    async def test_send_on_closed_socket_raises_protocol_error(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """A ConnectionClosed from the socket surfaces as ProtocolError."""
        connection = make_connection(server, ws_options)
        await connection.connect()
        server.channel.send_error = ConnectionClosed(None, None)

        with pytest.raises(ProtocolError):
            await connection.send(SendPayload(type=MessageType.LOG, content="hi"))
        await connection.close()


# =============================================================================
# Inbound frames
# =============================================================================


class TestInboundFrames:
    """Tests for frame decoding and event emission."""

    @pytest.mark.asyncio
    async def test_frames_emitted_as_events(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """Each inbound frame type reaches its listeners."""
        connection = make_connection(server, ws_options)
        on_ack, on_message, on_updated, on_error = MagicMock(), MagicMock(), MagicMock(), MagicMock()
        connection.on(ConnectionEvent.MESSAGE_ACK, on_ack)
        connection.on(ConnectionEvent.MESSAGE, on_message)
        connection.on(ConnectionEvent.MESSAGE_UPDATED, on_updated)
        connection.on(ConnectionEvent.ERROR, on_error)
        await connection.connect()

        message = {"id": "m1", "role": "recipient", "type": "log", "content": "hello"}
        server.channel.ack("m0")
        server.channel.push({"type": "message", "data": message})
        server.channel.answer("m2", "yes")
        server.channel.push({"type": "error", "data": {"message": "bad", "code": "E1"}})
        await settle()

        on_ack.assert_called_once_with(MessageAck(id="m0"))
        assert isinstance(on_message.call_args.args[0], Message)
        assert on_message.call_args.args[0].content == "hello"
        assert on_updated.call_args.args[0].response_content == "yes"
        on_error.assert_called_once_with(ErrorData(message="bad", code="E1"))
        await connection.close()

    @pytest.mark.asyncio
    async def test_malformed_frames_dropped(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """Undecodable or unknown frames are ignored and reading continues."""
        connection = make_connection(server, ws_options)
        on_ack = MagicMock()
        connection.on(ConnectionEvent.MESSAGE_ACK, on_ack)
        await connection.connect()

        server.channel.push("not json")
        server.channel.push({"type": "mystery"})
        server.channel.push(json.dumps({"type": "message_ack"}))
        server.channel.ack("m1")
        await settle()

        on_ack.assert_called_once_with(MessageAck(id="m1"))
        assert connection.is_connected
        await connection.close()

    @pytest.mark.asyncio
    async def test_listener_failure_isolated(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """A raising listener does not stop the others."""
        connection = make_connection(server, ws_options)
        good = MagicMock()
        connection.on(ConnectionEvent.MESSAGE_ACK, MagicMock(side_effect=RuntimeError("boom")))
        connection.on(ConnectionEvent.MESSAGE_ACK, good)
        await connection.connect()

        server.channel.ack("m1")
        await settle()

        good.assert_called_once()
        await connection.close()


# =============================================================================
# Close and reconnect
# =============================================================================


class TestReconnect:
    """Tests for unexpected closes and reconnection."""

    @pytest.mark.asyncio
    async def test_unexpected_close_reconnects(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """An abnormal close schedules a reconnect that opens a new channel."""
        connection = make_connection(server, ws_options)
        disconnected = MagicMock()
        connection.on(ConnectionEvent.DISCONNECTED, disconnected)
        await connection.connect()

        await server.channel.drop(1006, "gone")
        await settle()
        disconnected.assert_called_once_with(1006, "gone")
        assert connection.reconnect_scheduled

        await asyncio.sleep(0.05)
        await settle()
        assert server.open_calls == 2
        assert connection.is_connected
        assert connection.reconnect_attempts == 0
        await connection.close()

    @pytest.mark.asyncio
    async def test_session_expired_close_not_retried(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """Close code 4001 never triggers a reconnect."""
        connection = make_connection(server, ws_options)
        await connection.connect()

        await server.channel.drop(4001, "session expired")
        await settle()

        assert not connection.reconnect_scheduled
        assert connection.status == ConnectionStatus.DISCONNECTED
        await asyncio.sleep(0.05)
        assert server.open_calls == 1

    @pytest.mark.asyncio
    async def test_auto_reconnect_disabled(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """No reconnect when auto_reconnect is off."""
        ws_options.auto_reconnect = False
        connection = make_connection(server, ws_options)
        await connection.connect()

        await server.channel.drop(1006)
        await settle()

        assert not connection.reconnect_scheduled

    @pytest.mark.asyncio
    async def test_reconnect_gives_up_after_max_attempts(self, ws_options: WebSocketOptions) -> None:
        """Failed reconnects stop at max_reconnect_attempts."""
        server = FakeServer()
        connection = make_connection(server, ws_options)
        await connection.connect()
        server.fail_next = 100

        await server.channel.drop(1006)
        await asyncio.sleep(0.5)
        await settle()

        assert connection.reconnect_attempts == ws_options.max_reconnect_attempts
        assert server.open_calls == 1 + ws_options.max_reconnect_attempts
        assert not connection.reconnect_scheduled
        assert connection.status == ConnectionStatus.DISCONNECTED
        await connection.close()

    @pytest.mark.asyncio
    async def test_close_cancels_scheduled_reconnect(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """close() stops a pending reconnect for good."""
        ws_options.reconnect_delay = 10.0
        ws_options.max_reconnect_delay = 10.0
        connection = make_connection(server, ws_options)
        await connection.connect()

        await server.channel.drop(1006)
        await settle()
        assert connection.reconnect_scheduled

        await connection.close()
        assert not connection.reconnect_scheduled
        assert connection.status == ConnectionStatus.CLOSED

    @pytest.mark.asyncio
    async def test_close_emits_no_disconnect(
        self, server: FakeServer, ws_options: WebSocketOptions
    ) -> None:
        """A deliberate close does not run the unexpected-close path."""
        connection = make_connection(server, ws_options)
        disconnected = MagicMock()
        connection.on(ConnectionEvent.DISCONNECTED, disconnected)
        await connection.connect()
        channel = server.channel

        await connection.close()
        await settle()

        assert channel.closed
        disconnected.assert_not_called()
        assert server.open_calls == 1

    @pytest.mark.asyncio
    async def test_close_fails_pending_connect(self, ws_options: WebSocketOptions) -> None:
        """close() during the handshake fails the waiting connect()."""
        server = FakeServer(auto_handshake=False)
        connection = make_connection(server, ws_options)

        task = asyncio.create_task(connection.connect())
        await settle()
        await connection.close()

        with pytest.raises(ConnectionClosedError):
            await asyncio.wait_for(task, 1.0)
