"""Pytest configuration and shared fixtures.

The WebSocket server is replaced by an in-memory channel: tests push server
frames into it and inspect what the client sent.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from justack.config import ClientOptions, WebSocketOptions

_CLOSED = object()


class FakeChannel:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, url: str = "", headers: dict[str, str] | None = None) -> None:
        self.url = url
        self.headers = dict(headers or {})
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.closed = False
        self.send_error: BaseException | None = None
        self.on_send: Callable[[FakeChannel, dict[str, Any]], None] | None = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    def __aiter__(self) -> FakeChannel:
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def send(self, message: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)
        if self.on_send is not None:
            self.on_send(self, json.loads(message))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    # Server side

    def push(self, frame: dict[str, Any] | str) -> None:
        """Deliver a frame from the server."""
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def handshake(self) -> None:
        self.push({"type": "connected"})

    def ack(self, message_id: str) -> None:
        self.push({"type": "message_ack", "data": {"id": message_id}})

    def answer(self, message_id: str, response: str) -> None:
        """Deliver a message_updated carrying a human response."""
        self.push(
            {
                "type": "message_updated",
                "data": {
                    "id": message_id,
                    "role": "agent",
                    "type": "ask",
                    "content": "question",
                    "response_content": response,
                },
            }
        )

    async def drop(self, code: int = 1006, reason: str = "") -> None:
        """Close the channel from the server side."""
        await self.close(code, reason)

    @property
    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(m) for m in self.sent]

    async def wait_sent(self, count: int, timeout: float = 1.0) -> None:
        """Wait until at least `count` frames have been sent."""

        async def poll() -> None:
            while len(self.sent) < count:
                await asyncio.sleep(0)

        await asyncio.wait_for(poll(), timeout)


class FakeServer:
    """Channel opener that hands out FakeChannels.

    With `auto_handshake` each channel greets the client with `connected` as
    soon as it opens. `fail_next` makes the next N opens raise.
    `on_send`, when set, is installed on every channel to script replies.
    """

    def __init__(self, auto_handshake: bool = True) -> None:
        self.auto_handshake = auto_handshake
        self.channels: list[FakeChannel] = []
        self.open_calls = 0
        self.fail_next = 0
        self.on_send: Callable[[FakeChannel, dict[str, Any]], None] | None = None

    async def __call__(self, url: str, headers: dict[str, str]) -> FakeChannel:
        self.open_calls += 1
        await asyncio.sleep(0)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise OSError("connection refused")
        channel = FakeChannel(url, headers)
        channel.on_send = self.on_send
        if self.auto_handshake:
            channel.handshake()
        self.channels.append(channel)
        return channel

    @property
    def channel(self) -> FakeChannel:
        """The most recently opened channel."""
        return self.channels[-1]

    async def wait_opened(self, count: int = 1, timeout: float = 1.0) -> FakeChannel:
        """Wait until `count` channels have been opened and return the last."""

        async def poll() -> None:
            while len(self.channels) < count:
                await asyncio.sleep(0)

        await asyncio.wait_for(poll(), timeout)
        return self.channel


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def client_options() -> ClientOptions:
    return ClientOptions(api_key="sk_test", base_url="https://api.example.test/v1")


@pytest.fixture
def ws_options() -> WebSocketOptions:
    """Fast reconnects with no jitter."""
    return WebSocketOptions(
        reconnect_delay=0.01,
        max_reconnect_delay=0.05,
        reconnect_jitter=0.0,
        max_reconnect_attempts=3,
        ack_timeout=1.0,
    )
