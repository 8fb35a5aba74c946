"""Session transports."""

from .websocket import (
    Channel,
    ChannelOpener,
    ConnectionEvent,
    ConnectionStatus,
    WebSocketConnection,
    backoff_delay,
    create_websocket_connection,
)

__all__ = [
    "Channel",
    "ChannelOpener",
    "ConnectionEvent",
    "ConnectionStatus",
    "WebSocketConnection",
    "backoff_delay",
    "create_websocket_connection",
]
