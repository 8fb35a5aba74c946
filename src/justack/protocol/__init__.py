"""WebSocket wire protocol for Justack sessions.

Inbound frames are decoded into typed models; outbound sends are wrapped in
a single `message` envelope.
"""

from .frames import (
    ClientFrame,
    ConnectedFrame,
    ErrorData,
    ErrorFrame,
    MessageAck,
    MessageAckFrame,
    MessageFrame,
    MessageUpdatedFrame,
    SendPayload,
    ServerFrame,
    ServerFrameType,
    parse_server_frame,
)

__all__ = [
    "ClientFrame",
    "ConnectedFrame",
    "ErrorData",
    "ErrorFrame",
    "MessageAck",
    "MessageAckFrame",
    "MessageFrame",
    "MessageUpdatedFrame",
    "SendPayload",
    "ServerFrame",
    "ServerFrameType",
    "parse_server_frame",
]
