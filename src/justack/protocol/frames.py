"""Frames exchanged over the session WebSocket.

Server -> client frames are JSON objects discriminated by `type`:

    {"type": "connected"}                              handshake complete
    {"type": "message", "data": <Message>}             new message
    {"type": "message_updated", "data": <Message>}     an ask received a response
    {"type": "message_ack", "data": {"id": "msg_1"}}   permanent id for the oldest send
    {"type": "error", "data": {"message": "...", "code": 1011}}

Client -> server frames carry one message to post:

    {"type": "message", "data": {"role": "agent", "type": "ask", "content": "...",
                                 "inputs": "[...]", "persist": true}}

The ack does not echo which send it belongs to; acks arrive in send order.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from ..types import Message, MessageRole, MessageType


class ServerFrameType(str, Enum):
    """All server -> client frame types."""

    CONNECTED = "connected"
    MESSAGE = "message"
    MESSAGE_UPDATED = "message_updated"
    MESSAGE_ACK = "message_ack"
    ERROR = "error"


class MessageAck(BaseModel):
    """Permanent id assigned to a transmitted message."""

    id: str


class ErrorData(BaseModel):
    """Server-reported error."""

    message: str
    code: int | str | None = None


class ConnectedFrame(BaseModel):
    type: Literal["connected"]
    data: dict[str, Any] = Field(default_factory=dict)


class MessageFrame(BaseModel):
    type: Literal["message"]
    data: Message


class MessageUpdatedFrame(BaseModel):
    type: Literal["message_updated"]
    data: Message


class MessageAckFrame(BaseModel):
    type: Literal["message_ack"]
    data: MessageAck


class ErrorFrame(BaseModel):
    type: Literal["error"]
    data: ErrorData


ServerFrame = Annotated[
    ConnectedFrame | MessageFrame | MessageUpdatedFrame | MessageAckFrame | ErrorFrame,
    Field(discriminator="type"),
]

_SERVER_FRAME = TypeAdapter(ServerFrame)


def parse_server_frame(raw: str | bytes) -> ServerFrame:
    """Decode one inbound frame.

    Raises:
        pydantic.ValidationError: Not JSON, unknown type, or invalid payload
    """
    return _SERVER_FRAME.validate_json(raw)


class SendPayload(BaseModel):
    """Message body of an outbound frame."""

    role: MessageRole = MessageRole.AGENT
    type: MessageType
    content: str
    inputs: str | None = None  # JSON-encoded descriptor list (asks only)
    persist: bool | None = None


class ClientFrame(BaseModel):
    """Outbound envelope."""

    type: Literal["message"] = "message"
    data: SendPayload

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
