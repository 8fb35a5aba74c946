"""Record types exchanged with the Justack API."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator

from .inputs import ConfirmInput, SelectInput, TextInput, decode_inputs

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MessageRole(str, Enum):
    """Who sent a message."""

    AGENT = "agent"
    RECIPIENT = "recipient"


class MessageType(str, Enum):
    """What a message is for."""

    LOG = "log"  # One-way notification
    ASK = "ask"  # Question awaiting an answer


class Message(BaseModel):
    """A message in a session.

    `inputs` arrives on the wire as a JSON-encoded string and is decoded into
    descriptors; an undecodable value is dropped rather than rejecting the
    whole message.
    """

    id: str
    role: MessageRole
    type: MessageType
    content: str
    inputs: tuple[TextInput | ConfirmInput | SelectInput, ...] | None = None
    sender_id: str | None = None
    response_content: str | None = None
    responded_at: str | None = None
    responded_by: str | None = None
    persist: bool = True
    created_at: str | None = None

    @field_validator("inputs", mode="before")
    @classmethod
    def _decode_inputs(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        try:
            return decode_inputs(value)
        except ValueError as e:
            logger.debug(f"Ignoring undecodable message inputs: {e}")
            return None

    @property
    def is_answered(self) -> bool:
        """True for an ask that carries a response."""
        return self.type == MessageType.ASK and self.response_content is not None


class Recipient(BaseModel):
    """A human who may answer within a session."""

    recipient_id: str
    name: str
    email: str | None = None
    external_id: str | None = None
    created_at: str | None = None


class SessionData(BaseModel):
    """Session record as returned by get/list."""

    session_id: str
    name: str
    retention_months: int | None = None
    created_at: str | None = None
    expires_at: str | None = None
    last_message_at: str | None = None
    recipients: list[Recipient] = Field(default_factory=list)


class InviteResult(BaseModel):
    success: bool
    message: str | None = None


class InviteUrlResult(BaseModel):
    url: str
    expires_at: str | None = None


class Page(BaseModel, Generic[T]):
    """One page of a cursor-paginated listing."""

    data: list[T] = Field(default_factory=list)
    next_cursor: str | None = None


def dump_json(model: BaseModel) -> str:
    """Pretty JSON for CLI output."""
    return json.dumps(model.model_dump(mode="json"), indent=2)
