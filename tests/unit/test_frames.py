"""Unit tests for the wire protocol frames and message records."""

from __future__ import annotations

import json

import pydantic
import pytest

from justack.inputs import ConfirmInput
from justack.protocol import (
    ClientFrame,
    ConnectedFrame,
    ErrorFrame,
    MessageAckFrame,
    MessageUpdatedFrame,
    SendPayload,
    parse_server_frame,
)
from justack.types import Message, MessageType, Page, SessionData

# =============================================================================
# Inbound
# =============================================================================


class TestParseServerFrame:
    """Tests for decoding server frames."""

    def test_connected(self) -> None:
        """The handshake frame carries no payload."""
        assert isinstance(parse_server_frame('{"type": "connected"}'), ConnectedFrame)

    def test_message_ack(self) -> None:
        """Acks carry the permanent message id."""
        frame = parse_server_frame('{"type": "message_ack", "data": {"id": "msg_1"}}')
        assert isinstance(frame, MessageAckFrame)
        assert frame.data.id == "msg_1"

    def test_message_updated(self) -> None:
        """Updated messages decode into Message records."""
        frame = parse_server_frame(
            json.dumps(
                {
                    "type": "message_updated",
                    "data": {
                        "id": "msg_1",
                        "role": "agent",
                        "type": "ask",
                        "content": "Deploy?",
                        "response_content": "yes",
                        "responded_by": "rcp_1",
                    },
                }
            )
        )
        assert isinstance(frame, MessageUpdatedFrame)
        assert frame.data.is_answered
        assert frame.data.responded_by == "rcp_1"

    def test_error(self) -> None:
        """Error frames carry a message and optional code."""
        frame = parse_server_frame(b'{"type": "error", "data": {"message": "nope"}}')
        assert isinstance(frame, ErrorFrame)
        assert frame.data.message == "nope"
        assert frame.data.code is None

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"type": "unknown"}',
            '{"type": "message_ack", "data": {}}',
            '{"data": {}}',
        ],
    )
    def test_malformed_rejected(self, raw: str) -> None:
        """Malformed frames raise pydantic.ValidationError."""
        with pytest.raises(pydantic.ValidationError):
            parse_server_frame(raw)


# =============================================================================
# Outbound
# =============================================================================


class TestClientFrame:
    """Tests for the outbound envelope."""

    def test_log_envelope(self) -> None:
        """Unset optional fields are omitted."""
        frame = ClientFrame(data=SendPayload(type=MessageType.LOG, content="hi"))
        assert json.loads(frame.to_json()) == {
            "type": "message",
            "data": {"role": "agent", "type": "log", "content": "hi"},
        }

    def test_ask_envelope(self) -> None:
        """Ask inputs travel as a JSON-encoded string."""
        frame = ClientFrame(
            data=SendPayload(
                type=MessageType.ASK,
                content="Deploy?",
                inputs='[{"type":"confirm","name":"ok"}]',
                persist=True,
            )
        )
        data = json.loads(frame.to_json())["data"]
        assert data["inputs"] == '[{"type":"confirm","name":"ok"}]'
        assert data["persist"] is True


# =============================================================================
# Records
# =============================================================================


class TestMessage:
    """Tests for message records."""

    def test_encoded_inputs_decoded(self) -> None:
        """The JSON-string inputs field becomes descriptors."""
        message = Message.model_validate(
            {
                "id": "m",
                "role": "agent",
                "type": "ask",
                "content": "q",
                "inputs": '[{"type": "confirm", "name": "ok"}]',
            }
        )
        assert message.inputs == (ConfirmInput(name="ok"),)

    def test_undecodable_inputs_dropped(self) -> None:
        """Broken inputs do not reject the message."""
        message = Message.model_validate(
            {"id": "m", "role": "agent", "type": "ask", "content": "q", "inputs": "{broken"}
        )
        assert message.inputs is None

    def test_log_never_answered(self) -> None:
        """Only asks count as answered."""
        message = Message.model_validate(
            {"id": "m", "role": "agent", "type": "log", "content": "q", "response_content": "x"}
        )
        assert not message.is_answered


class TestPage:
    """Tests for list pages."""

    def test_page_of_sessions(self) -> None:
        """Pages validate their items and cursor."""
        page = Page[SessionData].model_validate(
            {"data": [{"session_id": "s1", "name": "One"}], "next_cursor": "c1"}
        )
        assert page.data[0].recipients == []
        assert page.next_cursor == "c1"
