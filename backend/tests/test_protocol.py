"""Tests for inbound frame parsing and outbound frame building."""
import json

import pytest

from eventchat.chat.errors import ProtocolError
from eventchat.chat.protocol import (
    AuthPayload,
    ChatMessagePayload,
    InboundType,
    OutboundType,
    TypingPayload,
    error_frame,
    frame,
    parse_frame,
)


def encode(message_type, payload=None):
    data = {"type": message_type}
    if payload is not None:
        data["payload"] = payload
    return json.dumps(data)


class TestParseFrame:

    def test_chat_message(self):
        message_type, payload = parse_frame(encode("chat_message", {"eventId": "E1", "content": "hi"}))
        assert message_type == InboundType.CHAT_MESSAGE
        assert isinstance(payload, ChatMessagePayload)
        assert payload.eventId == "E1"
        assert payload.content == "hi"

    def test_missing_payload_is_empty(self):
        message_type, payload = parse_frame(encode("auth"))
        assert message_type == InboundType.AUTH
        assert isinstance(payload, AuthPayload)
        assert payload.token is None

    def test_typing_defaults_to_started(self):
        _, payload = parse_frame(encode("typing", {"eventId": "E1"}))
        assert isinstance(payload, TypingPayload)
        assert payload.isTyping is True

    def test_extra_fields_are_ignored(self):
        _, payload = parse_frame(encode("join_event", {"eventId": "E1", "extra": 1}))
        assert payload.eventId == "E1"

    @pytest.mark.parametrize(
        "text",
        [None, "", "not json", "[1, 2]", '"auth"', '{"payload": {}}', '{"type": 7}'],
    )
    def test_invalid_format(self, text):
        with pytest.raises(ProtocolError, match="Invalid message format"):
            parse_frame(text)

    def test_unknown_type(self):
        with pytest.raises(ProtocolError, match="Unknown message type"):
            parse_frame(encode("notification", {}))

    @pytest.mark.parametrize(
        "message_type, payload",
        [
            ("join_event", {}),
            ("join_event", {"eventId": ""}),
            ("join_event", ["E1"]),
            ("chat_message", {"eventId": "E1", "content": 5}),
            ("typing", {"eventId": "E1", "isTyping": "sometimes"}),
        ],
    )
    def test_invalid_payload(self, message_type, payload):
        with pytest.raises(ProtocolError, match=f"Invalid payload for {message_type}"):
            parse_frame(encode(message_type, payload))


class TestOutboundFrames:

    def test_frame_envelope(self):
        assert frame(OutboundType.LEFT_EVENT, eventId="E1") == {
            "type": "left_event",
            "payload": {"eventId": "E1"},
        }

    def test_error_frame(self):
        assert error_frame("Not authenticated") == {
            "type": "error",
            "payload": {"message": "Not authenticated"},
        }
