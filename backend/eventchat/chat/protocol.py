"""Wire protocol for the chat WebSocket.

Every frame, in both directions, is a JSON text frame shaped as
``{"type": str, "payload": object}``.

Inbound Message Types:
    - auth: {token}
    - join_event: {eventId}
    - leave_event: {eventId}
    - chat_message: {eventId, content}
    - typing: {eventId, isTyping}

Outbound Message Types:
    - auth_success, error, joined_event, left_event, user_joined,
      user_left, new_message, user_typing, notification
"""
import json
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from .errors import ProtocolError


class InboundType(str, Enum):
    AUTH = "auth"
    JOIN_EVENT = "join_event"
    LEAVE_EVENT = "leave_event"
    CHAT_MESSAGE = "chat_message"
    TYPING = "typing"


class OutboundType(str, Enum):
    AUTH_SUCCESS = "auth_success"
    ERROR = "error"
    JOINED_EVENT = "joined_event"
    LEFT_EVENT = "left_event"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    NEW_MESSAGE = "new_message"
    USER_TYPING = "user_typing"
    NOTIFICATION = "notification"


# =============================================================================
# Inbound payloads
# =============================================================================


class AuthPayload(BaseModel):
    token: Optional[str] = None


class EventPayload(BaseModel):
    eventId: str = Field(..., min_length=1, description="Event (room) ID")


class ChatMessagePayload(EventPayload):
    content: str = Field(default="", description="Message text")


class TypingPayload(EventPayload):
    isTyping: bool = Field(default=True, description="Typing started or stopped")


PAYLOAD_MODELS = {
    InboundType.AUTH: AuthPayload,
    InboundType.JOIN_EVENT: EventPayload,
    InboundType.LEAVE_EVENT: EventPayload,
    InboundType.CHAT_MESSAGE: ChatMessagePayload,
    InboundType.TYPING: TypingPayload,
}


def parse_frame(text: Optional[str]) -> Tuple[InboundType, BaseModel]:
    """Decode one inbound frame into its type and validated payload.

    Raises:
        ProtocolError: If the frame is not a JSON object with a known
            ``type`` and a payload matching that type.
    """
    if text is None:
        raise ProtocolError("Invalid message format")
    try:
        data = json.loads(text)
    except ValueError:
        raise ProtocolError("Invalid message format")
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ProtocolError("Invalid message format")

    try:
        message_type = InboundType(data["type"])
    except ValueError:
        raise ProtocolError("Unknown message type")

    payload = data.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ProtocolError(f"Invalid payload for {message_type.value}")

    try:
        return message_type, PAYLOAD_MODELS[message_type].model_validate(payload)
    except ValidationError:
        raise ProtocolError(f"Invalid payload for {message_type.value}")


# =============================================================================
# Outbound frames
# =============================================================================


def frame(message_type: OutboundType, **payload: Any) -> Dict[str, Any]:
    return {"type": message_type.value, "payload": payload}


def error_frame(message: str) -> Dict[str, Any]:
    return frame(OutboundType.ERROR, message=message)
