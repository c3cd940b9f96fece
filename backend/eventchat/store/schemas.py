"""Pydantic schemas shared by the storage collaborators and the chat core.

These schemas are used by:
    - DuckDBChatStore: rows are materialised into these models
    - JWTIdentityVerifier: returns an Identity for a verified token
    - ChatSession: serialises ChatRecord into ``new_message`` and
      ``joined_event`` frames
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Platform-wide role of a user.

    Attributes:
        USER: Regular attendee or organiser.
        ADMIN: Moderator who receives report notifications.
    """
    USER = "user"
    ADMIN = "admin"


class MessageKind(str, Enum):
    """Kind of a persisted chat record.

    Attributes:
        TEXT: Message typed by a user.
        SYSTEM: Message generated by the platform.
    """
    TEXT = "text"
    SYSTEM = "system"


class Identity(BaseModel):
    """Authenticated user identity.

    Attributes:
        id: Stable user identifier.
        name: Display name shown to other room members.
        is_blocked: Blocked users may not authenticate.
        role: Platform role.
    """
    id: str = Field(..., description="Stable user ID")
    name: str = Field(..., description="Display name")
    is_blocked: bool = Field(default=False, description="Blocked by moderation")
    role: UserRole = Field(default=UserRole.USER, description="Platform role")


class EventInfo(BaseModel):
    """Minimal event description needed by notifications."""
    id: str
    title: str
    creatorId: str


class ChatRecord(BaseModel):
    """One persisted chat message.

    Attributes:
        id: Unique message identifier.
        eventId: Room (event) the message belongs to.
        userId: Author's user ID.
        userName: Author's display name at read time.
        content: Message body (trimmed).
        type: Message kind (text or system).
        createdAt: Creation time (UTC).
    """
    id: str = Field(..., description="Unique message ID")
    eventId: str = Field(..., description="Event ID this message belongs to")
    userId: str = Field(..., description="Author user ID")
    userName: str = Field(default="", description="Author display name")
    content: str = Field(..., description="Message content")
    type: MessageKind = Field(default=MessageKind.TEXT, description="Message kind")
    createdAt: datetime = Field(..., description="Creation time (UTC)")

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready representation used in outbound frames."""
        return self.model_dump(mode="json")
