"""Per-socket connection record.

A Connection pairs the transport (a FastAPI WebSocket) with the state the
chat core tracks for it: the authenticated identity and the rooms it has
joined with their access level. The session owns the record; the registry
and room router only hold references.
"""
import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from eventchat.store.schemas import Identity

logger = logging.getLogger(__name__)


class AccessLevel(str, Enum):
    """Permission a connection holds in one joined room.

    Attributes:
        FULL: May send messages and typing indicators (creator or participant).
        READ_ONLY: May only observe messages and presence.
    """
    FULL = "full"
    READ_ONLY = "read_only"


class Connection:
    """One live chat connection.

    Attributes:
        id: Server-generated connection ID.
        websocket: Transport handle.
        identity: Authenticated identity, None until ``auth`` succeeds.
        rooms: Joined event ID -> access level. Empty while unauthenticated.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.identity: Optional[Identity] = None
        self.rooms: Dict[str, AccessLevel] = {}
        self.closed = False

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    @property
    def display_name(self) -> str:
        return self.identity.name if self.identity else ""

    @property
    def is_open(self) -> bool:
        """True while both sides of the transport are still connected."""
        if self.closed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def access_for(self, room_id: str) -> Optional[AccessLevel]:
        return self.rooms.get(room_id)

    async def send(self, message: Dict[str, Any], timeout: Optional[float] = None) -> bool:
        """Send a frame, best effort.

        Returns:
            True if the frame was handed to the transport, False if the
            connection is closed or the write failed. A failed write marks
            the connection closed so later sends are discarded.
        """
        if not self.is_open:
            return False
        try:
            if timeout is None:
                await self.websocket.send_json(message)
            else:
                await asyncio.wait_for(self.websocket.send_json(message), timeout=timeout)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection {self.id}: {e}")
            self.closed = True
            return False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the transport; further sends are discarded."""
        was_open = self.is_open
        self.closed = True
        if not was_open:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing connection {self.id}: {e}")

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, user_id={self.user_id!r}, rooms={sorted(self.rooms)!r})"
