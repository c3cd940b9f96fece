"""Per-connection session state machine and message dispatcher.

States:
    Unauthenticated --auth--> Authenticated
    (any) --transport close--> closed

Authenticated sessions additionally hold, per joined room, an access level
(full or read-only) assigned from the membership store on join.

Each inbound frame is handled to completion, including every outbound
frame it causes, before the transport loop reads the next one. Handler
failures are ChatError subclasses and come back to this connection only
as an ``error`` frame.
"""
import logging
from typing import Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from eventchat.auth.service import AuthenticationError

from .connection import AccessLevel, Connection
from .errors import AuthError, AuthorizationError, ChatError
from .hub import ChatHub
from .protocol import (
    AuthPayload,
    ChatMessagePayload,
    EventPayload,
    InboundType,
    OutboundType,
    TypingPayload,
    error_frame,
    frame,
    parse_frame,
)

logger = logging.getLogger(__name__)


class ChatSession:
    """Drives one Connection through its lifecycle."""

    def __init__(self, hub: ChatHub, connection: Connection) -> None:
        self.hub = hub
        self.connection = connection
        self._handlers: Dict[InboundType, Callable[[BaseModel], Awaitable[None]]] = {
            InboundType.AUTH: self.on_auth,
            InboundType.JOIN_EVENT: self.on_join_event,
            InboundType.LEAVE_EVENT: self.on_leave_event,
            InboundType.CHAT_MESSAGE: self.on_chat_message,
            InboundType.TYPING: self.on_typing,
        }

    @property
    def state(self) -> str:
        if self.connection.closed:
            return "closed"
        return "authenticated" if self.connection.is_authenticated else "unauthenticated"

    async def reply(self, message: dict) -> bool:
        return await self.hub.notifier.send(self.connection, message)

    async def handle_frame(self, text: Optional[str]) -> None:
        """Parse and dispatch one inbound text frame."""
        try:
            message_type, payload = parse_frame(text)
            logger.debug(f"[WS] {self.connection.id} received {message_type.value}")
            await self._handlers[message_type](payload)
        except ChatError as e:
            logger.info(f"[WS] {self.connection.id} ({self.connection.user_id}) error: {e}")
            await self.reply(error_frame(str(e)))
        except Exception:
            logger.exception(f"[WS] Unhandled error on connection {self.connection.id}")
            await self.reply(error_frame("Internal error"))

    async def close(self) -> None:
        await self.hub.disconnect(self.connection)

    def _require_auth(self) -> None:
        if not self.connection.is_authenticated:
            raise AuthError("Not authenticated")

    # =========================================================================
    # Handlers
    # =========================================================================

    async def on_auth(self, payload: AuthPayload) -> None:
        if self.connection.is_authenticated:
            raise AuthError("Already authenticated")

        try:
            identity = await self.hub.call(
                self.hub.verifier.verify, payload.token,
                failure_message="Authentication failed",
            )
        except AuthenticationError as e:
            raise AuthError(str(e)) from e
        # Blocked identities never authenticate.
        if identity.is_blocked:
            raise AuthError("User is blocked")

        await self.hub.register(self.connection, identity)
        logger.info(f"[WS] User {identity.name} ({identity.id}) authenticated on {self.connection.id}")
        await self.reply(frame(OutboundType.AUTH_SUCCESS, userId=identity.id, name=identity.name))

    async def on_join_event(self, payload: EventPayload) -> None:
        self._require_auth()
        event_id = payload.eventId
        user_id = self.connection.user_id

        is_member = await self.hub.call(
            self.hub.memberships.is_full_member, event_id, user_id,
            failure_message="Failed to join event",
        )
        access = AccessLevel.FULL if is_member else AccessLevel.READ_ONLY

        async with self.hub.room_lock(event_id):
            # No send can persist into this room while the lock is held, so the
            # snapshot is exactly what precedes the first broadcast we receive.
            records = await self.hub.call(
                self.hub.history.recent_messages, event_id, self.hub.settings.history_limit,
                failure_message="Failed to join event",
            )
            if self.connection.closed or self.hub.registry.get(user_id) is not self.connection:
                # Replaced or closed while the membership check was running.
                logger.info(f"[WS] Dropping join of {event_id} for superseded connection {self.connection.id}")
                return
            is_new = self.hub.rooms.join(self.connection, event_id, access)
            if is_new:
                await self.hub.notifier.broadcast_room(
                    event_id,
                    frame(
                        OutboundType.USER_JOINED,
                        eventId=event_id,
                        userId=user_id,
                        userName=self.connection.display_name,
                    ),
                    exclude_identity_id=user_id,
                )
            await self.reply(frame(
                OutboundType.JOINED_EVENT,
                eventId=event_id,
                messages=[record.to_payload() for record in records],
                isReadOnly=access == AccessLevel.READ_ONLY,
            ))

        logger.info(
            f"[WS] User {user_id} {'joined' if is_new else 're-joined'} event {event_id} "
            f"({access.value}); room size {self.hub.rooms.room_size(event_id)}"
        )

    async def on_leave_event(self, payload: EventPayload) -> None:
        self._require_auth()
        event_id = payload.eventId
        if self.connection.access_for(event_id) is None:
            return

        async with self.hub.room_lock(event_id):
            if not self.hub.rooms.leave(self.connection, event_id):
                return
            await self.hub.announce_leave(self.connection, event_id)
            await self.reply(frame(OutboundType.LEFT_EVENT, eventId=event_id))

        logger.info(
            f"[WS] User {self.connection.user_id} left event {event_id}; "
            f"still in {len(self.hub.rooms.rooms_of(self.connection))} room(s)"
        )

    async def on_chat_message(self, payload: ChatMessagePayload) -> None:
        self._require_auth()
        event_id = payload.eventId

        access = self.connection.access_for(event_id)
        if access is None:
            raise AuthorizationError("Not in this event room")
        if access != AccessLevel.FULL:
            raise AuthorizationError("You must register for this event to send messages")

        content = self.hub.validate_content(payload.content)
        await self.hub.publish_message(event_id, self.connection.user_id, content)

    async def on_typing(self, payload: TypingPayload) -> None:
        # Typing indicators are advisory; anything not allowed is dropped silently.
        if not self.connection.is_authenticated:
            return
        if self.connection.access_for(payload.eventId) != AccessLevel.FULL:
            return

        await self.hub.notifier.broadcast_room(
            payload.eventId,
            frame(
                OutboundType.USER_TYPING,
                eventId=payload.eventId,
                userId=self.connection.user_id,
                userName=self.connection.display_name,
                isTyping=payload.isTyping,
            ),
            exclude_identity_id=self.connection.user_id,
        )
