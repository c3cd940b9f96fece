"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws: Real-time event chat (auth, rooms, messages, typing)
    - GET /chat/{event_id}/messages: Message history for full members
    - POST /chat/{event_id}/messages: Send a message as a full member

The WebSocket protocol is documented in ``eventchat.chat.protocol``. A
connection starts unauthenticated; the first successful ``auth`` frame
binds it to a user, after which it may join any number of event rooms.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from eventchat.auth.service import AuthenticationError
from eventchat.store.schemas import Identity

from .connection import Connection
from .errors import DependencyError, NotFoundError, ProtocolError
from .hub import ChatHub, get_hub
from .session import ChatSession

logger = logging.getLogger(__name__)

router = APIRouter()

# Upper bound for the HTTP history page size
MAX_HTTP_HISTORY_LIMIT = 100


@router.websocket("/ws")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    hub: ChatHub = Depends(get_hub),
) -> None:
    """WebSocket endpoint for real-time event chat.

    Protocol Flow:
        1. Client connects → connection starts unauthenticated
        2. Client sends: {type: "auth", payload: {token}}
           → Server sends: {type: "auth_success", payload: {userId, name}}
        3. Client sends: {type: "join_event", payload: {eventId}}
           → Server broadcasts user_joined to the room (not to the joiner)
           → Server sends: {type: "joined_event", payload: {eventId, messages, isReadOnly}}
        4. Client sends: {type: "chat_message", payload: {eventId, content}}
           → Server persists, then broadcasts new_message to the room (sender included)
        5. On disconnect → Server broadcasts user_left to every joined room
    """
    await websocket.accept()
    connection = Connection(websocket)
    session = ChatSession(hub, connection)
    logger.info(f"[WS] Connection {connection.id} accepted")

    try:
        while not connection.closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            await session.handle_frame(message.get("text"))
    except WebSocketDisconnect:
        pass
    finally:
        await session.close()
        logger.info(f"[WS] Connection {connection.id} closed (user={connection.user_id})")


async def _authenticate(hub: ChatHub, authorization: Optional[str]) -> Identity:
    """Resolve an ``Authorization: Bearer <token>`` header to an identity."""
    token = None
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer":
            token = credentials.strip() or None
    try:
        return await hub.call(hub.verifier.verify, token, failure_message="Authentication failed")
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except DependencyError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/chat/{event_id}/messages")
async def get_event_messages(
    event_id: str,
    limit: Optional[int] = Query(
        None, ge=1, le=MAX_HTTP_HISTORY_LIMIT, description="Number of messages to return"
    ),
    authorization: Optional[str] = Header(None),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    """Get recent messages for an event, oldest first.

    Only the event creator and confirmed participants may read history
    over HTTP; observers get it through ``joined_event`` instead.

    Example:
        GET /chat/E1/messages?limit=50
        Authorization: Bearer <token>
    """
    identity = await _authenticate(hub, authorization)

    try:
        is_member = await hub.call(
            hub.memberships.is_full_member, event_id, identity.id,
            failure_message="Failed to load messages",
        )
        if not is_member:
            raise HTTPException(
                status_code=403,
                detail="You must be registered for this event to view messages",
            )
        page_size = min(limit or hub.settings.http_history_limit, MAX_HTTP_HISTORY_LIMIT)
        records = await hub.call(
            hub.history.recent_messages, event_id, page_size,
            failure_message="Failed to load messages",
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DependencyError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JSONResponse({
        "count": len(records),
        "messages": [record.to_payload() for record in records],
    })


class SendMessageRequest(BaseModel):
    """Request model for sending a chat message over HTTP."""
    content: str = Field(default="", description="Message text")


@router.post("/chat/{event_id}/messages", status_code=201)
async def post_event_message(
    event_id: str,
    request: SendMessageRequest,
    authorization: Optional[str] = Header(None),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    """Persist a message and broadcast it to the event room.

    Same rules and ordering as the ``chat_message`` frame: only full
    members may send, and the record reaches every connected member as
    ``new_message``.

    Example:
        POST /chat/E1/messages
        Authorization: Bearer <token>
        {"content": "See you there"}
    """
    identity = await _authenticate(hub, authorization)

    try:
        is_member = await hub.call(
            hub.memberships.is_full_member, event_id, identity.id,
            failure_message="Failed to send message",
        )
        if not is_member:
            raise HTTPException(
                status_code=403,
                detail="You must register for this event to send messages",
            )
        content = hub.validate_content(request.content)
        record = await hub.publish_message(event_id, identity.id, content)
    except ProtocolError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DependencyError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JSONResponse(record.to_payload(), status_code=201)
