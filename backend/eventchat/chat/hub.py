"""Process-wide chat hub.

The hub is the single owner of the shared realtime state (connection
registry and room router) and of the handles to the external
collaborators. Sessions call into it for everything that touches more
than their own connection.

Ordering:
    Each room has one asyncio.Lock. Join, leave, send (persist then
    broadcast) and disconnect announcements for a room run under it, so
    members observe records in persistence order. Different rooms never
    wait on each other.

Collaborator calls:
    Store and verifier calls are synchronous. ``call`` runs them in a
    worker thread with a timeout and converts failures to ChatError
    subclasses so they surface as ``error`` frames, never as crashes.
    Message writes are never abandoned on timeout: the record is awaited
    and broadcast, so nothing is persisted that members did not receive.
"""
import asyncio
import logging
import threading
import weakref
from typing import Callable, Optional, TypeVar

from eventchat.auth.service import AuthenticationError, IdentityVerifier, JWTIdentityVerifier
from eventchat.config import AppSettings, ChatSettings, get_config
from eventchat.store.base import EventNotFoundError, HistoryStore, MembershipStore, UserDirectory
from eventchat.store.duckdb_store import DuckDBChatStore
from eventchat.store.schemas import ChatRecord, Identity, MessageKind

from .connection import Connection
from .errors import ChatError, DependencyError, NotFoundError, ProtocolError
from .notifier import Notifier
from .protocol import OutboundType, frame
from .registry import ConnectionRegistry
from .rooms import RoomRouter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Close code sent to a connection superseded by a newer login of the same user.
SESSION_REPLACED_CLOSE_CODE = 4001


class ChatHub:
    """Shared state and collaborators for every chat session.

    Attributes:
        verifier: Resolves bearer tokens to identities.
        users: User lookup (admin listing for moderation notifications).
        memberships: Full-member check per event.
        history: Chat record persistence.
        settings: Chat tuning (history size, timeouts, message length).
        registry: identity ID -> live connection.
        rooms: connection <-> room index.
        notifier: Unicast and room broadcast delivery.
    """

    def __init__(
        self,
        verifier: IdentityVerifier,
        users: UserDirectory,
        memberships: MembershipStore,
        history: HistoryStore,
        settings: Optional[ChatSettings] = None,
    ) -> None:
        self.verifier = verifier
        self.users = users
        self.memberships = memberships
        self.history = history
        self.settings = settings or ChatSettings()

        self.registry = ConnectionRegistry()
        self.rooms = RoomRouter()
        self.notifier = Notifier(
            self.registry, self.rooms, send_timeout=self.settings.send_timeout_seconds
        )

        # room_id -> serialization point for that room; dropped once nobody holds or awaits it
        self._room_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._room_locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ChatHub":
        """Build the default hub: DuckDB store plus JWT verification."""
        store = DuckDBChatStore(settings.storage.db_path)
        verifier = JWTIdentityVerifier(
            store,
            secret_key=settings.secrets.jwt.secret_key,
            algorithm=settings.secrets.jwt.algorithm,
        )
        logger.info(f"[Hub] Using DuckDB store at {settings.storage.db_path}")
        return cls(verifier, store, store, store, settings.chat)

    def room_lock(self, room_id: str) -> asyncio.Lock:
        with self._room_locks_guard:
            lock = self._room_locks.get(room_id)
            if lock is None:
                lock = asyncio.Lock()
                self._room_locks[room_id] = lock
            return lock

    async def call(
        self,
        func: Callable[..., T],
        *args,
        failure_message: str = "Service unavailable",
        complete: bool = False,
    ) -> T:
        """Run a collaborator call off the event loop, bounded by a timeout.

        A worker thread cannot be cancelled, so a timed-out call may still
        take effect. Writes pass ``complete=True``: past the timeout they
        are awaited to the end instead of being reported as failed.

        Raises:
            NotFoundError: The collaborator reported an unknown event.
            AuthenticationError: Passed through for the session to report.
            DependencyError: Timeout or any other collaborator failure.
        """
        name = getattr(func, "__name__", func)
        timeout = self.settings.dependency_timeout_seconds
        try:
            if not complete:
                return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)

            worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                return await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[Hub] {name} exceeded {timeout:.1f}s; waiting for it to finish")
                return await worker
        except (ChatError, AuthenticationError):
            raise
        except EventNotFoundError as exc:
            raise NotFoundError("Event not found") from exc
        except asyncio.TimeoutError as exc:
            logger.warning(f"[Hub] {name} timed out")
            raise DependencyError(failure_message) from exc
        except Exception as exc:
            logger.exception(f"[Hub] {name} failed: {exc}")
            raise DependencyError(failure_message) from exc

    # =========================================================================
    # Messages
    # =========================================================================

    def validate_content(self, content: str) -> str:
        """Return ``content`` stripped, or raise ProtocolError if it is unusable."""
        content = content.strip()
        if not content:
            raise ProtocolError("Message content is required")
        max_length = self.settings.max_message_length
        if len(content) > max_length:
            raise ProtocolError(f"Message cannot exceed {max_length} characters")
        return content

    async def publish_message(self, event_id: str, author_id: str, content: str) -> ChatRecord:
        """Persist a text record and broadcast it to the room, sender included.

        Both steps run under the room lock, so members receive records in
        the order they were persisted whichever transport sent them.
        """
        async with self.room_lock(event_id):
            record = await self.call(
                self.history.append_message,
                event_id, author_id, content, MessageKind.TEXT,
                failure_message="Failed to send message",
                complete=True,
            )
            delivered = await self.notifier.broadcast_room(
                event_id,
                frame(OutboundType.NEW_MESSAGE, eventId=event_id, message=record.to_payload()),
            )

        logger.info(f"[Hub] Message {record.id} in event {event_id} delivered to {delivered} connection(s)")
        return record

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def register(self, connection: Connection, identity: Identity) -> None:
        """Promote ``connection`` to authenticated and register it.

        A previous live connection of the same identity is evicted: it
        leaves every room (members see ``user_left``) and is closed with
        SESSION_REPLACED_CLOSE_CODE.
        """
        connection.identity = identity
        previous = self.registry.put(identity.id, connection)
        if previous is not None:
            logger.info(
                f"[Hub] User {identity.id} authenticated again; closing connection {previous.id}"
            )
            await self._detach(previous)
            await previous.close(code=SESSION_REPLACED_CLOSE_CODE, reason="Session replaced")

    async def disconnect(self, connection: Connection) -> None:
        """Clean up after a transport close. Safe to call more than once."""
        connection.closed = True
        if not connection.is_authenticated:
            return
        rooms = await self._detach(connection)
        self.registry.remove(connection.user_id, connection)
        logger.info(
            f"[Hub] User {connection.user_id} disconnected; left {len(rooms)} room(s)"
        )

    async def _detach(self, connection: Connection) -> set:
        rooms = self.rooms.remove_connection(connection)
        for room_id in sorted(rooms):
            async with self.room_lock(room_id):
                await self.announce_leave(connection, room_id)
        return rooms

    async def announce_leave(self, connection: Connection, room_id: str) -> int:
        return await self.notifier.broadcast_room(
            room_id,
            frame(
                OutboundType.USER_LEFT,
                eventId=room_id,
                userId=connection.user_id,
                userName=connection.display_name,
            ),
            exclude_identity_id=connection.user_id,
        )


_hub: Optional[ChatHub] = None


def get_hub() -> ChatHub:
    """Get the global hub, building the default one on first use."""
    global _hub
    if _hub is None:
        _hub = ChatHub.from_settings(get_config())
    return _hub


def set_hub(hub: Optional[ChatHub]) -> None:
    """Set (or clear, with None) the global hub instance."""
    global _hub
    _hub = hub
