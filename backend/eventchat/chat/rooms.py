"""Room membership index.

Rooms have no record of their own: a room exists exactly as long as some
connection has joined it. The router keeps that relation as an index
(room ID -> connection IDs) updated on join, leave and disconnect, so a
broadcast never scans every connection.
"""
import logging
import threading
from typing import Dict, List, Set

from .connection import AccessLevel, Connection

logger = logging.getLogger(__name__)


class RoomRouter:
    """Many-to-many relation between connections and joined rooms.

    The per-room access level lives on ``Connection.rooms``; the router
    writes it on join so the two views never disagree.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # room_id -> connection ids
        self._members: Dict[str, Set[str]] = {}
        # connection id -> Connection for every connection with >= 1 room
        self._connections: Dict[str, Connection] = {}

    def join(self, connection: Connection, room_id: str, access: AccessLevel) -> bool:
        """Add (or refresh) the edge between ``connection`` and ``room_id``.

        Returns:
            True if the connection was not in the room before.
        """
        with self._lock:
            members = self._members.setdefault(room_id, set())
            is_new = connection.id not in members
            members.add(connection.id)
            self._connections[connection.id] = connection
            connection.rooms[room_id] = access
        if not is_new:
            logger.debug(f"[Rooms] {connection.id} re-joined {room_id} with {access.value}")
        return is_new

    def leave(self, connection: Connection, room_id: str) -> bool:
        """Remove the edge. Returns False (and does nothing) if absent."""
        with self._lock:
            members = self._members.get(room_id)
            if not members or connection.id not in members:
                connection.rooms.pop(room_id, None)
                return False
            members.discard(connection.id)
            if not members:
                del self._members[room_id]
            connection.rooms.pop(room_id, None)
            if not connection.rooms:
                self._connections.pop(connection.id, None)
            return True

    def remove_connection(self, connection: Connection) -> Set[str]:
        """Drop every edge of a closing connection.

        Returns:
            The rooms the connection was in, so the caller can announce the
            departure once per room.
        """
        with self._lock:
            rooms = set()
            for room_id in connection.rooms:
                members = self._members.get(room_id)
                if not members or connection.id not in members:
                    continue
                rooms.add(room_id)
                members.discard(connection.id)
                if not members:
                    del self._members[room_id]
            self._connections.pop(connection.id, None)
            connection.rooms.clear()
        return rooms

    def members_of(self, room_id: str) -> List[Connection]:
        """Snapshot of the connections currently joined to ``room_id``."""
        with self._lock:
            return [
                self._connections[conn_id]
                for conn_id in self._members.get(room_id, ())
                if conn_id in self._connections
            ]

    def rooms_of(self, connection: Connection) -> Set[str]:
        with self._lock:
            return set(connection.rooms)

    def room_size(self, room_id: str) -> int:
        with self._lock:
            return len(self._members.get(room_id, ()))

    def room_ids(self) -> List[str]:
        with self._lock:
            return list(self._members)
