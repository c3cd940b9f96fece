"""Registry of live connections keyed by authenticated identity."""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .connection import Connection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Maps identity ID -> live connection.

    At most one connection is registered per identity; ``put`` replaces and
    returns the previous one. The registry holds references only and never
    closes a connection itself.

    Mutations and snapshots run under a lock that is never held across an
    await, so iteration never observes a half-removed entry.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: Dict[str, Connection] = {}

    def put(self, identity_id: str, connection: Connection) -> Optional[Connection]:
        with self._lock:
            previous = self._connections.get(identity_id)
            self._connections[identity_id] = connection
        if previous is not None and previous is not connection:
            logger.info(f"[Registry] Replaced connection for {identity_id}")
            return previous
        return None

    def get(self, identity_id: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(identity_id)

    def remove(self, identity_id: str, connection: Optional[Connection] = None) -> bool:
        """Remove the entry for ``identity_id``.

        When ``connection`` is given, the entry is removed only if it still
        refers to that connection (a newer session may have replaced it).

        Returns:
            True if an entry was removed.
        """
        with self._lock:
            current = self._connections.get(identity_id)
            if current is None:
                return False
            if connection is not None and current is not connection:
                return False
            del self._connections[identity_id]
            return True

    def snapshot(self) -> List[Tuple[str, Connection]]:
        with self._lock:
            return list(self._connections.items())

    def for_each(self, visitor: Callable[[str, Connection], None]) -> None:
        """Call ``visitor(identity_id, connection)`` for each entry of a snapshot."""
        for identity_id, connection in self.snapshot():
            visitor(identity_id, connection)

    def __contains__(self, identity_id: str) -> bool:
        with self._lock:
            return identity_id in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
