"""DuckDB-backed users, event membership and chat history.

This module provides the default storage collaborator for the realtime
chat core, using DuckDB as an embedded database. One store instance
implements UserDirectory, MembershipStore and HistoryStore.

Database Schema:
    users table:
        - id, name, email, role ('user' | 'admin'), is_blocked
    events table:
        - id, title, creator_id
    event_participants table:
        - event_id, user_id (confirmed registrations)
    messages table:
        - seq: Auto-incrementing insertion order (defines history order)
        - id: Message UUID
        - event_id, user_id, content, kind ('text' | 'system')
        - created_at: When the message was stored (UTC)

Thread Safety:
    The chat hub calls the store from worker threads. A single DuckDB
    connection is shared and every statement runs under ``self._lock``.

Usage:
    store = DuckDBChatStore(":memory:")
    store.add_user("alice", "Alice")
    store.add_event("E1", "Launch party", creator_id="alice")
    record = store.append_message("E1", "alice", "hello")
    history = store.recent_messages("E1", limit=50)
"""
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import duckdb

from .base import EventNotFoundError, HistoryStore, MembershipStore, StoreError, UserDirectory
from .schemas import ChatRecord, EventInfo, Identity, MessageKind, UserRole

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = """
    m.id, m.event_id, m.user_id, COALESCE(u.name, ''), m.content, m.kind, m.created_at
"""


class DuckDBChatStore(UserDirectory, MembershipStore, HistoryStore):
    """Storage collaborator backed by a single DuckDB database.

    Attributes:
        db_path: Path to the DuckDB file, or ":memory:".
    """

    def __init__(self, db_path: str = "eventchat.duckdb") -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self.db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create tables and the message sequence if they don't exist."""
        with self._lock:
            conn = self._get_connection()
            conn.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id VARCHAR PRIMARY KEY,
                    name VARCHAR NOT NULL,
                    email VARCHAR,
                    role VARCHAR NOT NULL DEFAULT 'user',
                    is_blocked BOOLEAN NOT NULL DEFAULT FALSE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id VARCHAR PRIMARY KEY,
                    title VARCHAR NOT NULL,
                    creator_id VARCHAR NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS event_participants (
                    event_id VARCHAR NOT NULL,
                    user_id VARCHAR NOT NULL,
                    PRIMARY KEY (event_id, user_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    seq BIGINT DEFAULT nextval('messages_seq') PRIMARY KEY,
                    id VARCHAR NOT NULL UNIQUE,
                    event_id VARCHAR NOT NULL,
                    user_id VARCHAR NOT NULL,
                    content VARCHAR NOT NULL,
                    kind VARCHAR NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """)

    # =========================================================================
    # Seeding (owned by the REST API in production)
    # =========================================================================

    def add_user(
        self,
        user_id: str,
        name: str,
        *,
        email: Optional[str] = None,
        role: UserRole = UserRole.USER,
        is_blocked: bool = False,
    ) -> Identity:
        with self._lock:
            self._get_connection().execute(
                """
                INSERT OR REPLACE INTO users (id, name, email, role, is_blocked)
                VALUES (?, ?, ?, ?, ?)
                """,
                [user_id, name, email, UserRole(role).value, is_blocked],
            )
        return Identity(id=user_id, name=name, is_blocked=is_blocked, role=role)

    def add_event(self, event_id: str, title: str, creator_id: str) -> EventInfo:
        with self._lock:
            self._get_connection().execute(
                "INSERT OR REPLACE INTO events (id, title, creator_id) VALUES (?, ?, ?)",
                [event_id, title, creator_id],
            )
        return EventInfo(id=event_id, title=title, creatorId=creator_id)

    def add_participant(self, event_id: str, user_id: str) -> None:
        with self._lock:
            self._get_connection().execute(
                "INSERT OR IGNORE INTO event_participants (event_id, user_id) VALUES (?, ?)",
                [event_id, user_id],
            )

    # =========================================================================
    # UserDirectory
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[Identity]:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT id, name, is_blocked, role FROM users WHERE id = ?",
                [user_id],
            ).fetchone()
        if row is None:
            return None
        return Identity(id=row[0], name=row[1], is_blocked=row[2], role=UserRole(row[3]))

    def list_admin_ids(self) -> List[str]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT id FROM users WHERE role = ? ORDER BY id",
                [UserRole.ADMIN.value],
            ).fetchall()
        return [row[0] for row in rows]

    # =========================================================================
    # MembershipStore
    # =========================================================================

    def get_event(self, event_id: str) -> Optional[EventInfo]:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT id, title, creator_id FROM events WHERE id = ?",
                [event_id],
            ).fetchone()
        if row is None:
            return None
        return EventInfo(id=row[0], title=row[1], creatorId=row[2])

    def is_full_member(self, event_id: str, user_id: str) -> bool:
        event = self.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        if event.creatorId == user_id:
            return True
        with self._lock:
            row = self._get_connection().execute(
                "SELECT 1 FROM event_participants WHERE event_id = ? AND user_id = ?",
                [event_id, user_id],
            ).fetchone()
        return row is not None

    # =========================================================================
    # HistoryStore
    # =========================================================================

    def append_message(
        self,
        event_id: str,
        author_id: str,
        content: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> ChatRecord:
        message_id = str(uuid.uuid4())
        # Stored naive; DuckDB TIMESTAMP carries no zone.
        created_at = datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            with self._lock:
                conn = self._get_connection()
                conn.execute(
                    """
                    INSERT INTO messages (id, event_id, user_id, content, kind, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [message_id, event_id, author_id, content, MessageKind(kind).value, created_at],
                )
                row = conn.execute(
                    f"""
                    SELECT {_MESSAGE_COLUMNS}
                    FROM messages m LEFT JOIN users u ON u.id = m.user_id
                    WHERE m.id = ?
                    """,
                    [message_id],
                ).fetchone()
        except duckdb.Error as exc:
            raise StoreError(f"Failed to store message for event {event_id}: {exc}") from exc

        if row is None:
            raise StoreError(f"Message {message_id} missing after insert")
        return self._row_to_record(row)

    def recent_messages(self, event_id: str, limit: int) -> List[ChatRecord]:
        with self._lock:
            rows = self._get_connection().execute(
                f"""
                SELECT {_MESSAGE_COLUMNS}
                FROM messages m LEFT JOIN users u ON u.id = m.user_id
                WHERE m.event_id = ?
                ORDER BY m.seq DESC
                LIMIT ?
                """,
                [event_id, limit],
            ).fetchall()
        # Newest-first from the query; history is delivered oldest-first.
        return [self._row_to_record(row) for row in reversed(rows)]

    def message_count(self, event_id: str) -> int:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT COUNT(*) FROM messages WHERE event_id = ?",
                [event_id],
            ).fetchone()
        return int(row[0])

    @staticmethod
    def _row_to_record(row) -> ChatRecord:
        return ChatRecord(
            id=row[0],
            eventId=row[1],
            userId=row[2],
            userName=row[3],
            content=row[4],
            type=MessageKind(row[5]),
            createdAt=row[6].replace(tzinfo=timezone.utc),
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
