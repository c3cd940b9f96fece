"""Storage collaborators (users, event membership, chat history).

Interfaces:
    - UserDirectory: user lookup by id and admin listing.
    - MembershipStore: full-member check and event lookup.
    - HistoryStore: append and read recent chat records.

Implementations:
    - DuckDBChatStore: embedded DuckDB backing all three interfaces.
"""
from .base import (
    EventNotFoundError,
    HistoryStore,
    MembershipStore,
    StoreError,
    UserDirectory,
)
from .duckdb_store import DuckDBChatStore
from .schemas import ChatRecord, EventInfo, Identity, MessageKind, UserRole

__all__ = [
    "ChatRecord",
    "DuckDBChatStore",
    "EventInfo",
    "EventNotFoundError",
    "HistoryStore",
    "Identity",
    "MembershipStore",
    "MessageKind",
    "StoreError",
    "UserDirectory",
    "UserRole",
]
