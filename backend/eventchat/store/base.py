"""Abstract storage collaborators consumed by the chat core.

The realtime core never owns users, events or messages. It reaches them
through these narrow interfaces so the backing store can be swapped
(DuckDB by default, a REST client or an ORM elsewhere).

All methods are synchronous; the chat hub runs them in a worker thread
with a timeout.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .schemas import ChatRecord, EventInfo, Identity, MessageKind


class StoreError(Exception):
    """A storage collaborator failed to complete a request."""


class EventNotFoundError(StoreError):
    """The referenced event does not exist."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class UserDirectory(ABC):
    """Read-only access to user records."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[Identity]:
        """Return the user with this ID, or None if unknown."""

    @abstractmethod
    def list_admin_ids(self) -> List[str]:
        """Return the IDs of all administrators."""


class MembershipStore(ABC):
    """Read-only access to event membership."""

    @abstractmethod
    def is_full_member(self, event_id: str, user_id: str) -> bool:
        """Check whether a user is the creator or a confirmed participant.

        Raises:
            EventNotFoundError: If the event does not exist.
        """

    @abstractmethod
    def get_event(self, event_id: str) -> Optional[EventInfo]:
        """Return the event description, or None if unknown."""


class HistoryStore(ABC):
    """Persistence for chat records."""

    @abstractmethod
    def append_message(
        self,
        event_id: str,
        author_id: str,
        content: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> ChatRecord:
        """Durably store a record and return it with its ID and timestamp.

        Raises:
            StoreError: If the record could not be stored.
        """

    @abstractmethod
    def recent_messages(self, event_id: str, limit: int) -> List[ChatRecord]:
        """Return the most recent ``limit`` records, oldest first."""
