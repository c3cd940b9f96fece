"""Errors raised while handling one inbound chat frame.

Every ChatError is reported to the originating connection as an ``error``
frame carrying ``str(exc)``; none of them closes the connection.
"""


class ChatError(Exception):
    """Base class. The message is shown to the client."""


class ProtocolError(ChatError):
    """Malformed frame, unknown type or invalid payload."""


class AuthError(ChatError):
    """Missing, invalid or blocked credential, or not yet authenticated."""


class AuthorizationError(ChatError):
    """Action needs room membership or full access that is not held."""


class NotFoundError(ChatError):
    """Referenced event does not exist."""


class DependencyError(ChatError):
    """A collaborator call failed or timed out."""
