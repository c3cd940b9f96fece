"""JWT identity verification.

Implements the credential check used by the ``auth`` WebSocket message and
the bearer-authenticated HTTP endpoints:
1. Decode and verify the JWT signature and expiry
2. Read the user ID from the ``id`` claim (``sub`` is accepted too)
3. Look the user up in the UserDirectory
4. Refuse blocked users
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from eventchat.store.base import UserDirectory
from eventchat.store.schemas import Identity

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Base class for credential failures. ``str(exc)`` is client-safe."""


class MissingTokenError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Token required")


class InvalidTokenError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Invalid or expired token")


class UserNotFoundError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("User not found")


class UserBlockedError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("User is blocked")


class IdentityVerifier(ABC):
    """Resolves a bearer credential to an identity."""

    @abstractmethod
    def verify(self, token: Optional[str]) -> Identity:
        """Return the identity for ``token``.

        Raises:
            MissingTokenError: No token was supplied.
            InvalidTokenError: Bad signature, malformed or expired token.
            UserNotFoundError: Token is valid but the user does not exist.
            UserBlockedError: The user is blocked.
        """


class JWTIdentityVerifier(IdentityVerifier):
    """Verifies HS256 (or configured algorithm) JWTs against a user directory."""

    def __init__(self, users: UserDirectory, secret_key: str, algorithm: str = "HS256"):
        self.users = users
        self.secret_key = secret_key
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> Identity:
        if not token:
            raise MissingTokenError()

        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired token")
            raise InvalidTokenError()
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected invalid token: {e}")
            raise InvalidTokenError()

        user_id = claims.get("id") or claims.get("sub")
        if not user_id:
            raise InvalidTokenError()

        user = self.users.get_user(str(user_id))
        if user is None:
            raise UserNotFoundError()
        if user.is_blocked:
            logger.info(f"Rejected blocked user {user.id}")
            raise UserBlockedError()
        return user


def create_token(
    user_id: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_in: timedelta = timedelta(days=7),
) -> str:
    """Mint a token in the same shape the REST API issues (``{"id", "exp"}``)."""
    payload = {
        "id": user_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)
