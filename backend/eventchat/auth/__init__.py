"""Authentication module (JWT bearer tokens).

Verifies the bearer credential presented by a chat connection and
resolves it to a user identity. Token issuance belongs to the REST API;
``create_token`` exists for local tooling and tests.

Services:
    - IdentityVerifier: abstract "verify token -> identity" collaborator.
    - JWTIdentityVerifier: HS256 JWT verification backed by a UserDirectory.
"""
from .service import (
    AuthenticationError,
    IdentityVerifier,
    InvalidTokenError,
    JWTIdentityVerifier,
    MissingTokenError,
    UserBlockedError,
    UserNotFoundError,
    create_token,
)

__all__ = [
    "AuthenticationError",
    "IdentityVerifier",
    "InvalidTokenError",
    "JWTIdentityVerifier",
    "MissingTokenError",
    "UserBlockedError",
    "UserNotFoundError",
    "create_token",
]
