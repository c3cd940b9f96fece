"""Shared test fixtures and configuration for backend tests.

Seeded data (in-memory DuckDB):
    users:  alice, bob, carol, mallory (blocked), admin (admin role)
    events: E1 (creator alice), E2 (creator alice, participant carol),
            E3 (creator carol)
"""
import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from eventchat.auth.service import JWTIdentityVerifier, create_token
from eventchat.chat.connection import Connection
from eventchat.chat.hub import ChatHub, set_hub
from eventchat.config import ChatSettings
from eventchat.main import app
from eventchat.store import DuckDBChatStore, Identity, UserRole

TEST_JWT_SECRET = "test-secret"


@pytest.fixture
def store():
    """In-memory store seeded with users and events."""
    store = DuckDBChatStore(":memory:")
    store.add_user("alice", "Alice")
    store.add_user("bob", "Bob")
    store.add_user("carol", "Carol")
    store.add_user("mallory", "Mallory", is_blocked=True)
    store.add_user("admin", "Admin", role=UserRole.ADMIN)
    store.add_event("E1", "Launch party", creator_id="alice")
    store.add_event("E2", "Hack night", creator_id="alice")
    store.add_event("E3", "Book club", creator_id="carol")
    store.add_participant("E2", "carol")
    yield store
    store.close()


@pytest.fixture
def hub(store):
    """Install a hub wired to the seeded store as the global instance."""
    verifier = JWTIdentityVerifier(store, secret_key=TEST_JWT_SECRET)
    hub = ChatHub(verifier, store, store, store, ChatSettings())
    set_hub(hub)
    yield hub
    set_hub(None)


@pytest.fixture
def token():
    """Mint a valid token for a user ID."""
    def _token(user_id: str) -> str:
        return create_token(user_id, TEST_JWT_SECRET)
    return _token


@pytest.fixture
def api_client(hub):
    """Provide a TestClient for the main FastAPI app, wired to the test hub.

    Entered as a context manager so every request and WebSocket shares one
    event loop, as under uvicorn; the hub's asyncio room locks are per-loop.
    """
    with TestClient(app) as client:
        yield client


class FakeWebSocket:
    """Minimal stand-in for a FastAPI WebSocket used by unit tests."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail
        self.close_code = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("connection reset by peer")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason=None):
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def types(self):
        return [message["type"] for message in self.sent]


@pytest.fixture
def make_connection():
    """Factory for Connections over FakeWebSockets, optionally authenticated."""
    def _make(user_id=None, name=None, fail=False) -> Connection:
        connection = Connection(FakeWebSocket(fail=fail))
        if user_id is not None:
            connection.identity = Identity(id=user_id, name=name or user_id.title())
        return connection
    return _make
