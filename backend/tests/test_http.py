"""Tests for the HTTP surface: history and send endpoints, internal hooks and health."""
from unittest.mock import patch

import pytest

from eventchat.config import AppSettings, InternalSecrets, Secrets, get_config
from eventchat.main import app

INTERNAL_KEY = "hook-key"


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def internal_api(api_client):
    """Client with the internal hooks enabled under INTERNAL_KEY."""
    settings = AppSettings(secrets=Secrets(internal=InternalSecrets(api_key=INTERNAL_KEY)))
    app.dependency_overrides[get_config] = lambda: settings
    yield api_client
    app.dependency_overrides.clear()


def test_health(api_client):
    response = api_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestMessageHistory:

    def test_requires_token(self, api_client):
        response = api_client.get("/chat/E1/messages")
        assert response.status_code == 401
        assert response.json()["detail"] == "Token required"

    def test_rejects_bad_scheme(self, api_client, token):
        response = api_client.get("/chat/E1/messages", headers={"Authorization": f"Basic {token('alice')}"})
        assert response.status_code == 401

    def test_rejects_blocked_user(self, api_client, token):
        response = api_client.get("/chat/E1/messages", headers=bearer(token("mallory")))
        assert response.status_code == 401
        assert response.json()["detail"] == "User is blocked"

    def test_observer_is_forbidden(self, api_client, token):
        response = api_client.get("/chat/E1/messages", headers=bearer(token("bob")))
        assert response.status_code == 403

    def test_unknown_event(self, api_client, token):
        response = api_client.get("/chat/missing/messages", headers=bearer(token("alice")))
        assert response.status_code == 404
        assert response.json()["detail"] == "Event not found"

    def test_returns_latest_messages_oldest_first(self, api_client, token, store):
        for i in range(5):
            store.append_message("E2", "alice", f"m{i}")

        response = api_client.get("/chat/E2/messages?limit=3", headers=bearer(token("carol")))

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert [m["content"] for m in data["messages"]] == ["m2", "m3", "m4"]
        assert data["messages"][0]["userName"] == "Alice"

    @pytest.mark.parametrize("limit", [0, 101])
    def test_limit_bounds(self, api_client, token, limit):
        response = api_client.get(f"/chat/E1/messages?limit={limit}", headers=bearer(token("alice")))
        assert response.status_code == 422

    def test_store_failure_is_503(self, api_client, token, store):
        with patch.object(store, "recent_messages", side_effect=RuntimeError("disk gone")):
            response = api_client.get("/chat/E1/messages", headers=bearer(token("alice")))
        assert response.status_code == 503


class TestSendMessage:

    def test_full_member_sends_and_room_receives(self, api_client, token, store):
        with api_client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "payload": {"token": token("alice")}})
            ws.receive_json()
            ws.send_json({"type": "join_event", "payload": {"eventId": "E2"}})
            assert ws.receive_json()["type"] == "joined_event"

            response = api_client.post(
                "/chat/E2/messages",
                json={"content": "  posted over http  "},
                headers=bearer(token("carol")),
            )

            assert response.status_code == 201
            record = response.json()
            assert record["content"] == "posted over http"
            assert record["userId"] == "carol"
            assert record["userName"] == "Carol"
            assert ws.receive_json() == {
                "type": "new_message",
                "payload": {"eventId": "E2", "message": record},
            }

        assert store.message_count("E2") == 1

    def test_requires_token(self, api_client):
        response = api_client.post("/chat/E1/messages", json={"content": "hi"})
        assert response.status_code == 401

    def test_observer_is_forbidden(self, api_client, token, store):
        response = api_client.post("/chat/E1/messages", json={"content": "hi"}, headers=bearer(token("bob")))
        assert response.status_code == 403
        assert response.json()["detail"] == "You must register for this event to send messages"
        assert store.message_count("E1") == 0

    def test_unknown_event(self, api_client, token):
        response = api_client.post("/chat/missing/messages", json={"content": "hi"}, headers=bearer(token("alice")))
        assert response.status_code == 404
        assert response.json()["detail"] == "Event not found"

    @pytest.mark.parametrize("content", ["", "   ", "x" * 1001])
    def test_invalid_content(self, api_client, token, store, content):
        response = api_client.post("/chat/E1/messages", json={"content": content}, headers=bearer(token("alice")))
        assert response.status_code == 400
        assert store.message_count("E1") == 0

    def test_store_failure_is_503(self, api_client, token, store):
        with patch.object(store, "append_message", side_effect=RuntimeError("disk gone")):
            response = api_client.post("/chat/E1/messages", json={"content": "hi"}, headers=bearer(token("alice")))
        assert response.status_code == 503
        assert response.json()["detail"] == "Failed to send message"


class TestInternalHooks:

    def test_disabled_without_configured_key(self, api_client):
        app.dependency_overrides[get_config] = lambda: AppSettings()
        try:
            response = api_client.post("/internal/users/alice/notifications", json={"type": "x"})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 503

    def test_wrong_key(self, internal_api):
        response = internal_api.post(
            "/internal/users/alice/notifications",
            json={"type": "x"},
            headers={"X-Internal-Key": "nope"},
        )
        assert response.status_code == 403

    def test_notify_offline_user(self, internal_api):
        response = internal_api.post(
            "/internal/users/alice/notifications",
            json={"type": "reminder"},
            headers={"X-Internal-Key": INTERNAL_KEY},
        )
        assert response.status_code == 200
        assert response.json() == {"delivered": False}

    def test_notify_online_user(self, internal_api, token):
        with internal_api.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "payload": {"token": token("alice")}})
            assert ws.receive_json()["type"] == "auth_success"

            response = internal_api.post(
                "/internal/users/alice/notifications",
                json={"type": "reminder", "text": "Starts in 1h"},
                headers={"X-Internal-Key": INTERNAL_KEY},
            )
            assert response.json() == {"delivered": True}
            assert ws.receive_json() == {
                "type": "notification",
                "payload": {"type": "reminder", "text": "Starts in 1h"},
            }

    def test_registration_notifies_creator(self, internal_api, token):
        with internal_api.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "payload": {"token": token("alice")}})
            ws.receive_json()

            response = internal_api.post(
                "/internal/events/E1/registrations",
                json={"userId": "bob"},
                headers={"X-Internal-Key": INTERNAL_KEY},
            )
            assert response.status_code == 200
            notification = response.json()
            assert notification["type"] == "event_registration"
            assert notification["eventId"] == "E1"
            assert notification["userName"] == "Bob"

            assert ws.receive_json() == {"type": "notification", "payload": notification}

    @pytest.mark.parametrize(
        "event_id, user_id, detail",
        [("missing", "bob", "Event not found"), ("E1", "ghost", "User not found")],
    )
    def test_registration_unknown_references(self, internal_api, event_id, user_id, detail):
        response = internal_api.post(
            f"/internal/events/{event_id}/registrations",
            json={"userId": user_id},
            headers={"X-Internal-Key": INTERNAL_KEY},
        )
        assert response.status_code == 404
        assert response.json()["detail"] == detail

    def test_report_reaches_online_admin(self, internal_api, token):
        with internal_api.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "payload": {"token": token("admin")}})
            ws.receive_json()

            response = internal_api.post(
                "/internal/reports",
                json={"reportId": "R1", "eventId": "E1", "reporterId": "bob", "reason": "spam"},
                headers={"X-Internal-Key": INTERNAL_KEY},
            )
            assert response.json() == {"notified": 1}

            message = ws.receive_json()
            assert message["type"] == "notification"
            assert message["payload"]["type"] == "new_report"
            assert message["payload"]["reason"] == "spam"

    def test_report_validation(self, internal_api):
        response = internal_api.post(
            "/internal/reports",
            json={"reportId": "R1", "eventId": "E1"},
            headers={"X-Internal-Key": INTERNAL_KEY},
        )
        assert response.status_code == 422
