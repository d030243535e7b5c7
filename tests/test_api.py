import logging
import uuid

import jwt
import pytest
from bson import ObjectId
from conftest import UnreachableCollection
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from chatapp.config import Settings
from chatapp.main import create_app
from chatapp.repositories.message_repository import MessageRepository


@pytest.fixture
def client():
    database = AsyncMongoMockClient()[f"chat_api_{uuid.uuid4().hex[:8]}"]
    app = create_app(Settings(), database=database)
    with TestClient(app) as test_client:
        yield test_client


def signup(client, name, password="secret123"):
    response = client.post(
        "/api/auth/signup",
        json={"full_name": name.capitalize(), "email": f"{name}@mail.com", "password": password, "bio": "hello"},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}


def token_of(headers):
    return headers["Authorization"].split()[1]


def test_status(client):
    response = client.get("/api/status")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_signup_login_and_check(client):
    user_id, headers = signup(client, "alice")

    response = client.post("/api/auth/login", json={"email": "alice@mail.com", "password": "secret123"})
    assert response.status_code == 200
    assert response.json()["user"]["id"] == user_id

    response = client.get("/api/auth/check", headers=headers)
    assert response.status_code == 200
    assert response.json()["user"]["email"] == "alice@mail.com"


def test_duplicate_signup_is_a_conflict(client):
    signup(client, "alice")
    response = client.post(
        "/api/auth/signup",
        json={"full_name": "Alice", "email": "alice@mail.com", "password": "secret123", "bio": "again"},
    )
    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "conflict", "message": "Account already exists"}


def test_bad_credentials_are_tagged_failures(client):
    signup(client, "alice")

    wrong = client.post("/api/auth/login", json={"email": "alice@mail.com", "password": "nope-nope"})
    unknown = client.post("/api/auth/login", json={"email": "nobody@mail.com", "password": "secret123"})

    for response in (wrong, unknown):
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"


def test_missing_token_is_unauthorized(client):
    response = client.get("/api/auth/check")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_signup_validation_error_is_tagged(client):
    response = client.post("/api/auth/signup", json={"email": "alice@mail.com", "password": "secret123"})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_update_profile_responds_with_and_without_picture(client):
    _, headers = signup(client, "alice")

    without_pic = client.put("/api/auth/update-profile", json={"bio": "new bio", "full_name": "Alice A"}, headers=headers)
    assert without_pic.status_code == 200
    assert without_pic.json()["user"]["bio"] == "new bio"
    assert without_pic.json()["user"]["profile_pic"] is None

    with_pic = client.put(
        "/api/auth/update-profile",
        json={"bio": "newer bio", "profile_pic": "https://img.example/alice.png"},
        headers=headers,
    )
    assert with_pic.status_code == 200
    assert with_pic.json()["user"]["profile_pic"] == "https://img.example/alice.png"
    assert with_pic.json()["user"]["full_name"] == "Alice A"


def test_send_message_errors(client):
    _, headers = signup(client, "alice")
    bob_id, _ = signup(client, "bob")

    empty = client.post(f"/api/messages/send/{bob_id}", json={}, headers=headers)
    assert empty.status_code == 400
    assert empty.json()["error"] == "validation_error"

    nobody = client.post(f"/api/messages/send/{ObjectId()}", json={"text": "hi"}, headers=headers)
    assert nobody.status_code == 404
    assert nobody.json()["error"] == "not_found"

    mark = client.put(f"/api/messages/mark/{ObjectId()}", headers=headers)
    assert mark.status_code == 404


def test_open_conversation_and_unseen_counts(client):
    alice_id, alice = signup(client, "alice")
    bob_id, bob = signup(client, "bob")

    assert client.post(f"/api/messages/send/{bob_id}", json={"text": "hi"}, headers=alice).status_code == 200
    assert client.post(f"/api/messages/send/{alice_id}", json={"text": "yo"}, headers=bob).status_code == 200

    sidebar = client.get("/api/messages/users", headers=alice).json()
    assert [u["id"] for u in sidebar["users"]] == [bob_id]
    assert sidebar["unseen_messages"] == {bob_id: 1}

    thread = client.get(f"/api/messages/{bob_id}", headers=alice).json()
    assert [m["text"] for m in thread["messages"]] == ["hi", "yo"]

    assert client.get("/api/messages/users", headers=alice).json()["unseen_messages"] == {}
    assert client.get("/api/messages/users", headers=bob).json()["unseen_messages"] == {alice_id: 1}


def test_mark_single_message_seen(client):
    alice_id, alice = signup(client, "alice")
    bob_id, bob = signup(client, "bob")
    sent = client.post(f"/api/messages/send/{bob_id}", json={"text": "hi"}, headers=alice).json()

    response = client.put(f"/api/messages/mark/{sent['new_message']['id']}", headers=bob)

    assert response.json() == {"success": True}
    assert client.get("/api/messages/users", headers=bob).json()["unseen_messages"] == {}


def test_live_push_and_presence_over_websocket(client):
    alice_id, alice = signup(client, "alice")
    bob_id, bob = signup(client, "bob")

    with client.websocket_connect(f"/ws?token={token_of(bob)}") as bob_ws:
        assert bob_ws.receive_json() == {"type": "getOnlineUsers", "data": [bob_id]}
        assert client.get(f"/api/presence/{bob_id}").json()["online"] is True
        assert client.get("/api/presence").json()["online_users"] == [bob_id]

        sent = client.post(f"/api/messages/send/{bob_id}", json={"text": "hi bob"}, headers=alice)
        assert sent.status_code == 200

        frame = bob_ws.receive_json()
        assert frame["type"] == "newMessage"
        assert frame["data"]["text"] == "hi bob"
        assert frame["data"]["sender_id"] == alice_id
        assert frame["data"]["id"] == sent.json()["new_message"]["id"]


def test_offline_receiver_still_gets_history(client):
    _, alice = signup(client, "alice")
    bob_id, bob = signup(client, "bob")

    assert client.get(f"/api/presence/{bob_id}").json()["online"] is False
    client.post(f"/api/messages/send/{bob_id}", json={"text": "while you were out"}, headers=alice)

    assert client.get("/api/messages/users", headers=bob).json()["unseen_messages"] != {}


def test_websocket_token_identity_and_peer_broadcast(client):
    alice_id, alice = signup(client, "alice")
    bob_id, bob = signup(client, "bob")

    with client.websocket_connect(f"/ws?token={token_of(alice)}") as alice_ws:
        assert alice_ws.receive_json()["data"] == [alice_id]
        with client.websocket_connect(f"/ws?token={token_of(bob)}") as bob_ws:
            assert bob_ws.receive_json()["data"] == sorted([alice_id, bob_id])
            assert alice_ws.receive_json()["data"] == sorted([alice_id, bob_id])


def test_websocket_seen_event_errors_come_back_tagged(client):
    _, bob = signup(client, "bob")

    with client.websocket_connect(f"/ws?token={token_of(bob)}") as ws:
        ws.receive_json()
        ws.send_json({"type": "seen", "message_id": str(ObjectId())})
        frame = ws.receive_json()
        assert frame["type"] == "error"
        assert frame["data"]["error"] == "not_found"

        ws.send_json({"type": "seen"})
        assert ws.receive_json()["data"]["error"] == "validation_error"


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert exc_info.value.code == 4401


def test_websocket_ignores_unverified_user_id(client):
    alice_id, alice = signup(client, "alice")
    bob_id, _ = signup(client, "bob")

    with client.websocket_connect(f"/ws?userId={bob_id}") as anon_ws:
        assert anon_ws.receive_json() == {"type": "getOnlineUsers", "data": []}
        assert client.get(f"/api/presence/{bob_id}").json()["online"] is False

        with client.websocket_connect(f"/ws?token={token_of(alice)}") as alice_ws:
            alice_ws.receive_json()
            assert anon_ws.receive_json() == {"type": "getOnlineUsers", "data": [alice_id]}
            sent = client.post(f"/api/messages/send/{bob_id}", json={"text": "for bob only"}, headers=alice)
            assert sent.status_code == 200

        # the push to bob would have been queued before alice's departure
        assert anon_ws.receive_json() == {"type": "getOnlineUsers", "data": []}

        anon_ws.send_json({"type": "seen", "message_id": sent.json()["new_message"]["id"]})
        assert anon_ws.receive_json()["data"]["error"] == "validation_error"


def test_injected_settings_sign_tokens():
    database = AsyncMongoMockClient()[f"chat_api_{uuid.uuid4().hex[:8]}"]
    app = create_app(Settings(jwt_secret="injected-secret-for-signing-tokens"), database=database)

    with TestClient(app) as test_client:
        user_id, headers = signup(test_client, "alice")
        payload = jwt.decode(token_of(headers), "injected-secret-for-signing-tokens", algorithms=["HS256"])
        assert payload["sub"] == user_id
        assert test_client.get("/api/auth/check", headers=headers).status_code == 200

        forged = jwt.encode({"sub": user_id}, "change-me", algorithm="HS256")
        response = test_client.get("/api/auth/check", headers={"Authorization": f"Bearer {forged}"})
        assert response.status_code == 401


def test_missing_jwt_secret_warns_and_uses_random_secret(caplog):
    main_logger = logging.getLogger("chatapp.main")
    main_logger.addHandler(caplog.handler)
    try:
        first = create_app(Settings())
        second = create_app(Settings())
    finally:
        main_logger.removeHandler(caplog.handler)

    assert any(r.levelno == logging.WARNING and "JWT_SECRET" in r.getMessage() for r in caplog.records)
    assert first.state.settings.jwt_secret
    assert first.state.settings.jwt_secret != "change-me"
    assert first.state.settings.jwt_secret != second.state.settings.jwt_secret


def test_store_outage_is_tagged_503(client, monkeypatch):
    _, alice = signup(client, "alice")
    _, bob = signup(client, "bob")
    monkeypatch.setattr(MessageRepository, "collection", property(lambda self: UnreachableCollection()))

    response = client.get("/api/messages/users", headers=alice)

    assert response.status_code == 503
    assert response.json() == {
        "success": False,
        "error": "store_unavailable",
        "message": "Message store is temporarily unavailable",
    }

    with client.websocket_connect(f"/ws?token={token_of(bob)}") as ws:
        ws.receive_json()
        ws.send_json({"type": "seen", "message_id": str(ObjectId())})
        frame = ws.receive_json()
        assert frame["type"] == "error"
        assert frame["data"]["error"] == "store_unavailable"
