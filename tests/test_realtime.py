import asyncio
from contextlib import ExitStack

import pytest
from fastapi import status
from sqlalchemy import create_engine
from starlette.websockets import WebSocketDisconnect

from notechat.database import Base, SessionLocal, get_db
from notechat.realtime import ConnectionManager, get_connection_manager
from main import app


def register(client, email, uname):
    response = client.post(
        "/api/auth/createuser",
        json={"name": uname.title(), "uname": uname, "email": email, "password": "secret123"},
    )
    assert response.status_code == status.HTTP_200_OK
    return response.json()["token"]


def join(ws, token, email=None):
    data = {"token": token}
    if email is not None:
        data["email"] = email
    ws.send_json({"event": "join", "data": data})
    return ws.receive_json()


def test_new_message_reaches_both_parties(client):
    token_a = register(client, "a@example.com", "usera")
    token_b = register(client, "b@example.com", "userb")

    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        assert join(ws_a, token_a) == {"event": "joined", "data": {"email": "a@example.com"}}
        assert join(ws_b, token_b, "b@example.com")["event"] == "joined"

        sent = client.post(
            "/api/chat/messages",
            json={"receiver_email": "b@example.com", "content": "hi"},
            headers={"auth-token": token_a},
        ).json()["message"]

        to_b = ws_b.receive_json()
        assert to_b["event"] == "message:new"
        assert to_b["data"]["id"] == sent["id"]
        assert to_b["data"]["content"] == "hi"

        to_a = ws_a.receive_json()
        assert to_a["event"] == "message:new"
        assert to_a["data"]["id"] == sent["id"]


def test_read_receipt_reaches_sender(client):
    token_a = register(client, "a@example.com", "usera")
    token_b = register(client, "b@example.com", "userb")

    with client.websocket_connect("/ws") as ws_a:
        join(ws_a, token_a)
        first = client.post(
            "/api/chat/messages",
            json={"receiver_email": "b@example.com", "content": "one"},
            headers={"auth-token": token_a},
        ).json()["message"]
        second = client.post(
            "/api/chat/messages",
            json={"receiver_email": "b@example.com", "content": "two"},
            headers={"auth-token": token_a},
        ).json()["message"]
        assert ws_a.receive_json()["data"]["id"] == first["id"]
        assert ws_a.receive_json()["data"]["id"] == second["id"]

        client.patch("/api/chat/messages/read/a@example.com", headers={"auth-token": token_b})

        receipt = ws_a.receive_json()
        assert receipt["event"] == "message:read"
        assert sorted(receipt["data"]["messageIds"]) == sorted([first["id"], second["id"]])
        assert receipt["data"]["receiverEmail"] == "b@example.com"


def test_join_rejects_invalid_token(client):
    with client.websocket_connect("/ws") as ws:
        reply = join(ws, "not-a-token")
        assert reply == {"event": "error", "data": {"error": "Invalid token"}}
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
        assert closed.value.code == status.WS_1008_POLICY_VIOLATION


def test_join_rejects_email_of_someone_else(client):
    token_a = register(client, "a@example.com", "usera")
    register(client, "b@example.com", "userb")

    with client.websocket_connect("/ws") as ws:
        reply = join(ws, token_a, "b@example.com")
        assert reply["event"] == "error"
        assert reply["data"]["error"] == "Email does not match token"


def test_unknown_event_keeps_connection_open(client):
    token_a = register(client, "a@example.com", "usera")
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "typing"})
        assert ws.receive_json()["event"] == "error"
        ws.send_text("not json")
        assert ws.receive_json()["data"]["error"] == "Frames must be JSON"
        assert join(ws, token_a)["event"] == "joined"


def test_connection_cap_refuses_extra_sockets(client):
    app.dependency_overrides[get_connection_manager] = lambda: ConnectionManager(
        max_connections=0
    )
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()


class BrokenSocket:
    async def send_json(self, data):
        raise RuntimeError("connection reset")


class RecordingSocket:
    def __init__(self):
        self.frames = []

    async def send_json(self, data):
        self.frames.append(data)


def test_emit_drops_failing_sockets_without_raising():
    connections = ConnectionManager()
    broken, healthy = BrokenSocket(), RecordingSocket()
    connections.connections.update({broken, healthy})
    connections.join("a@example.com", broken)
    connections.join("a@example.com", healthy)

    delivered = asyncio.run(connections.emit("a@example.com", "message:new", {"id": "1"}))

    assert delivered == 1
    assert healthy.frames == [{"event": "message:new", "data": {"id": "1"}}]
    assert connections.subscribers("a@example.com") == 1
    assert broken not in connections.connections


def test_emit_to_channel_without_subscribers():
    connections = ConnectionManager()
    assert asyncio.run(connections.emit("nobody@example.com", "message:new", {})) == 0


def test_publish_read_targets_original_sender():
    connections = ConnectionManager()
    sender, reader = RecordingSocket(), RecordingSocket()
    connections.join("sender@example.com", sender)
    connections.join("reader@example.com", reader)

    asyncio.run(connections.publish_read("sender@example.com", ["m1", "m2"], "reader@example.com"))

    assert sender.frames == [
        {
            "event": "message:read",
            "data": {"messageIds": ["m1", "m2"], "receiverEmail": "reader@example.com"},
        }
    ]
    assert reader.frames == []


def test_joined_sockets_do_not_hold_database_connections(client, tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path}/notechat.db",
        connect_args={"check_same_thread": False},
        pool_size=2,
        max_overflow=0,
        pool_timeout=1,
    )
    Base.metadata.create_all(bind=engine)

    def pooled_db():
        db = SessionLocal(bind=engine)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = pooled_db
    token = register(client, "a@example.com", "usera")

    with ExitStack() as stack:
        sockets = [stack.enter_context(client.websocket_connect("/ws")) for _ in range(4)]
        for ws in sockets:
            assert join(ws, token)["event"] == "joined"
        assert engine.pool.checkedout() == 0

        response = client.get("/api/notes/fetchallnotes", headers={"auth-token": token})
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []
    engine.dispose()
