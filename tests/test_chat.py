from fastapi import status


def register(client, email, uname):
    response = client.post(
        "/api/auth/createuser",
        json={"name": uname.title(), "uname": uname, "email": email, "password": "secret123"},
    )
    assert response.status_code == status.HTTP_200_OK
    return {"Authorization": f"Bearer {response.json()['token']}"}


def send(client, headers, receiver_email, content):
    response = client.post(
        "/api/chat/messages",
        json={"receiver_email": receiver_email, "content": content},
        headers=headers,
    )
    assert response.status_code == status.HTTP_200_OK, response.json()
    return response.json()["message"]


def test_contacts_empty_without_messages(client):
    headers = register(client, "alone@example.com", "alone")
    response = client.get("/api/chat/chats", headers=headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"contacts": []}


def test_contacts_are_distinct_counterparties(client):
    me = register(client, "me@example.com", "me")
    alice = register(client, "alice@example.com", "alice")
    register(client, "bob@example.com", "bob")
    register(client, "carol@example.com", "carol")

    send(client, me, "bob@example.com", "hi bob")
    send(client, me, "bob@example.com", "again")
    send(client, alice, "me@example.com", "hi me")

    contacts = client.get("/api/chat/chats", headers=me).json()["contacts"]
    assert [c["email"] for c in contacts] == ["alice@example.com", "bob@example.com"]
    assert set(contacts[0]) == {"id", "email", "uname"}


def test_send_then_list_keeps_creation_order(client):
    alice = register(client, "alice@example.com", "alice")
    bob = register(client, "bob@example.com", "bob")

    first = send(client, alice, "bob@example.com", "one")
    second = send(client, bob, "alice@example.com", "two")
    third = send(client, alice, "bob@example.com", "three")

    response = client.get("/api/chat/messages/bob@example.com", headers=alice)
    assert response.status_code == status.HTTP_200_OK
    messages = response.json()["messages"]
    assert [m["id"] for m in messages] == [first["id"], second["id"], third["id"]]
    assert messages[0]["sender"]["email"] == "alice@example.com"
    assert messages[0]["receiver"]["email"] == "bob@example.com"
    assert messages[1]["sender"]["uname"] == "bob"
    assert all(m["read_at"] is None for m in messages)


def test_conversation_excludes_third_parties(client):
    alice = register(client, "alice@example.com", "alice")
    register(client, "bob@example.com", "bob")
    carol = register(client, "carol@example.com", "carol")

    send(client, alice, "bob@example.com", "for bob")
    send(client, carol, "alice@example.com", "for alice")

    messages = client.get("/api/chat/messages/bob@example.com", headers=alice).json()["messages"]
    assert [m["content"] for m in messages] == ["for bob"]


def test_send_requires_receiver_and_content(client):
    alice = register(client, "alice@example.com", "alice")
    response = client.post(
        "/api/chat/messages", json={"content": "hello"}, headers=alice
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    register(client, "bob@example.com", "bob")
    response = client.post(
        "/api/chat/messages",
        json={"receiver_email": "bob@example.com", "content": ""},
        headers=alice,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_send_to_unknown_receiver(client):
    alice = register(client, "alice@example.com", "alice")
    response = client.post(
        "/api/chat/messages",
        json={"receiver_email": "nobody@example.com", "content": "hello"},
        headers=alice,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"success": False, "error": "Receiver not found"}


def test_list_messages_with_unknown_user(client):
    alice = register(client, "alice@example.com", "alice")
    response = client.get("/api/chat/messages/nobody@example.com", headers=alice)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_mark_read_is_idempotent(client):
    alice = register(client, "alice@example.com", "alice")
    bob = register(client, "bob@example.com", "bob")
    send(client, alice, "bob@example.com", "one")
    send(client, alice, "bob@example.com", "two")
    send(client, bob, "alice@example.com", "from bob")

    first = client.patch("/api/chat/messages/read/alice@example.com", headers=bob)
    assert first.status_code == status.HTTP_200_OK
    assert first.json() == {"success": True, "updatedCount": 2}

    second = client.patch("/api/chat/messages/read/alice@example.com", headers=bob)
    assert second.json() == {"success": True, "updatedCount": 0}

    messages = client.get("/api/chat/messages/alice@example.com", headers=bob).json()["messages"]
    read_state = {m["content"]: m["read_at"] is not None for m in messages}
    assert read_state == {"one": True, "two": True, "from bob": False}


def test_mark_read_from_unknown_sender(client):
    bob = register(client, "bob@example.com", "bob")
    response = client.patch("/api/chat/messages/read/ghost@example.com", headers=bob)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"success": False, "error": "Sender not found"}


def test_delete_conversation_reports_deleted_rows(client):
    alice = register(client, "alice@example.com", "alice")
    bob = register(client, "bob@example.com", "bob")
    register(client, "carol@example.com", "carol")
    send(client, alice, "bob@example.com", "one")
    send(client, bob, "alice@example.com", "two")
    send(client, alice, "carol@example.com", "keep")

    response = client.delete("/api/chat/messages/bob@example.com", headers=alice)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "deletedCount": 2}
    assert client.get("/api/chat/messages/alice@example.com", headers=bob).json() == {
        "messages": []
    }
    contacts = client.get("/api/chat/chats", headers=alice).json()["contacts"]
    assert [c["email"] for c in contacts] == ["carol@example.com"]


def test_register_send_and_read_end_to_end(client):
    a = register(client, "a@example.com", "usera")
    b = register(client, "b@example.com", "userb")

    send(client, a, "b@example.com", "hi")

    messages = client.get("/api/chat/messages/a@example.com", headers=b).json()["messages"]
    assert len(messages) == 1
    assert messages[0]["content"] == "hi"
    assert messages[0]["read_at"] is None

    response = client.patch("/api/chat/messages/read/a@example.com", headers=b)
    assert response.json()["updatedCount"] == 1

    messages = client.get("/api/chat/messages/b@example.com", headers=a).json()["messages"]
    assert messages[0]["read_at"] is not None
