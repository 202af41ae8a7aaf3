from fastapi import status


def register(client, email, uname):
    response = client.post(
        "/api/auth/createuser",
        json={"name": uname.title(), "uname": uname, "email": email, "password": "secret123"},
    )
    assert response.status_code == status.HTTP_200_OK
    token = response.json()["token"]
    user = client.post("/api/auth/getuser", headers={"auth-token": token}).json()
    return token, user


def test_getuser_hides_password_hash(client):
    token, _ = register(client, "me@example.com", "me")
    response = client.post("/api/auth/getuser", headers={"auth-token": token})
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert "password" not in body
    assert set(body) == {"id", "name", "uname", "email", "created_at"}


def test_delete_account_requires_owner(client, store):
    token, user = register(client, "owner@example.com", "owner")
    other_token, other = register(client, "other@example.com", "other")

    response = client.delete(
        f"/api/auth/deleteuser/{other['id']}", headers={"auth-token": token}
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert store.users.select_one({"id": other["id"]}) is not None


def test_delete_unknown_account(client):
    token, _ = register(client, "owner@example.com", "owner")
    response = client.delete("/api/auth/deleteuser/missing", headers={"auth-token": token})
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_delete_account_removes_notes_and_messages(client, store):
    token, user = register(client, "leaving@example.com", "leaving")
    other_token, other = register(client, "staying@example.com", "staying")
    headers = {"auth-token": token}
    client.post("/api/notes/addnote", json={"title": "t", "description": "d"}, headers=headers)
    client.post(
        "/api/chat/messages",
        json={"receiver_email": "staying@example.com", "content": "bye"},
        headers=headers,
    )

    response = client.delete(f"/api/auth/deleteuser/{user['id']}", headers=headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["success"] is True
    assert store.users.select_one({"id": user["id"]}) is None
    assert store.notes.select({"user_id": user["id"]}) == []
    assert store.messages.select({"sender_id": user["id"]}) == []

    login = client.post(
        "/api/auth/login", json={"email": "leaving@example.com", "password": "secret123"}
    )
    assert login.status_code == status.HTTP_400_BAD_REQUEST


def test_list_all_users(client):
    token, _ = register(client, "b@example.com", "bravo")
    register(client, "a@example.com", "alpha")

    response = client.get("/api/auth/getallusers", headers={"auth-token": token})
    assert response.status_code == status.HTTP_200_OK
    users = response.json()["users"]
    assert [u["uname"] for u in users] == ["alpha", "bravo"]
    assert set(users[0]) == {"id", "email", "uname"}


def test_list_all_users_requires_token(client):
    response = client.get("/api/auth/getallusers")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
