from stampchat.core import state


def receive_until(ws, wanted, limit=10):
    """Read frames until every type in `wanted` has been seen."""
    seen = {}
    for _ in range(limit):
        frame = ws.receive_json()
        seen.setdefault(frame["type"], frame)
        if set(wanted) <= set(seen):
            return seen
    raise AssertionError(f"never saw {set(wanted) - set(seen)}; got {list(seen)}")


# ----------------------------------------------------------------------------
# REST
# ----------------------------------------------------------------------------

def test_root_and_health(client):
    assert client.get("/").status_code == 200
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["connections"] == 0


def test_create_and_fetch_room(client):
    response = client.post("/rooms", json={"id": "ABC", "name": "Test"})
    assert response.status_code == 200
    assert response.json() == {"id": "abc", "name": "Test"}

    assert client.get("/rooms/abc").json()["name"] == "Test"
    assert [r["id"] for r in client.get("/rooms").json()] == ["abc"]


def test_invalid_room_id_is_400(client, store):
    response = client.post("/rooms", json={"id": "TOO-LONG-ID", "name": "Test"})
    assert response.status_code == 400
    assert response.json()["detail"]["reason"] == "too_long"
    assert "set" not in store.calls


def test_missing_room_is_404(client):
    assert client.get("/rooms/nope").status_code == 404


def test_messages_flow(client):
    client.post("/rooms", json={"id": "abc", "name": "Test"})
    first = client.post("/rooms/abc/messages", json={"username": "alice", "text": "hello"})
    assert first.status_code == 200
    first_id = first.json()["message_id"]
    client.post(
        "/rooms/abc/messages",
        json={"username": "bob", "text": ":stamp_3", "replyTo": first_id},
    )

    messages = client.get("/rooms/abc/messages").json()
    assert [m["username"] for m in messages] == ["bob", "alice"]
    assert messages[0]["replyTo"] == first_id
    assert messages[0]["segments"][0]["kind"] == "stamp"
    assert messages[0]["segments"][0]["asset"] == "3"
    assert "createdAt" in messages[1]

    liked = client.post(f"/rooms/abc/messages/{first_id}/like", json={"likes": 0})
    assert liked.json()["likes"] == 1


def test_empty_message_is_400(client):
    response = client.post("/rooms/abc/messages", json={"username": "alice", "text": ""})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "text"


def test_storage_failure_is_503(client, store):
    store.failures["add"] = 0
    response = client.post("/rooms/abc/messages", json={"username": "alice", "text": "hi"})
    assert response.status_code == 503


def test_like_missing_message_is_404(client):
    response = client.post("/rooms/abc/messages/missing/like", json={"likes": 0})
    assert response.status_code == 404


def test_votes_flow(client):
    created = client.post("/rooms/abc/votes", json={"question": "Lunch?", "options": ["yes", "no"]})
    assert created.status_code == 200
    vote_id = created.json()["vote_id"]

    cast = client.post(f"/rooms/abc/votes/{vote_id}/cast", json={"optionIndex": 0})
    assert cast.status_code == 200
    assert cast.json()["total"] == 1

    votes = client.get("/rooms/abc/votes").json()
    assert [o["percent"] for o in votes[0]["options"]] == [100, 0]

    assert client.post(f"/rooms/abc/votes/{vote_id}/cast", json={"optionIndex": 5}).status_code == 400
    assert client.delete(f"/rooms/abc/votes/{vote_id}").status_code == 200
    assert client.get("/rooms/abc/votes").json() == []


def test_vote_needs_two_options(client):
    response = client.post("/rooms/abc/votes", json={"question": "Lunch?", "options": ["yes"]})
    assert response.status_code == 400


def test_delete_room_needs_confirmation(client):
    client.post("/rooms", json={"id": "abc", "name": "Test"})
    client.post("/rooms/abc/messages", json={"username": "alice", "text": "hello"})

    assert client.delete("/rooms/abc").status_code == 400

    response = client.delete("/rooms/abc?confirm=true")
    assert response.status_code == 200
    assert response.json()["deleted"] == {"messages": 1, "votes": 0, "room": 1}
    assert client.get("/rooms/abc").status_code == 404
    assert client.get("/rooms/abc/messages").json() == []


def test_games_flow(client):
    response = client.post("/games", json={"roomName": "friday", "participants": ["a", "b", "c", "d", ""]})
    assert response.status_code == 200
    game = response.json()
    assert game["roomName"] == "friday"
    assert len(game["participants"]) == 4

    assert client.post("/games", json={"roomName": "x", "participants": ["a"]}).status_code == 400
    assert client.delete(f"/games/{game['id']}").status_code == 200
    assert client.get("/games").json() == []


# ----------------------------------------------------------------------------
# WebSocket
# ----------------------------------------------------------------------------

def test_websocket_join_send_and_snapshot(client):
    client.post("/rooms", json={"id": "abc", "name": "Test"})
    client.post("/rooms/abc/messages", json={"username": "bob", "text": "earlier"})

    with client.websocket_connect("/ws?username=alice") as ws:
        ws.send_json({"action": "join", "room_id": "ABC"})
        joined = receive_until(ws, ["room_joined"])["room_joined"]
        assert joined["room"] == {"id": "abc", "name": "Test"}
        assert [m["text"] for m in joined["messages"]] == ["earlier"]
        assert state.projector.get("abc") is not None

        ws.send_json({"action": "send_message", "room_id": "abc", "text": "hi :stamp_1"})
        frames = receive_until(ws, ["message_sent", "messages_snapshot"])
        snapshot = frames["messages_snapshot"]["messages"]
        assert [m["text"] for m in snapshot] == ["hi :stamp_1", "earlier"]
        assert snapshot[0]["username"] == "alice"

        ws.send_json({"action": "leave", "room_id": "abc"})
        receive_until(ws, ["room_left"])
        assert state.projector.get("abc") is None


def test_websocket_composer_reply_and_like(client):
    client.post("/rooms", json={"id": "abc", "name": "Test"})
    first = client.post("/rooms/abc/messages", json={"username": "bob", "text": "question"}).json()["message_id"]

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "join", "room_id": "abc", "username": "carol"})
        receive_until(ws, ["room_joined"])

        ws.send_json({"action": "set_reply", "room_id": "abc", "message_id": first})
        composer = receive_until(ws, ["composer"])["composer"]
        assert composer["reply_to"] == first

        ws.send_json({"action": "like", "room_id": "abc", "message_id": first})
        liked = receive_until(ws, ["message_liked"])["message_liked"]
        assert liked["likes"] == 1

        ws.send_json({"action": "send_message", "room_id": "abc", "text": "answer"})
        receive_until(ws, ["message_sent"])

    messages = client.get("/rooms/abc/messages").json()
    assert messages[0]["replyTo"] == first
    assert messages[0]["username"] == "carol"


def test_websocket_errors(client):
    with client.websocket_connect("/ws?username=alice") as ws:
        ws.send_text("not json")
        assert receive_until(ws, ["error"])["error"]["message"] == "Invalid JSON"

        ws.send_json({"action": "join", "room_id": "TOO-LONG-ID"})
        assert receive_until(ws, ["error"])["error"]["field"] == "room_id"

        ws.send_json({"action": "send_message", "room_id": "abc", "text": "hi"})
        assert receive_until(ws, ["error"])["error"]["message"] == "Join the room first"

        ws.send_json({"action": "dance"})
        assert "Unknown action" in receive_until(ws, ["error"])["error"]["message"]


def test_websocket_rejects_non_string_fields_and_keeps_session(client):
    client.post("/rooms", json={"id": "abc", "name": "Test"})

    with client.websocket_connect("/ws?username=alice") as ws:
        ws.send_json({"action": "join", "room_id": "abc"})
        receive_until(ws, ["room_joined"])

        ws.send_json({"action": "send_message", "room_id": "abc", "text": 123})
        error = receive_until(ws, ["error"])["error"]
        assert error["field"] == "text"
        assert error["reason"] == "not_a_string"

        ws.send_json({"action": "join", "room_id": 42})
        assert receive_until(ws, ["error"])["error"]["field"] == "room_id"

        ws.send_json({"action": "send_message", "room_id": "abc", "text": "still here"})
        receive_until(ws, ["message_sent"])
        assert any("abc" in rooms for rooms in state.connection_manager.connection_rooms.values())
