import json
import time
from datetime import datetime, timedelta

import pytest
from conftest import AUTH, FakeEmbeddingProvider
from fastapi import HTTPException
from starlette.websockets import WebSocketDisconnect

from app.core.auth import get_current_user_id
from app.main import app, get_embedding_provider


def wait_for_subscribers(client, group_id: str, count: int, timeout: float = 2.0) -> None:
    """Joins carry no acknowledgement, so poll the registry until they land."""
    registry = client.app.state.chat_registry
    deadline = time.monotonic() + timeout
    while registry.subscriber_count(group_id) < count:
        if time.monotonic() > deadline:
            pytest.fail(f"{count} subscribers never joined {group_id}")
        time.sleep(0.01)


@pytest.fixture
def matched_group(client, make_user):
    """Runs the end-to-end matching scenario and returns the new group id."""
    make_user("seed", ["Calculus"])
    make_user("user-a", ["Calculus"])
    make_user("user-b", ["History"])

    response = client.post("/matching/find", headers=AUTH["seed"])
    assert response.status_code == 201, response.text
    return response.json()["groupId"]


def test_requires_bearer_token(client):
    assert client.post("/matching/find").status_code == 401
    assert client.post("/matching/find", headers={"Authorization": "Bearer bogus"}).status_code == 401


def test_bearer_token_resolves_to_its_user():
    assert get_current_user_id("token-a") == "user-a"
    with pytest.raises(HTTPException) as exc_info:
        get_current_user_id("bogus")
    assert exc_info.value.status_code == 401


def test_end_to_end_matching(client, make_user):
    make_user("seed", ["Calculus"])
    make_user("user-a", ["Calculus"])
    make_user("user-b", ["History"])
    before = datetime.utcnow()

    response = client.post("/matching/find", headers=AUTH["seed"])

    assert response.status_code == 201
    body = response.json()
    assert body["matchCount"] == 1
    group_id = body["groupId"]

    group = client.get(f"/groups/{group_id}", headers=AUTH["seed"]).json()
    assert group["name"] == "Calculus Group"
    assert group["topics"] == ["Calculus"]
    assert [m["user_id"] for m in group["members"]] == ["seed", "user-a"]

    sessions = client.get(f"/groups/{group_id}/sessions", headers=AUTH["seed"]).json()
    assert len(sessions) == 1
    session = sessions[0]
    scheduled_at = datetime.fromisoformat(session["scheduled_at"])
    expected_days = {(before + timedelta(days=1)).date(), (datetime.utcnow() + timedelta(days=1)).date()}
    assert scheduled_at.date() in expected_days
    assert (scheduled_at.hour, scheduled_at.minute, scheduled_at.second) == (18, 0, 0)
    assert session["duration"] == 90
    assert session["topic"] == "Calculus"
    assert session["title"] == "Calculus Group - First Session"


def test_match_count_includes_qualifiers_beyond_the_group(client, make_user):
    make_user("seed", ["Calculus"])
    for name in ("user-a", "user-b", "user-c", "user-d"):
        make_user(name, ["Calculus"])

    response = client.post("/matching/find", headers=AUTH["seed"])

    assert response.status_code == 201
    body = response.json()
    assert body["matchCount"] == 4
    group = client.get(f"/groups/{body['groupId']}", headers=AUTH["seed"]).json()
    assert [m["user_id"] for m in group["members"]] == ["seed", "user-a", "user-b", "user-c"]


def test_matching_failures_are_distinguishable(client, make_user):
    make_user("seed", [])
    make_user("user-a", ["History"])
    response = client.post("/matching/find", headers=AUTH["seed"])
    assert response.status_code == 400
    assert response.json()["detail"] == "Please complete your profile first"

    client.patch("/users/me/preferences", json={"topics": ["Calculus"]}, headers=AUTH["seed"])
    response = client.post("/matching/find", headers=AUTH["seed"])
    assert response.status_code == 404
    assert response.json()["detail"] == "No compatible matches found"


def test_no_candidates(client, make_user):
    make_user("seed", ["Calculus"])
    response = client.post("/matching/find", headers=AUTH["seed"])
    assert response.status_code == 404
    assert response.json()["detail"] == "No potential matches found"


def test_embedding_outage_is_a_503(client, make_user):
    make_user("seed", ["Calculus"])
    make_user("user-a", ["Calculus"])
    app.dependency_overrides[get_embedding_provider] = lambda: FakeEmbeddingProvider(
        fail_on={"Calculus"}
    )

    response = client.post("/matching/find", headers=AUTH["seed"])

    assert response.status_code == 503
    assert "unavailable" in response.json()["detail"]


def test_profile_endpoints(client):
    response = client.put("/users/me", json={"email": "a@example.edu", "first_name": "Ada"}, headers=AUTH["a"])
    assert response.status_code == 200
    assert response.json()["user_id"] == "user-a"

    response = client.patch(
        "/users/me/preferences",
        json={"topics": ["Calculus", " ", "Physics"], "data_usage_consent": True},
        headers=AUTH["a"],
    )
    assert response.status_code == 200
    assert response.json()["topics"] == ["Calculus", "Physics"]
    assert response.json()["data_usage_consent"] is True
    assert response.json()["first_name"] == "Ada"


def test_message_is_broadcast_to_joined_sockets(client, matched_group):
    with client.websocket_connect("/ws") as socket:
        socket.send_json({"type": "join", "groupId": matched_group, "token": "token-a"})
        wait_for_subscribers(client, matched_group, 1)

        response = client.post(
            f"/groups/{matched_group}/messages", json={"content": "Derivatives tonight?"}, headers=AUTH["seed"]
        )
        assert response.status_code == 201

        frame = socket.receive_json()
        assert frame["type"] == "message"
        assert frame["groupId"] == matched_group
        assert frame["message"]["content"] == "Derivatives tonight?"
        assert frame["message"]["user"]["user_id"] == "seed"

    # Disconnect prunes the room
    registry = client.app.state.chat_registry
    deadline = time.monotonic() + 2.0
    while matched_group in registry and time.monotonic() < deadline:
        time.sleep(0.01)
    assert matched_group not in registry

    history = client.get(f"/groups/{matched_group}/messages", headers=AUTH["a"]).json()
    assert [m["content"] for m in history] == ["Derivatives tonight?"]


def test_binary_frames_are_accepted_or_ignored(client, matched_group):
    with client.websocket_connect("/ws") as socket:
        socket.send_bytes(b"\xff\xfe not utf-8")
        socket.send_bytes(b'{"type": "join"}')
        socket.send_bytes(
            json.dumps({"type": "join", "groupId": matched_group, "token": "token-a"}).encode()
        )
        wait_for_subscribers(client, matched_group, 1)

        client.post(f"/groups/{matched_group}/messages", json={"content": "hi"}, headers=AUTH["seed"])

        assert socket.receive_json()["message"]["content"] == "hi"


def test_socket_join_requires_membership(client, matched_group, make_user):
    make_user("outsider", ["Calculus"])
    for token in ("token-outsider", "not-a-token", None):
        with client.websocket_connect("/ws") as socket:
            socket.send_json({"type": "join", "groupId": matched_group, "token": token})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                socket.receive_json()
            assert exc_info.value.code == 1008

    assert matched_group not in client.app.state.chat_registry


def test_only_members_can_post(client, matched_group):
    response = client.post(f"/groups/{matched_group}/messages", json={"content": "hi"}, headers=AUTH["b"])
    assert response.status_code == 403


def test_agenda_and_completion(client, matched_group, agenda_generator):
    session_id = client.get(f"/groups/{matched_group}/sessions", headers=AUTH["seed"]).json()[0]["session_id"]

    response = client.post(f"/sessions/{session_id}/generate-agenda", headers=AUTH["seed"])

    assert response.status_code == 200
    session = response.json()
    assert session["objectives"] == ["Review limits", "Practice derivatives"]
    assert session["practice_questions"][0]["answer"] == "2x"
    assert len(session["time_schedule"]) == 2
    assert [item["content"] for item in session["checklist_items"]] == session["objectives"]
    assert agenda_generator.requests == [
        {"course_name": "Calculus", "topics": ["Calculus"], "duration": 90}
    ]

    item_id = session["checklist_items"][0]["item_id"]
    item = client.patch(f"/checklist/{item_id}", json={"completed": True}, headers=AUTH["a"]).json()
    assert item["completed"] is True
    assert item["completed_by"] == "user-a"

    response = client.post(
        f"/sessions/{session_id}/complete",
        json={"success_rating": 4, "feedback": "Productive"},
        headers=AUTH["seed"],
    )
    assert response.status_code == 200
    completed = response.json()
    assert completed["checklist_completion_percent"] == 50
    assert completed["success_rating"] == 4
    assert completed["completed_at"] is not None


def test_sessions_can_be_scheduled_and_listed(client, matched_group):
    scheduled_at = (datetime.utcnow() + timedelta(days=3)).replace(microsecond=0)
    response = client.post(
        "/sessions",
        json={
            "group_id": matched_group,
            "title": "Exam cram",
            "scheduled_at": scheduled_at.isoformat(),
            "duration": 120,
        },
        headers=AUTH["a"],
    )
    assert response.status_code == 201
    session_id = response.json()["session_id"]

    upcoming = client.get("/sessions/upcoming", headers=AUTH["a"]).json()
    assert [s["title"] for s in upcoming] == ["Calculus Group - First Session", "Exam cram"]

    response = client.patch(f"/sessions/{session_id}", json={"duration": 60}, headers=AUTH["a"])
    assert response.json()["duration"] == 60

    response = client.post(
        "/sessions",
        json={"group_id": matched_group, "title": "x", "scheduled_at": scheduled_at.isoformat()},
        headers=AUTH["b"],
    )
    assert response.status_code == 403


def test_manual_group_and_explicit_join(client, make_user):
    make_user("user-a", ["Physics"])
    make_user("user-b", ["Physics"])

    response = client.post("/groups", json={"name": "Physics Night", "topics": ["Physics"]}, headers=AUTH["a"])
    assert response.status_code == 201
    group_id = response.json()["group_id"]

    response = client.post(f"/groups/{group_id}/members", headers=AUTH["b"])
    assert [m["user_id"] for m in response.json()["members"]] == ["user-a", "user-b"]

    mine = client.get("/groups", headers=AUTH["b"]).json()
    assert [g["group_id"] for g in mine] == [group_id]

    assert client.get("/groups/missing", headers=AUTH["a"]).status_code == 404
