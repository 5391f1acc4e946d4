from datetime import datetime, timezone

import pytest


def create(client, auth, host="alice", **payload):
    body = {"participant_ids": [], "duration": 25}
    body.update(payload)
    res = client.post("/sessions", json=body, headers=auth(host))
    assert res.status_code == 201, res.text
    return res.json()


def start(client, auth, session_id, host="alice"):
    res = client.post(f"/sessions/{session_id}/start", headers=auth(host))
    assert res.status_code == 200, res.text
    return res.json()


def test_requires_token(client):
    assert client.get("/sessions").status_code == 401
    res = client.get("/sessions", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_create_session_returns_id_and_room_code(client, auth):
    created = create(client, auth, participant_ids=["bob"])

    assert len(created["room_code"]) == 6
    res = client.get(f"/sessions/{created['id']}", headers=auth("bob"))
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "pending"
    assert body["host_id"] == "alice"
    assert body["participants"] == ["alice", "bob"]
    assert body["violations"] == []


def test_create_validates_duration(client, auth):
    res = client.post("/sessions", json={"duration": 0}, headers=auth("alice"))
    assert res.status_code == 422

    res = client.post("/sessions", json={"duration": 0, "is_marathon": True}, headers=auth("alice"))
    assert res.status_code == 201


def test_only_one_live_session_per_user(client, auth):
    first = create(client, auth)

    res = client.post("/sessions", json={"duration": 25}, headers=auth("alice"))

    assert res.status_code == 409
    assert res.json()["code"] == "active_session_exists"
    assert res.json()["session_id"] == first["id"]

    active = client.get("/sessions/active", headers=auth("alice")).json()
    assert active["id"] == first["id"]
    assert client.get("/sessions/active", headers=auth("zoe")).json() is None


def test_join_by_room_code(client, auth):
    created = create(client, auth)

    res = client.post("/sessions/join", json={"room_code": created["room_code"]}, headers=auth("bob"))

    assert res.status_code == 200
    assert res.json()["participants"] == ["alice", "bob"]
    # rejoining the same room is fine
    res = client.post("/sessions/join", json={"room_code": created["room_code"]}, headers=auth("bob"))
    assert res.status_code == 200
    assert res.json()["participants"] == ["alice", "bob"]


def test_join_errors(client, auth):
    assert client.post("/sessions/join", json={"room_code": "12ab"}, headers=auth("bob")).status_code == 422

    res = client.post("/sessions/join", json={"room_code": "123456"}, headers=auth("bob"))
    assert res.status_code == 404
    assert res.json()["code"] == "session_not_found"

    created = create(client, auth)
    start(client, auth, created["id"])
    res = client.post("/sessions/join", json={"room_code": created["room_code"]}, headers=auth("bob"))
    assert res.status_code == 409
    assert res.json()["code"] == "session_already_started"


def test_join_while_in_another_session_is_rejected(client, auth):
    mine = create(client, auth, host="bob")
    other = create(client, auth, host="alice")

    res = client.post("/sessions/join", json={"room_code": other["room_code"]}, headers=auth("bob"))

    assert res.status_code == 409
    assert res.json()["session_id"] == mine["id"]


def test_host_only_actions(client, auth):
    created = create(client, auth, participant_ids=["bob"])

    res = client.post(f"/sessions/{created['id']}/start", headers=auth("bob"))
    assert res.status_code == 403
    assert res.json()["code"] == "not_session_host"
    assert client.delete(f"/sessions/{created['id']}", headers=auth("bob")).status_code == 403

    body = start(client, auth, created["id"])
    assert body["status"] == "active"
    assert body["start_time"] is not None

    res = client.post(f"/sessions/{created['id']}/start", headers=auth("alice"))
    assert res.status_code == 409
    assert res.json()["code"] == "invalid_session_state"


def test_participant_only_reads(client, auth):
    created = create(client, auth)

    res = client.get(f"/sessions/{created['id']}", headers=auth("mallory"))
    assert res.status_code == 403
    assert res.json()["code"] == "not_participant"

    assert client.get("/sessions/missing", headers=auth("alice")).status_code == 404


def test_cancel_pending_session(client, auth):
    created = create(client, auth)

    res = client.delete(f"/sessions/{created['id']}", headers=auth("alice"))

    assert res.status_code == 200
    assert client.get(f"/sessions/{created['id']}", headers=auth("alice")).status_code == 404


def test_cancel_active_session_is_rejected(client, auth):
    created = create(client, auth)
    start(client, auth, created["id"])

    res = client.delete(f"/sessions/{created['id']}", headers=auth("alice"))

    assert res.status_code == 409


def test_leave_session(client, auth):
    created = create(client, auth, participant_ids=["bob"])

    res = client.post(f"/sessions/{created['id']}/leave", headers=auth("bob"))

    assert res.status_code == 200
    assert client.get(f"/sessions/{created['id']}", headers=auth("alice")).json()["participants"] == ["alice"]


def test_violation_is_classified(client, auth):
    created = create(client, auth, participant_ids=["bob"])
    start(client, auth, created["id"])

    res = client.post(
        f"/sessions/{created['id']}/violations",
        json={"duration_seconds": 130},
        headers=auth("bob"),
    )

    assert res.status_code == 200
    assert res.json() == {"category": "large", "is_catastrophic": False}
    session = client.get(f"/sessions/{created['id']}", headers=auth("alice")).json()
    assert session["violations"][0]["user_id"] == "bob"
    assert session["violations"][0]["type"] == "app-switch"

    res = client.post(
        f"/sessions/{created['id']}/violations",
        json={"duration_seconds": -1},
        headers=auth("bob"),
    )
    assert res.status_code == 422


def test_terminate_session(client, auth):
    created = create(client, auth, participant_ids=["bob"])
    start(client, auth, created["id"])

    assert client.post(
        f"/sessions/{created['id']}/terminate", json={"reason": "   "}, headers=auth("bob")
    ).status_code == 422

    res = client.post(
        f"/sessions/{created['id']}/terminate",
        json={"reason": "Catastrophic violation by user bob (6 minutes away)"},
        headers=auth("bob"),
    )

    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ended"
    assert body["outcome"] == "failed"
    assert body["fail_reason"].startswith("Catastrophic violation by user bob")


def test_end_after_target_is_successful(client, auth):
    # store clock sits well in the past, so the target duration has long passed
    created = create(client, auth)
    start(client, auth, created["id"])

    res = client.post(f"/sessions/{created['id']}/end", headers=auth("alice"))

    assert res.status_code == 200
    assert res.json()["outcome"] == "successful"
    assert res.json()["fail_reason"] is None


def test_end_before_target_fails(client, auth, clock):
    clock.now = datetime.now(timezone.utc)
    created = create(client, auth)
    start(client, auth, created["id"])

    res = client.post(f"/sessions/{created['id']}/end", headers=auth("alice"))

    assert res.status_code == 200
    assert res.json()["outcome"] == "failed"
    assert res.json()["fail_reason"] == "Session ended early"

    # second end returns the recorded result unchanged
    again = client.post(f"/sessions/{created['id']}/end", headers=auth("alice"))
    assert again.status_code == 200
    assert again.json()["fail_reason"] == "Session ended early"


def test_end_pending_session_is_rejected(client, auth):
    created = create(client, auth)

    res = client.post(f"/sessions/{created['id']}/end", headers=auth("alice"))

    assert res.status_code == 409


def test_reconcile_stats_once(client, auth):
    client.post("/users/me", json={"username": "Alice", "email": "alice@example.com"}, headers=auth("alice"))
    created = create(client, auth)
    start(client, auth, created["id"])
    client.post(f"/sessions/{created['id']}/violations", json={"duration_seconds": 40}, headers=auth("alice"))
    client.post(f"/sessions/{created['id']}/end", headers=auth("alice"))

    first = client.post(f"/sessions/{created['id']}/stats", headers=auth("alice"))
    second = client.post(f"/sessions/{created['id']}/stats", headers=auth("alice"))

    assert first.status_code == 200
    assert first.json()["total_hours"] == pytest.approx(25 / 60)
    assert first.json()["sessions_completed"] == 1
    assert first.json()["violations"] == 40
    assert second.json() == first.json()


def test_reconcile_stats_errors(client, auth):
    created = create(client, auth)
    start(client, auth, created["id"])

    res = client.post(f"/sessions/{created['id']}/stats", headers=auth("alice"))
    assert res.status_code == 409

    client.post(f"/sessions/{created['id']}/end", headers=auth("alice"))
    res = client.post(f"/sessions/{created['id']}/stats", headers=auth("alice"))
    assert res.status_code == 404
    assert res.json()["code"] == "user_not_found"


def test_history_is_newest_first(client, auth, clock):
    first = create(client, auth)
    start(client, auth, first["id"])
    client.post(f"/sessions/{first['id']}/end", headers=auth("alice"))
    clock.advance(3600)
    second = create(client, auth)

    res = client.get("/sessions", headers=auth("alice"))

    assert [s["id"] for s in res.json()] == [second["id"], first["id"]]


def test_store_outage_maps_to_503(client, auth, store):
    from studyroom.core.errors import StoreUnavailable

    store.fail_with = StoreUnavailable("connection refused")

    res = client.get("/sessions", headers=auth("alice"))

    assert res.status_code == 503
    assert res.json()["code"] == "store_unavailable"


def test_violations_only_while_active(client, auth):
    created = create(client, auth)
    url = f"/sessions/{created['id']}/violations"

    res = client.post(url, json={"duration_seconds": 40}, headers=auth("alice"))
    assert res.status_code == 409
    assert res.json()["code"] == "invalid_session_state"

    start(client, auth, created["id"])
    client.post(f"/sessions/{created['id']}/end", headers=auth("alice"))
    res = client.post(url, json={"duration_seconds": 40}, headers=auth("alice"))
    assert res.status_code == 409

    session = client.get(f"/sessions/{created['id']}", headers=auth("alice")).json()
    assert session["violations"] == []
