"""HTTP tests for the FastAPI app (sessions, chat stream, section history)."""

import json

import pytest
from fastapi.testclient import TestClient

from sage_codex.app import create_app
from sage_codex.config import Settings
from sage_codex.history import push_version
from sage_codex.llm import ScriptedLLM, scripted_response
from sage_codex.models import AdventureSpark, AdventureState
from sage_codex.storage import Storage


@pytest.fixture
def app(tmp_path, storage: Storage):
    return create_app(settings=Settings(data_dir=tmp_path), llm=ScriptedLLM([]), storage=storage)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def _parse_sse(body: str) -> list[tuple[str, dict]]:
    events = []
    for chunk in body.strip().split("\n\n"):
        lines = chunk.split("\n")
        event_type = lines[0].removeprefix("event: ")
        data = json.loads(lines[1].removeprefix("data: "))
        events.append((event_type, data))
    return events


# ── Sessions ─────────────────────────────────────────────────


def test_create_and_get_session(client: TestClient):
    res = client.post("/api/sessions", json={"adventure_name": "Ashfall"})
    assert res.status_code == 200
    session_id = res.json()["session_id"]
    assert res.json()["state"]["stage"] == "invoking"

    res = client.get(f"/api/sessions/{session_id}")
    assert res.json()["state"]["adventure_name"] == "Ashfall"

    assert client.get("/api/sessions").json() == [session_id]


def test_get_unknown_session(client: TestClient):
    assert client.get("/api/sessions/nope").status_code == 404


def test_delete_session(client: TestClient):
    session_id = client.post("/api/sessions", json={}).json()["session_id"]
    assert client.delete(f"/api/sessions/{session_id}").json() == {"ok": True}
    assert client.get(f"/api/sessions/{session_id}").status_code == 404
    assert client.delete(f"/api/sessions/{session_id}").status_code == 404


def test_advance_stage(client: TestClient):
    session_id = client.post("/api/sessions", json={}).json()["session_id"]
    res = client.post(f"/api/sessions/{session_id}/advance")
    assert res.json()["stage"] == "attuning"
    assert client.get(f"/api/sessions/{session_id}").json()["state"]["stage"] == "attuning"


def test_advance_past_last_stage(client: TestClient, storage: Storage):
    session_id, _ = storage.create_session(AdventureState(stage="delivering"))
    assert client.post(f"/api/sessions/{session_id}/advance").status_code == 400


# ── Chat ─────────────────────────────────────────────────────


def test_chat_streams_events(client: TestClient, app):
    session_id = client.post("/api/sessions", json={}).json()["session_id"]
    app.state.llm = ScriptedLLM([
        scripted_response(tool_calls=[("set_spark", {"name": "Ember", "vision": "fire"})], message_id="m1"),
        scripted_response(text="Spark recorded.", message_id="m2"),
    ])

    res = client.post("/api/chat", json={"session_id": session_id, "message": "A burning library"})

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/event-stream")
    events = _parse_sse(res.text)
    types = [t for t, _ in events]
    assert types[:5] == ["turn:start", "turn:end", "tool:start", "tool:end", "panel:spark"]
    assert ("turn:delta", {"message_id": "m2", "content": "Spark recorded."}) in events

    messages = client.get(f"/api/sessions/{session_id}/messages").json()
    assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]


def test_chat_unknown_session(client: TestClient):
    assert client.post("/api/chat", json={"session_id": "nope", "message": "x"}).status_code == 404


def test_chat_rejects_path_session_id(client: TestClient, tmp_path):
    outside = tmp_path / "data" / "other.json"
    outside.write_text('{"secret": "keep me"}')

    response = client.post("/api/chat", json={"session_id": "../other", "message": "x"})

    assert response.status_code == 404
    assert outside.read_text() == '{"secret": "keep me"}'


def test_chat_llm_failure_reported_as_event(client: TestClient):
    session_id = client.post("/api/sessions", json={}).json()["session_id"]
    res = client.post("/api/chat", json={"session_id": session_id, "message": "x"})
    [(event_type, data)] = _parse_sse(res.text)
    assert event_type == "error"
    assert "no responses left" in data["message"]


# ── Section history ──────────────────────────────────────────


def _session_with_spark_history(storage: Storage) -> str:
    state = AdventureState(spark=AdventureSpark(name="New", vision="v2"))
    push_version(
        document=state,
        section_path="spark",
        previous_value=AdventureSpark(name="Old", vision="v1"),
        description="set_spark",
    )
    session_id, _ = storage.create_session(state)
    return session_id


def test_undo_section(client: TestClient, storage: Storage):
    session_id = _session_with_spark_history(storage)

    res = client.post("/api/section/undo", json={"session_id": session_id, "section_path": "spark"})

    assert res.status_code == 200
    body = res.json()
    assert body["restored_value"] == {"name": "Old", "vision": "v1"}
    assert body["remaining_entries"] == 0
    assert storage.get_state(session_id).spark.name == "Old"


def test_undo_empty_history(client: TestClient):
    session_id = client.post("/api/sessions", json={}).json()["session_id"]
    res = client.post("/api/section/undo", json={"session_id": session_id, "section_path": "frame"})
    assert res.status_code == 400
    assert res.json()["detail"] == 'No version history for section "frame"'


def test_undo_invalid_path(client: TestClient):
    session_id = client.post("/api/sessions", json={}).json()["session_id"]
    res = client.post("/api/section/undo", json={"session_id": session_id, "section_path": "scene:x"})
    assert res.status_code == 400


def test_undo_unknown_session(client: TestClient):
    res = client.post("/api/section/undo", json={"session_id": "nope", "section_path": "spark"})
    assert res.status_code == 404


def test_section_history(client: TestClient, storage: Storage):
    session_id = _session_with_spark_history(storage)

    res = client.get(f"/api/sessions/{session_id}/history/spark")

    body = res.json()
    assert body["count"] == 1
    assert body["entries"][0]["description"] == "set_spark"
    assert body["entries"][0]["value"]["name"] == "Old"


def test_scene_section_history_path(client: TestClient, storage: Storage):
    session_id, _ = storage.create_session()
    res = client.get(f"/api/sessions/{session_id}/history/scene:arc-1:npcs")
    assert res.json() == {"section_path": "scene:arc-1:npcs", "count": 0, "entries": []}


def test_section_history_invalid_path(client: TestClient, storage: Storage):
    session_id, _ = storage.create_session()
    assert client.get(f"/api/sessions/{session_id}/history/stage").status_code == 400
