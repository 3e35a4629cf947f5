"""Tests for sage_codex.storage."""

import pytest

from sage_codex.models import AdventureState, ChatMessage, UsageRecord
from sage_codex.storage import SessionNotFound, Storage


# ── Sessions ─────────────────────────────────────────────────


def test_create_session(storage: Storage):
    session_id, state = storage.create_session()
    assert state == AdventureState()
    assert storage.exists(session_id)
    assert storage.list_sessions() == [session_id]


def test_create_session_with_state(storage: Storage, state: AdventureState):
    session_id, _ = storage.create_session(state)
    assert storage.get_state(session_id) == state


def test_session_ids_unique(storage: Storage):
    first, _ = storage.create_session()
    second, _ = storage.create_session()
    assert first != second


def test_delete_session(storage: Storage):
    session_id, _ = storage.create_session()
    storage.append_messages(session_id, [ChatMessage(role="user", content="hi")])
    storage.delete_session(session_id)
    assert not storage.exists(session_id)
    with pytest.raises(SessionNotFound):
        storage.get_messages(session_id)


def test_unknown_session(storage: Storage):
    with pytest.raises(SessionNotFound):
        storage.get_state("nope")
    with pytest.raises(SessionNotFound):
        storage.delete_session("nope")
    with pytest.raises(SessionNotFound):
        storage.save_state("nope", AdventureState())


def test_session_not_found_is_key_error(storage: Storage):
    with pytest.raises(KeyError):
        storage.get_state("nope")


def test_path_like_session_ids_rejected(storage: Storage, tmp_path):
    victim = tmp_path / "data" / "victim.json"
    victim.write_text('{"secret": "keep me"}')

    assert not storage.exists("../victim")
    with pytest.raises(SessionNotFound):
        storage.save_state("../victim", AdventureState())
    assert victim.read_text() == '{"secret": "keep me"}'


# ── Document ─────────────────────────────────────────────────


def test_save_and_reload_state(storage: Storage, state: AdventureState):
    session_id, _ = storage.create_session()
    state.adventure_name = "The Hollow Bell"
    storage.save_state(session_id, state)

    reloaded = storage.get_state(session_id)
    assert reloaded.adventure_name == "The Hollow Bell"
    assert reloaded.scene_arcs[1].title == "The Belfry"


def test_state_file_location(storage: Storage, tmp_path):
    session_id, _ = storage.create_session()
    assert (tmp_path / "data" / "sessions" / f"{session_id}.json").exists()


# ── Messages & usage ─────────────────────────────────────────


def test_messages_append_only(storage: Storage):
    session_id, _ = storage.create_session()
    assert storage.get_messages(session_id) == []

    storage.append_messages(session_id, [ChatMessage(role="user", content="one")])
    storage.append_messages(session_id, [
        ChatMessage(role="assistant", content=[{"type": "text", "text": "two"}]),
    ])

    messages = storage.get_messages(session_id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].content == [{"type": "text", "text": "two"}]


def test_usage(storage: Storage):
    session_id, _ = storage.create_session()
    record = UsageRecord(message_id="m1", model="x", input_tokens=10, output_tokens=5,
                         timestamp="2026-01-01T00:00:00+00:00")
    storage.append_usage(session_id, [record])
    storage.append_usage(session_id, [record])
    assert storage.get_usage(session_id) == [record, record]
