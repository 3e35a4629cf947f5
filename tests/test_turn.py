"""Tests for sage_codex.turn: the tool loop with a scripted model."""

import pytest

from sage_codex.dispatcher import ToolRegistry
from sage_codex.history import get_version_count
from sage_codex.llm import LLMError, ScriptedLLM, scripted_response
from sage_codex.models import AdventureState
from sage_codex.storage import Storage
from sage_codex.turn import run_turn


@pytest.fixture
def session(storage: Storage) -> str:
    session_id, _ = storage.create_session()
    return session_id


class TestTextTurn:
    async def test_plain_reply(self, storage: Storage, session: str) -> None:
        llm = ScriptedLLM([scripted_response(text="Welcome, storyteller.", input_tokens=50, output_tokens=6)])

        result = await run_turn(storage=storage, session_id=session, message="Hello", llm=llm)

        assert result.text == "Welcome, storyteller."
        assert result.rounds == 1
        assert result.stop_reason == "end_turn"
        assert (result.input_tokens, result.output_tokens) == (50, 6)
        assert [e.type for e in result.events] == ["turn:start", "turn:delta", "turn:end"]

    async def test_persists_messages_and_usage(self, storage: Storage, session: str) -> None:
        llm = ScriptedLLM([scripted_response(text="Welcome.", input_tokens=5, output_tokens=2)])
        await run_turn(storage=storage, session_id=session, message="Hello", llm=llm)

        messages = storage.get_messages(session)
        assert [(m.role, m.content) for m in messages] == [("user", "Hello"), ("assistant", "Welcome.")]
        [usage] = storage.get_usage(session)
        assert usage.message_id == "msg_scripted"
        assert usage.output_tokens == 2

    async def test_request_contents(self, storage: Storage, session: str) -> None:
        llm = ScriptedLLM([scripted_response(text="ok")])
        await run_turn(storage=storage, session_id=session, message="Hello", llm=llm)

        [request] = llm.requests
        assert "CURRENT STAGE: Invoking" in request["system"]
        assert request["messages"] == [{"role": "user", "content": "Hello"}]
        assert "set_spark" in [t["name"] for t in request["tools"]]

    async def test_history_included_next_turn(self, storage: Storage, session: str) -> None:
        llm = ScriptedLLM([scripted_response(text="first"), scripted_response(text="second")])
        await run_turn(storage=storage, session_id=session, message="one", llm=llm)
        await run_turn(storage=storage, session_id=session, message="two", llm=llm)

        assert llm.requests[1]["messages"] == [
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": "first"},
            {"role": "user", "content": "two"},
        ]

    async def test_on_event_streams_live(self, storage: Storage, session: str) -> None:
        seen = []
        llm = ScriptedLLM([scripted_response(text="hi")])
        result = await run_turn(storage=storage, session_id=session, message="x", llm=llm, on_event=seen.append)
        assert seen == result.events


class TestToolRounds:
    async def test_tool_round_then_reply(self, storage: Storage, session: str) -> None:
        spark = {"name": "Ember", "vision": "A burning library"}
        llm = ScriptedLLM([
            scripted_response(text="Recording that.", tool_calls=[("set_spark", spark)], message_id="m1"),
            scripted_response(text="Your spark is set.", message_id="m2"),
        ])

        result = await run_turn(storage=storage, session_id=session, message="A burning library", llm=llm)

        assert result.rounds == 2
        assert result.text == "Recording that.\n\nYour spark is set."
        types = [e.type for e in result.events]
        assert types == [
            "turn:start", "turn:delta", "turn:end",
            "tool:start", "tool:end", "panel:spark",
            "turn:start", "turn:delta", "turn:end",
        ]

        state = storage.get_state(session)
        assert state.spark.name == "Ember"
        assert get_version_count(state, "spark") == 1

    async def test_tool_messages_sent_back(self, storage: Storage, session: str) -> None:
        llm = ScriptedLLM([
            scripted_response(tool_calls=[("suggest_adventure_name", {"name": "Ashfall"})], message_id="m1"),
            scripted_response(text="Done."),
        ])
        await run_turn(storage=storage, session_id=session, message="Name it", llm=llm)

        second = llm.requests[1]["messages"]
        assert second[0] == {"role": "user", "content": "Name it"}
        assert second[1]["role"] == "assistant"
        assert second[1]["content"] == [{
            "type": "tool_use", "id": "toolu_m1_0", "name": "suggest_adventure_name", "input": {"name": "Ashfall"},
        }]
        assert second[2]["role"] == "user"
        assert second[2]["content"][0]["type"] == "tool_result"
        assert second[2]["content"][0]["tool_use_id"] == "toolu_m1_0"
        assert 'The adventure is called "Ashfall"' in llm.requests[1]["system"]

        stored = storage.get_messages(session)
        assert [m.role for m in stored] == ["user", "assistant", "user", "assistant"]

    async def test_unknown_tool_reported_to_model(self, storage: Storage, session: str) -> None:
        llm = ScriptedLLM([
            scripted_response(tool_calls=[("select_frame", {"id": "x", "name": "y"})], message_id="m1"),
            scripted_response(text="Sorry."),
        ])
        result = await run_turn(storage=storage, session_id=session, message="x", llm=llm)

        tool_end = next(e for e in result.events if e.type == "tool:end")
        assert tool_end.data["is_error"] is True
        assert llm.requests[1]["messages"][2]["content"][0]["is_error"] is True

    async def test_max_tool_rounds(self, storage: Storage, session: str) -> None:
        call = ("suggest_adventure_name", {"name": "Loop"})
        llm = ScriptedLLM([scripted_response(tool_calls=[call], message_id=f"m{i}") for i in range(3)])

        result = await run_turn(storage=storage, session_id=session, message="x", llm=llm, max_tool_rounds=2)

        assert result.rounds == 2
        assert len(llm.requests) == 2
        assert result.stop_reason == "tool_use"

    async def test_stage_registry_replaced(self, storage: Storage) -> None:
        session_id, _ = storage.create_session(AdventureState(stage="binding"))
        registry = ToolRegistry()
        registry.register("set_spark", None)
        llm = ScriptedLLM([scripted_response(text="ok")])

        await run_turn(storage=storage, session_id=session_id, message="x", llm=llm, registry=registry)

        assert "set_spark" not in registry
        assert "select_frame" in registry


class TestFailures:
    async def test_llm_error_persists_nothing(self, storage: Storage, session: str) -> None:
        with pytest.raises(LLMError):
            await run_turn(storage=storage, session_id=session, message="x", llm=ScriptedLLM([]))
        assert storage.get_messages(session) == []
