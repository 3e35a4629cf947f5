"""Tests for sage_codex.context: request assembly."""

from sage_codex.context import STATE_HEADER, assemble_payload, window_history
from sage_codex.models import AdventureState, ChatMessage


def _tool_round() -> list[ChatMessage]:
    return [
        ChatMessage(role="assistant", content=[{"type": "tool_use", "id": "t1", "name": "set_spark", "input": {}}]),
        ChatMessage(role="user", content=[{"type": "tool_result", "tool_use_id": "t1", "content": "ok"}]),
    ]


class TestWindowHistory:
    def test_short_history_kept(self) -> None:
        history = [ChatMessage(role="user", content="a"), ChatMessage(role="assistant", content="b")]
        assert window_history(history, 10) == (history, 0)

    def test_keeps_latest(self) -> None:
        history = []
        for i in range(5):
            history += [ChatMessage(role="user", content=f"q{i}"), ChatMessage(role="assistant", content=f"a{i}")]
        kept, dropped = window_history(history, 4)
        assert [m.content for m in kept] == ["q3", "a3", "q4", "a4"]
        assert dropped == 6

    def test_never_starts_on_assistant(self) -> None:
        history = [
            ChatMessage(role="user", content="q0"),
            ChatMessage(role="assistant", content="a0"),
            ChatMessage(role="user", content="q1"),
        ]
        kept, dropped = window_history(history, 2)
        assert [m.content for m in kept] == ["q1"]
        assert dropped == 2

    def test_never_starts_on_dangling_tool_result(self) -> None:
        history = [ChatMessage(role="user", content="q0"), *_tool_round(), ChatMessage(role="user", content="q1")]
        kept, _ = window_history(history, 2)
        assert [m.content for m in kept] == ["q1"]


class TestAssemblePayload:
    def test_state_appended_to_system(self, state: AdventureState) -> None:
        payload = assemble_payload(state=state, history=[], user_message="Hi")
        assert "CURRENT STAGE: Weaving" in payload.system
        assert f"{STATE_HEADER}\n" in payload.system
        assert "Outline:" in payload.system
        assert payload.metadata.tiers_included == ["T1", "T3"]

    def test_empty_state_has_no_header(self) -> None:
        payload = assemble_payload(state=AdventureState(), history=[], user_message="Hi")
        assert STATE_HEADER not in payload.system
        assert payload.metadata.state_context_length == 0

    def test_messages_end_with_user_message(self, state: AdventureState) -> None:
        history = [ChatMessage(role="user", content="earlier"), ChatMessage(role="assistant", content="reply")]
        payload = assemble_payload(state=state, history=history, user_message="now")
        assert payload.messages == [
            {"role": "user", "content": "earlier"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "now"},
        ]
        assert payload.metadata.message_count == 3

    def test_tools_for_stage(self, state: AdventureState) -> None:
        payload = assemble_payload(state=state, history=[], user_message="x", stage="binding")
        names = [t["name"] for t in payload.tools]
        assert names == ["signal_ready", "suggest_adventure_name", "select_frame"]
        assert payload.metadata.tool_count == 3

    def test_active_scene_named_in_prompt(self, state: AdventureState) -> None:
        state.stage = "inscribing"
        payload = assemble_payload(state=state, history=[], user_message="x", active_scene_id="arc-2")
        assert 'working on scene "The Belfry"' in payload.system

    def test_window_metadata(self, state: AdventureState) -> None:
        history = [ChatMessage(role="user", content=str(i)) for i in range(6)]
        payload = assemble_payload(state=state, history=history, user_message="x", max_history=2)
        assert payload.metadata.dropped_message_count == 4
        assert payload.metadata.message_count == 3

    def test_character_budget(self, state: AdventureState) -> None:
        payload = assemble_payload(state=state, history=[], user_message="x", max_characters=20)
        assert payload.metadata.state_context_length == 20
