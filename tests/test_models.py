"""Tests for sage_codex.models."""

import pytest
from pydantic import ValidationError

from sage_codex.models import (
    STAGES,
    AdventureState,
    ChatMessage,
    ComponentsState,
    InscribedScene,
    SceneArc,
    next_stage,
)


class TestStages:
    def test_order(self) -> None:
        assert STAGES == ("invoking", "attuning", "binding", "weaving", "inscribing", "delivering")

    def test_next_stage(self) -> None:
        assert next_stage("invoking") == "attuning"
        assert next_stage("inscribing") == "delivering"

    def test_last_stage_has_no_successor(self) -> None:
        assert next_stage("delivering") is None


class TestAdventureState:
    def test_defaults(self) -> None:
        state = AdventureState()
        assert state.stage == "invoking"
        assert state.spark is None
        assert state.components == ComponentsState()
        assert state.scene_arcs == []
        assert state.version_history == {}

    def test_rejects_unknown_stage(self) -> None:
        with pytest.raises(ValidationError):
            AdventureState(stage="plotting")

    def test_assignment_is_validated(self) -> None:
        state = AdventureState()
        state.spark = {"name": "Ember", "vision": "A burning library"}
        assert state.spark.name == "Ember"

    def test_assignment_of_plain_list_becomes_models(self) -> None:
        state = AdventureState()
        state.scene_arcs = [{"id": "a", "scene_number": 1, "title": "Start"}]
        assert isinstance(state.scene_arcs[0], SceneArc)
        assert state.scene_arcs[0].scene_type == "mixed"

    def test_find_scene_and_arc(self, state: AdventureState) -> None:
        state.inscribed_scenes.append(InscribedScene(arc_id="arc-2", scene_number=2, title="The Belfry"))
        assert state.find_arc("arc-1").title == "Low Tide"
        assert state.find_scene("arc-2").title == "The Belfry"
        assert state.find_scene("arc-1") is None
        assert state.find_arc("missing") is None

    def test_json_roundtrip(self, state: AdventureState) -> None:
        restored = AdventureState.model_validate_json(state.model_dump_json())
        assert restored == state


class TestInscribedScene:
    def test_new_scene_is_draft(self) -> None:
        scene = InscribedScene(arc_id="a", scene_number=1, title="Start")
        assert scene.status == "draft"
        assert scene.npcs == []

    def test_rejects_unknown_status(self) -> None:
        with pytest.raises(ValidationError):
            InscribedScene(arc_id="a", scene_number=1, title="Start", status="published")


class TestChatMessage:
    def test_text_content(self) -> None:
        msg = ChatMessage(role="user", content="hello")
        assert msg.model_dump() == {"role": "user", "content": "hello"}

    def test_block_content(self) -> None:
        blocks = [{"type": "tool_result", "tool_use_id": "t1", "content": "ok"}]
        msg = ChatMessage(role="user", content=blocks)
        assert msg.content == blocks

    def test_rejects_system_role(self) -> None:
        with pytest.raises(ValidationError):
            ChatMessage(role="system", content="x")
