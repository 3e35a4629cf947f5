"""Inscribing stage tools: update_scene_section, confirm_scene, warn_balance.

Scenes are created lazily from their scene arc the first time any section is
written. Each section write pushes `scene:<arc_id>:<section>` to version
history before the new value goes in.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, TypeAdapter
from pydantic_core import to_jsonable_python

from sage_codex.dispatcher import ToolContext, ToolOutcome
from sage_codex.events import panel_event
from sage_codex.history import push_version, scene_section_path
from sage_codex.models import SCENE_SECTIONS, AdventureState, InscribedScene

logger = logging.getLogger(__name__)

_section_adapters: dict[str, TypeAdapter] = {}


def _section_adapter(section: str) -> TypeAdapter:
    adapter = _section_adapters.get(section)
    if adapter is None:
        adapter = TypeAdapter(InscribedScene.model_fields[section].annotation)
        _section_adapters[section] = adapter
    return adapter


class UpdateSceneSectionInput(BaseModel):
    scene_arc_id: str
    section: str
    value: Any


class ConfirmSceneInput(BaseModel):
    scene_arc_id: str


class WarnBalanceInput(BaseModel):
    scene_arc_id: str
    message: str
    section: str | None = None


def _scene_for_arc(state: AdventureState, arc_id: str) -> InscribedScene | None:
    """Return the inscribed scene for `arc_id`, creating it from its arc if needed."""
    scene = state.find_scene(arc_id)
    if scene is not None:
        return scene
    arc = state.find_arc(arc_id)
    if arc is None:
        return None
    scene = InscribedScene(arc_id=arc.id, scene_number=arc.scene_number, title=arc.title)
    state.inscribed_scenes.append(scene)
    logger.debug("inscribing scene %s from its arc", arc_id)
    return scene


async def handle_update_scene_section(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = UpdateSceneSectionInput.model_validate(tool_input)
    if data.section not in SCENE_SECTIONS:
        return ToolOutcome(
            result=f"Unknown section {data.section!r}; expected one of: {', '.join(SCENE_SECTIONS)}",
            is_error=True,
        )
    value = _section_adapter(data.section).validate_python(data.value)

    state = context.document
    scene = _scene_for_arc(state, data.scene_arc_id)
    if scene is None:
        return ToolOutcome(result=f"No scene arc with id {data.scene_arc_id!r}", is_error=True)

    push_version(
        document=state,
        section_path=scene_section_path(scene.arc_id, data.section),
        previous_value=getattr(scene, data.section),
        description=f"update_scene_section {data.section}",
    )
    setattr(scene, data.section, value)
    if scene.status == "confirmed":
        scene.status = "revised"

    context.events.push(panel_event(
        "section",
        scene_arc_id=scene.arc_id,
        section=data.section,
        value=to_jsonable_python(value),
        streaming=False,
    ))
    return ToolOutcome(result={
        "status": "section_updated",
        "scene_arc_id": scene.arc_id,
        "section": data.section,
        "scene_status": scene.status,
    })


async def handle_confirm_scene(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = ConfirmSceneInput.model_validate(tool_input)
    scene = context.document.find_scene(data.scene_arc_id)
    if scene is None:
        return ToolOutcome(
            result=f"Scene {data.scene_arc_id!r} has not been inscribed yet",
            is_error=True,
        )

    scene.status = "confirmed"
    context.events.push(panel_event("scene_confirmed", scene_arc_id=scene.arc_id))
    return ToolOutcome(result={"status": "scene_confirmed", "scene_arc_id": scene.arc_id})


async def handle_warn_balance(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = WarnBalanceInput.model_validate(tool_input)
    if not data.message.strip():
        return ToolOutcome(result="message must not be empty", is_error=True)

    payload: dict[str, Any] = {"scene_arc_id": data.scene_arc_id, "message": data.message}
    if data.section:
        payload["section"] = data.section
    context.events.push(panel_event("balance_warning", **payload))
    return ToolOutcome(result={"status": "balance_warning_sent", "scene_arc_id": data.scene_arc_id})
