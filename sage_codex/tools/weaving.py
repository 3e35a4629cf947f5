"""Weaving stage tools: set_all_scene_arcs, set_scene_arc, reorder_scenes.

All three rewrite the `scene_arcs` section, so each pushes the full outline
to version history first. The panel always receives the complete outline
or the single changed arc.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from sage_codex.dispatcher import ToolContext, ToolOutcome
from sage_codex.events import panel_event
from sage_codex.history import push_version
from sage_codex.models import AdventureState, SceneArc


class SetAllSceneArcsInput(BaseModel):
    scene_arcs: list[SceneArc]


class SetSceneArcInput(BaseModel):
    scene_index: int
    scene_arc: SceneArc


class ReorderScenesInput(BaseModel):
    order: list[str]


def _arc_panel_data(arc: SceneArc) -> dict[str, Any]:
    return {
        "id": arc.id,
        "scene_number": arc.scene_number,
        "title": arc.title,
        "subtitle": arc.subtitle,
        "description": arc.description,
    }


def _push_outline(state: AdventureState, description: str) -> None:
    push_version(
        document=state,
        section_path="scene_arcs",
        previous_value=state.scene_arcs,
        description=description,
    )


async def handle_set_all_scene_arcs(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = SetAllSceneArcsInput.model_validate(tool_input)
    if not data.scene_arcs:
        return ToolOutcome(result="scene_arcs must contain at least one scene", is_error=True)

    ids = [arc.id for arc in data.scene_arcs]
    if len(set(ids)) != len(ids):
        return ToolOutcome(result="scene arc ids must be unique", is_error=True)

    state = context.document
    _push_outline(state, "set_all_scene_arcs")
    state.scene_arcs = data.scene_arcs

    context.events.push(panel_event(
        "scene_arcs",
        scene_arcs=[_arc_panel_data(a) for a in state.scene_arcs],
        active_scene_index=0,
    ))
    return ToolOutcome(result={
        "status": "scene_arcs_populated",
        "count": len(state.scene_arcs),
        "scenes": [
            {"id": a.id, "scene_number": a.scene_number, "title": a.title}
            for a in state.scene_arcs
        ],
    })


async def handle_set_scene_arc(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = SetSceneArcInput.model_validate(tool_input)
    state = context.document
    count = len(state.scene_arcs)
    if data.scene_index < 0 or data.scene_index > count:
        return ToolOutcome(
            result=f"scene_index {data.scene_index} is out of range (0..{count})",
            is_error=True,
        )
    for index, arc in enumerate(state.scene_arcs):
        if arc.id == data.scene_arc.id and index != data.scene_index:
            return ToolOutcome(
                result=f"scene arc id {arc.id!r} is already used at index {index}",
                is_error=True,
            )

    _push_outline(state, f"set_scene_arc {data.scene_index}")
    arcs = list(state.scene_arcs)
    if data.scene_index == count:
        arcs.append(data.scene_arc)
    else:
        arcs[data.scene_index] = data.scene_arc
    state.scene_arcs = arcs

    context.events.push(panel_event(
        "scene_arc",
        scene_index=data.scene_index,
        scene_arc=_arc_panel_data(data.scene_arc),
        streaming=False,
    ))
    return ToolOutcome(result={
        "status": "scene_arc_updated",
        "scene_index": data.scene_index,
        "title": data.scene_arc.title,
    })


async def handle_reorder_scenes(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = ReorderScenesInput.model_validate(tool_input)
    state = context.document
    by_id = {arc.id: arc for arc in state.scene_arcs}

    if not data.order:
        return ToolOutcome(result="order must contain at least one scene id", is_error=True)
    if sorted(data.order) != sorted(by_id):
        return ToolOutcome(
            result="order must list every existing scene arc id exactly once",
            is_error=True,
        )

    _push_outline(state, "reorder_scenes")
    reordered = []
    for number, arc_id in enumerate(data.order, start=1):
        arc = by_id[arc_id].model_copy(update={"scene_number": number})
        reordered.append(arc)
    state.scene_arcs = reordered

    context.events.push(panel_event(
        "scene_arcs",
        scene_arcs=[_arc_panel_data(a) for a in state.scene_arcs],
        active_scene_index=0,
    ))
    return ToolOutcome(result={"status": "scenes_reordered", "order": data.order})
