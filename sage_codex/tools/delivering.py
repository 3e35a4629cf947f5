"""Delivering stage tool: finalize_adventure."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from sage_codex.dispatcher import ToolContext, ToolOutcome
from sage_codex.events import panel_event


class FinalizeAdventureInput(BaseModel):
    title: str
    summary: str


async def handle_finalize_adventure(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = FinalizeAdventureInput.model_validate(tool_input)
    state = context.document

    pending = []
    for arc in state.scene_arcs:
        scene = state.find_scene(arc.id)
        if scene is None or scene.status != "confirmed":
            pending.append(arc.title)
    if not state.scene_arcs or pending:
        return ToolOutcome(
            result={
                "status": "not_ready",
                "unconfirmed_scenes": pending,
                "message": "Every scene must be inscribed and confirmed before finalizing",
            },
            is_error=True,
        )

    state.adventure_name = data.title
    state.stage_summaries["delivering"] = data.summary
    context.events.push(panel_event("finalized", title=data.title, summary=data.summary))
    return ToolOutcome(result={"status": "finalized", "title": data.title})
