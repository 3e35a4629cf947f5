"""Tools offered in every stage: signal_ready, suggest_adventure_name."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from sage_codex.dispatcher import ToolContext, ToolOutcome
from sage_codex.events import TurnEvent, panel_event
from sage_codex.models import Stage


class SignalReadyInput(BaseModel):
    stage: Stage
    summary: str


class SuggestNameInput(BaseModel):
    name: str
    reason: str | None = None


async def handle_signal_ready(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    """Mark the current stage as ready to advance.

    The stage itself is advanced by the client once the user agrees, so this
    only records the summary and notifies the panel.
    """
    data = SignalReadyInput.model_validate(tool_input)
    state = context.document
    if data.stage != state.stage:
        return ToolOutcome(
            result=f"signal_ready was called for {data.stage!r} but the current stage is {state.stage!r}",
            is_error=True,
        )

    state.stage_summaries[data.stage] = data.summary
    context.events.push(TurnEvent(type="ui:ready", data={"stage": data.stage, "summary": data.summary}))
    return ToolOutcome(result={"status": "ready", "stage": data.stage})


async def handle_suggest_adventure_name(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = SuggestNameInput.model_validate(tool_input)
    if not data.name.strip():
        return ToolOutcome(result="name must not be empty", is_error=True)

    context.document.adventure_name = data.name
    context.events.push(panel_event("name", name=data.name, reason=data.reason))
    return ToolOutcome(result={"status": "name_suggested", "name": data.name})
