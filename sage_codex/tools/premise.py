"""Premise tools: the spark (invoking), components (attuning) and frame (binding).

Each handler validates its input, pushes the current section value to
version history, then overwrites it.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, TypeAdapter

from sage_codex.dispatcher import ToolContext, ToolOutcome
from sage_codex.events import panel_event
from sage_codex.history import push_version
from sage_codex.models import COMPONENT_IDS, AdventureSpark, BoundFrame, ComponentsState

logger = logging.getLogger(__name__)


class SetComponentInput(BaseModel):
    component_id: str
    value: Any
    confirmed: bool = False


async def handle_set_spark(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    spark = AdventureSpark.model_validate(tool_input)
    state = context.document

    push_version(
        document=state,
        section_path="spark",
        previous_value=state.spark,
        description="set_spark",
    )
    state.spark = spark

    context.events.push(panel_event("spark", name=spark.name, vision=spark.vision))
    return ToolOutcome(result={"status": "spark_set", "name": spark.name})


async def handle_set_component(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    data = SetComponentInput.model_validate(tool_input)
    if data.component_id not in COMPONENT_IDS:
        return ToolOutcome(
            result=f"Unknown component {data.component_id!r}; expected one of: {', '.join(COMPONENT_IDS)}",
            is_error=True,
        )

    # Validate against the field type before anything is pushed.
    annotation = ComponentsState.model_fields[data.component_id].annotation
    value = TypeAdapter(annotation).validate_python(data.value)

    state = context.document
    push_version(
        document=state,
        section_path="components",
        previous_value=state.components,
        description=f"set_component {data.component_id}",
    )
    setattr(state.components, data.component_id, value)

    confirmed = state.components.confirmed_components
    if data.confirmed and data.component_id not in confirmed:
        confirmed.append(data.component_id)
    elif not data.confirmed and data.component_id in confirmed:
        confirmed.remove(data.component_id)

    context.events.push(panel_event(
        "component",
        component_id=data.component_id,
        value=value,
        confirmed=data.confirmed,
    ))
    return ToolOutcome(result={
        "status": "component_set",
        "component_id": data.component_id,
        "confirmed_count": len(confirmed),
    })


async def handle_select_frame(tool_input: dict[str, Any], context: ToolContext) -> ToolOutcome:
    frame = BoundFrame.model_validate(tool_input)
    state = context.document

    push_version(
        document=state,
        section_path="frame",
        previous_value=state.frame,
        description=f"select_frame {frame.id}",
    )
    state.frame = frame
    logger.debug("frame %s bound (custom=%s)", frame.id, frame.is_custom)

    context.events.push(panel_event("frame", frame=frame.model_dump()))
    return ToolOutcome(result={"status": "frame_selected", "id": frame.id, "name": frame.name})
