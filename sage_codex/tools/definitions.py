"""Tool definitions for each stage of the Unfolding.

Universal tools are offered in every stage; stage tools only in their own
stage. Definitions follow the Messages API tool schema and are sent with
every request by the context assembler.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from sage_codex.models import COMPONENT_IDS, SCENE_SECTIONS


class ToolDefinition(BaseModel):
    name: str
    description: str
    input_schema: dict[str, Any]

    def to_api(self) -> dict[str, Any]:
        return self.model_dump()


_SCENE_ARC_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "scene_number": {"type": "number"},
        "title": {"type": "string"},
        "subtitle": {"type": "string"},
        "description": {"type": "string"},
        "key_elements": {"type": "array", "items": {"type": "string"}},
        "location": {"type": "string"},
        "scene_type": {
            "type": "string",
            "enum": ["exploration", "social", "combat", "puzzle", "mixed"],
        },
    },
    "required": ["id", "scene_number", "title", "description"],
}


# ---------------------------------------------------------------------------
# Universal
# ---------------------------------------------------------------------------

SIGNAL_READY = ToolDefinition(
    name="signal_ready",
    description=(
        "Signal that the current stage is complete and the adventure is ready "
        "to advance. Only call this when the user has confirmed all required "
        "work for the current stage."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "stage": {
                "type": "string",
                "description": "The stage being completed",
                "enum": ["invoking", "attuning", "binding", "weaving", "inscribing"],
            },
            "summary": {
                "type": "string",
                "description": "Brief summary of what was settled in this stage",
            },
        },
        "required": ["stage", "summary"],
    },
)

SUGGEST_ADVENTURE_NAME = ToolDefinition(
    name="suggest_adventure_name",
    description=(
        "Suggest or update the adventure name. Can be called in any stage "
        "once a fitting name emerges."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "The suggested name"},
            "reason": {"type": "string", "description": "Why this name fits"},
        },
        "required": ["name"],
    },
)

UNIVERSAL_TOOLS = [SIGNAL_READY, SUGGEST_ADVENTURE_NAME]


# ---------------------------------------------------------------------------
# Invoking / Attuning / Binding
# ---------------------------------------------------------------------------

SET_SPARK = ToolDefinition(
    name="set_spark",
    description=(
        "Capture the user's initial adventure vision (the spark) once they "
        "have shared enough about the adventure they want to create."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "Working title"},
            "vision": {"type": "string", "description": "Distilled vision summary"},
        },
        "required": ["name", "vision"],
    },
)

SET_COMPONENT = ToolDefinition(
    name="set_component",
    description=(
        "Set one adventure component. Components: "
        + ", ".join(COMPONENT_IDS)
        + ". Call this each time the user settles a component."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "component_id": {"type": "string", "enum": list(COMPONENT_IDS)},
            "value": {"description": "The selected value (type depends on component)"},
            "confirmed": {"type": "boolean", "description": "Whether the user confirmed it"},
        },
        "required": ["component_id", "value"],
    },
)

SELECT_FRAME = ToolDefinition(
    name="select_frame",
    description=(
        "Bind the adventure to a thematic frame, either an existing one or a "
        "custom frame written with the user."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "name": {"type": "string"},
            "description": {"type": "string"},
            "themes": {"type": "array", "items": {"type": "string"}},
            "typical_adversaries": {"type": "array", "items": {"type": "string"}},
            "lore": {"type": "string"},
            "is_custom": {"type": "boolean"},
        },
        "required": ["id", "name"],
    },
)


# ---------------------------------------------------------------------------
# Weaving
# ---------------------------------------------------------------------------

SET_ALL_SCENE_ARCS = ToolDefinition(
    name="set_all_scene_arcs",
    description=(
        "Populate every scene arc at once when entering Weaving. Replaces the "
        "whole outline."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "scene_arcs": {"type": "array", "items": _SCENE_ARC_SCHEMA},
        },
        "required": ["scene_arcs"],
    },
)

SET_SCENE_ARC = ToolDefinition(
    name="set_scene_arc",
    description="Replace a single scene arc during revision.",
    input_schema={
        "type": "object",
        "properties": {
            "scene_index": {"type": "number", "description": "Zero-based index of the scene"},
            "scene_arc": _SCENE_ARC_SCHEMA,
        },
        "required": ["scene_index", "scene_arc"],
    },
)

REORDER_SCENES = ToolDefinition(
    name="reorder_scenes",
    description="Reorder the outline. Scene numbers follow the new order.",
    input_schema={
        "type": "object",
        "properties": {
            "order": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Every scene arc id, in the desired order",
            },
        },
        "required": ["order"],
    },
)


# ---------------------------------------------------------------------------
# Inscribing
# ---------------------------------------------------------------------------

UPDATE_SCENE_SECTION = ToolDefinition(
    name="update_scene_section",
    description=(
        "Write one section of an inscribed scene. Sections: "
        + ", ".join(SCENE_SECTIONS)
        + "."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "scene_arc_id": {"type": "string"},
            "section": {"type": "string", "enum": list(SCENE_SECTIONS)},
            "value": {"description": "New section content (shape depends on section)"},
        },
        "required": ["scene_arc_id", "section", "value"],
    },
)

CONFIRM_SCENE = ToolDefinition(
    name="confirm_scene",
    description="Mark an inscribed scene as confirmed after the user approves it.",
    input_schema={
        "type": "object",
        "properties": {"scene_arc_id": {"type": "string"}},
        "required": ["scene_arc_id"],
    },
)

WARN_BALANCE = ToolDefinition(
    name="warn_balance",
    description="Flag a game balance concern for a scene.",
    input_schema={
        "type": "object",
        "properties": {
            "scene_arc_id": {"type": "string"},
            "message": {"type": "string"},
            "section": {"type": "string", "enum": list(SCENE_SECTIONS)},
        },
        "required": ["scene_arc_id", "message"],
    },
)


# ---------------------------------------------------------------------------
# Delivering
# ---------------------------------------------------------------------------

FINALIZE_ADVENTURE = ToolDefinition(
    name="finalize_adventure",
    description=(
        "Mark the adventure complete and ready for export. Every scene must "
        "be confirmed first."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "summary": {"type": "string"},
        },
        "required": ["title", "summary"],
    },
)


STAGE_TOOLS: dict[str, list[ToolDefinition]] = {
    "invoking": [SET_SPARK],
    "attuning": [SET_COMPONENT],
    "binding": [SELECT_FRAME],
    "weaving": [SET_ALL_SCENE_ARCS, SET_SCENE_ARC, REORDER_SCENES],
    "inscribing": [UPDATE_SCENE_SECTION, CONFIRM_SCENE, WARN_BALANCE],
    "delivering": [FINALIZE_ADVENTURE],
}


def get_tools_for_stage(stage: str) -> list[ToolDefinition]:
    return [*UNIVERSAL_TOOLS, *STAGE_TOOLS.get(stage, [])]


def get_tool_names_for_stage(stage: str) -> list[str]:
    return [t.name for t in get_tools_for_stage(stage)]
