"""Request assembly for one model call.

Combines:
  - the system prompt (persona + stage augmentation + tool list),
  - the serialized adventure state (tiers T1-T3),
  - a sliding window over the stored conversation,
  - the current user message,
  - the stage's tool definitions.

This is the single place a Messages API request body is built.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from sage_codex.models import AdventureState, ChatMessage
from sage_codex.prompts import build_system_prompt
from sage_codex.serializer import DEFAULT_MAX_CHARACTERS, serialize_for_llm
from sage_codex.tools import get_tools_for_stage

DEFAULT_MAX_HISTORY = 40
STATE_HEADER = "--- ADVENTURE STATE ---"


class PayloadMetadata(BaseModel):
    system_prompt_length: int
    state_context_length: int
    message_count: int
    dropped_message_count: int
    tool_count: int
    tiers_included: list[str] = Field(default_factory=list)


class AssembledPayload(BaseModel):
    system: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]]
    metadata: PayloadMetadata


def _is_tool_result_message(message: ChatMessage) -> bool:
    if message.role != "user" or isinstance(message.content, str):
        return False
    return any(block.get("type") == "tool_result" for block in message.content)


def window_history(history: list[ChatMessage], max_messages: int) -> tuple[list[ChatMessage], int]:
    """Keep the latest `max_messages` messages.

    The window is widened forward so it never opens on a tool_result whose
    tool_use was cut off, or on an assistant message. Returns the kept
    messages and how many were dropped.
    """
    start = max(len(history) - max_messages, 0)
    while start < len(history) and (
        history[start].role == "assistant" or _is_tool_result_message(history[start])
    ):
        start += 1
    return history[start:], start


def assemble_payload(
    *,
    state: AdventureState,
    history: list[ChatMessage],
    user_message: str,
    stage: str | None = None,
    active_scene_id: str | None = None,
    max_history: int = DEFAULT_MAX_HISTORY,
    max_characters: int = DEFAULT_MAX_CHARACTERS,
) -> AssembledPayload:
    """Build the request body pieces for the next model call.

    `stage` defaults to the document's own stage.
    """
    stage = stage or state.stage

    active_title = None
    if active_scene_id:
        scene = state.find_scene(active_scene_id) or state.find_arc(active_scene_id)
        if scene is not None:
            active_title = scene.title

    system = build_system_prompt(
        stage,
        adventure_name=state.adventure_name,
        active_scene=active_title,
        stage_summaries=state.stage_summaries,
    )
    serialized = serialize_for_llm(
        state, stage, active_scene_id=active_scene_id, max_characters=max_characters
    )
    if serialized.text:
        system = f"{system}\n\n{STATE_HEADER}\n{serialized.text}"

    kept, dropped = window_history(history, max_history)
    messages = [m.model_dump() for m in kept]
    messages.append({"role": "user", "content": user_message})

    tools = [t.to_api() for t in get_tools_for_stage(stage)]

    return AssembledPayload(
        system=system,
        messages=messages,
        tools=tools,
        metadata=PayloadMetadata(
            system_prompt_length=len(system),
            state_context_length=serialized.character_count,
            message_count=len(messages),
            dropped_message_count=dropped,
            tool_count=len(tools),
            tiers_included=serialized.tiers_included,
        ),
    )
