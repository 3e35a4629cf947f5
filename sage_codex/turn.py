"""Turn runner: handles one storyteller message end-to-end.

Turn flow:
  1. Load the document and conversation for the session.
  2. Register the tools of the document's current stage.
  3. Assemble the request (system prompt + state, windowed history, tools).
  4. Stream the model response through the stream parser.
  5. If the model asked for tools: dispatch them, forward tool and panel
     events, append the assistant tool_use message and the user tool_result
     message, and call the model again (at most max_tool_rounds calls).
  6. Persist the document, the new messages and token usage.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from sage_codex.context import assemble_payload
from sage_codex.dispatcher import EventBuffer, ToolContext, ToolRegistry, dispatch_tool_calls
from sage_codex.events import TurnEvent
from sage_codex.llm import LLM
from sage_codex.models import AdventureState, ChatMessage, UsageRecord
from sage_codex.serializer import DEFAULT_MAX_CHARACTERS
from sage_codex.storage import Storage
from sage_codex.stream_parser import ParsedStreamResult, parse_stream
from sage_codex.tools import register_stage_tools

logger = logging.getLogger(__name__)


class TurnResult(BaseModel):
    events: list[TurnEvent] = Field(default_factory=list)
    text: str = ""
    state: AdventureState
    rounds: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str | None = None


def _assistant_content(parsed: ParsedStreamResult) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if parsed.full_text:
        blocks.append({"type": "text", "text": parsed.full_text})
    for call in parsed.tool_use_blocks:
        blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.input})
    return blocks


async def run_turn(
    *,
    storage: Storage,
    session_id: str,
    message: str,
    llm: LLM,
    registry: ToolRegistry | None = None,
    active_scene_id: str | None = None,
    max_tool_rounds: int = 5,
    max_characters: int = DEFAULT_MAX_CHARACTERS,
    on_event: Callable[[TurnEvent], None] | None = None,
) -> TurnResult:
    """Run one turn and return every event it produced, in order."""

    state = storage.get_state(session_id)
    history = storage.get_messages(session_id)
    if registry is None:
        registry = ToolRegistry()
    register_stage_tools(state.stage, registry)

    events: list[TurnEvent] = []
    texts: list[str] = []
    usage: list[UsageRecord] = []
    new_messages = [ChatMessage(role="user", content=message)]
    stop_reason: str | None = None
    rounds = 0

    def _emit(event: TurnEvent) -> None:
        events.append(event)
        if on_event is not None:
            on_event(event)

    while rounds < max_tool_rounds:
        rounds += 1

        # Rebuilt each round so the state section reflects tool mutations.
        payload = assemble_payload(
            state=state,
            history=history,
            user_message=message,
            active_scene_id=active_scene_id,
            max_characters=max_characters,
        )
        request = {
            "system": payload.system,
            "messages": payload.messages + [m.model_dump() for m in new_messages[1:]],
            "tools": payload.tools,
        }

        parsed = await parse_stream(llm.stream(request), on_event=_emit)
        stop_reason = parsed.stop_reason
        usage.append(UsageRecord(
            message_id=parsed.message_id,
            model=parsed.model,
            input_tokens=parsed.input_tokens,
            output_tokens=parsed.output_tokens,
            timestamp=datetime.now(timezone.utc).isoformat(),
        ))
        if parsed.full_text:
            texts.append(parsed.full_text)

        if not parsed.tool_use_blocks:
            if parsed.full_text:
                new_messages.append(ChatMessage(role="assistant", content=parsed.full_text))
            break

        context = ToolContext(session_id=session_id, document=state, events=EventBuffer())
        dispatched = await dispatch_tool_calls(parsed.tool_use_blocks, context, registry)
        for event in dispatched.events:
            _emit(event)
        for event in context.events.drain():
            _emit(event)

        new_messages.append(ChatMessage(role="assistant", content=_assistant_content(parsed)))
        new_messages.append(ChatMessage(
            role="user",
            content=[block.to_api() for block in dispatched.tool_results],
        ))

        if parsed.stop_reason != "tool_use":
            break
    else:
        logger.warning(
            "session %s: stopped after %d tool rounds", session_id, max_tool_rounds
        )

    storage.save_state(session_id, state)
    storage.append_messages(session_id, new_messages)
    storage.append_usage(session_id, usage)

    result = TurnResult(
        events=events,
        text="\n\n".join(texts),
        state=state,
        rounds=rounds,
        input_tokens=sum(u.input_tokens for u in usage),
        output_tokens=sum(u.output_tokens for u in usage),
        stop_reason=stop_reason,
    )
    logger.info(
        "session %s: turn done stage=%s rounds=%d tokens in=%d out=%d",
        session_id, state.stage, rounds, result.input_tokens, result.output_tokens,
    )
    return result
