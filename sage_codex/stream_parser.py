"""Stream parser for Messages API streaming responses.

Consumes the raw event stream of one model call exactly once and returns a
ParsedStreamResult:

  - turn events for the client (`turn:start`, one `turn:delta` per text
    fragment, `turn:end` last),
  - every tool_use block collected with its input parsed from the
    accumulated partial JSON,
  - token usage, stop reason, model, and the full text of all text blocks.

Parsing is tolerant: unknown tags, deltas for unregistered block indices and
malformed tool JSON never raise. The parser has no timeout of its own;
callers bound the stream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, Callable
from typing import Any

from pydantic import BaseModel, Field

from sage_codex.events import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageDelta,
    MessageStart,
    TurnEvent,
    decode_stream_event,
    turn_delta,
    turn_end,
    turn_start,
)

logger = logging.getLogger(__name__)


class CollectedToolUse(BaseModel):
    """A finished tool_use block, ready for dispatch."""

    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ParsedStreamResult(BaseModel):
    message_id: str = ""
    model: str = ""
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    full_text: str = ""
    events: list[TurnEvent] = Field(default_factory=list)
    tool_use_blocks: list[CollectedToolUse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Per-parse block state (never outlives one parse_stream call)
# ---------------------------------------------------------------------------

class _TextBlock:
    __slots__ = ("text",)

    def __init__(self) -> None:
        self.text = ""


class _ToolUseBlock:
    __slots__ = ("id", "name", "partial_json")

    def __init__(self, id: str, name: str) -> None:
        self.id = id
        self.name = name
        self.partial_json = ""


def parse_tool_input(partial_json: str) -> dict[str, Any]:
    """Parse accumulated tool JSON, falling back to `{"_raw": ...}`.

    An empty buffer means the tool was called without arguments.
    """
    if not partial_json.strip():
        return {}
    try:
        parsed = json.loads(partial_json)
    except json.JSONDecodeError:
        logger.debug("tool input is not valid JSON: %r", partial_json)
        return {"_raw": partial_json}
    if not isinstance(parsed, dict):
        return {"_raw": partial_json}
    return parsed


async def parse_stream(
    stream: AsyncIterable[Any],
    on_event: Callable[[TurnEvent], None] | None = None,
) -> ParsedStreamResult:
    """Parse one streamed model response.

    `on_event`, if given, is called with each turn event as soon as it is
    produced so that a transport can forward deltas live. The returned
    result is the same with or without it.
    """
    result = ParsedStreamResult()
    blocks: dict[int, _TextBlock | _ToolUseBlock] = {}

    def _emit(event: TurnEvent) -> None:
        result.events.append(event)
        if on_event is not None:
            on_event(event)

    async for raw in stream:
        event = decode_stream_event(raw)
        if event is None:
            continue

        if isinstance(event, MessageStart):
            result.message_id = event.message.id
            result.model = event.message.model
            result.input_tokens = event.message.usage.input_tokens
            _emit(turn_start(result.message_id))

        elif isinstance(event, ContentBlockStart):
            kind = event.content_block.type
            if kind == "text":
                blocks[event.index] = _TextBlock()
            elif kind == "tool_use":
                blocks[event.index] = _ToolUseBlock(
                    event.content_block.id, event.content_block.name
                )

        elif isinstance(event, ContentBlockDelta):
            block = blocks.get(event.index)
            if block is None:
                continue
            if event.delta.type == "text_delta" and isinstance(block, _TextBlock):
                block.text += event.delta.text
                _emit(turn_delta(result.message_id, event.delta.text))
            elif event.delta.type == "input_json_delta" and isinstance(block, _ToolUseBlock):
                block.partial_json += event.delta.partial_json

        elif isinstance(event, ContentBlockStop):
            block = blocks.get(event.index)
            if isinstance(block, _ToolUseBlock):
                result.tool_use_blocks.append(CollectedToolUse(
                    id=block.id,
                    name=block.name,
                    input=parse_tool_input(block.partial_json),
                ))

        elif isinstance(event, MessageDelta):
            result.stop_reason = event.delta.stop_reason
            if event.usage is not None and event.usage.output_tokens is not None:
                result.output_tokens = event.usage.output_tokens

        # MessageStop is advisory; iteration ends with the stream itself.

    result.full_text = "".join(
        block.text
        for _, block in sorted(blocks.items())
        if isinstance(block, _TextBlock)
    )
    _emit(turn_end(result.message_id, result.input_tokens, result.output_tokens))
    return result
