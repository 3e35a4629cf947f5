"""Tool call dispatcher.

Runs the tool_use blocks collected by the stream parser against registered
handlers and builds Messages API `tool_result` blocks for the next request.

Calls in a batch run sequentially, in order, so version-history pushes and
document mutations from different calls never interleave. Each call is
isolated: a missing handler or a handler that raises produces an error
result for that call only.

Handlers share a ToolContext for the batch. Panel notifications go into
`context.events`, a per-dispatch buffer that the caller drains after the
batch; nothing is queued at module level.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import to_jsonable_python

from sage_codex.events import TurnEvent
from sage_codex.models import AdventureState
from sage_codex.stream_parser import CollectedToolUse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

class EventBuffer:
    """Pending client notifications queued by tool handlers."""

    def __init__(self) -> None:
        self._events: list[TurnEvent] = []

    def push(self, event: TurnEvent) -> None:
        self._events.append(event)

    def drain(self) -> list[TurnEvent]:
        """Return everything queued so far and empty the buffer."""
        events, self._events = self._events, []
        return events

    def __len__(self) -> int:
        return len(self._events)


class ToolContext(BaseModel):
    """Shared state for every handler in one dispatch batch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    document: AdventureState
    events: EventBuffer = Field(default_factory=EventBuffer)


class ToolOutcome(BaseModel):
    result: Any = None
    is_error: bool = False


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[ToolOutcome]]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ToolRegistry:
    """Maps tool names to handlers. Registering a name again replaces it."""

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, name: str, handler: ToolHandler) -> None:
        self._handlers[name] = handler

    def clear(self) -> None:
        self._handlers.clear()

    def get(self, name: str) -> ToolHandler | None:
        return self._handlers.get(name)

    def names(self) -> list[str]:
        return list(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers


_default_registry = ToolRegistry()


def default_registry() -> ToolRegistry:
    return _default_registry


def register_tool_handler(name: str, handler: ToolHandler) -> None:
    _default_registry.register(name, handler)


def clear_tool_handlers() -> None:
    _default_registry.clear()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class ToolResultBlock(BaseModel):
    """A tool_result content block. `is_error` is only present on failures."""

    type: str = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool | None = None

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class DispatchResult(BaseModel):
    events: list[TurnEvent] = Field(default_factory=list)
    tool_results: list[ToolResultBlock] = Field(default_factory=list)


def _serialize_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(to_jsonable_python(result, fallback=str))


async def _execute(call: CollectedToolUse, context: ToolContext, registry: ToolRegistry) -> ToolOutcome:
    handler = registry.get(call.name)
    if handler is None:
        logger.warning("unknown tool %r requested (id=%s)", call.name, call.id)
        return ToolOutcome(
            result=f'Unknown tool: "{call.name}". This tool is not available in the current stage.',
            is_error=True,
        )
    try:
        return await handler(call.input, context)
    except Exception as e:
        logger.warning("tool %r failed: %s", call.name, e)
        return ToolOutcome(result=f'Tool "{call.name}" failed: {e}', is_error=True)


async def dispatch_tool_calls(
    calls: list[CollectedToolUse],
    context: ToolContext,
    registry: ToolRegistry | None = None,
) -> DispatchResult:
    """Execute every call in order and return one tool_result per call."""
    if registry is None:
        registry = _default_registry
    dispatched = DispatchResult()

    for call in calls:
        dispatched.events.append(TurnEvent(
            type="tool:start",
            data={"tool_use_id": call.id, "tool_name": call.name, "input": call.input},
        ))

        outcome = await _execute(call, context, registry)

        dispatched.events.append(TurnEvent(
            type="tool:end",
            data={
                "tool_use_id": call.id,
                "tool_name": call.name,
                "result": to_jsonable_python(outcome.result, fallback=str),
                "is_error": outcome.is_error,
            },
        ))
        dispatched.tool_results.append(ToolResultBlock(
            tool_use_id=call.id,
            content=_serialize_result(outcome.result),
            is_error=True if outcome.is_error else None,
        ))

    return dispatched
