"""Turn events (outbound) and Messages API stream events (inbound).

Outbound: every notification delivered to the client is a TurnEvent
`{type, data}`. The stream parser emits `turn:start`, `turn:delta` and
`turn:end`; the dispatcher emits `tool:start` / `tool:end`; tool handlers
queue `panel:*` and `ui:ready` events.

Inbound: the Messages API streams tagged objects. They are decoded once,
here, into a closed set of pydantic models so the parser works on typed
variants rather than raw dicts:

    message_start        {message: {id, model, usage: {input_tokens}}}
    content_block_start  {index, content_block: {type, id?, name?}}
    content_block_delta  {index, delta: {type: text_delta, text}
                                      | {type: input_json_delta, partial_json}}
    content_block_stop   {index}
    message_delta        {delta: {stop_reason}, usage?: {output_tokens}}
    message_stop         {}

Anything else (ping, unknown future tags) decodes to None.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

class TurnEvent(BaseModel):
    """A single client notification. Immutable once emitted."""

    model_config = ConfigDict(frozen=True)

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


def turn_start(message_id: str) -> TurnEvent:
    return TurnEvent(type="turn:start", data={"message_id": message_id})


def turn_delta(message_id: str, content: str) -> TurnEvent:
    return TurnEvent(type="turn:delta", data={"message_id": message_id, "content": content})


def turn_end(message_id: str, input_tokens: int, output_tokens: int) -> TurnEvent:
    return TurnEvent(
        type="turn:end",
        data={
            "message_id": message_id,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
        },
    )


def panel_event(name: str, /, **data: Any) -> TurnEvent:
    """Build a `panel:<name>` event."""
    return TurnEvent(type=f"panel:{name}", data=data)


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

class _Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int | None = None


class _MessageInfo(BaseModel):
    id: str = ""
    model: str = ""
    usage: _Usage = Field(default_factory=_Usage)


class MessageStart(BaseModel):
    type: Literal["message_start"]
    message: _MessageInfo = Field(default_factory=_MessageInfo)


class ContentBlock(BaseModel):
    """The block header; `id`/`name` are only set for tool_use blocks."""

    type: str
    id: str = ""
    name: str = ""


class ContentBlockStart(BaseModel):
    type: Literal["content_block_start"]
    index: int
    content_block: ContentBlock


class BlockDelta(BaseModel):
    type: str
    text: str = ""
    partial_json: str = ""


class ContentBlockDelta(BaseModel):
    type: Literal["content_block_delta"]
    index: int
    delta: BlockDelta


class ContentBlockStop(BaseModel):
    type: Literal["content_block_stop"]
    index: int


class _MessageDeltaBody(BaseModel):
    stop_reason: str | None = None


class MessageDelta(BaseModel):
    type: Literal["message_delta"]
    delta: _MessageDeltaBody = Field(default_factory=_MessageDeltaBody)
    usage: _Usage | None = None


class MessageStop(BaseModel):
    type: Literal["message_stop"]


StreamEvent = Annotated[
    Union[
        MessageStart,
        ContentBlockStart,
        ContentBlockDelta,
        ContentBlockStop,
        MessageDelta,
        MessageStop,
    ],
    Field(discriminator="type"),
]

_KNOWN_TAGS = frozenset({
    "message_start",
    "content_block_start",
    "content_block_delta",
    "content_block_stop",
    "message_delta",
    "message_stop",
})

_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def _as_mapping(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    dump = getattr(raw, "model_dump", None)
    if callable(dump):
        return dump()
    return None


def decode_stream_event(raw: Any) -> StreamEvent | None:
    """Decode one raw stream event, or return None if it should be ignored.

    Accepts plain dicts (decoded SSE payloads) and SDK event objects that
    expose `model_dump()`. Unknown tags and structurally broken events are
    absorbed here and never reach the parser.
    """
    data = _as_mapping(raw)
    if data is None:
        logger.debug("ignoring non-mapping stream event %r", raw)
        return None
    tag = data.get("type")
    if not isinstance(tag, str) or tag not in _KNOWN_TAGS:
        return None
    try:
        return _adapter.validate_python(data)
    except ValidationError as e:
        logger.debug("ignoring malformed %s event: %s", tag, e)
        return None
