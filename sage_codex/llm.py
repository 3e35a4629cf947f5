"""LLM client: streaming calls to the Anthropic Messages API.

The turn runner injects an LLM object matching the protocol:

    def stream(self, request: dict) -> AsyncIterator[dict]: ...

`request` carries `system`, `messages` and `tools`; the iterator yields raw
stream events (`message_start`, `content_block_delta`, ...) as dicts for the
stream parser.

Two implementations are provided:

    AnthropicLLM  the real HTTP client, reading server-sent events from
                  POST /v1/messages with stream=true.
    ScriptedLLM   replays canned event lists, one list per call. Useful for
                  running the turn loop without a network or a key.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4096
API_VERSION = "2023-06-01"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class LLM(Protocol):
    def stream(self, request: dict[str, Any]) -> AsyncIterator[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Server-sent events
# ---------------------------------------------------------------------------

async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[dict[str, Any]]:
    """Yield the JSON payload of each server-sent event.

    `event:` lines are ignored since every payload carries its own `type`.
    """
    data_lines: list[str] = []
    async for line in lines:
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
            continue
        if line.strip() or not data_lines:
            continue
        payload = "\n".join(data_lines)
        data_lines = []
        try:
            yield json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("skipping non-JSON SSE payload %r", payload)
    if data_lines:
        try:
            yield json.loads("\n".join(data_lines))
        except json.JSONDecodeError:
            logger.debug("skipping trailing non-JSON SSE payload")


# ---------------------------------------------------------------------------
# AnthropicLLM
# ---------------------------------------------------------------------------

class AnthropicLLM:
    """Async streaming client for the Messages API.

    Args:
        api_key:    Sent as the x-api-key header.
        base_url:   API root, e.g. "https://api.anthropic.com".
        model:      Model identifier for every request.
        max_tokens: Output token cap per request.
        timeout:    HTTP timeout in seconds. Defaults to 120.
        transport:  Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": API_VERSION,
        }

    def _build_body(self, request: dict[str, Any]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": request["messages"],
            "stream": True,
        }
        if request.get("system"):
            body["system"] = request["system"]
        if request.get("tools"):
            body["tools"] = request["tools"]
        return body

    async def stream(self, request: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        url = f"{self._base_url}/v1/messages"
        body = self._build_body(request)
        logger.debug(
            "llm stream url=%s messages=%d tools=%d",
            url, len(body["messages"]), len(body.get("tools", [])),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for event in iter_sse_data(resp.aiter_lines()):
                        if event.get("type") == "error":
                            error = event.get("error") or {}
                            raise LLMError(
                                f"LLM backend stream error: {error.get('type', 'unknown')}: "
                                f"{error.get('message', '')}"
                            )
                        yield event
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e


# ---------------------------------------------------------------------------
# ScriptedLLM
# ---------------------------------------------------------------------------

class ScriptedLLM:
    """Replays one canned event list per stream() call. No network calls.

    Every request is recorded in `requests` so callers can inspect what the
    turn loop sent. Running out of scripts raises LLMError.
    """

    def __init__(self, scripts: list[list[dict[str, Any]]]) -> None:
        self._scripts = list(scripts)
        self.requests: list[dict[str, Any]] = []

    async def stream(self, request: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        self.requests.append(request)
        if not self._scripts:
            raise LLMError("ScriptedLLM has no responses left")
        for event in self._scripts.pop(0):
            yield event


def scripted_response(
    text: str = "",
    tool_calls: list[tuple[str, dict[str, Any]]] | None = None,
    message_id: str = "msg_scripted",
    model: str = "scripted",
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> list[dict[str, Any]]:
    """Build the stream events of one response for ScriptedLLM.

    The text block (if any) comes first, then one tool_use block per
    `(name, input)` pair with ids `toolu_<message_id>_<index>`.
    """
    events: list[dict[str, Any]] = [{
        "type": "message_start",
        "message": {"id": message_id, "model": model, "usage": {"input_tokens": input_tokens}},
    }]
    index = 0
    if text:
        events += [
            {"type": "content_block_start", "index": index, "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": index, "delta": {"type": "text_delta", "text": text}},
            {"type": "content_block_stop", "index": index},
        ]
        index += 1
    for name, tool_input in tool_calls or []:
        events += [
            {
                "type": "content_block_start",
                "index": index,
                "content_block": {
                    "type": "tool_use",
                    "id": f"toolu_{message_id}_{index}",
                    "name": name,
                    "input": {},
                },
            },
            {
                "type": "content_block_delta",
                "index": index,
                "delta": {"type": "input_json_delta", "partial_json": json.dumps(tool_input)},
            },
            {"type": "content_block_stop", "index": index},
        ]
        index += 1
    events += [
        {
            "type": "message_delta",
            "delta": {"stop_reason": "tool_use" if tool_calls else "end_turn"},
            "usage": {"output_tokens": output_tokens},
        },
        {"type": "message_stop"},
    ]
    return events


# ---------------------------------------------------------------------------
# LLMError
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
