"""FastAPI API endpoints under /api.

Endpoint groups: sessions (create, read, delete, advance stage, messages),
chat (one turn, streamed back as server-sent events) and section history
(undo, version listing). Writes to one session are serialized with a
per-session asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from sage_codex.events import TurnEvent
from sage_codex.history import apply_undo, get_version_history, is_valid_section_path
from sage_codex.llm import LLMError
from sage_codex.models import AdventureState, next_stage
from sage_codex.storage import SessionNotFound, Storage
from sage_codex.turn import run_turn

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class CreateSession(BaseModel):
    adventure_name: str | None = None


class ChatBody(BaseModel):
    session_id: str
    message: str
    active_scene_id: str | None = None


class UndoBody(BaseModel):
    session_id: str
    section_path: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class SessionLocks:
    """One asyncio.Lock per session id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def discard(self, session_id: str) -> None:
        self._locks.pop(session_id, None)


def _storage(request: Request) -> Storage:
    return request.app.state.storage


def _load_state(storage: Storage, session_id: str) -> AdventureState:
    try:
        return storage.get_state(session_id)
    except SessionNotFound:
        raise HTTPException(404, "Session not found")


def format_sse(event: TurnEvent) -> str:
    data = json.dumps(to_jsonable_python(event.data, fallback=str))
    return f"event: {event.type}\ndata: {data}\n\n"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@router.get("/sessions")
async def list_sessions(request: Request):
    """List all session ids."""
    return _storage(request).list_sessions()


@router.post("/sessions")
async def create_session(body: CreateSession, request: Request):
    """Start a new adventure session in the invoking stage."""
    session_id, state = _storage(request).create_session(
        AdventureState(adventure_name=body.adventure_name)
    )
    return {"session_id": session_id, "state": state}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request):
    """Get the adventure document of a session."""
    state = _load_state(_storage(request), session_id)
    return {"session_id": session_id, "state": state}


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request):
    """Delete a session and all its data."""
    async with request.app.state.locks.get(session_id):
        try:
            _storage(request).delete_session(session_id)
        except SessionNotFound:
            raise HTTPException(404, "Session not found")
    request.app.state.locks.discard(session_id)
    return {"ok": True}


@router.get("/sessions/{session_id}/messages")
async def get_messages(session_id: str, request: Request):
    """Get the stored conversation of a session."""
    try:
        return _storage(request).get_messages(session_id)
    except SessionNotFound:
        raise HTTPException(404, "Session not found")


@router.post("/sessions/{session_id}/advance")
async def advance_stage(session_id: str, request: Request):
    """Move the session to the next stage."""
    storage = _storage(request)
    async with request.app.state.locks.get(session_id):
        state = _load_state(storage, session_id)
        following = next_stage(state.stage)
        if following is None:
            raise HTTPException(400, f"Stage {state.stage!r} is the last stage")
        state.stage = following
        storage.save_state(session_id, state)
    logger.info("session %s: advanced to %s", session_id, following)
    return {"session_id": session_id, "stage": following, "state": state}


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

@router.post("/chat")
async def chat(body: ChatBody, request: Request):
    """Run one turn and stream its events as server-sent events."""
    storage = _storage(request)
    if not storage.exists(body.session_id):
        raise HTTPException(404, "Session not found")

    app_state = request.app.state
    queue: asyncio.Queue[TurnEvent | None] = asyncio.Queue()

    async def _run() -> None:
        try:
            async with app_state.locks.get(body.session_id):
                await run_turn(
                    storage=storage,
                    session_id=body.session_id,
                    message=body.message,
                    llm=app_state.llm,
                    active_scene_id=body.active_scene_id,
                    max_tool_rounds=app_state.settings.max_tool_rounds,
                    max_characters=app_state.settings.max_context_chars,
                    on_event=queue.put_nowait,
                )
        except LLMError as e:
            logger.warning("session %s: LLM failure: %s", body.session_id, e)
            queue.put_nowait(TurnEvent(type="error", data={"message": str(e)}))
        except Exception as e:
            logger.exception("session %s: turn failed", body.session_id)
            queue.put_nowait(TurnEvent(type="error", data={"message": f"Turn failed: {e}"}))
        finally:
            queue.put_nowait(None)

    async def _stream() -> AsyncIterator[str]:
        task = asyncio.create_task(_run())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield format_sse(event)
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(_stream(), media_type="text/event-stream")


# ---------------------------------------------------------------------------
# Section history
# ---------------------------------------------------------------------------

@router.post("/section/undo")
async def undo_section(body: UndoBody, request: Request):
    """Restore the previous version of one section."""
    if not is_valid_section_path(body.section_path):
        raise HTTPException(400, f"Invalid section path: {body.section_path!r}")

    storage = _storage(request)
    async with request.app.state.locks.get(body.session_id):
        state = _load_state(storage, body.session_id)
        result = apply_undo(state, body.section_path)
        if not result.success:
            raise HTTPException(400, result.error)
        storage.save_state(body.session_id, state)

    return {
        "section_path": body.section_path,
        "restored_value": result.restored_value,
        "remaining_entries": result.remaining_entries,
        "state": state,
    }


@router.get("/sessions/{session_id}/history/{section_path}")
async def section_history(session_id: str, section_path: str, request: Request):
    """List the stored versions of one section, oldest first."""
    if not is_valid_section_path(section_path):
        raise HTTPException(400, f"Invalid section path: {section_path!r}")
    state = _load_state(_storage(request), session_id)
    entries = get_version_history(state, section_path)
    return {"section_path": section_path, "count": len(entries), "entries": entries}
