"""JSON file storage.

Sessions are stored in flat JSON files under a configurable base directory.
Reads and writes go through plain helper methods that load and dump JSON.

Directory layout:

    {base}/
      sessions/
        {id}.json             <- AdventureState document
        {id}/
          messages.json       <- append-only conversation (ChatMessage)
          usage.json          <- append-only token usage (UsageRecord)

Storage does no locking of its own; callers serialize writes per session.
"""

from __future__ import annotations

import json
import re
import shutil
import uuid
from pathlib import Path
from typing import Any

from sage_codex.models import AdventureState, ChatMessage, UsageRecord


SESSION_ID_PATTERN = re.compile(r"[0-9a-f]{32}")


class SessionNotFound(KeyError):
    """Raised when a session id has no stored document."""


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._root = base_path / "sessions"
        self._root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _state_file(self, session_id: str) -> Path:
        return self._root / f"{session_id}.json"

    def _session_dir(self, session_id: str) -> Path:
        return self._root / session_id

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    def _require(self, session_id: str) -> None:
        if not self.exists(session_id):
            raise SessionNotFound(session_id)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def exists(self, session_id: str) -> bool:
        if not SESSION_ID_PATTERN.fullmatch(session_id):
            return False
        return self._state_file(session_id).exists()

    def create_session(self, state: AdventureState | None = None) -> tuple[str, AdventureState]:
        """Create a session with a fresh (or given) document."""
        session_id = uuid.uuid4().hex
        state = state or AdventureState()
        self._session_dir(session_id).mkdir(exist_ok=True)
        self._state_file(session_id).write_text(state.model_dump_json(indent=2))
        return session_id, state

    def list_sessions(self) -> list[str]:
        return sorted(p.stem for p in self._root.glob("*.json"))

    def delete_session(self, session_id: str) -> None:
        self._require(session_id)
        self._state_file(session_id).unlink()
        shutil.rmtree(self._session_dir(session_id), ignore_errors=True)

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def get_state(self, session_id: str) -> AdventureState:
        self._require(session_id)
        return AdventureState.model_validate_json(self._state_file(session_id).read_text())

    def save_state(self, session_id: str, state: AdventureState) -> None:
        self._require(session_id)
        self._state_file(session_id).write_text(state.model_dump_json(indent=2))

    # ------------------------------------------------------------------
    # Messages (append-only)
    # ------------------------------------------------------------------

    def get_messages(self, session_id: str) -> list[ChatMessage]:
        self._require(session_id)
        path = self._session_dir(session_id) / "messages.json"
        if not path.exists():
            return []
        return [ChatMessage.model_validate(m) for m in self._read_json(path)]

    def append_messages(self, session_id: str, messages: list[ChatMessage]) -> None:
        existing = self.get_messages(session_id)
        existing.extend(messages)
        self._session_dir(session_id).mkdir(exist_ok=True)
        self._write_json(
            self._session_dir(session_id) / "messages.json",
            [m.model_dump() for m in existing],
        )

    # ------------------------------------------------------------------
    # Token usage (append-only)
    # ------------------------------------------------------------------

    def get_usage(self, session_id: str) -> list[UsageRecord]:
        self._require(session_id)
        path = self._session_dir(session_id) / "usage.json"
        if not path.exists():
            return []
        return [UsageRecord.model_validate(u) for u in self._read_json(path)]

    def append_usage(self, session_id: str, records: list[UsageRecord]) -> None:
        existing = self.get_usage(session_id)
        existing.extend(records)
        self._session_dir(session_id).mkdir(exist_ok=True)
        self._write_json(
            self._session_dir(session_id) / "usage.json",
            [u.model_dump() for u in existing],
        )
