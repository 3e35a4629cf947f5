"""Per-section version history for undo.

Every versionable section of the adventure document has its own bounded
stack of prior values, stored on the document under `version_history` and
keyed by section path:

    "spark" | "components" | "frame" | "scene_arcs"     top-level sections
    "scene:<arc_id>:<section>"                           one scene section

Callers push the value that is about to be overwritten, then mutate the
document. Stacks hold at most MAX_VERSION_HISTORY_ENTRIES entries; the
oldest entry is dropped when a push goes over the limit.

Values are copied through a JSON round trip on push, so history never
shares references with the live document.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from sage_codex.models import (
    MAX_VERSION_HISTORY_ENTRIES,
    SCENE_SECTIONS,
    TOP_LEVEL_SECTIONS,
    AdventureState,
    VersionEntry,
)

logger = logging.getLogger(__name__)


class TopLevelPath(BaseModel):
    type: Literal["top-level"] = "top-level"
    key: str


class ScenePath(BaseModel):
    type: Literal["scene"] = "scene"
    arc_id: str
    section: str


class UndoResult(BaseModel):
    success: bool
    restored_value: Any = None
    error: str | None = None
    remaining_entries: int = 0


def scene_section_path(arc_id: str, section: str) -> str:
    return f"scene:{arc_id}:{section}"


def _json_copy(value: Any) -> Any:
    return json.loads(json.dumps(to_jsonable_python(value)))


# ---------------------------------------------------------------------------
# Push / pop
# ---------------------------------------------------------------------------

def push_version(
    *,
    document: AdventureState,
    section_path: str,
    previous_value: Any,
    description: str | None = None,
) -> None:
    """Capture `previous_value` on the stack for `section_path`.

    Call this BEFORE overwriting the section.
    """
    entry = VersionEntry(
        timestamp=datetime.now(timezone.utc).isoformat(),
        value=_json_copy(previous_value),
        description=description,
    )
    stack = document.version_history.setdefault(section_path, [])
    stack.append(entry)
    while len(stack) > MAX_VERSION_HISTORY_ENTRIES:
        stack.pop(0)


def pop_version(document: AdventureState, section_path: str) -> UndoResult:
    """Remove and return the most recent entry for `section_path`.

    The document's sections are not touched; see apply_undo for that.
    """
    stack = document.version_history.get(section_path)
    if not stack:
        return UndoResult(
            success=False,
            error=f'No version history for section "{section_path}"',
            remaining_entries=0,
        )
    entry = stack.pop()
    return UndoResult(
        success=True,
        restored_value=entry.value,
        remaining_entries=len(stack),
    )


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def parse_section_path(path: str) -> TopLevelPath | ScenePath:
    """Split a section path into its addressing mode.

    Scene paths are not validated here; use is_valid_section_path first.
    """
    if path.startswith("scene:"):
        parts = path.split(":")
        return ScenePath(
            arc_id=parts[1] if len(parts) > 1 else "",
            section=parts[2] if len(parts) > 2 else "",
        )
    return TopLevelPath(key=path)


def is_valid_section_path(path: str) -> bool:
    if path in TOP_LEVEL_SECTIONS:
        return True
    if path.startswith("scene:"):
        parts = path.split(":")
        if len(parts) != 3 or not parts[1]:
            return False
        return parts[2] in SCENE_SECTIONS
    return False


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

def apply_undo(document: AdventureState, section_path: str) -> UndoResult:
    """Pop the latest entry for `section_path` and write it back.

    If the path names a scene that is no longer in the document, the entry
    is still consumed but nothing is written.
    """
    result = pop_version(document, section_path)
    if not result.success:
        return result

    parsed = parse_section_path(section_path)
    if isinstance(parsed, TopLevelPath):
        if parsed.key in TOP_LEVEL_SECTIONS:
            setattr(document, parsed.key, result.restored_value)
        else:
            logger.warning("undo: %r is not a versioned section, value not restored", parsed.key)
        return result

    scene = document.find_scene(parsed.arc_id)
    if scene is None:
        logger.warning(
            "undo: scene %r no longer exists, popped %s without restoring",
            parsed.arc_id, section_path,
        )
        return result
    if parsed.section not in SCENE_SECTIONS:
        logger.warning("undo: %r is not a scene section, value not restored", parsed.section)
        return result
    setattr(scene, parsed.section, result.restored_value)
    return result


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_version_history(document: AdventureState, section_path: str) -> list[VersionEntry]:
    return list(document.version_history.get(section_path, []))


def get_version_count(document: AdventureState, section_path: str) -> int:
    return len(document.version_history.get(section_path, []))
