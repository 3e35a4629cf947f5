"""Core domain models.

The adventure document evolves through six stages (the Unfolding):

    invoking -> attuning -> binding -> weaving -> inscribing -> delivering

All tool handlers, the serializer and storage operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
Assignment is validated on the document models so that values restored from
version history (plain JSON) come back as typed sub-models.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Stage = Literal[
    "invoking",
    "attuning",
    "binding",
    "weaving",
    "inscribing",
    "delivering",
]

STAGES: tuple[str, ...] = (
    "invoking",
    "attuning",
    "binding",
    "weaving",
    "inscribing",
    "delivering",
)

SceneType = Literal["exploration", "social", "combat", "puzzle", "mixed"]
SceneStatus = Literal["draft", "revised", "confirmed"]

# Version stacks are keyed by these paths; scene sections use
# "scene:<arc_id>:<section>".
TOP_LEVEL_SECTIONS: tuple[str, ...] = ("spark", "components", "frame", "scene_arcs")

SCENE_SECTIONS: tuple[str, ...] = (
    "introduction",
    "key_moments",
    "resolution",
    "npcs",
    "adversaries",
    "items",
    "portents",
    "tier_guidance",
    "tone_notes",
)

COMPONENT_IDS: tuple[str, ...] = (
    "span",
    "scenes",
    "members",
    "tier",
    "tenor",
    "pillars",
    "chorus",
    "threads",
)

MAX_VERSION_HISTORY_ENTRIES = 10


def next_stage(stage: str) -> str | None:
    """Return the stage after `stage`, or None when `stage` is the last one."""
    idx = STAGES.index(stage)
    if idx + 1 >= len(STAGES):
        return None
    return STAGES[idx + 1]


class _DocumentModel(BaseModel):
    model_config = ConfigDict(validate_assignment=True)


# ---------------------------------------------------------------------------
# Invoking / Attuning / Binding
# ---------------------------------------------------------------------------

class AdventureSpark(_DocumentModel):
    """The initial vision captured during Invoking."""

    name: str
    vision: str


class ComponentsState(_DocumentModel):
    """The eight Attuning components. Unset components are None."""

    span: str | None = None
    scenes: int | None = None
    members: int | None = None
    tier: int | None = None
    tenor: str | None = None
    pillars: str | None = None
    chorus: str | None = None
    threads: list[str] = Field(default_factory=list)
    confirmed_components: list[str] = Field(default_factory=list)


class BoundFrame(_DocumentModel):
    """The thematic framework selected during Binding."""

    id: str
    name: str
    description: str = ""
    themes: list[str] = Field(default_factory=list)
    typical_adversaries: list[str] = Field(default_factory=list)
    lore: str = ""
    is_custom: bool = False


# ---------------------------------------------------------------------------
# Weaving
# ---------------------------------------------------------------------------

class SceneArc(_DocumentModel):
    """A scene brief in the adventure outline."""

    id: str
    scene_number: int
    title: str
    description: str = ""
    subtitle: str | None = None
    key_elements: list[str] = Field(default_factory=list)
    location: str = ""
    scene_type: SceneType = "mixed"


# ---------------------------------------------------------------------------
# Inscribing
# ---------------------------------------------------------------------------

class KeyMoment(_DocumentModel):
    title: str
    description: str = ""


class SceneNPC(_DocumentModel):
    name: str
    role: str = ""
    description: str = ""


class SceneAdversary(_DocumentModel):
    name: str
    type: str = ""
    tier: int = 1
    notes: str = ""


class SceneItem(_DocumentModel):
    name: str
    description: str = ""
    suggested_tier: int = 1


class PortentCategory(_DocumentModel):
    category: str
    entries: list[str] = Field(default_factory=list)


class InscribedScene(_DocumentModel):
    """A fully written scene. Each of the nine sections is versioned on its own."""

    arc_id: str
    scene_number: int
    title: str

    introduction: str = ""
    key_moments: list[KeyMoment] = Field(default_factory=list)
    resolution: str = ""
    npcs: list[SceneNPC] = Field(default_factory=list)
    adversaries: list[SceneAdversary] = Field(default_factory=list)
    items: list[SceneItem] = Field(default_factory=list)
    portents: list[PortentCategory] = Field(default_factory=list)
    tier_guidance: str = ""
    tone_notes: str = ""

    status: SceneStatus = "draft"


# ---------------------------------------------------------------------------
# Version history
# ---------------------------------------------------------------------------

class VersionEntry(BaseModel):
    """One captured prior value of a section."""

    timestamp: str
    value: Any = None
    description: str | None = None


# ---------------------------------------------------------------------------
# The document
# ---------------------------------------------------------------------------

class AdventureState(_DocumentModel):
    """The complete adventure document for one session."""

    stage: Stage = "invoking"
    spark: AdventureSpark | None = None
    components: ComponentsState = Field(default_factory=ComponentsState)
    frame: BoundFrame | None = None
    scene_arcs: list[SceneArc] = Field(default_factory=list)
    inscribed_scenes: list[InscribedScene] = Field(default_factory=list)
    version_history: dict[str, list[VersionEntry]] = Field(default_factory=dict)
    adventure_name: str | None = None
    stage_summaries: dict[str, str] = Field(default_factory=dict)

    def find_scene(self, arc_id: str) -> InscribedScene | None:
        for scene in self.inscribed_scenes:
            if scene.arc_id == arc_id:
                return scene
        return None

    def find_arc(self, arc_id: str) -> SceneArc | None:
        for arc in self.scene_arcs:
            if arc.id == arc_id:
                return arc
        return None


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    """One stored conversation message in Messages API shape.

    `content` is plain text, or a list of content blocks (text, tool_use,
    tool_result) for tool rounds.
    """

    role: Literal["user", "assistant"]
    content: str | list[dict[str, Any]]


class UsageRecord(BaseModel):
    """Token usage for one model call."""

    message_id: str
    model: str
    input_tokens: int
    output_tokens: int
    timestamp: str
