"""Adventure document serializer for model context.

Renders the document as compact prose (not raw JSON) in three tiers:

    T1  spark + components + frame               every stage, when non-empty
    T2  full detail of the active scene          inscribing only
    T3  outline of scene arcs + confirmed scenes weaving, inscribing, delivering

Tiers are joined in order with SECTION_SEPARATOR. When the result is over
budget it is cut from the end, so T1 always survives longest.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from sage_codex.models import (
    AdventureSpark,
    AdventureState,
    BoundFrame,
    ComponentsState,
    InscribedScene,
    SceneArc,
)

DEFAULT_MAX_CHARACTERS = 12000
SECTION_SEPARATOR = "\n---\n"

DETAIL_STAGE = "inscribing"
OUTLINE_STAGES = ("weaving", "inscribing", "delivering")


class SerializedContext(BaseModel):
    text: str
    character_count: int
    tiers_included: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# T1
# ---------------------------------------------------------------------------

def _spark(spark: AdventureSpark | None) -> str:
    if spark is None:
        return ""
    return f'Adventure: "{spark.name}"\nVision: {spark.vision}'


def _components(components: ComponentsState) -> str:
    lines: list[str] = []
    if components.span:
        lines.append(f"Span: {components.span}")
    if components.scenes:
        lines.append(f"Scenes: {components.scenes}")
    if components.members:
        lines.append(f"Members: {components.members} players")
    if components.tier:
        lines.append(f"Tier: {components.tier}")
    if components.tenor:
        lines.append(f"Tenor: {components.tenor}")
    if components.pillars:
        lines.append(f"Pillars: {components.pillars}")
    if components.chorus:
        lines.append(f"Chorus: {components.chorus}")
    if components.threads:
        lines.append(f"Threads: {', '.join(components.threads)}")
    if components.confirmed_components:
        lines.append(f"Confirmed: {', '.join(components.confirmed_components)}")
    if not lines:
        return ""
    return "Components:\n" + "\n".join(lines)


def _frame(frame: BoundFrame | None) -> str:
    if frame is None:
        return ""
    parts = [f'Frame: "{frame.name}"']
    if frame.description:
        parts.append(frame.description)
    if frame.themes:
        parts.append(f"Themes: {', '.join(frame.themes)}")
    return "\n".join(parts)


def serialize_tier1(state: AdventureState) -> str:
    sections = [_spark(state.spark), _components(state.components), _frame(state.frame)]
    return "\n\n".join(s for s in sections if s)


# ---------------------------------------------------------------------------
# T2
# ---------------------------------------------------------------------------

def render_scene(scene: InscribedScene) -> str:
    """Full rendering of every populated section of one scene."""
    lines = [f'Scene {scene.scene_number}: "{scene.title}" [{scene.status}]']

    if scene.introduction:
        lines.append(f"\nIntroduction:\n{scene.introduction}")
    if scene.key_moments:
        lines.append("\nKey Moments:")
        lines.extend(f"  - {m.title}: {m.description}" for m in scene.key_moments)
    if scene.resolution:
        lines.append(f"\nResolution:\n{scene.resolution}")
    if scene.npcs:
        lines.append("\nNPCs:")
        lines.extend(f"  - {n.name} ({n.role}): {n.description}" for n in scene.npcs)
    if scene.adversaries:
        lines.append("\nAdversaries:")
        lines.extend(f"  - {a.name} [{a.type}, T{a.tier}]: {a.notes}" for a in scene.adversaries)
    if scene.items:
        lines.append("\nItems:")
        lines.extend(f"  - {i.name} (T{i.suggested_tier}): {i.description}" for i in scene.items)
    if scene.portents:
        lines.append("\nPortents:")
        lines.extend(f"  {p.category}: {'; '.join(p.entries)}" for p in scene.portents)
    if scene.tier_guidance:
        lines.append(f"\nTier Guidance: {scene.tier_guidance}")
    if scene.tone_notes:
        lines.append(f"\nTone: {scene.tone_notes}")

    return "\n".join(lines)


def serialize_tier2(state: AdventureState, active_scene_id: str | None) -> str:
    if not active_scene_id:
        return ""
    scene = state.find_scene(active_scene_id)
    if scene is None:
        return ""
    return render_scene(scene)


# ---------------------------------------------------------------------------
# T3
# ---------------------------------------------------------------------------

def _arc_brief(arc: SceneArc) -> str:
    return f'  {arc.scene_number}. "{arc.title}" ({arc.scene_type}): {arc.description}'


def _confirmed_brief(scene: InscribedScene) -> str:
    parts = [f'  {scene.scene_number}. "{scene.title}" [confirmed]']
    npc_names = ", ".join(n.name for n in scene.npcs)
    adversary_names = ", ".join(a.name for a in scene.adversaries)
    if npc_names:
        parts.append(f"NPCs: {npc_names}")
    if adversary_names:
        parts.append(f"Adversaries: {adversary_names}")
    return " | ".join(parts)


def serialize_tier3(state: AdventureState, active_scene_id: str | None) -> str:
    lines: list[str] = []
    if state.scene_arcs:
        lines.append("Outline:")
        lines.extend(_arc_brief(arc) for arc in state.scene_arcs)

    confirmed = [
        s for s in state.inscribed_scenes
        if s.status == "confirmed" and s.arc_id != active_scene_id
    ]
    if confirmed:
        lines.append("\nConfirmed Scenes:")
        lines.extend(_confirmed_brief(s) for s in confirmed)

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def serialize_for_llm(
    state: AdventureState,
    stage: str,
    active_scene_id: str | None = None,
    max_characters: int = DEFAULT_MAX_CHARACTERS,
) -> SerializedContext:
    """Serialize the document for the next model call."""
    sections: list[str] = []
    tiers: list[str] = []

    t1 = serialize_tier1(state)
    if t1:
        sections.append(t1)
        tiers.append("T1")

    if stage == DETAIL_STAGE and active_scene_id:
        t2 = serialize_tier2(state, active_scene_id)
        if t2:
            sections.append(t2)
            tiers.append("T2")

    if stage in OUTLINE_STAGES:
        t3 = serialize_tier3(state, active_scene_id)
        if t3:
            sections.append(t3)
            tiers.append("T3")

    text = SECTION_SEPARATOR.join(sections)
    if len(text) > max_characters:
        if max_characters < 3:
            text = text[: max(max_characters, 0)]
        else:
            text = text[: max_characters - 3] + "..."

    return SerializedContext(text=text, character_count=len(text), tiers_included=tiers)
