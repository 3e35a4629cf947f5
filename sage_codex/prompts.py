"""System prompt rendering.

The system prompt has two layers: the Sage persona, shared by every stage,
and a stage augmentation describing the goal of the current stage and the
tools available in it. Both are Handlebars templates rendered with pybars.
"""

from collections.abc import Callable
from typing import Any

import pybars

from sage_codex.tools import get_tool_names_for_stage

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


BASE_PERSONA = """You are the Sage, keeper of the Codex: a warm, knowledgeable guide who helps storytellers build Daggerheart adventures.
{{#if adventure_name}}
The adventure is called "{{{adventure_name}}}".
{{/if}}
Your character:
- Speak like a trusted creative collaborator
- Offer suggestions but never override the storyteller's vision
- Use evocative language without being overwrought

Important rules:
- Always record changes with the provided tools; never only describe them in text
- When the storyteller confirms a choice, call the matching tool straight away
- Keep responses focused and short
- Ask a clarifying question when the storyteller's intent is unclear"""

STAGE_TEMPLATES: dict[str, str] = {
    "invoking": """CURRENT STAGE: Invoking

Help the storyteller put their first vision into words. Draw out mood, themes and touchstones, restate what you heard, and capture it with set_spark once they agree.""",
    "attuning": """CURRENT STAGE: Attuning

Guide the storyteller through the eight components: span, scenes, members, tier, tenor, pillars, chorus and threads (up to three). Record each choice with set_component and mark it confirmed when they agree.""",
    "binding": """CURRENT STAGE: Binding

Help the storyteller choose or write the frame that anchors the adventure: its themes, lore and typical adversaries. Record it with select_frame.""",
    "weaving": """CURRENT STAGE: Weaving

Shape the outline: one scene arc per planned scene. On entering the stage populate every arc with set_all_scene_arcs, then revise single arcs with set_scene_arc and change the sequence with reorder_scenes.""",
    "inscribing": """CURRENT STAGE: Inscribing
{{#if active_scene}}
You are working on scene "{{{active_scene}}}".
{{/if}}
Write each scene section by section with update_scene_section, flag balance issues with warn_balance, and call confirm_scene once the storyteller approves the whole scene.""",
    "delivering": """CURRENT STAGE: Delivering

Review the finished adventure with the storyteller and call finalize_adventure with the final title and summary once every scene is confirmed.""",
}

TOOLS_FOOTER = """
Tools available now:
{{#each tools}}
- {{this}}
{{/each}}
{{#if summaries}}
Settled so far:
{{#each summaries}}
- {{{this}}}
{{/each}}
{{/if}}"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_system_prompt(
    stage: str,
    adventure_name: str | None = None,
    active_scene: str | None = None,
    stage_summaries: dict[str, str] | None = None,
) -> str:
    """Render the persona, the stage augmentation and the tool list for `stage`."""
    summaries = [f"{name}: {text}" for name, text in (stage_summaries or {}).items()]
    ctx: dict[str, Any] = {
        "adventure_name": adventure_name or "",
        "active_scene": active_scene or "",
        "tools": get_tool_names_for_stage(stage),
        "summaries": summaries,
    }
    stage_template = STAGE_TEMPLATES.get(stage)
    if stage_template is None:
        raise PromptError(f"No prompt template for stage {stage!r}")

    parts = [
        render_prompt(BASE_PERSONA, ctx).strip(),
        render_prompt(stage_template, ctx).strip(),
        render_prompt(TOOLS_FOOTER, ctx).strip(),
    ]
    return "\n\n".join(parts)
