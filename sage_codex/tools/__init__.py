"""Stage tool handlers and their Messages API definitions.

register_stage_tools() swaps the registry over to the tools of one stage:
the universal tools plus that stage's own. Call it whenever the stage
changes (the turn runner does this every turn).
"""

from sage_codex.dispatcher import ToolHandler, ToolRegistry, default_registry

from .definitions import (  # noqa: F401
    ToolDefinition,
    get_tool_names_for_stage,
    get_tools_for_stage,
)
from .delivering import handle_finalize_adventure
from .inscribing import handle_confirm_scene, handle_update_scene_section, handle_warn_balance
from .premise import handle_select_frame, handle_set_component, handle_set_spark
from .universal import handle_signal_ready, handle_suggest_adventure_name
from .weaving import handle_reorder_scenes, handle_set_all_scene_arcs, handle_set_scene_arc

UNIVERSAL_HANDLERS: dict[str, ToolHandler] = {
    "signal_ready": handle_signal_ready,
    "suggest_adventure_name": handle_suggest_adventure_name,
}

STAGE_HANDLERS: dict[str, dict[str, ToolHandler]] = {
    "invoking": {"set_spark": handle_set_spark},
    "attuning": {"set_component": handle_set_component},
    "binding": {"select_frame": handle_select_frame},
    "weaving": {
        "set_all_scene_arcs": handle_set_all_scene_arcs,
        "set_scene_arc": handle_set_scene_arc,
        "reorder_scenes": handle_reorder_scenes,
    },
    "inscribing": {
        "update_scene_section": handle_update_scene_section,
        "confirm_scene": handle_confirm_scene,
        "warn_balance": handle_warn_balance,
    },
    "delivering": {"finalize_adventure": handle_finalize_adventure},
}


def register_stage_tools(stage: str, registry: ToolRegistry | None = None) -> ToolRegistry:
    """Clear `registry` and register the handlers available in `stage`."""
    if registry is None:
        registry = default_registry()
    registry.clear()
    for name, handler in UNIVERSAL_HANDLERS.items():
        registry.register(name, handler)
    for name, handler in STAGE_HANDLERS.get(stage, {}).items():
        registry.register(name, handler)
    return registry
