import pytest

from sage_codex.dispatcher import ToolContext, clear_tool_handlers
from sage_codex.models import (
    AdventureSpark,
    AdventureState,
    BoundFrame,
    ComponentsState,
    SceneArc,
)
from sage_codex.storage import Storage


@pytest.fixture(autouse=True)
def clean_registry():
    """Start every test with an empty module-level tool registry."""
    clear_tool_handlers()
    yield
    clear_tool_handlers()


@pytest.fixture
def storage(tmp_path) -> Storage:
    return Storage(tmp_path / "data")


@pytest.fixture
def state() -> AdventureState:
    """A document woven up to a two-scene outline."""
    return AdventureState(
        stage="weaving",
        spark=AdventureSpark(name="The Hollow Bell", vision="A drowned chapel rings at low tide."),
        components=ComponentsState(span="one session", scenes=2, members=4, tier=1, tenor="eerie"),
        frame=BoundFrame(id="saltmarsh", name="Saltmarsh", themes=["loss", "tides"]),
        scene_arcs=[
            SceneArc(id="arc-1", scene_number=1, title="Low Tide", description="The bell is heard.",
                     scene_type="exploration"),
            SceneArc(id="arc-2", scene_number=2, title="The Belfry", description="Face the ringer.",
                     scene_type="combat"),
        ],
    )


@pytest.fixture
def context(state: AdventureState) -> ToolContext:
    return ToolContext(session_id="test-session", document=state)
