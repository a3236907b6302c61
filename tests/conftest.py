"""
Pytest Configuration and Shared Fixtures for AgentCanvas.

Provides common fixtures for:
- Scenes, viewports and node factories
- A recording request sink and notifier
- An InteractionController wired to both
- Settings isolated in tmp_path
"""

import pytest

from agentcanvas.core.nodes import Agent, Combiner, CombinerMode, Task
from agentcanvas.core.scene import SceneModel
from agentcanvas.core.settings import ENV_BASE_URL, ENV_WORKSPACE_ID, SettingsManager, reset_settings_manager
from agentcanvas.core.viewport import Viewport
from agentcanvas.ui.interaction import InteractionController


# ============================================================================
# SCENE FIXTURES
# ============================================================================

@pytest.fixture
def scene():
    """
    Create an empty scene for workspace "ws-1".

    Returns:
        SceneModel: Empty scene.
    """
    return SceneModel("ws-1")


@pytest.fixture
def viewport():
    """
    Identity viewport (screen == world) of 1200x800.

    Returns:
        Viewport: Viewport instance.
    """
    return Viewport(1200, 800)


@pytest.fixture
def add_agent(scene):
    """
    Factory fixture adding a positioned agent to the scene.

    Returns:
        Callable: add_agent(name, x, y, **fields) -> Agent
    """
    def _add(name, x=100.0, y=500.0, **fields):
        agent = Agent(id=name, x=x, y=y, **fields)
        assert scene.add_node(agent)
        return agent

    return _add


@pytest.fixture
def add_task(scene):
    """
    Factory fixture adding a task to the scene.

    Returns:
        Callable: add_task(task_id, x, y, **fields) -> Task
    """
    def _add(task_id, x=400.0, y=200.0, **fields):
        task = Task(id=task_id, x=x, y=y, **fields)
        assert scene.add_node(task)
        return task

    return _add


@pytest.fixture
def add_combiner(scene):
    """
    Factory fixture adding a combiner (top-left anchored) to the scene.

    Returns:
        Callable: add_combiner(combiner_id, x, y, **fields) -> Combiner
    """
    def _add(combiner_id, x=700.0, y=300.0, mode=CombinerMode.MERGE, **fields):
        combiner = Combiner(id=combiner_id, x=x, y=y, mode=mode, **fields)
        assert scene.add_node(combiner)
        return combiner

    return _add


# ============================================================================
# INTERACTION FIXTURES
# ============================================================================

@pytest.fixture
def requests():
    """
    Recording request sink target.

    Returns:
        list: MutationRequests emitted, in order.
    """
    return []


@pytest.fixture
def notifications():
    """
    Recording notifier target.

    Returns:
        list: (message, level) tuples, in order.
    """
    return []


@pytest.fixture
def notifier(notifications):
    def _notify(message, level="info"):
        notifications.append((message, level))

    return _notify


@pytest.fixture
def controller(scene, viewport, requests, notifier):
    """
    InteractionController recording requests and notifications.

    Returns:
        InteractionController: Controller over the scene fixture.
    """
    return InteractionController(
        scene,
        viewport,
        request_sink=requests.append,
        notifier=notifier,
    )


@pytest.fixture
def ops(requests):
    """
    Returns:
        Callable: ops() -> list of op names emitted so far.
    """
    return lambda: [r.op for r in requests]


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================

@pytest.fixture
def settings_manager(tmp_path):
    """
    SettingsManager rooted in a temp config dir.

    Returns:
        SettingsManager: Isolated settings manager.
    """
    return SettingsManager(config_dir=tmp_path / "config")


# ============================================================================
# CLEANUP FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Keep developer environment variables and the settings singleton out
    of every test.
    """
    monkeypatch.delenv(ENV_BASE_URL, raising=False)
    monkeypatch.delenv(ENV_WORKSPACE_ID, raising=False)
    yield
    reset_settings_manager()
