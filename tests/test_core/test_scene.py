"""
Tests for agentcanvas/core/scene.py - SceneModel.

Tests:
- Unique ids across node variants
- Connection rules (self-loops, single-writer inputs, duplicates)
- Combiner input port growth and compaction
- Hit testing and port lookup
- Layout serialization / restore
"""

import pytest

from agentcanvas.core.nodes import UNASSIGNED, Agent, CombinerMode, PortDirection, Task
from agentcanvas.core.scene import LOG_CAPACITY, TIMELINE_CAPACITY, SceneModel, input_port_index


# ============================================================================
# NODES
# ============================================================================

class TestNodes:
    """Tests for node bookkeeping."""

    def test_ids_unique_across_variants(self, scene, add_agent):
        """A task cannot reuse an agent's id."""
        add_agent("alice")
        assert scene.add_node(Task(id="alice")) is False
        assert len(scene) == 1

    def test_typed_getters(self, scene, add_agent, add_task, add_combiner):
        add_agent("alice")
        add_task("t1")
        add_combiner("c1")

        assert scene.get_agent("alice") is not None
        assert scene.get_task("alice") is None
        assert scene.get_task("t1") is not None
        assert scene.get_combiner("c1") is not None
        assert scene.get(None) is None

    def test_remove_agent_unassigns_tasks(self, scene, add_agent, add_task):
        add_agent("alice")
        add_task("t1", to="alice")

        scene.remove_node("alice")

        assert scene.get_task("t1").to == UNASSIGNED

    def test_remove_node_drops_connections(self, scene, add_agent, add_task):
        add_agent("alice")
        add_task("t1")
        scene.add_connection("t1", "output", "alice", "input")

        scene.remove_node("t1")

        assert scene.connections == []

    def test_remove_task_drops_logs(self, scene, add_task):
        add_task("t1")
        scene.append_log("t1", {"type": "thinking"})
        scene.remove_node("t1")
        assert scene.logs_for("t1") == []

    def test_remove_unknown_returns_none(self, scene):
        assert scene.remove_node("ghost") is None

    def test_update_task_ignores_unknown_fields(self, scene, add_task):
        add_task("t1")
        assert scene.update_task("t1", status="completed", x=999, bogus=1)

        task = scene.get_task("t1")
        assert task.status == "completed"
        assert task.x == 400.0

    def test_update_agent_stats(self, scene, add_agent):
        add_agent("alice")
        scene.update_agent_stats("alice", {
            "status": "busy",
            "current_tasks": ["t1"],
            "completed_tasks": 3,
        })

        agent = scene.get_agent("alice")
        assert agent.status == "busy"
        assert agent.current_tasks == ["t1"]
        assert agent.completed_tasks == 3
        assert agent.failed_tasks == 0

    def test_update_stats_unknown_agent(self, scene):
        assert scene.update_agent_stats("ghost", {"status": "busy"}) is False

    def test_revision_increments(self, scene):
        before = scene.revision
        scene.add_node(Agent(id="bob"))
        assert scene.revision > before


# ============================================================================
# CONNECTIONS
# ============================================================================

class TestConnections:
    """Tests for connection invariants."""

    def test_self_loop_rejected(self, scene, add_task):
        add_task("t1")
        assert scene.add_connection("t1", "output", "t1", "input") is None
        assert scene.connections == []

    def test_input_port_single_writer(self, scene, add_agent, add_task):
        add_agent("alice")
        add_task("t1", x=300)
        add_task("t2", x=600)

        assert scene.add_connection("t1", "output", "alice", "input") is not None
        assert scene.add_connection("t2", "output", "alice", "input") is None
        assert len(scene.connections) == 1

    def test_duplicate_returns_existing(self, scene, add_agent, add_task):
        add_agent("alice")
        add_task("t1")
        first = scene.add_connection("t1", "output", "alice", "input")
        second = scene.add_connection("t1", "output", "alice", "input")
        assert first is second
        assert len(scene.connections) == 1

    def test_requires_output_to_input(self, scene, add_agent, add_task):
        add_agent("alice")
        add_task("t1")
        assert scene.add_connection("t1", "input", "alice", "input") is None
        assert scene.add_connection("t1", "output", "alice", "output") is None

    def test_missing_node_rejected(self, scene, add_task):
        add_task("t1")
        assert scene.add_connection("t1", "output", "ghost", "input") is None

    def test_output_fans_out(self, scene, add_agent, add_task):
        add_agent("alice", x=100)
        add_agent("bob", x=300)
        add_task("t1")

        assert scene.add_connection("t1", "output", "alice", "input")
        assert scene.add_connection("t1", "output", "bob", "input")
        assert len(scene.connections_from("t1")) == 2

    def test_remove_connection(self, scene, add_agent, add_task):
        add_agent("alice")
        add_task("t1")
        conn = scene.add_connection("t1", "output", "alice", "input")

        assert scene.remove_connection(conn.id) is conn
        assert scene.remove_connection(conn.id) is None


# ============================================================================
# COMBINER PORTS
# ============================================================================

class TestCombinerPorts:
    """Tests for combiner input port growth and compaction."""

    def test_next_port_grows(self, scene, add_task, add_combiner):
        add_combiner("c1")
        add_task("t1")

        assert scene.next_combiner_input_port("c1") == "input-0"
        scene.add_connection("t1", "output", "c1", "input-0")
        assert scene.next_combiner_input_port("c1") == "input-1"
        assert scene.get_combiner("c1").input_ports == ["input-0", "input-1"]

    def test_next_port_reuses_free_port(self, scene, add_combiner):
        add_combiner("c1", input_ports=["input-0"])
        assert scene.next_combiner_input_port("c1") == "input-0"
        assert scene.get_combiner("c1").input_ports == ["input-0"]

    def test_cleanup_renumbers_contiguously(self, scene, add_task, add_combiner):
        add_combiner("c1")
        for index, task_id in enumerate(["a", "b", "c"]):
            add_task(task_id, x=100 + index * 200)
            port_id = scene.next_combiner_input_port("c1")
            scene.add_connection(task_id, "output", "c1", port_id)

        middle = scene.connection_into_port("c1", "input-1")
        scene.remove_connection(middle.id)

        combiner = scene.get_combiner("c1")
        assert combiner.input_ports == ["input-0", "input-1"]
        assert scene.connection_into_port("c1", "input-0").from_node == "a"
        assert scene.connection_into_port("c1", "input-1").from_node == "c"

    def test_cleanup_orders_numerically(self, scene, add_task, add_combiner):
        """input-10 sorts after input-2."""
        ports = [f"input-{i}" for i in range(11)]
        add_combiner("c1", input_ports=list(ports))
        add_task("low")
        add_task("high", x=800)
        scene.add_connection("high", "output", "c1", "input-10")
        scene.add_connection("low", "output", "c1", "input-2")

        scene.cleanup_combiner_input_ports("c1")

        assert scene.connection_into_port("c1", "input-0").from_node == "low"
        assert scene.connection_into_port("c1", "input-1").from_node == "high"

    def test_removing_source_compacts_combiner(self, scene, add_task, add_combiner):
        add_combiner("c1")
        add_task("a")
        add_task("b", x=700)
        scene.add_connection("a", "output", "c1", scene.next_combiner_input_port("c1"))
        scene.add_connection("b", "output", "c1", scene.next_combiner_input_port("c1"))

        scene.remove_node("a")

        assert scene.get_combiner("c1").input_ports == ["input-0"]
        assert scene.connection_into_port("c1", "input-0").from_node == "b"

    def test_input_port_index(self):
        assert input_port_index("input-12") == 12
        assert input_port_index("input") == 0
        assert input_port_index("") == 0


# ============================================================================
# HIT TESTING
# ============================================================================

class TestHitTesting:
    """Tests for world-space hit tests."""

    def test_task_hit_is_centered(self, scene, add_task):
        add_task("t1", x=400, y=200)
        assert scene.task_at(400 - 79, 200 + 29).id == "t1"
        assert scene.task_at(400 - 81, 200) is None

    def test_combiner_hit_is_top_left(self, scene, add_combiner):
        add_combiner("c1", x=700, y=300)
        assert scene.combiner_at(705, 305).id == "c1"
        assert scene.combiner_at(695, 305) is None

    def test_topmost_node_wins(self, scene, add_task):
        add_task("below", x=400, y=200)
        add_task("above", x=410, y=205)
        assert scene.task_at(405, 202).id == "above"

    def test_unpositioned_nodes_ignored(self, scene):
        scene.add_node(Task(id="floating"))
        assert scene.task_at(0, 0) is None

    def test_port_at(self, scene, add_task):
        add_task("t1", x=400, y=200)
        port = scene.port_at(400, 200 + 30 + 5)
        assert port.node_id == "t1"
        assert port.port_id == "output"
        assert port.direction == PortDirection.OUTPUT

    def test_port_at_outside_radius(self, scene, add_task):
        add_task("t1", x=400, y=200)
        assert scene.port_at(400, 200 + 35 + 20) is None

    def test_connection_at(self, scene, add_agent, add_task):
        add_task("t1", x=400, y=200)
        add_agent("alice", x=400, y=500)
        conn = scene.add_connection("t1", "output", "alice", "input")

        assert scene.connection_at(403, 350) is conn
        assert scene.connection_at(450, 350) is None

    def test_nearest_agent_input(self, scene, add_agent):
        add_agent("alice", x=100, y=500)
        add_agent("bob", x=300, y=500)
        # alice's input port is at (100, 455)
        assert scene.nearest_agent_input(130, 470, 80).id == "alice"
        assert scene.nearest_agent_input(200, 100, 80) is None

    def test_bounds(self, scene, add_task, add_combiner):
        assert scene.bounds() is None
        add_task("t1", x=100, y=100)
        add_combiner("c1", x=300, y=300)
        assert scene.bounds() == (20, 70, 420, 380)


# ============================================================================
# LOGS & TIMELINE
# ============================================================================

class TestLogsAndTimeline:
    """Tests for capped logs and the newest-first timeline."""

    def test_log_capped(self, scene, add_task):
        add_task("t1")
        for i in range(LOG_CAPACITY + 5):
            scene.append_log("t1", {"type": "thinking", "n": i})

        logs = scene.logs_for("t1")
        assert len(logs) == LOG_CAPACITY
        assert logs[0]["n"] == 5
        assert logs[-1]["n"] == LOG_CAPACITY + 4

    def test_timeline_newest_first_and_capped(self, scene):
        for i in range(TIMELINE_CAPACITY + 1):
            scene.record_timeline({"n": i})

        assert len(scene.timeline) == TIMELINE_CAPACITY
        assert scene.timeline[0]["n"] == TIMELINE_CAPACITY


# ============================================================================
# LAYOUT
# ============================================================================

class TestLayoutPersistence:
    """Tests for to_layout / apply_layout."""

    def test_round_trip_into_fresh_scene(self, scene, add_agent, add_task, add_combiner):
        add_agent("alice", x=100, y=500)
        add_task("t1", x=120, y=80)
        add_combiner("c1", mode=CombinerMode.VOTE, task_id="task-c1")
        scene.add_connection("t1", "output", "c1", scene.next_combiner_input_port("c1"))
        scene.add_connection("c1", "output", "alice", "input")

        layout = scene.to_layout(scale=1.5, offset_x=10, offset_y=20)

        restored = SceneModel("ws-1")
        restored.add_node(Agent(id="alice"))
        restored.add_node(Task(id="t1"))
        restored.apply_layout(layout)

        assert (restored.get_task("t1").x, restored.get_task("t1").y) == (120, 80)
        assert (restored.get_agent("alice").x, restored.get_agent("alice").y) == (100, 500)
        combiner = restored.get_combiner("c1")
        assert combiner.mode == CombinerMode.VOTE
        assert combiner.task_id == "task-c1"
        assert combiner.input_ports == ["input-0"]
        assert len(restored.connections) == 2

    def test_layout_format(self, scene, add_task, add_combiner):
        add_task("t1")
        add_combiner("c1")
        layout = scene.to_layout()

        assert layout["workspace_id"] == "ws-1"
        assert layout["task_positions"] == {"t1": {"x": 400.0, "y": 200.0}}
        node = layout["combiner_nodes"][0]
        assert node["combinerType"] == "merge"
        assert node["outputPort"] == {"id": "output"}
        assert node["resultCombinationMode"] == "merge"

    def test_apply_drops_connections_to_missing_nodes(self, scene, add_task):
        add_task("t1")
        scene.apply_layout({
            "workflow_connections": [
                {"id": "x", "from": "t1", "fromPort": "output", "to": "ghost", "toPort": "input"},
            ],
        })
        assert scene.connections == []

    def test_apply_ignores_positions_for_unknown_nodes(self, scene):
        scene.apply_layout({"task_positions": {"ghost": {"x": 1, "y": 2}}})
        assert "ghost" not in scene

    def test_unknown_combiner_type_defaults_to_merge(self, scene):
        scene.apply_layout({"combiner_nodes": [{"id": "c9", "combinerType": "blend", "x": 0, "y": 0}]})
        assert scene.get_combiner("c9").mode == CombinerMode.MERGE

    @pytest.mark.parametrize("key", ["toPort", "to_port"])
    def test_connection_port_key_variants(self, scene, add_task, add_agent, key):
        add_task("t1")
        add_agent("alice")
        scene.apply_layout({
            "workflow_connections": [{"from": "t1", "fromPort": "output", "to": "alice", key: "input"}],
        })
        assert scene.connection_into_port("alice", "input") is not None
