"""
Tests for agentcanvas/ui/reconciler.py - EventReconciler and StreamSupervisor.

Tests:
- Snapshot merge (local positions win, authoritative task list)
- Task creation and lifecycle patches
- Execution sub-event logs
- Idempotent re-application of lifecycle events
- Supervisor reconnect with snapshot resync
"""

import asyncio

import pytest

from agentcanvas.core.events import StreamEvent
from agentcanvas.core.nodes import Agent, Task
from agentcanvas.core.scene import LOG_CAPACITY
from agentcanvas.ui.reconciler import EventReconciler, StreamSupervisor


TS = "2024-05-01T10:00:00"


@pytest.fixture
def reconciler(scene, notifier):
    return EventReconciler(scene, notifier=notifier)


def event(event_type, data, timestamp=TS):
    return StreamEvent(event_type, data, timestamp)


def _task_state(scene):
    return {
        t.id: (t.status, t.result, t.error, t.to, t.x, t.y, t.completed_at)
        for t in scene.tasks()
    }


def _agent_state(scene):
    return {a.id: (a.status, a.last_result) for a in scene.agents()}


# ============================================================================
# SNAPSHOTS
# ============================================================================

class TestSnapshots:
    """Tests for initial / workspace.progress merges."""

    def test_local_position_wins(self, scene, reconciler):
        scene.add_node(Task(id="t1", x=120, y=80))

        reconciler.apply(event("initial", {
            "tasks": [{"id": "t1", "status": "in_progress", "x": 500, "y": 500}],
        }))

        task = scene.get_task("t1")
        assert (task.x, task.y) == (120, 80)
        assert task.status == "in_progress"

    def test_snapshot_positions_unplaced_task(self, scene, reconciler):
        scene.add_node(Task(id="t1"))
        reconciler.apply(event("initial", {"tasks": [{"id": "t1", "x": 5, "y": 6}]}))
        assert (scene.get_task("t1").x, scene.get_task("t1").y) == (5, 6)

    def test_new_tasks_added(self, scene, reconciler):
        reconciler.apply(event("initial", {
            "tasks": [{"id": "t1", "from": "user", "to": "alice", "description": "Write"}],
        }))

        task = scene.get_task("t1")
        assert task.from_agent == "user"
        assert task.to == "alice"
        assert task.description == "Write"
        assert task.input_task_ids == []

    def test_task_list_is_authoritative(self, scene, reconciler):
        scene.add_node(Task(id="stale", x=1, y=1))
        reconciler.apply(event("initial", {"tasks": [{"id": "t1"}]}))
        assert "stale" not in scene
        assert "t1" in scene

    def test_partial_snapshot_keeps_tasks(self, scene, reconciler):
        scene.add_node(Task(id="t1"))
        reconciler.apply(event("workspace.progress", {"workspace_progress": {"total_tasks": 1}}))
        assert "t1" in scene
        assert scene.workspace_progress == {"total_tasks": 1}

    def test_malformed_task_skipped(self, scene, reconciler):
        reconciler.apply(event("initial", {"tasks": [{"description": "no id"}, {"id": "ok"}]}))
        assert [t.id for t in scene.tasks()] == ["ok"]

    def test_malformed_entry_keeps_placed_task(self, scene, reconciler):
        scene.add_node(Task(id="t1", x=120, y=80, status="in_progress"))
        scene.add_node(Agent(id="alice", x=100, y=500))
        scene.add_connection("t1", "output", "alice", "input")

        reconciler.apply(event("initial", {"tasks": [{"id": "t1", "error": {"code": 1}}]}))

        task = scene.get_task("t1")
        assert (task.x, task.y) == (120, 80)
        assert task.status == "in_progress"
        assert len(scene.connections) == 1

    def test_id_collision_with_agent_skipped(self, scene, reconciler):
        scene.add_node(Agent(id="alice"))
        reconciler.apply(event("initial", {"tasks": [{"id": "alice"}]}))
        assert scene.get_agent("alice") is not None
        assert scene.tasks() == []

    def test_agents_and_stats(self, scene, reconciler):
        reconciler.apply(event("initial", {
            "agents": ["alice", {"name": "bob"}],
            "agent_stats": {"alice": {"status": "busy", "completed_tasks": 2}},
        }))

        assert scene.get_agent("bob") is not None
        assert scene.get_agent("alice").status == "busy"
        assert scene.get_agent("alice").completed_tasks == 2

    def test_snapshot_reapplied_is_stable(self, scene, reconciler):
        snapshot = {
            "agents": ["alice"],
            "tasks": [{"id": "t1", "to": "alice", "status": "completed", "result": "r", "x": 1, "y": 2}],
        }
        reconciler.apply(event("initial", snapshot))
        first = (_task_state(scene), _agent_state(scene))

        reconciler.apply(event("initial", snapshot))

        assert (_task_state(scene), _agent_state(scene)) == first


# ============================================================================
# TASK EVENTS
# ============================================================================

class TestTaskEvents:
    """Tests for task.created and lifecycle events."""

    def test_created_from_envelope(self, scene, reconciler, notifications):
        reconciler.apply(event("task.created", {"task": {"id": "t1", "from": "user", "to": "alice"}}))

        task = scene.get_task("t1")
        assert task.status == "pending"
        assert task.created_at == TS
        assert scene.timeline[0]["type"] == "task.created"
        assert notifications == [("Task created", "info")]

    def test_created_with_task_id_key(self, scene, reconciler):
        reconciler.apply(event("task.created", {"task_id": "t2", "description": "x"}))
        assert scene.get_task("t2").description == "x"

    def test_created_twice_updates(self, scene, reconciler):
        reconciler.apply(event("task.created", {"id": "t1", "description": "a"}))
        reconciler.apply(event("task.created", {"id": "t1", "description": "b"}))
        assert len(scene.tasks()) == 1
        assert scene.get_task("t1").description == "b"

    def test_created_redelivered_keeps_status(self, scene, reconciler):
        created = event("task.created", {"task": {"id": "t1", "to": "alice", "description": "Write"}})
        reconciler.apply(created)
        reconciler.apply(event("task.started", {"task_id": "t1"}, timestamp="2024-05-01T10:05:00"))

        reconciler.apply(event(
            "task.created",
            {"task": {"id": "t1", "to": "alice", "description": "Write"}},
            timestamp="2024-05-01T10:09:00",
        ))

        task = scene.get_task("t1")
        assert task.status == "in_progress"
        assert task.created_at == TS
        assert task.started_at == "2024-05-01T10:05:00"
        assert [e["type"] for e in scene.timeline] == ["task.started", "task.created"]

    def test_created_without_id_ignored(self, scene, reconciler):
        assert reconciler.apply(event("task.created", {"description": "?"})) is False
        assert scene.tasks() == []

    def test_lifecycle_for_unknown_task_dropped(self, scene, reconciler):
        assert reconciler.apply(event("task.started", {"task_id": "ghost"})) is False
        assert scene.tasks() == []
        assert len(scene.timeline) == 0

    def test_repeated_lifecycle_recorded_once(self, scene, reconciler, notifications):
        scene.add_node(Task(id="t1", description="Write"))
        started = event("task.started", {"task_id": "t1"})

        assert reconciler.apply(started) is True
        revision = scene.revision
        assert reconciler.apply(started) is False

        assert len(scene.timeline) == 1
        assert scene.revision == revision
        assert notifications == [("Write started", "info")]

    def test_started(self, scene, reconciler, notifications):
        scene.add_node(Agent(id="alice"))
        scene.add_node(Task(id="t1", to="alice", description="Write"))

        reconciler.apply(event("task.started", {"task_id": "t1", "assigned_to": "alice"}))

        task = scene.get_task("t1")
        assert task.status == "in_progress"
        assert task.started_at == TS
        assert scene.get_agent("alice").status == "active"
        assert notifications[-1] == ("Write started", "info")

    def test_completed(self, scene, reconciler, notifications):
        scene.add_node(Agent(id="alice"))
        scene.add_node(Task(id="t1", to="alice", description="Write", status="in_progress"))

        reconciler.apply(event("task.completed", {"task_id": "t1", "result": "done"}))

        assert scene.get_task("t1").status == "completed"
        assert scene.get_task("t1").result == "done"
        assert scene.get_agent("alice").last_result == "done"
        assert notifications[-1] == ("Write completed", "success")

    def test_completed_is_idempotent(self, scene, reconciler):
        scene.add_node(Agent(id="alice"))
        scene.add_node(Task(id="t1", to="alice", status="in_progress"))
        completed = event("task.completed", {"task_id": "t1", "result": "done"})

        reconciler.apply(completed)
        once = (_task_state(scene), _agent_state(scene))
        reconciler.apply(completed)

        assert (_task_state(scene), _agent_state(scene)) == once

    def test_failed_without_error(self, scene, reconciler, notifications):
        scene.add_node(Task(id="t1", description="Write"))

        reconciler.apply(event("task.failed", {"task_id": "t1"}))

        assert scene.get_task("t1").status == "failed"
        assert notifications[-1] == ("Write failed: Unknown error", "error")

    def test_failed_with_error(self, scene, reconciler):
        scene.add_node(Task(id="t1"))
        reconciler.apply(event("task.failed", {"task_id": "t1", "error": "timeout"}))
        assert scene.get_task("t1").error == "timeout"

    def test_unknown_event_ignored(self, reconciler):
        assert reconciler.apply(event("agent.heartbeat", {})) is False

    def test_on_change_called(self, scene):
        calls = []
        reconciler = EventReconciler(scene, on_change=lambda: calls.append(1))
        reconciler.apply(event("initial", {}))
        reconciler.apply(event("agent.heartbeat", {}))
        assert calls == [1]


# ============================================================================
# EXECUTION LOGS
# ============================================================================

class TestExecutionLogs:
    """Tests for execution sub-events."""

    def test_tool_call_message(self, scene, reconciler):
        scene.add_node(Task(id="t1"))
        reconciler.apply(event("task.tool_call", {"task_id": "t1", "tool_name": "search"}))

        entry = scene.logs_for("t1")[0]
        assert entry == {"type": "tool_call", "message": "Calling tool: search", "timestamp": TS, "tool_name": "search"}

    def test_default_message(self, scene, reconciler):
        reconciler.apply(event("task.thinking", {"task_id": "t1"}))
        assert scene.logs_for("t1")[0]["message"] == "Analyzing task..."

    def test_explicit_message(self, scene, reconciler):
        reconciler.apply(event("task.progress", {"task_id": "t1", "message": "50%"}))
        assert scene.logs_for("t1")[0]["message"] == "50%"

    def test_log_bounded(self, scene, reconciler):
        for i in range(LOG_CAPACITY + 10):
            reconciler.apply(event("task.progress", {"task_id": "t1", "message": str(i)}))
        logs = scene.logs_for("t1")
        assert len(logs) == LOG_CAPACITY
        assert logs[-1]["message"] == str(LOG_CAPACITY + 9)

    def test_without_task_id(self, scene, reconciler):
        assert reconciler.apply(event("task.thinking", {})) is False


# ============================================================================
# END TO END
# ============================================================================

class TestScenario:
    """A task's full life as seen on the stream."""

    def test_created_started_completed(self, scene, reconciler):
        reconciler.apply(event("initial", {"agents": ["alice"], "tasks": []}))
        scene.move_node("alice", 100, 500)

        reconciler.apply(event("task.created", {"task": {
            "id": "t1", "from": "user", "to": "alice", "description": "Summarize",
        }}))
        reconciler.apply(event("task.started", {"task_id": "t1", "assigned_to": "alice"}))
        reconciler.apply(event("task.tool_call", {"task_id": "t1", "tool_name": "read"}))
        reconciler.apply(event("task.completed", {"task_id": "t1", "result": "Short"}))

        task = scene.get_task("t1")
        assert task.status == "completed"
        assert task.result == "Short"
        assert scene.get_agent("alice").last_result == "Short"
        assert [e["type"] for e in scene.timeline] == [
            "task.completed", "task.tool_call", "task.started", "task.created",
        ]
        assert len(scene.logs_for("t1")) == 1

    def test_dragged_position_survives_later_events(self, scene, reconciler, controller):
        reconciler.apply(event("initial", {"agents": [{"name": "writer"}], "tasks": []}))
        scene.move_node("writer", 100, 500)

        reconciler.apply(event("task.created", {"task": {"id": "t1", "from": "user", "to": "writer"}}))
        assert scene.get_task("t1").status == "pending"
        scene.move_node("t1", 400, 200)

        reconciler.apply(event("task.started", {"task_id": "t1"}))
        assert scene.get_task("t1").status == "in_progress"

        # Identity viewport: drag the card body by +40 world units
        controller.pointer_down(400, 200)
        controller.pointer_move(440, 200)
        controller.pointer_up(440, 200)
        assert (scene.get_task("t1").x, scene.get_task("t1").y) == (440, 200)

        reconciler.apply(event("task.completed", {"task_id": "t1", "result": "done"}))
        reconciler.apply(event("initial", {"tasks": [
            {"id": "t1", "to": "writer", "status": "completed", "x": 50, "y": 50},
        ]}))

        task = scene.get_task("t1")
        assert task.status == "completed"
        assert (task.x, task.y) == (440, 200)


# ============================================================================
# STREAM SUPERVISOR
# ============================================================================

class FakeStream:
    def __init__(self, events):
        self._events = list(events)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self._events:
            yield item


class TestStreamSupervisor:
    """Tests for reconnect behavior."""

    @pytest.mark.asyncio
    async def test_reconnects_with_fixed_delay_and_resyncs(self):
        streams = [FakeStream([event("task.started", {"task_id": "a"})]),
                   FakeStream([event("task.completed", {"task_id": "a"})])]
        sunk = []
        sleeps = []

        def open_stream():
            if not streams:
                raise ConnectionError("server down")
            return streams.pop(0)

        async def fetch_snapshot():
            return event("initial", {"tasks": []})

        supervisor = None

        async def fake_sleep(delay):
            sleeps.append(delay)
            if len(sleeps) >= 3:
                supervisor.running = False

        supervisor = StreamSupervisor(
            open_stream, sunk.append, fetch_snapshot=fetch_snapshot,
            reconnect_delay=5.0, sleep=fake_sleep,
        )

        await supervisor.run()

        assert [e.type for e in sunk] == ["task.started", "initial", "task.completed"]
        assert sleeps == [5.0, 5.0, 5.0]
        assert supervisor.connections == 2

    @pytest.mark.asyncio
    async def test_stop_cancels_run(self):
        opened = asyncio.Event()

        class Hanging(FakeStream):
            async def _iterate(self):
                opened.set()
                await asyncio.Event().wait()
                yield  # pragma: no cover

        supervisor = StreamSupervisor(lambda: Hanging([]), lambda e: None)
        supervisor.start()
        await opened.wait()

        await supervisor.stop()

        assert supervisor.running is False
