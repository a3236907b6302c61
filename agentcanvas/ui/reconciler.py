"""
Live event reconciliation for AgentCanvas.

EventReconciler applies progress-stream events to the SceneModel as
idempotent patches. Events are applied in arrival order, one at a time,
on the UI event loop, so no locking is needed.

Merge rules:
- snapshots replace aggregate data but never move a task the user has
  already placed (local x/y wins over snapshot x/y)
- lifecycle events patch known tasks and are dropped for unknown ids;
  a repeat that finds the task already in its target status is ignored
- only task.created and snapshots introduce new tasks; a redelivered
  task.created patches just the fields it carries
- execution sub-events are appended to the task's bounded log

StreamSupervisor owns the stream connection: it opens a stream, feeds
every event to a sink, and on any error or close waits a fixed delay and
reconnects, resyncing from a fresh snapshot.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from agentcanvas.api.models import TaskPayload
from agentcanvas.core.events import (
    EXECUTION_EVENTS,
    LIFECYCLE_EVENTS,
    SNAPSHOT_EVENTS,
    StreamEvent,
    StreamEventType,
)
from agentcanvas.core.nodes import Agent, Task, TaskStatus
from agentcanvas.core.scene import TASK_FIELDS, SceneModel

logger = logging.getLogger(__name__)


# Default log messages when a sub-event carries none
_LOG_DEFAULTS = {
    StreamEventType.TASK_THINKING.value: "Analyzing task...",
    StreamEventType.TASK_TOOL_RESULT.value: "Tool returned a result",
    StreamEventType.TASK_TOOL_SUCCESS.value: "Tool succeeded",
    StreamEventType.TASK_TOOL_ERROR.value: "Tool failed",
    StreamEventType.TASK_PROGRESS.value: "Task progress update",
}

_LIFECYCLE_STATUS = {
    StreamEventType.TASK_STARTED.value: TaskStatus.IN_PROGRESS.value,
    StreamEventType.TASK_COMPLETED.value: TaskStatus.COMPLETED.value,
    StreamEventType.TASK_FAILED.value: TaskStatus.FAILED.value,
}


class EventReconciler:
    """
    Applies StreamEvents to a SceneModel.

    Args:
        scene: Scene to patch.
        notifier: `notifier(message, level)` for task lifecycle toasts.
        on_change: Called after every event that changed the scene.
    """

    def __init__(
        self,
        scene: SceneModel,
        notifier: Optional[Callable[[str, str], None]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.scene = scene
        self._notifier = notifier
        self._on_change = on_change

    def _notify(self, message: str, level: str) -> None:
        if self._notifier is not None:
            self._notifier(message, level)

    def apply(self, event: StreamEvent) -> bool:
        """
        Apply one event.

        Returns:
            True if the scene changed.
        """
        if event.type in SNAPSHOT_EVENTS:
            changed = self.apply_snapshot(event.data)
        elif event.type == StreamEventType.TASK_CREATED.value:
            changed = self._task_created(event)
        elif event.type in LIFECYCLE_EVENTS:
            changed = self._task_lifecycle(event)
        elif event.type in EXECUTION_EVENTS:
            changed = self._execution_log(event)
        else:
            logger.debug(f"Ignoring unknown event type: {event.type}")
            return False

        if changed and self._on_change is not None:
            self._on_change()
        return changed

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def apply_snapshot(self, data: Dict[str, Any]) -> bool:
        """
        Merge a full or partial workspace snapshot.

        Keys that are absent leave the corresponding scene data untouched.
        When `tasks` is present it is the complete task list: local tasks
        missing from it are removed.
        """
        scene = self.scene

        progress = data.get("workspace_progress")
        if isinstance(progress, dict):
            scene.workspace_progress = dict(progress)

        for agent in data.get("agents") or []:
            name = agent.get("name") if isinstance(agent, dict) else agent
            if name and str(name) not in scene:
                scene.add_node(Agent(id=str(name)))
                logger.info(f"Agent joined workspace: {name}")

        stats = data.get("agent_stats")
        if isinstance(stats, dict):
            for name, record in stats.items():
                if isinstance(record, dict):
                    scene.update_agent_stats(name, record)

        tasks = data.get("tasks")
        if isinstance(tasks, list):
            self._merge_tasks(tasks)

        scene.touch()
        return True

    def _merge_tasks(self, raw_tasks) -> None:
        scene = self.scene
        seen = set()

        for raw in raw_tasks:
            # A malformed entry still counts as present so the local task survives
            if isinstance(raw, dict) and raw.get("id"):
                seen.add(str(raw["id"]))
            try:
                payload = TaskPayload.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping malformed task in snapshot: {e}")
                continue
            seen.add(payload.id)

            task = scene.get_task(payload.id)
            if task is None:
                if payload.id in scene:
                    logger.warning(f"Task id {payload.id} collides with another node; skipped")
                    continue
                scene.add_node(self._task_from_payload(payload))
                continue

            scene.update_task(payload.id, **self._payload_fields(payload))
            if not task.positioned and payload.x is not None and payload.y is not None:
                scene.move_node(task.id, payload.x, payload.y)

        for task in scene.tasks():
            if task.id not in seen:
                logger.debug(f"Task {task.id} not in snapshot; removing")
                scene.remove_node(task.id)

    @staticmethod
    def _payload_fields(payload: TaskPayload) -> Dict[str, Any]:
        data = payload.model_dump()
        return {name: data[name] for name in TASK_FIELDS if name in data}

    def _task_from_payload(self, payload: TaskPayload) -> Task:
        task = Task(id=payload.id, x=payload.x, y=payload.y)
        for name, value in self._payload_fields(payload).items():
            setattr(task, name, value)
        if task.input_task_ids is None:
            task.input_task_ids = []
        return task

    # ========================================================================
    # TASK EVENTS
    # ========================================================================

    def _task_created(self, event: StreamEvent) -> bool:
        data = dict(event.data.get("task") or event.data)
        task_id = data.get("id") or data.get("task_id")
        if not task_id:
            logger.debug(f"task.created without id: {event.data}")
            return False
        data["id"] = task_id

        existing = self.scene.get_task(task_id)
        if existing is None:
            data.setdefault("status", TaskStatus.PENDING.value)
            data.setdefault("created_at", event.timestamp)

        try:
            payload = TaskPayload.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed task.created payload: {e}")
            return False

        # Redelivery: patch only what the event carries, never reset status
        if existing is not None:
            logger.debug(f"task.created redelivered for {task_id}")
            fields = {
                name: value
                for name, value in payload.model_dump(exclude_unset=True).items()
                if name in TASK_FIELDS
            }
            if fields:
                self.scene.update_task(task_id, **fields)
            return bool(fields)

        if task_id in self.scene:
            logger.warning(f"Task id {task_id} collides with another node; skipped")
            return False

        self._record(event)
        self._notify("Task created", "info")
        self.scene.add_node(self._task_from_payload(payload))
        logger.info(f"Task created: {task_id} -> {payload.to}")
        return True

    def _task_lifecycle(self, event: StreamEvent) -> bool:
        data = event.data
        task_id = event.task_id

        task = self.scene.get_task(task_id)
        if task is None:
            logger.debug(f"Dropping {event.type} for unknown task {task_id}")
            return False

        target = _LIFECYCLE_STATUS[event.type]
        if task.status == target:
            logger.debug(f"Ignoring repeated {event.type} for {task_id}")
            return False

        self._record(event)
        timestamp = data.get("timestamp") or event.timestamp
        description = data.get("description") or task.description or "Task"

        if event.type == StreamEventType.TASK_STARTED.value:
            self.scene.update_task(
                task_id,
                status=TaskStatus.IN_PROGRESS.value,
                started_at=data.get("started_at") or timestamp,
            )
            agent = self.scene.get_agent(data.get("assigned_to") or task.to)
            if agent is not None:
                agent.status = "active"
            self._notify(f"{description} started", "info")

        elif event.type == StreamEventType.TASK_COMPLETED.value:
            fields = {
                "status": TaskStatus.COMPLETED.value,
                "completed_at": data.get("completed_at") or timestamp,
            }
            result = data.get("result")
            if result:
                fields["result"] = result
                agent = self.scene.get_agent(task.to)
                if agent is not None:
                    agent.last_result = result
            self.scene.update_task(task_id, **fields)
            self._notify(f"{description} completed", "success")

        elif event.type == StreamEventType.TASK_FAILED.value:
            error = data.get("error")
            self.scene.update_task(
                task_id,
                status=TaskStatus.FAILED.value,
                error=error,
                completed_at=data.get("completed_at") or timestamp,
            )
            self._notify(f"{description} failed: {error or 'Unknown error'}", "error")

        return True

    def _execution_log(self, event: StreamEvent) -> bool:
        data = event.data
        task_id = event.task_id
        self._record(event)
        if not task_id:
            return False

        kind = event.type.split(".", 1)[1]
        if event.type == StreamEventType.TASK_TOOL_CALL.value:
            message = f"Calling tool: {data.get('tool_name') or 'Unknown tool'}"
        else:
            message = data.get("message") or _LOG_DEFAULTS.get(event.type, kind)

        entry = {"type": kind, "message": message, "timestamp": event.timestamp}
        if data.get("tool_name"):
            entry["tool_name"] = data["tool_name"]
        self.scene.append_log(task_id, entry)
        return True

    def _record(self, event: StreamEvent) -> None:
        self.scene.record_timeline({
            "type": event.type,
            "task_id": event.task_id,
            "data": event.data,
            "timestamp": event.timestamp,
        })


# ============================================================================
# STREAM SUPERVISOR
# ============================================================================

class StreamSupervisor:
    """
    Keeps a progress stream subscription alive.

    Args:
        open_stream: Returns a fresh, unopened stream (async context
            manager yielding an async iterator of StreamEvent).
        sink: Receives each event in arrival order.
        fetch_snapshot: Coroutine returning an `initial`-shaped StreamEvent;
            called after every reconnect to resynchronize.
        reconnect_delay: Fixed wait between attempts (seconds).
        sleep: Sleep coroutine (injectable for tests).
    """

    def __init__(
        self,
        open_stream: Callable[[], Any],
        sink: Callable[[StreamEvent], None],
        fetch_snapshot: Optional[Callable[[], Awaitable[Optional[StreamEvent]]]] = None,
        reconnect_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._open_stream = open_stream
        self._sink = sink
        self._fetch_snapshot = fetch_snapshot
        self.reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.running = False
        self.connections = 0

    async def _consume(self) -> None:
        async with self._open_stream() as stream:
            self.connections += 1
            if self.connections > 1 and self._fetch_snapshot is not None:
                snapshot = await self._fetch_snapshot()
                if snapshot is not None:
                    self._sink(snapshot)
            async for event in stream:
                self._sink(event)

    async def run(self) -> None:
        """Consume the stream until stopped, reconnecting after every failure."""
        self.running = True
        while self.running:
            try:
                await self._consume()
                logger.info("Progress stream ended")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Progress stream error: {e}")

            if not self.running:
                break
            logger.info(f"Reconnecting progress stream in {self.reconnect_delay}s")
            await self._sleep(self.reconnect_delay)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stream supervisor stopped")

