"""
Workspace progress events for AgentCanvas.

The orchestration server pushes named events over a server-sent event
stream. Each frame is either:
- a snapshot object (`initial`, `workspace.progress`) carrying
  workspace_progress / agent_stats / tasks directly, or
- an envelope {type, workspace_id, timestamp, source, data} for task events.

StreamEvent normalizes both shapes into (type, data, timestamp).
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# EVENT TYPES
# ============================================================================

class StreamEventType(str, Enum):
    """Event names sent on the progress stream."""

    # Snapshots
    INITIAL = "initial"
    WORKSPACE_PROGRESS = "workspace.progress"

    # Task lifecycle
    TASK_CREATED = "task.created"
    TASK_STARTED = "task.started"
    TASK_COMPLETED = "task.completed"
    TASK_FAILED = "task.failed"

    # Execution sub-events
    TASK_THINKING = "task.thinking"
    TASK_TOOL_CALL = "task.tool_call"
    TASK_TOOL_RESULT = "task.tool_result"
    TASK_TOOL_SUCCESS = "task.tool_success"
    TASK_TOOL_ERROR = "task.tool_error"
    TASK_PROGRESS = "task.progress"


SNAPSHOT_EVENTS = frozenset({
    StreamEventType.INITIAL.value,
    StreamEventType.WORKSPACE_PROGRESS.value,
})

LIFECYCLE_EVENTS = frozenset({
    StreamEventType.TASK_STARTED.value,
    StreamEventType.TASK_COMPLETED.value,
    StreamEventType.TASK_FAILED.value,
})

EXECUTION_EVENTS = frozenset({
    StreamEventType.TASK_THINKING.value,
    StreamEventType.TASK_TOOL_CALL.value,
    StreamEventType.TASK_TOOL_RESULT.value,
    StreamEventType.TASK_TOOL_SUCCESS.value,
    StreamEventType.TASK_TOOL_ERROR.value,
    StreamEventType.TASK_PROGRESS.value,
})


# ============================================================================
# EVENT MODEL
# ============================================================================

class StreamEvent:
    """
    One event from the progress stream.

    Attributes:
        type: Event name (e.g. "task.started"); unknown names are kept as-is.
        data: Category-specific payload.
        timestamp: ISO timestamp (from the server when present).
    """

    def __init__(self, event_type: str, data: Optional[Dict[str, Any]] = None, timestamp: Optional[str] = None):
        self.type = event_type.value if isinstance(event_type, StreamEventType) else event_type
        self.data = data or {}
        self.timestamp = timestamp or datetime.now().isoformat()

    def __repr__(self) -> str:
        return f"StreamEvent(type={self.type}, data={self.data}, timestamp={self.timestamp})"

    @property
    def task_id(self) -> Optional[str]:
        """Task id from the payload, or from a nested `task` object (task.created)."""
        task_id = self.data.get("task_id") or self.data.get("id")
        nested = self.data.get("task")
        if not task_id and isinstance(nested, dict):
            task_id = nested.get("id") or nested.get("task_id")
        return task_id

    @classmethod
    def from_frame(cls, name: Optional[str], payload: Any) -> Optional["StreamEvent"]:
        """
        Build an event from a decoded SSE frame.

        Args:
            name: The frame's `event:` field (None for unnamed frames).
            payload: Decoded JSON from the frame's `data:` field.

        Returns:
            StreamEvent, or None if the frame carries no usable type.
        """
        if not isinstance(payload, dict):
            logger.debug(f"Ignoring non-object frame payload: {payload!r}")
            return None

        event_type = name if name and name != "message" else payload.get("type")
        if not event_type:
            logger.debug(f"Ignoring frame without event type: {payload}")
            return None

        inner = payload.get("data")
        if isinstance(inner, dict) and "type" in payload:
            return cls(event_type, inner, payload.get("timestamp"))
        return cls(event_type, payload, payload.get("timestamp"))


# ============================================================================
# QUEUE HELPERS
# ============================================================================

async def iter_queue(queue: asyncio.Queue) -> AsyncIterator[Any]:
    """
    Iterate over queue items until the None sentinel arrives.

    Args:
        queue: Queue fed by a producer that ends with `put(None)`.

    Yields:
        Items from the queue.
    """
    while True:
        item = await queue.get()
        if item is None:
            break
        yield item
