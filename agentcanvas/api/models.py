"""
Wire models for the orchestration server API.

Pydantic models for what AgentCanvas reads from the server (workspace
snapshot, tasks, agent stats) and what it sends (layout snapshots and
mutation intents).

Mutation intents are the contract between the interaction layer and the
API client: the canvas only states *what* should change (operation +
node id + parameters); RequestDispatcher decides how to send it.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# SERVER -> CLIENT
# ============================================================================

class TaskPayload(BaseModel):
    """
    A task as reported by the server.

    Attributes:
        id: Task id.
        from_agent: Sender ("user", "system" or an agent name); wire name "from".
        to: Target agent name or "unassigned".
        status: Lifecycle status string.
        x, y: Server-side position (None when never placed).
    """

    id: str
    description: str = ""
    from_agent: Optional[str] = Field(default=None, alias="from")
    to: str = "unassigned"
    status: str = "pending"
    result: Optional[Any] = None
    error: Optional[str] = None
    input_task_ids: List[str] = Field(default_factory=list)
    combiner_node_id: Optional[str] = None
    combiner_type: Optional[str] = None
    priority: Optional[Union[int, str]] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None

    class Config:
        populate_by_name = True

    @field_validator("input_task_ids", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("to", mode="before")
    @classmethod
    def _empty_to_unassigned(cls, value):
        return value or "unassigned"


class AgentStats(BaseModel):
    """Per-agent counters from workspace progress updates."""

    status: Optional[str] = None
    current_tasks: List[str] = Field(default_factory=list)
    queued_tasks: List[str] = Field(default_factory=list)
    completed_tasks: int = 0
    failed_tasks: int = 0
    total_executions: int = 0

    @field_validator("current_tasks", "queued_tasks", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []


class WorkspaceProgress(BaseModel):
    """Aggregate workspace counters."""

    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    pending_tasks: int = 0
    failed_tasks: int = 0
    percentage: float = 0.0
    active_agents: int = 0
    total_agents: int = 0


class WorkspaceSnapshot(BaseModel):
    """
    Full workspace state from GET /api/studios/{id}.

    `agents` accepts either names or agent objects with a `name` field.
    """

    id: str = ""
    agents: List[Any] = Field(default_factory=list)
    tasks: List[TaskPayload] = Field(default_factory=list)
    agent_stats: Dict[str, AgentStats] = Field(default_factory=dict)
    workspace_progress: Optional[WorkspaceProgress] = None
    layout: Optional[Dict[str, Any]] = None

    @field_validator("agents", "tasks", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("agent_stats", mode="before")
    @classmethod
    def _none_to_dict(cls, value):
        return value or {}

    def agent_names(self) -> List[str]:
        names = []
        for agent in self.agents:
            name = agent.get("name") if isinstance(agent, dict) else agent
            if name:
                names.append(str(name))
        return names

    def to_event_data(self) -> Dict[str, Any]:
        """Shape this snapshot like an `initial` stream payload."""
        return {
            "agents": self.agent_names(),
            "tasks": [t.model_dump(by_alias=True) for t in self.tasks],
            "agent_stats": {name: s.model_dump() for name, s in self.agent_stats.items()},
            "workspace_progress": self.workspace_progress.model_dump() if self.workspace_progress else None,
        }


# ============================================================================
# CLIENT -> SERVER
# ============================================================================

class LayoutSnapshot(BaseModel):
    """Body of PUT /api/orchestration/workspace/layout."""

    workspace_id: str
    task_positions: Dict[str, Dict[str, Optional[float]]] = Field(default_factory=dict)
    agent_positions: Dict[str, Dict[str, Optional[float]]] = Field(default_factory=dict)
    combiner_nodes: List[Dict[str, Any]] = Field(default_factory=list)
    workflow_connections: List[Dict[str, Any]] = Field(default_factory=list)
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0


class MutationOp(str, Enum):
    """Operations the canvas can request from the server."""

    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    EXECUTE_TASK = "execute_task"
    RERUN_TASK = "rerun_task"
    CREATE_CONNECTION = "create_connection"
    DELETE_CONNECTION = "delete_connection"
    ADD_AGENT = "add_agent"
    REMOVE_AGENT = "remove_agent"
    EXECUTE_COMBINER = "execute_combiner"
    CREATE_COMBINER_TASK = "create_combiner_task"
    SAVE_LAYOUT = "save_layout"


class MutationRequest(BaseModel):
    """
    A fire-and-forget change request emitted by the canvas.

    Attributes:
        op: Operation (from MutationOp).
        node_id: Node the operation targets (task id, agent name, ...).
        params: Operation-specific parameters.
        id: Unique request id for log correlation.
        timestamp: ISO 8601 creation time.
    """

    op: MutationOp
    node_id: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

    class Config:
        use_enum_values = True


__all__ = [
    "TaskPayload",
    "AgentStats",
    "WorkspaceProgress",
    "WorkspaceSnapshot",
    "LayoutSnapshot",
    "MutationOp",
    "MutationRequest",
]
