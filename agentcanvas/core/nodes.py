"""
Scene node types for AgentCanvas.

A node is one of three variants sharing a single id namespace:
- Agent: a worker, keyed by its name
- Task: a unit of work flowing between agents
- Combiner: an aggregation node merging several task outputs

Each variant carries a `kind` discriminant; code that needs
variant-specific behavior dispatches on it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional


# ============================================================================
# ENUMS
# ============================================================================

class NodeKind(str, Enum):
    """Node variant discriminant."""
    AGENT = "agent"
    TASK = "task"
    COMBINER = "combiner"


class PortDirection(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


class TaskStatus(str, Enum):
    """Task lifecycle states reported by the orchestration server."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CombinerMode(str, Enum):
    """Combiner aggregation kinds."""
    MERGE = "merge"
    APPEND = "append"
    SUMMARIZE = "summarize"
    COMPARE = "compare"
    VOTE = "vote"


UNASSIGNED = "unassigned"

# Agent colors cycle through this palette in arrival order
AGENT_PALETTE = [
    "#3b82f6", "#10b981", "#f59e0b", "#ef4444",
    "#8b5cf6", "#ec4899", "#14b8a6", "#f97316",
]

# name, color, backend combination mode, fixed instruction
COMBINER_TYPES: Dict[CombinerMode, Dict[str, str]] = {
    CombinerMode.MERGE: {
        "name": "Merge",
        "color": "#8b5cf6",
        "result_combination_mode": "merge",
        "custom_instruction": "",
    },
    CombinerMode.APPEND: {
        "name": "Append",
        "color": "#3b82f6",
        "result_combination_mode": "append",
        "custom_instruction": "",
    },
    CombinerMode.SUMMARIZE: {
        "name": "Summarize",
        "color": "#10b981",
        "result_combination_mode": "summarize",
        "custom_instruction": "",
    },
    CombinerMode.COMPARE: {
        "name": "Compare",
        "color": "#f59e0b",
        "result_combination_mode": "compare",
        "custom_instruction": "",
    },
    CombinerMode.VOTE: {
        "name": "Vote",
        "color": "#ef4444",
        "result_combination_mode": "custom",
        "custom_instruction": (
            "Analyze all inputs and select the best result based on "
            "quality, accuracy, and completeness."
        ),
    },
}


# ============================================================================
# NODES
# ============================================================================

@dataclass
class Node:
    """
    Fields shared by every node variant.

    Position is None until the node is placed (by the user, a saved
    layout, a snapshot, or the fallback placement).
    """
    id: str
    x: Optional[float] = None
    y: Optional[float] = None
    width: float = 0.0
    height: float = 0.0
    status: str = ""

    kind: ClassVar[NodeKind]

    @property
    def positioned(self) -> bool:
        return self.x is not None and self.y is not None


@dataclass
class Agent(Node):
    """Agent node, centered on (x, y). The id is the agent name."""
    width: float = 120.0
    height: float = 70.0
    status: str = "idle"
    color: str = AGENT_PALETTE[0]
    current_tasks: List[str] = field(default_factory=list)
    queued_tasks: List[str] = field(default_factory=list)
    completed_tasks: int = 0
    failed_tasks: int = 0
    total_executions: int = 0
    last_result: Optional[Any] = None
    pulse_phase: float = 0.0

    kind: ClassVar[NodeKind] = NodeKind.AGENT

    @property
    def name(self) -> str:
        return self.id


@dataclass
class Task(Node):
    """Task card, centered on (x, y)."""
    width: float = 160.0
    height: float = 60.0
    status: str = TaskStatus.PENDING.value
    description: str = ""
    from_agent: Optional[str] = None
    to: str = UNASSIGNED
    result: Optional[Any] = None
    error: Optional[str] = None
    input_task_ids: List[str] = field(default_factory=list)
    combiner_node_id: Optional[str] = None
    combiner_type: Optional[str] = None
    priority: Optional[Any] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    progress: float = 0.0

    kind: ClassVar[NodeKind] = NodeKind.TASK

    @property
    def is_assigned(self) -> bool:
        return bool(self.to) and self.to != UNASSIGNED

    def recency(self) -> str:
        """Most recent lifecycle timestamp (ISO strings sort chronologically)."""
        return self.completed_at or self.started_at or self.created_at or ""


@dataclass
class Combiner(Node):
    """
    Aggregation node, anchored at its top-left corner.

    Input ports ("input-0", "input-1", ...) grow as connections arrive;
    there is always exactly one output port named "output".
    """
    width: float = 120.0
    height: float = 80.0
    status: str = "idle"
    mode: CombinerMode = CombinerMode.MERGE
    input_ports: List[str] = field(default_factory=list)
    task_id: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.COMBINER

    @property
    def name(self) -> str:
        return COMBINER_TYPES[self.mode]["name"]

    @property
    def color(self) -> str:
        return COMBINER_TYPES[self.mode]["color"]

    @property
    def result_combination_mode(self) -> str:
        return COMBINER_TYPES[self.mode]["result_combination_mode"]

    @property
    def custom_instruction(self) -> str:
        return COMBINER_TYPES[self.mode]["custom_instruction"]


# ============================================================================
# PORTS & CONNECTIONS
# ============================================================================

@dataclass(frozen=True)
class Port:
    """A named attachment point on a node."""
    node_id: str
    port_id: str
    direction: PortDirection


@dataclass
class Connection:
    """Directed edge (from_node.from_port) -> (to_node.to_port)."""
    id: str
    from_node: str
    from_port: str
    to_node: str
    to_port: str

    def endpoints(self):
        return (self.from_node, self.from_port, self.to_node, self.to_port)

    def touches(self, node_id: str) -> bool:
        return self.from_node == node_id or self.to_node == node_id
