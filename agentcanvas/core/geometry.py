"""
Fixed geometry for canvas nodes.

Node anchoring:
- Agents and tasks are centered on (x, y).
- Combiners are anchored at their top-left corner.

All hotspot rectangles are in world coordinates and are returned in the
order they must be hit-tested.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

from agentcanvas.core.nodes import (
    Agent,
    Combiner,
    Node,
    NodeKind,
    PortDirection,
    Task,
    TaskStatus,
)


# Hit radii (world units)
PORT_HIT_RADIUS = 14.0
CONNECTION_HIT_THRESHOLD = 10.0
SNAP_RADIUS = 80.0

AGENT_PORT_GAP = 10.0
TASK_PORT_GAP = 5.0
COMBINER_PORT_GAP = 5.0


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle (top-left origin)."""
    x: float
    y: float
    width: float
    height: float

    def contains(self, px: float, py: float) -> bool:
        return (
            self.x <= px <= self.x + self.width
            and self.y <= py <= self.y + self.height
        )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


def node_bounds(node: Node) -> Rect:
    """Bounding rectangle of a node body."""
    x = node.x or 0.0
    y = node.y or 0.0
    if node.kind == NodeKind.COMBINER:
        return Rect(x, y, node.width, node.height)
    return Rect(x - node.width / 2, y - node.height / 2, node.width, node.height)


# ============================================================================
# PORT ANCHORS
# ============================================================================

def combiner_input_spacing(combiner: Combiner) -> float:
    return combiner.width / (max(len(combiner.input_ports), 2) + 1)


def port_anchor(node: Node, port_id: str) -> Tuple[float, float]:
    """
    World position of a port on a node.

    Args:
        node: Owning node.
        port_id: "input", "output", or "input-N" for combiners.

    Returns:
        (x, y) of the port center.
    """
    x = node.x or 0.0
    y = node.y or 0.0

    if node.kind == NodeKind.COMBINER:
        if port_id == "output":
            return x + node.width / 2, y + node.height + COMBINER_PORT_GAP
        spacing = combiner_input_spacing(node)
        index = node.input_ports.index(port_id) if port_id in node.input_ports else len(node.input_ports)
        return x + spacing * (index + 1), y - COMBINER_PORT_GAP

    gap = AGENT_PORT_GAP if node.kind == NodeKind.AGENT else TASK_PORT_GAP
    if port_id == "output":
        return x, y + node.height / 2 + gap
    return x, y - node.height / 2 - gap


def node_ports(node: Node) -> List[Tuple[str, PortDirection]]:
    """List (port_id, direction) pairs a node exposes."""
    if node.kind == NodeKind.COMBINER:
        ports = [(port_id, PortDirection.INPUT) for port_id in node.input_ports]
        ports.append(("output", PortDirection.OUTPUT))
        return ports
    return [("input", PortDirection.INPUT), ("output", PortDirection.OUTPUT)]


# ============================================================================
# HOTSPOTS
# ============================================================================

def task_hotspots(task: Task) -> Dict[str, Rect]:
    """
    Button hotspots on a task card, in hit-test order.

    Keys: "delete", then "execute" (pending) or "rerun" (completed/failed),
    then "assign" (not completed), then "view_log".
    """
    bounds = node_bounds(task)
    left, top = bounds.x, bounds.y
    row_y = top + task.height - 20

    spots: Dict[str, Rect] = {"delete": Rect(left + task.width - 18, top + 4, 14, 14)}
    if task.status == TaskStatus.PENDING:
        spots["execute"] = Rect(left + 6, row_y, 16, 16)
    elif task.status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
        spots["rerun"] = Rect(left + 6, row_y, 16, 16)
    if task.status != TaskStatus.COMPLETED:
        spots["assign"] = Rect(left + 28, row_y, 16, 16)
    spots["view_log"] = Rect(left + 50, row_y, 16, 16)
    return spots


def combiner_hotspots(combiner: Combiner) -> Dict[str, Rect]:
    """Delete / run / assign buttons on a combiner node."""
    x = combiner.x or 0.0
    y = combiner.y or 0.0
    w, h = combiner.width, combiner.height
    return {
        "delete": Rect(x + w - 20, y + 4, 16, 16),
        "run": Rect(x + 6, y + h - 22, 40, 16),
        "assign": Rect(x + w - 46, y + h - 22, 40, 16),
    }


def agent_delete_hotspot(agent: Agent) -> Rect:
    x = agent.x or 0.0
    y = agent.y or 0.0
    return Rect(x + agent.width / 2 - 18, y - agent.height / 2 + 4, 14, 14)


# ============================================================================
# DISTANCES
# ============================================================================

def distance(ax: float, ay: float, bx: float, by: float) -> float:
    return math.hypot(bx - ax, by - ay)


def distance_to_segment(
    px: float, py: float, ax: float, ay: float, bx: float, by: float
) -> float:
    """Shortest distance from point P to segment AB."""
    dx = bx - ax
    dy = by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance(px, py, ax, ay)
    t = ((px - ax) * dx + (py - ay) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return distance(px, py, ax + t * dx, ay + t * dy)
