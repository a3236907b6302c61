"""
SceneModel for AgentCanvas.

The authoritative in-memory graph of a workspace: agents, tasks and
combiners, the connections between their ports, per-task execution logs
and the event timeline. One SceneModel is owned by the canvas and handed
to every collaborator (viewport-independent; all coordinates are world
units).

Invariants enforced here:
- node ids are unique across all variants
- no connection from a node to itself
- an input port accepts at most one incoming connection
"""

import logging
import re
import uuid
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional

from agentcanvas.core.geometry import (
    CONNECTION_HIT_THRESHOLD,
    PORT_HIT_RADIUS,
    agent_delete_hotspot,
    distance,
    distance_to_segment,
    node_bounds,
    node_ports,
    port_anchor,
)
from agentcanvas.core.nodes import (
    UNASSIGNED,
    Agent,
    Combiner,
    CombinerMode,
    Connection,
    Node,
    NodeKind,
    Port,
    PortDirection,
    Task,
)

logger = logging.getLogger(__name__)


LOG_CAPACITY = 50
TIMELINE_CAPACITY = 50

_INPUT_PORT_RE = re.compile(r"input-(\d+)")

# Task attributes that can be patched from server payloads
TASK_FIELDS = (
    "description", "from_agent", "to", "status", "result", "error",
    "input_task_ids", "combiner_node_id", "combiner_type", "priority",
    "created_at", "started_at", "completed_at",
)


def input_port_index(port_id: str) -> int:
    """Numeric suffix of an "input-N" port id (0 when absent)."""
    match = _INPUT_PORT_RE.match(port_id or "")
    return int(match.group(1)) if match else 0


def new_connection_id() -> str:
    return f"conn-{uuid.uuid4().hex[:12]}"


def new_combiner_id() -> str:
    return f"combiner-{uuid.uuid4().hex[:12]}"


class SceneModel:
    """
    Mutable scene graph for one workspace.

    Nodes are kept in insertion order, which is also the draw order; hit
    tests walk them in reverse so the topmost node wins.

    Attributes:
        workspace_id: Workspace the scene belongs to.
        connections: Workflow connections, in creation order.
        timeline: Recent events, newest first.
        workspace_progress: Aggregate counters from the last snapshot.
        revision: Incremented on every mutation (redraw trigger).
    """

    def __init__(self, workspace_id: str = ""):
        self.workspace_id = workspace_id
        self._nodes: Dict[str, Node] = {}
        self.connections: List[Connection] = []
        self.execution_logs: Dict[str, Deque[Dict[str, Any]]] = {}
        self.timeline: Deque[Dict[str, Any]] = deque(maxlen=TIMELINE_CAPACITY)
        self.workspace_progress: Dict[str, Any] = {}
        self.revision = 0

    def touch(self) -> None:
        """Mark the scene as changed."""
        self.revision += 1

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # ========================================================================
    # NODE ACCESS
    # ========================================================================

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def _get_kind(self, node_id: Optional[str], kind: NodeKind):
        node = self.get(node_id)
        if node is not None and node.kind == kind:
            return node
        return None

    def get_agent(self, node_id: Optional[str]) -> Optional[Agent]:
        return self._get_kind(node_id, NodeKind.AGENT)

    def get_task(self, node_id: Optional[str]) -> Optional[Task]:
        return self._get_kind(node_id, NodeKind.TASK)

    def get_combiner(self, node_id: Optional[str]) -> Optional[Combiner]:
        return self._get_kind(node_id, NodeKind.COMBINER)

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def agents(self) -> List[Agent]:
        return [n for n in self._nodes.values() if n.kind == NodeKind.AGENT]

    def tasks(self) -> List[Task]:
        return [n for n in self._nodes.values() if n.kind == NodeKind.TASK]

    def combiners(self) -> List[Combiner]:
        return [n for n in self._nodes.values() if n.kind == NodeKind.COMBINER]

    # ========================================================================
    # NODE MUTATION
    # ========================================================================

    def add_node(self, node: Node) -> bool:
        """
        Add a node to the scene.

        Returns:
            False if the id is already taken by any node variant.
        """
        if node.id in self._nodes:
            logger.info(f"Rejected duplicate node id: {node.id}")
            return False
        self._nodes[node.id] = node
        self.touch()
        return True

    def remove_node(self, node_id: str) -> Optional[Node]:
        """
        Remove a node and every connection touching it.

        Removing an agent also unassigns the tasks targeting it.

        Returns:
            The removed node, or None if it was not present.
        """
        node = self._nodes.pop(node_id, None)
        if node is None:
            logger.debug(f"remove_node: unknown node {node_id}")
            return None

        affected_combiners = {
            c.to_node for c in self.connections
            if c.from_node == node_id and c.to_node in self._nodes
        }
        self.connections = [c for c in self.connections if not c.touches(node_id)]
        for combiner_id in affected_combiners:
            self.cleanup_combiner_input_ports(combiner_id)

        if node.kind == NodeKind.AGENT:
            for task in self.tasks():
                if task.to == node_id:
                    task.to = UNASSIGNED
        elif node.kind == NodeKind.TASK:
            self.execution_logs.pop(node_id, None)

        self.touch()
        logger.debug(f"Removed {node.kind.value} node {node_id}")
        return node

    def move_node(self, node_id: str, x: float, y: float) -> bool:
        node = self.get(node_id)
        if node is None:
            return False
        node.x = x
        node.y = y
        self.touch()
        return True

    def update_task(self, task_id: str, **fields: Any) -> bool:
        """
        Patch task attributes in place.

        Only names in TASK_FIELDS are applied; position is not patchable
        here (use move_node).
        """
        task = self.get_task(task_id)
        if task is None:
            logger.debug(f"update_task: unknown task {task_id}")
            return False
        for name, value in fields.items():
            if name not in TASK_FIELDS:
                continue
            if name == "input_task_ids":
                value = list(value or [])
            setattr(task, name, value)
        self.touch()
        return True

    def update_agent_stats(self, name: str, stats: Dict[str, Any]) -> bool:
        """Apply a server stats record to the agent with this name."""
        agent = self.get_agent(name)
        if agent is None:
            logger.debug(f"Dropping stats for unknown agent: {name}")
            return False
        if stats.get("status"):
            agent.status = stats["status"]
        agent.current_tasks = list(stats.get("current_tasks") or [])
        agent.queued_tasks = list(stats.get("queued_tasks") or [])
        agent.completed_tasks = int(stats.get("completed_tasks") or 0)
        agent.failed_tasks = int(stats.get("failed_tasks") or 0)
        agent.total_executions = int(stats.get("total_executions") or 0)
        self.touch()
        return True

    def clear(self) -> None:
        self._nodes.clear()
        self.connections.clear()
        self.execution_logs.clear()
        self.timeline.clear()
        self.workspace_progress = {}
        self.touch()

    # ========================================================================
    # PORTS
    # ========================================================================

    def ports(self, node_id: str) -> List[Port]:
        node = self.get(node_id)
        if node is None:
            return []
        return [Port(node.id, port_id, direction) for port_id, direction in node_ports(node)]

    def port(self, node_id: str, port_id: str) -> Optional[Port]:
        for candidate in self.ports(node_id):
            if candidate.port_id == port_id:
                return candidate
        return None

    def port_position(self, port: Port):
        node = self.get(port.node_id)
        if node is None:
            return None
        return port_anchor(node, port.port_id)

    def port_at(self, wx: float, wy: float, radius: float = PORT_HIT_RADIUS) -> Optional[Port]:
        """Nearest port within `radius` of a world point."""
        best: Optional[Port] = None
        best_dist = radius
        for node in reversed(list(self._nodes.values())):
            if not node.positioned:
                continue
            for port_id, direction in node_ports(node):
                px, py = port_anchor(node, port_id)
                dist = distance(wx, wy, px, py)
                if dist <= best_dist:
                    best = Port(node.id, port_id, direction)
                    best_dist = dist
        return best

    # ========================================================================
    # HIT TESTING
    # ========================================================================

    def _node_at(self, wx: float, wy: float, kind: NodeKind):
        for node in reversed(list(self._nodes.values())):
            if node.kind != kind or not node.positioned:
                continue
            if node_bounds(node).contains(wx, wy):
                return node
        return None

    def agent_at(self, wx: float, wy: float) -> Optional[Agent]:
        return self._node_at(wx, wy, NodeKind.AGENT)

    def task_at(self, wx: float, wy: float) -> Optional[Task]:
        return self._node_at(wx, wy, NodeKind.TASK)

    def combiner_at(self, wx: float, wy: float) -> Optional[Combiner]:
        return self._node_at(wx, wy, NodeKind.COMBINER)

    def agent_delete_at(self, wx: float, wy: float) -> Optional[Agent]:
        for agent in reversed(self.agents()):
            if agent.positioned and agent_delete_hotspot(agent).contains(wx, wy):
                return agent
        return None

    def nearest_agent_input(self, wx: float, wy: float, radius: float) -> Optional[Agent]:
        """Agent whose input port is closest to the point, within `radius`."""
        best: Optional[Agent] = None
        best_dist = radius
        for agent in self.agents():
            if not agent.positioned:
                continue
            px, py = port_anchor(agent, "input")
            dist = distance(wx, wy, px, py)
            if dist <= best_dist:
                best = agent
                best_dist = dist
        return best

    def connection_at(
        self, wx: float, wy: float, threshold: float = CONNECTION_HIT_THRESHOLD
    ) -> Optional[Connection]:
        """Connection whose straight segment passes within `threshold` of the point."""
        for conn in reversed(self.connections):
            source = self.get(conn.from_node)
            target = self.get(conn.to_node)
            if source is None or target is None:
                continue
            if not (source.positioned and target.positioned):
                continue
            ax, ay = port_anchor(source, conn.from_port)
            bx, by = port_anchor(target, conn.to_port)
            if distance_to_segment(wx, wy, ax, ay, bx, by) <= threshold:
                return conn
        return None

    # ========================================================================
    # CONNECTIONS
    # ========================================================================

    def _has_port(self, node: Node, port_id: str, direction: PortDirection) -> bool:
        return any(
            pid == port_id and pdir == direction for pid, pdir in node_ports(node)
        )

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        return None

    def connections_into(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.to_node == node_id]

    def connections_from(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.from_node == node_id]

    def connection_into_port(self, node_id: str, port_id: str) -> Optional[Connection]:
        for conn in self.connections:
            if conn.to_node == node_id and conn.to_port == port_id:
                return conn
        return None

    def add_connection(
        self,
        from_node: str,
        from_port: str,
        to_node: str,
        to_port: str,
        connection_id: Optional[str] = None,
    ) -> Optional[Connection]:
        """
        Create a connection from an output port to an input port.

        An identical existing connection is returned unchanged.

        Returns:
            The connection, or None if it was rejected (self-loop, unknown
            node or port, or the input port is already occupied).
        """
        if from_node == to_node:
            logger.info(f"Rejected self-loop connection on {from_node}")
            return None

        source = self.get(from_node)
        target = self.get(to_node)
        if source is None or target is None:
            logger.debug(f"Dropping connection to missing node: {from_node} -> {to_node}")
            return None
        if not self._has_port(source, from_port, PortDirection.OUTPUT):
            logger.debug(f"{from_node} has no output port {from_port}")
            return None
        if not self._has_port(target, to_port, PortDirection.INPUT):
            logger.debug(f"{to_node} has no input port {to_port}")
            return None

        endpoints = (from_node, from_port, to_node, to_port)
        for conn in self.connections:
            if conn.endpoints() == endpoints:
                logger.debug(f"Connection already exists: {conn.id}")
                return conn

        if self.connection_into_port(to_node, to_port) is not None:
            logger.info(f"Rejected connection: {to_node}.{to_port} is already connected")
            return None

        conn = Connection(
            id=connection_id or new_connection_id(),
            from_node=from_node,
            from_port=from_port,
            to_node=to_node,
            to_port=to_port,
        )
        self.connections.append(conn)
        self.touch()
        logger.info(f"Connected {from_node}.{from_port} -> {to_node}.{to_port}")
        return conn

    def remove_connection(self, connection_id: str) -> Optional[Connection]:
        """Delete a connection and compact the target combiner's input ports."""
        conn = self.get_connection(connection_id)
        if conn is None:
            return None
        self.connections.remove(conn)
        if self.get_combiner(conn.to_node) is not None:
            self.cleanup_combiner_input_ports(conn.to_node)
        self.touch()
        logger.info(f"Removed connection {connection_id}")
        return conn

    # ========================================================================
    # COMBINER PORTS
    # ========================================================================

    def ensure_combiner_input_port(self, combiner_id: str, port_id: str) -> None:
        combiner = self.get_combiner(combiner_id)
        if combiner is not None and port_id not in combiner.input_ports:
            combiner.input_ports.append(port_id)
            self.touch()

    def next_combiner_input_port(self, combiner_id: str) -> Optional[str]:
        """
        First free input port on a combiner, growing the port list if all
        existing ports are occupied.
        """
        combiner = self.get_combiner(combiner_id)
        if combiner is None:
            return None
        for port_id in combiner.input_ports:
            if self.connection_into_port(combiner_id, port_id) is None:
                return port_id
        index = len(combiner.input_ports)
        while f"input-{index}" in combiner.input_ports:
            index += 1
        port_id = f"input-{index}"
        combiner.input_ports.append(port_id)
        self.touch()
        return port_id

    def cleanup_combiner_input_ports(self, combiner_id: str) -> None:
        """
        Drop unconnected input ports and renumber the rest contiguously
        (input-0, input-1, ...) keeping their relative order.
        """
        combiner = self.get_combiner(combiner_id)
        if combiner is None:
            return

        incoming = sorted(
            (c for c in self.connections if c.to_node == combiner_id and c.to_port.startswith("input")),
            key=lambda c: input_port_index(c.to_port),
        )
        for index, conn in enumerate(incoming):
            conn.to_port = f"input-{index}"
        combiner.input_ports = [f"input-{index}" for index in range(len(incoming))]
        self.touch()

    # ========================================================================
    # EXECUTION LOGS & TIMELINE
    # ========================================================================

    def append_log(self, task_id: str, entry: Dict[str, Any]) -> None:
        """Append an execution log entry (oldest dropped past LOG_CAPACITY)."""
        log = self.execution_logs.get(task_id)
        if log is None:
            log = deque(maxlen=LOG_CAPACITY)
            self.execution_logs[task_id] = log
        log.append(entry)
        self.touch()

    def logs_for(self, task_id: str) -> List[Dict[str, Any]]:
        return list(self.execution_logs.get(task_id, ()))

    def record_timeline(self, entry: Dict[str, Any]) -> None:
        """Prepend an event to the timeline (newest first)."""
        self.timeline.appendleft(entry)
        self.touch()

    # ========================================================================
    # LAYOUT PERSISTENCE
    # ========================================================================

    def to_layout(self, scale: float = 1.0, offset_x: float = 0.0, offset_y: float = 0.0) -> Dict[str, Any]:
        """
        Serialize positions, combiners and connections for the layout store.

        Combiner input ports are compacted first so persisted port ids
        match the live connections.
        """
        for combiner in self.combiners():
            self.cleanup_combiner_input_ports(combiner.id)

        return {
            "workspace_id": self.workspace_id,
            "task_positions": {
                t.id: {"x": t.x, "y": t.y} for t in self.tasks() if t.positioned
            },
            "agent_positions": {
                a.id: {"x": a.x, "y": a.y} for a in self.agents() if a.positioned
            },
            "combiner_nodes": [
                {
                    "id": c.id,
                    "type": "combiner",
                    "combinerType": c.mode.value,
                    "name": c.name,
                    "color": c.color,
                    "x": c.x,
                    "y": c.y,
                    "width": c.width,
                    "height": c.height,
                    "inputPorts": [{"id": port_id} for port_id in c.input_ports],
                    "outputPort": {"id": "output"},
                    "resultCombinationMode": c.result_combination_mode,
                    "customInstruction": c.custom_instruction,
                    "taskId": c.task_id,
                }
                for c in self.combiners()
            ],
            "workflow_connections": [
                {
                    "id": conn.id,
                    "from": conn.from_node,
                    "fromPort": conn.from_port,
                    "to": conn.to_node,
                    "toPort": conn.to_port,
                }
                for conn in self.connections
            ],
            "scale": scale,
            "offset_x": offset_x,
            "offset_y": offset_y,
        }

    def apply_layout(self, layout: Dict[str, Any]) -> None:
        """
        Apply a persisted layout.

        Positions are applied to nodes already in the scene; combiners are
        created if missing; connections referencing absent nodes are
        dropped. Viewport scale/offset are not restored here.
        """
        positions: Dict[str, Any] = {}
        positions.update(layout.get("agent_positions") or {})
        positions.update(layout.get("task_positions") or {})
        for node_id, pos in positions.items():
            if not isinstance(pos, dict):
                continue
            x, y = pos.get("x"), pos.get("y")
            if x is not None and y is not None and node_id in self._nodes:
                self.move_node(node_id, float(x), float(y))

        for raw in layout.get("combiner_nodes") or []:
            self._restore_combiner(raw)

        for raw in layout.get("workflow_connections") or []:
            from_node = raw.get("from")
            to_node = raw.get("to")
            from_port = raw.get("fromPort") or raw.get("from_port") or "output"
            to_port = raw.get("toPort") or raw.get("to_port") or "input"
            if self.get_combiner(to_node) is not None and to_port.startswith("input"):
                self.ensure_combiner_input_port(to_node, to_port)
            self.add_connection(from_node, from_port, to_node, to_port, connection_id=raw.get("id"))

        self.touch()
        logger.info(
            f"Applied layout: {len(positions)} positions, "
            f"{len(self.combiners())} combiners, {len(self.connections)} connections"
        )

    def _restore_combiner(self, raw: Dict[str, Any]) -> None:
        combiner_id = raw.get("id")
        if not combiner_id:
            return
        try:
            mode = CombinerMode(raw.get("combinerType") or raw.get("mode") or "merge")
        except ValueError:
            logger.warning(f"Unknown combiner type in layout: {raw.get('combinerType')}")
            mode = CombinerMode.MERGE

        ports = []
        for port in raw.get("inputPorts") or []:
            port_id = port.get("id") if isinstance(port, dict) else port
            if port_id:
                ports.append(port_id)

        existing = self.get_combiner(combiner_id)
        if existing is not None:
            existing.x = raw.get("x", existing.x)
            existing.y = raw.get("y", existing.y)
            existing.task_id = raw.get("taskId") or existing.task_id
            return

        self.add_node(Combiner(
            id=combiner_id,
            x=raw.get("x"),
            y=raw.get("y"),
            width=raw.get("width") or 120.0,
            height=raw.get("height") or 80.0,
            mode=mode,
            input_ports=ports,
            task_id=raw.get("taskId") or raw.get("task_id"),
        ))

    def bounds(self, nodes: Optional[Iterable[Node]] = None):
        """World bounding box (min_x, min_y, max_x, max_y) of positioned nodes, or None."""
        rects = [node_bounds(n) for n in (nodes if nodes is not None else self._nodes.values()) if n.positioned]
        if not rects:
            return None
        return (
            min(r.x for r in rects),
            min(r.y for r in rects),
            max(r.right for r in rects),
            max(r.bottom for r in rects),
        )
