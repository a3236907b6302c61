"""
Interaction state machine for the canvas.

InteractionController turns raw pointer and keyboard input into exactly
one InteractionState transition plus local scene edits and outgoing
MutationRequest intents. Requests are handed to a sink and never awaited.

Press hit-test order (first match wins):
    help overlay > context menu > modal form > toolbar > port >
    combiner buttons > combiner body > space-pan > task buttons >
    task body > agent delete button > agent body > pan
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from agentcanvas.api.models import MutationOp, MutationRequest
from agentcanvas.core.combiners import build_combination_instruction, resolve_combiner_inputs
from agentcanvas.core.geometry import (
    PORT_HIT_RADIUS,
    SNAP_RADIUS,
    agent_delete_hotspot,
    combiner_hotspots,
    task_hotspots,
)
from agentcanvas.core.layout import LayoutEngine
from agentcanvas.core.nodes import (
    Agent,
    Combiner,
    CombinerMode,
    Connection,
    Node,
    Port,
    PortDirection,
    Task,
    TaskStatus,
)
from agentcanvas.core.scene import SceneModel, new_combiner_id
from agentcanvas.core.viewport import Viewport
from agentcanvas.ui.overlays import (
    AddAgentForm,
    ContextMenu,
    CreateTaskForm,
    HelpOverlay,
    ModalForm,
    TextField,
    Toolbar,
)

logger = logging.getLogger(__name__)


# ============================================================================
# INTERACTION STATES
# ============================================================================

@dataclass(frozen=True)
class Idle:
    pass


@dataclass
class PanningCanvas:
    last_x: float
    last_y: float


@dataclass
class DraggingNode:
    node_id: str
    grab_dx: float
    grab_dy: float
    moved: bool = False


@dataclass
class DraggingConnection:
    origin: Port
    cursor_x: float
    cursor_y: float


@dataclass
class AssignmentMode:
    source_task_id: str
    cursor_x: float
    cursor_y: float


@dataclass
class CombinerAssignMode:
    source_combiner_id: str


InteractionState = Union[
    Idle, PanningCanvas, DraggingNode, DraggingConnection, AssignmentMode, CombinerAssignMode
]

IDLE = Idle()

RequestSink = Callable[[MutationRequest], None]


class InteractionController:
    """
    Single authority for user input on the canvas.

    Args:
        scene: Scene to edit.
        viewport: Screen/world transform.
        request_sink: Receives every MutationRequest (fire-and-forget).
        layout_engine: Used by auto-layout.
        on_select: Called with (kind, node_id) when the user asks for
            details; kind is "task", "task_log", "agent" or "combiner".
        on_change: Called after any input that may need a redraw.
        notifier: `notifier(message, level)` for validation feedback.
        snap_radius: Max distance for snapping a dropped wire to an agent input.
        port_radius: Port hit radius (world units).
    """

    def __init__(
        self,
        scene: SceneModel,
        viewport: Viewport,
        request_sink: Optional[RequestSink] = None,
        layout_engine: Optional[LayoutEngine] = None,
        on_select: Optional[Callable[[str, str], None]] = None,
        on_change: Optional[Callable[[], None]] = None,
        notifier: Optional[Callable[[str, str], None]] = None,
        snap_radius: float = SNAP_RADIUS,
        port_radius: float = PORT_HIT_RADIUS,
    ):
        self.scene = scene
        self.snap_radius = snap_radius
        self.port_radius = port_radius
        self.viewport = viewport
        self.layout_engine = layout_engine or LayoutEngine()
        self._sink = request_sink
        self._on_select = on_select
        self._on_change = on_change
        self._notifier = notifier

        self.state: InteractionState = IDLE
        self.help = HelpOverlay()
        self.context_menu: Optional[ContextMenu] = None
        self.form: Optional[ModalForm] = None
        self.focused_field: Optional[TextField] = None
        self.toolbar = Toolbar()

        self.space_held = False
        self.timeline_visible = False
        self.selection: Optional[Tuple[str, str]] = None
        self.available_agents: List[str] = []

    # ========================================================================
    # PLUMBING
    # ========================================================================

    def _set_state(self, state: InteractionState) -> None:
        if state != self.state:
            logger.debug(f"Interaction: {type(self.state).__name__} -> {type(state).__name__}")
        self.state = state

    def _request(self, op: MutationOp, node_id: Optional[str] = None, **params) -> MutationRequest:
        request = MutationRequest(op=op, node_id=node_id, params=params)
        if self._sink is not None:
            self._sink(request)
        return request

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _notify(self, message: str, level: str = "info") -> None:
        if self._notifier is not None:
            self._notifier(message, level)

    def _select(self, kind: str, node_id: str) -> None:
        self.selection = (kind, node_id)
        if self._on_select is not None:
            self._on_select(kind, node_id)

    @property
    def text_input_active(self) -> bool:
        return self.focused_field is not None

    # ========================================================================
    # POINTER INPUT
    # ========================================================================

    def pointer_down(self, sx: float, sy: float) -> None:
        """Primary button press at a screen point."""
        try:
            self._pointer_down(sx, sy)
        finally:
            self._changed()

    def _pointer_down(self, sx: float, sy: float) -> None:
        # 1. Help overlay swallows the click
        if self.help.visible:
            self.help.hide()
            return

        # 2. Context menu: run the item under the pointer, close either way
        if self.context_menu is not None:
            menu = self.context_menu
            self.context_menu = None
            action = menu.item_at(sx, sy)
            if action is not None:
                self._context_action(action, menu.node_id)
            return

        # 3. Modal form
        if self.form is not None:
            self._form_click(sx, sy)
            return

        button = self.toolbar.button_at(sx, sy)
        if button is not None:
            self._toolbar_action(button)
            return

        wx, wy = self.viewport.screen_to_world(sx, sy)
        state = self.state

        # 4. Ports
        port = self.scene.port_at(wx, wy, self.port_radius)
        if port is not None:
            if isinstance(state, AssignmentMode) and self.scene.get_combiner(port.node_id) is not None:
                self._assign_task_to_combiner(state.source_task_id, port.node_id)
            else:
                self._set_state(DraggingConnection(port, wx, wy))
            return

        # 5-6. Combiners: buttons, then body
        combiner = self.scene.combiner_at(wx, wy)
        if combiner is not None:
            for name, rect in combiner_hotspots(combiner).items():
                if rect.contains(wx, wy):
                    self._combiner_button(name, combiner)
                    return
            if isinstance(state, AssignmentMode):
                self._assign_task_to_combiner(state.source_task_id, combiner.id)
            elif isinstance(state, DraggingConnection):
                self._finish_connection(state.origin, Port(combiner.id, "", PortDirection.INPUT))
            else:
                self._start_drag(combiner, wx, wy)
            return

        # 7. Space held pans from anywhere below this point
        if self.space_held:
            self._set_state(PanningCanvas(sx, sy))
            return

        # 8. Task cards: buttons, then body
        task = self.scene.task_at(wx, wy)
        if task is not None:
            for name, rect in task_hotspots(task).items():
                if rect.contains(wx, wy):
                    self._task_button(name, task, wx, wy)
                    return
            if isinstance(state, AssignmentMode):
                self._chain_task(state.source_task_id, task)
            elif isinstance(state, DraggingConnection):
                self._finish_connection(state.origin, Port(task.id, "input", PortDirection.INPUT))
            else:
                self._start_drag(task, wx, wy)
            return

        # 9. Agents: delete button, then body
        agent = self.scene.agent_at(wx, wy)
        if agent is not None:
            if agent_delete_hotspot(agent).contains(wx, wy):
                self.remove_agent(agent.id)
            elif isinstance(state, AssignmentMode):
                self._assign_task_to_agent(state.source_task_id, agent)
            elif isinstance(state, CombinerAssignMode):
                self._connect_combiner_output(state.source_combiner_id, agent)
            elif isinstance(state, DraggingConnection):
                self._finish_connection(state.origin, Port(agent.id, "input", PortDirection.INPUT))
            else:
                self._start_drag(agent, wx, wy)
            return

        # 10. Empty canvas
        self._set_state(PanningCanvas(sx, sy))

    def pointer_move(self, sx: float, sy: float) -> None:
        state = self.state
        if isinstance(state, PanningCanvas):
            self.viewport.pan(sx - state.last_x, sy - state.last_y)
            state.last_x = sx
            state.last_y = sy
        elif isinstance(state, DraggingNode):
            wx, wy = self.viewport.screen_to_world(sx, sy)
            if self.scene.move_node(state.node_id, wx - state.grab_dx, wy - state.grab_dy):
                state.moved = True
        elif isinstance(state, (DraggingConnection, AssignmentMode)):
            state.cursor_x, state.cursor_y = self.viewport.screen_to_world(sx, sy)
        else:
            return
        self._changed()

    def pointer_up(self, sx: float, sy: float) -> None:
        state = self.state
        try:
            if isinstance(state, DraggingConnection):
                self._set_state(IDLE)
                wx, wy = self.viewport.screen_to_world(sx, sy)
                target = self._resolve_drop_target(wx, wy)
                if target is not None:
                    self._finish_connection(state.origin, target)
            elif isinstance(state, DraggingNode):
                self._set_state(IDLE)
                self._request(MutationOp.SAVE_LAYOUT)
                if state.moved:
                    return
                if self.scene.get_task(state.node_id) is not None:
                    self._select("task", state.node_id)
                elif self.scene.get_combiner(state.node_id) is not None:
                    self._select("combiner", state.node_id)
            elif isinstance(state, PanningCanvas):
                self._set_state(IDLE)
        finally:
            self._changed()

    def secondary_click(self, sx: float, sy: float) -> None:
        """Right-click: delete a wire, or open an agent's context menu."""
        if self.help.visible or self.form is not None:
            return
        self.context_menu = None

        wx, wy = self.viewport.screen_to_world(sx, sy)
        conn = self.scene.connection_at(wx, wy)
        if conn is not None:
            self.delete_connection(conn.id)
        else:
            agent = self.scene.agent_at(wx, wy)
            if agent is not None:
                self.context_menu = ContextMenu(agent.id, sx, sy)
        self._changed()

    def wheel(self, sx: float, sy: float, delta_y: float) -> None:
        self.viewport.wheel_zoom(sx, sy, delta_y)
        self._changed()

    def _start_drag(self, node: Node, wx: float, wy: float) -> None:
        self._set_state(DraggingNode(node.id, wx - (node.x or 0.0), wy - (node.y or 0.0)))

    # ========================================================================
    # KEYBOARD INPUT
    # ========================================================================

    def key_down(self, key: str) -> bool:
        """
        Handle a key press.

        Args:
            key: A named key ("Escape", "Backspace", "Enter", ...) or a
                single printable character (space is " ").

        Returns:
            True if the key was consumed.
        """
        try:
            if self.focused_field is not None:
                if key in ("Enter", "Escape"):
                    self.focused_field = None
                elif key == "Backspace":
                    self.focused_field.backspace()
                elif len(key) == 1 and key.isprintable():
                    self.focused_field.append(key)
                else:
                    return False
                return True

            if key == "Escape":
                return self.cancel()
            if key in ("h", "H"):
                self.help.toggle()
                return True
            if key == " ":
                self.space_held = True
                return True
            return False
        finally:
            self._changed()

    def key_up(self, key: str) -> None:
        if key == " ":
            self.space_held = False

    def cancel(self) -> bool:
        """
        Cancel the most prominent active mode (Escape).

        Order: help > context menu > form > assignment > combiner
        assignment > connection drag. Only the first one found is closed.
        """
        if self.help.visible:
            self.help.hide()
        elif self.context_menu is not None:
            self.context_menu = None
        elif self.form is not None:
            self.close_form()
        elif isinstance(self.state, (AssignmentMode, CombinerAssignMode, DraggingConnection)):
            self._set_state(IDLE)
        else:
            return False
        return True

    # ========================================================================
    # OVERLAYS
    # ========================================================================

    def _context_action(self, action: str, node_id: str) -> None:
        if action == "view":
            self._select("agent", node_id)
        elif action == "assign":
            self.open_create_task_form(target_agent=node_id)
        elif action == "remove":
            self.remove_agent(node_id)
        else:
            logger.warning(f"Unknown context menu action: {action}")

    def _toolbar_action(self, action: str) -> None:
        if action == "create_task":
            self.open_create_task_form()
        elif action == "add_agent":
            self.open_add_agent_form()
        elif action == "add_combiner":
            self.place_combiner(CombinerMode.MERGE, self.viewport.width / 2, self.viewport.height / 2)
        elif action == "auto_layout":
            self.auto_layout()
        elif action == "save_layout":
            self._request(MutationOp.SAVE_LAYOUT)
            self._notify("Layout saved", "success")
        elif action == "timeline":
            self.timeline_visible = not self.timeline_visible
        elif action == "help":
            self.help.toggle()

    def open_create_task_form(self, target_agent: Optional[str] = None) -> None:
        agents = [a.id for a in self.scene.agents()]
        self.form = CreateTaskForm(self.viewport.width, self.viewport.height, agents, target_agent)
        self.focused_field = None

    def open_add_agent_form(self) -> None:
        present = {a.id for a in self.scene.agents()}
        options = [name for name in self.available_agents if name not in present]
        self.form = AddAgentForm(self.viewport.width, self.viewport.height, options)
        self.focused_field = None

    def close_form(self) -> None:
        self.form = None
        self.focused_field = None

    def _form_click(self, sx: float, sy: float) -> None:
        form = self.form
        kind, name = form.hit(sx, sy)
        if kind in ("close", "outside"):
            self.close_form()
        elif kind == "submit":
            self._submit_form()
        elif kind == "checkbox":
            form.toggle_checkbox(name)
        elif kind == "option":
            form.select_option(name)
        elif kind == "field":
            self.focused_field = form.fields[name]
        else:
            self.focused_field = None

    def _submit_form(self) -> None:
        form = self.form
        payload = form.payload()
        if payload is None:
            message = "Please enter a task description" if form.kind == "create_task" else "Please select an agent to add"
            self._notify(message, "warning")
            return

        if form.kind == "create_task":
            self._request(
                MutationOp.CREATE_TASK,
                None,
                description=payload["description"],
                to=payload["to"],
                priority=0,
                **{"from": "user"},
            )
        elif form.kind == "add_agent":
            self._request(MutationOp.ADD_AGENT, payload["agent_name"])
        self.close_form()

    # ========================================================================
    # TASK OPERATIONS
    # ========================================================================

    def _task_button(self, name: str, task: Task, wx: float, wy: float) -> None:
        if name == "delete":
            self.delete_task(task.id)
        elif name == "execute":
            self._request(MutationOp.EXECUTE_TASK, task.id)
        elif name == "rerun":
            self.scene.update_task(task.id, status=TaskStatus.PENDING.value, result=None, error=None)
            self._request(MutationOp.RERUN_TASK, task.id)
        elif name == "assign":
            self.toggle_assignment(task.id, wx, wy)
        elif name == "view_log":
            self._select("task_log", task.id)

    def delete_task(self, task_id: str) -> None:
        if self.scene.remove_node(task_id) is None:
            return
        if self.selection and self.selection[1] == task_id:
            self.selection = None
        self._request(MutationOp.DELETE_TASK, task_id)

    def toggle_assignment(self, task_id: str, wx: float = 0.0, wy: float = 0.0) -> None:
        """Enter assignment mode for a task, or leave it if already active for it."""
        state = self.state
        if isinstance(state, AssignmentMode) and state.source_task_id == task_id:
            self._set_state(IDLE)
        else:
            self._set_state(AssignmentMode(task_id, wx, wy))

    def _assign_task_to_agent(self, task_id: str, agent: Agent) -> None:
        self._set_state(IDLE)
        if self.scene.get_task(task_id) is None:
            return
        self.scene.update_task(task_id, to=agent.id)
        self._request(MutationOp.UPDATE_TASK, task_id, to=agent.id)
        logger.info(f"Assigned task {task_id} to {agent.id}")

    def _chain_task(self, source_id: str, target: Task) -> None:
        """Make `target` depend on the assignment source task."""
        self._set_state(IDLE)
        if source_id == target.id or self.scene.get_task(source_id) is None:
            return
        if source_id in target.input_task_ids:
            return
        inputs = list(target.input_task_ids) + [source_id]
        self.scene.update_task(target.id, input_task_ids=inputs)
        self._request(MutationOp.UPDATE_TASK, target.id, input_task_ids=inputs)

    def _assign_task_to_combiner(self, task_id: str, combiner_id: str) -> None:
        self._set_state(IDLE)
        task = self.scene.get_task(task_id)
        combiner = self.scene.get_combiner(combiner_id)
        if task is None or combiner is None:
            return

        already = any(c.from_node == task_id for c in self.scene.connections_into(combiner_id))
        if not already:
            if self._finish_connection(Port(task_id, "output", PortDirection.OUTPUT),
                                       Port(combiner_id, "", PortDirection.INPUT)) is None:
                return

        outputs = self.scene.connections_from(combiner_id)
        target = outputs[0].to_node if outputs else task.to
        self.scene.update_task(task_id, to=target, combiner_node_id=combiner_id, combiner_type=combiner.mode.value)
        self._request(
            MutationOp.UPDATE_TASK,
            task_id,
            to=target,
            combiner_node_id=combiner_id,
            result_combination_mode=combiner.result_combination_mode,
        )

    # ========================================================================
    # CONNECTIONS
    # ========================================================================

    def _resolve_drop_target(self, wx: float, wy: float) -> Optional[Port]:
        """
        Where a dragged wire lands: an exact port, an agent body (its
        input), a combiner body (a new input port), or the nearest agent
        input within snap_radius.
        """
        port = self.scene.port_at(wx, wy, self.port_radius)
        if port is not None:
            return port
        agent = self.scene.agent_at(wx, wy)
        if agent is not None:
            return Port(agent.id, "input", PortDirection.INPUT)
        combiner = self.scene.combiner_at(wx, wy)
        if combiner is not None:
            return Port(combiner.id, "", PortDirection.INPUT)
        agent = self.scene.nearest_agent_input(wx, wy, self.snap_radius)
        if agent is not None:
            return Port(agent.id, "input", PortDirection.INPUT)
        return None

    def _finish_connection(self, origin: Port, target: Port) -> Optional[Connection]:
        """
        Validate and create a connection between two ports.

        Wires may be drawn in either direction; the output end becomes the
        source. An empty or occupied combiner input resolves to the
        combiner's next free input port.
        """
        self._set_state(IDLE)
        if origin.node_id == target.node_id:
            logger.info(f"Ignoring connection from {origin.node_id} to itself")
            return None
        if origin.direction == target.direction:
            logger.info(f"Ignoring {origin.direction} -> {target.direction} connection")
            return None

        source, dest = (origin, target) if origin.direction == PortDirection.OUTPUT else (target, origin)
        to_port = dest.port_id
        is_combiner = self.scene.get_combiner(dest.node_id) is not None
        if is_combiner and (not to_port or self.scene.connection_into_port(dest.node_id, to_port)):
            to_port = self.scene.next_combiner_input_port(dest.node_id)

        conn = self.scene.add_connection(source.node_id, source.port_id, dest.node_id, to_port)
        if conn is None:
            if is_combiner:
                self.scene.cleanup_combiner_input_ports(dest.node_id)
            return None

        self._request(
            MutationOp.CREATE_CONNECTION,
            conn.id,
            **{"from": conn.from_node, "from_port": conn.from_port, "to": conn.to_node, "to_port": conn.to_port},
        )
        return conn

    def delete_connection(self, connection_id: str) -> None:
        conn = self.scene.remove_connection(connection_id)
        if conn is not None:
            self._request(MutationOp.DELETE_CONNECTION, connection_id)

    # ========================================================================
    # COMBINERS
    # ========================================================================

    def place_combiner(self, mode: CombinerMode, sx: float, sy: float) -> Combiner:
        """Create a combiner centered on a screen point and request its backing task."""
        wx, wy = self.viewport.screen_to_world(sx, sy)
        combiner = Combiner(id=new_combiner_id(), mode=mode)
        combiner.x = wx - combiner.width / 2
        combiner.y = wy - combiner.height / 2
        self.scene.add_node(combiner)
        self._request(
            MutationOp.CREATE_COMBINER_TASK,
            combiner.id,
            description=f"{combiner.name} operation",
            result_combination_mode=combiner.result_combination_mode,
        )
        self._request(MutationOp.SAVE_LAYOUT)
        logger.info(f"Placed {combiner.name} combiner {combiner.id}")
        return combiner

    def _combiner_button(self, name: str, combiner: Combiner) -> None:
        if name == "delete":
            self.scene.remove_node(combiner.id)
            self._request(MutationOp.SAVE_LAYOUT)
        elif name == "run":
            self.execute_combiner(combiner.id)
        elif name == "assign":
            state = self.state
            if isinstance(state, CombinerAssignMode) and state.source_combiner_id == combiner.id:
                self._set_state(IDLE)
            else:
                self._set_state(CombinerAssignMode(combiner.id))

    def _connect_combiner_output(self, combiner_id: str, agent: Agent) -> None:
        self._finish_connection(
            Port(combiner_id, "output", PortDirection.OUTPUT),
            Port(agent.id, "input", PortDirection.INPUT),
        )

    def execute_combiner(self, combiner_id: str) -> Optional[MutationRequest]:
        """
        Request execution of a combiner's backing task.

        Nothing is sent unless the combiner has a backing task, at least
        one resolvable input, and a wired output.
        """
        combiner = self.scene.get_combiner(combiner_id)
        if combiner is None:
            return None
        if not combiner.task_id:
            self._notify("Combiner task not found. Please recreate the combiner node.", "error")
            return None

        tasks, missing = resolve_combiner_inputs(self.scene, combiner)
        if missing:
            self._notify(f"No recent tasks found for agent(s): {', '.join(missing)}", "warning")
        if not tasks:
            self._notify("No input tasks connected to this combiner", "warning")
            return None

        outputs = [c for c in self.scene.connections_from(combiner_id) if c.from_port == "output"]
        if not outputs:
            self._notify(f"{combiner.name} output is not connected. Connect it before running.", "warning")
            return None

        execute_first = [
            t.id for t in tasks
            if t.status in (TaskStatus.PENDING, TaskStatus.FAILED) and t.is_assigned
        ]
        return self._request(
            MutationOp.EXECUTE_COMBINER,
            combiner_id,
            task_id=combiner.task_id,
            to=outputs[0].to_node,
            input_task_ids=[t.id for t in tasks],
            result_combination_mode=combiner.result_combination_mode,
            combination_instruction=combiner.custom_instruction or build_combination_instruction(tasks),
            execute_first=execute_first,
        )

    # ========================================================================
    # AGENTS & LAYOUT
    # ========================================================================

    def remove_agent(self, name: str) -> None:
        if self.scene.remove_node(name) is None:
            return
        if self.selection and self.selection[1] == name:
            self.selection = None
        self._request(MutationOp.REMOVE_AGENT, name)
        self._request(MutationOp.SAVE_LAYOUT)

    def auto_layout(self) -> None:
        """Level tasks by dependency, fit them in view and persist."""
        if not self.layout_engine.auto_layout(self.scene, self.viewport):
            return
        bounds = self.scene.bounds()
        if bounds is not None:
            self.viewport.fit_to_bounds(*bounds)
        self._request(MutationOp.SAVE_LAYOUT)
        self._notify("Tasks auto-arranged", "success")
