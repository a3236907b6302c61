"""
Flet host for the canvas.

CanvasRenderer turns the scene, viewport and interaction state into a
list of flet.canvas shapes. CanvasView owns the Flet controls: a
GestureDetector wrapping a flet.canvas.Canvas, whose events are
translated into InteractionController calls.

Gesture mapping:
- pan start / update / end  -> pointer_down / pointer_move / pointer_up
- tap (no movement)         -> pointer_down + pointer_up
- secondary tap             -> secondary_click
- hover                     -> pointer_move (live wire / assignment arrow)
- scroll                    -> wheel
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Tuple

import flet as ft
import flet.canvas as cv
from flet.core.canvas.shape import Shape

from agentcanvas.core.combiners import result_preview
from agentcanvas.core.geometry import (
    agent_delete_hotspot,
    combiner_hotspots,
    node_bounds,
    node_ports,
    port_anchor,
    task_hotspots,
)
from agentcanvas.core.layout import LayoutEngine
from agentcanvas.core.nodes import Agent, Combiner, PortDirection, Task, TaskStatus
from agentcanvas.core.scene import SceneModel
from agentcanvas.core.viewport import Viewport
from agentcanvas.ui.animation import AnimationClock
from agentcanvas.ui.interaction import (
    AssignmentMode,
    CombinerAssignMode,
    DraggingConnection,
    InteractionController,
)
from agentcanvas.ui.overlays import HELP_LINES, CreateTaskForm, ModalForm
from agentcanvas.ui.theme import AGENT_STATUS_COLORS, CanvasColors, status_color

logger = logging.getLogger(__name__)


TIMELINE_ROWS = 15
LOG_ROWS = 12

_BUTTON_GLYPHS = {
    "delete": "×",
    "execute": "▶",
    "rerun": "↻",
    "assign": "→",
    "view_log": "≡",
    "run": "Run",
}


def _paint(color: str, stroke: bool = False, width: float = 1.0, dash: Optional[List[float]] = None) -> ft.Paint:
    return ft.Paint(
        color=color,
        stroke_width=width,
        style=ft.PaintingStyle.STROKE if stroke else ft.PaintingStyle.FILL,
        stroke_dash_pattern=dash,
    )


def _with_alpha(color: str, alpha: float) -> str:
    """#RRGGBB -> #AARRGGBB."""
    alpha = max(0.0, min(1.0, alpha))
    return f"#{int(alpha * 255):02X}{color.lstrip('#')[-6:]}"


def _truncate(text: str, limit: int) -> str:
    text = " ".join(str(text).split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def translate_key(key: str, shift: bool = False) -> Optional[str]:
    """
    Map a Flet key name to the controller's key vocabulary.

    Named keys pass through; letters are lower-cased unless shift is held;
    anything else that is not a single character is dropped.
    """
    if key in ("Escape", "Backspace", "Enter"):
        return key
    if key in ("Space", " "):
        return " "
    if len(key) == 1:
        return key if shift else key.lower()
    return None


# ============================================================================
# RENDERER
# ============================================================================

class CanvasRenderer:
    """Builds flet.canvas shapes for one frame."""

    def __init__(
        self,
        scene: SceneModel,
        viewport: Viewport,
        controller: InteractionController,
        clock: Optional[AnimationClock] = None,
    ):
        self.scene = scene
        self.viewport = viewport
        self.controller = controller
        self.clock = clock

    def _s(self, wx: float, wy: float) -> Tuple[float, float]:
        return self.viewport.world_to_screen(wx, wy)

    def _rect(self, x, y, w, h, color, stroke=False, radius=4.0, width=1.0) -> cv.Rect:
        sx, sy = self._s(x, y)
        scale = self.viewport.scale
        return cv.Rect(sx, sy, w * scale, h * scale, border_radius=radius * scale,
                       paint=_paint(color, stroke, width))

    def _text(self, wx, wy, text, size=12.0, color=CanvasColors.TEXT, max_width=None,
              align=ft.alignment.center) -> cv.Text:
        sx, sy = self._s(wx, wy)
        scale = self.viewport.scale
        return cv.Text(
            sx, sy, text,
            style=ft.TextStyle(size=size * scale, color=color),
            alignment=align,
            max_width=max_width * scale if max_width else None,
            max_lines=1,
            ellipsis="…",
        )

    def shapes(self) -> List[Shape]:
        shapes: List[Shape] = []
        shapes.extend(self._dependencies())
        shapes.extend(self._connections())
        for combiner in self.scene.combiners():
            if combiner.positioned:
                shapes.extend(self._combiner(combiner))
        for task in self.scene.tasks():
            if task.positioned:
                shapes.extend(self._task(task))
        for agent in self.scene.agents():
            if agent.positioned:
                shapes.extend(self._agent(agent))
        shapes.extend(self._ports())
        shapes.extend(self._particles())
        shapes.extend(self._drafts())
        shapes.extend(self._hud())
        shapes.extend(self._toolbar())
        shapes.extend(self._details())
        if self.controller.timeline_visible:
            shapes.extend(self._timeline())
        shapes.extend(self._context_menu())
        if self.controller.form is not None:
            shapes.extend(self._form(self.controller.form))
        if self.controller.help.visible:
            shapes.extend(self._help())
        return shapes

    # ------------------------------------------------------------------------
    # World space
    # ------------------------------------------------------------------------

    def _curve(self, ax, ay, bx, by, paint: ft.Paint) -> cv.Path:
        sax, say = self._s(ax, ay)
        sbx, sby = self._s(bx, by)
        bend = max(40.0, abs(sby - say) / 2)
        return cv.Path(
            [
                cv.Path.MoveTo(sax, say),
                cv.Path.CubicTo(sax, say + bend, sbx, sby - bend, sbx, sby),
            ],
            paint=paint,
        )

    def _connections(self) -> List[Shape]:
        shapes = []
        for conn in self.scene.connections:
            source = self.scene.get(conn.from_node)
            target = self.scene.get(conn.to_node)
            if source is None or target is None or not (source.positioned and target.positioned):
                continue
            ax, ay = port_anchor(source, conn.from_port)
            bx, by = port_anchor(target, conn.to_port)
            shapes.append(self._curve(ax, ay, bx, by, _paint(CanvasColors.CONNECTION, True, 2.0)))
        return shapes

    def _dependencies(self) -> List[Shape]:
        shapes = []
        for task in self.scene.tasks():
            if not task.positioned:
                continue
            for input_id in task.input_task_ids or []:
                source = self.scene.get_task(input_id)
                if source is None or not source.positioned:
                    continue
                ax, ay = self._s(source.x, source.y)
                bx, by = self._s(task.x, task.y)
                shapes.append(cv.Line(ax, ay, bx, by, paint=_paint(CanvasColors.DEPENDENCY, True, 1.5, [6, 4])))
        return shapes

    def _agent(self, agent: Agent) -> List[Shape]:
        bounds = node_bounds(agent)
        shapes: List[Shape] = []
        if agent.status == "active":
            pulse = 4 + 3 * math.sin(agent.pulse_phase)
            shapes.append(self._rect(bounds.x - pulse, bounds.y - pulse, bounds.width + 2 * pulse,
                                     bounds.height + 2 * pulse, _with_alpha(agent.color, 0.35), True, 10, 2))
        border = CanvasColors.SELECTED_BORDER if self._selected(agent.id) else agent.color
        shapes.append(self._rect(bounds.x, bounds.y, bounds.width, bounds.height, CanvasColors.NODE_FILL, radius=8))
        shapes.append(self._rect(bounds.x, bounds.y, bounds.width, bounds.height, border, True, 8, 2))
        shapes.append(self._text(agent.x, agent.y - 12, _truncate(agent.name, 16), 13, CanvasColors.TEXT_STRONG))
        status_fill = AGENT_STATUS_COLORS.get(agent.status, AGENT_STATUS_COLORS["idle"])
        shapes.append(self._text(agent.x, agent.y + 8, agent.status, 10, status_fill))
        counters = f"✓{agent.completed_tasks} ✗{agent.failed_tasks} ⧗{len(agent.queued_tasks)}"
        shapes.append(self._text(agent.x, agent.y + 24, counters, 9, CanvasColors.TEXT_MUTED))

        hotspot = agent_delete_hotspot(agent)
        shapes.append(self._rect(hotspot.x, hotspot.y, hotspot.width, hotspot.height, CanvasColors.DELETE, radius=3))
        shapes.append(self._text(hotspot.x + hotspot.width / 2, hotspot.y + hotspot.height / 2, "×", 10,
                                 CanvasColors.BUTTON_TEXT))
        return shapes

    def _task(self, task: Task) -> List[Shape]:
        bounds = node_bounds(task)
        color = status_color(task.status)
        border = CanvasColors.SELECTED_BORDER if self._selected(task.id) else color
        shapes: List[Shape] = [
            self._rect(bounds.x, bounds.y, bounds.width, bounds.height, CanvasColors.NODE_FILL, radius=6),
            self._rect(bounds.x, bounds.y, bounds.width, bounds.height, border, True, 6, 2),
            self._text(bounds.x + 8, bounds.y + 6, _truncate(task.description or task.id, 22), 11,
                       CanvasColors.TEXT_STRONG, max_width=task.width - 30, align=ft.alignment.top_left),
            self._text(bounds.x + 8, bounds.y + 22, f"→ {task.to}", 9, CanvasColors.TEXT_MUTED,
                       max_width=task.width - 16, align=ft.alignment.top_left),
        ]
        if task.status == TaskStatus.IN_PROGRESS:
            fraction = task.progress / 100.0
            shapes.append(self._rect(bounds.x, bounds.bottom - 3, bounds.width * fraction, 3, color, radius=1))

        for name, rect in task_hotspots(task).items():
            fill = {
                "delete": CanvasColors.DELETE,
                "execute": CanvasColors.EXECUTE,
                "rerun": CanvasColors.EXECUTE,
                "assign": CanvasColors.ASSIGN,
            }.get(name, CanvasColors.LOG)
            if name == "assign" and self._assigning(task.id):
                fill = CanvasColors.SELECTED_BORDER
            shapes.append(self._rect(rect.x, rect.y, rect.width, rect.height, fill, radius=3))
            shapes.append(self._text(rect.x + rect.width / 2, rect.y + rect.height / 2,
                                     _BUTTON_GLYPHS.get(name, "?"), 10, CanvasColors.BUTTON_TEXT))
        return shapes

    def _combiner(self, combiner: Combiner) -> List[Shape]:
        x, y, w, h = combiner.x, combiner.y, combiner.width, combiner.height
        state = self.controller.state
        assigning = isinstance(state, CombinerAssignMode) and state.source_combiner_id == combiner.id
        shapes: List[Shape] = [
            self._rect(x, y, w, h, _with_alpha(combiner.color, 0.25), radius=10),
            self._rect(x, y, w, h, combiner.color, True, 10, 2),
            self._text(x + w / 2, y + 24, combiner.name, 13, CanvasColors.TEXT_STRONG),
            self._text(x + w / 2, y + 40, f"{len(combiner.input_ports)} inputs", 9, CanvasColors.TEXT_MUTED),
        ]
        for name, rect in combiner_hotspots(combiner).items():
            fill = {"delete": CanvasColors.DELETE, "run": CanvasColors.EXECUTE}.get(name, CanvasColors.ASSIGN)
            if name == "assign" and assigning:
                fill = CanvasColors.SELECTED_BORDER
            label = "Out" if name == "assign" else _BUTTON_GLYPHS.get(name, "?")
            shapes.append(self._rect(rect.x, rect.y, rect.width, rect.height, fill, radius=3))
            shapes.append(self._text(rect.x + rect.width / 2, rect.y + rect.height / 2, label, 9,
                                     CanvasColors.BUTTON_TEXT))
        return shapes

    def _ports(self) -> List[Shape]:
        shapes = []
        radius = 5 * self.viewport.scale
        for node in self.scene.nodes():
            if not node.positioned:
                continue
            for port_id, direction in node_ports(node):
                sx, sy = self._s(*port_anchor(node, port_id))
                color = CanvasColors.PORT_INPUT if direction == PortDirection.INPUT else CanvasColors.PORT_OUTPUT
                shapes.append(cv.Circle(sx, sy, radius, paint=_paint(color)))
        return shapes

    def _particles(self) -> List[Shape]:
        if self.clock is None:
            return []
        shapes = []
        for particle in self.clock.particles + self.clock.chain_particles:
            sx, sy = self._s(particle.x, particle.y)
            shapes.append(cv.Circle(sx, sy, particle.size * self.viewport.scale,
                                    paint=_paint(_with_alpha(particle.color, particle.alpha))))
        return shapes

    def _drafts(self) -> List[Shape]:
        state = self.controller.state
        if isinstance(state, DraggingConnection):
            origin = self.scene.get(state.origin.node_id)
            if origin is not None and origin.positioned:
                ax, ay = port_anchor(origin, state.origin.port_id)
                return [self._curve(ax, ay, state.cursor_x, state.cursor_y,
                                    _paint(CanvasColors.CONNECTION_DRAFT, True, 2.0, [8, 4]))]
        if isinstance(state, AssignmentMode):
            task = self.scene.get_task(state.source_task_id)
            if task is not None and task.positioned:
                ax, ay = self._s(task.x, task.y)
                bx, by = self._s(state.cursor_x, state.cursor_y)
                return [
                    cv.Line(ax, ay, bx, by, paint=_paint(CanvasColors.ASSIGNMENT_ARROW, True, 2.0, [6, 6])),
                    cv.Circle(bx, by, 5, paint=_paint(CanvasColors.ASSIGNMENT_ARROW)),
                ]
        return []

    def _selected(self, node_id: str) -> bool:
        selection = self.controller.selection
        return selection is not None and selection[1] == node_id

    def _assigning(self, task_id: str) -> bool:
        state = self.controller.state
        return isinstance(state, AssignmentMode) and state.source_task_id == task_id

    # ------------------------------------------------------------------------
    # Screen space
    # ------------------------------------------------------------------------

    @staticmethod
    def _panel(x, y, w, h) -> List[Shape]:
        return [
            cv.Rect(x, y, w, h, border_radius=6, paint=_paint(CanvasColors.PANEL_BACKGROUND)),
            cv.Rect(x, y, w, h, border_radius=6, paint=_paint(CanvasColors.PANEL_BORDER, True)),
        ]

    @staticmethod
    def _label(x, y, text, size=12.0, color=CanvasColors.TEXT, max_width=None,
               align=ft.alignment.top_left) -> cv.Text:
        return cv.Text(x, y, text, style=ft.TextStyle(size=size, color=color), alignment=align,
                       max_width=max_width, max_lines=1, ellipsis="…")

    def _hud(self) -> List[Shape]:
        progress = self.scene.workspace_progress or {}
        done = progress.get("completed_tasks", 0)
        total = progress.get("total_tasks", len(self.scene.tasks()))
        percentage = progress.get("percentage", 0.0) or 0.0
        text = f"{done}/{total} tasks · {percentage:.0f}% · zoom {self.viewport.scale:.2f}x"
        y = self.viewport.height - 26
        return [self._label(12, y, text, 11, CanvasColors.TEXT_MUTED)]

    def _toolbar(self) -> List[Shape]:
        shapes = []
        for action, label, rect in self.controller.toolbar.button_rects():
            active = (action == "timeline" and self.controller.timeline_visible) or (
                action == "help" and self.controller.help.visible)
            fill = CanvasColors.BUTTON_HOVER if active else CanvasColors.BUTTON
            shapes.append(cv.Rect(rect.x, rect.y, rect.width, rect.height, border_radius=4, paint=_paint(fill)))
            shapes.append(self._label(rect.x + rect.width / 2, rect.y + rect.height / 2, label, 11,
                                      CanvasColors.BUTTON_TEXT, align=ft.alignment.center))
        return shapes

    def _details(self) -> List[Shape]:
        selection = self.controller.selection
        if selection is None:
            return []
        kind, node_id = selection
        lines: List[str] = []
        title = node_id

        if kind in ("task", "task_log"):
            task = self.scene.get_task(node_id)
            if task is None:
                return []
            title = _truncate(task.description or task.id, 40)
            if kind == "task_log":
                logs = self.scene.logs_for(task.id)[-LOG_ROWS:]
                lines = [f"[{e.get('type')}] {e.get('message')}" for e in logs] or ["No execution log yet"]
            else:
                lines = [f"Status: {task.status}", f"From: {task.from_agent or '-'}  To: {task.to}"]
                if task.input_task_ids:
                    lines.append(f"Inputs: {', '.join(task.input_task_ids)}")
                if task.error:
                    lines.append(f"Error: {task.error}")
                if task.result:
                    lines.append(f"Result: {_truncate(task.result, 200)}")
        elif kind == "agent":
            agent = self.scene.get_agent(node_id)
            if agent is None:
                return []
            lines = [
                f"Status: {agent.status}",
                f"Current: {', '.join(agent.current_tasks) or '-'}",
                f"Queued: {len(agent.queued_tasks)}  Completed: {agent.completed_tasks}  Failed: {agent.failed_tasks}",
                f"Executions: {agent.total_executions}",
            ]
            if agent.last_result:
                lines.append(f"Last result: {_truncate(agent.last_result, 200)}")
        else:
            combiner = self.scene.get_combiner(node_id)
            if combiner is None:
                return []
            preview = result_preview(self.scene, combiner)
            lines = preview.splitlines()[:LOG_ROWS] or ["No finished inputs yet"]

        width = 360.0
        height = 36 + 18 * len(lines)
        x = 12.0
        y = self.viewport.height - height - 40
        shapes = self._panel(x, y, width, height)
        shapes.append(self._label(x + 10, y + 8, title, 12, CanvasColors.TEXT_STRONG, width - 20))
        for index, line in enumerate(lines):
            shapes.append(self._label(x + 10, y + 30 + index * 18, line, 11, CanvasColors.TEXT, width - 20))
        return shapes

    def _timeline(self) -> List[Shape]:
        entries = list(self.scene.timeline)[:TIMELINE_ROWS]
        width = 300.0
        height = 36 + 18 * max(len(entries), 1)
        x = self.viewport.width - width - 12
        y = 50.0
        shapes = self._panel(x, y, width, height)
        shapes.append(self._label(x + 10, y + 8, "Timeline", 12, CanvasColors.TEXT_STRONG))
        if not entries:
            shapes.append(self._label(x + 10, y + 30, "No events yet", 11, CanvasColors.TEXT_MUTED))
        for index, entry in enumerate(entries):
            stamp = str(entry.get("timestamp") or "")
            try:
                stamp = datetime.fromisoformat(stamp.replace("Z", "+00:00")).strftime("%H:%M:%S")
            except ValueError:
                stamp = stamp[:8]
            text = f"{stamp}  {entry.get('type')}  {entry.get('task_id') or ''}"
            shapes.append(self._label(x + 10, y + 30 + index * 18, text, 10, CanvasColors.TEXT, width - 20))
        return shapes

    def _context_menu(self) -> List[Shape]:
        menu = self.controller.context_menu
        if menu is None:
            return []
        bounds = menu.bounds
        shapes = self._panel(bounds.x, bounds.y, bounds.width, bounds.height)
        for _, label, rect in menu.item_rects():
            shapes.append(self._label(rect.x + 10, rect.y + rect.height / 2, label, 12,
                                      align=ft.alignment.center_left))
        return shapes

    def _form(self, form: ModalForm) -> List[Shape]:
        view_w, view_h = self.viewport.width, self.viewport.height
        rect = form.rect
        shapes: List[Shape] = [cv.Rect(0, 0, view_w, view_h, paint=_paint(CanvasColors.OVERLAY_SCRIM))]
        shapes.extend(self._panel(rect.x, rect.y, rect.width, rect.height))
        shapes.append(self._label(rect.x + 20, rect.y + 18, form.title, 16, CanvasColors.TEXT_STRONG))

        close = form.close_rect
        shapes.append(self._label(close.x + close.width / 2, close.y + close.height / 2, "×", 18,
                                  align=ft.alignment.center))

        for text_field in form.fields.values():
            r = text_field.rect
            focused = self.controller.focused_field is text_field
            border = CanvasColors.SELECTED_BORDER if focused else CanvasColors.PANEL_BORDER
            shapes.append(cv.Rect(r.x, r.y, r.width, r.height, border_radius=4, paint=_paint(CanvasColors.NODE_FILL)))
            shapes.append(cv.Rect(r.x, r.y, r.width, r.height, border_radius=4, paint=_paint(border, True)))
            value = text_field.value + ("|" if focused else "")
            shapes.append(self._label(r.x + 8, r.y + r.height / 2, value or text_field.label, 12,
                                      CanvasColors.TEXT if text_field.value else CanvasColors.TEXT_MUTED,
                                      r.width - 16, ft.alignment.center_left))

        for name, checked in form.checkboxes.items():
            r = form.checkbox_rect(name)
            shapes.append(cv.Rect(r.x, r.y, r.width, r.height, border_radius=3,
                                  paint=_paint(CanvasColors.SELECTED_BORDER if checked else CanvasColors.PANEL_BORDER,
                                               not checked)))
            shapes.append(self._label(r.right + 8, r.y + r.height / 2, name.replace("_", " ").capitalize(), 12,
                                      align=ft.alignment.center_left))

        if not form.options and form.options_visible():
            shapes.append(self._label(rect.x + 20, form.options_top(), "No agents available", 12,
                                      CanvasColors.TEXT_MUTED))
        for option, r in form.option_rects():
            selected = option == form.selected_option
            fill = CanvasColors.SELECTED_BORDER if selected else CanvasColors.NODE_FILL
            shapes.append(cv.Rect(r.x, r.y, r.width, r.height, border_radius=4, paint=_paint(fill)))
            shapes.append(self._label(r.x + 10, r.y + r.height / 2, option, 12, align=ft.alignment.center_left))

        submit = form.submit_rect
        label = "Create" if isinstance(form, CreateTaskForm) else "Add"
        shapes.append(cv.Rect(submit.x, submit.y, submit.width, submit.height, border_radius=4,
                              paint=_paint(CanvasColors.BUTTON)))
        shapes.append(self._label(submit.x + submit.width / 2, submit.y + submit.height / 2, label, 12,
                                  CanvasColors.BUTTON_TEXT, align=ft.alignment.center))
        return shapes

    def _help(self) -> List[Shape]:
        width, height = 520.0, 60 + 22 * len(HELP_LINES)
        x = (self.viewport.width - width) / 2
        y = (self.viewport.height - height) / 2
        shapes: List[Shape] = [
            cv.Rect(0, 0, self.viewport.width, self.viewport.height, paint=_paint(CanvasColors.OVERLAY_SCRIM)),
        ]
        shapes.extend(self._panel(x, y, width, height))
        shapes.append(self._label(x + 20, y + 16, "Canvas controls (click anywhere to close)", 14,
                                  CanvasColors.TEXT_STRONG))
        for index, line in enumerate(HELP_LINES):
            shapes.append(self._label(x + 20, y + 46 + index * 22, line, 12))
        return shapes


# ============================================================================
# FLET CONTROL
# ============================================================================

class CanvasView:
    """
    Flet control tree for the canvas plus the gesture adapter.

    Attributes:
        control: Root control to add to the page.
    """

    def __init__(
        self,
        controller: InteractionController,
        renderer: CanvasRenderer,
        layout_engine: Optional[LayoutEngine] = None,
    ):
        self.controller = controller
        self.renderer = renderer
        self.scene = renderer.scene
        self.viewport = renderer.viewport
        self.layout_engine = layout_engine or LayoutEngine()
        self._last_pointer: Tuple[float, float] = (0.0, 0.0)

        self.canvas = cv.Canvas(
            shapes=[],
            expand=True,
            on_resize=self._on_resize,
            resize_interval=100,
        )
        self.gestures = ft.GestureDetector(
            content=self.canvas,
            expand=True,
            drag_interval=10,
            hover_interval=30,
            on_pan_start=self._on_pan_start,
            on_pan_update=self._on_pan_update,
            on_pan_end=self._on_pan_end,
            on_tap_up=self._on_tap,
            on_secondary_tap_down=self._on_secondary_tap,
            on_hover=self._on_hover,
            on_scroll=self._on_scroll,
        )
        self.control = ft.Container(
            content=self.gestures,
            bgcolor=CanvasColors.BACKGROUND,
            expand=True,
        )

    # ------------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------------

    def redraw(self) -> None:
        """Place any unpositioned nodes, rebuild shapes and push them to Flet."""
        self.layout_engine.place_agents(self.scene, self.viewport)
        self.layout_engine.place_unpositioned_tasks(self.scene)
        self.canvas.shapes = self.renderer.shapes()
        if self.canvas.page is not None:
            self.canvas.update()

    def _on_resize(self, e: cv.CanvasResizeEvent):
        self.viewport.resize(e.width, e.height)
        logger.debug(f"Canvas resized to {e.width}x{e.height}")
        self.redraw()

    # ------------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------------

    def _on_pan_start(self, e: ft.DragStartEvent):
        self._last_pointer = (e.local_x, e.local_y)
        self.controller.pointer_down(e.local_x, e.local_y)

    def _on_pan_update(self, e: ft.DragUpdateEvent):
        self._last_pointer = (e.local_x, e.local_y)
        self.controller.pointer_move(e.local_x, e.local_y)

    def _on_pan_end(self, e: ft.DragEndEvent):
        self.controller.pointer_up(*self._last_pointer)
        # Page keyboard events carry no key-up; a held space ends with the drag
        self.controller.key_up(" ")

    def _on_tap(self, e: ft.TapEvent):
        self._last_pointer = (e.local_x, e.local_y)
        self.controller.pointer_down(e.local_x, e.local_y)
        self.controller.pointer_up(e.local_x, e.local_y)

    def _on_secondary_tap(self, e: ft.TapEvent):
        self.controller.secondary_click(e.local_x, e.local_y)

    def _on_hover(self, e: ft.HoverEvent):
        if isinstance(self.controller.state, (AssignmentMode, DraggingConnection)):
            self.controller.pointer_move(e.local_x, e.local_y)

    def _on_scroll(self, e: ft.ScrollEvent):
        self.controller.wheel(e.local_x, e.local_y, e.scroll_delta_y or 0.0)

    def handle_key(self, e: ft.KeyboardEvent) -> bool:
        """Forward a page keyboard event; returns True if it was consumed."""
        key = translate_key(e.key or "", e.shift)
        if key is None:
            return False
        return self.controller.key_down(key)
