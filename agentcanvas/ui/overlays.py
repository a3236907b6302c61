"""
Screen-space overlays drawn above the canvas.

Each overlay knows its own rectangles so the interaction controller can
hit-test it before anything in world space:
- HelpOverlay: keyboard/mouse reference, dismissed by any click
- ContextMenu: per-agent actions
- CreateTaskForm / AddAgentForm: modal forms with text field, checkbox
  and option list
- Toolbar: always-visible action buttons
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from agentcanvas.core.geometry import Rect


@dataclass
class HelpOverlay:
    visible: bool = False

    def toggle(self) -> None:
        self.visible = not self.visible

    def hide(self) -> None:
        self.visible = False


HELP_LINES = [
    "Drag a node to move it; drag empty space (or hold Space) to pan",
    "Mouse wheel zooms around the pointer",
    "Drag from a port to wire nodes; drop near an agent to snap",
    "Task buttons: delete, execute/rerun, assign, view log",
    "Right-click an agent for actions, a wire to delete it",
    "Esc cancels the current mode; H toggles this help",
]


# ============================================================================
# CONTEXT MENU
# ============================================================================

class ContextMenu:
    """Right-click menu for an agent, opened at a screen point."""

    ITEM_WIDTH = 170.0
    ITEM_HEIGHT = 28.0

    ITEMS: List[Tuple[str, str]] = [
        ("view", "View details"),
        ("assign", "Create task for agent"),
        ("remove", "Remove agent"),
    ]

    def __init__(self, node_id: str, x: float, y: float):
        self.node_id = node_id
        self.x = x
        self.y = y

    @property
    def bounds(self) -> Rect:
        return Rect(self.x, self.y, self.ITEM_WIDTH, self.ITEM_HEIGHT * len(self.ITEMS))

    def item_rects(self) -> List[Tuple[str, str, Rect]]:
        return [
            (action, label, Rect(self.x, self.y + i * self.ITEM_HEIGHT, self.ITEM_WIDTH, self.ITEM_HEIGHT))
            for i, (action, label) in enumerate(self.ITEMS)
        ]

    def item_at(self, sx: float, sy: float) -> Optional[str]:
        for action, _, rect in self.item_rects():
            if rect.contains(sx, sy):
                return action
        return None


# ============================================================================
# MODAL FORMS
# ============================================================================

@dataclass
class TextField:
    name: str
    label: str
    rect: Rect
    value: str = ""
    max_length: int = 500

    def append(self, char: str) -> None:
        if len(self.value) < self.max_length:
            self.value += char

    def backspace(self) -> None:
        self.value = self.value[:-1]


class ModalForm:
    """
    Centered modal with a close button, a submit button, optional text
    fields, checkboxes and a single-choice option list.

    `hit()` returns what a click landed on:
    ("close" | "submit" | "field" | "checkbox" | "option" | "inside" | "outside", name)
    """

    kind = "form"
    title = ""
    WIDTH = 500.0
    HEIGHT = 420.0
    PADDING = 20.0
    OPTION_HEIGHT = 26.0
    OPTION_GAP = 4.0
    MAX_OPTIONS = 6

    def __init__(self, view_width: float, view_height: float, options: Optional[List[str]] = None):
        self.rect = Rect(
            (view_width - self.WIDTH) / 2,
            (view_height - self.HEIGHT) / 2,
            self.WIDTH,
            self.HEIGHT,
        )
        self.fields: Dict[str, TextField] = {}
        self.checkboxes: Dict[str, bool] = {}
        self.options: List[str] = list(options or [])
        self.selected_option: Optional[str] = None

    @property
    def close_rect(self) -> Rect:
        return Rect(self.rect.right - 36, self.rect.y + 12, 24, 24)

    @property
    def submit_rect(self) -> Rect:
        return Rect(self.rect.right - 120, self.rect.bottom - 52, 100, 32)

    def checkbox_rect(self, name: str) -> Rect:
        index = list(self.checkboxes).index(name)
        return Rect(self.rect.x + self.PADDING, self.rect.y + 116 + index * 28, 18, 18)

    def options_visible(self) -> bool:
        return True

    def options_top(self) -> float:
        return self.rect.y + 116 + len(self.checkboxes) * 28 + 10

    def option_rects(self) -> List[Tuple[str, Rect]]:
        if not self.options_visible():
            return []
        top = self.options_top()
        step = self.OPTION_HEIGHT + self.OPTION_GAP
        return [
            (option, Rect(self.rect.x + self.PADDING, top + i * step, self.WIDTH - 2 * self.PADDING, self.OPTION_HEIGHT))
            for i, option in enumerate(self.options[: self.MAX_OPTIONS])
        ]

    def hit(self, sx: float, sy: float) -> Tuple[str, Optional[str]]:
        if self.close_rect.contains(sx, sy):
            return "close", None
        if self.submit_rect.contains(sx, sy):
            return "submit", None
        for name in self.checkboxes:
            if self.checkbox_rect(name).contains(sx, sy):
                return "checkbox", name
        for option, rect in self.option_rects():
            if rect.contains(sx, sy):
                return "option", option
        for name, text_field in self.fields.items():
            if text_field.rect.contains(sx, sy):
                return "field", name
        if self.rect.contains(sx, sy):
            return "inside", None
        return "outside", None

    def toggle_checkbox(self, name: str) -> None:
        self.checkboxes[name] = not self.checkboxes[name]

    def select_option(self, option: str) -> None:
        self.selected_option = option

    def payload(self) -> Optional[Dict[str, str]]:
        """Submitted values, or None while the form is incomplete."""
        raise NotImplementedError


class CreateTaskForm(ModalForm):
    """Task description plus an optional target agent."""

    kind = "create_task"
    title = "Create Task"

    def __init__(self, view_width: float, view_height: float, agents: Optional[List[str]] = None,
                 target_agent: Optional[str] = None):
        super().__init__(view_width, view_height, options=agents)
        self.fields["description"] = TextField(
            name="description",
            label="Description",
            rect=Rect(self.rect.x + self.PADDING, self.rect.y + 60, self.WIDTH - 2 * self.PADDING, 36),
        )
        self.checkboxes["assign_to_agent"] = target_agent is not None
        self.selected_option = target_agent

    def options_visible(self) -> bool:
        return self.checkboxes["assign_to_agent"]

    def toggle_checkbox(self, name: str) -> None:
        super().toggle_checkbox(name)
        if name == "assign_to_agent" and not self.checkboxes[name]:
            self.selected_option = None

    def payload(self) -> Optional[Dict[str, str]]:
        description = self.fields["description"].value.strip()
        if not description:
            return None
        to = "unassigned"
        if self.checkboxes["assign_to_agent"] and self.selected_option:
            to = self.selected_option
        return {"description": description, "to": to}


class AddAgentForm(ModalForm):
    """Pick one of the server's agents not yet in the workspace."""

    kind = "add_agent"
    title = "Add Agent"

    def payload(self) -> Optional[Dict[str, str]]:
        if not self.selected_option:
            return None
        return {"agent_name": self.selected_option}


# ============================================================================
# TOOLBAR
# ============================================================================

class Toolbar:
    """Row of buttons along the top-left edge of the canvas."""

    BUTTON_WIDTH = 96.0
    BUTTON_HEIGHT = 28.0
    GAP = 8.0
    MARGIN = 10.0

    BUTTONS: List[Tuple[str, str]] = [
        ("create_task", "+ Task"),
        ("add_agent", "+ Agent"),
        ("add_combiner", "+ Merge"),
        ("auto_layout", "Auto layout"),
        ("save_layout", "Save layout"),
        ("timeline", "Timeline"),
        ("help", "Help"),
    ]

    def button_rects(self) -> List[Tuple[str, str, Rect]]:
        return [
            (
                action,
                label,
                Rect(
                    self.MARGIN + i * (self.BUTTON_WIDTH + self.GAP),
                    self.MARGIN,
                    self.BUTTON_WIDTH,
                    self.BUTTON_HEIGHT,
                ),
            )
            for i, (action, label) in enumerate(self.BUTTONS)
        ]

    def button_at(self, sx: float, sy: float) -> Optional[str]:
        for action, _, rect in self.button_rects():
            if rect.contains(sx, sy):
                return action
        return None
