"""
Canvas color palette.

Dark palette in the VS Code Dark Modern family, plus status colors for
task cards and agent badges.
"""

from agentcanvas.core.nodes import TaskStatus


class CanvasColors:
    """Color constants used by the canvas renderer."""

    # Surfaces
    BACKGROUND = "#1E1E1E"
    GRID = "#262626"
    PANEL_BACKGROUND = "#252526"
    PANEL_BORDER = "#3C3C3C"
    OVERLAY_SCRIM = "#B3000000"

    # Text
    TEXT = "#CCCCCC"
    TEXT_MUTED = "#858585"
    TEXT_STRONG = "#FFFFFF"

    # Nodes
    NODE_FILL = "#2D2D30"
    NODE_BORDER = "#454545"
    SELECTED_BORDER = "#0078D4"
    PORT_INPUT = "#4FC1FF"
    PORT_OUTPUT = "#F9C74F"

    # Wires
    CONNECTION = "#8B8B8B"
    CONNECTION_DRAFT = "#0078D4"
    DEPENDENCY = "#6B7280"
    ASSIGNMENT_ARROW = "#F59E0B"

    # Buttons
    BUTTON = "#0E639C"
    BUTTON_HOVER = "#1177BB"
    BUTTON_TEXT = "#FFFFFF"
    DELETE = "#C72E2E"
    EXECUTE = "#16825D"
    ASSIGN = "#B07D00"
    LOG = "#5A5A5A"

    # Notifications
    SUCCESS = "#16825D"
    ERROR = "#C72E2E"
    WARNING = "#B07D00"
    INFO = "#0E639C"


STATUS_COLORS = {
    TaskStatus.PENDING.value: "#6B7280",
    TaskStatus.ASSIGNED.value: "#8B5CF6",
    TaskStatus.IN_PROGRESS.value: "#3B82F6",
    TaskStatus.COMPLETED.value: "#10B981",
    TaskStatus.FAILED.value: "#EF4444",
}

AGENT_STATUS_COLORS = {
    "idle": "#6B7280",
    "active": "#10B981",
    "busy": "#F59E0B",
    "error": "#EF4444",
}

NOTIFICATION_COLORS = {
    "success": CanvasColors.SUCCESS,
    "error": CanvasColors.ERROR,
    "warning": CanvasColors.WARNING,
    "info": CanvasColors.INFO,
}


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, STATUS_COLORS[TaskStatus.PENDING.value])
