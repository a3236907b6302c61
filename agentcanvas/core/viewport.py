"""
Viewport transform for AgentCanvas.

Maps between screen pixels and world (scene) coordinates with a pan offset
and a uniform scale:

    world = (screen - offset) / scale
    screen = world * scale + offset

The scale is always clamped to [MIN_SCALE, MAX_SCALE], so the transform is
invertible at all times.
"""

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


MIN_SCALE = 0.5
MAX_SCALE = 2.0

# Wheel zoom steps (scroll down zooms out)
WHEEL_ZOOM_OUT = 0.9
WHEEL_ZOOM_IN = 1.1

FIT_PADDING = 100.0


def clamp_scale(scale: float) -> float:
    """Clamp a scale value to the supported zoom range."""
    return max(MIN_SCALE, min(MAX_SCALE, scale))


class Viewport:
    """
    Pan + uniform-scale transform between screen and world space.

    Attributes:
        width: Visible canvas width in screen pixels.
        height: Visible canvas height in screen pixels.
        offset_x: Horizontal pan offset in screen pixels.
        offset_y: Vertical pan offset in screen pixels.
        scale: Zoom factor, always within [MIN_SCALE, MAX_SCALE].
    """

    def __init__(
        self,
        width: float = 1200.0,
        height: float = 800.0,
        offset_x: float = 0.0,
        offset_y: float = 0.0,
        scale: float = 1.0,
    ):
        self.width = width
        self.height = height
        self.offset_x = offset_x
        self.offset_y = offset_y
        self.scale = clamp_scale(scale)

    def __repr__(self) -> str:
        return (
            f"Viewport(offset=({self.offset_x:.1f}, {self.offset_y:.1f}), "
            f"scale={self.scale:.3f}, size={self.width}x{self.height})"
        )

    # ========================================================================
    # COORDINATE MAPPING
    # ========================================================================

    def screen_to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        """Convert a screen point to world coordinates."""
        return (sx - self.offset_x) / self.scale, (sy - self.offset_y) / self.scale

    def world_to_screen(self, wx: float, wy: float) -> Tuple[float, float]:
        """Convert a world point to screen coordinates."""
        return wx * self.scale + self.offset_x, wy * self.scale + self.offset_y

    # ========================================================================
    # NAVIGATION
    # ========================================================================

    def zoom_at(self, sx: float, sy: float, factor: float) -> None:
        """
        Zoom by `factor` keeping the world point under (sx, sy) fixed.

        Args:
            sx: Anchor x in screen pixels (usually the pointer).
            sy: Anchor y in screen pixels.
            factor: Multiplicative zoom step (> 0).
        """
        if factor <= 0:
            logger.debug(f"Ignoring non-positive zoom factor: {factor}")
            return

        wx, wy = self.screen_to_world(sx, sy)
        self.scale = clamp_scale(self.scale * factor)

        # Re-anchor so the same world point stays under the cursor
        self.offset_x = sx - wx * self.scale
        self.offset_y = sy - wy * self.scale

    def wheel_zoom(self, sx: float, sy: float, delta_y: float) -> None:
        """Apply one mouse-wheel step anchored at the pointer."""
        factor = WHEEL_ZOOM_OUT if delta_y > 0 else WHEEL_ZOOM_IN
        self.zoom_at(sx, sy, factor)

    def pan(self, dx: float, dy: float) -> None:
        """Shift the view by (dx, dy) screen pixels."""
        self.offset_x += dx
        self.offset_y += dy

    def resize(self, width: float, height: float) -> None:
        """Update the visible canvas size."""
        self.width = width
        self.height = height

    def reset(self) -> None:
        """Return to the identity transform."""
        self.offset_x = 0.0
        self.offset_y = 0.0
        self.scale = 1.0

    def center_world_x(self) -> float:
        """World x coordinate currently at the horizontal middle of the view."""
        return (self.width / 2 - self.offset_x) / self.scale

    def fit_to_bounds(
        self,
        min_x: float,
        min_y: float,
        max_x: float,
        max_y: float,
        padding: float = FIT_PADDING,
        max_scale: Optional[float] = 1.0,
    ) -> None:
        """
        Zoom and pan so a world rectangle is centered in view.

        Never zooms in past `max_scale`; the result is still clamped to the
        global zoom range.

        Args:
            min_x, min_y, max_x, max_y: World-space bounding box.
            padding: Screen padding around the content.
            max_scale: Upper bound for the fitted scale (None for no bound).
        """
        content_w = max(max_x - min_x, 1.0) + padding * 2
        content_h = max(max_y - min_y, 1.0) + padding * 2

        scale = min(self.width / content_w, self.height / content_h)
        if max_scale is not None:
            scale = min(scale, max_scale)
        self.scale = clamp_scale(scale)

        center_x = (min_x + max_x) / 2
        center_y = (min_y + max_y) / 2
        self.offset_x = self.width / 2 - center_x * self.scale
        self.offset_y = self.height / 2 - center_y * self.scale

        logger.debug(f"Fitted viewport to content: {self}")
