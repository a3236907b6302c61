"""
Tests for agentcanvas/core/viewport.py - Viewport transform.

Tests:
- screen/world round trip
- Pointer-anchored zoom and clamping
- Wheel steps, pan, fit-to-bounds
"""

import pytest
from hypothesis import given, strategies as st

from agentcanvas.core.viewport import MAX_SCALE, MIN_SCALE, Viewport, clamp_scale


coords = st.floats(min_value=-5000, max_value=5000, allow_nan=False, allow_infinity=False)
offsets = st.floats(min_value=-2000, max_value=2000, allow_nan=False, allow_infinity=False)
scales = st.floats(min_value=MIN_SCALE, max_value=MAX_SCALE, allow_nan=False)
factors = st.floats(min_value=0.05, max_value=20.0, allow_nan=False)


class TestTransformProperties:
    """Property tests for the affine transform."""

    @given(sx=coords, sy=coords, ox=offsets, oy=offsets, scale=scales)
    def test_round_trip(self, sx, sy, ox, oy, scale):
        """worldToScreen(screenToWorld(p)) == p for any valid transform."""
        vp = Viewport(offset_x=ox, offset_y=oy, scale=scale)
        wx, wy = vp.screen_to_world(sx, sy)
        rx, ry = vp.world_to_screen(wx, wy)
        assert rx == pytest.approx(sx, abs=1e-6)
        assert ry == pytest.approx(sy, abs=1e-6)

    @given(sx=coords, sy=coords, ox=offsets, oy=offsets, scale=scales, factor=factors)
    def test_zoom_keeps_anchor_when_unclamped(self, sx, sy, ox, oy, scale, factor):
        """The world point under the cursor does not move on zoom."""
        vp = Viewport(offset_x=ox, offset_y=oy, scale=scale)
        before = vp.screen_to_world(sx, sy)
        unclamped = MIN_SCALE <= scale * factor <= MAX_SCALE

        vp.zoom_at(sx, sy, factor)

        after = vp.screen_to_world(sx, sy)
        if unclamped:
            assert after[0] == pytest.approx(before[0], rel=1e-6, abs=1e-6)
            assert after[1] == pytest.approx(before[1], rel=1e-6, abs=1e-6)

    @given(steps=st.lists(factors, min_size=1, max_size=40))
    def test_scale_stays_in_range(self, steps):
        """Repeated zooms never leave [0.5, 2.0]."""
        vp = Viewport()
        for factor in steps:
            vp.zoom_at(300, 200, factor)
            assert MIN_SCALE <= vp.scale <= MAX_SCALE


class TestViewport:
    """Tests for individual Viewport operations."""

    def test_screen_to_world_formula(self):
        vp = Viewport(offset_x=100, offset_y=50, scale=2.0)
        assert vp.screen_to_world(300, 250) == (100.0, 100.0)
        assert vp.world_to_screen(100, 100) == (300.0, 250.0)

    def test_constructor_clamps_scale(self):
        assert Viewport(scale=10).scale == MAX_SCALE
        assert Viewport(scale=0.01).scale == MIN_SCALE

    def test_clamp_scale(self):
        assert clamp_scale(0.1) == 0.5
        assert clamp_scale(1.3) == 1.3
        assert clamp_scale(5) == 2.0

    def test_zoom_ignores_non_positive_factor(self):
        vp = Viewport(offset_x=10, scale=1.5)
        vp.zoom_at(100, 100, 0)
        vp.zoom_at(100, 100, -2)
        assert vp.scale == 1.5
        assert vp.offset_x == 10

    def test_wheel_down_zooms_out(self):
        vp = Viewport()
        vp.wheel_zoom(0, 0, 120)
        assert vp.scale == pytest.approx(0.9)

    def test_wheel_up_zooms_in(self):
        vp = Viewport()
        vp.wheel_zoom(0, 0, -120)
        assert vp.scale == pytest.approx(1.1)

    def test_pan_is_in_screen_units(self):
        vp = Viewport(scale=2.0)
        vp.pan(40, -10)
        assert (vp.offset_x, vp.offset_y) == (40, -10)
        assert vp.screen_to_world(40, -10) == (0.0, 0.0)

    def test_reset(self):
        vp = Viewport(offset_x=5, offset_y=6, scale=1.7)
        vp.reset()
        assert (vp.offset_x, vp.offset_y, vp.scale) == (0.0, 0.0, 1.0)

    def test_center_world_x(self):
        vp = Viewport(width=1000, offset_x=100, scale=2.0)
        assert vp.center_world_x() == pytest.approx(200.0)

    def test_fit_to_bounds_centers_content(self):
        vp = Viewport(width=1200, height=800)
        vp.fit_to_bounds(0, 0, 400, 200)

        assert vp.scale == 1.0  # content fits, never zooms in past 1.0
        cx, cy = vp.world_to_screen(200, 100)
        assert cx == pytest.approx(600)
        assert cy == pytest.approx(400)

    def test_fit_to_bounds_zooms_out_for_large_content(self):
        vp = Viewport(width=1200, height=800)
        vp.fit_to_bounds(0, 0, 2000, 1000)

        assert vp.scale == pytest.approx(1200 / 2200)
        left, _ = vp.world_to_screen(-100, 0)
        assert left == pytest.approx(0, abs=1e-6)

    def test_fit_to_bounds_respects_min_scale(self):
        vp = Viewport(width=1200, height=800)
        vp.fit_to_bounds(0, 0, 100000, 100000)
        assert vp.scale == MIN_SCALE
