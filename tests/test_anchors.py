"""Tests for the anchor layouts and glow animation."""

import math

import numpy as np
import pytest

from songbird.config import LayoutMode
from songbird.core.anchors import (
    AnchorField,
    build_anchors,
    layered_layout,
    shell_layout,
    spiral_layout,
)
from songbird.core.color import hsl_color


class TestLayouts:
    """Tests for the pure layout functions."""

    @pytest.mark.parametrize("layout", list(LayoutMode))
    def test_twelve_anchors(self, layout):
        anchors = build_anchors(layout, np.random.default_rng(0))
        assert len(anchors) == 12
        assert [a.index for a in anchors] == list(range(12))

    @pytest.mark.parametrize("fn", [shell_layout, spiral_layout, layered_layout])
    def test_layouts_are_deterministic(self, fn):
        assert np.array_equal(fn(), fn())

    def test_layouts_differ(self):
        shell, spiral, layered = shell_layout(), spiral_layout(), layered_layout()
        assert not np.allclose(shell, spiral)
        assert not np.allclose(shell, layered)
        assert not np.allclose(spiral, layered)

    @pytest.mark.parametrize("fn", [shell_layout, spiral_layout])
    def test_sphere_layouts_on_radius(self, fn):
        norms = np.linalg.norm(fn(), axis=1)
        assert np.allclose(norms, 40.0)

    def test_shell_poles(self):
        """First and last anchors sit at the poles of the shell."""
        points = shell_layout()
        assert np.allclose(points[0], [0.0, 0.0, -40.0], atol=1e-9)
        assert np.allclose(points[11], [0.0, 0.0, 40.0], atol=1e-9)

    def test_spiral_first_point(self):
        theta = math.pi * (1.0 + math.sqrt(5.0)) * 0.5
        phi = math.acos(1.0 - 1.0 / 12.0)
        expected = [
            40.0 * math.sin(phi) * math.cos(theta),
            40.0 * math.sin(phi) * math.sin(theta),
            40.0 * math.cos(phi),
        ]
        assert np.allclose(spiral_layout()[0], expected)

    def test_layered_rings(self):
        """Three rings of four, shrinking by 0.6 and stacked 15 apart."""
        points = layered_layout()
        ring_radii = np.hypot(points[:, 0], points[:, 2])

        assert np.allclose(ring_radii[0:4], 40.0)
        assert np.allclose(ring_radii[4:8], 24.0)
        assert np.allclose(ring_radii[8:12], 14.4)
        assert np.allclose(points[0:4, 1], -15.0)
        assert np.allclose(points[4:8, 1], 0.0)
        assert np.allclose(points[8:12, 1], 15.0)

    def test_unknown_layout(self):
        with pytest.raises(ValueError):
            build_anchors("torus")


class TestAnchors:
    """Tests for anchor colours and phases."""

    def test_colors_follow_hue_wheel(self):
        anchors = build_anchors(LayoutMode.SHELL, np.random.default_rng(0))
        for anchor in anchors:
            assert anchor.color == pytest.approx(hsl_color(anchor.index * 30.0))

    def test_names(self):
        anchors = build_anchors(LayoutMode.SHELL, np.random.default_rng(0))
        assert anchors[0].name == "C"
        assert anchors[9].name == "A"

    def test_phases_seeded(self):
        a = build_anchors(LayoutMode.SPIRAL, np.random.default_rng(3))
        b = build_anchors(LayoutMode.SPIRAL, np.random.default_rng(3))

        assert [x.phase_offset for x in a] == [x.phase_offset for x in b]
        assert all(0.0 <= x.phase_offset < 10.0 for x in a)

    def test_positions_are_read_only(self):
        field = AnchorField(LayoutMode.SHELL, np.random.default_rng(0))
        with pytest.raises(ValueError):
            field.positions[0, 0] = 1.0
        with pytest.raises(ValueError):
            field[0].position[0] = 1.0


class TestAnchorField:
    """Tests for the per-tick glow animation."""

    @pytest.fixture
    def field(self):
        return AnchorField("shell", np.random.default_rng(0))

    def test_accepts_layout_name(self, field):
        assert field.layout is LayoutMode.SHELL
        assert len(field) == 12
        assert field.positions.shape == (12, 3)

    def test_cursor_on_anchor_glows(self, field):
        states = field.states(field.positions[4], elapsed=0.0)

        assert states[4].proximity == pytest.approx(1.0)
        assert states[4].opacity == pytest.approx(0.78)
        assert states[4].scale == pytest.approx(4.0)

    def test_distant_cursor_is_dim(self, field):
        states = field.states(np.array([500.0, 0.0, 0.0]), elapsed=1.0)

        for state in states:
            assert state.proximity == 0.0
            assert state.opacity == pytest.approx(0.08)
            assert state.scale == pytest.approx(1.0)

    def test_drift_is_bounded(self, field):
        for t in (0.0, 0.7, 3.3, 12.0):
            for state in field.states(np.zeros(3), elapsed=t):
                offset = state.position - field.positions[state.index]
                assert np.all(np.abs(offset) <= 1.5 + 1e-9)
