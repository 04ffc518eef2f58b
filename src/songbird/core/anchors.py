"""
Pitch-class anchor layouts.

Twelve anchors, one per pitch class, placed on a sphere-like constellation.
Each layout is a pure function of the anchor count and radius; the field is
rebuilt wholesale whenever the layout changes.
"""

import math
from dataclasses import dataclass

import numpy as np

from songbird.config import (
    ANCHOR_COUNT,
    ANCHOR_PROXIMITY_RANGE,
    ANCHOR_RADIUS,
    LAYER_COUNT,
    LAYER_RADIUS_RATIO,
    LAYER_SPACING,
    LayoutMode,
)
from songbird.core.color import NOTE_NAMES, Color, pitch_class_color

# Idle drift: (frequency, amplitude) per axis
_DRIFT_FREQS = (0.4, 0.5, 0.3)
_DRIFT_AMPLITUDE = 1.5
_PHASE_RANGE = 10.0


@dataclass(frozen=True)
class Anchor:
    """A fixed target point for one pitch class."""

    index: int
    position: np.ndarray
    color: Color
    phase_offset: float

    @property
    def name(self) -> str:
        return NOTE_NAMES[self.index]


@dataclass(frozen=True)
class AnchorState:
    """Per-tick glow animation values handed to the rendering layer."""

    index: int
    position: np.ndarray
    opacity: float
    scale: float
    proximity: float


def _spherical(r: float, phi: float, theta: float) -> tuple[float, float, float]:
    return (
        r * math.sin(phi) * math.cos(theta),
        r * math.sin(phi) * math.sin(theta),
        r * math.cos(phi),
    )


def shell_layout(count: int = ANCHOR_COUNT, radius: float = ANCHOR_RADIUS) -> np.ndarray:
    """Cosine-spaced polar angle with evenly stepped azimuth."""
    points = []
    for i in range(count):
        theta = (i / count) * 2.0 * math.pi
        phi = math.acos(-1.0 + (2.0 * i) / (count - 1))
        points.append(_spherical(radius, phi, theta))
    return np.array(points, dtype=np.float64)


def spiral_layout(count: int = ANCHOR_COUNT, radius: float = ANCHOR_RADIUS) -> np.ndarray:
    """Golden-angle (Fibonacci) spiral over the sphere."""
    points = []
    for i in range(count):
        theta = math.pi * (1.0 + math.sqrt(5.0)) * (i + 0.5)
        phi = math.acos(1.0 - 2.0 * (i + 0.5) / count)
        points.append(_spherical(radius, phi, theta))
    return np.array(points, dtype=np.float64)


def layered_layout(count: int = ANCHOR_COUNT, radius: float = ANCHOR_RADIUS) -> np.ndarray:
    """
    Concentric rings stacked along y.

    Each ring is ``LAYER_RADIUS_RATIO`` times the one before and rotated
    by half a step so anchors do not line up vertically.
    """
    per_layer = count // LAYER_COUNT
    points = []
    for i in range(count):
        layer, j = divmod(i, per_layer)
        r = radius * (LAYER_RADIUS_RATIO ** layer)
        angle = 2.0 * math.pi * j / per_layer + layer * math.pi / per_layer
        y = (layer - (LAYER_COUNT - 1) / 2.0) * LAYER_SPACING
        points.append((r * math.cos(angle), y, r * math.sin(angle)))
    return np.array(points, dtype=np.float64)


_LAYOUTS = {
    LayoutMode.SHELL: shell_layout,
    LayoutMode.SPIRAL: spiral_layout,
    LayoutMode.LAYERED: layered_layout,
}


def build_anchors(
    layout: LayoutMode | str,
    rng: np.random.Generator | None = None,
    radius: float = ANCHOR_RADIUS,
) -> list[Anchor]:
    """
    Build the 12 pitch-class anchors for a layout.

    Raises:
        ValueError: For an unknown layout name.
    """
    layout = LayoutMode(layout)
    rng = rng or np.random.default_rng()
    positions = _LAYOUTS[layout](ANCHOR_COUNT, radius)
    anchors = []
    for i, pos in enumerate(positions):
        pos.setflags(write=False)
        anchors.append(Anchor(
            index=i,
            position=pos,
            color=pitch_class_color(i),
            phase_offset=float(rng.uniform(0.0, _PHASE_RANGE)),
        ))
    return anchors


class AnchorField:
    """The current anchor set plus its glow animation."""

    def __init__(self, layout: LayoutMode | str, rng: np.random.Generator | None = None):
        self.layout = LayoutMode(layout)
        self.anchors = build_anchors(self.layout, rng)
        self.positions = np.stack([a.position for a in self.anchors])
        self.positions.setflags(write=False)

    def __len__(self) -> int:
        return len(self.anchors)

    def __getitem__(self, index: int) -> Anchor:
        return self.anchors[index]

    def states(self, cursor: np.ndarray, elapsed: float) -> list[AnchorState]:
        """
        Live anchor positions with idle drift, plus proximity glow.

        Proximity is measured against the undrifted anchor position.
        """
        result = []
        for anchor in self.anchors:
            phase = anchor.phase_offset
            drift = np.array([
                math.sin(elapsed * _DRIFT_FREQS[0] + phase),
                math.cos(elapsed * _DRIFT_FREQS[1] + phase),
                math.sin(elapsed * _DRIFT_FREQS[2] + phase),
            ]) * _DRIFT_AMPLITUDE
            dist = float(np.linalg.norm(cursor - anchor.position))
            proximity = max(0.0, 1.0 - dist / ANCHOR_PROXIMITY_RANGE)
            result.append(AnchorState(
                index=anchor.index,
                position=anchor.position + drift,
                opacity=0.08 + proximity * 0.7,
                scale=1.0 + proximity * 3.0,
                proximity=proximity,
            ))
        return result
