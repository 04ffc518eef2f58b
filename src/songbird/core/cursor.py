"""
Cursor motion.

The cursor chases a target with exponential smoothing whose rate depends on
whether a pitch is locked: locked motion snaps toward the anchor, unlocked
motion drifts back to the origin. Turbulence is an additive, stateless
offset layered on top of the smoothed position.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from songbird.config import (
    CENTROID_BIAS_DIVISOR,
    CENTROID_BIAS_OFFSET,
    LOCKED_SPEED,
    TURBULENCE_AMPLITUDE,
    UNLOCKED_SPEED,
    VOLUME_SCALE,
)
from songbird.core.color import Color


@dataclass
class CursorState:
    """The single moving point the trails are drawn from."""

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    display_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    is_locked: bool = False
    active_color: Color = (1.0, 1.0, 1.0)
    glow_scale: float = 0.06
    light_intensity: float = 15.0


def peak_target(
    anchor_position: np.ndarray,
    volume: float,
    centroid: Optional[float] = None,
) -> np.ndarray:
    """
    Target for a peak-mode lock: the anchor pushed outward by volume and
    shifted in y by the spectral centroid.
    """
    target = np.asarray(anchor_position, dtype=np.float64) * (1.0 + volume * VOLUME_SCALE)
    if centroid is not None and math.isfinite(centroid) and centroid > 0:
        target = target.copy()
        target[1] += centroid / CENTROID_BIAS_DIVISOR - CENTROID_BIAS_OFFSET
    return target


def smoothing_factor(speed: float, dt: float, exact: bool = True) -> float:
    """
    Fraction of the remaining distance covered in ``dt`` seconds.

    The exact form ``1 - exp(-speed * dt)`` composes across ticks, so the
    trajectory depends only on elapsed time. The linear form is its
    first-order approximation, clamped to 1.
    """
    if not math.isfinite(dt) or dt <= 0:
        return 0.0
    if exact:
        return 1.0 - math.exp(-speed * dt)
    return min(1.0, speed * dt)


def turbulence_offset(position: np.ndarray, elapsed: float, amount: float) -> np.ndarray:
    """Deterministic sinusoidal jitter for the given time and position."""
    if amount <= 0:
        return np.zeros(3)
    x, y, z = (float(v) for v in position)
    ax, ay, az = TURBULENCE_AMPLITUDE
    return np.array([
        math.sin(elapsed * 1.7 + y * 0.05) * amount * ax,
        math.cos(elapsed * 1.3 + z * 0.05) * amount * ay,
        math.sin(elapsed * 2.1 + x * 0.05) * amount * az,
    ])


class CursorIntegrator:
    """Advances a CursorState toward its target each tick."""

    def __init__(self, exact_smoothing: bool = True):
        self.exact_smoothing = exact_smoothing

    def step(
        self,
        cursor: CursorState,
        target: np.ndarray,
        locked: bool,
        dt: float,
        elapsed: float = 0.0,
        turbulence: float = 0.0,
    ) -> CursorState:
        """
        Move ``cursor`` in place and return it.

        A non-finite target is ignored for this tick (the cursor holds).
        """
        target = np.asarray(target, dtype=np.float64)
        if target.shape == (3,) and np.all(np.isfinite(target)):
            speed = LOCKED_SPEED if locked else UNLOCKED_SPEED
            alpha = smoothing_factor(speed, dt, self.exact_smoothing)
            cursor.position += (target - cursor.position) * alpha
        cursor.is_locked = locked

        offset = turbulence_offset(cursor.position, elapsed, turbulence)
        if np.all(np.isfinite(offset)):
            cursor.display_position = cursor.position + offset
        else:
            cursor.display_position = cursor.position.copy()
        return cursor
