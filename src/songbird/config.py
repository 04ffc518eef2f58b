"""
Engine configuration.

Reference constants for the mapping algorithms plus the hot-swappable
configuration surface exposed to the host application.
"""

import dataclasses
import math
from dataclasses import dataclass
from enum import Enum

from songbird.core.color import Color, parse_color

# Pitch resolver (peak mode)
PEAK_SKIP_BINS = 10
PEAK_MIN_MAGNITUDE = 70.0
PEAK_TO_MEAN_RATIO = 2.5
A4_FREQUENCY = 440.0
A4_MIDI = 69

# Pitch resolver (chroma mode)
CHROMA_MIN_WEIGHT = 0.01

# Anchor field
ANCHOR_COUNT = 12
ANCHOR_RADIUS = 40.0
LAYER_COUNT = 3
LAYER_RADIUS_RATIO = 0.6
LAYER_SPACING = 15.0
ANCHOR_PROXIMITY_RANGE = 25.0

# Cursor integrator
LOCKED_SPEED = 40.0
UNLOCKED_SPEED = 4.0
VOLUME_SCALE = 0.1
CENTROID_BIAS_DIVISOR = 200.0
CENTROID_BIAS_OFFSET = 20.0
TURBULENCE_AMPLITUDE = (12.0, 14.0, 8.0)
COLOR_BLEND = 0.3

# Species classifier
CENTROID_REFERENCE_MAX = 512.0
SPREAD_REFERENCE_MAX = 256.0
CONFIDENCE_BASE = 82
CONFIDENCE_SPAN = 15


class LayoutMode(str, Enum):
    """Anchor layout algorithms."""

    SHELL = "shell"
    SPIRAL = "spiral"
    LAYERED = "layered"


class ResolverMode(str, Enum):
    """Pitch resolver modes."""

    PEAK = "peak"
    CHROMA = "chroma"


def _coerce_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValueError(
            f"Unknown {field_name} {value!r} (expected one of: {choices})"
        ) from None


_FLOAT_FIELDS = (
    "line_weight",
    "turbulence",
    "structure_threshold",
    "species_min_volume",
    "species_hold_seconds",
    "emit_interval",
    "emit_min_volume",
)

@dataclass
class EngineConfig:
    """Configuration for a spectral mapping session."""

    # Visual surface (hot-swappable)
    trail_color: Color | str = "#00ffcc"
    structure_color: Color | str = "#ffffff"
    background_color: Color | str = "#020202"
    line_weight: float = 2.0
    turbulence: float = 0.0
    layout: LayoutMode | str = LayoutMode.SHELL
    resolver_mode: ResolverMode | str = ResolverMode.PEAK

    # Trail buffers (fixed per session)
    comet_capacity: int = 150
    structure_capacity: int = 2000
    structure_threshold: float = 0.3

    # Motion
    exact_smoothing: bool = True

    # Species classifier
    species_min_volume: float = 0.05
    species_hold_seconds: float = 4.0

    # Data-point events
    emit_interval: float = 0.15
    emit_min_volume: float = 0.1

    def __post_init__(self):
        self.trail_color = parse_color(self.trail_color)
        self.structure_color = parse_color(self.structure_color)
        self.background_color = parse_color(self.background_color)
        self.layout = _coerce_enum(LayoutMode, self.layout, "layout")
        self.resolver_mode = _coerce_enum(ResolverMode, self.resolver_mode, "resolver mode")

        for name in _FLOAT_FIELDS:
            value = getattr(self, name)
            try:
                finite = math.isfinite(value)
            except TypeError:
                finite = False
            if isinstance(value, bool) or not finite:
                raise ValueError(f"{name} must be a finite number, got {value!r}")

        if not 0.0 <= self.turbulence <= 1.0:
            raise ValueError(f"turbulence must be in [0, 1], got {self.turbulence}")
        if self.line_weight <= 0:
            raise ValueError(f"line_weight must be positive, got {self.line_weight}")
        for name in ("comet_capacity", "structure_capacity"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.structure_threshold <= 0:
            raise ValueError(
                f"structure_threshold must be positive, got {self.structure_threshold}"
            )
        if self.species_hold_seconds < 0 or self.emit_interval < 0:
            raise ValueError("hold and emit intervals must be non-negative")

    def replace(self, **changes) -> "EngineConfig":
        """Return a validated copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)
