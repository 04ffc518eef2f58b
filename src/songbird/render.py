"""
Still-frame preview of a session.

Projects the renderer-facing state (trails, anchors, cursor) through a
simple perspective camera and paints it with Pillow, finishing with a
screen-blended bloom.
"""

import math
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, ImageDraw, ImageFilter

from songbird.config import EngineConfig
from songbird.engine import SessionState

COMET_OPACITY = 0.6
STRUCTURE_OPACITY = 0.1


def _rgba(color, opacity: float) -> tuple[int, int, int, int]:
    r, g, b = (int(round(max(0.0, min(1.0, c)) * 255)) for c in color)
    return (r, g, b, int(round(max(0.0, min(1.0, opacity)) * 255)))


def project(
    points: np.ndarray,
    width: int,
    height: int,
    rotation: float = 0.0,
    camera_distance: float = 70.0,
    fov_deg: float = 50.0,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Perspective-project (n, 3) points onto the image plane.

    The scene is rotated about y by ``rotation`` radians; the camera sits on
    +z looking at the origin.

    Returns:
        Tuple of ((n, 2) pixel coordinates, (n,) visibility mask).
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    c, s = math.cos(rotation), math.sin(rotation)
    x = points[:, 0] * c + points[:, 2] * s
    y = points[:, 1]
    z = -points[:, 0] * s + points[:, 2] * c

    depth = camera_distance - z
    visible = depth > 0.1
    focal = (height / 2.0) / math.tan(math.radians(fov_deg) / 2.0)
    safe = np.where(visible, depth, 1.0)
    px = width / 2.0 + focal * x / safe
    py = height / 2.0 - focal * y / safe
    return np.column_stack([px, py]), visible


def add_glow(
    frame: np.ndarray,
    intensity: float = 0.35,
    radius: int = 8,
    threshold: int = 24,
) -> np.ndarray:
    """
    Bloom the bright parts of a frame.

    Pixels whose brightest channel is at or below ``threshold`` are left out
    of the blurred layer, so the background never bleeds into the glow.

    Args:
        frame: (H, W, 3) uint8 RGB array.
        intensity: Bloom opacity (0-1).
        radius: Gaussian blur radius in pixels.
        threshold: Bright-pass cutoff on the 0-255 scale.

    Returns:
        (H, W, 3) uint8 RGB array.
    """
    if intensity <= 0:
        return frame

    bright = np.where((frame.max(axis=-1) > threshold)[..., None], frame, 0).astype(np.uint8)
    bloom = Image.fromarray(bright).filter(ImageFilter.GaussianBlur(radius=radius))
    base = frame.astype(np.float32) / 255.0
    glow = np.asarray(bloom, dtype=np.float32) / 255.0 * intensity
    lit = 1.0 - (1.0 - base) * (1.0 - glow)
    return np.clip(np.round(lit * 255.0), 0, 255).astype(np.uint8)



def _polyline(draw: ImageDraw.ImageDraw, coords: np.ndarray, visible: np.ndarray, fill, width: int):
    # Break the line wherever a point falls behind the camera
    run = []
    for xy, ok in zip(coords, visible):
        if ok:
            run.append((float(xy[0]), float(xy[1])))
        elif run:
            if len(run) > 1:
                draw.line(run, fill=fill, width=width)
            run = []
    if len(run) > 1:
        draw.line(run, fill=fill, width=width)


def render_snapshot(
    session: SessionState,
    config: EngineConfig,
    width: int = 960,
    height: int = 540,
    glow: float = 0.35,
) -> np.ndarray:
    """
    Paint the current state of ``session``.

    Returns:
        (height, width, 3) uint8 RGB array.
    """
    rotation = session.scene_rotation
    line_width = max(1, int(round(config.line_weight)))

    base = Image.new("RGBA", (width, height), _rgba(config.background_color, 1.0))
    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    structure = session.structure.points()
    if len(structure) > 1:
        coords, visible = project(structure, width, height, rotation)
        _polyline(draw, coords, visible, _rgba(config.structure_color, STRUCTURE_OPACITY), 1)

    comet = session.comet.points()
    if len(comet) > 1:
        coords, visible = project(comet, width, height, rotation)
        _polyline(draw, coords, visible, _rgba(config.trail_color, COMET_OPACITY), line_width)

    for state in session.anchor_states():
        (xy,), (ok,) = project(state.position[None, :], width, height, rotation)
        if not ok:
            continue
        r = 2.0 * state.scale
        color = session.anchor_field[state.index].color
        draw.ellipse([xy[0] - r, xy[1] - r, xy[0] + r, xy[1] + r],
                     fill=_rgba(color, state.opacity))

    cursor = session.cursor
    (xy,), (ok,) = project(cursor.display_position[None, :], width, height, rotation)
    if ok:
        r = max(2.0, cursor.glow_scale * 20.0)
        draw.ellipse([xy[0] - r, xy[1] - r, xy[0] + r, xy[1] + r],
                     fill=_rgba(cursor.active_color, 1.0))

    frame = np.asarray(Image.alpha_composite(base, overlay).convert("RGB"))
    return add_glow(frame, intensity=glow)


def save_png(frame: np.ndarray, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    Image.fromarray(frame).save(output_path)
    return output_path
