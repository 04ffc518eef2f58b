"""
Colour helpers.

Colours travel through the engine as RGB float triples in [0, 1].
Pitch classes map onto the HSL wheel in 30 degree steps.
"""

from colorsys import hls_to_rgb

Color = tuple[float, float, float]

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


def parse_color(value) -> Color:
    """
    Parse a colour given as ``#rrggbb``, ``#rgb`` or an RGB float triple.

    Raises:
        ValueError: If the value cannot be interpreted as a colour.
    """
    if isinstance(value, str):
        text = value.strip().lstrip("#")
        if len(text) == 3:
            text = "".join(ch * 2 for ch in text)
        if len(text) != 6:
            raise ValueError(f"Invalid colour: {value!r}")
        try:
            channels = [int(text[i:i + 2], 16) for i in (0, 2, 4)]
        except ValueError:
            raise ValueError(f"Invalid colour: {value!r}") from None
        return (channels[0] / 255.0, channels[1] / 255.0, channels[2] / 255.0)

    try:
        r, g, b = (float(c) for c in value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid colour: {value!r}") from None
    if not all(0.0 <= c <= 1.0 for c in (r, g, b)):
        raise ValueError(f"Colour channels must be in [0, 1]: {value!r}")
    return (r, g, b)


def to_hex(color: Color) -> str:
    """Format an RGB float triple as ``#rrggbb``."""
    return "#" + "".join(
        f"{int(round(max(0.0, min(1.0, c)) * 255)):02x}" for c in color
    )


def hsl_color(hue_deg: float, saturation: float = 0.7, lightness: float = 0.65) -> Color:
    """CSS-style ``hsl()`` to an RGB triple."""
    r, g, b = hls_to_rgb((hue_deg % 360.0) / 360.0, lightness, saturation)
    return (r, g, b)


def lerp_color(a: Color, b: Color, t: float) -> Color:
    return (
        a[0] + (b[0] - a[0]) * t,
        a[1] + (b[1] - a[1]) * t,
        a[2] + (b[2] - a[2]) * t,
    )


def pitch_class_color(pitch_class: int) -> Color:
    """Hue of a pitch class: ``index * 30`` degrees around the wheel."""
    return hsl_color((pitch_class % 12) * 30.0)
