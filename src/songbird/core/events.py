"""Rate-limited data-point events for external UI panels."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from songbird.core.color import Color, to_hex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataPoint:
    """A sustained lock, as reported to listeners."""

    color: Color
    amplitude: float
    emission_time: float
    label: str
    brightness: float

    def to_dict(self) -> dict:
        return {
            "color": to_hex(self.color),
            "amplitude": round(self.amplitude, 4),
            "emission_time": round(self.emission_time, 4),
            "label": self.label,
            "brightness": round(self.brightness, 4),
        }


class DataPointEmitter:
    """
    Fires a callback when a lock is held across consecutive ticks with
    enough volume, no more often than once per ``min_interval`` seconds.
    """

    def __init__(
        self,
        callback: Optional[Callable[[DataPoint], None]] = None,
        min_interval: float = 0.15,
        min_volume: float = 0.1,
    ):
        self.callback = callback
        self.min_interval = min_interval
        self.min_volume = min_volume
        self._was_locked = False
        self._last_emit: Optional[float] = None
        self.emitted = 0

    def update(
        self,
        locked: bool,
        volume: float,
        now: float,
        color: Color,
        label: str,
        brightness: float,
    ) -> Optional[DataPoint]:
        sustained = locked and self._was_locked
        self._was_locked = locked
        if not sustained or not volume >= self.min_volume:
            return None
        if self._last_emit is not None and now - self._last_emit < self.min_interval:
            return None

        point = DataPoint(
            color=color,
            amplitude=float(volume),
            emission_time=now,
            label=label,
            brightness=float(brightness),
        )
        self._last_emit = now
        self.emitted += 1
        if self.callback is not None:
            try:
                self.callback(point)
            except Exception:
                logger.exception("Data-point listener failed")
        return point
