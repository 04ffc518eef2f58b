"""
Per-tick feature containers and the latest-value handoff.

The capture pathway publishes a new immutable FeatureSnapshot for every
analysed block. The tick consumer only ever sees the most recent one;
anything published in between two ticks is dropped.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import numpy as np

N_CHROMA = 12


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class FeatureSet:
    """Higher-order spectral features for one analysis block."""

    volume: float = 0.0
    spectral_centroid: float = 0.0
    spectral_spread: float = 0.0
    chroma: np.ndarray = field(default_factory=lambda: np.zeros(N_CHROMA))
    flux: float = 0.0

    def __post_init__(self):
        chroma = np.array(self.chroma, dtype=np.float64).reshape(-1)
        object.__setattr__(self, "chroma", _frozen(chroma))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "FeatureSet":
        """
        Build a FeatureSet from a loosely-typed mapping.

        Accepts both snake_case and camelCase keys (``spectralCentroid``),
        and ``rms`` as an alias for volume. Missing keys default to zero.
        """
        def pick(*keys, default=0.0):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            volume=float(pick("volume", "rms")),
            spectral_centroid=float(pick("spectral_centroid", "spectralCentroid")),
            spectral_spread=float(pick("spectral_spread", "spectralSpread")),
            chroma=pick("chroma", default=np.zeros(N_CHROMA)),
            flux=float(pick("flux", "spectral_flux", "spectralFlux")),
        )


@dataclass(frozen=True)
class FeatureSnapshot:
    """Everything the engine reads for a single tick."""

    spectrum: np.ndarray
    volume: float
    sample_rate: int
    features: Optional[FeatureSet] = None
    timestamp: float = 0.0

    def __post_init__(self):
        spectrum = np.array(self.spectrum, dtype=np.float64).reshape(-1)
        object.__setattr__(self, "spectrum", _frozen(spectrum))

    @property
    def bin_count(self) -> int:
        return len(self.spectrum)


class LatestFeatureSlot:
    """
    Single-slot "most recent wins" handoff between a capture thread and
    the tick loop.

    Publishing replaces the reference under a lock; readers get whole
    snapshots only, never a partially written one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[FeatureSnapshot] = None
        self._unread = False
        self.published = 0
        self.dropped = 0

    def publish(self, snapshot: FeatureSnapshot) -> None:
        with self._lock:
            if self._unread:
                self.dropped += 1
            self._snapshot = snapshot
            self._unread = True
            self.published += 1

    def latest(self) -> Optional[FeatureSnapshot]:
        """Return the most recent snapshot (or None before the first publish)."""
        with self._lock:
            self._unread = False
            return self._snapshot

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._unread = False
