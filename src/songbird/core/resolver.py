"""
Pitch resolution.

Turns the current tick's spectrum (peak mode) or chroma vector (chroma mode)
into a pitch-class lock. Both resolvers are pure functions of their inputs
and never raise on malformed data: anything that cannot produce a finite
answer resolves to "unlocked".
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from songbird.config import (
    A4_FREQUENCY,
    A4_MIDI,
    CHROMA_MIN_WEIGHT,
    PEAK_MIN_MAGNITUDE,
    PEAK_SKIP_BINS,
    PEAK_TO_MEAN_RATIO,
)
from songbird.core.features import N_CHROMA

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PitchResolution:
    """Outcome of pitch resolution for one tick."""

    pitch_class: int = -1
    is_locked: bool = False
    weight: float = 0.0
    # Continuous target (chroma mode only); None means "use the anchor".
    target: Optional[np.ndarray] = None
    frequency: Optional[float] = None


UNLOCKED = PitchResolution()


def bin_to_frequency(bin_index: int, sample_rate: float, bin_count: int) -> float:
    """Centre frequency of an analyser bin: ``bin * nyquist / bin_count``."""
    return bin_index * (sample_rate / 2.0) / bin_count


def frequency_to_pitch_class(freq: float) -> Optional[int]:
    """
    Map a frequency to its pitch class (C=0 ... B=11).

    Returns None for non-positive or non-finite frequencies.
    """
    if not math.isfinite(freq) or freq <= 0:
        return None
    note = 12.0 * math.log2(freq / A4_FREQUENCY) + A4_MIDI
    if not math.isfinite(note):
        return None
    return int(round(note)) % 12


def resolve_peak(spectrum, sample_rate: float) -> PitchResolution:
    """
    Lock onto the dominant spectral peak.

    Scans bins ``[PEAK_SKIP_BINS, len/2)``. A lock requires the peak to
    exceed the absolute floor and to stand out from the mean of the
    scanned range by ``PEAK_TO_MEAN_RATIO``.

    Args:
        spectrum: Byte-scaled magnitudes (0-255) for the current tick.
        sample_rate: Capture sample rate in Hz.

    Returns:
        PitchResolution (unlocked when no clear peak exists).
    """
    if spectrum is None:
        return UNLOCKED
    data = np.asarray(spectrum, dtype=np.float64).reshape(-1)
    bin_count = len(data)
    scan = data[PEAK_SKIP_BINS:bin_count // 2]
    if len(scan) == 0:
        return UNLOCKED
    if not np.all(np.isfinite(scan)):
        logger.debug("Rejected spectrum with non-finite magnitudes")
        return UNLOCKED
    try:
        sr = float(sample_rate)
    except (TypeError, ValueError):
        return UNLOCKED
    if not math.isfinite(sr) or sr <= 0:
        logger.debug("Rejected peak candidate: invalid sample rate %r", sample_rate)
        return UNLOCKED

    offset = int(np.argmax(scan))
    max_val = float(scan[offset])
    mean_val = float(np.mean(scan))
    peak_bin = PEAK_SKIP_BINS + offset

    if max_val <= PEAK_MIN_MAGNITUDE or max_val <= PEAK_TO_MEAN_RATIO * mean_val:
        return UNLOCKED
    if peak_bin <= 0:
        return UNLOCKED

    freq = bin_to_frequency(peak_bin, sr, bin_count)
    pitch_class = frequency_to_pitch_class(freq)
    if pitch_class is None:
        logger.debug("Rejected peak candidate: frequency %r", freq)
        return UNLOCKED

    return PitchResolution(
        pitch_class=pitch_class,
        is_locked=True,
        weight=1.0,
        frequency=freq,
    )


def resolve_chroma(chroma, anchor_positions: np.ndarray) -> PitchResolution:
    """
    Blend anchor positions by squared chroma energy.

    Args:
        chroma: 12-element chroma vector.
        anchor_positions: (12, 3) anchor coordinates, indexed by pitch class.

    Returns:
        PitchResolution whose ``target`` is the weighted centroid and whose
        ``pitch_class`` is the strongest raw chroma bin.
    """
    if chroma is None:
        return UNLOCKED
    values = np.asarray(chroma, dtype=np.float64).reshape(-1)
    if len(values) != N_CHROMA or not np.all(np.isfinite(values)):
        return UNLOCKED

    weights = values ** 2
    total = float(np.sum(weights))
    if not math.isfinite(total) or total <= CHROMA_MIN_WEIGHT:
        return UNLOCKED

    target = (weights[:, None] * anchor_positions).sum(axis=0) / total
    if not np.all(np.isfinite(target)):
        return UNLOCKED

    return PitchResolution(
        pitch_class=int(np.argmax(values)),
        is_locked=True,
        weight=total,
        target=target,
    )
