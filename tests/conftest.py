"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from songbird.config import EngineConfig
from songbird.core.features import FeatureSet, FeatureSnapshot
from songbird.engine import SpectralEngine

# Default sample rate for test audio
TEST_SR = 22050


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def pure_sine(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a pure 440Hz sine wave (A4 note).

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    y = 0.5 * np.sin(2 * np.pi * 440.0 * t)
    return y.astype(np.float32), sample_rate


@pytest.fixture
def silence(sample_rate: int) -> tuple[np.ndarray, int]:
    """Two seconds of digital silence."""
    return np.zeros(int(sample_rate * 2.0), dtype=np.float32), sample_rate


def make_peak_spectrum(
    peak_bin: int = 100,
    peak: float = 200.0,
    background: float = 20.0,
    length: int = 1024,
) -> np.ndarray:
    """Flat spectrum with one dominant bin."""
    spectrum = np.full(length, background)
    spectrum[peak_bin] = peak
    return spectrum


@pytest.fixture
def peak_spectrum():
    """Factory for single-peak spectra."""
    return make_peak_spectrum


@pytest.fixture
def peak_snapshot() -> FeatureSnapshot:
    """Snapshot with a sharp peak at bin 100 (44.1 kHz, 1024 bins)."""
    return FeatureSnapshot(
        spectrum=make_peak_spectrum(),
        volume=0.8,
        sample_rate=44100,
        features=FeatureSet(volume=0.3, spectral_centroid=100.0, spectral_spread=40.0),
    )


@pytest.fixture
def quiet_snapshot() -> FeatureSnapshot:
    """Snapshot with nothing standing out from the noise floor."""
    return FeatureSnapshot(
        spectrum=np.full(1024, 30.0),
        volume=0.1,
        sample_rate=44100,
        features=None,
    )


@pytest.fixture
def engine() -> SpectralEngine:
    return SpectralEngine(EngineConfig(), seed=7)


@pytest.fixture
def temp_audio_file(tmp_path, pure_sine):
    """Create a temporary audio file for testing file I/O."""
    import soundfile as sf

    y, sr = pure_sine
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y, sr)
    return audio_path
