"""
Block-wise spectral feature extraction.

Reduces the most recent audio samples to the per-tick inputs of the engine:
a byte-scaled magnitude spectrum (analyser style: Blackman window, temporal
smoothing, decibel range mapped to 0-255) and a small set of block features
(RMS, spectral centroid, spectral spread, chroma, flux).
"""

import numpy as np
import librosa
from scipy import signal as scipy_signal

from songbird.core.color import NOTE_NAMES
from songbird.core.features import FeatureSet, FeatureSnapshot


class SpectrumAnalyzer:
    """
    Turns a window of audio into a FeatureSnapshot.

    The analyser keeps two pieces of state between calls: the smoothed
    magnitude spectrum and the previous block spectrum (for flux). It is
    meant to be fed consecutive, overlapping windows of a single stream.
    """

    CHROMA_NAMES = NOTE_NAMES

    def __init__(
        self,
        sample_rate: int = 44100,
        fft_size: int = 2048,
        block_size: int = 1024,
        smoothing: float = 0.75,
        min_db: float = -100.0,
        max_db: float = -30.0,
    ):
        """
        Initialize the analyzer.

        Args:
            sample_rate: Sample rate of the incoming audio.
            fft_size: Transform size for the byte spectrum (yields fft_size/2 bins).
            block_size: Block size for centroid/spread/chroma/flux.
            smoothing: Temporal smoothing constant for the byte spectrum [0, 1).
            min_db: Magnitude (dB) mapped to byte 0.
            max_db: Magnitude (dB) mapped to byte 255.
        """
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if fft_size < 32 or block_size < 32:
            raise ValueError("fft_size and block_size must be at least 32")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing}")
        if min_db >= max_db:
            raise ValueError("min_db must be below max_db")

        self.sample_rate = int(sample_rate)
        self.fft_size = fft_size
        self.block_size = block_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db

        self._fft_window = scipy_signal.get_window("blackman", fft_size, fftbins=False)
        self._block_window = scipy_signal.get_window("hann", block_size)
        self._chroma_filters = librosa.filters.chroma(sr=self.sample_rate, n_fft=block_size)
        self._bin_index = np.arange(block_size // 2 + 1, dtype=np.float64)

        self._smoothed = np.zeros(fft_size // 2)
        self._prev_block = None

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        self._smoothed = np.zeros(self.fft_size // 2)
        self._prev_block = None

    def _tail(self, samples: np.ndarray, size: int) -> np.ndarray:
        """Last ``size`` samples, zero-padded on the left if short."""
        samples = np.asarray(samples, dtype=np.float64).reshape(-1)
        if len(samples) >= size:
            return samples[-size:]
        out = np.zeros(size)
        if len(samples):
            out[-len(samples):] = samples
        return out

    def byte_spectrum(self, samples: np.ndarray) -> np.ndarray:
        """
        Byte-scaled magnitude spectrum of the last ``fft_size`` samples.

        Returns:
            uint8 array of length ``fft_size // 2``.
        """
        frame = np.nan_to_num(self._tail(samples, self.fft_size))
        mag = np.abs(np.fft.rfft(frame * self._fft_window))[: self.bin_count] / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * mag

        db = 20.0 * np.log10(np.maximum(self._smoothed, 1e-20))
        scaled = (db - self.min_db) * (255.0 / (self.max_db - self.min_db))
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)

    def block_features(self, samples: np.ndarray) -> FeatureSet:
        """Centroid and spread (in bin units), chroma, RMS and flux of the last block."""
        block = np.nan_to_num(self._tail(samples, self.block_size))
        rms = float(np.sqrt(np.mean(block ** 2)))
        mag = np.abs(np.fft.rfft(block * self._block_window))

        total = float(np.sum(mag))
        if total > 1e-12:
            centroid = float(np.sum(self._bin_index * mag) / total)
            spread = float(np.sqrt(np.sum((self._bin_index - centroid) ** 2 * mag) / total))
        else:
            centroid = 0.0
            spread = 0.0

        chroma = self._chroma_filters @ (mag ** 2)
        peak = float(np.max(chroma))
        chroma = chroma / peak if peak > 1e-12 else np.zeros(12)

        if self._prev_block is None:
            flux = 0.0
        else:
            flux = float(np.sum(np.maximum(mag - self._prev_block, 0.0)))
        self._prev_block = mag

        return FeatureSet(
            volume=rms,
            spectral_centroid=centroid,
            spectral_spread=spread,
            chroma=chroma,
            flux=flux,
        )

    def analyze(self, samples: np.ndarray, timestamp: float = 0.0) -> FeatureSnapshot:
        """
        Analyse the most recent samples of a stream.

        Volume is the loudest spectrum bin scaled to [0, 1].
        """
        spectrum = self.byte_spectrum(samples)
        features = self.block_features(samples)
        return FeatureSnapshot(
            spectrum=spectrum,
            volume=float(np.max(spectrum)) / 255.0 if len(spectrum) else 0.0,
            sample_rate=self.sample_rate,
            features=features,
            timestamp=timestamp,
        )

    @classmethod
    def chroma_index_to_name(cls, index: int) -> str:
        """Convert chroma index (0-11) to note name."""
        return cls.CHROMA_NAMES[index % 12]
