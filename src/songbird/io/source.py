"""
Feature sources.

A feature source owns the capture pathway (a decoded file or a live input
device), runs the SpectrumAnalyzer over it and publishes each result into a
LatestFeatureSlot. The engine only ever reads the latest snapshot.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional, Protocol, Union

import librosa
import numpy as np

from songbird.core.analyzer import SpectrumAnalyzer
from songbird.core.features import FeatureSet, FeatureSnapshot, LatestFeatureSlot

try:
    import sounddevice as sd
    SOUNDDEVICE_AVAILABLE = True
except OSError:
    # PortAudio library missing on this host
    sd = None
    SOUNDDEVICE_AVAILABLE = False

logger = logging.getLogger(__name__)


class FeatureSource(Protocol):
    """What the engine consumes from a capture pathway."""

    def get_spectrum_frame(self) -> Optional[np.ndarray]: ...

    def get_volume(self) -> float: ...

    def get_features(self) -> Optional[FeatureSet]: ...

    def get_sample_rate(self) -> int: ...

    def snapshot(self) -> Optional[FeatureSnapshot]: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class _SlotSource:
    """Protocol getters backed by a LatestFeatureSlot."""

    def __init__(self, sample_rate: int):
        self.sample_rate = sample_rate
        self.slot = LatestFeatureSlot()

    def snapshot(self) -> Optional[FeatureSnapshot]:
        return self.slot.latest()

    def get_spectrum_frame(self) -> Optional[np.ndarray]:
        snap = self.slot.latest()
        return None if snap is None else snap.spectrum

    def get_volume(self) -> float:
        snap = self.slot.latest()
        return 0.0 if snap is None else snap.volume

    def get_features(self) -> Optional[FeatureSet]:
        snap = self.slot.latest()
        return None if snap is None else snap.features

    def get_sample_rate(self) -> int:
        return self.sample_rate


class FileFeatureSource(_SlotSource):
    """
    Feature source over a decoded audio file (or an in-memory signal).

    Time is driven by the caller: ``update(t)`` analyses the window that
    ends at ``t`` seconds and publishes it. This keeps offline runs
    deterministic regardless of wall-clock speed.
    """

    def __init__(
        self,
        audio_path: Union[str, Path, None] = None,
        samples: Optional[np.ndarray] = None,
        sample_rate: Optional[int] = None,
        loop: bool = False,
        fft_size: int = 2048,
        block_size: int = 1024,
        smoothing: float = 0.75,
    ):
        """
        Args:
            audio_path: Audio file to decode (wav, mp3, flac).
            samples: Mono signal, used instead of ``audio_path``.
            sample_rate: Target rate for decoding (None keeps the file's
                rate); required with ``samples``.
            loop: Wrap around at the end instead of going silent.
        """
        if samples is None:
            if audio_path is None:
                raise ValueError("Either audio_path or samples is required")
            audio_path = Path(audio_path)
            if not audio_path.exists():
                raise FileNotFoundError(f"Audio file not found: {audio_path}")
            samples, sample_rate = self.load_audio(audio_path, sr=sample_rate)
            logger.info("Loaded %s (%.1fs @ %d Hz)", audio_path,
                        len(samples) / sample_rate, sample_rate)
        elif sample_rate is None:
            raise ValueError("sample_rate is required with in-memory samples")

        super().__init__(int(sample_rate))
        self.audio_path = audio_path
        self.samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        self.loop = loop
        self.analyzer = SpectrumAnalyzer(
            sample_rate=self.sample_rate,
            fft_size=fft_size,
            block_size=block_size,
            smoothing=smoothing,
        )
        self.position = 0.0

    @staticmethod
    def load_audio(audio_path: Union[str, Path], sr: int | None = None) -> tuple[np.ndarray, int]:
        """Decode an audio file to mono float samples."""
        y, sr_out = librosa.load(audio_path, sr=sr, mono=True)
        return y, int(sr_out)

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate

    @property
    def finished(self) -> bool:
        return not self.loop and self.position >= self.duration

    def start(self) -> None:
        self.analyzer.reset()
        self.slot.clear()
        self.position = 0.0

    def stop(self) -> None:
        self.slot.clear()

    def _window(self, end_sample: int, size: int) -> np.ndarray:
        n = len(self.samples)
        idx = np.arange(end_sample - size, end_sample)
        if self.loop and n:
            return self.samples[idx % n]
        out = np.zeros(size, dtype=np.float32)
        valid = (idx >= 0) & (idx < n)
        out[valid] = self.samples[idx[valid]]
        return out

    def update(self, t: float) -> FeatureSnapshot:
        """Analyse the window ending at ``t`` seconds and publish it."""
        self.position = t
        end = int(round(t * self.sample_rate))
        window = self._window(end, max(self.analyzer.fft_size, self.analyzer.block_size))
        snapshot = self.analyzer.analyze(window, timestamp=t)
        self.slot.publish(snapshot)
        return snapshot


class LiveFeatureSource(_SlotSource):
    """
    Feature source over a live input device.

    Audio arrives on the sounddevice callback thread, is appended to a short
    history and analysed there; the result replaces whatever snapshot the
    tick loop has not read yet.
    """

    def __init__(
        self,
        sample_rate: int = 44100,
        blocksize: int = 1024,
        device: Optional[Union[int, str]] = None,
        channels: int = 1,
        fft_size: int = 2048,
    ):
        super().__init__(sample_rate)
        self.blocksize = blocksize
        self.device = device
        self.channels = channels
        self.analyzer = SpectrumAnalyzer(sample_rate=sample_rate, fft_size=fft_size,
                                         block_size=blocksize)
        self._history = np.zeros(max(fft_size, blocksize), dtype=np.float32)
        self._stream = None
        self._lock = threading.Lock()
        self._t0 = 0.0

    @property
    def running(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        """
        Open and start the input stream.

        Raises:
            RuntimeError: If no audio backend or device is available.
        """
        if not SOUNDDEVICE_AVAILABLE:
            raise RuntimeError("sounddevice/PortAudio is not available on this system")
        if self._stream is not None:
            return

        self.analyzer.reset()
        self.slot.clear()
        self._t0 = time.monotonic()
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                blocksize=self.blocksize,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                callback=self._audio_callback,
            )
            stream.start()
        except Exception as exc:
            raise RuntimeError(f"Failed to open audio input: {exc}") from exc
        self._stream = stream
        logger.info("Live capture started (%d Hz, block %d)", self.sample_rate, self.blocksize)

    def stop(self) -> None:
        """Stop capturing and release the device."""
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()
        self.slot.clear()
        logger.info("Live capture stopped")

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status):
        """Audio callback from sounddevice (runs on the audio thread)."""
        if status:
            logger.warning("Input stream status: %s", status)
        if frames <= 0:
            return
        mono = indata.mean(axis=1) if indata.ndim > 1 else indata
        with self._lock:
            n = min(len(mono), len(self._history))
            self._history = np.roll(self._history, -n)
            self._history[-n:] = mono[-n:]
            snapshot = self.analyzer.analyze(self._history, timestamp=time.monotonic() - self._t0)
        self.slot.publish(snapshot)
