"""
The per-tick mapping engine.

All animation state lives in an explicit SessionState that is handed to
SpectralEngine.tick() once per rendered frame. The tick reads one feature
snapshot, resolves a pitch, moves the cursor, feeds the trail buffers and
updates the species hold. It never raises on malformed input.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from songbird.config import COLOR_BLEND, CENTROID_REFERENCE_MAX, EngineConfig, ResolverMode
from songbird.core.anchors import AnchorField, AnchorState
from songbird.core.color import NOTE_NAMES, Color, lerp_color
from songbird.core.cursor import CursorIntegrator, CursorState, peak_target
from songbird.core.events import DataPoint, DataPointEmitter
from songbird.core.features import FeatureSnapshot
from songbird.core.resolver import UNLOCKED, PitchResolution, resolve_chroma, resolve_peak
from songbird.core.species import SpeciesClassifier, SpeciesMatch, SpeciesTable
from songbird.core.trails import CometBuffer, StructureBuffer

logger = logging.getLogger(__name__)

LISTENING_LABEL = "LISTENING..."
SCENE_ROTATION_SPEED = 0.025


def _finite(value, default: Optional[float] = 0.0) -> Optional[float]:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


@dataclass
class TickResult:
    """What one tick produced, for callers that do not poll the session."""

    resolution: PitchResolution
    target: np.ndarray
    label: str
    species: Optional[SpeciesMatch]
    data_point: Optional[DataPoint]
    structure_appended: bool


class SessionState:
    """
    Mutable animation state for one visual session.

    Read-only to the rendering layer: ``cursor``, ``comet``, ``structure``,
    ``label``, ``species`` and ``anchor_states()``.
    """

    def __init__(
        self,
        config: EngineConfig,
        start_time: float = 0.0,
        species_table: SpeciesTable | None = None,
        on_data_point: Optional[Callable[[DataPoint], None]] = None,
        seed: int | None = None,
    ):
        self.rng = np.random.default_rng(seed)
        self.start_time = start_time
        self.last_tick_time: Optional[float] = None
        self.elapsed = 0.0
        self.tick_count = 0

        self.cursor = CursorState(active_color=config.trail_color)
        self.comet = CometBuffer(config.comet_capacity)
        self.structure = StructureBuffer(config.structure_capacity, config.structure_threshold)
        self.anchor_field = AnchorField(config.layout, self.rng)
        self.classifier = SpeciesClassifier(
            species_table,
            min_volume=config.species_min_volume,
            hold_seconds=config.species_hold_seconds,
            seed=seed,
        )
        self.emitter = DataPointEmitter(
            on_data_point,
            min_interval=config.emit_interval,
            min_volume=config.emit_min_volume,
        )

        self.label = LISTENING_LABEL
        self.last_pitch_class = -1
        self.scene_rotation = 0.0

    @property
    def species(self) -> Optional[SpeciesMatch]:
        return self.classifier.active

    def anchor_states(self) -> list[AnchorState]:
        return self.anchor_field.states(self.cursor.position, self.elapsed)

    def rebuild_anchors(self, layout) -> None:
        self.anchor_field = AnchorField(layout, self.rng)
        logger.debug("Anchors rebuilt for layout %s", self.anchor_field.layout.value)


class SpectralEngine:
    """
    Maps feature snapshots onto cursor motion and trail geometry.

    Configuration is hot-swappable between ticks through ``configure()``;
    layout changes rebuild a session's anchors on its next tick.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        species_table: SpeciesTable | None = None,
        on_data_point: Optional[Callable[[DataPoint], None]] = None,
        seed: int | None = None,
    ):
        self.config = config or EngineConfig()
        self.species_table = species_table if species_table is not None else SpeciesTable.default()
        self.on_data_point = on_data_point
        self.seed = seed
        self.integrator = CursorIntegrator(self.config.exact_smoothing)

    def configure(self, **changes) -> EngineConfig:
        """
        Apply configuration changes.

        Raises:
            ValueError: If the resulting configuration is invalid. The
                previous configuration stays in effect.
        """
        self.config = self.config.replace(**changes)
        self.integrator.exact_smoothing = self.config.exact_smoothing
        return self.config

    def new_session(self, now: float = 0.0) -> SessionState:
        return SessionState(
            self.config,
            start_time=now,
            species_table=self.species_table,
            on_data_point=self.on_data_point,
            seed=self.seed,
        )

    def _sync_session(self, session: SessionState) -> None:
        cfg = self.config
        if session.anchor_field.layout != cfg.layout:
            session.rebuild_anchors(cfg.layout)
        session.classifier.min_volume = cfg.species_min_volume
        session.classifier.hold_seconds = cfg.species_hold_seconds
        session.emitter.min_interval = cfg.emit_interval
        session.emitter.min_volume = cfg.emit_min_volume

    def resolve(self, session: SessionState, snapshot: Optional[FeatureSnapshot]) -> PitchResolution:
        """Run the configured resolver on a snapshot."""
        if snapshot is None:
            return UNLOCKED
        if self.config.resolver_mode is ResolverMode.CHROMA:
            if snapshot.features is None:
                return UNLOCKED
            return resolve_chroma(snapshot.features.chroma, session.anchor_field.positions)
        return resolve_peak(snapshot.spectrum, snapshot.sample_rate)

    def tick(
        self,
        session: SessionState,
        snapshot: Optional[FeatureSnapshot],
        now: float,
    ) -> TickResult:
        """
        Advance ``session`` by one frame.

        Args:
            session: Session to mutate.
            snapshot: Latest feature snapshot, or None before capture starts.
            now: Current time in seconds (monotonic).
        """
        cfg = self.config
        last = session.last_tick_time
        now = _finite(now, session.start_time if last is None else last)
        if last is None:
            dt = 0.0
        else:
            # The clock never runs backwards
            now = max(now, last)
            dt = now - last
        session.last_tick_time = now
        session.elapsed = now - session.start_time
        session.tick_count += 1
        self._sync_session(session)

        volume = 0.0
        centroid = spread = None
        if snapshot is not None:
            volume = min(1.0, max(0.0, _finite(snapshot.volume)))
            if snapshot.features is not None:
                centroid = _finite(snapshot.features.spectral_centroid, None)
                spread = _finite(snapshot.features.spectral_spread, None)

        resolution = self.resolve(session, snapshot)
        target = np.zeros(3)
        color: Color = cfg.trail_color
        if resolution.is_locked:
            anchor = session.anchor_field[resolution.pitch_class]
            if resolution.target is not None:
                target = resolution.target
            else:
                target = peak_target(anchor.position, volume, centroid)
            color = lerp_color(anchor.color, cfg.trail_color, COLOR_BLEND)
            session.label = NOTE_NAMES[resolution.pitch_class]
            session.last_pitch_class = resolution.pitch_class

        species = session.classifier.update(volume, centroid, spread, now)
        if species is not None:
            color = species.color

        cursor = self.integrator.step(
            session.cursor,
            target,
            resolution.is_locked,
            dt,
            elapsed=session.elapsed,
            turbulence=cfg.turbulence,
        )
        cursor.active_color = color
        cursor.glow_scale = 0.06 + volume * 0.4
        cursor.light_intensity = 15.0 + volume * 60.0

        session.comet.append(cursor.display_position)
        appended = session.structure.append(cursor.display_position)
        session.scene_rotation += dt * SCENE_ROTATION_SPEED

        brightness = 0.0 if centroid is None else min(1.0, max(0.0, centroid / CENTROID_REFERENCE_MAX))
        data_point = session.emitter.update(
            resolution.is_locked, volume, now, color, session.label, brightness
        )

        return TickResult(
            resolution=resolution,
            target=target,
            label=session.label,
            species=species,
            data_point=data_point,
            structure_appended=appended,
        )


def run_offline(
    engine: SpectralEngine,
    source,
    fps: int = 60,
    duration: float | None = None,
    on_tick: Optional[Callable[[SessionState, TickResult], None]] = None,
) -> SessionState:
    """
    Drive an engine over a clock-driven source on a simulated clock.

    Every frame advances time by exactly ``1 / fps`` seconds, so results do
    not depend on how fast the host runs.
    """
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    if duration is None:
        duration = source.duration
    n_frames = int(duration * fps)

    source.start()
    session = engine.new_session(0.0)
    try:
        for i in range(n_frames):
            t = i / fps
            source.update(t)
            result = engine.tick(session, source.snapshot(), t)
            if on_tick is not None:
                on_tick(session, result)
    finally:
        source.stop()
    return session


class TickDriver:
    """
    Real-time tick loop.

    Calls ``engine.tick`` at ``fps`` using the latest snapshot from the
    source. ``stop()`` ends the loop; the capture pathway is released when
    the loop exits.
    """

    def __init__(
        self,
        engine: SpectralEngine,
        source,
        fps: int = 60,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.engine = engine
        self.source = source
        self.fps = fps
        self.clock = clock
        self.sleep = sleep
        self.session: Optional[SessionState] = None
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(
        self,
        duration: float | None = None,
        on_tick: Optional[Callable[[SessionState, TickResult], None]] = None,
    ) -> SessionState:
        """Run until ``stop()`` is called or ``duration`` seconds have passed."""
        self._stop_event.clear()
        frame_time = 1.0 / self.fps
        clock_driven = hasattr(self.source, "update")

        self.source.start()
        start = self.clock()
        self.session = self.engine.new_session(start)
        try:
            while not self._stop_event.is_set():
                now = self.clock()
                elapsed = now - start
                if duration is not None and elapsed >= duration:
                    break
                if clock_driven:
                    self.source.update(elapsed)
                result = self.engine.tick(self.session, self.source.snapshot(), now)
                if on_tick is not None:
                    on_tick(self.session, result)

                remaining = frame_time - (self.clock() - now)
                if remaining > 0:
                    self.sleep(remaining)
        finally:
            self.source.stop()
            logger.info("Tick driver stopped after %d ticks", self.session.tick_count)
        return self.session
