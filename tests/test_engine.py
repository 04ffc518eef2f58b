"""Tests for the per-tick engine."""

import numpy as np
import pytest

from songbird.config import EngineConfig, LayoutMode
from songbird.core.anchors import spiral_layout
from songbird.core.color import NOTE_NAMES, parse_color
from songbird.core.features import FeatureSet, FeatureSnapshot
from songbird.core.resolver import bin_to_frequency, frequency_to_pitch_class
from songbird.core.species import SpeciesEntry, SpeciesTable
from songbird.engine import LISTENING_LABEL, SessionState, SpectralEngine


def run_ticks(engine, session, snapshot, n, fps=60, start=0.0):
    result = None
    for i in range(n):
        result = engine.tick(session, snapshot, start + i / fps)
    return result


def robin_snapshot(volume: float = 0.8) -> FeatureSnapshot:
    """No pitch peak, but centroid/spread inside the robin's ranges."""
    return FeatureSnapshot(
        spectrum=np.full(1024, 30.0),
        volume=volume,
        sample_rate=44100,
        features=FeatureSet(volume=0.3, spectral_centroid=281.6, spectral_spread=51.2),
    )


class TestTick:
    """Tests for a single tick."""

    def test_no_snapshot_yet(self, engine):
        session = engine.new_session()
        result = engine.tick(session, None, 0.0)

        assert not result.resolution.is_locked
        assert result.label == LISTENING_LABEL
        assert session.tick_count == 1
        assert len(session.comet) == 1

    def test_peak_locks_and_labels(self, engine, peak_snapshot):
        session = engine.new_session()
        result = engine.tick(session, peak_snapshot, 0.0)

        expected = frequency_to_pitch_class(bin_to_frequency(100, 44100, 1024))
        assert result.resolution.is_locked
        assert result.resolution.pitch_class == expected
        assert session.label == NOTE_NAMES[expected]
        assert session.last_pitch_class == expected

    def test_cursor_moves_to_anchor(self, engine, peak_snapshot):
        session = engine.new_session()
        result = run_ticks(engine, session, peak_snapshot, 120)

        anchor = session.anchor_field[result.resolution.pitch_class].position
        assert np.linalg.norm(session.cursor.position - result.target) < 1e-3
        # Volume pushes the target outward from the anchor
        assert np.linalg.norm(result.target) > np.linalg.norm(anchor) - 20.0
        assert session.cursor.is_locked

    def test_label_persists_after_lock_lost(self, engine, peak_snapshot, quiet_snapshot):
        session = engine.new_session()
        engine.tick(session, peak_snapshot, 0.0)
        locked_label = session.label
        result = engine.tick(session, quiet_snapshot, 1 / 60)

        assert not result.resolution.is_locked
        assert result.label == locked_label

    def test_first_tick_does_not_move(self, engine, peak_snapshot):
        session = engine.new_session()
        engine.tick(session, peak_snapshot, 5.0)
        assert np.array_equal(session.cursor.position, np.zeros(3))

    def test_volume_drives_glow(self, engine, peak_snapshot):
        session = engine.new_session()
        engine.tick(session, peak_snapshot, 0.0)

        assert session.cursor.glow_scale == pytest.approx(0.06 + 0.8 * 0.4)
        assert session.cursor.light_intensity == pytest.approx(15.0 + 0.8 * 60.0)

    def test_scene_rotates(self, engine):
        session = engine.new_session()
        run_ticks(engine, session, None, 61)
        assert session.scene_rotation == pytest.approx(0.025, rel=1e-6)

    def test_chroma_mode(self, engine):
        engine.configure(resolver_mode="chroma")
        session = engine.new_session()
        chroma = np.zeros(12)
        chroma[4] = 1.0
        snapshot = FeatureSnapshot(
            spectrum=np.zeros(1024), volume=0.5, sample_rate=44100,
            features=FeatureSet(chroma=chroma),
        )
        result = engine.tick(session, snapshot, 0.0)

        assert result.label == "E"
        assert np.allclose(result.target, session.anchor_field.positions[4])

    def test_chroma_mode_without_features(self, engine, peak_snapshot):
        engine.configure(resolver_mode="chroma")
        session = engine.new_session()
        snapshot = FeatureSnapshot(spectrum=peak_snapshot.spectrum, volume=0.8, sample_rate=44100)

        assert not engine.tick(session, snapshot, 0.0).resolution.is_locked


class TestMalformedInput:
    """The tick never raises on bad data."""

    @pytest.mark.parametrize("snapshot", [
        None,
        FeatureSnapshot(spectrum=np.full(1024, np.nan), volume=float("nan"), sample_rate=44100),
        FeatureSnapshot(spectrum=np.full(1024, 200.0), volume=float("inf"), sample_rate=0),
        FeatureSnapshot(spectrum=np.zeros(4), volume=-3.0, sample_rate=44100),
        FeatureSnapshot(
            spectrum=np.zeros(1024), volume=0.5, sample_rate=44100,
            features=FeatureSet(spectral_centroid=float("nan"), spectral_spread=float("inf"),
                                chroma=np.full(12, np.nan)),
        ),
    ])
    def test_tick_is_total(self, engine, snapshot):
        session = engine.new_session()
        for i in range(5):
            result = engine.tick(session, snapshot, i / 60)

        assert not result.resolution.is_locked
        assert np.all(np.isfinite(session.cursor.position))
        assert np.all(np.isfinite(session.comet.points()))

    def test_non_finite_time(self, engine, peak_snapshot):
        session = engine.new_session()
        engine.tick(session, peak_snapshot, 0.0)
        engine.tick(session, peak_snapshot, float("nan"))
        assert np.all(np.isfinite(session.cursor.position))

    def test_time_going_backwards(self, engine, peak_snapshot):
        session = engine.new_session()
        engine.tick(session, peak_snapshot, 1.0)
        before = session.cursor.position.copy()
        engine.tick(session, peak_snapshot, 0.5)

        assert np.array_equal(session.cursor.position, before)

    def test_non_finite_features_never_classified(self):
        """NaN centroid and spread must not read as zero and match a low-range entry."""
        low = SpeciesEntry("low", "Low Warbler", "", (0.5, 0.5, 0.5), (0.0, 10.0), (0.0, 10.0))
        engine = SpectralEngine(species_table=SpeciesTable([low]), seed=2)
        session = engine.new_session()
        snapshot = FeatureSnapshot(
            spectrum=np.zeros(1024), volume=0.8, sample_rate=44100,
            features=FeatureSet(spectral_centroid=float("nan"), spectral_spread=float("nan")),
        )
        result = engine.tick(session, snapshot, 0.0)

        assert result.species is None
        assert session.species is None
        assert session.cursor.active_color == engine.config.trail_color

    def test_non_finite_time_after_zero(self, engine, peak_snapshot):
        """A last tick at t=0.0 is a real time, not a missing one."""
        session = engine.new_session(-5.0)
        engine.tick(session, peak_snapshot, 0.0)
        engine.tick(session, peak_snapshot, float("nan"))

        assert session.last_tick_time == 0.0
        assert session.elapsed == pytest.approx(5.0)

    def test_rewound_clock_does_not_inflate_next_step(self, peak_snapshot):
        rewound = SpectralEngine(seed=4)
        steady = SpectralEngine(seed=4)
        s1, s2 = rewound.new_session(), steady.new_session()

        rewound.tick(s1, peak_snapshot, 1.0)
        rewound.tick(s1, peak_snapshot, 0.0)
        rewound.tick(s1, peak_snapshot, 1.0 + 1 / 60)
        steady.tick(s2, peak_snapshot, 1.0)
        steady.tick(s2, peak_snapshot, 1.0 + 1 / 60)

        assert s1.last_tick_time == 1.0 + 1 / 60
        assert np.allclose(s1.cursor.position, s2.cursor.position)



class TestConfiguration:
    """Tests for hot-swapping configuration."""

    def test_layout_swap_rebuilds_anchors(self, engine, peak_snapshot):
        session = engine.new_session()
        engine.tick(session, peak_snapshot, 0.0)
        assert session.anchor_field.layout is LayoutMode.SHELL

        engine.configure(layout="spiral")
        engine.tick(session, peak_snapshot, 1 / 60)

        assert session.anchor_field.layout is LayoutMode.SPIRAL
        assert np.allclose(session.anchor_field.positions, spiral_layout())

    def test_invalid_change_keeps_previous(self, engine):
        with pytest.raises(ValueError):
            engine.configure(turbulence=1.5)
        assert engine.config.turbulence == 0.0

        with pytest.raises(ValueError):
            engine.configure(layout="torus")
        assert engine.config.layout is LayoutMode.SHELL

    def test_trail_color_swap(self, engine, quiet_snapshot):
        session = engine.new_session()
        engine.configure(trail_color="#ff0000")
        engine.tick(session, quiet_snapshot, 0.0)
        assert session.cursor.active_color == (1.0, 0.0, 0.0)

    def test_turbulence_only_affects_display(self, peak_snapshot):
        calm = SpectralEngine(EngineConfig(), seed=1)
        rough = SpectralEngine(EngineConfig(turbulence=0.5), seed=1)
        s1, s2 = calm.new_session(), rough.new_session()
        run_ticks(calm, s1, peak_snapshot, 30)
        run_ticks(rough, s2, peak_snapshot, 30)

        assert np.array_equal(s1.cursor.position, s2.cursor.position)
        assert np.array_equal(s1.cursor.display_position, s1.cursor.position)
        assert not np.allclose(s2.cursor.display_position, s2.cursor.position)

    def test_linear_smoothing_toggle(self, engine):
        engine.configure(exact_smoothing=False)
        assert engine.integrator.exact_smoothing is False


class TestTrails:
    """Tests for trail feeding."""

    def test_comet_bounded(self, engine, peak_snapshot, quiet_snapshot):
        session = engine.new_session()
        for i in range(500):
            snapshot = peak_snapshot if (i // 40) % 2 else quiet_snapshot
            engine.tick(session, snapshot, i / 60)

        assert len(session.comet) == 150
        assert len(session.structure) <= 2000

    def test_resting_cursor_leaves_structure_alone(self, engine):
        session = engine.new_session()
        run_ticks(engine, session, None, 100)
        assert len(session.structure) == 1

    def test_structure_spacing(self, engine, peak_snapshot, quiet_snapshot):
        session = engine.new_session()
        for i in range(300):
            snapshot = peak_snapshot if (i // 30) % 2 else quiet_snapshot
            engine.tick(session, snapshot, i / 60)

        gaps = np.linalg.norm(np.diff(session.structure.points(), axis=0), axis=1)
        assert np.all(gaps > 0.3)


class TestSpecies:
    """Tests for species integration."""

    def test_species_overrides_color(self, engine):
        session = engine.new_session()
        result = engine.tick(session, robin_snapshot(), 0.0)

        assert result.species.species_id == "robin"
        assert session.species.species_id == "robin"
        assert session.cursor.active_color == parse_color("#ff5e3a")

    def test_species_decays(self, engine, quiet_snapshot):
        session = engine.new_session()
        engine.tick(session, robin_snapshot(), 0.0)
        engine.tick(session, quiet_snapshot, 3.0)
        assert session.species is not None

        engine.tick(session, quiet_snapshot, 4.5)
        assert session.species is None
        assert session.cursor.active_color == engine.config.trail_color

    def test_quiet_input_not_classified(self, engine):
        session = engine.new_session()
        engine.tick(session, robin_snapshot(volume=0.01), 0.0)
        assert session.species is None


class TestDataPoints:
    """Tests for data-point emission through the engine."""

    def test_sustained_lock_emits(self, peak_snapshot):
        received = []
        engine = SpectralEngine(on_data_point=received.append, seed=3)
        session = engine.new_session()
        run_ticks(engine, session, peak_snapshot, 60)

        assert received
        assert all(p.label == session.label for p in received)
        assert all(p.brightness == pytest.approx(100.0 / 512.0) for p in received)
        times = [p.emission_time for p in received]
        assert all(b - a >= 0.15 - 1e-9 for a, b in zip(times, times[1:]))

    def test_no_lock_no_events(self, quiet_snapshot):
        received = []
        engine = SpectralEngine(on_data_point=received.append, seed=3)
        session = engine.new_session()
        run_ticks(engine, session, quiet_snapshot, 60)
        assert received == []


class TestSessionState:
    """Tests for session construction."""

    def test_seeded_sessions_match(self):
        a = SessionState(EngineConfig(), seed=5)
        b = SessionState(EngineConfig(), seed=5)
        assert [x.phase_offset for x in a.anchor_field.anchors] == \
            [x.phase_offset for x in b.anchor_field.anchors]

    def test_capacities_from_config(self):
        session = SessionState(EngineConfig(comet_capacity=20, structure_capacity=30))
        assert session.comet.capacity == 20
        assert session.structure.capacity == 30

    def test_anchor_states(self, engine):
        session = engine.new_session()
        states = session.anchor_states()
        assert len(states) == 12
