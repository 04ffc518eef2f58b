"""Tests for the still-frame preview."""

import numpy as np
import pytest
from PIL import Image

from songbird.render import add_glow, project, render_snapshot, save_png


class TestProject:
    """Tests for the perspective projection."""

    def test_origin_hits_centre(self):
        coords, visible = project(np.zeros((1, 3)), 200, 100)

        assert visible[0]
        assert np.allclose(coords[0], [100.0, 50.0])

    def test_up_is_up(self):
        coords, _ = project(np.array([[0.0, 10.0, 0.0]]), 200, 100)
        assert coords[0, 1] < 50.0

    def test_behind_camera_hidden(self):
        _, visible = project(np.array([[0.0, 0.0, 100.0]]), 200, 100)
        assert not visible[0]

    def test_rotation(self):
        point = np.array([[10.0, 0.0, 0.0]])
        a, _ = project(point, 200, 100, rotation=0.0)
        b, _ = project(point, 200, 100, rotation=np.pi)

        assert a[0, 0] > 100.0
        assert b[0, 0] < 100.0


class TestRender:
    """Tests for rendering a session."""

    @pytest.fixture
    def session(self, engine, peak_snapshot):
        session = engine.new_session()
        for i in range(60):
            engine.tick(session, peak_snapshot, i / 60)
        return session

    def test_frame_shape(self, engine, session):
        frame = render_snapshot(session, engine.config, width=160, height=90)

        assert frame.shape == (90, 160, 3)
        assert frame.dtype == np.uint8

    def test_draws_something(self, engine, session):
        frame = render_snapshot(session, engine.config, width=160, height=90, glow=0.0)
        background = np.array([2, 2, 2])

        assert np.any(np.any(frame != background, axis=-1))

    def test_glow_brightens(self):
        frame = np.zeros((32, 32, 3), dtype=np.uint8)
        frame[14:18, 14:18] = 255
        glowed = add_glow(frame, intensity=0.8, radius=3)

        assert glowed[12, 12].sum() > 0
        assert np.array_equal(add_glow(frame, intensity=0.0), frame)

    def test_dim_pixels_do_not_bloom(self):
        frame = np.full((16, 16, 3), 20, dtype=np.uint8)
        assert np.array_equal(add_glow(frame, intensity=1.0, radius=4), frame)

    def test_save_png(self, engine, session, tmp_path):
        frame = render_snapshot(session, engine.config, width=64, height=48)
        path = save_png(frame, tmp_path / "preview.png")

        with Image.open(path) as img:
            assert img.size == (64, 48)
