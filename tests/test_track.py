"""
Tests for generated tracks.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from trackmpc.track import generate_track


class TestGenerateTrack:

    def test_straight(self):
        track = generate_track("straight", length=100.0, spacing=5.0)
        assert len(track) == 21
        assert np.all(track.y == 0.0)
        assert not track.closed

    def test_sine(self):
        track = generate_track("sine", amplitude=10.0)
        assert np.max(np.abs(track.y)) == pytest.approx(10.0, abs=0.5)

    def test_circle_starts_at_origin_heading_x(self):
        track = generate_track("circle", radius=60.0)
        assert track.closed
        assert track.x[0] == pytest.approx(0.0, abs=1e-9)
        assert track.y[0] == pytest.approx(0.0, abs=1e-9)
        assert track.heading_at(0) == pytest.approx(0.0, abs=0.1)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            generate_track("figure8")


class TestTrackQueries:

    @pytest.fixture
    def track(self):
        return generate_track("straight", length=100.0, spacing=5.0)

    def test_distance(self, track):
        assert track.distance_to(12.5, 3.0) == pytest.approx(3.0)

    def test_nearest_index(self, track):
        assert track.nearest_index(11.0, 1.0) == 2

    def test_lookahead(self, track):
        xs, ys = track.lookahead(11.0, 0.0, count=4)
        assert xs == [10.0, 15.0, 20.0, 25.0]
        assert ys == [0.0] * 4

    def test_lookahead_stops_at_end(self, track):
        xs, _ = track.lookahead(95.0, 0.0, count=6)
        assert xs == [95.0, 100.0]

    def test_lookahead_wraps_on_closed_track(self):
        track = generate_track("circle", radius=20.0, spacing=5.0)
        xs, _ = track.lookahead(track.x[-1], track.y[-1], count=3)
        assert xs[1] == pytest.approx(track.x[0])

    def test_at_end(self, track):
        assert track.at_end(99.0, 0.0)
        assert not track.at_end(10.0, 0.0)

    def test_heading(self, track):
        assert track.heading_at(len(track) - 1) == pytest.approx(0.0)
        circle = generate_track("circle", radius=60.0)
        quarter = len(circle) // 4
        assert circle.heading_at(quarter) == pytest.approx(math.pi / 2, abs=0.1)
