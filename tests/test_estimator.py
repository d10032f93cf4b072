"""
Tests for latency-compensated state estimation.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from trackmpc.estimator import LatencyCompensatedEstimator, to_vehicle_frame
from trackmpc.exceptions import DegenerateReferenceError, InvalidStateError
from trackmpc.types import Actuators, ReferenceCurve, TelemetryMessage


@pytest.fixture
def estimator(horizon_params):
    return LatencyCompensatedEstimator(horizon_params, latency=0.1, degree=3)


class TestVehicleFrame:
    """Tests for the world to vehicle frame transform."""

    def test_identity(self):
        xs, ys = to_vehicle_frame([1.0, 2.0], [3.0, 4.0], 0.0, 0.0, 0.0)
        np.testing.assert_allclose(xs, [1.0, 2.0])
        np.testing.assert_allclose(ys, [3.0, 4.0])

    def test_rotated_heading(self):
        """A point ahead of a vehicle facing +y lies on the vehicle x axis."""
        xs, ys = to_vehicle_frame([1.0], [3.0], 1.0, 1.0, math.pi / 2)
        assert xs[0] == pytest.approx(2.0)
        assert ys[0] == pytest.approx(0.0, abs=1e-12)

    def test_point_to_the_left(self):
        xs, ys = to_vehicle_frame([0.0], [5.0], 0.0, 0.0, 0.0)
        assert ys[0] == pytest.approx(5.0)

    def test_mismatched_lengths(self):
        with pytest.raises(DegenerateReferenceError) as excinfo:
            to_vehicle_frame([0.0, 10.0, 20.0], [0.0, 0.0, 0.0, 0.0], 0.0, 0.0, 0.0)
        assert excinfo.value.details["num_points"] == 3


class TestEstimate:
    """Tests for the anchoring state."""

    def test_first_cycle_uses_zero_actuators(self, estimator, straight_message):
        state, curve = estimator.estimate(straight_message, previous=None)
        assert state.x == pytest.approx(1.0)  # 10 * 0.1
        assert state.y == pytest.approx(0.0, abs=1e-9)
        assert state.psi == 0.0
        assert state.v == pytest.approx(10.0)
        assert state.cte == pytest.approx(0.0, abs=1e-9)
        assert state.epsi == pytest.approx(0.0, abs=1e-9)
        assert curve.degree == 3

    def test_projection_with_previous_command(self, estimator, straight_message):
        previous = Actuators(steering=0.1, acceleration=0.5)
        state, _ = estimator.estimate(straight_message, previous)
        yaw_change = 10.0 * 0.1 / 2.67 * 0.1
        assert state.psi == pytest.approx(-yaw_change)
        assert state.epsi == pytest.approx(-yaw_change, abs=1e-9)
        assert state.v == pytest.approx(10.05)

    def test_offset_path_gives_cross_track_error(self, estimator, make_message):
        """Waypoints 2 to the left of the vehicle: cte = f(0) = 2."""
        state, curve = estimator.estimate(make_message(offset=2.0))
        assert curve.coefficients[0] == pytest.approx(2.0)
        assert state.cte == pytest.approx(2.0)

    def test_heading_error_sign(self, estimator):
        curve = ReferenceCurve((0.0, 0.5, 0.0, 0.0))
        state = estimator.project(0.0, curve)
        assert state.epsi == pytest.approx(-math.atan(0.5))

    def test_zero_latency_is_measurement(self, horizon_params, straight_message):
        estimator = LatencyCompensatedEstimator(horizon_params, latency=0.0)
        state, _ = estimator.estimate(straight_message, Actuators(0.2, 1.0))
        assert state.x == 0.0
        assert state.v == pytest.approx(10.0)

    def test_geometric_error_model_agrees_at_origin(self, horizon_params, make_message):
        local = LatencyCompensatedEstimator(horizon_params)
        geometric = LatencyCompensatedEstimator(horizon_params, error_model="geometric")
        message = make_message(offset=-3.0)
        previous = Actuators(steering=0.05, acceleration=0.0)
        a, _ = local.estimate(message, previous)
        b, _ = geometric.estimate(message, previous)
        np.testing.assert_allclose(a.to_array(), b.to_array(), atol=1e-9)

    def test_non_finite_speed(self, estimator, make_message):
        with pytest.raises(InvalidStateError):
            estimator.estimate(make_message(speed=float("nan")))

    def test_degenerate_waypoints(self, estimator):
        message = TelemetryMessage(ptsx=[5.0], ptsy=[1.0], x=0.0, y=0.0, psi=0.0, speed=5.0)
        with pytest.raises(DegenerateReferenceError):
            estimator.estimate(message)

    @pytest.mark.parametrize("ptsx, ptsy, psi", [
        ([0.0, 10.0, 20.0], [0.0, 0.0, 0.0, 0.0], 0.0),
        ([5.0], [0.0, 1.0, 2.0, 3.0], 0.3),
    ])
    def test_mismatched_waypoint_counts(self, estimator, ptsx, ptsy, psi):
        message = TelemetryMessage(ptsx=ptsx, ptsy=ptsy, x=0.0, y=0.0, psi=psi, speed=10.0)
        with pytest.raises(DegenerateReferenceError):
            estimator.estimate(message)
