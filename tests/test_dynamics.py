"""
Tests for the kinematic bicycle model.
"""

from __future__ import annotations

import casadi as cs
import numpy as np
import pytest

from trackmpc.dynamics import KinematicBicycleModel, is_symbolic, kinematic_step
from trackmpc.exceptions import NumericalError
from trackmpc.types import Actuators, HorizonParameters, VehicleState


@pytest.fixture
def model():
    return KinematicBicycleModel(HorizonParameters(steps=10, dt=0.1, lf=2.67))


class TestKinematicStep:
    """Tests for the single-step transition."""

    def test_straight_line(self, model):
        """Zero actuators along +x: N steps advance x by N * v * dt."""
        state = VehicleState(0.0, 0.0, 0.0, 10.0, 0.0, 0.0)
        states = model.rollout(state, [Actuators.zero()] * 10)
        final = states[-1]
        assert final.x == pytest.approx(10.0)
        assert final.y == pytest.approx(0.0)
        assert final.psi == pytest.approx(0.0)
        assert final.v == pytest.approx(10.0)
        assert len(states) == 11

    def test_positive_steering_turns_right(self):
        nxt = kinematic_step([0, 0, 0, 10.0, 0, 0], [0.1, 0.0], 0.1, 2.67)
        assert nxt[2] < 0.0
        assert nxt[5] < 0.0

    def test_heading_and_error_change_together(self):
        nxt = kinematic_step([0, 0, 0.2, 8.0, 0.5, 0.1], [0.2, 0.0], 0.1, 2.0)
        yaw_change = 8.0 * 0.2 / 2.0 * 0.1
        assert nxt[2] == pytest.approx(0.2 - yaw_change)
        assert nxt[5] == pytest.approx(0.1 - yaw_change)

    def test_cross_track_error_update(self):
        nxt = kinematic_step([0, 0, 0, 10.0, 1.0, 0.2], [0.0, 0.0], 0.1, 2.67)
        assert nxt[4] == pytest.approx(1.0 + 10.0 * np.sin(0.2) * 0.1)

    def test_acceleration(self):
        nxt = kinematic_step([0, 0, 0, 5.0, 0, 0], [0.0, 1.0], 0.1, 2.67)
        assert nxt[3] == pytest.approx(5.1)

    def test_zero_lf_raises(self):
        with pytest.raises(NumericalError):
            kinematic_step([0, 0, 0, 5.0, 0, 0], [0.1, 0.0], 0.1, 0.0)

    def test_symbolic_matches_numeric(self):
        """The CasADi expression evaluates to the numeric result."""
        s = cs.SX.sym("s", 6)
        u = cs.SX.sym("u", 2)
        expr = cs.vertcat(*kinematic_step(s, u, 0.1, 2.67))
        f = cs.Function("f", [s, u], [expr])

        state = [1.0, -2.0, 0.3, 12.0, 0.4, -0.05]
        act = [0.05, -0.3]
        symbolic = np.asarray(f(state, act)).ravel()
        numeric = np.asarray(kinematic_step(state, act, 0.1, 2.67), dtype=float)
        np.testing.assert_allclose(symbolic, numeric, rtol=1e-12)


class TestGeometricErrors:
    """Tests for the geometric error model."""

    def test_same_as_local_at_origin(self):
        coeffs = [0.5, 0.1, -0.02, 0.001]
        cte = coeffs[0]
        epsi = -np.arctan(coeffs[1])
        state = [0.0, 0.0, 0.0, 10.0, cte, epsi]
        local = kinematic_step(state, [0.05, 0.2], 0.1, 2.67)
        geometric = kinematic_step(state, [0.05, 0.2], 0.1, 2.67, reference=coeffs)
        np.testing.assert_allclose(geometric, local, rtol=1e-12, atol=1e-12)

    def test_error_measured_against_curve(self):
        """Off the origin, cte is the curve value at x minus y."""
        coeffs = [0.0, 0.0, 0.01, 0.0]
        state = [10.0, 0.5, 0.0, 0.0, 0.0, 0.0]
        nxt = kinematic_step(state, [0.0, 0.0], 0.1, 2.67, reference=coeffs)
        assert nxt[4] == pytest.approx(0.01 * 100 - 0.5)
        assert nxt[5] == pytest.approx(-np.arctan(0.2))

    def test_symbolic_reference(self):
        c = cs.SX.sym("c", 4)
        s = cs.SX.sym("s", 6)
        expr = kinematic_step(s, [0.0, 0.0], 0.1, 2.67, reference=[c[i] for i in range(4)])
        assert is_symbolic(*expr)


class TestIsSymbolic:

    def test_numeric(self):
        assert not is_symbolic(1.0, np.float64(2.0), np.zeros(3))

    def test_casadi(self):
        assert is_symbolic(1.0, cs.SX.sym("x"))
