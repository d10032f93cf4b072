"""
Cost and constraint formulation over the flat decision vector.

Decision vector layout for N steps:

    [ x_0..x_{N-1} | y | psi | v | cte | epsi | delta_0..delta_{N-2} | a ]

Every function here takes the decision vector ``z`` and returns expressions
of the same numeric kind: CasADi SX for the IPOPT backend (exact derivatives
via automatic differentiation) or numpy floats for the SLSQP backend.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from trackmpc.config import ActuatorLimits, CostWeights
from trackmpc.dynamics import kinematic_step
from trackmpc.types import STATE_DIM, HorizonParameters

# Proxy for an unbounded variable (IPOPT treats |bound| >= 1e19 as infinite).
UNBOUNDED = 1.0e19

# Keeps the objective strictly positive, even at the reference.
COST_FLOOR = 1.0e-9


@dataclass(frozen=True)
class VariableLayout:
    """Index arithmetic for the decision vector."""

    steps: int

    @property
    def x_start(self) -> int:
        return 0

    @property
    def y_start(self) -> int:
        return self.steps

    @property
    def psi_start(self) -> int:
        return 2 * self.steps

    @property
    def v_start(self) -> int:
        return 3 * self.steps

    @property
    def cte_start(self) -> int:
        return 4 * self.steps

    @property
    def epsi_start(self) -> int:
        return 5 * self.steps

    @property
    def delta_start(self) -> int:
        return 6 * self.steps

    @property
    def a_start(self) -> int:
        return 6 * self.steps + self.steps - 1

    @property
    def n_vars(self) -> int:
        return STATE_DIM * self.steps + 2 * (self.steps - 1)

    @property
    def n_constraints(self) -> int:
        return STATE_DIM * self.steps

    def state_starts(self) -> Tuple[int, ...]:
        return (self.x_start, self.y_start, self.psi_start,
                self.v_start, self.cte_start, self.epsi_start)

    def state_at(self, z, t: int) -> list:
        """The six state variables of timestep t."""
        return [z[start + t] for start in self.state_starts()]

    def actuators_at(self, z, t: int) -> list:
        """[delta_t, a_t] for t in 0..N-2."""
        return [z[self.delta_start + t], z[self.a_start + t]]

    def states(self, z: np.ndarray) -> np.ndarray:
        """Numeric (N, 6) state matrix."""
        z = np.asarray(z, dtype=float)
        return np.stack([z[s:s + self.steps] for s in self.state_starts()], axis=1)

    def actuators(self, z: np.ndarray) -> np.ndarray:
        """Numeric (N - 1, 2) actuator matrix."""
        z = np.asarray(z, dtype=float)
        n = self.steps - 1
        return np.stack([z[self.delta_start:self.delta_start + n],
                         z[self.a_start:self.a_start + n]], axis=1)


def objective(z, layout: VariableLayout, weights: CostWeights, reference_speed: float):
    """
    Tracking, actuator magnitude and actuator rate penalties.
    """
    n = layout.steps
    cost = COST_FLOOR

    for t in range(n):
        cost += weights.cte * z[layout.cte_start + t] ** 2
        cost += weights.epsi * z[layout.epsi_start + t] ** 2
        cost += weights.speed * (z[layout.v_start + t] - reference_speed) ** 2

    for t in range(n - 1):
        cost += weights.steering * z[layout.delta_start + t] ** 2
        cost += weights.acceleration * z[layout.a_start + t] ** 2

    for t in range(n - 2):
        cost += weights.steering_rate * (z[layout.delta_start + t + 1] - z[layout.delta_start + t]) ** 2
        cost += weights.acceleration_rate * (z[layout.a_start + t + 1] - z[layout.a_start + t]) ** 2

    return cost


def constraint_residuals(
    z,
    anchor: Sequence,
    layout: VariableLayout,
    params: HorizonParameters,
    reference: Optional[Sequence] = None,
) -> List:
    """
    Equality residuals, all with target 0.

    The first six anchor timestep 0 to ``anchor``; then, for each t >= 1,
    the six residuals of decision variable minus model prediction.
    Passing ``reference`` coefficients selects the geometric error model.
    """
    residuals = []
    first = layout.state_at(z, 0)
    for i in range(STATE_DIM):
        residuals.append(first[i] - anchor[i])

    for t in range(1, layout.steps):
        predicted = kinematic_step(
            layout.state_at(z, t - 1),
            layout.actuators_at(z, t - 1),
            params.dt,
            params.lf,
            reference,
        )
        current = layout.state_at(z, t)
        for i in range(STATE_DIM):
            residuals.append(current[i] - predicted[i])

    return residuals


def variable_bounds(layout: VariableLayout, limits: ActuatorLimits) -> Tuple[np.ndarray, np.ndarray]:
    """Lower and upper bounds for every decision variable."""
    lbx = np.full(layout.n_vars, -UNBOUNDED)
    ubx = np.full(layout.n_vars, UNBOUNDED)

    v = slice(layout.v_start, layout.v_start + layout.steps)
    lbx[v] = limits.min_speed
    ubx[v] = limits.max_speed

    delta = slice(layout.delta_start, layout.a_start)
    lbx[delta] = -limits.max_steering
    ubx[delta] = limits.max_steering

    a = slice(layout.a_start, layout.n_vars)
    lbx[a] = limits.min_acceleration
    ubx[a] = limits.max_acceleration

    return lbx, ubx


def constraint_bounds(layout: VariableLayout) -> Tuple[np.ndarray, np.ndarray]:
    """Every residual must be exactly zero."""
    zeros = np.zeros(layout.n_constraints)
    return zeros, zeros.copy()


def initial_guess(layout: VariableLayout, anchor: Sequence[float]) -> np.ndarray:
    """Zeros, except timestep 0 set to the anchoring state."""
    z0 = np.zeros(layout.n_vars)
    for start, value in zip(layout.state_starts(), anchor):
        z0[start] = value
    return z0
