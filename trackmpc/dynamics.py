"""
Kinematic bicycle model.

State: s = [x, y, psi, v, cte, epsi]
Input: u = [delta, a] (steering angle, acceleration)

Discrete dynamics (forward Euler):
    x'    = x + v * cos(psi) * dt
    y'    = y + v * sin(psi) * dt
    psi'  = psi - v * delta / Lf * dt
    v'    = v + a * dt
    cte'  = cte + v * sin(epsi) * dt
    epsi' = epsi - v * delta / Lf * dt

Positive steering turns right and reduces heading.

With a reference polynomial f the error terms are instead measured against
the curve at the current position ("geometric" error model):
    cte'  = (f(x) - y) + v * sin(epsi) * dt
    epsi' = (psi - atan(f'(x))) - v * delta / Lf * dt
At the vehicle-frame origin (x = y = psi = 0, cte = f(0),
epsi = -atan(f'(0))) both forms are identical.

The same function serves numeric evaluation (floats, numpy) and symbolic
evaluation (CasADi), so the latency projection and the horizon constraints
can never drift apart.
"""

from typing import List, Optional, Sequence, Union

import casadi as cs
import numpy as np

from trackmpc.exceptions import NumericalError
from trackmpc.reference import polyderiv, polyeval
from trackmpc.types import Actuators, HorizonParameters, VehicleState

MIN_LF = 1e-9

_SYMBOLIC = (cs.SX, cs.MX)


def is_symbolic(*values) -> bool:
    """True if any value is a CasADi symbolic expression."""
    return any(isinstance(v, _SYMBOLIC) for v in values)


def kinematic_step(
    state: Union[Sequence, np.ndarray, "cs.SX"],
    actuators: Union[Sequence, np.ndarray, "cs.SX"],
    dt: float,
    lf: float,
    reference: Optional[Sequence] = None,
) -> list:
    """
    Advance the state by one timestep.

    Args:
        state: Indexable [x, y, psi, v, cte, epsi]
        actuators: Indexable [delta, a]
        dt: Timestep [s]
        lf: Centre of gravity to front axle distance
        reference: Optional polynomial coefficients (ascending); selects the
            geometric error model

    Returns:
        List of the six next-state components, of the same numeric kind
        as the inputs.
    """
    x, y, psi, v, cte, epsi = (state[i] for i in range(6))
    delta, a = actuators[0], actuators[1]

    if not is_symbolic(lf) and abs(lf) < MIN_LF:
        raise NumericalError(f"lf={lf} is too close to zero")

    symbolic = is_symbolic(x, y, psi, v, cte, epsi, delta, a)
    if reference is not None:
        symbolic = symbolic or is_symbolic(*reference)
    sin, cos, atan = (cs.sin, cs.cos, cs.atan) if symbolic else (np.sin, np.cos, np.arctan)

    yaw_change = v * delta / lf * dt

    if reference is None:
        cte_base = cte
        epsi_base = epsi
    else:
        cte_base = polyeval(reference, x) - y
        epsi_base = psi - atan(polyderiv(reference, x))

    return [
        x + v * cos(psi) * dt,
        y + v * sin(psi) * dt,
        psi - yaw_change,
        v + a * dt,
        cte_base + v * sin(epsi) * dt,
        epsi_base - yaw_change,
    ]


class KinematicBicycleModel:
    """
    Numeric wrapper around ``kinematic_step`` for VehicleState objects.
    """

    def __init__(self, params: HorizonParameters):
        """
        Args:
            params: Horizon parameters (dt and lf are used)
        """
        self.params = params
        self.state_dim = 6
        self.input_dim = 2

    def propagate(
        self,
        state: VehicleState,
        actuators: Optional[Actuators] = None,
        dt: Optional[float] = None,
        reference: Optional[Sequence[float]] = None,
    ) -> VehicleState:
        """
        Propagate the state forward one step.

        Args:
            state: Current state
            actuators: Control input (zero if None)
            dt: Timestep (uses params.dt if not provided)
            reference: Polynomial coefficients for the geometric error model
        """
        if actuators is None:
            actuators = Actuators.zero()
        if dt is None:
            dt = self.params.dt
        nxt = kinematic_step(state.to_array(), actuators.to_array(), dt, self.params.lf, reference)
        return VehicleState.from_array(nxt)

    def rollout(
        self,
        initial_state: VehicleState,
        inputs: List[Actuators],
        dt: Optional[float] = None,
        reference: Optional[Sequence[float]] = None,
    ) -> List[VehicleState]:
        """
        Roll out a trajectory.

        Returns:
            List of states including the initial state (length len(inputs) + 1)
        """
        states = [initial_state]
        current = initial_state
        for u in inputs:
            current = self.propagate(current, u, dt, reference)
            states.append(current)
        return states
