"""
Latency-compensated state estimation.

Turns one telemetry measurement into the state the optimizer treats as "now":

1. Waypoints are moved into the vehicle frame (vehicle at the origin,
   heading zero).
2. A reference polynomial is fitted to them.
3. cte = f(0), epsi = -atan(f'(0)).
4. The state is advanced by the actuation delay with the previously issued
   command, using the same transition function as the horizon constraints.
"""

from typing import Optional, Sequence, Tuple

import numpy as np

from trackmpc.dynamics import kinematic_step
from trackmpc.exceptions import DegenerateReferenceError, InvalidStateError, NumericalError
from trackmpc.reference import fit_reference, polyderiv, polyeval
from trackmpc.types import Actuators, HorizonParameters, ReferenceCurve, TelemetryMessage, VehicleState


def to_vehicle_frame(
    ptsx: Sequence[float],
    ptsy: Sequence[float],
    px: float,
    py: float,
    psi: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Translate by -position and rotate by -psi.

    Returns:
        (xs, ys) waypoint coordinates in the vehicle frame

    Raises:
        DegenerateReferenceError: if ptsx and ptsy differ in length
    """
    xs = np.asarray(ptsx, dtype=float).ravel()
    ys = np.asarray(ptsy, dtype=float).ravel()
    if xs.size != ys.size:
        raise DegenerateReferenceError(
            f"x/y waypoint counts differ ({xs.size} != {ys.size})", num_points=int(xs.size)
        )
    dx = xs - px
    dy = ys - py
    cos_p = np.cos(-psi)
    sin_p = np.sin(-psi)
    return dx * cos_p - dy * sin_p, dx * sin_p + dy * cos_p


class LatencyCompensatedEstimator:
    """
    Builds the anchoring VehicleState for each solve.
    """

    def __init__(
        self,
        params: HorizonParameters,
        latency: float = 0.1,
        degree: int = 3,
        error_model: str = "local",
    ):
        """
        Args:
            params: Horizon parameters (lf is used)
            latency: Actuation delay [s]
            degree: Reference polynomial degree
            error_model: "local" or "geometric", as in the horizon constraints
        """
        self.params = params
        self.latency = latency
        self.degree = degree
        self.error_model = error_model

    def fit(self, message: TelemetryMessage) -> ReferenceCurve:
        """Fit the reference curve in the vehicle frame.

        Raises:
            DegenerateReferenceError: if the waypoints are unusable
        """
        xs, ys = to_vehicle_frame(message.ptsx, message.ptsy, message.x, message.y, message.psi)
        return fit_reference(xs, ys, self.degree)

    def estimate(
        self,
        message: TelemetryMessage,
        previous: Optional[Actuators] = None,
    ) -> Tuple[VehicleState, ReferenceCurve]:
        """
        Estimate the latency-compensated state.

        Args:
            message: Current telemetry
            previous: Command issued last cycle; zero actuators if None

        Returns:
            (state, reference curve)

        Raises:
            InvalidStateError: for a non-finite pose or speed
            DegenerateReferenceError: if the reference cannot be fitted
            NumericalError: if the projection produces NaN/Inf
        """
        for name in ("x", "y", "psi", "speed"):
            if not np.isfinite(getattr(message, name)):
                raise InvalidStateError(name, "not finite")

        curve = self.fit(message)
        state = self.project(message.speed, curve, previous)
        return state, curve

    def project(
        self,
        speed: float,
        curve: ReferenceCurve,
        previous: Optional[Actuators] = None,
    ) -> VehicleState:
        """Build the vehicle-frame state and advance it by the latency."""
        if previous is None:
            previous = Actuators.zero()

        coeffs = curve.coefficients
        cte = float(polyeval(coeffs, 0.0))
        epsi = float(-np.arctan(polyderiv(coeffs, 0.0)))
        now = [0.0, 0.0, 0.0, float(speed), cte, epsi]

        reference = coeffs if self.error_model == "geometric" else None
        projected = kinematic_step(now, previous.to_array(), self.latency, self.params.lf, reference)
        state = VehicleState.from_array(projected)
        if not state.is_finite():
            raise NumericalError(f"latency projection produced {state}")
        return state
