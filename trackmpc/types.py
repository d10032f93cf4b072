"""
Core data structures for the path-tracking MPC.

- Vehicle state and actuator values handed between components
- Horizon parameters shared read-only by every component
- Solver output and the command returned to the transport layer
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np


# =============================================================================
# State Representations
# =============================================================================

STATE_FIELDS = ("x", "y", "psi", "v", "cte", "epsi")
STATE_DIM = len(STATE_FIELDS)


@dataclass(frozen=True)
class VehicleState:
    """
    Vehicle state in the local frame of the current solve.

    Attributes:
        x: Position x-coordinate
        y: Position y-coordinate
        psi: Heading [rad]
        v: Speed
        cte: Cross-track error
        epsi: Heading error [rad]
    """
    x: float
    y: float
    psi: float
    v: float
    cte: float
    epsi: float

    def to_array(self) -> np.ndarray:
        """Convert to numpy array [x, y, psi, v, cte, epsi]."""
        return np.array([self.x, self.y, self.psi, self.v, self.cte, self.epsi], dtype=float)

    @classmethod
    def from_array(cls, arr: Sequence[float]) -> "VehicleState":
        """Create from an array-like of six values."""
        return cls(*(float(arr[i]) for i in range(STATE_DIM)))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.to_array())))


@dataclass(frozen=True)
class Actuators:
    """
    Actuator values: steering angle delta [rad] and acceleration a.
    """
    steering: float
    acceleration: float

    def to_array(self) -> np.ndarray:
        """Convert to numpy array [delta, a]."""
        return np.array([self.steering, self.acceleration], dtype=float)

    @classmethod
    def from_array(cls, arr: Sequence[float]) -> "Actuators":
        return cls(steering=float(arr[0]), acceleration=float(arr[1]))

    @classmethod
    def zero(cls) -> "Actuators":
        return cls(steering=0.0, acceleration=0.0)


@dataclass(frozen=True)
class ReferenceCurve:
    """
    Polynomial reference path in the vehicle frame.

    Coefficients are in ascending power order: y = c0 + c1*x + c2*x^2 + ...
    """
    coefficients: tuple

    @property
    def degree(self) -> int:
        return len(self.coefficients) - 1

    def to_array(self) -> np.ndarray:
        return np.asarray(self.coefficients, dtype=float)

    @classmethod
    def from_array(cls, arr: Sequence[float]) -> "ReferenceCurve":
        return cls(coefficients=tuple(float(c) for c in arr))


@dataclass(frozen=True)
class HorizonParameters:
    """
    Process-wide horizon constants.

    Attributes:
        steps: Number of predicted states N
        dt: Timestep duration [s]
        lf: Distance from centre of gravity to front axle
    """
    steps: int
    dt: float
    lf: float


# =============================================================================
# Solver Output
# =============================================================================

class SolveStatus(Enum):
    """Outcome of one solve."""
    SUCCESS = "success"
    NON_CONVERGENT = "non_convergent"
    BOUND_VIOLATION = "bound_violation"
    NUMERIC_INSTABILITY = "numeric_instability"
    DEGENERATE_INPUT = "degenerate_input"


@dataclass
class Solution:
    """
    Result of one nonlinear solve.

    Attributes:
        status: Outcome of the solve
        steering: First steering value delta_0 [rad]
        acceleration: First acceleration value a_0
        states: Predicted states, shape (N, 6)
        actuators: Actuator sequence, shape (N - 1, 2)
        cost: Objective value at the solution
        iterations: Solver iterations
        solve_time: Wall time of the solve [s]
        degraded: True when solved without exact derivatives
        reason: Human-readable failure reason
    """
    status: SolveStatus
    steering: float = 0.0
    acceleration: float = 0.0
    states: np.ndarray = field(default_factory=lambda: np.zeros((0, 6)))
    actuators: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    cost: float = float('inf')
    iterations: int = 0
    solve_time: float = 0.0
    degraded: bool = False
    reason: str = ""

    @property
    def success(self) -> bool:
        return self.status is SolveStatus.SUCCESS

    @property
    def first_input(self) -> Optional[Actuators]:
        """First actuator pair, the only one applied."""
        if not self.success:
            return None
        return Actuators(steering=self.steering, acceleration=self.acceleration)

    @property
    def predicted_x(self) -> np.ndarray:
        return self.states[:, 0] if len(self.states) else np.zeros(0)

    @property
    def predicted_y(self) -> np.ndarray:
        return self.states[:, 1] if len(self.states) else np.zeros(0)

    @classmethod
    def failed(cls, status: SolveStatus, reason: str, **kwargs) -> "Solution":
        return cls(status=status, reason=reason, **kwargs)


# =============================================================================
# Transport-facing Structures
# =============================================================================

@dataclass
class TelemetryMessage:
    """
    One telemetry event, already decoded.

    Attributes:
        ptsx: Waypoint x coordinates (world frame)
        ptsy: Waypoint y coordinates (world frame)
        x: Vehicle x position (world frame)
        y: Vehicle y position (world frame)
        psi: Vehicle heading [rad]
        speed: Vehicle speed
        steering_angle: Previously issued steering, normalized to [-1, 1]
        throttle: Previously issued throttle
    """
    ptsx: List[float]
    ptsy: List[float]
    x: float
    y: float
    psi: float
    speed: float
    steering_angle: Optional[float] = None
    throttle: Optional[float] = None


@dataclass
class ControlCommand:
    """
    Command emitted to the transport layer for one cycle.

    Attributes:
        steering: Steering normalized to [-1, 1]
        throttle: Throttle / acceleration command
        mpc_x, mpc_y: Predicted trajectory in the vehicle frame (display only)
        next_x, next_y: Reference curve samples (display only)
        status: Status of the solve behind this command
        fallback: True if the command was not produced by this cycle's solve
    """
    steering: float
    throttle: float
    mpc_x: List[float] = field(default_factory=list)
    mpc_y: List[float] = field(default_factory=list)
    next_x: List[float] = field(default_factory=list)
    next_y: List[float] = field(default_factory=list)
    status: SolveStatus = SolveStatus.SUCCESS
    fallback: bool = False

    def to_dict(self) -> Dict[str, object]:
        """Payload of the outbound steer message."""
        return {
            'steering_angle': self.steering,
            'throttle': self.throttle,
            'mpc_x': list(self.mpc_x),
            'mpc_y': list(self.mpc_y),
            'next_x': list(self.next_x),
            'next_y': list(self.next_y),
        }


class ControllerPhase(Enum):
    """Phases of one control cycle."""
    IDLE = "idle"
    ESTIMATING = "estimating"
    SOLVING = "solving"
    EMITTING = "emitting"
