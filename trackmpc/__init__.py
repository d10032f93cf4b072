"""
TrackMPC - Receding-horizon path tracking with actuation latency compensation.

Each telemetry event is turned into one command:
- waypoints are fitted with a polynomial in the vehicle frame
- the state is projected forward by the actuation delay
- a kinematic bicycle horizon is solved as a nonlinear program
- the first actuator pair is emitted (or a fallback if anything failed)

Basic Usage:
    from trackmpc import RecedingHorizonController, TelemetryHandler

    controller = RecedingHorizonController()
    handler = TelemetryHandler(controller)
    reply = handler.handle(frame)

For more control:
    from trackmpc.config import MPCConfig, ConfigManager
    from trackmpc.logging import LOG_INFO, LOG_DEBUG, TimeTracker
    from trackmpc.exceptions import DegenerateReferenceError
"""

from __future__ import annotations

__version__ = "0.1.0"

# =============================================================================
# Core API
# =============================================================================

from trackmpc.config import (
    create_default_config,
    load_config,
    MPCConfig,
    ConfigManager,
)

from trackmpc.types import (
    VehicleState,
    Actuators,
    ReferenceCurve,
    HorizonParameters,
    Solution,
    SolveStatus,
    TelemetryMessage,
    ControlCommand,
    ControllerPhase,
)

from trackmpc.dynamics import KinematicBicycleModel, kinematic_step
from trackmpc.reference import fit_reference, polyeval, polyderiv
from trackmpc.estimator import LatencyCompensatedEstimator, to_vehicle_frame
from trackmpc.solver import NonlinearSolverDriver
from trackmpc.controller import RecedingHorizonController
from trackmpc.telemetry import TelemetryHandler, parse_frame, steer_frame

from trackmpc.track import Track, generate_track
from trackmpc.runner import VehiclePlant, run_simulation

# =============================================================================
# Logging
# =============================================================================

from trackmpc.logging import (
    LOG_DEBUG,
    LOG_INFO,
    LOG_WARN,
    LOG_ERROR,
    TimeTracker,
    profile_scope,
    get_logger,
    setup_logging,
    cycle_scope,
    timed,
)

# =============================================================================
# Exceptions
# =============================================================================

from trackmpc.exceptions import (
    TrackMPCError,
    ConfigurationError,
    ConfigValidationError,
    SolverError,
    NumericalError,
    PlanningError,
    InvalidStateError,
    DegenerateReferenceError,
    DataError,
    MalformedMessageError,
)

__all__ = [
    "__version__",
    # Config
    "create_default_config",
    "load_config",
    "MPCConfig",
    "ConfigManager",
    # Types
    "VehicleState",
    "Actuators",
    "ReferenceCurve",
    "HorizonParameters",
    "Solution",
    "SolveStatus",
    "TelemetryMessage",
    "ControlCommand",
    "ControllerPhase",
    # Core
    "KinematicBicycleModel",
    "kinematic_step",
    "fit_reference",
    "polyeval",
    "polyderiv",
    "LatencyCompensatedEstimator",
    "to_vehicle_frame",
    "NonlinearSolverDriver",
    "RecedingHorizonController",
    "TelemetryHandler",
    "parse_frame",
    "steer_frame",
    # Simulation
    "Track",
    "generate_track",
    "VehiclePlant",
    "run_simulation",
    # Logging
    "LOG_DEBUG",
    "LOG_INFO",
    "LOG_WARN",
    "LOG_ERROR",
    "TimeTracker",
    "profile_scope",
    "get_logger",
    "setup_logging",
    "cycle_scope",
    "timed",
    # Exceptions
    "TrackMPCError",
    "ConfigurationError",
    "ConfigValidationError",
    "SolverError",
    "NumericalError",
    "PlanningError",
    "InvalidStateError",
    "DegenerateReferenceError",
    "DataError",
    "MalformedMessageError",
]
