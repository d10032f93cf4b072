"""
TrackMPC Exception Hierarchy.

This module defines all custom exceptions used in the TrackMPC package.
Lower components (reference fitting, state estimation, vehicle model) raise
these; the receding-horizon controller catches them at its boundary so that
no failure escapes into the transport layer.
"""

from typing import Any, Optional


class TrackMPCError(Exception):
    """Base exception for all TrackMPC errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(TrackMPCError):
    """Error in configuration loading or validation."""

    pass


class ConfigNotFoundError(ConfigurationError):
    """Configuration file not found."""

    def __init__(self, config_path: str):
        super().__init__(
            f"Configuration file not found: {config_path}",
            details={"path": config_path},
        )


class ConfigValidationError(ConfigurationError):
    """Configuration validation failed."""

    def __init__(self, key: str, reason: str, value: Any = None):
        details = {"key": key, "reason": reason}
        if value is not None:
            details["value"] = str(value)
        super().__init__(
            f"Invalid configuration for '{key}': {reason}",
            details=details,
        )


# =============================================================================
# Solver Errors
# =============================================================================


class SolverError(TrackMPCError):
    """Base class for solver-related errors."""

    pass


class NumericalError(SolverError):
    """NaN/Inf or an ill-posed quantity met during evaluation."""

    def __init__(self, description: str):
        super().__init__(
            f"Numerical error: {description}",
            details={"description": description},
        )


# =============================================================================
# Planning Errors
# =============================================================================


class PlanningError(TrackMPCError):
    """Base class for planning-related errors."""

    pass


class InvalidStateError(PlanningError):
    """Invalid state provided to the controller."""

    def __init__(self, state_name: str, reason: str):
        super().__init__(
            f"Invalid state '{state_name}': {reason}",
            details={"state": state_name, "reason": reason},
        )


class DegenerateReferenceError(PlanningError):
    """Waypoints cannot support a well-conditioned reference fit."""

    def __init__(self, reason: str, num_points: Optional[int] = None):
        details = {"reason": reason}
        if num_points is not None:
            details["num_points"] = num_points
        super().__init__(
            f"Degenerate reference input: {reason}",
            details=details,
        )


# =============================================================================
# Data Errors
# =============================================================================


class DataError(TrackMPCError):
    """Base class for data-related errors."""

    pass


class MalformedMessageError(DataError):
    """Telemetry frame could not be decoded."""

    def __init__(self, reason: str, frame: Optional[str] = None):
        details = {"reason": reason}
        if frame is not None:
            details["frame"] = frame[:80]
        super().__init__(
            f"Malformed telemetry message: {reason}",
            details=details,
        )
