"""
Tests for exception hierarchy.
"""

from __future__ import annotations

import pytest

from trackmpc.exceptions import (
    TrackMPCError,
    ConfigurationError,
    ConfigNotFoundError,
    ConfigValidationError,
    SolverError,
    NumericalError,
    PlanningError,
    InvalidStateError,
    DegenerateReferenceError,
    DataError,
    MalformedMessageError,
)


class TestTrackMPCError:
    """Tests for base TrackMPCError."""

    def test_basic_message(self):
        error = TrackMPCError("Test error")
        assert str(error) == "Test error"
        assert error.message == "Test error"

    def test_message_with_details(self):
        error = TrackMPCError("Test error", details={"key": "value"})
        assert "key=value" in str(error)
        assert error.details == {"key": "value"}

    def test_can_be_raised(self):
        with pytest.raises(TrackMPCError):
            raise TrackMPCError("Test error")


class TestConfigurationErrors:
    """Tests for configuration-related errors."""

    def test_config_not_found(self):
        error = ConfigNotFoundError("/path/to/config.yml")
        assert "/path/to/config.yml" in str(error)
        assert error.details["path"] == "/path/to/config.yml"

    def test_config_validation_error(self):
        error = ConfigValidationError("horizon.steps", "must be >= 2", value=1)
        assert "horizon.steps" in str(error)
        assert "must be >= 2" in str(error)
        assert error.details["value"] == "1"

    def test_inheritance(self):
        assert issubclass(ConfigNotFoundError, ConfigurationError)
        assert issubclass(ConfigValidationError, ConfigurationError)
        assert issubclass(ConfigurationError, TrackMPCError)


class TestSolverErrors:
    """Tests for solver-related errors."""

    def test_numerical_error(self):
        error = NumericalError("lf=0 is too close to zero")
        assert str(error).startswith("Numerical error: lf=0")
        assert isinstance(error, SolverError)


class TestPlanningErrors:
    """Tests for planning-related errors."""

    def test_invalid_state(self):
        error = InvalidStateError("speed", "not finite")
        assert error.details["state"] == "speed"
        assert isinstance(error, PlanningError)

    def test_degenerate_reference(self):
        error = DegenerateReferenceError("fewer than 2 waypoints", num_points=1)
        assert "fewer than 2 waypoints" in str(error)
        assert error.details["num_points"] == 1
        assert isinstance(error, PlanningError)


class TestDataErrors:
    """Tests for data-related errors."""

    def test_malformed_message_truncates_frame(self):
        frame = "42" + "x" * 200
        error = MalformedMessageError("invalid JSON", frame)
        assert len(error.details["frame"]) == 80
        assert isinstance(error, DataError)

    def test_catch_all_with_base(self):
        for error in (
            ConfigNotFoundError("a"),
            NumericalError("b"),
            DegenerateReferenceError("c"),
            MalformedMessageError("d"),
        ):
            with pytest.raises(TrackMPCError):
                raise error
