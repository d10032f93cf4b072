"""
Pytest configuration and fixtures for TrackMPC tests.

This module provides shared fixtures for testing:
- Configuration fixtures
- State and reference fixtures
- Telemetry fixtures
- Controller fixtures
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import numpy as np
import pytest


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def default_config() -> Dict[str, Any]:
    """Create default configuration dictionary."""
    from trackmpc import create_default_config

    return create_default_config()


@pytest.fixture
def mpc_config():
    """Create typed MPC configuration."""
    from trackmpc.config import MPCConfig

    return MPCConfig()


@pytest.fixture
def geometric_config():
    """Configuration using the geometric error model."""
    from trackmpc.config import MPCConfig

    config = MPCConfig()
    config.horizon.error_model = "geometric"
    return config


@pytest.fixture
def horizon_params(mpc_config):
    """Default horizon parameters."""
    return mpc_config.horizon_parameters()


# =============================================================================
# State Fixtures
# =============================================================================


@pytest.fixture
def centred_state():
    """Vehicle on a straight reference, no tracking error."""
    from trackmpc.types import VehicleState

    return VehicleState(x=0.0, y=0.0, psi=0.0, v=10.0, cte=0.0, epsi=0.0)


@pytest.fixture
def straight_curve():
    """Reference y = 0."""
    from trackmpc.types import ReferenceCurve

    return ReferenceCurve(coefficients=(0.0, 0.0, 0.0, 0.0))


# =============================================================================
# Telemetry Fixtures
# =============================================================================


@pytest.fixture
def make_message():
    """Factory: vehicle at the origin, waypoints along y = offset."""
    from trackmpc.types import TelemetryMessage

    def _make(offset: float = 0.0, speed: float = 10.0, heading: float = 0.0, **kwargs):
        xs = np.arange(0.0, 60.0, 10.0)
        return TelemetryMessage(
            ptsx=xs.tolist(),
            ptsy=[offset] * len(xs),
            x=0.0,
            y=0.0,
            psi=heading,
            speed=speed,
            **kwargs,
        )

    return _make


@pytest.fixture
def straight_message(make_message):
    """Vehicle centred on a straight path along +x at speed 10."""
    return make_message()


@pytest.fixture
def telemetry_payload() -> Dict[str, Any]:
    """Raw telemetry payload as sent by the simulator."""
    return {
        "ptsx": [-32.16, -43.49, -61.09, -78.29, -93.05, -107.79],
        "ptsy": [113.36, 105.94, 92.88, 78.73, 65.34, 50.57],
        "x": -40.62,
        "y": 108.73,
        "psi": 3.733651,
        "psi_unity": 4.12033,
        "speed": 0.4380091,
        "steering_angle": 0.0,
        "throttle": 0.0,
    }


# =============================================================================
# Controller Fixtures
# =============================================================================


@pytest.fixture
def controller(mpc_config):
    """Controller with default configuration."""
    from trackmpc.controller import RecedingHorizonController

    return RecedingHorizonController(mpc_config)


# =============================================================================
# File Fixtures
# =============================================================================


@pytest.fixture
def temp_config_file(tmp_path) -> Path:
    """Create a temporary configuration file."""
    config_content = """
horizon:
  steps: 12
  timestep: 0.05

solver:
  max_iterations: 100

reference_speed: 30.0
"""
    config_file = tmp_path / "test_config.yml"
    config_file.write_text(config_content)
    return config_file


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
