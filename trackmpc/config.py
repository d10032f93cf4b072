"""
Configuration management for TrackMPC.

This module provides:
- MPCConfig: Typed configuration dataclass
- ConfigManager: Central configuration management with environment support
- create_default_config: Default configuration dictionary
- load_config: Load configuration from YAML files

All values are fixed at process start; nothing reconfigures the controller
at runtime.
"""

from __future__ import annotations

import copy
import math
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from trackmpc.exceptions import ConfigNotFoundError, ConfigValidationError
from trackmpc.types import HorizonParameters

ERROR_MODELS = ("local", "geometric")

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class HorizonConfig:
    """Prediction horizon and vehicle geometry."""

    steps: int = 10
    timestep: float = 0.1
    lf: float = 2.67  # centre of gravity to front axle
    # "local": cte/epsi evolve from their anchored values.
    # "geometric": cte/epsi are re-measured against the reference each step.
    error_model: str = "local"

    def validate(self) -> None:
        """Validate horizon configuration."""
        if self.error_model not in ERROR_MODELS:
            raise ConfigValidationError(
                "horizon.error_model", f"must be one of {list(ERROR_MODELS)}", self.error_model
            )
        if self.steps < 2:
            raise ConfigValidationError("horizon.steps", "must be >= 2", self.steps)
        if self.timestep <= 0:
            raise ConfigValidationError("horizon.timestep", "must be > 0", self.timestep)
        if self.lf <= 1e-6:
            raise ConfigValidationError("horizon.lf", "must be > 0", self.lf)


@dataclass
class LatencyConfig:
    """Actuation delay compensation."""

    delay: float = 0.1
    use_reported_actuators: bool = False
    # Sleep before replying, mimicking actuation delay in the telemetry loop.
    simulate_in_loop: bool = False

    def validate(self) -> None:
        if self.delay < 0:
            raise ConfigValidationError("latency.delay", "must be >= 0", self.delay)


@dataclass
class ActuatorLimits:
    """Actuator and speed bounds."""

    max_steering: float = math.radians(25.0)
    min_acceleration: float = -1.0
    max_acceleration: float = 1.0
    min_speed: float = 0.0
    max_speed: float = 100.0

    def validate(self) -> None:
        """Validate actuator limits."""
        if self.max_steering <= 0:
            raise ConfigValidationError("limits.max_steering", "must be > 0", self.max_steering)
        if self.min_acceleration >= self.max_acceleration:
            raise ConfigValidationError(
                "limits.min_acceleration",
                "must be < max_acceleration",
                self.min_acceleration,
            )
        if self.min_speed < 0:
            raise ConfigValidationError("limits.min_speed", "must be >= 0", self.min_speed)
        if self.max_speed <= self.min_speed:
            raise ConfigValidationError("limits.max_speed", "must be > min_speed", self.max_speed)


@dataclass
class CostWeights:
    """Objective weights: tracking, actuator magnitude, actuator rate."""

    cte: float = 2000.0
    epsi: float = 2000.0
    speed: float = 1.0
    steering: float = 5.0
    acceleration: float = 5.0
    steering_rate: float = 200.0
    acceleration_rate: float = 10.0

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value < 0:
                raise ConfigValidationError(f"weights.{f.name}", "must be >= 0", value)


@dataclass
class SolverConfig:
    """Solver-specific configuration."""

    backend: str = "ipopt"
    max_iterations: int = 200
    tolerance: float = 1e-8
    max_cpu_time: float = 0.5
    print_level: int = 0
    warm_start: bool = False
    bound_tolerance: float = 1e-6
    anchor_tolerance: float = 1e-6
    # Soft per-cycle budget [s]; overruns are logged, the solve is not aborted.
    cycle_deadline: float = 0.1

    def validate(self) -> None:
        """Validate solver configuration."""
        valid_backends = {"ipopt", "slsqp"}
        if self.backend not in valid_backends:
            raise ConfigValidationError(
                "solver.backend", f"must be one of {sorted(valid_backends)}", self.backend
            )
        if self.max_iterations < 1:
            raise ConfigValidationError("solver.max_iterations", "must be >= 1", self.max_iterations)
        if self.tolerance <= 0:
            raise ConfigValidationError("solver.tolerance", "must be > 0", self.tolerance)
        if self.max_cpu_time <= 0:
            raise ConfigValidationError("solver.max_cpu_time", "must be > 0", self.max_cpu_time)
        if self.cycle_deadline <= 0:
            raise ConfigValidationError("solver.cycle_deadline", "must be > 0", self.cycle_deadline)


@dataclass
class FallbackConfig:
    """Command replay policy when a cycle fails."""

    max_replay_failures: int = 3
    steering_decay: float = 0.5
    safe_throttle: float = -0.1

    def validate(self) -> None:
        if self.max_replay_failures < 0:
            raise ConfigValidationError(
                "fallback.max_replay_failures", "must be >= 0", self.max_replay_failures
            )
        if not 0.0 <= self.steering_decay <= 1.0:
            raise ConfigValidationError(
                "fallback.steering_decay", "must be in [0, 1]", self.steering_decay
            )
        if self.safe_throttle > 0:
            raise ConfigValidationError(
                "fallback.safe_throttle", "must be <= 0", self.safe_throttle
            )


@dataclass
class VisualizationConfig:
    """Sampling of the reference curve sent back for display."""

    sample_extent: float = 80.0
    sample_spacing: float = 2.0

    def validate(self) -> None:
        if self.sample_spacing <= 0:
            raise ConfigValidationError(
                "visualization.sample_spacing", "must be > 0", self.sample_spacing
            )


@dataclass
class MPCConfig:
    """Complete controller configuration."""

    horizon: HorizonConfig = field(default_factory=HorizonConfig)
    latency: LatencyConfig = field(default_factory=LatencyConfig)
    limits: ActuatorLimits = field(default_factory=ActuatorLimits)
    weights: CostWeights = field(default_factory=CostWeights)
    solver: SolverConfig = field(default_factory=SolverConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)

    reference_speed: float = 40.0
    reference_degree: int = 3

    def validate(self) -> None:
        """Validate all configuration settings."""
        self.horizon.validate()
        self.latency.validate()
        self.limits.validate()
        self.weights.validate()
        self.solver.validate()
        self.fallback.validate()
        self.visualization.validate()

        if not self.limits.min_speed <= self.reference_speed <= self.limits.max_speed:
            raise ConfigValidationError(
                "reference_speed", "must lie within the speed limits", self.reference_speed
            )
        if self.reference_degree < 1:
            raise ConfigValidationError("reference_degree", "must be >= 1", self.reference_degree)

    def horizon_parameters(self) -> HorizonParameters:
        """Immutable horizon parameters read by every component."""
        return HorizonParameters(
            steps=self.horizon.steps,
            dt=self.horizon.timestep,
            lf=self.horizon.lf,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary format."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MPCConfig":
        """Create MPCConfig from dictionary; missing keys take defaults."""
        sections = {
            "horizon": HorizonConfig,
            "latency": LatencyConfig,
            "limits": ActuatorLimits,
            "weights": CostWeights,
            "solver": SolverConfig,
            "fallback": FallbackConfig,
            "visualization": VisualizationConfig,
        }
        scalars = {"reference_speed", "reference_degree"}
        unknown_top = set(data) - set(sections) - scalars
        if unknown_top:
            raise ConfigValidationError("config", f"unknown keys {sorted(unknown_top)}")

        kwargs: Dict[str, Any] = {}
        for name, section_cls in sections.items():
            section_data = data.get(name) or {}
            if not isinstance(section_data, dict):
                raise ConfigValidationError(name, "must be a mapping", section_data)
            known = {f.name for f in fields(section_cls)}
            unknown = set(section_data) - known
            if unknown:
                raise ConfigValidationError(name, f"unknown keys {sorted(unknown)}")
            kwargs[name] = section_cls(**section_data)

        return cls(
            reference_speed=float(data.get("reference_speed", 40.0)),
            reference_degree=int(data.get("reference_degree", 3)),
            **kwargs,
        )


# =============================================================================
# Configuration Manager
# =============================================================================


class ConfigManager:
    """Central configuration management with environment variable support.

    Environment variables take precedence over config files.
    Config files take precedence over defaults.

    Environment variable format: TRACKMPC_<SECTION>__<KEY>
    Example: TRACKMPC_HORIZON__STEPS=12, TRACKMPC_REFERENCE_SPEED=30
    """

    ENV_PREFIX = "TRACKMPC"
    ENV_SEPARATOR = "__"
    _RESERVED = {"LOG_LEVEL", "LOG_FORMAT", "LOG_FILE"}

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self._config: Optional[MPCConfig] = None
        self._config_path = Path(config_path) if config_path else None
        self._raw_config: Dict[str, Any] = {}

    def load(self, validate: bool = True) -> MPCConfig:
        """Load and return configuration.

        Args:
            validate: Whether to validate configuration after loading.
        """
        self._raw_config = create_default_config()

        if self._config_path:
            self._load_from_file(self._config_path)

        self._load_from_env()

        self._config = MPCConfig.from_dict(self._raw_config)

        if validate:
            self._config.validate()

        return self._config

    def _load_from_file(self, path: Path) -> None:
        """Load configuration from YAML file."""
        if not path.exists():
            raise ConfigNotFoundError(str(path))

        with open(path, "r") as f:
            file_config = yaml.safe_load(f)

        if file_config:
            self._deep_update(self._raw_config, file_config)

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        prefix = f"{self.ENV_PREFIX}_"
        for key, value in os.environ.items():
            if not key.startswith(prefix):
                continue
            name = key[len(prefix):]
            if name in self._RESERVED:
                continue
            self._set_nested_value(name.lower(), value)

    def _set_nested_value(self, key: str, value: str) -> None:
        """Set a nested configuration value from environment variable."""
        parts = key.split(self.ENV_SEPARATOR)
        target = self._raw_config

        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]

        target[parts[-1]] = self._parse_value(value)

    @staticmethod
    def _parse_value(value: str) -> Any:
        """Parse string value to appropriate Python type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    @staticmethod
    def _deep_update(base: dict, update: dict) -> dict:
        """Deep merge update into base dictionary."""
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                ConfigManager._deep_update(base[key], value)
            else:
                base[key] = value
        return base

    @property
    def config(self) -> MPCConfig:
        """Get current configuration (loads if not already loaded)."""
        if self._config is None:
            self.load()
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dotted key path, e.g. "horizon.steps"."""
        parts = key.split(".")
        value = self._raw_config

        for part in parts:
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value


# =============================================================================
# Factory Functions
# =============================================================================

_DEFAULTS = MPCConfig().to_dict()


def create_default_config() -> Dict[str, Any]:
    """Create default configuration dictionary."""
    return copy.deepcopy(_DEFAULTS)


def load_config(path: Union[str, Path], validate: bool = True) -> MPCConfig:
    """Load configuration from a YAML file (with environment overrides)."""
    manager = ConfigManager(path)
    return manager.load(validate=validate)

