"""
Receding-horizon controller.

One cycle per telemetry event:

    IDLE -> ESTIMATING -> SOLVING -> EMITTING -> IDLE

1. Estimate the latency-compensated state and fit the reference
2. Solve the horizon
3. Emit the first actuator pair (or a fallback) and remember it

Failures never leave ``step``: degenerate waypoints, numerical problems and
solver failures all end in a fallback command.
"""

from typing import Optional

import numpy as np

from trackmpc.config import MPCConfig
from trackmpc.estimator import LatencyCompensatedEstimator
from trackmpc.exceptions import DegenerateReferenceError, InvalidStateError, NumericalError
from trackmpc.logging import TimeTracker, cycle_scope, get_logger
from trackmpc.reference import sample_reference
from trackmpc.solver import NonlinearSolverDriver
from trackmpc.types import (
    Actuators,
    ControlCommand,
    ControllerPhase,
    ReferenceCurve,
    Solution,
    SolveStatus,
    TelemetryMessage,
)

logger = get_logger("controller")


class ActuatorMemory:
    """
    Holds the command issued last cycle, the only state carried across cycles.

    ``value`` is zero actuators until the first commit.
    """

    def __init__(self):
        self._value: Optional[Actuators] = None
        self._last_success: Optional[Actuators] = None

    @property
    def value(self) -> Actuators:
        """Command issued last cycle (physical units)."""
        return self._value if self._value is not None else Actuators.zero()

    @property
    def last_success(self) -> Optional[Actuators]:
        """Most recent command produced by a successful solve."""
        return self._last_success

    def commit(self, command: Actuators, from_solve: bool) -> None:
        """Record the command emitted at the end of a cycle."""
        self._value = command
        if from_solve:
            self._last_success = command

    def clear(self) -> None:
        self._value = None
        self._last_success = None


class RecedingHorizonController:
    """
    Model predictive path-tracking controller.
    """

    def __init__(self, config: Optional[MPCConfig] = None):
        """
        Args:
            config: Configuration parameters (defaults if None)
        """
        self.config = config or MPCConfig()
        self.config.validate()

        self.params = self.config.horizon_parameters()
        self.estimator = LatencyCompensatedEstimator(
            self.params,
            latency=self.config.latency.delay,
            degree=self.config.reference_degree,
            error_model=self.config.horizon.error_model,
        )
        self.driver = NonlinearSolverDriver(self.config)
        self.memory = ActuatorMemory()

        self.phase = ControllerPhase.IDLE
        self.consecutive_failures = 0
        self.last_solution: Optional[Solution] = None

        # Statistics
        self.solve_times = TimeTracker("solve")
        self.cycle_count = 0
        self.failure_count = 0
        self.deadline_overruns = 0

    def step(self, message: TelemetryMessage) -> ControlCommand:
        """
        Run one control cycle.

        Args:
            message: Decoded telemetry

        Returns:
            Command to send; never raw optimizer output on failure
        """
        self.cycle_count += 1
        with cycle_scope(self.cycle_count):
            try:
                return self._run_cycle(message)
            finally:
                self._enter(ControllerPhase.IDLE)

    def _run_cycle(self, message: TelemetryMessage) -> ControlCommand:
        previous = self._previous_actuators(message)

        self._enter(ControllerPhase.ESTIMATING)
        try:
            state, curve = self.estimator.estimate(message, previous)
        except DegenerateReferenceError as e:
            return self._emit_fallback(SolveStatus.DEGENERATE_INPUT, str(e))
        except (NumericalError, InvalidStateError) as e:
            return self._emit_fallback(SolveStatus.NUMERIC_INSTABILITY, str(e))

        self._enter(ControllerPhase.SOLVING)
        with self.solve_times.measure():
            solution = self.driver.solve(state, curve)
        self.last_solution = solution
        self._check_deadline(solution)

        if not solution.success:
            return self._emit_fallback(solution.status, solution.reason, curve)

        self._enter(ControllerPhase.EMITTING)
        self.consecutive_failures = 0
        command = solution.first_input
        self.memory.commit(command, from_solve=True)
        return self._command(command, solution, curve, SolveStatus.SUCCESS, fallback=False)

    # =========================================================================
    # Fallback
    # =========================================================================

    def _emit_fallback(
        self,
        status: SolveStatus,
        reason: str,
        curve: Optional[ReferenceCurve] = None,
    ) -> ControlCommand:
        self._enter(ControllerPhase.EMITTING)
        self.consecutive_failures += 1
        self.failure_count += 1

        command = self.fallback_command()
        logger.warning(
            f"Cycle failed ({status.value}: {reason}); emitting fallback "
            f"steering={command.steering:.4f} accel={command.acceleration:.3f} "
            f"(failure {self.consecutive_failures} in a row)",
        )
        self.memory.commit(command, from_solve=False)
        return self._command(command, None, curve, status, fallback=True)

    def fallback_command(self) -> Actuators:
        """
        Command used when this cycle cannot produce one.

        Replays the last successful command; once failures exceed the replay
        threshold, steering decays toward zero and throttle becomes mild
        braking. Without any previous success the safe default is used.
        """
        cfg = self.config.fallback
        last = self.memory.last_success
        if last is None:
            return Actuators(steering=0.0, acceleration=cfg.safe_throttle)

        if self.consecutive_failures <= cfg.max_replay_failures:
            return last

        excess = self.consecutive_failures - cfg.max_replay_failures
        return Actuators(
            steering=last.steering * cfg.steering_decay ** excess,
            acceleration=cfg.safe_throttle,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _previous_actuators(self, message: TelemetryMessage) -> Actuators:
        if (
            self.config.latency.use_reported_actuators
            and message.steering_angle is not None
            and message.throttle is not None
        ):
            return Actuators(
                steering=float(message.steering_angle) * self.config.limits.max_steering,
                acceleration=float(message.throttle),
            )
        return self.memory.value

    def _command(
        self,
        actuators: Actuators,
        solution: Optional[Solution],
        curve: Optional[ReferenceCurve],
        status: SolveStatus,
        fallback: bool,
    ) -> ControlCommand:
        steering = float(np.clip(actuators.steering / self.config.limits.max_steering, -1.0, 1.0))
        command = ControlCommand(steering=steering, throttle=float(actuators.acceleration),
                                 status=status, fallback=fallback)

        if solution is not None:
            command.mpc_x = solution.predicted_x.tolist()
            command.mpc_y = solution.predicted_y.tolist()
        if curve is not None:
            vis = self.config.visualization
            command.next_x, command.next_y = sample_reference(
                curve, vis.sample_extent, vis.sample_spacing
            )
        return command

    def _check_deadline(self, solution: Solution) -> None:
        deadline = self.config.solver.cycle_deadline
        if solution.solve_time > deadline:
            self.deadline_overruns += 1
            logger.warning(
                f"Solve took {solution.solve_time * 1000:.1f} ms, over the {deadline * 1000:.0f} ms cycle deadline"
            )

    def _enter(self, phase: ControllerPhase) -> None:
        if phase is not self.phase:
            logger.debug(f"{self.phase.value} -> {phase.value}")
        self.phase = phase

    def get_statistics(self) -> dict:
        """Controller statistics."""
        mean_ms, max_ms, count = self.solve_times.get_stats()
        return {
            'cycle_count': self.cycle_count,
            'failure_count': self.failure_count,
            'consecutive_failures': self.consecutive_failures,
            'solve_count': count,
            'avg_solve_time_ms': mean_ms,
            'max_solve_time_ms': max_ms,
            'deadline_overruns': self.deadline_overruns,
        }

    def reset(self) -> None:
        """Forget the previous command, warm start and statistics."""
        self.memory.clear()
        self.driver.reset_warmstart()
        self.solve_times.reset()
        self.phase = ControllerPhase.IDLE
        self.consecutive_failures = 0
        self.cycle_count = 0
        self.failure_count = 0
        self.deadline_overruns = 0
        self.last_solution = None
