"""
Nonlinear program driver for the path-tracking MPC.

Formulates and solves:
    min  J(z)
    s.t. s_0 = s_init                     (anchoring)
         s_{t+1} = f(s_t, u_t)            (kinematic model)
         delta_min <= delta_t <= delta_max
         a_min <= a_t <= a_max
         v_min <= v_t <= v_max

Two backends share the same cost and constraint functions:
- ipopt: CasADi nlpsol with exact derivatives by automatic differentiation
- slsqp: scipy SLSQP with finite differences (degraded mode)
"""

import time
from typing import Optional

import casadi as cs
import numpy as np
from scipy.optimize import minimize

from trackmpc.config import MPCConfig
from trackmpc.formulation import (
    UNBOUNDED,
    VariableLayout,
    constraint_bounds,
    constraint_residuals,
    initial_guess,
    objective,
    variable_bounds,
)
from trackmpc.logging import LOG_DEBUG, LOG_WARN, profile_scope
from trackmpc.types import STATE_DIM, ReferenceCurve, Solution, SolveStatus, VehicleState


class NonlinearSolverDriver:
    """
    Packs the decision vector, bounds and evaluators, runs the solver and
    validates what comes back.

    Each call to ``solve`` is independent unless warm starting is enabled in
    the solver configuration.
    """

    def __init__(self, config: MPCConfig):
        """
        Args:
            config: Controller configuration
        """
        self.config = config
        self.params = config.horizon_parameters()
        self.layout = VariableLayout(self.params.steps)
        self.lbx, self.ubx = variable_bounds(self.layout, config.limits)
        self.lbg, self.ubg = constraint_bounds(self.layout)

        self.backend = config.solver.backend
        self.geometric = config.horizon.error_model == "geometric"
        self.n_coefficients = config.reference_degree + 1
        self._nlp = None

        # Warmstart storage
        self._z_warm: Optional[np.ndarray] = None

        if self.backend == "slsqp":
            LOG_WARN("Solver running in degraded mode: SLSQP with finite-difference derivatives")

    @property
    def degraded(self) -> bool:
        return self.backend != "ipopt"

    def solve(self, state: VehicleState, curve: ReferenceCurve) -> Solution:
        """
        Solve one horizon.

        Args:
            state: Anchoring, latency-compensated state
            curve: Reference curve of this cycle

        Returns:
            Solution; ``status`` tells whether it may be applied
        """
        if not state.is_finite():
            return Solution.failed(SolveStatus.NUMERIC_INSTABILITY, f"non-finite state {state}")
        if not np.all(np.isfinite(curve.to_array())):
            return Solution.failed(SolveStatus.NUMERIC_INSTABILITY, "non-finite reference coefficients")

        anchor = state.to_array()
        coeffs = curve.to_array() if self.geometric else None
        if coeffs is not None and coeffs.size != self.n_coefficients:
            return Solution.failed(
                SolveStatus.DEGENERATE_INPUT,
                f"expected {self.n_coefficients} reference coefficients, got {coeffs.size}",
            )
        z0 = self._initial_guess(anchor)

        if self.backend == "ipopt":
            self.build()
        start = time.perf_counter()
        if self.backend == "ipopt":
            z, cost, converged, iterations, message = self._solve_ipopt(z0, anchor, coeffs)
        else:
            z, cost, converged, iterations, message = self._solve_slsqp(z0, anchor, coeffs)
        elapsed = time.perf_counter() - start

        solution = self._validate(z, anchor, cost, converged, message)
        solution.iterations = iterations
        solution.solve_time = elapsed
        solution.degraded = self.degraded

        if solution.success and self.config.solver.warm_start:
            self._z_warm = np.asarray(z, dtype=float)

        LOG_DEBUG(
            f"Solve {solution.status.value} in {elapsed * 1000:.1f} ms "
            f"({iterations} iterations, cost={solution.cost:.3f})"
        )
        return solution

    # =========================================================================
    # Backends
    # =========================================================================

    def build(self):
        """
        Build (once) the CasADi NLP.

        The anchoring state is a parameter, followed by the reference
        coefficients when the geometric error model is active.
        """
        if self._nlp is not None:
            return self._nlp

        cfg = self.config
        with profile_scope("NLP build"):
            z = cs.SX.sym("z", self.layout.n_vars)
            anchor = cs.SX.sym("anchor", STATE_DIM)
            p = anchor
            reference = None
            if self.geometric:
                coeffs = cs.SX.sym("coeffs", self.n_coefficients)
                p = cs.vertcat(anchor, coeffs)
                reference = [coeffs[i] for i in range(self.n_coefficients)]

            cost = objective(z, self.layout, cfg.weights, cfg.reference_speed)
            residuals = constraint_residuals(
                z, [anchor[i] for i in range(STATE_DIM)], self.layout, self.params, reference
            )

            nlp = {"x": z, "p": p, "f": cost, "g": cs.vertcat(*residuals)}
            opts = {
                "ipopt.print_level": cfg.solver.print_level,
                "print_time": 0,
                "ipopt.sb": "yes",
                "ipopt.max_iter": cfg.solver.max_iterations,
                "ipopt.tol": cfg.solver.tolerance,
                "ipopt.max_cpu_time": cfg.solver.max_cpu_time,
                "error_on_fail": False,
            }
            self._nlp = cs.nlpsol("trackmpc", "ipopt", nlp, opts)
        return self._nlp

    def _solve_ipopt(self, z0, anchor, coeffs=None):
        nlp = self.build()
        p = anchor if coeffs is None else np.r_[anchor, coeffs]
        try:
            result = nlp(
                x0=z0, p=p,
                lbx=self.lbx, ubx=self.ubx,
                lbg=self.lbg, ubg=self.ubg,
            )
        except RuntimeError as e:
            return None, float("inf"), False, 0, f"ipopt raised: {e}"

        stats = nlp.stats()
        z = np.asarray(result["x"], dtype=float).ravel()
        cost = float(result["f"])
        return (
            z,
            cost,
            bool(stats.get("success", False)),
            int(stats.get("iter_count", 0)),
            str(stats.get("return_status", "")),
        )

    def _solve_slsqp(self, z0, anchor, coeffs=None):
        cfg = self.config
        layout = self.layout

        def fun(z):
            return float(objective(z, layout, cfg.weights, cfg.reference_speed))

        def eq(z):
            return np.asarray(constraint_residuals(z, anchor, layout, self.params, coeffs), dtype=float)

        bounds = [
            (None if lo <= -UNBOUNDED else lo, None if hi >= UNBOUNDED else hi)
            for lo, hi in zip(self.lbx, self.ubx)
        ]

        result = minimize(
            fun,
            z0,
            method="SLSQP",
            bounds=bounds,
            constraints=[{"type": "eq", "fun": eq}],
            options={"maxiter": cfg.solver.max_iterations, "ftol": cfg.solver.tolerance},
        )
        return result.x, float(result.fun), bool(result.success), int(result.nit), str(result.message)

    # =========================================================================
    # Packing / unpacking
    # =========================================================================

    def _initial_guess(self, anchor: np.ndarray) -> np.ndarray:
        if self._z_warm is None:
            return initial_guess(self.layout, anchor)

        # Shift the previous solution one step forward
        layout = self.layout
        n = layout.steps
        z = self._z_warm.copy()
        for start in layout.state_starts():
            z[start:start + n - 1] = self._z_warm[start + 1:start + n]
        for start in (layout.delta_start, layout.a_start):
            z[start:start + n - 2] = self._z_warm[start + 1:start + n - 1]
        for start, value in zip(layout.state_starts(), anchor):
            z[start] = value
        return z

    def _validate(self, z, anchor, cost, converged, message) -> Solution:
        if z is None:
            return Solution.failed(SolveStatus.NON_CONVERGENT, message)

        z = np.asarray(z, dtype=float)
        if not np.all(np.isfinite(z)) or not np.isfinite(cost):
            return Solution.failed(SolveStatus.NUMERIC_INSTABILITY, "solver returned NaN/Inf")

        if not converged:
            return Solution.failed(SolveStatus.NON_CONVERGENT, message or "solver did not converge")

        tol = self.config.solver.bound_tolerance
        bounded = np.r_[
            np.arange(self.layout.v_start, self.layout.v_start + self.layout.steps),
            np.arange(self.layout.delta_start, self.layout.n_vars),
        ]
        low = z[bounded] < self.lbx[bounded] - tol
        high = z[bounded] > self.ubx[bounded] + tol
        if np.any(low) or np.any(high):
            worst = int(bounded[np.argmax(np.maximum(self.lbx[bounded] - z[bounded],
                                                     z[bounded] - self.ubx[bounded]))])
            return Solution.failed(
                SolveStatus.BOUND_VIOLATION, f"variable {worst} outside bounds ({z[worst]:.6f})"
            )

        states = self.layout.states(z)
        anchor_error = np.max(np.abs(states[0] - anchor) / np.maximum(1.0, np.abs(anchor)))
        if anchor_error > self.config.solver.anchor_tolerance:
            return Solution.failed(
                SolveStatus.NON_CONVERGENT, f"anchored state moved by {anchor_error:.2e}"
            )

        # Within tolerance; clip so emitted values never leave the bounds.
        actuators = np.clip(
            self.layout.actuators(z),
            [-self.config.limits.max_steering, self.config.limits.min_acceleration],
            [self.config.limits.max_steering, self.config.limits.max_acceleration],
        )
        return Solution(
            status=SolveStatus.SUCCESS,
            steering=float(actuators[0, 0]),
            acceleration=float(actuators[0, 1]),
            states=states,
            actuators=actuators,
            cost=float(cost),
            reason=message,
        )

    def reset_warmstart(self) -> None:
        """Reset warmstart data."""
        self._z_warm = None
