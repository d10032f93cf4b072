"""
Reference curve evaluation.

Least-squares polynomial fit of waypoints in the vehicle frame, plus
evaluation of the polynomial and its first derivative. Coefficients are in
ascending power order.
"""

from typing import Sequence, Tuple

import numpy as np
from numpy.polynomial import polynomial as P

from trackmpc.exceptions import DegenerateReferenceError
from trackmpc.logging import LOG_DEBUG, timed
from trackmpc.types import ReferenceCurve

# Distinct-x resolution below which two waypoints are treated as the same.
X_RESOLUTION = 1e-6


def polyeval(coeffs: Sequence, x):
    """Evaluate the polynomial at x (Horner). Works for floats, arrays and CasADi."""
    result = 0.0 * x
    for c in reversed(list(coeffs)):
        result = result * x + c
    return result


def polyderiv(coeffs: Sequence, x):
    """Evaluate the first derivative of the polynomial at x."""
    coeffs = list(coeffs)
    if len(coeffs) < 2:
        return 0.0 * x
    derived = [i * coeffs[i] for i in range(1, len(coeffs))]
    return polyeval(derived, x)


@timed
def fit_reference(xs: Sequence[float], ys: Sequence[float], degree: int = 3) -> ReferenceCurve:
    """
    Fit a polynomial of the given degree to waypoints.

    When there are fewer distinct x values than ``degree + 1`` the fit degree
    is lowered and the higher coefficients are zero.

    Args:
        xs: Waypoint x coordinates (vehicle frame)
        ys: Waypoint y coordinates (vehicle frame)
        degree: Polynomial degree

    Returns:
        ReferenceCurve with ``degree + 1`` coefficients

    Raises:
        DegenerateReferenceError: if the waypoints cannot support a fit
    """
    xs = np.asarray(xs, dtype=float).ravel()
    ys = np.asarray(ys, dtype=float).ravel()

    if xs.size != ys.size:
        raise DegenerateReferenceError(
            f"x/y waypoint counts differ ({xs.size} != {ys.size})", num_points=int(xs.size)
        )
    if xs.size < 2:
        raise DegenerateReferenceError("fewer than 2 waypoints", num_points=int(xs.size))
    if not (np.all(np.isfinite(xs)) and np.all(np.isfinite(ys))):
        raise DegenerateReferenceError("non-finite waypoint", num_points=int(xs.size))

    distinct = _count_distinct(xs)
    if distinct < 2:
        raise DegenerateReferenceError(
            "waypoints share a single x coordinate", num_points=int(xs.size)
        )

    fit_degree = min(degree, distinct - 1)
    if fit_degree < degree:
        LOG_DEBUG(f"Lowering reference fit degree to {fit_degree} ({distinct} distinct x values)")

    coeffs, (_, rank, _, _) = P.polyfit(xs, ys, fit_degree, full=True)
    if rank < fit_degree + 1:
        raise DegenerateReferenceError(
            f"rank-deficient fit (rank {rank} < {fit_degree + 1})", num_points=int(xs.size)
        )
    if not np.all(np.isfinite(coeffs)):
        raise DegenerateReferenceError("fit produced non-finite coefficients", num_points=int(xs.size))

    padded = np.zeros(degree + 1)
    padded[:fit_degree + 1] = coeffs
    return ReferenceCurve.from_array(padded)


def sample_reference(
    curve: ReferenceCurve,
    extent: float = 80.0,
    spacing: float = 2.0,
) -> Tuple[list, list]:
    """Sample the curve at x = 0, spacing, ... below extent (display only)."""
    xs = np.arange(0.0, extent, spacing)
    ys = polyeval(curve.coefficients, xs)
    return xs.tolist(), np.asarray(ys, dtype=float).tolist()


def _count_distinct(xs: np.ndarray) -> int:
    ordered = np.sort(xs)
    return int(1 + np.count_nonzero(np.diff(ordered) > X_RESOLUTION))
