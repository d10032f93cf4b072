"""
Tests for reference curve fitting and evaluation.
"""

from __future__ import annotations

import numpy as np
import pytest

from trackmpc.exceptions import DegenerateReferenceError
from trackmpc.reference import fit_reference, polyderiv, polyeval, sample_reference
from trackmpc.types import ReferenceCurve


class TestPolynomial:
    """Tests for polynomial evaluation."""

    def test_polyeval(self):
        # 1 + 2x + 3x^2
        assert polyeval([1.0, 2.0, 3.0], 2.0) == pytest.approx(17.0)

    def test_polyeval_array(self):
        np.testing.assert_allclose(polyeval([0.0, 1.0], np.array([1.0, 2.0])), [1.0, 2.0])

    def test_polyderiv(self):
        # d/dx (1 + 2x + 3x^2) = 2 + 6x
        assert polyderiv([1.0, 2.0, 3.0], 2.0) == pytest.approx(14.0)

    def test_polyderiv_constant(self):
        assert polyderiv([5.0], 3.0) == 0.0


class TestFitReference:
    """Tests for fit_reference."""

    def test_recovers_cubic(self):
        xs = np.linspace(0.0, 50.0, 8)
        true = [1.0, -0.2, 0.01, -0.0001]
        ys = polyeval(true, xs)
        curve = fit_reference(xs, ys, degree=3)
        np.testing.assert_allclose(curve.coefficients, true, atol=1e-6)
        assert curve.degree == 3

    def test_lowers_degree_for_few_points(self):
        """Two points give a line padded with zero higher terms."""
        curve = fit_reference([0.0, 10.0], [1.0, 3.0], degree=3)
        assert len(curve.coefficients) == 4
        assert curve.coefficients[0] == pytest.approx(1.0)
        assert curve.coefficients[1] == pytest.approx(0.2)
        assert curve.coefficients[2] == 0.0
        assert curve.coefficients[3] == 0.0

    def test_single_point(self):
        with pytest.raises(DegenerateReferenceError):
            fit_reference([1.0], [2.0])

    def test_empty(self):
        with pytest.raises(DegenerateReferenceError):
            fit_reference([], [])

    def test_mismatched_lengths(self):
        with pytest.raises(DegenerateReferenceError):
            fit_reference([0.0, 1.0, 2.0], [0.0, 1.0])

    def test_shared_x(self):
        """Waypoints straight ahead of a vertical path cannot be a function of x."""
        with pytest.raises(DegenerateReferenceError) as excinfo:
            fit_reference([5.0, 5.0, 5.0, 5.0], [0.0, 1.0, 2.0, 3.0])
        assert excinfo.value.details["num_points"] == 4

    def test_non_finite(self):
        with pytest.raises(DegenerateReferenceError):
            fit_reference([0.0, 1.0, np.nan], [0.0, 1.0, 2.0])


class TestSampleReference:
    """Tests for display sampling."""

    def test_default_sampling(self):
        xs, ys = sample_reference(ReferenceCurve((1.0, 0.0, 0.0, 0.0)))
        assert xs[0] == 0.0
        assert xs[1] == 2.0
        assert len(xs) == 40
        assert all(y == pytest.approx(1.0) for y in ys)
