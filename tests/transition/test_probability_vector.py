"""
Tests for transition/probability_vector.py - order-statistic combination.
"""
from __future__ import annotations

import itertools
from decimal import Decimal

import numpy as np
import pytest

from core.exceptions import InvalidProblemError
from core.log_math import big_context
from transition.probability_vector import (
    ProbabilityVector,
    multiply_by_power,
    multiply_exact_by_power,
    multiply_in_place,
    power_of,
)


def brute_force_max(unit, trials):
    """Distribution of the maximum index over ``trials`` independent draws."""
    out = np.zeros(len(unit))
    for combo in itertools.product(range(len(unit)), repeat=trials):
        out[max(combo)] += np.prod([unit[i] for i in combo])
    return out


class TestProbabilityVector:
    """Bounded storage and dense export."""

    def test_set_bounds_clears_range(self):
        vec = ProbabilityVector(6)
        vec.set_bounds(1, 4)
        vec.values[:] = [0.1, 0.2, 0.3, 0.4]
        vec.set_bounds(2, 3)
        assert list(vec.values) == [0.0, 0.0]

    def test_value_outside_bounds_is_zero(self):
        vec = ProbabilityVector(5)
        vec.set_bounds(1, 2)
        vec.set_value(1, 0.25)
        vec.add_value(2, 0.5)
        vec.add_value(2, 0.25)
        assert vec.value(0) == 0.0
        assert vec.value(1) == 0.25
        assert vec.value(2) == 0.75
        assert vec.value(4) == 0.0
        assert vec.total() == pytest.approx(1.0)

    def test_to_dense(self):
        vec = ProbabilityVector(5)
        vec.set_bounds(2, 3)
        vec.values[:] = [0.4, 0.6]
        assert list(vec.to_dense(5)) == [0.0, 0.0, 0.4, 0.6, 0.0]
        assert list(vec.to_dense(3)) == [0.0, 0.0, 0.4]

    def test_clear(self):
        vec = ProbabilityVector(5)
        vec.set_bounds(1, 3)
        vec.values[:] = [0.2, 0.3, 0.5]
        vec.clear()
        assert vec.values.size == 0
        assert vec.total() == 0.0
        assert vec.value(2) == 0.0
        assert not vec.to_dense(5).any()

    @pytest.mark.parametrize("lower,upper", [(-1, 2), (3, 2), (0, 5)])
    def test_bad_bounds_rejected(self, lower, upper):
        with pytest.raises(InvalidProblemError):
            ProbabilityVector(5).set_bounds(lower, upper)

    def test_zero_capacity_rejected(self):
        with pytest.raises(InvalidProblemError):
            ProbabilityVector(0)


class TestMultiplyInPlace:
    """One combination step: the better of two independent trials."""

    def test_matches_enumeration(self):
        a = np.array([0.5, 0.3, 0.2])
        b = np.array([0.1, 0.6, 0.3])
        expected = np.zeros(3)
        for i, j in itertools.product(range(3), repeat=2):
            expected[max(i, j)] += a[i] * b[j]
        multiply_in_place(a, b, 1.0)
        np.testing.assert_allclose(a, expected, atol=1e-15)

    def test_aliased_arguments(self):
        a = np.array([0.25, 0.25, 0.5])
        multiply_in_place(a, a, 1.0)
        np.testing.assert_allclose(a, [0.0625, 0.1875, 0.75], atol=1e-15)

    def test_rescales_to_norm(self):
        a = np.array([0.2, 0.2])
        b = np.array([0.2, 0.2])
        multiply_in_place(a, b, 0.4)
        assert a.sum() == pytest.approx(0.4)

    def test_zero_vector_left_alone(self):
        a = np.zeros(3)
        multiply_in_place(a, np.array([0.5, 0.5, 0.0]), 1.0)
        assert not np.any(a)


class TestPowering:
    """Best of lambda trials by binary exponentiation."""

    @pytest.mark.parametrize("trials", [1, 2, 3, 4, 5, 7])
    def test_power_of_matches_enumeration(self, trials):
        unit = np.array([0.4, 0.35, 0.2, 0.05])
        np.testing.assert_allclose(power_of(unit, trials), brute_force_max(unit, trials), atol=1e-14)

    def test_power_zero_keeps_result(self):
        unit = np.array([0.5, 0.5])
        result = np.array([0.9, 0.1])
        multiply_by_power(0, unit, result, 1.0)
        assert list(result) == [0.9, 0.1]

    def test_negative_power_rejected(self):
        with pytest.raises(InvalidProblemError):
            multiply_by_power(-1, np.ones(2), np.ones(2), 1.0)
        with pytest.raises(InvalidProblemError):
            power_of(np.ones(2), 0)

    def test_large_power_concentrates_on_top(self):
        unit = np.array([0.9, 0.1])
        result = power_of(unit, 200)
        assert result[1] == pytest.approx(1 - 0.9 ** 200, rel=1e-12)

    def test_decimal_powering_matches_float(self):
        unit = [Decimal("0.4"), Decimal("0.35"), Decimal("0.2"), Decimal("0.05")]
        result = list(unit)
        multiply_exact_by_power(5, list(unit), result, big_context(40))
        expected = brute_force_max([float(u) for u in unit], 6)
        np.testing.assert_allclose([float(r) for r in result], expected, atol=1e-14)
