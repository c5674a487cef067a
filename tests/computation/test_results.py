"""
Tests for computation/results.py - the query surface over computed tables.
"""
from __future__ import annotations

import math
from unittest.mock import patch

import numpy as np
import pytest

from computation import DiscreteStrengthEngine, DiscreteStrengthResult
from core.exceptions import InvalidProblemError
from transition import ArbitraryPrecisionFinder, make_finder


class TestDiscreteQueries:

    def test_optimal_parameter_matches_strength(self, rls_30):
        for d in range(31):
            assert rls_30.optimal_parameter(d) == rls_30.optimal_strength(d)
        assert rls_30.optimal_strength(0) == 0
        assert rls_30.drift_maximizing_strength(0) == 0

    def test_parameter_expectation_is_table_cell(self, rls_30):
        assert rls_30.optimal_expectation_for_parameter(20, 3) == rls_30.optimal_time(20, 3)
        assert rls_30.optimal_expectation(20) == rls_30.optimal_time(20)

    def test_optimal_is_row_minimum(self, plus_8_30):
        for d in range(1, 31):
            strength = plus_8_30.optimal_strength(d)
            assert plus_8_30.optimal_time(d) == plus_8_30.optimal_time(d, strength)
            assert plus_8_30.optimal_time(d) == min(plus_8_30.optimal_time(d, l) for l in range(1, 31))

    def test_drift_policy_reads_drift_argmax(self, plus_8_30):
        for d in range(1, 31):
            strength = plus_8_30.drift_maximizing_strength(d)
            assert plus_8_30.drift(d, strength) == max(plus_8_30.drift(d, l) for l in range(1, 31))
            assert plus_8_30.drift_optimal_time(d) == plus_8_30.drift_optimal_time(d, strength)

    def test_bit_flip_expectation_matches_table(self, plus_8_30):
        for d in (1, 5, 17, 30):
            for flips in (1, 2, 7, 30):
                cell = plus_8_30.optimal_time(d, flips)
                fresh = plus_8_30.optimal_expectation_for_bit_flips(d, flips)
                if math.isinf(cell):
                    assert math.isinf(fresh)
                else:
                    assert fresh == pytest.approx(cell, rel=1e-12)

    def test_bit_flip_expectation_below_threshold_is_stuck(self, rls_30):
        # one flip from distance 30 corrects a bit for sure
        assert math.isfinite(rls_30.optimal_expectation_for_bit_flips(30, 1))
        with patch("computation.results.get_update_probability_threshold", return_value=1.1):
            assert math.isinf(rls_30.optimal_expectation_for_bit_flips(30, 1))

    def test_bit_flip_expectation_uses_result_precision(self):
        result = DiscreteStrengthEngine(10, 3, finder=ArbitraryPrecisionFinder(digits=40)).build()
        assert result.precision == "arbitrary"
        for d in range(1, 11):
            for flips in range(1, 11):
                cell = result.optimal_time(d, flips)
                fresh = result.optimal_expectation_for_bit_flips(d, flips)
                if math.isinf(cell):
                    assert math.isinf(fresh)
                else:
                    assert fresh == pytest.approx(cell, rel=1e-12)
        with patch("computation.results.make_finder", wraps=make_finder) as spy:
            result.optimal_expectation_for_bit_flips(4, 3)
        spy.assert_called_once_with("arbitrary", 10, 3)

    def test_bit_flip_edges(self, rls_30):
        assert rls_30.optimal_expectation_for_bit_flips(0, 4) == 0.0
        assert rls_30.optimal_expectation_for_bit_flips(3, 0) == math.inf
        # two flips at distance one can never improve
        assert rls_30.optimal_expectation_for_bit_flips(1, 2) == math.inf

    @pytest.mark.parametrize("call", [
        lambda r: r.optimal_time(31),
        lambda r: r.optimal_time(-1),
        lambda r: r.optimal_time(3, 31),
        lambda r: r.drift(3, -1),
        lambda r: r.optimal_expectation_for_bit_flips(3, 31),
    ])
    def test_out_of_range(self, rls_30, call):
        with pytest.raises(InvalidProblemError):
            call(rls_30)

    def test_summary(self, rls_30):
        info = rls_30.summary()
        assert info["n"] == 30
        assert info["lambda"] == 1
        assert info["family"] == "discrete"
        assert info["precision"] == "standard"
        assert info["expected_running_time"] == rls_30.expected_optimal_time
        assert info["expected_drift_optimal_time"] == rls_30.expected_drift_optimal_time


class TestExpectedRunningTime:

    def test_weighted_by_binomial(self, rls_30):
        n = 30
        expected = sum(
            math.comb(n, d) / 2 ** n * rls_30.optimal_time(d) for d in range(n + 1)
        )
        assert rls_30.expected_running_time == pytest.approx(expected, rel=1e-12)


class TestRebuild:

    def test_from_strength_tables_reproduces_reductions(self, plus_8_30):
        rebuilt = DiscreteStrengthResult.from_strength_tables(
            30, 8,
            optimal_by_strength=plus_8_30.optimal_by_strength,
            drift_by_strength=plus_8_30.drift_by_strength,
            drift_maximizing_by_strength=plus_8_30.drift_maximizing_by_strength,
        )
        np.testing.assert_array_equal(rebuilt.optimal_expectations, plus_8_30.optimal_expectations)
        np.testing.assert_array_equal(rebuilt.drift_optimal_time_table, plus_8_30.drift_optimal_time_table)

    def test_wrong_shape_rejected(self):
        with pytest.raises(InvalidProblemError):
            DiscreteStrengthResult.from_strength_tables(
                3, 1,
                optimal_by_strength=np.zeros((4, 4)),
                drift_by_strength=np.zeros((4, 3)),
                drift_maximizing_by_strength=np.zeros((4, 4)),
            )
        with pytest.raises(InvalidProblemError):
            DiscreteStrengthResult(
                3, 1,
                optimal_time=np.zeros(3),
                drift_optimal_time=np.zeros(4),
                optimal_by_strength=np.zeros((4, 4)),
                drift_by_strength=np.zeros((4, 4)),
                drift_maximizing_by_strength=np.zeros((4, 4)),
            )
