"""
Tests for optimization/cma_es.py - CMA-ES with batched evaluation.
"""
from __future__ import annotations

import numpy as np
import pytest

from core.exceptions import InvalidProblemError
from optimization import CMAESDistributionOptimizer, FitnessHistory, StopReason


def shifted_sphere(center):
    center = np.asarray(center, dtype=np.float64)[:, np.newaxis]

    def objective(x):
        return ((x - center) ** 2).sum(axis=0)
    return objective


class TestConvergence:
    """Unimodal convex objectives."""

    def test_sphere_two_dimensions(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.3, 0.7]), dimension=2, population_size=8,
            max_iterations=400, initial_guess=np.array([0.9, 0.1]), initial_sigma=0.3,
            random_state=1,
        )
        result = opt.optimize()
        np.testing.assert_allclose(result.point, [0.3, 0.7], atol=1e-4)
        assert result.value < 1e-8
        assert result.stop_reason is not StopReason.DIVERGED

    def test_sphere_one_dimension_default_start(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.25]), dimension=1, population_size=8, max_iterations=300, random_state=5,
        )
        result = opt.optimize()
        assert result.point[0] == pytest.approx(0.25, abs=1e-4)

    def test_ellipsoid_with_diagonal_warm_up(self):
        scales = np.array([1.0, 10.0, 100.0])[:, np.newaxis]

        def ellipsoid(x):
            return (scales * (x - 0.5) ** 2).sum(axis=0)

        opt = CMAESDistributionOptimizer(
            ellipsoid, dimension=3, population_size=10, max_iterations=600,
            n_diagonal_only_iterations=20, initial_guess=np.full(3, 0.1), initial_sigma=0.2,
            random_state=11,
        )
        result = opt.optimize()
        np.testing.assert_allclose(result.point, [0.5, 0.5, 0.5], atol=1e-3)

    def test_passive_variant(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.6, 0.4]), dimension=2, population_size=6, max_iterations=400,
            is_active_cma=False, initial_guess=np.array([0.2, 0.2]), initial_sigma=0.3, random_state=2,
        )
        result = opt.optimize()
        np.testing.assert_allclose(result.point, [0.6, 0.4], atol=1e-3)


class TestIncumbent:

    def test_value_history_non_increasing(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.3, 0.7]), dimension=2, population_size=8, max_iterations=100,
            random_state=4,
        )
        result = opt.optimize()
        history = np.array(result.value_history)
        assert len(history) == result.iterations
        assert np.all(np.diff(history) <= 0)
        assert result.value == history[-1]

    def test_budget_exhausted(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.5]), dimension=1, population_size=4, max_iterations=3, random_state=0,
        )
        result = opt.optimize()
        assert result.iterations == 3
        assert result.stop_reason is StopReason.MAX_ITERATIONS

    def test_optimize_restarts_from_scratch(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.5]), dimension=1, population_size=4, max_iterations=20,
            initial_guess=np.array([0.1]), random_state=0,
        )
        first = opt.optimize()
        second = opt.optimize()
        assert len(second.value_history) == second.iterations
        assert second.value_history[0] <= (0.1 - 0.5) ** 2
        assert len(first.value_history) == first.iterations

    def test_to_dict(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.5]), dimension=1, population_size=4, max_iterations=5, random_state=0,
        )
        data = opt.optimize().to_dict()
        assert set(data) == {"point", "value", "iterations", "stop_reason"}
        assert isinstance(data["point"], list)


class TestBoxConstraints:
    """Infeasible candidates are clamped and penalized, never rejected."""

    def test_minimum_on_boundary(self):
        def linear(x):
            return x.sum(axis=0)

        seen = []

        def recording(x):
            seen.append(x.copy())
            return linear(x)

        opt = CMAESDistributionOptimizer(
            recording, dimension=2, population_size=8, max_iterations=200, random_state=3,
        )
        result = opt.optimize()
        np.testing.assert_allclose(result.point, [0.0, 0.0], atol=1e-3)
        batch = np.concatenate(seen, axis=1)
        assert batch.min() >= 0.0 and batch.max() <= 1.0

    def test_custom_box(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([5.0]), dimension=1, population_size=8, max_iterations=200,
            lower=np.array([-2.0]), upper=np.array([2.0]), random_state=9,
        )
        result = opt.optimize()
        assert result.point[0] == pytest.approx(2.0, abs=1e-3)

    def test_infinite_values_tolerated(self):
        def half_infinite(x):
            values = (x[0] - 0.7) ** 2
            return np.where(x[0] < 0.2, np.inf, values)

        opt = CMAESDistributionOptimizer(
            half_infinite, dimension=1, population_size=8, max_iterations=300, random_state=6,
        )
        result = opt.optimize()
        assert result.point[0] == pytest.approx(0.7, abs=1e-3)

    def test_resampling_until_feasible(self):
        seen = []

        def recording(x):
            seen.append(x.copy())
            return ((x - 0.5) ** 2).sum(axis=0)

        opt = CMAESDistributionOptimizer(
            recording, dimension=1, population_size=8, max_iterations=50,
            n_resampling_until_feasible=20, initial_guess=np.array([0.5]), initial_sigma=0.1,
            random_state=8,
        )
        result = opt.optimize()
        assert result.point[0] == pytest.approx(0.5, abs=1e-2)
        assert all(batch.min() >= 0.0 and batch.max() <= 1.0 for batch in seen)
        assert opt.is_feasible(np.array([0.4]))
        assert not opt.is_feasible(np.array([1.2]))

    def test_repair_and_penalty(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.5, 0.5]), dimension=2, population_size=4, max_iterations=1,
        )
        x = np.array([-0.25, 1.5])
        repaired = opt.repair(x)
        np.testing.assert_array_equal(repaired, [0.0, 1.0])
        assert opt.penalty(x, repaired) == pytest.approx(0.75)
        assert list(x) == [-0.25, 1.5]


class TestValidation:

    @pytest.mark.parametrize("kwargs", [
        {"dimension": 0},
        {"population_size": 1},
        {"population_size": 0},
        {"max_iterations": -1},
        {"initial_sigma": 0.0},
        {"lower": np.array([1.0]), "upper": np.array([0.0])},
    ])
    def test_rejects_bad_configuration(self, kwargs):
        params = {
            "function": shifted_sphere([0.5]),
            "dimension": 1,
            "population_size": 4,
            "max_iterations": 10,
        }
        params.update(kwargs)
        with pytest.raises(InvalidProblemError):
            CMAESDistributionOptimizer(**params)

    def test_wrong_initial_guess_shape(self):
        opt = CMAESDistributionOptimizer(
            shifted_sphere([0.5]), dimension=1, population_size=4, max_iterations=5,
            initial_guess=np.array([0.1, 0.2]),
        )
        with pytest.raises(InvalidProblemError):
            opt.optimize()

    def test_wrong_objective_output(self):
        opt = CMAESDistributionOptimizer(
            lambda x: np.zeros(1), dimension=1, population_size=4, max_iterations=5,
        )
        with pytest.raises(InvalidProblemError):
            opt.optimize()


class TestFitnessHistory:

    def test_bounded_window(self):
        history = FitnessHistory(3)
        assert history.minimum() == np.inf
        assert history.maximum() == -np.inf
        for value in (5.0, 1.0, 3.0, 4.0):
            history.push(value)
        assert len(history) == 3
        assert history.minimum() == 1.0
        assert history.maximum() == 4.0
        history.push(6.0)
        assert history.minimum() == 3.0
