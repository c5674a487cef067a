"""
Continuous-Rate DP
==================

Same backward induction as the discrete engine, but the parameter at each
distance is a real mutation rate and the best rate is found by CMA-ES
instead of enumeration.

For a distance ``d`` the per-offspring improvement matrix

    M[f, j] = P(one offspring flipping f positions lands at distance d - j)

is built once from the standard finder (lambda = 1). A rate ``p`` then gives
the per-offspring law ``q = P_p(f) @ M`` with ``q[0]`` the no-progress mass;
the best of lambda offspring is taken by order-statistic powering and the
expectation tracker yields ``(1 + E) / U``.
"""
from __future__ import annotations

import logging
import math
import time
from typing import Optional, Tuple

import numpy as np

from config.settings_loader import get_cma_config
from core.exceptions import InvalidProblemError
from computation.expectation_tracker import ConditionalExpectationTracker
from computation.listeners import ComputationListener
from computation.results import ContinuousRateResult
from distribution.mutation import ParameterizedDistribution
from optimization.cma_es import CMAESDistributionOptimizer
from transition.finders import StandardPrecisionFinder, resulting_distance
from transition.probability_vector import ProbabilityVector, multiply_by_power

logger = logging.getLogger(__name__)


class RateModel:
    """Expected remaining time as a function of the mutation rate."""

    def __init__(self, n: int, lam: int, distribution: ParameterizedDistribution):
        self.n = n
        self.lam = lam
        self.distribution = distribution
        self._finder = StandardPrecisionFinder()
        self._scratch = self._finder.new_scratch(n)
        self._target = ProbabilityVector(n + 1)
        self._flips = ProbabilityVector(n + 1)
        self._cached: Optional[Tuple[int, np.ndarray]] = None

    def improvement_matrix(self, d: int) -> np.ndarray:
        """
        ``(n + 1) x (d + 1)`` matrix of single-offspring improvement probabilities.

        Only the matrix of the most recent distance is kept, so a full sweep
        holds O(n^2) floats at a time.
        """
        if self._cached is not None and self._cached[0] == d:
            return self._cached[1]
        n = self.n
        matrix = np.zeros((n + 1, d + 1))
        for flips in range(1, n + 1):
            self._finder.find(n, 1, d, flips, self._target, self._scratch)
            corrected = np.arange(self._target.lower, self._target.upper + 1)
            gains = d - resulting_distance(d, flips, corrected)
            improving = gains > 0
            matrix[flips, gains[improving]] = self._target.values[improving]
        matrix.flags.writeable = False
        self._cached = (d, matrix)
        return matrix

    def best_of_lambda(self, d: int, rate: float) -> np.ndarray:
        """Law of the best offspring: index ``j`` means distance ``d - j``, 0 means no progress."""
        self.distribution.initialize(self.n, rate, self._flips)
        flips = self._flips.to_dense(self.n + 1)
        law = flips @ self.improvement_matrix(d)
        law[0] = max(0.0, 1.0 - float(law[1:].sum()))
        if self.lam > 1:
            multiply_by_power(self.lam - 1, law.copy(), law, 1.0)
        return law

    def expectation(self, d: int, rate: float, expectations: np.ndarray) -> float:
        """
        Expected remaining time at ``d`` when using ``rate`` now and the
        already-final ``expectations`` (indexed by distance) afterwards.
        """
        if not 0.0 <= rate <= 1.0:
            raise InvalidProblemError("mutation rate must lie in [0, 1]", {"rate": rate})
        law = self.best_of_lambda(d, rate)
        tracker = ConditionalExpectationTracker(expectations)
        tracker.receive_many(d - np.arange(1, d + 1), law[1:])
        if tracker.update_probability <= 0:
            return math.inf
        return (1 + tracker.conditional_expectation) / tracker.update_probability


class ContinuousRateEngine:
    """
    Builds a ContinuousRateResult by one optimizer run per distance.

    Optimizer settings default to the ``cma`` section of the settings file.
    """

    def __init__(
        self,
        n: int,
        lam: int,
        distribution: ParameterizedDistribution,
        max_iterations: Optional[int] = None,
        population_size: Optional[int] = None,
        active: Optional[bool] = None,
        diagonal_only_iterations: Optional[int] = None,
        resampling_until_feasible: Optional[int] = None,
        seed: Optional[int] = None,
        listener: Optional[ComputationListener] = None,
    ):
        if n <= 0:
            raise InvalidProblemError("problem size must be positive", {"n": n})
        if lam <= 0:
            raise InvalidProblemError("offspring count must be positive", {"lambda": lam})
        defaults = get_cma_config()
        self.n = n
        self.lam = lam
        self.distribution = distribution
        self.max_iterations = defaults["max_iterations"] if max_iterations is None else max_iterations
        self.population_size = defaults["population_size"] if population_size is None else population_size
        self.active = defaults["active"] if active is None else active
        self.diagonal_only_iterations = (
            defaults["diagonal_only_iterations"] if diagonal_only_iterations is None else diagonal_only_iterations
        )
        self.resampling_until_feasible = (
            defaults["resampling_until_feasible"] if resampling_until_feasible is None else resampling_until_feasible
        )
        self.seed = defaults["seed"] if seed is None else seed
        if self.population_size <= 0 or self.population_size // 2 <= 0:
            raise InvalidProblemError(
                "optimizer population size must leave at least one parent",
                {"population_size": self.population_size},
            )
        self.listener = listener or ComputationListener()

    def build(self) -> ContinuousRateResult:
        n, lam = self.n, self.lam
        started = time.perf_counter()
        logger.info(f"Computing continuous rates for n={n}, lambda={lam}, distribution={self.distribution.name}")

        model = RateModel(n, lam, self.distribution)
        rng = np.random.default_rng(self.seed)
        optimal_rate = np.zeros(n + 1)
        optimal_expectation = np.zeros(n + 1)
        iterations = np.zeros(n + 1, dtype=np.int64)

        for d in range(1, n + 1):
            def objective(candidates: np.ndarray, d: int = d) -> np.ndarray:
                return np.array([
                    model.expectation(d, float(rate), optimal_expectation)
                    for rate in candidates[0]
                ])

            optimizer = CMAESDistributionOptimizer(
                objective,
                dimension=1,
                population_size=self.population_size,
                max_iterations=self.max_iterations,
                is_active_cma=self.active,
                n_diagonal_only_iterations=self.diagonal_only_iterations,
                n_resampling_until_feasible=self.resampling_until_feasible,
                random_state=rng,
            )
            outcome = optimizer.optimize()
            optimal_rate[d] = float(outcome.point[0])
            # penalty-free value at the clamped incumbent
            optimal_expectation[d] = model.expectation(d, optimal_rate[d], optimal_expectation)
            iterations[d] = outcome.iterations
            if not math.isfinite(optimal_expectation[d]):
                logger.warning(f"No progress-making rate found at distance {d} (n={n}, lambda={lam})")
            self.listener.on_distance(d, optimal_expectation[d], optimal_rate[d])
            logger.debug(
                f"d={d}: rate={optimal_rate[d]:.6g}, expectation={optimal_expectation[d]:.10g}, "
                f"{outcome.iterations} iterations ({outcome.stop_reason.value})"
            )

        result = ContinuousRateResult(
            n, lam,
            optimal_rate=optimal_rate,
            optimal_expectation=optimal_expectation,
            model=model,
            iterations=iterations,
        )
        elapsed = time.perf_counter() - started
        logger.info(
            f"Continuous rates for n={n}, lambda={lam} done in {elapsed:.1f}s: "
            f"expected time={result.expected_running_time:.4f}"
        )
        self.listener.on_complete(result)
        return result
