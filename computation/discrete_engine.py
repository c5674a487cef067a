"""
Discrete-Strength DP Engine
===========================

Backward induction over the Hamming distance for a (1+lambda) process in
which every offspring flips exactly ``l`` positions. Every outcome that makes
progress lands at a strictly smaller distance, so one forward sweep
``d = 1..n`` finalizes each row from rows already finished:

    T(d, l) = (1 + sum_{d' < d} P(d -> d' | l) T(d')) / P(progress | l)
    T(d)    = min_l T(d, l)

Alongside the optimal policy the engine evaluates the greedy policy that
maximizes the one-step drift.

Usage:
    result = DiscreteStrengthEngine(500, 1).build()
    result.expected_optimal_time        # ~2974.0
"""
from __future__ import annotations

import logging
import math
import time
from typing import Optional, Union

import numpy as np

from config.settings_loader import get_update_probability_threshold
from core.exceptions import InvalidProblemError
from computation.expectation_tracker import ConditionalExpectationTracker
from computation.listeners import ComputationListener
from computation.results import DiscreteStrengthResult
from transition.finders import (
    Precision,
    TransitionProbabilityFinder,
    make_finder,
    resulting_distance,
)
from transition.probability_vector import ProbabilityVector

logger = logging.getLogger(__name__)


class DiscreteStrengthEngine:
    """
    Builds a DiscreteStrengthResult for one (n, lambda) instance.

    The engine holds configuration only; all tables live inside ``build`` and
    are handed over, read-only, in the returned result.
    """

    def __init__(
        self,
        n: int,
        lam: int,
        precision: Union[Precision, str] = Precision.AUTO,
        finder: Optional[TransitionProbabilityFinder] = None,
        update_probability_threshold: Optional[float] = None,
        listener: Optional[ComputationListener] = None,
    ):
        if n <= 0:
            raise InvalidProblemError("problem size must be positive", {"n": n})
        if lam <= 0:
            raise InvalidProblemError("offspring count must be positive", {"lambda": lam})
        self.n = n
        self.lam = lam
        self.finder = finder if finder is not None else make_finder(precision, n, lam)
        self.update_probability_threshold = (
            get_update_probability_threshold()
            if update_probability_threshold is None
            else update_probability_threshold
        )
        self.listener = listener or ComputationListener()

    def build(self) -> DiscreteStrengthResult:
        n, lam = self.n, self.lam
        started = time.perf_counter()
        logger.info(f"Computing discrete tables for n={n}, lambda={lam} ({self.finder.precision.value} precision)")

        size = n + 1
        optimal_time = np.zeros(size)
        drift_optimal_time = np.zeros(size)
        optimal_by_strength = np.zeros((size, size))
        drift_by_strength = np.zeros((size, size))
        drift_maximizing_by_strength = np.zeros((size, size))
        optimal_by_strength[1:, 0] = math.inf
        drift_maximizing_by_strength[1:, 0] = math.inf

        optimal_tracker = ConditionalExpectationTracker(optimal_time)
        drift_tracker = ConditionalExpectationTracker(drift_optimal_time)
        target = ProbabilityVector(size)
        scratch = self.finder.new_scratch(n)

        for d in range(1, n + 1):
            for change in range(1, n + 1):
                self.finder.find(n, lam, d, change, target, scratch)
                corrected = np.arange(target.lower, target.upper + 1)
                new_distances = resulting_distance(d, change, corrected)
                improving = new_distances < d
                probabilities = target.values[improving]
                new_distances = new_distances[improving]

                optimal_tracker.reset()
                optimal_tracker.receive_many(new_distances, probabilities)
                drift_tracker.reset()
                drift_tracker.receive_many(new_distances, probabilities)

                update_probability = optimal_tracker.update_probability
                if update_probability < self.update_probability_threshold:
                    optimal_by_strength[d, change] = math.inf
                    drift_maximizing_by_strength[d, change] = math.inf
                    drift_by_strength[d, change] = 0.0
                else:
                    optimal_by_strength[d, change] = (
                        (1 + optimal_tracker.conditional_expectation) / update_probability
                    )
                    drift_maximizing_by_strength[d, change] = (
                        (1 + drift_tracker.conditional_expectation) / update_probability
                    )
                    drift_by_strength[d, change] = float(((d - new_distances) * probabilities).sum())

            optimal_time[d] = optimal_by_strength[d, 1:].min()
            best_drift_strength = int(np.argmax(drift_by_strength[d, 1:])) + 1
            drift_optimal_time[d] = drift_maximizing_by_strength[d, best_drift_strength]
            self.listener.on_distance(d, optimal_time[d], int(np.argmin(optimal_by_strength[d, 1:])) + 1)

            if d % 100 == 0:
                logger.debug(f"n={n}, lambda={lam}: distance {d}/{n} done")

        result = DiscreteStrengthResult(
            n, lam,
            optimal_time=optimal_time,
            drift_optimal_time=drift_optimal_time,
            optimal_by_strength=optimal_by_strength,
            drift_by_strength=drift_by_strength,
            drift_maximizing_by_strength=drift_maximizing_by_strength,
            precision=self.finder.precision.value,
        )
        elapsed = time.perf_counter() - started
        logger.info(
            f"Discrete tables for n={n}, lambda={lam} done in {elapsed:.1f}s: "
            f"optimal={result.expected_optimal_time:.4f}, "
            f"drift-optimal={result.expected_drift_optimal_time:.4f}"
        )
        self.listener.on_complete(result)
        return result


def compute_discrete(
    n: int,
    lam: int,
    precision: Union[Precision, str] = Precision.AUTO,
    listener: Optional[ComputationListener] = None,
) -> DiscreteStrengthResult:
    """Convenience wrapper: build the discrete tables for (n, lam)."""
    return DiscreteStrengthEngine(n, lam, precision=precision, listener=listener).build()
