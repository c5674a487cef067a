"""
Generalized DP Results
======================

Uniform query surface over the two parameter families:

- DiscreteStrengthResult: the parameter is an integer mutation strength
  (number of flipped positions), backed by the full per-strength tables.
- ContinuousRateResult: the parameter is a real mutation rate in [0, 1],
  one optimizer incumbent per distance.

``DPResult`` is the union of the two; there is no third family.
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from functools import cached_property
from typing import TYPE_CHECKING, Any, Dict, Union

import numpy as np

from config.settings_loader import get_update_probability_threshold
from core.exceptions import InvalidProblemError
from core.log_math import LogChoose
from computation.expectation_tracker import ConditionalExpectationTracker
from transition.finders import make_finder, resulting_distance
from transition.probability_vector import ProbabilityVector

if TYPE_CHECKING:
    from computation.continuous import RateModel


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=np.float64)
    array.flags.writeable = False
    return array


class ComputationResult(ABC):
    """Queries shared by both parameter families."""

    precision = "standard"

    def __init__(self, problem_size: int, population_size: int):
        self.problem_size = problem_size
        self.population_size = population_size

    @property
    @abstractmethod
    def optimal_expectations(self) -> np.ndarray:
        """Read-only array of optimal expectations indexed by distance 0..n."""

    @abstractmethod
    def optimal_parameter(self, distance: int):
        """Parameter value achieving :meth:`optimal_expectation`."""

    @abstractmethod
    def optimal_expectation_for_parameter(self, distance: int, parameter) -> float:
        """Expected remaining time if ``parameter`` is used once at ``distance``."""

    def optimal_expectation(self, distance: int) -> float:
        self._check_distance(distance)
        return float(self.optimal_expectations[distance])

    @cached_property
    def expected_running_time(self) -> float:
        """Expected optimization time from a uniformly random initial string."""
        n = self.problem_size
        log_choose = LogChoose(n)
        expectations = self.optimal_expectations
        result = 0.0
        for d in range(1, n + 1):
            result += log_choose.probability(d) * float(expectations[d])
        return result

    def optimal_expectation_for_bit_flips(self, distance: int, flips: int) -> float:
        """
        Expected remaining time if every offspring of the next generation flips
        exactly ``flips`` positions and the optimal policy is followed after.

        Uses the finder precision and the stuck threshold of the engine, so for
        discrete results this reproduces ``optimal_by_strength[distance, flips]``.
        """
        n = self.problem_size
        self._check_distance(distance)
        if not 0 <= flips <= n:
            raise InvalidProblemError("flips must lie in [0, n]", {"n": n, "flips": flips})
        if distance == 0:
            return 0.0
        if flips == 0:
            return math.inf

        target = ProbabilityVector(n + 1)
        finder = make_finder(self.precision, n, self.population_size)
        finder.find(n, self.population_size, distance, flips, target)
        corrected = np.arange(target.lower, target.upper + 1)
        new_distances = resulting_distance(distance, flips, corrected)
        improving = new_distances < distance

        tracker = ConditionalExpectationTracker(self.optimal_expectations)
        tracker.receive_many(new_distances[improving], target.values[improving])
        if tracker.update_probability < get_update_probability_threshold():
            return math.inf
        return (1 + tracker.conditional_expectation) / tracker.update_probability

    def _check_distance(self, distance: int) -> None:
        if not 0 <= distance <= self.problem_size:
            raise InvalidProblemError(
                "distance must lie in [0, n]",
                {"n": self.problem_size, "distance": distance},
            )

    def summary(self) -> Dict[str, Any]:
        return {
            "n": self.problem_size,
            "lambda": self.population_size,
            "expected_running_time": self.expected_running_time,
        }


class DiscreteStrengthResult(ComputationResult):
    """
    Fully computed tables for integer mutation strengths.

    All tables are indexed ``[distance]`` or ``[distance, strength]`` with
    ``0 <= distance, strength <= n``. Strength 0 never makes progress
    (infinite time, zero drift); distance 0 costs nothing.
    """

    def __init__(
        self,
        problem_size: int,
        population_size: int,
        optimal_time: np.ndarray,
        drift_optimal_time: np.ndarray,
        optimal_by_strength: np.ndarray,
        drift_by_strength: np.ndarray,
        drift_maximizing_by_strength: np.ndarray,
        precision: str = "standard",
    ):
        super().__init__(problem_size, population_size)
        size = problem_size + 1
        for name, table, shape in (
            ("optimal_time", optimal_time, (size,)),
            ("drift_optimal_time", drift_optimal_time, (size,)),
            ("optimal_by_strength", optimal_by_strength, (size, size)),
            ("drift_by_strength", drift_by_strength, (size, size)),
            ("drift_maximizing_by_strength", drift_maximizing_by_strength, (size, size)),
        ):
            if np.shape(table) != shape:
                raise InvalidProblemError(
                    f"table {name} has wrong shape",
                    {"expected": shape, "actual": np.shape(table)},
                )
        self.optimal_time_table = _frozen(optimal_time)
        self.drift_optimal_time_table = _frozen(drift_optimal_time)
        self.optimal_by_strength = _frozen(optimal_by_strength)
        self.drift_by_strength = _frozen(drift_by_strength)
        self.drift_maximizing_by_strength = _frozen(drift_maximizing_by_strength)
        self.precision = precision

    @classmethod
    def from_strength_tables(
        cls,
        problem_size: int,
        population_size: int,
        optimal_by_strength: np.ndarray,
        drift_by_strength: np.ndarray,
        drift_maximizing_by_strength: np.ndarray,
        precision: str = "standard",
    ) -> "DiscreteStrengthResult":
        """Rebuild a result from its per-strength tables, re-deriving the per-distance reductions."""
        size = problem_size + 1
        for table in (optimal_by_strength, drift_by_strength, drift_maximizing_by_strength):
            if np.shape(table) != (size, size):
                raise InvalidProblemError(
                    "strength table has wrong shape",
                    {"expected": (size, size), "actual": np.shape(table)},
                )
        optimal_time = np.zeros(size)
        drift_optimal_time = np.zeros(size)
        for d in range(1, size):
            optimal_time[d] = optimal_by_strength[d, 1:].min()
            best = int(np.argmax(drift_by_strength[d, 1:])) + 1
            drift_optimal_time[d] = drift_maximizing_by_strength[d, best]
        return cls(
            problem_size, population_size,
            optimal_time=optimal_time,
            drift_optimal_time=drift_optimal_time,
            optimal_by_strength=optimal_by_strength,
            drift_by_strength=drift_by_strength,
            drift_maximizing_by_strength=drift_maximizing_by_strength,
            precision=precision,
        )

    @property
    def optimal_expectations(self) -> np.ndarray:
        return self.optimal_time_table

    def optimal_time(self, distance: int, strength: int | None = None) -> float:
        """Optimal expected time at ``distance``, or when using ``strength`` now."""
        self._check_distance(distance)
        if strength is None:
            return float(self.optimal_time_table[distance])
        self._check_strength(strength)
        return float(self.optimal_by_strength[distance, strength])

    def drift_optimal_time(self, distance: int, strength: int | None = None) -> float:
        """Expected time of the drift-maximizing policy (or of ``strength`` then that policy)."""
        self._check_distance(distance)
        if strength is None:
            return float(self.drift_optimal_time_table[distance])
        self._check_strength(strength)
        return float(self.drift_maximizing_by_strength[distance, strength])

    def drift(self, distance: int, strength: int) -> float:
        self._check_distance(distance)
        self._check_strength(strength)
        return float(self.drift_by_strength[distance, strength])

    def optimal_strength(self, distance: int) -> int:
        """Smallest strength achieving the optimal expected time."""
        self._check_distance(distance)
        if distance == 0:
            return 0
        return int(np.argmin(self.optimal_by_strength[distance, 1:])) + 1

    def drift_maximizing_strength(self, distance: int) -> int:
        """Smallest strength with the largest one-step drift."""
        self._check_distance(distance)
        if distance == 0:
            return 0
        return int(np.argmax(self.drift_by_strength[distance, 1:])) + 1

    def optimal_parameter(self, distance: int) -> int:
        return self.optimal_strength(distance)

    def optimal_expectation_for_parameter(self, distance: int, parameter: int) -> float:
        return self.optimal_time(distance, parameter)

    @property
    def expected_optimal_time(self) -> float:
        return self.expected_running_time

    @cached_property
    def expected_drift_optimal_time(self) -> float:
        n = self.problem_size
        log_choose = LogChoose(n)
        result = 0.0
        for d in range(1, n + 1):
            result += log_choose.probability(d) * float(self.drift_optimal_time_table[d])
        return result

    def summary(self) -> Dict[str, Any]:
        info = super().summary()
        info.update(
            family="discrete",
            precision=self.precision,
            expected_drift_optimal_time=self.expected_drift_optimal_time,
        )
        return info

    def _check_strength(self, strength: int) -> None:
        if not 0 <= strength <= self.problem_size:
            raise InvalidProblemError(
                "strength must lie in [0, n]",
                {"n": self.problem_size, "strength": strength},
            )


class ContinuousRateResult(ComputationResult):
    """Optimizer incumbents for a real-valued mutation rate, per distance."""

    def __init__(
        self,
        problem_size: int,
        population_size: int,
        optimal_rate: np.ndarray,
        optimal_expectation: np.ndarray,
        model: "RateModel",
        iterations: np.ndarray | None = None,
    ):
        super().__init__(problem_size, population_size)
        self.optimal_rate_table = _frozen(optimal_rate)
        self.optimal_expectation_table = _frozen(optimal_expectation)
        self.iterations = (
            np.zeros(problem_size + 1, dtype=np.int64) if iterations is None
            else np.array(iterations, dtype=np.int64)
        )
        self.iterations.flags.writeable = False
        self.model = model

    @property
    def distribution_name(self) -> str:
        return self.model.distribution.name

    @property
    def optimal_expectations(self) -> np.ndarray:
        return self.optimal_expectation_table

    def optimal_parameter(self, distance: int) -> float:
        self._check_distance(distance)
        return float(self.optimal_rate_table[distance])

    def optimal_rate(self, distance: int) -> float:
        return self.optimal_parameter(distance)

    def optimal_expectation_for_parameter(self, distance: int, parameter: float) -> float:
        self._check_distance(distance)
        if distance == 0:
            return 0.0
        return self.model.expectation(distance, parameter, self.optimal_expectation_table)

    def summary(self) -> Dict[str, Any]:
        info = super().summary()
        info.update(family="continuous", distribution=self.distribution_name)
        return info


DPResult = Union[DiscreteStrengthResult, ContinuousRateResult]
