"""
Flip-count distributions parameterized by a continuous mutation rate.

Each model maps ``(n, rate)`` to a ProbabilityVector over the number of
flipped positions in one offspring.
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod

import numpy as np

from core.exceptions import InvalidProblemError
from core.log_math import log_factorial_table
from transition.probability_vector import ProbabilityVector


class ParameterizedDistribution(ABC):
    """A flip-count law for one offspring, given a rate in [0, 1]."""

    name: str = "abstract"

    @abstractmethod
    def initialize(self, n: int, rate: float, target: ProbabilityVector) -> None:
        """Fill ``target`` (capacity at least n + 1) with the flip-count law."""

    def flip_probabilities(self, n: int, rate: float) -> np.ndarray:
        """Fresh dense vector of length n + 1."""
        target = ProbabilityVector(n + 1)
        self.initialize(n, rate, target)
        return target.to_dense(n + 1)


def _check_rate(n: int, rate: float) -> None:
    if n <= 0:
        raise InvalidProblemError("problem size must be positive", {"n": n})
    if not 0.0 <= rate <= 1.0:
        raise InvalidProblemError("mutation rate must lie in [0, 1]", {"rate": rate})


def _binomial_log_weights(n: int, rate: float) -> np.ndarray:
    lf = log_factorial_table(n)
    i = np.arange(n + 1)
    return math.log(rate) * i + math.log1p(-rate) * (n - i) + lf[n] - lf[i] - lf[n - i]


class StandardBitMutation(ParameterizedDistribution):
    """Every position flips independently with probability ``rate``."""

    name = "standard"

    def initialize(self, n, rate, target):
        _check_rate(n, rate)
        if rate == 0:
            target.set_bounds(0, 0)
            target.set_value(0, 1.0)
        elif rate == 1:
            target.set_bounds(n, n)
            target.set_value(n, 1.0)
        else:
            target.set_bounds(0, n)
            target.values[:] = np.exp(_binomial_log_weights(n, rate))


class ShiftBitMutation(ParameterizedDistribution):
    """Standard bit mutation where an empty flip set is replaced by one flip."""

    name = "shift"

    def initialize(self, n, rate, target):
        _check_rate(n, rate)
        if rate == 0:
            target.set_bounds(1, 1)
            target.set_value(1, 1.0)
        elif rate == 1:
            target.set_bounds(n, n)
            target.set_value(n, 1.0)
        else:
            weights = np.exp(_binomial_log_weights(n, rate))
            target.set_bounds(1, n)
            target.values[:] = weights[1:]
            target.add_value(1, float(weights[0]))


DISTRIBUTIONS = {
    StandardBitMutation.name: StandardBitMutation,
    ShiftBitMutation.name: ShiftBitMutation,
}


def get_distribution(name: str) -> ParameterizedDistribution:
    """Look up a model by its short name ('standard' or 'shift')."""
    try:
        return DISTRIBUTIONS[name]()
    except KeyError:
        raise InvalidProblemError(
            f"unknown distribution '{name}'", {"known": sorted(DISTRIBUTIONS)}
        ) from None
