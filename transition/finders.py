"""
Transition Probability Finders
==============================

Given a bit string of length ``n`` at Hamming distance ``d`` from the
optimum, each of ``lam`` offspring flips ``change`` distinct positions chosen
uniformly at random. The number ``k`` of flipped positions that were wrong is
hypergeometric:

    P(k) = C(d, k) C(n - d, change - k) / C(n, change)

and the offspring lands at distance ``d + change - 2k``. Only outcomes with
``2k >= change`` can be accepted as progress, so a finder keeps just

    k in [max(ceil(change / 2), change - n + d), min(change, d)]

and lumps every smaller ``k`` into one worst outcome before taking the best
of ``lam`` offspring. The returned vector holds the probabilities of the
kept ``k`` for the best offspring; the missing mass (``1 - total``) is the
probability that even the best offspring falls below the kept range. When
no ``k`` qualifies the vector is empty.

Two variants exist and nothing else is expected to implement the interface:

- StandardPrecisionFinder: float64 via numpy, rescaled after every powering
  step to keep the rounding error bounded.
- ArbitraryPrecisionFinder: the same algorithm in ``decimal`` arithmetic,
  converted to float only at the end.

Usage:
    finder = make_finder(Precision.AUTO, n, lam)
    scratch = finder.new_scratch(n)
    target = ProbabilityVector(n + 1)
    finder.find(n, lam, d, change, target, scratch)
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, localcontext
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np

from config.settings_loader import (
    get_arbitrary_precision_threshold,
    get_decimal_digits,
    get_norm_tolerance,
)
from core.exceptions import InvalidProblemError, NumericalInvariantError
from core.log_math import big_context, log_factorial_big_table, log_factorial_table
from transition.probability_vector import (
    ProbabilityVector,
    multiply_by_power,
    multiply_exact_by_power,
)

logger = logging.getLogger(__name__)


class Precision(Enum):
    """Numerical regime of a transition finder."""
    STANDARD = "standard"
    ARBITRARY = "arbitrary"
    AUTO = "auto"


@dataclass
class TransitionScratch:
    """Reusable float buffers (length n + 1) for StandardPrecisionFinder."""
    unit: np.ndarray
    prob: np.ndarray


@dataclass
class BigTransitionScratch:
    """Reusable decimal buffers (length n + 1) for ArbitraryPrecisionFinder."""
    unit: List[Decimal]
    prob: List[Decimal]


Scratch = Union[TransitionScratch, BigTransitionScratch]


def improving_bounds(n: int, d: int, change: int) -> Tuple[int, int]:
    """Range of kept corrected-position counts ``k``; empty when ``lower > upper``."""
    return max((change + 1) // 2, change - n + d), min(change, d)


def resulting_distance(d: int, change: int, corrected: Union[int, np.ndarray]):
    return d + change - 2 * corrected


def _validate(n: int, lam: int, d: int, change: int) -> None:
    if n <= 0 or lam <= 0:
        raise InvalidProblemError("n and lambda must be positive", {"n": n, "lambda": lam})
    if not 0 <= d <= n or not 0 <= change <= n:
        raise InvalidProblemError(
            "distance and change must lie in [0, n]",
            {"n": n, "d": d, "change": change},
        )


def check_norm(total: float, tolerance: float, **context) -> None:
    """Raise NumericalInvariantError unless ``total`` is one within ``tolerance``."""
    if not abs(total - 1.0) < tolerance:
        raise NumericalInvariantError(
            "probability vector does not sum to one",
            context={"sum": total, "tolerance": tolerance, **context},
        )


class TransitionProbabilityFinder(ABC):
    """Best-of-lambda transition distribution for a fixed number of flips."""

    precision: Precision

    def __init__(self, norm_tolerance: Optional[float] = None):
        self.norm_tolerance = get_norm_tolerance() if norm_tolerance is None else norm_tolerance

    @abstractmethod
    def new_scratch(self, n: int) -> Scratch:
        """Allocate buffers that can be passed to every ``find`` call for this ``n``."""

    @abstractmethod
    def find(
        self,
        n: int,
        lam: int,
        d: int,
        change: int,
        target: ProbabilityVector,
        scratch: Optional[Scratch] = None,
    ) -> None:
        """
        Fill ``target`` with the distribution of corrected positions of the best
        of ``lam`` offspring.

        Raises:
            InvalidProblemError: arguments out of range
            NumericalInvariantError: a probability vector lost its normalization
        """


class StandardPrecisionFinder(TransitionProbabilityFinder):
    """float64 finder; the workhorse of the discrete DP sweep."""

    precision = Precision.STANDARD

    def new_scratch(self, n: int) -> TransitionScratch:
        return TransitionScratch(unit=np.zeros(n + 1), prob=np.zeros(n + 1))

    def find(self, n, lam, d, change, target, scratch=None):
        _validate(n, lam, d, change)
        if scratch is None:
            scratch = self.new_scratch(n)
        lower, upper = improving_bounds(n, d, change)
        if lower > upper:
            target.clear()
            return
        m = upper - lower + 1

        lf = log_factorial_table(n)
        k = np.arange(lower, upper + 1)
        cnc = lf[n] - lf[change] - lf[n - change]
        logs = (lf[d] - lf[k] - lf[d - k]) + (lf[n - d] - lf[change - k] - lf[n - d - change + k]) - cnc

        # slot 0 holds the lumped mass of every k below the kept range
        prob = scratch.prob[:m + 1]
        np.exp(logs, out=prob[1:])
        kept = float(prob[1:].sum())
        prob[0] = max(0.0, 1.0 - kept)
        check_norm(prob[0] + kept, self.norm_tolerance, n=n, d=d, change=change)

        if lam > 1:
            unit = scratch.unit[:m + 1]
            unit[:] = prob
            multiply_by_power(lam - 1, unit, prob, 1.0)
        check_norm(float(prob.sum()), self.norm_tolerance, n=n, lam=lam, d=d, change=change)

        target.set_bounds(lower, upper)
        target.values[:] = prob[1:]


class ArbitraryPrecisionFinder(TransitionProbabilityFinder):
    """Decimal finder for regimes where float64 loses significant digits."""

    precision = Precision.ARBITRARY

    def __init__(self, digits: Optional[int] = None, norm_tolerance: Optional[float] = None):
        super().__init__(norm_tolerance)
        self.digits = get_decimal_digits() if digits is None else digits

    def new_scratch(self, n: int) -> BigTransitionScratch:
        return BigTransitionScratch(unit=[Decimal(0)] * (n + 1), prob=[Decimal(0)] * (n + 1))

    def find(self, n, lam, d, change, target, scratch=None):
        _validate(n, lam, d, change)
        if scratch is None:
            scratch = self.new_scratch(n)
        lower, upper = improving_bounds(n, d, change)
        if lower > upper:
            target.clear()
            return
        m = upper - lower + 1

        ctx = big_context(self.digits)
        lf = log_factorial_big_table(n, self.digits)
        prob = scratch.prob
        with localcontext(ctx):
            cnc = lf[n] - lf[change] - lf[n - change]
            common = lf[d] + lf[n - d] - cnc
            kept = Decimal(0)
            for i in range(1, m + 1):
                k = lower + i - 1
                p = (common - lf[k] - lf[d - k] - lf[change - k] - lf[n - d - change + k]).exp()
                prob[i] = p
                kept += p
            prob[0] = max(Decimal(0), 1 - kept)
            check_norm(float(prob[0] + kept), self.norm_tolerance, n=n, d=d, change=change)

            # powering runs on exactly m + 1 slots, so work on fresh lists
            result = prob[:m + 1]
            if lam > 1:
                factor = prob[:m + 1]
                multiply_exact_by_power(lam - 1, factor, result, ctx)
            total = float(sum(result, Decimal(0)))
        check_norm(total, self.norm_tolerance, n=n, lam=lam, d=d, change=change)

        target.set_bounds(lower, upper)
        values = target.values
        for i in range(m):
            values[i] = float(result[i + 1])


def select_precision(n: int, lam: int, threshold: Optional[int] = None) -> Precision:
    """
    Pick the numerical regime for a problem instance.

    Standard precision is used until ``n * lam`` exceeds the configured
    threshold; beyond it the best-of-lambda powering of near-certain events
    leaves too few significant digits in float64.
    """
    if threshold is None:
        threshold = get_arbitrary_precision_threshold()
    return Precision.ARBITRARY if n * lam > threshold else Precision.STANDARD


def make_finder(
    precision: Union[Precision, str],
    n: int,
    lam: int,
    norm_tolerance: Optional[float] = None,
) -> TransitionProbabilityFinder:
    """Construct the finder for ``precision``, resolving ``AUTO`` once."""
    precision = Precision(precision)
    if precision is Precision.AUTO:
        precision = select_precision(n, lam)
    logger.debug(f"Using {precision.value} precision finder for n={n}, lambda={lam}")
    if precision is Precision.ARBITRARY:
        return ArbitraryPrecisionFinder(norm_tolerance=norm_tolerance)
    return StandardPrecisionFinder(norm_tolerance=norm_tolerance)
