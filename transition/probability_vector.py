"""
Probability vectors and order-statistic powering.

A probability vector here is a distribution over an ordered outcome domain
where a larger index is a better outcome. Combining two independent trials
``X`` and ``Y`` yields the distribution of ``max(X, Y)``:

    P(max = i) = P(X <= i) P(Y = i) + P(Y <= i) P(X = i) - P(X = i) P(Y = i)

which needs only running prefix sums, so a combination step is linear in
the support size. The best of ``lambda`` trials is obtained by binary
exponentiation of this step.

Mutation contracts: functions whose name ends in ``_in_place`` overwrite
their first argument (a caller-owned buffer) and return nothing; everything
else returns a fresh value.
"""
from __future__ import annotations

from decimal import Context, Decimal
from typing import List, Optional

import numpy as np

from core.exceptions import InvalidProblemError


class ProbabilityVector:
    """
    Probabilities over the contiguous integer range ``[lower, upper]``.

    The backing array is preallocated for indices ``0..capacity-1`` and reused
    across ``set_bounds`` calls; values outside the current bounds are
    meaningless. An empty vector (``upper < lower``) carries no mass.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise InvalidProblemError("capacity must be positive", {"capacity": capacity})
        self._data = np.zeros(capacity)
        self.lower = 0
        self.upper = -1

    def set_bounds(self, lower: int, upper: int) -> None:
        if lower < 0 or upper >= len(self._data) or lower > upper:
            raise InvalidProblemError(
                "bounds outside capacity",
                {"lower": lower, "upper": upper, "capacity": len(self._data)},
            )
        self.lower = lower
        self.upper = upper
        self._data[lower:upper + 1] = 0.0

    def clear(self) -> None:
        """Make the vector empty."""
        self.lower = 0
        self.upper = -1

    def set_value(self, index: int, value: float) -> None:
        self._data[index] = value

    def add_value(self, index: int, value: float) -> None:
        self._data[index] += value

    def value(self, index: int) -> float:
        if index < self.lower or index > self.upper:
            return 0.0
        return float(self._data[index])

    @property
    def values(self) -> np.ndarray:
        """View of the in-bounds probabilities (index ``lower`` first)."""
        return self._data[self.lower:self.upper + 1]

    def total(self) -> float:
        return float(self.values.sum())

    def to_dense(self, size: int) -> np.ndarray:
        """Fresh array of length ``size`` with zeros outside the bounds."""
        dense = np.zeros(size)
        upper = min(self.upper, size - 1)
        if upper >= self.lower:
            dense[self.lower:upper + 1] = self._data[self.lower:upper + 1]
        return dense


def multiply_in_place(a: np.ndarray, b: np.ndarray, norm: float) -> None:
    """
    Replace ``a`` with the distribution of the better of one trial from ``a``
    and one from ``b``, then rescale so that ``a`` sums to ``norm``.

    ``a`` and ``b`` may be the same array. An all-zero result is left as is.
    """
    prefix_a = np.cumsum(a)
    prefix_b = np.cumsum(b)
    combined = prefix_a * b + prefix_b * a - a * b
    scale = combined.sum() / norm
    if scale > 0:
        combined /= scale
    a[:] = combined


def multiply_by_power(power: int, unit: np.ndarray, result: np.ndarray, norm: float) -> None:
    """
    Combine ``result`` in place with ``power`` independent copies of ``unit``.

    ``unit`` is used as scratch space and is overwritten.
    """
    if power < 0:
        raise InvalidProblemError("power must be non-negative", {"power": power})
    p = power
    while p > 1:
        if p & 1:
            multiply_in_place(result, unit, norm)
        multiply_in_place(unit, unit, norm)
        p >>= 1
    if p == 1:
        multiply_in_place(result, unit, norm)


def power_of(unit: np.ndarray, power: int, norm: Optional[float] = None) -> np.ndarray:
    """Distribution of the best of ``power`` trials of ``unit`` (fresh array)."""
    if power <= 0:
        raise InvalidProblemError("power must be positive", {"power": power})
    if norm is None:
        norm = float(unit.sum())
    result = np.array(unit, dtype=np.float64)
    multiply_by_power(power - 1, np.array(unit, dtype=np.float64), result, norm)
    return result


# ---------------------------------------------------------------------------
# Decimal counterparts (no rescaling: the arithmetic is exact enough)
# ---------------------------------------------------------------------------

def multiply_exact_in_place(a: List[Decimal], b: List[Decimal], ctx: Context) -> None:
    """Decimal version of :func:`multiply_in_place` without the rescale step."""
    acc_a = Decimal(0)
    acc_b = Decimal(0)
    for i in range(len(a)):
        ai = a[i]
        bi = b[i]
        acc_a = ctx.add(acc_a, ai)
        acc_b = ctx.add(acc_b, bi)
        a[i] = ctx.subtract(ctx.add(ctx.multiply(acc_a, bi), ctx.multiply(acc_b, ai)), ctx.multiply(ai, bi))


def multiply_exact_by_power(power: int, unit: List[Decimal], result: List[Decimal], ctx: Context) -> None:
    """Decimal version of :func:`multiply_by_power`; ``unit`` is overwritten."""
    if power < 0:
        raise InvalidProblemError("power must be non-negative", {"power": power})
    p = power
    while p > 1:
        if p & 1:
            multiply_exact_in_place(result, unit, ctx)
        multiply_exact_in_place(unit, unit, ctx)
        p >>= 1
    if p == 1:
        multiply_exact_in_place(result, unit, ctx)
