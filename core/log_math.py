"""
Log-space combinatorics.

Factorials and binomial coefficients of problem sizes in the thousands do not
fit into a double, so every combinatorial weight is handled as a logarithm:

    log C(n, k) = log n! - log k! - log (n - k)!

Two tables are kept: a float64 table (numpy) for the standard-precision path
and a ``decimal.Decimal`` table for the arbitrary-precision path.
"""
from __future__ import annotations

import math
from decimal import Context, Decimal
from typing import Dict, List

import numpy as np

from core.exceptions import InvalidProblemError

_log_factorials: np.ndarray = np.zeros(1)
_big_log_factorials: Dict[int, List[Decimal]] = {}


def log_factorial_table(n: int) -> np.ndarray:
    """
    Return a read-only array ``t`` with ``t[k] = log(k!)`` for ``0 <= k <= n``
    (the returned array may be longer).
    """
    global _log_factorials
    if n < 0:
        raise InvalidProblemError("log factorial of a negative number", {"n": n})
    if len(_log_factorials) <= n:
        size = max(n + 1, 2 * len(_log_factorials))
        table = np.zeros(size)
        table[1:] = np.cumsum(np.log(np.arange(1, size, dtype=np.float64)))
        table.flags.writeable = False
        _log_factorials = table
    return _log_factorials


def log_factorial(k: int) -> float:
    return float(log_factorial_table(k)[k])


def big_context(digits: int) -> Context:
    """Decimal context used by the arbitrary-precision path."""
    return Context(prec=digits)


def log_factorial_big_table(n: int, digits: int) -> List[Decimal]:
    """Same as :func:`log_factorial_table`, in ``digits``-digit decimals."""
    if n < 0:
        raise InvalidProblemError("log factorial of a negative number", {"n": n})
    table = _big_log_factorials.setdefault(digits, [Decimal(0)])
    if len(table) <= n:
        ctx = big_context(digits)
        acc = table[-1]
        for i in range(len(table), n + 1):
            acc = ctx.add(acc, Decimal(i).ln(ctx))
            table.append(acc)
    return table


class LogChoose:
    """
    Precomputed log-binomial coefficients for a fixed problem size.

    Usage:
        lc = LogChoose(500)
        lc(500, 3)         # log C(500, 3)
        lc.probability(10) # C(500, 10) / 2**500
    """

    def __init__(self, n: int):
        if n < 0:
            raise InvalidProblemError("problem size must be non-negative", {"n": n})
        self.n = n
        self.log_factorials = log_factorial_table(n)

    def __call__(self, n: int, k: int) -> float:
        lf = self.log_factorials
        return lf[n] - lf[k] - lf[n - k]

    def log_factorial(self, k: int) -> float:
        return float(self.log_factorials[k])

    def probability(self, d: int) -> float:
        """Probability that a uniformly random bit string is at distance ``d``."""
        return math.exp(self(self.n, d) - math.log(2) * self.n)
