"""
Transition probabilities of the (1+lambda) process.

Components:
- ProbabilityVector: distribution over a contiguous index range
- multiply_in_place / multiply_by_power: best-of-lambda combination
- StandardPrecisionFinder / ArbitraryPrecisionFinder: exact transition laws
"""

from .probability_vector import (
    ProbabilityVector,
    multiply_in_place,
    multiply_by_power,
    power_of,
)
from .finders import (
    Precision,
    TransitionProbabilityFinder,
    StandardPrecisionFinder,
    ArbitraryPrecisionFinder,
    TransitionScratch,
    BigTransitionScratch,
    improving_bounds,
    resulting_distance,
    select_precision,
    make_finder,
)

__all__ = [
    'ProbabilityVector',
    'multiply_in_place',
    'multiply_by_power',
    'power_of',
    'Precision',
    'TransitionProbabilityFinder',
    'StandardPrecisionFinder',
    'ArbitraryPrecisionFinder',
    'TransitionScratch',
    'BigTransitionScratch',
    'improving_bounds',
    'resulting_distance',
    'select_precision',
    'make_finder',
]
