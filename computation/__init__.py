"""
Dynamic-programming engines for the (1+lambda) process.

Components:
- ConditionalExpectationTracker: one-step conditional expectation
- DiscreteStrengthEngine: exhaustive search over integer strengths
- ContinuousRateEngine: CMA-ES search over a real mutation rate
- DiscreteStrengthResult / ContinuousRateResult: query surfaces
"""

from .expectation_tracker import ConditionalExpectationTracker
from .listeners import ComputationListener, SummaryListener, CompositeListener
from .results import ComputationResult, DiscreteStrengthResult, ContinuousRateResult, DPResult
from .discrete_engine import DiscreteStrengthEngine, compute_discrete
from .continuous import ContinuousRateEngine, RateModel

__all__ = [
    'ConditionalExpectationTracker',
    'ComputationListener',
    'SummaryListener',
    'CompositeListener',
    'ComputationResult',
    'DiscreteStrengthResult',
    'ContinuousRateResult',
    'DPResult',
    'DiscreteStrengthEngine',
    'compute_discrete',
    'ContinuousRateEngine',
    'RateModel',
]
