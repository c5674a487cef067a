"""
Derivative-free continuous optimization.

Provides a from-scratch CMA-ES with batched candidate evaluation:
- Box constraints handled by clamping plus a fitness-scaled penalty
- Active (negative) covariance update
- Diagonal-only warm-up phase
- Best-of-run incumbent tracking
"""

from .cma_es import (
    CMAESDistributionOptimizer,
    OptimizationResult,
    StopReason,
    FitnessHistory,
)

__all__ = [
    'CMAESDistributionOptimizer',
    'OptimizationResult',
    'StopReason',
    'FitnessHistory',
]
