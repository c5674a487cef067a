"""
Continuous mutation-rate models.
"""

from .mutation import (
    ParameterizedDistribution,
    StandardBitMutation,
    ShiftBitMutation,
    get_distribution,
)

__all__ = [
    'ParameterizedDistribution',
    'StandardBitMutation',
    'ShiftBitMutation',
    'get_distribution',
]
