"""
Visualization of computed results.
"""

from .relative_optimality import build_relative_optimality_picture, relative_optimality_matrix

__all__ = [
    'build_relative_optimality_picture',
    'relative_optimality_matrix',
]
