"""
Relative Optimality Heat Map
============================

Renders how close each parameter value comes to the optimum at each
distance. Pixel ``(x, y)`` shows ``exp(T*(x) - T(x, p_y))``, where ``T*`` is the
optimal expectation and ``T(x, p_y)`` the expectation when using ordinate
value ``p_y`` once at distance ``x``: 1 means optimal, 0 means hopeless.

Usage:
    from picture import build_relative_optimality_picture

    build_relative_optimality_picture(result, list(range(1, 21)), 1, 100, Path("rls.png"))
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence, Union

import matplotlib.image as mpimg
import numpy as np

from core.exceptions import InvalidProblemError
from computation.results import DPResult

logger = logging.getLogger(__name__)


def relative_optimality_matrix(
    source: DPResult,
    ordinate_values: Sequence,
    x_min: int,
    x_max: int,
) -> np.ndarray:
    """Values in [0, 1]; row ``y`` is ``ordinate_values[y]``, column ``x`` is distance ``x_min + x``."""
    if x_min > x_max or x_min < 0 or x_max > source.problem_size:
        raise InvalidProblemError(
            "distance range outside [0, n]",
            {"x_min": x_min, "x_max": x_max, "n": source.problem_size},
        )
    if len(ordinate_values) == 0:
        raise InvalidProblemError("no ordinate values given")

    values = np.zeros((len(ordinate_values), x_max - x_min + 1))
    for x_index, distance in enumerate(range(x_min, x_max + 1)):
        best = source.optimal_expectation(distance)
        for y_index, parameter in enumerate(ordinate_values):
            current = source.optimal_expectation_for_parameter(distance, parameter)
            values[y_index, x_index] = np.exp(best - current)
    return values


def build_relative_optimality_picture(
    source: DPResult,
    ordinate_values: Sequence,
    x_min: int,
    x_max: int,
    target: Union[str, Path],
) -> np.ndarray:
    """Write the heat map as a PNG (viridis colormap) and return its values."""
    values = relative_optimality_matrix(source, ordinate_values, x_min, x_max)
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    mpimg.imsave(target, values, cmap="viridis", vmin=0.0, vmax=1.0, format="png")
    logger.info(f"Wrote {values.shape[1]}x{values.shape[0]} relative optimality picture to {target}")
    return values
