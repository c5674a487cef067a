from __future__ import annotations

import numpy as np


class ConditionalExpectationTracker:
    """
    Accumulates the progress-making part of a transition distribution.

    ``expectations[x]`` must already hold the final expected remaining time
    at every distance ``x`` the caller reports (``expectations[0] == 0``).
    Only outcomes that decrease the distance may be reported.
    """

    def __init__(self, expectations: np.ndarray):
        self.expectations = expectations
        self.update_probability = 0.0
        self.conditional_expectation = 0.0

    def reset(self) -> None:
        self.update_probability = 0.0
        self.conditional_expectation = 0.0

    def receive_probability(self, new_distance: int, probability: float) -> None:
        self.update_probability += probability
        if new_distance >= 1 and probability > 0:
            self.conditional_expectation += probability * self.expectations[new_distance]

    def receive_many(self, new_distances: np.ndarray, probabilities: np.ndarray) -> None:
        """Vectorized :meth:`receive_probability` over matching arrays."""
        self.update_probability += float(probabilities.sum())
        positive = probabilities > 0
        if positive.any():
            self.conditional_expectation += float(
                (probabilities[positive] * self.expectations[new_distances[positive]]).sum()
            )
