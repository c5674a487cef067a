"""
Build listeners.

A listener is told about every finalized distance row and about the finished
result. Listeners observe only; they never change what is computed.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ComputationListener:
    """No-op base listener."""

    def on_distance(self, distance: int, optimal_expectation: float, optimal_parameter: Any) -> None:
        pass

    def on_complete(self, result) -> None:
        pass


class SummaryListener(ComputationListener):
    """Records the headline expected times of a finished build."""

    def __init__(self):
        self.expected_optimal_time: Optional[float] = None
        self.expected_drift_optimal_time: Optional[float] = None
        self.rows: List[Tuple[int, float, Any]] = []

    def on_distance(self, distance, optimal_expectation, optimal_parameter):
        self.rows.append((distance, float(optimal_expectation), optimal_parameter))

    def on_complete(self, result) -> None:
        self.expected_optimal_time = result.expected_running_time
        self.expected_drift_optimal_time = getattr(result, "expected_drift_optimal_time", None)


class CompositeListener(ComputationListener):
    """Fans events out to several listeners, in order."""

    def __init__(self, *listeners: ComputationListener):
        self.listeners = list(listeners)

    def on_distance(self, distance, optimal_expectation, optimal_parameter):
        for listener in self.listeners:
            listener.on_distance(distance, optimal_expectation, optimal_parameter)

    def on_complete(self, result) -> None:
        for listener in self.listeners:
            listener.on_complete(result)
