"""
Frame Rate Estimator
====================

Rolling frame rate over the last N inter-frame intervals.

    fps = 1000 / mean(last N intervals in ms)

Until one interval has been observed the rate is unknown (None).
"""

import logging
from collections import deque
from typing import Deque, Optional


logger = logging.getLogger(__name__)


class FrameRateEstimator:
    """
    Rolling-window frame rate from arrival times.

    Example:
        estimator = FrameRateEstimator(window=30)
        for arrival_ms in arrivals:
            fps = estimator.update(arrival_ms)
    """

    def __init__(self, window: int = 30) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self.window = window
        self._intervals: Deque[float] = deque(maxlen=window)
        self._last_arrival: Optional[float] = None

    def update(self, arrival_ms: float) -> Optional[float]:
        """Record an arrival and return the current estimate."""
        if self._last_arrival is not None:
            self._intervals.append(arrival_ms - self._last_arrival)
        self._last_arrival = arrival_ms
        return self.fps

    @property
    def fps(self) -> Optional[float]:
        if not self._intervals:
            return None
        mean_interval = sum(self._intervals) / len(self._intervals)
        if mean_interval <= 0:
            return None
        return 1000.0 / mean_interval

    @property
    def sample_count(self) -> int:
        return len(self._intervals)

    def reset(self) -> None:
        self._intervals.clear()
        self._last_arrival = None
