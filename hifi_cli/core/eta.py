"""
Sliding-window estimate of the time left for running downloads.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

WINDOW_SIZE = 5


class EtaEstimator:
    """
    Keeps the last few (progress, timestamp) samples per job and extrapolates
    the remaining time from the rate across the window.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._history: Dict[str, Deque[Tuple[float, float]]] = {}
        self._estimates: Dict[str, float] = {}

    def record(self, job_id: str, progress: float) -> None:
        """Adds a sample, but only when progress actually moved."""
        if progress <= 0:
            return
        history = self._history.setdefault(job_id, deque(maxlen=WINDOW_SIZE))
        if history and history[-1][0] == progress:
            return
        history.append((progress, self._clock()))

        if len(history) < 2:
            return
        first_progress, first_time = history[0]
        last_progress, last_time = history[-1]
        progress_diff = last_progress - first_progress
        time_diff = last_time - first_time
        if progress_diff > 0 and time_diff > 0:
            rate = progress_diff / time_diff
            self._estimates[job_id] = (100 - last_progress) / rate

    def estimate(self, job_id: str) -> Optional[float]:
        """Seconds remaining, or None until two distinct samples exist."""
        return self._estimates.get(job_id)

    def discard(self, job_id: str) -> None:
        self._history.pop(job_id, None)
        self._estimates.pop(job_id, None)

    def retain_only(self, job_ids) -> None:
        """Drops history for every job not in `job_ids`."""
        for job_id in set(self._history) - set(job_ids):
            self.discard(job_id)
