from __future__ import annotations

import random


class BackoffStrategy:
    """Exponential backoff with symmetric jitter for request delays.

    Computes delay as base * 2^min(failures, max_exponent) once failures
    start, capped at a configurable maximum. Jitter is applied separately
    and the jittered value never drops below the floor."""

    def __init__(
        self,
        max_seconds: float = 10.0,
        max_exponent: int = 5,
        jitter_seconds: float = 1.0,
        floor_seconds: float = 0.5,
    ) -> None:
        self._max = max_seconds
        self._max_exponent = max_exponent
        self._jitter = jitter_seconds
        self._floor = floor_seconds

    @property
    def max_seconds(self) -> float:
        return self._max

    def get_delay(self, base_seconds: float, failures: int) -> float:
        """Calculate the un-jittered delay in seconds after a failure streak."""
        delay = base_seconds
        if failures > 0:
            delay *= 2 ** min(failures, self._max_exponent)
        return min(delay, self._max)

    def apply_jitter(self, delay: float) -> float:
        """Add +/- jitter to a delay and floor the result."""
        jitter = random.uniform(-self._jitter, self._jitter)
        return max(self._floor, delay + jitter)
