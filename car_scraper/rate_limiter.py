from __future__ import annotations

import json
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, Optional, TypeVar

from .backoff import BackoffStrategy
from .logger import get_logger
from .models import DetectionSignal
from .strategies import ControlStrategy, default_strategies

logger = get_logger(__name__)

T = TypeVar("T")

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Admission control over a sliding one-minute window with adaptive backoff.

    A request is admitted while fewer than ``concurrent_requests`` are in
    flight and fewer than ``requests_per_minute`` were admitted in the last
    60 seconds. Waiting is a poll-with-delay loop in execute_gated(); the
    limiter never blocks inside can_admit() or admit().

    State changes are serialised under a lock so the limiter can be shared
    by worker threads."""

    def __init__(
        self,
        base_delay: float = 2.0,
        max_delay: float = 10.0,
        jitter: float = 1.0,
        requests_per_minute: int = 30,
        concurrent_requests: int = 5,
        poll_interval: float = 0.1,
        strategies: Optional[Iterable[ControlStrategy]] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._initial_base_delay = base_delay
        self._initial_rpm = requests_per_minute
        self._base_delay = base_delay
        self._requests_per_minute = requests_per_minute
        self._concurrent_requests = concurrent_requests
        self._poll_interval = poll_interval
        self._backoff = BackoffStrategy(max_seconds=max_delay, jitter_seconds=jitter)
        self._strategies = list(strategies) if strategies is not None else default_strategies()
        self._clock = clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._timestamps: Deque[float] = deque()
        self._active = 0
        self._consecutive_failures = 0
        self._backoff_multiplier = 1.0

    # -- admission primitives -------------------------------------------------

    def can_admit(self) -> bool:
        """Return True if a request may start now. Does not change state."""
        with self._lock:
            return self._can_admit_locked(self._clock())

    def admit(self) -> None:
        """Record an admitted request in the window and the in-flight count."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._timestamps.append(now)
            self._active += 1

    def release(self, success: bool) -> None:
        """Mark a request finished and update the failure streak."""
        with self._lock:
            self._active = max(0, self._active - 1)
            if success:
                self._consecutive_failures = 0
                self._backoff_multiplier = 1.0
            else:
                self._consecutive_failures += 1
                self._backoff_multiplier = min(10.0, self._backoff_multiplier * 1.5)

    def compute_delay(self) -> float:
        """Return the backoff-adjusted delay in seconds, capped at max_delay."""
        with self._lock:
            return self._backoff.get_delay(self._base_delay, self._consecutive_failures)

    def delay(self, override: Optional[float] = None) -> float:
        """Sleep for the override (or computed) delay plus jitter; return seconds slept."""
        base = override if override is not None else self.compute_delay()
        duration = self._backoff.apply_jitter(base)
        self._sleep(duration)
        return duration

    def execute_gated(self, task: Callable[[], T]) -> T:
        """Wait for admission, run the task, and release with its outcome.

        Task exceptions are re-raised unchanged after the failure is recorded."""
        while not self._try_admit():
            self.delay(self._poll_interval)
        try:
            result = task()
        except BaseException:
            self.release(False)
            raise
        self.release(True)
        return result

    # -- adaptation -----------------------------------------------------------

    def adapt_to_signal(self, signal: DetectionSignal) -> None:
        """Tighten throughput in response to detection signals.

        Every matching strategy is applied in order. The adjustment is a
        one-way ratchet for the rest of the run; reset() restores the
        configured values."""
        for strat in self._strategies:
            if not strat.should_apply(signal):
                continue
            old_delay, old_rpm = self.base_delay, self.requests_per_minute
            strat.apply(self)
            log = {
                "timestamp": self._clock(),
                "strategy": strat.__class__.__name__,
                "old_base_delay": old_delay,
                "new_base_delay": self.base_delay,
                "old_requests_per_minute": old_rpm,
                "new_requests_per_minute": self.requests_per_minute,
            }
            logger.info(json.dumps(log, ensure_ascii=False))

    def set_throughput(self, base_delay: float, requests_per_minute: int) -> None:
        with self._lock:
            self._base_delay = float(base_delay)
            self._requests_per_minute = max(1, int(requests_per_minute))

    def reset(self) -> None:
        """Clear all request state and restore the configured throughput."""
        with self._lock:
            self._timestamps.clear()
            self._active = 0
            self._consecutive_failures = 0
            self._backoff_multiplier = 1.0
            self._base_delay = self._initial_base_delay
            self._requests_per_minute = self._initial_rpm

    def stats(self) -> Dict[str, float]:
        with self._lock:
            now = self._clock()
            self._prune(now)
            return {
                "active_requests": self._active,
                "recent_requests": len(self._timestamps),
                "consecutive_failures": self._consecutive_failures,
                "backoff_multiplier": self._backoff_multiplier,
                "current_delay": self._backoff.get_delay(self._base_delay, self._consecutive_failures),
            }

    # -- properties -----------------------------------------------------------

    @property
    def base_delay(self) -> float:
        return self._base_delay

    @property
    def max_delay(self) -> float:
        return self._backoff.max_seconds

    @property
    def requests_per_minute(self) -> int:
        return self._requests_per_minute

    @property
    def concurrent_requests(self) -> int:
        return self._concurrent_requests

    @property
    def active_requests(self) -> int:
        return self._active

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def backoff_multiplier(self) -> float:
        return self._backoff_multiplier

    # -- internals ------------------------------------------------------------

    def _try_admit(self) -> bool:
        with self._lock:
            now = self._clock()
            if not self._can_admit_locked(now):
                return False
            self._prune(now)
            self._timestamps.append(now)
            self._active += 1
            return True

    def _can_admit_locked(self, now: float) -> bool:
        if self._active >= self._concurrent_requests:
            return False
        cutoff = now - WINDOW_SECONDS
        recent = sum(1 for ts in self._timestamps if ts > cutoff)
        return recent < self._requests_per_minute

    def _prune(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()
