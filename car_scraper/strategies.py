from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .models import DetectionSignal

if TYPE_CHECKING:
    from .rate_limiter import RateLimiter


class ControlStrategy(ABC):
    """Abstract base class for adaptive throttling strategies.

    Each strategy inspects a DetectionSignal and decides whether to tighten
    the rate limiter. Strategies only ever reduce throughput; recovery
    requires RateLimiter.reset()."""

    @abstractmethod
    def should_apply(self, signal: DetectionSignal) -> bool:
        """Return True if this strategy should be activated for the signal."""
        raise NotImplementedError

    @abstractmethod
    def apply(self, limiter: "RateLimiter") -> None:
        """Tighten the limiter's base delay and/or requests-per-minute ceiling."""
        raise NotImplementedError


class CaptchaStrategy(ControlStrategy):
    """Halves throughput and doubles the base delay when a captcha is served."""

    def __init__(self, delay_cap: float = 10.0, min_requests_per_minute: int = 5) -> None:
        self._delay_cap = delay_cap
        self._min_rpm = min_requests_per_minute

    def should_apply(self, signal: DetectionSignal) -> bool:
        return signal.captcha_detected

    def apply(self, limiter: "RateLimiter") -> None:
        base = limiter.base_delay
        rpm = limiter.requests_per_minute
        limiter.set_throughput(
            base_delay=max(base, min(base * 2, self._delay_cap)),
            requests_per_minute=min(rpm, max(self._min_rpm, rpm // 2)),
        )


class IpBlockStrategy(ControlStrategy):
    """Drops to the maximum delay and one request per minute on an IP block."""

    def should_apply(self, signal: DetectionSignal) -> bool:
        return signal.ip_blocked

    def apply(self, limiter: "RateLimiter") -> None:
        limiter.set_throughput(
            base_delay=max(limiter.base_delay, limiter.max_delay),
            requests_per_minute=1,
        )


class LowSuccessRateStrategy(ControlStrategy):
    """Raises the base delay by 50% while the recent success rate is poor."""

    def __init__(self, threshold: float = 0.5, delay_cap: float = 5.0) -> None:
        self._threshold = threshold
        self._delay_cap = delay_cap

    def should_apply(self, signal: DetectionSignal) -> bool:
        rate = signal.recent_success_rate
        return rate is not None and rate < self._threshold

    def apply(self, limiter: "RateLimiter") -> None:
        base = limiter.base_delay
        limiter.set_throughput(
            base_delay=max(base, min(base * 1.5, self._delay_cap)),
            requests_per_minute=limiter.requests_per_minute,
        )


def default_strategies() -> list[ControlStrategy]:
    return [CaptchaStrategy(), IpBlockStrategy(), LowSuccessRateStrategy()]
