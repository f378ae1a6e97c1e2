"""Tests for the RateLimiter class."""

import unittest

from car_scraper.models import DetectionSignal
from car_scraper.rate_limiter import RateLimiter


class FakeClock:
    """Manual clock whose sleep() advances time instead of blocking."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _make_limiter(clock, **overrides):
    params = dict(
        base_delay=2.0,
        max_delay=10.0,
        jitter=0.0,
        requests_per_minute=30,
        concurrent_requests=5,
        clock=clock,
        sleep=clock.sleep,
    )
    params.update(overrides)
    return RateLimiter(**params)


class TestAdmission(unittest.TestCase):
    """Verify the concurrency ceiling and the sliding one-minute window."""

    def setUp(self):
        self.clock = FakeClock()

    def test_can_admit_has_no_side_effects(self):
        """Calling can_admit() repeatedly should not consume capacity."""
        limiter = _make_limiter(self.clock, requests_per_minute=1)
        for _ in range(5):
            self.assertTrue(limiter.can_admit())
        self.assertEqual(limiter.active_requests, 0)

    def test_concurrency_ceiling(self):
        """No admission once the concurrency ceiling is reached."""
        limiter = _make_limiter(self.clock, concurrent_requests=2)
        limiter.admit()
        limiter.admit()
        self.assertFalse(limiter.can_admit())
        limiter.release(True)
        self.assertTrue(limiter.can_admit())

    def test_active_requests_never_negative(self):
        """Releasing more than was admitted should floor the count at zero."""
        limiter = _make_limiter(self.clock)
        limiter.release(True)
        limiter.release(False)
        self.assertEqual(limiter.active_requests, 0)

    def test_window_expires_after_a_minute(self):
        """Requests older than 60 seconds should stop counting against the limit."""
        limiter = _make_limiter(self.clock, requests_per_minute=3)
        for _ in range(3):
            limiter.admit()
            limiter.release(True)
        self.assertFalse(limiter.can_admit())
        self.clock.now += 61
        self.assertTrue(limiter.can_admit())


class TestBackoff(unittest.TestCase):
    """Verify failure-driven delay growth."""

    def setUp(self):
        self.clock = FakeClock()

    def test_delay_non_decreasing_and_capped(self):
        """Consecutive failures should never shrink the delay or exceed the cap."""
        limiter = _make_limiter(self.clock)
        delays = [limiter.compute_delay()]
        for _ in range(8):
            limiter.admit()
            limiter.release(False)
            delays.append(limiter.compute_delay())
        self.assertEqual(delays[:4], [2.0, 4.0, 8.0, 10.0])
        self.assertEqual(delays, sorted(delays))
        self.assertTrue(all(d <= 10.0 for d in delays))

    def test_success_resets_failures(self):
        """A successful release should reset the streak and the multiplier."""
        limiter = _make_limiter(self.clock)
        limiter.release(False)
        limiter.release(False)
        self.assertEqual(limiter.consecutive_failures, 2)
        self.assertAlmostEqual(limiter.backoff_multiplier, 2.25)
        limiter.release(True)
        self.assertEqual(limiter.consecutive_failures, 0)
        self.assertEqual(limiter.backoff_multiplier, 1.0)
        self.assertEqual(limiter.compute_delay(), 2.0)

    def test_multiplier_capped_at_ten(self):
        """The backoff multiplier should stop growing at 10."""
        limiter = _make_limiter(self.clock)
        for _ in range(20):
            limiter.release(False)
        self.assertEqual(limiter.backoff_multiplier, 10.0)

    def test_delay_sleeps_for_override(self):
        """delay() with an override should sleep exactly that long without jitter."""
        limiter = _make_limiter(self.clock)
        slept = limiter.delay(3.0)
        self.assertEqual(slept, 3.0)
        self.assertEqual(self.clock.sleeps, [3.0])


class TestExecuteGated(unittest.TestCase):
    """Verify execute_gated() admission, release and error propagation."""

    def setUp(self):
        self.clock = FakeClock()

    def test_returns_result_and_releases(self):
        """A successful task should return its value and free its slot."""
        limiter = _make_limiter(self.clock)
        self.assertEqual(limiter.execute_gated(lambda: 42), 42)
        self.assertEqual(limiter.active_requests, 0)
        self.assertEqual(limiter.stats()["recent_requests"], 1)

    def test_reraises_and_records_failure(self):
        """A failing task should propagate its exception and count as a failure."""
        limiter = _make_limiter(self.clock)

        def boom():
            raise ConnectionError("down")

        with self.assertRaises(ConnectionError):
            limiter.execute_gated(boom)
        self.assertEqual(limiter.active_requests, 0)
        self.assertEqual(limiter.consecutive_failures, 1)

    def test_waits_for_window(self):
        """When the window is full, execute_gated() should poll until it frees up."""
        limiter = _make_limiter(self.clock, requests_per_minute=1)
        start = self.clock.now
        limiter.execute_gated(lambda: None)
        limiter.execute_gated(lambda: None)
        self.assertGreaterEqual(self.clock.now - start, 59.5)
        self.assertTrue(self.clock.sleeps)


class TestAdaptation(unittest.TestCase):
    """Verify adapt_to_signal(), reset() and stats()."""

    def setUp(self):
        self.clock = FakeClock()

    def test_captcha_tightens(self):
        """A captcha should double the base delay and halve throughput."""
        limiter = _make_limiter(self.clock)
        limiter.adapt_to_signal(DetectionSignal(captcha_detected=True))
        self.assertEqual(limiter.base_delay, 4.0)
        self.assertEqual(limiter.requests_per_minute, 15)

    def test_ip_block_goes_to_minimum_throughput(self):
        """An IP block should jump to the maximum delay and one request per minute."""
        limiter = _make_limiter(self.clock)
        limiter.adapt_to_signal(DetectionSignal(ip_blocked=True))
        self.assertEqual(limiter.base_delay, 10.0)
        self.assertEqual(limiter.requests_per_minute, 1)

    def test_healthy_signal_changes_nothing(self):
        """A good success rate should leave the limiter untouched."""
        limiter = _make_limiter(self.clock)
        limiter.adapt_to_signal(DetectionSignal(recent_success_rate=0.9))
        self.assertEqual(limiter.base_delay, 2.0)
        self.assertEqual(limiter.requests_per_minute, 30)

    def test_reset_restores_configuration(self):
        """reset() should restore the configured delay and throughput and clear state."""
        limiter = _make_limiter(self.clock)
        limiter.admit()
        limiter.release(False)
        limiter.adapt_to_signal(DetectionSignal(ip_blocked=True))
        limiter.reset()
        self.assertEqual(
            limiter.stats(),
            {
                "active_requests": 0,
                "recent_requests": 0,
                "consecutive_failures": 0,
                "backoff_multiplier": 1.0,
                "current_delay": 2.0,
            },
        )
        self.assertEqual(limiter.requests_per_minute, 30)


if __name__ == "__main__":
    unittest.main()
