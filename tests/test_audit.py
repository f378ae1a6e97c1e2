"""Tests for the SecurityAudit ledger."""

import unittest

from car_scraper.audit import EventType, SecurityAudit, sanitize_details, sanitize_url


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now


def _make_audit(clock=None, **overrides):
    params = dict(max_requests_per_minute=30, max_security_incidents=10, max_log_size=10000)
    params.update(overrides)
    return SecurityAudit(clock=clock or FakeClock(), **params)


def _types(audit, event_type):
    return [e for e in audit.events if e.type == event_type.value]


class TestEventTypes(unittest.TestCase):
    """Verify the event type table."""

    def test_every_type_has_a_severity(self):
        """Each EventType member should map to a severity between 1 and 5."""
        for event_type in EventType:
            self.assertIn(event_type.severity, range(1, 6))

    def test_unknown_type_is_rejected(self):
        """Logging an undeclared event type should raise ValueError."""
        with self.assertRaises(ValueError):
            _make_audit().log_event("made_up_event")

    def test_string_types_are_accepted(self):
        """A known type passed by name should be logged like the enum member."""
        audit = _make_audit()
        audit.log_event("source_failed", {"source": "edmunds"})
        self.assertEqual(audit.events[-1].severity, 2)


class TestThresholds(unittest.TestCase):
    """Verify request-rate and incident-count threshold events."""

    def test_31_requests_trigger_one_rate_limit_event(self):
        """The 31st request within a minute should log exactly one rate_limit_exceeded."""
        audit = _make_audit()
        for i in range(31):
            audit.track_request(f"https://www.edmunds.com/page/{i}")
        self.assertEqual(len(_types(audit, EventType.RATE_LIMIT_EXCEEDED)), 1)

    def test_event_repeats_while_condition_holds(self):
        """Each further check while over the limit should log another event."""
        audit = _make_audit()
        for i in range(32):
            audit.track_request(f"https://www.edmunds.com/page/{i}")
        self.assertEqual(len(_types(audit, EventType.RATE_LIMIT_EXCEEDED)), 2)

    def test_old_requests_leave_the_window(self):
        """Requests older than a minute should not count toward the rate."""
        clock = FakeClock()
        audit = _make_audit(clock)
        for _ in range(30):
            audit.track_request("https://www.edmunds.com/")
        clock.now += 61
        audit.track_request("https://www.edmunds.com/")
        self.assertEqual(_types(audit, EventType.RATE_LIMIT_EXCEEDED), [])

    def test_incident_threshold_does_not_recurse(self):
        """Crossing the incident limit should log a threshold event without looping."""
        audit = _make_audit(max_security_incidents=2)
        for _ in range(3):
            audit.track_blocked_request("https://www.google.com/search", "HTTP_429")
        threshold = _types(audit, EventType.SECURITY_THRESHOLD_EXCEEDED)
        self.assertEqual(len(threshold), 1)
        self.assertEqual(threshold[0].details, {"incidents": 3, "limit": 2})
        self.assertEqual(len(audit.incidents), 3)


class TestCounters(unittest.TestCase):
    """Verify request counters, success rate and suspicious patterns."""

    def test_success_rate_without_requests(self):
        """No requests should give a success rate of 0."""
        self.assertEqual(_make_audit().success_rate(), 0.0)

    def test_success_rate(self):
        """Blocked requests should reduce the success rate."""
        audit = _make_audit()
        for _ in range(10):
            audit.track_request("https://www.cars.com/")
        audit.track_blocked_request("https://www.cars.com/", "HTTP_403")
        audit.track_blocked_request("https://www.cars.com/", "HTTP_403")
        self.assertEqual(audit.success_rate(), 80.0)

    def test_only_severe_events_are_incidents(self):
        """Severity 3 and above should be kept as incidents."""
        audit = _make_audit()
        audit.track_retry("https://www.cars.com/", 1)
        audit.log_event(EventType.IP_BLOCKED, {"url": "https://www.cars.com/"})
        self.assertEqual([e.type for e in audit.incidents], ["ip_blocked"])
        self.assertEqual(audit.retry_count, 1)

    def test_suspicious_patterns(self):
        """A repeated incident type should be flagged as suspicious."""
        audit = _make_audit()
        audit.log_event(EventType.CAPTCHA_DETECTED)
        self.assertFalse(audit.has_suspicious_patterns())
        audit.log_event(EventType.CAPTCHA_DETECTED)
        self.assertTrue(audit.has_suspicious_patterns())


class TestReporting(unittest.TestCase):
    """Verify summary, trail and final audit."""

    def test_summary_fields(self):
        """The summary should expose the documented fields."""
        clock = FakeClock()
        audit = _make_audit(clock)
        audit.set_session_id("abc123")
        audit.track_request("https://www.google.com/search")
        clock.now += 2.5
        summary = audit.get_audit_summary()
        self.assertEqual(summary["session_id"], "abc123")
        self.assertEqual(summary["processing_time"], 2.5)
        self.assertEqual(summary["total_requests"], 1)
        self.assertEqual(summary["success_rate"], 100.0)

    def test_final_audit_is_last_event(self):
        """final_audit() should log its summary as the last event."""
        audit = _make_audit()
        summary = audit.final_audit()
        last = audit.events[-1]
        self.assertEqual(last.type, "final_audit")
        self.assertEqual(last.details["total_requests"], summary["total_requests"])

    def test_trail_is_bounded(self):
        """The trail should export at most 100 events but count every event."""
        audit = _make_audit()
        audit.set_session_id("s1")
        for _ in range(150):
            audit.log_event(EventType.SOURCE_FAILED)
        trail = audit.get_audit_trail()
        self.assertEqual(len(trail["events"]), 100)
        self.assertEqual(trail["total_events"], 151)
        self.assertEqual(trail["events"][0]["sessionId"], "s1")

    def test_log_is_bounded(self):
        """The in-memory log should keep only the newest events."""
        audit = _make_audit(max_log_size=5)
        for _ in range(8):
            audit.log_event(EventType.SOURCE_FAILED)
        self.assertEqual(len(audit.events), 5)


class TestSanitisation(unittest.TestCase):
    """Verify event detail scrubbing."""

    def test_url_is_reduced(self):
        """Credentials, port and query should be dropped from URLs."""
        self.assertEqual(
            sanitize_url("https://user:pw@www.google.com:8443/search?q=secret"),
            "https://www.google.com/search",
        )
        self.assertEqual(sanitize_url("not a url"), "invalid_url")

    def test_sensitive_keys_are_removed(self):
        """Passwords and tokens should never be stored."""
        details = sanitize_details({"password": "x", "token": "y", "apiKey": "z", "source": "google"})
        self.assertEqual(details, {"source": "google"})


if __name__ == "__main__":
    unittest.main()
