"""Tests for run metadata and the security score."""

import unittest

from car_scraper import __version__
from car_scraper.models import CarRecord
from car_scraper.report import build_metadata, calculate_security_score, price_statistics, quality_summary


def _summary(incidents=0, requests=10, blocked=0):
    return {"security_incidents": incidents, "total_requests": requests, "blocked_requests": blocked}


def _make_car(price=None, quality=0):
    record = CarRecord(manufacturer="Ford", model="Escape", data_quality=quality)
    if price is not None:
        record.price = {"starting_msrp": price}
    return record


class TestSecurityScore(unittest.TestCase):
    """Verify the security score formula."""

    def test_clean_run_scores_100(self):
        """No incidents and no blocks out of 10 requests should score 100."""
        self.assertEqual(calculate_security_score(_summary()), 100)

    def test_incidents_cost_five_each(self):
        """Three incidents should score 85."""
        self.assertEqual(calculate_security_score(_summary(incidents=3)), 85)

    def test_block_rate_penalties(self):
        """Block rates above 10% and 30% should cost 10 and a further 20."""
        self.assertEqual(calculate_security_score(_summary(blocked=1)), 100)
        self.assertEqual(calculate_security_score(_summary(blocked=2)), 90)
        self.assertEqual(calculate_security_score(_summary(blocked=4)), 70)

    def test_floor_at_zero(self):
        """The score should never be negative."""
        self.assertEqual(calculate_security_score(_summary(incidents=40, blocked=10)), 0)

    def test_no_requests(self):
        """A run without requests should only be scored on incidents."""
        self.assertEqual(calculate_security_score(_summary(requests=0)), 100)


class TestSummaries(unittest.TestCase):
    """Verify quality and price summaries."""

    def test_quality_distribution(self):
        """Records should fall into the four quality buckets."""
        cars = [_make_car(quality=q) for q in (100, 90, 89, 70, 60, 40)]
        summary = quality_summary(cars)
        self.assertEqual(summary["distribution"], {"excellent": 2, "good": 2, "fair": 1, "poor": 1})
        self.assertEqual(summary["average_score"], 75)

    def test_price_statistics_skip_unknown_prices(self):
        """Only records with a known price should count."""
        stats = price_statistics([_make_car(20000), _make_car(30000), _make_car()])
        self.assertEqual(stats, {"average": 25000, "min": 20000, "max": 30000, "count": 2})

    def test_price_statistics_empty(self):
        """Without prices every statistic should be zero."""
        self.assertEqual(price_statistics([]), {"average": 0, "min": 0, "max": 0, "count": 0})


class TestBuildMetadata(unittest.TestCase):
    """Verify the metadata document."""

    def test_fields(self):
        """Metadata should carry counts, audit figures and the package version."""
        metadata = build_metadata(
            [_make_car(25000, 80)],
            processing_time=12.3456,
            success_rate=100,
            audit_summary=_summary(incidents=1, requests=4, blocked=1),
            timestamp="2024-01-01T00:00:00+00:00",
        )
        self.assertEqual(metadata["total_records"], 1)
        self.assertEqual(metadata["processing_time"], 12.35)
        self.assertEqual(metadata["security_audit"], {"score": 85, "incidents": 1, "requests": 4, "blocked": 1})
        self.assertEqual(metadata["timestamp"], "2024-01-01T00:00:00+00:00")
        self.assertEqual(metadata["version"], __version__)


if __name__ == "__main__":
    unittest.main()
