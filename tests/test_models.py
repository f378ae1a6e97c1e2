"""Tests for data model classes."""

import unittest

from car_scraper.models import CarRecord, DetectionSignal, ProgressCheckpoint, SecurityEvent, SourceQuery


class TestCarRecord(unittest.TestCase):
    """Verify CarRecord serialisation helpers."""

    def test_to_dict_drops_unset_optional_fields(self):
        """Unset session, hash, competitor and contact fields should be omitted."""
        data = CarRecord(manufacturer="Volvo", model="XC60").to_dict()
        for key in ("session_id", "data_hash", "competitors", "dealer_info", "contact_info"):
            self.assertNotIn(key, data)
        self.assertEqual(data["features"], [])

    def test_from_dict_ignores_unknown_keys(self):
        """Unknown keys should be dropped and missing names default to empty."""
        record = CarRecord.from_dict({"model": "XC60", "colour": "red"})
        self.assertEqual(record.manufacturer, "")
        self.assertEqual(record.model, "XC60")

    def test_from_dict_copies_nested_values(self):
        """The record should not share nested containers with its source mapping."""
        source = {"manufacturer": "Volvo", "model": "XC60", "features": ["sunroof"]}
        record = CarRecord.from_dict(source)
        record.features.append("navigation")
        self.assertEqual(source["features"], ["sunroof"])

    def test_starting_msrp(self):
        """starting_msrp should be 0 unless a numeric price is known."""
        self.assertEqual(CarRecord(manufacturer="Volvo", model="XC60").starting_msrp, 0)
        self.assertEqual(
            CarRecord(manufacturer="Volvo", model="XC60", price={"starting_msrp": 47000}).starting_msrp, 47000
        )
        self.assertEqual(
            CarRecord(manufacturer="Volvo", model="XC60", price={"starting_msrp": "n/a"}).starting_msrp, 0
        )


class TestValueTypes(unittest.TestCase):
    """Verify frozen value types."""

    def test_security_event_to_dict(self):
        """Serialised events should use the sessionId key and omit the raw timestamp."""
        event = SecurityEvent("e1", "ip_blocked", "2024-01-01T00:00:00+00:00", "s1", {"url": "x"}, 4, 1.0)
        self.assertEqual(
            event.to_dict(),
            {
                "id": "e1",
                "type": "ip_blocked",
                "timestamp": "2024-01-01T00:00:00+00:00",
                "sessionId": "s1",
                "details": {"url": "x"},
                "severity": 4,
            },
        )

    def test_query_is_immutable(self):
        """SourceQuery should be frozen."""
        query = SourceQuery("google", "https://www.google.com/search", "Kia")
        self.assertEqual(query.country, "US")
        with self.assertRaises(AttributeError):
            query.url = "https://other.com"

    def test_defaults(self):
        """Signals default to no detection and checkpoints keep their fields."""
        self.assertEqual(DetectionSignal(), DetectionSignal(False, False, None))
        checkpoint = ProgressCheckpoint("Kia", 3, 2, "2024-01-01T00:00:00+00:00")
        self.assertEqual(checkpoint.processed, 3)


if __name__ == "__main__":
    unittest.main()
