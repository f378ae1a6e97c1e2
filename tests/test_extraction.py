"""Tests for the text extraction adapter."""

import unittest

from car_scraper.extraction import TextExtractionAdapter

PAGE = """
<html>
  <head><style>.price { color: red; }</style><script>var hp = "999 hp";</script></head>
  <body>
    <h1>2025 Toyota Camry</h1>
    <p>Starting at $28,400 and up to $36,500 for the top trim.</p>
    <p>The 225 hp hybrid makes 163 lb-ft and runs 0-60: 7.6 seconds.</p>
    <p>Engine: 2.5L 4-cylinder hybrid. Transmission: CVT automatic. AWD available.</p>
    <p>City 51 mpg, highway 49 mpg, combined 50 mpg.</p>
    <p>Length: 193.5 inches. Width 72.4 in.</p>
    <ul><li>Apple CarPlay</li><li>Heated seats</li><li>Blind spot monitor</li></ul>
  </body>
</html>
"""

LISTING = """
<html><body>
  <h2>Toyota Camry 2025</h2>
  <a href="/rav4">Toyota RAV4</a>
  <h3>Toyota Camry</h3>
  <a href="/reviews">Toyota reviews and news</a>
  <h2>Honda Civic</h2>
</body></html>
"""


class TestExtract(unittest.TestCase):
    """Verify fragment extraction from a research page."""

    def setUp(self):
        self.fragment = TextExtractionAdapter().extract(PAGE, "Toyota", "Camry")

    def test_price(self):
        """The lowest and highest prices should become the MSRP range."""
        self.assertEqual(
            self.fragment["price"],
            {"starting_msrp": 28400, "max_price": 36500, "price_range": "$28,400 - $36,500"},
        )

    def test_performance(self):
        """Horsepower, torque, 0-60 and engine should be extracted, ignoring scripts."""
        performance = self.fragment["performance"]
        self.assertEqual(performance["horsepower"], 225)
        self.assertEqual(performance["torque"], 163)
        self.assertEqual(performance["acceleration_0_60"], 7.6)
        self.assertEqual(performance["engine"], "2.5l 4-cylinder hybrid")

    def test_specifications(self):
        """Transmission and drivetrain should be extracted."""
        self.assertEqual(self.fragment["specifications"]["transmission"], "cvt automatic")
        self.assertEqual(self.fragment["specifications"]["drivetrain"], "awd")

    def test_fuel_economy_and_dimensions(self):
        """MPG figures and dimensions should be extracted."""
        self.assertEqual(self.fragment["fuel_economy"], {"city": 51, "highway": 49, "combined": 50})
        self.assertEqual(self.fragment["dimensions"], {"length": "193.5 in", "width": "72.4 in"})

    def test_features(self):
        """Known feature keywords should be listed."""
        self.assertEqual(self.fragment["features"], ["apple carplay", "blind spot", "heated seats"])

    def test_empty_page_gives_empty_fragment(self):
        """A page without any hints should produce an empty fragment."""
        self.assertEqual(TextExtractionAdapter().extract("<p>Nothing here</p>", "Toyota", "Camry"), {})

    def test_out_of_range_prices_are_ignored(self):
        """Dollar amounts outside 1,000 to 500,000 should not count as prices."""
        self.assertEqual(TextExtractionAdapter.extract_price("Fee $500. Hypercar $2,500,000."), {})


class TestExtractModels(unittest.TestCase):
    """Verify model name discovery from headlines."""

    def test_models_in_first_seen_order(self):
        """Model names should drop years, be unique and belong to the manufacturer."""
        self.assertEqual(TextExtractionAdapter().extract_models(LISTING, "Toyota"), ["Camry", "RAV4"])


if __name__ == "__main__":
    unittest.main()
