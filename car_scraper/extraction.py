"""Extraction adapters turning raw page text into partial car records."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

FEATURE_KEYWORDS = (
    "leather seats", "sunroof", "navigation", "bluetooth",
    "apple carplay", "android auto", "backup camera", "blind spot",
    "lane keep", "adaptive cruise", "heated seats", "ventilated seats",
    "premium audio", "wireless charging", "keyless entry", "push button start",
    "parking sensors", "360 camera", "heads up display",
)

MIN_PRICE = 1000
MAX_PRICE = 500000
MAX_MODELS = 15
MAX_TEXT_FIELD = 80

_PRICE = re.compile(r"\$([\d,]+)")
_HORSEPOWER = re.compile(r"(\d+)\s*hp\b|horsepower[:\s]*(\d+)")
_TORQUE = re.compile(r"(\d+)\s*lb-ft|torque[:\s]*(\d+)")
_ACCELERATION = re.compile(r"(\d+\.?\d*)\s*seconds?\s*0-?60|0-?60[:\s]*(\d+\.?\d*)")
# Phrase up to the end of the sentence; a dot between digits ("2.5l") does not end it.
_PHRASE = r"((?:[^.\n]|(?<=\d)\.(?=\d))+)"
_ENGINE = re.compile(r"engine[:\s]+" + _PHRASE)
_TRANSMISSION = re.compile(r"transmission[:\s]+" + _PHRASE)
_DRIVETRAIN = re.compile(r"drivetrain[:\s]+" + _PHRASE + r"|\b(fwd|awd|rwd|4wd)\b")
_FUEL_TYPE = re.compile(r"fuel type[:\s]+" + _PHRASE)
_MPG = {key: re.compile(rf"{key}[:\s]*(\d+)\s*mpg") for key in ("city", "highway", "combined")}
_DIMENSIONS = {
    key: re.compile(rf"{key}[:\s]*(\d+(?:\.\d+)?)\s*(?:in|inches?)\b")
    for key in ("length", "width", "height", "wheelbase")
}
_YEAR_TOKEN = re.compile(r"^(19|20)\d{2}$")


def _first_group(match: Optional[re.Match]) -> Optional[str]:
    if not match:
        return None
    return next((g for g in match.groups() if g), None)


def _clip(text: str) -> str:
    return text.strip()[:MAX_TEXT_FIELD].strip()


class ExtractionAdapter(ABC):
    """Turns page content into a partial car record (a source fragment).

    Extraction is best effort: an empty dict means nothing was found."""

    @abstractmethod
    def extract(self, content: str, manufacturer: str, model: Optional[str]) -> Dict[str, Any]:
        """Return a fragment with any of the CarRecord fields."""

    @abstractmethod
    def extract_models(self, content: str, manufacturer: str) -> List[str]:
        """Return model names mentioned for ``manufacturer`` in first-seen order."""


class TextExtractionAdapter(ExtractionAdapter):
    """Keyword and regex extraction over the visible text of an HTML page."""

    @staticmethod
    def page_text(content: str) -> str:
        soup = BeautifulSoup(content, "lxml")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        return soup.get_text(" ", strip=True)

    def extract(self, content: str, manufacturer: str, model: Optional[str]) -> Dict[str, Any]:
        text = self.page_text(content)
        lower = text.lower()
        fragment: Dict[str, Any] = {}

        price = self.extract_price(text)
        if price:
            fragment["price"] = price
        for key, extractor in (
            ("performance", self.extract_performance),
            ("specifications", self.extract_specifications),
            ("fuel_economy", self.extract_fuel_economy),
            ("dimensions", self.extract_dimensions),
        ):
            value = extractor(lower)
            if value:
                fragment[key] = value
        features = self.extract_features(lower)
        if features:
            fragment["features"] = features
        return fragment

    def extract_models(self, content: str, manufacturer: str) -> List[str]:
        soup = BeautifulSoup(content, "lxml")
        pattern = re.compile(
            rf"(?i:{re.escape(manufacturer)})\s+([A-Z0-9][A-Za-z0-9\-]*(?:\s+[A-Z0-9][A-Za-z0-9\-]*){{0,2}})"
        )
        models: List[str] = []
        for element in soup.select("h1, h2, h3, a"):
            headline = element.get_text(" ", strip=True)
            if len(headline) >= 100:
                continue
            match = pattern.search(headline)
            if not match:
                continue
            tokens = [t for t in match.group(1).split() if not _YEAR_TOKEN.match(t)]
            name = " ".join(tokens)
            if name and name not in models:
                models.append(name)
            if len(models) >= MAX_MODELS:
                break
        return models

    @staticmethod
    def extract_price(text: str) -> Dict[str, Any]:
        prices = []
        for raw in _PRICE.findall(text):
            digits = raw.replace(",", "")
            if digits.isdigit() and MIN_PRICE < int(digits) < MAX_PRICE:
                prices.append(int(digits))
        if not prices:
            return {}
        low, high = min(prices), max(prices)
        return {
            "starting_msrp": low,
            "max_price": high,
            "price_range": f"${low:,} - ${high:,}",
        }

    @staticmethod
    def extract_performance(text: str) -> Dict[str, Any]:
        performance: Dict[str, Any] = {}
        hp = _first_group(_HORSEPOWER.search(text))
        if hp:
            performance["horsepower"] = int(hp)
        torque = _first_group(_TORQUE.search(text))
        if torque:
            performance["torque"] = int(torque)
        accel = _first_group(_ACCELERATION.search(text))
        if accel:
            performance["acceleration_0_60"] = float(accel)
        engine = _first_group(_ENGINE.search(text))
        if engine:
            performance["engine"] = _clip(engine)
        return performance

    @staticmethod
    def extract_features(text: str) -> List[str]:
        return [feature for feature in FEATURE_KEYWORDS if feature in text]

    @staticmethod
    def extract_specifications(text: str) -> Dict[str, Any]:
        specs: Dict[str, Any] = {}
        for key, pattern in (
            ("transmission", _TRANSMISSION),
            ("drivetrain", _DRIVETRAIN),
            ("fuel_type", _FUEL_TYPE),
        ):
            value = _first_group(pattern.search(text))
            if value:
                specs[key] = _clip(value)
        return specs

    @staticmethod
    def extract_fuel_economy(text: str) -> Dict[str, Any]:
        fuel: Dict[str, Any] = {}
        for key, pattern in _MPG.items():
            match = pattern.search(text)
            if match:
                fuel[key] = int(match.group(1))
        return fuel

    @staticmethod
    def extract_dimensions(text: str) -> Dict[str, Any]:
        dims: Dict[str, Any] = {}
        for key, pattern in _DIMENSIONS.items():
            match = pattern.search(text)
            if match:
                dims[key] = f"{match.group(1)} in"
        return dims
