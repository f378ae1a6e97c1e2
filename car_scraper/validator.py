from __future__ import annotations

import copy
import json
import re
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from . import settings
from .hashing import canonical_hash
from .models import CarRecord, ValidationResult

VEHICLE_TYPES = ("Sedan", "SUV", "Hatchback", "Coupe", "Sports car", "Crossover", "All")
COUNTRIES = ("US", "UK", "CA", "AU", "DE", "JP", "IN", "FR", "IT", "ES")
SECURITY_LEVELS = ("minimal", "standard", "strict", "stealth")

MAX_RESULTS_RANGE = (1, 1000)
RATE_LIMIT_DELAY_RANGE = (500, 10000)

MIN_YEAR = 1990
MAX_PRICE = 1_000_000
MAX_HORSEPOWER = 2000
MAX_COMBINED_MPG = 100
MAX_STRING_LENGTH = 200

# Completeness weights; the keyed fields only count when they hold at least one key.
SCORE_WEIGHTS = {
    "manufacturer": 15,
    "model": 15,
    "year": 10,
    "price": 20,
    "performance": 15,
    "specifications": 10,
    "features": 10,
    "dimensions": 5,
}
_KEYED_FIELDS = ("price", "performance", "specifications")

_MALICIOUS_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
]
_UNSAFE_CHARS = re.compile(r"[<>\"']")

_PII_PATTERNS = {
    "email": re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"),
    "phone": re.compile(r"(?<![\w.])\+?1?[\s.-]?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?![\w.])"),
    "vin": re.compile(r"\b[A-HJ-NPR-Z0-9]{17}\b"),
}

_MAX_SANITIZE_PASSES = 5


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").replace("$", "").strip())
        except ValueError:
            return None
    return None


def _nested(data: Mapping[str, Any], section: str) -> Mapping[str, Any]:
    value = data.get(section)
    return value if isinstance(value, dict) else {}


class DataValidator:
    """Schema checks, sanitisation and completeness scoring for car records.

    Results are memoised by an order-independent hash of the record content,
    so identical content always yields the identical result."""

    def __init__(self, allowed_domains: Optional[Iterable[str]] = None) -> None:
        self._allowed_domains = list(allowed_domains) if allowed_domains is not None else list(settings.ALLOWED_DOMAINS)
        self._lock = threading.Lock()
        self._cache: Dict[str, ValidationResult] = {}

    # -- run configuration ----------------------------------------------------

    def validate_input(self, config: Mapping[str, Any]) -> Dict[str, Any]:
        """Check a run configuration and report every violation at once."""
        errors: List[str] = []

        vehicle_type = config.get("vehicleType")
        if not vehicle_type:
            errors.append("vehicleType is required")
        elif vehicle_type not in VEHICLE_TYPES:
            errors.append("Invalid vehicleType")

        if config.get("maxResults") is not None:
            max_results = _as_int(config["maxResults"])
            lo, hi = MAX_RESULTS_RANGE
            if max_results is None or not lo <= max_results <= hi:
                errors.append(f"maxResults must be between {lo} and {hi}")

        country = config.get("country")
        if country and country not in COUNTRIES:
            errors.append("Invalid country code")

        level = config.get("securityLevel")
        if level and level not in SECURITY_LEVELS:
            errors.append("Invalid securityLevel")

        if config.get("rateLimitDelay") is not None:
            delay = _as_int(config["rateLimitDelay"])
            lo, hi = RATE_LIMIT_DELAY_RANGE
            if delay is None or not lo <= delay <= hi:
                errors.append(f"rateLimitDelay must be between {lo} and {hi}")

        manufacturers = config.get("manufacturers")
        if manufacturers is not None and (
            not isinstance(manufacturers, list) or not all(isinstance(m, str) and m.strip() for m in manufacturers)
        ):
            errors.append("manufacturers must be a list of non-empty strings")

        return {"valid": not errors, "errors": errors}

    # -- records --------------------------------------------------------------

    def validate_record(self, record: Union[CarRecord, Mapping[str, Any]]) -> ValidationResult:
        """Validate, sanitise and score a record.

        Range checks run on the sanitised content, which keeps the result
        stable when a sanitised record is validated again."""
        data = record.to_dict() if isinstance(record, CarRecord) else CarRecord.from_dict(record).to_dict()
        key = canonical_hash(data)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return self._detached(cached)

        sanitized = self._sanitize(data)
        errors: List[str] = []
        warnings: List[str] = []

        for name, label in (("manufacturer", "Manufacturer"), ("model", "Model")):
            value = sanitized.get(name)
            if not isinstance(value, str) or not value.strip():
                errors.append(f"{label} is required")

        max_year = datetime.now().year + 2
        year = sanitized.get("year")
        if year is None or year == "":
            warnings.append("Year is missing")
        else:
            parsed_year = _as_int(year)
            if parsed_year is None or not MIN_YEAR <= parsed_year <= max_year:
                errors.append(f"Year must be between {MIN_YEAR} and {max_year}")

        price = _nested(sanitized, "price")
        if price.get("starting_msrp") is None:
            warnings.append("Price is missing or estimated")
        else:
            msrp = _as_number(price["starting_msrp"])
            if msrp is None or not 0 <= msrp <= MAX_PRICE:
                errors.append("Price must be between 0 and 1,000,000")
            elif price.get("is_estimated"):
                warnings.append("Price is estimated")

        horsepower = _nested(sanitized, "performance").get("horsepower")
        if horsepower is not None:
            hp = _as_number(horsepower)
            if hp is None or not 0 <= hp <= MAX_HORSEPOWER:
                warnings.append("Horsepower value seems unrealistic")

        combined = _nested(sanitized, "fuel_economy").get("combined")
        if combined is not None:
            mpg = _as_number(combined)
            if mpg is None or not 0 <= mpg <= MAX_COMBINED_MPG:
                warnings.append("Fuel economy value seems unrealistic")

        result = ValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            data=CarRecord.from_dict(sanitized),
            score=self.calculate_score(sanitized),
        )
        with self._lock:
            self._cache[key] = result
        return self._detached(result)

    @staticmethod
    def calculate_score(data: Mapping[str, Any]) -> int:
        score = 0
        for field_name, weight in SCORE_WEIGHTS.items():
            value = data.get(field_name)
            if field_name in _KEYED_FIELDS:
                if isinstance(value, dict) and value:
                    score += weight
            elif isinstance(value, (list, dict)):
                score += weight
            elif value:
                score += weight
        return min(100, score)

    # -- sanitisation ---------------------------------------------------------

    @staticmethod
    def sanitize_string(value: str) -> str:
        return _UNSAFE_CHARS.sub("", value).strip()[:MAX_STRING_LENGTH].rstrip()

    @staticmethod
    def remove_malicious_content(value: Any) -> Any:
        """Strip script tags, script URIs and inline handlers from every string."""
        if isinstance(value, str):
            for pattern in _MALICIOUS_PATTERNS:
                value = pattern.sub("", value)
            return value
        if isinstance(value, list):
            return [DataValidator.remove_malicious_content(v) for v in value]
        if isinstance(value, dict):
            return {k: DataValidator.remove_malicious_content(v) for k, v in value.items()}
        return value

    def _sanitize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = data
        for _ in range(_MAX_SANITIZE_PASSES):
            candidate = self._clean_strings(self.remove_malicious_content(cleaned))
            if candidate == cleaned:
                break
            cleaned = candidate
        return cleaned

    def _clean_strings(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.sanitize_string(value)
        if isinstance(value, list):
            return [self._clean_strings(v) for v in value]
        if isinstance(value, dict):
            return {k: self._clean_strings(v) for k, v in value.items()}
        return value

    # -- advisory checks ------------------------------------------------------

    @staticmethod
    def check_for_pii(data: Union[CarRecord, Mapping[str, Any]]) -> Dict[str, Any]:
        """Scan the serialised record for emails, phone numbers and VINs. Advisory only."""
        payload = data.to_dict() if isinstance(data, CarRecord) else data
        text = json.dumps(payload, ensure_ascii=False, default=str)
        found: List[str] = []
        for pattern in _PII_PATTERNS.values():
            found.extend(m.group(0) for m in pattern.finditer(text))
        return {"has_pii": bool(found), "pii_found": found, "count": len(found)}

    def validate_url(self, url: Any) -> Dict[str, Any]:
        if not url or not isinstance(url, str):
            return {"valid": False, "error": "URL is required"}
        try:
            parts = urlsplit(url)
            host = (parts.hostname or "").lower()
        except ValueError:
            return {"valid": False, "error": "Invalid URL format"}
        if parts.scheme not in ("http", "https"):
            return {"valid": False, "error": "Invalid protocol"}
        if not host:
            return {"valid": False, "error": "Invalid URL format"}
        if not any(host == d or host.endswith("." + d) for d in self._allowed_domains):
            return {"valid": False, "error": "Domain not allowed"}
        return {"valid": True}

    # -- cache ----------------------------------------------------------------

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    @staticmethod
    def _detached(result: ValidationResult) -> ValidationResult:
        """Copy a result so callers cannot mutate the cached instance."""
        return replace(
            result,
            errors=list(result.errors),
            warnings=list(result.warnings),
            data=copy.deepcopy(result.data),
        )
