from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .audit import EventType, SecurityAudit
from .base import BaseSource
from .exceptions import SourceBlockedError
from .logger import get_logger
from .models import CarRecord, DetectionSignal, SourceQuery
from .rate_limiter import RateLimiter
from .validator import DataValidator

logger = get_logger(__name__)

PRICE_ESTIMATES: Dict[str, int] = {
    "Toyota": 28000, "Honda": 29000, "BMW": 55000,
    "Mercedes-Benz": 60000, "Audi": 52000, "Tesla": 55000,
    "Ford": 32000, "Chevrolet": 30000, "Hyundai": 27000,
    "Kia": 28000, "Nissan": 29000, "Volkswagen": 31000,
    "Mazda": 29000, "Subaru": 30000, "Lexus": 45000,
    "Acura": 38000, "Infiniti": 42000, "Genesis": 48000,
    "Volvo": 47000, "Porsche": 75000, "Jaguar": 55000,
    "Land Rover": 65000,
}
DEFAULT_PRICE_ESTIMATE = 35000

MAX_DISCOVERED_MODELS = 15

_NESTED_FIELDS = ("price", "performance", "specifications", "dimensions", "fuel_economy", "dealer_info", "contact_info")
_SCALAR_FIELDS = ("manufacturer", "model", "year", "vehicle_type")


def has_price_and_horsepower(record: CarRecord) -> bool:
    """Default early-exit policy: stop once price and horsepower are known."""
    return record.price.get("starting_msrp") is not None and record.performance.get("horsepower") is not None


def merge_fragment(target: CarRecord, fragment: Mapping[str, Any]) -> CarRecord:
    """Merge a source fragment into ``target`` in place.

    Scalars overwrite, features are unioned in first-seen order, nested
    sections are merged key by key with later values winning."""
    for key, value in fragment.items():
        if value is None:
            continue
        if key == "features":
            merged = list(target.features)
            for feature in value:
                if feature not in merged:
                    merged.append(feature)
            target.features = merged
        elif key in _NESTED_FIELDS:
            if not isinstance(value, Mapping):
                continue
            current = getattr(target, key)
            setattr(target, key, {**(current if isinstance(current, dict) else {}), **value})
        elif key in _SCALAR_FIELDS:
            if isinstance(value, str) and not value.strip():
                continue
            setattr(target, key, value)
        else:
            logger.debug("Ignoring unknown fragment field %s", key)
    return target


def estimate_price(manufacturer: str, estimates: Optional[Mapping[str, int]] = None) -> int:
    table = PRICE_ESTIMATES if estimates is None else estimates
    return table.get(manufacturer, DEFAULT_PRICE_ESTIMATE)


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def calculate_value_score(record: CarRecord) -> int:
    score = 50

    msrp = _number(record.price.get("starting_msrp"))
    if msrp:
        if msrp < 25000:
            score += 20
        elif msrp < 35000:
            score += 10
        elif msrp > 60000:
            score -= 10

    horsepower = _number(record.performance.get("horsepower"))
    if horsepower:
        if horsepower > 300:
            score += 15
        elif horsepower > 200:
            score += 10

    if record.features:
        score += min(len(record.features), 10)

    combined = _number(record.fuel_economy.get("combined"))
    if combined:
        if combined > 35:
            score += 15
        elif combined > 25:
            score += 5

    return min(max(score, 0), 100)


class SourceAggregator:
    """Builds car records by querying sources in priority order and merging fragments.

    Every fetch is admitted through the RateLimiter and recorded by the
    SecurityAudit. A failing source is retried with backoff, then skipped;
    no single source failure is fatal to a record."""

    def __init__(
        self,
        sources: Sequence[BaseSource],
        rate_limiter: RateLimiter,
        audit: SecurityAudit,
        validator: Optional[DataValidator] = None,
        discovery_source: Optional[BaseSource] = None,
        early_exit: Callable[[CarRecord], bool] = has_price_and_horsepower,
        price_estimates: Optional[Mapping[str, int]] = None,
        max_retries: int = 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sources = list(sources)
        self._rate_limiter = rate_limiter
        self._audit = audit
        self._validator = validator or DataValidator()
        self._discovery_source = discovery_source
        self._early_exit = early_exit
        self._price_estimates = price_estimates
        self._max_retries = max(1, max_retries)
        self._clock = clock

    # -- records --------------------------------------------------------------

    def scrape_details(
        self,
        manufacturer: str,
        model: str,
        country: str,
        vehicle_type: Optional[str] = None,
    ) -> CarRecord:
        now = self._clock()
        record = CarRecord(
            manufacturer=manufacturer,
            model=model,
            year=datetime.fromtimestamp(now).year,
            vehicle_type=vehicle_type,
            scraped_at=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        )

        for source in self._sources:
            fragment = self._fetch_fragment(source, source.build_query(manufacturer, model, country))
            if not fragment:
                continue
            merge_fragment(record, fragment)
            if self._early_exit(record):
                break

        if record.price.get("starting_msrp") is None:
            record.price["starting_msrp"] = estimate_price(manufacturer, self._price_estimates)
            record.price["is_estimated"] = True
        record.price.setdefault("is_estimated", False)

        record.value_score = calculate_value_score(record)
        return record

    def discover_models(self, manufacturer: str, vehicle_type: str, country: str) -> List[str]:
        source = self._discovery_source or next(
            (s for s in self._sources if s.build_discovery_query(manufacturer, vehicle_type, country) is not None),
            None,
        )
        if source is None:
            return []
        query = source.build_discovery_query(manufacturer, vehicle_type, country)
        if query is None:
            return []

        response = self._gated_fetch(source, query)
        if response is None:
            self._audit.log_event(
                EventType.MODELS_CRAWL_FAILED,
                {"manufacturer": manufacturer, "error": "no response"},
            )
            return []
        try:
            models = source.parse_models(response, query)
        except Exception as exc:  # noqa: BLE001
            self._audit.log_event(
                EventType.MODELS_CRAWL_FAILED,
                {"manufacturer": manufacturer, "error": type(exc).__name__},
            )
            return []

        unique: List[str] = []
        for name in models:
            if name not in unique:
                unique.append(name)
        return unique[:MAX_DISCOVERED_MODELS]

    def scrape_manufacturer(
        self,
        manufacturer: str,
        vehicle_type: str,
        country: str,
        limit: int,
        model_delay: Optional[float] = None,
    ) -> List[CarRecord]:
        """Scrape up to ``limit`` discovered models, pausing between models."""
        cars: List[CarRecord] = []
        for model in self.discover_models(manufacturer, vehicle_type, country)[:limit]:
            try:
                cars.append(self.scrape_details(manufacturer, model, country, vehicle_type))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Model %s %s failed: %s", manufacturer, model, exc)
                self._audit.log_event(
                    EventType.MODEL_SCRAPE_ERROR,
                    {"manufacturer": manufacturer, "model": model, "error": str(exc)},
                )
            self._rate_limiter.delay(model_delay)
        return cars

    # -- fetching -------------------------------------------------------------

    def _fetch_fragment(self, source: BaseSource, query: SourceQuery) -> Optional[Dict[str, Any]]:
        response = self._gated_fetch(source, query)
        if response is None:
            return None
        try:
            return source.parse(response, query)
        except Exception as exc:  # noqa: BLE001
            self._audit.log_event(
                EventType.SOURCE_FAILED,
                {"source": source.source_id, "url": query.url, "error": type(exc).__name__},
            )
            return None

    def _gated_fetch(self, source: BaseSource, query: SourceQuery) -> Any:
        """Fetch through the rate limiter with retries; None when the source gave nothing."""
        allowed = self._validator.validate_url(query.url)
        if not allowed["valid"]:
            self._audit.track_blocked_request(query.url, allowed["error"])
            return None

        def task() -> Any:
            self._audit.track_request(query.url)
            return source.run(query)

        attempt = 0
        while True:
            attempt += 1
            try:
                return self._rate_limiter.execute_gated(task)
            except SourceBlockedError as exc:
                self._report_block(query, exc)
                return None
            except Exception as exc:  # noqa: BLE001
                if attempt >= self._max_retries:
                    logger.warning("Source %s gave up on %s: %s", source.source_id, query.url, exc)
                    self._audit.log_event(
                        EventType.SOURCE_FAILED,
                        {"source": source.source_id, "url": query.url, "error": type(exc).__name__},
                    )
                    return None
                self._audit.track_retry(query.url, attempt)
                self._rate_limiter.delay()

    def _report_block(self, query: SourceQuery, exc: SourceBlockedError) -> None:
        self._audit.track_blocked_request(query.url, exc.reason)
        if exc.captcha_detected:
            self._audit.log_event(EventType.CAPTCHA_DETECTED, {"url": query.url, "source": exc.source_id})
        if exc.ip_blocked:
            self._audit.log_event(EventType.IP_BLOCKED, {"url": query.url, "source": exc.source_id})
        self._rate_limiter.adapt_to_signal(
            DetectionSignal(captcha_detected=exc.captcha_detected, ip_blocked=exc.ip_blocked)
        )
