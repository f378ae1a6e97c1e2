from __future__ import annotations

import math
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from . import settings
from .audit import EventType, SecurityAudit
from .base import BaseSource
from .competitors import add_competitor_analysis
from .config import RunConfig
from .factory import build_aggregator, build_rate_limiter
from .logger import get_logger
from .models import CarRecord, DetectionSignal, ProgressCheckpoint
from .report import build_metadata
from .storage import StorageBase
from .transforms import apply_security_transformations, generate_key, seal_record
from .validator import DataValidator

logger = get_logger(__name__)


class PipelineOrchestrator:
    """Drives one scraping run per call to run().

    Manufacturers are processed strictly in order. Each run gets its own
    SecurityAudit, RateLimiter and session id; nothing is shared between
    runs except the validator cache and the optional checkpoint store.

    Records are kept in plaintext while the run is in progress so that
    competitor analysis and price statistics see real prices. Encryption and
    the integrity hash are applied when the output is assembled."""

    def __init__(
        self,
        sources: Optional[Sequence[BaseSource]] = None,
        discovery_source: Optional[BaseSource] = None,
        validator: Optional[DataValidator] = None,
        checkpoint_store: Optional[StorageBase] = None,
        encryption_key: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._sources = sources
        self._discovery_source = discovery_source
        self._validator = validator or DataValidator()
        self._checkpoint_store = checkpoint_store
        self._encryption_key = encryption_key or settings.ENCRYPTION_KEY or None
        self._clock = clock
        self._sleep = sleep

    def run(self, config: Union[RunConfig, Mapping[str, Any]]) -> Dict[str, Any]:
        """Execute a run and return ``{data, metadata, security}``.

        Raises ConfigurationError before any network activity when the input
        is invalid. Every later failure is recorded and skipped."""
        if not isinstance(config, RunConfig):
            config = RunConfig.from_input(config, self._validator)

        start = self._clock()
        session_id = secrets.token_hex(16)
        audit = SecurityAudit(clock=self._clock)
        audit.set_session_id(session_id)
        rate_limiter = build_rate_limiter(config, clock=self._clock, sleep=self._sleep)
        aggregator = build_aggregator(
            config,
            audit,
            self._validator,
            sources=self._sources,
            rate_limiter=rate_limiter,
            discovery_source=self._discovery_source,
        )

        manufacturers = config.manufacturer_list
        per_manufacturer = math.ceil(config.max_results / len(manufacturers))
        accepted: List[CarRecord] = []
        processed = 0

        logger.info(
            "Run %s: %d manufacturers, vehicle type %s, max %d results",
            session_id,
            len(manufacturers),
            config.vehicle_type,
            config.max_results,
        )

        for manufacturer in manufacturers:
            if len(accepted) >= config.max_results:
                logger.info("Reached maximum results limit (%d)", config.max_results)
                break

            try:
                cars = aggregator.scrape_manufacturer(
                    manufacturer,
                    config.vehicle_type,
                    config.country,
                    per_manufacturer,
                    model_delay=config.rate_limit_delay,
                )
                valid = self._accept(cars, config, audit, session_id)
                processed += len(cars)
                accepted.extend(valid)
                logger.info("%s: %d of %d records accepted", manufacturer, len(valid), len(cars))
                self._checkpoint(manufacturer, len(accepted))
            except Exception as exc:  # noqa: BLE001
                logger.error("Error with %s: %s", manufacturer, exc)
                audit.log_event(EventType.MANUFACTURER_ERROR, {"manufacturer": manufacturer, "error": str(exc)})

            if audit.request_count:
                rate_limiter.adapt_to_signal(DetectionSignal(recent_success_rate=audit.success_rate() / 100))
            rate_limiter.delay(config.rate_limit_delay * 2)

        del accepted[config.max_results:]

        if config.include_competitors and len(accepted) > 1:
            add_competitor_analysis(accepted)

        success_rate = len(accepted) / processed * 100 if processed else 0.0
        metadata = build_metadata(
            accepted,
            processing_time=self._clock() - start,
            success_rate=success_rate,
            audit_summary=audit.final_audit(),
            timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
        )

        key = None
        if config.encrypt_sensitive_data:
            key = self._encryption_key or generate_key()
        return {
            "data": [seal_record(car, key) for car in accepted],
            "metadata": metadata,
            "security": audit.get_audit_trail(),
        }

    def _accept(
        self,
        cars: Sequence[CarRecord],
        config: RunConfig,
        audit: SecurityAudit,
        session_id: str,
    ) -> List[CarRecord]:
        """Transform and validate one manufacturer's records, keeping the valid ones."""
        scraped_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
        valid: List[CarRecord] = []
        for car in cars:
            apply_security_transformations(car, session_id, scraped_at, config.anonymize_data)
            result = self._validator.validate_record(car)
            if not result.valid:
                audit.log_event(
                    EventType.VALIDATION_FAILED,
                    {"manufacturer": car.manufacturer, "model": car.model, "errors": result.errors},
                )
                continue

            record = result.data
            pii = self._validator.check_for_pii(record)
            if pii["has_pii"]:
                audit.log_event(
                    EventType.PII_DETECTED,
                    {"manufacturer": record.manufacturer, "model": record.model, "count": pii["count"]},
                )
                record.security_flags.append("pii_detected")
            valid.append(record)
        return valid

    def _checkpoint(self, manufacturer: str, accepted_count: int) -> None:
        """Record progress; both counters carry the running number of accepted records."""
        if self._checkpoint_store is None:
            return
        self._checkpoint_store.write(
            ProgressCheckpoint(
                manufacturer=manufacturer,
                processed=accepted_count,
                total=accepted_count,
                timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
            )
        )
