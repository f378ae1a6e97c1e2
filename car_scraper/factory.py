from __future__ import annotations

from typing import Dict, Optional, Sequence

from .audit import SecurityAudit
from .aggregator import SourceAggregator
from .base import BaseSource
from .config import JITTER_SECONDS, MAX_CONCURRENT_REQUESTS, MAX_DELAY_SECONDS, RunConfig
from .rate_limiter import RateLimiter
from .sources import CarsComSource, EdmundsSource, GoogleSearchSource
from .validator import DataValidator

DEFAULT_SOURCE_ORDER = ("google", "edmunds", "cars_com")


class SourceFactory:
    """Creates source instances by id.

    Sources hold no per-request state, so one instance per id is cached and
    shared across models and manufacturers."""

    def __init__(self, timeout: int = 20, cache: bool = True) -> None:
        self._timeout = timeout
        self._cache_enabled = cache
        self._cache: Dict[str, BaseSource] = {}

    def create_source(self, source_id: str) -> BaseSource:
        if self._cache_enabled and source_id in self._cache:
            return self._cache[source_id]

        if source_id == "google":
            source: BaseSource = GoogleSearchSource(timeout=self._timeout)
        elif source_id == "edmunds":
            source = EdmundsSource(timeout=self._timeout)
        elif source_id == "cars_com":
            source = CarsComSource(timeout=self._timeout)
        else:
            raise ValueError(f"Unknown source_id: {source_id}")

        if self._cache_enabled:
            self._cache[source_id] = source
        return source

    def create_sources(self, source_ids: Sequence[str] = DEFAULT_SOURCE_ORDER) -> list[BaseSource]:
        return [self.create_source(source_id) for source_id in source_ids]


def build_rate_limiter(config: RunConfig, **kwargs) -> RateLimiter:
    """RateLimiter tuned to the configured security level."""
    preset = config.rate_limit_preset()
    return RateLimiter(
        base_delay=preset["base_delay"],
        max_delay=MAX_DELAY_SECONDS,
        jitter=JITTER_SECONDS,
        requests_per_minute=int(preset["requests_per_minute"]),
        concurrent_requests=MAX_CONCURRENT_REQUESTS,
        **kwargs,
    )


def build_aggregator(
    config: RunConfig,
    audit: SecurityAudit,
    validator: DataValidator,
    sources: Optional[Sequence[BaseSource]] = None,
    rate_limiter: Optional[RateLimiter] = None,
    discovery_source: Optional[BaseSource] = None,
) -> SourceAggregator:
    """Wire a SourceAggregator for one run; HTTP sources are used unless given."""
    if sources is None:
        sources = SourceFactory().create_sources()
    return SourceAggregator(
        sources=sources,
        rate_limiter=rate_limiter or build_rate_limiter(config),
        audit=audit,
        validator=validator,
        discovery_source=discovery_source,
    )
