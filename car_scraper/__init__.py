"""Car listing scraper package.

Collects car specification data from search and listing sites, merges it
across sources, validates and sanitises it, and records every network step
in a security audit ledger.

Key modules:
    models          -- CarRecord, ValidationResult, SecurityEvent dataclasses
    config          -- RunConfig and option domains
    settings        -- environment-driven process settings
    rate_limiter    -- RateLimiter for admission control with backoff
    backoff         -- BackoffStrategy for exponential retry delays
    strategies      -- adaptive throttling strategies
    audit           -- SecurityAudit event ledger
    validator       -- DataValidator for schema checks and sanitisation
    extraction      -- ExtractionAdapter and TextExtractionAdapter
    base            -- BaseSource abstract class
    sources         -- Google, Edmunds and Cars.com sources
    factory         -- SourceFactory, build_rate_limiter and build_aggregator
    aggregator      -- SourceAggregator multi-source merge
    competitors     -- price-band competitor analysis
    report          -- run metadata and security score
    storage         -- checkpoint and output persistence
    orchestrator    -- PipelineOrchestrator run driver
"""

__version__ = "4.0.0"
