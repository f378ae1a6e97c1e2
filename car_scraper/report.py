"""Run metadata: security score, data-quality distribution and price statistics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

from . import __version__
from .models import CarRecord


def calculate_security_score(audit_summary: Mapping[str, Any]) -> int:
    """100 minus 5 per incident, minus 10 above a 10% block rate and 20 more above 30%."""
    score = 100 - 5 * int(audit_summary.get("security_incidents", 0))

    requests = audit_summary.get("total_requests", 0)
    if requests:
        block_rate = audit_summary.get("blocked_requests", 0) / requests
        if block_rate > 0.1:
            score -= 10
        if block_rate > 0.3:
            score -= 20

    return max(0, score)


def quality_bucket(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


def quality_summary(records: Sequence[CarRecord]) -> Dict[str, Any]:
    distribution = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
    for record in records:
        distribution[quality_bucket(record.data_quality)] += 1
    average = sum(r.data_quality for r in records) / len(records) if records else 0
    return {"average_score": round(average), "distribution": distribution}


def price_statistics(records: Sequence[CarRecord]) -> Dict[str, Any]:
    prices = [r.starting_msrp for r in records if r.starting_msrp > 0]
    if not prices:
        return {"average": 0, "min": 0, "max": 0, "count": 0}
    return {
        "average": round(sum(prices) / len(prices)),
        "min": min(prices),
        "max": max(prices),
        "count": len(prices),
    }


def build_metadata(
    records: Sequence[CarRecord],
    processing_time: float,
    success_rate: float,
    audit_summary: Mapping[str, Any],
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "total_records": len(records),
        "processing_time": round(processing_time, 2),
        "success_rate": round(success_rate, 2),
        "security_audit": {
            "score": calculate_security_score(audit_summary),
            "incidents": audit_summary.get("security_incidents", 0),
            "requests": audit_summary.get("total_requests", 0),
            "blocked": audit_summary.get("blocked_requests", 0),
        },
        "data_quality_summary": quality_summary(records),
        "price_statistics": price_statistics(records),
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }
