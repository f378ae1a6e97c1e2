from __future__ import annotations

import secrets
import threading
import time
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from . import settings
from .logger import get_logger
from .models import SecurityEvent

logger = get_logger(__name__)

INCIDENT_SEVERITY = 3
TRAIL_EVENT_LIMIT = 100
WINDOW_SECONDS = 60.0

_SENSITIVE_KEYS = ("password", "apiKey", "api_key", "token")


class EventType(str, Enum):
    SESSION_CREATED = "session_created"
    REQUEST_MADE = "request_made"
    RETRY_ATTEMPT = "retry_attempt"
    REQUEST_BLOCKED = "request_blocked"
    CAPTCHA_DETECTED = "captcha_detected"
    IP_BLOCKED = "ip_blocked"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SECURITY_VIOLATION = "security_violation"
    SECURITY_THRESHOLD_EXCEEDED = "security_threshold_exceeded"
    SOURCE_FAILED = "source_failed"
    MODELS_CRAWL_FAILED = "models_crawl_failed"
    MODEL_SCRAPE_ERROR = "model_scrape_error"
    MANUFACTURER_ERROR = "manufacturer_error"
    VALIDATION_FAILED = "validation_failed"
    PII_DETECTED = "pii_detected"
    FINAL_AUDIT = "final_audit"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY: Dict[EventType, int] = {
    EventType.SESSION_CREATED: 1,
    EventType.REQUEST_MADE: 1,
    EventType.RETRY_ATTEMPT: 2,
    EventType.REQUEST_BLOCKED: 3,
    EventType.CAPTCHA_DETECTED: 3,
    EventType.IP_BLOCKED: 4,
    EventType.RATE_LIMIT_EXCEEDED: 3,
    EventType.SECURITY_VIOLATION: 5,
    EventType.SECURITY_THRESHOLD_EXCEEDED: 2,
    EventType.SOURCE_FAILED: 2,
    EventType.MODELS_CRAWL_FAILED: 2,
    EventType.MODEL_SCRAPE_ERROR: 2,
    EventType.MANUFACTURER_ERROR: 2,
    EventType.VALIDATION_FAILED: 2,
    EventType.PII_DETECTED: 2,
    EventType.FINAL_AUDIT: 2,
}

_unmapped = [e.value for e in EventType if e not in _SEVERITY]
if _unmapped:
    raise RuntimeError(f"EventType members without severity: {_unmapped}")


def sanitize_url(url: Any) -> str:
    """Reduce a URL to scheme://host/path, dropping credentials, port and query."""
    try:
        parts = urlsplit(str(url))
        host = parts.hostname
    except ValueError:
        return "invalid_url"
    if not parts.scheme or not host:
        return "invalid_url"
    return f"{parts.scheme}://{host}{parts.path}"


def sanitize_details(details: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    sanitized = dict(details or {})
    for key in _SENSITIVE_KEYS:
        sanitized.pop(key, None)
    if sanitized.get("url"):
        sanitized["url"] = sanitize_url(sanitized["url"])
    return sanitized


class SecurityAudit:
    """Append-only security event ledger with severity-driven thresholds.

    Every event gets a severity from EventType. Events of severity 3 or more
    are also kept as incidents. Threshold breaches are logged as further
    events and scored at the end of the run; the ledger never blocks a
    caller."""

    def __init__(
        self,
        max_requests_per_minute: int = settings.MAX_REQUESTS_PER_MINUTE,
        max_security_incidents: int = settings.MAX_SECURITY_INCIDENTS,
        max_log_size: int = settings.MAX_AUDIT_LOG_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_rpm = max_requests_per_minute
        self._max_incidents = max_security_incidents
        self._clock = clock

        self._lock = threading.RLock()
        self._events: Deque[SecurityEvent] = deque(maxlen=max_log_size)
        self._incidents: List[SecurityEvent] = []
        self._request_times: Deque[float] = deque()
        self._total_events = 0

        self.session_id: Optional[str] = None
        self.start_time = clock()
        self.request_count = 0
        self.blocked_count = 0
        self.retry_count = 0

    def set_session_id(self, session_id: str) -> None:
        self.session_id = session_id
        self.log_event(EventType.SESSION_CREATED, {"sessionId": session_id})

    # -- logging --------------------------------------------------------------

    def log_event(self, event_type: Union[EventType, str], details: Optional[Mapping[str, Any]] = None) -> str:
        """Append an event and run the threshold checks; return the event id.

        Raises ValueError for event type names that are not EventType members."""
        with self._lock:
            event = self._append(EventType(event_type), details)
            self.check_thresholds()
            return event.id

    def check_thresholds(self) -> None:
        """Log advisory events for request-rate and incident-count breaches.

        Events logged here do not trigger a further check."""
        with self._lock:
            now = self._clock()
            cutoff = now - WINDOW_SECONDS
            while self._request_times and self._request_times[0] <= cutoff:
                self._request_times.popleft()

            recent = len(self._request_times)
            if recent > self._max_rpm:
                self._append(
                    EventType.RATE_LIMIT_EXCEEDED,
                    {"current": recent, "limit": self._max_rpm},
                )

            if len(self._incidents) > self._max_incidents:
                self._append(
                    EventType.SECURITY_THRESHOLD_EXCEEDED,
                    {"incidents": len(self._incidents), "limit": self._max_incidents},
                )

    def track_request(self, url: str, method: str = "GET") -> str:
        with self._lock:
            self.request_count += 1
            request_id = secrets.token_hex(4)
            self.log_event(
                EventType.REQUEST_MADE,
                {
                    "id": request_id,
                    "url": url,
                    "method": method,
                    "timestamp": self._iso(self._clock()),
                },
            )
            return request_id

    def track_blocked_request(self, url: str, reason: str) -> str:
        with self._lock:
            self.blocked_count += 1
            return self.log_event(EventType.REQUEST_BLOCKED, {"url": url, "reason": reason})

    def track_retry(self, url: str, attempt: int) -> str:
        with self._lock:
            self.retry_count += 1
            return self.log_event(EventType.RETRY_ATTEMPT, {"url": url, "attempt": attempt})

    # -- reporting ------------------------------------------------------------

    @property
    def events(self) -> List[SecurityEvent]:
        with self._lock:
            return list(self._events)

    @property
    def incidents(self) -> List[SecurityEvent]:
        with self._lock:
            return list(self._incidents)

    def success_rate(self) -> float:
        """Percentage of tracked requests that were not blocked; 0 with no requests."""
        with self._lock:
            if self.request_count == 0:
                return 0.0
            rate = (self.request_count - self.blocked_count) / self.request_count * 100
            return max(0.0, round(rate, 2))

    def has_suspicious_patterns(self) -> bool:
        """True when the same incident type has occurred more than once."""
        with self._lock:
            types = [e.type for e in self._incidents]
            return len(types) != len(set(types))

    def get_audit_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "session_id": self.session_id,
                "processing_time": round(self._clock() - self.start_time, 2),
                "total_requests": self.request_count,
                "blocked_requests": self.blocked_count,
                "retry_count": self.retry_count,
                "security_incidents": len(self._incidents),
                "success_rate": self.success_rate(),
            }

    def get_audit_trail(self) -> Dict[str, Any]:
        """Export the last 100 events and every incident."""
        with self._lock:
            return {
                "session_id": self.session_id,
                "start_time": self._iso(self.start_time),
                "end_time": self._iso(self._clock()),
                "total_events": self._total_events,
                "events": [e.to_dict() for e in list(self._events)[-TRAIL_EVENT_LIMIT:]],
                "incidents": [e.to_dict() for e in self._incidents],
                "suspicious_patterns": self.has_suspicious_patterns(),
            }

    def final_audit(self) -> Dict[str, Any]:
        summary = self.get_audit_summary()
        self.log_event(EventType.FINAL_AUDIT, summary)
        return summary

    # -- internals ------------------------------------------------------------

    def _append(self, event_type: EventType, details: Optional[Mapping[str, Any]]) -> SecurityEvent:
        now = self._clock()
        event = SecurityEvent(
            id=secrets.token_hex(8),
            type=event_type.value,
            timestamp=self._iso(now),
            session_id=self.session_id,
            details=sanitize_details(details),
            severity=event_type.severity,
            created_at=now,
        )
        self._events.append(event)
        self._total_events += 1
        if event_type is EventType.REQUEST_MADE:
            self._request_times.append(now)
        if event.severity >= INCIDENT_SEVERITY:
            self._incidents.append(event)
            logger.warning("Security incident: %s", event.type)
        return event

    @staticmethod
    def _iso(ts: float) -> str:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()
