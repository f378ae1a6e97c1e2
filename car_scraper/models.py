from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional


# Fields dropped from the serialised record while unset.
_OPTIONAL_KEYS = ("session_id", "data_hash", "competitors", "dealer_info", "contact_info")


@dataclass
class CarRecord:
    """A merged car record accumulated from one or more source fragments."""

    manufacturer: str
    model: str
    year: Optional[int] = None
    vehicle_type: Optional[str] = None
    price: Dict[str, Any] = field(default_factory=dict)
    performance: Dict[str, Any] = field(default_factory=dict)
    features: List[str] = field(default_factory=list)
    specifications: Dict[str, Any] = field(default_factory=dict)
    dimensions: Dict[str, Any] = field(default_factory=dict)
    fuel_economy: Dict[str, Any] = field(default_factory=dict)
    value_score: int = 0
    data_quality: int = 0
    scraped_at: Optional[str] = None
    session_id: Optional[str] = None
    security_flags: List[str] = field(default_factory=list)
    data_hash: Optional[str] = None
    competitors: Optional[List[Dict[str, Any]]] = None
    dealer_info: Optional[Dict[str, Any]] = None
    contact_info: Optional[Dict[str, Any]] = None

    @property
    def starting_msrp(self) -> float:
        """Known starting price, or 0 when the price is unknown."""
        price = self.price if isinstance(self.price, dict) else {}
        value = price.get("starting_msrp")
        return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in _OPTIONAL_KEYS:
            if data[key] is None:
                del data[key]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CarRecord":
        """Build a record from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: copy.deepcopy(v) for k, v in data.items() if k in known}
        kwargs.setdefault("manufacturer", "")
        kwargs.setdefault("model", "")
        return cls(**kwargs)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str]
    warnings: List[str]
    data: CarRecord
    score: int


@dataclass(frozen=True)
class SecurityEvent:
    id: str
    type: str
    timestamp: str
    session_id: Optional[str]
    details: Dict[str, Any]
    severity: int
    created_at: float = field(default=0.0, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "details": copy.deepcopy(self.details),
            "severity": self.severity,
        }


@dataclass(frozen=True)
class SourceQuery:
    source_id: str
    url: str
    manufacturer: str
    model: Optional[str] = None
    country: str = "US"
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DetectionSignal:
    """External detection signals fed into RateLimiter.adapt_to_signal()."""

    captcha_detected: bool = False
    ip_blocked: bool = False
    recent_success_rate: Optional[float] = None


@dataclass(frozen=True)
class ProgressCheckpoint:
    manufacturer: str
    processed: int
    total: int
    timestamp: str
