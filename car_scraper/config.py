from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import ConfigurationError
from .validator import DataValidator

DEFAULT_MANUFACTURERS = [
    "Toyota", "Honda", "BMW", "Mercedes-Benz", "Audi", "Tesla",
    "Ford", "Chevrolet", "Hyundai", "Kia", "Nissan", "Volkswagen",
    "Mazda", "Subaru", "Lexus", "Acura", "Infiniti", "Genesis",
    "Volvo", "Porsche", "Jaguar", "Land Rover",
]

# requests per minute / base delay (seconds) per security level
RATE_LIMIT_PRESETS: Dict[str, Dict[str, float]] = {
    "minimal": {"requests_per_minute": 60, "base_delay": 1.0},
    "standard": {"requests_per_minute": 30, "base_delay": 2.0},
    "strict": {"requests_per_minute": 15, "base_delay": 4.0},
    "stealth": {"requests_per_minute": 10, "base_delay": 6.0},
}

MAX_CONCURRENT_REQUESTS = 5
MAX_DELAY_SECONDS = 10.0
JITTER_SECONDS = 1.0


@dataclass(frozen=True)
class RunConfig:
    """Validated run input. Build with RunConfig.from_input()."""

    vehicle_type: str
    max_results: int = 50
    country: str = "US"
    security_level: str = "standard"
    rate_limit_delay_ms: int = 2000
    manufacturers: List[str] = field(default_factory=list)
    include_competitors: bool = False
    encrypt_sensitive_data: bool = True
    anonymize_data: bool = True

    @classmethod
    def from_input(cls, data: Mapping[str, Any], validator: Optional[DataValidator] = None) -> "RunConfig":
        """Parse camelCase run input, raising ConfigurationError with every violation."""
        result = (validator or DataValidator()).validate_input(data)
        if not result["valid"]:
            raise ConfigurationError(result["errors"])

        def _get(key: str, default: Any) -> Any:
            value = data.get(key)
            return default if value is None else value

        return cls(
            vehicle_type=data["vehicleType"],
            max_results=int(_get("maxResults", 50)),
            country=_get("country", "US"),
            security_level=_get("securityLevel", "standard"),
            rate_limit_delay_ms=int(_get("rateLimitDelay", 2000)),
            manufacturers=[m.strip() for m in _get("manufacturers", [])],
            include_competitors=bool(_get("includeCompetitors", False)),
            encrypt_sensitive_data=_get("encryptSensitiveData", True) is not False,
            anonymize_data=_get("anonymizeData", True) is not False,
        )

    @property
    def rate_limit_delay(self) -> float:
        """Delay between models, in seconds."""
        return self.rate_limit_delay_ms / 1000.0

    @property
    def manufacturer_list(self) -> List[str]:
        return list(self.manufacturers) if self.manufacturers else list(DEFAULT_MANUFACTURERS)

    def rate_limit_preset(self) -> Dict[str, float]:
        return dict(RATE_LIMIT_PRESETS[self.security_level])
