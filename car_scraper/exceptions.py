"""Custom exception classes for the car scraper."""

from typing import List, Optional


class CarScraperError(Exception):
    """Base exception for all car scraper errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(CarScraperError):
    """Raised when the run input fails validation. Fatal before the run starts."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid input: {', '.join(self.errors)}")


class SourceError(CarScraperError):
    """Raised when a single source fails to fetch or parse."""

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        super().__init__(f"Source error for {source_id}: {message}")


class SourceBlockedError(SourceError):
    """Raised when a source answers with a block page (403, 429 or captcha)."""

    def __init__(
        self,
        source_id: str,
        reason: str,
        captcha_detected: bool = False,
        ip_blocked: bool = False,
        status_code: Optional[int] = None,
    ):
        self.reason = reason
        self.captcha_detected = captcha_detected
        self.ip_blocked = ip_blocked
        self.status_code = status_code
        super().__init__(source_id, f"blocked ({reason})")


class EncryptionError(CarScraperError):
    """Raised when field encryption cannot be performed with the given key."""
