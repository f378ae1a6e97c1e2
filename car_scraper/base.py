from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .exceptions import SourceBlockedError, SourceError
from .extraction import ExtractionAdapter, TextExtractionAdapter
from .logger import get_logger
from .models import SourceQuery

logger = get_logger(__name__)

CAPTCHA_MARKERS = (
    "unusual traffic",
    "are you a robot",
    "verify you are human",
    "complete the captcha",
    "solve this captcha",
)
CHALLENGE_URL_PATHS = ("/sorry/",)


class BaseSource(ABC):
    """Abstract base class defining a common fetch/check/parse pipeline.

    - Any 2xx status counts as success.
    - 403, 429 and captcha pages raise SourceBlockedError so the caller can
      report the block and slow down instead of retrying.
    - Other failures raise SourceError (or the transport's own exception).
    """

    source_id = "base"

    def __init__(self, extractor: Optional[ExtractionAdapter] = None, timeout: int = 20) -> None:
        self._extractor = extractor or TextExtractionAdapter()
        self._timeout = timeout

    def run(self, query: SourceQuery) -> Any:
        """Fetch and check one page; raises on any failure."""
        start_ms = self._now_ms()
        self.validate(query)
        response = self.fetch(query)
        self.check_response(response)
        logger.debug(
            "source=%s url=%s status=%s latency_ms=%s",
            self.source_id,
            query.url,
            getattr(response, "status_code", None),
            self._now_ms() - start_ms,
        )
        return response

    def validate(self, query: SourceQuery) -> None:
        if not query.url:
            raise ValueError("query.url is required")

    def check_response(self, response: Any) -> None:
        status_code = getattr(response, "status_code", None)
        if status_code == 403:
            raise SourceBlockedError(self.source_id, "HTTP_403", ip_blocked=True, status_code=403)
        if status_code == 429:
            raise SourceBlockedError(self.source_id, "HTTP_429", status_code=429)
        if self.is_challenge_page(response):
            raise SourceBlockedError(self.source_id, "captcha", captcha_detected=True, status_code=status_code)
        if status_code is None or not 200 <= int(status_code) < 300:
            raise SourceError(self.source_id, f"HTTP_{status_code}")

    @staticmethod
    def is_challenge_page(response: Any) -> bool:
        """True for bot-challenge interstitials.

        Only the visible text is checked, so pages that merely embed a
        reCAPTCHA or hCaptcha widget script are not mistaken for a block."""
        url = str(getattr(response, "url", "") or "")
        if any(path in url for path in CHALLENGE_URL_PATHS):
            return True
        content = getattr(response, "text", "") or ""
        if not content:
            return False
        text = TextExtractionAdapter.page_text(content).lower()
        return any(marker in text for marker in CAPTCHA_MARKERS)

    def parse(self, response: Any, query: SourceQuery) -> Dict[str, Any]:
        return self._extractor.extract(getattr(response, "text", ""), query.manufacturer, query.model)

    def parse_models(self, response: Any, query: SourceQuery) -> List[str]:
        return self._extractor.extract_models(getattr(response, "text", ""), query.manufacturer)

    def build_discovery_query(self, manufacturer: str, vehicle_type: str, country: str) -> Optional[SourceQuery]:
        """Query listing the models of a manufacturer; None if the source cannot list models."""
        return None

    @abstractmethod
    def build_query(self, manufacturer: str, model: str, country: str) -> SourceQuery:
        ...

    @abstractmethod
    def fetch(self, query: SourceQuery) -> Any:
        ...

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)
