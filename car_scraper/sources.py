from __future__ import annotations

import random
import re
from typing import Any, Dict, Optional

import requests
from curl_cffi import requests as curl_requests

from .base import BaseSource
from .models import SourceQuery

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
)


def random_headers() -> Dict[str, str]:
    return {
        "User-Agent": random.choice(USER_AGENTS),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


class GoogleSearchSource(BaseSource):
    """Google result pages fetched with browser impersonation (curl_cffi).

    Also serves as the model discovery source."""

    source_id = "google"
    search_url = "https://www.google.com/search"

    def __init__(self, impersonate: str = "chrome120", *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._impersonate = impersonate

    def build_query(self, manufacturer: str, model: str, country: str) -> SourceQuery:
        return SourceQuery(
            source_id=self.source_id,
            url=self.search_url,
            manufacturer=manufacturer,
            model=model,
            country=country,
            params={"q": f"{manufacturer} {model} price specifications 2024", "gl": country},
            headers=random_headers(),
        )

    def build_discovery_query(self, manufacturer: str, vehicle_type: str, country: str) -> Optional[SourceQuery]:
        return SourceQuery(
            source_id=self.source_id,
            url=self.search_url,
            manufacturer=manufacturer,
            country=country,
            params={"q": f"{manufacturer} {vehicle_type} models 2024 2025", "gl": country},
            headers=random_headers(),
        )

    def fetch(self, query: SourceQuery) -> Any:
        session = curl_requests.Session()
        try:
            return session.get(
                query.url,
                params=query.params or None,
                headers=query.headers or None,
                impersonate=self._impersonate,
                timeout=self._timeout,
            )
        finally:
            session.close()


class _ResearchPageSource(BaseSource):
    """Model research page on a listing site, fetched with requests."""

    url_template = ""

    def build_query(self, manufacturer: str, model: str, country: str) -> SourceQuery:
        return SourceQuery(
            source_id=self.source_id,
            url=self.url_template.format(make=slugify(manufacturer), model=slugify(model)),
            manufacturer=manufacturer,
            model=model,
            country=country,
            headers=random_headers(),
        )

    def fetch(self, query: SourceQuery) -> Any:
        return requests.get(
            query.url,
            params=query.params or None,
            headers=query.headers or None,
            timeout=self._timeout,
        )


class EdmundsSource(_ResearchPageSource):
    source_id = "edmunds"
    url_template = "https://www.edmunds.com/{make}/{model}/"


class CarsComSource(_ResearchPageSource):
    source_id = "cars_com"
    url_template = "https://www.cars.com/research/{make}-{model}/"
