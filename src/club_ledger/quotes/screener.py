"""Screener.in quote provider."""
from __future__ import annotations

import logging
from typing import Optional

import requests
from bs4 import BeautifulSoup

from .base import QuoteError, QuoteSource
from .utils import parse_price

LOGGER = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.9,hi;q=0.8",
    "user-agent": "Mozilla/5.0 (Linux; Android 6.0; Nexus 5 Build/MRA58N) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/141.0.0.0 Mobile Safari/537.36",
}


class ScreenerSource(QuoteSource):
    """Scrapes the "Current Price" ratio from a screener.in company page."""

    name = "screener"
    BASE_URL = "https://www.screener.in"

    def __init__(self, session: requests.Session | None = None, timeout: float = 8) -> None:
        super().__init__(session, timeout)
        # Align the session defaults with a typical browser to avoid bot detection.
        self.session.headers.update(DEFAULT_HEADERS)

    def company_url(self, symbol: str) -> str:
        # Screener uses the NSE code without the Yahoo style suffix.
        return f"{self.BASE_URL}/company/{symbol.split('.')[0]}/"

    def _get_soup(self, symbol: str) -> Optional[BeautifulSoup]:
        LOGGER.debug("Requesting Screener page for %s", symbol)
        try:
            response = self.session.get(self.company_url(symbol), timeout=self.timeout)
        except requests.RequestException as exc:
            raise QuoteError(f"screener request failed: {exc}") from exc
        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
        except requests.RequestException as exc:
            raise QuoteError(f"screener request failed: {exc}") from exc
        return BeautifulSoup(response.text, "html.parser")

    def fetch_single(self, symbol: str) -> Optional[float]:
        soup = self._get_soup(symbol)
        if soup is None:
            return None
        for item in soup.select("#top-ratios li"):
            label = item.find(class_="name")
            value = item.find(class_="number")
            if label and value and label.get_text(strip=True).lower() == "current price":
                return parse_price(value.get_text(strip=True))
        LOGGER.debug("No current price on Screener page for %s", symbol)
        return None


__all__ = ["ScreenerSource"]
