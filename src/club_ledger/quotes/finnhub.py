"""Finnhub quote provider."""
from __future__ import annotations

import logging
from typing import Optional

import requests

from .base import QuoteSource
from .utils import parse_price

LOGGER = logging.getLogger(__name__)


class FinnhubSource(QuoteSource):
    """Single-symbol quotes from finnhub.io. The current price is ``c``."""

    name = "finnhub"
    BASE_URL = "https://finnhub.io/api/v1/quote"

    def __init__(self, api_key: str, session: requests.Session | None = None, timeout: float = 8) -> None:
        super().__init__(session, timeout)
        if not api_key:
            raise ValueError("Finnhub requires an API key")
        self.api_key = api_key

    def fetch_single(self, symbol: str) -> Optional[float]:
        LOGGER.debug("Requesting Finnhub quote for %s", symbol)
        data = self._get_json(self.BASE_URL, symbol=symbol, token=self.api_key)
        # Finnhub answers unknown symbols with zeros rather than an error.
        return parse_price(data.get("c"))


__all__ = ["FinnhubSource"]
