"""Yahoo Finance quote provider."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import requests

from .base import BatchQuoteSource, QuoteError
from .utils import parse_price

LOGGER = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "accept": "application/json",
    "user-agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36",
}


class YahooSource(BatchQuoteSource):
    """Quotes from Yahoo Finance.

    Bare symbols are looked up on the default exchange (``RELIANCE`` becomes
    ``RELIANCE.NS``); symbols that already carry a suffix are used as is.
    """

    name = "yahoo"
    CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
    QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = 8,
        exchange_suffix: str = ".NS",
    ) -> None:
        super().__init__(session, timeout)
        self.session.headers.update(DEFAULT_HEADERS)
        self.exchange_suffix = exchange_suffix

    def yahoo_symbol(self, symbol: str) -> str:
        if "." in symbol or not self.exchange_suffix:
            return symbol
        return f"{symbol}{self.exchange_suffix}"

    def fetch_single(self, symbol: str) -> Optional[float]:
        yahoo_symbol = self.yahoo_symbol(symbol)
        LOGGER.debug("Requesting Yahoo chart for %s", yahoo_symbol)
        data = self._get_json(self.CHART_URL.format(symbol=yahoo_symbol))
        try:
            results = data["chart"]["result"] or []
            if not results:
                return None
            meta = results[0]["meta"] or {}
            return parse_price(meta.get("regularMarketPrice"))
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise QuoteError(f"Unexpected Yahoo chart payload for {yahoo_symbol}") from exc

    def fetch_batch(self, symbols: Iterable[str]) -> dict[str, float]:
        lookup = {self.yahoo_symbol(symbol): symbol for symbol in symbols}
        if not lookup:
            return {}
        LOGGER.debug("Requesting Yahoo quotes for %d symbols", len(lookup))
        data = self._get_json(self.QUOTE_URL, symbols=",".join(lookup))
        try:
            results = list(data["quoteResponse"]["result"] or [])
        except (KeyError, TypeError) as exc:
            raise QuoteError("Unexpected Yahoo quote payload") from exc

        prices: dict[str, float] = {}
        for item in results:
            if not isinstance(item, dict):
                LOGGER.debug("Ignoring malformed Yahoo quote entry %r", item)
                continue
            quoted_symbol = item.get("symbol")
            symbol = lookup.get(quoted_symbol) if isinstance(quoted_symbol, str) else None
            price = parse_price(item.get("regularMarketPrice"))
            if symbol is not None and price is not None:
                prices[symbol] = price
        return prices


__all__ = ["YahooSource"]
