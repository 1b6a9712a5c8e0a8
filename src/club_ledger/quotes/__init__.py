"""Factory for price quote providers."""
from __future__ import annotations

import logging
from typing import Optional

import requests

from ..config import Settings
from .base import BatchQuoteSource, QuoteError, QuoteSource
from .finnhub import FinnhubSource
from .screener import ScreenerSource
from .yahoo import YahooSource

LOGGER = logging.getLogger(__name__)

SOURCE_NAMES = ("finnhub", "yahoo", "screener")


def create_source(name: str, settings: Settings, session: requests.Session | None = None) -> QuoteSource:
    """Instantiate a provider by its configured name."""

    key = name.strip().lower()
    timeout = settings.request_timeout_seconds
    if key == "finnhub":
        if not settings.finnhub_api_key:
            raise ValueError("finnhub requires CLUB_LEDGER_FINNHUB_API_KEY")
        return FinnhubSource(settings.finnhub_api_key, session=session, timeout=timeout)
    if key == "yahoo":
        return YahooSource(session=session, timeout=timeout, exchange_suffix=settings.default_exchange_suffix)
    if key == "screener":
        return ScreenerSource(session=session, timeout=timeout)
    raise ValueError(f"Unsupported price source: {name}")


def build_provider_chain(settings: Settings) -> tuple[Optional[BatchQuoteSource], list[QuoteSource]]:
    """Return the batch provider (if any) and the single-symbol fallbacks in priority order."""

    batch: Optional[BatchQuoteSource] = None
    if settings.batch_source:
        source = create_source(settings.batch_source, settings)
        if not isinstance(source, BatchQuoteSource):
            raise ValueError(f"{settings.batch_source} does not support batched quotes")
        batch = source

    singles: list[QuoteSource] = []
    for name in settings.price_sources:
        if name == "finnhub" and not settings.finnhub_api_key:
            LOGGER.info("Skipping finnhub: no API key configured")
            continue
        singles.append(create_source(name, settings))
    LOGGER.debug(
        "Price providers: batch=%s, fallback=%s",
        batch.name if batch else None,
        [source.name for source in singles],
    )
    return batch, singles


__all__ = [
    "BatchQuoteSource",
    "FinnhubSource",
    "QuoteError",
    "QuoteSource",
    "ScreenerSource",
    "YahooSource",
    "build_provider_chain",
    "create_source",
]
