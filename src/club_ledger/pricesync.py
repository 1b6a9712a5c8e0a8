"""Refresh stale cached quotes from the configured providers."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional, Sequence

import requests
from sqlalchemy.engine import Engine

from .costbasis import build_positions
from .db import LedgerError, get_cached_prices, list_holding_transactions, upsert_prices, utcnow
from .models import PriceQuote
from .quotes import BatchQuoteSource, QuoteError, QuoteSource

LOGGER = logging.getLogger(__name__)

PROVIDER_ERRORS = (QuoteError, requests.RequestException)


class SyncState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    FETCHING = "fetching"
    RECONCILING = "reconciling"


@dataclass(slots=True)
class SyncResult:
    stale: list[str] = field(default_factory=list)
    updated: dict[str, float] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)

    @property
    def did_update(self) -> bool:
        return bool(self.updated)


def stale_symbols(
    symbols: Iterable[str],
    cached: Mapping[str, PriceQuote],
    now: datetime,
    stale_after: timedelta,
) -> list[str]:
    """Symbols with no cached quote or a quote older than ``stale_after``."""

    stale = []
    for symbol in sorted(set(symbols)):
        quote = cached.get(symbol)
        if quote is None or now - quote.observed_at > stale_after:
            stale.append(symbol)
    return stale


class PriceSync:
    """One refresh cycle: check staleness, fetch, then persist.

    Cycles are not transactional and are never cancelled. Overlapping cycles
    both write their quotes and the later write wins.
    """

    def __init__(
        self,
        engine: Engine,
        batch_source: Optional[BatchQuoteSource],
        sources: Sequence[QuoteSource],
        stale_after_seconds: float = 300,
        fallback_delay_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.engine = engine
        self.batch_source = batch_source
        self.sources = list(sources)
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self.fallback_delay = fallback_delay_seconds
        self.sleep = sleep
        self.clock = clock
        self.state = SyncState.IDLE

    def tracked_symbols(self) -> list[str]:
        """Symbols of the currently open positions."""

        positions = build_positions(list_holding_transactions(self.engine))
        return [position.symbol for position in positions if position.is_open]

    def fetch(self, symbols: Sequence[str]) -> dict[str, float]:
        """Price as many of ``symbols`` as the providers allow."""

        prices: dict[str, float] = {}
        if self.batch_source is not None and symbols:
            try:
                prices.update(self.batch_source.fetch_batch(symbols))
            except PROVIDER_ERRORS as exc:
                LOGGER.warning("Batch quotes from %s failed: %s", self.batch_source.name, exc)
            except Exception:
                LOGGER.exception("Batch quotes from %s failed unexpectedly", self.batch_source.name)

        remaining = [symbol for symbol in symbols if symbol not in prices]
        for index, symbol in enumerate(remaining):
            if index and self.fallback_delay:
                self.sleep(self.fallback_delay)
            price = self._fetch_single(symbol)
            if price is not None:
                prices[symbol] = price
        return prices

    def _fetch_single(self, symbol: str) -> Optional[float]:
        for source in self.sources:
            try:
                price = source.fetch_single(symbol)
            except PROVIDER_ERRORS as exc:
                LOGGER.warning("%s failed for %s: %s", source.name, symbol, exc)
                continue
            except Exception:
                LOGGER.exception("%s failed unexpectedly for %s", source.name, symbol)
                continue
            if price is not None:
                LOGGER.debug("Found %s price for %s: %s", source.name, symbol, price)
                return price
        LOGGER.warning("No price found for %s from any source", symbol)
        return None

    def run_cycle(self, symbols: Iterable[str] | None = None) -> SyncResult:
        """Refresh stale quotes. Never raises; the result says what changed."""

        result = SyncResult()
        try:
            self.state = SyncState.CHECKING
            wanted = self.tracked_symbols() if symbols is None else list(symbols)
            cached = get_cached_prices(self.engine)
            result.stale = stale_symbols(wanted, cached, self.clock(), self.stale_after)
            if not result.stale:
                LOGGER.debug("All %d quotes are fresh", len(wanted))
                return result

            self.state = SyncState.FETCHING
            fetched = self.fetch(result.stale)
            result.missing = [symbol for symbol in result.stale if symbol not in fetched]

            self.state = SyncState.RECONCILING
            upsert_prices(self.engine, fetched, observed_at=self.clock())
            result.updated = fetched
            LOGGER.info(
                "Price sync updated %d of %d stale symbols", len(fetched), len(result.stale)
            )
        except LedgerError:
            LOGGER.error("Price sync aborted: ledger unavailable")
        except Exception:  # pragma: no cover - defensive logging
            LOGGER.exception("Price sync cycle failed")
        finally:
            self.state = SyncState.IDLE
        return result


__all__ = ["PriceSync", "SyncResult", "SyncState", "stale_symbols"]
