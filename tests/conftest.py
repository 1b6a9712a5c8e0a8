from __future__ import annotations

from typing import Iterable, Optional

import pytest
import requests

from club_ledger.db import create_db_engine, ensure_schema
from club_ledger.quotes import BatchQuoteSource, QuoteError, QuoteSource


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    ensure_schema(engine)
    yield engine
    engine.dispose()


class FakeSource(QuoteSource):
    """Single-symbol source answering from a dict; ``errors`` symbols raise."""

    def __init__(self, name: str, prices: dict[str, float], errors: Iterable[str] = ()) -> None:
        self.name = name
        self.prices = prices
        self.errors = set(errors)
        self.calls: list[str] = []

    def fetch_single(self, symbol: str) -> Optional[float]:
        self.calls.append(symbol)
        if symbol in self.errors:
            raise QuoteError(f"{self.name} is down")
        return self.prices.get(symbol)


class FakeBatchSource(BatchQuoteSource):
    def __init__(self, prices: dict[str, float], fail: bool = False) -> None:
        self.name = "fake-batch"
        self.prices = prices
        self.fail = fail
        self.calls: list[list[str]] = []

    def fetch_single(self, symbol: str) -> Optional[float]:
        return self.prices.get(symbol)

    def fetch_batch(self, symbols) -> dict[str, float]:
        symbols = list(symbols)
        self.calls.append(symbols)
        if self.fail:
            raise requests.ConnectionError("batch endpoint unreachable")
        return {symbol: self.prices[symbol] for symbol in symbols if symbol in self.prices}


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Stands in for ``requests.Session``; records every GET."""

    def __init__(self, response: FakeResponse | Exception) -> None:
        self.response = response
        self.headers: dict[str, str] = {}
        self.requests: list[tuple[str, dict | None, float]] = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response
