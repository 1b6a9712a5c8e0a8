"""Base classes for price quote providers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

import requests


class QuoteError(RuntimeError):
    """Raised when a provider cannot produce a usable answer."""


class QuoteSource(ABC):
    """A provider that prices one symbol per call."""

    name: str = "base"

    def __init__(self, session: requests.Session | None = None, timeout: float = 8) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get_json(self, url: str, **params) -> dict:
        try:
            response = self.session.get(url, params=params or None, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise QuoteError(f"{self.name} request failed: {exc}") from exc
        except ValueError as exc:
            raise QuoteError(f"{self.name} returned malformed JSON") from exc
        if not isinstance(data, dict):
            raise QuoteError(f"{self.name} returned {type(data).__name__}, expected an object")
        return data

    @abstractmethod
    def fetch_single(self, symbol: str) -> Optional[float]:
        """Return the current price of ``symbol`` or ``None`` when unknown."""


class BatchQuoteSource(QuoteSource):
    """A provider that can also price several symbols in one call."""

    @abstractmethod
    def fetch_batch(self, symbols: Iterable[str]) -> dict[str, float]:
        """Return prices for the symbols the provider knows; others are omitted."""


__all__ = ["BatchQuoteSource", "QuoteError", "QuoteSource"]
