"""Parsing helpers shared by quote providers and ledger imports."""
from __future__ import annotations

import re
from datetime import date
from typing import Optional

from dateutil import parser


NON_NUMERIC = re.compile(r"[^0-9.\-]")


def parse_price(value: object) -> Optional[float]:
    """Parse a price from a number or human readable text such as ``"₹ 1,234.50"``.

    Zero, negative and unparseable values yield ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        price = float(value)
    elif isinstance(value, str):
        cleaned = NON_NUMERIC.sub("", value)
        if not cleaned:
            return None
        try:
            price = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if price != price or price <= 0:
        return None
    return price


def parse_date(value: str | None) -> Optional[date]:
    """Parse an ISO date, or any other date string using dateutil, day first."""

    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        pass
    try:
        return parser.parse(value, dayfirst=True).date()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Unrecognised date: {value!r}") from exc


__all__ = ["parse_date", "parse_price"]
