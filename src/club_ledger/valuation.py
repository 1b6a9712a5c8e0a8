"""Group level valuation of the pooled fund."""
from __future__ import annotations

from typing import Iterable, Mapping, Optional

from .models import Contribution, GroupValuation, SymbolPosition, SymbolValuation


def total_capital(contributions: Iterable[Contribution]) -> float:
    return sum((float(item.amount) for item in contributions), 0.0)


def value_position(position: SymbolPosition, price: Optional[float]) -> SymbolValuation:
    """Value one open position.

    Without a quote the position is valued at its own average cost, so no
    market return is reported until a real price arrives.
    """

    quoted = price is not None
    current_price = float(price) if quoted else position.avg_price
    current_value = current_price * position.quantity
    unrealized = current_value - position.cost_basis
    return SymbolValuation(
        position=position,
        current_price=current_price,
        current_value=current_value,
        unrealized_profit=unrealized,
        total_profit=unrealized + position.realized_profit,
        quoted=quoted,
    )


def value_group(
    positions: Iterable[SymbolPosition],
    prices: Mapping[str, float],
    contributions: Iterable[Contribution],
) -> GroupValuation:
    """Combine positions, quotes and contributions into group totals."""

    capital = total_capital(contributions)
    realized = 0.0
    invested = 0.0
    holdings_value = 0.0
    lines: list[SymbolValuation] = []
    for position in positions:
        realized += position.realized_profit
        if not position.is_open:
            continue
        line = value_position(position, prices.get(position.symbol))
        invested += position.cost_basis
        holdings_value += line.current_value
        lines.append(line)

    cash_balance = capital - invested + realized
    total_current_value = cash_balance + holdings_value
    return GroupValuation(
        total_capital=capital,
        cash_balance=cash_balance,
        invested_amount=invested,
        current_holdings_value=holdings_value,
        total_current_value=total_current_value,
        total_profit=total_current_value - capital,
        symbols=lines,
    )


__all__ = ["total_capital", "value_group", "value_position"]
