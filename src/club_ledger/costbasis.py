"""Weighted average cost basis over a symbol's transaction history."""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from .models import HoldingTransaction, SymbolPosition

LOGGER = logging.getLogger(__name__)

# Quantities closer to zero than this are rounding drift from fractional folds.
ZERO_TOLERANCE = 1e-4


def _sort_key(transaction: HoldingTransaction) -> date:
    return transaction.date or date.min


def chronological(transactions: Iterable[HoldingTransaction]) -> list[HoldingTransaction]:
    """Order transactions by date, undated first.

    ``sorted`` is stable, so same-day transactions keep the order they were
    given in. The ledger lists rows in insertion order.
    """

    return sorted(transactions, key=_sort_key)


def fold_position(symbol: str, transactions: Iterable[HoldingTransaction]) -> SymbolPosition:
    """Fold a single symbol's transactions into its current position.

    Buys add to quantity and cost basis. Sells release cost at the running
    average and book the difference to the sale price as realized profit.
    Selling more than is held is treated as a data problem rather than an
    error: the full proceeds count as profit and quantity goes negative.
    """

    position = SymbolPosition(symbol=symbol)
    for transaction in chronological(transactions):
        qty = float(transaction.quantity)
        price = float(transaction.unit_price)
        if qty > 0:
            position.quantity += qty
            position.cost_basis += qty * price
        elif qty < 0:
            sell_qty = abs(qty)
            if position.quantity > 0:
                avg_cost = position.cost_basis / position.quantity
                cost_of_sold = sell_qty * avg_cost
                position.realized_profit += sell_qty * price - cost_of_sold
                position.cost_basis -= cost_of_sold
                position.quantity -= sell_qty
            else:
                LOGGER.debug(
                    "Sell of %s %s against a position of %s", sell_qty, symbol, position.quantity
                )
                position.realized_profit += sell_qty * price
                position.quantity -= sell_qty

        if transaction.name:
            position.name = transaction.name
        if transaction.display_symbol:
            position.display_symbol = transaction.display_symbol

    if abs(position.quantity) < ZERO_TOLERANCE:
        position.quantity = 0.0
        position.cost_basis = 0.0
    elif position.quantity < 0:
        LOGGER.warning("%s has a negative quantity of %s; check the ledger", symbol, position.quantity)
    return position


def group_by_symbol(
    transactions: Iterable[HoldingTransaction],
) -> dict[str, list[HoldingTransaction]]:
    grouped: dict[str, list[HoldingTransaction]] = {}
    for transaction in transactions:
        grouped.setdefault(transaction.symbol, []).append(transaction)
    return grouped


def build_positions(transactions: Iterable[HoldingTransaction]) -> list[SymbolPosition]:
    """Return one position per distinct symbol, ordered by symbol."""

    grouped = group_by_symbol(transactions)
    return [fold_position(symbol, grouped[symbol]) for symbol in sorted(grouped)]


__all__ = ["ZERO_TOLERANCE", "build_positions", "chronological", "fold_position", "group_by_symbol"]
