import pytest

from club_ledger.models import Contribution, SymbolPosition
from club_ledger.valuation import value_group, value_position


def contribution(member, amount):
    return Contribution(member_id=member, amount=amount)


def test_empty_ledger_is_all_zero():
    valuation = value_group([], {}, [])

    assert valuation.total_capital == 0
    assert valuation.cash_balance == 0
    assert valuation.invested_amount == 0
    assert valuation.current_holdings_value == 0
    assert valuation.total_current_value == 0
    assert valuation.total_profit == 0
    assert valuation.symbols == []


def test_quoted_position_totals():
    positions = [SymbolPosition("INFY", quantity=6, cost_basis=600, realized_profit=200)]
    contributions = [contribution("a", 6000), contribution("b", 4000)]

    valuation = value_group(positions, {"INFY": 130}, contributions)

    assert valuation.total_capital == 10000
    assert valuation.invested_amount == 600
    assert valuation.current_holdings_value == pytest.approx(780)
    assert valuation.cash_balance == pytest.approx(10000 - 600 + 200)
    assert valuation.total_current_value == pytest.approx(9600 + 780)
    assert valuation.total_profit == pytest.approx(380)
    line = valuation.symbols[0]
    assert line.quoted
    assert line.unrealized_profit == pytest.approx(180)
    assert line.total_profit == pytest.approx(380)


def test_missing_quote_falls_back_to_average_cost():
    line = value_position(SymbolPosition("TCS", quantity=4, cost_basis=1000), None)

    assert not line.quoted
    assert line.current_price == 250
    assert line.current_value == 1000
    assert line.unrealized_profit == 0


def test_closed_positions_only_contribute_realized_profit():
    positions = [
        SymbolPosition("INFY", quantity=0, cost_basis=0, realized_profit=150),
        SymbolPosition("BAD", quantity=-5, cost_basis=0, realized_profit=400),
    ]

    valuation = value_group(positions, {"INFY": 999}, [contribution("a", 1000)])

    assert valuation.symbols == []
    assert valuation.invested_amount == 0
    assert valuation.cash_balance == pytest.approx(1550)
    assert valuation.total_profit == pytest.approx(550)
