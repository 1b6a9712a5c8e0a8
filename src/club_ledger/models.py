"""Domain models for the club ledger."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


class ContributionKind(str, Enum):
    CASH = "cash"
    INVESTED = "invested"


class AssetType(str, Enum):
    STOCK = "stock"
    FUND = "fund"


class Role(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


@dataclass(slots=True)
class Member:
    """A club member as known to the identity provider."""

    id: str
    display_name: str
    email: Optional[str] = None
    role: Role = Role.MEMBER
    is_approved: bool = False


@dataclass(slots=True)
class Contribution:
    """Capital a member put into the pool (an installment)."""

    member_id: str
    amount: float
    date: Optional[date] = None
    kind: ContributionKind = ContributionKind.CASH
    id: Optional[int] = None


@dataclass(slots=True)
class HoldingTransaction:
    """A buy (positive quantity) or sell (negative quantity) of one symbol."""

    symbol: str
    quantity: float
    unit_price: float
    date: Optional[date] = None
    name: Optional[str] = None
    display_symbol: Optional[str] = None
    asset_type: AssetType = AssetType.STOCK
    id: Optional[int] = None


@dataclass(slots=True)
class SymbolPosition:
    """Result of folding one symbol's transaction history."""

    symbol: str
    quantity: float = 0.0
    cost_basis: float = 0.0
    realized_profit: float = 0.0
    name: Optional[str] = None
    display_symbol: Optional[str] = None

    @property
    def avg_price(self) -> float:
        if self.quantity > 0:
            return self.cost_basis / self.quantity
        return 0.0

    @property
    def is_open(self) -> bool:
        return self.quantity > 0


@dataclass(slots=True)
class PriceQuote:
    symbol: str
    price: float
    observed_at: datetime


@dataclass(slots=True)
class SymbolValuation:
    """Per-symbol line of the group valuation."""

    position: SymbolPosition
    current_price: float
    current_value: float
    unrealized_profit: float
    total_profit: float
    quoted: bool


@dataclass(slots=True)
class GroupValuation:
    """Group level totals derived from the full ledger."""

    total_capital: float = 0.0
    cash_balance: float = 0.0
    invested_amount: float = 0.0
    current_holdings_value: float = 0.0
    total_current_value: float = 0.0
    total_profit: float = 0.0
    symbols: list[SymbolValuation] = field(default_factory=list)


@dataclass(slots=True)
class MemberShare:
    member_id: str
    contributed_capital: float
    share_fraction: float
    current_value: float
    profit: float


__all__ = [
    "AssetType",
    "Contribution",
    "ContributionKind",
    "GroupValuation",
    "HoldingTransaction",
    "Member",
    "MemberShare",
    "PriceQuote",
    "Role",
    "SymbolPosition",
    "SymbolValuation",
]
