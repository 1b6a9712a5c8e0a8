"""Read side: the latest computed view of the ledger."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.engine import Engine

from .costbasis import build_positions
from .db import LedgerError, get_cached_prices, list_contributions, list_holding_transactions, utcnow
from .models import Contribution, GroupValuation, MemberShare
from .ownership import apportion, apportion_all
from .valuation import value_group

LOGGER = logging.getLogger(__name__)


class LoadState(str, Enum):
    LOADING = "loading"
    COMPUTED = "computed"
    FAILED = "failed"


class SnapshotUnavailable(RuntimeError):
    """The dashboard has nothing computed to answer from."""

    def __init__(self, state: LoadState, error: Optional[str] = None) -> None:
        super().__init__(error or f"Dashboard is {state.value}")
        self.state = state
        self.error = error


@dataclass(slots=True)
class DashboardSnapshot:
    state: LoadState = LoadState.LOADING
    valuation: Optional[GroupValuation] = None
    contributions: list[Contribution] = field(default_factory=list)
    error: Optional[str] = None
    computed_at: Optional[datetime] = None

    def require_computed(self) -> GroupValuation:
        if self.state is not LoadState.COMPUTED or self.valuation is None:
            raise SnapshotUnavailable(self.state, self.error)
        return self.valuation

    def member_share(self, member_id: str) -> MemberShare:
        valuation = self.require_computed()
        return apportion(
            member_id, self.contributions, valuation.total_capital, valuation.total_current_value
        )

    def all_shares(self) -> list[MemberShare]:
        valuation = self.require_computed()
        return apportion_all(self.contributions, valuation.total_capital, valuation.total_current_value)


def compute_snapshot(engine: Engine) -> DashboardSnapshot:
    """Read the ledger and price cache and value the group from scratch.

    Raises :class:`LedgerError` when any read fails; nothing is computed
    from a partial read.
    """

    contributions = list_contributions(engine)
    transactions = list_holding_transactions(engine)
    quotes = get_cached_prices(engine)
    prices = {symbol: quote.price for symbol, quote in quotes.items()}
    valuation = value_group(build_positions(transactions), prices, contributions)
    return DashboardSnapshot(
        state=LoadState.COMPUTED,
        valuation=valuation,
        contributions=contributions,
        computed_at=utcnow(),
    )


class DashboardService:
    """Holds the current snapshot and swaps it on every refresh.

    Snapshots are never mutated after they are built. Callers that need
    several figures should read ``snapshot`` once and use that object.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.snapshot = DashboardSnapshot()

    def refresh(self) -> DashboardSnapshot:
        try:
            snapshot = compute_snapshot(self.engine)
        except LedgerError as exc:
            LOGGER.error("Dashboard refresh failed: %s", exc)
            snapshot = DashboardSnapshot(state=LoadState.FAILED, error=str(exc), computed_at=utcnow())
        self.snapshot = snapshot
        return snapshot

    def valuation(self) -> GroupValuation:
        return self.snapshot.require_computed()

    def member_share(self, member_id: str) -> MemberShare:
        return self.snapshot.member_share(member_id)

    def all_shares(self) -> list[MemberShare]:
        return self.snapshot.all_shares()


__all__ = [
    "DashboardService",
    "DashboardSnapshot",
    "LoadState",
    "SnapshotUnavailable",
    "compute_snapshot",
]
