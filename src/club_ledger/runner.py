"""Command line entry point for the club ledger."""
from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Callable, Iterable, TextIO, TypeVar

from sqlalchemy.engine import Engine

from .config import Settings
from .dashboard import DashboardService, LoadState
from .db import (
    LedgerError,
    create_db_engine,
    ensure_schema,
    insert_contribution,
    insert_holding_transaction,
    list_members,
)
from .logging_utils import configure_logging
from .models import AssetType, Contribution, ContributionKind, HoldingTransaction
from .pricesync import PriceSync
from .quotes import build_provider_chain
from .quotes.utils import parse_date, parse_price

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _required(row: dict[str, str], column: str) -> str:
    value = (row.get(column) or "").strip()
    if not value:
        raise ValueError(f"missing {column}")
    return value


def _number(row: dict[str, str], column: str) -> float:
    raw = _required(row, column)
    try:
        return float(raw.replace(",", ""))
    except ValueError as exc:
        raise ValueError(f"{column} is not a number: {raw!r}") from exc


def transaction_from_row(row: dict[str, str]) -> HoldingTransaction:
    """Build a transaction from a CSV row.

    Columns: symbol, quantity (negative for sells), unit_price, and the
    optional date, name, display_symbol, asset_type.
    """

    quantity = _number(row, "quantity")
    if quantity == 0:
        raise ValueError("quantity must not be zero")
    unit_price = parse_price(_required(row, "unit_price"))
    if unit_price is None:
        raise ValueError("unit_price must be positive")
    return HoldingTransaction(
        symbol=_required(row, "symbol").upper(),
        quantity=quantity,
        unit_price=unit_price,
        date=parse_date(row.get("date")),
        name=(row.get("name") or "").strip() or None,
        display_symbol=(row.get("display_symbol") or "").strip() or None,
        asset_type=AssetType((row.get("asset_type") or "stock").strip().lower()),
    )


def contribution_from_row(row: dict[str, str]) -> Contribution:
    """Build a contribution from a CSV row: member_id, amount, date, kind."""

    return Contribution(
        member_id=_required(row, "member_id"),
        amount=_number(row, "amount"),
        date=parse_date(row.get("date")),
        kind=ContributionKind((row.get("kind") or "cash").strip().lower()),
    )


def member_contribution_parser(engine: Engine) -> Callable[[dict[str, str]], Contribution]:
    """Like :func:`contribution_from_row`, also rejecting members the ledger does not know."""

    known = {member.id for member in list_members(engine)}

    def parse(row: dict[str, str]) -> Contribution:
        contribution = contribution_from_row(row)
        if contribution.member_id not in known:
            raise ValueError(f"unknown member {contribution.member_id!r}")
        return contribution

    return parse


def import_rows(
    handle: TextIO,
    parse: Callable[[dict[str, str]], T],
    insert: Callable[[T], object],
) -> tuple[int, int]:
    """Insert every parseable row; report and skip the rest.

    Returns ``(inserted, skipped)``. Ledger failures abort the import.
    """

    inserted = skipped = 0
    # Line 1 is the header.
    for line_number, row in enumerate(csv.DictReader(handle), start=2):
        try:
            item = parse(row)
        except ValueError as exc:
            LOGGER.warning("Skipping line %d: %s", line_number, exc)
            skipped += 1
            continue
        insert(item)
        inserted += 1
    LOGGER.info("Imported %d rows (%d skipped)", inserted, skipped)
    return inserted, skipped


def run_price_sync(settings: Settings, engine: Engine) -> bool:
    batch_source, sources = build_provider_chain(settings)
    price_sync = PriceSync(
        engine,
        batch_source,
        sources,
        stale_after_seconds=settings.stale_after_seconds,
        fallback_delay_seconds=settings.fallback_delay_seconds,
    )
    return price_sync.run_cycle().did_update


def print_summary(engine: Engine, out: TextIO = sys.stdout) -> bool:
    snapshot = DashboardService(engine).refresh()
    if snapshot.state is not LoadState.COMPUTED:
        print(f"Could not load the ledger: {snapshot.error}", file=out)
        return False

    valuation = snapshot.require_computed()
    print(f"Total capital        {valuation.total_capital:14.2f}", file=out)
    print(f"Cash balance         {valuation.cash_balance:14.2f}", file=out)
    print(f"Invested amount      {valuation.invested_amount:14.2f}", file=out)
    print(f"Holdings value       {valuation.current_holdings_value:14.2f}", file=out)
    print(f"Total current value  {valuation.total_current_value:14.2f}", file=out)
    print(f"Total profit         {valuation.total_profit:14.2f}", file=out)
    for line in valuation.symbols:
        marker = "" if line.quoted else "*"
        print(
            f"  {line.position.symbol:<16}{line.position.quantity:>12.4f}"
            f"{line.current_price:>12.2f}{marker:1}{line.total_profit:>14.2f}",
            file=out,
        )
    for share in snapshot.all_shares():
        print(
            f"  {share.member_id:<24}{share.share_fraction:>8.2%}{share.current_value:>14.2f}",
            file=out,
        )
    return True


def parse_args(args: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging output",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("sync-prices", help="Refresh stale cached prices once")
    commands.add_parser("summary", help="Print group totals and member shares")
    for name, noun in (("import-transactions", "holding transactions"), ("import-contributions", "contributions")):
        command = commands.add_parser(name, help=f"Import {noun} from a CSV file")
        command.add_argument("path", type=Path)
    return parser.parse_args(args=args)


def main(argv: Iterable[str] | None = None) -> int:
    options = parse_args(argv)
    configure_logging(logging.DEBUG if options.verbose else None)
    settings = Settings.load()
    engine = create_db_engine(settings.database_url)

    try:
        ensure_schema(engine)
        if options.command == "sync-prices":
            updated = run_price_sync(settings, engine)
            LOGGER.info("Prices %s", "updated" if updated else "unchanged")
            return 0
        if options.command == "summary":
            return 0 if print_summary(engine) else 1

        with options.path.open(newline="", encoding="utf-8") as handle:
            if options.command == "import-transactions":
                import_rows(handle, transaction_from_row, lambda item: insert_holding_transaction(engine, item))
            else:
                import_rows(
                    handle, member_contribution_parser(engine), lambda item: insert_contribution(engine, item)
                )
    except LedgerError as exc:
        LOGGER.error("Ledger unavailable: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
