"""Ledger store backed by SQLAlchemy."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Mapping, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .models import (
    AssetType,
    Contribution,
    ContributionKind,
    HoldingTransaction,
    Member,
    PriceQuote,
    Role,
)


metadata = MetaData()

LOGGER = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


members = Table(
    "members",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("display_name", String(255), nullable=False),
    Column("email", String(255), nullable=True),
    Column("role", String(16), nullable=False, default=Role.MEMBER.value),
    Column("is_approved", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

contributions = Table(
    "contributions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("member_id", ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("amount", Float, nullable=False),
    Column("date", Date, nullable=True),
    Column("kind", String(16), nullable=False, default=ContributionKind.CASH.value),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

holding_transactions = Table(
    "holding_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("symbol", String(64), nullable=False, index=True),
    Column("display_symbol", String(64), nullable=True),
    Column("name", String(255), nullable=True),
    Column("quantity", Float, nullable=False),
    Column("unit_price", Float, nullable=False),
    Column("date", Date, nullable=True),
    Column("asset_type", String(16), nullable=False, default=AssetType.STOCK.value),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

price_quotes = Table(
    "price_quotes",
    metadata,
    Column("symbol", String(64), primary_key=True),
    Column("price", Float, nullable=False),
    Column("observed_at", DateTime(timezone=True), nullable=False),
)


class LedgerError(RuntimeError):
    """Raised when the ledger store cannot complete an operation."""


def canonical_symbol(symbol: str) -> str:
    return symbol.strip().upper()


def create_db_engine(database_url: str) -> Engine:
    """Create a SQLAlchemy engine."""

    LOGGER.debug("Creating database engine")
    return create_engine(database_url, future=True, pool_pre_ping=True)


@contextmanager
def session(engine: Engine) -> Iterator[Connection]:
    """Provide a transactional scope, translating driver errors."""

    try:
        with engine.begin() as conn:
            yield conn
    except SQLAlchemyError as exc:
        LOGGER.exception("Ledger operation failed")
        raise LedgerError(str(exc)) from exc


def ensure_schema(engine: Engine) -> None:
    """Create tables if they do not exist."""

    LOGGER.debug("Ensuring database schema is present")
    try:
        metadata.create_all(engine)
    except SQLAlchemyError as exc:
        raise LedgerError(str(exc)) from exc


def _insert(conn: Connection, table: Table):
    """Dialect specific INSERT supporting ``ON CONFLICT``."""

    if conn.dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timezone-aware columns back naive.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Members ------------------------------------------------------------------


def _member_from_row(row) -> Member:
    data = row._mapping
    return Member(
        id=data["id"],
        display_name=data["display_name"],
        email=data["email"],
        role=Role(data["role"]),
        is_approved=bool(data["is_approved"]),
    )


def list_members(engine: Engine) -> list[Member]:
    with session(engine) as conn:
        rows = conn.execute(select(members).order_by(members.c.display_name)).all()
    return [_member_from_row(row) for row in rows]


def get_member(engine: Engine, member_id: str) -> Optional[Member]:
    with session(engine) as conn:
        row = conn.execute(select(members).where(members.c.id == member_id)).first()
    return _member_from_row(row) if row is not None else None


def upsert_member(engine: Engine, member: Member) -> None:
    """Insert a member or refresh their name and email."""

    with session(engine) as conn:
        stmt = _insert(conn, members).values(
            id=member.id,
            display_name=member.display_name,
            email=member.email,
            role=member.role.value,
            is_approved=member.is_approved,
            created_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[members.c.id],
            set_={"display_name": stmt.excluded.display_name, "email": stmt.excluded.email},
        )
        conn.execute(stmt)
    LOGGER.info("Saved member %s", member.id)


def set_member_approval(engine: Engine, member_id: str, is_approved: bool) -> bool:
    with session(engine) as conn:
        result = conn.execute(
            update(members).where(members.c.id == member_id).values(is_approved=is_approved)
        )
        changed = result.rowcount > 0
    return changed


def set_member_role(engine: Engine, member_id: str, role: Role) -> bool:
    with session(engine) as conn:
        result = conn.execute(
            update(members).where(members.c.id == member_id).values(role=role.value)
        )
        changed = result.rowcount > 0
    return changed


# Contributions ------------------------------------------------------------


def _contribution_from_row(row) -> Contribution:
    data = row._mapping
    return Contribution(
        id=data["id"],
        member_id=data["member_id"],
        amount=float(data["amount"]),
        date=data["date"],
        kind=ContributionKind(data["kind"]),
    )


def list_contributions(engine: Engine, member_id: str | None = None) -> list[Contribution]:
    """Return contributions in insertion order, optionally for one member."""

    stmt = select(contributions).order_by(contributions.c.id)
    if member_id is not None:
        stmt = stmt.where(contributions.c.member_id == member_id)
    with session(engine) as conn:
        rows = conn.execute(stmt).all()
    return [_contribution_from_row(row) for row in rows]


def insert_contribution(engine: Engine, contribution: Contribution) -> int:
    with session(engine) as conn:
        result = conn.execute(
            contributions.insert().values(
                member_id=contribution.member_id,
                amount=contribution.amount,
                date=contribution.date,
                kind=contribution.kind.value,
            )
        )
        new_id = result.inserted_primary_key[0]
    LOGGER.info("Recorded contribution %s of %.2f for %s", new_id, contribution.amount, contribution.member_id)
    return new_id


def delete_contribution(engine: Engine, contribution_id: int) -> bool:
    with session(engine) as conn:
        result = conn.execute(delete(contributions).where(contributions.c.id == contribution_id))
        deleted = result.rowcount > 0
    if deleted:
        LOGGER.info("Deleted contribution %s", contribution_id)
    return deleted


# Holding transactions -----------------------------------------------------


def _transaction_from_row(row) -> HoldingTransaction:
    data = row._mapping
    return HoldingTransaction(
        id=data["id"],
        symbol=data["symbol"],
        display_symbol=data["display_symbol"],
        name=data["name"],
        quantity=float(data["quantity"]),
        unit_price=float(data["unit_price"]),
        date=data["date"],
        asset_type=AssetType(data["asset_type"]),
    )


def list_holding_transactions(engine: Engine, symbol: str | None = None) -> list[HoldingTransaction]:
    """Return holding transactions in insertion order, optionally for one symbol."""

    stmt = select(holding_transactions).order_by(holding_transactions.c.id)
    if symbol is not None:
        stmt = stmt.where(holding_transactions.c.symbol == canonical_symbol(symbol))
    with session(engine) as conn:
        rows = conn.execute(stmt).all()
    return [_transaction_from_row(row) for row in rows]


def insert_holding_transaction(engine: Engine, transaction: HoldingTransaction) -> int:
    symbol = canonical_symbol(transaction.symbol)
    if not symbol:
        raise ValueError("Symbol required")
    with session(engine) as conn:
        result = conn.execute(
            holding_transactions.insert().values(
                symbol=symbol,
                display_symbol=transaction.display_symbol or None,
                name=transaction.name or None,
                quantity=transaction.quantity,
                unit_price=transaction.unit_price,
                date=transaction.date,
                asset_type=transaction.asset_type.value,
            )
        )
        new_id = result.inserted_primary_key[0]
    LOGGER.info("Recorded %s of %s %s @ %s", new_id, transaction.quantity, symbol, transaction.unit_price)
    return new_id


def delete_holding_transaction(engine: Engine, transaction_id: int) -> bool:
    with session(engine) as conn:
        result = conn.execute(
            delete(holding_transactions).where(holding_transactions.c.id == transaction_id)
        )
        deleted = result.rowcount > 0
    if deleted:
        LOGGER.info("Deleted holding transaction %s", transaction_id)
    return deleted


# Price cache --------------------------------------------------------------


def get_cached_prices(engine: Engine) -> dict[str, PriceQuote]:
    with session(engine) as conn:
        rows = conn.execute(select(price_quotes)).all()
    return {
        row.symbol: PriceQuote(symbol=row.symbol, price=float(row.price), observed_at=_as_utc(row.observed_at))
        for row in rows
    }


def upsert_prices(
    engine: Engine, prices: Mapping[str, float], observed_at: datetime | None = None
) -> int:
    """Store quotes keyed by symbol. The last writer wins."""

    if not prices:
        return 0
    stamp = observed_at or utcnow()
    with session(engine) as conn:
        for symbol, price in prices.items():
            stmt = _insert(conn, price_quotes).values(
                symbol=canonical_symbol(symbol), price=float(price), observed_at=stamp
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[price_quotes.c.symbol],
                set_={"price": stmt.excluded.price, "observed_at": stmt.excluded.observed_at},
            )
            conn.execute(stmt)
    LOGGER.info("Stored %d price quotes", len(prices))
    return len(prices)


__all__ = [
    "LedgerError",
    "canonical_symbol",
    "contributions",
    "create_db_engine",
    "delete_contribution",
    "delete_holding_transaction",
    "ensure_schema",
    "get_cached_prices",
    "get_member",
    "holding_transactions",
    "insert_contribution",
    "insert_holding_transaction",
    "list_contributions",
    "list_holding_transactions",
    "list_members",
    "members",
    "metadata",
    "price_quotes",
    "set_member_approval",
    "set_member_role",
    "upsert_member",
    "upsert_prices",
    "utcnow",
]
