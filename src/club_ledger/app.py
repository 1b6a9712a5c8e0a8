"""FastAPI application exposing the club ledger and its valuation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine

from .config import Settings
from .costbasis import chronological, fold_position
from .dashboard import DashboardService, LoadState, SnapshotUnavailable
from .db import (
    LedgerError,
    canonical_symbol,
    create_db_engine,
    delete_contribution,
    delete_holding_transaction,
    ensure_schema,
    get_cached_prices,
    get_member,
    insert_contribution,
    insert_holding_transaction,
    list_contributions,
    list_holding_transactions,
    list_members,
    set_member_approval,
    set_member_role,
    upsert_member,
)
from .logging_utils import configure_logging
from .models import (
    AssetType,
    Contribution,
    ContributionKind,
    HoldingTransaction,
    Member,
    MemberShare,
    Role,
    SymbolPosition,
    SymbolValuation,
)
from .pricesync import PriceSync
from .quotes import BatchQuoteSource, QuoteSource, build_provider_chain
from .quotes.utils import parse_date

LOGGER = logging.getLogger(__name__)

PRICE_JOB_ID = "price-sync"
REFRESH_JOB_ID = "dashboard-refresh"


@dataclass(frozen=True)
class Caller:
    """Identity supplied by the upstream identity provider."""

    member_id: Optional[str]
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def get_caller(
    x_member_id: Optional[str] = Header(default=None),
    x_member_role: Optional[str] = Header(default=None),
) -> Caller:
    role = Role.ADMIN if (x_member_role or "").strip().lower() == Role.ADMIN.value else Role.MEMBER
    return Caller(member_id=(x_member_id or "").strip() or None, role=role)


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return caller


class ContributionIn(BaseModel):
    member_id: str = Field(min_length=1, max_length=64)
    amount: float
    date: Optional[str] = None
    kind: ContributionKind = ContributionKind.CASH


class TransactionIn(BaseModel):
    symbol: str = Field(min_length=1, max_length=64)
    quantity: float
    unit_price: float = Field(gt=0)
    date: Optional[str] = None
    name: Optional[str] = None
    display_symbol: Optional[str] = None
    asset_type: AssetType = AssetType.STOCK


class MemberIn(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    display_name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = None


class ApprovalIn(BaseModel):
    is_approved: bool


class RoleIn(BaseModel):
    role: Role


def _position_json(position: SymbolPosition) -> dict[str, Any]:
    return {
        "symbol": position.symbol,
        "display_symbol": position.display_symbol,
        "name": position.name,
        "quantity": position.quantity,
        "cost_basis": position.cost_basis,
        "avg_price": position.avg_price,
        "realized_profit": position.realized_profit,
    }


def _valuation_line_json(line: SymbolValuation) -> dict[str, Any]:
    return {
        **_position_json(line.position),
        "current_price": line.current_price,
        "current_value": line.current_value,
        "unrealized_profit": line.unrealized_profit,
        "total_profit": line.total_profit,
        "quoted": line.quoted,
    }


def _share_json(share: MemberShare) -> dict[str, Any]:
    return {
        "member_id": share.member_id,
        "contributed_capital": share.contributed_capital,
        "share_fraction": share.share_fraction,
        "current_value": share.current_value,
        "profit": share.profit,
    }


def _contribution_json(item: Contribution) -> dict[str, Any]:
    return {
        "id": item.id,
        "member_id": item.member_id,
        "amount": item.amount,
        "date": item.date.isoformat() if item.date else None,
        "kind": item.kind.value,
    }


def _transaction_json(item: HoldingTransaction) -> dict[str, Any]:
    return {
        "id": item.id,
        "symbol": item.symbol,
        "display_symbol": item.display_symbol,
        "name": item.name,
        "quantity": item.quantity,
        "unit_price": item.unit_price,
        "date": item.date.isoformat() if item.date else None,
        "asset_type": item.asset_type.value,
    }


def _member_json(member: Member) -> dict[str, Any]:
    return {
        "id": member.id,
        "display_name": member.display_name,
        "email": member.email,
        "role": member.role.value,
        "is_approved": member.is_approved,
    }


def _parse_input_date(value: Optional[str]):
    try:
        return parse_date(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def create_app(
    settings: Settings | None = None,
    engine: Engine | None = None,
    sources: tuple[Optional[BatchQuoteSource], list[QuoteSource]] | None = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Build the application. Run with ``uvicorn club_ledger.app:create_app --factory``."""

    configure_logging()
    settings = settings or Settings.load()
    engine = engine or create_db_engine(settings.database_url)
    batch_source, single_sources = sources if sources is not None else build_provider_chain(settings)

    dashboard = DashboardService(engine)
    price_sync = PriceSync(
        engine,
        batch_source,
        single_sources,
        stale_after_seconds=settings.stale_after_seconds,
        fallback_delay_seconds=settings.fallback_delay_seconds,
    )
    scheduler = AsyncIOScheduler()

    def _price_job() -> None:
        result = price_sync.run_cycle()
        if result.did_update:
            dashboard.refresh()

    app = FastAPI(title="Club Ledger")
    app.state.settings = settings
    app.state.engine = engine
    app.state.dashboard = dashboard
    app.state.price_sync = price_sync
    app.state.scheduler = scheduler

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"state": LoadState.FAILED.value, "detail": "Ledger unavailable"},
        )

    @app.exception_handler(SnapshotUnavailable)
    async def snapshot_unavailable_handler(request: Request, exc: SnapshotUnavailable) -> JSONResponse:
        if exc.state is LoadState.LOADING:
            return JSONResponse(
                status_code=status.HTTP_202_ACCEPTED, content={"state": exc.state.value}
            )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"state": exc.state.value, "detail": exc.error},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        LOGGER.info("Starting FastAPI application")
        ensure_schema(engine)
        dashboard.refresh()
        if not start_scheduler:
            return
        now = datetime.now(timezone.utc)
        scheduler.add_job(
            _price_job,
            trigger=IntervalTrigger(seconds=settings.sync_interval_seconds),
            id=PRICE_JOB_ID,
            replace_existing=True,
            next_run_time=now,
        )
        scheduler.add_job(
            dashboard.refresh,
            trigger=IntervalTrigger(seconds=settings.refresh_interval_seconds),
            id=REFRESH_JOB_ID,
            replace_existing=True,
        )
        scheduler.start()
        LOGGER.info(
            "Scheduler started: prices every %ss, dashboard every %ss",
            settings.sync_interval_seconds,
            settings.refresh_interval_seconds,
        )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if scheduler.running:
            scheduler.shutdown()
            LOGGER.info("Scheduler shut down")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "dashboard": dashboard.snapshot.state.value}

    @app.get("/dashboard")
    def get_dashboard(caller: Caller = Depends(get_caller)) -> dict[str, Any]:
        snapshot = dashboard.snapshot
        valuation = snapshot.require_computed()
        personal = _share_json(snapshot.member_share(caller.member_id)) if caller.member_id else None
        return {
            "state": LoadState.COMPUTED.value,
            "computed_at": snapshot.computed_at,
            "group": {
                "total_capital": valuation.total_capital,
                "cash_balance": valuation.cash_balance,
                "invested_amount": valuation.invested_amount,
                "current_holdings_value": valuation.current_holdings_value,
                "total_current_value": valuation.total_current_value,
                "total_profit": valuation.total_profit,
            },
            "symbols": [_valuation_line_json(line) for line in valuation.symbols],
            "personal": personal,
        }

    @app.get("/shares")
    def get_shares() -> list[dict[str, Any]]:
        return [_share_json(share) for share in dashboard.all_shares()]

    @app.get("/contributions")
    def get_contributions(member_id: Optional[str] = None) -> list[dict[str, Any]]:
        return [_contribution_json(item) for item in list_contributions(engine, member_id)]

    @app.post("/contributions", status_code=status.HTTP_201_CREATED)
    def post_contribution(payload: ContributionIn, caller: Caller = Depends(require_admin)) -> dict[str, Any]:
        if get_member(engine, payload.member_id) is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown member")
        contribution = Contribution(
            member_id=payload.member_id,
            amount=payload.amount,
            date=_parse_input_date(payload.date),
            kind=payload.kind,
        )
        contribution.id = insert_contribution(engine, contribution)
        dashboard.refresh()
        return _contribution_json(contribution)

    @app.delete("/contributions/{contribution_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_contribution(contribution_id: int, caller: Caller = Depends(require_admin)) -> None:
        if not delete_contribution(engine, contribution_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contribution not found")
        dashboard.refresh()

    @app.get("/transactions")
    def get_transactions(symbol: Optional[str] = None) -> list[dict[str, Any]]:
        return [_transaction_json(item) for item in list_holding_transactions(engine, symbol)]

    @app.post("/transactions", status_code=status.HTTP_201_CREATED)
    def post_transaction(payload: TransactionIn, caller: Caller = Depends(require_admin)) -> dict[str, Any]:
        if payload.quantity == 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity must not be zero")
        transaction = HoldingTransaction(
            symbol=canonical_symbol(payload.symbol),
            quantity=payload.quantity,
            unit_price=payload.unit_price,
            date=_parse_input_date(payload.date),
            name=payload.name,
            display_symbol=payload.display_symbol,
            asset_type=payload.asset_type,
        )
        transaction.id = insert_holding_transaction(engine, transaction)
        dashboard.refresh()
        return _transaction_json(transaction)

    @app.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_transaction(transaction_id: int, caller: Caller = Depends(require_admin)) -> None:
        if not delete_holding_transaction(engine, transaction_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
        dashboard.refresh()

    @app.get("/positions")
    def get_positions() -> list[dict[str, Any]]:
        valuation = dashboard.valuation()
        return [_valuation_line_json(line) for line in valuation.symbols]

    @app.get("/positions/{symbol}/history")
    def get_position_history(symbol: str) -> dict[str, Any]:
        key = canonical_symbol(symbol)
        transactions = list_holding_transactions(engine, key)
        if not transactions:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No transactions for {key}")
        return {
            "position": _position_json(fold_position(key, transactions)),
            "transactions": [_transaction_json(item) for item in chronological(transactions)],
        }

    @app.get("/prices")
    def get_prices() -> dict[str, dict[str, Any]]:
        return {
            symbol: {"price": quote.price, "observed_at": quote.observed_at}
            for symbol, quote in get_cached_prices(engine).items()
        }

    @app.post("/prices/refresh")
    def refresh_prices(caller: Caller = Depends(require_admin)) -> dict[str, Any]:
        result = price_sync.run_cycle()
        if result.did_update:
            dashboard.refresh()
        return {"updated": sorted(result.updated), "missing": result.missing, "stale": result.stale}

    @app.get("/members")
    def get_members() -> list[dict[str, Any]]:
        return [_member_json(member) for member in list_members(engine)]

    @app.post("/members", status_code=status.HTTP_201_CREATED)
    def post_member(payload: MemberIn, caller: Caller = Depends(require_admin)) -> dict[str, Any]:
        member = Member(id=payload.id, display_name=payload.display_name, email=payload.email)
        upsert_member(engine, member)
        return _member_json(member)

    @app.post("/members/{member_id}/approval")
    def post_member_approval(
        member_id: str, payload: ApprovalIn, caller: Caller = Depends(require_admin)
    ) -> dict[str, Any]:
        if not set_member_approval(engine, member_id, payload.is_approved):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
        return {"id": member_id, "is_approved": payload.is_approved}

    @app.post("/members/{member_id}/role")
    def post_member_role(member_id: str, payload: RoleIn, caller: Caller = Depends(require_admin)) -> dict[str, Any]:
        if not set_member_role(engine, member_id, payload.role):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
        return {"id": member_id, "role": payload.role.value}

    return app


__all__ = ["Caller", "create_app", "get_caller", "require_admin"]
