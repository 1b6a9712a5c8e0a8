import io

import pytest
from sqlalchemy import event

from club_ledger.db import (
    create_db_engine,
    ensure_schema,
    insert_contribution,
    list_contributions,
    list_holding_transactions,
    upsert_member,
)
from club_ledger.models import Contribution, Member
from club_ledger.runner import (
    contribution_from_row,
    import_rows,
    main,
    member_contribution_parser,
    print_summary,
    transaction_from_row,
)


def test_transaction_rows():
    row = {"symbol": "infy", "quantity": "-4", "unit_price": "₹1,500.50", "date": "05/03/2024", "asset_type": "Fund"}

    transaction = transaction_from_row(row)

    assert transaction.symbol == "INFY"
    assert transaction.quantity == -4
    assert transaction.unit_price == pytest.approx(1500.5)
    assert transaction.date.month == 3
    assert transaction.asset_type.value == "fund"


@pytest.mark.parametrize(
    "row",
    [
        {"symbol": "", "quantity": "1", "unit_price": "1"},
        {"symbol": "INFY", "quantity": "0", "unit_price": "1"},
        {"symbol": "INFY", "quantity": "1", "unit_price": "0"},
        {"symbol": "INFY", "quantity": "1", "unit_price": "1", "asset_type": "bond"},
    ],
)
def test_bad_transaction_rows(row):
    with pytest.raises(ValueError):
        transaction_from_row(row)


def test_import_skips_bad_rows(engine):
    handle = io.StringIO(
        "member_id,amount,date,kind\n"
        "asha,6000,2024-01-01,cash\n"
        "ravi,lots,2024-01-01,cash\n"
        "ravi,4000,,invested\n"
    )

    inserted, skipped = import_rows(handle, contribution_from_row, lambda item: insert_contribution(engine, item))

    assert (inserted, skipped) == (2, 1)
    assert [row.amount for row in list_contributions(engine)] == [6000, 4000]


def test_summary(engine):
    insert_contribution(engine, Contribution("asha", 1000))
    out = io.StringIO()

    assert print_summary(engine, out)
    assert "Total capital" in out.getvalue()
    assert "asha" in out.getvalue()


def test_main_imports_transactions(tmp_path, monkeypatch):
    database = tmp_path / "cli.db"
    csv_path = tmp_path / "trades.csv"
    csv_path.write_text("symbol,quantity,unit_price,date\nINFY,10,100,2024-01-01\nTCS,x,1,\n")
    monkeypatch.setenv("CLUB_LEDGER_DATABASE_URL", f"sqlite:///{database}")
    monkeypatch.setenv("CLUB_LEDGER_ENV_FILE", str(tmp_path / "absent.env"))

    assert main(["import-transactions", str(csv_path)]) == 0

    rows = list_holding_transactions(create_db_engine(f"sqlite:///{database}"))
    assert [row.symbol for row in rows] == ["INFY"]


@pytest.fixture
def strict_engine(tmp_path):
    """A SQLite ledger that enforces the contributions -> members foreign key."""

    engine = create_db_engine(f"sqlite:///{tmp_path / 'strict.db'}")

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    ensure_schema(engine)
    yield engine
    engine.dispose()


def test_contribution_import_skips_unknown_members(strict_engine):
    upsert_member(strict_engine, Member("asha", "Asha"))
    handle = io.StringIO("member_id,amount\nasha,100\nghost,50\nasha,200\n")

    inserted, skipped = import_rows(
        handle,
        member_contribution_parser(strict_engine),
        lambda item: insert_contribution(strict_engine, item),
    )

    assert (inserted, skipped) == (2, 1)
    assert [row.amount for row in list_contributions(strict_engine)] == [100, 200]


def test_main_imports_contributions_for_known_members(tmp_path, monkeypatch):
    database = tmp_path / "cli.db"
    engine = create_db_engine(f"sqlite:///{database}")
    ensure_schema(engine)
    upsert_member(engine, Member("asha", "Asha"))
    csv_path = tmp_path / "capital.csv"
    csv_path.write_text("member_id,amount,date\nghost,50,2024-01-01\nasha,100,2024-01-02\n")
    monkeypatch.setenv("CLUB_LEDGER_DATABASE_URL", f"sqlite:///{database}")
    monkeypatch.setenv("CLUB_LEDGER_ENV_FILE", str(tmp_path / "absent.env"))

    assert main(["import-contributions", str(csv_path)]) == 0

    assert [(row.member_id, row.amount) for row in list_contributions(engine)] == [("asha", 100)]
