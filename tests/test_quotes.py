import pytest
import requests

from conftest import FakeResponse, FakeSession

from club_ledger.config import Settings
from club_ledger.quotes import (
    FinnhubSource,
    QuoteError,
    ScreenerSource,
    YahooSource,
    build_provider_chain,
    create_source,
)
from club_ledger.quotes.utils import parse_date, parse_price

SCREENER_PAGE = """
<html><body>
<ul id="top-ratios">
  <li><span class="name">Market Cap</span><span class="nowrap value">₹ <span class="number">6,12,345</span> Cr.</span></li>
  <li><span class="name">Current Price</span><span class="nowrap value">₹ <span class="number">1,482.35</span></span></li>
</ul>
</body></html>
"""


def test_parse_price():
    assert parse_price("₹ 1,482.35") == pytest.approx(1482.35)
    assert parse_price(12) == 12.0
    assert parse_price(0) is None
    assert parse_price("n/a") is None
    assert parse_price(None) is None
    assert parse_price({"raw": 12}) is None
    assert parse_price([12]) is None


def test_parse_date_prefers_iso_then_day_first():
    assert parse_date("2024-03-05").month == 3
    assert parse_date("05/03/2024").month == 3
    assert parse_date("") is None
    with pytest.raises(ValueError):
        parse_date("not a date")


def test_finnhub_reads_current_price():
    session = FakeSession(FakeResponse(payload={"c": 187.5, "pc": 180}))
    source = FinnhubSource("key", session=session, timeout=5)

    assert source.fetch_single("AAPL") == 187.5
    url, params, timeout = session.requests[0]
    assert url == FinnhubSource.BASE_URL
    assert params == {"symbol": "AAPL", "token": "key"}
    assert timeout == 5


def test_finnhub_zero_means_unknown():
    source = FinnhubSource("key", session=FakeSession(FakeResponse(payload={"c": 0})))

    assert source.fetch_single("NOPE") is None


def test_http_errors_become_quote_errors():
    source = FinnhubSource("key", session=FakeSession(FakeResponse(status_code=429)))

    with pytest.raises(QuoteError):
        source.fetch_single("AAPL")


def test_network_errors_become_quote_errors():
    source = YahooSource(session=FakeSession(requests.ConnectTimeout("timed out")))

    with pytest.raises(QuoteError):
        source.fetch_single("INFY")


def test_malformed_json_becomes_quote_error():
    source = YahooSource(session=FakeSession(FakeResponse(payload=None)))

    with pytest.raises(QuoteError):
        source.fetch_single("INFY")


def test_yahoo_chart_adds_exchange_suffix():
    payload = {"chart": {"result": [{"meta": {"regularMarketPrice": 1482.35}}], "error": None}}
    session = FakeSession(FakeResponse(payload=payload))
    source = YahooSource(session=session)

    assert source.fetch_single("INFY") == 1482.35
    assert session.requests[0][0].endswith("/chart/INFY.NS")
    source.fetch_single("AAPL.US")
    assert session.requests[1][0].endswith("/chart/AAPL.US")


def test_yahoo_chart_unknown_symbol():
    payload = {"chart": {"result": None, "error": {"code": "Not Found"}}}
    source = YahooSource(session=FakeSession(FakeResponse(payload=payload)))

    assert source.fetch_single("NOPE") is None


def test_yahoo_batch_maps_back_to_ledger_symbols():
    payload = {
        "quoteResponse": {
            "result": [
                {"symbol": "INFY.NS", "regularMarketPrice": 1482.35},
                {"symbol": "TCS.NS"},
            ]
        }
    }
    session = FakeSession(FakeResponse(payload=payload))
    source = YahooSource(session=session)

    assert source.fetch_batch(["INFY", "TCS"]) == {"INFY": 1482.35}
    assert session.requests[0][1] == {"symbols": "INFY.NS,TCS.NS"}


@pytest.mark.parametrize("payload", [[], ["c", 187.5], "187.5", 187.5])
def test_finnhub_non_object_body_is_a_quote_error(payload):
    source = FinnhubSource("key", session=FakeSession(FakeResponse(payload=payload)))

    with pytest.raises(QuoteError):
        source.fetch_single("AAPL")


@pytest.mark.parametrize(
    "chart",
    [
        {"result": {"meta": {"regularMarketPrice": 1482.35}}},
        {"result": [None]},
        {"result": ["meta"]},
        ["result"],
    ],
)
def test_yahoo_chart_with_wrong_shapes_is_a_quote_error(chart):
    source = YahooSource(session=FakeSession(FakeResponse(payload={"chart": chart})))

    with pytest.raises(QuoteError):
        source.fetch_single("INFY")


def test_yahoo_batch_ignores_malformed_entries():
    payload = {
        "quoteResponse": {
            "result": [
                "garbage",
                None,
                {"symbol": ["INFY.NS"], "regularMarketPrice": 1},
                {"symbol": "TCS.NS", "regularMarketPrice": {"raw": 3900}},
                {"symbol": "INFY.NS", "regularMarketPrice": 1500},
            ]
        }
    }
    source = YahooSource(session=FakeSession(FakeResponse(payload=payload)))

    assert source.fetch_batch(["INFY", "TCS"]) == {"INFY": 1500}


def test_yahoo_batch_without_result_list_is_a_quote_error():
    source = YahooSource(session=FakeSession(FakeResponse(payload={"quoteResponse": "down"})))

    with pytest.raises(QuoteError):
        source.fetch_batch(["INFY"])


def test_screener_scrapes_current_price():
    session = FakeSession(FakeResponse(text=SCREENER_PAGE))
    source = ScreenerSource(session=session)

    assert source.fetch_single("INFY.NS") == pytest.approx(1482.35)
    assert session.requests[0][0] == "https://www.screener.in/company/INFY/"


def test_screener_missing_company():
    source = ScreenerSource(session=FakeSession(FakeResponse(status_code=404)))

    assert source.fetch_single("NOPE") is None


def test_create_source_rejects_unknown_names():
    settings = Settings(database_url="sqlite://")

    with pytest.raises(ValueError):
        create_source("bloomberg", settings)
    with pytest.raises(ValueError):
        create_source("finnhub", settings)


def test_provider_chain_skips_finnhub_without_key():
    batch, singles = build_provider_chain(Settings(database_url="sqlite://"))

    assert batch.name == "yahoo"
    assert [source.name for source in singles] == ["yahoo", "screener"]


def test_provider_chain_honours_configured_order():
    settings = Settings(
        database_url="sqlite://",
        finnhub_api_key="key",
        price_sources=("screener", "finnhub"),
        batch_source=None,
    )

    batch, singles = build_provider_chain(settings)

    assert batch is None
    assert [source.name for source in singles] == ["screener", "finnhub"]
