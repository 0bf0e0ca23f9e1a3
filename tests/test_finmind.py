"""Tests for the historical feed client."""

from datetime import date

import pytest
import requests

from ledgerline.errors import DividendSourceError, EmptyQuoteError, QuoteParseError, QuoteSourceError
from ledgerline.sources.finmind import DividendQueryResult, FinMindClient
from tests.helpers import make_response, make_session


def _prices(*closes):
    return {
        "status": 200,
        "msg": "success",
        "data": [
            {"date": f"2024-05-{10 + i:02d}", "open": close - 1, "close": close} for i, close in enumerate(closes)
        ],
    }


class TestFetchQuote:
    @pytest.mark.asyncio
    async def test_last_two_closes(self, clock):
        client = FinMindClient(session=make_session(make_response(_prices(500.0, 510.0, 520.0))), clock=clock)

        quote = await client.fetch_quote("2330", "tok", today=date(2024, 5, 20))

        assert quote.current_price == 520.0
        assert quote.previous_close == 510.0
        assert quote.source == "finmind"
        assert quote.ask_price is None

    @pytest.mark.asyncio
    async def test_rows_are_sorted_by_date(self, clock):
        payload = {
            "status": 200,
            "data": [{"date": "2024-05-14", "open": 1, "close": 530.0}, {"date": "2024-05-13", "open": 1, "close": 525.0}],
        }
        client = FinMindClient(session=make_session(make_response(payload)), clock=clock)

        quote = await client.fetch_quote("2330", "tok")

        assert quote.current_price == 530.0
        assert quote.previous_close == 525.0

    @pytest.mark.asyncio
    async def test_single_row_uses_open(self, clock):
        client = FinMindClient(session=make_session(make_response(_prices(520.0))), clock=clock)

        quote = await client.fetch_quote("2330", "tok")

        assert quote.previous_close == 519.0

    @pytest.mark.asyncio
    async def test_request_window_and_token(self, clock):
        session = make_session(make_response(_prices(520.0, 521.0)))
        client = FinMindClient(session=session, clock=clock)

        await client.fetch_quote("2330", "tok", today=date(2024, 5, 31))

        params = session.get.call_args.kwargs["params"]
        assert params["dataset"] == "TaiwanStockPrice"
        assert params["data_id"] == "2330"
        assert params["start_date"] == "2024-05-01"
        assert params["end_date"] == "2024-05-31"
        assert params["token"] == "tok"

    @pytest.mark.asyncio
    async def test_no_rows_is_empty(self, clock):
        client = FinMindClient(session=make_session(make_response({"status": 200, "data": []})), clock=clock)

        with pytest.raises(EmptyQuoteError):
            await client.fetch_quote("2330", "tok")

    @pytest.mark.asyncio
    async def test_error_status_is_source_error(self, clock):
        payload = {"status": 402, "msg": "Requests reach the upper limit"}
        client = FinMindClient(session=make_session(make_response(payload)), clock=clock)

        with pytest.raises(QuoteSourceError):
            await client.fetch_quote("2330", "tok")

    @pytest.mark.asyncio
    async def test_malformed_row_is_parse_error(self, clock):
        payload = {"status": 200, "data": [{"date": "2024-05-10", "close": "n/a"}]}
        client = FinMindClient(session=make_session(make_response(payload)), clock=clock)

        with pytest.raises(QuoteParseError):
            await client.fetch_quote("2330", "tok")

    @pytest.mark.asyncio
    async def test_non_dict_rows_are_parse_error(self, clock):
        payload = {"status": 200, "data": ["2024-05-10", {"date": "2024-05-11", "open": 1, "close": 2}]}
        client = FinMindClient(session=make_session(make_response(payload)), clock=clock)

        with pytest.raises(QuoteParseError):
            await client.fetch_quote("2330", "tok")

    @pytest.mark.asyncio
    async def test_connection_error_is_source_error(self, clock):
        client = FinMindClient(session=make_session(requests.ConnectionError("down")), clock=clock)

        with pytest.raises(QuoteSourceError):
            await client.fetch_quote("2330", "tok")


class TestDividendEvents:
    @pytest.mark.asyncio
    async def test_rows_returned(self):
        rows = [{"stock_id": "2330", "CashExDividendTradingDate": "2024-06-13", "CashEarningsDistribution": 4.0}]
        session = make_session(make_response({"status": 200, "msg": "success", "data": rows}))
        client = FinMindClient(session=session)

        result = await client.lookup_dividend_events("2330", date(2024, 1, 1), date(2024, 12, 31), "")

        assert result.rows == rows
        assert result.not_found is False
        assert "token" not in session.get.call_args.kwargs["params"]

    @pytest.mark.asyncio
    async def test_unknown_instrument_is_not_found(self):
        payload = {"status": 400, "msg": "data_id 9999 not found", "data": []}
        client = FinMindClient(session=make_session(make_response(payload)))

        result = await client.lookup_dividend_events("9999", date(2024, 1, 1), date(2024, 12, 31), "tok")

        assert result.not_found is True

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        payload = {"status": 402, "msg": "Requests reach the upper limit"}
        client = FinMindClient(session=make_session(make_response(payload)))

        with pytest.raises(DividendSourceError):
            await client.lookup_dividend_events("2330", date(2024, 1, 1), date(2024, 12, 31), "tok")

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        client = FinMindClient(session=make_session(requests.Timeout("slow")))

        with pytest.raises(DividendSourceError):
            await client.lookup_dividend_events("2330", date(2024, 1, 1), date(2024, 12, 31), "tok")

    @pytest.mark.asyncio
    async def test_non_list_rows_raise(self):
        payload = {"status": 200, "msg": "success", "data": "oops"}
        client = FinMindClient(session=make_session(make_response(payload)))

        with pytest.raises(DividendSourceError):
            await client.lookup_dividend_events("2330", date(2024, 1, 1), date(2024, 12, 31), "tok")

    def test_not_found_requires_empty_rows(self):
        assert DividendQueryResult("not found", [{"x": 1}]).not_found is False
        assert DividendQueryResult("success", []).not_found is False
        assert DividendQueryResult("Data ID does not exist", []).not_found is True


class TestInstrumentInfo:
    @pytest.mark.asyncio
    async def test_etf_by_category(self):
        payload = {
            "status": 200,
            "data": [{"stock_id": "0050", "stock_name": "元大台灣50", "industry_category": "ETF", "type": "twse"}],
        }
        client = FinMindClient(session=make_session(make_response(payload)))

        info = await client.lookup_instrument_info("0050")

        assert info.name == "元大台灣50"
        assert info.is_etf is True

    @pytest.mark.asyncio
    async def test_ordinary_stock(self):
        payload = {
            "status": 200,
            "data": [{"stock_id": "2330", "stock_name": "台積電", "industry_category": "半導體業", "type": "twse"}],
        }
        client = FinMindClient(session=make_session(make_response(payload)))

        info = await client.lookup_instrument_info("2330")

        assert info.is_etf is False
        assert info.industry == "半導體業"

    @pytest.mark.asyncio
    async def test_failure_returns_none(self):
        client = FinMindClient(session=make_session(requests.ConnectionError("down")))

        assert await client.lookup_instrument_info("2330") is None

    @pytest.mark.asyncio
    async def test_unknown_code_returns_none(self):
        client = FinMindClient(session=make_session(make_response({"status": 200, "data": []})))

        assert await client.lookup_instrument_info("9999") is None

    @pytest.mark.asyncio
    async def test_non_dict_rows_are_skipped(self):
        payload = {"status": 200, "data": ["2330", {"stock_id": "2330", "stock_name": "台積電"}]}
        client = FinMindClient(session=make_session(make_response(payload)))

        info = await client.lookup_instrument_info("2330")

        assert info.name == "台積電"
