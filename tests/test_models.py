"""Tests for record and derived models.

These tests verify:
1. Transaction validation and derived totals
2. Quote change calculations
3. Cache entry conversion back into quotes
"""

from datetime import date, datetime

import pytest

from ledgerline.models import (
    DividendEvent,
    DividendType,
    PriceCacheEntry,
    Quote,
    Side,
    Transaction,
)


class TestTransaction:
    def test_total_amount_includes_fee_and_tax(self):
        tx = Transaction(
            code="2330", side=Side.BUY, quantity=1000, price=500.0, executed_at=datetime(2024, 1, 15), fee=20.0
        )
        assert tx.total_amount == 500020.0

    def test_sell_total_amount_includes_tax(self):
        tx = Transaction(
            code="2330",
            side=Side.SELL,
            quantity=100,
            price=600.0,
            executed_at=datetime(2024, 3, 1),
            fee=10.0,
            tax=180.0,
        )
        assert tx.total_amount == 60190.0

    def test_side_accepts_string(self):
        tx = Transaction(code="2330", side="SELL", quantity=1, price=1.0, executed_at=datetime(2024, 1, 1))
        assert tx.side is Side.SELL

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_rejects_non_positive_quantity(self, quantity):
        with pytest.raises(ValueError, match="quantity"):
            Transaction(code="2330", side=Side.BUY, quantity=quantity, price=1.0, executed_at=datetime(2024, 1, 1))

    def test_rejects_negative_price(self):
        with pytest.raises(ValueError, match="price"):
            Transaction(code="2330", side=Side.BUY, quantity=1, price=-1.0, executed_at=datetime(2024, 1, 1))

    def test_rejects_negative_fee(self):
        with pytest.raises(ValueError):
            Transaction(code="2330", side=Side.BUY, quantity=1, price=1.0, executed_at=datetime(2024, 1, 1), fee=-1)

    def test_trade_date_drops_time_of_day(self):
        tx = Transaction(code="2330", side=Side.BUY, quantity=1, price=1.0, executed_at=datetime(2024, 1, 15, 13, 25))
        assert tx.trade_date == date(2024, 1, 15)


class TestQuote:
    def test_build_derives_change(self):
        quote = Quote.build(code="2330", current_price=520.0, previous_close=510.0, timestamp=0)
        assert quote.change == pytest.approx(10.0)
        assert quote.change_percent == pytest.approx(10.0 / 510.0 * 100)
        assert quote.is_stale is False

    def test_zero_previous_close_gives_zero_percent(self):
        quote = Quote.build(code="2330", current_price=5.0, previous_close=0.0, timestamp=0)
        assert quote.change == 5.0
        assert quote.change_percent == 0.0


class TestPriceCacheEntry:
    def test_round_trip_through_quote(self):
        quote = Quote.build(code="2330", current_price=520.0, previous_close=510.0, timestamp=1.0, ask_price=521.0)
        entry = PriceCacheEntry.from_quote(quote, last_update=1000.0)

        restored = entry.to_quote(is_stale=True)

        assert restored.current_price == 520.0
        assert restored.previous_close == 510.0
        assert restored.ask_price == 521.0
        assert restored.timestamp == 1000.0
        assert restored.is_stale is True
        assert restored.source == "cache"


class TestDividendEvent:
    def test_key_is_transaction_date_type(self):
        event = DividendEvent(
            transaction_id=7,
            code="2330",
            dividend_type=DividendType.CASH,
            ex_dividend_date=date(2024, 6, 13),
            per_share=4.0,
            quantity=1000,
            amount=4000.0,
        )
        assert event.key == (7, date(2024, 6, 13), DividendType.CASH)
