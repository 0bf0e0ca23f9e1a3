"""
Market session status from an exchange feed snapshot.

Usage:
    payload = await twse.market_snapshot()
    if should_show_today_profit_loss(payload):
        ...
    phase = market_phase(payload)

A day is a trading day when the feed's system date equals the date of the
latest trade. Without a usable payload, weekdays count as trading days.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from ledgerline.config.markets import MARKET_TIMEZONE

# Session boundaries in minutes after midnight, exchange local time
AUCTION_START = 8 * 60 + 30
OPEN = 9 * 60
CLOSE = 13 * 60 + 30
ODD_LOT_END = 14 * 60 + 30


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(ZoneInfo(MARKET_TIMEZONE))
    if now.tzinfo is not None:
        return now.astimezone(ZoneInfo(MARKET_TIMEZONE))
    return now


def is_trading_day(payload: Optional[dict], now: Optional[datetime] = None) -> bool:
    """Whether the exchange trades today."""
    query_time = (payload or {}).get("queryTime") or {}
    rows = (payload or {}).get("msgArray") or []
    sys_date = query_time.get("sysDate")
    if not sys_date or not rows or not isinstance(rows[0], dict):
        return _now(now).weekday() < 5
    return sys_date == rows[0].get("d")


def _minutes_of_day(payload: Optional[dict], now: Optional[datetime]) -> int:
    """Exchange clock from the feed when present, local clock otherwise."""
    sys_time = ((payload or {}).get("queryTime") or {}).get("sysTime")
    if sys_time:
        try:
            hour, minute = sys_time.split(":")[:2]
            return int(hour) * 60 + int(minute)
        except ValueError:
            pass
    current = _now(now)
    return current.hour * 60 + current.minute


def market_phase(payload: Optional[dict], now: Optional[datetime] = None) -> str:
    """
    Current session phase.

    Returns one of: closed, pre_market, auction, open, odd_lot, after_hours
    """
    if not is_trading_day(payload, now):
        return "closed"
    minutes = _minutes_of_day(payload, now)
    if minutes < AUCTION_START:
        return "pre_market"
    if minutes < OPEN:
        return "auction"
    if minutes < CLOSE:
        return "open"
    if minutes < ODD_LOT_END:
        return "odd_lot"
    return "after_hours"


def should_show_today_profit_loss(payload: Optional[dict], now: Optional[datetime] = None) -> bool:
    """Today's P&L is meaningful on trading days from the opening bell on."""
    if not is_trading_day(payload, now):
        return False
    return _minutes_of_day(payload, now) >= OPEN
