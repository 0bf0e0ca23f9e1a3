"""
DividendReconciler - Attributes announced dividends to individual purchases.

Usage:
    reconciler = DividendReconciler(db, finmind)
    if await reconciler.should_reconcile('2330'):
        inserted = await reconciler.reconcile('2330', token)
    results = await reconciler.reconcile_due(['2330', '0050'], token)

A purchase is entitled to a dividend only if it was made on a day strictly
before the ex-dividend date. Existing records are only replaced after a
successful query; a failed or "not found" query leaves them untouched.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Optional

from ledgerline.config.markets import DIVIDEND_RECHECK_SECONDS
from ledgerline.errors import DividendSourceError
from ledgerline.models import (
    DividendCalculationRecord,
    DividendEvent,
    DividendType,
    QueryOutcome,
    Side,
    Transaction,
)

logger = logging.getLogger(__name__)

# (type, ex-date field, per-share field) for each kind of distribution in a feed row
DIVIDEND_KINDS = [
    (DividendType.CASH, "CashExDividendTradingDate", "CashEarningsDistribution"),
    (DividendType.STOCK, "StockExDividendTradingDate", "StockEarningsDistribution"),
]


def parse_ex_date(raw) -> Optional[date]:
    """Day part of a feed date ('2024-06-13' or '2024-06-13 00:00:00')."""
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


def _per_share(raw) -> float:
    try:
        return float(raw or 0.0)
    except (TypeError, ValueError):
        return 0.0


def attribute_dividends(code: str, purchases: list[Transaction], rows: list[dict]) -> list[DividendEvent]:
    """
    Match dividend rows against purchases.

    Every (purchase, row, type) combination where the purchase day is strictly
    before the ex-dividend date yields one event; repeated
    (transaction, date, type) triples are dropped.
    """
    events = []
    seen = set()
    for tx in purchases:
        for row in rows:
            if not isinstance(row, dict):
                continue
            for dividend_type, date_field, amount_field in DIVIDEND_KINDS:
                ex_date = parse_ex_date(row.get(date_field))
                per_share = _per_share(row.get(amount_field))
                if ex_date is None or per_share <= 0:
                    continue
                if not tx.trade_date < ex_date:
                    continue

                key = (tx.id, ex_date, dividend_type)
                if key in seen:
                    continue
                seen.add(key)

                # Stock dividends are counted in shares, not valued
                amount = per_share * tx.quantity if dividend_type == DividendType.CASH else 0.0
                year = row.get("year") or ""
                events.append(
                    DividendEvent(
                        transaction_id=tx.id,
                        code=code,
                        dividend_type=dividend_type,
                        ex_dividend_date=ex_date,
                        per_share=per_share,
                        quantity=tx.quantity,
                        amount=amount,
                        note=f"{dividend_type.value.lower()} dividend {year}".strip(),
                    )
                )
    return events


def _same_event(a: DividendEvent, b: DividendEvent) -> bool:
    return a.per_share == b.per_share and a.quantity == b.quantity and a.amount == b.amount


class DividendReconciler:
    """Discovers dividends for an instrument and records them per purchase."""

    def __init__(self, db, finmind, clock=datetime.now, recheck_seconds: float = DIVIDEND_RECHECK_SECONDS):
        """
        Args:
            db: Database instance (transactions, dividends, calculation records)
            finmind: Source with async lookup_dividend_events(code, start, end, token)
            clock: Returns the current local datetime
            recheck_seconds: Minimum gap between queries after SUCCESS or NOT_FOUND
        """
        self._db = db
        self._finmind = finmind
        self._clock = clock
        self._recheck_seconds = recheck_seconds
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, code: str) -> asyncio.Lock:
        return self._locks.setdefault(code, asyncio.Lock())

    async def should_reconcile(self, code: str) -> bool:
        """Whether the dividend source should be queried again for this instrument."""
        record = await self._db.get_calculation_record(code)
        if record is None:
            return True
        if record.outcome == QueryOutcome.API_ERROR:
            return True
        elapsed = (self._clock() - record.last_calculated_at).total_seconds()
        return elapsed >= self._recheck_seconds

    async def reconcile(self, code: str, token: str = "") -> int:
        """
        Query dividends for an instrument and record new ones.

        Returns:
            Number of newly inserted dividend events

        Raises:
            DividendSourceError: the source could not be queried (recorded as API_ERROR)
        """
        async with self._lock_for(code):
            transactions = await self._db.list_transactions(code)
            purchases = [tx for tx in transactions if tx.side == Side.BUY]
            if not purchases:
                logger.info(f"No purchases of {code}, skipping dividend check")
                return 0

            start = min(tx.trade_date for tx in purchases)
            end = self._clock().date()
            try:
                result = await self._finmind.lookup_dividend_events(code, start, end, token)
            except DividendSourceError as e:
                logger.error(f"Dividend query failed for {code}: {e}")
                await self._record(code, 0, QueryOutcome.API_ERROR)
                raise

            if result.not_found:
                logger.info(f"Dividend source does not know {code}: {result.message}")
                await self._record(code, 0, QueryOutcome.NOT_FOUND)
                return 0

            events = attribute_dividends(code, purchases, result.rows)
            async with self._db.deferred_writes():
                inserted = await self._replace(code, events)
                await self._record(code, inserted, QueryOutcome.SUCCESS)
            logger.info(f"Dividends for {code}: {len(result.rows)} announcements, {inserted} new records")
            return inserted

    async def reconcile_due(self, codes: list[str], token: str = "") -> dict[str, int]:
        """
        Reconcile every instrument whose last check is stale.

        Failures are logged and skipped; they are already recorded as API_ERROR
        and will be retried on the next call.
        """
        results = {}
        for code in dict.fromkeys(codes):
            if not await self.should_reconcile(code):
                continue
            try:
                results[code] = await self.reconcile(code, token)
            except DividendSourceError as e:
                logger.warning(f"Skipping {code} after dividend query failure: {e}")
        return results

    async def reset(self, code: str) -> int:
        """Drop all dividend history of an instrument so it is rebuilt on the next check."""
        async with self._lock_for(code), self._db.deferred_writes():
            removed = await self._db.delete_dividends_by_code(code)
            await self._db.delete_calculation_record(code)
            logger.info(f"Reset dividend history for {code}: {removed} records removed")
            return removed

    async def _replace(self, code: str, events: list[DividendEvent]) -> int:
        """
        Make the stored dividends of an instrument equal to events.

        Records already stored unchanged are kept, so re-running with the same
        source data inserts nothing. Callers run it inside deferred_writes().
        """
        existing = {event.key: event for event in await self._db.list_dividends_by_code(code)}
        fresh = {event.key: event for event in events}
        for key, old in existing.items():
            new = fresh.get(key)
            if new is None or not _same_event(old, new):
                await self._db.delete_dividend(old.id)

        inserted = 0
        for key, new in fresh.items():
            old = existing.get(key)
            if old is not None and _same_event(old, new):
                continue
            if await self._db.insert_dividend(new):
                inserted += 1
        return inserted

    async def _record(self, code: str, count: int, outcome: QueryOutcome) -> None:
        await self._db.upsert_calculation_record(
            DividendCalculationRecord(
                code=code,
                last_calculated_at=self._clock(),
                record_count=count,
                outcome=outcome,
            )
        )
