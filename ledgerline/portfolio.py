"""
Portfolio - Holdings and portfolio totals from transactions, quotes and dividends.

Usage:
    portfolio = Portfolio(db, resolver, market=twse)
    summary = await portfolio.summarize()
    summary = await portfolio.summarize(include_dividends=False, force_refresh=True)
    lots = await portfolio.holding_details('2330', current_price=520.0)

Summaries only read dividend totals; discovering dividends is the
DividendReconciler's job and is triggered separately. Today's P&L is always
computed; show_today_profit_loss says whether the session makes it meaningful.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from ledgerline.database import Database
from ledgerline.market import market_phase, should_show_today_profit_loss
from ledgerline.models import (
    Holding,
    HoldingDetail,
    PortfolioSummary,
    QueryOutcome,
    Quote,
    Side,
    Transaction,
)
from ledgerline.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    """Net position of one instrument after folding its transactions."""

    code: str
    name: str
    quantity: int
    net_cost: float

    @property
    def average_cost(self) -> float:
        return self.net_cost / self.quantity


def apply_transaction(position: Optional[Position], tx: Transaction) -> Position:
    """Return the position after one more transaction."""
    sign = 1 if tx.side == Side.BUY else -1
    if position is None:
        position = Position(code=tx.code, name=tx.name, quantity=0, net_cost=0.0)
    return Position(
        code=position.code,
        name=position.name or tx.name,
        quantity=position.quantity + sign * tx.quantity,
        net_cost=position.net_cost + sign * tx.total_amount,
    )


def fold_positions(transactions: list[Transaction]) -> list[Position]:
    """Net positions with quantity > 0, in order of first appearance."""
    positions: dict[str, Position] = {}
    ordered = sorted(transactions, key=lambda tx: tx.executed_at)
    for tx in ordered:
        positions[tx.code] = apply_transaction(positions.get(tx.code), tx)
    return [p for p in positions.values() if p.quantity > 0]


def build_holding(
    position: Position,
    quote: Optional[Quote],
    total_dividends: float,
    include_dividends: bool,
    dividend_status: Optional[QueryOutcome] = None,
) -> Holding:
    """
    Value one position.

    Without a quote the position is valued at its average cost and flagged
    as unpriced.
    """
    quantity = position.quantity
    average_cost = position.average_cost
    if quote is None:
        current_price = previous_close = average_cost
        today_change_percent = 0.0
        ask_price = None
    else:
        current_price = quote.current_price
        previous_close = quote.previous_close
        today_change_percent = quote.change_percent
        ask_price = quote.ask_price

    base_profit_loss = (current_price - average_cost) * quantity
    cost = average_cost * quantity
    if include_dividends:
        profit_loss = base_profit_loss + total_dividends
        adjusted_cost = cost - total_dividends
    else:
        profit_loss = base_profit_loss
        adjusted_cost = cost

    # Dividends have repaid the whole position; a percentage of it is undefined
    is_zero_cost = include_dividends and adjusted_cost <= 0
    profit_loss_percentage = profit_loss / adjusted_cost * 100 if adjusted_cost > 0 else 0.0

    return Holding(
        code=position.code,
        name=position.name,
        quantity=quantity,
        average_cost=average_cost,
        current_price=current_price,
        previous_close=previous_close,
        current_value=current_price * quantity,
        base_profit_loss=base_profit_loss,
        profit_loss=profit_loss,
        profit_loss_percentage=profit_loss_percentage,
        adjusted_cost=adjusted_cost,
        today_profit_loss=(current_price - previous_close) * quantity,
        today_change_percent=today_change_percent,
        total_dividends=total_dividends,
        is_zero_cost=is_zero_cost,
        is_price_stale=quote is None or quote.is_stale,
        is_unpriced=quote is None,
        ask_price=ask_price,
        dividend_status=dividend_status,
    )


def summarize_holdings(holdings: list[Holding], include_dividends: bool) -> PortfolioSummary:
    """Portfolio totals and position weights for a set of holdings."""
    total_assets = sum(h.current_value for h in holdings)
    weighted = [
        replace(h, position_ratio=h.current_value / total_assets * 100 if total_assets != 0 else 0.0)
        for h in holdings
    ]

    today_profit_loss = sum(h.today_profit_loss for h in holdings)
    previous_value = sum(h.previous_close * h.quantity for h in holdings)
    today_percent = today_profit_loss / previous_value * 100 if previous_value != 0 else 0.0

    total_profit_loss = sum(h.profit_loss for h in holdings)
    adjusted_total_cost = sum(h.adjusted_cost for h in holdings)
    is_zero_cost = include_dividends and bool(holdings) and adjusted_total_cost <= 0
    total_percent = total_profit_loss / adjusted_total_cost * 100 if adjusted_total_cost > 0 else 0.0

    return PortfolioSummary(
        total_assets=total_assets,
        today_profit_loss=today_profit_loss,
        today_profit_loss_percent=today_percent,
        total_profit_loss=total_profit_loss,
        total_profit_loss_percent=total_percent,
        adjusted_total_cost=adjusted_total_cost,
        is_zero_cost=is_zero_cost,
        holdings=weighted,
    )


class Portfolio:
    """Aggregates the transaction history into a valued portfolio."""

    def __init__(self, db=None, resolver=None, settings=None, market=None, clock=None):
        """
        Args:
            db: Database instance (uses default path if None)
            resolver: PriceResolver instance (built with default sources if None)
            settings: Settings instance (built on db if None)
            market: Source with market_snapshot() for the session phase
                (weekday and local clock rules apply if None)
            clock: Returns the current datetime for the session phase
        """
        self._db = db or Database()
        self._settings = settings or Settings(self._db)
        self._resolver = resolver or self._default_resolver()
        self._market = market
        self._clock = clock

    def _default_resolver(self):
        from ledgerline.price_cache import PriceCache
        from ledgerline.resolver import PriceResolver
        from ledgerline.sources import FinMindClient, TwseClient

        return PriceResolver(PriceCache(self._db), TwseClient(), FinMindClient(), self._settings)

    async def summarize(
        self,
        transactions: Optional[list[Transaction]] = None,
        include_dividends: Optional[bool] = None,
        force_refresh: bool = False,
        show_unpriced: Optional[bool] = None,
    ) -> PortfolioSummary:
        """
        Build the portfolio summary.

        Args:
            transactions: History to fold (defaults to the transaction store)
            include_dividends: Fold dividends into P&L (defaults to the setting)
            force_refresh: Bypass fresh cache entries when resolving prices
            show_unpriced: Keep holdings without any price, valued at cost
                (defaults to the setting)
        """
        if transactions is None:
            transactions = await self._db.list_transactions()
        if include_dividends is None:
            include_dividends = bool(await self._settings.get("include_dividends"))
        if show_unpriced is None:
            show_unpriced = bool(await self._settings.get("show_unpriced_holdings"))

        positions = fold_positions(transactions)
        codes = [p.code for p in positions]
        quotes, dividend_totals, records, snapshot = await asyncio.gather(
            self._resolver.resolve_many(codes, force_refresh),
            asyncio.gather(*[self._db.sum_dividends_by_code(code) for code in codes]),
            asyncio.gather(*[self._db.get_calculation_record(code) for code in codes]),
            self._market_snapshot(),
        )

        holdings = []
        for position, total_dividends, record in zip(positions, dividend_totals, records):
            quote = quotes.get(position.code)
            if quote is None and not show_unpriced:
                logger.warning(f"Leaving {position.code} out of the summary: no price available")
                continue
            holdings.append(
                build_holding(
                    position,
                    quote,
                    total_dividends,
                    include_dividends,
                    dividend_status=record.outcome if record else None,
                )
            )

        now = self._clock() if self._clock else None
        return replace(
            summarize_holdings(holdings, include_dividends),
            market_phase=market_phase(snapshot, now),
            show_today_profit_loss=should_show_today_profit_loss(snapshot, now),
        )

    async def _market_snapshot(self) -> Optional[dict]:
        if self._market is None:
            return None
        return await self._market.market_snapshot()

    async def holding_details(
        self, code: str, current_price: float, now: Optional[datetime] = None
    ) -> list[HoldingDetail]:
        """Per-purchase breakdown of an instrument at the given price."""
        now = now or datetime.now()
        purchases = [tx for tx in await self._db.list_transactions(code) if tx.side == Side.BUY]

        details = []
        for tx in purchases:
            dividends = await self._db.list_dividends_by_transaction(tx.id)
            total_dividends = sum(d.amount for d in dividends)
            current_value = current_price * tx.quantity
            cost_basis = tx.total_amount
            unrealized_pl = current_value - cost_basis
            pl_with_dividends = unrealized_pl + total_dividends
            details.append(
                HoldingDetail(
                    transaction=tx,
                    current_price=current_price,
                    current_value=current_value,
                    unrealized_pl=unrealized_pl,
                    unrealized_pl_percent=unrealized_pl / cost_basis * 100 if cost_basis > 0 else 0.0,
                    dividends=dividends,
                    total_dividends=total_dividends,
                    holding_days=(now - tx.executed_at).days,
                    pl_with_dividends=pl_with_dividends,
                    pl_with_dividends_percent=pl_with_dividends / cost_basis * 100 if cost_basis > 0 else 0.0,
                )
            )
        return details
