"""
Models - Records read from the stores and the derived portfolio structures.

Persisted records (Transaction, PriceCacheEntry, DividendEvent,
DividendCalculationRecord) convert to and from database rows.
Derived structures (Quote, Holding, HoldingDetail, PortfolioSummary) are frozen.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class DividendType(str, Enum):
    CASH = "CASH"
    STOCK = "STOCK"


class QueryOutcome(str, Enum):
    """Result of the last dividend query for an instrument."""

    SUCCESS = "SUCCESS"
    NOT_FOUND = "NOT_FOUND"
    API_ERROR = "API_ERROR"


@dataclass(frozen=True)
class Transaction:
    """A single buy or sell of an instrument."""

    code: str
    side: Side
    quantity: int
    price: float
    executed_at: datetime
    name: str = ""
    fee: float = 0.0
    tax: float = 0.0
    id: Optional[int] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"quantity must be positive, got {self.quantity}")
        if self.price < 0:
            raise ValueError(f"price must not be negative, got {self.price}")
        if self.fee < 0 or self.tax < 0:
            raise ValueError("fee and tax must not be negative")
        if not isinstance(self.side, Side):
            object.__setattr__(self, "side", Side(self.side))

    @property
    def total_amount(self) -> float:
        return self.quantity * self.price + self.fee + self.tax

    @property
    def trade_date(self) -> date:
        return self.executed_at.date()

    @classmethod
    def from_row(cls, row: dict) -> "Transaction":
        return cls(
            id=row["id"],
            code=row["code"],
            name=row.get("name") or "",
            side=Side(row["side"]),
            quantity=int(row["quantity"]),
            price=float(row["price"]),
            executed_at=datetime.fromtimestamp(row["executed_at"]),
            fee=float(row.get("fee") or 0.0),
            tax=float(row.get("tax") or 0.0),
        )


@dataclass(frozen=True)
class Quote:
    """One authoritative price for an instrument at resolution time."""

    code: str
    current_price: float
    previous_close: float
    change: float
    change_percent: float
    timestamp: float
    is_stale: bool = False
    ask_price: Optional[float] = None
    source: str = ""

    @classmethod
    def build(
        cls,
        code: str,
        current_price: float,
        previous_close: float,
        timestamp: float,
        ask_price: Optional[float] = None,
        source: str = "",
    ) -> "Quote":
        """Create a quote, deriving change and percent change."""
        change = current_price - previous_close
        change_percent = (change / previous_close) * 100 if previous_close != 0 else 0.0
        return cls(
            code=code,
            current_price=current_price,
            previous_close=previous_close,
            change=change,
            change_percent=change_percent,
            timestamp=timestamp,
            ask_price=ask_price,
            source=source,
        )


@dataclass(frozen=True)
class PriceCacheEntry:
    """Last known-good quote for an instrument."""

    code: str
    current_price: float
    previous_close: float
    change: float
    change_percent: float
    last_update: float
    ask_price: Optional[float] = None

    @classmethod
    def from_quote(cls, quote: Quote, last_update: float) -> "PriceCacheEntry":
        return cls(
            code=quote.code,
            current_price=quote.current_price,
            previous_close=quote.previous_close,
            change=quote.change,
            change_percent=quote.change_percent,
            last_update=last_update,
            ask_price=quote.ask_price,
        )

    @classmethod
    def from_row(cls, row: dict) -> "PriceCacheEntry":
        return cls(
            code=row["code"],
            current_price=row["current_price"],
            previous_close=row["previous_close"],
            change=row["change"],
            change_percent=row["change_percent"],
            last_update=row["last_update"],
            ask_price=row.get("ask_price"),
        )

    def to_quote(self, is_stale: bool) -> Quote:
        return Quote(
            code=self.code,
            current_price=self.current_price,
            previous_close=self.previous_close,
            change=self.change,
            change_percent=self.change_percent,
            timestamp=self.last_update,
            is_stale=is_stale,
            ask_price=self.ask_price,
            source="cache",
        )


@dataclass(frozen=True)
class DividendEvent:
    """A dividend attributed to one purchase transaction."""

    transaction_id: int
    code: str
    dividend_type: DividendType
    ex_dividend_date: date
    per_share: float
    quantity: int
    amount: float
    note: str = ""
    id: Optional[int] = None

    @property
    def key(self) -> tuple:
        """Uniqueness key: (transaction, ex-dividend date, type)."""
        return (self.transaction_id, self.ex_dividend_date, self.dividend_type)

    @classmethod
    def from_row(cls, row: dict) -> "DividendEvent":
        return cls(
            id=row["id"],
            transaction_id=row["transaction_id"],
            code=row["code"],
            dividend_type=DividendType(row["dividend_type"]),
            ex_dividend_date=date.fromisoformat(row["ex_dividend_date"]),
            per_share=row["per_share"],
            quantity=row["quantity"],
            amount=row["amount"],
            note=row.get("note") or "",
        )


@dataclass(frozen=True)
class DividendCalculationRecord:
    """Outcome of the last dividend reconciliation for an instrument."""

    code: str
    last_calculated_at: datetime
    record_count: int
    outcome: QueryOutcome

    @classmethod
    def from_row(cls, row: dict) -> "DividendCalculationRecord":
        return cls(
            code=row["code"],
            last_calculated_at=datetime.fromtimestamp(row["last_calculated_at"]),
            record_count=row["record_count"],
            outcome=QueryOutcome(row["outcome"]),
        )


@dataclass(frozen=True)
class Holding:
    code: str
    name: str
    quantity: int
    average_cost: float
    current_price: float
    previous_close: float
    current_value: float
    base_profit_loss: float
    profit_loss: float
    profit_loss_percentage: float
    adjusted_cost: float
    today_profit_loss: float
    today_change_percent: float
    total_dividends: float = 0.0
    position_ratio: float = 0.0
    is_zero_cost: bool = False
    is_price_stale: bool = False
    is_unpriced: bool = False
    ask_price: Optional[float] = None
    dividend_status: Optional[QueryOutcome] = None


@dataclass(frozen=True)
class PortfolioSummary:
    total_assets: float
    today_profit_loss: float
    today_profit_loss_percent: float
    total_profit_loss: float
    total_profit_loss_percent: float
    adjusted_total_cost: float
    is_zero_cost: bool
    holdings: list[Holding] = field(default_factory=list)
    # Session phase and whether today's P&L is meaningful yet (see ledgerline.market)
    market_phase: str = ""
    show_today_profit_loss: bool = True


@dataclass(frozen=True)
class HoldingDetail:
    """One purchase lot valued at a given price."""

    transaction: Transaction
    current_price: float
    current_value: float
    unrealized_pl: float
    unrealized_pl_percent: float
    dividends: list[DividendEvent]
    total_dividends: float
    holding_days: int
    pl_with_dividends: float
    pl_with_dividends_percent: float
