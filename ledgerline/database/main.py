"""
Database - Single source of truth for all database operations.

Usage:
    db = Database()
    await db.connect()
    txs = await db.list_transactions()
    await db.set_setting('finmind_api_token', 'abc')
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from ledgerline.database.base import BaseDatabase
from ledgerline.models import DividendCalculationRecord, PriceCacheEntry

logger = logging.getLogger(__name__)


class Database(BaseDatabase):
    """Single source of truth for all database operations."""

    _instances: dict[str, "Database"] = {}  # path -> instance
    _default_path: str = None

    def __new__(cls, path: str = None):
        """
        Singleton pattern per path - one database instance per unique path.

        Args:
            path: Database file path. If None, uses default path.
        """
        if path is None:
            if cls._default_path is None:
                from ledgerline.paths import DATA_DIR

                cls._default_path = str(DATA_DIR / "ledgerline.db")
            path = cls._default_path

        if path not in cls._instances:
            instance = super().__new__(cls)
            instance._path = Path(path)
            instance._connection = None
            instance._lock = asyncio.Lock()
            cls._instances[path] = instance

        return cls._instances[path]

    def __init__(self, path: str = None):
        # Path is already set in __new__, nothing to do here
        pass

    async def connect(self) -> "Database":
        """Connect to database and initialize schema."""
        if self._connection is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._path)
            self._lock = asyncio.Lock()
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA busy_timeout=30000")
            await self._connection.execute("PRAGMA foreign_keys=ON")
            await self._init_schema()
            logger.debug(f"Connected to {self._path}")
        return self

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def remove_from_cache(self):
        """Remove this instance from the singleton cache. Use for temporary databases."""
        path_str = str(self._path)
        if path_str in self._instances:
            del self._instances[path_str]

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def _decode_setting(raw: str) -> Any:
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            # Rows written before every value was JSON-encoded
            return raw

    async def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a setting value by key."""
        async with self._locked():
            cursor = await self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = await cursor.fetchone()
        if row is None:
            return default
        return self._decode_setting(row["value"])

    async def set_setting(self, key: str, value: Any) -> None:
        """Set a setting value. Values of every type are stored as JSON, so strings read back unchanged."""
        async with self._locked():
            await self.conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, json.dumps(value))
            )
            await self._maybe_commit()

    async def get_all_settings(self) -> dict:
        """Get all settings as a dictionary."""
        async with self._locked():
            cursor = await self.conn.execute("SELECT key, value FROM settings")
            rows = await cursor.fetchall()
        return {row["key"]: self._decode_setting(row["value"]) for row in rows}

    # -------------------------------------------------------------------------
    # Price Cache
    # -------------------------------------------------------------------------

    async def get_price_cache(self, code: str) -> Optional[PriceCacheEntry]:
        """Get the cached quote for an instrument."""
        async with self._locked():
            cursor = await self.conn.execute("SELECT * FROM price_cache WHERE code = ?", (code,))
            row = await cursor.fetchone()
        return PriceCacheEntry.from_row(dict(row)) if row else None

    async def upsert_price_cache(self, entry: PriceCacheEntry) -> None:
        """Insert or overwrite the cached quote for an instrument."""
        async with self._locked():
            await self.conn.execute(
                """INSERT OR REPLACE INTO price_cache
                   (code, current_price, previous_close, change, change_percent, ask_price, last_update)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.code,
                    entry.current_price,
                    entry.previous_close,
                    entry.change,
                    entry.change_percent,
                    entry.ask_price,
                    entry.last_update,
                ),
            )
            await self._maybe_commit()

    async def delete_price_cache(self, code: str = None) -> int:
        """Delete one cached quote, or all of them when code is None."""
        async with self._locked():
            if code:
                cursor = await self.conn.execute("DELETE FROM price_cache WHERE code = ?", (code,))
            else:
                cursor = await self.conn.execute("DELETE FROM price_cache")
            await self._maybe_commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Dividend Calculation Records
    # -------------------------------------------------------------------------

    async def get_calculation_record(self, code: str) -> Optional[DividendCalculationRecord]:
        """Get the last dividend reconciliation outcome for an instrument."""
        async with self._locked():
            cursor = await self.conn.execute("SELECT * FROM dividend_calculation_records WHERE code = ?", (code,))
            row = await cursor.fetchone()
        return DividendCalculationRecord.from_row(dict(row)) if row else None

    async def upsert_calculation_record(self, record: DividendCalculationRecord) -> None:
        """Insert or overwrite the reconciliation outcome for an instrument."""
        async with self._locked():
            await self.conn.execute(
                """INSERT OR REPLACE INTO dividend_calculation_records
                   (code, last_calculated_at, record_count, outcome)
                   VALUES (?, ?, ?, ?)""",
                (
                    record.code,
                    record.last_calculated_at.timestamp(),
                    record.record_count,
                    record.outcome.value,
                ),
            )
            await self._maybe_commit()

    async def delete_calculation_record(self, code: str) -> None:
        """Forget the reconciliation outcome so the next check runs immediately."""
        async with self._locked():
            await self.conn.execute("DELETE FROM dividend_calculation_records WHERE code = ?", (code,))
            await self._maybe_commit()

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    async def _init_schema(self) -> None:
        """Initialize database schema."""
        await self.conn.executescript(SCHEMA)
        await self.conn.commit()


SCHEMA = """
-- Settings (key-value store)
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Buy/sell history
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL,
    name TEXT,
    side TEXT NOT NULL CHECK(side IN ('BUY', 'SELL')),
    quantity INTEGER NOT NULL CHECK(quantity > 0),
    price REAL NOT NULL CHECK(price >= 0),
    executed_at INTEGER NOT NULL,  -- unix timestamp
    fee REAL NOT NULL DEFAULT 0,
    tax REAL NOT NULL DEFAULT 0
);

-- Dividends attributed to purchase transactions
CREATE TABLE IF NOT EXISTS dividends (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_id INTEGER NOT NULL,
    code TEXT NOT NULL,
    dividend_type TEXT NOT NULL CHECK(dividend_type IN ('CASH', 'STOCK')),
    ex_dividend_date TEXT NOT NULL,  -- YYYY-MM-DD
    per_share REAL NOT NULL,
    quantity INTEGER NOT NULL,
    amount REAL NOT NULL,
    note TEXT DEFAULT '',
    UNIQUE (transaction_id, ex_dividend_date, dividend_type),
    FOREIGN KEY (transaction_id) REFERENCES transactions(id) ON DELETE CASCADE
);

-- Last dividend query per instrument (drives the recheck policy)
CREATE TABLE IF NOT EXISTS dividend_calculation_records (
    code TEXT PRIMARY KEY,
    last_calculated_at REAL NOT NULL,  -- unix timestamp
    record_count INTEGER NOT NULL DEFAULT 0,
    outcome TEXT NOT NULL CHECK(outcome IN ('SUCCESS', 'NOT_FOUND', 'API_ERROR'))
);

-- Last known-good quote per instrument
CREATE TABLE IF NOT EXISTS price_cache (
    code TEXT PRIMARY KEY,
    current_price REAL NOT NULL,
    previous_close REAL NOT NULL,
    change REAL NOT NULL,
    change_percent REAL NOT NULL,
    ask_price REAL,
    last_update REAL NOT NULL  -- unix timestamp
);

CREATE INDEX IF NOT EXISTS idx_transactions_code ON transactions(code, executed_at);
CREATE INDEX IF NOT EXISTS idx_dividends_code ON dividends(code);
CREATE INDEX IF NOT EXISTS idx_dividends_transaction ON dividends(transaction_id);
"""
