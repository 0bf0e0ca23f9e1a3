"""
Base Database - Transaction and dividend store operations.

Row-level reads and writes only; no portfolio policy lives here.

Every operation runs under one database-wide lock. A deferred_writes() batch
holds that lock until it commits, so other callers never see it half applied.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from typing import Optional

import aiosqlite

from ledgerline.models import DividendEvent, Transaction


class BaseDatabase:
    """Base class with the transaction and dividend stores."""

    _connection: Optional[aiosqlite.Connection] = None
    _lock: Optional[asyncio.Lock] = None
    _batch_owner: Optional[asyncio.Task] = None
    _defer_commits: bool = False

    @property
    def conn(self) -> aiosqlite.Connection:
        """Get database connection."""
        if not self._connection:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    @asynccontextmanager
    async def _locked(self):
        """Serialize access to the shared connection. Re-entrant for the batch owner."""
        if self._batch_owner is not None and self._batch_owner is asyncio.current_task():
            yield
            return
        async with self._lock:
            yield

    @asynccontextmanager
    async def deferred_writes(self):
        """
        Run several writes as one transaction.

        Commits when the block exits, rolls back if it raises. Other callers
        wait until then, so they see either none or all of the batch.
        """
        if self._batch_owner is not None and self._batch_owner is asyncio.current_task():
            yield
            return

        async with self._lock:
            self._batch_owner = asyncio.current_task()
            self._defer_commits = True
            try:
                yield
                await self.conn.commit()
            except Exception:
                await self.conn.rollback()
                raise
            finally:
                self._defer_commits = False
                self._batch_owner = None

    async def _maybe_commit(self):
        if not self._defer_commits:
            await self.conn.commit()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(self, code: Optional[str] = None) -> list[Transaction]:
        """Get transactions in execution order, optionally for one instrument."""
        query = "SELECT * FROM transactions"
        params = []
        if code:
            query += " WHERE code = ?"
            params.append(code)
        query += " ORDER BY executed_at, id"
        async with self._locked():
            cursor = await self.conn.execute(query, params)
            rows = await cursor.fetchall()
        return [Transaction.from_row(dict(row)) for row in rows]

    async def list_today_transactions(self, today: Optional[date] = None) -> list[Transaction]:
        """Get transactions executed on the given local day (default today)."""
        day = today or date.today()
        start = int(datetime.combine(day, time.min).timestamp())
        end = int(datetime.combine(day, time.max).timestamp())
        async with self._locked():
            cursor = await self.conn.execute(
                "SELECT * FROM transactions WHERE executed_at BETWEEN ? AND ? ORDER BY executed_at, id",
                (start, end),
            )
            rows = await cursor.fetchall()
        return [Transaction.from_row(dict(row)) for row in rows]

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get a transaction by id."""
        async with self._locked():
            cursor = await self.conn.execute("SELECT * FROM transactions WHERE id = ?", (transaction_id,))
            row = await cursor.fetchone()
        return Transaction.from_row(dict(row)) if row else None

    async def insert_transaction(self, tx: Transaction) -> int:
        """Insert a transaction. Returns its id."""
        async with self._locked():
            cursor = await self.conn.execute(
                """INSERT INTO transactions (code, name, side, quantity, price, executed_at, fee, tax)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    tx.code,
                    tx.name,
                    tx.side.value,
                    tx.quantity,
                    tx.price,
                    int(tx.executed_at.timestamp()),
                    tx.fee,
                    tx.tax,
                ),
            )
            await self._maybe_commit()
        return cursor.lastrowid

    async def update_transaction(self, tx: Transaction) -> None:
        """Overwrite an existing transaction (explicit edit)."""
        if tx.id is None:
            raise ValueError("Cannot update a transaction without an id")
        async with self._locked():
            await self.conn.execute(
                """UPDATE transactions
                   SET code = ?, name = ?, side = ?, quantity = ?, price = ?, executed_at = ?, fee = ?, tax = ?
                   WHERE id = ?""",
                (
                    tx.code,
                    tx.name,
                    tx.side.value,
                    tx.quantity,
                    tx.price,
                    int(tx.executed_at.timestamp()),
                    tx.fee,
                    tx.tax,
                    tx.id,
                ),
            )
            await self._maybe_commit()

    async def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction. Its dividends go with it."""
        async with self._locked():
            await self.conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
            await self._maybe_commit()

    # -------------------------------------------------------------------------
    # Dividends
    # -------------------------------------------------------------------------

    async def _select_dividends(self, where: str = "", params: tuple = ()) -> list[DividendEvent]:
        query = "SELECT * FROM dividends"
        if where:
            query += f" WHERE {where}"
        query += " ORDER BY ex_dividend_date DESC, id"
        async with self._locked():
            cursor = await self.conn.execute(query, params)
            rows = await cursor.fetchall()
        return [DividendEvent.from_row(dict(row)) for row in rows]

    async def list_dividends(self) -> list[DividendEvent]:
        """Get all dividend events, newest ex-dividend date first."""
        return await self._select_dividends()

    async def list_dividends_by_code(self, code: str) -> list[DividendEvent]:
        """Get dividend events for an instrument."""
        return await self._select_dividends("code = ?", (code,))

    async def list_dividends_by_transaction(self, transaction_id: int) -> list[DividendEvent]:
        """Get dividend events attributed to one transaction."""
        return await self._select_dividends("transaction_id = ?", (transaction_id,))

    async def insert_dividend(self, event: DividendEvent) -> int:
        """
        Insert a dividend event or ignore it if its
        (transaction, ex-dividend date, type) triple already exists.

        Returns:
            Row id of the inserted event, or 0 if ignored
        """
        async with self._locked():
            cursor = await self.conn.execute(
                """INSERT OR IGNORE INTO dividends
                   (transaction_id, code, dividend_type, ex_dividend_date, per_share, quantity, amount, note)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.transaction_id,
                    event.code,
                    event.dividend_type.value,
                    event.ex_dividend_date.isoformat(),
                    event.per_share,
                    event.quantity,
                    event.amount,
                    event.note,
                ),
            )
            await self._maybe_commit()
        return cursor.lastrowid if cursor.rowcount else 0

    async def delete_dividend(self, dividend_id: int) -> None:
        """Delete one dividend event."""
        async with self._locked():
            await self.conn.execute("DELETE FROM dividends WHERE id = ?", (dividend_id,))
            await self._maybe_commit()

    async def delete_dividends_by_code(self, code: str) -> int:
        """Delete every dividend event of an instrument. Returns rows removed."""
        async with self._locked():
            cursor = await self.conn.execute("DELETE FROM dividends WHERE code = ?", (code,))
            await self._maybe_commit()
        return cursor.rowcount

    async def sum_dividends_by_code(self, code: str) -> float:
        """Total dividend amount received for an instrument."""
        async with self._locked():
            cursor = await self.conn.execute("SELECT SUM(amount) FROM dividends WHERE code = ?", (code,))
            row = await cursor.fetchone()
        return row[0] or 0.0
