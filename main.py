#!/usr/bin/env python3
"""
Ledgerline - Entry point for the command line.

Usage:
    python main.py summary [--refresh] [--no-dividends]
    python main.py quote 2330 [--refresh]
    python main.py dividends 2330 [--force]
    python main.py add 2330 1000 500 --fee 20 [--sell] [--date 2024-01-15]
    python main.py set finmind_api_token <token>
"""

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime

from ledgerline import (
    Database,
    DividendReconciler,
    FinMindClient,
    Portfolio,
    PriceCache,
    PriceResolver,
    Settings,
    Side,
    Transaction,
    TwseClient,
)
from ledgerline.errors import DividendSourceError

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


async def run(args) -> int:
    db = Database(args.db) if args.db else Database()
    await db.connect()
    try:
        settings = Settings(db)
        await settings.init_defaults()
        twse = TwseClient()
        finmind = FinMindClient()
        resolver = PriceResolver(PriceCache(db), twse, finmind, settings)

        if args.command == "summary":
            portfolio = Portfolio(db, resolver, settings, market=twse)
            include = False if args.no_dividends else None
            summary = await portfolio.summarize(include_dividends=include, force_refresh=args.refresh)
            _print(asdict(summary))

        elif args.command == "quote":
            quote = await resolver.resolve(args.code, force_refresh=args.refresh)
            if quote is None:
                logger.error(f"No price available for {args.code}")
                return 1
            _print(asdict(quote))

        elif args.command == "dividends":
            reconciler = DividendReconciler(db, finmind)
            if not args.force and not await reconciler.should_reconcile(args.code):
                logger.info(f"Dividends for {args.code} were checked recently, use --force to recheck")
                return 0
            try:
                inserted = await reconciler.reconcile(args.code, await settings.token())
            except DividendSourceError as e:
                logger.error(f"Could not check dividends for {args.code}: {e}")
                return 1
            _print({"code": args.code, "inserted": inserted, "total": await db.sum_dividends_by_code(args.code)})

        elif args.command == "add":
            name = args.name
            if not name:
                info = await finmind.lookup_instrument_info(args.code, await settings.token())
                name = info.name if info else args.code
            tx = Transaction(
                code=args.code,
                name=name,
                side=Side.SELL if args.sell else Side.BUY,
                quantity=args.quantity,
                price=args.price,
                executed_at=datetime.fromisoformat(args.date) if args.date else datetime.now(),
                fee=args.fee,
                tax=args.tax,
            )
            tx_id = await db.insert_transaction(tx)
            _print({"id": tx_id, **asdict(tx)})

        elif args.command == "set":
            try:
                value = json.loads(args.value)
            except json.JSONDecodeError:
                value = args.value
            await settings.set(args.key, value)
        return 0
    finally:
        await db.close()


def main():
    parser = argparse.ArgumentParser(description="Ledgerline portfolio tracker")
    parser.add_argument("--db", help="Database file path")
    sub = parser.add_subparsers(dest="command", required=True)

    summary = sub.add_parser("summary", help="Value the portfolio")
    summary.add_argument("--refresh", action="store_true", help="Bypass fresh cached prices")
    summary.add_argument("--no-dividends", action="store_true", help="Leave dividends out of P&L")

    quote = sub.add_parser("quote", help="Resolve one price")
    quote.add_argument("code")
    quote.add_argument("--refresh", action="store_true", help="Bypass a fresh cached price")

    dividends = sub.add_parser("dividends", help="Discover dividends for an instrument")
    dividends.add_argument("code")
    dividends.add_argument("--force", action="store_true", help="Ignore the once-a-day limit")

    add = sub.add_parser("add", help="Record a transaction")
    add.add_argument("code")
    add.add_argument("quantity", type=int)
    add.add_argument("price", type=float)
    add.add_argument("--sell", action="store_true", help="Record a sale instead of a purchase")
    add.add_argument("--fee", type=float, default=0.0)
    add.add_argument("--tax", type=float, default=0.0)
    add.add_argument("--date", help="Execution time, ISO format (default now)")
    add.add_argument("--name", help="Instrument name (looked up if omitted)")

    setting = sub.add_parser("set", help="Change a setting")
    setting.add_argument("key")
    setting.add_argument("value")

    args = parser.parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
