"""
Operator CLI commands for coinwatch.
"""

import argparse
import asyncio
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from dotenv import load_dotenv
from telegram import Bot

load_dotenv()

from coinwatch.alerts.engine import AlertEvaluator, TickResult
from coinwatch.data.fetcher import CoinGeckoClient
from coinwatch.data.symbols import SymbolResolver, build_coin_map
from coinwatch.database.connection import Database
from coinwatch.database.models import User
from coinwatch.database.repository import UserRepository
from coinwatch.formatting import format_usd
from coinwatch.notifiers.base import Notifier
from coinwatch.notifiers.telegram import TelegramNotifier


def list_users(db: Database) -> list[User]:
    """List all users with their watch-lists and alerts."""
    return UserRepository(db).list_all()


def check_alerts(
    db: Database,
    price_source: CoinGeckoClient,
    notifier: Optional[Notifier] = None,
) -> TickResult:
    """
    Run a single alert check.

    Without a notifier this is a dry run: fired alerts are reported but
    nobody is notified and nothing is deleted.
    """
    evaluator = AlertEvaluator(UserRepository(db), price_source, notifier)
    if notifier is None:
        return evaluator.preview()
    return evaluator.run_tick()


@contextmanager
def telegram_notifier(token: str) -> Iterator[TelegramNotifier]:
    """Run a Bot on a private event loop thread for one-off deliveries."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, name="telegram-loop", daemon=True)
    thread.start()
    bot = Bot(token)
    try:
        asyncio.run_coroutine_threadsafe(bot.initialize(), loop).result()
        yield TelegramNotifier(bot, loop=loop)
    finally:
        asyncio.run_coroutine_threadsafe(bot.shutdown(), loop).result()
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()


def resolve_symbol(price_source: CoinGeckoClient, symbol: str) -> str:
    """Resolve a ticker against a freshly fetched coin list."""
    return SymbolResolver(build_coin_map(price_source)).resolve(symbol)


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Coinwatch CLI")
    parser.add_argument("--db", default="data/coinwatch.db", help="Database path")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # User commands
    user_parser = subparsers.add_parser("users", help="User management")
    user_subparsers = user_parser.add_subparsers(dest="action")
    user_subparsers.add_parser("list", help="List users")

    # Alert commands
    alerts_parser = subparsers.add_parser("alerts", help="Alert checking")
    alerts_subparsers = alerts_parser.add_subparsers(dest="action")
    check_parser = alerts_subparsers.add_parser(
        "check", help="Dry-run an alert check; deliver and clear with --telegram-token"
    )
    check_parser.add_argument(
        "--telegram-token", help="Deliver via Telegram and clear fired alerts"
    )

    # Coin commands
    coins_parser = subparsers.add_parser("coins", help="Coin lookup")
    coins_subparsers = coins_parser.add_subparsers(dest="action")
    resolve_parser = coins_subparsers.add_parser("resolve", help="Resolve a ticker")
    resolve_parser.add_argument("symbol", help="Ticker, e.g. btc")

    # DB commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="action")
    db_subparsers.add_parser("migrate", help="Create schema")

    args = parser.parse_args()

    # Initialize database
    db = Database(args.db)
    db.initialize()

    # Handle commands
    if args.command == "users":
        if args.action == "list":
            for user in list_users(db):
                favorites = ", ".join(user.favorites) or "-"
                print(
                    f"ID: {user.telegram_id}, Name: {user.first_name}, "
                    f"Watching: {favorites}, Alerts: {len(user.alerts)}"
                )

    elif args.command == "alerts":
        if args.action == "check":
            if args.telegram_token:
                with telegram_notifier(args.telegram_token) as notifier:
                    result = check_alerts(db, CoinGeckoClient(), notifier)
            else:
                result = check_alerts(db, CoinGeckoClient())
                for outcome in result.outcomes:
                    for alert in outcome.fired:
                        print(
                            f"[dry run] {outcome.user.telegram_id}: {alert.coin_id} "
                            f"{alert.direction.value} {format_usd(alert.target_price)}"
                        )
            print(
                f"{result.status.value}: {result.users_checked} users, "
                f"{result.alerts_fired} fired, {result.notifications_sent} sent"
            )
            if result.error:
                print(f"Error: {result.error}")

    elif args.command == "coins":
        if args.action == "resolve":
            print(resolve_symbol(CoinGeckoClient(), args.symbol))

    elif args.command == "db":
        if args.action == "migrate":
            db.initialize()
            print("Schema applied")

    db.close()


if __name__ == "__main__":
    main()
