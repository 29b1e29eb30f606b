"""
Chat command handlers.
"""

import logging
import math
from html import escape
from typing import Callable, Optional

from coinwatch.data.fetcher import CoinGeckoClient
from coinwatch.data.symbols import SymbolResolver
from coinwatch.database.models import Alert, Direction
from coinwatch.database.repository import UserRepository
from coinwatch.exceptions import PriceSourceError, RateLimited, StoreError
from coinwatch.formatting import coin_label, format_usd

logger = logging.getLogger(__name__)


# Registered as the bot's command menu.
MENU_COMMANDS = [
    ("start", "Restart the bot"),
    ("price", "Check coin price (ex: /price btc)"),
    ("watchlist", "View your favorite coins"),
    ("add", "Add coin to watchlist"),
    ("remove", "Remove coin from watchlist"),
    ("alert", "Set price alert (ex: /alert btc 100000)"),
    ("alerts", "List your active alerts"),
]

WELCOME_TEXT = (
    "Welcome! \n\n"
    "Commands:\n"
    "/price <symbol> - Check one price\n"
    "/add <symbol> - Add to watch-list\n"
    "/watchlist - See your portfolio\n"
    "/remove <symbol> - Remove from watch-list\n"
    "/alert <symbol> <price> - Get notified when a price is reached\n"
    "/alerts - See your active alerts"
)

RATE_LIMIT_TEXT = "Rate limit reached. Please try again in a minute."
API_ERROR_TEXT = "API Error. Please try again later."
DATABASE_ERROR_TEXT = "Database error."
GENERIC_ERROR_TEXT = "Something went wrong. Please try again."
UNKNOWN_COMMAND_TEXT = "Unknown command. Send /help to see what I can do."


def parse_price(value: str) -> Optional[float]:
    """Parse a positive price such as "90000" or "90,000.5"."""
    try:
        price = float(value.replace(",", ""))
    except ValueError:
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


class BotCommands:
    """Handles chat commands for one user at a time."""

    def __init__(
        self,
        user_repo: UserRepository,
        resolver: SymbolResolver,
        price_source: CoinGeckoClient,
    ):
        self.user_repo = user_repo
        self.resolver = resolver
        self.price_source = price_source
        self._handlers: dict[str, Callable[[str, Optional[str], list[str]], str]] = {
            "start": self.start,
            "help": self.start,
            "price": self.price,
            "add": self.add,
            "remove": self.remove,
            "watchlist": self.watchlist,
            "alert": self.alert,
            "alerts": self.alerts,
        }

    @property
    def names(self) -> list[str]:
        """Command names this handler answers, without the leading slash."""
        return list(self._handlers)

    def dispatch(
        self,
        command: str,
        args: list[str],
        identity: str,
        first_name: Optional[str] = None,
    ) -> str:
        """
        Run a command and return the reply text.

        Every failure is turned into a reply here, so a broken command can
        never go unanswered or take the process down.
        """
        handler = self._handlers.get(command)
        if handler is None:
            return UNKNOWN_COMMAND_TEXT

        try:
            return handler(identity, first_name, args)
        except RateLimited:
            logger.warning(f"/{command} for {identity}: price source rate limited")
            return RATE_LIMIT_TEXT
        except PriceSourceError as e:
            logger.error(f"/{command} for {identity}: price source error: {e}")
            return API_ERROR_TEXT
        except StoreError as e:
            logger.error(f"/{command} for {identity}: database error: {e}")
            return DATABASE_ERROR_TEXT
        except Exception:
            logger.exception(f"/{command} for {identity} failed")
            return GENERIC_ERROR_TEXT

    def start(self, identity: str, first_name: Optional[str], args: list[str]) -> str:
        self.user_repo.get_or_create(identity, first_name)
        return WELCOME_TEXT

    def price(self, identity: str, first_name: Optional[str], args: list[str]) -> str:
        if not args:
            return "Ex: /price btc"

        coin_id = self.resolver.resolve(args[0])
        price = self.price_source.fetch_price(coin_id)
        if price is None:
            return "Coin not found."
        return f"{coin_label(coin_id)}: {format_usd(price)}"

    def add(self, identity: str, first_name: Optional[str], args: list[str]) -> str:
        if not args:
            return "Please provide a symbol. Ex: /add btc"

        coin_id = self.resolver.resolve(args[0])
        user = self.user_repo.get_or_create(identity, first_name)
        if not self.user_repo.add_favorite(user, coin_id):
            return f"You are already watching {coin_label(coin_id)}."
        return f"Added <b>{escape(coin_id)}</b> to your watch-list!"

    def remove(self, identity: str, first_name: Optional[str], args: list[str]) -> str:
        if not args:
            return "Ex: /remove btc"

        coin_id = self.resolver.resolve(args[0])
        user = self.user_repo.get_or_create(identity, first_name)
        if not self.user_repo.remove_favorite(user, coin_id):
            return f"{escape(coin_id)} is not in your watch-list."
        return f"Removed <b>{escape(coin_id)}</b> from your watch-list."

    def watchlist(self, identity: str, first_name: Optional[str], args: list[str]) -> str:
        user = self.user_repo.get_or_create(identity, first_name)
        if not user.favorites:
            return "Your watch-list is empty. Use /add btc to start."

        snapshot = self.price_source.fetch_prices(user.favorites)
        lines = ["<b>Your Watch-list:</b>", ""]
        for coin_id in user.favorites:
            price = snapshot.get(coin_id)
            shown = f"<b>{format_usd(price)}</b>" if price is not None else "n/a"
            lines.append(f"• {coin_label(coin_id)}: {shown}")
        return "\n".join(lines)

    def alert(self, identity: str, first_name: Optional[str], args: list[str]) -> str:
        target_price = parse_price(args[1]) if len(args) >= 2 else None
        if target_price is None:
            return "Usage: /alert <symbol> <price>\nExample: /alert btc 90000"

        coin_id = self.resolver.resolve(args[0])

        # The current price decides which way the alert waits.
        current_price = self.price_source.fetch_price(coin_id)
        if current_price is None:
            return "Coin not found."

        direction = Direction.infer(current_price, target_price)
        user = self.user_repo.get_or_create(identity, first_name)
        self.user_repo.add_alert(
            user,
            Alert(coin_id=coin_id, target_price=target_price, direction=direction),
        )

        return (
            f"Alert Set!\nI will message you when <b>{escape(coin_id)}</b> goes "
            f"<b>{direction.value} {format_usd(target_price)}</b>."
        )

    def alerts(self, identity: str, first_name: Optional[str], args: list[str]) -> str:
        user = self.user_repo.get_or_create(identity, first_name)
        if not user.alerts:
            return "You have no active alerts. Use /alert btc 90000 to set one."

        lines = ["<b>Your Alerts:</b>", ""]
        for alert in user.alerts:
            lines.append(
                f"• {coin_label(alert.coin_id)} {alert.direction.value} "
                f"{format_usd(alert.target_price)}"
            )
        return "\n".join(lines)
