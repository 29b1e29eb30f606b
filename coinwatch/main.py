"""
Main application entry point.
"""

import asyncio
import logging
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from telegram import Update
from telegram.ext import Application

from coinwatch.alerts.engine import AlertEvaluator
from coinwatch.bot.application import build_application, register_menu
from coinwatch.bot.commands import BotCommands
from coinwatch.config import AppConfig
from coinwatch.data.fetcher import CoinGeckoClient
from coinwatch.data.symbols import SymbolResolver
from coinwatch.database.connection import Database
from coinwatch.database.repository import UserRepository
from coinwatch.healthcheck import HealthServer, create_health_app
from coinwatch.notifiers.telegram import TelegramNotifier
from coinwatch.scheduler import AlertScheduler

logger = logging.getLogger(__name__)


class CoinwatchApp:
    """Wires the bot, the alert scheduler and the health endpoint together."""

    def __init__(
        self,
        config: AppConfig,
        db: Database,
        price_source: Optional[CoinGeckoClient] = None,
        application: Optional[Application] = None,
    ):
        """
        Initialize coinwatch app.

        Args:
            config: Loaded configuration
            db: Initialized database
            price_source: Price source; built from config when omitted
            application: Bot application; built from the bot token when omitted
        """
        self.config = config
        self.db = db

        # Initialize repositories
        self.user_repo = UserRepository(db)

        # Initialize services
        self.price_source = price_source or CoinGeckoClient(
            base_url=config.price_source.base_url,
            api_key=config.price_source.api_key,
            timeout=config.price_source.timeout_seconds,
            vs_currency=config.price_source.vs_currency,
        )
        self.resolver = SymbolResolver()
        self.commands = BotCommands(self.user_repo, self.resolver, self.price_source)
        self.application = application or build_application(
            config.telegram.bot_token,
            self.commands,
            parse_mode=config.telegram.parse_mode,
            post_init=self.on_startup,
            post_stop=self.on_stop,
        )
        self.notifier = TelegramNotifier(
            self.application.bot, parse_mode=config.telegram.parse_mode
        )
        self.evaluator = AlertEvaluator(self.user_repo, self.price_source, self.notifier)
        self.scheduler = AlertScheduler(
            self.evaluator, interval_seconds=config.schedule.alert_check_seconds
        )
        self.health_server: Optional[HealthServer] = None

    def load_coins(self) -> int:
        """
        Build the ticker map before serving commands.

        Raises:
            RuntimeError: If the map is empty and the config requires one
        """
        logger.info("Fetching coin list... (This takes a few seconds)")
        coin_map = self.resolver.rebuild(self.price_source)
        if not coin_map and self.config.advanced.require_coin_map:
            raise RuntimeError("Coin list could not be loaded")
        return len(coin_map)

    def start(self) -> None:
        """Start the health endpoint and load coins ahead of polling."""
        if self.config.health.enabled:
            self.health_server = HealthServer(
                create_health_app(self.db, self.resolver, self.user_repo),
                host=self.config.health.host,
                port=self.config.health.port,
            )
            self.health_server.start()

        self.load_coins()

    async def on_startup(self, application: Application) -> None:
        """Runs on the bot's event loop once it is initialized."""
        self.notifier.loop = asyncio.get_running_loop()
        await register_menu(application)
        self.scheduler.start()

    async def on_stop(self, application: Application) -> None:
        """Let an in-flight tick finish while the loop can still deliver its sends."""
        await asyncio.to_thread(self.scheduler.shutdown, True)

    def run(self) -> None:
        """Start everything and block in the poll loop until SIGINT or SIGTERM."""
        try:
            self.start()
            self.application.run_polling(
                timeout=self.config.telegram.poll_timeout_seconds,
                allowed_updates=Update.ALL_TYPES,
            )
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop background services. Safe to call more than once."""
        self.scheduler.shutdown(wait=True)
        if self.health_server is not None:
            self.health_server.stop()
            self.health_server = None
        self.db.close()


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Coinwatch Telegram Price Alert Bot")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args()

    # Load config
    from coinwatch.config import load_config

    config = load_config(args.config)

    # Setup logging
    log_level = logging.DEBUG if args.debug else config.advanced.log_level.upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # httpx logs every getUpdates request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    CoinwatchApp(config=config, db=db).run()


if __name__ == "__main__":
    main()
