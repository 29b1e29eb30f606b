"""
Telegram chat notifier.
"""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Optional

from telegram import Bot
from telegram.error import Forbidden, RetryAfter, TelegramError

from .base import Notifier, NotificationResult

logger = logging.getLogger(__name__)


def _retry_delay(error: RetryAfter) -> float:
    delay = error.retry_after
    if isinstance(delay, timedelta):
        return delay.total_seconds()
    return float(delay)


class TelegramNotifier(Notifier):
    """
    Sends notifications as Telegram messages.

    The alert check runs on a scheduler thread while the bot lives on an
    asyncio loop, so each send is submitted to that loop and waited on.
    """

    def __init__(
        self,
        bot: Bot,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        parse_mode: str = "HTML",
        timeout: float = 30.0,
    ):
        """
        Initialize Telegram notifier.

        Args:
            bot: python-telegram-bot Bot instance
            loop: Event loop the bot runs on; set once the application starts
            parse_mode: Telegram parse mode for message text
            timeout: Seconds to wait for one send
        """
        self.bot = bot
        self.loop = loop
        self.parse_mode = parse_mode
        self.timeout = timeout

    def notify(self, identity: str, message: str) -> NotificationResult:
        """Send a message to a Telegram chat, retrying once on flood control."""
        if self.loop is None or not self.loop.is_running():
            logger.error(f"Cannot notify {identity}: bot event loop is not running")
            return NotificationResult(
                success=False, channel="telegram", error="event loop not running"
            )

        try:
            try:
                self._send(identity, message)
            except RetryAfter as e:
                delay = _retry_delay(e)
                logger.warning(f"Telegram flood control, retrying {identity} in {delay}s")
                time.sleep(delay)
                self._send(identity, message)
            return NotificationResult(success=True, channel="telegram")

        except Forbidden as e:
            # The user blocked the bot; nothing to retry.
            logger.warning(f"Failed to notify {identity}: {e}")
            return NotificationResult(success=False, channel="telegram", error=str(e))
        except TelegramError as e:
            logger.error(f"Failed to notify {identity}: {e}")
            return NotificationResult(success=False, channel="telegram", error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error notifying {identity}")
            return NotificationResult(success=False, channel="telegram", error=str(e))

    def _send(self, identity: str, message: str) -> None:
        future = asyncio.run_coroutine_threadsafe(
            self.bot.send_message(chat_id=identity, text=message, parse_mode=self.parse_mode),
            self.loop,
        )
        future.result(timeout=self.timeout)
