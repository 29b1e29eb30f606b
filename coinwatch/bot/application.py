"""
python-telegram-bot wiring for the chat commands.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from telegram import BotCommand, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from coinwatch.bot.commands import MENU_COMMANDS, UNKNOWN_COMMAND_TEXT, BotCommands

logger = logging.getLogger(__name__)

Callback = Callable[[Update, ContextTypes.DEFAULT_TYPE], Awaitable[None]]
Hook = Callable[[Application], Awaitable[None]]


def command_callback(commands: BotCommands, name: str, parse_mode: str = "HTML") -> Callback:
    """
    Build the async callback answering /<name>.

    Commands hit SQLite and the price API, so they run in a worker thread to
    keep the update loop responsive.
    """

    async def callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        user = update.effective_user
        if message is None or user is None:
            return

        reply = await asyncio.to_thread(
            commands.dispatch,
            name,
            list(context.args or []),
            str(user.id),
            user.first_name,
        )
        await message.reply_text(reply, parse_mode=parse_mode)

    return callback


async def unknown_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is not None:
        await update.effective_message.reply_text(UNKNOWN_COMMAND_TEXT)


async def log_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log a failed update; polling carries on."""
    logger.error(f"Error while handling update {update}", exc_info=context.error)


async def register_menu(application: Application) -> bool:
    """Publish the command menu. A failure only costs the menu."""
    try:
        await application.bot.set_my_commands(
            [BotCommand(name, description) for name, description in MENU_COMMANDS]
        )
        return True
    except TelegramError as e:
        logger.warning(f"Could not register bot commands: {e}")
        return False


def build_application(
    token: str,
    commands: BotCommands,
    parse_mode: str = "HTML",
    post_init: Optional[Hook] = None,
    post_stop: Optional[Hook] = None,
) -> Application:
    """
    Build the bot application with one handler per command.

    Raises:
        ValueError: If the bot token is empty
    """
    if not token:
        raise ValueError("Telegram bot token is required")

    builder = ApplicationBuilder().token(token)
    if post_init is not None:
        builder = builder.post_init(post_init)
    if post_stop is not None:
        builder = builder.post_stop(post_stop)
    application = builder.build()

    for name in commands.names:
        application.add_handler(CommandHandler(name, command_callback(commands, name, parse_mode)))
    application.add_handler(MessageHandler(filters.COMMAND, unknown_command))
    application.add_error_handler(log_error)
    return application
