"""
Notifier tests.
Tests for Telegram delivery and message text.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from telegram import Bot
from telegram.error import Forbidden, NetworkError, RetryAfter

from coinwatch.database.models import Alert, Direction
from coinwatch.formatting import format_alert_message, format_usd
from coinwatch.notifiers.base import NotificationResult
from coinwatch.notifiers.telegram import TelegramNotifier


class TestNotificationResult:
    """Test NotificationResult model."""

    def test_success_result(self):
        """Should create success result."""
        result = NotificationResult(success=True, channel="telegram")
        assert result.success is True
        assert result.channel == "telegram"
        assert result.error is None

    def test_failure_result(self):
        """Should create failure result with error."""
        result = NotificationResult(success=False, channel="telegram", error="Forbidden")
        assert result.success is False
        assert result.error == "Forbidden"


class TestTelegramNotifier:
    """Test best-effort Telegram notifications."""

    @pytest.fixture
    def bot(self):
        bot = Mock(spec=Bot)
        bot.send_message = AsyncMock()
        return bot

    def test_send_success(self, bot, bot_loop):
        """Should report success and use HTML parse mode."""
        notifier = TelegramNotifier(bot, loop=bot_loop)

        result = notifier.notify("1001", "<b>hi</b>")

        assert result.success is True
        bot.send_message.assert_awaited_once_with(
            chat_id="1001", text="<b>hi</b>", parse_mode="HTML"
        )

    def test_blocked_user_is_swallowed(self, bot, bot_loop):
        """Should return a failure result instead of raising."""
        bot.send_message.side_effect = Forbidden("Forbidden: bot was blocked by the user")

        result = TelegramNotifier(bot, loop=bot_loop).notify("1001", "hello")

        assert result.success is False
        assert "blocked" in result.error

    def test_network_error_is_swallowed(self, bot, bot_loop):
        bot.send_message.side_effect = NetworkError("connection reset")

        result = TelegramNotifier(bot, loop=bot_loop).notify("1001", "hello")

        assert result.success is False

    def test_flood_control_retries_once(self, bot, bot_loop):
        """Should wait retry_after and send again."""
        bot.send_message.side_effect = [RetryAfter(2), None]

        with patch("coinwatch.notifiers.telegram.time.sleep") as mock_sleep:
            result = TelegramNotifier(bot, loop=bot_loop).notify("1001", "hello")

        assert result.success is True
        mock_sleep.assert_called_once_with(2.0)
        assert bot.send_message.await_count == 2

    def test_flood_control_gives_up_after_retry(self, bot, bot_loop):
        bot.send_message.side_effect = [RetryAfter(1), RetryAfter(1)]

        with patch("coinwatch.notifiers.telegram.time.sleep"):
            result = TelegramNotifier(bot, loop=bot_loop).notify("1001", "hello")

        assert result.success is False

    def test_unexpected_error_is_swallowed(self, bot, bot_loop):
        bot.send_message.side_effect = RuntimeError("boom")

        result = TelegramNotifier(bot, loop=bot_loop).notify("1001", "hello")

        assert result.success is False
        assert result.error == "boom"

    def test_no_running_loop(self, bot):
        """Should fail cleanly before the bot has started."""
        result = TelegramNotifier(bot).notify("1001", "hello")

        assert result.success is False
        bot.send_message.assert_not_called()


class TestMessageFormatting:
    """Test notification text."""

    def test_alert_message(self):
        alert = Alert(coin_id="bitcoin", target_price=50_000, direction=Direction.BELOW)

        message = format_alert_message(alert, 49_000)

        assert message == (
            "<b>ALERT TRIGGERED!</b> 🚨\n\n"
            "BITCOIN has reached <b>$49,000</b>\n"
            "(Target: below $50,000)"
        )

    def test_coin_id_is_escaped(self):
        alert = Alert(coin_id="<script>", target_price=1, direction=Direction.ABOVE)
        assert "&lt;SCRIPT&gt;" in format_alert_message(alert, 2)

    @pytest.mark.parametrize(
        "value,expected",
        [
            (60_000, "$60,000"),
            (1234.5, "$1,234.50"),
            (1, "$1"),
            (0.5, "$0.5"),
            (0.00001234, "$0.00001234"),
        ],
    )
    def test_format_usd(self, value, expected):
        assert format_usd(value) == expected
