"""
Message text helpers shared by the bot commands and the alert checker.
"""

from html import escape

from coinwatch.database.models import Alert


def format_usd(value: float) -> str:
    """Format a USD amount, keeping significant digits for sub-dollar coins."""
    if value >= 1:
        if value == int(value):
            return f"${int(value):,}"
        return f"${value:,.2f}"
    text = f"{value:.8f}".rstrip("0").rstrip(".")
    return f"${text or '0'}"


def coin_label(coin_id: str) -> str:
    """Display form of a coin id, e.g. BITCOIN."""
    return escape(coin_id.upper())


def format_alert_message(alert: Alert, price: float) -> str:
    """Build the HTML notification for a fired alert."""
    return (
        f"<b>ALERT TRIGGERED!</b> 🚨\n\n"
        f"{coin_label(alert.coin_id)} has reached <b>{format_usd(price)}</b>\n"
        f"(Target: {alert.direction.value} {format_usd(alert.target_price)})"
    )
