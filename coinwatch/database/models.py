"""
Data models for coinwatch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """Which way the price has to move for an alert to fire."""

    ABOVE = "above"
    BELOW = "below"

    @classmethod
    def infer(cls, current_price: float, target_price: float) -> "Direction":
        """
        Infer the direction from the price observed when the alert is created.

        A target strictly above the current price waits for a rise; anything
        else (including a target equal to the current price) waits for a fall.
        """
        if target_price > current_price:
            return cls.ABOVE
        return cls.BELOW


@dataclass
class Alert:
    """A one-shot price alert on a single coin."""

    coin_id: str
    target_price: float
    direction: Direction
    id: Optional[int] = None
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def is_triggered_by(self, price: float) -> bool:
        """Return True if ``price`` satisfies the alert (boundaries inclusive)."""
        if self.direction == Direction.ABOVE:
            return price >= self.target_price
        return price <= self.target_price


@dataclass
class User:
    """Chat user with a watch-list and active alerts."""

    telegram_id: str
    first_name: Optional[str] = None
    favorites: list[str] = field(default_factory=list)  # canonical coin ids
    alerts: list[Alert] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def has_active_alerts(self) -> bool:
        return bool(self.alerts)
