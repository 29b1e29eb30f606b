"""
Base notifier classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Notifier(ABC):
    """
    Abstract base class for notifiers.

    Delivery is best-effort: implementations report failure through the
    returned NotificationResult and never raise.
    """

    @abstractmethod
    def notify(self, identity: str, message: str) -> NotificationResult:
        """
        Deliver a message to a single user.

        Args:
            identity: Chat identity of the recipient
            message: Formatted message text

        Returns:
            NotificationResult indicating success or failure
        """
        pass
