"""
Error taxonomy shared by the price source and the store.
"""

from typing import Optional


class CoinwatchError(Exception):
    """Base class for all coinwatch errors."""

    pass


class PriceSourceError(CoinwatchError):
    """Raised when the price source times out, is unreachable or misbehaves."""

    pass


# The name used throughout the alert-checking code.
PriceUnavailable = PriceSourceError


class RateLimited(PriceSourceError):
    """Raised when the price source reports a rate-limit condition (HTTP 429)."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class StoreError(CoinwatchError):
    """Raised when a persistence operation fails."""

    pass

