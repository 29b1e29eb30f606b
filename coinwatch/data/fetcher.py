"""
CoinGecko price source.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import requests

from coinwatch.exceptions import PriceUnavailable, RateLimited

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceSnapshot:
    """
    Prices returned by one fetch, keyed by coin id.

    Sparse: coins the source did not price are simply absent, which means
    "no data" rather than an error.
    """

    prices: dict[str, float] = field(default_factory=dict)

    def get(self, coin_id: str) -> Optional[float]:
        """Get the price for a coin, or None if the snapshot has no data."""
        return self.prices.get(coin_id)

    def __contains__(self, coin_id: object) -> bool:
        return coin_id in self.prices

    def __len__(self) -> int:
        return len(self.prices)


@dataclass(frozen=True)
class CoinListing:
    """One entry of the full coin catalog."""

    id: str
    symbol: str
    name: str


class CoinGeckoClient:
    """Fetches coin catalog and spot prices from the CoinGecko API."""

    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        base_url: str = BASE_URL,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        vs_currency: str = "usd",
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize CoinGecko client.

        Args:
            base_url: API root, e.g. the public or pro endpoint
            api_key: Optional demo API key for higher rate limits
            timeout: Hard timeout in seconds for every request
            vs_currency: Quote currency
            session: Optional requests session (for connection reuse or tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.vs_currency = vs_currency
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if api_key:
            self.session.headers.update({"x-cg-demo-api-key": api_key})

    def fetch_prices(self, coin_ids: Iterable[str]) -> PriceSnapshot:
        """
        Fetch current prices for many coins in one round trip.

        Args:
            coin_ids: Canonical coin ids

        Returns:
            PriceSnapshot containing only the coins the source priced

        Raises:
            RateLimited: If the source answers HTTP 429
            PriceUnavailable: On timeout, network failure or a bad response
        """
        ids = sorted({c for c in coin_ids if c})
        if not ids:
            return PriceSnapshot()

        data = self._get(
            "/simple/price",
            params={"ids": ",".join(ids), "vs_currencies": self.vs_currency},
        )
        if not isinstance(data, dict):
            raise PriceUnavailable("Unexpected price response")

        prices = {}
        for coin_id in ids:
            entry = data.get(coin_id)
            if not isinstance(entry, dict):
                continue
            price = self._parse_price(entry.get(self.vs_currency))
            if price is not None:
                prices[coin_id] = price

        logger.debug(f"Fetched {len(prices)}/{len(ids)} prices")
        return PriceSnapshot(prices=prices)

    def fetch_price(self, coin_id: str) -> Optional[float]:
        """Fetch the current price of a single coin, None if unknown."""
        return self.fetch_prices([coin_id]).get(coin_id)

    def fetch_coin_list(self) -> list[CoinListing]:
        """
        Fetch the full coin catalog.

        Raises:
            RateLimited: If the source answers HTTP 429
            PriceUnavailable: On timeout, network failure or a bad response
        """
        data = self._get("/coins/list")
        if not isinstance(data, list):
            raise PriceUnavailable("Unexpected coin list response")

        listings = []
        for item in data:
            if not isinstance(item, dict):
                continue
            coin_id = item.get("id")
            symbol = item.get("symbol")
            if not coin_id or not symbol:
                continue
            listings.append(
                CoinListing(id=coin_id, symbol=symbol, name=item.get("name") or coin_id)
            )
        return listings

    def _get(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        """GET a JSON document, mapping failures to price source errors."""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise PriceUnavailable(f"Timed out after {self.timeout}s: {path}") from e
        except requests.RequestException as e:
            raise PriceUnavailable(f"Request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimited(
                "Price source rate limit reached",
                retry_after=self._parse_retry_after(response.headers.get("Retry-After")),
            )
        if not response.ok:
            raise PriceUnavailable(f"HTTP {response.status_code}: {path}")

        try:
            return response.json()
        except ValueError as e:
            raise PriceUnavailable(f"Invalid JSON from {path}") from e

    @staticmethod
    def _parse_price(value: Any) -> Optional[float]:
        """Return a positive finite price, or None."""
        if isinstance(value, bool):
            return None
        try:
            price = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(price) or price <= 0:
            return None
        return price

    @staticmethod
    def _parse_retry_after(value: Optional[str]) -> Optional[float]:
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None
