"""
Ticker symbol to coin id resolution.
"""

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Iterable, Iterator, Optional

from coinwatch.exceptions import PriceSourceError
from .fetcher import CoinGeckoClient, CoinListing

logger = logging.getLogger(__name__)


class CoinMap(Mapping):
    """
    Immutable lowercase-ticker to canonical coin id snapshot.

    Built once and then only read, so it can be shared between threads
    without locking.
    """

    def __init__(self, entries: Optional[dict[str, str]] = None):
        self._entries = MappingProxyType(
            {symbol.lower(): coin_id for symbol, coin_id in (entries or {}).items()}
        )

    @classmethod
    def from_listings(cls, listings: Iterable[CoinListing]) -> "CoinMap":
        """
        Build a map from catalog listings.

        When several coins share a ticker the last listing wins.
        """
        entries = {}
        for listing in listings:
            entries[listing.symbol.lower()] = listing.id
        return cls(entries)

    def __getitem__(self, symbol: str) -> str:
        return self._entries[symbol]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"CoinMap({len(self)} symbols)"


class SymbolResolver:
    """Resolves user input such as "BTC" to a canonical coin id."""

    def __init__(self, coin_map: Optional[CoinMap] = None):
        self.coin_map = coin_map if coin_map is not None else CoinMap()

    def resolve(self, value: str) -> str:
        """
        Resolve a ticker to a coin id.

        Unknown tickers pass through lowercased, on the assumption that the
        user typed a coin id directly. Never fails.
        """
        lowered = value.lower()
        return self.coin_map.get(lowered, lowered)

    def rebuild(self, client: CoinGeckoClient) -> CoinMap:
        """Swap in a freshly fetched map and return it."""
        self.coin_map = build_coin_map(client)
        return self.coin_map


def build_coin_map(client: CoinGeckoClient) -> CoinMap:
    """
    Fetch the full catalog and build a CoinMap.

    A failed fetch yields an empty map, in which case every lookup degrades
    to pass-through. The caller decides whether that is fatal.
    """
    try:
        listings = client.fetch_coin_list()
    except PriceSourceError as e:
        logger.error(f"Failed to load coin list: {e}")
        return CoinMap()

    coin_map = CoinMap.from_listings(listings)
    logger.info(f"Loaded {len(coin_map)} coins into memory")
    return coin_map
