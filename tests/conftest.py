"""
Pytest configuration and shared fixtures.
"""

import asyncio
import threading
from typing import Iterable, Optional
from unittest.mock import MagicMock

import pytest

from coinwatch.data.fetcher import CoinGeckoClient, PriceSnapshot
from coinwatch.data.symbols import CoinMap, SymbolResolver
from coinwatch.database.connection import Database
from coinwatch.database.repository import UserRepository
from coinwatch.notifiers.base import NotificationResult, Notifier


class RecordingNotifier(Notifier):
    """Notifier double that records every message."""

    def __init__(self, fail_for: Iterable[str] = ()):
        self.sent: list[tuple[str, str]] = []
        self.fail_for = set(fail_for)

    def notify(self, identity: str, message: str) -> NotificationResult:
        if identity in self.fail_for:
            return NotificationResult(
                success=False, channel="test", error="Forbidden: bot was blocked by the user"
            )
        self.sent.append((identity, message))
        return NotificationResult(success=True, channel="test")


class FakePriceSource:
    """Price source double returning fixed prices and recording requests."""

    def __init__(self, prices: Optional[dict[str, float]] = None, error: Optional[Exception] = None):
        self.prices = prices or {}
        self.error = error
        self.requests: list[set[str]] = []

    def fetch_prices(self, coin_ids: Iterable[str]) -> PriceSnapshot:
        ids = set(coin_ids)
        self.requests.append(ids)
        if self.error is not None:
            raise self.error
        return PriceSnapshot(prices={c: p for c, p in self.prices.items() if c in ids})

    def fetch_price(self, coin_id: str) -> Optional[float]:
        return self.fetch_prices([coin_id]).get(coin_id)


@pytest.fixture
def db():
    """In-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def user_repo(db):
    return UserRepository(db)


@pytest.fixture
def resolver():
    return SymbolResolver(CoinMap({"btc": "bitcoin", "eth": "ethereum", "sol": "solana"}))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sample_coin_list():
    """Sample CoinGecko /coins/list response."""
    return [
        {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"},
        {"id": "ethereum", "symbol": "eth", "name": "Ethereum"},
        {"id": "solana", "symbol": "sol", "name": "Solana"},
    ]


@pytest.fixture
def http_session():
    """requests.Session stand-in."""
    session = MagicMock()
    session.headers = {}
    return session


def make_response(status_code: int = 200, json_data=None, headers=None, text: str = ""):
    """Build a requests.Response stand-in."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = headers or {}
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def coingecko(http_session):
    return CoinGeckoClient(session=http_session)


@pytest.fixture
def bot_loop():
    """Event loop running on its own thread, as the bot's loop does."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()
