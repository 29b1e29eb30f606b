"""
Price source tests.
Tests for the CoinGecko client and price snapshots.
"""

import pytest
import requests

from coinwatch.data.fetcher import CoinGeckoClient, CoinListing, PriceSnapshot
from coinwatch.exceptions import PriceUnavailable, RateLimited
from conftest import make_response


class TestPriceSnapshot:
    """Test PriceSnapshot model."""

    def test_get_present_and_missing(self):
        snapshot = PriceSnapshot(prices={"bitcoin": 60_000.0})
        assert snapshot.get("bitcoin") == 60_000.0
        assert snapshot.get("ethereum") is None
        assert "bitcoin" in snapshot
        assert "ethereum" not in snapshot
        assert len(snapshot) == 1

    def test_empty_snapshot(self):
        assert len(PriceSnapshot()) == 0


class TestFetchPrices:
    """Test batched price fetching."""

    def test_single_batched_request(self, coingecko: CoinGeckoClient, http_session):
        """Should fetch every requested coin in one call."""
        http_session.get.return_value = make_response(
            json_data={"bitcoin": {"usd": 60_000}, "ethereum": {"usd": 3_000.5}}
        )

        snapshot = coingecko.fetch_prices({"ethereum", "bitcoin"})

        http_session.get.assert_called_once()
        _, kwargs = http_session.get.call_args
        assert kwargs["params"] == {"ids": "bitcoin,ethereum", "vs_currencies": "usd"}
        assert kwargs["timeout"] == 10.0
        assert snapshot.prices == {"bitcoin": 60_000.0, "ethereum": 3_000.5}

    def test_url(self, http_session):
        client = CoinGeckoClient(base_url="https://example.test/api/v3/", session=http_session)
        http_session.get.return_value = make_response(json_data={})

        client.fetch_prices(["bitcoin"])

        args, _ = http_session.get.call_args
        assert args[0] == "https://example.test/api/v3/simple/price"

    def test_missing_coins_are_absent(self, coingecko: CoinGeckoClient, http_session):
        """Should leave silently dropped ids out of the snapshot."""
        http_session.get.return_value = make_response(json_data={"bitcoin": {"usd": 60_000}})

        snapshot = coingecko.fetch_prices(["bitcoin", "notacoin"])

        assert snapshot.get("bitcoin") == 60_000.0
        assert snapshot.get("notacoin") is None

    def test_unusable_prices_are_absent(self, coingecko: CoinGeckoClient, http_session):
        """Should treat non-numeric, zero or missing prices as no data."""
        http_session.get.return_value = make_response(
            json_data={
                "a": {"usd": None},
                "b": {"usd": "abc"},
                "c": {"usd": 0},
                "d": {},
                "e": "oops",
                "f": {"usd": "1.5"},
            }
        )

        snapshot = coingecko.fetch_prices(["a", "b", "c", "d", "e", "f"])

        assert snapshot.prices == {"f": 1.5}

    def test_empty_request_skips_http(self, coingecko: CoinGeckoClient, http_session):
        """Should not call the API for an empty id set."""
        snapshot = coingecko.fetch_prices(set())

        assert len(snapshot) == 0
        http_session.get.assert_not_called()

    def test_fetch_price(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.return_value = make_response(json_data={"bitcoin": {"usd": 60_000}})
        assert coingecko.fetch_price("bitcoin") == 60_000.0

    def test_fetch_price_unknown(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.return_value = make_response(json_data={})
        assert coingecko.fetch_price("notacoin") is None

    def test_api_key_header(self, http_session):
        CoinGeckoClient(api_key="demo-key", session=http_session)
        assert http_session.headers["x-cg-demo-api-key"] == "demo-key"


class TestFetchErrors:
    """Test mapping of upstream failures."""

    def test_rate_limited(self, coingecko: CoinGeckoClient, http_session):
        """Should raise RateLimited on HTTP 429."""
        http_session.get.return_value = make_response(
            status_code=429, headers={"Retry-After": "30"}
        )

        with pytest.raises(RateLimited) as exc_info:
            coingecko.fetch_prices(["bitcoin"])
        assert exc_info.value.retry_after == 30.0

    def test_rate_limited_is_price_error(self):
        assert issubclass(RateLimited, PriceUnavailable)

    def test_timeout(self, coingecko: CoinGeckoClient, http_session):
        """Should raise PriceUnavailable on timeout."""
        http_session.get.side_effect = requests.exceptions.Timeout("read timed out")

        with pytest.raises(PriceUnavailable):
            coingecko.fetch_prices(["bitcoin"])

    def test_connection_error(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(PriceUnavailable):
            coingecko.fetch_prices(["bitcoin"])

    def test_server_error(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.return_value = make_response(status_code=503)

        with pytest.raises(PriceUnavailable) as exc_info:
            coingecko.fetch_prices(["bitcoin"])
        assert not isinstance(exc_info.value, RateLimited)

    def test_invalid_json(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.return_value = make_response(json_data=ValueError("no json"))

        with pytest.raises(PriceUnavailable):
            coingecko.fetch_prices(["bitcoin"])

    def test_unexpected_shape(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.return_value = make_response(json_data=["bitcoin"])

        with pytest.raises(PriceUnavailable):
            coingecko.fetch_prices(["bitcoin"])


class TestFetchCoinList:
    """Test coin catalog fetching."""

    def test_parses_listings(self, coingecko: CoinGeckoClient, http_session, sample_coin_list):
        http_session.get.return_value = make_response(json_data=sample_coin_list)

        listings = coingecko.fetch_coin_list()

        assert listings[0] == CoinListing(id="bitcoin", symbol="btc", name="Bitcoin")
        assert len(listings) == 3

    def test_skips_incomplete_entries(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.return_value = make_response(
            json_data=[{"id": "bitcoin"}, {"symbol": "x"}, "junk", {"id": "a", "symbol": "b"}]
        )

        listings = coingecko.fetch_coin_list()

        assert listings == [CoinListing(id="a", symbol="b", name="a")]

    def test_rate_limited(self, coingecko: CoinGeckoClient, http_session):
        http_session.get.return_value = make_response(status_code=429)

        with pytest.raises(RateLimited):
            coingecko.fetch_coin_list()
