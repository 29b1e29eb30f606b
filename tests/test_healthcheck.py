"""
Health endpoint tests.
"""

import pytest
import requests

from coinwatch.data.symbols import CoinMap, SymbolResolver
from coinwatch.database.connection import Database
from coinwatch.healthcheck import HealthServer, create_health_app


class TestHealthEndpoint:
    """Test liveness and store connectivity reporting."""

    @pytest.fixture
    def resolver(self):
        return SymbolResolver(CoinMap({"btc": "bitcoin", "eth": "ethereum"}))

    def test_root_is_alive(self, db, resolver):
        client = create_health_app(db, resolver).test_client()

        response = client.get("/")

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "Bot is alive!"

    def test_health_ok(self, db, resolver):
        client = create_health_app(db, resolver).test_client()

        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok", "database": "ok", "coins": 2}

    def test_health_degraded_when_store_down(self, resolver):
        db = Database(":memory:")
        db.close()
        client = create_health_app(db, resolver).test_client()

        response = client.get("/health")

        assert response.status_code == 503
        assert response.get_json()["database"] == "error"

    def test_health_reports_user_count(self, db, user_repo, resolver):
        user_repo.get_or_create("1")
        user_repo.get_or_create("2")
        client = create_health_app(db, resolver, user_repo).test_client()

        response = client.get("/health")

        assert response.get_json()["users"] == 2


class TestHealthServer:
    """Test serving the health app from a thread."""

    def test_start_and_stop(self, db):
        server = HealthServer(create_health_app(db), host="127.0.0.1", port=0)

        server.start()
        try:
            response = requests.get(f"http://127.0.0.1:{server.port}/", timeout=5)
        finally:
            server.stop()

        assert response.status_code == 200
        assert server.port != 0
