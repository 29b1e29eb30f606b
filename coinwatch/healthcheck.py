"""
Liveness and store connectivity endpoint.
"""

import logging
import threading
from typing import Optional

from flask import Flask, jsonify
from werkzeug.serving import BaseWSGIServer, make_server

from coinwatch.data.symbols import SymbolResolver
from coinwatch.database.connection import Database
from coinwatch.database.repository import UserRepository

logger = logging.getLogger(__name__)


def create_health_app(
    db: Database,
    resolver: Optional[SymbolResolver] = None,
    user_repo: Optional[UserRepository] = None,
) -> Flask:
    """Build the Flask app serving / and /health."""
    app = Flask(__name__)

    @app.get("/")
    def alive():
        return "Bot is alive!"

    @app.get("/health")
    def health():
        database_ok = db.ping()
        payload = {
            "status": "ok" if database_ok else "degraded",
            "database": "ok" if database_ok else "error",
            "coins": len(resolver.coin_map) if resolver else 0,
        }
        if database_ok and user_repo is not None:
            payload["users"] = user_repo.count()
        return jsonify(payload), 200 if database_ok else 503

    return app


class HealthServer:
    """Serves the health app from a daemon thread."""

    def __init__(self, app: Flask, host: str = "0.0.0.0", port: int = 3000):
        self.app = app
        self.host = host
        self.port = port
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        # Port 0 binds an ephemeral port; report the real one.
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="health-server", daemon=True
        )
        self._thread.start()
        logger.info(f"Health endpoint listening on {self.host}:{self.port}")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
