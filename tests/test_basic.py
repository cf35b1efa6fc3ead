"""
Basic application tests.

Validates that the FastAPI app starts correctly, registers the
trading routers, and the health endpoint responds as expected.
"""

from app.core.config import settings
from app.main import app


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_returns_200(self, client) -> None:
        """Health endpoint must return HTTP 200 with status ok."""
        response = client.get("/api/v1/health")
        assert response.status_code == 200

    def test_health_response_body(self, client) -> None:
        """Health endpoint must report the configured version."""
        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["version"] == settings.version


class TestApplication:
    def test_trading_routes_registered(self) -> None:
        paths = {route.path for route in app.routes}
        for path in (
            "/api/v1/portfolios",
            "/api/v1/orders",
            "/api/v1/orders/bracket",
            "/api/v1/market/quotes/{symbol}",
            "/api/v1/risk/validate",
            "/api/v1/rules",
            "/api/v1/automation/run",
            "/api/v1/backtests",
        ):
            assert path in paths

    def test_docs_follow_debug_flag(self, client) -> None:
        expected = 200 if settings.debug else 404
        assert client.get("/docs").status_code == expected
