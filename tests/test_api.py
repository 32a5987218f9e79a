"""
API Endpoint Tests - Validation Hub
tests/test_api.py

Exercises the FastAPI routes through TestClient with the provider gateway
replaced by a fake and Redis by an in-memory client.
"""
import pytest
from unittest.mock import patch, MagicMock

from validation_hub.core.exceptions import ProviderMalformed, ProviderUnavailable

IDEA = "AI tutor for kids"


class TestRootEndpoint:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert "version" in data


class TestHealthEndpoint:

    def test_health_returns_200_when_redis_healthy(self, client):
        mock_cache = MagicMock()
        mock_cache.client.ping.return_value = True
        with patch("validation_hub.routers.health.get_cache", return_value=mock_cache):
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dependencies"]["redis"] == "healthy"
        assert "timestamp" in data

    def test_health_returns_503_when_redis_unreachable(self, client):
        with patch("validation_hub.routers.health.get_cache", return_value=None):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["dependencies"]["redis"].startswith("unhealthy")

    def test_health_degraded_when_circuit_open(self, client, api_gateway):
        mock_cache = MagicMock()
        api_gateway.circuit_states = lambda: {
            "provider:market-size": {"state": "open", "failure_count": 5, "success_count": 0, "is_available": False}
        }
        with patch("validation_hub.routers.health.get_cache", return_value=mock_cache):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"


class TestTileEndpoint:

    def test_fetch_tile(self, client):
        response = client.get("/api/v1/tiles/market_size", params={"idea": IDEA, "geo": "US"})

        assert response.status_code == 200
        data = response.json()
        assert data["tile_type"] == "market_size"
        assert data["metrics"]["tam"] == pytest.approx(650_000_000)
        assert data["freshness"] == "live"
        assert data["origin"] == "provider"
        assert data["adjusted"] is True
        assert data["refresh_error"] is None

    def test_extra_query_params_reach_provider(self, client, api_gateway):
        client.get("/api/v1/tiles/market_size", params={"idea": IDEA, "geo": "US", "session_id": "s1"})

        request = api_gateway.calls[0]
        assert request.params == {"geo": "US"}
        assert request.session_id == "s1"
        assert request.idea_text == IDEA

    def test_second_request_served_from_cache(self, client, api_gateway):
        client.get("/api/v1/tiles/market_size", params={"idea": IDEA})
        response = client.get("/api/v1/tiles/market_size", params={"idea": IDEA})

        assert api_gateway.call_count == 1
        assert response.json()["origin"] == "ephemeral"

    def test_refresh_bypasses_cache(self, client, api_gateway):
        client.get("/api/v1/tiles/market_size", params={"idea": IDEA})
        response = client.get("/api/v1/tiles/market_size", params={"idea": IDEA, "refresh": "true"})

        assert api_gateway.call_count == 2
        assert response.json()["origin"] == "provider"

    def test_user_header_persists_entry(self, client, redis_client):
        response = client.get(
            "/api/v1/tiles/market_size",
            params={"idea": IDEA},
            headers={"X-User-Id": "u1"},
        )

        assert response.status_code == 200
        assert any(key.startswith("vh:user:u1:tile:v2:market_size:") for key in redis_client.store)

    def test_anonymous_request_not_persisted(self, client, redis_client):
        client.get("/api/v1/tiles/market_size", params={"idea": IDEA})
        assert redis_client.store == {}

    def test_provider_unavailable_without_cache(self, client, api_gateway):
        api_gateway.payloads["market_size"] = ProviderUnavailable("market-size timed out", provider="market-size")

        response = client.get("/api/v1/tiles/market_size", params={"idea": IDEA})

        assert response.status_code == 503
        detail = response.json()["detail"]
        assert detail["error_code"] == "PROVIDER_UNAVAILABLE"
        assert detail["details"] == {"provider": "market-size", "retryable": True}

    def test_malformed_payload_without_cache(self, client, api_gateway):
        api_gateway.payloads["market_size"] = ProviderMalformed(
            "unrecognized payload", provider="market-size", tile_type="market_size"
        )

        response = client.get("/api/v1/tiles/market_size", params={"idea": IDEA})

        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "PROVIDER_MALFORMED"

    def test_failed_refresh_serves_last_known(self, client, api_gateway, clock):
        client.get("/api/v1/tiles/market_size", params={"idea": IDEA})
        clock.advance(minutes=90)
        api_gateway.payloads["market_size"] = ProviderUnavailable("down", provider="market-size")

        response = client.get("/api/v1/tiles/market_size", params={"idea": IDEA})

        assert response.status_code == 200
        data = response.json()
        assert data["refresh_error"] == "down"
        assert data["freshness"] == "stale"
        assert data["metrics"]["tam"] == pytest.approx(650_000_000)

    def test_overlong_tile_type_rejected(self, client):
        response = client.get("/api/v1/tiles/" + "x" * 80, params={"idea": IDEA})
        assert response.status_code == 422


class TestDrillDownEndpoint:

    def test_three_levels(self, client):
        response = client.post(
            "/api/v1/tiles/drilldown",
            json={"metric_key": "tam", "metric_value": 650000000},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["category"] == "market"
        assert [level["title"] for level in data["levels"]] == ["Overview", "Breakdown", "Strategic Analysis"]
        assert data["levels"][0]["data"]["formatted_value"] == "650.0M"

    def test_caller_explanation_used(self, client):
        response = client.post(
            "/api/v1/tiles/drilldown",
            json={
                "metric_key": "activation_rate",
                "metric_value": 42,
                "explanation": {"definition": "Share of signups reaching first value."},
            },
        )

        data = response.json()
        assert data["category"] == "generic"
        assert data["levels"][0]["description"] == "Share of signups reaching first value."

    def test_blank_metric_key(self, client):
        response = client.post("/api/v1/tiles/drilldown", json={"metric_key": "   "})

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "VALIDATION_ERROR"

    def test_missing_metric_key(self, client):
        response = client.post("/api/v1/tiles/drilldown", json={})

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestCacheMaintenance:

    def test_invalidate_idea(self, client, api_gateway):
        client.get("/api/v1/tiles/market_size", params={"idea": IDEA})
        client.get("/api/v1/tiles/competition", params={"idea": IDEA})

        response = client.delete("/api/v1/tiles/cache", params={"idea": "  ai TUTOR for kids "})

        assert response.status_code == 200
        assert response.json()["removed"]["ephemeral"] == 2

        client.get("/api/v1/tiles/market_size", params={"idea": IDEA})
        assert api_gateway.call_count == 3

    def test_invalidate_blank_idea(self, client):
        response = client.delete("/api/v1/tiles/cache", params={"idea": "   "})

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "INVALID_IDEA"

    def test_stats(self, client):
        client.get("/api/v1/tiles/market_size", params={"idea": IDEA})

        response = client.get("/api/v1/tiles/cache/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["ephemeral"]["entries"] == 1
        assert data["persisted_enabled"] is True
        assert data["in_flight"] == 0
