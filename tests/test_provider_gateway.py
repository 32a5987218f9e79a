"""
Provider Gateway Tests - Validation Hub
tests/test_provider_gateway.py

Uses httpx.MockTransport so no provider is contacted.
"""
import asyncio
import json

import httpx
import pytest

from validation_hub.config import get_provider_name
from validation_hub.core.exceptions import ProviderMalformed, ProviderUnavailable
from validation_hub.models.tile import TileRequest
from validation_hub.services.provider_gateway import ProviderGateway

BASE_URL = "https://providers.test/functions/v1"


def _gateway(handler, api_key="secret-key"):
    return ProviderGateway(
        base_url=BASE_URL,
        api_key=api_key,
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


def _request(tile_type="market_size", **params):
    return TileRequest(tile_type=tile_type, idea_text="AI tutor for kids", params=params)


class TestProviderNames:

    def test_known_tile_types(self):
        assert get_provider_name("market_size") == "market-size"
        assert get_provider_name("search_trends") == "google-trends"
        assert get_provider_name("social_signals") == "reddit-sentiment"

    def test_unknown_tile_type_uses_dashed_name(self):
        assert get_provider_name("Launch_Timing") == "launch-timing"


class TestSuccessfulFetch:

    def test_posts_idea_and_params(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"tam": 1000})

        gateway = _gateway(handler)
        result = asyncio.run(gateway.fetch(_request(geo="US")))

        assert result == {"tam": 1000}
        assert seen["url"] == f"{BASE_URL}/market-size"
        assert seen["auth"] == "Bearer secret-key"
        assert seen["body"] == {"idea": "AI tutor for kids", "tileType": "market_size", "geo": "US"}
        assert gateway.invocations == 1

    def test_no_auth_header_without_key(self):
        gateway = ProviderGateway(base_url=BASE_URL, api_key="", transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={})
        ))
        assert "Authorization" not in gateway.headers


class TestFailureClassification:

    def test_server_error_is_retryable(self):
        gateway = _gateway(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(ProviderUnavailable) as exc:
            asyncio.run(gateway.fetch(_request()))
        assert exc.value.retryable is True
        assert exc.value.status_code == 503
        assert exc.value.provider == "market-size"

    def test_rate_limit_is_retryable(self):
        gateway = _gateway(lambda request: httpx.Response(429))
        with pytest.raises(ProviderUnavailable) as exc:
            asyncio.run(gateway.fetch(_request()))
        assert exc.value.retryable is True

    def test_client_error_is_not_retryable(self):
        gateway = _gateway(lambda request: httpx.Response(404, text="no such function"))
        with pytest.raises(ProviderUnavailable) as exc:
            asyncio.run(gateway.fetch(_request()))
        assert exc.value.retryable is False
        assert exc.value.status_code == 404

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProviderUnavailable) as exc:
            asyncio.run(_gateway(handler).fetch(_request()))
        assert "timed out" in exc.value.message

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderUnavailable):
            asyncio.run(_gateway(handler).fetch(_request()))

    def test_non_json_body_is_malformed(self):
        gateway = _gateway(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ProviderMalformed):
            asyncio.run(gateway.fetch(_request()))

    def test_list_body_is_malformed(self):
        gateway = _gateway(lambda request: httpx.Response(200, json=[1, 2, 3]))
        with pytest.raises(ProviderMalformed) as exc:
            asyncio.run(gateway.fetch(_request()))
        assert "list" in exc.value.message

    def test_unavailable_status_body(self):
        gateway = _gateway(lambda request: httpx.Response(200, json={"status": "unavailable", "reason": "quota"}))
        with pytest.raises(ProviderUnavailable) as exc:
            asyncio.run(gateway.fetch(_request()))
        assert "quota" in exc.value.message


class TestCircuitBreaking:

    def test_repeated_failures_short_circuit(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        gateway = _gateway(handler)
        gateway.breaker("market-size").failure_threshold = 2

        for _ in range(2):
            with pytest.raises(ProviderUnavailable):
                asyncio.run(gateway.fetch(_request()))
        with pytest.raises(ProviderUnavailable) as exc:
            asyncio.run(gateway.fetch(_request()))

        assert len(calls) == 2
        assert "open" in exc.value.message
        assert gateway.circuit_states()["provider:market-size"]["state"] == "open"

    def test_client_errors_do_not_trip(self):
        gateway = _gateway(lambda request: httpx.Response(400))
        gateway.breaker("market-size").failure_threshold = 1

        for _ in range(3):
            with pytest.raises(ProviderUnavailable):
                asyncio.run(gateway.fetch(_request()))

        assert gateway.circuit_states()["provider:market-size"]["state"] == "closed"

    def test_breakers_are_per_provider(self):
        def handler(request):
            if request.url.path.endswith("market-size"):
                return httpx.Response(500)
            return httpx.Response(200, json={"score": 70})

        gateway = _gateway(handler)
        gateway.breaker("market-size").failure_threshold = 1
        with pytest.raises(ProviderUnavailable):
            asyncio.run(gateway.fetch(_request()))

        assert asyncio.run(gateway.fetch(_request("sentiment"))) == {"score": 70}
