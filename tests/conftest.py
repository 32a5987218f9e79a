# tests/conftest.py

"""
Pytest Fixtures - shared fakes and sample provider payloads for the tile pipeline

FAKES:
- FakeGateway:     records provider invocations, returns canned payloads or raises
- FakeRedisClient: dict-backed stand-in for the redis client behind RedisCache
- FixedClock:      controllable "now" for TTL and freshness tests
"""

import asyncio
import fnmatch
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest
import redis
from fastapi.testclient import TestClient

from validation_hub.core.dependencies import (
    get_cache_resolver,
    get_insight_generator,
    get_provider_gateway,
)
from validation_hub.main import app
from validation_hub.models.tile import TileRequest
from validation_hub.pipeline.insights import InsightGenerator
from validation_hub.pipeline.resolver import CacheResolver
from validation_hub.services.circuit_breaker import reset_circuit_breakers
from validation_hub.services.ephemeral_cache import EphemeralCache
from validation_hub.services.redis_cache import RedisCache


START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# FAKES
# =============================================================================

class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)


class FakeGateway:
    """Provider gateway double: one canned payload (or exception) per tile type."""

    def __init__(self, payloads: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.payloads: Dict[str, Any] = dict(payloads or {})
        self.delay = delay
        self.calls: List[TileRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def fetch(self, request: TileRequest) -> Dict[str, Any]:
        self.calls.append(request)
        # yield so concurrent callers can pile up on the same key
        await asyncio.sleep(self.delay)
        result = self.payloads[request.tile_type]
        if isinstance(result, Exception):
            raise result
        return result

    def circuit_states(self) -> Dict[str, Dict[str, Any]]:
        return {}


class FakeRedisClient:
    """The subset of the redis client RedisCache uses, backed by a dict."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value):
        self._check()
        self.store[key] = value
        return True

    def delete(self, *keys):
        self._check()
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def scan_iter(self, match="*"):
        self._check()
        return [key for key in list(self.store) if fnmatch.fnmatchcase(key, match)]


# =============================================================================
# PIPELINE FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def _reset_circuits():
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def redis_client():
    return FakeRedisClient()


@pytest.fixture
def persisted(redis_client):
    """RedisCache wired to the in-memory client."""
    with patch("validation_hub.services.redis_cache.redis.from_url", return_value=redis_client):
        yield RedisCache("redis://fake:6379/0")


@pytest.fixture
def ephemeral():
    return EphemeralCache(ttl_minutes=60, max_entries=100)


@pytest.fixture
def gateway(market_payload):
    return FakeGateway({"market_size": market_payload})


@pytest.fixture
def resolver(gateway, ephemeral, persisted, clock):
    return CacheResolver(
        gateway=gateway,
        ephemeral=ephemeral,
        persisted=persisted,
        clock=clock,
    )


@pytest.fixture
def market_request():
    return TileRequest(tile_type="market_size", idea_text="AI tutor for kids", params={"geo": "US"})


@pytest.fixture
def identified_request():
    return TileRequest(
        tile_type="market_size",
        idea_text="AI tutor for kids",
        user_id="user-42",
        params={"geo": "US"},
    )


# =============================================================================
# SAMPLE PROVIDER PAYLOADS
# =============================================================================

@pytest.fixture
def market_payload():
    return {"tam": 1_000_000_000}


@pytest.fixture
def rich_market_payload():
    return {
        "tam": {"value": 7.9, "unit": "B"},
        "sam": "$1.2B",
        "som": 45_000_000,
        "cagr": "18%",
        "segments": [
            {"name": "K-12", "value": 4200},
            {"name": "Higher Ed", "value": 2100},
        ],
        "drivers": ["Remote learning adoption", "Falling inference cost"],
        "sources": [
            {"name": "Gartner", "url": "https://gartner.com/report", "reliability": "high"},
            {"name": "Blog post"},
        ],
        "confidence": 0.8,
    }


@pytest.fixture
def competition_payload():
    return {
        "level": "High",
        "competitors": [
            {"name": "Khanmigo", "marketShare": 35},
            {"name": "Duolingo Max", "marketShare": "20%"},
            {"name": "Synthesis"},
        ],
        "metrics": {"total": 12, "direct": 5, "indirect": 7},
        "confidence": 72,
    }


@pytest.fixture
def sentiment_payload():
    return {
        "sentiment": 68,
        "distribution": {"positive": 120, "neutral": 50, "negative": 30},
        "pros": ["Saves parents time"],
        "cons": ["Screen time worries"],
        "citations": [{"label": "r/parenting", "url": "https://reddit.com/r/parenting"}],
    }


@pytest.fixture
def trends_payload():
    return {
        "google_trends": {
            "keywords": ["ai tutor"],
            "summary": "Interest in AI tutors doubled over the last year.",
            "metrics": {"interest_score": 74, "12m_growth": "+15%", "top_region": "California"},
            "charts": {
                "timeline": {
                    "data": [
                        {"date": "2025-01", "value": 40},
                        {"date": "2025-02", "value": 55},
                        {"date": "2025-03", "value": 61},
                    ]
                }
            },
            "citations": [{"label": "Google Trends", "url": "https://trends.google.com"}],
        }
    }


@pytest.fixture
def social_payload():
    return {
        "status": "ok",
        "normalized": {
            "volume": 1800,
            "sentiment": 64,
            "influencerInterest": 22,
            "trendingHashtags": ["#edtech", "#aitutor"],
        },
        "citations": [{"source": "Twitter", "url": "https://twitter.com/search?q=ai%20tutor"}],
    }


@pytest.fixture
def pmf_payload():
    return {
        "score": 80,
        "tier": "Promising",
        "factors": {"market": 70, "competition": 55, "sentiment": {"score": 90}},
        "recommendations": ["Interview 20 parents"],
    }


# =============================================================================
# FASTAPI TEST CLIENT FIXTURE
# =============================================================================

@pytest.fixture
def api_gateway(market_payload, competition_payload):
    return FakeGateway({"market_size": market_payload, "competition": competition_payload})


@pytest.fixture
def api_resolver(api_gateway, persisted, clock):
    return CacheResolver(
        gateway=api_gateway,
        ephemeral=EphemeralCache(ttl_minutes=60, max_entries=100),
        persisted=persisted,
        clock=clock,
    )


@pytest.fixture
def client(api_resolver, api_gateway):
    """TestClient with the pipeline dependencies swapped for fakes."""
    app.dependency_overrides[get_cache_resolver] = lambda: api_resolver
    app.dependency_overrides[get_provider_gateway] = lambda: api_gateway
    app.dependency_overrides[get_insight_generator] = lambda: InsightGenerator()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
