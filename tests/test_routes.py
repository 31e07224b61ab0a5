from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from analyst_backend.api.routes import QUOTA_EXCEEDED
from analyst_backend.app import create_app
from analyst_backend.core.errors import (
    AnalysisTimeout,
    EventNotFound,
    InputError,
    NoMarketsFound,
    RateLimited,
    UpstreamUnavailable,
)
from analyst_backend.core.models import AnalysisResponse


@pytest.fixture
def analyzer():
    return AsyncMock()


@pytest.fixture
def client(analyzer):
    # No context manager: the lifespan (and its Redis connection) is not started.
    app = create_app()
    app.state.analyzer = analyzer
    return TestClient(app)


class TestHealth:
    def test_healthz(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAnalyzeRoute:
    def test_returns_analysis_with_cache_metadata(self, client, analyzer, analysis_result):
        cached_at = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
        analyzer.analyze.return_value = AnalysisResponse(
            **analysis_result.model_dump(),
            cached=True,
            cached_at=cached_at,
            cache_age_minutes=12,
            ttl_minutes=135,
            refresh_available_in=123,
            cached_ago="12 min ago",
        )

        response = client.post(
            "/v1/analyze",
            json={"url": "https://polymarket.com/event/incumbent-2026", "forceRefresh": True},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["cached"] is True
        assert body["refreshAvailableIn"] == 123
        assert body["cachedAgo"] == "12 min ago"
        assert body["cachedAt"].startswith("2026-10-18T09:00:00")
        assert body["analysis"][0]["pricingLabel"] == "Underpriced"
        assert body["rateLimitWarning"] is None
        analyzer.analyze.assert_awaited_once_with(
            "https://polymarket.com/event/incumbent-2026",
            force_refresh=True,
        )

    def test_force_refresh_defaults_to_false(self, client, analyzer, analysis_result):
        analyzer.analyze.return_value = AnalysisResponse(**analysis_result.model_dump(), cached=False)

        client.post("/v1/analyze", json={"url": "incumbent-2026"})

        analyzer.analyze.assert_awaited_once_with("incumbent-2026", force_refresh=False)

    def test_missing_url_is_rejected(self, client):
        assert client.post("/v1/analyze", json={}).status_code == 422

    @pytest.mark.parametrize(
        "error, status",
        [
            (InputError("Could not parse slug from URL: nope"), 400),
            (EventNotFound("Event not found on Polymarket: nope"), 404),
            (NoMarketsFound("No active markets found for this event"), 404),
            (UpstreamUnavailable("Failed to fetch data from Polymarket (Status: 503)"), 502),
            (AnalysisTimeout("Analysis of nope exceeded 90s"), 504),
        ],
    )
    def test_error_mapping(self, client, analyzer, error, status):
        analyzer.analyze.side_effect = error

        response = client.post("/v1/analyze", json={"url": "nope"})

        assert response.status_code == status
        assert response.json()["detail"] == str(error)

    def test_rate_limit_without_cache(self, client, analyzer):
        analyzer.analyze.side_effect = RateLimited("Core model quota exceeded", retry_after=60)

        response = client.post("/v1/analyze", json={"url": "incumbent-2026"})

        assert response.status_code == 429
        assert response.json()["detail"] == QUOTA_EXCEEDED
        assert response.headers["retry-after"] == "60"

    def test_analyzer_not_initialised(self):
        client = TestClient(create_app())

        assert client.post("/v1/analyze", json={"url": "incumbent-2026"}).status_code == 500
