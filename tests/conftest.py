"""Shared fixtures: a controllable clock, fake Redis stores and sample Gamma payloads."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from fakeredis import FakeAsyncRedis

from analyst_backend.core.models import AnalysisOption, AnalysisResult
from analyst_backend.store.redis_store import RedisAnalysisStore


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    # Anchored to wall time: Redis key expiry runs on the real clock.
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def make_store():
    """Factory for a RedisAnalysisStore over fakeredis; call it inside the running event loop."""

    def factory() -> RedisAnalysisStore:
        return RedisAnalysisStore(FakeAsyncRedis(decode_responses=True))

    return factory


@pytest.fixture
def binary_event(clock: FakeClock) -> dict:
    end_date = clock.now + timedelta(hours=50)
    return {
        "title": "Will the incumbent win the 2026 election?",
        "image": "https://img.test/event.png",
        "tags": [{"label": "Politics"}],
        "volume": "250000",
        "markets": [
            {
                "question": "Will the incumbent win the 2026 election?",
                "outcomes": json.dumps(["Yes", "No"]),
                "outcomePrices": json.dumps(["0.62", "0.38"]),
                "volume": "250000",
                "volume24hr": "12000",
                "oneDayPriceChange": "0.02",
                "endDate": end_date.isoformat().replace("+00:00", "Z"),
                "clobTokenIds": json.dumps(["111", "222"]),
            }
        ],
    }


@pytest.fixture
def grouped_event(clock: FakeClock) -> dict:
    end_date = clock.now + timedelta(hours=10)
    return {
        "title": "NBA Champion 2026",
        "tags": [{"label": "NBA"}],
        "markets": [
            {
                "groupItemTitle": "Lakers",
                "outcomePrices": json.dumps(["0.25", "0.75"]),
                "volume": "30000",
                "oneDayPriceChange": "-0.01",
                "endDate": end_date.isoformat(),
                "clobTokenIds": json.dumps(["900", "901"]),
            },
            {
                "groupItemTitle": "Celtics",
                "outcomePrices": json.dumps(["0.45", "0.55"]),
                "volume": "60000",
                "oneDayPriceChange": "0.05",
            },
            "not-a-market",
            {"groupItemTitle": "Knicks", "outcomePrices": "[broken", "volume": "n/a"},
            {
                "groupItemTitle": "Nuggets",
                "outcomePrices": json.dumps(["0.10", "0.90"]),
                "volume": "10000",
            },
        ],
    }


@pytest.fixture
def analysis_result() -> AnalysisResult:
    return AnalysisResult(
        title="Will the incumbent win the 2026 election?",
        image=None,
        category="politics",
        event_type="politics",
        analysis=[
            AnalysisOption(
                option="Yes",
                market_probability=62,
                ai_score=70,
                pricing_label="Underpriced",
                pricing_deviation=8,
                note="AI Fair Value: 70% (Market: 62%).",
                confidence="medium",
                signal_strength="Buy",
            )
        ],
    )
