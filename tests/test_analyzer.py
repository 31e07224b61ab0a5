import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from analyst_backend.analyzer import MarketAnalyzer, build_result
from analyst_backend.core.cache import RATE_LIMIT_WARNING, AnalysisCache
from analyst_backend.core.collector import CollectedSignals, SignalCollector
from analyst_backend.core.errors import (
    AnalysisTimeout,
    EventNotFound,
    InputError,
    RateLimited,
    UpstreamUnavailable,
)
from analyst_backend.core.models import CoreEstimate, MarketEvent, MarketOption, SocialSignal

SLUG = "incumbent-2026"
URL = f"https://polymarket.com/event/{SLUG}"


@pytest.fixture
def market(binary_event):
    source = AsyncMock()
    source.fetch_event.return_value = binary_event
    source.fetch_order_book.return_value = {"bids": [{"price": "0.60", "size": "10000"}], "asks": []}
    return source


def _analyzer(store, market, clock, *, model=None, news=None, analysis_timeout=5.0) -> MarketAnalyzer:
    return MarketAnalyzer(
        market=market,
        collector=SignalCollector(news=news, social=None, call_timeout=1.0, social_pacing=0),
        model=model,
        cache=AnalysisCache(store, retention=timedelta(hours=72), cooldown_minutes=5),
        analysis_timeout=analysis_timeout,
        signal_timeout=1.0,
        clock=clock,
    )


class TestFreshAnalysis:
    def test_miss_computes_and_saves(self, make_store, market, clock):
        async def scenario():
            store = make_store()
            response = await _analyzer(store, market, clock).analyze(URL)
            return response, await store.get_entry(SLUG)

        response, entry = asyncio.run(scenario())

        assert response.cached is False
        assert response.stale is False
        assert response.ttl_minutes == 135
        assert response.refresh_available_in == 135
        assert response.event_type == "politics"
        assert [row.option for row in response.analysis] == ["Yes", "No"]
        yes, no = response.analysis
        assert (yes.market_probability, yes.ai_score, yes.pricing_label) == (62, 63, "Fairly Priced")
        assert (no.market_probability, no.ai_score) == (38, 39)
        assert yes.vectors.momentum.score == 46
        assert entry.url == URL
        assert entry.hit_count == 1
        market.fetch_order_book.assert_awaited_once_with("111")

    def test_bare_slug_gets_canonical_url(self, make_store, market, clock):
        async def scenario():
            store = make_store()
            await _analyzer(store, market, clock).analyze(SLUG)
            return await store.get_entry(SLUG)

        assert asyncio.run(scenario()).url == URL

    def test_model_estimates_drive_core_vector(self, make_store, market, clock):
        model = AsyncMock()
        model.estimate.return_value = {"Yes": CoreEstimate(score=80, reasoning="Strong polling lead")}

        async def scenario():
            return await _analyzer(make_store(), market, clock, model=model).analyze(URL)

        response = asyncio.run(scenario())
        yes, no = response.analysis

        assert yes.vectors.core.score == 80
        assert yes.note.endswith("(Core: Strong polling lead)")
        assert no.vectors.core.score == 38

    def test_model_failure_falls_back_to_market(self, make_store, market, clock):
        model = AsyncMock()
        model.estimate.side_effect = UpstreamUnavailable("Core model request failed (status=500)")

        async def scenario():
            return await _analyzer(make_store(), market, clock, model=model).analyze(URL)

        response = asyncio.run(scenario())

        assert response.cached is False
        assert [row.vectors.core.score for row in response.analysis] == [62, 38]

    def test_order_book_failure_assumes_no_whales(self, make_store, market, clock):
        market.fetch_order_book.side_effect = RuntimeError("boom")

        async def scenario():
            return await _analyzer(make_store(), market, clock).analyze(URL)

        yes, _ = asyncio.run(scenario()).analysis

        assert yes.vectors.momentum.score == 21

    def test_invalid_url_fails_before_cache(self, make_store, market, clock):
        async def scenario():
            return await _analyzer(make_store(), market, clock).analyze("https://polymarket.com/markets")

        with pytest.raises(InputError):
            asyncio.run(scenario())
        market.fetch_event.assert_not_awaited()


class TestCachedAnalysis:
    def test_second_call_is_served_from_cache(self, make_store, market, clock):
        async def scenario():
            store = make_store()
            analyzer = _analyzer(store, market, clock)
            first = await analyzer.analyze(URL)
            clock.advance(minutes=20)
            second = await analyzer.analyze(URL)
            return first, second, await store.get_entry(SLUG)

        first, second, entry = asyncio.run(scenario())

        assert second.cached is True
        assert second.analysis == first.analysis
        assert second.cache_age_minutes == 20
        assert second.refresh_available_in == 115
        assert entry.hit_count == 2
        assert market.fetch_event.await_count == 1

    def test_forced_refresh_is_blocked_while_fresh(self, make_store, market, clock):
        async def scenario():
            analyzer = _analyzer(make_store(), market, clock)
            await analyzer.analyze(URL)
            return await analyzer.analyze(URL, force_refresh=True)

        response = asyncio.run(scenario())

        assert response.cached is True
        assert response.refresh_blocked is True
        assert market.fetch_event.await_count == 1

    def test_expired_entry_is_recomputed(self, make_store, market, clock):
        async def scenario():
            store = make_store()
            analyzer = _analyzer(store, market, clock)
            first = await analyzer.analyze(URL)
            clock.advance(minutes=136)
            second = await analyzer.analyze(URL)
            return first, second

        first, second = asyncio.run(scenario())

        assert second.cached is False
        assert second.cached_at > first.cached_at
        assert market.fetch_event.await_count == 2


class TestStaleOnError:
    def test_upstream_failure_serves_stale_entry(self, make_store, market, clock):
        async def scenario():
            analyzer = _analyzer(make_store(), market, clock)
            first = await analyzer.analyze(URL)
            clock.advance(hours=3)
            market.fetch_event.side_effect = UpstreamUnavailable("Failed to reach Polymarket")
            return first, await analyzer.analyze(URL)

        first, stale = asyncio.run(scenario())

        assert stale.cached is True
        assert stale.stale is True
        assert stale.analysis == first.analysis
        assert stale.rate_limit_warning is None
        assert stale.refresh_available_in == 0
        assert stale.cache_age_minutes == 180

    def test_rate_limit_serves_stale_and_starts_cooldown(self, make_store, market, clock):
        model = AsyncMock()
        model.estimate.return_value = {}

        async def scenario():
            analyzer = _analyzer(make_store(), market, clock, model=model)
            first = await analyzer.analyze(URL)
            clock.advance(hours=3)
            model.estimate.side_effect = RateLimited("Core model quota exceeded")
            limited = await analyzer.analyze(URL)
            calls_after_limit = market.fetch_event.await_count
            cooled = await analyzer.analyze(URL)
            return first, limited, cooled, calls_after_limit

        first, limited, cooled, calls_after_limit = asyncio.run(scenario())

        assert limited.stale is True
        assert limited.analysis == first.analysis
        assert limited.rate_limit_warning == RATE_LIMIT_WARNING
        assert limited.refresh_available_in == 5
        assert cooled.stale is True
        assert cooled.rate_limit_warning == RATE_LIMIT_WARNING
        assert market.fetch_event.await_count == calls_after_limit == 2

    def test_failure_without_cache_propagates(self, make_store, market, clock):
        market.fetch_event.side_effect = EventNotFound("Event not found on Polymarket: incumbent-2026")

        async def scenario():
            return await _analyzer(make_store(), market, clock).analyze(URL)

        with pytest.raises(EventNotFound):
            asyncio.run(scenario())

    def test_rate_limit_without_cache_propagates(self, make_store, market, clock):
        model = AsyncMock()
        model.estimate.side_effect = RateLimited("Core model quota exceeded", retry_after=30)

        async def scenario():
            return await _analyzer(make_store(), market, clock, model=model).analyze(URL)

        with pytest.raises(RateLimited):
            asyncio.run(scenario())


class TestDeadline:
    def test_timeout_leaves_cache_untouched(self, make_store, market, clock, binary_event):
        async def slow_event(slug):
            await asyncio.sleep(1)
            return binary_event

        market.fetch_event.side_effect = slow_event

        async def scenario():
            store = make_store()
            analyzer = _analyzer(store, market, clock, analysis_timeout=0.05)
            with pytest.raises(AnalysisTimeout):
                await analyzer.analyze(URL)
            return await store.get_entry(SLUG)

        assert asyncio.run(scenario()) is None

    def test_timeout_with_cache_serves_stale(self, make_store, market, clock, binary_event):
        async def slow_event(slug):
            await asyncio.sleep(1)
            return binary_event

        async def scenario():
            store = make_store()
            analyzer = _analyzer(store, market, clock, analysis_timeout=0.05)
            first = await analyzer.analyze(URL)
            clock.advance(hours=3)
            market.fetch_event.side_effect = slow_event
            stale = await analyzer.analyze(URL)
            return first, stale, await store.get_entry(SLUG)

        first, stale, entry = asyncio.run(scenario())

        assert stale.stale is True
        assert entry.created_at == first.cached_at


class TestBuildResult:
    def test_rows_sorted_and_social_only_for_top_options(self):
        options = [("Film D", 0.05), ("Film A", 0.50), ("Film C", 0.15), ("Film B", 0.30)]
        event = MarketEvent(
            title="Oscars Best Picture",
            category="pop culture",
            event_type="pop",
            options=[MarketOption(name=name, implied_probability=p) for name, p in options],
        )
        signals = CollectedSignals(
            news_scores={"Film A": 60},
            social={"Film A": SocialSignal(score=30), "Film D": SocialSignal(score=90)},
        )

        result = build_result(event, signals, {})

        assert [row.option for row in result.analysis] == ["Film A", "Film B", "Film C", "Film D"]
        assert result.analysis[0].social.score == 30
        assert result.analysis[3].social is None
        assert result.analysis[0].vectors.news.score == 60
        assert all(0 <= row.ai_score <= 100 for row in result.analysis)
