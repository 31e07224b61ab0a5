from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from .core.blend import VectorScores, blend, explain
from .core.cache import AnalysisCache
from .core.collector import CollectedSignals, SignalCollector, top_options
from .core.errors import AnalysisTimeout, AnalystError, RateLimited
from .core.models import (
    AnalysisOption,
    AnalysisResponse,
    AnalysisResult,
    CacheEntry,
    CoreEstimate,
    MarketEvent,
    WhaleActivity,
)
from .core.normalize import extract_clob_token_id, normalize_event, parse_slug, whale_activity
from .core.protocols import MarketSource, ModelSource
from .core.signals import clamp, round_half_up

logger = logging.getLogger(__name__)

EVENT_URL_TEMPLATE = "https://polymarket.com/event/{slug}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketAnalyzer:
    """Serves fair-probability analyses of prediction-market events through the adaptive cache."""

    def __init__(
        self,
        *,
        market: MarketSource,
        collector: SignalCollector,
        model: ModelSource | None,
        cache: AnalysisCache,
        analysis_timeout: float,
        signal_timeout: float,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._market = market
        self._collector = collector
        self._model = model
        self._cache = cache
        self._analysis_timeout = analysis_timeout
        self._signal_timeout = signal_timeout
        self._clock = clock

    async def analyze(self, slug_or_url: str, force_refresh: bool = False) -> AnalysisResponse:
        slug = parse_slug(slug_or_url)
        url = slug_or_url.strip() if "/" in slug_or_url else EVENT_URL_TEMPLATE.format(slug=slug)
        now = self._clock()

        entry, hit = await self._cache.lookup(slug, now=now)
        if entry is not None and hit:
            if force_refresh:
                logger.info("Refresh blocked for %s; cached analysis is still fresh", slug)
            return self._cache.hit_response(entry, now=now, refresh_blocked=force_refresh)

        if entry is not None:
            remaining = await self._cache.cooldown_remaining_minutes(slug)
            if remaining > 0:
                logger.info("Serving stale analysis for %s (rate-limit cooldown, %sm left)", slug, remaining)
                return self._cache.stale_response(entry, now=now, rate_limited=True, cooldown_minutes=remaining)

        try:
            try:
                event, result = await asyncio.wait_for(self._compute(slug), timeout=self._analysis_timeout)
            except asyncio.TimeoutError as exc:
                raise AnalysisTimeout(f"Analysis of {slug} exceeded {self._analysis_timeout:.0f}s") from exc
        except AnalystError as exc:
            if entry is None:
                raise
            return await self._serve_stale(slug, entry, exc)

        saved = await self._cache.save(slug=slug, url=url, event=event, result=result, now=self._clock())
        return self._cache.fresh_response(saved)

    async def _serve_stale(self, slug: str, entry: CacheEntry, exc: AnalystError) -> AnalysisResponse:
        now = self._clock()
        rate_limited = isinstance(exc, RateLimited)
        if rate_limited:
            await self._cache.start_cooldown(slug)
            logger.warning("Rate limited while refreshing %s (%s); serving stale analysis", slug, exc)
        else:
            logger.warning("Refresh failed for %s (%s: %s); serving stale analysis", slug, type(exc).__name__, exc)
        return self._cache.stale_response(entry, now=now, rate_limited=rate_limited)

    async def _compute(self, slug: str) -> tuple[MarketEvent, AnalysisResult]:
        raw_event = await self._market.fetch_event(slug)
        whale = await self._whale_activity(raw_event)
        event = normalize_event(raw_event, whale=whale, now=self._clock())
        logger.info("Analyzing %r (%s options, type=%s)", event.title, len(event.options), event.event_type)

        signals = await self._collector.collect(event)
        event = event.model_copy(update={"news_articles": signals.news_articles, "social_data": signals.social})
        estimates = await self._estimates(event)
        return event, build_result(event, signals, estimates)

    async def _whale_activity(self, raw_event: dict[str, Any]) -> WhaleActivity | None:
        token_id = extract_clob_token_id(raw_event)
        if not token_id:
            return None
        try:
            book = await asyncio.wait_for(self._market.fetch_order_book(token_id), timeout=self._signal_timeout)
        except asyncio.TimeoutError:
            logger.warning("Order book fetch timed out (token=%s); assuming no whale activity", token_id)
            return WhaleActivity()
        except Exception as exc:
            logger.warning("Order book fetch failed (token=%s, %s); assuming no whale activity", token_id, exc)
            return WhaleActivity()
        return whale_activity(book.get("bids"), book.get("asks"))

    async def _estimates(self, event: MarketEvent) -> dict[str, CoreEstimate]:
        if self._model is None:
            return {}
        try:
            return await self._model.estimate(event)
        except RateLimited:
            raise
        except Exception as exc:
            logger.warning("Core model unavailable for %r (%s); falling back to market prices", event.title, exc)
            return {}


def build_result(
    event: MarketEvent,
    signals: CollectedSignals,
    estimates: dict[str, CoreEstimate],
) -> AnalysisResult:
    """Blend every option of an event into an analysis, ordered by market probability."""

    ranked = {option.name for option in top_options(event.options)}
    rows: list[AnalysisOption] = []
    for option in event.options:
        market_probability = round_half_up(option.implied_probability * 100)
        estimate = estimates.get(option.name)
        core_score = estimate.score if estimate is not None else market_probability
        blended = blend(
            market_probability,
            event.event_type,
            VectorScores(
                core_ai_score=core_score,
                news_score=signals.news_scores.get(option.name, 0),
                momentum_score=signals.momentum_scores.get(option.name, 0),
            ),
        )
        rows.append(
            AnalysisOption(
                option=option.name,
                market_probability=market_probability,
                ai_score=int(clamp(blended.final_probability, 0, 100)),
                pricing_label=blended.label,
                pricing_deviation=blended.divergence,
                note=explain(market_probability, blended, estimate.reasoning if estimate else None),
                image=option.image,
                confidence=blended.confidence,
                signal_strength=blended.signal_strength,
                vectors=blended.vectors,
                social=signals.social.get(option.name) if option.name in ranked else None,
            )
        )

    rows.sort(key=lambda row: row.market_probability, reverse=True)
    return AnalysisResult(
        title=event.title,
        image=event.image,
        category=event.category,
        event_type=event.event_type,
        analysis=rows,
    )


__all__ = ["MarketAnalyzer", "build_result", "utcnow"]
