from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .models import MarketEvent, MarketOption, NewsArticle, SocialSignal
from .protocols import NewsSource, SocialSource
from .signals import momentum_score, news_score

logger = logging.getLogger(__name__)

TOP_SIGNAL_OPTIONS = 3


@dataclass
class CollectedSignals:
    news_articles: list[NewsArticle] = field(default_factory=list)
    news_scores: dict[str, int] = field(default_factory=dict)
    momentum_scores: dict[str, int] = field(default_factory=dict)
    social: dict[str, SocialSignal] = field(default_factory=dict)


class Pacer:
    """Enforces a minimum interval between successive calls to a rate-limited source."""

    def __init__(self, interval: float) -> None:
        self._interval = max(interval, 0.0)
        self._lock = asyncio.Lock()
        self._last_call: float | None = None

    async def wait(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self._last_call is not None:
                delay = self._interval - (loop.time() - self._last_call)
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_call = loop.time()


def top_options(options: list[MarketOption], limit: int = TOP_SIGNAL_OPTIONS) -> list[MarketOption]:
    return sorted(options, key=lambda option: option.implied_probability, reverse=True)[:limit]


class SignalCollector:
    """Gathers news, social and momentum vectors for an event, tolerating adapter failures.

    Only the top options by market probability get news and social signals; the
    rest keep neutral vectors. Momentum is computed locally for every option.
    """

    def __init__(
        self,
        *,
        news: NewsSource | None,
        social: SocialSource | None,
        call_timeout: float,
        social_pacing: float,
        max_concurrency: int = TOP_SIGNAL_OPTIONS,
    ) -> None:
        self._news = news
        self._social = social
        self._call_timeout = call_timeout
        self._social_pacer = Pacer(social_pacing)
        self._max_concurrency = max(max_concurrency, 1)

    async def collect(self, event: MarketEvent) -> CollectedSignals:
        ranked = top_options(event.options)
        articles = await self._fetch_news(event)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def social_for(option: MarketOption) -> tuple[str, SocialSignal | None]:
            async with semaphore:
                return option.name, await self._fetch_social(option.name, event)

        social_results = await asyncio.gather(*(social_for(option) for option in ranked))
        social = {name: signal for name, signal in social_results if signal is not None}

        whale = event.event_metrics.whale_data
        signals = CollectedSignals(
            news_articles=articles,
            news_scores={option.name: news_score(option.name, articles) for option in ranked},
            momentum_scores={
                option.name: momentum_score(option.price_change_24h, option.volume_share_percent, whale)
                for option in event.options
            },
            social=social,
        )
        logger.info(
            "Collected signals for %r (%s articles, social for %s/%s options)",
            event.title,
            len(articles),
            len(social),
            len(ranked),
        )
        return signals

    async def _fetch_news(self, event: MarketEvent) -> list[NewsArticle]:
        if self._news is None:
            return []
        try:
            return await asyncio.wait_for(
                self._news.fetch_news(event.title, event.event_type),
                timeout=self._call_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("News fetch timed out for %r; using neutral news vectors", event.title)
        except Exception as exc:
            logger.warning("News fetch failed for %r (%s); using neutral news vectors", event.title, exc)
        return []

    async def _fetch_social(self, option_name: str, event: MarketEvent) -> SocialSignal | None:
        if self._social is None:
            return None
        await self._social_pacer.wait()
        try:
            return await asyncio.wait_for(
                self._social.fetch_sentiment(option_name, event.title, event.event_type),
                timeout=self._call_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Social fetch timed out for option %r", option_name)
        except Exception as exc:
            logger.warning("Social fetch failed for option %r (%s)", option_name, exc)
        return None
