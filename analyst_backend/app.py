from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from .analyzer import MarketAnalyzer
from .api.routes import router
from .config import settings
from .core.cache import AnalysisCache
from .core.collector import SignalCollector
from .ingress.clob import ClobOrderBookClient, PolymarketSource
from .ingress.gamma import GammaClient
from .integrations.news_client import NewsApiClient
from .integrations.openai_client import OpenAIModelClient
from .integrations.reddit_client import RedditSentimentClient
from .store.redis_store import RedisAnalysisStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    store = RedisAnalysisStore(redis)
    cache = AnalysisCache(
        store,
        retention=timedelta(hours=settings.cache_retention_hours),
        cooldown_minutes=settings.rate_limit_cooldown_min,
    )

    market = PolymarketSource(
        GammaClient(settings.gamma_events_url, timeout=settings.request_timeout),
        ClobOrderBookClient(settings.clob_host),
    )
    news = (
        NewsApiClient(
            settings.news_api_key,
            base_url=settings.news_api_url,
            page_size=settings.news_page_size,
            cache=store,
            cache_ttl_seconds=int(settings.news_cache_hours * 3600),
            timeout=settings.signal_timeout,
        )
        if settings.news_api_key
        else None
    )
    social = RedditSentimentClient(
        base_url=settings.reddit_url,
        user_agent=settings.reddit_user_agent,
        cache=store,
        cache_ttl_seconds=int(settings.reddit_cache_hours * 3600),
        timeout=settings.signal_timeout,
    )
    model = (
        OpenAIModelClient(
            settings.openai_api_key,
            model=settings.core_model,
            base_url=settings.openai_base_url,
            temperature=settings.core_model_temperature,
            timeout=settings.core_model_timeout,
            max_retries=settings.core_model_max_retries,
        )
        if settings.openai_api_key
        else None
    )
    collector = SignalCollector(
        news=news,
        social=social,
        call_timeout=settings.signal_timeout,
        social_pacing=settings.social_pacing,
    )
    analyzer = MarketAnalyzer(
        market=market,
        collector=collector,
        model=model,
        cache=cache,
        analysis_timeout=settings.analysis_timeout,
        signal_timeout=settings.signal_timeout,
    )

    app.state.settings = settings
    app.state.redis = redis
    app.state.store = store
    app.state.analyzer = analyzer

    try:
        await redis.ping()
    except Exception:
        logger.exception("Failed to connect to Redis")
        raise

    logger.info(
        "Backend configuration loaded (gamma_events_url=%s, news=%s, core_model=%s, deadline=%ss, cooldown=%sm)",
        settings.gamma_events_url,
        "enabled" if news is not None else "disabled",
        settings.core_model if model is not None else "disabled",
        settings.analysis_timeout,
        settings.rate_limit_cooldown_min,
    )

    try:
        yield
    finally:
        await market.close()
        await social.close()
        if news is not None:
            await news.close()
        if model is not None:
            await model.close()
        await redis.close()


def create_app() -> FastAPI:
    app = FastAPI(title="Prediction Market Analyst Backend", lifespan=lifespan)
    origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
    if not origins:
        origins = ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
