from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=(".env.local", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gamma_events_url: str = Field(
        default="https://gamma-api.polymarket.com/events",
        alias="PM_GAMMA_EVENTS_URL",
        description="Polymarket Gamma events endpoint used to resolve an event by slug.",
    )
    clob_host: str = Field(
        default="https://clob.polymarket.com",
        alias="PM_CLOB_HOST",
        description="Base HTTP host for the Polymarket CLOB REST API (order books).",
    )
    request_timeout: float = Field(
        default=10.0,
        alias="REST_TIMEOUT_SEC",
        description="Timeout in seconds for market source REST requests.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Redis connection URL for the analysis cache.",
    )
    cache_retention_hours: float = Field(
        default=72.0,
        alias="CACHE_RETENTION_HOURS",
        description="Hours an expired analysis is kept for stale serving before Redis evicts it.",
    )
    rate_limit_cooldown_min: int = Field(
        default=5,
        alias="RATE_LIMIT_COOLDOWN_MIN",
        description="Minutes to keep serving stale results after an upstream rate limit.",
    )
    analysis_timeout: float = Field(
        default=90.0,
        alias="ANALYSIS_TIMEOUT_SEC",
        description="Hard deadline in seconds for computing a fresh analysis.",
    )
    signal_timeout: float = Field(
        default=8.0,
        alias="SIGNAL_TIMEOUT_SEC",
        description="Per-call timeout in seconds for news and social adapters.",
    )
    social_pacing: float = Field(
        default=0.3,
        alias="SOCIAL_PACING_SEC",
        description="Minimum seconds between successive social sentiment requests.",
    )
    cors_allow_origins: str = Field(
        default="*",
        alias="CORS_ALLOW_ORIGINS",
        description="Comma-separated list of origins allowed for CORS (use '*' for all).",
    )

    news_api_url: str = Field(
        default="https://newsapi.org/v2/everything",
        alias="NEWS_API_URL",
        description="NewsAPI search endpoint.",
    )
    news_api_key: Optional[str] = Field(
        default=None,
        alias="NEWS_API_KEY",
        description="API key for NewsAPI; news signals stay neutral without it.",
    )
    news_page_size: int = Field(
        default=10,
        alias="NEWS_PAGE_SIZE",
        description="Number of articles requested per news search.",
    )
    news_cache_hours: float = Field(
        default=24.0,
        alias="NEWS_CACHE_HOURS",
        description="Hours a news search result is cached (NewsAPI free tier allows 100 requests/day).",
    )

    reddit_url: str = Field(
        default="https://www.reddit.com",
        alias="REDDIT_URL",
        description="Base URL for the public Reddit JSON search.",
    )
    reddit_user_agent: str = Field(
        default="analyst-backend/0.1",
        alias="REDDIT_USER_AGENT",
        description="User-Agent header sent to Reddit.",
    )
    reddit_cache_hours: float = Field(
        default=6.0,
        alias="REDDIT_CACHE_HOURS",
        description="Hours a Reddit search result is cached.",
    )

    openai_api_key: Optional[str] = Field(
        default=None,
        alias="OPENAI_API_KEY",
        description="API key for the core probability model; estimates fall back to market prices without it.",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        alias="OPENAI_BASE_URL",
        description="Base URL of an OpenAI-compatible chat completions API.",
    )
    core_model: str = Field(
        default="gpt-4o-mini",
        alias="CORE_MODEL",
        description="Chat model identifier used for core probability estimates.",
    )
    core_model_temperature: float = Field(
        default=0.5,
        alias="CORE_MODEL_TEMPERATURE",
        description="Sampling temperature for the core model.",
    )
    core_model_timeout: float = Field(
        default=45.0,
        alias="CORE_MODEL_TIMEOUT_SEC",
        description="Timeout in seconds for a single core model request.",
    )
    core_model_max_retries: int = Field(
        default=1,
        alias="CORE_MODEL_MAX_RETRIES",
        description="Retries for transient core model failures (rate limits are never retried).",
    )


@lru_cache()
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()
