from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

EventType = Literal["sports", "politics", "crypto", "pop", "other"]
PricingLabel = Literal["Underpriced", "Fairly Priced", "Overpriced"]
ConfidenceLevel = Literal["low", "medium", "high"]
SignalStrength = Literal["Strong Buy", "Buy", "Neutral", "Sell", "Strong Sell"]
Trend = Literal["up", "down", "stable"]


class MarketOption(BaseModel):
    """One tradable outcome of an event, priced as an implied probability."""

    name: str
    image: str | None = None
    implied_probability: float = Field(ge=0.0, le=1.0)
    volume_share_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    price_change_24h: float = 0.0


class WhaleActivity(BaseModel):
    """Counts of order-book levels above the large-order notional threshold."""

    model_config = ConfigDict(populate_by_name=True)

    buy_wall: int = Field(default=0, ge=0, alias="buyWall")
    sell_wall: int = Field(default=0, ge=0, alias="sellWall")
    large_trades: int = Field(default=0, ge=0, alias="largeTrades")


class EventMetrics(BaseModel):
    total_volume: float = 0.0
    volume_24h: float = 0.0
    total_wallets: int = 0
    whale_data: WhaleActivity | None = None


class NewsArticle(BaseModel):
    """News item returned by a news source; sentiment is optional."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str | None = None
    source: str | None = None
    url: str | None = None
    published_at: str | None = Field(default=None, alias="publishedAt")
    sentiment: float | None = None


class SocialSignal(BaseModel):
    """Aggregated social sentiment for one option."""

    model_config = ConfigDict(populate_by_name=True)

    score: int = Field(default=0, ge=-100, le=100)
    engagement: int = 0
    trend: Trend = "stable"
    post_count: int = Field(default=0, alias="postCount")


class MarketEvent(BaseModel):
    """Canonical event produced by normalization and consumed by the analysis."""

    title: str
    image: str | None = None
    category: str
    event_type: EventType = "other"
    resolution_method: str = "oracle"
    subjectivity_level: str = "low"
    time_to_resolution_hours: float = Field(default=0.0, ge=0.0)
    options: list[MarketOption] = Field(min_length=1)
    event_metrics: EventMetrics = Field(default_factory=EventMetrics)
    news_articles: list[NewsArticle] | None = None
    social_data: dict[str, SocialSignal] = Field(default_factory=dict)
    clob_token_id: str | None = None


class CoreEstimate(BaseModel):
    """Independent probability estimate (0-100) for an option from the core model."""

    score: float = Field(ge=0.0, le=100.0)
    reasoning: str | None = None


class VectorContribution(BaseModel):
    score: float
    weight: float
    contribution: float


class SignalVectors(BaseModel):
    news: VectorContribution
    momentum: VectorContribution
    core: VectorContribution


class AnalysisOption(BaseModel):
    """Per-option analysis row returned to clients."""

    model_config = ConfigDict(populate_by_name=True)

    option: str
    market_probability: int = Field(ge=0, le=100, alias="marketProbability")
    ai_score: int = Field(ge=0, le=100, alias="aiScore")
    pricing_label: PricingLabel = Field(alias="pricingLabel")
    pricing_deviation: int = Field(alias="pricingDeviation")
    note: str
    image: str | None = None
    confidence: ConfidenceLevel = "low"
    signal_strength: SignalStrength = Field(default="Neutral", alias="signalStrength")
    vectors: SignalVectors | None = None
    social: SocialSignal | None = None


class AnalysisResult(BaseModel):
    """Fully computed analysis of one event; the payload stored in the cache."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    image: str | None = None
    category: str
    event_type: EventType = Field(default="other", alias="eventType")
    analysis: list[AnalysisOption]


class CacheEntry(BaseModel):
    """Persisted analysis record, one per event slug."""

    model_config = ConfigDict(populate_by_name=True)

    slug: str
    url: str
    title: str
    category: str
    event_type: EventType = Field(alias="eventType")
    time_to_resolution_hours: float = Field(alias="timeToResolutionHours")
    analysis: AnalysisResult
    created_at: datetime = Field(alias="createdAt")
    expires_at: datetime = Field(alias="expiresAt")
    ttl_minutes: int = Field(alias="ttlMinutes")
    hit_count: int = Field(default=1, alias="hitCount")
    last_accessed_at: datetime = Field(alias="lastAccessedAt")

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


class AnalysisResponse(AnalysisResult):
    """Analysis result annotated with cache metadata."""

    cached: bool
    cached_at: datetime | None = Field(default=None, alias="cachedAt")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    cache_age_minutes: int = Field(default=0, alias="cacheAgeMinutes")
    ttl_minutes: int | None = Field(default=None, alias="ttlMinutes")
    refresh_available_in: int = Field(default=0, alias="refreshAvailableIn")
    rate_limit_warning: str | None = Field(default=None, alias="rateLimitWarning")
    stale: bool = False
    refresh_blocked: bool = Field(default=False, alias="refreshBlocked")
    cached_ago: str | None = Field(default=None, alias="cachedAgo")

    def serialize(self) -> dict[str, Any]:
        """Return a dict with API-friendly field names and ISO timestamps."""

        return self.model_dump(by_alias=True, mode="json")
