"""Capabilities the analyzer consumes from external data and model sources."""
from typing import Any, Protocol

from .models import CoreEstimate, MarketEvent, NewsArticle, SocialSignal


class MarketSource(Protocol):
    """Raw prediction-market data (events and order books)."""

    async def fetch_event(self, slug: str) -> dict[str, Any]:
        """Return the raw event payload for a slug.

        Raises:
            EventNotFound: If the platform has no event for the slug.
            UpstreamUnavailable: If the platform cannot be reached.
        """
        ...

    async def fetch_order_book(self, token_id: str) -> dict[str, Any]:
        """Return the order book for an outcome token as ``{"bids": [...], "asks": [...]}``."""
        ...


class NewsSource(Protocol):
    async def fetch_news(self, query: str, event_type: str) -> list[NewsArticle]:
        ...


class SocialSource(Protocol):
    async def fetch_sentiment(self, option: str, event_title: str, event_type: str) -> SocialSignal:
        ...


class ModelSource(Protocol):
    """Independent probability estimator, best effort.

    Callers fall back to the market price for options without an estimate.
    """

    async def estimate(self, event: MarketEvent) -> dict[str, CoreEstimate]:
        """Return core estimates keyed by option name.

        Raises:
            RateLimited: If the model provider's quota is exhausted.
        """
        ...
