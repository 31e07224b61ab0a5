from __future__ import annotations

import logging
import re
import time
from typing import Any

import httpx
from pydantic import BaseModel

from ..core.errors import PartialSignalFailure, RateLimited
from ..core.models import SocialSignal, Trend
from ..core.signals import clamp, round_half_up
from ..store.redis_store import RedisAnalysisStore

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    """
    will the be to of and a in that have it for not on with he as you do at this but his by from
    they we say her she or an my one all would there their what so up out if about who get which
    go me when make can like time no just him know take into year your good win won lose lost yes
    happen reach hit above below
    """.split()
)

POSITIVE_WORDS = (
    "bullish", "moon", "pump", "win", "winning", "victory", "surge", "amazing", "great", "love",
    "best", "breaking", "huge", "confirmed", "ath", "all time high", "rally", "soar", "explode",
)
NEGATIVE_WORDS = (
    "bearish", "crash", "dump", "lose", "losing", "defeat", "fail", "scam", "fraud", "warning",
    "concern", "fear", "sell", "rip", "dead", "rekt", "bust", "collapse", "scandal",
)

_STRIP_PATTERN = re.compile(r"[^a-zA-Z0-9$%]")
SEARCH_TERMS = 3
TREND_WINDOW_SECONDS = 86400
TREND_THRESHOLD = 15


class RedditPost(BaseModel):
    title: str
    score: int = 0
    num_comments: int = 0
    subreddit: str | None = None
    created_utc: float = 0.0
    sentiment: int = 0


def extract_search_terms(text: str) -> str:
    """Up to three search terms, capitalized words and numbers first."""

    words = [_STRIP_PATTERN.sub("", word) for word in text.split()]
    words = [word for word in words if len(word) > 2 and word.lower() not in STOP_WORDS]
    important = [word for word in words if word[:1].isupper() or any(ch.isdigit() for ch in word)]
    regular = [word for word in words if word not in important]
    combined = list(dict.fromkeys(important + regular))
    return " ".join(combined[:SEARCH_TERMS])


def post_sentiment(title: str, score: int) -> int:
    """Keyword sentiment of a post title, amplified by upvotes and inverted when downvoted."""

    lowered = title.lower()
    sentiment = 20 * sum(1 for word in POSITIVE_WORDS if word in lowered)
    sentiment -= 20 * sum(1 for word in NEGATIVE_WORDS if word in lowered)

    if score > 1000:
        sentiment *= 1.5
    elif score > 500:
        sentiment *= 1.2
    elif score < 0:
        sentiment *= -0.5

    return int(clamp(round_half_up(sentiment), -100, 100))


def determine_trend(posts: list[RedditPost], now: float | None = None) -> Trend:
    """Compare sentiment of the last 24h against older posts."""

    if len(posts) < 4:
        return "stable"

    current = time.time() if now is None else now
    recent = [post for post in posts if current - post.created_utc < TREND_WINDOW_SECONDS]
    older = [post for post in posts if current - post.created_utc >= TREND_WINDOW_SECONDS]
    if len(recent) < 2 or len(older) < 2:
        return "stable"

    diff = sum(p.sentiment for p in recent) / len(recent) - sum(p.sentiment for p in older) / len(older)
    if diff > TREND_THRESHOLD:
        return "up"
    if diff < -TREND_THRESHOLD:
        return "down"
    return "stable"


def summarize_posts(posts: list[RedditPost], now: float | None = None) -> SocialSignal:
    if not posts:
        return SocialSignal()
    average = round_half_up(sum(post.sentiment for post in posts) / len(posts))
    return SocialSignal(
        score=int(clamp(average, -100, 100)),
        engagement=sum(post.score + post.num_comments for post in posts),
        trend=determine_trend(posts, now),
        post_count=len(posts),
    )


class RedditSentimentClient:
    """Social sentiment from the public Reddit search API, cached in Redis."""

    cache_namespace = "reddit"

    def __init__(
        self,
        *,
        base_url: str,
        user_agent: str,
        cache: RedisAnalysisStore | None = None,
        cache_ttl_seconds: int = 6 * 3600,
        timeout: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_sentiment(self, option: str, event_title: str, event_type: str) -> SocialSignal:
        query = extract_search_terms(f"{option} {event_title}")
        cache_key = f"{event_type}:{query.lower().strip()}"

        posts: list[RedditPost] | None = None
        if self._cache is not None:
            cached = await self._cache.cached_json(self.cache_namespace, cache_key)
            if isinstance(cached, list):
                posts = [RedditPost.model_validate(item) for item in cached]

        if posts is None:
            posts = await self._search(query)
            if self._cache is not None:
                await self._cache.cache_json(
                    self.cache_namespace,
                    cache_key,
                    [post.model_dump() for post in posts],
                    ttl_seconds=self._cache_ttl_seconds,
                )

        signal = summarize_posts(posts)
        logger.debug("Reddit sentiment for %r: %s over %s posts", option, signal.score, signal.post_count)
        return signal

    async def _search(self, query: str) -> list[RedditPost]:
        params = {"q": query, "sort": "relevance", "t": "week", "limit": 15}
        try:
            response = await self._client.get(f"{self._base_url}/search.json", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimited("Reddit rate limit reached") from exc
            raise PartialSignalFailure(f"Reddit error (status={exc.response.status_code})") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise PartialSignalFailure(f"Reddit request failed: {exc}") from exc

        children: Any = (payload.get("data") or {}).get("children") if isinstance(payload, dict) else None
        posts: dict[str, RedditPost] = {}
        for child in children or []:
            data = child.get("data") if isinstance(child, dict) else None
            if not isinstance(data, dict) or not data.get("title"):
                continue
            title = str(data["title"])
            score = int(data.get("score") or 0)
            posts.setdefault(
                title,
                RedditPost(
                    title=title,
                    score=score,
                    num_comments=int(data.get("num_comments") or 0),
                    subreddit=data.get("subreddit"),
                    created_utc=float(data.get("created_utc") or 0.0),
                    sentiment=post_sentiment(title, score),
                ),
            )
        return list(posts.values())
