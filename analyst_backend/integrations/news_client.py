from __future__ import annotations

import logging
import re
from typing import Any

import httpx
from pydantic import ValidationError

from ..core.errors import PartialSignalFailure, RateLimited
from ..core.models import NewsArticle
from ..core.signals import clamp
from ..store.redis_store import RedisAnalysisStore

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    """
    will the be to of and a in that have it for not on with he as you do at this but his by from
    they we say her she or an my one all would there their what so up out if about who get which
    go me when make can like time no just him know take people into year your good some could
    them see other than then now look only come its over think also back after use two how our
    work first well way even new want because any these give day most us before between does
    being under during each win won lose lost yes happen become reach hit above below next last
    end start begin
    """.split()
)

POSITIVE_WORDS = (
    "win", "winning", "won", "victory", "success", "surge", "rise", "gain", "lead", "ahead",
    "boost", "rally", "bullish", "soar", "jump", "breakthrough", "record", "historic", "strong",
    "confident", "optimistic", "approval", "support",
)
NEGATIVE_WORDS = (
    "lose", "losing", "lost", "defeat", "fail", "failure", "drop", "fall", "behind", "decline",
    "crash", "plunge", "bearish", "weak", "struggle", "crisis", "scandal", "controversy",
    "investigation", "lawsuit", "ban", "reject", "oppose", "criticism", "warning", "fear",
    "concern", "doubt",
)

_NUMBER_PATTERN = re.compile(r"\$?\d+[kKmMbB]?")
_STRIP_PATTERN = re.compile(r"[^a-zA-Z0-9$%]")
MAX_KEYWORDS = 5
QUERY_KEYWORDS = 3


def extract_keywords(title: str) -> list[str]:
    """Keywords from a market title: proper nouns first, then numbers, then other words."""

    proper_nouns: list[str] = []
    numbers: list[str] = []
    regular: list[str] = []
    for word in title.split():
        clean = _STRIP_PATTERN.sub("", word)
        if len(clean) < 2:
            continue
        if _NUMBER_PATTERN.search(clean):
            numbers.append(clean)
        elif word[:1].isupper() and clean.lower() not in STOP_WORDS:
            proper_nouns.append(clean)
        elif clean.lower() not in STOP_WORDS and len(clean) > 2:
            regular.append(clean.lower())

    keywords = list(dict.fromkeys(proper_nouns + numbers + regular))
    return keywords[:MAX_KEYWORDS]


def build_search_query(title: str) -> str:
    keywords = extract_keywords(title)
    if not keywords:
        return " ".join(title.split()[:QUERY_KEYWORDS])
    return " ".join(keywords[:QUERY_KEYWORDS])


def analyze_sentiment(text: str) -> int:
    lowered = text.lower()
    score = 15 * sum(1 for word in POSITIVE_WORDS if word in lowered)
    score -= 15 * sum(1 for word in NEGATIVE_WORDS if word in lowered)
    return int(clamp(score, -100, 100))


class NewsApiClient:
    """NewsAPI search adapter with keyword query building and a Redis-backed result cache."""

    cache_namespace = "news"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        page_size: int = 10,
        cache: RedisAnalysisStore | None = None,
        cache_ttl_seconds: int = 24 * 3600,
        timeout: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("NEWS_API_KEY is required for news signals")
        self._base_url = base_url
        self._page_size = max(page_size, 1)
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"X-Api-Key": api_key, "User-Agent": "analyst-backend/0.1"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_news(self, query: str, event_type: str) -> list[NewsArticle]:
        search_query = build_search_query(query)
        cache_key = search_query.lower().strip()

        if self._cache is not None:
            cached = await self._cache.cached_json(self.cache_namespace, cache_key)
            if isinstance(cached, list):
                logger.debug("News cache HIT for %r (%s articles)", cache_key, len(cached))
                return [NewsArticle.model_validate(item) for item in cached]

        logger.info("Searching news for %r (type=%s, query=%r)", query, event_type, search_query)
        articles = await self._search(search_query)
        if not articles:
            keywords = extract_keywords(query)
            if len(keywords) > 1:
                logger.debug("No news for %r; retrying with %r", search_query, keywords[0])
                articles = await self._search(keywords[0])

        unique: dict[str, NewsArticle] = {}
        for article in articles:
            unique.setdefault(article.title, article)
        results = list(unique.values())

        if self._cache is not None:
            await self._cache.cache_json(
                self.cache_namespace,
                cache_key,
                [article.model_dump(by_alias=True) for article in results],
                ttl_seconds=self._cache_ttl_seconds,
            )
        return results

    async def _search(self, query: str) -> list[NewsArticle]:
        params = {
            "q": query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": self._page_size,
        }
        try:
            response = await self._client.get(self._base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimited("NewsAPI quota exhausted") from exc
            raise PartialSignalFailure(f"NewsAPI error (status={exc.response.status_code})") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise PartialSignalFailure(f"NewsAPI request failed: {exc}") from exc

        raw_articles: Any = payload.get("articles") if isinstance(payload, dict) else None
        articles: list[NewsArticle] = []
        for raw in raw_articles or []:
            if not isinstance(raw, dict) or not raw.get("title"):
                continue
            title = str(raw.get("title"))
            description = str(raw.get("description") or "")
            source = raw.get("source")
            try:
                articles.append(
                    NewsArticle(
                        title=title,
                        description=description,
                        source=source.get("name") if isinstance(source, dict) else None,
                        url=raw.get("url"),
                        published_at=raw.get("publishedAt"),
                        sentiment=analyze_sentiment(f"{title} {description}"),
                    )
                )
            except ValidationError:
                logger.debug("Skipping malformed news article: %r", title)
        return articles
