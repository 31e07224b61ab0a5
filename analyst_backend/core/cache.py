from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..store.redis_store import RedisAnalysisStore
from .models import AnalysisResponse, AnalysisResult, CacheEntry, MarketEvent
from .signals import round_half_up

logger = logging.getLogger(__name__)

# (hours to resolution upper bound, base TTL minutes); events further out get MAX_BASE_TTL_MINUTES.
TTL_BREAKPOINTS: tuple[tuple[float, int], ...] = (
    (1, 10),
    (3, 20),
    (6, 30),
    (24, 60),
    (72, 90),
    (168, 120),
    (720, 180),
)
MAX_BASE_TTL_MINUTES = 240
MIN_TTL_MINUTES = 10
MAX_TTL_MINUTES = 360

RATE_LIMIT_WARNING = "AI quota exceeded. Showing cached data."


def base_ttl_minutes(hours_to_resolution: float) -> int:
    for upper_bound, minutes in TTL_BREAKPOINTS:
        if hours_to_resolution < upper_bound:
            return minutes
    return MAX_BASE_TTL_MINUTES


def category_multiplier(category: str, event_type: str) -> float:
    cat = (category or "").lower()
    kind = (event_type or "").lower()
    if "crypto" in cat or "bitcoin" in cat or "ethereum" in cat:
        return 0.5
    if "sport" in cat or kind == "sports":
        return 0.7
    if "politic" in cat or "election" in cat or kind == "politics":
        return 1.5
    return 1.0


def calculate_ttl(hours_to_resolution: float, category: str, event_type: str) -> int:
    """Cache lifetime in minutes: shorter near resolution and for volatile categories."""

    ttl = round_half_up(base_ttl_minutes(hours_to_resolution) * category_multiplier(category, event_type))
    return max(MIN_TTL_MINUTES, min(MAX_TTL_MINUTES, ttl))


def minutes_between(start: datetime, end: datetime) -> int:
    return max(int((end - start).total_seconds() // 60), 0)


def format_time_ago(then: datetime, now: datetime) -> str:
    minutes = minutes_between(then, now)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    hours, remainder = divmod(minutes, 60)
    if remainder == 0:
        return f"{hours}h ago"
    return f"{hours}h {remainder}m ago"


class AnalysisCache:
    """Adaptive TTL cache of analysis results keyed by event slug."""

    def __init__(
        self,
        store: RedisAnalysisStore,
        *,
        retention: timedelta,
        cooldown_minutes: int,
    ) -> None:
        self._store = store
        self._retention = retention
        self._cooldown_minutes = max(cooldown_minutes, 1)

    async def get(self, slug: str) -> CacheEntry | None:
        return await self._store.get_entry(slug)

    async def lookup(self, slug: str, *, now: datetime) -> tuple[CacheEntry | None, bool]:
        """Return ``(entry, hit)``; a hit means the entry was fresh and its access stats were bumped."""

        entry = await self._store.get_entry(slug)
        if entry is None:
            logger.info("Cache MISS for %s", slug)
            return None, False

        if not entry.is_fresh(now):
            logger.info("Cache EXPIRED for %s (expired %s)", slug, format_time_ago(entry.expires_at, now))
            return entry, False

        hit_count = await self._store.record_hit(slug, accessed_at=now)
        entry = entry.model_copy(update={"hit_count": hit_count, "last_accessed_at": now})
        logger.info(
            "Cache HIT for %s (age: %sm, expires in: %sm, hits: %s)",
            slug,
            minutes_between(entry.created_at, now),
            minutes_between(now, entry.expires_at),
            hit_count,
        )
        return entry, True

    async def save(
        self,
        *,
        slug: str,
        url: str,
        event: MarketEvent,
        result: AnalysisResult,
        now: datetime,
    ) -> CacheEntry:
        ttl_minutes = calculate_ttl(event.time_to_resolution_hours, event.category, event.event_type)
        expires_at = now + timedelta(minutes=ttl_minutes)
        entry = CacheEntry(
            slug=slug,
            url=url,
            title=event.title,
            category=event.category,
            event_type=event.event_type,
            time_to_resolution_hours=event.time_to_resolution_hours,
            analysis=result,
            created_at=now,
            expires_at=expires_at,
            ttl_minutes=ttl_minutes,
            hit_count=1,
            last_accessed_at=now,
        )
        await self._store.upsert_entry(entry, retain_until=expires_at + self._retention)
        logger.info(
            "Cache SAVED for %s (TTL: %sm, category: %s, type: %s)",
            slug,
            ttl_minutes,
            event.category,
            event.event_type,
        )
        return entry

    async def start_cooldown(self, slug: str) -> None:
        await self._store.start_cooldown(slug, seconds=self._cooldown_minutes * 60)

    async def cooldown_remaining_minutes(self, slug: str) -> int:
        seconds = await self._store.cooldown_remaining(slug)
        return -(-seconds // 60)

    def hit_response(self, entry: CacheEntry, *, now: datetime, refresh_blocked: bool = False) -> AnalysisResponse:
        return self._response(
            entry,
            now=now,
            cached=True,
            refresh_available_in=minutes_between(now, entry.expires_at),
            refresh_blocked=refresh_blocked,
        )

    def fresh_response(self, entry: CacheEntry) -> AnalysisResponse:
        return self._response(
            entry,
            now=entry.created_at,
            cached=False,
            refresh_available_in=entry.ttl_minutes,
        )

    def stale_response(
        self,
        entry: CacheEntry,
        *,
        now: datetime,
        rate_limited: bool,
        cooldown_minutes: int | None = None,
    ) -> AnalysisResponse:
        if rate_limited:
            refresh_available_in = cooldown_minutes if cooldown_minutes is not None else self._cooldown_minutes
        else:
            refresh_available_in = 0
        return self._response(
            entry,
            now=now,
            cached=True,
            refresh_available_in=refresh_available_in,
            stale=True,
            rate_limit_warning=RATE_LIMIT_WARNING if rate_limited else None,
        )

    def _response(
        self,
        entry: CacheEntry,
        *,
        now: datetime,
        cached: bool,
        refresh_available_in: int,
        stale: bool = False,
        refresh_blocked: bool = False,
        rate_limit_warning: str | None = None,
    ) -> AnalysisResponse:
        return AnalysisResponse(
            **entry.analysis.model_dump(),
            cached=cached,
            cached_at=entry.created_at,
            expires_at=entry.expires_at,
            cache_age_minutes=minutes_between(entry.created_at, now),
            ttl_minutes=entry.ttl_minutes,
            refresh_available_in=refresh_available_in,
            rate_limit_warning=rate_limit_warning,
            stale=stale,
            refresh_blocked=refresh_blocked,
            cached_ago=format_time_ago(entry.created_at, now),
        )
