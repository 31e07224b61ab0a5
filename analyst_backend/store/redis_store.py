from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from redis.asyncio import Redis

from ..core.models import CacheEntry

logger = logging.getLogger(__name__)


def _entry_key(slug: str) -> str:
    return f"analysis:{slug}"


def _cooldown_key(slug: str) -> str:
    return f"analysis:cooldown:{slug}"


def _signal_key(namespace: str, key: str) -> str:
    return f"signals:{namespace}:{key}"


def _entry_to_mapping(entry: CacheEntry) -> dict[str, str]:
    payload = entry.model_dump(by_alias=True, mode="json")
    mapping: dict[str, str] = {}
    for field, value in payload.items():
        if isinstance(value, (dict, list)):
            mapping[field] = json.dumps(value)
        else:
            mapping[field] = str(value)
    return mapping


class RedisAnalysisStore:
    """Redis persistence for analysis cache entries, one hash per event slug.

    The hash key is unique per slug. ``expiresAt`` is only checked at read time;
    the key itself carries a later Redis expiry so expired entries stay readable
    for stale serving until the retention window runs out.
    """

    def __init__(self, client: Redis) -> None:
        self._redis = client

    async def get_entry(self, slug: str) -> CacheEntry | None:
        data = await self._redis.hgetall(_entry_key(slug))
        if not data:
            return None

        try:
            data["analysis"] = json.loads(data.get("analysis") or "null")
            return CacheEntry.model_validate(data)
        except (json.JSONDecodeError, ValidationError):
            logger.warning("Malformed cache entry for %s; ignoring it", slug)
            return None

    async def upsert_entry(self, entry: CacheEntry, *, retain_until: datetime) -> None:
        """Replace the entry for ``entry.slug`` in a single MULTI/EXEC transaction."""

        key = _entry_key(entry.slug)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(key, mapping=_entry_to_mapping(entry))
            pipe.expireat(key, retain_until)
            await pipe.execute()

    async def record_hit(self, slug: str, *, accessed_at: datetime) -> int:
        """Atomically bump the hit counter and access time; returns the new hit count."""

        key = _entry_key(slug)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "hitCount", 1)
            pipe.hset(key, "lastAccessedAt", accessed_at.isoformat())
            hit_count, _ = await pipe.execute()
        return int(hit_count)

    async def start_cooldown(self, slug: str, *, seconds: int) -> None:
        await self._redis.set(_cooldown_key(slug), "1", ex=max(int(seconds), 1))

    async def cooldown_remaining(self, slug: str) -> int:
        """Seconds left on the refresh cooldown for a slug, 0 when none is active."""

        remaining = await self._redis.ttl(_cooldown_key(slug))
        return max(int(remaining), 0)

    async def cached_json(self, namespace: str, key: str) -> Any | None:
        data = await self._redis.get(_signal_key(namespace, key))
        if not data:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Malformed cached payload for %s:%s", namespace, key)
            return None

    async def cache_json(self, namespace: str, key: str, value: Any, *, ttl_seconds: int) -> None:
        await self._redis.set(_signal_key(namespace, key), json.dumps(value), ex=max(int(ttl_seconds), 1))
