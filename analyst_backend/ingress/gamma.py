from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx

from ..core.errors import EventNotFound, RateLimited, UpstreamUnavailable

logger = logging.getLogger(__name__)


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class GammaClient:
    """Async HTTP client for resolving events through the Polymarket Gamma REST API."""

    def __init__(self, events_url: str, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self._events_url = events_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": "analyst-backend/0.1"},
        )

    async def fetch_event(self, slug: str) -> Dict[str, Any]:
        """Return the raw event payload (with its sub-markets) for a slug."""

        try:
            response = await self._client.get(self._events_url, params={"slug": slug})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429:
                raise RateLimited("Gamma API rate limit reached", retry_after=_retry_after(exc.response)) from exc
            if status == 404:
                raise EventNotFound(f"Event not found on Polymarket: {slug}") from exc
            logger.warning("Gamma API error for %s (status=%s)", slug, status)
            raise UpstreamUnavailable(f"Failed to fetch data from Polymarket (Status: {status})") from exc
        except httpx.HTTPError as exc:
            logger.warning("Gamma API unreachable for %s: %s", slug, exc)
            raise UpstreamUnavailable("Failed to reach Polymarket") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Polymarket returned malformed JSON") from exc

        events: List[Any] = []
        if isinstance(payload, list):
            events = payload
        elif isinstance(payload, dict):
            if isinstance(payload.get("data"), list):
                events = payload["data"]  # type: ignore[index]
            elif isinstance(payload.get("markets"), list):
                events = [payload]

        if not events or not isinstance(events[0], dict):
            raise EventNotFound(f"Event not found on Polymarket: {slug}")
        return events[0]

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GammaClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
