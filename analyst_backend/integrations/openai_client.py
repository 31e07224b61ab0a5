from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from ..core.errors import RateLimited, UpstreamUnavailable
from ..core.models import CoreEstimate, MarketEvent
from ..core.signals import clamp, round_half_up

logger = logging.getLogger(__name__)

TYPE_GUIDELINES = {
    "sports": "Focus on form, injuries, and stats. Ignore hype.",
    "politics": "Focus on polling trends and demographics. Ignore partisan noise.",
    "crypto": "Focus on on-chain data and macro correlation. High volatility expected.",
    "pop": "Focus on social sentiment trends.",
    "other": "Focus on base rates and logic.",
}

MAX_HEADLINES = 5

SYSTEM_PROMPT = """You are a sharp, opportunistic prediction market analyst.
Your goal is to find mispricings without being delusional.

RULES:
1. MARKET RESPECT: If a market is extremely confident (>90% or <10%), require strong evidence to disagree.
2. HUNT FOR EDGE: In the 20%-80% range, be aggressive when sentiment looks wrong.
3. BE PRECISE: Do not anchor to the market price. If the data says 65% and the market says 50%, say 65%.

Output strictly valid JSON."""


def build_user_prompt(event: MarketEvent) -> str:
    guide = TYPE_GUIDELINES.get(event.event_type, TYPE_GUIDELINES["other"])
    lines = [
        f'- "{option.name}": Market says {round_half_up(option.implied_probability * 100)}%'
        for option in event.options
    ]
    headlines = ""
    if event.news_articles:
        headlines = "RECENT HEADLINES:\n" + "\n".join(
            f"- {article.title}" for article in event.news_articles[:MAX_HEADLINES]
        ) + "\n\n"
    return (
        f"EVENT: {event.title} ({event.event_type})\n"
        f"Volume: ${event.event_metrics.total_volume:,.0f}\n"
        f"Time left: {event.time_to_resolution_hours:.0f}h\n\n"
        f"GUIDE: {guide}\n\n"
        + headlines
        + "OPTIONS & MARKET PRICES:\n"
        + "\n".join(lines)
        + "\n\nTASK:\nEstimate the TRUE probability of each option.\n\n"
        "Response JSON format:\n"
        '{"analysis": [{"option_name": "exact name", "core_probability": <0-100 number>, '
        '"reasoning": "short explanation"}]}'
    )


def parse_estimates(event: MarketEvent, content: str) -> dict[str, CoreEstimate]:
    """Map the model's JSON answer onto event option names.

    An option matches a result with the same name (case-insensitive), or one whose
    name is contained in the option name. Unparseable content yields no estimates.
    """

    try:
        parsed = json.loads(content or "{}")
    except ValueError:
        logger.error("Core model returned malformed JSON")
        return {}
    results = parsed.get("analysis") if isinstance(parsed, dict) else None
    if not isinstance(results, list):
        return {}

    rows: list[tuple[str, dict[str, Any]]] = []
    for item in results:
        if not isinstance(item, dict):
            continue
        name = str(item.get("option_name") or "").strip().lower()
        if name:
            rows.append((name, item))

    estimates: dict[str, CoreEstimate] = {}
    for option in event.options:
        lowered = option.name.lower()
        match = next((item for name, item in rows if name == lowered), None)
        if match is None:
            match = next((item for name, item in rows if name in lowered), None)
        if match is None:
            continue
        try:
            score = float(match.get("core_probability"))
        except (TypeError, ValueError):
            continue
        reasoning = match.get("reasoning")
        estimates[option.name] = CoreEstimate(
            score=clamp(score, 0, 100),
            reasoning=str(reasoning) if reasoning else None,
        )
    return estimates


class OpenAIModelClient:
    """Core probability estimates from an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.5,
        timeout: float = 45.0,
        max_retries: int = 1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is required for core model estimates")
        self._model = model
        self._temperature = temperature
        self._max_retries = max(max_retries, 0)
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def estimate(self, event: MarketEvent) -> dict[str, CoreEstimate]:
        payload = {
            "model": self._model,
            "temperature": self._temperature,
            "max_tokens": 2000,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(event)},
            ],
        }
        data = await self._post("/chat/completions", payload)
        choices = data.get("choices") or []
        content = ""
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content") or ""
        estimates = parse_estimates(event, content)
        logger.info("Core model estimated %s/%s options for %r", len(estimates), len(event.options), event.title)
        return estimates

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        attempt = 0
        backoff = 1.0
        while True:
            try:
                response = await self._client.post(path, json=payload)
                response.raise_for_status()
                data = response.json()
                return data if isinstance(data, dict) else {}
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status == 429:
                    headers = exc.response.headers
                    logger.warning(
                        "Core model 429: remaining_requests=%s, remaining_tokens=%s, reset_requests=%s",
                        headers.get("x-ratelimit-remaining-requests"),
                        headers.get("x-ratelimit-remaining-tokens"),
                        headers.get("x-ratelimit-reset-requests"),
                    )
                    retry_after = headers.get("Retry-After")
                    try:
                        seconds = float(retry_after) if retry_after else None
                    except ValueError:
                        seconds = None
                    raise RateLimited("Core model quota exceeded", retry_after=seconds) from exc
                if status >= 500 and attempt < self._max_retries:
                    attempt += 1
                    logger.warning("Core model request failed (status=%s); retrying in %.1fs", status, backoff)
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 30)
                    continue
                raise UpstreamUnavailable(f"Core model request failed (status={status})") from exc
            except (httpx.HTTPError, ValueError) as exc:
                if attempt < self._max_retries:
                    attempt += 1
                    logger.warning("Core model request errored (%s); retrying in %.1fs", exc, backoff)
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 30)
                    continue
                raise UpstreamUnavailable(f"Core model request failed: {exc}") from exc


__all__ = ["OpenAIModelClient", "build_user_prompt", "parse_estimates"]
