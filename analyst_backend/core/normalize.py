from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, List, Sequence
from urllib.parse import urlparse

from .errors import InputError, NoMarketsFound
from .models import EventMetrics, EventType, MarketEvent, MarketOption, WhaleActivity

logger = logging.getLogger(__name__)

WHALE_NOTIONAL_THRESHOLD = 5000.0
GROUPED_MARKET_LIMIT = 5

# Ordered: the first matching keyword group wins.
EVENT_TYPE_KEYWORDS: tuple[tuple[tuple[str, ...], EventType], ...] = (
    (("sport", "nfl", "nba"), "sports"),
    (("politic", "election"), "politics"),
    (("crypto", "bitcoin", "finance"), "crypto"),
    (("pop", "culture"), "pop"),
)

_SLUG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def _clamp_probability(value: float) -> float:
    return max(0.0, min(1.0, value))


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        if candidate.endswith("Z"):
            candidate = candidate.replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return list(parsed) if isinstance(parsed, (list, tuple)) else []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def parse_slug(slug_or_url: Any) -> str:
    """Extract the event slug from a Polymarket event URL or accept a bare slug."""

    if not isinstance(slug_or_url, str) or not slug_or_url.strip():
        raise InputError("Invalid URL provided")

    candidate = slug_or_url.strip()
    if "/" not in candidate and _SLUG_PATTERN.match(candidate):
        return candidate

    parsed = urlparse(candidate if "://" in candidate else f"https://{candidate}")
    parts = [part for part in parsed.path.split("/") if part]
    if "event" in parts:
        index = parts.index("event")
        if index + 1 < len(parts) and _SLUG_PATTERN.match(parts[index + 1]):
            return parts[index + 1]

    raise InputError(f"Could not parse slug from URL: {candidate}")


def classify_event_type(category: str) -> EventType:
    text = (category or "").lower()
    for keywords, event_type in EVENT_TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return event_type
    return "other"


def _count_walls(levels: Any) -> int:
    if not isinstance(levels, (list, tuple)):
        return 0
    count = 0
    for level in levels:
        if not isinstance(level, dict):
            continue
        notional = _to_float(level.get("price")) * _to_float(level.get("size"))
        if notional > WHALE_NOTIONAL_THRESHOLD:
            count += 1
    return count


def whale_activity(bids: Any, asks: Any) -> WhaleActivity:
    """Count bid and ask levels whose notional exceeds the whale threshold."""

    return WhaleActivity(buy_wall=_count_walls(bids), sell_wall=_count_walls(asks))


def extract_clob_token_id(raw_event: dict[str, Any]) -> str | None:
    """Return the first CLOB token id of the event's main market, if any."""

    markets = raw_event.get("markets") if isinstance(raw_event, dict) else None
    if not isinstance(markets, list) or not markets or not isinstance(markets[0], dict):
        return None
    main = markets[0]
    tokens = _as_list(main.get("clobTokenIds"))
    token = tokens[0] if tokens else main.get("tokenID")
    return str(token) if token not in (None, "") else None


def _first_price(market: dict[str, Any]) -> float:
    # outcomePrices[0] -> lastTradePrice -> price
    prices = _as_list(market.get("outcomePrices"))
    if prices:
        return _to_float(prices[0])
    for key in ("lastTradePrice", "price"):
        value = market.get(key)
        if value:
            return _to_float(value)
    return 0.0


def _price_change_percent(market: dict[str, Any]) -> float:
    # Gamma reports the 24h move as a price delta in [-1, 1].
    return _to_float(market.get("oneDayPriceChange")) * 100.0


def _grouped_options(markets: Sequence[Any], total_volume: float) -> list[MarketOption]:
    candidates = [
        market
        for market in markets
        if isinstance(market, dict)
        and not market.get("closed")
        and _to_float(market.get("volume")) > 0
    ]
    candidates.sort(key=lambda market: _to_float(market.get("volume")), reverse=True)

    options: list[MarketOption] = []
    seen: dict[str, int] = {}
    for market in candidates[:GROUPED_MARKET_LIMIT]:
        volume = _to_float(market.get("volume"))
        share = volume / total_volume * 100.0 if total_volume > 0 else 0.0
        name = str(market.get("groupItemTitle") or market.get("question") or "Option")
        # Signals are keyed by option name, so duplicates get a numeric suffix.
        seen[name] = seen.get(name, 0) + 1
        if seen[name] > 1:
            name = f"{name} ({seen[name]})"
        options.append(
            MarketOption(
                name=name,
                image=_optional_str(market.get("image")) or _optional_str(market.get("groupItemImage")),
                implied_probability=_clamp_probability(_first_price(market)),
                volume_share_percent=min(share, 100.0),
                price_change_24h=_price_change_percent(market),
            )
        )

    options.sort(key=lambda option: option.implied_probability, reverse=True)
    return options


def _binary_options(market: dict[str, Any]) -> list[MarketOption]:
    names = [str(name) for name in _as_list(market.get("outcomes")) if name not in (None, "")]
    yes_name = names[0] if names else "Yes"
    no_name = names[1] if len(names) > 1 else "No"
    if no_name == yes_name:
        no_name = f"{no_name} (2)"

    prices = _as_list(market.get("outcomePrices"))
    if len(prices) >= 2:
        yes_price, no_price = _to_float(prices[0]), _to_float(prices[1])
    else:
        fallback = market.get("lastTradePrice") or market.get("price")
        if fallback:
            yes_price = _to_float(fallback)
            no_price = 1.0 - yes_price
        else:
            yes_price = no_price = 0.0

    change = _price_change_percent(market)
    return [
        MarketOption(
            name=yes_name,
            implied_probability=_clamp_probability(yes_price),
            volume_share_percent=50.0,
            price_change_24h=change,
        ),
        MarketOption(
            name=no_name,
            implied_probability=_clamp_probability(no_price),
            volume_share_percent=50.0,
            price_change_24h=-change,
        ),
    ]


def _category(raw_event: dict[str, Any]) -> str:
    tags = raw_event.get("tags")
    if isinstance(tags, list) and tags:
        first = tags[0]
        label = first.get("label") if isinstance(first, dict) else first
        if isinstance(label, str) and label.strip():
            return label.strip().lower()
    return "other"


def normalize_event(
    raw_event: dict[str, Any],
    *,
    whale: WhaleActivity | None = None,
    now: datetime | None = None,
) -> MarketEvent:
    """Convert a Gamma event payload into the canonical MarketEvent model."""

    markets = raw_event.get("markets") if isinstance(raw_event, dict) else None
    if not isinstance(markets, list) or not markets:
        raise NoMarketsFound("No active markets found for this event")

    total_volume = sum(
        _to_float(market.get("volume")) for market in markets if isinstance(market, dict)
    )
    if total_volume <= 0:
        total_volume = _to_float(raw_event.get("volume"))

    if len(markets) > 1:
        options = _grouped_options(markets, total_volume)
    elif isinstance(markets[0], dict):
        options = _binary_options(markets[0])
    else:
        options = []

    if not options:
        raise NoMarketsFound("No active markets found for this event")

    main = next((market for market in markets if isinstance(market, dict)), {})
    category = _category(raw_event)
    event_type = classify_event_type(category)

    current_time = now or datetime.now(timezone.utc)
    end_date = _parse_datetime(main.get("endDate") or raw_event.get("endDate"))
    hours = 0.0
    if end_date is not None:
        hours = max(0.0, (end_date - current_time).total_seconds() / 3600.0)

    estimated_wallets = int(total_volume // 50)
    volume_24h = _to_float(main.get("volume24hr")) or _to_float(raw_event.get("volume24hr"))

    event = MarketEvent(
        title=str(raw_event.get("title") or main.get("question") or "Untitled event"),
        image=_optional_str(raw_event.get("image")),
        category=category,
        event_type=event_type,
        resolution_method="media consensus" if event_type == "politics" else "oracle",
        subjectivity_level="high" if event_type == "politics" else "low",
        time_to_resolution_hours=hours,
        options=options,
        event_metrics=EventMetrics(
            total_volume=total_volume,
            volume_24h=volume_24h,
            total_wallets=estimated_wallets if estimated_wallets > 0 else 10,
            whale_data=whale,
        ),
        clob_token_id=extract_clob_token_id(raw_event),
    )

    logger.debug(
        "Normalized event %r (%s options, type=%s, %.1fh to resolution)",
        event.title,
        len(options),
        event_type,
        hours,
    )
    return event
