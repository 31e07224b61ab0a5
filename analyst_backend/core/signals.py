"""Signal vector scoring: news sentiment and price/volume momentum, both in [-100, 100]."""
from __future__ import annotations

import math
from typing import Iterable

from .models import NewsArticle, WhaleActivity

POSITIVE_KEYWORDS = ("win", "lead", "record", "surge", "bullish", "breakthrough", "approval", "gain", "ahead")
NEGATIVE_KEYWORDS = ("lose", "trail", "injury", "crash", "bearish", "scandal", "ban", "decline", "behind")
KEYWORD_SENTIMENT_STEP = 15


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards positive infinity."""

    return int(math.floor(value + 0.5))


def keyword_sentiment(text: str) -> float:
    lowered = text.lower()
    positive = sum(1 for word in POSITIVE_KEYWORDS if word in lowered)
    negative = sum(1 for word in NEGATIVE_KEYWORDS if word in lowered)
    return clamp((positive - negative) * KEYWORD_SENTIMENT_STEP, -100, 100)


def _is_relevant(option_name: str, text: str) -> bool:
    option = option_name.lower()
    if option and option in text:
        return True
    return any(len(word) > 3 and word in text for word in option.split())


def news_score(option_name: str, articles: Iterable[NewsArticle] | None) -> int:
    """Mean sentiment of the articles mentioning the option, 0 when none do."""

    total = 0.0
    relevant = 0
    for article in articles or ():
        text = f"{article.title} {article.description or ''}".lower()
        if not _is_relevant(option_name, text):
            continue
        relevant += 1
        # A zero sentiment carries no signal; fall back to the headline keywords.
        sentiment = article.sentiment or keyword_sentiment(text)
        total += clamp(sentiment, -100, 100)

    if relevant == 0:
        return 0
    return round_half_up(total / relevant)


def momentum_score(
    price_change_24h: float,
    volume_share_percent: float,
    whale: WhaleActivity | None = None,
) -> int:
    """Combine damped price velocity, volume conviction and order-book walls."""

    score = clamp(price_change_24h * 3, -40, 40)

    if volume_share_percent > 50:
        score += 30
    elif volume_share_percent > 25:
        score += 15
    elif volume_share_percent < 5:
        score -= 10

    if whale is not None:
        if whale.buy_wall > 0:
            score += 25
        if whale.sell_wall > 0:
            score -= 25

    return int(clamp(round_half_up(score), -100, 100))
