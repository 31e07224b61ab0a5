"""Confidence-weighted blending of the market price with independent signal vectors.

A "model price" is built from the core estimate plus weighted news and momentum
impacts. How far the final probability moves from the market towards the model
price depends on how well the signals agree with each other (the alignment
score), with an extra guard against overriding near-certain markets.

The weights and thresholds below are exact output contracts, not tunables.
"""
from __future__ import annotations

from dataclasses import dataclass

from .models import ConfidenceLevel, PricingLabel, SignalStrength, SignalVectors, VectorContribution
from .signals import clamp, round_half_up


@dataclass(frozen=True)
class ComponentWeights:
    core: float
    news: float
    momentum: float


COMPONENT_WEIGHTS: dict[str, ComponentWeights] = {
    "politics": ComponentWeights(core=0.70, news=0.25, momentum=0.05),
    "crypto": ComponentWeights(core=0.30, news=0.40, momentum=0.30),
    "sports": ComponentWeights(core=0.60, news=0.35, momentum=0.05),
    "pop": ComponentWeights(core=0.30, news=0.70, momentum=0.00),
    "other": ComponentWeights(core=0.50, news=0.30, momentum=0.20),
}

MODEL_PRICE_FLOOR = 1.0
MODEL_PRICE_CEILING = 99.0

HIGH_CONFIDENCE = 0.90
GOOD_CONFIDENCE = 0.70
DEFAULT_CONFIDENCE = 0.50
CONTRARIAN_CONFIDENCE = 0.30
EXTREME_MARKET_CONFIDENCE = 0.10

EXTREME_MARKET_HIGH = 90
EXTREME_MARKET_LOW = 10
LABEL_THRESHOLD = 5
STRONG_SIGNAL_THRESHOLD = 15


@dataclass(frozen=True)
class VectorScores:
    core_ai_score: float
    news_score: float
    momentum_score: float


@dataclass(frozen=True)
class BlendResult:
    final_probability: int
    divergence: int
    label: PricingLabel
    model_price: float
    confidence_factor: float
    alignment: int
    contrarian: bool
    confidence: ConfidenceLevel
    signal_strength: SignalStrength
    vectors: SignalVectors


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def weights_for(event_type: str) -> ComponentWeights:
    return COMPONENT_WEIGHTS.get(event_type, COMPONENT_WEIGHTS["other"])


def alignment_score(core_ai_score: float, news_score: float) -> int:
    """Score 0-4 for how strongly the core estimate and news agree."""

    score = 0
    core_direction = _sign(core_ai_score - 50)
    if core_direction != 0 and core_direction == _sign(news_score):
        score += 2
    if abs(news_score) > 50:
        score += 1
    if abs(core_ai_score - 50) > 20:
        score += 1
    return score


def confidence_factor(alignment: int, contrarian: bool, market_probability: float) -> float:
    if alignment >= 3:
        factor = HIGH_CONFIDENCE
    elif alignment >= 2:
        factor = GOOD_CONFIDENCE
    elif contrarian:
        factor = CONTRARIAN_CONFIDENCE
    else:
        factor = DEFAULT_CONFIDENCE

    extreme = market_probability > EXTREME_MARKET_HIGH or market_probability < EXTREME_MARKET_LOW
    if extreme and contrarian and alignment < 3:
        factor = EXTREME_MARKET_CONFIDENCE
    return factor


def pricing_label(divergence: float) -> PricingLabel:
    if divergence > LABEL_THRESHOLD:
        return "Underpriced"
    if divergence < -LABEL_THRESHOLD:
        return "Overpriced"
    return "Fairly Priced"


def _confidence_level(factor: float) -> ConfidenceLevel:
    if factor >= 0.8:
        return "high"
    if factor >= 0.5:
        return "medium"
    return "low"


def _signal_strength(divergence: float) -> SignalStrength:
    if divergence > STRONG_SIGNAL_THRESHOLD:
        return "Strong Buy"
    if divergence > LABEL_THRESHOLD:
        return "Buy"
    if divergence < -STRONG_SIGNAL_THRESHOLD:
        return "Strong Sell"
    if divergence < -LABEL_THRESHOLD:
        return "Sell"
    return "Neutral"


def blend(market_probability: float, event_type: str, vectors: VectorScores) -> BlendResult:
    """Blend the market probability (0-100) with signal vectors into a final probability."""

    weights = weights_for(event_type)

    news_impact = (vectors.news_score / 100) * (weights.news * 100)
    momentum_impact = (vectors.momentum_score / 100) * (weights.momentum * 100)
    model_price = clamp(
        vectors.core_ai_score + news_impact + momentum_impact,
        MODEL_PRICE_FLOOR,
        MODEL_PRICE_CEILING,
    )

    alignment = alignment_score(vectors.core_ai_score, vectors.news_score)
    contrarian = _sign(model_price - 50) != _sign(market_probability - 50)
    factor = confidence_factor(alignment, contrarian, market_probability)

    final_probability = round_half_up(model_price * factor + market_probability * (1 - factor))
    divergence = final_probability - round_half_up(market_probability)

    return BlendResult(
        final_probability=final_probability,
        divergence=divergence,
        label=pricing_label(divergence),
        model_price=model_price,
        confidence_factor=factor,
        alignment=alignment,
        contrarian=contrarian,
        confidence=_confidence_level(factor),
        signal_strength=_signal_strength(divergence),
        vectors=SignalVectors(
            news=VectorContribution(score=vectors.news_score, weight=weights.news, contribution=news_impact),
            momentum=VectorContribution(
                score=vectors.momentum_score,
                weight=weights.momentum,
                contribution=momentum_impact,
            ),
            core=VectorContribution(
                score=vectors.core_ai_score,
                weight=weights.core,
                contribution=vectors.core_ai_score - 50,
            ),
        ),
    )


def explain(market_probability: int, result: BlendResult, reasoning: str | None = None) -> str:
    """Human-readable note describing a blend result."""

    parts = [f"AI Fair Value: {result.final_probability}% (Market: {market_probability}%)."]
    if result.confidence == "high":
        parts.append("High conviction based on aligned signals.")
    elif result.confidence == "low":
        parts.append("Low conviction, staying close to market consensus.")

    if result.signal_strength in ("Strong Buy", "Buy"):
        parts.append("Opportunity detected (undervalued).")
    elif result.signal_strength in ("Strong Sell", "Sell"):
        parts.append("Caution advised (overvalued).")

    note = " ".join(parts)
    if reasoning:
        note += f" (Core: {reasoning})"
    return note
