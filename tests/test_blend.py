import pytest

from analyst_backend.core.blend import (
    COMPONENT_WEIGHTS,
    VectorScores,
    alignment_score,
    blend,
    confidence_factor,
    explain,
    pricing_label,
    weights_for,
)


class TestWeights:
    def test_every_event_type_weights_sum_to_one(self):
        for event_type, weights in COMPONENT_WEIGHTS.items():
            assert weights.core + weights.news + weights.momentum == pytest.approx(1.0), event_type

    def test_unknown_event_type_falls_back_to_other(self):
        assert weights_for("weather") == COMPONENT_WEIGHTS["other"]


class TestAlignment:
    def test_core_and_news_agreeing_strongly(self):
        # direction agrees (+2), |news| > 50 (+1), |core - 50| > 20 (+1)
        assert alignment_score(80, 60) == 4

    def test_neutral_news_never_aligns(self):
        assert alignment_score(20, 0) == 1

    def test_core_at_fifty_has_no_direction(self):
        assert alignment_score(50, 30) == 0


class TestConfidenceFactor:
    @pytest.mark.parametrize(
        "alignment, contrarian, market, expected",
        [
            (4, False, 50, 0.90),
            (3, True, 95, 0.90),
            (2, False, 50, 0.70),
            (1, True, 50, 0.30),
            (0, False, 50, 0.50),
            (2, True, 95, 0.10),
            (1, True, 5, 0.10),
            (1, False, 95, 0.50),
        ],
    )
    def test_factor_table(self, alignment, contrarian, market, expected):
        assert confidence_factor(alignment, contrarian, market) == expected


class TestPricingLabel:
    def test_label_boundaries(self):
        assert pricing_label(6) == "Underpriced"
        assert pricing_label(5) == "Fairly Priced"
        assert pricing_label(-5) == "Fairly Priced"
        assert pricing_label(-6) == "Overpriced"


class TestBlend:
    def test_extreme_market_guard_dampens_contrarian_model(self):
        result = blend(95, "other", VectorScores(core_ai_score=20, news_score=0, momentum_score=0))

        assert result.contrarian is True
        assert result.confidence_factor == 0.10
        assert result.final_probability == 88
        assert result.divergence == -7
        assert result.label == "Overpriced"
        assert result.confidence == "low"

    def test_balanced_crypto_market_with_aligned_signals(self):
        result = blend(50, "crypto", VectorScores(core_ai_score=70, news_score=80, momentum_score=0))

        assert result.model_price == 99
        assert result.alignment == 3
        assert result.confidence_factor == 0.90
        assert result.final_probability == 94
        assert result.divergence == 44
        assert result.label == "Underpriced"
        assert result.signal_strength == "Strong Buy"
        assert result.confidence == "high"

    def test_no_signal_stays_at_market(self):
        result = blend(50, "politics", VectorScores(core_ai_score=50, news_score=0, momentum_score=0))

        assert result.final_probability == 50
        assert result.label == "Fairly Priced"
        assert result.signal_strength == "Neutral"
        assert result.confidence == "medium"

    def test_model_price_is_clamped_low(self):
        result = blend(3, "pop", VectorScores(core_ai_score=0, news_score=-100, momentum_score=-100))

        assert result.model_price == 1
        assert 0 <= result.final_probability <= 100

    def test_blend_is_pure(self):
        vectors = VectorScores(core_ai_score=64, news_score=-20, momentum_score=35)

        assert blend(58, "sports", vectors) == blend(58, "sports", vectors)

    @pytest.mark.parametrize("market", [0, 1, 10, 50, 90, 99, 100])
    @pytest.mark.parametrize("core", [0, 30, 70, 100])
    def test_final_probability_bounded(self, market, core):
        result = blend(market, "other", VectorScores(core_ai_score=core, news_score=100, momentum_score=-100))
        assert 0 <= result.final_probability <= 100

    def test_vector_breakdown_carries_weights(self):
        result = blend(40, "politics", VectorScores(core_ai_score=55, news_score=40, momentum_score=-20))

        assert result.vectors.news.weight == 0.25
        assert result.vectors.news.contribution == pytest.approx(10.0)
        assert result.vectors.momentum.contribution == pytest.approx(-1.0)
        assert result.vectors.core.score == 55


class TestExplain:
    def test_note_mentions_values_and_reasoning(self):
        result = blend(50, "crypto", VectorScores(core_ai_score=70, news_score=80, momentum_score=0))

        note = explain(50, result, "ETF inflows accelerating")

        assert note.startswith("AI Fair Value: 94% (Market: 50%).")
        assert "High conviction" in note
        assert "Opportunity detected" in note
        assert note.endswith("(Core: ETF inflows accelerating)")

    def test_low_conviction_overvalued_note(self):
        result = blend(95, "other", VectorScores(core_ai_score=20, news_score=0, momentum_score=0))

        note = explain(95, result)

        assert "Low conviction" in note
        assert "Caution advised" in note
