"""Unit tests for the market scorer."""

import math
from datetime import timedelta

import pytest
from pydantic import ValidationError

from marketfeed.config.schemas.ranking import ScoringStrategyName, ScoringWeights
from marketfeed.ranker.scorer import (
    MarketScorer,
    clamp01,
    drift_norm,
    get_algorithm_info,
    liquidity_sigmoid,
    score_fixed_v1,
    score_weighted_v2,
    social_norm,
    time_decay_hours,
    time_urgency_days,
    validate_weights,
    volume_norm,
)
from marketfeed.store.models import MarketItem, MarketSource
from tests.helpers.time import FIXED_NOW


def _make_item(external_id: str = "m1", **kwargs: object) -> MarketItem:
    """Create a market item with neutral signals."""
    return MarketItem(
        item_id=f"mock:{external_id}",
        source=MarketSource.MOCK,
        external_id=external_id,
        question=f"Question {external_id}?",
        content_hash="0" * 16,
        **kwargs,  # type: ignore[arg-type]
    )


class TestNormalizers:
    """Tests for the per-signal normalizers."""

    @pytest.mark.unit
    def test_clamp01(self) -> None:
        """Test values are clamped to the unit interval."""
        assert clamp01(-0.5) == 0.0
        assert clamp01(0.3) == 0.3
        assert clamp01(7.0) == 1.0
        assert clamp01(float("nan")) == 0.0

    @pytest.mark.unit
    def test_volume_saturates_near_one_million(self) -> None:
        """Test log-normalized volume reaches 1 around 1M."""
        assert volume_norm(0.0) == 0.0
        assert volume_norm(999_999.0) == pytest.approx(1.0)
        assert volume_norm(1e12) == 1.0
        assert volume_norm(-50.0) == 0.0

    @pytest.mark.unit
    def test_liquidity_sigmoid(self) -> None:
        """Test sigmoid is centred at 10k and zero without liquidity."""
        assert liquidity_sigmoid(0.0) == 0.0
        assert liquidity_sigmoid(-10.0) == 0.0
        assert liquidity_sigmoid(10_000.0) == pytest.approx(0.5)
        assert liquidity_sigmoid(100_000.0) == pytest.approx(1.0)

    @pytest.mark.unit
    def test_drift_uses_absolute_change(self) -> None:
        """Test drift is symmetric and saturates at 20 points."""
        assert drift_norm(-10.0) == pytest.approx(0.5)
        assert drift_norm(10.0) == pytest.approx(0.5)
        assert drift_norm(40.0) == 1.0
        assert drift_norm(None) == 0.0

    @pytest.mark.unit
    def test_social_norm(self) -> None:
        """Test mention score saturates at 100."""
        assert social_norm(50.0) == pytest.approx(0.5)
        assert social_norm(500.0) == 1.0
        assert social_norm(None) == 0.0


class TestTimeTerms:
    """Tests for urgency and decay terms."""

    @pytest.mark.unit
    def test_urgency_without_end_date_is_zero(self) -> None:
        """Test missing end date scores zero."""
        assert time_urgency_days(None, FIXED_NOW) == 0.0

    @pytest.mark.unit
    def test_urgency_thirty_days_out(self) -> None:
        """Test urgency is exp(-1) thirty days before resolution."""
        end = FIXED_NOW + timedelta(days=30)
        assert time_urgency_days(end, FIXED_NOW) == pytest.approx(math.exp(-1))

    @pytest.mark.unit
    def test_urgency_of_ended_market_is_capped(self) -> None:
        """Test ended markets do not exceed the top of the curve."""
        end = FIXED_NOW - timedelta(days=3)
        assert time_urgency_days(end, FIXED_NOW) == 1.0

    @pytest.mark.unit
    def test_decay_of_ended_market_is_zero(self) -> None:
        """Test ended markets have no decay contribution."""
        assert time_decay_hours(FIXED_NOW, FIXED_NOW) == 0.0
        assert time_decay_hours(FIXED_NOW - timedelta(hours=1), FIXED_NOW) == 0.0
        assert time_decay_hours(None, FIXED_NOW) == 0.0

    @pytest.mark.unit
    def test_decay_thirty_days_out(self) -> None:
        """Test decay is exp(-1) 720 hours before resolution."""
        end = FIXED_NOW + timedelta(hours=720)
        assert time_decay_hours(end, FIXED_NOW) == pytest.approx(math.exp(-1))


class TestWeightedV2:
    """Tests for the weighted_v2 strategy."""

    @pytest.mark.unit
    def test_empty_signals_score_zero(self) -> None:
        """Test an item with no signals scores zero."""
        score = score_weighted_v2(_make_item(), ScoringWeights(), FIXED_NOW)

        assert score.confidence == 0.0
        assert score.trend_score == 0.0

    @pytest.mark.unit
    def test_liquidity_weight_applies(self) -> None:
        """Test confidence uses w1 times the liquidity sigmoid."""
        item = _make_item(liquidity=10_000.0)
        score = score_weighted_v2(item, ScoringWeights(), FIXED_NOW)

        assert score.confidence == pytest.approx(0.28 * 0.5)
        assert score.components.liquidity == pytest.approx(0.5)

    @pytest.mark.unit
    def test_trend_blends_drift_and_social(self) -> None:
        """Test trend score averages drift and social terms."""
        item = _make_item(price_change_24h=-10.0, mention_score=100.0)
        score = score_weighted_v2(item, ScoringWeights(), FIXED_NOW)

        assert score.trend_score == pytest.approx(0.75)

    @pytest.mark.unit
    def test_scores_bounded_for_extreme_inputs(self) -> None:
        """Test extreme and NaN signals stay inside [0, 1]."""
        item = _make_item(
            volume=float("inf"),
            liquidity=float("nan"),
            price_change_24h=-1e9,
            mention_score=1e9,
            end_date=FIXED_NOW + timedelta(minutes=1),
        )
        score = score_weighted_v2(item, ScoringWeights(), FIXED_NOW)

        assert 0.0 <= score.confidence <= 1.0
        assert 0.0 <= score.trend_score <= 1.0

    @pytest.mark.unit
    def test_custom_weights_change_ranking(self) -> None:
        """Test weights shift which item ranks higher."""
        liquid = _make_item("liquid", liquidity=50_000.0)
        social = _make_item("social", mention_score=100.0)
        liquidity_heavy = ScoringWeights(
            w1_liquidity=0.8,
            w2_volume=0.05,
            w3_drift=0.05,
            w4_social=0.05,
            w5_time=0.05,
        )

        default_scores = (
            score_weighted_v2(liquid, ScoringWeights(), FIXED_NOW).confidence,
            score_weighted_v2(social, ScoringWeights(), FIXED_NOW).confidence,
        )
        heavy_scores = (
            score_weighted_v2(liquid, liquidity_heavy, FIXED_NOW).confidence,
            score_weighted_v2(social, liquidity_heavy, FIXED_NOW).confidence,
        )

        assert heavy_scores[0] > heavy_scores[1]
        assert heavy_scores[0] - heavy_scores[1] > default_scores[0] - default_scores[1]


class TestFixedV1:
    """Tests for the fixed_v1 strategy."""

    @pytest.mark.unit
    def test_trend_input_passes_through(self) -> None:
        """Test the stored trend score is carried and weighted by 0.05."""
        item = _make_item(trend_score=0.8)
        score = score_fixed_v1(item, FIXED_NOW)

        assert score.trend_score == pytest.approx(0.8)
        assert score.confidence == pytest.approx(0.05 * 0.8)

    @pytest.mark.unit
    def test_ended_market_uses_full_urgency(self) -> None:
        """Test an ended market contributes the full urgency coefficient."""
        item = _make_item(end_date=FIXED_NOW - timedelta(days=1))
        score = score_fixed_v1(item, FIXED_NOW)

        assert score.confidence == pytest.approx(0.20)

    @pytest.mark.unit
    def test_volume_coefficient(self) -> None:
        """Test saturated volume contributes 0.35."""
        item = _make_item(volume=1e9)
        assert score_fixed_v1(item, FIXED_NOW).confidence == pytest.approx(0.35)


@pytest.mark.parametrize(
    "strategy", [ScoringStrategyName.FIXED_V1, ScoringStrategyName.WEIGHTED_V2]
)
class TestRankingProperties:
    """Ordering properties that hold under every strategy."""

    @pytest.mark.unit
    def test_active_liquid_market_beats_quiet_one(
        self, strategy: ScoringStrategyName
    ) -> None:
        """Test a large, liquid, moving market near resolution ranks first."""
        active = _make_item(
            "a",
            volume=1_000_000.0,
            end_date=FIXED_NOW + timedelta(days=1),
            liquidity=50_000.0,
            price_change_24h=10.0,
        )
        quiet = _make_item(
            "b",
            volume=1000.0,
            end_date=FIXED_NOW + timedelta(days=30),
            liquidity=1000.0,
            price_change_24h=0.0,
        )
        scorer = MarketScorer(strategy, now=FIXED_NOW)

        assert scorer.score(active).confidence > scorer.score(quiet).confidence

    @pytest.mark.unit
    def test_more_volume_never_lowers_confidence(
        self, strategy: ScoringStrategyName
    ) -> None:
        """Test confidence is non-decreasing in volume."""
        scorer = MarketScorer(strategy, now=FIXED_NOW)
        confidences = [
            scorer.score(
                _make_item(
                    volume=volume,
                    liquidity=2000.0,
                    price_change_24h=3.0,
                    mention_score=20.0,
                    end_date=FIXED_NOW + timedelta(days=7),
                )
            ).confidence
            for volume in (0.0, 10.0, 1e3, 1e5, 1e6, 1e9)
        ]

        assert confidences == sorted(confidences)
        assert confidences[-1] > confidences[0]

    @pytest.mark.unit
    def test_sooner_resolution_is_more_urgent(
        self, strategy: ScoringStrategyName
    ) -> None:
        """Test a market ending in 1 day outranks one ending in 30 days."""
        scorer = MarketScorer(strategy, now=FIXED_NOW)
        soon = scorer.score(
            _make_item(volume=500.0, end_date=FIXED_NOW + timedelta(days=1))
        )
        later = scorer.score(
            _make_item(volume=500.0, end_date=FIXED_NOW + timedelta(days=30))
        )

        assert soon.components.time > later.components.time
        assert soon.confidence > later.confidence


class TestWeights:
    """Tests for weight validation."""

    @pytest.mark.unit
    def test_defaults_sum_to_one(self) -> None:
        """Test default weights are valid."""
        weights = ScoringWeights()
        assert weights.total == pytest.approx(1.0)
        assert validate_weights(weights)

    @pytest.mark.unit
    def test_invalid_sum_rejected(self) -> None:
        """Test weights that do not sum to 1 are rejected."""
        with pytest.raises(ValidationError, match="sum to 1.0"):
            ScoringWeights(w1_liquidity=0.5)

    @pytest.mark.unit
    def test_sum_just_under_one_rejected(self) -> None:
        """Test a set summing to 0.99 is rejected, not renormalized."""
        values = {
            "w1_liquidity": 0.28,
            "w2_volume": 0.22,
            "w3_drift": 0.16,
            "w4_social": 0.24,
            "w5_time": 0.09,
        }

        assert not validate_weights(values)
        with pytest.raises(ValidationError, match="sum to 1.0"):
            ScoringWeights(**values)

    @pytest.mark.unit
    def test_validate_weights_mapping(self) -> None:
        """Test validation of raw weight mappings."""
        assert validate_weights({"a": 0.5, "b": 0.4995})
        assert not validate_weights({"a": 0.5, "b": 0.49})


class TestMarketScorer:
    """Tests for MarketScorer."""

    @pytest.mark.unit
    def test_scoring_is_deterministic(self) -> None:
        """Test the same item and time give the same score."""
        item = _make_item(volume=1234.0, liquidity=5000.0, mention_score=12.0)
        scorer = MarketScorer(now=FIXED_NOW)

        assert scorer.score(item) == scorer.score(item)
        assert MarketScorer(now=FIXED_NOW).score(item) == scorer.score(item)

    @pytest.mark.unit
    def test_score_items_preserves_order(self) -> None:
        """Test scored items come back in input order."""
        items = [_make_item(f"m{i}", volume=10.0**i) for i in range(4)]
        scored = MarketScorer(now=FIXED_NOW).score_items(items)

        assert [s.item_id for s in scored] == [item.item_id for item in items]
        assert scored[3].confidence > scored[0].confidence

    @pytest.mark.unit
    def test_strategy_selection(self) -> None:
        """Test the scorer dispatches to the configured strategy."""
        item = _make_item(trend_score=1.0)
        v1 = MarketScorer(ScoringStrategyName.FIXED_V1, now=FIXED_NOW)
        v2 = MarketScorer(ScoringStrategyName.WEIGHTED_V2, now=FIXED_NOW)

        assert v1.score(item).confidence == pytest.approx(0.05)
        assert v2.score(item).confidence == 0.0
        assert v1.strategy is ScoringStrategyName.FIXED_V1

    @pytest.mark.unit
    def test_algorithm_info(self) -> None:
        """Test algorithm info describes strategy and weights."""
        info = get_algorithm_info(ScoringStrategyName.WEIGHTED_V2, ScoringWeights())

        assert info["strategy"] == "weighted_v2"
        assert info["version"] == "2.0.0"
        assert info["weights"] == ScoringWeights().model_dump()
        assert "w1*liquiditySigmoid" in str(info["formula"])

        v1_info = MarketScorer(ScoringStrategyName.FIXED_V1).algorithm_info()
        assert v1_info["version"] == "1.0.0"
        assert v1_info["weights"]["volume"] == 0.35  # type: ignore[index]
