"""Scoring engine for prediction-market items.

Two strategies are supported and selected by name:

    fixed_v1:
        confidence = 0.35*volume + 0.25*drift + 0.20*urgency_days
                   + 0.15*liquidity + 0.05*trend_input
        trend_score = trend_input (passed through)

    weighted_v2:
        confidence = w1*liquidity + w2*volume + w3*drift + w4*social
                   + w5*decay_hours
        trend_score = 0.5*drift + 0.5*social

Every term is normalized to [0, 1] before weighting and the result is
clamped to [0, 1]. Scoring is pure: the same item and `now` always give the
same score.
"""

import math
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from marketfeed.config.schemas.ranking import (
    WEIGHT_SUM_TOLERANCE,
    ScoringStrategyName,
    ScoringWeights,
)
from marketfeed.ranker.constants import (
    ALGORITHM_VERSIONS,
    DECAY_HOURS_SCALE,
    DRIFT_SATURATION,
    FIXED_V1_COEFFICIENTS,
    LIQUIDITY_SIGMOID_K,
    LIQUIDITY_SIGMOID_MIDPOINT,
    LOG_SCALE_DIVISOR,
    SOCIAL_SATURATION,
    TREND_DRIFT_WEIGHT,
    TREND_SOCIAL_WEIGHT,
    URGENCY_DAYS_SCALE,
)
from marketfeed.ranker.models import Score, ScoreComponents, ScoredItem
from marketfeed.store.models import MarketItem


logger = structlog.get_logger()


def _sanitize(value: float | None) -> float:
    """Map None and NaN to 0 and negatives to 0; infinities pass through."""
    if value is None or math.isnan(value):
        return 0.0
    return max(value, 0.0)


def clamp01(value: float) -> float:
    """Clamp a value to [0, 1]; NaN maps to 0."""
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def volume_norm(volume: float | None) -> float:
    """Log-compress volume so ~1M saturates at 1."""
    return clamp01(math.log10(_sanitize(volume) + 1) / LOG_SCALE_DIVISOR)


def liquidity_sigmoid(liquidity: float | None) -> float:
    """Logistic liquidity score centred on 10k; no liquidity scores 0."""
    value = _sanitize(liquidity)
    if value == 0.0:
        return 0.0
    exponent = -LIQUIDITY_SIGMOID_K * (value - LIQUIDITY_SIGMOID_MIDPOINT)
    return clamp01(1.0 / (1.0 + math.exp(exponent)))


def drift_norm(price_change: float | None) -> float:
    """Absolute 24h price change; a 20-point move saturates."""
    if price_change is None or math.isnan(price_change):
        return 0.0
    return clamp01(abs(price_change) / DRIFT_SATURATION)


def social_norm(mention_score: float | None) -> float:
    """Mention score; 100 saturates."""
    return clamp01(_sanitize(mention_score) / SOCIAL_SATURATION)


def time_urgency_days(end_date: datetime | None, now: datetime) -> float:
    """Day-based urgency exp(-days/30).

    Ended markets are evaluated at days=0, the end of the curve, so the
    term never exceeds 1. Markets without an end date score 0.
    """
    if end_date is None:
        return 0.0
    days = (end_date - now).total_seconds() / 86400
    return clamp01(math.exp(-max(days, 0.0) / URGENCY_DAYS_SCALE))


def time_decay_hours(end_date: datetime | None, now: datetime) -> float:
    """Hour-based decay exp(-hours/720); ended markets score exactly 0."""
    if end_date is None:
        return 0.0
    hours = (end_date - now).total_seconds() / 3600
    if hours <= 0:
        return 0.0
    return clamp01(math.exp(-hours / DECAY_HOURS_SCALE))


def score_fixed_v1(item: MarketItem, now: datetime) -> Score:
    """Score an item with the fixed-coefficient v1 blend.

    Args:
        item: Item to score.
        now: Reference time.

    Returns:
        Score whose trend_score is the item's stored trend score.
    """
    trend_input = clamp01(_sanitize(item.trend_score))
    components = ScoreComponents(
        liquidity=liquidity_sigmoid(item.liquidity),
        volume=volume_norm(item.volume),
        drift=drift_norm(item.price_change_24h),
        social=social_norm(item.mention_score),
        time=time_urgency_days(item.end_date, now),
        trend_input=trend_input,
    )
    c = FIXED_V1_COEFFICIENTS
    confidence = clamp01(
        c["volume"] * components.volume
        + c["drift"] * components.drift
        + c["time"] * components.time
        + c["liquidity"] * components.liquidity
        + c["trend_input"] * trend_input
    )
    return Score(confidence=confidence, trend_score=trend_input, components=components)


def score_weighted_v2(
    item: MarketItem, weights: ScoringWeights, now: datetime
) -> Score:
    """Score an item with the configurable five-weight v2 blend.

    Args:
        item: Item to score.
        weights: Validated weights.
        now: Reference time.

    Returns:
        Score with a computed trend_score.
    """
    components = ScoreComponents(
        liquidity=liquidity_sigmoid(item.liquidity),
        volume=volume_norm(item.volume),
        drift=drift_norm(item.price_change_24h),
        social=social_norm(item.mention_score),
        time=time_decay_hours(item.end_date, now),
    )
    confidence = clamp01(
        weights.w1_liquidity * components.liquidity
        + weights.w2_volume * components.volume
        + weights.w3_drift * components.drift
        + weights.w4_social * components.social
        + weights.w5_time * components.time
    )
    trend_score = clamp01(
        TREND_DRIFT_WEIGHT * components.drift + TREND_SOCIAL_WEIGHT * components.social
    )
    return Score(confidence=confidence, trend_score=trend_score, components=components)


def validate_weights(weights: ScoringWeights | dict[str, float]) -> bool:
    """Check that five weights sum to 1 within tolerance.

    Args:
        weights: Weights model or a mapping of the five weight values.

    Returns:
        True iff |sum - 1| < 0.001.
    """
    total = (
        weights.total
        if isinstance(weights, ScoringWeights)
        else sum(float(v) for v in weights.values())
    )
    return abs(total - 1.0) < WEIGHT_SUM_TOLERANCE


_FORMULAS: dict[ScoringStrategyName, tuple[str, str]] = {
    ScoringStrategyName.FIXED_V1: (
        "Fixed-coefficient blend with day-based urgency",
        "confidence = 0.35*volNorm + 0.25*driftNorm + 0.20*timeUrgency"
        " + 0.15*liquiditySigmoid + 0.05*trendInput",
    ),
    ScoringStrategyName.WEIGHTED_V2: (
        "Multi-factor ranking algorithm for prediction markets",
        "confidence = w1*liquiditySigmoid + w2*volNorm + w3*driftNorm"
        " + w4*socialNorm + w5*timeDecay",
    ),
}


def get_algorithm_info(
    strategy: ScoringStrategyName, weights: ScoringWeights
) -> dict[str, object]:
    """Describe a scoring strategy for admin surfaces.

    Args:
        strategy: Strategy to describe.
        weights: Weights in effect (only used by weighted_v2).

    Returns:
        Dictionary with strategy, version, weights, description and formula.
    """
    description, formula = _FORMULAS[strategy]
    return {
        "strategy": strategy.value,
        "version": ALGORITHM_VERSIONS[strategy.value],
        "weights": (
            weights.model_dump()
            if strategy is ScoringStrategyName.WEIGHTED_V2
            else dict(FIXED_V1_COEFFICIENTS)
        ),
        "description": description,
        "formula": formula,
    }


class MarketScorer:
    """Scores items with one strategy and one immutable weight snapshot."""

    def __init__(
        self,
        strategy: ScoringStrategyName = ScoringStrategyName.WEIGHTED_V2,
        weights: ScoringWeights | None = None,
        now: datetime | None = None,
    ) -> None:
        """Initialize the scorer.

        Args:
            strategy: Scoring strategy to use.
            weights: Weights for weighted_v2 (default weights when omitted).
            now: Reference time (default: current UTC time).
        """
        self._strategy = strategy
        self._weights = weights or ScoringWeights()
        self._now = now or datetime.now(UTC)
        self._score_fn: Callable[[MarketItem], Score]
        if strategy is ScoringStrategyName.FIXED_V1:
            self._score_fn = lambda item: score_fixed_v1(item, self._now)
        else:
            self._score_fn = lambda item: score_weighted_v2(
                item, self._weights, self._now
            )
        self._log = logger.bind(
            component="ranker",
            subcomponent="scorer",
            strategy=strategy.value,
        )

    @property
    def strategy(self) -> ScoringStrategyName:
        """Strategy in use."""
        return self._strategy

    @property
    def now(self) -> datetime:
        """Reference time used for time terms."""
        return self._now

    def score(self, item: MarketItem) -> Score:
        """Score a single item.

        Args:
            item: Item to score.

        Returns:
            Computed score.
        """
        return self._score_fn(item)

    def score_items(self, items: list[MarketItem]) -> list[ScoredItem]:
        """Score multiple items.

        Args:
            items: Items to score.

        Returns:
            ScoredItem per input item, in input order.
        """
        scored = [ScoredItem(item=item, score=self.score(item)) for item in items]

        self._log.info(
            "scoring_complete",
            items_scored=len(scored),
            min_score=min((s.confidence for s in scored), default=0.0),
            max_score=max((s.confidence for s in scored), default=0.0),
        )

        return scored

    def algorithm_info(self) -> dict[str, object]:
        """Describe the strategy and weights in use."""
        return get_algorithm_info(self._strategy, self._weights)
