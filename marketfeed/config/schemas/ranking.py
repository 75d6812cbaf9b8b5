"""Ranking configuration schema."""

import random
from enum import Enum
from typing import Annotated

from pydantic import Field, model_validator

from marketfeed.data_model import StrictBaseModel


# Weight sums within this distance of 1.0 are accepted as-is.
WEIGHT_SUM_TOLERANCE = 0.001


class ScoringStrategyName(str, Enum):
    """Available scoring strategies.

    - FIXED_V1: fixed-coefficient blend with day-based urgency.
    - WEIGHTED_V2: configurable five-weight blend with hour-based decay.
    """

    FIXED_V1 = "fixed_v1"
    WEIGHTED_V2 = "weighted_v2"


class ScoringWeights(StrictBaseModel):
    """Weights for the weighted_v2 scoring strategy.

    Attributes:
        w1_liquidity: Weight on the liquidity sigmoid.
        w2_volume: Weight on normalized volume.
        w3_drift: Weight on 24h price drift.
        w4_social: Weight on social mentions.
        w5_time: Weight on time decay until resolution.
    """

    w1_liquidity: Annotated[float, Field(ge=0.0, le=1.0)] = 0.28
    w2_volume: Annotated[float, Field(ge=0.0, le=1.0)] = 0.22
    w3_drift: Annotated[float, Field(ge=0.0, le=1.0)] = 0.16
    w4_social: Annotated[float, Field(ge=0.0, le=1.0)] = 0.24
    w5_time: Annotated[float, Field(ge=0.0, le=1.0)] = 0.10

    @property
    def total(self) -> float:
        """Sum of all five weights."""
        return (
            self.w1_liquidity
            + self.w2_volume
            + self.w3_drift
            + self.w4_social
            + self.w5_time
        )

    @model_validator(mode="after")
    def validate_sum(self) -> "ScoringWeights":
        """Reject weights that do not sum to 1."""
        if abs(self.total - 1.0) >= WEIGHT_SUM_TOLERANCE:
            msg = f"Weights must sum to 1.0 (got {self.total:.4f})"
            raise ValueError(msg)
        return self


class RetryPolicy(StrictBaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt)
    """

    max_retries: Annotated[int, Field(ge=0, le=10)] = 3
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 100
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 2000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1

    def should_retry(self, attempt: int) -> bool:
        """Determine if another attempt is allowed.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            True if the operation should be retried.
        """
        return attempt < self.max_retries

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay_ms)

        # Add jitter to prevent thundering herd
        jitter = delay * self.jitter_factor * random.random()  # noqa: S311
        return int(delay + jitter)


class CacheConfig(StrictBaseModel):
    """RankedSet cache configuration.

    Attributes:
        top_k: Maximum members kept in the top-K set.
        top_k_ttl_seconds: Lifetime of a published top-K set.
        diversity_ttl_seconds: Upper bound on the diversity set lifetime.
        diversity_window: Accepts per window before categories may repeat.
        diversity_source_size: Top-K prefix considered by the sampler.
        retired_grace_seconds: Grace lifetime of a replaced generation.
        key_prefix: Prefix for all fast-store keys.
    """

    top_k: Annotated[int, Field(ge=1, le=100000)] = 1000
    top_k_ttl_seconds: Annotated[int, Field(ge=1)] = 3600
    diversity_ttl_seconds: Annotated[int, Field(ge=1)] = 1800
    diversity_window: Annotated[int, Field(ge=1, le=100)] = 5
    diversity_source_size: Annotated[int, Field(ge=1, le=10000)] = 100
    retired_grace_seconds: Annotated[int, Field(ge=1, le=3600)] = 60
    key_prefix: Annotated[str, Field(min_length=1, pattern=r"^[A-Za-z0-9_.-]+$")] = (
        "feed"
    )


class FeedConfig(StrictBaseModel):
    """Paginated feed configuration.

    Attributes:
        default_page_size: Page size when the caller gives none.
        max_page_size: Largest page size accepted.
        trending_min_confidence: Confidence a trending item must exceed.
        trending_min_trend_score: Trend score a trending item must exceed.
    """

    default_page_size: Annotated[int, Field(ge=1)] = 5
    max_page_size: Annotated[int, Field(ge=1, le=200)] = 20
    trending_min_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = 0.7
    trending_min_trend_score: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5

    @model_validator(mode="after")
    def validate_default_within_max(self) -> "FeedConfig":
        """Ensure the default page size is itself a valid limit."""
        if self.default_page_size > self.max_page_size:
            msg = "default_page_size must not exceed max_page_size"
            raise ValueError(msg)
        return self


class RebuildConfig(StrictBaseModel):
    """Rebuild scheduling and execution configuration.

    Attributes:
        timeout_seconds: Deadline for a single rebuild.
        interval_seconds: Safety-net schedule interval.
        min_interval_seconds: Minimum gap after a completed rebuild; earlier
            triggers are deferred until it elapses.
        persist_batch_size: Scores written per item-store batch.
        max_workers: Rebuild worker threads.
        lease_margin_seconds: Extra lease lifetime beyond the timeout.
        retry: Retry policy for transient store failures.
    """

    timeout_seconds: Annotated[float, Field(gt=0.0)] = 300.0
    interval_seconds: Annotated[int, Field(ge=1)] = 900
    min_interval_seconds: Annotated[float, Field(ge=0.0)] = 1.0
    persist_batch_size: Annotated[int, Field(ge=1, le=10000)] = 200
    max_workers: Annotated[int, Field(ge=1, le=32)] = 2
    lease_margin_seconds: Annotated[int, Field(ge=0)] = 30
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class RankingConfig(StrictBaseModel):
    """Root configuration for ranking.yaml.

    Attributes:
        version: Schema version.
        strategy: Active scoring strategy.
        weights: Weights for the weighted strategy.
        cache: RankedSet cache configuration.
        feed: Paginated feed configuration.
        rebuild: Rebuild configuration.
        segments: Segments rebuilt by the scheduler.
    """

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    strategy: ScoringStrategyName = ScoringStrategyName.WEIGHTED_V2
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    rebuild: RebuildConfig = Field(default_factory=RebuildConfig)
    segments: list[str] = Field(default_factory=lambda: ["default"], min_length=1)

    @model_validator(mode="after")
    def validate_segments(self) -> "RankingConfig":
        """Ensure segment names are non-empty and unique."""
        for segment in self.segments:
            if not segment.strip() or ":" in segment:
                msg = f"Invalid segment name: {segment!r}"
                raise ValueError(msg)
        if len(set(self.segments)) != len(self.segments):
            msg = "Segment names must be unique"
            raise ValueError(msg)
        return self
