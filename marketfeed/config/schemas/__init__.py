"""Configuration schemas."""

from marketfeed.config.schemas.ranking import (
    CacheConfig,
    FeedConfig,
    RankingConfig,
    RebuildConfig,
    RetryPolicy,
    ScoringStrategyName,
    ScoringWeights,
)


__all__ = [
    "CacheConfig",
    "FeedConfig",
    "RankingConfig",
    "RebuildConfig",
    "RetryPolicy",
    "ScoringStrategyName",
    "ScoringWeights",
]
