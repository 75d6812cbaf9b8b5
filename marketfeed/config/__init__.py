"""Ranking configuration: schemas, loader and live holder."""

from marketfeed.config.holder import ConfigHolder
from marketfeed.config.loader import LoadedConfig, load_ranking_config
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
    "ConfigHolder",
    "FeedConfig",
    "LoadedConfig",
    "RankingConfig",
    "RebuildConfig",
    "RetryPolicy",
    "ScoringStrategyName",
    "ScoringWeights",
    "load_ranking_config",
]
