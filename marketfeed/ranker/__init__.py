"""Market ranker: scoring, top-K selection and diversity sampling."""

from marketfeed.ranker.diversity import DiversitySampler, diversity_walk
from marketfeed.ranker.metrics import RankerMetrics
from marketfeed.ranker.models import (
    DiversityResult,
    RankedSetKind,
    RankedSetMeta,
    Score,
    ScoreComponents,
    ScoredItem,
)
from marketfeed.ranker.ranked_set import RankedSetRepository
from marketfeed.ranker.scorer import (
    MarketScorer,
    get_algorithm_info,
    score_fixed_v1,
    score_weighted_v2,
    validate_weights,
)
from marketfeed.ranker.topk import TopKCacheBuilder, select_top_k


__all__ = [
    "DiversityResult",
    "DiversitySampler",
    "MarketScorer",
    "RankedSetKind",
    "RankedSetMeta",
    "RankedSetRepository",
    "RankerMetrics",
    "Score",
    "ScoreComponents",
    "ScoredItem",
    "TopKCacheBuilder",
    "diversity_walk",
    "get_algorithm_info",
    "score_fixed_v1",
    "score_weighted_v2",
    "select_top_k",
    "validate_weights",
]
