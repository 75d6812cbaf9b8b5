"""Top-K RankedSet builder."""

import time

import structlog

from marketfeed.config.schemas.ranking import CacheConfig
from marketfeed.ranker.metrics import RankerMetrics
from marketfeed.ranker.models import RankedSetKind, RankedSetMeta, ScoredItem
from marketfeed.ranker.ranked_set import RankedSetRepository


logger = structlog.get_logger()


def select_top_k(scored: list[ScoredItem], top_k: int) -> list[ScoredItem]:
    """Order scored items by confidence and keep the best `top_k`.

    Ties are broken by item_id, descending, which is the order a sorted-set
    store serves equal scores in reverse rank. Build order and served order
    therefore agree.

    Args:
        scored: Scored items.
        top_k: Maximum number of items to keep.

    Returns:
        Up to `top_k` items, best first.
    """
    ordered = sorted(scored, key=lambda s: (s.confidence, s.item_id), reverse=True)
    return ordered[:top_k]


class TopKCacheBuilder:
    """Builds and publishes the top-K RankedSet for a segment."""

    def __init__(
        self, repository: RankedSetRepository, cache_config: CacheConfig
    ) -> None:
        """Initialize the builder.

        Args:
            repository: RankedSet repository to publish through.
            cache_config: top_k and TTL settings.
        """
        self._repository = repository
        self._config = cache_config
        self._metrics = RankerMetrics.get_instance()
        self._log = logger.bind(component="ranker", subcomponent="topk")

    def build(self, segment: str, scored: list[ScoredItem]) -> RankedSetMeta:
        """Select and atomically publish the top-K set.

        Args:
            segment: Segment name.
            scored: Every scored eligible item of the segment.

        Returns:
            Metadata of the published generation.
        """
        start = time.perf_counter()
        top = select_top_k(scored, self._config.top_k)
        members = [(s.item_id, s.confidence) for s in top]

        meta = self._repository.publish(
            segment,
            RankedSetKind.TOP,
            members,
            self._config.top_k_ttl_seconds,
        )

        duration_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_topk_published(len(scored), len(top), duration_ms)
        self._log.info(
            "topk_published",
            segment=segment,
            items_in=len(scored),
            items_out=len(top),
            generation=meta.generation,
            duration_ms=round(duration_ms, 2),
        )
        return meta
