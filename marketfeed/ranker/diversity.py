"""Category diversity sampling over the top-K RankedSet.

The walk is greedy and single-pass: it keeps global rank order and only
prevents a category from repeating inside a block of `window` accepted
items. Blocks are aligned to accept counts, so a category accepted last in
one block may open the next. This is a local heuristic, not a global
diversity optimum.
"""

import time
from collections import Counter

import structlog

from marketfeed.config.schemas.ranking import CacheConfig
from marketfeed.ranker.metrics import RankerMetrics
from marketfeed.ranker.models import DiversityResult, RankedSetKind, RankedSetMeta
from marketfeed.ranker.ranked_set import RankedSetRepository
from marketfeed.store.models import DEFAULT_CATEGORY
from marketfeed.store.store import ItemStore


logger = structlog.get_logger()


def diversity_walk(candidates: list[tuple[str, str]], window: int) -> list[str]:
    """Greedily pick items so categories do not repeat within a window.

    An item is accepted if its category is unused in the current window or
    fewer than `window` items have been accepted overall. Every `window`
    accepts the used-category set is cleared.

    Args:
        candidates: (item_id, category) pairs in rank order.
        window: Accepts per window.

    Returns:
        Accepted item IDs in walk order.
    """
    accepted: list[str] = []
    used: set[str] = set()

    for item_id, category in candidates:
        if category in used and len(accepted) >= window:
            continue
        accepted.append(item_id)
        used.add(category)
        if len(accepted) % window == 0:
            used.clear()

    return accepted


class DiversitySampler:
    """Derives the diversity RankedSet from the live top-K set."""

    def __init__(
        self,
        repository: RankedSetRepository,
        item_store: ItemStore,
        cache_config: CacheConfig,
    ) -> None:
        """Initialize the sampler.

        Args:
            repository: RankedSet repository.
            item_store: Item store used to resolve categories.
            cache_config: Window, source size and TTL settings.
        """
        self._repository = repository
        self._item_store = item_store
        self._config = cache_config
        self._metrics = RankerMetrics.get_instance()
        self._log = logger.bind(component="ranker", subcomponent="diversity")

    def sample(
        self, segment: str, top_meta: RankedSetMeta | None = None
    ) -> DiversityResult:
        """Sample and publish the diversity set for a segment.

        Args:
            segment: Segment name.
            top_meta: Top-K generation to sample from (default: the live one).

        Returns:
            DiversityResult; empty with score 0 when there is no top-K set.

        Raises:
            TransientStoreError: If either store is unavailable.
        """
        start = time.perf_counter()
        if top_meta is None:
            top_meta = self._repository.get_meta(segment, RankedSetKind.TOP)

        if top_meta is None:
            self._log.info("diversity_skipped_no_topk", segment=segment)
            return DiversityResult(segment=segment)

        ttl = min(
            self._config.diversity_ttl_seconds,
            self._repository.remaining_ttl_seconds(top_meta),
        )
        if ttl <= 0:
            self._log.info(
                "diversity_skipped_topk_expired",
                segment=segment,
                top_generation=top_meta.generation,
            )
            return DiversityResult(segment=segment)

        entries = self._repository.read_range(
            top_meta, 0, self._config.diversity_source_size - 1
        )
        ids = [item_id for item_id, _ in entries]
        categories = self._item_store.get_categories(ids) if ids else {}
        candidates = [(i, categories.get(i, DEFAULT_CATEGORY)) for i in ids]

        accepted = diversity_walk(candidates, self._config.diversity_window)
        members = [
            (item_id, float(position)) for position, item_id in enumerate(accepted)
        ]

        meta = self._repository.publish(
            segment,
            RankedSetKind.DIVERSITY,
            members,
            ttl,
            source_generation=top_meta.generation,
        )

        considered = len(candidates)
        diversity_score = len(accepted) / considered if considered else 0.0
        accepted_set = set(accepted)
        category_counts = Counter(c for i, c in candidates if i in accepted_set)

        duration_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_diversity(diversity_score, duration_ms)
        self._log.info(
            "diversity_published",
            segment=segment,
            considered=considered,
            sampled=len(accepted),
            diversity_score=round(diversity_score, 4),
            generation=meta.generation,
            source_generation=top_meta.generation,
            ttl_seconds=ttl,
        )

        return DiversityResult(
            segment=segment,
            considered=considered,
            sampled=len(accepted),
            diversity_score=diversity_score,
            meta=meta,
            category_counts=dict(category_counts),
        )
