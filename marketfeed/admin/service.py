"""Admin operations: configuration, rebuilds, and cache inspection."""

from typing import Any

import structlog

from marketfeed.admin.models import CacheInspection, RankedSetStatus
from marketfeed.config.holder import ConfigHolder
from marketfeed.config.schemas.ranking import (
    RankingConfig,
    ScoringStrategyName,
    ScoringWeights,
)
from marketfeed.feed.metrics import FeedMetrics
from marketfeed.ranker.diversity import DiversitySampler
from marketfeed.ranker.metrics import RankerMetrics
from marketfeed.ranker.models import DiversityResult, RankedSetKind
from marketfeed.ranker.ranked_set import RankedSetRepository
from marketfeed.ranker.scorer import get_algorithm_info
from marketfeed.rebuild.metrics import RebuildMetrics
from marketfeed.rebuild.models import TriggerResult
from marketfeed.rebuild.trigger import RebuildTrigger
from marketfeed.store.metrics import StoreMetrics
from marketfeed.store.store import ItemStore


logger = structlog.get_logger()


class AdminService:
    """Operator surface over configuration and RankedSets.

    Configuration changes are validated in full before they are swapped in;
    they take effect from the next rebuild.
    """

    def __init__(
        self,
        config_holder: ConfigHolder,
        repository: RankedSetRepository,
        trigger: RebuildTrigger,
        item_store: ItemStore,
    ) -> None:
        """Initialize the service.

        Args:
            config_holder: Live configuration.
            repository: RankedSet repository.
            trigger: Rebuild trigger.
            item_store: Item store used to resolve categories when resampling.
        """
        self._config_holder = config_holder
        self._repository = repository
        self._trigger = trigger
        self._item_store = item_store
        self._log = logger.bind(component="admin")

    def get_config(self) -> RankingConfig:
        """Return the current configuration snapshot."""
        return self._config_holder.get()

    def update_weights(self, **weights: float) -> ScoringWeights:
        """Change scoring weights.

        Unspecified weights keep their current values; the resulting set
        must still sum to 1.

        Args:
            **weights: Any of w1_liquidity, w2_volume, w3_drift, w4_social,
                w5_time.

        Returns:
            The weights now in effect.

        Raises:
            ConfigurationError: If the new weights are invalid.
        """
        config = self._config_holder.update({"weights": weights})
        self._log.info("weights_updated", weights=config.weights.model_dump())
        return config.weights

    def set_strategy(self, strategy: ScoringStrategyName | str) -> ScoringStrategyName:
        """Switch the scoring strategy.

        Raises:
            ConfigurationError: If the strategy is unknown.
        """
        if isinstance(strategy, ScoringStrategyName):
            strategy = strategy.value
        config = self._config_holder.update({"strategy": strategy})
        self._log.info("strategy_updated", strategy=config.strategy.value)
        return config.strategy

    def update_cache_settings(self, **changes: Any) -> RankingConfig:
        """Change cache settings such as top_k and TTLs.

        Raises:
            ConfigurationError: If the resulting settings are invalid.
        """
        config = self._config_holder.update({"cache": changes})
        self._log.info("cache_settings_updated", changes=changes)
        return config

    def force_rebuild(self, segment: str) -> TriggerResult:
        """Request a rebuild that skips the minimum interval."""
        return self._trigger.trigger_rebuild(segment, force=True)

    def reindex(self, segment: str) -> TriggerResult:
        """Drop a segment's RankedSets and rebuild them from scratch.

        Until the rebuild publishes, reads fall back to unranked order.
        """
        removed = self._repository.clear(segment)
        self._log.info("segment_reindex_requested", segment=segment, keys=removed)
        return self.force_rebuild(segment)

    def resample_diversity(self, segment: str) -> DiversityResult:
        """Resample the diversity set from the live top-K set.

        Uses the current diversity window and source size without rescoring.
        With no live top-K set nothing is published.

        Raises:
            TransientStoreError: If either store is unavailable.
        """
        sampler = DiversitySampler(
            self._repository, self._item_store, self._config_holder.get().cache
        )
        result = sampler.sample(segment)
        self._log.info(
            "diversity_resampled",
            segment=segment,
            sampled=result.sampled,
        )
        return result

    def _status(self, segment: str, kind: RankedSetKind) -> RankedSetStatus:
        meta = self._repository.get_meta(segment, kind)
        if meta is None:
            return RankedSetStatus(kind=kind)
        return RankedSetStatus(
            kind=kind,
            present=True,
            generation=meta.generation,
            size=meta.size,
            cardinality=self._repository.store.cardinality(
                self._repository.data_key_for(meta)
            ),
            ttl_seconds=self._repository.remaining_ttl_seconds(meta),
            built_at=meta.built_at,
            source_generation=meta.source_generation,
        )

    def inspect_caches(self, segment: str) -> CacheInspection:
        """Report sizes, generations and TTLs of a segment's RankedSets.

        Raises:
            FastStoreUnavailableError: If the fast store cannot be reached.
        """
        top = self._status(segment, RankedSetKind.TOP)
        diversity = self._status(segment, RankedSetKind.DIVERSITY)
        return CacheInspection(
            segment=segment,
            top=top,
            diversity=diversity,
            diversity_in_sync=(
                top.present
                and diversity.present
                and diversity.source_generation == top.generation
            ),
            hit_rate=FeedMetrics.get_instance().hit_rate,
        )

    def get_algorithm_info(self) -> dict[str, object]:
        """Describe the scoring strategy and weights in effect."""
        config = self._config_holder.get()
        return get_algorithm_info(config.strategy, config.weights)

    def get_metrics(self) -> dict[str, dict[str, object]]:
        """Collect every metrics registry as a dictionary."""
        return {
            "ranker": RankerMetrics.get_instance().to_dict(),
            "rebuild": RebuildMetrics.get_instance().to_dict(),
            "feed": FeedMetrics.get_instance().to_dict(),
            "store": dict(StoreMetrics.get_instance().to_dict()),
        }
