"""Composition root: builds the ranking service from settings."""

from dataclasses import dataclass
from pathlib import Path

import structlog

from marketfeed.admin.service import AdminService
from marketfeed.cache.base import SortedSetStore
from marketfeed.cache.memory import InMemorySortedSetStore
from marketfeed.cache.redis_store import RedisSortedSetStore
from marketfeed.config.holder import ConfigHolder
from marketfeed.config.loader import LoadedConfig, load_ranking_config
from marketfeed.feed.reader import FeedReader
from marketfeed.ingestion.connectors import MarketConnector
from marketfeed.ingestion.runner import IngestionRunner
from marketfeed.ranker.ranked_set import RankedSetRepository
from marketfeed.rebuild.pipeline import RebuildPipeline
from marketfeed.rebuild.scheduler import RebuildScheduler
from marketfeed.rebuild.trigger import RebuildTrigger
from marketfeed.service import RankingService
from marketfeed.settings import AppSettings
from marketfeed.store.store import ItemStore


logger = structlog.get_logger()


@dataclass
class Application:
    """Wired components of a running marketfeed instance."""

    settings: AppSettings
    loaded_config: LoadedConfig
    config_holder: ConfigHolder
    item_store: ItemStore
    fast_store: SortedSetStore
    repository: RankedSetRepository
    pipeline: RebuildPipeline
    trigger: RebuildTrigger
    reader: FeedReader
    service: RankingService
    admin: AdminService

    def ingestion_runner(
        self, connectors: list[MarketConnector], max_workers: int = 4
    ) -> IngestionRunner:
        """Build an ingestion runner over the given connectors."""
        return IngestionRunner(
            self.item_store, connectors, self.trigger, self.config_holder, max_workers
        )

    def scheduler(self) -> RebuildScheduler:
        """Build the interval scheduler for every configured segment."""
        config = self.config_holder.get()
        return RebuildScheduler(
            self.trigger, config.segments, config.rebuild.interval_seconds
        )

    def close(self) -> None:
        """Wait for running rebuilds and close the item store."""
        self.trigger.shutdown(wait=True)
        self.item_store.close()

    def __enter__(self) -> "Application":
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()


def build_fast_store(settings: AppSettings) -> SortedSetStore:
    """Select the fast store: Redis when REDIS_URL is set, else in-memory."""
    if settings.redis_url:
        logger.info("fast_store_selected", component="app", backend="redis")
        return RedisSortedSetStore.from_url(settings.redis_url)
    logger.info("fast_store_selected", component="app", backend="memory")
    return InMemorySortedSetStore()


def build_application(
    settings: AppSettings | None = None,
    config_path: Path | None = None,
    fast_store: SortedSetStore | None = None,
) -> Application:
    """Wire every component from settings.

    Args:
        settings: Application settings (default: read from environment).
        config_path: Ranking config file (default: RANKING_CONFIG_PATH).
        fast_store: Fast store to use instead of the one settings select.

    Returns:
        Application with a connected item store.

    Raises:
        ConfigurationError: If the ranking configuration is invalid.
    """
    settings = settings or AppSettings()
    loaded = load_ranking_config(config_path, settings)
    holder = ConfigHolder(loaded.config)

    item_store = ItemStore(settings.db_path)
    item_store.connect()

    fast_store = fast_store or build_fast_store(settings)
    repository = RankedSetRepository(fast_store, loaded.config.cache)
    pipeline = RebuildPipeline(item_store, repository, holder)
    trigger = RebuildTrigger(pipeline, fast_store, holder)
    reader = FeedReader(repository, item_store, loaded.config.feed)

    return Application(
        settings=settings,
        loaded_config=loaded,
        config_holder=holder,
        item_store=item_store,
        fast_store=fast_store,
        repository=repository,
        pipeline=pipeline,
        trigger=trigger,
        reader=reader,
        service=RankingService(reader, repository, item_store, trigger),
        admin=AdminService(holder, repository, trigger, item_store),
    )
