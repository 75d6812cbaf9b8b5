"""Outward-facing ranking service."""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from marketfeed.data_model import StrictBaseModel
from marketfeed.feed.models import FeedPage, ItemSummary
from marketfeed.feed.reader import FeedReader
from marketfeed.ranker.models import RankedSetKind
from marketfeed.ranker.ranked_set import RankedSetRepository
from marketfeed.rebuild.models import TriggerResult
from marketfeed.rebuild.trigger import RebuildTrigger
from marketfeed.store.models import DEFAULT_SEGMENT
from marketfeed.store.store import ItemStore


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SegmentStats(StrictBaseModel):
    """Ranking statistics of a segment.

    Attributes:
        segment: Segment name.
        total_eligible: Eligible, unexpired items in the item store.
        top_k_size: Members of the live top-K set (0 when absent).
        diversity_size: Members of the diversity set reads would serve; 0 when
            it is absent or was sampled from an older top-K generation.
        diversity_in_sync: Whether the diversity set derives from the live
            top-K set.
        last_rebuilt_at: When the live top-K set was published.
    """

    segment: str
    total_eligible: int = 0
    top_k_size: int = 0
    diversity_size: int = 0
    diversity_in_sync: bool = False
    last_rebuilt_at: datetime | None = None


class RankingService:
    """Facade for feed reads, statistics and rebuild requests."""

    def __init__(
        self,
        reader: FeedReader,
        repository: RankedSetRepository,
        item_store: ItemStore,
        trigger: RebuildTrigger,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._reader = reader
        self._repository = repository
        self._item_store = item_store
        self._trigger = trigger
        self._clock = clock

    def get_page(
        self, segment: str, cursor: str | None = None, limit: int | None = None
    ) -> FeedPage:
        """Read one page of a segment's feed. See FeedReader.get_page."""
        return self._reader.get_page(segment, cursor, limit)

    def get_trending(
        self, segment: str = DEFAULT_SEGMENT, limit: int | None = None
    ) -> list[ItemSummary]:
        """List high-confidence, high-trend items. See FeedReader.list_trending."""
        return self._reader.list_trending(segment, limit)

    def get_by_tags(
        self, tags: Sequence[str], limit: int | None = None
    ) -> list[ItemSummary]:
        """List items carrying any of the tags. See FeedReader.list_by_tags."""
        return self._reader.list_by_tags(tags, limit)

    def get_stats(self, segment: str) -> SegmentStats:
        """Summarize a segment's item count and RankedSets."""
        top = self._repository.get_meta(segment, RankedSetKind.TOP)
        diversity = self._repository.get_meta(segment, RankedSetKind.DIVERSITY)
        in_sync = (
            top is not None
            and diversity is not None
            and diversity.source_generation == top.generation
        )
        return SegmentStats(
            segment=segment,
            total_eligible=self._item_store.count_eligible(segment, self._clock()),
            top_k_size=top.size if top else 0,
            diversity_size=diversity.size if diversity and in_sync else 0,
            diversity_in_sync=in_sync,
            last_rebuilt_at=top.built_at if top else None,
        )

    def trigger_rebuild(self, segment: str, force: bool = False) -> TriggerResult:
        """Request a rebuild of a segment. See RebuildTrigger.trigger_rebuild."""
        return self._trigger.trigger_rebuild(segment, force=force)
