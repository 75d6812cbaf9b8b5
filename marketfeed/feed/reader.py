"""Cursor-paginated feed reads with tiered fallback."""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime

import structlog

from marketfeed.config.schemas.ranking import FeedConfig
from marketfeed.errors import (
    FeedUnavailableError,
    InvalidCursorError,
    InvalidPageRequestError,
    StaleCursorError,
    TransientStoreError,
)
from marketfeed.feed.cursor import (
    RankCursor,
    TimeCursor,
    decode_cursor,
    encode_cursor,
)
from marketfeed.feed.metrics import FeedMetrics
from marketfeed.feed.models import FeedPage, FeedSource, ItemSummary
from marketfeed.ranker.models import RankedSetKind, RankedSetMeta
from marketfeed.ranker.ranked_set import RankedSetRepository
from marketfeed.store.models import DEFAULT_SEGMENT
from marketfeed.store.store import ItemStore


logger = structlog.get_logger()

DEFAULT_TRENDING_LIMIT = 10
DEFAULT_TAGS_LIMIT = 20


def _utc_now() -> datetime:
    return datetime.now(UTC)


class FeedReader:
    """Serves pages from diversity, then top-K, then unranked order.

    A first-page request walks the tiers in that order and falls through
    on a missing set or a transient store failure. The diversity set is
    only used while it was sampled from the live top-K generation. A
    follow-up request continues in the tier and generation its cursor was
    issued against, or is rejected as stale.
    """

    def __init__(
        self,
        repository: RankedSetRepository,
        item_store: ItemStore,
        feed_config: FeedConfig,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the reader.

        Args:
            repository: RankedSet repository.
            item_store: Item store for hydration and the unranked tier.
            feed_config: Page size limits.
            clock: Wall clock used for expiry filtering.
        """
        self._repository = repository
        self._item_store = item_store
        self._config = feed_config
        self._clock = clock
        self._metrics = FeedMetrics.get_instance()
        self._log = logger.bind(component="feed", subcomponent="reader")

    def get_page(
        self, segment: str, cursor: str | None = None, limit: int | None = None
    ) -> FeedPage:
        """Read one page of a segment's feed.

        Args:
            segment: Segment to read.
            cursor: Token from a previous page, or None for the first page.
            limit: Page size (default: configured default page size).

        Returns:
            The page. An empty page with has_more=False is a valid result.

        Raises:
            InvalidPageRequestError: If limit is out of range.
            InvalidCursorError: If the cursor is malformed or for another
                segment.
            StaleCursorError: If the cursor's RankedSet is no longer live.
            FeedUnavailableError: If every tier failed.
        """
        self._metrics.record_request()
        limit = self._validate_limit(limit)

        if cursor is None:
            page = self._first_page(segment, limit)
        else:
            page = self._continue(segment, cursor, limit)

        self._metrics.record_served(page.source.value)
        self._log.debug(
            "feed_page_served",
            segment=segment,
            source=page.source.value,
            generation=page.generation,
            items=len(page.items),
            has_more=page.has_more,
        )
        return page

    def list_trending(
        self, segment: str = DEFAULT_SEGMENT, limit: int | None = None
    ) -> list[ItemSummary]:
        """List items with high persisted confidence and trend scores.

        Args:
            segment: Segment to read.
            limit: Maximum items (default: 10, capped at max_page_size).

        Returns:
            Summaries by trend score, then confidence. Empty until a rebuild
            has written scores.

        Raises:
            InvalidPageRequestError: If limit is out of range.
            ItemStoreUnavailableError: If the item store cannot be read.
        """
        limit = self._validate_limit(limit, DEFAULT_TRENDING_LIMIT)
        items = self._item_store.list_trending(
            segment,
            self._clock(),
            limit,
            self._config.trending_min_confidence,
            self._config.trending_min_trend_score,
        )
        self._log.debug("trending_served", segment=segment, items=len(items))
        return [ItemSummary.from_item(item) for item in items]

    def list_by_tags(
        self, tags: Sequence[str], limit: int | None = None
    ) -> list[ItemSummary]:
        """List items carrying any of the given tags, best scored first.

        Args:
            tags: Tags to match.
            limit: Maximum items (default: 20, capped at max_page_size).

        Returns:
            Summaries by confidence, then recency.

        Raises:
            InvalidPageRequestError: If limit is out of range.
            ItemStoreUnavailableError: If the item store cannot be read.
        """
        limit = self._validate_limit(limit, DEFAULT_TAGS_LIMIT)
        items = self._item_store.list_by_tags(tags, self._clock(), limit)
        self._log.debug("tag_listing_served", tags=list(tags), items=len(items))
        return [ItemSummary.from_item(item) for item in items]

    def _validate_limit(self, limit: int | None, default: int | None = None) -> int:
        if limit is None:
            if default is not None:
                return min(default, self._config.max_page_size)
            return self._config.default_page_size
        if limit < 1 or limit > self._config.max_page_size:
            self._metrics.record_invalid_request()
            raise InvalidPageRequestError(limit, self._config.max_page_size)
        return limit

    def _live_meta(self, segment: str, kind: RankedSetKind) -> RankedSetMeta | None:
        """Resolve a RankedSet that can serve reads (present and non-empty)."""
        meta = self._repository.get_meta(segment, kind)
        if meta is None or meta.size == 0:
            return None
        return meta

    def _tier_failed(self, segment: str, tier: str, error: Exception) -> None:
        self._metrics.record_tier_failure(tier)
        self._log.warning(
            "feed_tier_failed", segment=segment, tier=tier, error=str(error)
        )

    def _first_page(self, segment: str, limit: int) -> FeedPage:
        failed: list[str] = []

        top_meta: RankedSetMeta | None = None
        try:
            top_meta = self._live_meta(segment, RankedSetKind.TOP)
        except TransientStoreError as e:
            self._tier_failed(segment, FeedSource.TOP.value, e)
            failed.append(FeedSource.TOP.value)

        if top_meta is not None:
            try:
                diversity_meta = self._live_meta(segment, RankedSetKind.DIVERSITY)
                if (
                    diversity_meta is not None
                    and diversity_meta.source_generation == top_meta.generation
                ):
                    page = self._read_ranked(segment, diversity_meta, 0, limit)
                    if page is not None:
                        return page
            except TransientStoreError as e:
                self._tier_failed(segment, FeedSource.DIVERSITY.value, e)
                failed.append(FeedSource.DIVERSITY.value)

            try:
                page = self._read_ranked(segment, top_meta, 0, limit)
                if page is not None:
                    return page
            except TransientStoreError as e:
                self._tier_failed(segment, FeedSource.TOP.value, e)
                failed.append(FeedSource.TOP.value)

        try:
            return self._read_unranked(segment, None, limit)
        except TransientStoreError as e:
            self._tier_failed(segment, FeedSource.UNRANKED.value, e)
            failed.append(FeedSource.UNRANKED.value)

        self._metrics.record_unavailable()
        self._log.error("feed_unavailable", segment=segment, failed_tiers=failed)
        raise FeedUnavailableError(segment, failed)

    def _continue(self, segment: str, token: str, limit: int) -> FeedPage:
        try:
            cursor = decode_cursor(token)
        except InvalidCursorError:
            self._metrics.record_invalid_request()
            raise

        if cursor.segment != segment:
            self._metrics.record_invalid_request()
            msg = f"cursor was issued for segment '{cursor.segment}'"
            raise InvalidCursorError(msg)

        if isinstance(cursor, TimeCursor):
            try:
                return self._read_unranked(
                    segment, (cursor.updated_at, cursor.item_id), limit
                )
            except TransientStoreError as e:
                self._tier_failed(segment, FeedSource.UNRANKED.value, e)
                self._metrics.record_unavailable()
                raise FeedUnavailableError(segment, [FeedSource.UNRANKED.value]) from e

        return self._continue_ranked(segment, cursor, limit)

    def _continue_ranked(
        self, segment: str, cursor: RankCursor, limit: int
    ) -> FeedPage:
        try:
            meta = self._repository.get_meta(segment, cursor.source)
            if meta is None or meta.generation != cursor.generation:
                reason = "rebuilt" if meta is not None else "expired"
                raise self._stale(cursor, reason)
            page = self._read_ranked(segment, meta, cursor.offset, limit)
        except TransientStoreError as e:
            self._tier_failed(segment, cursor.source.value, e)
            raise self._stale(cursor, "unavailable") from e

        if page is None:
            return FeedPage(
                segment=segment,
                source=FeedSource(cursor.source.value),
                generation=cursor.generation,
            )
        return page

    def _stale(self, cursor: RankCursor, reason: str) -> StaleCursorError:
        self._metrics.record_stale_cursor()
        self._log.info(
            "stale_cursor_rejected",
            segment=cursor.segment,
            source=cursor.source.value,
            generation=cursor.generation,
            reason=reason,
        )
        return StaleCursorError(
            cursor.segment, cursor.source.value, cursor.generation, reason
        )

    def _read_ranked(
        self, segment: str, meta: RankedSetMeta, offset: int, limit: int
    ) -> FeedPage | None:
        """Read limit+1 members of a generation and hydrate them.

        Returns:
            The page, or None when the generation holds nothing at offset.
        """
        entries = self._repository.read_range(meta, offset, offset + limit)
        if not entries:
            return None

        has_more = len(entries) > limit
        entries = entries[:limit]
        items = self._item_store.find_many(item_id for item_id, _ in entries)

        summaries = [
            ItemSummary.from_item(items[item_id], rank=offset + position)
            for position, (item_id, _) in enumerate(entries)
            if item_id in items and items[item_id].eligible
        ]

        next_cursor = None
        if has_more:
            next_cursor = encode_cursor(
                RankCursor(
                    segment=segment,
                    source=meta.kind,
                    generation=meta.generation,
                    offset=offset + limit,
                )
            )

        return FeedPage(
            segment=segment,
            items=summaries,
            next_cursor=next_cursor,
            has_more=has_more,
            source=FeedSource(meta.kind.value),
            generation=meta.generation,
        )

    def _read_unranked(
        self, segment: str, after: tuple[datetime, str] | None, limit: int
    ) -> FeedPage:
        rows = self._item_store.list_recent_unranked(
            segment, after, limit + 1, self._clock()
        )
        has_more = len(rows) > limit
        rows = rows[:limit]

        next_cursor = None
        if has_more:
            last = rows[-1]
            next_cursor = encode_cursor(
                TimeCursor(
                    segment=segment, updated_at=last.updated_at, item_id=last.item_id
                )
            )

        return FeedPage(
            segment=segment,
            items=[ItemSummary.from_item(item) for item in rows],
            next_cursor=next_cursor,
            has_more=has_more,
            source=FeedSource.UNRANKED,
        )
