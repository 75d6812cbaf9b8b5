"""Data models for paginated feed reads."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from marketfeed.data_model import StrictBaseModel
from marketfeed.store.models import MarketItem, MarketSource


class FeedSource(str, Enum):
    """Tier that served a page.

    - DIVERSITY: diversity-sampled RankedSet
    - TOP: raw top-K RankedSet
    - UNRANKED: chronological item store query
    """

    DIVERSITY = "diversity"
    TOP = "top"
    UNRANKED = "unranked"


class ItemSummary(StrictBaseModel):
    """Item as served in a feed page."""

    item_id: str
    source: MarketSource
    question: str
    category: str
    tags: list[str] = Field(default_factory=list)
    yes_price: float | None = None
    no_price: float | None = None
    volume: float = 0.0
    liquidity: float = 0.0
    confidence: float | None = None
    trend_score: float | None = None
    end_date: datetime | None = None
    updated_at: datetime
    rank: int | None = Field(default=None, description="Position in the RankedSet")

    @classmethod
    def from_item(cls, item: MarketItem, rank: int | None = None) -> "ItemSummary":
        """Build a summary from a stored item.

        Args:
            item: Stored item.
            rank: 0-based position in the serving RankedSet, if any.

        Returns:
            Item summary.
        """
        return cls(
            item_id=item.item_id,
            source=item.source,
            question=item.question,
            category=item.category,
            tags=list(item.tags),
            yes_price=item.yes_price,
            no_price=item.no_price,
            volume=item.volume,
            liquidity=item.liquidity,
            confidence=item.confidence,
            trend_score=item.trend_score,
            end_date=item.end_date,
            updated_at=item.updated_at,
            rank=rank,
        )


class FeedPage(StrictBaseModel):
    """One page of a segment's feed.

    Attributes:
        segment: Segment served.
        items: Items in served order.
        next_cursor: Token for the next page, None on the last page.
        has_more: Whether another page exists.
        source: Tier that served the page.
        generation: RankedSet generation for ranked tiers.
    """

    segment: str
    items: list[ItemSummary] = Field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False
    source: FeedSource
    generation: int | None = None
