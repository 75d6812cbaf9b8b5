"""Data models for the SQLite item store."""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Category used for items without tags.
DEFAULT_CATEGORY = "general"

# Segment that selects every eligible item.
DEFAULT_SEGMENT = "default"


class MarketSource(str, Enum):
    """Exchange a market listing came from."""

    POLYMARKET = "polymarket"
    KALSHI = "kalshi"
    MOCK = "mock"


class ItemEventType(str, Enum):
    """Event type for market upsert operations.

    - NEW: Market was newly created
    - UPDATED: Market existed but content_hash changed
    - UNCHANGED: Market existed with same content_hash
    """

    NEW = "NEW"
    UPDATED = "UPDATED"
    UNCHANGED = "UNCHANGED"


def make_item_id(source: MarketSource, external_id: str) -> str:
    """Build the surrogate item ID for a source listing.

    Args:
        source: Exchange the listing belongs to.
        external_id: Identifier assigned by the exchange.

    Returns:
        Item ID of the form '{source}:{external_id}'.
    """
    return f"{source.value}:{external_id}"


class MarketItem(BaseModel):
    """Stored prediction-market item.

    Signal fields are written by ingestion; confidence and trend_score are
    derived and written back by rebuilds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: Annotated[str, Field(min_length=1, description="Surrogate item ID")]
    source: MarketSource = Field(description="Exchange the listing came from")
    external_id: Annotated[str, Field(min_length=1, description="Exchange ID")]
    question: Annotated[str, Field(min_length=1, description="Market question")]
    yes_price: float | None = Field(default=None, description="YES price (0..1)")
    no_price: float | None = Field(default=None, description="NO price (0..1)")
    volume: float = Field(default=0.0, description="Traded volume")
    liquidity: float = Field(default=0.0, description="Order book liquidity")
    price_change_24h: float = Field(
        default=0.0, description="24h price change in percentage points"
    )
    mention_score: float = Field(default=0.0, description="Social mention score")
    end_date: datetime | None = Field(default=None, description="Resolution time")
    tags: list[str] = Field(default_factory=list, description="Ordered tags")
    eligible: bool = Field(default=True, description="Admin eligibility switch")
    confidence: float | None = Field(default=None, description="Derived confidence")
    trend_score: float | None = Field(default=None, description="Derived trend")
    content_hash: Annotated[str, Field(min_length=1, description="Signal hash")]
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the market was first ingested",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the market content last changed",
    )

    @field_validator("end_date", "created_at", "updated_at")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def category(self) -> str:
        """First tag, or the 'general' sentinel when untagged."""
        return self.tags[0] if self.tags else DEFAULT_CATEGORY

    def is_expired(self, now: datetime) -> bool:
        """Check whether the market has passed its resolution time."""
        return self.end_date is not None and self.end_date <= now


class UpsertResult(BaseModel):
    """Result of a market upsert operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_type: ItemEventType = Field(description="What happened during upsert")
    affected_rows: int = Field(ge=0, description="Number of rows affected")
    item: MarketItem = Field(description="The upserted item")


class ItemStoreStats(BaseModel):
    """Aggregate counts over the item store."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_items: int = Field(ge=0)
    eligible_items: int = Field(ge=0)
    scored_items: int = Field(ge=0)
    avg_confidence: float | None = None
    by_source: dict[str, int] = Field(default_factory=dict)
