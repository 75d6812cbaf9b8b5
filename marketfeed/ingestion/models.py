"""Connector output models."""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import Field, field_validator

from marketfeed.data_model.base import StrictBaseModel
from marketfeed.store.hash import compute_content_hash
from marketfeed.store.models import MarketSource, make_item_id


class NormalizedMarket(StrictBaseModel):
    """A market listing as emitted by a connector.

    Only signal fields appear here; derived scores and the eligibility
    switch belong to the item store.
    """

    source: MarketSource
    external_id: Annotated[str, Field(min_length=1)]
    question: Annotated[str, Field(min_length=1)]
    yes_price: float | None = None
    no_price: float | None = None
    volume: float = 0.0
    liquidity: float = 0.0
    price_change_24h: float = 0.0
    mention_score: float = 0.0
    end_date: datetime | None = None
    tags: tuple[str, ...] = ()

    @field_validator("end_date")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(tag.strip() for tag in value if tag.strip())

    @property
    def item_id(self) -> str:
        """Surrogate item ID this listing is stored under."""
        return make_item_id(self.source, self.external_id)

    def content_hash(self) -> str:
        """Hash of every field that affects ranking or filtering."""
        return compute_content_hash(
            self.question,
            {
                "yes_price": self.yes_price,
                "no_price": self.no_price,
                "volume": self.volume,
                "liquidity": self.liquidity,
                "price_change_24h": self.price_change_24h,
                "mention_score": self.mention_score,
            },
            end_date=self.end_date,
            tags=self.tags,
        )
