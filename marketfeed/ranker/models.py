"""Data models for the market ranker."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import Field

from marketfeed.data_model import StrictBaseModel
from marketfeed.store.models import MarketItem


class RankedSetKind(str, Enum):
    """Kinds of RankedSet kept per segment.

    - TOP: raw top-K by confidence.
    - DIVERSITY: category-diversified walk over the top-K prefix.
    """

    TOP = "top"
    DIVERSITY = "diversity"


@dataclass(frozen=True)
class ScoreComponents:
    """Normalized inputs of a score, kept for audit.

    Attributes:
        liquidity: Liquidity sigmoid in [0, 1].
        volume: Log-normalized volume in [0, 1].
        drift: Normalized absolute 24h price change in [0, 1].
        social: Normalized mention score in [0, 1].
        time: Time term (urgency for v1, decay for v2) in [0, 1].
        trend_input: Stored trend score fed into v1 (0 for v2).
    """

    liquidity: float
    volume: float
    drift: float
    social: float
    time: float
    trend_input: float = 0.0

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization.

        Returns:
            Dictionary of component name to value.
        """
        return {
            "liquidity": self.liquidity,
            "volume": self.volume,
            "drift": self.drift,
            "social": self.social,
            "time": self.time,
            "trend_input": self.trend_input,
        }


@dataclass(frozen=True)
class Score:
    """Derived scores for one item.

    Attributes:
        confidence: Composite confidence in [0, 1].
        trend_score: Trend score in [0, 1].
        components: Normalized inputs behind the scores.
    """

    confidence: float
    trend_score: float
    components: ScoreComponents


@dataclass(frozen=True)
class ScoredItem:
    """An item paired with its score for one rebuild.

    Attributes:
        item: The scored item.
        score: Score computed for it.
    """

    item: MarketItem
    score: Score

    @property
    def item_id(self) -> str:
        """ID of the scored item."""
        return self.item.item_id

    @property
    def confidence(self) -> float:
        """Confidence of the scored item."""
        return self.score.confidence


class RankedSetMeta(StrictBaseModel):
    """Metadata of one published RankedSet generation.

    Stored as JSON under the segment's pointer key; overwriting it is the
    atomic swap that makes a new generation visible.

    Attributes:
        segment: Segment the set belongs to.
        kind: TOP or DIVERSITY.
        generation: Monotonic generation number.
        size: Number of members.
        built_at: When the generation was published.
        expires_at: When the generation stops being served.
        source_generation: For DIVERSITY, the TOP generation it was sampled from.
    """

    segment: Annotated[str, Field(min_length=1)]
    kind: RankedSetKind
    generation: Annotated[int, Field(ge=1)]
    size: Annotated[int, Field(ge=0)]
    built_at: datetime
    expires_at: datetime
    source_generation: int | None = None

    def to_json(self) -> str:
        """Serialize for the pointer key."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "RankedSetMeta":
        """Parse a pointer key value."""
        return cls.model_validate(json.loads(raw))

    def is_expired(self, now: datetime) -> bool:
        """Check whether the generation is past its expiry."""
        return now >= self.expires_at


@dataclass
class DiversityResult:
    """Outcome of a diversity sampling pass.

    Attributes:
        segment: Segment sampled.
        considered: Top-K members walked.
        sampled: Members accepted.
        diversity_score: sampled / considered (0 when nothing was considered).
        meta: Published diversity set, or None when nothing was published.
        category_counts: Accepted members per category.
    """

    segment: str
    considered: int = 0
    sampled: int = 0
    diversity_score: float = 0.0
    meta: RankedSetMeta | None = None
    category_counts: dict[str, int] = field(default_factory=dict)
