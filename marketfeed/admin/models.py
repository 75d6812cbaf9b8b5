"""Data models returned by the admin service."""

from datetime import datetime

from marketfeed.data_model import StrictBaseModel
from marketfeed.ranker.models import RankedSetKind


class RankedSetStatus(StrictBaseModel):
    """Live state of one RankedSet.

    Attributes:
        kind: RankedSet kind.
        present: Whether a live generation exists.
        generation: Live generation.
        size: Members published in the generation.
        cardinality: Members currently readable from the fast store.
        ttl_seconds: Seconds until the pointer expires.
        built_at: When the generation was published.
        source_generation: Top-K generation a diversity set derives from.
    """

    kind: RankedSetKind
    present: bool = False
    generation: int | None = None
    size: int = 0
    cardinality: int = 0
    ttl_seconds: int | None = None
    built_at: datetime | None = None
    source_generation: int | None = None


class CacheInspection(StrictBaseModel):
    """Cache state of a segment.

    Attributes:
        segment: Segment inspected.
        top: Top-K set status.
        diversity: Diversity set status.
        diversity_in_sync: Whether diversity derives from the live top-K.
        hit_rate: Share of served pages that came from a RankedSet.
    """

    segment: str
    top: RankedSetStatus
    diversity: RankedSetStatus
    diversity_in_sync: bool = False
    hit_rate: float = 0.0
