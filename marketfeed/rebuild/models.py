"""Data models for rebuilds and rebuild triggering."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from marketfeed.ranker.models import DiversityResult, RankedSetMeta
from marketfeed.rebuild.state_machine import RebuildState


@dataclass(frozen=True)
class ItemFailure:
    """An item that could not be scored or persisted.

    Attributes:
        item_id: Item that failed.
        phase: 'score' or 'persist'.
        message: Error message.
    """

    item_id: str
    phase: str
    message: str


@dataclass
class RebuildResult:
    """Result of a completed rebuild.

    Attributes:
        rebuild_id: Rebuild identifier.
        segment: Segment rebuilt.
        state: Final state of the rebuild.
        started_at: When the rebuild started.
        finished_at: When the rebuild finished.
        items_considered: Eligible items listed.
        items_scored: Items scored successfully.
        items_persisted: Score rows written.
        top: Published top-K generation.
        diversity: Diversity pass result (None if it failed).
        failures: Per-item failures.
    """

    rebuild_id: str
    segment: str
    state: RebuildState
    started_at: datetime
    finished_at: datetime
    items_considered: int = 0
    items_scored: int = 0
    items_persisted: int = 0
    top: RankedSetMeta | None = None
    diversity: DiversityResult | None = None
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if the rebuild completed."""
        return self.state is RebuildState.COMPLETED

    @property
    def duration_ms(self) -> float:
        """Get total duration in milliseconds."""
        return (self.finished_at - self.started_at).total_seconds() * 1000

    @property
    def persist_failures(self) -> int:
        """Number of items whose scores were not persisted."""
        return sum(1 for f in self.failures if f.phase == "persist")

    @property
    def score_failures(self) -> int:
        """Number of items that could not be scored."""
        return sum(1 for f in self.failures if f.phase == "score")


class TriggerStatus(str, Enum):
    """Outcome of a trigger request.

    - ACCEPTED: A rebuild was scheduled
    - ALREADY_IN_FLIGHT: A rebuild is running; one rerun is queued after it
    - DEFERRED: The previous rebuild finished too recently; one rebuild is
      queued for when the minimum interval has elapsed
    """

    ACCEPTED = "ACCEPTED"
    ALREADY_IN_FLIGHT = "ALREADY_IN_FLIGHT"
    DEFERRED = "DEFERRED"


@dataclass(frozen=True)
class TriggerResult:
    """Result of a trigger request.

    Attributes:
        segment: Segment the trigger was for.
        status: What happened.
        rebuild_id: ID of the scheduled rebuild when ACCEPTED.
    """

    segment: str
    status: TriggerStatus
    rebuild_id: str | None = None


class OutcomeStatus(str, Enum):
    """How a triggered rebuild ended."""

    COMPLETED = "COMPLETED"
    TIMED_OUT = "TIMED_OUT"
    FAILED = "FAILED"
    LEASE_HELD = "LEASE_HELD"


@dataclass(frozen=True)
class RebuildOutcome:
    """Final outcome of a triggered rebuild.

    Attributes:
        segment: Segment rebuilt.
        rebuild_id: Rebuild identifier.
        status: How the rebuild ended.
        finished_at: When the outcome was recorded.
        result: Rebuild result when the pipeline completed.
        error: Error message for failures and timeouts.
    """

    segment: str
    rebuild_id: str
    status: OutcomeStatus
    finished_at: datetime
    result: RebuildResult | None = None
    error: str | None = None
